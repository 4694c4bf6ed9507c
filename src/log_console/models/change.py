"""Change descriptions passed between the store, the list and its consumers"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class ChangeKind(Enum):
    APPEND = "append"
    RELOAD = "reload"


@dataclass(frozen=True)
class ChangeBatch:
    """How one snapshot transitions to the next.

    ``APPEND``: the new snapshot is the old one plus ``range`` (contiguous,
    starting at the old count). ``RELOAD``: no positional relationship.
    """
    kind: ChangeKind
    range: range = range(0)

    @classmethod
    def append(cls, indices) -> "ChangeBatch":
        return cls(ChangeKind.APPEND, indices)

    @classmethod
    def reload(cls) -> "ChangeBatch":
        return cls(ChangeKind.RELOAD)

    @property
    def is_append(self) -> bool:
        return self.kind == ChangeKind.APPEND

    @property
    def is_reload(self) -> bool:
        return self.kind == ChangeKind.RELOAD

    @property
    def is_noop(self) -> bool:
        return self.is_append and len(self.range) == 0

    def to_dict(self) -> Dict[str, Any]:
        if self.is_reload:
            return {"kind": self.kind.value}
        return {"kind": self.kind.value, "start": self.range.start, "stop": self.range.stop}

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ChangeBatch":
        kind = ChangeKind(d["kind"])
        if kind == ChangeKind.RELOAD:
            return cls.reload()
        return cls.append(range(d["start"], d["stop"]))

    def __repr__(self) -> str:
        if self.is_reload:
            return "ChangeBatch.reload()"
        return f"ChangeBatch.append(range({self.range.start}, {self.range.stop}))"


@dataclass
class StoreChange:
    """Raw notification for one store update cycle"""
    inserted: List[int] = field(default_factory=list)  # indices in the new ordering
    has_other_changes: bool = False  # update, delete or move
    new_count: Optional[int] = None
