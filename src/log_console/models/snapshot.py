"""OrderedSnapshot - immutable point-in-time view of the entity list"""

from typing import Dict, Iterable, Iterator, Optional, Tuple

from .entity import LogEntity


class OrderedSnapshot:
    """Randomly-indexable, read-only sequence of entities.

    A snapshot is never mutated after it is created; a change produces a new
    snapshot. Readers can therefore share one without synchronization.
    """

    __slots__ = ("_entities", "_positions")

    def __init__(self, entities: Iterable[LogEntity] = ()):
        self._entities: Tuple[LogEntity, ...] = tuple(entities)
        self._positions: Optional[Dict[str, int]] = None

    @classmethod
    def empty(cls) -> "OrderedSnapshot":
        return cls(())

    @property
    def count(self) -> int:
        return len(self._entities)

    @property
    def indices(self) -> range:
        return range(len(self._entities))

    @property
    def first(self) -> Optional[LogEntity]:
        return self._entities[0] if self._entities else None

    @property
    def last(self) -> Optional[LogEntity]:
        return self._entities[-1] if self._entities else None

    def index_of(self, entity_id: str) -> Optional[int]:
        """Position of an entity in this snapshot, or None."""
        if self._positions is None:
            self._positions = {e.id: i for i, e in enumerate(self._entities)}
        return self._positions.get(entity_id)

    def appending(self, entities: Iterable[LogEntity]) -> "OrderedSnapshot":
        """A new snapshot with ``entities`` added at the end."""
        return OrderedSnapshot(self._entities + tuple(entities))

    def __len__(self) -> int:
        return len(self._entities)

    def __getitem__(self, index):
        if isinstance(index, slice):
            return OrderedSnapshot(self._entities[index])
        return self._entities[index]

    def __iter__(self) -> Iterator[LogEntity]:
        return iter(self._entities)

    def __eq__(self, other) -> bool:
        if not isinstance(other, OrderedSnapshot):
            return NotImplemented
        return self._entities == other._entities

    def __hash__(self):
        return hash(self._entities)

    def __repr__(self) -> str:
        return f"OrderedSnapshot(count={len(self._entities)})"
