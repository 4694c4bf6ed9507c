"""Log entity models - log lines and captured network tasks"""

import base64
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class StoreFormatError(ValueError):
    """A stored record is missing required fields or has invalid values."""


class LogLevel(Enum):
    TRACE = "trace"
    DEBUG = "debug"
    INFO = "info"
    NOTICE = "notice"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"

    @classmethod
    def parse(cls, value) -> "LogLevel":
        """Parse a level name; unknown values fall back to DEBUG."""
        if isinstance(value, LogLevel):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.DEBUG

    @property
    def rank(self) -> int:
        return _LEVEL_ORDER.index(self)

    @property
    def is_error(self) -> bool:
        return self in (LogLevel.ERROR, LogLevel.CRITICAL)


_LEVEL_ORDER = list(LogLevel)


class TaskState(Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass(frozen=True)
class NetworkTask:
    """A captured network request and its response metadata"""
    url: str = ""
    method: str = "GET"
    state: TaskState = TaskState.PENDING
    status_code: int = 0
    error_code: int = 0     # transport-level error code, 0 = none
    duration: float = 0.0   # seconds, 0 = unknown
    response_body: Optional[bytes] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"url": self.url, "state": self.state.value}
        if self.method != "GET":
            d["method"] = self.method
        if self.status_code:
            d["status_code"] = self.status_code
        if self.error_code:
            d["error_code"] = self.error_code
        if self.duration:
            d["duration"] = self.duration
        if self.response_body is not None:
            d["response_body"] = base64.b64encode(self.response_body).decode("ascii")
        return d

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "NetworkTask":
        if not isinstance(d, dict):
            raise StoreFormatError(f"network task must be an object, got {type(d).__name__}")
        body = d.get("response_body")
        try:
            return cls(
                url=_optional_str(d.get("url")),
                method=_optional_str(d.get("method")) or "GET",
                state=TaskState(d.get("state") or "pending"),
                status_code=int(d.get("status_code") or 0),
                error_code=int(d.get("error_code") or 0),
                duration=float(d.get("duration") or 0.0),
                response_body=base64.b64decode(body) if body is not None else None,
            )
        except (ValueError, TypeError) as e:
            raise StoreFormatError(f"invalid network task: {e}") from e


@dataclass(frozen=True)
class LogEntity:
    """A persisted log line, optionally linked to a network task.

    Identity and creation time never change once the entity exists.
    """
    id: str
    created_at: datetime
    text: str
    level: LogLevel = LogLevel.DEBUG
    label: str = "default"
    task: Optional[NetworkTask] = None
    session_id: str = ""
    metadata: Dict[str, str] = field(default_factory=dict, compare=False, hash=False)

    @property
    def is_network(self) -> bool:
        return self.task is not None

    @property
    def is_error(self) -> bool:
        if self.task is not None and self.task.state == TaskState.FAILURE:
            return True
        return self.level.is_error

    def replace_task(self, task: NetworkTask) -> "LogEntity":
        """Return a copy with an updated task (same identity and time)."""
        return LogEntity(
            id=self.id,
            created_at=self.created_at,
            text=self.text,
            level=self.level,
            label=self.label,
            task=task,
            session_id=self.session_id,
            metadata=self.metadata,
        )

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "id": self.id,
            "created_at": self.created_at.isoformat(),
            "level": self.level.value,
            "label": self.label,
            "text": self.text,
        }
        if self.task is not None:
            d["task"] = self.task.to_dict()
        if self.session_id:
            d["session_id"] = self.session_id
        if self.metadata:
            d["metadata"] = dict(self.metadata)
        return d

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "LogEntity":
        if not isinstance(d, dict):
            raise StoreFormatError(f"record must be an object, got {type(d).__name__}")
        for key in ("id", "created_at"):
            if d.get(key) is None:
                raise StoreFormatError(f"missing required field: {key}")
        try:
            created_at = parse_timestamp(d["created_at"])
        except (ValueError, TypeError, OverflowError, OSError) as e:
            raise StoreFormatError(f"invalid created_at: {d['created_at']!r}") from e
        task = NetworkTask.from_dict(d["task"]) if d.get("task") else None
        metadata = d.get("metadata") or {}
        if not isinstance(metadata, dict):
            raise StoreFormatError(f"metadata must be an object, got {type(metadata).__name__}")
        return cls(
            id=str(d["id"]),
            created_at=created_at,
            text=_optional_str(d.get("text")),
            level=LogLevel.parse(d.get("level", "debug")),
            label=_optional_str(d.get("label")) or "default",
            task=task,
            session_id=_optional_str(d.get("session_id")),
            metadata={str(k): str(v) for k, v in metadata.items()},
        )


def _optional_str(value) -> str:
    """Stored text fields may be null; they read as empty strings."""
    return "" if value is None else str(value)


def parse_timestamp(value) -> datetime:
    """Parse an ISO 8601 string or a unix timestamp; naive values are UTC."""
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    ts = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts
