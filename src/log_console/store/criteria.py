"""Console filter criteria"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, FrozenSet, Optional
from urllib.parse import urlsplit

from ..models.entity import LogEntity, LogLevel

Predicate = Callable[[LogEntity], bool]


class TimePeriod(Enum):
    ALL = "all"
    LATEST_SESSION = "latest-session"
    LAST_20_MINUTES = "last-20-minutes"
    LAST_HOUR = "last-hour"
    LAST_DAY = "last-day"

    @property
    def window(self) -> Optional[timedelta]:
        return _WINDOWS.get(self)


_WINDOWS = {
    TimePeriod.LAST_20_MINUTES: timedelta(minutes=20),
    TimePeriod.LAST_HOUR: timedelta(hours=1),
    TimePeriod.LAST_DAY: timedelta(days=1),
}


def host_of(url: str) -> str:
    """Lower-cased host of a URL, or "" when it has none."""
    try:
        return (urlsplit(url or "").hostname or "").lower()
    except ValueError:
        return ""


@dataclass(frozen=True)
class SearchCriteria:
    """What the console shows. The default shows everything."""
    filter_term: str = ""
    min_level: Optional[LogLevel] = None
    labels: FrozenSet[str] = field(default_factory=frozenset)
    only_errors: bool = False
    only_pins: bool = False
    only_network: bool = False
    time_period: TimePeriod = TimePeriod.ALL
    session_id: str = ""                      # explicit session, "" = any
    domains: FrozenSet[str] = field(default_factory=frozenset)

    def with_changes(self, **changes) -> "SearchCriteria":
        return replace(self, **changes)

    @property
    def is_default(self) -> bool:
        return self == SearchCriteria()


def make_predicate(criteria: SearchCriteria,
                   is_pinned: Callable[[str], bool] = lambda _id: False,
                   now: datetime = None,
                   latest_session_id: str = None) -> Predicate:
    """Build a predicate for ``criteria``.

    The filter term is matched case-insensitively against the message text
    and, for network entities, the URL. ``domains`` only restricts network
    entities; plain messages are not affected by it. ``now`` anchors the
    time windows, ``latest_session_id`` resolves ``LATEST_SESSION``.
    """
    term = criteria.filter_term.strip().lower()
    domains = frozenset(d.lower() for d in criteria.domains)

    since = None
    window = criteria.time_period.window
    if window is not None:
        since = (now or datetime.now(timezone.utc)) - window

    session_id = criteria.session_id
    if not session_id and criteria.time_period == TimePeriod.LATEST_SESSION:
        session_id = latest_session_id or ""

    def predicate(entity: LogEntity) -> bool:
        if criteria.only_network and entity.task is None:
            return False
        if criteria.only_errors and not entity.is_error:
            return False
        if criteria.min_level is not None and entity.level.rank < criteria.min_level.rank:
            return False
        if criteria.labels and entity.label not in criteria.labels:
            return False
        if since is not None and entity.created_at < since:
            return False
        if session_id and entity.session_id != session_id:
            return False
        if domains and entity.task is not None and host_of(entity.task.url) not in domains:
            return False
        if criteria.only_pins and not is_pinned(entity.id):
            return False
        if term:
            haystack = (entity.text or "").lower()
            if entity.task is not None:
                haystack += " " + (entity.task.url or "").lower()
            if term not in haystack:
                return False
        return True

    return predicate
