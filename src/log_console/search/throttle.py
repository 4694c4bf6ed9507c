"""Latest-value throttle for rapidly changing input (typed queries, filters)"""

import time
from typing import Callable, Generic, Optional, TypeVar

T = TypeVar("T")

_MISSING = object()


class LatestValueThrottle(Generic[T]):
    """Emits at most one value per ``interval``, always the most recent one.

    The first value after a quiet period goes through immediately; values
    submitted inside the window replace each other and are released by
    ``flush`` once the window has passed.
    """

    def __init__(self, interval: float, clock: Callable[[], float] = time.monotonic):
        self.interval = interval
        self.clock = clock
        self._last_emit: Optional[float] = None
        self._pending = _MISSING

    @property
    def has_pending(self) -> bool:
        return self._pending is not _MISSING

    def submit(self, value: T):
        """Record ``value``; returns it if it may be applied now, else _MISSING."""
        self._pending = value
        return self.flush()

    def flush(self, force: bool = False):
        """Release the pending value if the window elapsed (or ``force``)."""
        if self._pending is _MISSING:
            return _MISSING
        now = self.clock()
        if not force and self._last_emit is not None and now - self._last_emit < self.interval:
            return _MISSING
        value, self._pending = self._pending, _MISSING
        self._last_emit = now
        return value


def is_emitted(value) -> bool:
    """True when ``submit``/``flush`` released a value."""
    return value is not _MISSING
