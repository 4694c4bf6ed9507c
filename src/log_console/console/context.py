"""Single-writer execution context

All console state is owned by one thread. Other threads (e.g. a store
delivering notifications from a background worker) hand work over with
``post``; the owner runs it with ``drain``.
"""

import logging
import queue
import threading
from contextlib import contextmanager
from typing import Callable

log = logging.getLogger(__name__)


class ConcurrentAccessError(RuntimeError):
    """Console state was touched from a thread other than its owner."""


class BatchInProgressError(RuntimeError):
    """A change batch arrived while the previous one was still being applied."""


class ExecutionContext:
    def __init__(self, owner: threading.Thread = None):
        self.owner_ident = (owner or threading.current_thread()).ident
        self._queue: "queue.Queue[tuple]" = queue.Queue()
        self._in_batch = False

    @property
    def is_owner(self) -> bool:
        return threading.get_ident() == self.owner_ident

    def check(self):
        if not self.is_owner:
            raise ConcurrentAccessError(
                f"console state is owned by thread {self.owner_ident}, "
                f"accessed from {threading.get_ident()}"
            )

    @contextmanager
    def batch(self):
        """Apply one change batch; nested batches are rejected."""
        self.check()
        if self._in_batch:
            raise BatchInProgressError("previous change batch is still being applied")
        self._in_batch = True
        try:
            yield
        finally:
            self._in_batch = False

    def post(self, fn: Callable, *args, **kwargs):
        """Queue work for the owner thread (safe from any thread)."""
        self._queue.put((fn, args, kwargs))

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def drain(self) -> int:
        """Run queued work in order on the owner thread; returns the count."""
        self.check()
        count = 0
        while True:
            try:
                fn, args, kwargs = self._queue.get_nowait()
            except queue.Empty:
                break
            fn(*args, **kwargs)
            count += 1
        if count:
            log.debug("drained %d queued calls", count)
        return count
