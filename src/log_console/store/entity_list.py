"""Entity list and change classification

The store reports each update cycle as a set of inserted positions plus a
flag for any other kind of change. ``ChangeClassifier`` turns that into a
``ChangeBatch``: a pure tail append when it can prove one, a reload
otherwise. ``EntityList`` publishes the resulting snapshot and batch to its
subscribers in registration order.
"""

import logging
from typing import Callable, Iterable, List, Optional

from ..models.change import ChangeBatch, StoreChange
from ..models.snapshot import OrderedSnapshot

log = logging.getLogger(__name__)

Listener = Callable[[ChangeBatch, OrderedSnapshot], None]


class ChangeClassifier:
    """Incrementally classifies one update cycle.

    Any insert below the previous count, or any non-insert change, makes the
    batch a reload for good. This also holds for inserts that would be
    equivalent to an append after sorting.
    """

    def __init__(self):
        self._old_count = 0
        self._lo: Optional[int] = None
        self._hi: Optional[int] = None
        self._inserts = 0
        self._only_appends = True

    def begin(self, old_count: int):
        self._old_count = old_count
        self._lo = None
        self._hi = None
        self._inserts = 0
        self._only_appends = True

    def record_insert(self, index: int):
        self._inserts += 1
        if not self._only_appends:
            return
        if index < 0 or index < self._old_count:
            self._only_appends = False
            return
        self._lo = index if self._lo is None else min(self._lo, index)
        self._hi = index + 1 if self._hi is None else max(self._hi, index + 1)

    def record_other(self):
        self._only_appends = False

    def finish(self, new_count: Optional[int] = None) -> ChangeBatch:
        if not self._only_appends:
            return ChangeBatch.reload()
        if self._lo is None:
            if new_count is not None and new_count != self._old_count:
                return ChangeBatch.reload()
            return ChangeBatch.append(range(self._old_count, self._old_count))
        # The range must start at the old count and have no holes.
        if self._lo != self._old_count or self._hi - self._lo != self._inserts:
            return ChangeBatch.reload()
        if new_count is not None and self._hi != new_count:
            return ChangeBatch.reload()
        return ChangeBatch.append(range(self._lo, self._hi))


def classify(
    old_count: int,
    inserts: Iterable[int],
    has_other_changes: bool = False,
    new_count: Optional[int] = None,
) -> ChangeBatch:
    """Classify one update cycle in a single call."""
    classifier = ChangeClassifier()
    classifier.begin(old_count)
    if has_other_changes:
        classifier.record_other()
    for index in inserts:
        classifier.record_insert(index)
    return classifier.finish(new_count)


def classify_store_change(old_count: int, change: StoreChange) -> ChangeBatch:
    return classify(
        old_count,
        change.inserted,
        has_other_changes=change.has_other_changes,
        new_count=change.new_count,
    )


class EntityList:
    """Holds the current snapshot and notifies subscribers of changes."""

    def __init__(self, snapshot: OrderedSnapshot = None):
        self.snapshot = snapshot or OrderedSnapshot.empty()
        self._listeners: List[Listener] = []

    @property
    def count(self) -> int:
        return self.snapshot.count

    def __len__(self) -> int:
        return self.snapshot.count

    def __getitem__(self, index):
        return self.snapshot[index]

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def update(self, batch: ChangeBatch, snapshot: OrderedSnapshot):
        """Publish a new snapshot.

        Append batches whose range does not line up with the new snapshot
        are published as reloads.
        """
        if batch.is_append:
            expected = range(self.snapshot.count, snapshot.count)
            if batch.range != expected:
                log.debug("append %r does not match snapshot growth %r, reloading",
                          batch, expected)
                batch = ChangeBatch.reload()
        self.snapshot = snapshot
        if batch.is_noop:
            return
        log.debug("publishing %r (count=%d)", batch, snapshot.count)
        for listener in list(self._listeners):
            listener(batch, snapshot)
