"""In-memory log store and fetched-results controller

``LogStore`` stands in for the persistence layer: it keeps entities, pins,
and tells listeners what changed in each update cycle. ``FetchedResults``
keeps an ordered, filtered view of the store and reports every cycle as a
``StoreChange`` (inserted positions plus a flag for everything else).
"""

import itertools
import logging
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple

from ..models.change import StoreChange
from ..models.entity import LogEntity, LogLevel, NetworkTask, TaskState
from ..models.snapshot import OrderedSnapshot
from .criteria import Predicate, host_of

log = logging.getLogger(__name__)

INSERT = "insert"
UPDATE = "update"
DELETE = "delete"

Change = Tuple[str, LogEntity]
StoreListener = Callable[[List[Change]], None]


def _now() -> datetime:
    return datetime.now(timezone.utc)


class LogStore:
    """Entity store with change notifications"""

    def __init__(self, clock: Callable[[], datetime] = _now):
        self.clock = clock
        self._entities: Dict[str, LogEntity] = {}
        self._sequence: Dict[str, int] = {}
        self._counter = itertools.count()
        self._pins: Set[str] = set()
        self._listeners: List[StoreListener] = []

    # --- reads ---

    def __len__(self) -> int:
        return len(self._entities)

    def get(self, entity_id: str) -> Optional[LogEntity]:
        return self._entities.get(entity_id)

    def all(self) -> List[LogEntity]:
        return list(self._entities.values())

    def sort_key(self, entity: LogEntity):
        return (entity.created_at, self._sequence.get(entity.id, 0))

    def latest_session_id(self) -> Optional[str]:
        """Session of the newest entity that has one."""
        with_session = [e for e in self._entities.values() if e.session_id]
        if not with_session:
            return None
        return max(with_session, key=self.sort_key).session_id

    def all_hosts(self) -> Set[str]:
        """Distinct hosts of all network requests."""
        hosts = {host_of(e.task.url) for e in self._entities.values() if e.task is not None}
        hosts.discard("")
        return hosts

    # --- writes ---

    def add(self, entity: LogEntity) -> LogEntity:
        self.add_many([entity])
        return entity

    def add_many(self, entities: Iterable[LogEntity]) -> List[LogEntity]:
        """Insert several entities in one update cycle."""
        added = []
        for entity in entities:
            if entity.id in self._entities:
                raise ValueError(f"duplicate entity id: {entity.id}")
            self._entities[entity.id] = entity
            self._sequence[entity.id] = next(self._counter)
            added.append(entity)
        if added:
            self._notify([(INSERT, e) for e in added])
        return added

    def add_message(self, text: str, level: LogLevel = LogLevel.DEBUG,
                    label: str = "default", created_at: datetime = None,
                    entity_id: str = None, session_id: str = "") -> LogEntity:
        return self.add(LogEntity(
            id=entity_id or str(uuid.uuid4()),
            created_at=created_at or self.clock(),
            text=text,
            level=LogLevel.parse(level),
            label=label,
            session_id=session_id,
        ))

    def add_task(self, url: str, method: str = "GET",
                 state: TaskState = TaskState.PENDING, status_code: int = 0,
                 error_code: int = 0, duration: float = 0.0,
                 response_body: bytes = None, created_at: datetime = None,
                 entity_id: str = None, label: str = "network",
                 session_id: str = "") -> LogEntity:
        task = NetworkTask(
            url=url, method=method, state=state, status_code=status_code,
            error_code=error_code, duration=duration, response_body=response_body,
        )
        level = LogLevel.ERROR if state == TaskState.FAILURE else LogLevel.DEBUG
        return self.add(LogEntity(
            id=entity_id or str(uuid.uuid4()),
            created_at=created_at or self.clock(),
            text=f"{method} {url}",
            level=level,
            label=label,
            session_id=session_id,
            task=task,
        ))

    def update_task(self, entity_id: str, **changes) -> LogEntity:
        """Replace the task of an entity, e.g. when a response arrives."""
        entity = self._entities[entity_id]
        if entity.task is None:
            raise ValueError(f"entity {entity_id} has no network task")
        updated = entity.replace_task(replace(entity.task, **changes))
        self._entities[entity_id] = updated
        self._notify([(UPDATE, updated)])
        return updated

    def remove(self, entity_id: str):
        entity = self._entities.pop(entity_id)
        self._sequence.pop(entity_id, None)
        self._pins.discard(entity_id)
        self._notify([(DELETE, entity)])

    def remove_all(self):
        removed = list(self._entities.values())
        self._entities.clear()
        self._sequence.clear()
        self._pins.clear()
        if removed:
            self._notify([(DELETE, e) for e in removed])

    # --- pins ---

    def is_pinned(self, entity_id: str) -> bool:
        return entity_id in self._pins

    def toggle_pin(self, entity_id: str) -> bool:
        """Toggle a pin; returns the new state."""
        entity = self._entities[entity_id]
        if entity_id in self._pins:
            self._pins.remove(entity_id)
        else:
            self._pins.add(entity_id)
        self._notify([(UPDATE, entity)])
        return entity_id in self._pins

    def remove_all_pins(self):
        pinned = [self._entities[i] for i in self._pins if i in self._entities]
        self._pins.clear()
        if pinned:
            self._notify([(UPDATE, e) for e in pinned])

    # --- notifications ---

    def subscribe(self, listener: StoreListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, changes: List[Change]):
        for listener in list(self._listeners):
            listener(changes)


class FetchedResults:
    """Ordered, filtered view over a ``LogStore``.

    Call ``perform_fetch`` after changing the predicate or sort order; store
    changes afterwards are reported to subscribers as ``StoreChange`` values.
    """

    def __init__(self, store: LogStore, predicate: Predicate = None, ascending: bool = True):
        self.store = store
        self.predicate: Predicate = predicate or (lambda _e: True)
        self.ascending = ascending
        self._objects: List[LogEntity] = []
        self._listeners: List[Callable[[StoreChange], None]] = []
        self._unsubscribe = store.subscribe(self._store_did_change)

    @property
    def objects(self) -> List[LogEntity]:
        return list(self._objects)

    def snapshot(self) -> OrderedSnapshot:
        return OrderedSnapshot(self._objects)

    def perform_fetch(self) -> OrderedSnapshot:
        self._objects = self._fetch()
        return self.snapshot()

    def subscribe(self, listener: Callable[[StoreChange], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def close(self):
        self._unsubscribe()
        self._listeners.clear()

    def _fetch(self) -> List[LogEntity]:
        matching = [e for e in self.store.all() if self.predicate(e)]
        matching.sort(key=self.store.sort_key, reverse=not self.ascending)
        return matching

    def _store_did_change(self, changes: List[Change]):
        old = self._objects
        new = self._fetch()
        change = _diff(old, new, {e.id for kind, e in changes if kind == UPDATE})
        self._objects = new
        if not change.inserted and not change.has_other_changes:
            return
        log.debug("store change: %d inserted, other=%s, count %d -> %d",
                  len(change.inserted), change.has_other_changes, len(old), len(new))
        for listener in list(self._listeners):
            listener(change)


def _diff(old: List[LogEntity], new: List[LogEntity], updated_ids: Set[str]) -> StoreChange:
    old_ids = [e.id for e in old]
    new_ids = [e.id for e in new]
    old_set = set(old_ids)
    new_set = set(new_ids)

    inserted = [i for i, eid in enumerate(new_ids) if eid not in old_set]
    deleted = old_set - new_set
    surviving_old = [eid for eid in old_ids if eid in new_set]
    surviving_new = [eid for eid in new_ids if eid in old_set]
    moved = surviving_old != surviving_new
    updated = bool(updated_ids & old_set & new_set)

    return StoreChange(
        inserted=inserted,
        has_other_changes=bool(deleted) or moved or updated,
        new_count=len(new_ids),
    )
