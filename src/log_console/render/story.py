"""Story renderer - the console transcript as styled text

Renders every entity of a snapshot into one styled text. Appends are
rendered incrementally: only the new entities are formatted and the
fragment is concatenated onto the existing buffer, which gives exactly the
text a full render of the grown snapshot would produce.

Per-entity fragments are cached by entity id and reused until the render
options change (or the snapshot's first entity changes, since the elapsed
time prefix is measured from it).
"""

import json
import logging
import time
import uuid
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, Dict, List, NamedTuple, Optional

from ..models.change import ChangeBatch
from ..models.entity import LogEntity, LogLevel, NetworkTask, TaskState
from ..models.snapshot import OrderedSnapshot
from .formatting import (
    duration_description,
    status_code_description,
    string_precise,
    time_of_day,
    url_error_description,
)
from .json_printer import JSONPrinter, StyledJSONRenderer
from .styled_text import StyledText

log = logging.getLogger(__name__)

LINK_SCHEME = "story"
TOGGLE_INFO_PREFIX = "story://toggle-info/"
TOGGLE_LIMIT_LINK = "story://toggle-message-limit"

ONE_DAY = 3600 * 24


@dataclass(frozen=True)
class StoryOptions:
    compact_mode: bool = False
    network_expanded: bool = False
    reduced_count: bool = False
    limit: int = 1000
    font_size: float = 12.0

    def __post_init__(self):
        if self.limit < 1:
            raise ValueError(f"limit must be positive, got {self.limit}")

    @property
    def separator(self) -> str:
        return "\n" if self.compact_mode else "\n\n"

    def with_changes(self, **changes) -> "StoryOptions":
        return replace(self, **changes)


class LinkAction(NamedTuple):
    kind: str                        # "select" | "show_all"
    index: Optional[int] = None      # entity index in the current snapshot
    entity_id: Optional[str] = None


SELECT = "select"
SHOW_ALL = "show_all"


class StoryUpdate(NamedTuple):
    kind: str             # "append" | "reload"
    text: StyledText      # appended fragment, or the whole new text


APPEND = "append"
RELOAD = "reload"


class _CachedEntry:
    __slots__ = ("link_id", "source", "text", "is_dirty")

    def __init__(self, link_id: str):
        self.link_id = link_id
        self.source: Optional[LogEntity] = None
        self.text = StyledText()
        self.is_dirty = True


class StoryRenderer:
    """Renders snapshots into a styled transcript, incrementally for appends."""

    def __init__(self, options: StoryOptions = None):
        self.options = options or StoryOptions()
        self.text = StyledText()
        self.rendered_count = 0
        self.cache_hits = 0
        self.cache_misses = 0
        self._cache: Dict[str, _CachedEntry] = {}
        self._link_ids: Dict[str, str] = {}   # link id -> entity id
        self._origin: Optional[datetime] = None
        self._listeners: List[Callable[[StoryUpdate], None]] = []

    # --- options & cache ---

    def set_options(self, options: StoryOptions) -> bool:
        """Replace the options; returns True if they changed."""
        if options == self.options:
            return False
        self.options = options
        self.invalidate()
        return True

    def invalidate(self):
        """Mark every cached fragment dirty; link ids stay valid."""
        for entry in self._cache.values():
            entry.is_dirty = True

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    # --- rendering ---

    def render(self, snapshot: OrderedSnapshot) -> StyledText:
        """Full render of ``snapshot``."""
        started = time.perf_counter()
        self._sync_origin(snapshot)
        o = self.options
        text = StyledText()
        last_index = snapshot.count - 1
        for index in snapshot.indices:
            text.extend(self._entity_text(snapshot, index))
            if o.reduced_count and index == o.limit - 1:
                remaining = snapshot.count - (index + 1)
                if remaining > 0:
                    text.append(f"\n\n{remaining} more messages were not displayed. ",
                                role="text", level=LogLevel.TRACE.value, size=o.font_size)
                    text.append("Show all.", role="link", size=o.font_size,
                                link=TOGGLE_LIMIT_LINK)
                break
            if index != last_index:
                text.append(o.separator, role="digital", size=o.font_size)
        log.debug("rendered %d entities in %.1fms", snapshot.count,
                  (time.perf_counter() - started) * 1000)
        return text

    def append_only(self, indices: range, snapshot: OrderedSnapshot) -> StyledText:
        """Fragment for the entities in ``indices`` of a grown snapshot.

        Includes the leading separator, so that
        ``render(old) + append_only(new_range, new) == render(new)``.
        Not available while the story is truncated.
        """
        if self.is_truncated(snapshot.count):
            raise ValueError("cannot append to a truncated story")
        self._sync_origin(snapshot)
        o = self.options
        text = StyledText()
        for index in indices:
            if index > 0:
                text.append(o.separator, role="digital", size=o.font_size)
            text.extend(self._entity_text(snapshot, index))
        return text

    def is_truncated(self, count: int) -> bool:
        return self.options.reduced_count and count > self.options.limit

    # --- buffer management ---

    def display(self, snapshot: OrderedSnapshot) -> StoryUpdate:
        """Re-render the whole buffer from ``snapshot``."""
        live_ids = {e.id for e in snapshot}
        for entity_id in [i for i in self._cache if i not in live_ids]:
            entry = self._cache.pop(entity_id)
            self._link_ids.pop(entry.link_id, None)
        self.text = self.render(snapshot)
        self.rendered_count = snapshot.count
        return self._did_update(StoryUpdate(RELOAD, self.text.copy()))

    def apply_change_batch(self, batch: ChangeBatch, snapshot: OrderedSnapshot) -> StoryUpdate:
        """Update the buffer for one change batch."""
        if batch.is_noop:
            return StoryUpdate(APPEND, StyledText())
        can_append = (
            batch.is_append
            and batch.range.start == self.rendered_count
            and batch.range.stop == snapshot.count
            and not self.is_truncated(snapshot.count)
        )
        if not can_append:
            return self.display(snapshot)
        fragment = self.append_only(batch.range, snapshot)
        self.text.extend(fragment)
        self.rendered_count = snapshot.count
        return self._did_update(StoryUpdate(APPEND, fragment))

    def subscribe(self, listener: Callable[[StoryUpdate], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _did_update(self, update: StoryUpdate) -> StoryUpdate:
        for listener in list(self._listeners):
            listener(update)
        return update

    # --- links ---

    def link_for(self, entity_id: str) -> Optional[str]:
        entry = self._cache.get(entity_id)
        if entry is None:
            return None
        return TOGGLE_INFO_PREFIX + entry.link_id

    def resolve_link(self, url: str, snapshot: OrderedSnapshot) -> Optional[LinkAction]:
        """Map a clicked link back to an action on the current snapshot."""
        if not url.startswith(LINK_SCHEME + "://"):
            return None
        if url.startswith(TOGGLE_LIMIT_LINK):
            return LinkAction(SHOW_ALL)
        if url.startswith(TOGGLE_INFO_PREFIX):
            link_id = url[len(TOGGLE_INFO_PREFIX):].strip("/")
            entity_id = self._link_ids.get(link_id)
            if entity_id is None:
                log.debug("unknown story link %s", url)
                return None
            index = snapshot.index_of(entity_id)
            if index is None:
                return None
            return LinkAction(SELECT, index=index, entity_id=entity_id)
        return None

    # --- per-entity formatting ---

    def _sync_origin(self, snapshot: OrderedSnapshot):
        first = snapshot.first
        origin = first.created_at if first is not None else None
        if origin != self._origin:
            self.invalidate()
            self._origin = origin

    def _entity_text(self, snapshot: OrderedSnapshot, index: int) -> StyledText:
        entity = snapshot[index]
        entry = self._cache.get(entity.id)
        if entry is None:
            entry = _CachedEntry(uuid.uuid4().hex)
            self._cache[entity.id] = entry
            self._link_ids[entry.link_id] = entity.id
        if not entry.is_dirty and (entry.source is entity or entry.source == entity):
            self.cache_hits += 1
            return entry.text

        self.cache_misses += 1
        link = TOGGLE_INFO_PREFIX + entry.link_id
        if entity.task is not None:
            entry.text = self._make_task_text(entity, entity.task, link)
        else:
            entry.text = self._make_message_text(entity, link)
        entry.source = entity
        entry.is_dirty = False
        return entry.text

    def _interval(self, entity: LogEntity) -> float:
        if self._origin is None:
            return 0.0
        return (entity.created_at - self._origin).total_seconds()

    def _time_prefix(self, entity: LogEntity) -> str:
        prefix = f"{time_of_day(entity.created_at)} · "
        if not self.options.compact_mode:
            interval = self._interval(entity)
            if interval < ONE_DAY:
                prefix += f"{string_precise(interval)} · "
        return prefix

    def _make_message_text(self, entity: LogEntity, link: str) -> StyledText:
        o = self.options
        size = o.font_size
        level = entity.level.value
        text = StyledText()

        text.append(self._time_prefix(entity), role="digital", size=size)

        title = "" if o.compact_mode else f"{level} · "
        title += entity.label
        title += " " if o.compact_mode else "\n"
        text.append(title, role="title", size=size)

        if o.compact_mode and "\n" in entity.text:
            first_line = entity.text.split("\n", 1)[0]
            text.append(first_line + " ", role="text", level=level, size=size)
            text.append("Show More", role="link", size=size, link=link)
        else:
            text.append(entity.text, role="text", level=level, size=size)
        return text

    def _make_task_text(self, entity: LogEntity, task: NetworkTask, link: str) -> StyledText:
        o = self.options
        size = o.font_size
        text = StyledText()

        text.append(self._time_prefix(entity), role="digital", size=size)

        title = task_status_title(task)
        if task.duration > 0:
            title += f" · {duration_description(task.duration)}"
        text.append(title, role=f"status_{task.state.value}", size=size)
        text.append(" " if o.compact_mode else "\n", role="title", size=size)

        text.append(f"{task.method or 'GET'} {task.url or '–'}", role="link",
                    level=entity.level.value, size=size, link=link)

        if o.network_expanded and task.response_body:
            body = self._make_body_text(task.response_body)
            if body:
                text.append("\n", role="title", size=size)
                text.extend(body)
        return text

    def _make_body_text(self, data: bytes) -> StyledText:
        try:
            value = json.loads(data)
        except (ValueError, UnicodeDecodeError):
            value = None
        else:
            if isinstance(value, (dict, list)):
                return JSONPrinter(StyledJSONRenderer(self.options.font_size)).render(value)
        try:
            string = data.decode("utf-8")
        except UnicodeDecodeError:
            return StyledText()
        return StyledText().append(string, role="text", level=LogLevel.DEBUG.value,
                                   size=self.options.font_size)


def task_status_title(task: NetworkTask) -> str:
    """PENDING, a status description, or the transport error."""
    if task.state == TaskState.PENDING:
        return "PENDING"
    if task.state == TaskState.FAILURE and task.error_code != 0:
        return f"{task.error_code} ({url_error_description(task.error_code)})"
    return status_code_description(task.status_code)
