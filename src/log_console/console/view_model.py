"""Console view model - wires the store, the entity list, search and story

Store change notifications are classified into change batches and applied,
in order, to the text search and then to the story renderer before any
observer sees them. Everything runs on the context's owner thread.
"""

import logging
import time
from typing import Callable, Iterable, Optional

from ..config.settings import Settings
from ..models.change import ChangeBatch, StoreChange
from ..models.entity import LogEntity
from ..models.snapshot import OrderedSnapshot
from ..render.story import SHOW_ALL, StoryOptions, StoryRenderer, StoryUpdate
from ..render.styled_text import StyledText
from ..search.text_search import InvalidQueryError, SearchOptions, TextSearch
from ..search.throttle import LatestValueThrottle, is_emitted
from ..store.criteria import SearchCriteria, TimePeriod, make_predicate
from ..store.entity_list import EntityList, classify_store_change
from ..store.memory_store import FetchedResults, LogStore
from .context import ExecutionContext

log = logging.getLogger(__name__)


class ConsoleViewModel:
    """State behind one console window"""

    def __init__(
        self,
        store: LogStore,
        story_options: StoryOptions = None,
        search_options: SearchOptions = None,
        criteria: SearchCriteria = None,
        ascending: bool = True,
        throttle: bool = False,
        search_throttle: float = 0.33,
        filter_throttle: float = 0.5,
        clock: Callable[[], float] = time.monotonic,
        context: ExecutionContext = None,
    ):
        self.store = store
        self.context = context or ExecutionContext()
        self.criteria = criteria or SearchCriteria()
        self.list = EntityList()
        self.search = TextSearch(options=search_options)
        self.story = StoryRenderer(story_options)

        self.search_term = ""
        self.search_error: Optional[str] = None
        self.selected_entity: Optional[LogEntity] = None
        self.scroll_target: Optional[int] = None

        self._search_throttle = LatestValueThrottle(search_throttle, clock) if throttle else None
        self._filter_throttle = LatestValueThrottle(filter_throttle, clock) if throttle else None

        self._controller = FetchedResults(store, ascending=ascending)
        self._controller.subscribe(self._controller_did_change)
        # Registered before any observer so search and story are up to date
        # by the time observers run.
        self.list.subscribe(self._list_did_change)

        self.refresh()

    @classmethod
    def from_settings(cls, store: LogStore, settings: Settings, **kwargs) -> "ConsoleViewModel":
        kwargs.setdefault("story_options", settings.story_options())
        kwargs.setdefault("search_options", settings.search_options())
        kwargs.setdefault("ascending", settings.sort_ascending)
        kwargs.setdefault("search_throttle", settings.search_throttle)
        kwargs.setdefault("filter_throttle", settings.filter_throttle)
        return cls(store, **kwargs)

    # --- state ---

    @property
    def snapshot(self) -> OrderedSnapshot:
        return self.list.snapshot

    @property
    def text(self) -> StyledText:
        return self.story.text

    @property
    def ascending(self) -> bool:
        return self._controller.ascending

    def subscribe_story(self, listener: Callable[[StoryUpdate], None]) -> Callable[[], None]:
        return self.story.subscribe(listener)

    def subscribe_search(self, listener: Callable[[TextSearch], None]) -> Callable[[], None]:
        return self.search.subscribe(listener)

    def subscribe_list(self, listener) -> Callable[[], None]:
        return self.list.subscribe(listener)

    # --- refresh ---

    def refresh(self):
        """Re-fetch with the current criteria and sort order."""
        self.context.check()
        self._controller.predicate = make_predicate(
            self.criteria,
            self.store.is_pinned,
            now=self.store.clock(),
            latest_session_id=self.store.latest_session_id(),
        )
        snapshot = self._controller.perform_fetch()
        self._publish(ChangeBatch.reload(), snapshot)

    def _controller_did_change(self, change: StoreChange):
        self.context.check()
        batch = classify_store_change(self.list.count, change)
        log.debug("classified store change as %r", batch)
        self._publish(batch, self._controller.snapshot())

    def _publish(self, batch: ChangeBatch, snapshot: OrderedSnapshot):
        with self.context.batch():
            self.list.update(batch, snapshot)

    def _list_did_change(self, batch: ChangeBatch, snapshot: OrderedSnapshot):
        self.search.apply_change_batch(batch, snapshot)
        self.story.apply_change_batch(batch, snapshot)
        if batch.is_reload and self.selected_entity is not None:
            index = snapshot.index_of(self.selected_entity.id)
            self.selected_entity = snapshot[index] if index is not None else None

    # --- filters ---

    def set_criteria(self, criteria: SearchCriteria) -> bool:
        """Apply new criteria; returns False while held back by the throttle."""
        self.context.check()
        if self._filter_throttle is not None:
            criteria = self._filter_throttle.submit(criteria)
            if not is_emitted(criteria):
                return False
        self.criteria = criteria
        self.refresh()
        return True

    def set_filter_term(self, term: str) -> bool:
        return self.set_criteria(self.criteria.with_changes(filter_term=term))

    def set_only_errors(self, value: bool):
        self.context.check()
        self.criteria = self.criteria.with_changes(only_errors=value)
        self.refresh()

    def set_only_pins(self, value: bool):
        self.context.check()
        self.criteria = self.criteria.with_changes(only_pins=value)
        self.refresh()

    def set_time_period(self, period: TimePeriod):
        self.context.check()
        self.criteria = self.criteria.with_changes(time_period=period)
        self.refresh()

    def set_domains(self, domains: Iterable[str]):
        self.context.check()
        self.criteria = self.criteria.with_changes(domains=frozenset(domains))
        self.refresh()

    def set_sort_ascending(self, ascending: bool):
        self.context.check()
        if ascending == self._controller.ascending:
            return
        self._controller.ascending = ascending
        self.refresh()

    # --- text search ---

    def set_search_term(self, term: str) -> bool:
        """Search for ``term``; returns False while held back by the throttle."""
        self.context.check()
        if self._search_throttle is not None:
            term = self._search_throttle.submit(term)
            if not is_emitted(term):
                return False
        self._apply_search(term, self.search.options)
        return True

    def set_search_options(self, options: SearchOptions):
        self.context.check()
        self._apply_search(self.search_term, options)

    def flush_pending(self, force: bool = False):
        """Apply throttled search terms and criteria whose window elapsed."""
        self.context.check()
        if self._search_throttle is not None:
            term = self._search_throttle.flush(force)
            if is_emitted(term):
                self._apply_search(term, self.search.options)
        if self._filter_throttle is not None:
            criteria = self._filter_throttle.flush(force)
            if is_emitted(criteria):
                self.criteria = criteria
                self.refresh()

    def _apply_search(self, term: str, options: SearchOptions):
        try:
            self.search.refresh(term, self.list.snapshot, options)
        except InvalidQueryError as e:
            log.warning("search not updated: %s", e)
            self.search_error = str(e)
            return
        self.search_term = term
        self.search_error = None

    # --- selection ---

    def select_entity_at(self, index: int) -> LogEntity:
        self.context.check()
        entity = self.list[index]
        self.selected_entity = entity
        self.search.select_entity(index)
        return entity

    def select_next_match(self) -> Optional[int]:
        return self._select_match(1)

    def select_previous_match(self) -> Optional[int]:
        return self._select_match(-1)

    def _select_match(self, delta: int) -> Optional[int]:
        self.context.check()
        index = self.search.select_match(delta)
        if index is None:
            return None
        self.selected_entity = self.list[index]
        self.scroll_target = index
        return index

    # --- story ---

    def set_story_options(self, options: StoryOptions):
        self.context.check()
        if self.story.set_options(options):
            self.story.display(self.list.snapshot)

    def on_link_clicked(self, url: str) -> bool:
        """Handle a clicked story link; returns False for foreign links."""
        self.context.check()
        action = self.story.resolve_link(url, self.list.snapshot)
        if action is None:
            return False
        if action.kind == SHOW_ALL:
            self.set_story_options(self.story.options.with_changes(reduced_count=False))
        else:
            self.select_entity_at(action.index)
            self.scroll_target = action.index
        return True

    # --- store actions ---

    def toggle_pin(self, index: int) -> bool:
        self.context.check()
        return self.store.toggle_pin(self.list[index].id)

    def remove_all(self):
        self.context.check()
        self.store.remove_all()

    def close(self):
        self._controller.close()
