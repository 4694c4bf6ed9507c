"""Text search over the entity list

Keeps the positions of a query inside every entity of the current snapshot,
ordered by entity index and then by position, plus a selection cursor for
next/previous navigation. Appends only scan the new entities.
"""

import logging
import re
from dataclasses import dataclass
from typing import Callable, Dict, List, NamedTuple, Optional, Pattern, Tuple

from ..models.change import ChangeBatch
from ..models.entity import LogEntity
from ..models.snapshot import OrderedSnapshot

log = logging.getLogger(__name__)


class InvalidQueryError(ValueError):
    """The query is not a valid regular expression."""


@dataclass(frozen=True)
class SearchOptions:
    case_sensitive: bool = False
    regex: bool = False
    whole_word: bool = False


class Match(NamedTuple):
    index: int   # entity index in the snapshot
    start: int
    length: int


def compile_query(query: str, options: SearchOptions) -> Pattern:
    """Compile a query into a pattern, raising InvalidQueryError."""
    source = query if options.regex else re.escape(query)
    if options.whole_word:
        source = r"\b(?:" + source + r")\b"
    flags = 0 if options.case_sensitive else re.IGNORECASE
    try:
        return re.compile(source, flags)
    except re.error as e:
        raise InvalidQueryError(f"invalid regular expression {query!r}: {e}") from e


def find_spans(pattern: Pattern, text: str) -> List[Tuple[int, int]]:
    """Non-overlapping (start, length) spans; empty matches are ignored."""
    return [
        (m.start(), m.end() - m.start())
        for m in pattern.finditer(text)
        if m.end() > m.start()
    ]


class TextSearch:
    """Live search index for one entity list.

    ``text_of`` selects the searched attribute of an entity.
    """

    def __init__(self, text_of: Callable[[LogEntity], str] = None,
                 options: SearchOptions = None):
        self.text_of = text_of or (lambda e: e.text)
        self.query = ""
        self.options = options or SearchOptions()
        self.matches: Tuple[Match, ...] = ()
        self.selected_index: Optional[int] = None
        self._pattern: Optional[Pattern] = None
        self._is_stale = False
        self._generation = 0
        self._listeners: List[Callable[["TextSearch"], None]] = []

    # --- state ---

    @property
    def selected_match(self) -> Optional[Match]:
        if self.selected_index is None:
            return None
        return self.matches[self.selected_index]

    def matches_in(self, entity_index: int) -> List[Match]:
        return [m for m in self.matches if m.index == entity_index]

    def match_map(self) -> Dict[int, List[Match]]:
        """Entity index -> matches in that entity."""
        result: Dict[int, List[Match]] = {}
        for m in self.matches:
            result.setdefault(m.index, []).append(m)
        return result

    def subscribe(self, listener: Callable[["TextSearch"], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # --- updates ---

    def set_options(self, options: SearchOptions):
        """Replace the options; the next update rescans everything."""
        if options == self.options:
            return
        self.options = options
        self._pattern = None
        self._is_stale = True

    def refresh(self, query: str, snapshot: OrderedSnapshot,
                options: SearchOptions = None):
        """Search ``snapshot`` for ``query`` and publish the results.

        A malformed regex raises InvalidQueryError and leaves the current
        query, matches and selection untouched.
        """
        self._generation += 1
        generation = self._generation
        new_options = options if options is not None else self.options

        if not query:
            self._publish(generation, query, new_options, None, ())
            return

        pattern = compile_query(query, new_options)
        matches = tuple(self._scan(pattern, snapshot, snapshot.indices))
        self._publish(generation, query, new_options, pattern, matches)

    def apply_change_batch(self, batch: ChangeBatch, snapshot: OrderedSnapshot):
        """Bring the matches in line with a new snapshot."""
        if not self.query:
            return
        if batch.is_append and not self._is_stale and self._pattern is not None:
            if batch.is_noop:
                return
            new_matches = list(self._scan(self._pattern, snapshot, batch.range))
            if new_matches:
                self.matches = self.matches + tuple(new_matches)
                if self.selected_index is None:
                    self.selected_index = 0
            log.debug("search append %r: +%d matches", batch, len(new_matches))
            self._did_change()
            return
        try:
            self.refresh(self.query, snapshot)
        except InvalidQueryError:
            # Options changed to something the current query cannot satisfy.
            log.warning("query %r is invalid under the current options", self.query)
            self._is_stale = False
            self._pattern = None
            self.matches = ()
            self.selected_index = None
            self._did_change()

    # --- navigation ---

    def select_match(self, delta: int) -> Optional[int]:
        """Move the cursor by ``delta`` (wrapping); returns the entity index."""
        if not self.matches:
            return None
        current = self.selected_index if self.selected_index is not None else 0
        self.selected_index = (current + delta) % len(self.matches)
        return self.matches[self.selected_index].index

    def select_entity(self, entity_index: int) -> bool:
        """Select the first match inside an entity, if there is one."""
        for i, m in enumerate(self.matches):
            if m.index == entity_index:
                self.selected_index = i
                return True
        return False

    # --- internals ---

    def _scan(self, pattern: Pattern, snapshot: OrderedSnapshot, indices: range):
        for index in indices:
            text = self.text_of(snapshot[index]) or ""
            for start, length in find_spans(pattern, text):
                yield Match(index, start, length)

    def _publish(self, generation: int, query: str, options: SearchOptions,
                 pattern: Optional[Pattern], matches: Tuple[Match, ...]):
        if generation != self._generation:
            log.debug("discarding superseded search for %r", query)
            return
        self.query = query
        self.options = options
        self._pattern = pattern
        self._is_stale = False
        self.matches = matches
        self.selected_index = 0 if matches else None
        self._did_change()

    def _did_change(self):
        for listener in list(self._listeners):
            listener(self)
