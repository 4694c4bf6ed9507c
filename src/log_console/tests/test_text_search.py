"""Tests for the live text search"""

import itertools
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from log_console.models.change import ChangeBatch
from log_console.models.entity import LogEntity
from log_console.models.snapshot import OrderedSnapshot
from log_console.search.text_search import (
    InvalidQueryError,
    Match,
    SearchOptions,
    TextSearch,
    compile_query,
    find_spans,
)


T0 = datetime(2024, 5, 1, tzinfo=timezone.utc)


def _snapshot(*texts: str) -> OrderedSnapshot:
    return OrderedSnapshot(
        LogEntity(id=f"e{i}", created_at=T0, text=text) for i, text in enumerate(texts)
    )


def test_single_match():
    search = TextSearch()
    search.refresh("b", _snapshot("a", "b", "c"))
    assert search.matches == (Match(1, 0, 1),)
    assert search.selected_index == 0


def test_append_scans_only_new_entities():
    search = TextSearch()
    search.refresh("b", _snapshot("a", "b", "c"))

    scanned = []
    original = search.text_of
    search.text_of = lambda e: scanned.append(e.id) or original(e)

    grown = _snapshot("a", "b", "c", "bb")
    search.apply_change_batch(ChangeBatch.append(range(3, 4)), grown)

    assert scanned == ["e3"]
    assert search.matches == (Match(1, 0, 1), Match(3, 0, 1), Match(3, 1, 1))
    assert search.selected_index == 0
    search.select_match(1)
    assert search.selected_index == 1
    assert search.select_match(1) == 3
    assert search.selected_index == 2


def test_append_equals_full_refresh():
    base = ("error one", "ok", "another Error")
    grown = base + ("no", "errors everywhere: error")
    incremental = TextSearch()
    incremental.refresh("error", _snapshot(*base))
    incremental.apply_change_batch(ChangeBatch.append(range(3, 5)), _snapshot(*grown))

    full = TextSearch()
    full.refresh("error", _snapshot(*grown))
    assert incremental.matches == full.matches


OPTION_GRID = [
    SearchOptions(case_sensitive=c, regex=r, whole_word=w)
    for c, r, w in itertools.product((False, True), repeat=3)
]


@pytest.mark.parametrize("options", OPTION_GRID)
@pytest.mark.parametrize("query", ["b", "B", "b+", "^b", r"\bb", "b b"])
def test_append_equals_full_refresh_for_all_options(query, options):
    base = ("ab", "bbb B", "b\nb", "nothing")
    grown = base + ("xb b", "Bb+ b+", "^b literal", "b", r"\bb")
    incremental = TextSearch(options=options)
    incremental.refresh(query, _snapshot(*base))
    incremental.apply_change_batch(ChangeBatch.append(range(len(base), len(grown))),
                                   _snapshot(*grown))

    full = TextSearch(options=options)
    full.refresh(query, _snapshot(*grown))
    assert incremental.matches == full.matches
    assert incremental.selected_index == full.selected_index


def test_append_into_empty_matches_selects_first():
    search = TextSearch()
    search.refresh("x", _snapshot("a"))
    assert search.matches == ()
    assert search.selected_index is None
    search.apply_change_batch(ChangeBatch.append(range(1, 2)), _snapshot("a", "x"))
    assert search.matches == (Match(1, 0, 1),)
    assert search.selected_index == 0


def test_selection_wraps_around():
    search = TextSearch()
    search.refresh("a", _snapshot("a", "xa", "aa"))
    assert len(search.matches) == 4
    assert search.select_match(-1) == 2
    assert search.selected_index == 3
    assert search.select_match(1) == 0
    assert search.selected_index == 0


def test_select_without_matches():
    search = TextSearch()
    search.refresh("zzz", _snapshot("a", "b"))
    assert search.select_match(1) is None
    assert search.selected_match is None


def test_empty_query_clears():
    search = TextSearch()
    search.refresh("a", _snapshot("a"))
    search.refresh("", _snapshot("a"))
    assert search.matches == ()
    assert search.query == ""
    assert search.selected_index is None


def test_empty_query_ignores_appends():
    search = TextSearch()
    calls = []
    search.subscribe(lambda s: calls.append(s.matches))
    search.apply_change_batch(ChangeBatch.append(range(0, 1)), _snapshot("a"))
    assert calls == []


def test_invalid_regex_keeps_state():
    search = TextSearch()
    snapshot = _snapshot("ab", "b")
    search.refresh("b", snapshot)
    search.select_match(1)
    before = (search.query, search.matches, search.selected_index)

    with pytest.raises(InvalidQueryError):
        search.refresh("(", snapshot, SearchOptions(regex=True))

    assert (search.query, search.matches, search.selected_index) == before
    assert search.options == SearchOptions()


def test_reload_rescans():
    search = TextSearch()
    search.refresh("b", _snapshot("a", "b"))
    search.apply_change_batch(ChangeBatch.reload(), _snapshot("b", "x", "bb"))
    assert search.matches == (Match(0, 0, 1), Match(2, 0, 1), Match(2, 1, 1))


def test_option_change_rescans_on_append():
    search = TextSearch()
    search.refresh("B", _snapshot("b"))
    assert len(search.matches) == 1
    search.set_options(SearchOptions(case_sensitive=True))
    search.apply_change_batch(ChangeBatch.append(range(1, 2)), _snapshot("b", "B"))
    assert search.matches == (Match(1, 0, 1),)


def test_last_query_wins():
    """A refresh started while another is in flight supersedes it."""
    search = TextSearch()
    snapshot = _snapshot("alpha", "beta")
    state = {"nested": False}

    def text_of(entity):
        if not state["nested"]:
            state["nested"] = True
            search.refresh("beta", snapshot)
        return entity.text

    search.text_of = text_of
    search.refresh("alpha", snapshot)

    assert search.query == "beta"
    assert search.matches == (Match(1, 0, 4),)


def test_select_entity():
    search = TextSearch()
    search.refresh("a", _snapshot("a", "b", "aa"))
    assert search.select_entity(2)
    assert search.selected_match == Match(2, 0, 1)
    assert not search.select_entity(1)
    assert search.match_map() == {0: [Match(0, 0, 1)], 2: [Match(2, 0, 1), Match(2, 1, 1)]}
    assert search.matches_in(2) == [Match(2, 0, 1), Match(2, 1, 1)]


def test_listeners_notified():
    search = TextSearch()
    seen = []
    unsubscribe = search.subscribe(lambda s: seen.append(len(s.matches)))
    search.refresh("a", _snapshot("a"))
    unsubscribe()
    search.refresh("", _snapshot("a"))
    assert seen == [1]


class TestCompileQuery:
    def test_literal_is_escaped(self):
        pattern = compile_query("a.b", SearchOptions())
        assert find_spans(pattern, "a.b axb") == [(0, 3)]

    def test_case_insensitive_by_default(self):
        pattern = compile_query("error", SearchOptions())
        assert find_spans(pattern, "ERROR Error") == [(0, 5), (6, 5)]

    def test_case_sensitive(self):
        pattern = compile_query("error", SearchOptions(case_sensitive=True))
        assert find_spans(pattern, "ERROR error") == [(6, 5)]

    def test_whole_word(self):
        pattern = compile_query("cat", SearchOptions(whole_word=True))
        assert find_spans(pattern, "cat concat cats cat") == [(0, 3), (16, 3)]

    def test_regex(self):
        pattern = compile_query(r"\d+", SearchOptions(regex=True))
        assert find_spans(pattern, "a1 b22") == [(1, 1), (4, 2)]

    def test_empty_matches_ignored(self):
        pattern = compile_query("x*", SearchOptions(regex=True))
        assert find_spans(pattern, "axxb") == [(1, 2)]

    def test_invalid_regex(self):
        with pytest.raises(InvalidQueryError):
            compile_query("[", SearchOptions(regex=True))
