"""Tests for the console view model (store -> list -> search & story)"""

import sys
import threading
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from log_console.config.settings import Settings
from log_console.console.context import (
    BatchInProgressError,
    ConcurrentAccessError,
    ExecutionContext,
)
from log_console.console.view_model import ConsoleViewModel
from log_console.models.entity import LogLevel, TaskState
from log_console.render.story import APPEND, RELOAD, TOGGLE_LIMIT_LINK, StoryOptions
from log_console.search.text_search import Match, SearchOptions
from log_console.store.criteria import TimePeriod
from log_console.store.memory_store import LogStore


T0 = datetime(2024, 5, 1, 10, 0, 0, tzinfo=timezone.utc)


class StepClock:
    def __init__(self):
        self.now = T0

    def __call__(self):
        current = self.now
        self.now += timedelta(seconds=1)
        return current


class FakeTimer:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def _console(**kwargs):
    store = LogStore(clock=StepClock())
    return store, ConsoleViewModel(store, **kwargs)


class TestPipeline(unittest.TestCase):
    def setUp(self):
        self.store, self.console = _console()
        self.updates = []
        self.console.subscribe_story(self.updates.append)

    def test_appends_flow_incrementally(self):
        self.store.add_message("one")
        self.store.add_message("two")
        self.assertEqual([u.kind for u in self.updates], [APPEND, APPEND])
        self.assertEqual(self.console.snapshot.count, 2)
        self.assertTrue(self.updates[1].text.plain.startswith("\n\n"))
        self.assertIn("one\n\n", self.console.text.plain)

    def test_text_equals_full_render(self):
        for i in range(5):
            self.store.add_message(f"message {i}", level=LogLevel.INFO)
        self.store.add_task("https://example.com")
        self.assertEqual(self.console.text, self.console.story.render(self.console.snapshot))

    def test_insert_in_middle_reloads(self):
        self.store.add_message("late", created_at=T0 + timedelta(hours=1))
        self.store.add_message("early", created_at=T0)
        self.assertEqual(self.updates[-1].kind, RELOAD)
        self.assertEqual([e.text for e in self.console.snapshot], ["early", "late"])

    def test_task_update_reloads(self):
        entity = self.store.add_task("https://example.com/a")
        self.assertIn("PENDING", self.console.text.plain)
        self.store.update_task(entity.id, state=TaskState.SUCCESS, status_code=200)
        self.assertEqual(self.updates[-1].kind, RELOAD)
        self.assertIn("200 (OK)", self.console.text.plain)

    def test_search_is_updated_before_story_observers(self):
        self.console.set_search_term("needle")
        seen = []
        self.console.subscribe_story(lambda _u: seen.append(self.console.search.matches))
        self.store.add_message("a needle here")
        self.assertEqual(seen, [(Match(0, 2, 6),)])

    def test_search_follows_appends(self):
        self.store.add_message("a")
        self.store.add_message("b")
        self.store.add_message("c")
        self.console.set_search_term("b")
        self.assertEqual(self.console.search.matches, (Match(1, 0, 1),))
        self.store.add_message("bb")
        self.assertEqual(self.console.search.matches,
                         (Match(1, 0, 1), Match(3, 0, 1), Match(3, 1, 1)))
        self.assertEqual(self.console.select_next_match(), 3)
        self.assertEqual(self.console.scroll_target, 3)
        self.assertEqual(self.console.selected_entity.text, "bb")

    def test_invalid_regex_reports_error(self):
        self.store.add_message("abc")
        self.console.set_search_term("b")
        self.console.set_search_options(SearchOptions(regex=True))
        self.console.set_search_term("(")
        self.assertIsNotNone(self.console.search_error)
        self.assertEqual(self.console.search_term, "b")
        self.assertEqual(self.console.search.matches, (Match(0, 1, 1),))

        self.console.set_search_term("b+")
        self.assertIsNone(self.console.search_error)

    def test_filter_reloads(self):
        self.store.add_message("keep me")
        self.store.add_message("drop me")
        self.console.set_filter_term("keep")
        self.assertEqual(self.updates[-1].kind, RELOAD)
        self.assertEqual([e.text for e in self.console.snapshot], ["keep me"])
        self.assertNotIn("drop", self.console.text.plain)

    def test_only_errors(self):
        self.store.add_message("fine")
        self.store.add_message("broken", level=LogLevel.ERROR)
        self.console.set_only_errors(True)
        self.assertEqual([e.text for e in self.console.snapshot], ["broken"])

    def test_only_pins(self):
        self.store.add_message("a")
        self.store.add_message("b")
        self.assertTrue(self.console.toggle_pin(0))
        self.console.set_only_pins(True)
        self.assertEqual([e.text for e in self.console.snapshot], ["a"])

    def test_time_period_uses_store_clock(self):
        self.store.add_message("two hours ago", created_at=T0 - timedelta(hours=2))
        self.store.add_message("just now")
        self.console.set_time_period(TimePeriod.LAST_HOUR)
        self.assertEqual([e.text for e in self.console.snapshot], ["just now"])
        self.assertEqual(self.updates[-1].kind, RELOAD)

    def test_latest_session(self):
        self.store.add_message("first run", session_id="s1")
        self.store.add_message("second run", session_id="s2")
        self.console.set_time_period(TimePeriod.LATEST_SESSION)
        self.assertEqual([e.text for e in self.console.snapshot], ["second run"])
        self.store.add_message("still second run", session_id="s2")
        self.assertEqual(self.updates[-1].kind, APPEND)
        self.assertIn("still second run", self.console.text.plain)

    def test_domains(self):
        self.store.add_message("plain")
        self.store.add_task("https://api.example.com/a")
        self.store.add_task("https://cdn.example.org/b")
        self.console.set_domains(["api.example.com"])
        self.assertEqual([e.text for e in self.console.snapshot],
                         ["plain", "GET https://api.example.com/a"])

    def test_sort_descending(self):
        self.store.add_message("old")
        self.store.add_message("new")
        self.console.set_sort_ascending(False)
        self.assertFalse(self.console.ascending)
        self.assertEqual(self.console.snapshot[0].text, "new")
        self.store.add_message("newest")
        self.assertEqual(self.updates[-1].kind, RELOAD)
        self.assertEqual(self.console.snapshot[0].text, "newest")

    def test_selection_survives_reload(self):
        self.store.add_message("a")
        self.store.add_message("b")
        self.console.select_entity_at(1)
        self.store.add_message("first", created_at=T0 - timedelta(hours=1))
        self.assertEqual(self.console.selected_entity.text, "b")

        self.console.set_filter_term("zzz")
        self.assertIsNone(self.console.selected_entity)

    def test_remove_all(self):
        self.store.add_message("a")
        self.console.remove_all()
        self.assertEqual(self.console.snapshot.count, 0)
        self.assertEqual(self.console.text.plain, "")

    def test_close_detaches(self):
        self.console.close()
        self.store.add_message("after")
        self.assertEqual(self.console.snapshot.count, 0)


class TestStoryOptions(unittest.TestCase):
    def test_compact_toggle(self):
        store, console = _console()
        store.add_message("line one\nline two")
        full = console.text.plain
        console.set_story_options(StoryOptions(compact_mode=True))
        self.assertLess(len(console.text.plain), len(full))
        self.assertIn("Show More", console.text.plain)

    def test_show_all_link(self):
        store, console = _console(story_options=StoryOptions(reduced_count=True, limit=2))
        for i in range(4):
            store.add_message(f"m{i}")
        self.assertIn("2 more messages were not displayed.", console.text.plain)
        self.assertTrue(console.on_link_clicked(TOGGLE_LIMIT_LINK))
        self.assertFalse(console.story.options.reduced_count)
        self.assertIn("m3", console.text.plain)

    def test_entity_link_selects(self):
        store, console = _console(story_options=StoryOptions(compact_mode=True))
        store.add_message("x")
        store.add_message("multi\nline")
        url = console.story.link_for(console.snapshot[1].id)
        self.assertTrue(console.on_link_clicked(url))
        self.assertEqual(console.selected_entity.text, "multi\nline")
        self.assertEqual(console.scroll_target, 1)
        self.assertFalse(console.on_link_clicked("https://example.com"))


class TestThrottling(unittest.TestCase):
    def test_search_term_throttled(self):
        timer = FakeTimer()
        store, console = _console(throttle=True, search_throttle=0.5, clock=timer)
        store.add_message("abc")

        self.assertTrue(console.set_search_term("a"))
        self.assertFalse(console.set_search_term("ab"))
        self.assertFalse(console.set_search_term("abc"))
        self.assertEqual(console.search.query, "a")

        console.flush_pending()
        self.assertEqual(console.search.query, "a")
        timer.now = 0.6
        console.flush_pending()
        self.assertEqual(console.search.query, "abc")

    def test_filter_throttled(self):
        timer = FakeTimer()
        store, console = _console(throttle=True, filter_throttle=0.5, clock=timer)
        store.add_message("apple")
        store.add_message("banana")
        console.set_filter_term("a")
        self.assertFalse(console.set_filter_term("ban"))
        self.assertEqual(console.snapshot.count, 2)
        console.flush_pending(force=True)
        self.assertEqual([e.text for e in console.snapshot], ["banana"])


class TestExecutionContext(unittest.TestCase):
    def test_foreign_thread_rejected(self):
        store, console = _console()
        errors = []

        def worker():
            try:
                store.add_message("from worker")
            except ConcurrentAccessError as e:
                errors.append(e)

        thread = threading.Thread(target=worker)
        thread.start()
        thread.join()
        self.assertEqual(len(errors), 1)

    def test_post_and_drain(self):
        store, console = _console()
        context = console.context

        thread = threading.Thread(target=lambda: context.post(store.add_message, "queued"))
        thread.start()
        thread.join()

        self.assertEqual(context.pending, 1)
        self.assertEqual(context.drain(), 1)
        self.assertEqual([e.text for e in console.snapshot], ["queued"])

    def test_nested_batch_rejected(self):
        context = ExecutionContext()
        with context.batch():
            with pytest.raises(BatchInProgressError):
                with context.batch():
                    pass
        with context.batch():
            pass


def test_from_settings(tmp_path):
    (tmp_path / ".log-console.json").write_text(
        '{"compact_mode": true, "whole_word": true, "sort_ascending": false}')
    settings = Settings(config_dir=tmp_path)
    store = LogStore(clock=StepClock())
    console = ConsoleViewModel.from_settings(store, settings)
    assert console.story.options.compact_mode
    assert console.search.options == SearchOptions(whole_word=True)
    assert not console.ascending
