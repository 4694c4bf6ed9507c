"""Tests for entity, snapshot and change models"""

import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from log_console.models.change import ChangeBatch, ChangeKind
from log_console.models.entity import (
    LogEntity,
    LogLevel,
    NetworkTask,
    StoreFormatError,
    TaskState,
    parse_timestamp,
)
from log_console.models.snapshot import OrderedSnapshot


T0 = datetime(2024, 5, 1, 10, 0, 0, tzinfo=timezone.utc)


def _entity(i: int, text: str = "") -> LogEntity:
    return LogEntity(id=f"e{i}", created_at=T0, text=text or f"message {i}")


def test_level_parse():
    assert LogLevel.parse("ERROR") is LogLevel.ERROR
    assert LogLevel.parse(" warning ") is LogLevel.WARNING
    assert LogLevel.parse("verbose") is LogLevel.DEBUG
    assert LogLevel.parse(LogLevel.INFO) is LogLevel.INFO


def test_level_rank_and_errors():
    assert LogLevel.TRACE.rank < LogLevel.DEBUG.rank < LogLevel.CRITICAL.rank
    assert LogLevel.ERROR.is_error
    assert LogLevel.CRITICAL.is_error
    assert not LogLevel.WARNING.is_error


def test_failed_task_is_error():
    task = NetworkTask(url="https://a", state=TaskState.FAILURE, error_code=-1001)
    entity = LogEntity(id="x", created_at=T0, text="GET https://a", task=task)
    assert entity.is_network
    assert entity.is_error


def test_entity_round_trip():
    task = NetworkTask(url="https://a/b", method="POST", state=TaskState.SUCCESS,
                       status_code=201, duration=0.5, response_body=b'{"ok": true}')
    entity = LogEntity(id="x", created_at=T0, text="POST https://a/b",
                       level=LogLevel.INFO, label="network", task=task,
                       session_id="s1", metadata={"k": "v"})
    restored = LogEntity.from_dict(entity.to_dict())
    assert restored == entity
    assert restored.task.response_body == b'{"ok": true}'
    assert restored.metadata == {"k": "v"}


def test_from_dict_missing_fields():
    with pytest.raises(StoreFormatError):
        LogEntity.from_dict({"text": "no id"})
    with pytest.raises(StoreFormatError):
        LogEntity.from_dict({"id": "x", "created_at": "yesterday"})


def test_replace_task_keeps_identity():
    entity = LogEntity(id="x", created_at=T0, text="GET https://a",
                       task=NetworkTask(url="https://a"))
    updated = entity.replace_task(NetworkTask(url="https://a", state=TaskState.SUCCESS,
                                              status_code=200))
    assert updated.id == entity.id
    assert updated.created_at == entity.created_at
    assert updated != entity


def test_parse_timestamp():
    assert parse_timestamp("2024-05-01T10:00:00Z") == T0
    assert parse_timestamp("2024-05-01T10:00:00") == T0
    assert parse_timestamp(T0.timestamp()) == T0


class TestOrderedSnapshot:
    def test_indexing(self):
        snapshot = OrderedSnapshot([_entity(i) for i in range(3)])
        assert snapshot.count == 3
        assert len(snapshot) == 3
        assert list(snapshot.indices) == [0, 1, 2]
        assert snapshot[1].id == "e1"
        assert snapshot.first.id == "e0"
        assert snapshot.last.id == "e2"
        assert snapshot.index_of("e2") == 2
        assert snapshot.index_of("missing") is None

    def test_empty(self):
        snapshot = OrderedSnapshot.empty()
        assert snapshot.count == 0
        assert snapshot.first is None
        assert snapshot.last is None

    def test_appending_leaves_original(self):
        snapshot = OrderedSnapshot([_entity(0)])
        grown = snapshot.appending([_entity(1), _entity(2)])
        assert snapshot.count == 1
        assert grown.count == 3
        assert grown[:1] == snapshot


class TestChangeBatch:
    def test_append(self):
        batch = ChangeBatch.append(range(3, 5))
        assert batch.kind == ChangeKind.APPEND
        assert batch.is_append
        assert not batch.is_noop
        assert ChangeBatch.append(range(3, 3)).is_noop

    def test_reload(self):
        batch = ChangeBatch.reload()
        assert batch.is_reload
        assert not batch.is_noop

    def test_dict_round_trip(self):
        for batch in (ChangeBatch.append(range(2, 4)), ChangeBatch.reload()):
            assert ChangeBatch.from_dict(batch.to_dict()) == batch
