import asyncio
from datetime import datetime, timedelta, timezone

from studycore.history import HistoryLog, HistoryRecord, ReviewEvent
from studycore.schedule.constants import Category
from studycore.schedule.database import UNAVAILABLE

T = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

run = asyncio.run


def _change(key, old, new, hours=0):
    return HistoryRecord(key, old, new, T + timedelta(hours=hours))


def test_local_only_append(local_store, remote_store):
    log = HistoryLog(local_store, remote_store, remote_timeout=5)
    assert run(log.append_change(_change("word:a", None, Category.EASY))) is False
    assert len(local_store.list_history()) == 1
    assert remote_store.list_history("alice") == []


def test_signed_in_append_writes_both(local_store, remote_store):
    log = HistoryLog(local_store, remote_store, remote_timeout=5)
    assert run(log.append_change(_change("word:a", None, Category.EASY), "alice")) is True
    assert run(log.append_review(ReviewEvent("word:a", Category.EASY, 0, T), "alice")) is True
    assert len(local_store.list_history()) == 1
    assert len(remote_store.list_history("alice")) == 1
    assert len(remote_store.list_reviews("alice")) == 1


def test_changes_newest_first(local_store):
    log = HistoryLog(local_store, remote_timeout=5)
    run(log.append_change(_change("word:a", None, Category.EASY, 0)))
    run(log.append_change(_change("word:a", Category.EASY, Category.HARD, 2)))
    run(log.append_change(_change("word:b", None, Category.MEDIUM, 1)))

    assert [c.item_key for c in run(log.changes())] == ["word:a", "word:b", "word:a"]
    assert [c.new_category for c in run(log.changes(item_key="word:a"))] == [Category.HARD, Category.EASY]


def test_unavailable_remote_reads_device_copy(local_store, remote_store):
    log = HistoryLog(local_store, remote_store, remote_timeout=5)
    run(log.append_change(_change("word:a", None, Category.EASY), "alice"))
    remote_store.list_history = lambda identity, item_key=None: UNAVAILABLE
    remote_store.append_review = lambda identity, event: False

    assert len(run(log.changes("alice"))) == 1
    assert run(log.append_review(ReviewEvent("word:a", Category.EASY, 0, T), "alice")) is False
    assert len(local_store.list_reviews()) == 1


def test_clear_by_prefix(local_store, remote_store):
    log = HistoryLog(local_store, remote_store, remote_timeout=5)
    run(log.append_change(_change("word:a", None, Category.EASY), "alice"))
    run(log.append_review(ReviewEvent("lesson:/x", None, 0, T), "alice"))

    assert run(log.clear("alice", "word:")) is True
    assert run(log.changes("alice")) == []
    assert len(run(log.reviews("alice"))) == 1
    assert local_store.list_history() == []
