import asyncio
import time
from datetime import timedelta

import pytest

from studycore.schedule.constants import Category, ItemKind
from studycore.schedule.database import UNAVAILABLE
from studycore.schedule.entry import ScheduleEntry, lesson_key, word_key
from studycore.service import ScheduleService

run = asyncio.run

LESSON = lesson_key("/math/decimals")
WORD = word_key("ubiquitous")


def test_lesson_reviews_follow_fixed_sequence(service, clock):
    start = clock.now
    first = run(service.record_review(LESSON))
    assert first.repetition_count == 0
    assert first.next_review_at == start + timedelta(days=1)

    second_at = clock.advance(days=1)
    second = run(service.record_review(LESSON))
    assert second.repetition_count == 1
    assert second.next_review_at == second_at + timedelta(days=3)


def test_lesson_ignores_category(service, clock):
    entry = run(service.record_review(LESSON, Category.HARD))
    assert entry.category is None
    assert entry.next_review_at == clock.now + timedelta(days=1)
    assert run(service.history(LESSON)) == []


def test_word_easy_then_rerated_hard(service, clock):
    start = clock.now
    reviewed = run(service.record_review(WORD, "easy"))
    assert reviewed.next_review_at == start + timedelta(days=3)

    changed_at = clock.advance(hours=2)
    rerated = run(service.set_category(WORD, Category.HARD))
    assert rerated.repetition_count == 0
    assert rerated.next_review_at == changed_at + timedelta(hours=4)

    history = run(service.history(WORD))
    assert [(h.old_category, h.new_category) for h in history] == [
        (Category.EASY, Category.HARD),
        (None, Category.EASY),
    ]


def test_history_only_on_category_change(service, clock):
    run(service.record_review(WORD, Category.MEDIUM))
    clock.advance(days=1)
    run(service.record_review(WORD, Category.MEDIUM))
    clock.advance(days=3)
    run(service.record_review(WORD))

    assert len(run(service.history(WORD))) == 1
    reviews = run(service.reviews(WORD))
    assert [r.repetition_count for r in reviews] == [2, 1, 0]
    assert run(service.get(WORD)).category is Category.MEDIUM


def test_review_with_changed_category_restarts_count(service, clock):
    run(service.record_review(WORD, Category.EASY))
    clock.advance(days=3)
    assert run(service.record_review(WORD, Category.EASY)).repetition_count == 1

    changed_at = clock.advance(days=7)
    rerated = run(service.record_review(WORD, Category.HARD))
    assert rerated.repetition_count == 0
    assert rerated.next_review_at == changed_at + timedelta(hours=4)

    history = run(service.history(WORD))
    assert (history[0].old_category, history[0].new_category) == (Category.EASY, Category.HARD)


def test_history_order_matches_between_stores(service, identity, local_store):
    identity.sign_in("alice")
    run(service.record_review(WORD))
    run(service.set_category(WORD, Category.HARD))

    remote_order = [(h.old_category, h.new_category) for h in run(service.history(WORD))]
    local_order = [(h.old_category, h.new_category) for h in run(service.history_log.changes(None, WORD))]

    assert remote_order == [(Category.NOT_RATED, Category.HARD), (None, Category.NOT_RATED)]
    assert local_order == remote_order


def test_failed_background_reconcile_is_logged(service, identity, caplog):
    async def broken_run(user):
        raise RuntimeError("remote exploded")

    service.reconciler._run = broken_run

    async def flow():
        identity.sign_in("alice")
        await asyncio.sleep(0.05)

    with caplog.at_level("ERROR", logger="studycore.service"):
        run(flow())

    assert "Background reconciliation failed" in caplog.text
    assert service._pending_load.done()


def test_set_category_to_same_value_appends_no_history(service):
    run(service.set_category(WORD, Category.HARD))
    run(service.set_category(WORD, Category.HARD))
    assert len(run(service.history(WORD))) == 1


def test_set_category_is_never_immediately_due(service):
    for category in Category:
        key = word_key(f"word-{category.name}")
        run(service.set_category(key, category))
        assert key not in [e.item_key for e in run(service.due_within(timedelta(0)))]
        assert key not in [e.item_key for e in run(service.due_now())]


def test_due_now_orders_most_overdue_first(service, clock):
    run(service.set_category(word_key("hard"), Category.HARD))      # +4h
    run(service.set_category(word_key("medium"), Category.MEDIUM))  # +1d
    run(service.record_review(LESSON))                             # +1d
    clock.advance(minutes=30)
    run(service.set_category(word_key("later"), Category.HARD))     # +4h30m

    clock.advance(days=2)
    due = run(service.due_now())
    assert [e.item_key for e in due] == ["word:hard", "word:later", "lesson:/math/decimals", "word:medium"]

    lessons = run(service.due_now(kind=ItemKind.LESSON))
    assert [e.item_key for e in lessons] == [LESSON]

    subset = run(service.due_now(item_keys=["word:later", "word:medium"]))
    assert [e.item_key for e in subset] == ["word:later", "word:medium"]


def test_due_within_excludes_already_due(service, clock):
    run(service.set_category(word_key("hard"), Category.HARD))   # +4h
    run(service.set_category(word_key("easy"), Category.EASY))   # +3d

    clock.advance(hours=5)
    upcoming = run(service.due_within(timedelta(days=3)))
    assert [e.item_key for e in upcoming] == ["word:easy"]

    assert run(service.due_within(timedelta(days=1))) == []
    with pytest.raises(ValueError):
        run(service.due_within(timedelta(hours=-1)))


def test_due_within_includes_upper_bound(service, clock):
    run(service.set_category(WORD, Category.HARD))
    due = run(service.due_within(timedelta(hours=4)))
    assert [e.item_key for e in due] == [WORD]


def test_invalid_input_raises(service):
    with pytest.raises(ValueError):
        run(service.record_review(WORD, 7))
    with pytest.raises(ValueError):
        run(service.record_review("flashcard:1"))
    with pytest.raises(ValueError):
        run(service.set_category(LESSON, Category.EASY))
    with pytest.raises(ValueError):
        run(service.set_category(WORD, None))


def test_offline_review_backfilled_on_sign_in(service, identity, remote_store, clock):
    offline = run(service.record_review(WORD, Category.EASY))
    assert remote_store.list_all("alice") == []

    identity.sign_in("alice")
    run(service.due_now())

    stored = remote_store.get("alice", WORD)
    assert stored.repetition_count == offline.repetition_count
    assert stored.next_review_at == offline.next_review_at


def test_sign_in_inside_running_loop_reconciles(service, identity, remote_store):
    run(service.record_review(LESSON))

    async def flow():
        identity.sign_in("alice")
        await asyncio.sleep(0)
        return await service.entries()

    entries = run(flow())
    assert [e.item_key for e in entries] == [LESSON]
    assert remote_store.get("alice", LESSON) is not None


def test_signed_in_writes_go_to_both_stores(service, identity, local_store, remote_store):
    identity.sign_in("alice")
    entry = run(service.record_review(WORD, Category.HARD, was_recalled_correctly=True))

    assert local_store.get(WORD) == entry
    assert remote_store.get("alice", WORD) == entry
    assert len(remote_store.list_history("alice", WORD)) == 1
    assert remote_store.list_reviews("alice", WORD)[0].was_recalled_correctly is True


def test_remote_entries_appear_after_sign_in(service, identity, remote_store, clock):
    run(service.record_review(LESSON))
    remote_store.upsert("alice", ScheduleEntry(
        item_key=WORD,
        category=Category.EASY,
        repetition_count=4,
        last_reviewed_at=clock.now,
        next_review_at=clock.now + timedelta(days=90),
    ))

    identity.sign_in("alice")
    keys = [e.item_key for e in run(service.entries())]
    assert keys == [LESSON, WORD]

    identity.sign_out()
    keys = [e.item_key for e in run(service.entries())]
    assert keys == [LESSON]


def test_reconciling_again_does_not_double_anything(service, identity, remote_store):
    identity.sign_in("alice")
    run(service.record_review(WORD, Category.EASY))

    before = {e.item_key: e for e in run(service.entries())}
    run(service.load(force=True))
    run(service.load(force=True))
    after = {e.item_key: e for e in run(service.entries())}

    assert after == before
    assert after[WORD].repetition_count == 0
    assert len(run(service.history(WORD))) == 1
    assert len(run(service.reviews(WORD))) == 1
    assert len(remote_store.list_all("alice")) == 1


def test_unavailable_remote_never_blocks_local_writes(service, identity, local_store, remote_store):
    identity.sign_in("alice")
    remote_store.list_all = lambda user: UNAVAILABLE

    entry = run(service.record_review(WORD, Category.HARD))

    assert local_store.get(WORD) == entry
    assert remote_store.get("alice", WORD) is None
    assert [e.item_key for e in run(service.entries())] == [WORD]


def test_failed_remote_write_keeps_local_write(service, identity, local_store, remote_store):
    identity.sign_in("alice")
    run(service.load())
    remote_store.upsert = lambda user, entry: False

    entry = run(service.set_category(WORD, Category.EASY))

    assert local_store.get(WORD) == entry
    assert run(service.get(WORD)) == entry
    assert remote_store.get("alice", WORD) is None


def test_slow_remote_write_times_out(local_store, remote_store, identity, clock):
    identity.sign_in("alice")
    svc = ScheduleService(local_store, remote_store, identity, clock=clock, remote_timeout=0.05)
    run(svc.load())

    def slow_upsert(user, entry):
        time.sleep(0.3)
        return True

    remote_store.upsert = slow_upsert
    entry = run(svc.record_review(LESSON))
    assert local_store.get(LESSON) == entry
    svc.close()


def test_reset_all_with_prefix(service, identity, local_store, remote_store):
    identity.sign_in("alice")
    run(service.record_review(LESSON))
    run(service.record_review(WORD, Category.HARD))

    assert run(service.reset_all(ItemKind.WORD)) is True

    assert [e.item_key for e in run(service.entries())] == [LESSON]
    assert local_store.get(WORD) is None
    assert remote_store.get("alice", WORD) is None
    assert remote_store.get("alice", LESSON) is not None
    assert run(service.history(WORD)) == []
    assert len(run(service.reviews(LESSON))) == 1

    run(service.reset_all())
    assert run(service.entries()) == []
    assert remote_store.list_all("alice") == []
    assert local_store.list_reviews() == []


def test_reset_all_local_only(service, local_store):
    run(service.record_review(LESSON))
    assert run(service.reset_all("lesson:")) is False
    assert local_store.list_all() == []


def test_remove_single_entry(service, identity, local_store, remote_store):
    identity.sign_in("alice")
    run(service.record_review(LESSON))
    assert run(service.remove(LESSON)) is True
    assert run(service.get(LESSON)) is None
    assert local_store.get(LESSON) is None
    assert remote_store.get("alice", LESSON) is None
    # History is only cleared in bulk
    assert len(run(service.reviews(LESSON))) == 1


def test_next_review_never_before_last_review(service, clock):
    for category in [Category.EASY, None, Category.HARD, Category.NOT_RATED]:
        run(service.record_review(WORD, category))
        run(service.set_category(word_key("other"), category or Category.MEDIUM))
        clock.advance(hours=7)
    for entry in run(service.entries()):
        assert entry.next_review_at >= entry.last_reviewed_at


def test_category_counts_and_stats(service, clock):
    run(service.record_review(LESSON, time_spent_seconds=120))
    run(service.record_review(WORD, Category.HARD, was_recalled_correctly=True))
    run(service.record_review(word_key("ephemeral"), Category.EASY, was_recalled_correctly=False))

    counts = run(service.category_counts())
    assert counts == {
        Category.NOT_RATED: 0,
        Category.EASY: 1,
        Category.MEDIUM: 0,
        Category.HARD: 1,
    }

    clock.advance(hours=5)
    stats = run(service.stats())
    assert stats.total_scheduled == 3
    assert stats.due_now == 1
    assert stats.due_today == 1
    assert stats.reviewed_today == 3
    assert stats.reviewed_this_week == 3
    assert stats.average_recall == pytest.approx(0.5)
    assert stats.reviews_daily.iloc[-1] == 3

    word_stats = run(service.stats(ItemKind.WORD))
    assert word_stats.total_scheduled == 2
    assert word_stats.reviewed_today == 2


def test_sync_wrappers(service, clock):
    service.record_review_sync(LESSON)
    service.set_category_sync(WORD, "hard")
    clock.advance(hours=5)
    assert [e.item_key for e in service.due_now_sync()] == [WORD]
    assert [e.item_key for e in service.due_within_sync(timedelta(days=1))] == [LESSON]
    assert service.reset_all_sync() is False
