"""
studycore - spaced-repetition review scheduling with local/remote sync.

Quick start:
    from studycore import ScheduleService, SessionIdentity, lesson_key, word_key

    identity = SessionIdentity()
    service = ScheduleService.from_env(identity)

    # Anonymous study goes to the device store
    await service.record_review(lesson_key("/math/decimals"))
    await service.set_category(word_key("ubiquitous"), "hard")

    # Signing in reconciles the device copy into the remote store
    identity.sign_in("user-123")
    due = await service.due_now()
"""

from studycore.history import HistoryLog, HistoryRecord, ReviewEvent
from studycore.identity import IdentityProvider, SessionIdentity
from studycore.reconciler import ReconcileResult, Reconciler, merge_views
from studycore.schedule import (
    Category,
    ItemKind,
    LocalStore,
    RemoteStore,
    ScheduleEntry,
    lesson_key,
    next_due,
    word_key,
)
from studycore.service import ScheduleService, run_sync

__all__ = [
    "Category",
    "HistoryLog",
    "HistoryRecord",
    "IdentityProvider",
    "ItemKind",
    "LocalStore",
    "ReconcileResult",
    "Reconciler",
    "RemoteStore",
    "ReviewEvent",
    "ScheduleEntry",
    "ScheduleService",
    "SessionIdentity",
    "lesson_key",
    "merge_views",
    "next_due",
    "run_sync",
    "word_key",
]
