"""
Schedule - interval table, calculator and the two store adapters.

Quick start:
    from studycore import schedule

    # Pure scheduling (no store calls)
    due = schedule.next_due(schedule.Category.EASY, 0, now)

    # Stores
    local = schedule.LocalStore("logs/local_schedule.sqlite")
    remote = schedule.RemoteStore.from_env()
"""

# Interval table
from studycore.schedule.constants import (
    CATEGORY_SENSITIVE,
    DEFAULT_CATEGORY,
    FAMILIES,
    FIXED_SEQUENCE,
    LESSON_INTERVALS_DAYS,
    UPCOMING_WINDOW,
    WORD_INTERVALS_MINUTES,
    Category,
    IntervalFamily,
    ItemKind,
    coerce_category,
)

# Entry state
from studycore.schedule.entry import (
    ScheduleEntry,
    ensure_utc,
    item_kind,
    item_name,
    lesson_key,
    utc_now,
    word_key,
)

# Calculator (algorithm logic)
from studycore.schedule.calculator import (
    apply_category,
    apply_review,
    family_for,
    interval_for,
    next_due,
)

# Store adapters
from studycore.schedule.persistence import LocalStore
from studycore.schedule.database import (
    UNAVAILABLE,
    RemoteStatus,
    RemoteStore,
    call_remote,
    get_engine,
)


__all__ = [
    # Interval table
    "CATEGORY_SENSITIVE",
    "DEFAULT_CATEGORY",
    "FAMILIES",
    "FIXED_SEQUENCE",
    "LESSON_INTERVALS_DAYS",
    "UPCOMING_WINDOW",
    "WORD_INTERVALS_MINUTES",
    "Category",
    "IntervalFamily",
    "ItemKind",
    "coerce_category",

    # Entry state
    "ScheduleEntry",
    "ensure_utc",
    "item_kind",
    "item_name",
    "lesson_key",
    "utc_now",
    "word_key",

    # Calculator
    "apply_category",
    "apply_review",
    "family_for",
    "interval_for",
    "next_due",

    # Stores
    "LocalStore",
    "RemoteStore",
    "RemoteStatus",
    "UNAVAILABLE",
    "call_remote",
    "get_engine",
]
