"""
Schedule Calculator - pure scheduling logic (no store calls).

Main workflow:
1. Look up the interval family for the item kind
2. Index the category's sequence with the repetition count (clamped)
3. Add the interval to the reference instant

Callers are responsible for loading the previous entry and persisting the
returned one.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from studycore.schedule.constants import (
    CATEGORY_SENSITIVE,
    DEFAULT_CATEGORY,
    FAMILIES,
    Category,
    IntervalFamily,
    ItemKind,
)
from studycore.schedule.entry import ScheduleEntry, ensure_utc, item_kind


def interval_for(
    category: Optional[Category],
    repetition_count: int,
    family: IntervalFamily = CATEGORY_SENSITIVE
) -> timedelta:
    """
    Interval to wait after a review.

    Args:
        category: Row selector; categories without a row use the family default
        repetition_count: Completed review cycles (index into the sequence)
        family: Interval family to read from

    Returns:
        Interval as a timedelta
    """
    if repetition_count < 0:
        raise ValueError(f"repetition_count must be non-negative, got {repetition_count}")

    sequence = family.sequence(category)
    index = min(repetition_count, len(sequence) - 1)
    return sequence[index] * family.unit


def next_due(
    category: Optional[Category],
    repetition_count: int,
    now: datetime,
    family: IntervalFamily = CATEGORY_SENSITIVE
) -> datetime:
    """Instant at which an item reviewed at *now* becomes due again."""
    return ensure_utc(now) + interval_for(category, repetition_count, family)


def family_for(item_key: str) -> IntervalFamily:
    return FAMILIES[item_kind(item_key)]


def _resolve_category(
    item_key: str,
    category: Optional[Category],
    previous: Optional[ScheduleEntry]
) -> Optional[Category]:
    if item_kind(item_key) is ItemKind.LESSON:
        return None
    if category is not None:
        return category
    if previous is not None and previous.category is not None:
        return previous.category
    return DEFAULT_CATEGORY


def apply_review(
    previous: Optional[ScheduleEntry],
    item_key: str,
    category: Optional[Category],
    now: datetime
) -> ScheduleEntry:
    """
    Compute the entry after a completed review.

    The first review of an item keeps repetition_count at 0; every later
    review increments it. A review that changes the category restarts the
    schedule at repetition_count 0, as apply_category does. Lessons never
    carry a category; words without an explicit category keep the stored one.

    Args:
        previous: Stored entry, or None for a never-studied item
        item_key: Item being reviewed
        category: Category chosen at review time (None = keep)
        now: Review instant

    Returns:
        New ScheduleEntry (previous is not modified)
    """
    now = ensure_utc(now)
    resolved = _resolve_category(item_key, category, previous)
    if previous is None or resolved != previous.category:
        count = 0
    else:
        count = previous.repetition_count + 1

    return ScheduleEntry(
        item_key=item_key,
        category=resolved,
        repetition_count=count,
        last_reviewed_at=now,
        next_review_at=next_due(resolved, count, now, family_for(item_key)),
    )


def apply_category(
    item_key: str,
    category: Category,
    now: datetime
) -> ScheduleEntry:
    """
    Compute the entry after the learner re-rates an item.

    A category change restarts the schedule: repetition_count goes back to 0
    and the first interval of the new category is measured from *now*.
    """
    if item_kind(item_key) is ItemKind.LESSON:
        raise ValueError(f"Lessons do not carry a category: {item_key!r}")

    now = ensure_utc(now)
    return ScheduleEntry(
        item_key=item_key,
        category=category,
        repetition_count=0,
        last_reviewed_at=now,
        next_review_at=next_due(category, 0, now, family_for(item_key)),
    )
