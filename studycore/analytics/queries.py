"""
DataFrame builders for analytics.
"""

from __future__ import annotations

from typing import Iterable

import pandas as pd

from studycore.schedule.entry import ReviewEvent, ScheduleEntry

ENTRY_COLUMNS = ["item_key", "kind", "category", "repetition_count", "last_reviewed_at", "next_review_at"]
REVIEW_COLUMNS = [
    "item_key", "category_at_review", "repetition_count", "reviewed_at",
    "time_spent_seconds", "was_recalled_correctly", "day_utc",
]


def entries_frame(entries: Iterable[ScheduleEntry]) -> pd.DataFrame:
    """
    One row per schedule entry with UTC timestamp columns.
    """
    rows = [
        {
            "item_key": e.item_key,
            "kind": e.kind.value,
            "category": int(e.category) if e.category is not None else None,
            "repetition_count": e.repetition_count,
            "last_reviewed_at": e.last_reviewed_at,
            "next_review_at": e.next_review_at,
        }
        for e in entries
    ]
    if not rows:
        return pd.DataFrame(columns=ENTRY_COLUMNS)

    df = pd.DataFrame(rows, columns=ENTRY_COLUMNS)
    df["last_reviewed_at"] = pd.to_datetime(df["last_reviewed_at"], utc=True, errors="coerce")
    df["next_review_at"] = pd.to_datetime(df["next_review_at"], utc=True, errors="coerce")
    return df


def reviews_frame(events: Iterable[ReviewEvent]) -> pd.DataFrame:
    """
    One row per review event, oldest first, with a ``day_utc`` column.
    """
    rows = [
        {
            "item_key": e.item_key,
            "category_at_review": int(e.category_at_review) if e.category_at_review is not None else None,
            "repetition_count": e.repetition_count,
            "reviewed_at": e.reviewed_at,
            "time_spent_seconds": e.time_spent_seconds,
            "was_recalled_correctly": e.was_recalled_correctly,
        }
        for e in events
    ]
    if not rows:
        return pd.DataFrame(columns=REVIEW_COLUMNS)

    df = pd.DataFrame(rows)
    df["reviewed_at"] = pd.to_datetime(df["reviewed_at"], utc=True, errors="coerce")
    df = df.dropna(subset=["reviewed_at"])
    df["day_utc"] = df["reviewed_at"].dt.floor("D")
    df = df.sort_values("reviewed_at").reset_index(drop=True)
    return df[REVIEW_COLUMNS]
