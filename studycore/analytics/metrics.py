"""
Metric computations for review analytics.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Iterable

import pandas as pd

from studycore.analytics.queries import entries_frame, reviews_frame
from studycore.analytics.types import ReviewStats
from studycore.schedule.constants import Category
from studycore.schedule.entry import ReviewEvent, ScheduleEntry, ensure_utc

WEEK = timedelta(days=7)


def build_day_index(end: pd.Timestamp, days: int = 7) -> pd.DatetimeIndex:
    """
    Dense UTC day index of *days* days ending on the day of *end*.
    """
    last = end.floor("D")
    return pd.date_range(end=last, periods=days, freq="D")


def compute_reviews_daily(reviews_df: pd.DataFrame, day_index: pd.DatetimeIndex) -> pd.Series:
    """
    Review counts per UTC day, zero-filled over the index.
    """
    if reviews_df.empty:
        return pd.Series(0, index=day_index, dtype="int64")
    counts = reviews_df["day_utc"].value_counts().sort_index()
    return counts.reindex(day_index, fill_value=0).astype("int64")


def compute_average_recall(reviews_df: pd.DataFrame) -> float:
    """
    Share of reviews recalled correctly, ignoring reviews without an outcome.
    """
    if reviews_df.empty:
        return 0.0
    outcomes = reviews_df["was_recalled_correctly"].dropna()
    if outcomes.empty:
        return 0.0
    return float(outcomes.astype(bool).mean())


def compute_review_stats(
    entries: Iterable[ScheduleEntry],
    events: Iterable[ReviewEvent],
    now: datetime
) -> ReviewStats:
    """
    Compute the review dashboard numbers.

    "Today" is the current UTC calendar day; "this week" is the trailing
    seven days ending at *now*.
    """
    now_ts = pd.Timestamp(ensure_utc(now))
    start_of_day = now_ts.floor("D")
    end_of_day = start_of_day + pd.Timedelta(days=1)
    start_of_week = now_ts - pd.Timedelta(WEEK)

    entries_df = entries_frame(entries)
    reviews_df = reviews_frame(events)

    if entries_df.empty:
        due_now = due_today = 0
    else:
        next_at = entries_df["next_review_at"]
        due_now = int((next_at <= now_ts).sum())
        due_today = int(((next_at >= start_of_day) & (next_at <= end_of_day)).sum())

    if reviews_df.empty:
        reviewed_today = reviewed_this_week = 0
        week_df = reviews_df
    else:
        reviewed_at = reviews_df["reviewed_at"]
        reviewed_today = int((reviewed_at >= start_of_day).sum())
        week_df = reviews_df[reviewed_at >= start_of_week]
        reviewed_this_week = len(week_df)

    return ReviewStats(
        total_scheduled=len(entries_df),
        due_now=due_now,
        due_today=due_today,
        reviewed_today=reviewed_today,
        reviewed_this_week=reviewed_this_week,
        average_recall=compute_average_recall(week_df),
        reviews_daily=compute_reviews_daily(reviews_df, build_day_index(now_ts)),
    )


def category_counts(entries: Iterable[ScheduleEntry]) -> dict[Category, int]:
    """
    Number of entries per category; every category is present.
    """
    counts = {category: 0 for category in Category}
    df = entries_frame(entries)
    if df.empty:
        return counts
    rated = df["category"].dropna().astype("int64").value_counts()
    for value, count in rated.items():
        counts[Category(int(value))] = int(count)
    return counts
