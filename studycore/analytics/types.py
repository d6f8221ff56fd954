"""
Types for review analytics.
"""

from __future__ import annotations

from dataclasses import dataclass

import pandas as pd


@dataclass(frozen=True)
class ReviewStats:
    """
    Dashboard numbers for one learner's review schedule.

    ``average_recall`` is the share of correctly recalled reviews over the
    last seven days, counting only reviews with a recorded outcome (0.0 when
    there are none).
    """
    total_scheduled: int
    due_now: int
    due_today: int
    reviewed_today: int
    reviewed_this_week: int
    average_recall: float
    reviews_daily: pd.Series
