"""
Human-readable rendering of intervals and due dates.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta
from typing import Optional, Union

from studycore.schedule.constants import DAY, HOUR
from studycore.schedule.entry import ensure_utc, utc_now

WEEK_MINUTES = 7 * DAY
MONTH_MINUTES = 30 * DAY


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def format_interval(interval: Union[timedelta, int, float]) -> str:
    """
    Render an interval compactly: ``45m``, ``4h``, ``3d``, ``2w``, ``3mo``.

    Args:
        interval: timedelta, or a number of minutes
    """
    if isinstance(interval, timedelta):
        minutes = interval.total_seconds() / 60
    else:
        minutes = float(interval)

    if minutes < HOUR:
        return f"{_round_half_up(minutes)}m"
    if minutes < DAY:
        return f"{_round_half_up(minutes / HOUR)}h"
    if minutes < WEEK_MINUTES:
        return f"{_round_half_up(minutes / DAY)}d"
    if minutes < MONTH_MINUTES:
        return f"{_round_half_up(minutes / WEEK_MINUTES)}w"
    return f"{_round_half_up(minutes / MONTH_MINUTES)}mo"


def format_review_date(when: datetime, now: Optional[datetime] = None) -> str:
    """
    Label a due instant relative to today (UTC calendar days).

    Returns "Today", "Tomorrow", "N days overdue", "in N days" for the coming
    week, or a short date such as "Mar 5" further out.
    """
    when = ensure_utc(when)
    today = ensure_utc(now or utc_now()).date()
    diff_days = (when.date() - today).days

    if diff_days == 0:
        return "Today"
    if diff_days == 1:
        return "Tomorrow"
    if diff_days < 0:
        overdue = abs(diff_days)
        return "1 day overdue" if overdue == 1 else f"{overdue} days overdue"
    if diff_days <= 7:
        return f"in {diff_days} days"
    return f"{when:%b} {when.day}"
