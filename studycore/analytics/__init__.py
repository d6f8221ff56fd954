"""
Analytics package exports.
"""

from studycore.analytics.formatting import format_interval, format_review_date
from studycore.analytics.metrics import category_counts, compute_review_stats
from studycore.analytics.queries import entries_frame, reviews_frame
from studycore.analytics.types import ReviewStats

__all__ = [
    "ReviewStats",
    "category_counts",
    "compute_review_stats",
    "entries_frame",
    "format_interval",
    "format_review_date",
    "reviews_frame",
]
