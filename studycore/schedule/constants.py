"""
Interval Table - review spacing constants.

All interval sequences in one place. Two families share the same shape:

- Fixed-sequence family (lessons): one day-based sequence, category ignored
- Category-sensitive family (vocabulary words): one minute-based sequence per
  difficulty category

A repetition count indexes into a sequence and is clamped to the last entry,
so intervals stop growing once the sequence is exhausted.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from enum import Enum, IntEnum
from typing import Mapping, Optional, Union


# ---- Categories ----

class Category(IntEnum):
    """Difficulty rating for a vocabulary word."""
    NOT_RATED = 0  # Waiting for the learner to decide
    EASY = 1
    MEDIUM = 2
    HARD = 3


DEFAULT_CATEGORY = Category.NOT_RATED  # Assigned to new words without a rating


def coerce_category(value: Union[Category, int, str, None]) -> Optional[Category]:
    """
    Convert a raw category value into a Category.

    Accepts Category members, their integer values, or their names
    (case-insensitive). None passes through.

    Raises:
        ValueError: If the value is not a known category
    """
    if value is None or isinstance(value, Category):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Invalid category: {value!r}")
    if isinstance(value, int):
        return Category(value)
    if isinstance(value, str):
        try:
            return Category[value.strip().upper()]
        except KeyError:
            raise ValueError(f"Invalid category: {value!r}") from None
    raise ValueError(f"Invalid category: {value!r}")


# ---- Item kinds ----

class ItemKind(str, Enum):
    """Kind of studied item, encoded as the item key namespace."""
    LESSON = "lesson"
    WORD = "word"

    @property
    def prefix(self) -> str:
        return f"{self.value}{KEY_SEPARATOR}"


KEY_SEPARATOR = ":"


# ---- Interval sequences ----

MINUTE = 1
HOUR = 60 * MINUTE
DAY = 24 * HOUR

# Lesson completion, in days
LESSON_INTERVALS_DAYS = (1, 3, 7, 14, 30, 60, 90)

# Vocabulary review, in minutes
WORD_INTERVALS_MINUTES: dict[Category, tuple[int, ...]] = {
    Category.NOT_RATED: (4 * HOUR, 1 * DAY, 3 * DAY, 7 * DAY, 14 * DAY, 30 * DAY),
    Category.EASY: (3 * DAY, 7 * DAY, 14 * DAY, 30 * DAY, 90 * DAY, 180 * DAY),
    Category.MEDIUM: (1 * DAY, 3 * DAY, 7 * DAY, 14 * DAY, 30 * DAY, 90 * DAY),
    Category.HARD: (4 * HOUR, 12 * HOUR, 1 * DAY, 3 * DAY, 7 * DAY, 14 * DAY),
}


@dataclass(frozen=True)
class IntervalFamily:
    """
    A table of interval sequences sharing one time unit.

    ``table`` maps a category (or None for category-free families) to its
    sequence; categories without a row use ``default_category``'s row.
    """
    name: str
    unit: timedelta
    table: Mapping[Optional[Category], tuple[int, ...]]
    default_category: Optional[Category]

    def sequence(self, category: Optional[Category]) -> tuple[int, ...]:
        row = self.table.get(category)
        if row is None:
            row = self.table[self.default_category]
        return row


FIXED_SEQUENCE = IntervalFamily(
    name="fixed_sequence",
    unit=timedelta(days=1),
    table={None: LESSON_INTERVALS_DAYS},
    default_category=None,
)

CATEGORY_SENSITIVE = IntervalFamily(
    name="category_sensitive",
    unit=timedelta(minutes=1),
    table=WORD_INTERVALS_MINUTES,
    default_category=Category.MEDIUM,
)

FAMILIES: dict[ItemKind, IntervalFamily] = {
    ItemKind.LESSON: FIXED_SEQUENCE,
    ItemKind.WORD: CATEGORY_SENSITIVE,
}


# ---- Query defaults ----

UPCOMING_WINDOW = timedelta(hours=24)  # "Due soon" window used by reminders
