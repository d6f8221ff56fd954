"""
Schedule Entry - per-item review state.

Defines the scheduling state tracked for each studied item and the helpers
for building and inspecting item keys.

Key concepts:
- Item key: ``<kind>:<identifier>``, e.g. ``lesson:/math/decimals`` or
  ``word:ubiquitous``
- Repetition count: completed review cycles, indexes the interval sequence
- Next review: the instant the item becomes due again
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from studycore.schedule.constants import (
    KEY_SEPARATOR,
    Category,
    ItemKind,
    coerce_category,
)


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Normalise *value* to a UTC timezone aware datetime."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_datetime(value: Any) -> Optional[datetime]:
    """Convert a stored field into a UTC :class:`datetime` if possible."""
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return ensure_utc(datetime.fromisoformat(text))
        except ValueError:
            return None
    return None


# ---- Item keys ----

def lesson_key(path: str) -> str:
    """Build the item key for a lesson path."""
    path = path.strip()
    if not path:
        raise ValueError("Lesson path must not be empty")
    return f"{ItemKind.LESSON.value}{KEY_SEPARATOR}{path}"


def word_key(word: str) -> str:
    """Build the item key for a vocabulary word (lowercased)."""
    normalized = word.strip().lower()
    if not normalized:
        raise ValueError("Word must not be empty")
    return f"{ItemKind.WORD.value}{KEY_SEPARATOR}{normalized}"


def item_kind(item_key: str) -> ItemKind:
    """
    Determine the kind of an item from its key namespace.

    Raises:
        ValueError: If the key has no known kind prefix
    """
    kind, sep, rest = item_key.partition(KEY_SEPARATOR)
    if not sep or not rest:
        raise ValueError(f"Item key {item_key!r} has no kind prefix")
    try:
        return ItemKind(kind)
    except ValueError:
        raise ValueError(f"Item key {item_key!r} has unknown kind {kind!r}") from None


def item_name(item_key: str) -> str:
    """Return the identifier part of an item key."""
    return item_key.partition(KEY_SEPARATOR)[2]


@dataclass
class ScheduleEntry:
    """
    Scheduling state for a single item.

    Lessons carry no category (their spacing is fixed); words carry an
    explicit Category.
    """
    item_key: str
    category: Optional[Category] = None
    repetition_count: int = 0
    last_reviewed_at: Optional[datetime] = None
    next_review_at: Optional[datetime] = None

    def __post_init__(self):
        if self.repetition_count < 0:
            raise ValueError(
                f"repetition_count must be non-negative, got {self.repetition_count}"
            )
        self.category = coerce_category(self.category)
        if self.last_reviewed_at is not None:
            self.last_reviewed_at = ensure_utc(self.last_reviewed_at)
        if self.next_review_at is not None:
            self.next_review_at = ensure_utc(self.next_review_at)

    @property
    def kind(self) -> ItemKind:
        return item_kind(self.item_key)

    def is_due(self, now: datetime) -> bool:
        """True once the next review instant has passed."""
        if self.next_review_at is None:
            return False
        return self.next_review_at <= ensure_utc(now)

    def to_record(self) -> dict:
        """Serialise to a JSON-friendly dict."""
        return {
            "item_key": self.item_key,
            "category": int(self.category) if self.category is not None else None,
            "repetition_count": self.repetition_count,
            "last_reviewed_at": self.last_reviewed_at.isoformat() if self.last_reviewed_at else None,
            "next_review_at": self.next_review_at.isoformat() if self.next_review_at else None,
        }

    @classmethod
    def from_record(cls, data: dict) -> "ScheduleEntry":
        return cls(
            item_key=data["item_key"],
            category=data.get("category"),
            repetition_count=int(data.get("repetition_count") or 0),
            last_reviewed_at=parse_datetime(data.get("last_reviewed_at")),
            next_review_at=parse_datetime(data.get("next_review_at")),
        )


# ---- History records ----

@dataclass(frozen=True)
class HistoryRecord:
    """One category change for an item (old_category is None the first time)."""
    item_key: str
    old_category: Optional[Category]
    new_category: Optional[Category]
    changed_at: datetime

    def to_record(self) -> dict:
        return {
            "item_key": self.item_key,
            "old_category": int(self.old_category) if self.old_category is not None else None,
            "new_category": int(self.new_category) if self.new_category is not None else None,
            "changed_at": ensure_utc(self.changed_at).isoformat(),
        }

    @classmethod
    def from_record(cls, data: dict) -> "HistoryRecord":
        return cls(
            item_key=data["item_key"],
            old_category=coerce_category(data.get("old_category")),
            new_category=coerce_category(data.get("new_category")),
            changed_at=parse_datetime(data["changed_at"]),
        )


@dataclass(frozen=True)
class ReviewEvent:
    """One completed review of an item."""
    item_key: str
    category_at_review: Optional[Category]
    repetition_count: int
    reviewed_at: datetime
    time_spent_seconds: Optional[int] = None
    was_recalled_correctly: Optional[bool] = None

    def to_record(self) -> dict:
        return {
            "item_key": self.item_key,
            "category_at_review": (
                int(self.category_at_review) if self.category_at_review is not None else None
            ),
            "repetition_count": self.repetition_count,
            "reviewed_at": ensure_utc(self.reviewed_at).isoformat(),
            "time_spent_seconds": self.time_spent_seconds,
            "was_recalled_correctly": self.was_recalled_correctly,
        }

    @classmethod
    def from_record(cls, data: dict) -> "ReviewEvent":
        return cls(
            item_key=data["item_key"],
            category_at_review=coerce_category(data.get("category_at_review")),
            repetition_count=int(data.get("repetition_count") or 0),
            reviewed_at=parse_datetime(data["reviewed_at"]),
            time_spent_seconds=data.get("time_spent_seconds"),
            was_recalled_correctly=data.get("was_recalled_correctly"),
        )
