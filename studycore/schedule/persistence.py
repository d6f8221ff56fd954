"""
Persistence Layer - on-device store for schedule state.

A small key/value surface over a SQLite file, usable with no signed-in
identity. Schedule entries are stored as JSON documents under
``schedule:<item_key>``; history goes to an append-only table.

Schema:
- kv_store: key -> JSON record (upserted)
- history_log: append-only category changes and review events

Unreadable or malformed state is never fatal: a corrupt database file is moved
aside and recreated, and records that fail validation are skipped.
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional, Union

from pydantic import BaseModel, Field, ValidationError

from studycore import config
from studycore.schedule.entry import HistoryRecord, ReviewEvent, ScheduleEntry, utc_now

logger = logging.getLogger(__name__)

SCHEDULE_KEY_PREFIX = "schedule:"
RECORD_CHANGE = "change"
RECORD_REVIEW = "review"


# ---- Record validation ----

class ScheduleRecord(BaseModel):
    """Stored shape of a schedule entry."""
    item_key: str = Field(..., min_length=1)
    category: Optional[int] = Field(default=None, ge=0, le=3)
    repetition_count: int = Field(default=0, ge=0)
    last_reviewed_at: Optional[datetime] = None
    next_review_at: Optional[datetime] = None


class ChangeRecord(BaseModel):
    """Stored shape of a category change."""
    item_key: str
    old_category: Optional[int] = Field(default=None, ge=0, le=3)
    new_category: Optional[int] = Field(default=None, ge=0, le=3)
    changed_at: datetime


class ReviewRecord(BaseModel):
    """Stored shape of a review event."""
    item_key: str
    category_at_review: Optional[int] = Field(default=None, ge=0, le=3)
    repetition_count: int = Field(default=0, ge=0)
    reviewed_at: datetime
    time_spent_seconds: Optional[int] = None
    was_recalled_correctly: Optional[bool] = None


class LocalStore:
    """Device-local schedule store backed by a SQLite file."""

    def __init__(self, db_path: Union[str, Path, None] = None):
        self.db_path = Path(db_path) if db_path is not None else config.get_local_db_path()

    # ---- Connection management ----

    def _ensure_schema(self, conn: sqlite3.Connection) -> None:
        cursor = conn.cursor()
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS kv_store (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS history_log (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                record_type TEXT NOT NULL,   -- 'change' or 'review'
                item_key TEXT NOT NULL,
                payload TEXT NOT NULL,
                recorded_at TEXT NOT NULL
            )
        """)
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_history_item
            ON history_log(item_key, record_type)
        """)
        conn.commit()

    def _quarantine(self) -> None:
        corrupt_path = self.db_path.with_name(self.db_path.name + ".corrupt")
        try:
            self.db_path.replace(corrupt_path)
            logger.warning("Moved unreadable local store to %s", corrupt_path)
        except OSError as exc:
            logger.warning("Could not move unreadable local store aside: %s", exc)

    def _open(self) -> sqlite3.Connection:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            self._ensure_schema(conn)
        except sqlite3.DatabaseError as exc:
            conn.close()
            logger.warning("Local store %s is unreadable (%s); starting fresh", self.db_path, exc)
            self._quarantine()
            conn = sqlite3.connect(self.db_path)
            conn.row_factory = sqlite3.Row
            self._ensure_schema(conn)
        return conn

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        conn = self._open()
        try:
            yield conn
        finally:
            conn.close()

    def init_db(self) -> None:
        """
        Initialize the store file and schema.

        Safe to call multiple times - only creates tables if they don't exist.
        """
        with self._connection():
            pass

    # ---- Schedule entries ----

    @staticmethod
    def _parse_entry(key: str, raw: str) -> Optional[ScheduleEntry]:
        try:
            record = ScheduleRecord.model_validate_json(raw)
        except ValidationError as exc:
            logger.warning("Skipping malformed local record %s: %s", key, exc.errors()[:1])
            return None
        return ScheduleEntry(
            item_key=record.item_key,
            category=record.category,
            repetition_count=record.repetition_count,
            last_reviewed_at=record.last_reviewed_at,
            next_review_at=record.next_review_at,
        )

    def get(self, item_key: str) -> Optional[ScheduleEntry]:
        """
        Load a schedule entry.

        Returns:
            ScheduleEntry if found and readable, None otherwise
        """
        try:
            with self._connection() as conn:
                row = conn.execute(
                    "SELECT key, value FROM kv_store WHERE key = ?",
                    (SCHEDULE_KEY_PREFIX + item_key,)
                ).fetchone()
        except sqlite3.Error as exc:
            logger.warning("Local read failed for %s: %s", item_key, exc)
            return None

        if row is None:
            return None
        return self._parse_entry(row["key"], row["value"])

    def upsert(self, entry: ScheduleEntry) -> bool:
        """
        Insert or replace a schedule entry (idempotent).

        Returns:
            True if the entry was written
        """
        payload = ScheduleRecord(**entry.to_record()).model_dump_json()
        try:
            with self._connection() as conn:
                conn.execute(
                    """
                    INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        value = excluded.value,
                        updated_at = excluded.updated_at
                    """,
                    (SCHEDULE_KEY_PREFIX + entry.item_key, payload, utc_now().isoformat())
                )
                conn.commit()
        except sqlite3.Error as exc:
            logger.error("Local write failed for %s: %s", entry.item_key, exc)
            return False
        return True

    def list_all(self) -> list[ScheduleEntry]:
        """All readable schedule entries on this device."""
        try:
            with self._connection() as conn:
                rows = conn.execute(
                    "SELECT key, value FROM kv_store WHERE substr(key, 1, ?) = ? ORDER BY key",
                    (len(SCHEDULE_KEY_PREFIX), SCHEDULE_KEY_PREFIX)
                ).fetchall()
        except sqlite3.Error as exc:
            logger.warning("Local store unreadable, treating as empty: %s", exc)
            return []

        entries = []
        for row in rows:
            entry = self._parse_entry(row["key"], row["value"])
            if entry is not None:
                entries.append(entry)
        return entries

    def delete(self, item_key: str) -> bool:
        try:
            with self._connection() as conn:
                conn.execute("DELETE FROM kv_store WHERE key = ?", (SCHEDULE_KEY_PREFIX + item_key,))
                conn.commit()
        except sqlite3.Error as exc:
            logger.error("Local delete failed for %s: %s", item_key, exc)
            return False
        return True

    def delete_all(self, prefix: Optional[str] = None) -> bool:
        """
        Delete schedule entries, optionally only item keys starting with *prefix*.
        """
        key_prefix = SCHEDULE_KEY_PREFIX + (prefix or "")
        try:
            with self._connection() as conn:
                conn.execute(
                    "DELETE FROM kv_store WHERE substr(key, 1, ?) = ?",
                    (len(key_prefix), key_prefix)
                )
                conn.commit()
        except sqlite3.Error as exc:
            logger.error("Local bulk delete failed: %s", exc)
            return False
        return True

    # ---- History ----

    def _append(self, record_type: str, item_key: str, payload: str) -> bool:
        try:
            with self._connection() as conn:
                conn.execute(
                    """
                    INSERT INTO history_log (record_type, item_key, payload, recorded_at)
                    VALUES (?, ?, ?, ?)
                    """,
                    (record_type, item_key, payload, utc_now().isoformat())
                )
                conn.commit()
        except sqlite3.Error as exc:
            logger.error("Local history append failed for %s: %s", item_key, exc)
            return False
        return True

    def _select(self, record_type: str, item_key: Optional[str]) -> list[sqlite3.Row]:
        query = "SELECT id, payload FROM history_log WHERE record_type = ?"
        params: list = [record_type]
        if item_key is not None:
            query += " AND item_key = ?"
            params.append(item_key)
        query += " ORDER BY id DESC"
        try:
            with self._connection() as conn:
                return conn.execute(query, params).fetchall()
        except sqlite3.Error as exc:
            logger.warning("Local history unreadable, treating as empty: %s", exc)
            return []

    def append_history(self, record: HistoryRecord) -> bool:
        payload = ChangeRecord(**record.to_record()).model_dump_json()
        return self._append(RECORD_CHANGE, record.item_key, payload)

    def append_review(self, event: ReviewEvent) -> bool:
        payload = ReviewRecord(**event.to_record()).model_dump_json()
        return self._append(RECORD_REVIEW, event.item_key, payload)

    def list_history(self, item_key: Optional[str] = None) -> list[HistoryRecord]:
        """Category changes, most recently inserted first."""
        records = []
        for row in self._select(RECORD_CHANGE, item_key):
            try:
                parsed = ChangeRecord.model_validate_json(row["payload"])
            except ValidationError:
                logger.warning("Skipping malformed local history row %s", row["id"])
                continue
            records.append(HistoryRecord.from_record(parsed.model_dump()))
        return records

    def list_reviews(self, item_key: Optional[str] = None) -> list[ReviewEvent]:
        """Review events, most recently inserted first."""
        events = []
        for row in self._select(RECORD_REVIEW, item_key):
            try:
                parsed = ReviewRecord.model_validate_json(row["payload"])
            except ValidationError:
                logger.warning("Skipping malformed local review row %s", row["id"])
                continue
            events.append(ReviewEvent.from_record(parsed.model_dump()))
        return events

    def delete_history(self, prefix: Optional[str] = None) -> bool:
        """Bulk-clear history rows, optionally only for item keys starting with *prefix*."""
        key_prefix = prefix or ""
        try:
            with self._connection() as conn:
                conn.execute(
                    "DELETE FROM history_log WHERE substr(item_key, 1, ?) = ?",
                    (len(key_prefix), key_prefix)
                )
                conn.commit()
        except sqlite3.Error as exc:
            logger.error("Local history clear failed: %s", exc)
            return False
        return True
