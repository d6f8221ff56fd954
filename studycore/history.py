"""
History Log - append-only record of category changes and review events.

Records are written alongside every schedule mutation and never updated or
removed individually; only a progress reset clears them in bulk. The local
store always receives a copy; the remote store receives one when an identity
is signed in.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from studycore import config
from studycore.schedule.database import RemoteStore, call_remote
from studycore.schedule.entry import HistoryRecord, ReviewEvent
from studycore.schedule.persistence import LocalStore

logger = logging.getLogger(__name__)


class HistoryLog:
    """
    Writes and reads history through both stores.

    Reads prefer the remote copy when an identity is given and the remote
    store answers; otherwise they fall back to the device copy.
    """

    def __init__(
        self,
        local: LocalStore,
        remote: Optional[RemoteStore] = None,
        *,
        remote_timeout: Optional[float] = None
    ):
        self.local = local
        self.remote = remote
        self.remote_timeout = remote_timeout if remote_timeout is not None else config.get_remote_timeout()

    async def _remote_write(self, func, identity: str, *args, operation: str) -> bool:
        ok = await call_remote(
            func, identity, *args,
            timeout=self.remote_timeout,
            default=False,
            operation=operation,
        )
        if ok is not True:
            logger.warning("Remote %s failed for %s; device copy kept", operation, identity)
            return False
        return True

    async def append_change(self, record: HistoryRecord, identity: Optional[str] = None) -> bool:
        """
        Append a category change.

        Returns:
            True if the remote copy was written (False when local-only)
        """
        await asyncio.to_thread(self.local.append_history, record)
        if identity is None or self.remote is None:
            return False
        return await self._remote_write(self.remote.append_history, identity, record, operation="history append")

    async def append_review(self, event: ReviewEvent, identity: Optional[str] = None) -> bool:
        """Append a review event; same return convention as append_change."""
        await asyncio.to_thread(self.local.append_review, event)
        if identity is None or self.remote is None:
            return False
        return await self._remote_write(self.remote.append_review, identity, event, operation="review append")

    async def changes(
        self,
        identity: Optional[str] = None,
        item_key: Optional[str] = None
    ) -> list[HistoryRecord]:
        """Category changes, newest first."""
        records = None
        if identity is not None and self.remote is not None:
            records = await call_remote(
                self.remote.list_history, identity, item_key,
                timeout=self.remote_timeout,
                operation="history query",
            )
            if not isinstance(records, list):
                logger.warning("Remote history unavailable, reading device copy")
                records = None
        if records is None:
            records = await asyncio.to_thread(self.local.list_history, item_key)
        return sorted(records, key=lambda r: r.changed_at, reverse=True)

    async def reviews(
        self,
        identity: Optional[str] = None,
        item_key: Optional[str] = None
    ) -> list[ReviewEvent]:
        """Review events, newest first."""
        events = None
        if identity is not None and self.remote is not None:
            events = await call_remote(
                self.remote.list_reviews, identity, item_key,
                timeout=self.remote_timeout,
                operation="review query",
            )
            if not isinstance(events, list):
                logger.warning("Remote review events unavailable, reading device copy")
                events = None
        if events is None:
            events = await asyncio.to_thread(self.local.list_reviews, item_key)
        return sorted(events, key=lambda e: e.reviewed_at, reverse=True)

    async def clear(self, identity: Optional[str] = None, prefix: Optional[str] = None) -> bool:
        """
        Bulk-clear history (optionally only keys starting with *prefix*).

        Returns:
            True if the remote copy was cleared as well
        """
        await asyncio.to_thread(self.local.delete_history, prefix)
        if identity is None or self.remote is None:
            return False
        return await self._remote_write(self.remote.delete_history, identity, prefix, operation="history clear")


__all__ = [
    "HistoryLog",
    "HistoryRecord",
    "ReviewEvent",
]
