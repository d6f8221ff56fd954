"""
Schedule Service - the public face of the review scheduler.

Orchestrates the pieces:
1. Load: the Reconciler builds the session view for the current identity
2. Mutate: the calculator computes the new entry, which is written to the
   local store first and then to the remote store (when signed in)
3. Record: the History Log receives a change record and/or a review event
4. Query: due lists are answered from the reconciled in-memory view

All operations are coroutines. Scripts can use the ``*_sync`` wrappers.

A remote write that fails or times out is logged and never undoes the local
write; the next reconciliation backfills anything the remote store missed.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Iterable, Optional, TypeVar, Union

from studycore import config
from studycore.analytics import ReviewStats, category_counts, compute_review_stats
from studycore.history import HistoryLog, HistoryRecord, ReviewEvent
from studycore.identity import IdentityProvider
from studycore.reconciler import ReconcileResult, Reconciler
from studycore.schedule.calculator import apply_category, apply_review
from studycore.schedule.constants import UPCOMING_WINDOW, Category, ItemKind, coerce_category
from studycore.schedule.database import RemoteStore, call_remote
from studycore.schedule.entry import ScheduleEntry, ensure_utc, item_kind, utc_now
from studycore.schedule.persistence import LocalStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


def run_sync(awaitable: Awaitable[T]) -> T:
    """Run a service coroutine to completion from synchronous code."""
    return asyncio.run(awaitable)


def _due_order(entry: ScheduleEntry) -> tuple:
    return (entry.next_review_at, entry.item_key)


def _log_load_failure(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Background reconciliation failed: %s", exc, exc_info=exc)


def _resolve_prefix(prefix: Union[ItemKind, str, None]) -> Optional[str]:
    if isinstance(prefix, ItemKind):
        return prefix.prefix
    return prefix or None


class ScheduleService:
    """
    Record reviews, re-rate items and answer due queries for one learner.

    Args:
        local: Device store (always written)
        remote: Identity-scoped store, or None for local-only operation
        identity_provider: Source of the signed-in identity; None means the
            learner is always anonymous
        clock: Returns the current instant (injectable for tests)
        remote_timeout: Seconds per remote call; defaults to
            ``REMOTE_TIMEOUT_SECONDS``
    """

    def __init__(
        self,
        local: LocalStore,
        remote: Optional[RemoteStore] = None,
        identity_provider: Optional[IdentityProvider] = None,
        *,
        clock: Callable[[], datetime] = utc_now,
        remote_timeout: Optional[float] = None
    ):
        self.local = local
        self.remote = remote
        self.identity_provider = identity_provider
        self.clock = clock
        self.remote_timeout = remote_timeout if remote_timeout is not None else config.get_remote_timeout()

        self.reconciler = Reconciler(local, remote, remote_timeout=self.remote_timeout)
        self.history_log = HistoryLog(local, remote, remote_timeout=self.remote_timeout)

        self._pending_load: Optional[asyncio.Task] = None
        self._unsubscribe: Optional[Callable[[], None]] = None
        if identity_provider is not None:
            self._unsubscribe = identity_provider.subscribe(self._on_identity_change)

    @classmethod
    def from_env(cls, identity_provider: Optional[IdentityProvider] = None) -> "ScheduleService":
        """Build a service from ``LOCAL_DB_PATH`` / ``DATABASE_URL``."""
        local = LocalStore()
        local.init_db()
        remote = RemoteStore.from_env()
        if remote is not None:
            remote.init_db()
        return cls(local, remote, identity_provider)

    def close(self) -> None:
        """Stop listening for identity transitions."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    # ---- Session ----

    def current_identity(self) -> Optional[str]:
        if self.identity_provider is None:
            return None
        return self.identity_provider.current_identity()

    def _now(self) -> datetime:
        return ensure_utc(self.clock())

    def _on_identity_change(self, identity: Optional[str]) -> None:
        self.reconciler.invalidate()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop: the next operation reconciles lazily.
            return
        self._pending_load = loop.create_task(self.reconciler.reconcile(identity, force=True))
        self._pending_load.add_done_callback(_log_load_failure)

    async def load(self, *, force: bool = False) -> ReconcileResult:
        """Reconcile the stores for the current identity and build the session view."""
        return await self.reconciler.reconcile(self.current_identity(), force=force)

    async def _session(self) -> Optional[str]:
        """Ensure the view is current; return the identity to write through to."""
        identity = self.current_identity()
        if not self.reconciler.is_current(identity):
            await self.reconciler.reconcile(identity)
        return self.reconciler.active_identity

    async def _write_through(self, entry: ScheduleEntry, identity: Optional[str]) -> bool:
        """
        Persist an entry locally, then remotely when signed in.

        Returns:
            True if the remote copy was written
        """
        if not await asyncio.to_thread(self.local.upsert, entry):
            logger.warning("Local write for %s failed; keeping in-memory copy", entry.item_key)
        self.reconciler.apply(entry)

        if identity is None or self.remote is None:
            return False
        synced = await call_remote(
            self.remote.upsert,
            identity,
            entry,
            timeout=self.remote_timeout,
            default=False,
            operation="upsert",
        )
        if synced is not True:
            logger.warning("Remote write for %s failed; kept locally until next sync", entry.item_key)
            return False
        return True

    # ---- Mutations ----

    async def record_review(
        self,
        item_key: str,
        category: Union[Category, int, str, None] = None,
        *,
        time_spent_seconds: Optional[int] = None,
        was_recalled_correctly: Optional[bool] = None
    ) -> ScheduleEntry:
        """
        Record a completed review of an item.

        Args:
            item_key: ``lesson:<path>`` or ``word:<word>``
            category: Rating given at review time; None keeps the stored one
                (lessons ignore it)
            time_spent_seconds: Optional time on task
            was_recalled_correctly: Optional recall outcome

        Returns:
            The updated ScheduleEntry
        """
        kind = item_kind(item_key)
        category = coerce_category(category)
        if kind is ItemKind.LESSON and category is not None:
            logger.debug("Ignoring category for lesson %s", item_key)
            category = None

        identity = await self._session()
        previous = self.reconciler.get(item_key)
        now = self._now()
        entry = apply_review(previous, item_key, category, now)

        await self._write_through(entry, identity)

        old_category = previous.category if previous is not None else None
        if entry.category != old_category:
            await self.history_log.append_change(
                HistoryRecord(item_key, old_category, entry.category, now),
                identity,
            )
        await self.history_log.append_review(
            ReviewEvent(
                item_key=item_key,
                category_at_review=entry.category,
                repetition_count=entry.repetition_count,
                reviewed_at=now,
                time_spent_seconds=time_spent_seconds,
                was_recalled_correctly=was_recalled_correctly,
            ),
            identity,
        )

        logger.debug(
            "Reviewed %s: count=%d next=%s",
            item_key, entry.repetition_count, entry.next_review_at.isoformat()
        )
        return entry

    async def set_category(
        self,
        item_key: str,
        new_category: Union[Category, int, str]
    ) -> ScheduleEntry:
        """
        Re-rate a word, restarting its schedule from now.

        Raises:
            ValueError: For lessons, unknown categories or a missing category
        """
        category = coerce_category(new_category)
        if category is None:
            raise ValueError("set_category requires a category")
        now = self._now()
        entry = apply_category(item_key, category, now)

        identity = await self._session()
        previous = self.reconciler.get(item_key)
        await self._write_through(entry, identity)

        old_category = previous.category if previous is not None else None
        if category != old_category:
            await self.history_log.append_change(
                HistoryRecord(item_key, old_category, category, now),
                identity,
            )
        return entry

    async def remove(self, item_key: str) -> bool:
        """
        Delete one entry from both stores (e.g. un-completing a lesson).

        History is left untouched.

        Returns:
            True if the remote copy was removed as well
        """
        item_kind(item_key)
        identity = await self._session()
        await asyncio.to_thread(self.local.delete, item_key)
        self.reconciler.discard(item_key)

        if identity is None or self.remote is None:
            return False
        removed = await call_remote(
            self.remote.delete, identity, item_key,
            timeout=self.remote_timeout,
            default=False,
            operation="delete",
        )
        return removed is True

    async def reset_all(self, prefix: Union[ItemKind, str, None] = None) -> bool:
        """
        Delete all entries (or those whose key starts with *prefix*) from both
        stores and clear the matching history.

        Returns:
            True if the remote copy was reset as well
        """
        key_prefix = _resolve_prefix(prefix)
        identity = await self._session()

        await asyncio.to_thread(self.local.delete_all, key_prefix)
        self.reconciler.discard_prefix(key_prefix)
        history_cleared = await self.history_log.clear(identity, key_prefix)

        if identity is None or self.remote is None:
            logger.info("Reset local progress (prefix=%r)", key_prefix)
            return False

        deleted = await call_remote(
            self.remote.delete_all, identity, key_prefix,
            timeout=self.remote_timeout,
            default=False,
            operation="bulk delete",
        )
        logger.info("Reset progress for %s (prefix=%r, remote=%s)", identity, key_prefix, deleted is True)
        return deleted is True and history_cleared

    # ---- Queries ----

    def _select(
        self,
        item_keys: Optional[Iterable[str]] = None,
        kind: Optional[ItemKind] = None
    ) -> list[ScheduleEntry]:
        entries = self.reconciler.entries()
        if item_keys is not None:
            wanted = set(item_keys)
            entries = [e for e in entries if e.item_key in wanted]
        if kind is not None:
            kind = ItemKind(kind)
            entries = [e for e in entries if e.kind is kind]
        return entries

    async def due_now(
        self,
        item_keys: Optional[Iterable[str]] = None,
        kind: Optional[ItemKind] = None
    ) -> list[ScheduleEntry]:
        """
        Entries whose next review has arrived, most overdue first.

        Args:
            item_keys: Optional subset of keys to consider
            kind: Optional item kind filter
        """
        await self._session()
        now = self._now()
        due = [
            e for e in self._select(item_keys, kind)
            if e.is_due(now)
        ]
        return sorted(due, key=_due_order)

    async def due_within(
        self,
        window: timedelta = UPCOMING_WINDOW,
        kind: Optional[ItemKind] = None
    ) -> list[ScheduleEntry]:
        """
        Entries becoming due in ``(now, now + window]``, soonest first.

        Items already due are not included; see due_now.
        """
        if window < timedelta(0):
            raise ValueError(f"window must be non-negative, got {window}")
        await self._session()
        now = self._now()
        horizon = now + window
        upcoming = [
            e for e in self._select(kind=kind)
            if e.next_review_at is not None and now < e.next_review_at <= horizon
        ]
        return sorted(upcoming, key=_due_order)

    async def get(self, item_key: str) -> Optional[ScheduleEntry]:
        item_kind(item_key)
        await self._session()
        return self.reconciler.get(item_key)

    async def entries(self, kind: Optional[ItemKind] = None) -> list[ScheduleEntry]:
        """All entries in the session view, ordered by item key."""
        await self._session()
        return sorted(self._select(kind=kind), key=lambda e: e.item_key)

    async def history(self, item_key: Optional[str] = None) -> list[HistoryRecord]:
        """Category changes, newest first."""
        identity = await self._session()
        return await self.history_log.changes(identity, item_key)

    async def reviews(self, item_key: Optional[str] = None) -> list[ReviewEvent]:
        """Review events, newest first."""
        identity = await self._session()
        return await self.history_log.reviews(identity, item_key)

    async def category_counts(self) -> dict[Category, int]:
        """Number of words per category (every category present, zeros included)."""
        return category_counts(await self.entries(ItemKind.WORD))

    async def stats(self, kind: Optional[ItemKind] = None) -> ReviewStats:
        """Review dashboard numbers for the current session."""
        entries = await self.entries(kind)
        events = await self.reviews()
        if kind is not None:
            events = [e for e in events if e.item_key.startswith(ItemKind(kind).prefix)]
        return compute_review_stats(entries, events, self._now())

    # ---- Synchronous wrappers ----

    def record_review_sync(self, item_key: str, category: Any = None, **kwargs: Any) -> ScheduleEntry:
        return run_sync(self.record_review(item_key, category, **kwargs))

    def set_category_sync(self, item_key: str, new_category: Any) -> ScheduleEntry:
        return run_sync(self.set_category(item_key, new_category))

    def due_now_sync(
        self,
        item_keys: Optional[Iterable[str]] = None,
        kind: Optional[ItemKind] = None
    ) -> list[ScheduleEntry]:
        return run_sync(self.due_now(item_keys, kind))

    def due_within_sync(
        self,
        window: timedelta = UPCOMING_WINDOW,
        kind: Optional[ItemKind] = None
    ) -> list[ScheduleEntry]:
        return run_sync(self.due_within(window, kind))

    def reset_all_sync(self, prefix: Union[ItemKind, str, None] = None) -> bool:
        return run_sync(self.reset_all(prefix))
