"""
Reconciler - one consistent view of schedule state per session.

When an identity becomes known, the device copy and the remote copy are
merged:

1. No identity: the view is the local store's entries. No remote calls.
2. Identity: fetch remote and local entries.
3. merged = remote ∪ local keyed by item_key; remote wins on collision
   (remote presence means the key was synced in an earlier session).
4. local_only = local keys − remote keys.
5. Each local_only entry is upserted to the remote store (one-shot backfill,
   idempotent so retries never duplicate anything).
6. merged is the session view; later writes keep it current.

If the remote list fails the session runs local-only. A failed backfill
upsert is logged and skipped; it is retried on the next reconciliation.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from studycore import config
from studycore.schedule.database import RemoteStore, call_remote
from studycore.schedule.entry import ScheduleEntry
from studycore.schedule.persistence import LocalStore

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    """Outcome of one reconciliation pass."""
    identity: Optional[str]
    remote_available: bool
    view: dict[str, ScheduleEntry] = field(default_factory=dict)
    local_only: list[str] = field(default_factory=list)
    backfilled: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


class Reconciler:
    """
    Owns the session-scoped cache of schedule entries.

    The cache is empty until ``reconcile()`` runs; construct one Reconciler
    per session (and per test).
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
        self._view: dict[str, ScheduleEntry] = {}
        self._identity: Optional[str] = None
        self._remote_available = False
        self._initialized = False
        self._in_flight: Optional[asyncio.Future] = None
        self._in_flight_identity: Optional[str] = None
        self._last_result: Optional[ReconcileResult] = None

    # ---- Session state ----

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def identity(self) -> Optional[str]:
        """Identity the current view was reconciled for."""
        return self._identity

    @property
    def active_identity(self) -> Optional[str]:
        """Identity to write through to, or None when running local-only."""
        if self._identity is not None and self._remote_available:
            return self._identity
        return None

    @property
    def last_result(self) -> Optional[ReconcileResult]:
        return self._last_result

    def is_current(self, identity: Optional[str]) -> bool:
        return self._initialized and self._identity == identity

    def invalidate(self) -> None:
        """Mark the view stale so the next access reconciles again."""
        self._initialized = False

    # ---- Cache access ----

    def get(self, item_key: str) -> Optional[ScheduleEntry]:
        return self._view.get(item_key)

    def entries(self) -> list[ScheduleEntry]:
        return list(self._view.values())

    def apply(self, entry: ScheduleEntry) -> None:
        self._view[entry.item_key] = entry

    def discard(self, item_key: str) -> None:
        self._view.pop(item_key, None)

    def discard_prefix(self, prefix: Optional[str]) -> None:
        if not prefix:
            self._view.clear()
            return
        for key in [k for k in self._view if k.startswith(prefix)]:
            del self._view[key]

    # ---- Reconciliation ----

    async def reconcile(self, identity: Optional[str], *, force: bool = False) -> ReconcileResult:
        """
        Build the session view for *identity*.

        A call made while another reconciliation is in flight waits for that
        one instead of starting a second backfill. A finished reconciliation
        for the same identity is reused unless *force* is set.
        """
        while self._in_flight is not None and not self._in_flight.done():
            running = self._in_flight
            if self._in_flight_identity == identity:
                logger.debug("Reconciliation already running, joining it")
                return await asyncio.shield(running)
            # Identity changed mid-run; let the old pass finish first.
            await asyncio.wait({running})

        if not force and self.is_current(identity) and self._last_result is not None:
            return self._last_result

        task = asyncio.ensure_future(self._run(identity))
        self._in_flight = task
        self._in_flight_identity = identity
        try:
            return await asyncio.shield(task)
        finally:
            if self._in_flight is task and task.done():
                self._in_flight = None

    async def _run(self, identity: Optional[str]) -> ReconcileResult:
        local_entries = await asyncio.to_thread(self.local.list_all)

        if identity is None or self.remote is None:
            if identity is not None:
                logger.info("No remote store configured; %s runs local-only", identity)
            result = ReconcileResult(
                identity=identity,
                remote_available=False,
                view={entry.item_key: entry for entry in local_entries},
            )
            return self._install(result)

        remote_entries = await call_remote(
            self.remote.list_all,
            identity,
            timeout=self.remote_timeout,
            operation="list_all",
        )
        if not isinstance(remote_entries, list):
            logger.warning("Remote store unavailable for %s; using local view this session", identity)
            result = ReconcileResult(
                identity=identity,
                remote_available=False,
                view={entry.item_key: entry for entry in local_entries},
            )
            return self._install(result)

        merged = merge_views(remote_entries, local_entries)
        remote_keys = {entry.item_key for entry in remote_entries}
        local_only = sorted(entry.item_key for entry in local_entries if entry.item_key not in remote_keys)

        result = ReconcileResult(
            identity=identity,
            remote_available=True,
            view=merged,
            local_only=local_only,
        )
        await self._backfill(identity, [merged[key] for key in local_only], result)

        if local_only:
            logger.info(
                "Backfilled %d/%d local-only entries for %s",
                len(result.backfilled), len(local_only), identity
            )
        return self._install(result)

    async def _backfill(
        self,
        identity: str,
        entries: Iterable[ScheduleEntry],
        result: ReconcileResult
    ) -> None:
        for entry in entries:
            ok = await call_remote(
                self.remote.upsert,
                identity,
                entry,
                timeout=self.remote_timeout,
                default=False,
                operation="backfill upsert",
            )
            if ok is True:
                result.backfilled.append(entry.item_key)
            else:
                logger.warning("Backfill of %s for %s failed; will retry next session", entry.item_key, identity)
                result.failed.append(entry.item_key)

    def _install(self, result: ReconcileResult) -> ReconcileResult:
        self._view = dict(result.view)
        self._identity = result.identity
        self._remote_available = result.remote_available
        self._initialized = True
        self._last_result = result
        return result


def merge_views(
    remote_entries: Iterable[ScheduleEntry],
    local_entries: Iterable[ScheduleEntry]
) -> dict[str, ScheduleEntry]:
    """
    Union of both entry sets keyed by item_key; remote wins on collision.

    No timestamps are compared.
    """
    merged = {entry.item_key: entry for entry in local_entries}
    merged.update({entry.item_key: entry for entry in remote_entries})
    return merged
