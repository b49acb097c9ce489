"""Periodic and on-demand account syncs."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING, Any, Protocol

from stocksync.domain.reconciliation.store import StoreRunner

if TYPE_CHECKING:
    from stocksync.domain.ports import ConnectionDirectory
    from stocksync.domain.reconciliation import SyncReport

log = getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 15 * 60
DEFAULT_MAX_CONCURRENCY = 4


class Clock(Protocol):
    def now(self) -> datetime: ...

    async def sleep(self, seconds: float) -> None: ...


class SystemClock:
    def now(self) -> datetime:
        return datetime.now(UTC)

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


class AccountSyncer(Protocol):
    async def sync_account(
        self, account_id: str, *, timeout: float | None = None
    ) -> SyncReport: ...


class SyncScheduler:
    """Runs every account with active connections once per ``interval``.

    The first cycle starts immediately on :meth:`start`. At most
    ``max_concurrency`` accounts sync at once and one account never runs twice
    at the same time: a cycle skips accounts that are still running, a manual
    trigger for a running account is queued and starts when that run ends.
    Pass the orchestrator's ``store`` so account lookups queue behind its
    store work.
    """

    def __init__(
        self,
        orchestrator: AccountSyncer,
        connections: ConnectionDirectory,
        *,
        interval: float = DEFAULT_INTERVAL_SECONDS,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        account_timeout: float | None = None,
        clock: Clock | None = None,
        store: StoreRunner | None = None,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self._orchestrator = orchestrator
        self._connections = connections
        self._interval = interval
        self._account_timeout = account_timeout
        self._clock = clock or SystemClock()
        self._store = store or StoreRunner()
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._loop_task: asyncio.Task[None] | None = None
        self._inflight: dict[str, asyncio.Task[SyncReport | None]] = {}
        self._queued: set[str] = set()
        self._stopping = False
        self.last_reports: dict[str, SyncReport] = {}
        self.cycles = 0

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    def start(self) -> None:
        if self.running:
            raise RuntimeError("Scheduler already started")
        self._stopping = False
        self._loop_task = asyncio.create_task(self._loop(), name="stocksync-scheduler")
        log.info("Scheduler started (interval %ss)", self._interval)

    async def stop(self) -> None:
        """Stop the periodic loop and cancel account runs in flight."""

        self._stopping = True
        self._queued.clear()
        tasks: list[asyncio.Task[Any]] = list(self._inflight.values())
        if self._loop_task is not None:
            tasks.append(self._loop_task)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._loop_task = None
        log.info("Scheduler stopped")

    async def wait(self) -> None:
        """Block until the periodic loop ends (normally only through :meth:`stop`)."""

        if self._loop_task is not None:
            await asyncio.gather(self._loop_task, return_exceptions=True)

    async def run_cycle(self) -> list[SyncReport]:
        self.cycles += 1
        account_ids = await self._store.run(self._connections.active_account_ids)
        log.info("Sync cycle %d: %d accounts", self.cycles, len(account_ids))
        runs: list[asyncio.Task[SyncReport | None]] = []
        for account_id in account_ids:
            if account_id in self._inflight:
                log.info("Account %s is still syncing; skipping it this cycle", account_id)
                continue
            runs.append(self._spawn(account_id))
        reports = await asyncio.gather(*runs)
        return [report for report in reports if report is not None]

    def trigger_now(self, account_id: str) -> asyncio.Task[SyncReport | None] | None:
        """Start an out-of-band sync; queue it if ``account_id`` is mid-sync.

        Returns the started task, or ``None`` when the request was queued.
        """

        if self._stopping:
            raise RuntimeError("Scheduler is stopping")
        if account_id in self._inflight:
            log.info("Account %s is syncing; queued another run", account_id)
            self._queued.add(account_id)
            return None
        return self._spawn(account_id)

    def _spawn(self, account_id: str) -> asyncio.Task[SyncReport | None]:
        task = asyncio.create_task(self._run_account(account_id), name=f"sync-{account_id}")
        self._inflight[account_id] = task
        task.add_done_callback(lambda _task: self._finished(account_id))
        return task

    async def _run_account(self, account_id: str) -> SyncReport | None:
        async with self._semaphore:
            try:
                report = await self._orchestrator.sync_account(
                    account_id, timeout=self._account_timeout
                )
            except Exception:
                log.exception("Sync of account %s crashed", account_id)
                return None
        self.last_reports[account_id] = report
        return report

    def _finished(self, account_id: str) -> None:
        self._inflight.pop(account_id, None)
        if account_id in self._queued and not self._stopping:
            self._queued.discard(account_id)
            log.info("Starting queued sync of account %s", account_id)
            self._spawn(account_id)

    async def _loop(self) -> None:
        while True:
            started = self._clock.now()
            try:
                await self.run_cycle()
            except Exception:
                log.exception("Sync cycle failed")
            elapsed = (self._clock.now() - started).total_seconds()
            await self._clock.sleep(max(self._interval - elapsed, 0.0))


__all__ = [
    "DEFAULT_INTERVAL_SECONDS",
    "DEFAULT_MAX_CONCURRENCY",
    "AccountSyncer",
    "Clock",
    "SyncScheduler",
    "SystemClock",
]
