from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import pytest

from stocksync.domain.reconciliation import SyncReport
from stocksync.domain.scheduling import SyncScheduler

if TYPE_CHECKING:
    from collections.abc import Callable
    from uuid import UUID

    from stocksync.domain.model import Connection

T0 = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)


class FakeClock:
    """Advances on sleep; the sleep numbered ``cycles`` never returns."""

    def __init__(self, *, cycles: int = 1) -> None:
        self.current = T0
        self.sleeps: list[float] = []
        self._cycles = cycles

    def now(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        if len(self.sleeps) >= self._cycles:
            await asyncio.Event().wait()
        self.advance(seconds)


class FakeSyncer:
    def __init__(self, clock: FakeClock | None = None, *, duration: float = 0.0) -> None:
        self.clock = clock
        self.duration = duration
        self.calls: list[tuple[str, float | None]] = []
        self.gates: dict[str, asyncio.Event] = {}
        self.failing: set[str] = set()
        self.running = 0
        self.max_running = 0

    async def sync_account(self, account_id: str, *, timeout: float | None = None) -> SyncReport:
        self.calls.append((account_id, timeout))
        self.running += 1
        self.max_running = max(self.max_running, self.running)
        try:
            if self.clock is not None:
                self.clock.advance(self.duration)
            gate = self.gates.get(account_id)
            if gate is not None:
                await gate.wait()
            else:
                await asyncio.sleep(0)
            if account_id in self.failing:
                raise RuntimeError(f"sync of {account_id} exploded")
            return SyncReport(account_id=account_id, started_at=T0)
        finally:
            self.running -= 1


class FakeDirectory:
    def __init__(self, account_ids: list[str]) -> None:
        self.account_ids = account_ids

    def get_active_connections(self, account_id: str) -> list[Connection]:
        return []

    def mark_needs_reauth(self, connection_id: UUID) -> None:
        pass

    def active_account_ids(self) -> list[str]:
        return list(self.account_ids)

    def record_sync_attempt(self, connection_id: UUID, *, at: datetime, succeeded: bool) -> None:
        pass


async def _until(predicate: Callable[[], bool], *, rounds: int = 2000) -> None:
    # real sleeps, so account lookups on the store thread get to finish
    for _ in range(rounds):
        if predicate():
            return
        await asyncio.sleep(0.001)
    raise AssertionError("condition never became true")


def test_first_cycle_starts_immediately() -> None:
    clock = FakeClock(cycles=1)
    syncer = FakeSyncer()

    async def scenario() -> SyncScheduler:
        scheduler = SyncScheduler(
            syncer, FakeDirectory(["b", "a"]), interval=900, account_timeout=30, clock=clock
        )
        scheduler.start()
        with pytest.raises(RuntimeError):
            scheduler.start()
        await _until(lambda: len(clock.sleeps) == 1)
        await scheduler.stop()
        return scheduler

    scheduler = asyncio.run(scenario())

    assert sorted(syncer.calls) == [("a", 30), ("b", 30)]
    assert scheduler.cycles == 1
    assert set(scheduler.last_reports) == {"a", "b"}
    assert clock.sleeps == [900.0]
    assert not scheduler.running


def test_interval_is_measured_from_cycle_start() -> None:
    clock = FakeClock(cycles=2)
    syncer = FakeSyncer(clock, duration=100)

    async def scenario() -> SyncScheduler:
        scheduler = SyncScheduler(syncer, FakeDirectory(["a"]), interval=900, clock=clock)
        scheduler.start()
        await _until(lambda: len(clock.sleeps) == 2)
        await scheduler.stop()
        return scheduler

    scheduler = asyncio.run(scenario())

    assert clock.sleeps == [800.0, 800.0]
    assert scheduler.cycles == 2
    assert [account for account, _timeout in syncer.calls] == ["a", "a"]


def test_cycle_skips_accounts_that_are_still_running() -> None:
    syncer = FakeSyncer()

    async def scenario() -> list[SyncReport]:
        gate = asyncio.Event()
        syncer.gates["a"] = gate
        scheduler = SyncScheduler(syncer, FakeDirectory(["a", "b"]), clock=FakeClock())
        first = scheduler.trigger_now("a")
        assert first is not None
        await _until(lambda: syncer.running == 1)
        reports = await scheduler.run_cycle()
        gate.set()
        await first
        return reports

    reports = asyncio.run(scenario())

    assert [report.account_id for report in reports] == ["b"]
    assert syncer.calls == [("a", None), ("b", None)]


def test_trigger_for_a_running_account_is_queued() -> None:
    syncer = FakeSyncer()

    async def scenario() -> SyncScheduler:
        gate = asyncio.Event()
        syncer.gates["a"] = gate
        scheduler = SyncScheduler(syncer, FakeDirectory(["a"]), clock=FakeClock())
        first = scheduler.trigger_now("a")
        assert first is not None
        await _until(lambda: syncer.running == 1)
        assert scheduler.trigger_now("a") is None
        assert scheduler.trigger_now("a") is None
        gate.set()
        await first
        await _until(lambda: len(syncer.calls) == 2 and syncer.running == 0)
        await asyncio.sleep(0)
        return scheduler

    scheduler = asyncio.run(scenario())

    assert syncer.calls == [("a", None), ("a", None)]
    assert set(scheduler.last_reports) == {"a"}


def test_concurrency_is_bounded() -> None:
    syncer = FakeSyncer()
    accounts = ["a", "b", "c", "d", "e"]

    async def scenario() -> list[SyncReport]:
        gate = asyncio.Event()
        syncer.gates = dict.fromkeys(accounts, gate)
        scheduler = SyncScheduler(
            syncer, FakeDirectory(accounts), max_concurrency=2, clock=FakeClock()
        )
        cycle = asyncio.create_task(scheduler.run_cycle())
        await _until(lambda: syncer.running == 2)
        for _ in range(20):
            await asyncio.sleep(0)
        assert syncer.running == 2
        gate.set()
        return await cycle

    reports = asyncio.run(scenario())

    assert syncer.max_running == 2
    assert sorted(report.account_id for report in reports) == accounts


def test_one_crashing_account_does_not_stop_the_cycle() -> None:
    syncer = FakeSyncer()
    syncer.failing.add("b")

    async def scenario() -> list[SyncReport]:
        scheduler = SyncScheduler(syncer, FakeDirectory(["a", "b", "c"]), clock=FakeClock())
        return await scheduler.run_cycle()

    reports = asyncio.run(scenario())

    assert [report.account_id for report in reports] == ["a", "c"]


def test_stop_cancels_running_syncs_and_refuses_new_triggers() -> None:
    syncer = FakeSyncer()

    async def scenario() -> SyncScheduler:
        syncer.gates["a"] = asyncio.Event()
        scheduler = SyncScheduler(syncer, FakeDirectory(["a"]), clock=FakeClock())
        scheduler.trigger_now("a")
        await _until(lambda: syncer.running == 1)
        await scheduler.stop()
        return scheduler

    scheduler = asyncio.run(scenario())

    assert syncer.running == 0
    assert scheduler.last_reports == {}
    with pytest.raises(RuntimeError, match="stopping"):
        scheduler.trigger_now("a")


@pytest.mark.parametrize(("interval", "max_concurrency"), [(0, 1), (60, 0)])
def test_invalid_settings_are_rejected(interval: float, max_concurrency: int) -> None:
    with pytest.raises(ValueError, match="must be"):
        SyncScheduler(
            FakeSyncer(), FakeDirectory([]), interval=interval, max_concurrency=max_concurrency
        )
