"""Run one sync cycle for one account.

fetch (concurrent per connection) -> consolidate -> detect -> apply canonical
changes -> push (concurrent per platform). Every stage contains its own
failures; :meth:`SyncOrchestrator.sync_account` returns a report instead of
raising. Store reads and writes run on the store thread of a
:class:`~stocksync.domain.reconciliation.store.StoreRunner`, so the event loop
keeps serving fetches and pushes meanwhile.
"""

from __future__ import annotations

import asyncio
from collections import Counter
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from logging import getLogger
from typing import TYPE_CHECKING

from stocksync.domain.errors import ErrorKind, Failure, Success, attempt
from stocksync.domain.model import Capability, EntityType
from stocksync.domain.reconciliation.authority import set_field_value
from stocksync.domain.reconciliation.consolidate import Consolidator
from stocksync.domain.reconciliation.detect import ChangeDetector
from stocksync.domain.reconciliation.graph import CatalogSnapshot
from stocksync.domain.reconciliation.identity import IdentityResolver
from stocksync.domain.reconciliation.push import PushStatus, UpdatePusher
from stocksync.domain.reconciliation.store import StoreRunner

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from uuid import UUID

    from stocksync.domain.model import (
        Connection,
        InventoryLevel,
        Location,
        Platform,
        Product,
        Variant,
    )
    from stocksync.domain.ports import (
        ConnectionDirectory,
        ConnectorLookup,
        PlatformConnector,
        UnitOfWorkFactory,
    )
    from stocksync.domain.reconciliation.actions import FieldChange
    from stocksync.domain.reconciliation.authority import FieldAuthorityTable
    from stocksync.domain.reconciliation.graph import (
        ConsolidatedGraph,
        Observed,
        SkippedEntity,
    )
    from stocksync.domain.reconciliation.push import PushOutcome, RetrySchedule, Sleep

log = getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class SyncState(StrEnum):
    IDLE = "idle"
    FETCHING = "fetching"
    CONSOLIDATING = "consolidating"
    DETECTING_CHANGES = "detecting_changes"
    PUSHING = "pushing"
    FAILED = "failed"


class SyncStatus(StrEnum):
    SUCCEEDED = "succeeded"
    PARTIAL = "partial"
    FAILED = "failed"
    SKIPPED = "skipped"
    CANCELLED = "cancelled"


@dataclass(frozen=True, slots=True, kw_only=True)
class FetchReport:
    connection_id: UUID
    platform: Platform
    locations: int = 0
    products: int = 0
    rejected: int = 0
    failure: Failure | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None


@dataclass(slots=True, kw_only=True)
class SyncReport:
    account_id: str
    started_at: datetime
    status: SyncStatus = SyncStatus.SUCCEEDED
    finished_at: datetime | None = None
    fetches: list[FetchReport] = field(default_factory=list["FetchReport"])
    created: Counter[EntityType] = field(default_factory=Counter[EntityType])
    updated: Counter[EntityType] = field(default_factory=Counter[EntityType])
    skipped: list[SkippedEntity] = field(default_factory=list["SkippedEntity"])
    outcomes: list[PushOutcome] = field(default_factory=list["PushOutcome"])
    failure: Failure | None = None

    @property
    def pushed(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.succeeded)

    @property
    def push_failures(self) -> list[PushOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.succeeded]

    def summary(self) -> str:
        created = sum(self.created.values())
        updated = sum(self.updated.values())
        text = (
            f"{self.account_id}: {self.status} "
            f"(created {created}, updated {updated}, skipped {len(self.skipped)}, "
            f"pushed {self.pushed}/{len(self.outcomes)})"
        )
        if self.failure is not None:
            text += f" - {self.failure}"
        return text


class SyncOrchestrator:
    def __init__(
        self,
        connections: ConnectionDirectory,
        connectors: ConnectorLookup,
        unit_of_work_factory: UnitOfWorkFactory,
        *,
        authority: FieldAuthorityTable | None = None,
        retry: RetrySchedule | None = None,
        clock: Callable[[], datetime] = _utcnow,
        sleep: Sleep = asyncio.sleep,
        store: StoreRunner | None = None,
    ) -> None:
        self._connections = connections
        self._store = store or StoreRunner()
        self._connectors = connectors
        self._unit_of_work_factory = unit_of_work_factory
        self._clock = clock
        self._consolidator = Consolidator(
            IdentityResolver(unit_of_work_factory, clock=clock),
            unit_of_work_factory,
            clock=clock,
        )
        self._detector = ChangeDetector(
            authority,
            supports=connectors.supports,
            supports_field=connectors.supports_field,
        )
        self._pusher = UpdatePusher(
            connectors,
            unit_of_work_factory,
            connections,
            retry=retry,
            sleep=sleep,
            store=self._store,
        )
        self._states: dict[str, SyncState] = {}
        self._running: set[str] = set()

    def state_for(self, account_id: str) -> SyncState:
        return self._states.get(account_id, SyncState.IDLE)

    @property
    def store(self) -> StoreRunner:
        return self._store

    def is_running(self, account_id: str) -> bool:
        return account_id in self._running

    def close(self) -> None:
        """Wait for pending store work and stop the store thread."""

        self._store.close()

    async def sync_account(self, account_id: str, *, timeout: float | None = None) -> SyncReport:
        """Run one full cycle for ``account_id``.

        An overlapping call for the same account returns a ``skipped`` report
        right away. Hitting ``timeout`` yields a ``cancelled`` report; cancelling
        the calling task is recorded and re-raised. Writes persisted before the
        interruption stay.
        """

        report = SyncReport(account_id=account_id, started_at=self._clock())
        if account_id in self._running:
            log.info("Sync of account %s already running; skipping", account_id)
            report.status = SyncStatus.SKIPPED
            report.finished_at = self._clock()
            return report

        self._running.add(account_id)
        log.info("Starting sync of account %s", account_id)
        try:
            async with asyncio.timeout(timeout):
                await self._run(report)
        except TimeoutError:
            log.warning("Sync of account %s timed out after %ss", account_id, timeout)
            report.status = SyncStatus.CANCELLED
            report.failure = Failure(ErrorKind.TRANSIENT, f"timed out after {timeout}s")
        except asyncio.CancelledError:
            log.warning("Sync of account %s cancelled", account_id)
            report.status = SyncStatus.CANCELLED
            report.failure = Failure(ErrorKind.INTERNAL, "cancelled")
            raise
        finally:
            self._running.discard(account_id)
            self._states[account_id] = SyncState.IDLE
            report.finished_at = self._clock()
            log.info("Finished sync %s", report.summary())
        return report

    async def _run(self, report: SyncReport) -> None:
        account_id = report.account_id
        connections: list[Connection] = []
        try:
            self._set_state(account_id, SyncState.FETCHING)
            active = await self._store.run(self._connections.get_active_connections, account_id)
            connections = _one_per_platform(active)
            if not connections:
                log.info("Account %s has no active connections", account_id)
                report.status = SyncStatus.SKIPPED
                return

            snapshots = await self._fetch_all(connections, report)
            if not snapshots:
                report.status = SyncStatus.FAILED
                report.failure = next(
                    (fetch.failure for fetch in report.fetches if fetch.failure is not None),
                    Failure(ErrorKind.INTERNAL, "no connection could be fetched"),
                )
                self._set_state(account_id, SyncState.FAILED)
                return

            self._set_state(account_id, SyncState.CONSOLIDATING)
            graph = await self._store.run(self._consolidator.consolidate, account_id, snapshots)
            report.created.update(graph.created)
            report.skipped.extend(graph.skipped)

            self._set_state(account_id, SyncState.DETECTING_CHANGES)
            detection = self._detector.detect(graph)
            updated = await self._store.run(
                self._apply_canonical, graph, detection.canonical_changes
            )
            report.updated.update(updated)

            self._set_state(account_id, SyncState.PUSHING)
            fetched = {snapshot.connection_id for snapshot in snapshots}
            report.outcomes.extend(
                await self._pusher.push(
                    detection.actions,
                    graph=graph,
                    connections={c.platform: c for c in connections if c.id in fetched},
                )
            )
            report.status = _final_status(report)
        except Exception as exc:
            log.exception("Sync of account %s failed", account_id)
            self._set_state(account_id, SyncState.FAILED)
            report.status = SyncStatus.FAILED
            report.failure = Failure.from_error(exc)
        finally:
            if connections:
                await self._store.run(self._record_attempts, connections, report)

    async def _fetch_all(
        self, connections: Sequence[Connection], report: SyncReport
    ) -> list[CatalogSnapshot]:
        results = await asyncio.gather(*(self._fetch_one(connection) for connection in connections))
        snapshots: list[CatalogSnapshot] = []
        for fetch, snapshot in results:
            report.fetches.append(fetch)
            if snapshot is not None:
                snapshots.append(snapshot)
        return snapshots

    async def _fetch_one(
        self, connection: Connection
    ) -> tuple[FetchReport, CatalogSnapshot | None]:
        connector = self._connectors.get(connection.platform)
        if connector is None:
            failure = Failure(ErrorKind.CONFIGURATION, f"no connector for {connection.platform}")
            log.warning("Cannot fetch %s: %s", connection, failure.message)
            return self._fetch_failed(connection, failure), None

        try:
            result = await attempt(self._fetch(connector, connection))
        except Exception as exc:
            log.exception("Unexpected error fetching %s", connection)
            return self._fetch_failed(connection, Failure.from_error(exc)), None

        match result:
            case Success(value=snapshot):
                log.info(
                    "Fetched %s: %d locations, %d products, %d rejected records",
                    connection,
                    len(snapshot.locations),
                    len(snapshot.products),
                    len(snapshot.rejected),
                )
                fetch = FetchReport(
                    connection_id=connection.id,
                    platform=connection.platform,
                    locations=len(snapshot.locations),
                    products=len(snapshot.products),
                    rejected=len(snapshot.rejected),
                )
                return fetch, snapshot
            case Failure(kind=ErrorKind.AUTH) as failure:
                log.warning("Authentication failed for %s: %s", connection, failure.message)
                await self._store.run(self._connections.mark_needs_reauth, connection.id)
                return self._fetch_failed(connection, failure), None
            case Failure() as failure:
                log.warning("Fetching %s failed: %s", connection, failure)
                return self._fetch_failed(connection, failure), None

    async def _fetch(self, connector: PlatformConnector, connection: Connection) -> CatalogSnapshot:
        locations = (
            await connector.fetch_locations(connection)
            if self._connectors.supports(connection.platform, Capability.FETCH_LOCATIONS)
            else []
        )
        catalog = await connector.fetch_catalog(connection)
        return CatalogSnapshot(
            platform=connection.platform,
            connection_id=connection.id,
            locations=tuple(locations),
            products=tuple(catalog.products),
            rejected=tuple(catalog.rejected),
        )

    @staticmethod
    def _fetch_failed(connection: Connection, failure: Failure) -> FetchReport:
        return FetchReport(
            connection_id=connection.id, platform=connection.platform, failure=failure
        )

    def _apply_canonical(
        self, graph: ConsolidatedGraph, changes: Sequence[FieldChange]
    ) -> Counter[EntityType]:
        """Write authoritative values into the canonical store before pushing."""

        products: dict[UUID, Product] = {}
        variants: dict[UUID, Variant] = {}
        locations: dict[UUID, Location] = {}
        levels: dict[tuple[UUID, UUID], InventoryLevel] = {}
        for change in changes:
            entity_id = change.entity_id
            match change.entity_type:
                case EntityType.PRODUCT:
                    _collect(graph.products.get(entity_id), change, products, entity_id)
                case EntityType.VARIANT:
                    _collect(graph.variants.get(entity_id), change, variants, entity_id)
                case EntityType.LOCATION:
                    _collect(graph.locations.get(entity_id), change, locations, entity_id)
                case EntityType.INVENTORY_LEVEL if change.location_id is not None:
                    key = (entity_id, change.location_id)
                    _collect(graph.levels.get(key), change, levels, key)
                case _:
                    log.debug("Ignoring canonical change without a location: %s", change)

        updated = Counter(
            {
                EntityType.PRODUCT: len(products),
                EntityType.VARIANT: len(variants),
                EntityType.LOCATION: len(locations),
                EntityType.INVENTORY_LEVEL: len(levels),
            }
        )
        if not updated.total():
            return Counter()

        now = self._clock()
        with self._unit_of_work_factory() as uow:
            repos = uow.repositories
            for product in products.values():
                product.updated_at = now
                repos.products.update(product)
            for variant in variants.values():
                variant.updated_at = now
                repos.variants.update(variant)
            for location in locations.values():
                location.updated_at = now
                repos.locations.update(location)
            for level in levels.values():
                level.updated_at = now
                repos.inventory_levels.save(level)
            uow.commit()

        log.info("Applied %d canonical changes for account %s", len(changes), graph.account_id)
        return +updated

    def _record_attempts(self, connections: Sequence[Connection], report: SyncReport) -> None:
        at = report.finished_at or self._clock()
        fetched = {fetch.connection_id for fetch in report.fetches if fetch.ok}
        failed_platforms = {
            outcome.action.target
            for outcome in report.outcomes
            if outcome.status not in {PushStatus.SUCCEEDED, PushStatus.ALREADY_PRESENT}
        }
        for connection in connections:
            succeeded = (
                report.status in {SyncStatus.SUCCEEDED, SyncStatus.PARTIAL}
                and connection.id in fetched
                and connection.platform not in failed_platforms
            )
            self._connections.record_sync_attempt(connection.id, at=at, succeeded=succeeded)

    def _set_state(self, account_id: str, state: SyncState) -> None:
        log.debug("Account %s: %s -> %s", account_id, self.state_for(account_id), state)
        self._states[account_id] = state


def _one_per_platform(connections: Sequence[Connection]) -> list[Connection]:
    unique: dict[Platform, Connection] = {}
    for connection in connections:
        if connection.platform in unique:
            log.warning(
                "Ignoring %s: account %s already has a %s connection",
                connection,
                connection.account_id,
                connection.platform,
            )
            continue
        unique[connection.platform] = connection
    return list(unique.values())


def _collect[K, T](
    observed: Observed[T] | None,
    change: FieldChange,
    bucket: dict[K, T],
    key: K,
) -> None:
    if observed is None or observed.canonical is None:
        return
    set_field_value(observed.canonical, change.field, change.value)
    bucket[key] = observed.canonical


def _final_status(report: SyncReport) -> SyncStatus:
    if any(not fetch.ok for fetch in report.fetches) or report.push_failures or report.skipped:
        return SyncStatus.PARTIAL
    return SyncStatus.SUCCEEDED
