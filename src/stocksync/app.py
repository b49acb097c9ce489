"""Application orchestration entry points."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING

from stocksync.adapters.registry import ConnectorRegistry, build_default_registry
from stocksync.adapters.sqlalchemy import SqlAlchemyConnectionDirectory
from stocksync.adapters.sqlalchemy.unit_of_work import SqlAlchemyUnitOfWork, is_started, startup
from stocksync.config import (
    ConfigurationError,
    SyncConfig,
    get_platforms_config,
    get_sync_config,
    load_authority_overrides,
)
from stocksync.domain.model import Connection, ConnectionStatus, Platform
from stocksync.domain.reconciliation import FieldAuthorityTable, RetrySchedule, SyncOrchestrator
from stocksync.domain.scheduling import SyncScheduler

if TYPE_CHECKING:
    from collections.abc import Mapping
    from pathlib import Path

    from stocksync.domain.ports import ConnectionDirectory, UnitOfWorkFactory
    from stocksync.domain.reconciliation import SyncReport

log = getLogger(__name__)


@dataclass(slots=True)
class SyncApplication:
    """Everything a sync run needs, wired once per process."""

    orchestrator: SyncOrchestrator
    connections: ConnectionDirectory
    unit_of_work_factory: UnitOfWorkFactory
    registry: ConnectorRegistry
    sync_config: SyncConfig

    def scheduler(self) -> SyncScheduler:
        return SyncScheduler(
            self.orchestrator,
            self.connections,
            interval=self.sync_config.interval_seconds,
            max_concurrency=self.sync_config.max_concurrent_accounts,
            account_timeout=self.sync_config.account_timeout_seconds,
            store=self.orchestrator.store,
        )


def load_authority_table(path: Path | None = None) -> FieldAuthorityTable:
    overrides = load_authority_overrides(path)
    try:
        return FieldAuthorityTable.from_overrides(overrides)
    except ValueError as exc:
        raise ConfigurationError(str(exc)) from exc


def retry_schedule(config: SyncConfig) -> RetrySchedule:
    return RetrySchedule(
        max_attempts=config.push_max_attempts,
        base_delay=config.push_backoff_seconds,
        max_delay=config.push_max_backoff_seconds,
    )


def _default_unit_of_work_factory() -> UnitOfWorkFactory:
    if not is_started():
        startup()
    return SqlAlchemyUnitOfWork


def build_application(
    *,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
    registry: ConnectorRegistry | None = None,
    sync_config: SyncConfig | None = None,
    authority: FieldAuthorityTable | None = None,
) -> SyncApplication:
    """Wire configuration, storage and connectors into a ready orchestrator."""

    effective_uow = unit_of_work_factory or _default_unit_of_work_factory()
    effective_registry = registry or build_default_registry(get_platforms_config())
    effective_config = sync_config or get_sync_config()
    effective_authority = authority or load_authority_table()
    directory = SqlAlchemyConnectionDirectory(effective_uow)
    orchestrator = SyncOrchestrator(
        directory,
        effective_registry,
        effective_uow,
        authority=effective_authority,
        retry=retry_schedule(effective_config),
    )
    return SyncApplication(
        orchestrator=orchestrator,
        connections=directory,
        unit_of_work_factory=effective_uow,
        registry=effective_registry,
        sync_config=effective_config,
    )


def sync_account(account_id: str, *, application: SyncApplication | None = None) -> SyncReport:
    """Run one reconciliation cycle for ``account_id`` and return its report."""

    app = application or build_application()
    log.info("Starting sync for account %s", account_id)
    report = asyncio.run(
        app.orchestrator.sync_account(
            account_id, timeout=app.sync_config.account_timeout_seconds
        )
    )
    log.info("Finished sync: %s", report.summary())
    return report


async def serve(
    *,
    application: SyncApplication | None = None,
    stop: asyncio.Event | None = None,
) -> None:
    """Run the periodic scheduler until ``stop`` is set or the task is cancelled."""

    owned = application is None
    app = application or build_application()
    scheduler = app.scheduler()
    scheduler.start()
    log.info(
        "Scheduler started: interval=%ss, max_concurrency=%s",
        app.sync_config.interval_seconds,
        app.sync_config.max_concurrent_accounts,
    )
    try:
        if stop is None:
            await scheduler.wait()
        else:
            await stop.wait()
    finally:
        await scheduler.stop()
        log.info("Scheduler stopped after %d cycles", scheduler.cycles)
        if owned:
            await asyncio.to_thread(app.orchestrator.close)


def add_connection(
    *,
    account_id: str,
    platform: Platform,
    credentials: Mapping[str, str],
    display_name: str = "",
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> Connection:
    """Store a new, enabled connection for ``account_id``."""

    if not account_id.strip():
        raise ValueError("account id must not be blank")
    connection = Connection(
        account_id=account_id.strip(),
        platform=platform,
        display_name=display_name,
        credentials=dict(credentials),
        status=ConnectionStatus.CONNECTED,
    )
    effective_uow = unit_of_work_factory or _default_unit_of_work_factory()
    with effective_uow() as uow:
        uow.repositories.connections.add(connection)
        uow.commit()
    log.info("Added connection %s for account %s", connection, connection.account_id)
    return connection


def list_connections(
    account_id: str | None = None,
    *,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> list[Connection]:
    effective_uow = unit_of_work_factory or _default_unit_of_work_factory()
    with effective_uow() as uow:
        connections = uow.repositories.connections
        if account_id is None:
            return connections.list_all()
        return connections.list_for_account(account_id, active_only=False)
