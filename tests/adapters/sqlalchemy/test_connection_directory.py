from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from stocksync.adapters.sqlalchemy import SqlAlchemyConnectionDirectory
from stocksync.domain.model import Connection, ConnectionStatus, Platform, new_id

if TYPE_CHECKING:
    from collections.abc import Callable

    from stocksync.adapters.sqlalchemy.unit_of_work import SqlAlchemyUnitOfWork

T0 = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)


def _connect(uow_factory: Callable[[], SqlAlchemyUnitOfWork], *connections: Connection) -> None:
    with uow_factory() as uow:
        for connection in connections:
            uow.repositories.connections.add(connection)
        uow.commit()


def test_flagged_connections_leave_the_active_set(
    sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
) -> None:
    directory = SqlAlchemyConnectionDirectory(sqlite_unit_of_work)
    shopify = Connection(account_id="acct-1", platform=Platform.SHOPIFY)
    clover = Connection(account_id="acct-1", platform=Platform.CLOVER)
    _connect(sqlite_unit_of_work, shopify, clover)

    directory.mark_needs_reauth(clover.id)
    directory.mark_needs_reauth(clover.id)
    directory.mark_needs_reauth(new_id())

    active = directory.get_active_connections("acct-1")
    assert [connection.platform for connection in active] == [Platform.SHOPIFY]
    with sqlite_unit_of_work() as uow:
        flagged = uow.repositories.connections.get(clover.id)
    assert flagged is not None
    assert flagged.status is ConnectionStatus.NEEDS_REAUTH


def test_accounts_without_active_connections_are_not_listed(
    sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
) -> None:
    directory = SqlAlchemyConnectionDirectory(sqlite_unit_of_work)
    _connect(
        sqlite_unit_of_work,
        Connection(account_id="acct-b", platform=Platform.SQUARE),
        Connection(account_id="acct-a", platform=Platform.SQUARE),
        Connection(account_id="acct-c", platform=Platform.SQUARE, is_enabled=False),
    )

    assert directory.active_account_ids() == ["acct-a", "acct-b"]


def test_sync_attempts_are_recorded(
    sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
) -> None:
    directory = SqlAlchemyConnectionDirectory(sqlite_unit_of_work)
    connection = Connection(account_id="acct-1", platform=Platform.SQUARE)
    _connect(sqlite_unit_of_work, connection)

    directory.record_sync_attempt(connection.id, at=T0, succeeded=False)

    (stored,) = directory.get_active_connections("acct-1")
    assert stored.last_sync_attempt_at == T0
    assert stored.last_sync_success_at is None
