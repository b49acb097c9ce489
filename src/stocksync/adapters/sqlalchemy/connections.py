"""Connection directory backed by the SQLAlchemy unit of work."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from stocksync.domain.model import ConnectionStatus

if TYPE_CHECKING:
    from datetime import datetime
    from uuid import UUID

    from stocksync.domain.model import Connection
    from stocksync.domain.ports import ConnectionDirectory, UnitOfWorkFactory

log = logging.getLogger(__name__)


class SqlAlchemyConnectionDirectory:
    def __init__(self, unit_of_work_factory: UnitOfWorkFactory) -> None:
        self._unit_of_work_factory = unit_of_work_factory

    def get_active_connections(self, account_id: str) -> list[Connection]:
        with self._unit_of_work_factory() as uow:
            return uow.repositories.connections.list_for_account(account_id, active_only=True)

    def active_account_ids(self) -> list[str]:
        with self._unit_of_work_factory() as uow:
            return uow.repositories.connections.active_account_ids()

    def mark_needs_reauth(self, connection_id: UUID) -> None:
        with self._unit_of_work_factory() as uow:
            connections = uow.repositories.connections
            connection = connections.get(connection_id)
            if connection is None:
                log.warning("Cannot flag unknown connection %s", connection_id)
                return
            if connection.status is ConnectionStatus.NEEDS_REAUTH:
                return
            connection.status = ConnectionStatus.NEEDS_REAUTH
            connections.update(connection)
            uow.commit()
        log.warning("Connection %s needs re-authentication", connection)

    def record_sync_attempt(
        self, connection_id: UUID, *, at: datetime, succeeded: bool
    ) -> None:
        with self._unit_of_work_factory() as uow:
            uow.repositories.connections.record_attempt(
                connection_id, at=at, succeeded=succeeded
            )
            uow.commit()


if TYPE_CHECKING:
    from stocksync.adapters.sqlalchemy.unit_of_work import SqlAlchemyUnitOfWork

    _directory_check: ConnectionDirectory = SqlAlchemyConnectionDirectory(SqlAlchemyUnitOfWork)
