"""Port for the directory of account connections."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from datetime import datetime
    from uuid import UUID

    from stocksync.domain.model import Connection


@runtime_checkable
class ConnectionDirectory(Protocol):
    def get_active_connections(self, account_id: str) -> list[Connection]:
        """Connections of ``account_id`` that are enabled and authenticated."""
        ...

    def mark_needs_reauth(self, connection_id: UUID) -> None: ...

    def active_account_ids(self) -> list[str]: ...

    def record_sync_attempt(
        self, connection_id: UUID, *, at: datetime, succeeded: bool
    ) -> None: ...
