"""Connections between an account and one marketplace."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from stocksync.domain.errors import ErrorKind, SyncError
from stocksync.domain.model.entity import new_id
from stocksync.domain.model.enums import ConnectionStatus, Platform

if TYPE_CHECKING:
    from collections.abc import Mapping
    from datetime import datetime
    from uuid import UUID


class MissingCredentialError(SyncError):
    """Raised when a connection lacks a credential its connector needs."""

    kind = ErrorKind.CONFIGURATION


@dataclass(eq=False, kw_only=True)
class Connection:
    id: UUID = field(default_factory=new_id)
    account_id: str
    platform: Platform
    display_name: str = ""
    credentials: Mapping[str, str] = field(default_factory=dict[str, str], repr=False)
    status: ConnectionStatus = ConnectionStatus.CONNECTED
    is_enabled: bool = True
    last_sync_attempt_at: datetime | None = None
    last_sync_success_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.is_enabled and self.status is ConnectionStatus.CONNECTED

    def secret(self, name: str) -> str:
        """Return credential ``name`` or raise ``MissingCredentialError``."""

        value = self.credentials.get(name)
        if not value:
            raise MissingCredentialError(f"{self.platform} connection {self.id} lacks {name!r}")
        return value

    def __str__(self) -> str:
        label = self.display_name or str(self.id)
        return f"{self.platform}:{label}"
