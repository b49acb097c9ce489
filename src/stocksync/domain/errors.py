"""Failure taxonomy of the sync engine and the tagged results built from it.

Connectors and repositories raise the exceptions below. Callers that need to
branch on the kind of failure (orchestrator, pusher, consolidator) convert them
into ``Success``/``Failure`` values with :func:`attempt` or :func:`attempt_sync`
and match on :attr:`Failure.kind` instead of inspecting exception types.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, ClassVar

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from stocksync.domain.model import Platform


class ErrorKind(StrEnum):
    AUTH = "auth"
    TRANSIENT = "transient"
    DATA = "data"
    MAPPING_CONFLICT = "mapping_conflict"
    UNRESOLVED_MAPPING = "unresolved_mapping"
    CONFIGURATION = "configuration"
    INTERNAL = "internal"


class SyncError(Exception):
    """Base class for failures the engine knows how to contain."""

    kind: ClassVar[ErrorKind] = ErrorKind.INTERNAL


class ConnectorError(SyncError):
    """Raised by a connector talking to a marketplace."""

    def __init__(
        self,
        message: str,
        *,
        platform: Platform | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.platform = platform
        self.status_code = status_code


class ConnectorAuthError(ConnectorError):
    """Credentials are invalid or expired; the connection needs re-authentication."""

    kind = ErrorKind.AUTH


class ConnectorTransientError(ConnectorError):
    """Network failure, timeout, rate limit or server error; worth retrying later."""

    kind = ErrorKind.TRANSIENT

    def __init__(
        self,
        message: str,
        *,
        platform: Platform | None = None,
        status_code: int | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message, platform=platform, status_code=status_code)
        self.retry_after = retry_after


class ConnectorDataError(ConnectorError):
    """The marketplace answered with something we cannot interpret or it rejected."""

    kind = ErrorKind.DATA


class MappingConflictError(SyncError):
    """An observation would break the one-to-one identity mapping."""

    kind = ErrorKind.MAPPING_CONFLICT


class UnresolvedMappingError(SyncError):
    """A write targets an entity that has no ID on the target platform."""

    kind = ErrorKind.UNRESOLVED_MAPPING


@dataclass(frozen=True, slots=True)
class Success[T]:
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True, slots=True)
class Failure:
    kind: ErrorKind
    message: str
    retry_after: float | None = None

    @property
    def ok(self) -> bool:
        return False

    @classmethod
    def from_error(cls, error: BaseException) -> Failure:
        kind = error.kind if isinstance(error, SyncError) else ErrorKind.INTERNAL
        retry_after = error.retry_after if isinstance(error, ConnectorTransientError) else None
        message = str(error) or type(error).__name__
        return cls(kind=kind, message=message, retry_after=retry_after)

    def __str__(self) -> str:
        return f"{self.kind}: {self.message}"


type Result[T] = Success[T] | Failure


async def attempt[T](awaitable: Awaitable[T]) -> Result[T]:
    """Await ``awaitable`` and fold taxonomy errors into a ``Failure``."""

    try:
        return Success(await awaitable)
    except SyncError as exc:
        return Failure.from_error(exc)


def attempt_sync[T](func: Callable[[], T]) -> Result[T]:
    try:
        return Success(func())
    except SyncError as exc:
        return Failure.from_error(exc)
