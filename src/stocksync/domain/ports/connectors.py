"""Port for marketplace connectors."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Mapping

    from stocksync.domain.model import (
        Capability,
        Connection,
        EntityType,
        Location,
        Platform,
        Product,
        SyncField,
    )


@dataclass(frozen=True, slots=True, kw_only=True)
class RejectedRecord:
    """A platform record that failed validation and was left out of a fetch."""

    entity_type: EntityType
    platform_id: str | None
    reason: str


@dataclass(slots=True)
class CatalogFetchResult:
    """Products of one connection plus the records that could not be read."""

    products: list[Product]
    rejected: list[RejectedRecord] = field(default_factory=list["RejectedRecord"])


@runtime_checkable
class PlatformConnector(Protocol):
    """Uniform fetch/push contract implemented once per marketplace.

    Every call acts for exactly one connection and keeps no state between
    connections. Implementations raise ``ConnectorAuthError``,
    ``ConnectorTransientError`` or ``ConnectorDataError`` on failure.
    """

    @property
    def platform(self) -> Platform: ...

    @property
    def capabilities(self) -> frozenset[Capability]: ...

    @property
    def fields(self) -> frozenset[SyncField]:
        """Synced fields this marketplace models at all."""
        ...

    async def fetch_locations(self, connection: Connection) -> list[Location]:
        """Return every location of the connected store, tagged with its platform ID."""
        ...

    async def fetch_catalog(self, connection: Connection) -> CatalogFetchResult:
        """Return all products with nested variants and inventory levels.

        Pagination happens inside; the result is complete and holds each platform
        ID once. Records that fail validation are listed as rejected instead of
        failing the whole fetch.
        """
        ...

    async def create_product(self, connection: Connection, product: Product) -> Product:
        """Create ``product`` remotely; return it with platform IDs merged in."""
        ...

    async def update_product(self, connection: Connection, product: Product) -> Product: ...

    async def set_inventory_level(
        self,
        connection: Connection,
        *,
        variant_id: str,
        location_id: str,
        quantity: int,
        variant_meta: Mapping[str, str],
    ) -> bool:
        """Set the absolute available quantity; ``False`` if the platform refused."""
        ...

    async def create_location(self, connection: Connection, location: Location) -> Location: ...


@runtime_checkable
class ConnectorLookup(Protocol):
    """Read access to the connectors configured at startup."""

    def get(self, platform: Platform) -> PlatformConnector | None: ...

    def supports(self, platform: Platform, capability: Capability) -> bool: ...

    def supports_field(self, platform: Platform, sync_field: SyncField) -> bool: ...
