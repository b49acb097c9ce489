"""Ports for the canonical store and the identity mapping store."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Collection
    from datetime import datetime
    from uuid import UUID

    from stocksync.domain.model import (
        Connection,
        EntityType,
        InventoryLevel,
        Location,
        Platform,
        PlatformIds,
        Product,
        Variant,
    )


@runtime_checkable
class Repository[TEntity](Protocol):
    """Minimal repository contract for a persistent aggregate store."""

    def add(self, entity: TEntity) -> None: ...


@runtime_checkable
class ProductRepository(Repository["Product"], Protocol):
    """Products without their variants; variants have their own repository."""

    def get(self, product_id: UUID) -> Product | None: ...

    def update(self, product: Product) -> None: ...


@runtime_checkable
class VariantRepository(Repository["Variant"], Protocol):
    def get(self, variant_id: UUID) -> Variant | None: ...

    def update(self, variant: Variant) -> None: ...

    def list_for_product(self, product_id: UUID) -> list[Variant]: ...

    def find_by_sku(self, product_id: UUID, sku: str) -> Variant | None:
        """Return the variant of ``product_id`` carrying ``sku`` (scoped lookup)."""
        ...

    def product_ids_for_skus(self, account_id: str, skus: Collection[str]) -> set[UUID]:
        """Return the products of ``account_id`` owning a variant with any of ``skus``."""
        ...


@runtime_checkable
class LocationRepository(Repository["Location"], Protocol):
    def get(self, location_id: UUID) -> Location | None: ...

    def update(self, location: Location) -> None: ...

    def find_by_name(self, account_id: str, name: str) -> list[Location]:
        """Case-insensitive lookup within one account."""
        ...


@runtime_checkable
class InventoryLevelRepository(Protocol):
    def get(self, variant_id: UUID, location_id: UUID) -> InventoryLevel | None: ...

    def save(self, level: InventoryLevel) -> None:
        """Insert or replace the level for its (variant, location) pair."""
        ...


@runtime_checkable
class IdentityMappingRepository(Protocol):
    """The only place internal and platform IDs are correlated.

    Every write is idempotent on repeated identical input. Writes that would
    give one platform ID two owners (or one owner two platform IDs) raise
    ``MappingConflictError``.
    """

    def get_internal_id(
        self, platform: Platform, entity_type: EntityType, platform_id: str
    ) -> UUID | None: ...

    def get_platform_id(
        self, internal_id: UUID, platform: Platform, entity_type: EntityType
    ) -> str | None: ...

    def platform_ids_for(self, internal_id: UUID, entity_type: EntityType) -> PlatformIds: ...

    def save_mapping(
        self,
        internal_id: UUID,
        platform: Platform,
        entity_type: EntityType,
        platform_id: str,
    ) -> None: ...

    def claim(
        self,
        internal_id: UUID,
        platform: Platform,
        entity_type: EntityType,
        platform_id: str,
    ) -> UUID:
        """Atomically map ``platform_id`` to ``internal_id`` unless it is taken.

        Returns the internal ID that owns the platform ID afterwards, which is a
        concurrent writer's ID when that writer got there first.
        """
        ...

    def get_meta_value(
        self, internal_id: UUID, platform: Platform, entity_type: EntityType, meta_key: str
    ) -> str | None: ...

    def get_meta_values(
        self, internal_id: UUID, platform: Platform, entity_type: EntityType
    ) -> dict[str, str]: ...

    def save_meta_value(
        self,
        internal_id: UUID,
        platform: Platform,
        entity_type: EntityType,
        meta_key: str,
        meta_value: str,
    ) -> None: ...


@runtime_checkable
class ConnectionRepository(Repository["Connection"], Protocol):
    def get(self, connection_id: UUID) -> Connection | None: ...

    def update(self, connection: Connection) -> None: ...

    def list_for_account(
        self, account_id: str, *, active_only: bool = True
    ) -> list[Connection]: ...

    def list_all(self) -> list[Connection]: ...

    def active_account_ids(self) -> list[str]: ...

    def record_attempt(
        self, connection_id: UUID, *, at: datetime, succeeded: bool
    ) -> None: ...
