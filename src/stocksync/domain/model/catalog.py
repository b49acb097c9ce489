"""Catalog entities: products, variants, locations and stock levels.

The same classes describe both the canonical record and a platform's raw
observation of it. An observation carries only that platform's external ID and
an ``id`` that means nothing until the identity resolver maps it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, ClassVar

from stocksync.domain.model.entity import Entity
from stocksync.domain.model.enums import EntityType
from stocksync.domain.model.external_ids import PlatformIds

if TYPE_CHECKING:
    from datetime import datetime
    from decimal import Decimal
    from uuid import UUID


def clamp_quantity(quantity: int) -> int:
    """Canonical stock never goes below zero; oversold platforms report negatives."""

    return max(quantity, 0)


@dataclass(frozen=True, slots=True, kw_only=True)
class Address:
    address1: str | None = None
    address2: str | None = None
    city: str | None = None
    province_code: str | None = None
    country_code: str | None = None
    zip: str | None = None
    phone: str | None = None


@dataclass(eq=False, kw_only=True)
class InventoryLevel:
    """Available quantity of one variant at one location.

    Not independently identified: the (variant_id, location_id) pair is the key.
    Observations reference the location by ``platform_location_id`` until the
    consolidator resolves it.
    """

    variant_id: UUID | None = None
    location_id: UUID | None = None
    platform_location_id: str | None = None
    quantity: int = 0
    updated_at: datetime | None = None

    @property
    def key(self) -> tuple[UUID, UUID]:
        if self.variant_id is None or self.location_id is None:
            raise ValueError("inventory level is not keyed to a canonical variant and location")
        return (self.variant_id, self.location_id)


@dataclass(eq=False, kw_only=True)
class Variant(Entity):
    ENTITY_TYPE: ClassVar[EntityType] = EntityType.VARIANT

    product_id: UUID | None = None
    title: str | None = None
    sku: str | None = None
    barcode: str | None = None
    price: Decimal | None = None
    compare_at_price: Decimal | None = None
    weight_grams: int | None = None
    requires_shipping: bool | None = None
    taxable: bool | None = None
    inventory_levels: list[InventoryLevel] = field(default_factory=list["InventoryLevel"])
    platform_ids: PlatformIds = field(default_factory=PlatformIds)
    # platform-specific values needed for writes, e.g. Shopify's inventory_item_id
    meta: dict[str, str] = field(default_factory=dict[str, str])
    updated_at: datetime | None = None

    @property
    def normalized_sku(self) -> str | None:
        if self.sku is None:
            return None
        return self.sku.strip() or None


@dataclass(eq=False, kw_only=True)
class Product(Entity):
    ENTITY_TYPE: ClassVar[EntityType] = EntityType.PRODUCT

    account_id: str = ""
    title: str
    description: str | None = None
    image_urls: tuple[str, ...] = ()
    variants: list[Variant] = field(default_factory=list["Variant"])
    platform_ids: PlatformIds = field(default_factory=PlatformIds)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def add_variant(self, variant: Variant) -> Variant:
        variant.product_id = self.id
        self.variants.append(variant)
        return variant

    @property
    def skus(self) -> tuple[str, ...]:
        return tuple(sku for variant in self.variants if (sku := variant.normalized_sku))


@dataclass(eq=False, kw_only=True)
class Location(Entity):
    ENTITY_TYPE: ClassVar[EntityType] = EntityType.LOCATION

    account_id: str = ""
    name: str
    is_active: bool = True
    address: Address | None = None
    platform_ids: PlatformIds = field(default_factory=PlatformIds)
    updated_at: datetime | None = None
