"""In-memory marketplaces for exercising the sync engine end to end."""

from __future__ import annotations

import asyncio
import itertools
from dataclasses import replace
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING

from stocksync.domain.model import (
    INVENTORY_ITEM_ID,
    Capability,
    InventoryLevel,
    Location,
    Platform,
    PlatformIds,
    Product,
    SyncField,
    Variant,
)
from stocksync.domain.ports import CatalogFetchResult

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from stocksync.domain.model import Connection
    from stocksync.domain.ports import PlatformConnector, RejectedRecord

T0 = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)


class FakeConnector:
    """A marketplace that keeps its catalog in dictionaries.

    Writes change what the next fetch returns and bump ``updated_at`` to the
    fake clock. ``fail(method, error, ...)`` queues errors that the next calls
    of ``method`` raise, one per call; a ``None`` entry lets that call through.
    Records in ``rejected`` are reported by every catalog fetch as unreadable.
    """

    def __init__(
        self,
        platform: Platform,
        *,
        capabilities: Iterable[Capability] = tuple(Capability),
        fields: Iterable[SyncField] = tuple(SyncField),
        now: datetime = T0,
    ) -> None:
        self._platform = platform
        self._capabilities = frozenset(capabilities)
        self._fields = frozenset(fields)
        self.now = now
        self.locations: dict[str, Location] = {}
        self.products: dict[str, Product] = {}
        self.levels: dict[tuple[str, str], int] = {}
        self.calls: list[str] = []
        self.inventory_writes: list[tuple[str, str, int, dict[str, str]]] = []
        self.accept_inventory = True
        self.fetch_delay: float = 0.0
        self.rejected: list[RejectedRecord] = []
        self._errors: dict[str, list[BaseException | None]] = {}
        self._ids = itertools.count(1)

    @property
    def platform(self) -> Platform:
        return self._platform

    @property
    def capabilities(self) -> frozenset[Capability]:
        return self._capabilities

    @property
    def fields(self) -> frozenset[SyncField]:
        return self._fields

    # -- test setup ---------------------------------------------------------

    def tick(self, seconds: float = 60) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now

    def fail(self, method: str, *errors: BaseException | None) -> None:
        self._errors.setdefault(method, []).extend(errors)

    def add_location(self, name: str, platform_id: str | None = None) -> str:
        platform_id = platform_id or self._next_id("loc")
        self.locations[platform_id] = Location(
            name=name,
            platform_ids=PlatformIds({self._platform: platform_id}),
            updated_at=self.now,
        )
        return platform_id

    def add_product(
        self,
        title: str,
        variants: Iterable[tuple[str | None, str | None]] = (),
        *,
        platform_id: str | None = None,
        description: str | None = None,
    ) -> Product:
        """Add a product with ``(sku, price)`` variants and return the stored record."""

        product_id = platform_id or self._next_id("prod")
        product = Product(
            title=title,
            description=description,
            platform_ids=PlatformIds({self._platform: product_id}),
            updated_at=self.now,
        )
        for sku, price in variants:
            variant_id = self._next_id("var")
            product.add_variant(
                Variant(
                    title=sku,
                    sku=sku,
                    price=Decimal(price) if price is not None else None,
                    platform_ids=PlatformIds({self._platform: variant_id}),
                    meta={INVENTORY_ITEM_ID: f"item-{variant_id}"},
                    updated_at=self.now,
                )
            )
        self.products[product_id] = product
        return product

    def variant_id(self, sku: str) -> str:
        for product in self.products.values():
            for variant in product.variants:
                if variant.sku == sku:
                    return variant.platform_ids[self._platform]
        raise KeyError(sku)

    def variant(self, sku: str) -> Variant:
        for product in self.products.values():
            for variant in product.variants:
                if variant.sku == sku:
                    return variant
        raise KeyError(sku)

    def set_level(self, sku: str, location_id: str, quantity: int) -> None:
        self.levels[(self.variant_id(sku), location_id)] = quantity

    def level(self, sku: str, location_id: str) -> int | None:
        return self.levels.get((self.variant_id(sku), location_id))

    def product_titled(self, title: str) -> Product | None:
        return next(
            (product for product in self.products.values() if product.title == title), None
        )

    # -- connector contract -------------------------------------------------

    async def fetch_locations(self, connection: Connection) -> list[Location]:
        self._enter("fetch_locations", connection)
        return [replace(location) for location in self.locations.values()]

    async def fetch_catalog(self, connection: Connection) -> CatalogFetchResult:
        self._enter("fetch_catalog", connection)
        if self.fetch_delay:
            await asyncio.sleep(self.fetch_delay)
        return CatalogFetchResult(
            [self._snapshot(product) for product in self.products.values()],
            list(self.rejected),
        )

    async def create_product(self, connection: Connection, product: Product) -> Product:
        self._enter("create_product", connection)
        product_id = self._next_id("prod")
        stored = Product(
            title=product.title,
            description=product.description,
            image_urls=product.image_urls,
            platform_ids=PlatformIds({self._platform: product_id}),
            updated_at=self.now,
        )
        for variant in product.variants:
            variant_id = self._next_id("var")
            stored.add_variant(
                replace(
                    variant,
                    platform_ids=PlatformIds({self._platform: variant_id}),
                    meta={INVENTORY_ITEM_ID: f"item-{variant_id}"},
                    inventory_levels=[],
                    updated_at=self.now,
                )
            )
            variant.platform_ids = variant.platform_ids.with_id(self._platform, variant_id)
            variant.meta = {INVENTORY_ITEM_ID: f"item-{variant_id}"}
        self.products[product_id] = stored
        product.platform_ids = product.platform_ids.with_id(self._platform, product_id)
        return product

    async def update_product(self, connection: Connection, product: Product) -> Product:
        self._enter("update_product", connection)
        product_id = product.platform_ids[self._platform]
        stored = self.products[product_id]
        stored.title = product.title
        stored.description = product.description
        stored.image_urls = product.image_urls
        stored.updated_at = self.now
        by_id = {variant.platform_ids[self._platform]: variant for variant in stored.variants}
        for variant in product.variants:
            target = by_id[variant.platform_ids[self._platform]]
            target.sku = variant.sku
            target.barcode = variant.barcode
            target.price = variant.price
            target.compare_at_price = variant.compare_at_price
            target.weight_grams = variant.weight_grams
            target.requires_shipping = variant.requires_shipping
            target.taxable = variant.taxable
            target.updated_at = self.now
        return product

    async def set_inventory_level(
        self,
        connection: Connection,
        *,
        variant_id: str,
        location_id: str,
        quantity: int,
        variant_meta: Mapping[str, str],
    ) -> bool:
        self._enter("set_inventory_level", connection)
        self.inventory_writes.append((variant_id, location_id, quantity, dict(variant_meta)))
        if not self.accept_inventory:
            return False
        self.levels[(variant_id, location_id)] = quantity
        return True

    async def create_location(self, connection: Connection, location: Location) -> Location:
        self._enter("create_location", connection)
        platform_id = self.add_location(location.name)
        location.platform_ids = location.platform_ids.with_id(self._platform, platform_id)
        return location

    # -- internals ----------------------------------------------------------

    def _enter(self, method: str, connection: Connection) -> None:
        assert connection.platform is self._platform
        self.calls.append(method)
        queued = self._errors.get(method)
        if queued and (error := queued.pop(0)) is not None:
            raise error

    def _next_id(self, prefix: str) -> str:
        return f"{self._platform}-{prefix}-{next(self._ids)}"

    def _snapshot(self, product: Product) -> Product:
        copy = replace(product, variants=[])
        for variant in product.variants:
            variant_id = variant.platform_ids[self._platform]
            levels = [
                InventoryLevel(platform_location_id=location_id, quantity=quantity)
                for (level_variant, location_id), quantity in self.levels.items()
                if level_variant == variant_id
            ]
            copy.variants.append(
                replace(variant, meta=dict(variant.meta), inventory_levels=levels)
            )
        return copy


if TYPE_CHECKING:
    _connector_check: PlatformConnector = FakeConnector(Platform.SHOPIFY)
