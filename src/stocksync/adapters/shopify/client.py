"""Shopify Admin API connector."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from logging import getLogger
from typing import TYPE_CHECKING, Final

from stocksync.adapters.http_errors import checked, parse_payload, validate_records
from stocksync.adapters.http_resilience import ResilientClient, default_client_factory
from stocksync.config.platforms import ShopifyConfig
from stocksync.domain.errors import ConnectorDataError
from stocksync.domain.model import INVENTORY_ITEM_ID, Capability, EntityType, Platform, SyncField
from stocksync.domain.ports import CatalogFetchResult

from .schema import (
    InventoryLevelPayload,
    InventoryLevelsPage,
    LocationAddResponse,
    LocationsResponse,
    ProductPayload,
    ProductResponse,
    ProductsPage,
    VariantResponse,
)
from .translator import (
    attach_inventory_levels,
    location_add_input,
    numeric_gid,
    parse_location,
    parse_product,
    parse_variant,
    product_to_payload,
    variant_to_payload,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    import httpx

    from stocksync.config.http_resilience import ResilienceConfig
    from stocksync.domain.model import Connection, Location, Product, Variant
    from stocksync.domain.ports import PlatformConnector, RejectedRecord

log = getLogger(__name__)

_PLATFORM: Final = Platform.SHOPIFY

LOCATION_ADD_MUTATION: Final = """
mutation locationAdd($input: LocationAddInput!) {
  locationAdd(input: $input) {
    location { id name }
    userErrors { field message }
  }
}
"""


def _next_url(response: httpx.Response) -> str | None:
    return response.links.get("next", {}).get("url")


@dataclass(slots=True)
class ShopifyConnector:
    """Talks to one shop per connection.

    Connections carry ``shop_domain`` (``example.myshopify.com``) and
    ``access_token`` credentials.
    """

    config: ShopifyConfig = field(default_factory=ShopifyConfig)
    client_factory: Callable[[ResilienceConfig], ResilientClient] = field(
        default=default_client_factory
    )

    @property
    def platform(self) -> Platform:
        return _PLATFORM

    @property
    def capabilities(self) -> frozenset[Capability]:
        return frozenset(Capability)

    @property
    def fields(self) -> frozenset[SyncField]:
        return frozenset(SyncField)

    def _client(self, connection: Connection) -> ResilientClient:
        shop = connection.secret("shop_domain").removeprefix("https://").rstrip("/")
        resilience = replace(
            self.config.resilience,
            base_url=f"https://{shop}/admin/api/{self.config.api_version}/",
            default_headers={
                "X-Shopify-Access-Token": connection.secret("access_token"),
                "Accept": "application/json",
            },
        )
        return self.client_factory(resilience)

    async def fetch_locations(self, connection: Connection) -> list[Location]:
        async with self._client(connection) as client:
            response = await checked(client.get("locations.json"), platform=_PLATFORM)
        payload = parse_payload(response, LocationsResponse, platform=_PLATFORM)
        return [parse_location(location) for location in payload.locations]

    async def fetch_catalog(self, connection: Connection) -> CatalogFetchResult:
        async with self._client(connection) as client:
            payloads, rejected = await self._fetch_products(client)
            item_ids = [
                variant.inventory_item_id
                for product in payloads
                for variant in product.variants
                if variant.inventory_item_id
            ]
            levels, rejected_levels = await self._fetch_inventory_levels(client, item_ids)

        products = [parse_product(payload) for payload in payloads]
        attach_inventory_levels(products, levels)
        rejected.extend(rejected_levels)
        log.debug(
            "Fetched %d products and %d inventory levels from %s (%d rejected)",
            len(products),
            len(levels),
            connection,
            len(rejected),
        )
        return CatalogFetchResult(products, rejected)

    async def _fetch_products(
        self, client: ResilientClient
    ) -> tuple[list[ProductPayload], list[RejectedRecord]]:
        seen: dict[str, ProductPayload] = {}
        rejected: list[RejectedRecord] = []
        url: str | None = "products.json"
        params: dict[str, str | int] | None = {"limit": self.config.product_page_size}
        while url is not None:
            response = await checked(client.get(url, params=params), platform=_PLATFORM)
            page = parse_payload(response, ProductsPage, platform=_PLATFORM)
            products, bad = validate_records(
                page.products, ProductPayload, platform=_PLATFORM, entity_type=EntityType.PRODUCT
            )
            for product in products:
                seen.setdefault(product.id, product)
            rejected.extend(bad)
            url = _next_url(response)
            # the next link already carries page_info and limit
            params = None
        return list(seen.values()), rejected

    async def _fetch_inventory_levels(
        self, client: ResilientClient, item_ids: list[str]
    ) -> tuple[list[InventoryLevelPayload], list[RejectedRecord]]:
        levels: list[InventoryLevelPayload] = []
        rejected: list[RejectedRecord] = []
        batch_size = self.config.inventory_batch_size
        for start in range(0, len(item_ids), batch_size):
            batch = item_ids[start : start + batch_size]
            url: str | None = "inventory_levels.json"
            params: dict[str, str | int] | None = {
                "inventory_item_ids": ",".join(batch),
                "limit": 250,
            }
            while url is not None:
                response = await checked(client.get(url, params=params), platform=_PLATFORM)
                page = parse_payload(response, InventoryLevelsPage, platform=_PLATFORM)
                valid, bad = validate_records(
                    page.inventory_levels,
                    InventoryLevelPayload,
                    platform=_PLATFORM,
                    entity_type=EntityType.INVENTORY_LEVEL,
                    id_key="inventory_item_id",
                )
                levels.extend(valid)
                rejected.extend(bad)
                url = _next_url(response)
                params = None
        return levels, rejected

    async def create_product(self, connection: Connection, product: Product) -> Product:
        body = {"product": product_to_payload(product, include_variants=True)}
        async with self._client(connection) as client:
            response = await checked(client.post("products.json", json=body), platform=_PLATFORM)
        created = parse_payload(response, ProductResponse, platform=_PLATFORM).product

        product.platform_ids = product.platform_ids.with_id(_PLATFORM, created.id)
        remote_variants = [parse_variant(variant) for variant in created.variants]
        if len(remote_variants) != len(product.variants):
            raise ConnectorDataError(
                f"Shopify created {len(remote_variants)} variants for product {created.id}, "
                f"expected {len(product.variants)}",
                platform=_PLATFORM,
            )
        # Shopify keeps the order of the submitted variants
        for local, remote in zip(product.variants, remote_variants, strict=True):
            _merge_remote_variant(local, remote)
        log.info("Created Shopify product %s for %s", created.id, product.id)
        return product

    async def update_product(self, connection: Connection, product: Product) -> Product:
        product_id = product.platform_ids.get(_PLATFORM)
        if product_id is None:
            raise ConnectorDataError("product has no Shopify id", platform=_PLATFORM)

        # Variants go one by one: a product PUT with a variants array would
        # delete every variant not listed.
        async with self._client(connection) as client:
            body = {"product": product_to_payload(product, include_variants=False)}
            await checked(client.put(f"products/{product_id}.json", json=body), platform=_PLATFORM)
            for variant in product.variants:
                variant_id = variant.platform_ids.get(_PLATFORM)
                if variant_id is None:
                    continue
                response = await checked(
                    client.put(
                        f"variants/{variant_id}.json",
                        json={"variant": variant_to_payload(variant)},
                    ),
                    platform=_PLATFORM,
                )
                remote = parse_variant(
                    parse_payload(response, VariantResponse, platform=_PLATFORM).variant
                )
                _merge_remote_variant(variant, remote)
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
        async with self._client(connection) as client:
            inventory_item_id = variant_meta.get(INVENTORY_ITEM_ID)
            if not inventory_item_id:
                inventory_item_id = await self._inventory_item_id(client, variant_id)
            body = {
                "location_id": int(location_id),
                "inventory_item_id": int(inventory_item_id),
                "available": quantity,
            }
            await checked(client.post("inventory_levels/set.json", json=body), platform=_PLATFORM)
        return True

    async def _inventory_item_id(self, client: ResilientClient, variant_id: str) -> str:
        response = await checked(client.get(f"variants/{variant_id}.json"), platform=_PLATFORM)
        variant = parse_payload(response, VariantResponse, platform=_PLATFORM).variant
        if not variant.inventory_item_id:
            raise ConnectorDataError(
                f"Shopify variant {variant_id} has no inventory item", platform=_PLATFORM
            )
        return variant.inventory_item_id

    async def create_location(self, connection: Connection, location: Location) -> Location:
        body = {
            "query": LOCATION_ADD_MUTATION,
            "variables": {"input": location_add_input(location)},
        }
        async with self._client(connection) as client:
            response = await checked(client.post("graphql.json", json=body), platform=_PLATFORM)
        payload = parse_payload(response, LocationAddResponse, platform=_PLATFORM)

        result = payload.data.location_add if payload.data is not None else None
        problems = [error.message for error in payload.errors]
        if result is not None:
            problems.extend(error.message for error in result.user_errors)
        if problems or result is None or result.location is None:
            reason = "; ".join(problems) or "no result"
            raise ConnectorDataError(
                f"Shopify rejected location {location.name!r}: {reason}", platform=_PLATFORM
            )
        location.platform_ids = location.platform_ids.with_id(
            _PLATFORM, numeric_gid(result.location.id)
        )
        log.info("Created Shopify location %s for %s", result.location.id, location.id)
        return location


def _merge_remote_variant(local: Variant, remote: Variant) -> None:
    platform_id = remote.platform_ids[_PLATFORM]
    local.platform_ids = local.platform_ids.with_id(_PLATFORM, platform_id)
    local.meta = {**local.meta, **remote.meta}


if TYPE_CHECKING:
    _connector_check: PlatformConnector = ShopifyConnector()
