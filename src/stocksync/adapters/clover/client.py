"""Clover connector (merchant-scoped REST API)."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from logging import getLogger
from typing import TYPE_CHECKING, Final

from stocksync.adapters.http_errors import checked, parse_payload, validate_records
from stocksync.adapters.http_resilience import ResilientClient, default_client_factory
from stocksync.config.platforms import CloverConfig
from stocksync.domain.errors import ConnectorDataError
from stocksync.domain.model import Capability, EntityType, Platform, SyncField
from stocksync.domain.ports import CatalogFetchResult

from .schema import ItemGroupPayload, ItemPayload, ItemsPage, MerchantPayload
from .translator import (
    is_grouped,
    item_to_payload,
    parse_items,
    parse_merchant_location,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from stocksync.config.http_resilience import ResilienceConfig
    from stocksync.domain.model import Connection, Location, Product
    from stocksync.domain.ports import PlatformConnector, RejectedRecord

log = getLogger(__name__)

_PLATFORM: Final = Platform.CLOVER

CLOVER_CAPABILITIES: Final = frozenset(Capability) - {Capability.CREATE_LOCATION}
CLOVER_FIELDS: Final = frozenset(
    {
        SyncField.TITLE,
        SyncField.SKU,
        SyncField.BARCODE,
        SyncField.PRICE,
        SyncField.INVENTORY_QUANTITY,
        SyncField.LOCATION_NAME,
    }
)


def _path(connection: Connection, suffix: str = "") -> str:
    base = f"/v3/merchants/{connection.secret('merchant_id')}"
    return f"{base}/{suffix}" if suffix else base


@dataclass(slots=True)
class CloverConnector:
    """One merchant per connection; the merchant is its only location.

    Connections carry ``merchant_id`` and ``access_token`` credentials.
    """

    config: CloverConfig = field(default_factory=CloverConfig)
    client_factory: Callable[[ResilienceConfig], ResilientClient] = field(
        default=default_client_factory
    )

    @property
    def platform(self) -> Platform:
        return _PLATFORM

    @property
    def capabilities(self) -> frozenset[Capability]:
        return CLOVER_CAPABILITIES

    @property
    def fields(self) -> frozenset[SyncField]:
        return CLOVER_FIELDS

    def _client(self, connection: Connection) -> ResilientClient:
        resilience = replace(
            self.config.resilience,
            default_headers={
                "Authorization": f"Bearer {connection.secret('access_token')}",
                "Accept": "application/json",
            },
        )
        return self.client_factory(resilience)

    async def fetch_locations(self, connection: Connection) -> list[Location]:
        async with self._client(connection) as client:
            response = await checked(
                client.get(_path(connection), params={"expand": "address"}), platform=_PLATFORM
            )
        merchant = parse_payload(response, MerchantPayload, platform=_PLATFORM)
        return [parse_merchant_location(merchant)]

    async def fetch_catalog(self, connection: Connection) -> CatalogFetchResult:
        merchant_id = connection.secret("merchant_id")
        items: list[ItemPayload] = []
        rejected: list[RejectedRecord] = []
        page_size = self.config.page_size
        items_path = _path(connection, "items")
        async with self._client(connection) as client:
            offset = 0
            while True:
                params: dict[str, str | int] = {
                    "expand": "itemGroup,itemStock",
                    "limit": page_size,
                    "offset": offset,
                }
                response = await checked(client.get(items_path, params=params), platform=_PLATFORM)
                page = parse_payload(response, ItemsPage, platform=_PLATFORM)
                valid, bad = validate_records(
                    page.elements, ItemPayload, platform=_PLATFORM, entity_type=EntityType.VARIANT
                )
                items.extend(valid)
                rejected.extend(bad)
                if len(page.elements) < page_size:
                    break
                offset += page_size
        return CatalogFetchResult(parse_items(items, merchant_id=merchant_id), rejected)

    async def create_product(self, connection: Connection, product: Product) -> Product:
        if not product.variants:
            raise ConnectorDataError(
                f"cannot create Clover items for {product.id} without variants",
                platform=_PLATFORM,
            )
        items_path = _path(connection, "items")
        async with self._client(connection) as client:
            if len(product.variants) == 1:
                variant = product.variants[0]
                item = await self._post_item(
                    client, items_path, item_to_payload(variant, name=product.title)
                )
                product.platform_ids = product.platform_ids.with_id(_PLATFORM, item.id)
                variant.platform_ids = variant.platform_ids.with_id(_PLATFORM, item.id)
                return product

            response = await checked(
                client.post(_path(connection, "item_groups"), json={"name": product.title}),
                platform=_PLATFORM,
            )
            group = parse_payload(response, ItemGroupPayload, platform=_PLATFORM)
            product.platform_ids = product.platform_ids.with_id(_PLATFORM, group.id)
            for variant in product.variants:
                payload = item_to_payload(
                    variant, name=variant.title or product.title, group_id=group.id
                )
                item = await self._post_item(client, items_path, payload)
                variant.platform_ids = variant.platform_ids.with_id(_PLATFORM, item.id)
        log.info("Created Clover item group %s for %s", group.id, product.id)
        return product

    async def update_product(self, connection: Connection, product: Product) -> Product:
        product_id = product.platform_ids.get(_PLATFORM)
        if product_id is None:
            raise ConnectorDataError("product has no Clover id", platform=_PLATFORM)

        grouped = is_grouped(product)
        async with self._client(connection) as client:
            if grouped:
                await checked(
                    client.post(
                        _path(connection, f"item_groups/{product_id}"),
                        json={"name": product.title},
                    ),
                    platform=_PLATFORM,
                )
            for variant in product.variants:
                item_id = variant.platform_ids.get(_PLATFORM)
                if item_id is None:
                    continue
                name = (variant.title or product.title) if grouped else product.title
                payload = item_to_payload(variant, name=name)
                await self._post_item(client, _path(connection, f"items/{item_id}"), payload)
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
        merchant_id = connection.secret("merchant_id")
        if location_id != merchant_id:
            raise ConnectorDataError(
                f"Clover stock lives at merchant {merchant_id}, not location {location_id}",
                platform=_PLATFORM,
            )
        async with self._client(connection) as client:
            await checked(
                client.post(
                    _path(connection, f"item_stocks/{variant_id}"), json={"quantity": quantity}
                ),
                platform=_PLATFORM,
            )
        return True

    async def create_location(self, connection: Connection, location: Location) -> Location:
        raise ConnectorDataError(
            f"Clover merchants have exactly one location; cannot create {location.name!r}",
            platform=_PLATFORM,
        )

    @staticmethod
    async def _post_item(
        client: ResilientClient, path: str, payload: dict[str, object]
    ) -> ItemPayload:
        response = await checked(client.post(path, json=payload), platform=_PLATFORM)
        return parse_payload(response, ItemPayload, platform=_PLATFORM)


if TYPE_CHECKING:
    _connector_check: PlatformConnector = CloverConnector()
