"""Square connector (Catalog, Inventory and Locations APIs)."""

from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING, Final
from uuid import NAMESPACE_URL, uuid4, uuid5

from stocksync.adapters.http_errors import checked, parse_payload, validate_records
from stocksync.adapters.http_resilience import ResilientClient, default_client_factory
from stocksync.config.platforms import SquareConfig
from stocksync.domain.errors import ConnectorDataError
from stocksync.domain.model import Capability, EntityType, Platform, SyncField
from stocksync.domain.ports import CatalogFetchResult

from .schema import (
    BatchChangeInventoryResponse,
    BatchRetrieveCountsPage,
    CatalogObject,
    InventoryCount,
    ListCatalogPage,
    LocationResponse,
    LocationsResponse,
    RetrieveCatalogObjectResponse,
    UpsertCatalogObjectResponse,
)
from .translator import (
    IN_STOCK,
    apply_product,
    attach_counts,
    location_to_payload,
    new_item_object,
    parse_catalog,
    parse_location,
    temporary_id,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from stocksync.config.http_resilience import ResilienceConfig
    from stocksync.domain.model import Connection, Location, Product
    from stocksync.domain.ports import PlatformConnector, RejectedRecord

log = getLogger(__name__)

_PLATFORM: Final = Platform.SQUARE
_IDEMPOTENCY_NAMESPACE: Final = uuid5(NAMESPACE_URL, "https://stocksync.invalid/square")
_COUNTS_BATCH_SIZE: Final = 100
DEFAULT_CURRENCY: Final = "USD"

SQUARE_FIELDS: Final = frozenset(
    {
        SyncField.TITLE,
        SyncField.DESCRIPTION,
        SyncField.SKU,
        SyncField.BARCODE,
        SyncField.PRICE,
        SyncField.INVENTORY_QUANTITY,
        SyncField.LOCATION_NAME,
    }
)


def idempotency_key(*parts: object) -> str:
    """Stable key for a write, so a retried request is applied once."""

    return str(uuid5(_IDEMPOTENCY_NAMESPACE, ":".join(str(part) for part in parts)))


@dataclass(slots=True)
class SquareConnector:
    """Connections carry an ``access_token`` and optionally a ``currency`` (default USD)."""

    config: SquareConfig = field(default_factory=SquareConfig)
    client_factory: Callable[[ResilienceConfig], ResilientClient] = field(
        default=default_client_factory
    )
    clock: Callable[[], datetime] = field(default=lambda: datetime.now(UTC))

    @property
    def platform(self) -> Platform:
        return _PLATFORM

    @property
    def capabilities(self) -> frozenset[Capability]:
        return frozenset(Capability)

    @property
    def fields(self) -> frozenset[SyncField]:
        return SQUARE_FIELDS

    def _client(self, connection: Connection) -> ResilientClient:
        resilience = replace(
            self.config.resilience,
            default_headers={
                "Authorization": f"Bearer {connection.secret('access_token')}",
                "Square-Version": self.config.api_version,
                "Accept": "application/json",
            },
        )
        return self.client_factory(resilience)

    @staticmethod
    def _currency(connection: Connection) -> str:
        return connection.credentials.get("currency") or DEFAULT_CURRENCY

    async def fetch_locations(self, connection: Connection) -> list[Location]:
        async with self._client(connection) as client:
            response = await checked(client.get("/v2/locations"), platform=_PLATFORM)
        payload = parse_payload(response, LocationsResponse, platform=_PLATFORM)
        return [parse_location(location) for location in payload.locations]

    async def fetch_catalog(self, connection: Connection) -> CatalogFetchResult:
        async with self._client(connection) as client:
            objects, rejected = await self._list_catalog(client)
            products = parse_catalog(objects)
            variation_ids = [
                variant.platform_ids[_PLATFORM]
                for product in products
                for variant in product.variants
            ]
            counts, rejected_counts = await self._retrieve_counts(client, variation_ids)
        attach_counts(products, counts)
        rejected.extend(rejected_counts)
        return CatalogFetchResult(products, rejected)

    async def _list_catalog(
        self, client: ResilientClient
    ) -> tuple[list[CatalogObject], list[RejectedRecord]]:
        seen: dict[str, CatalogObject] = {}
        rejected: list[RejectedRecord] = []
        cursor: str | None = None
        while True:
            params = {"types": "ITEM,IMAGE"}
            if cursor:
                params["cursor"] = cursor
            response = await checked(
                client.get("/v2/catalog/list", params=params), platform=_PLATFORM
            )
            page = parse_payload(response, ListCatalogPage, platform=_PLATFORM)
            objects, bad = validate_records(
                page.objects, CatalogObject, platform=_PLATFORM, entity_type=EntityType.PRODUCT
            )
            for obj in objects:
                seen.setdefault(obj.id, obj)
            rejected.extend(bad)
            cursor = page.cursor
            if not cursor:
                return list(seen.values()), rejected

    async def _retrieve_counts(
        self, client: ResilientClient, variation_ids: list[str]
    ) -> tuple[list[InventoryCount], list[RejectedRecord]]:
        counts: list[InventoryCount] = []
        rejected: list[RejectedRecord] = []
        for start in range(0, len(variation_ids), _COUNTS_BATCH_SIZE):
            batch = variation_ids[start : start + _COUNTS_BATCH_SIZE]
            cursor: str | None = None
            while True:
                body: dict[str, object] = {"catalog_object_ids": batch, "states": [IN_STOCK]}
                if cursor:
                    body["cursor"] = cursor
                response = await checked(
                    client.post("/v2/inventory/counts/batch-retrieve", json=body),
                    platform=_PLATFORM,
                )
                page = parse_payload(response, BatchRetrieveCountsPage, platform=_PLATFORM)
                valid, bad = validate_records(
                    page.counts,
                    InventoryCount,
                    platform=_PLATFORM,
                    entity_type=EntityType.INVENTORY_LEVEL,
                    id_key="catalog_object_id",
                )
                counts.extend(valid)
                rejected.extend(bad)
                cursor = page.cursor
                if not cursor:
                    break
        return counts, rejected

    async def create_product(self, connection: Connection, product: Product) -> Product:
        body = {
            "idempotency_key": idempotency_key("create-product", product.id),
            "object": new_item_object(product, currency=self._currency(connection)),
        }
        async with self._client(connection) as client:
            response = await checked(
                client.post("/v2/catalog/object", json=body), platform=_PLATFORM
            )
        result = parse_payload(response, UpsertCatalogObjectResponse, platform=_PLATFORM)

        real_ids = {mapping.client_object_id: mapping.object_id for mapping in result.id_mappings}
        product.platform_ids = product.platform_ids.with_id(
            _PLATFORM, real_ids.get(temporary_id("item", 0), result.catalog_object.id)
        )
        for index, variant in enumerate(product.variants):
            variation_id = real_ids.get(temporary_id("variation", index))
            if variation_id is None:
                raise ConnectorDataError(
                    f"Square returned no id for variation {index} of {product.id}",
                    platform=_PLATFORM,
                )
            variant.platform_ids = variant.platform_ids.with_id(_PLATFORM, variation_id)
        log.info("Created Square item %s for %s", product.platform_ids[_PLATFORM], product.id)
        return product

    async def update_product(self, connection: Connection, product: Product) -> Product:
        item_id = product.platform_ids.get(_PLATFORM)
        if item_id is None:
            raise ConnectorDataError("product has no Square id", platform=_PLATFORM)

        async with self._client(connection) as client:
            # upserts must carry the current version of the item and its variations
            response = await checked(
                client.get(f"/v2/catalog/object/{item_id}"), platform=_PLATFORM
            )
            current = parse_payload(response, RetrieveCatalogObjectResponse, platform=_PLATFORM)
            raw = response.json()["object"]
            updated = apply_product(raw, product, currency=self._currency(connection))
            body = {
                "idempotency_key": idempotency_key(
                    "update-product",
                    product.id,
                    current.object.version,
                    json.dumps(updated, sort_keys=True, default=str),
                ),
                "object": updated,
            }
            await checked(client.post("/v2/catalog/object", json=body), platform=_PLATFORM)
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
        # a physical count is absolute, so repeating it is harmless
        body = {
            "idempotency_key": str(uuid4()),
            "changes": [
                {
                    "type": "PHYSICAL_COUNT",
                    "physical_count": {
                        "catalog_object_id": variant_id,
                        "location_id": location_id,
                        "state": IN_STOCK,
                        "quantity": str(quantity),
                        "occurred_at": self.clock().isoformat(),
                    },
                }
            ],
        }
        async with self._client(connection) as client:
            response = await checked(
                client.post("/v2/inventory/changes/batch-create", json=body), platform=_PLATFORM
            )
        result = parse_payload(response, BatchChangeInventoryResponse, platform=_PLATFORM)
        if result.errors:
            log.warning(
                "Square refused stock for %s at %s: %s",
                variant_id,
                location_id,
                "; ".join(error.detail or error.code or "unknown" for error in result.errors),
            )
            return False
        return True

    async def create_location(self, connection: Connection, location: Location) -> Location:
        body = {"location": location_to_payload(location)}
        async with self._client(connection) as client:
            response = await checked(client.post("/v2/locations", json=body), platform=_PLATFORM)
        created = parse_payload(response, LocationResponse, platform=_PLATFORM).location
        location.platform_ids = location.platform_ids.with_id(_PLATFORM, created.id)
        log.info("Created Square location %s for %s", created.id, location.id)
        return location


if TYPE_CHECKING:
    _connector_check: PlatformConnector = SquareConnector()
