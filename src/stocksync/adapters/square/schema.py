"""Pydantic models describing the Square Catalog, Inventory and Locations payloads."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _blank_to_none(value: object) -> object:
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return value


class SquareBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class SquareError(SquareBaseModel):
    category: str | None = None
    code: str | None = None
    detail: str | None = None


class AddressPayload(SquareBaseModel):
    address_line_1: str | None = None
    address_line_2: str | None = None
    locality: str | None = None
    administrative_district_level_1: str | None = None
    postal_code: str | None = None
    country: str | None = None


class LocationPayload(SquareBaseModel):
    id: str
    name: str
    status: str = "ACTIVE"
    address: AddressPayload | None = None
    phone_number: str | None = None
    created_at: datetime | None = None

    _normalize_phone = field_validator("phone_number", mode="before")(_blank_to_none)


class LocationsResponse(SquareBaseModel):
    locations: list[LocationPayload] = Field(default_factory=list["LocationPayload"])


class LocationResponse(SquareBaseModel):
    location: LocationPayload


class Money(SquareBaseModel):
    amount: int
    currency: str


class ItemVariationData(SquareBaseModel):
    item_id: str | None = None
    name: str | None = None
    sku: str | None = None
    upc: str | None = None
    pricing_type: str | None = None
    price_money: Money | None = None

    _normalize_blanks = field_validator("sku", "upc", mode="before")(_blank_to_none)


class ItemData(SquareBaseModel):
    name: str
    description: str | None = None
    image_ids: list[str] = Field(default_factory=list[str])
    variations: list[CatalogObject] = Field(default_factory=list["CatalogObject"])

    _normalize_description = field_validator("description", mode="before")(_blank_to_none)


class ImageData(SquareBaseModel):
    url: str | None = None


class CatalogObject(SquareBaseModel):
    type: str
    id: str
    version: int | None = None
    updated_at: datetime | None = None
    is_deleted: bool = False
    item_data: ItemData | None = None
    item_variation_data: ItemVariationData | None = None
    image_data: ImageData | None = None


class ListCatalogPage(SquareBaseModel):
    # entries stay raw; each one is validated on its own
    objects: list[dict[str, Any]] = Field(default_factory=list[dict[str, Any]])
    cursor: str | None = None


class RetrieveCatalogObjectResponse(SquareBaseModel):
    object: CatalogObject


class IdMapping(SquareBaseModel):
    client_object_id: str
    object_id: str


class UpsertCatalogObjectResponse(SquareBaseModel):
    catalog_object: CatalogObject
    id_mappings: list[IdMapping] = Field(default_factory=list["IdMapping"])


class InventoryCount(SquareBaseModel):
    catalog_object_id: str
    location_id: str
    state: str
    quantity: int = 0
    calculated_at: datetime | None = None

    @field_validator("quantity", mode="before")
    @classmethod
    def _parse_quantity(cls, value: object) -> object:
        # quantities are decimal strings; stock counts here are whole units
        if isinstance(value, str):
            return int(float(value))
        return value


class BatchRetrieveCountsPage(SquareBaseModel):
    counts: list[dict[str, Any]] = Field(default_factory=list[dict[str, Any]])
    cursor: str | None = None


class BatchChangeInventoryResponse(SquareBaseModel):
    counts: list[InventoryCount] = Field(default_factory=list["InventoryCount"])
    errors: list[SquareError] = Field(default_factory=list["SquareError"])


# raw catalog object as returned by the API; upserts send it back with edits applied
type RawObject = dict[str, Any]


ItemData.model_rebuild()
