"""Pydantic models describing the Shopify Admin API payloads."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _blank_to_none(value: object) -> object:
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return value


def _to_str(value: object) -> object:
    # Shopify IDs are 64-bit integers; keep them as strings end to end
    if isinstance(value, int):
        return str(value)
    return value


class ShopifyBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class LocationPayload(ShopifyBaseModel):
    id: str
    name: str
    active: bool = True
    address1: str | None = None
    address2: str | None = None
    city: str | None = None
    province_code: str | None = None
    country_code: str | None = None
    zip: str | None = None
    phone: str | None = None
    updated_at: datetime | None = None

    _normalize_id = field_validator("id", mode="before")(_to_str)
    _normalize_blanks = field_validator(
        "address1",
        "address2",
        "city",
        "province_code",
        "country_code",
        "zip",
        "phone",
        mode="before",
    )(_blank_to_none)


class LocationsResponse(ShopifyBaseModel):
    locations: list[LocationPayload] = Field(default_factory=list["LocationPayload"])


class ImagePayload(ShopifyBaseModel):
    src: str
    position: int | None = None


class VariantPayload(ShopifyBaseModel):
    id: str
    product_id: str | None = None
    title: str | None = None
    sku: str | None = None
    barcode: str | None = None
    price: Decimal | None = None
    compare_at_price: Decimal | None = None
    grams: int | None = None
    requires_shipping: bool | None = None
    taxable: bool | None = None
    inventory_item_id: str | None = None
    updated_at: datetime | None = None

    _normalize_ids = field_validator("id", "product_id", "inventory_item_id", mode="before")(
        _to_str
    )
    _normalize_blanks = field_validator(
        "sku", "barcode", "compare_at_price", mode="before"
    )(_blank_to_none)


class ProductPayload(ShopifyBaseModel):
    id: str
    title: str
    body_html: str | None = None
    images: list[ImagePayload] = Field(default_factory=list["ImagePayload"])
    variants: list[VariantPayload] = Field(default_factory=list["VariantPayload"])
    created_at: datetime | None = None
    updated_at: datetime | None = None

    _normalize_id = field_validator("id", mode="before")(_to_str)
    _normalize_body = field_validator("body_html", mode="before")(_blank_to_none)


class ProductsPage(ShopifyBaseModel):
    # entries stay raw; each one is validated on its own
    products: list[dict[str, Any]] = Field(default_factory=list[dict[str, Any]])


class ProductResponse(ShopifyBaseModel):
    product: ProductPayload


class VariantResponse(ShopifyBaseModel):
    variant: VariantPayload


class InventoryLevelPayload(ShopifyBaseModel):
    inventory_item_id: str
    location_id: str
    available: int | None = None
    updated_at: datetime | None = None

    _normalize_ids = field_validator("inventory_item_id", "location_id", mode="before")(_to_str)


class InventoryLevelsPage(ShopifyBaseModel):
    inventory_levels: list[dict[str, Any]] = Field(default_factory=list[dict[str, Any]])


class UserError(ShopifyBaseModel):
    field: list[str] | None = None
    message: str


class AddedLocation(ShopifyBaseModel):
    id: str
    name: str


class LocationAddResult(ShopifyBaseModel):
    location: AddedLocation | None = None
    user_errors: list[UserError] = Field(default_factory=list["UserError"], alias="userErrors")


class LocationAddData(ShopifyBaseModel):
    location_add: LocationAddResult | None = Field(default=None, alias="locationAdd")


class GraphQLError(ShopifyBaseModel):
    message: str


class LocationAddResponse(ShopifyBaseModel):
    data: LocationAddData | None = None
    errors: list[GraphQLError] = Field(default_factory=list["GraphQLError"])
