"""Pydantic models describing the Clover merchant API payloads."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _blank_to_none(value: object) -> object:
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return value


def _from_epoch_millis(value: object) -> object:
    if isinstance(value, int):
        return datetime.fromtimestamp(value / 1000, tz=UTC)
    return value


class CloverBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class AddressPayload(CloverBaseModel):
    address1: str | None = None
    address2: str | None = None
    city: str | None = None
    state: str | None = None
    zip: str | None = None
    country: str | None = None
    phone_number: str | None = Field(default=None, alias="phoneNumber")


class MerchantPayload(CloverBaseModel):
    id: str
    name: str
    address: AddressPayload | None = None


class ItemGroupRef(CloverBaseModel):
    id: str
    name: str | None = None


class ItemStockPayload(CloverBaseModel):
    quantity: float | None = None
    modified_time: datetime | None = Field(default=None, alias="modifiedTime")

    _parse_modified = field_validator("modified_time", mode="before")(_from_epoch_millis)


class ItemPayload(CloverBaseModel):
    id: str
    name: str
    sku: str | None = None
    code: str | None = None
    price: int | None = None
    price_type: str | None = Field(default=None, alias="priceType")
    hidden: bool = False
    deleted: bool = False
    item_group: ItemGroupRef | None = Field(default=None, alias="itemGroup")
    item_stock: ItemStockPayload | None = Field(default=None, alias="itemStock")
    stock_count: int | None = Field(default=None, alias="stockCount")
    modified_time: datetime | None = Field(default=None, alias="modifiedTime")

    _normalize_blanks = field_validator("sku", "code", mode="before")(_blank_to_none)
    _parse_modified = field_validator("modified_time", mode="before")(_from_epoch_millis)


class ItemsPage(CloverBaseModel):
    # entries stay raw; each one is validated on its own
    elements: list[dict[str, Any]] = Field(default_factory=list[dict[str, Any]])


class ItemGroupPayload(CloverBaseModel):
    id: str
    name: str | None = None
