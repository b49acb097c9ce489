"""Domain enums (pure, dependency-light)."""

from __future__ import annotations

from enum import StrEnum


class Platform(StrEnum):
    """Closed set of marketplaces the engine can talk to."""

    SHOPIFY = "shopify"
    SQUARE = "square"
    CLOVER = "clover"


class EntityType(StrEnum):
    """Typed-reference discriminator used by the identity mapping."""

    PRODUCT = "product"
    VARIANT = "variant"
    LOCATION = "location"
    INVENTORY_LEVEL = "inventory_level"


class ConnectionStatus(StrEnum):
    CONNECTED = "connected"
    NEEDS_REAUTH = "needs_reauth"
    ERROR = "error"


class Capability(StrEnum):
    FETCH_LOCATIONS = "fetch_locations"
    FETCH_CATALOG = "fetch_catalog"
    CREATE_PRODUCT = "create_product"
    UPDATE_PRODUCT = "update_product"
    UPDATE_INVENTORY = "update_inventory"
    CREATE_LOCATION = "create_location"


class SyncField(StrEnum):
    """Mutable fields governed by the field-authority table."""

    TITLE = "title"
    DESCRIPTION = "description"
    IMAGE_URLS = "image_urls"

    SKU = "sku"
    BARCODE = "barcode"
    PRICE = "price"
    COMPARE_AT_PRICE = "compare_at_price"
    WEIGHT = "weight"
    REQUIRES_SHIPPING = "requires_shipping"
    TAXABLE = "taxable"

    INVENTORY_QUANTITY = "inventory_quantity"

    LOCATION_NAME = "location_name"
