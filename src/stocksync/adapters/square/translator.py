"""Translate Square catalog objects into domain entities and back."""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Any

from stocksync.domain.model import (
    Address,
    InventoryLevel,
    Location,
    Platform,
    PlatformIds,
    Product,
    Variant,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

    from .schema import CatalogObject, InventoryCount, LocationPayload, Money, RawObject

_PLATFORM = Platform.SQUARE
_MINOR_UNITS = 2
IN_STOCK = "IN_STOCK"


def to_decimal(money: Money | None) -> Decimal | None:
    if money is None:
        return None
    return Decimal(money.amount).scaleb(-_MINOR_UNITS)


def to_minor_units(amount: Decimal) -> int:
    return int(amount.scaleb(_MINOR_UNITS).to_integral_value())


def parse_location(payload: LocationPayload) -> Location:
    address = None
    if payload.address is not None:
        address = Address(
            address1=payload.address.address_line_1,
            address2=payload.address.address_line_2,
            city=payload.address.locality,
            province_code=payload.address.administrative_district_level_1,
            country_code=payload.address.country,
            zip=payload.address.postal_code,
            phone=payload.phone_number,
        )
    return Location(
        name=payload.name,
        is_active=payload.status == "ACTIVE",
        address=address,
        platform_ids=PlatformIds({_PLATFORM: payload.id}),
    )


def parse_variation(obj: CatalogObject) -> Variant | None:
    data = obj.item_variation_data
    if data is None or obj.is_deleted:
        return None
    return Variant(
        title=data.name,
        sku=data.sku,
        barcode=data.upc,
        price=to_decimal(data.price_money),
        platform_ids=PlatformIds({_PLATFORM: obj.id}),
        updated_at=obj.updated_at,
    )


def parse_catalog(objects: Iterable[CatalogObject]) -> list[Product]:
    """Build products from ``ITEM`` objects; ``IMAGE`` objects supply image URLs."""

    objects = list(objects)
    images = {
        obj.id: obj.image_data.url
        for obj in objects
        if obj.type == "IMAGE" and obj.image_data is not None and obj.image_data.url
    }
    products: dict[str, Product] = {}
    for obj in objects:
        if obj.type != "ITEM" or obj.is_deleted or obj.item_data is None:
            continue
        if obj.id in products:
            continue
        data = obj.item_data
        product = Product(
            title=data.name,
            description=data.description,
            image_urls=tuple(images[image_id] for image_id in data.image_ids if image_id in images),
            platform_ids=PlatformIds({_PLATFORM: obj.id}),
            updated_at=obj.updated_at,
        )
        for variation in data.variations:
            variant = parse_variation(variation)
            if variant is not None:
                product.add_variant(variant)
        products[obj.id] = product
    return list(products.values())


def attach_counts(products: list[Product], counts: Iterable[InventoryCount]) -> None:
    by_id = {
        variant.platform_ids[_PLATFORM]: variant
        for product in products
        for variant in product.variants
    }
    for count in counts:
        if count.state != IN_STOCK:
            continue
        variant = by_id.get(count.catalog_object_id)
        if variant is None:
            continue
        variant.inventory_levels.append(
            InventoryLevel(
                platform_location_id=count.location_id,
                quantity=count.quantity,
                updated_at=count.calculated_at,
            )
        )


def _variation_data(variant: Variant, *, item_id: str, currency: str) -> dict[str, Any]:
    data: dict[str, Any] = {
        "item_id": item_id,
        "name": variant.title or "Regular",
        "sku": variant.sku,
        "upc": variant.barcode,
    }
    if variant.price is not None:
        data["pricing_type"] = "FIXED_PRICING"
        data["price_money"] = {"amount": to_minor_units(variant.price), "currency": currency}
    else:
        data["pricing_type"] = "VARIABLE_PRICING"
    return data


def temporary_id(kind: str, index: int) -> str:
    return f"#{kind}-{index}"


def new_item_object(product: Product, *, currency: str) -> RawObject:
    item_id = temporary_id("item", 0)
    return {
        "type": "ITEM",
        "id": item_id,
        "item_data": {
            "name": product.title,
            "description": product.description,
            "variations": [
                {
                    "type": "ITEM_VARIATION",
                    "id": temporary_id("variation", index),
                    "item_variation_data": _variation_data(
                        variant, item_id=item_id, currency=currency
                    ),
                }
                for index, variant in enumerate(product.variants)
            ],
        },
    }


def apply_product(raw: RawObject, product: Product, *, currency: str) -> RawObject:
    """Write ``product``'s values into a retrieved ITEM object, keeping its versions."""

    item_data = raw.setdefault("item_data", {})
    item_data["name"] = product.title
    item_data["description"] = product.description
    variants = {
        variant.platform_ids[_PLATFORM]: variant
        for variant in product.variants
        if _PLATFORM in variant.platform_ids
    }
    for variation in item_data.get("variations", []):
        variant = variants.get(variation.get("id"))
        if variant is None:
            continue
        current = variation.setdefault("item_variation_data", {})
        current.update(_variation_data(variant, item_id=raw["id"], currency=currency))
    return raw


def location_to_payload(location: Location) -> dict[str, Any]:
    payload: dict[str, Any] = {"name": location.name}
    if location.address is not None:
        address = {
            "address_line_1": location.address.address1,
            "address_line_2": location.address.address2,
            "locality": location.address.city,
            "administrative_district_level_1": location.address.province_code,
            "postal_code": location.address.zip,
            "country": location.address.country_code,
        }
        payload["address"] = {key: value for key, value in address.items() if value is not None}
        if location.address.phone:
            payload["phone_number"] = location.address.phone
    return payload
