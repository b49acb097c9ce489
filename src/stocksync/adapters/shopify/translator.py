"""Translate Shopify payloads into domain entities and back."""

from __future__ import annotations

from typing import TYPE_CHECKING

from stocksync.domain.model import (
    INVENTORY_ITEM_ID,
    Address,
    InventoryLevel,
    Location,
    Platform,
    PlatformIds,
    Product,
    Variant,
)

if TYPE_CHECKING:
    from collections.abc import Mapping

    from .schema import InventoryLevelPayload, LocationPayload, ProductPayload, VariantPayload

_PLATFORM = Platform.SHOPIFY


def parse_location(payload: LocationPayload) -> Location:
    return Location(
        name=payload.name,
        is_active=payload.active,
        address=Address(
            address1=payload.address1,
            address2=payload.address2,
            city=payload.city,
            province_code=payload.province_code,
            country_code=payload.country_code,
            zip=payload.zip,
            phone=payload.phone,
        ),
        platform_ids=PlatformIds({_PLATFORM: payload.id}),
        updated_at=payload.updated_at,
    )


def parse_variant(payload: VariantPayload) -> Variant:
    meta = {INVENTORY_ITEM_ID: payload.inventory_item_id} if payload.inventory_item_id else {}
    return Variant(
        title=payload.title,
        sku=payload.sku,
        barcode=payload.barcode,
        price=payload.price,
        compare_at_price=payload.compare_at_price,
        weight_grams=payload.grams,
        requires_shipping=payload.requires_shipping,
        taxable=payload.taxable,
        platform_ids=PlatformIds({_PLATFORM: payload.id}),
        meta=meta,
        updated_at=payload.updated_at,
    )


def parse_product(payload: ProductPayload) -> Product:
    product = Product(
        title=payload.title,
        description=payload.body_html,
        image_urls=tuple(
            image.src for image in sorted(payload.images, key=lambda image: image.position or 0)
        ),
        platform_ids=PlatformIds({_PLATFORM: payload.id}),
        created_at=payload.created_at,
        updated_at=payload.updated_at,
    )
    for variant_payload in payload.variants:
        product.add_variant(parse_variant(variant_payload))
    return product


def attach_inventory_levels(
    products: list[Product], levels: list[InventoryLevelPayload]
) -> None:
    """Nest stock levels under the variant owning each inventory item."""

    by_item: dict[str, Variant] = {
        item_id: variant
        for product in products
        for variant in product.variants
        if (item_id := variant.meta.get(INVENTORY_ITEM_ID))
    }
    for level in levels:
        variant = by_item.get(level.inventory_item_id)
        if variant is None:
            continue
        variant.inventory_levels.append(
            InventoryLevel(
                platform_location_id=level.location_id,
                quantity=level.available or 0,
                updated_at=level.updated_at,
            )
        )


def _money(value: object) -> str | None:
    return None if value is None else f"{value:.2f}"


def variant_to_payload(variant: Variant) -> dict[str, object]:
    payload: dict[str, object] = {
        "sku": variant.sku,
        "barcode": variant.barcode,
        "price": _money(variant.price),
        "compare_at_price": _money(variant.compare_at_price),
    }
    if variant.title:
        payload["option1"] = variant.title
    if variant.weight_grams is not None:
        payload["grams"] = variant.weight_grams
    if variant.requires_shipping is not None:
        payload["requires_shipping"] = variant.requires_shipping
    if variant.taxable is not None:
        payload["taxable"] = variant.taxable
    platform_id = variant.platform_ids.get(_PLATFORM)
    if platform_id is not None:
        payload["id"] = int(platform_id)
    return payload


def product_to_payload(product: Product, *, include_variants: bool) -> dict[str, object]:
    payload: dict[str, object] = {
        "title": product.title,
        "body_html": product.description or "",
        "images": [{"src": url} for url in product.image_urls],
    }
    platform_id = product.platform_ids.get(_PLATFORM)
    if platform_id is not None:
        payload["id"] = int(platform_id)
    if include_variants:
        payload["variants"] = [
            {**variant_to_payload(variant), "inventory_management": "shopify"}
            for variant in product.variants
        ]
    return payload


def location_add_input(location: Location) -> dict[str, object]:
    address: Mapping[str, str | None] = {}
    if location.address is not None:
        address = {
            "address1": location.address.address1,
            "address2": location.address.address2,
            "city": location.address.city,
            "provinceCode": location.address.province_code,
            "countryCode": location.address.country_code,
            "zip": location.address.zip,
            "phone": location.address.phone,
        }
    return {
        "name": location.name,
        "address": {key: value for key, value in address.items() if value is not None},
    }


def numeric_gid(gid: str) -> str:
    """``gid://shopify/Location/123`` -> ``123``."""

    return gid.rsplit("/", 1)[-1]
