"""Translate Clover items into domain entities and back.

Clover has no product/variant split. Items that share an item group become
the variants of one product keyed by the group ID; an ungrouped item is a
product with a single variant and both carry the item ID.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

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

    from .schema import ItemPayload, MerchantPayload

_PLATFORM = Platform.CLOVER


def cents_to_decimal(cents: int | None) -> Decimal | None:
    return None if cents is None else Decimal(cents).scaleb(-2)


def decimal_to_cents(amount: Decimal) -> int:
    return int(amount.scaleb(2).to_integral_value())


def parse_merchant_location(merchant: MerchantPayload) -> Location:
    address = None
    if merchant.address is not None:
        address = Address(
            address1=merchant.address.address1,
            address2=merchant.address.address2,
            city=merchant.address.city,
            province_code=merchant.address.state,
            country_code=merchant.address.country,
            zip=merchant.address.zip,
            phone=merchant.address.phone_number,
        )
    return Location(
        name=merchant.name,
        address=address,
        platform_ids=PlatformIds({_PLATFORM: merchant.id}),
    )


def _stock(item: ItemPayload) -> int | None:
    if item.item_stock is not None and item.item_stock.quantity is not None:
        return int(item.item_stock.quantity)
    return item.stock_count


def parse_item(item: ItemPayload, *, merchant_id: str) -> Variant:
    variant = Variant(
        title=item.name,
        sku=item.sku,
        barcode=item.code,
        price=cents_to_decimal(item.price),
        platform_ids=PlatformIds({_PLATFORM: item.id}),
        updated_at=item.modified_time,
    )
    quantity = _stock(item)
    if quantity is not None:
        variant.inventory_levels.append(
            InventoryLevel(
                platform_location_id=merchant_id,
                quantity=quantity,
                updated_at=(item.item_stock.modified_time if item.item_stock else None)
                or item.modified_time,
            )
        )
    return variant


def parse_items(items: Iterable[ItemPayload], *, merchant_id: str) -> list[Product]:
    products: dict[str, Product] = {}
    seen_items: set[str] = set()
    for item in items:
        if item.deleted or item.id in seen_items:
            continue
        seen_items.add(item.id)
        group = item.item_group
        key = group.id if group is not None else item.id
        product = products.get(key)
        if product is None:
            title = (group.name if group is not None else None) or item.name
            product = Product(title=title, platform_ids=PlatformIds({_PLATFORM: key}))
            products[key] = product
        variant = product.add_variant(parse_item(item, merchant_id=merchant_id))
        if variant.updated_at is not None and (
            product.updated_at is None or variant.updated_at > product.updated_at
        ):
            product.updated_at = variant.updated_at
    return list(products.values())


def is_grouped(product: Product) -> bool:
    """Whether the product ID names an item group rather than a single item."""

    product_id = product.platform_ids.get(_PLATFORM)
    return all(variant.platform_ids.get(_PLATFORM) != product_id for variant in product.variants)


def item_to_payload(
    variant: Variant, *, name: str, group_id: str | None = None
) -> dict[str, object]:
    payload: dict[str, object] = {"name": name, "sku": variant.sku, "code": variant.barcode}
    if variant.price is not None:
        payload["price"] = decimal_to_cents(variant.price)
        payload["priceType"] = "FIXED"
    else:
        payload["price"] = 0
        payload["priceType"] = "VARIABLE"
    if group_id is not None:
        payload["itemGroup"] = {"id": group_id}
    return payload
