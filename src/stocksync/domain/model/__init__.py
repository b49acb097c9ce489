"""Domain model public API."""

from __future__ import annotations

from stocksync.domain.model.catalog import (
    Address,
    InventoryLevel,
    Location,
    Product,
    Variant,
    clamp_quantity,
)
from stocksync.domain.model.connection import Connection, MissingCredentialError
from stocksync.domain.model.entity import Entity, new_id
from stocksync.domain.model.enums import (
    Capability,
    ConnectionStatus,
    EntityType,
    Platform,
    SyncField,
)
from stocksync.domain.model.external_ids import PlatformIds
from stocksync.domain.model.mapping import ID_META_KEY, INVENTORY_ITEM_ID

__all__ = [
    "ID_META_KEY",
    "INVENTORY_ITEM_ID",
    "Address",
    "Capability",
    "Connection",
    "ConnectionStatus",
    "Entity",
    "EntityType",
    "InventoryLevel",
    "Location",
    "MissingCredentialError",
    "Platform",
    "PlatformIds",
    "Product",
    "SyncField",
    "Variant",
    "clamp_quantity",
    "new_id",
]
