"""Keys shared by identity mapping rows."""

from __future__ import annotations

from typing import Final

# Plain ID mappings carry no meta key. The empty string keeps the 4-tuple key
# (internal_id, platform, entity_type, meta_key) free of NULLs.
ID_META_KEY: Final[str] = ""

INVENTORY_ITEM_ID: Final[str] = "inventory_item_id"
