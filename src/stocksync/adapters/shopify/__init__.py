"""Public interface for the Shopify adapter."""

from __future__ import annotations

from .client import LOCATION_ADD_MUTATION, ShopifyConnector
from .translator import parse_location, parse_product, parse_variant

__all__ = [
    "LOCATION_ADD_MUTATION",
    "ShopifyConnector",
    "parse_location",
    "parse_product",
    "parse_variant",
]
