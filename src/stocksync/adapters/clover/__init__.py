"""Public interface for the Clover adapter."""

from __future__ import annotations

from .client import CLOVER_CAPABILITIES, CLOVER_FIELDS, CloverConnector
from .translator import parse_items, parse_merchant_location

__all__ = [
    "CLOVER_CAPABILITIES",
    "CLOVER_FIELDS",
    "CloverConnector",
    "parse_items",
    "parse_merchant_location",
]
