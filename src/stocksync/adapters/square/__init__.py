"""Public interface for the Square adapter."""

from __future__ import annotations

from .client import DEFAULT_CURRENCY, SQUARE_FIELDS, SquareConnector, idempotency_key
from .translator import parse_catalog, parse_location, to_decimal, to_minor_units

__all__ = [
    "DEFAULT_CURRENCY",
    "SQUARE_FIELDS",
    "SquareConnector",
    "idempotency_key",
    "parse_catalog",
    "parse_location",
    "to_decimal",
    "to_minor_units",
]
