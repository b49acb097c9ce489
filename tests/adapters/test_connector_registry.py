from __future__ import annotations

import pytest

from stocksync.adapters.clover import CloverConnector
from stocksync.adapters.registry import ConnectorRegistry, build_default_registry
from stocksync.adapters.shopify import ShopifyConnector
from stocksync.adapters.square import SquareConnector
from stocksync.domain.model import Capability, Platform, SyncField


def test_default_registry_has_one_connector_per_platform() -> None:
    registry = build_default_registry()

    assert registry.platforms == (Platform.CLOVER, Platform.SHOPIFY, Platform.SQUARE)
    assert isinstance(registry.get(Platform.SHOPIFY), ShopifyConnector)
    assert isinstance(registry.get(Platform.SQUARE), SquareConnector)
    assert isinstance(registry.get(Platform.CLOVER), CloverConnector)


def test_duplicate_platforms_are_rejected() -> None:
    with pytest.raises(ValueError, match="Duplicate connector"):
        ConnectorRegistry([SquareConnector(), SquareConnector()])


def test_capabilities_and_fields_are_answered_per_platform() -> None:
    registry = build_default_registry()

    assert registry.supports(Platform.SHOPIFY, Capability.CREATE_LOCATION)
    assert not registry.supports(Platform.CLOVER, Capability.CREATE_LOCATION)
    assert registry.supports_field(Platform.SHOPIFY, SyncField.WEIGHT)
    assert not registry.supports_field(Platform.SQUARE, SyncField.WEIGHT)
    assert not registry.supports_field(Platform.CLOVER, SyncField.DESCRIPTION)


def test_missing_platforms_support_nothing() -> None:
    registry = ConnectorRegistry([ShopifyConnector()])

    assert registry.get(Platform.CLOVER) is None
    assert not registry.supports(Platform.CLOVER, Capability.FETCH_CATALOG)
    assert not registry.supports_field(Platform.CLOVER, SyncField.TITLE)
