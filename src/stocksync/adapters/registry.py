"""Connector dispatch keyed by platform."""

from __future__ import annotations

from logging import getLogger
from types import MappingProxyType
from typing import TYPE_CHECKING

from stocksync.adapters.clover import CloverConnector
from stocksync.adapters.shopify import ShopifyConnector
from stocksync.adapters.square import SquareConnector
from stocksync.config.platforms import PlatformsConfig

if TYPE_CHECKING:
    from collections.abc import Iterable

    from stocksync.domain.model import Capability, Platform, SyncField
    from stocksync.domain.ports import ConnectorLookup, PlatformConnector

log = getLogger(__name__)


class ConnectorRegistry:
    """Immutable set of connectors, one per platform, built once at startup."""

    def __init__(self, connectors: Iterable[PlatformConnector]) -> None:
        by_platform: dict[Platform, PlatformConnector] = {}
        for connector in connectors:
            if connector.platform in by_platform:
                raise ValueError(f"Duplicate connector for {connector.platform}")
            by_platform[connector.platform] = connector
        self._connectors = MappingProxyType(by_platform)

    @property
    def platforms(self) -> tuple[Platform, ...]:
        return tuple(sorted(self._connectors))

    def get(self, platform: Platform) -> PlatformConnector | None:
        return self._connectors.get(platform)

    def supports(self, platform: Platform, capability: Capability) -> bool:
        connector = self._connectors.get(platform)
        return connector is not None and capability in connector.capabilities

    def supports_field(self, platform: Platform, sync_field: SyncField) -> bool:
        connector = self._connectors.get(platform)
        return connector is not None and sync_field in connector.fields


def build_default_registry(config: PlatformsConfig | None = None) -> ConnectorRegistry:
    config = config or PlatformsConfig()
    registry = ConnectorRegistry(
        [
            ShopifyConnector(config=config.shopify),
            SquareConnector(config=config.square),
            CloverConnector(config=config.clover),
        ]
    )
    log.debug("Registered connectors for %s", ", ".join(registry.platforms))
    return registry


if TYPE_CHECKING:
    _lookup_check: ConnectorLookup = ConnectorRegistry([])
