"""The consolidated view of one account after a fetch cycle.

A graph pairs every canonical entity with the raw observations each platform
reported for it. The consolidator builds it; the change detector and the
update pusher only read it.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING

from stocksync.domain.model import EntityType

if TYPE_CHECKING:
    from uuid import UUID

    from stocksync.domain.errors import Failure
    from stocksync.domain.model import InventoryLevel, Location, Platform, Product, Variant
    from stocksync.domain.ports import RejectedRecord

log = getLogger(__name__)


@dataclass(frozen=True, slots=True, kw_only=True)
class CatalogSnapshot:
    """Everything one connection returned in one fetch."""

    platform: Platform
    connection_id: UUID
    locations: tuple[Location, ...] = ()
    products: tuple[Product, ...] = ()
    rejected: tuple[RejectedRecord, ...] = ()


@dataclass(slots=True)
class Observed[T]:
    """A canonical entity and its per-platform observations."""

    canonical: T | None = None
    by_platform: dict[Platform, T] = field(default_factory=dict)

    def observe(self, platform: Platform, observation: T) -> bool:
        if platform in self.by_platform:
            return False
        self.by_platform[platform] = observation
        return True

    @property
    def platforms(self) -> frozenset[Platform]:
        return frozenset(self.by_platform)


@dataclass(frozen=True, slots=True, kw_only=True)
class SkippedEntity:
    platform: Platform
    entity_type: EntityType
    platform_id: str | None
    failure: Failure


@dataclass(slots=True)
class ConsolidatedGraph:
    account_id: str
    platforms: tuple[Platform, ...] = ()
    products: dict[UUID, Observed[Product]] = field(default_factory=dict)
    variants: dict[UUID, Observed[Variant]] = field(default_factory=dict)
    locations: dict[UUID, Observed[Location]] = field(default_factory=dict)
    levels: dict[tuple[UUID, UUID], Observed[InventoryLevel]] = field(default_factory=dict)
    created: Counter[EntityType] = field(default_factory=Counter[EntityType])
    skipped: list[SkippedEntity] = field(default_factory=list)

    def observe_product(self, internal_id: UUID, platform: Platform, product: Product) -> None:
        self._observe(self.products, EntityType.PRODUCT, internal_id, platform, product)

    def observe_variant(self, internal_id: UUID, platform: Platform, variant: Variant) -> None:
        self._observe(self.variants, EntityType.VARIANT, internal_id, platform, variant)

    def observe_location(self, internal_id: UUID, platform: Platform, location: Location) -> None:
        self._observe(self.locations, EntityType.LOCATION, internal_id, platform, location)

    def observe_level(
        self, key: tuple[UUID, UUID], platform: Platform, level: InventoryLevel
    ) -> None:
        self._observe(self.levels, EntityType.INVENTORY_LEVEL, key, platform, level)

    def skip(
        self,
        platform: Platform,
        entity_type: EntityType,
        platform_id: str | None,
        failure: Failure,
    ) -> None:
        log.warning(
            "Skipping %s %s from %s: %s", entity_type, platform_id or "<no id>", platform, failure
        )
        self.skipped.append(
            SkippedEntity(
                platform=platform,
                entity_type=entity_type,
                platform_id=platform_id,
                failure=failure,
            )
        )

    def variants_of(self, product_id: UUID) -> list[UUID]:
        return sorted(
            (
                variant_id
                for variant_id, observed in self.variants.items()
                if observed.canonical is not None and observed.canonical.product_id == product_id
            ),
            key=str,
        )

    def _observe[K, T](
        self,
        bucket: dict[K, Observed[T]],
        entity_type: EntityType,
        key: K,
        platform: Platform,
        observation: T,
    ) -> None:
        observed = bucket.setdefault(key, Observed())
        if not observed.observe(platform, observation):
            log.debug("Ignoring repeated %s observation for %s from %s", entity_type, key, platform)
