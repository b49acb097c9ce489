"""Merge per-platform fetch results into one canonical graph."""

from __future__ import annotations

from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING

from stocksync.domain.errors import ErrorKind, Failure, Success
from stocksync.domain.model import EntityType, InventoryLevel, clamp_quantity
from stocksync.domain.reconciliation.graph import ConsolidatedGraph

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from uuid import UUID

    from stocksync.domain.model import Platform, Product, Variant
    from stocksync.domain.ports import SyncRepositories, UnitOfWorkFactory
    from stocksync.domain.reconciliation.graph import CatalogSnapshot
    from stocksync.domain.reconciliation.identity import IdentityResolver

log = getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Consolidator:
    """Resolve every observation of every platform and assemble the graph.

    Per platform the order is locations, products, variants, inventory levels,
    so each step can rely on the IDs resolved before it. Field values are not
    chosen here; observations are only collected side by side.
    """

    def __init__(
        self,
        resolver: IdentityResolver,
        unit_of_work_factory: UnitOfWorkFactory,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._resolver = resolver
        self._unit_of_work_factory = unit_of_work_factory
        self._clock = clock

    def consolidate(
        self, account_id: str, snapshots: Sequence[CatalogSnapshot]
    ) -> ConsolidatedGraph:
        ordered = sorted(snapshots, key=lambda snapshot: snapshot.platform.value)
        graph = ConsolidatedGraph(
            account_id=account_id,
            platforms=tuple(snapshot.platform for snapshot in ordered),
        )
        for snapshot in ordered:
            self._consolidate_snapshot(graph, snapshot)
        self._load_canonical(graph)
        log.info(
            "Consolidated account %s: %d products, %d variants, %d locations, %d levels, "
            "%d skipped",
            account_id,
            len(graph.products),
            len(graph.variants),
            len(graph.locations),
            len(graph.levels),
            len(graph.skipped),
        )
        return graph

    def _consolidate_snapshot(self, graph: ConsolidatedGraph, snapshot: CatalogSnapshot) -> None:
        platform = snapshot.platform
        account_id = graph.account_id

        for record in snapshot.rejected:
            graph.skip(
                platform,
                record.entity_type,
                record.platform_id,
                Failure(ErrorKind.DATA, record.reason),
            )

        location_ids: dict[str, UUID] = {}
        for location in snapshot.locations:
            platform_id = location.platform_ids.get(platform)
            match self._resolver.resolve_location(account_id, platform, location):
                case Success(value=resolution):
                    self._count(graph, resolution.created, EntityType.LOCATION)
                    graph.observe_location(resolution.internal_id, platform, location)
                    if platform_id is not None:
                        location_ids[platform_id] = resolution.internal_id
                case Failure() as failure:
                    graph.skip(platform, EntityType.LOCATION, platform_id, failure)

        products: list[tuple[UUID, Product]] = []
        for product in snapshot.products:
            platform_id = product.platform_ids.get(platform)
            match self._resolver.resolve_product(account_id, platform, product):
                case Success(value=resolution):
                    self._count(graph, resolution.created, EntityType.PRODUCT)
                    graph.observe_product(resolution.internal_id, platform, product)
                    products.append((resolution.internal_id, product))
                case Failure() as failure:
                    graph.skip(platform, EntityType.PRODUCT, platform_id, failure)

        variants: list[tuple[UUID, Variant]] = []
        for product_id, product in products:
            for variant in product.variants:
                resolved = self._consolidate_variant(graph, platform, product_id, variant)
                if resolved is not None:
                    variants.append((resolved, variant))

        for variant_id, variant in variants:
            for level in variant.inventory_levels:
                location_id = location_ids.get(level.platform_location_id or "")
                if location_id is None:
                    graph.skip(
                        platform,
                        EntityType.INVENTORY_LEVEL,
                        level.platform_location_id,
                        Failure(
                            ErrorKind.UNRESOLVED_MAPPING,
                            f"stock for variant {variant_id} references unknown location "
                            f"{level.platform_location_id!r}",
                        ),
                    )
                    continue
                graph.observe_level((variant_id, location_id), platform, level)

    def _consolidate_variant(
        self,
        graph: ConsolidatedGraph,
        platform: Platform,
        product_id: UUID,
        variant: Variant,
    ) -> UUID | None:
        platform_id = variant.platform_ids.get(platform)
        match self._resolver.resolve_variant(
            graph.account_id, platform, variant, product_id=product_id
        ):
            case Success(value=resolution):
                self._count(graph, resolution.created, EntityType.VARIANT)
                graph.observe_variant(resolution.internal_id, platform, variant)
                self._resolver.save_meta(
                    resolution.internal_id, platform, EntityType.VARIANT, variant.meta
                )
                return resolution.internal_id
            case Failure() as failure:
                graph.skip(platform, EntityType.VARIANT, platform_id, failure)
                return None

    def _load_canonical(self, graph: ConsolidatedGraph) -> None:
        """Attach the stored canonical records, creating first-seen stock levels."""

        with self._unit_of_work_factory() as uow:
            repos = uow.repositories
            for location_id, observed in graph.locations.items():
                location = repos.locations.get(location_id)
                if location is not None:
                    location.platform_ids = repos.mappings.platform_ids_for(
                        location_id, EntityType.LOCATION
                    )
                observed.canonical = location
            for variant_id, observed in graph.variants.items():
                variant = repos.variants.get(variant_id)
                if variant is not None:
                    variant.platform_ids = repos.mappings.platform_ids_for(
                        variant_id, EntityType.VARIANT
                    )
                observed.canonical = variant
            for product_id, observed in graph.products.items():
                product = repos.products.get(product_id)
                if product is not None:
                    product.platform_ids = repos.mappings.platform_ids_for(
                        product_id, EntityType.PRODUCT
                    )
                    product.variants = [
                        canonical
                        for variant_id in graph.variants_of(product_id)
                        if (canonical := graph.variants[variant_id].canonical) is not None
                    ]
                observed.canonical = product
            for key, observed in graph.levels.items():
                observed.canonical = self._canonical_level(graph, repos, key, observed.by_platform)
            uow.commit()

    def _canonical_level(
        self,
        graph: ConsolidatedGraph,
        repos: SyncRepositories,
        key: tuple[UUID, UUID],
        by_platform: dict[Platform, InventoryLevel],
    ) -> InventoryLevel:
        variant_id, location_id = key
        level = repos.inventory_levels.get(variant_id, location_id)
        if level is not None:
            return level
        first = by_platform[min(by_platform)]
        level = InventoryLevel(
            variant_id=variant_id,
            location_id=location_id,
            quantity=clamp_quantity(first.quantity),
            updated_at=first.updated_at or self._clock(),
        )
        repos.inventory_levels.save(level)
        graph.created[EntityType.INVENTORY_LEVEL] += 1
        return level

    @staticmethod
    def _count(graph: ConsolidatedGraph, created: bool, entity_type: EntityType) -> None:
        if created:
            graph.created[entity_type] += 1
