"""Get-or-create of canonical identities for platform observations.

Lookup order for every entity type:

1. the identity mapping for (platform, entity type, platform ID);
2. a secondary key within a known scope (variant SKU within its parent
   product, product SKUs within the account, location name within the account);
3. a new canonical entity.

The mapping row is written with an atomic insert-if-absent (``claim``) in the
same transaction as the new entity. Losing a race rolls the entity back and
returns the winner's ID, so concurrent runs never leave two canonical entities
for one platform ID.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from logging import getLogger
from typing import TYPE_CHECKING

from stocksync.domain.errors import (
    ConnectorDataError,
    MappingConflictError,
    Result,
    attempt_sync,
)
from stocksync.domain.model import EntityType, Location, Product, Variant

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping
    from uuid import UUID

    from stocksync.domain.model import Platform
    from stocksync.domain.ports import SyncRepositories, UnitOfWorkFactory

log = getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class MatchKind(StrEnum):
    PLATFORM_ID = "platform_id"
    SECONDARY_KEY = "secondary_key"
    CREATED = "created"


@dataclass(frozen=True, slots=True)
class Resolution:
    internal_id: UUID
    matched_by: MatchKind

    @property
    def created(self) -> bool:
        return self.matched_by is MatchKind.CREATED


type CandidateFinder = Callable[[SyncRepositories], UUID | None]
type EntityFactory = Callable[[SyncRepositories], UUID]


class IdentityResolver:
    def __init__(
        self,
        unit_of_work_factory: UnitOfWorkFactory,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._unit_of_work_factory = unit_of_work_factory
        self._clock = clock

    def resolve_location(
        self, account_id: str, platform: Platform, observed: Location
    ) -> Result[Resolution]:
        def find(repos: SyncRepositories) -> UUID | None:
            matches = repos.locations.find_by_name(account_id, observed.name)
            unmapped = [
                location.id
                for location in matches
                if repos.mappings.get_platform_id(location.id, platform, EntityType.LOCATION)
                is None
            ]
            # a name shared by several locations identifies none of them
            return unmapped[0] if len(unmapped) == 1 else None

        def create(repos: SyncRepositories) -> UUID:
            location = Location(
                account_id=account_id,
                name=observed.name,
                is_active=observed.is_active,
                address=observed.address,
                updated_at=observed.updated_at or self._clock(),
            )
            repos.locations.add(location)
            return location.id

        return attempt_sync(
            lambda: self._resolve(
                platform, EntityType.LOCATION, observed.platform_ids.get(platform), find, create
            )
        )

    def resolve_product(
        self, account_id: str, platform: Platform, observed: Product
    ) -> Result[Resolution]:
        def find(repos: SyncRepositories) -> UUID | None:
            skus = observed.skus
            if not skus:
                return None
            candidates = repos.variants.product_ids_for_skus(account_id, skus)
            if len(candidates) > 1:
                owners = ", ".join(sorted(str(candidate) for candidate in candidates))
                raise MappingConflictError(
                    f"SKUs {', '.join(sorted(skus))} belong to several products ({owners})"
                )
            return next(iter(candidates), None)

        def create(repos: SyncRepositories) -> UUID:
            now = self._clock()
            product = Product(
                account_id=account_id,
                title=observed.title,
                description=observed.description,
                image_urls=observed.image_urls,
                created_at=now,
                updated_at=observed.updated_at or now,
            )
            repos.products.add(product)
            return product.id

        return attempt_sync(
            lambda: self._resolve(
                platform, EntityType.PRODUCT, observed.platform_ids.get(platform), find, create
            )
        )

    def resolve_variant(
        self,
        account_id: str,
        platform: Platform,
        observed: Variant,
        *,
        product_id: UUID,
    ) -> Result[Resolution]:
        def find(repos: SyncRepositories) -> UUID | None:
            sku = observed.normalized_sku
            if sku is None:
                return None
            match = repos.variants.find_by_sku(product_id, sku)
            if match is not None:
                return match.id
            elsewhere = repos.variants.product_ids_for_skus(account_id, [sku]) - {product_id}
            if elsewhere:
                owners = ", ".join(sorted(str(owner) for owner in elsewhere))
                raise MappingConflictError(
                    f"SKU {sku!r} belongs to product {owners}, not to parent {product_id}"
                )
            return None

        def create(repos: SyncRepositories) -> UUID:
            variant = Variant(
                product_id=product_id,
                title=observed.title,
                sku=observed.normalized_sku,
                barcode=observed.barcode,
                price=observed.price,
                compare_at_price=observed.compare_at_price,
                weight_grams=observed.weight_grams,
                requires_shipping=observed.requires_shipping,
                taxable=observed.taxable,
                updated_at=observed.updated_at or self._clock(),
            )
            repos.variants.add(variant)
            return variant.id

        return attempt_sync(
            lambda: self._resolve(
                platform, EntityType.VARIANT, observed.platform_ids.get(platform), find, create
            )
        )

    def save_meta(
        self,
        internal_id: UUID,
        platform: Platform,
        entity_type: EntityType,
        meta: Mapping[str, str],
    ) -> None:
        if not meta:
            return
        with self._unit_of_work_factory() as uow:
            mappings = uow.repositories.mappings
            for key, value in sorted(meta.items()):
                mappings.save_meta_value(internal_id, platform, entity_type, key, value)
            uow.commit()

    def _resolve(
        self,
        platform: Platform,
        entity_type: EntityType,
        platform_id: str | None,
        find_candidate: CandidateFinder,
        create: EntityFactory,
    ) -> Resolution:
        if platform_id is None:
            raise ConnectorDataError(
                f"{platform} {entity_type} observation carries no platform id",
                platform=platform,
            )

        with self._unit_of_work_factory() as uow:
            repos = uow.repositories
            mappings = repos.mappings

            existing = mappings.get_internal_id(platform, entity_type, platform_id)
            if existing is not None:
                return Resolution(existing, MatchKind.PLATFORM_ID)

            candidate = find_candidate(repos)
            if candidate is not None:
                mapped = mappings.get_platform_id(candidate, platform, entity_type)
                if mapped is not None and mapped != platform_id:
                    raise MappingConflictError(
                        f"{entity_type} {candidate} is already mapped to {platform} id "
                        f"{mapped}, refusing to also map {platform_id}"
                    )
                winner = mappings.claim(candidate, platform, entity_type, platform_id)
                if winner != candidate:
                    uow.rollback()
                    return Resolution(winner, MatchKind.PLATFORM_ID)
                uow.commit()
                log.debug(
                    "Matched %s %s %s to %s by secondary key",
                    platform,
                    entity_type,
                    platform_id,
                    candidate,
                )
                return Resolution(candidate, MatchKind.SECONDARY_KEY)

            internal_id = create(repos)
            winner = mappings.claim(internal_id, platform, entity_type, platform_id)
            if winner != internal_id:
                # a concurrent run mapped this platform id first
                uow.rollback()
                return Resolution(winner, MatchKind.PLATFORM_ID)
            uow.commit()
            log.info("Created %s %s for %s id %s", entity_type, internal_id, platform, platform_id)
            return Resolution(internal_id, MatchKind.CREATED)
