"""Apply detected actions to the platforms.

Actions are grouped by target platform. Platforms are pushed concurrently,
the actions of one platform one after another in detector order. Every action
ends in a :class:`PushOutcome`; nothing here raises for a failed write.
Mapping lookups and saves run on the store thread, never on the event loop.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from enum import StrEnum
from logging import getLogger
from typing import TYPE_CHECKING

from stocksync.domain.errors import (
    ConnectorDataError,
    ErrorKind,
    Failure,
    Success,
    UnresolvedMappingError,
    attempt,
)
from stocksync.domain.model import EntityType, PlatformIds
from stocksync.domain.reconciliation.actions import ActionType
from stocksync.domain.reconciliation.authority import set_field_value
from stocksync.domain.reconciliation.store import StoreRunner

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Mapping, Sequence
    from uuid import UUID

    from stocksync.domain.model import Connection, Location, Platform, Product, Variant
    from stocksync.domain.ports import (
        ConnectionDirectory,
        ConnectorLookup,
        PlatformConnector,
        UnitOfWorkFactory,
    )
    from stocksync.domain.reconciliation.actions import FieldChange, UpdateAction
    from stocksync.domain.reconciliation.graph import ConsolidatedGraph

log = getLogger(__name__)

type Sleep = Callable[[float], Awaitable[None]]


class PushStatus(StrEnum):
    SUCCEEDED = "succeeded"
    ALREADY_PRESENT = "already_present"
    RETRIED_THEN_FAILED = "retried_then_failed"
    FAILED = "failed"
    SKIPPED_UNRESOLVED = "skipped_unresolved"
    ABORTED_AUTH = "aborted_auth"
    SKIPPED_NO_CONNECTION = "skipped_no_connection"


@dataclass(frozen=True, slots=True)
class RetrySchedule:
    max_attempts: int = 4
    base_delay: float = 1.0
    max_delay: float = 30.0

    def delay_for(self, attempt_number: int, *, retry_after: float | None = None) -> float:
        """Exponential backoff before retrying after attempt ``attempt_number`` (1-based)."""

        delay = min(self.base_delay * 2 ** (attempt_number - 1), self.max_delay)
        if retry_after is not None:
            delay = max(delay, min(retry_after, self.max_delay))
        return delay


@dataclass(frozen=True, slots=True)
class PushOutcome:
    action: UpdateAction
    status: PushStatus
    attempts: int = 0
    failure: Failure | None = None

    @property
    def succeeded(self) -> bool:
        return self.status in {PushStatus.SUCCEEDED, PushStatus.ALREADY_PRESENT}


class UpdatePusher:
    def __init__(
        self,
        connectors: ConnectorLookup,
        unit_of_work_factory: UnitOfWorkFactory,
        connection_directory: ConnectionDirectory,
        *,
        retry: RetrySchedule | None = None,
        sleep: Sleep = asyncio.sleep,
        store: StoreRunner | None = None,
    ) -> None:
        self._connectors = connectors
        self._store = store or StoreRunner()
        self._unit_of_work_factory = unit_of_work_factory
        self._connection_directory = connection_directory
        self._retry = retry or RetrySchedule()
        self._sleep = sleep

    async def push(
        self,
        actions: Sequence[UpdateAction],
        *,
        graph: ConsolidatedGraph,
        connections: Mapping[Platform, Connection],
    ) -> list[PushOutcome]:
        """Push ``actions`` and return one outcome per action, in input order."""

        grouped: dict[Platform, list[tuple[int, UpdateAction]]] = {}
        for index, action in enumerate(actions):
            grouped.setdefault(action.target, []).append((index, action))

        batches = await asyncio.gather(
            *(
                self._push_platform(platform, items, graph, connections.get(platform))
                for platform, items in grouped.items()
            )
        )
        outcomes: dict[int, PushOutcome] = {}
        for batch in batches:
            outcomes.update(batch)
        return [outcomes[index] for index in range(len(actions))]

    async def _push_platform(
        self,
        platform: Platform,
        items: list[tuple[int, UpdateAction]],
        graph: ConsolidatedGraph,
        connection: Connection | None,
    ) -> dict[int, PushOutcome]:
        results: dict[int, PushOutcome] = {}
        connector = self._connectors.get(platform)
        if connection is None or connector is None:
            failure = Failure(ErrorKind.CONFIGURATION, f"no usable {platform} connection")
            for index, action in items:
                results[index] = PushOutcome(action, PushStatus.SKIPPED_NO_CONNECTION, 0, failure)
            return results

        aborted: Failure | None = None
        for index, action in items:
            if aborted is not None:
                results[index] = PushOutcome(action, PushStatus.ABORTED_AUTH, 0, aborted)
                continue
            outcome = await self._push_action(connector, connection, action, graph)
            results[index] = outcome
            if outcome.failure is not None and outcome.failure.kind is ErrorKind.AUTH:
                aborted = outcome.failure
                log.warning(
                    "Authentication failed for %s; skipping its remaining actions", connection
                )
                await self._store.run(self._connection_directory.mark_needs_reauth, connection.id)

        succeeded = sum(1 for outcome in results.values() if outcome.succeeded)
        log.info("Pushed %d/%d actions to %s", succeeded, len(items), connection)
        return results

    async def _push_action(
        self,
        connector: PlatformConnector,
        connection: Connection,
        action: UpdateAction,
        graph: ConsolidatedGraph,
    ) -> PushOutcome:
        attempts = 0
        while True:
            attempts += 1
            try:
                result = await attempt(self._execute(connector, connection, action, graph))
            except Exception as exc:
                log.exception("Unexpected error pushing %s", action.describe())
                return PushOutcome(action, PushStatus.FAILED, attempts, Failure.from_error(exc))

            match result:
                case Success(value=status):
                    log.debug("Pushed %s: %s", action.describe(), status)
                    return PushOutcome(action, status, attempts)
                case Failure(kind=ErrorKind.TRANSIENT) as failure if (
                    attempts < self._retry.max_attempts
                ):
                    delay = self._retry.delay_for(attempts, retry_after=failure.retry_after)
                    log.info(
                        "Transient failure pushing %s (attempt %d/%d), retrying in %.1fs: %s",
                        action.describe(),
                        attempts,
                        self._retry.max_attempts,
                        delay,
                        failure.message,
                    )
                    await self._sleep(delay)
                case Failure(kind=ErrorKind.TRANSIENT) as failure:
                    log.warning("Giving up on %s: %s", action.describe(), failure.message)
                    return PushOutcome(action, PushStatus.RETRIED_THEN_FAILED, attempts, failure)
                case Failure(kind=ErrorKind.UNRESOLVED_MAPPING) as failure:
                    log.warning("Skipping %s: %s", action.describe(), failure.message)
                    return PushOutcome(action, PushStatus.SKIPPED_UNRESOLVED, attempts, failure)
                case Failure() as failure:
                    log.warning("Failed to push %s: %s", action.describe(), failure)
                    return PushOutcome(action, PushStatus.FAILED, attempts, failure)

    async def _execute(
        self,
        connector: PlatformConnector,
        connection: Connection,
        action: UpdateAction,
        graph: ConsolidatedGraph,
    ) -> PushStatus:
        match action.action_type:
            case ActionType.CREATE_LOCATION:
                return await self._create_location(connector, connection, action, graph)
            case ActionType.CREATE_PRODUCT:
                return await self._create_product(connector, connection, action, graph)
            case ActionType.UPDATE_PRODUCT:
                return await self._update_product(connector, connection, action, graph)
            case ActionType.UPDATE_INVENTORY:
                return await self._update_inventory(connector, connection, action)

    async def _create_location(
        self,
        connector: PlatformConnector,
        connection: Connection,
        action: UpdateAction,
        graph: ConsolidatedGraph,
    ) -> PushStatus:
        platform = connection.platform
        observed = graph.locations.get(action.entity_id)
        location = observed.canonical if observed is not None else None
        if location is None:
            raise UnresolvedMappingError(f"location {action.entity_id} is not in the graph")
        if await self._platform_id(location.id, platform, EntityType.LOCATION) is not None:
            return PushStatus.ALREADY_PRESENT

        created = await connector.create_location(
            connection, replace(location, platform_ids=PlatformIds())
        )
        platform_id = created.platform_ids.get(platform)
        if platform_id is None:
            raise ConnectorDataError(
                f"{platform} returned no id for created location", platform=platform
            )
        await self._store.run(
            self._save_mapping, location.id, platform, EntityType.LOCATION, platform_id
        )
        return PushStatus.SUCCEEDED

    async def _create_product(
        self,
        connector: PlatformConnector,
        connection: Connection,
        action: UpdateAction,
        graph: ConsolidatedGraph,
    ) -> PushStatus:
        platform = connection.platform
        observed = graph.products.get(action.entity_id)
        product = observed.canonical if observed is not None else None
        if product is None:
            raise UnresolvedMappingError(f"product {action.entity_id} is not in the graph")
        if await self._platform_id(product.id, platform, EntityType.PRODUCT) is not None:
            return PushStatus.ALREADY_PRESENT

        payload = replace(
            product,
            platform_ids=PlatformIds(),
            variants=[
                replace(variant, platform_ids=PlatformIds(), meta={}, inventory_levels=[])
                for variant in product.variants
            ],
        )
        created = await connector.create_product(connection, payload)
        product_platform_id = created.platform_ids.get(platform)
        if product_platform_id is None:
            raise ConnectorDataError(
                f"{platform} returned no id for created product", platform=platform
            )
        await self._store.run(
            self._save_created_product,
            platform,
            product.id,
            product_platform_id,
            created.variants,
        )
        return PushStatus.SUCCEEDED

    def _save_created_product(
        self,
        platform: Platform,
        product_id: UUID,
        product_platform_id: str,
        variants: Sequence[Variant],
    ) -> None:
        with self._unit_of_work_factory() as uow:
            mappings = uow.repositories.mappings
            mappings.save_mapping(product_id, platform, EntityType.PRODUCT, product_platform_id)
            for variant in variants:
                variant_platform_id = variant.platform_ids.get(platform)
                if variant_platform_id is None:
                    log.warning("%s returned no id for variant %s", platform, variant.id)
                    continue
                mappings.save_mapping(variant.id, platform, EntityType.VARIANT, variant_platform_id)
                for key, value in sorted(variant.meta.items()):
                    mappings.save_meta_value(variant.id, platform, EntityType.VARIANT, key, value)
            uow.commit()

    async def _update_product(
        self,
        connector: PlatformConnector,
        connection: Connection,
        action: UpdateAction,
        graph: ConsolidatedGraph,
    ) -> PushStatus:
        payload = await self._store.run(
            self._product_update_payload, connection.platform, action, graph
        )
        await connector.update_product(connection, payload)
        return PushStatus.SUCCEEDED

    def _product_update_payload(
        self, platform: Platform, action: UpdateAction, graph: ConsolidatedGraph
    ) -> Product:
        """The target's own observation with the authoritative values applied.

        Starting from what the platform reported (rather than from the canonical
        record) keeps fields nobody asked to change exactly as they are.
        """

        observed = graph.products.get(action.entity_id)
        current = observed.by_platform.get(platform) if observed is not None else None
        if current is None:
            raise UnresolvedMappingError(
                f"product {action.entity_id} was not observed on {platform}"
            )
        product_platform_id = self._require_platform_id(
            action.entity_id, platform, EntityType.PRODUCT
        )

        changes_by_entity: dict[UUID, list[FieldChange]] = {}
        for change in action.changes:
            changes_by_entity.setdefault(change.entity_id, []).append(change)

        variants: list[Variant] = []
        for variant_id in graph.variants_of(action.entity_id):
            variant_observation = graph.variants[variant_id].by_platform.get(platform)
            if variant_observation is None:
                continue
            variant_platform_id = self._require_platform_id(
                variant_id, platform, EntityType.VARIANT
            )
            variant = replace(
                variant_observation,
                id=variant_id,
                product_id=action.entity_id,
                platform_ids=PlatformIds({platform: variant_platform_id}),
                meta=dict(variant_observation.meta),
                inventory_levels=[],
            )
            _apply(variant, changes_by_entity.get(variant_id, ()))
            variants.append(variant)

        missing = set(changes_by_entity) - {action.entity_id} - {v.id for v in variants}
        if missing:
            raise UnresolvedMappingError(
                f"variants {sorted(str(item) for item in missing)} have no {platform} observation"
            )

        payload = replace(
            current,
            id=action.entity_id,
            platform_ids=PlatformIds({platform: product_platform_id}),
            variants=variants,
        )
        _apply(payload, changes_by_entity.get(action.entity_id, ()))
        return payload

    async def _update_inventory(
        self,
        connector: PlatformConnector,
        connection: Connection,
        action: UpdateAction,
    ) -> PushStatus:
        platform = connection.platform
        if action.location_id is None or action.quantity is None:
            raise UnresolvedMappingError(f"inventory action for {action.entity_id} is incomplete")
        variant_platform_id, location_platform_id, meta = await self._store.run(
            self._inventory_target, action.entity_id, action.location_id, platform
        )

        accepted = await connector.set_inventory_level(
            connection,
            variant_id=variant_platform_id,
            location_id=location_platform_id,
            quantity=action.quantity,
            variant_meta=meta,
        )
        if not accepted:
            raise ConnectorDataError(
                f"{platform} refused stock {action.quantity} for variant {variant_platform_id} "
                f"at location {location_platform_id}",
                platform=platform,
            )
        return PushStatus.SUCCEEDED

    # -- store work; these run on the store thread ------------------------

    async def _platform_id(
        self, internal_id: UUID, platform: Platform, entity_type: EntityType
    ) -> str | None:
        return await self._store.run(self._lookup_platform_id, internal_id, platform, entity_type)

    def _lookup_platform_id(
        self, internal_id: UUID, platform: Platform, entity_type: EntityType
    ) -> str | None:
        with self._unit_of_work_factory() as uow:
            return uow.repositories.mappings.get_platform_id(internal_id, platform, entity_type)

    def _require_platform_id(
        self, internal_id: UUID, platform: Platform, entity_type: EntityType
    ) -> str:
        platform_id = self._lookup_platform_id(internal_id, platform, entity_type)
        if platform_id is None:
            raise UnresolvedMappingError(f"{entity_type} {internal_id} has no {platform} id")
        return platform_id

    def _inventory_target(
        self, variant_id: UUID, location_id: UUID, platform: Platform
    ) -> tuple[str, str, dict[str, str]]:
        """Platform IDs of the variant and location plus the variant's meta values."""

        variant_platform_id = self._require_platform_id(variant_id, platform, EntityType.VARIANT)
        location_platform_id = self._require_platform_id(
            location_id, platform, EntityType.LOCATION
        )
        with self._unit_of_work_factory() as uow:
            meta = uow.repositories.mappings.get_meta_values(
                variant_id, platform, EntityType.VARIANT
            )
        return variant_platform_id, location_platform_id, dict(meta)

    def _save_mapping(
        self, internal_id: UUID, platform: Platform, entity_type: EntityType, platform_id: str
    ) -> None:
        with self._unit_of_work_factory() as uow:
            uow.repositories.mappings.save_mapping(internal_id, platform, entity_type, platform_id)
            uow.commit()


def _apply(entity: Product | Variant | Location, changes: Sequence[FieldChange]) -> None:
    for change in changes:
        set_field_value(entity, change.field, change.value)
