"""Compare observations against the field-authority table and emit actions.

Detection is a pure function of the consolidated graph: it reads nothing else
and writes nothing. For every field the authoritative observation is chosen;
the canonical record is corrected when it differs and every other platform
that reports a different value gets an action. Inventory is evaluated per
(variant, location) pair. Entities the authoritative platform has but another
fetched platform lacks are created there.
"""

from __future__ import annotations

from collections import defaultdict
from logging import getLogger
from typing import TYPE_CHECKING

from stocksync.domain.model import (
    Capability,
    EntityType,
    Platform,
    SyncField,
    clamp_quantity,
)
from stocksync.domain.reconciliation.actions import (
    ActionType,
    Detection,
    FieldChange,
    UpdateAction,
)
from stocksync.domain.reconciliation.authority import (
    FIELD_ENTITY,
    LOCATION_FIELDS,
    PRODUCT_FIELDS,
    VARIANT_FIELDS,
    FieldAuthorityTable,
    field_value,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from uuid import UUID

    from stocksync.domain.model import InventoryLevel
    from stocksync.domain.reconciliation.graph import ConsolidatedGraph, Observed

log = getLogger(__name__)

type CapabilityCheck = Callable[[Platform, Capability], bool]
type FieldCheck = Callable[[Platform, SyncField], bool]


def _always(_platform: Platform, _what: object) -> bool:
    return True


def normalize_value(value: object) -> object:
    """Blank strings and empty sequences read as missing; sequences compare as tuples."""

    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, list | tuple):
        return tuple(value) or None  # pyright: ignore[reportUnknownArgumentType]
    return value


def same_value(left: object, right: object) -> bool:
    return normalize_value(left) == normalize_value(right)


class ChangeDetector:
    def __init__(
        self,
        authority: FieldAuthorityTable | None = None,
        *,
        supports: CapabilityCheck = _always,
        supports_field: FieldCheck = _always,
    ) -> None:
        self._authority = authority or FieldAuthorityTable()
        self._supports = supports
        self._supports_field = supports_field

    def detect(self, graph: ConsolidatedGraph) -> Detection:
        actions: list[UpdateAction] = []
        canonical: list[FieldChange] = []

        for product_id in sorted(graph.products, key=str):
            self._detect_product(graph, product_id, actions, canonical)
        for location_id in sorted(graph.locations, key=str):
            self._detect_location(graph, location_id, actions, canonical)
        for key in sorted(graph.levels, key=lambda pair: (str(pair[0]), str(pair[1]))):
            self._detect_level(graph, key, actions, canonical)

        actions.sort(key=lambda action: action.sort_key)
        canonical.sort(
            key=lambda change: (
                change.entity_type.value,
                str(change.entity_id),
                change.field.value,
                str(change.location_id or ""),
            )
        )
        log.debug(
            "Detected %d actions and %d canonical changes for account %s",
            len(actions),
            len(canonical),
            graph.account_id,
        )
        return Detection(actions=tuple(actions), canonical_changes=tuple(canonical))

    def _detect_product(
        self,
        graph: ConsolidatedGraph,
        product_id: UUID,
        actions: list[UpdateAction],
        canonical: list[FieldChange],
    ) -> None:
        observed = graph.products[product_id]
        if observed.canonical is None:
            return

        per_target: defaultdict[Platform, list[FieldChange]] = defaultdict(list)
        self._compare_fields(product_id, PRODUCT_FIELDS, observed, per_target, canonical)
        for variant_id in graph.variants_of(product_id):
            self._compare_fields(
                variant_id, VARIANT_FIELDS, graph.variants[variant_id], per_target, canonical
            )

        for target, changes in per_target.items():
            if target not in observed.by_platform:
                continue
            if not self._supports(target, Capability.UPDATE_PRODUCT):
                continue
            actions.append(
                UpdateAction(
                    action_type=ActionType.UPDATE_PRODUCT,
                    target=target,
                    entity_id=product_id,
                    changes=tuple(changes),
                )
            )

        if self._authority.pick(SyncField.TITLE, observed.by_platform) is not None:
            actions.extend(
                UpdateAction(
                    action_type=ActionType.CREATE_PRODUCT, target=target, entity_id=product_id
                )
                for target in self._missing_on(
                    graph, observed, observed.canonical.platform_ids, Capability.CREATE_PRODUCT
                )
            )

    def _detect_location(
        self,
        graph: ConsolidatedGraph,
        location_id: UUID,
        actions: list[UpdateAction],
        canonical: list[FieldChange],
    ) -> None:
        observed = graph.locations[location_id]
        if observed.canonical is None:
            return
        # there is no "update location" capability; names only correct the canonical record
        self._compare_fields(location_id, LOCATION_FIELDS, observed, defaultdict(list), canonical)

        if self._authority.pick(SyncField.LOCATION_NAME, observed.by_platform) is not None:
            actions.extend(
                UpdateAction(
                    action_type=ActionType.CREATE_LOCATION, target=target, entity_id=location_id
                )
                for target in self._missing_on(
                    graph, observed, observed.canonical.platform_ids, Capability.CREATE_LOCATION
                )
            )

    def _detect_level(
        self,
        graph: ConsolidatedGraph,
        key: tuple[UUID, UUID],
        actions: list[UpdateAction],
        canonical: list[FieldChange],
    ) -> None:
        variant_id, location_id = key
        observed = graph.levels[key]
        candidates = self._candidates(SyncField.INVENTORY_QUANTITY, observed.by_platform)
        picked = self._authority.pick(SyncField.INVENTORY_QUANTITY, candidates)
        if picked is None:
            return
        authoritative_platform, authoritative = picked
        quantity = clamp_quantity(authoritative.quantity)

        if observed.canonical is not None and observed.canonical.quantity != quantity:
            canonical.append(
                FieldChange(
                    entity_type=EntityType.INVENTORY_LEVEL,
                    entity_id=variant_id,
                    location_id=location_id,
                    field=SyncField.INVENTORY_QUANTITY,
                    value=quantity,
                )
            )

        variant = graph.variants.get(variant_id)
        location = graph.locations.get(location_id)
        if variant is None or location is None:
            return
        for target in graph.platforms:
            if target == authoritative_platform:
                continue
            if target not in variant.by_platform or target not in location.by_platform:
                continue
            if not self._supports(target, Capability.UPDATE_INVENTORY):
                continue
            if not self._supports_field(target, SyncField.INVENTORY_QUANTITY):
                continue
            current: InventoryLevel | None = observed.by_platform.get(target)
            if current is not None and clamp_quantity(current.quantity) == quantity:
                continue
            actions.append(
                UpdateAction(
                    action_type=ActionType.UPDATE_INVENTORY,
                    target=target,
                    entity_id=variant_id,
                    location_id=location_id,
                    quantity=quantity,
                )
            )

    def _compare_fields[T](
        self,
        entity_id: UUID,
        fields: Iterable[SyncField],
        observed: Observed[T],
        per_target: defaultdict[Platform, list[FieldChange]],
        canonical: list[FieldChange],
    ) -> None:
        for sync_field in fields:
            candidates = self._candidates(sync_field, observed.by_platform)
            picked = self._authority.pick(sync_field, candidates)
            if picked is None:
                continue
            authoritative_platform, authoritative = picked
            value = normalize_value(field_value(authoritative, sync_field))
            if value is None:
                # a platform that has no value never blanks the others
                continue
            change = FieldChange(
                entity_type=FIELD_ENTITY[sync_field],
                entity_id=entity_id,
                field=sync_field,
                value=value,
            )
            if observed.canonical is not None and not same_value(
                field_value(observed.canonical, sync_field), value
            ):
                canonical.append(change)
            for platform, observation in candidates.items():
                if platform == authoritative_platform:
                    continue
                if not same_value(field_value(observation, sync_field), value):
                    per_target[platform].append(change)

    def _candidates[T](
        self, sync_field: SyncField, by_platform: dict[Platform, T]
    ) -> dict[Platform, T]:
        return {
            platform: observation
            for platform, observation in by_platform.items()
            if self._supports_field(platform, sync_field)
        }

    def _missing_on[T](
        self,
        graph: ConsolidatedGraph,
        observed: Observed[T],
        known: Iterable[Platform],
        capability: Capability,
    ) -> list[Platform]:
        known_platforms = set(known)
        return [
            platform
            for platform in graph.platforms
            if platform not in observed.by_platform
            and platform not in known_platforms
            and self._supports(platform, capability)
        ]
