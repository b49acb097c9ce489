"""Update actions emitted by the change detector."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Final

if TYPE_CHECKING:
    from uuid import UUID

    from stocksync.domain.model import EntityType, Platform, SyncField


class ActionType(StrEnum):
    CREATE_LOCATION = "create_location"
    CREATE_PRODUCT = "create_product"
    UPDATE_PRODUCT = "update_product"
    UPDATE_INVENTORY = "update_inventory"


# Locations must exist before stock can be placed there, products before
# they can be updated.
_RANK: Final = {action_type: rank for rank, action_type in enumerate(ActionType)}


@dataclass(frozen=True, slots=True, kw_only=True)
class FieldChange:
    entity_type: EntityType
    entity_id: UUID
    field: SyncField
    value: object
    # set for inventory quantities, which are keyed by (variant, location)
    location_id: UUID | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class UpdateAction:
    action_type: ActionType
    target: Platform
    entity_id: UUID
    location_id: UUID | None = None
    quantity: int | None = None
    changes: tuple[FieldChange, ...] = ()

    @property
    def sort_key(self) -> tuple[str, int, str, str]:
        return (
            self.target.value,
            _RANK[self.action_type],
            str(self.entity_id),
            str(self.location_id or ""),
        )

    def describe(self) -> str:
        subject = f"{self.action_type} {self.entity_id} on {self.target}"
        if self.action_type is ActionType.UPDATE_INVENTORY:
            return f"{subject} at {self.location_id} -> {self.quantity}"
        if self.changes:
            fields = ", ".join(sorted({str(change.field) for change in self.changes}))
            return f"{subject} ({fields})"
        return subject


@dataclass(frozen=True, slots=True)
class Detection:
    actions: tuple[UpdateAction, ...] = ()
    # changes to apply to the canonical store itself
    canonical_changes: tuple[FieldChange, ...] = ()
