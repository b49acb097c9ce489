"""Per-field source-of-truth policy.

Each synced field is owned either by one platform or by whichever observation
was updated most recently. The defaults below are the shipped policy; a TOML
file can override single fields (see ``stocksync.config.authority``).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from types import MappingProxyType
from typing import TYPE_CHECKING, Final, Literal

from stocksync.domain.model import EntityType, Platform, SyncField

if TYPE_CHECKING:
    from collections.abc import Mapping

MOST_RECENT: Final = "most_recent"

type Authority = Platform | Literal["most_recent"]

PRODUCT_FIELDS: Final = (SyncField.TITLE, SyncField.DESCRIPTION, SyncField.IMAGE_URLS)
VARIANT_FIELDS: Final = (
    SyncField.SKU,
    SyncField.BARCODE,
    SyncField.PRICE,
    SyncField.COMPARE_AT_PRICE,
    SyncField.WEIGHT,
    SyncField.REQUIRES_SHIPPING,
    SyncField.TAXABLE,
)
LOCATION_FIELDS: Final = (SyncField.LOCATION_NAME,)

FIELD_ENTITY: Final[Mapping[SyncField, EntityType]] = MappingProxyType(
    {
        **dict.fromkeys(PRODUCT_FIELDS, EntityType.PRODUCT),
        **dict.fromkeys(VARIANT_FIELDS, EntityType.VARIANT),
        **dict.fromkeys(LOCATION_FIELDS, EntityType.LOCATION),
        SyncField.INVENTORY_QUANTITY: EntityType.INVENTORY_LEVEL,
    }
)

_ATTRIBUTES: Final[Mapping[SyncField, str]] = MappingProxyType(
    {
        SyncField.TITLE: "title",
        SyncField.DESCRIPTION: "description",
        SyncField.IMAGE_URLS: "image_urls",
        SyncField.SKU: "sku",
        SyncField.BARCODE: "barcode",
        SyncField.PRICE: "price",
        SyncField.COMPARE_AT_PRICE: "compare_at_price",
        SyncField.WEIGHT: "weight_grams",
        SyncField.REQUIRES_SHIPPING: "requires_shipping",
        SyncField.TAXABLE: "taxable",
        SyncField.INVENTORY_QUANTITY: "quantity",
        SyncField.LOCATION_NAME: "name",
    }
)

DEFAULT_AUTHORITIES: Final[Mapping[SyncField, Authority]] = MappingProxyType(
    {
        **dict.fromkeys(SyncField, MOST_RECENT),
        SyncField.INVENTORY_QUANTITY: Platform.SHOPIFY,
        SyncField.LOCATION_NAME: Platform.SHOPIFY,
    }
)

_OLDEST = datetime.min.replace(tzinfo=UTC)


def field_value(entity: object, sync_field: SyncField) -> object:
    return getattr(entity, _ATTRIBUTES[sync_field])


def set_field_value(entity: object, sync_field: SyncField, value: object) -> None:
    setattr(entity, _ATTRIBUTES[sync_field], value)


def _updated_at(observation: object) -> datetime:
    value = getattr(observation, "updated_at", None)
    if not isinstance(value, datetime):
        return _OLDEST
    return value if value.tzinfo else value.replace(tzinfo=UTC)


@dataclass(frozen=True, slots=True)
class FieldAuthorityTable:
    rules: Mapping[SyncField, Authority] = field(default_factory=lambda: DEFAULT_AUTHORITIES)

    @classmethod
    def from_overrides(cls, overrides: Mapping[str, str]) -> FieldAuthorityTable:
        """Build a table from ``field -> platform | "most_recent"`` strings.

        Unknown fields or platforms raise ``ValueError``.
        """

        rules: dict[SyncField, Authority] = dict(DEFAULT_AUTHORITIES)
        for raw_field, raw_authority in overrides.items():
            try:
                sync_field = SyncField(raw_field)
            except ValueError as exc:
                raise ValueError(f"Unknown sync field: {raw_field}") from exc
            if raw_authority == MOST_RECENT:
                rules[sync_field] = MOST_RECENT
                continue
            try:
                rules[sync_field] = Platform(raw_authority)
            except ValueError as exc:
                raise ValueError(
                    f"Unknown authority {raw_authority!r} for {raw_field}; expected a "
                    f"platform name or {MOST_RECENT!r}"
                ) from exc
        return cls(rules=MappingProxyType(rules))

    def authority_for(self, sync_field: SyncField) -> Authority:
        return self.rules.get(sync_field, MOST_RECENT)

    def pick[T](
        self, sync_field: SyncField, observations: Mapping[Platform, T]
    ) -> tuple[Platform, T] | None:
        """Return the authoritative ``(platform, observation)``, if any was made.

        Under ``most_recent`` a missing timestamp counts as oldest and ties go to
        the alphabetically first platform.
        """

        if not observations:
            return None
        authority = self.authority_for(sync_field)
        if authority == MOST_RECENT:
            ordered = sorted(observations.items())
            return max(ordered, key=lambda item: _updated_at(item[1]))
        platform = Platform(authority)
        observation = observations.get(platform)
        if observation is None:
            return None
        return platform, observation

    def describe(self) -> list[tuple[SyncField, Authority]]:
        return [(sync_field, self.authority_for(sync_field)) for sync_field in SyncField]
