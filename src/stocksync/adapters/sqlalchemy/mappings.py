"""SQLAlchemy table metadata for the canonical store and the identity mapping."""

from __future__ import annotations

import json
import logging
import uuid
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, cast

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Dialect,
    Enum,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    Text,
    TypeDecorator,
    UniqueConstraint,
    Uuid,
    func,
    text,
)

from stocksync.domain.model import ID_META_KEY, Address, ConnectionStatus, EntityType, Platform

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

log = logging.getLogger(__name__)

UUIDColumnType = Uuid[uuid.UUID]

metadata = MetaData(
    naming_convention={
        "ix": "ix_%(column_0_label)s",
        "uq": "uq_%(table_name)s_%(column_0_name)s",
        "ck": "ck_%(table_name)s_%(constraint_name)s",
        "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
        "pk": "pk_%(table_name)s",
    }
)


class UTCDateTime(TypeDecorator[datetime]):
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        return value if value.tzinfo else value.replace(tzinfo=UTC)


class StringTupleType(TypeDecorator[tuple[str, ...]]):
    """Ordered strings stored as a JSON array (image URLs)."""

    impl = Text
    cache_ok = True

    def process_bind_param(self, value: tuple[str, ...] | None, dialect: Dialect) -> str | None:
        _ = dialect
        if value is None:
            return None
        return json.dumps(list(value))

    def process_result_value(self, value: str | None, dialect: Dialect) -> tuple[str, ...]:
        _ = dialect
        if value is None:
            return ()
        loaded = json.loads(value)
        if not isinstance(loaded, list):
            return ()
        items = cast(list[Any], loaded)
        return tuple(item for item in items if isinstance(item, str))


class AddressType(TypeDecorator[Address]):
    impl = Text
    cache_ok = True

    def process_bind_param(self, value: Address | None, dialect: Dialect) -> str | None:
        _ = dialect
        if value is None:
            return None
        payload = {
            "address1": value.address1,
            "address2": value.address2,
            "city": value.city,
            "province_code": value.province_code,
            "country_code": value.country_code,
            "zip": value.zip,
            "phone": value.phone,
        }
        return json.dumps({key: item for key, item in payload.items() if item is not None})

    def process_result_value(self, value: str | None, dialect: Dialect) -> Address | None:
        _ = dialect
        if value is None:
            return None
        loaded = json.loads(value)
        if not isinstance(loaded, dict):
            return None
        fields = cast(dict[str, Any], loaded)
        return Address(**{key: str(item) for key, item in fields.items() if item is not None})


class CredentialsType(TypeDecorator[dict[str, str]]):
    impl = Text
    cache_ok = True

    def process_bind_param(self, value: dict[str, str] | None, dialect: Dialect) -> str:
        _ = dialect
        return json.dumps(dict(sorted((value or {}).items())))

    def process_result_value(self, value: str | None, dialect: Dialect) -> dict[str, str]:
        _ = dialect
        if value is None:
            return {}
        loaded = json.loads(value)
        if not isinstance(loaded, dict):
            return {}
        items = cast(dict[Any, Any], loaded)
        return {str(key): str(item) for key, item in items.items()}


product_table = Table(
    "product",
    metadata,
    Column("id", UUIDColumnType, primary_key=True),
    Column("account_id", String(128), nullable=False, index=True),
    Column("title", String(512), nullable=False),
    Column("description", Text, nullable=True),
    Column("image_urls", StringTupleType(), nullable=True),
    Column("created_at", UTCDateTime(), nullable=True, server_default=func.now()),
    Column("updated_at", UTCDateTime(), nullable=True),
)

variant_table = Table(
    "variant",
    metadata,
    Column("id", UUIDColumnType, primary_key=True),
    Column("product_id", UUIDColumnType, ForeignKey("product.id"), nullable=False, index=True),
    Column("title", String(512), nullable=True),
    Column("sku", String(255), nullable=True),
    Column("barcode", String(255), nullable=True),
    Column("price", Numeric(12, 2, asdecimal=True), nullable=True),
    Column("compare_at_price", Numeric(12, 2, asdecimal=True), nullable=True),
    Column("weight_grams", Integer, nullable=True),
    Column("requires_shipping", Boolean, nullable=True),
    Column("taxable", Boolean, nullable=True),
    Column("updated_at", UTCDateTime(), nullable=True),
    Index("ix_variant_sku", "sku"),
)

location_table = Table(
    "location",
    metadata,
    Column("id", UUIDColumnType, primary_key=True),
    Column("account_id", String(128), nullable=False, index=True),
    Column("name", String(255), nullable=False),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("address", AddressType(), nullable=True),
    Column("updated_at", UTCDateTime(), nullable=True),
)

inventory_level_table = Table(
    "inventory_level",
    metadata,
    Column("variant_id", UUIDColumnType, ForeignKey("variant.id"), primary_key=True),
    Column("location_id", UUIDColumnType, ForeignKey("location.id"), primary_key=True),
    Column("quantity", Integer, nullable=False, default=0),
    Column("updated_at", UTCDateTime(), nullable=True),
)

identity_mapping_table = Table(
    "identity_mapping",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("internal_id", UUIDColumnType, nullable=False),
    Column("platform", Enum(Platform, native_enum=False), nullable=False),
    Column("entity_type", Enum(EntityType, native_enum=False), nullable=False),
    Column("platform_id", String(255), nullable=False),
    Column("meta_key", String(64), nullable=False, default=ID_META_KEY, server_default=""),
    Column("meta_value", String(1024), nullable=True),
    Column("updated_at", UTCDateTime(), nullable=True, server_default=func.now()),
    UniqueConstraint(
        "internal_id",
        "platform",
        "entity_type",
        "meta_key",
        name="uq_identity_mapping_owner",
    ),
    # one owner per platform id; meta rows repeat the owner's platform id
    Index(
        "uq_identity_mapping_platform_id",
        "platform",
        "entity_type",
        "platform_id",
        unique=True,
        sqlite_where=text("meta_key = ''"),
        postgresql_where=text("meta_key = ''"),
    ),
    Index("ix_identity_mapping_internal", "internal_id", "entity_type"),
)

platform_connection_table = Table(
    "platform_connection",
    metadata,
    Column("id", UUIDColumnType, primary_key=True),
    Column("account_id", String(128), nullable=False, index=True),
    Column("platform", Enum(Platform, native_enum=False), nullable=False),
    Column("display_name", String(255), nullable=False, default=""),
    Column("credentials", CredentialsType(), nullable=False),
    Column("status", Enum(ConnectionStatus, native_enum=False), nullable=False),
    Column("is_enabled", Boolean, nullable=False, default=True),
    Column("last_sync_attempt_at", UTCDateTime(), nullable=True),
    Column("last_sync_success_at", UTCDateTime(), nullable=True),
    Column("created_at", UTCDateTime(), nullable=True, server_default=func.now()),
)


def create_all_tables(engine: Engine) -> None:
    """Create every table directly, bypassing migrations."""

    metadata.create_all(engine)
    log.debug("Created tables: %s", ", ".join(sorted(metadata.tables)))
