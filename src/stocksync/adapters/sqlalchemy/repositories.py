"""SQLAlchemy-backed repositories for the canonical store and the identity mapping."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, cast

from sqlalchemy import and_, func, insert, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError

from stocksync.domain.errors import MappingConflictError
from stocksync.domain.model import (
    ID_META_KEY,
    Connection,
    ConnectionStatus,
    InventoryLevel,
    Location,
    PlatformIds,
    Product,
    Variant,
)

from .mappings import (
    identity_mapping_table,
    inventory_level_table,
    location_table,
    platform_connection_table,
    product_table,
    variant_table,
)

if TYPE_CHECKING:
    import uuid
    from collections.abc import Collection
    from datetime import datetime

    from sqlalchemy import Insert, Row
    from sqlalchemy.orm import Session

    from stocksync.domain.model import EntityType, Platform

log = logging.getLogger(__name__)


def _product_from_row(row: Row[Any]) -> Product:
    return Product(
        id=row.id,
        account_id=row.account_id,
        title=row.title,
        description=row.description,
        image_urls=tuple(row.image_urls or ()),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _variant_from_row(row: Row[Any]) -> Variant:
    return Variant(
        id=row.id,
        product_id=row.product_id,
        title=row.title,
        sku=row.sku,
        barcode=row.barcode,
        price=row.price,
        compare_at_price=row.compare_at_price,
        weight_grams=row.weight_grams,
        requires_shipping=row.requires_shipping,
        taxable=row.taxable,
        updated_at=row.updated_at,
    )


def _location_from_row(row: Row[Any]) -> Location:
    return Location(
        id=row.id,
        account_id=row.account_id,
        name=row.name,
        is_active=row.is_active,
        address=row.address,
        updated_at=row.updated_at,
    )


def _connection_from_row(row: Row[Any]) -> Connection:
    return Connection(
        id=row.id,
        account_id=row.account_id,
        platform=row.platform,
        display_name=row.display_name,
        credentials=dict(row.credentials),
        status=row.status,
        is_enabled=row.is_enabled,
        last_sync_attempt_at=row.last_sync_attempt_at,
        last_sync_success_at=row.last_sync_success_at,
    )


class SqlAlchemyProductRepository:
    """Products are stored without their variants."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, entity: Product) -> None:
        self.session.execute(insert(product_table).values(**self._values(entity), id=entity.id))

    def get(self, product_id: uuid.UUID) -> Product | None:
        row = self.session.execute(
            select(product_table).where(product_table.c.id == product_id)
        ).one_or_none()
        return None if row is None else _product_from_row(row)

    def update(self, product: Product) -> None:
        self.session.execute(
            update(product_table)
            .where(product_table.c.id == product.id)
            .values(**self._values(product))
        )

    @staticmethod
    def _values(product: Product) -> dict[str, object]:
        values: dict[str, object] = {
            "account_id": product.account_id,
            "title": product.title,
            "description": product.description,
            "image_urls": product.image_urls,
            "updated_at": product.updated_at,
        }
        if product.created_at is not None:
            values["created_at"] = product.created_at
        return values


class SqlAlchemyVariantRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, entity: Variant) -> None:
        if entity.product_id is None:
            raise ValueError(f"variant {entity.id} has no product")
        self.session.execute(insert(variant_table).values(**self._values(entity), id=entity.id))

    def get(self, variant_id: uuid.UUID) -> Variant | None:
        row = self.session.execute(
            select(variant_table).where(variant_table.c.id == variant_id)
        ).one_or_none()
        return None if row is None else _variant_from_row(row)

    def update(self, variant: Variant) -> None:
        self.session.execute(
            update(variant_table)
            .where(variant_table.c.id == variant.id)
            .values(**self._values(variant))
        )

    def list_for_product(self, product_id: uuid.UUID) -> list[Variant]:
        stmt = (
            select(variant_table)
            .where(variant_table.c.product_id == product_id)
            .order_by(variant_table.c.sku, variant_table.c.id)
        )
        return [_variant_from_row(row) for row in self.session.execute(stmt)]

    def find_by_sku(self, product_id: uuid.UUID, sku: str) -> Variant | None:
        stmt = (
            select(variant_table)
            .where(variant_table.c.product_id == product_id)
            .where(variant_table.c.sku == sku)
            .order_by(variant_table.c.id)
            .limit(1)
        )
        row = self.session.execute(stmt).one_or_none()
        return None if row is None else _variant_from_row(row)

    def product_ids_for_skus(self, account_id: str, skus: Collection[str]) -> set[uuid.UUID]:
        if not skus:
            return set()
        stmt = (
            select(variant_table.c.product_id)
            .join(product_table, product_table.c.id == variant_table.c.product_id)
            .where(product_table.c.account_id == account_id)
            .where(variant_table.c.sku.in_(list(skus)))
            .distinct()
        )
        return set(self.session.execute(stmt).scalars())

    @staticmethod
    def _values(variant: Variant) -> dict[str, object]:
        return {
            "product_id": variant.product_id,
            "title": variant.title,
            "sku": variant.normalized_sku,
            "barcode": variant.barcode,
            "price": variant.price,
            "compare_at_price": variant.compare_at_price,
            "weight_grams": variant.weight_grams,
            "requires_shipping": variant.requires_shipping,
            "taxable": variant.taxable,
            "updated_at": variant.updated_at,
        }


class SqlAlchemyLocationRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, entity: Location) -> None:
        self.session.execute(insert(location_table).values(**self._values(entity), id=entity.id))

    def get(self, location_id: uuid.UUID) -> Location | None:
        row = self.session.execute(
            select(location_table).where(location_table.c.id == location_id)
        ).one_or_none()
        return None if row is None else _location_from_row(row)

    def update(self, location: Location) -> None:
        self.session.execute(
            update(location_table)
            .where(location_table.c.id == location.id)
            .values(**self._values(location))
        )

    def find_by_name(self, account_id: str, name: str) -> list[Location]:
        stmt = (
            select(location_table)
            .where(location_table.c.account_id == account_id)
            .where(func.lower(location_table.c.name) == name.strip().lower())
            .order_by(location_table.c.id)
        )
        return [_location_from_row(row) for row in self.session.execute(stmt)]

    @staticmethod
    def _values(location: Location) -> dict[str, object]:
        return {
            "account_id": location.account_id,
            "name": location.name,
            "is_active": location.is_active,
            "address": location.address,
            "updated_at": location.updated_at,
        }


class SqlAlchemyInventoryLevelRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, variant_id: uuid.UUID, location_id: uuid.UUID) -> InventoryLevel | None:
        stmt = select(inventory_level_table).where(
            and_(
                inventory_level_table.c.variant_id == variant_id,
                inventory_level_table.c.location_id == location_id,
            )
        )
        row = self.session.execute(stmt).one_or_none()
        if row is None:
            return None
        return InventoryLevel(
            variant_id=row.variant_id,
            location_id=row.location_id,
            quantity=row.quantity,
            updated_at=row.updated_at,
        )

    def save(self, level: InventoryLevel) -> None:
        variant_id, location_id = level.key
        values = {"quantity": level.quantity, "updated_at": level.updated_at}
        result = self.session.execute(
            update(inventory_level_table)
            .where(inventory_level_table.c.variant_id == variant_id)
            .where(inventory_level_table.c.location_id == location_id)
            .values(**values)
        )
        if result.rowcount:
            return
        self.session.execute(
            insert(inventory_level_table).values(
                variant_id=variant_id, location_id=location_id, **values
            )
        )


class SqlAlchemyIdentityMappingRepository:
    """Identity mapping rows keyed by (internal_id, platform, entity_type, meta_key).

    Plain ID rows carry an empty meta key; a partial unique index keeps each
    platform ID owned by one internal ID. Meta rows hang off the same owner.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def get_internal_id(
        self, platform: Platform, entity_type: EntityType, platform_id: str
    ) -> uuid.UUID | None:
        table = identity_mapping_table
        stmt = (
            select(table.c.internal_id)
            .where(table.c.platform == platform)
            .where(table.c.entity_type == entity_type)
            .where(table.c.platform_id == platform_id)
            .where(table.c.meta_key == ID_META_KEY)
            .limit(1)
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def get_platform_id(
        self, internal_id: uuid.UUID, platform: Platform, entity_type: EntityType
    ) -> str | None:
        table = identity_mapping_table
        stmt = (
            select(table.c.platform_id)
            .where(table.c.internal_id == internal_id)
            .where(table.c.platform == platform)
            .where(table.c.entity_type == entity_type)
            .where(table.c.meta_key == ID_META_KEY)
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def platform_ids_for(self, internal_id: uuid.UUID, entity_type: EntityType) -> PlatformIds:
        table = identity_mapping_table
        stmt = (
            select(table.c.platform, table.c.platform_id)
            .where(table.c.internal_id == internal_id)
            .where(table.c.entity_type == entity_type)
            .where(table.c.meta_key == ID_META_KEY)
        )
        return PlatformIds([(row.platform, row.platform_id) for row in self.session.execute(stmt)])

    def save_mapping(
        self,
        internal_id: uuid.UUID,
        platform: Platform,
        entity_type: EntityType,
        platform_id: str,
    ) -> None:
        owner = self.get_internal_id(platform, entity_type, platform_id)
        if owner == internal_id:
            return
        if owner is not None:
            raise MappingConflictError(
                f"{platform} {entity_type} id {platform_id} already belongs to {owner}"
            )
        current = self.get_platform_id(internal_id, platform, entity_type)
        if current is not None:
            raise MappingConflictError(
                f"{entity_type} {internal_id} is already mapped to {platform} id {current}"
            )
        try:
            self.session.execute(
                insert(identity_mapping_table).values(
                    internal_id=internal_id,
                    platform=platform,
                    entity_type=entity_type,
                    platform_id=platform_id,
                    meta_key=ID_META_KEY,
                )
            )
        except IntegrityError as exc:
            raise MappingConflictError(
                f"{platform} {entity_type} id {platform_id} was mapped concurrently"
            ) from exc

    def claim(
        self,
        internal_id: uuid.UUID,
        platform: Platform,
        entity_type: EntityType,
        platform_id: str,
    ) -> uuid.UUID:
        stmt = self._insert_ignoring_conflicts().values(
            internal_id=internal_id,
            platform=platform,
            entity_type=entity_type,
            platform_id=platform_id,
            meta_key=ID_META_KEY,
        )
        try:
            self.session.execute(stmt)
        except IntegrityError as exc:
            raise MappingConflictError(
                f"{platform} {entity_type} id {platform_id} could not be claimed"
            ) from exc

        owner = self.get_internal_id(platform, entity_type, platform_id)
        if owner is None:
            # the insert was ignored because internal_id already maps elsewhere
            current = self.get_platform_id(internal_id, platform, entity_type)
            raise MappingConflictError(
                f"{entity_type} {internal_id} is already mapped to {platform} id {current}, "
                f"refusing to also map {platform_id}"
            )
        if owner != internal_id:
            log.debug("%s %s id %s already owned by %s", platform, entity_type, platform_id, owner)
        return owner

    def get_meta_value(
        self,
        internal_id: uuid.UUID,
        platform: Platform,
        entity_type: EntityType,
        meta_key: str,
    ) -> str | None:
        table = identity_mapping_table
        stmt = (
            select(table.c.meta_value)
            .where(table.c.internal_id == internal_id)
            .where(table.c.platform == platform)
            .where(table.c.entity_type == entity_type)
            .where(table.c.meta_key == meta_key)
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def get_meta_values(
        self, internal_id: uuid.UUID, platform: Platform, entity_type: EntityType
    ) -> dict[str, str]:
        table = identity_mapping_table
        stmt = (
            select(table.c.meta_key, table.c.meta_value)
            .where(table.c.internal_id == internal_id)
            .where(table.c.platform == platform)
            .where(table.c.entity_type == entity_type)
            .where(table.c.meta_key != ID_META_KEY)
        )
        return {
            row.meta_key: row.meta_value
            for row in self.session.execute(stmt)
            if row.meta_value is not None
        }

    def save_meta_value(
        self,
        internal_id: uuid.UUID,
        platform: Platform,
        entity_type: EntityType,
        meta_key: str,
        meta_value: str,
    ) -> None:
        if meta_key == ID_META_KEY:
            raise ValueError("meta values need a non-empty key")
        table = identity_mapping_table
        result = self.session.execute(
            update(table)
            .where(table.c.internal_id == internal_id)
            .where(table.c.platform == platform)
            .where(table.c.entity_type == entity_type)
            .where(table.c.meta_key == meta_key)
            .values(meta_value=meta_value, updated_at=func.now())
        )
        if result.rowcount:
            return
        platform_id = self.get_platform_id(internal_id, platform, entity_type) or ""
        self.session.execute(
            insert(table).values(
                internal_id=internal_id,
                platform=platform,
                entity_type=entity_type,
                platform_id=platform_id,
                meta_key=meta_key,
                meta_value=meta_value,
            )
        )

    def _insert_ignoring_conflicts(self) -> Insert:
        dialect = self.session.get_bind().dialect.name
        if dialect == "sqlite":
            return sqlite.insert(identity_mapping_table).on_conflict_do_nothing()
        if dialect == "postgresql":
            return postgresql.insert(identity_mapping_table).on_conflict_do_nothing()
        return insert(identity_mapping_table)


class SqlAlchemyConnectionRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, entity: Connection) -> None:
        self.session.execute(
            insert(platform_connection_table).values(**self._values(entity), id=entity.id)
        )

    def get(self, connection_id: uuid.UUID) -> Connection | None:
        row = self.session.execute(
            select(platform_connection_table).where(
                platform_connection_table.c.id == connection_id
            )
        ).one_or_none()
        return None if row is None else _connection_from_row(row)

    def update(self, connection: Connection) -> None:
        self.session.execute(
            update(platform_connection_table)
            .where(platform_connection_table.c.id == connection.id)
            .values(**self._values(connection))
        )

    def list_for_account(self, account_id: str, *, active_only: bool = True) -> list[Connection]:
        table = platform_connection_table
        stmt = select(table).where(table.c.account_id == account_id)
        if active_only:
            stmt = stmt.where(table.c.is_enabled.is_(True)).where(
                table.c.status == ConnectionStatus.CONNECTED
            )
        stmt = stmt.order_by(table.c.platform, table.c.created_at, table.c.id)
        return [_connection_from_row(row) for row in self.session.execute(stmt)]

    def list_all(self) -> list[Connection]:
        table = platform_connection_table
        stmt = select(table).order_by(table.c.account_id, table.c.platform, table.c.id)
        return [_connection_from_row(row) for row in self.session.execute(stmt)]

    def active_account_ids(self) -> list[str]:
        table = platform_connection_table
        stmt = (
            select(table.c.account_id)
            .where(table.c.is_enabled.is_(True))
            .where(table.c.status == ConnectionStatus.CONNECTED)
            .distinct()
            .order_by(table.c.account_id)
        )
        return list(self.session.execute(stmt).scalars())

    def record_attempt(self, connection_id: uuid.UUID, *, at: datetime, succeeded: bool) -> None:
        values: dict[str, object] = {"last_sync_attempt_at": at}
        if succeeded:
            values["last_sync_success_at"] = at
        self.session.execute(
            update(platform_connection_table)
            .where(platform_connection_table.c.id == connection_id)
            .values(**values)
        )

    @staticmethod
    def _values(connection: Connection) -> dict[str, object]:
        return {
            "account_id": connection.account_id,
            "platform": connection.platform,
            "display_name": connection.display_name,
            "credentials": dict(connection.credentials),
            "status": connection.status,
            "is_enabled": connection.is_enabled,
            "last_sync_attempt_at": connection.last_sync_attempt_at,
            "last_sync_success_at": connection.last_sync_success_at,
        }


if TYPE_CHECKING:
    from stocksync.domain.ports import (
        ConnectionRepository,
        IdentityMappingRepository,
        InventoryLevelRepository,
        LocationRepository,
        ProductRepository,
        VariantRepository,
    )

    _session_stub = cast("Session", object())
    _product_repo: ProductRepository = SqlAlchemyProductRepository(_session_stub)
    _variant_repo: VariantRepository = SqlAlchemyVariantRepository(_session_stub)
    _location_repo: LocationRepository = SqlAlchemyLocationRepository(_session_stub)
    _level_repo: InventoryLevelRepository = SqlAlchemyInventoryLevelRepository(_session_stub)
    _mapping_repo: IdentityMappingRepository = SqlAlchemyIdentityMappingRepository(_session_stub)
    _connection_repo: ConnectionRepository = SqlAlchemyConnectionRepository(_session_stub)
