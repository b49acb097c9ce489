"""Canonical store, identity mapping and platform connections.

Revision ID: 0001_initial
Revises:
Create Date: 2026-09-14 10:12:31.402118
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

from stocksync.adapters.sqlalchemy.mappings import (
    AddressType,
    CredentialsType,
    StringTupleType,
    UTCDateTime,
)

revision: str = "0001_initial"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

_PLATFORM = sa.Enum("SHOPIFY", "SQUARE", "CLOVER", name="platform", native_enum=False)
_ENTITY_TYPE = sa.Enum(
    "PRODUCT", "VARIANT", "LOCATION", "INVENTORY_LEVEL", name="entitytype", native_enum=False
)
_CONNECTION_STATUS = sa.Enum(
    "CONNECTED", "NEEDS_REAUTH", "ERROR", name="connectionstatus", native_enum=False
)


def upgrade() -> None:
    op.create_table(
        "product",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("account_id", sa.String(length=128), nullable=False),
        sa.Column("title", sa.String(length=512), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("image_urls", StringTupleType(), nullable=True),
        sa.Column(
            "created_at",
            UTCDateTime(),
            server_default=sa.text("(CURRENT_TIMESTAMP)"),
            nullable=True,
        ),
        sa.Column("updated_at", UTCDateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_product")),
    )
    with op.batch_alter_table("product", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_product_account_id"), ["account_id"], unique=False)

    op.create_table(
        "location",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("account_id", sa.String(length=128), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("address", AddressType(), nullable=True),
        sa.Column("updated_at", UTCDateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_location")),
    )
    with op.batch_alter_table("location", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_location_account_id"), ["account_id"], unique=False)

    op.create_table(
        "variant",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("product_id", sa.Uuid(), nullable=False),
        sa.Column("title", sa.String(length=512), nullable=True),
        sa.Column("sku", sa.String(length=255), nullable=True),
        sa.Column("barcode", sa.String(length=255), nullable=True),
        sa.Column("price", sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column("compare_at_price", sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column("weight_grams", sa.Integer(), nullable=True),
        sa.Column("requires_shipping", sa.Boolean(), nullable=True),
        sa.Column("taxable", sa.Boolean(), nullable=True),
        sa.Column("updated_at", UTCDateTime(), nullable=True),
        sa.ForeignKeyConstraint(
            ["product_id"], ["product.id"], name=op.f("fk_variant_product_id_product")
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_variant")),
    )
    with op.batch_alter_table("variant", schema=None) as batch_op:
        batch_op.create_index("ix_variant_sku", ["sku"], unique=False)
        batch_op.create_index(batch_op.f("ix_variant_product_id"), ["product_id"], unique=False)

    op.create_table(
        "inventory_level",
        sa.Column("variant_id", sa.Uuid(), nullable=False),
        sa.Column("location_id", sa.Uuid(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("updated_at", UTCDateTime(), nullable=True),
        sa.ForeignKeyConstraint(
            ["location_id"], ["location.id"], name=op.f("fk_inventory_level_location_id_location")
        ),
        sa.ForeignKeyConstraint(
            ["variant_id"], ["variant.id"], name=op.f("fk_inventory_level_variant_id_variant")
        ),
        sa.PrimaryKeyConstraint("variant_id", "location_id", name=op.f("pk_inventory_level")),
    )

    op.create_table(
        "identity_mapping",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("internal_id", sa.Uuid(), nullable=False),
        sa.Column("platform", _PLATFORM, nullable=False),
        sa.Column("entity_type", _ENTITY_TYPE, nullable=False),
        sa.Column("platform_id", sa.String(length=255), nullable=False),
        sa.Column("meta_key", sa.String(length=64), server_default="", nullable=False),
        sa.Column("meta_value", sa.String(length=1024), nullable=True),
        sa.Column(
            "updated_at",
            UTCDateTime(),
            server_default=sa.text("(CURRENT_TIMESTAMP)"),
            nullable=True,
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_identity_mapping")),
        sa.UniqueConstraint(
            "internal_id",
            "platform",
            "entity_type",
            "meta_key",
            name="uq_identity_mapping_owner",
        ),
    )
    with op.batch_alter_table("identity_mapping", schema=None) as batch_op:
        batch_op.create_index(
            "ix_identity_mapping_internal", ["internal_id", "entity_type"], unique=False
        )
        batch_op.create_index(
            "uq_identity_mapping_platform_id",
            ["platform", "entity_type", "platform_id"],
            unique=True,
            sqlite_where=sa.text("meta_key = ''"),
            postgresql_where=sa.text("meta_key = ''"),
        )

    op.create_table(
        "platform_connection",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("account_id", sa.String(length=128), nullable=False),
        sa.Column("platform", _PLATFORM, nullable=False),
        sa.Column("display_name", sa.String(length=255), nullable=False),
        sa.Column("credentials", CredentialsType(), nullable=False),
        sa.Column("status", _CONNECTION_STATUS, nullable=False),
        sa.Column("is_enabled", sa.Boolean(), nullable=False),
        sa.Column("last_sync_attempt_at", UTCDateTime(), nullable=True),
        sa.Column("last_sync_success_at", UTCDateTime(), nullable=True),
        sa.Column(
            "created_at",
            UTCDateTime(),
            server_default=sa.text("(CURRENT_TIMESTAMP)"),
            nullable=True,
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_platform_connection")),
    )
    with op.batch_alter_table("platform_connection", schema=None) as batch_op:
        batch_op.create_index(
            batch_op.f("ix_platform_connection_account_id"), ["account_id"], unique=False
        )


def downgrade() -> None:
    with op.batch_alter_table("platform_connection", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_platform_connection_account_id"))
    op.drop_table("platform_connection")

    with op.batch_alter_table("identity_mapping", schema=None) as batch_op:
        batch_op.drop_index("uq_identity_mapping_platform_id")
        batch_op.drop_index("ix_identity_mapping_internal")
    op.drop_table("identity_mapping")

    op.drop_table("inventory_level")

    with op.batch_alter_table("variant", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_variant_product_id"))
        batch_op.drop_index("ix_variant_sku")
    op.drop_table("variant")

    with op.batch_alter_table("location", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_location_account_id"))
    op.drop_table("location")

    with op.batch_alter_table("product", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_product_account_id"))
    op.drop_table("product")
