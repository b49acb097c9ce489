"""SQLAlchemy adapter package for stocksync."""

from __future__ import annotations

from .connections import SqlAlchemyConnectionDirectory
from .mappings import create_all_tables, metadata
from .repositories import (
    SqlAlchemyConnectionRepository,
    SqlAlchemyIdentityMappingRepository,
    SqlAlchemyInventoryLevelRepository,
    SqlAlchemyLocationRepository,
    SqlAlchemyProductRepository,
    SqlAlchemyVariantRepository,
)
from .unit_of_work import SqlAlchemyUnitOfWork, shutdown, startup

__all__ = [
    "SqlAlchemyConnectionDirectory",
    "SqlAlchemyConnectionRepository",
    "SqlAlchemyIdentityMappingRepository",
    "SqlAlchemyInventoryLevelRepository",
    "SqlAlchemyLocationRepository",
    "SqlAlchemyProductRepository",
    "SqlAlchemyUnitOfWork",
    "SqlAlchemyVariantRepository",
    "create_all_tables",
    "metadata",
    "shutdown",
    "startup",
]
