"""Domain ports (protocols) for adapters to implement."""

from __future__ import annotations

from .connections import ConnectionDirectory
from .connectors import CatalogFetchResult, ConnectorLookup, PlatformConnector, RejectedRecord
from .persistence import (
    ConnectionRepository,
    IdentityMappingRepository,
    InventoryLevelRepository,
    LocationRepository,
    ProductRepository,
    Repository,
    VariantRepository,
)
from .unit_of_work import (
    RepositoryCollection,
    SyncRepositories,
    SyncUnitOfWork,
    UnitOfWork,
    UnitOfWorkFactory,
)

__all__ = [
    "CatalogFetchResult",
    "ConnectionDirectory",
    "ConnectionRepository",
    "ConnectorLookup",
    "IdentityMappingRepository",
    "InventoryLevelRepository",
    "LocationRepository",
    "PlatformConnector",
    "ProductRepository",
    "RejectedRecord",
    "Repository",
    "RepositoryCollection",
    "SyncRepositories",
    "SyncUnitOfWork",
    "UnitOfWork",
    "UnitOfWorkFactory",
    "VariantRepository",
]
