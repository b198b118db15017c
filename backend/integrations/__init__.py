"""
Integrations package.

Both ends of the migration:
  - Square CSV exports          (source — square_export)
  - Target store REST API       (destination — store_api)
  - Target store database       (destination — db.store, registered on import)

Usage:
    from integrations.base import get_store, StoreType

    store = get_store(StoreType.REST_API, {"base_url": "...", "api_key": "..."})
    result = await store.write_batch(EntityType.CUSTOMERS, records)
"""

from integrations.base import (
    BatchWriteResult,
    EntityType,
    MigrationStore,
    StoreType,
    WriteStatus,
    get_store,
    register_store,
)
from integrations.square_export import (
    ExportFile,
    ExportFileError,
    ExportKind,
    read_export,
    read_exports,
)
from integrations.store_api import HttpMigrationStore

__all__ = [
    "BatchWriteResult",
    "EntityType",
    "MigrationStore",
    "StoreType",
    "WriteStatus",
    "get_store",
    "register_store",
    "ExportFile",
    "ExportFileError",
    "ExportKind",
    "read_export",
    "read_exports",
    "HttpMigrationStore",
]
