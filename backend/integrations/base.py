"""
Migration Store — Abstract Base Class

Every destination the migration can write to (the SQL database directly,
or the store's REST API) implements this interface, so the stage runners
and the reconciliation validator never know which one they are talking to.

Writes are batched and upserted by natural key wherever the entity has one.
Transactions have no natural key and are plain inserts.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable

import structlog

logger = structlog.get_logger()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Store & entity types ──────────────────────────────────────────────────


class StoreType(str, Enum):
    """Supported migration destinations."""

    SQL = "sql"  # direct database writes (SQLAlchemy)
    REST_API = "api"  # target store's HTTP API


class EntityType(str, Enum):
    """Entities written by the migration."""

    CUSTOMERS = "customers"
    VENDORS = "vendors"
    PRODUCTS = "products"
    VEHICLES = "vehicles"
    TRANSACTIONS = "transactions"
    LOYALTY = "loyalty"


class WriteStatus(str, Enum):
    """Result status of a batch write."""

    SUCCESS = "success"
    PARTIAL = "partial"  # Some records written, some failed
    FAILED = "failed"
    NO_DATA = "no_data"


# ── Write result container ────────────────────────────────────────────────


@dataclass
class BatchWriteResult:
    """Standardized return from every store write."""

    status: WriteStatus
    records_written: int = 0
    records_failed: int = 0
    errors: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    started_at: datetime = field(default_factory=_utcnow)
    completed_at: datetime | None = None

    def complete(self) -> "BatchWriteResult":
        self.completed_at = _utcnow()
        return self

    @classmethod
    def from_counts(cls, written: int, failed: int, errors: list[str] | None = None) -> "BatchWriteResult":
        if written == 0 and failed == 0:
            status = WriteStatus.NO_DATA
        elif failed == 0:
            status = WriteStatus.SUCCESS
        elif written == 0:
            status = WriteStatus.FAILED
        else:
            status = WriteStatus.PARTIAL
        return cls(status=status, records_written=written, records_failed=failed, errors=list(errors or [])).complete()


# ── Abstract store ────────────────────────────────────────────────────────


class MigrationStore(ABC):
    """
    Base class for migration destinations.

    Lifecycle:
        1. __init__(config)          — load connection settings
        2. test_connection()         — validate connectivity
        3. ensure_vendors(names)     — pre-create vendors products refer to
        4. write_batch(entity, ...)  — upsert/insert one batch of records
        5. count_migrated(entity)    — count records carrying a Square reference
        6. find_customer(ref)        — point lookup for spend spot-checks
        7. close()                   — release connections
    """

    def __init__(self, config: dict[str, Any]):
        self.config = config
        self.logger = logger.bind(store=self.store_type.value)

    @property
    @abstractmethod
    def store_type(self) -> StoreType:
        """Return the destination type this store handles."""
        ...

    @abstractmethod
    async def test_connection(self) -> bool:
        """Validate that the store is reachable."""
        ...

    @abstractmethod
    async def write_batch(self, entity: EntityType, records: list[dict[str, Any]]) -> BatchWriteResult:
        """Write one batch. Raises on transport failure."""
        ...

    @abstractmethod
    async def ensure_vendors(self, names: Iterable[str]) -> int:
        """Create any vendor not already present. Returns the number created."""
        ...

    @abstractmethod
    async def count_migrated(self, entity: EntityType) -> int:
        """Count records of `entity` that originated from the Square export."""
        ...

    @abstractmethod
    async def find_customer(self, reference_id: str) -> dict[str, Any] | None:
        """Look up a migrated customer by Square reference ID."""
        ...

    @abstractmethod
    async def total_migrated_quantity(self) -> Decimal:
        """Sum of on-hand quantity across migrated products."""
        ...

    async def close(self) -> None:
        return None

    async def get_status(self) -> dict[str, Any]:
        """Report health of the destination."""
        connected = await self.test_connection()
        return {
            "store_type": self.store_type.value,
            "connected": connected,
            "checked_at": _utcnow().isoformat(),
        }


# ── Store registry ────────────────────────────────────────────────────────

_STORE_REGISTRY: dict[StoreType, type[MigrationStore]] = {}


def register_store(store_cls: type[MigrationStore]):
    """Decorator: register a store class for its destination type."""
    _STORE_REGISTRY[store_cls.store_type.fget(None)] = store_cls  # type: ignore
    return store_cls


def get_store(store_type: StoreType, config: dict[str, Any]) -> MigrationStore:
    """Factory: return the right store instance for the given type."""
    store_cls = _STORE_REGISTRY.get(store_type)
    if store_cls is None:
        raise ValueError(f"No store registered for type: {store_type.value}")
    return store_cls(config=config)
