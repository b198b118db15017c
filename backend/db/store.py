"""
SQL Migration Store

Writes migration batches straight into the target database through async
SQLAlchemy. Works against PostgreSQL (asyncpg) in production and SQLite
(aiosqlite) in tests.

Natural keys used for upserts:
  customers  → square_reference_id, else phone, else email
  products   → square_item_id, else sku
  vehicles   → (customer, size_class)
  vendors    → name
  loyalty    → customer balance is set; one migration ledger entry per customer

Transactions are plain inserts. Running the transaction stage twice
duplicates them.

Each batch is one database transaction: it commits as a whole or raises.
Records that cannot be resolved (e.g. a vehicle whose customer was never
imported) are counted as failed without aborting the batch.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Iterable

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from db.models import (
    IMPORT_SOURCE,
    Customer,
    LoyaltyLedgerEntry,
    Payment,
    Product,
    ProductCategory,
    Transaction,
    TransactionItem,
    Vehicle,
    Vendor,
)
from db.session import Base, build_engine, session_factory
from integrations.base import (
    BatchWriteResult,
    EntityType,
    MigrationStore,
    StoreType,
    WriteStatus,
    register_store,
)

_CUSTOMER_FIELDS = (
    "square_reference_id",
    "square_customer_id",
    "first_name",
    "last_name",
    "phone",
    "email",
    "birthday",
    "address_line_1",
    "address_line_2",
    "city",
    "state",
    "zip",
    "notes",
    "tags",
    "sms_consent",
    "email_consent",
    "visit_count",
    "lifetime_spend",
    "first_visit_date",
    "last_visit_date",
)

_PRODUCT_FIELDS = (
    "square_item_id",
    "sku",
    "gtin",
    "name",
    "description",
    "cost_price",
    "retail_price",
    "quantity_on_hand",
    "reorder_threshold",
    "is_taxable",
    "is_loyalty_eligible",
    "is_active",
)

_TRANSACTION_FIELDS = (
    "square_transaction_id",
    "transaction_date",
    "transaction_time",
    "staff_name",
    "status",
    "gross_sales",
    "discounts",
    "net_sales",
    "tax",
    "tip",
    "total_collected",
    "fees",
)

_ITEM_FIELDS = (
    "item_name",
    "category",
    "sku",
    "quantity",
    "gross_sales",
    "discount",
    "net_sales",
    "tax",
    "price_point_name",
    "itemization_type",
)


@register_store
class SqlMigrationStore(MigrationStore):
    """
    Direct database destination.

    Config:
        database_url: SQLAlchemy async URL (ignored when `engine` is given)
        echo: log SQL statements
        engine: an existing AsyncEngine to reuse
        create_schema: create missing tables on first use (tests, fresh DBs)
    """

    @property
    def store_type(self) -> StoreType:
        return StoreType.SQL

    def __init__(self, config: dict[str, Any]):
        super().__init__(config)
        engine = config.get("engine")
        self._owns_engine = engine is None
        self.engine: AsyncEngine = engine or build_engine(config["database_url"], echo=config.get("echo", False))
        self._sessions = session_factory(self.engine)
        self._schema_ready = not config.get("create_schema", False)

    async def _ensure_schema(self) -> None:
        if self._schema_ready:
            return
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        self._schema_ready = True

    async def close(self) -> None:
        if self._owns_engine:
            await self.engine.dispose()

    async def test_connection(self) -> bool:
        try:
            async with self.engine.connect() as conn:
                await conn.execute(select(1))
            return True
        except Exception as exc:
            self.logger.error("sql_store.connection_failed", error=str(exc))
            return False

    # ── Writes ────────────────────────────────────────────────────────

    async def write_batch(self, entity: EntityType, records: list[dict[str, Any]]) -> BatchWriteResult:
        if not records:
            return BatchWriteResult(status=WriteStatus.NO_DATA).complete()
        writer = {
            EntityType.CUSTOMERS: self._write_customer,
            EntityType.PRODUCTS: self._write_product,
            EntityType.VEHICLES: self._write_vehicle,
            EntityType.TRANSACTIONS: self._write_transaction,
            EntityType.LOYALTY: self._write_loyalty,
        }.get(entity)
        if writer is None:
            raise ValueError(f"SQL store cannot write entity: {entity.value}")

        await self._ensure_schema()
        written = 0
        errors: list[str] = []
        async with self._sessions() as session:
            try:
                for record in records:
                    problem = await writer(session, record)
                    if problem:
                        errors.append(problem)
                    else:
                        written += 1
                await session.commit()
            except Exception:
                await session.rollback()
                raise

        result = BatchWriteResult.from_counts(written, len(errors), errors)
        self.logger.info(
            "sql_store.batch_written",
            entity=entity.value,
            written=written,
            failed=len(errors),
        )
        return result

    async def ensure_vendors(self, names: Iterable[str]) -> int:
        await self._ensure_schema()
        created = 0
        async with self._sessions() as session:
            for name in names:
                name = name.strip()
                if not name:
                    continue
                if await self._vendor_id(session, name) is None:
                    session.add(Vendor(name=name))
                    await session.flush()
                    created += 1
            await session.commit()
        self.logger.info("sql_store.vendors_ensured", created=created)
        return created

    # ── Lookups ───────────────────────────────────────────────────────

    async def _customer_by_ref(self, session: AsyncSession, reference_id: str | None) -> Customer | None:
        if not reference_id:
            return None
        result = await session.execute(select(Customer).where(Customer.square_reference_id == reference_id))
        return result.scalars().first()

    async def _existing_customer(self, session: AsyncSession, record: dict[str, Any]) -> Customer | None:
        if record.get("square_reference_id"):
            return await self._customer_by_ref(session, record["square_reference_id"])
        for key in ("phone", "email"):
            value = record.get(key)
            if value:
                result = await session.execute(select(Customer).where(getattr(Customer, key) == value))
                return result.scalars().first()
        return None

    async def _vendor_id(self, session: AsyncSession, name: str | None):
        if not name:
            return None
        result = await session.execute(select(Vendor.vendor_id).where(Vendor.name == name))
        return result.scalars().first()

    async def _category_id(self, session: AsyncSession, slug: str | None):
        if not slug:
            return None
        result = await session.execute(select(ProductCategory.category_id).where(ProductCategory.slug == slug))
        category_id = result.scalars().first()
        if category_id is None:
            category = ProductCategory(slug=slug, name=slug.replace("-", " ").title())
            session.add(category)
            await session.flush()
            category_id = category.category_id
        return category_id

    # ── Per-entity writers (return an error string or None) ──────────

    async def _write_customer(self, session: AsyncSession, record: dict[str, Any]) -> str | None:
        customer = await self._existing_customer(session, record)
        if customer is None:
            customer = Customer(import_source=IMPORT_SOURCE)
            session.add(customer)
        for key in _CUSTOMER_FIELDS:
            if key in record:
                setattr(customer, key, record[key])
        customer.import_source = IMPORT_SOURCE
        await session.flush()
        return None

    async def _write_product(self, session: AsyncSession, record: dict[str, Any]) -> str | None:
        product = None
        if record.get("square_item_id"):
            result = await session.execute(select(Product).where(Product.square_item_id == record["square_item_id"]))
            product = result.scalars().first()
        elif record.get("sku"):
            result = await session.execute(select(Product).where(Product.sku == record["sku"]))
            product = result.scalars().first()
        if product is None:
            product = Product(import_source=IMPORT_SOURCE)
            session.add(product)

        for key in _PRODUCT_FIELDS:
            if key in record:
                setattr(product, key, record[key])
        product.category_id = await self._category_id(session, record.get("category_slug"))
        vendor_name = record.get("vendor_name")
        product.vendor_id = await self._vendor_id(session, vendor_name)
        if vendor_name and product.vendor_id is None:
            vendor = Vendor(name=vendor_name)
            session.add(vendor)
            await session.flush()
            product.vendor_id = vendor.vendor_id
        product.import_source = IMPORT_SOURCE
        await session.flush()
        return None

    async def _write_vehicle(self, session: AsyncSession, record: dict[str, Any]) -> str | None:
        reference_id = record.get("customer_reference_id")
        customer = await self._customer_by_ref(session, reference_id)
        if customer is None:
            return f"Vehicle: customer {reference_id} not found"

        result = await session.execute(
            select(Vehicle).where(
                Vehicle.customer_id == customer.customer_id,
                Vehicle.size_class == record["size_class"],
                Vehicle.import_source == IMPORT_SOURCE,
            )
        )
        vehicle = result.scalars().first()
        if vehicle is None:
            vehicle = Vehicle(customer_id=customer.customer_id, size_class=record["size_class"])
            session.add(vehicle)
        vehicle.vehicle_type = record.get("vehicle_type", "standard")
        vehicle.is_incomplete = record.get("is_incomplete", True)
        vehicle.notes = record.get("notes")
        vehicle.import_source = IMPORT_SOURCE
        await session.flush()
        return None

    async def _write_transaction(self, session: AsyncSession, record: dict[str, Any]) -> str | None:
        customer = await self._customer_by_ref(session, record.get("customer_reference_id"))
        txn = Transaction(
            customer_id=customer.customer_id if customer else None,
            import_source=IMPORT_SOURCE,
            **{key: record[key] for key in _TRANSACTION_FIELDS if key in record},
        )
        for item in record.get("items", []):
            txn.items.append(TransactionItem(**{key: item[key] for key in _ITEM_FIELDS if key in item}))
        method = record.get("payment_method")
        if method:
            txn.payments.append(
                Payment(
                    method=method,
                    amount=record.get("payment_amount", record.get("total_collected", 0)),
                    tip=record.get("tip", 0),
                    card_brand=record.get("card_brand") if method == "card" else None,
                    card_last_four=record.get("card_last_four") if method == "card" else None,
                )
            )
        session.add(txn)
        await session.flush()
        return None

    async def _write_loyalty(self, session: AsyncSession, record: dict[str, Any]) -> str | None:
        reference_id = record.get("customer_reference_id")
        customer = await self._customer_by_ref(session, reference_id)
        if customer is None:
            return f"Loyalty: customer {reference_id} not found"

        points = int(record["points"])
        action = record.get("action", "welcome_bonus")
        customer.loyalty_points_balance = points

        result = await session.execute(
            select(LoyaltyLedgerEntry).where(
                LoyaltyLedgerEntry.customer_id == customer.customer_id,
                LoyaltyLedgerEntry.action == action,
            )
        )
        entry = result.scalars().first()
        if entry is None:
            entry = LoyaltyLedgerEntry(customer_id=customer.customer_id, action=action)
            session.add(entry)
        entry.points_change = points
        entry.points_balance = points
        entry.description = record.get("description")
        await session.flush()
        return None

    # ── Reconciliation queries ────────────────────────────────────────

    async def count_migrated(self, entity: EntityType) -> int:
        await self._ensure_schema()
        query = {
            EntityType.CUSTOMERS: select(func.count()).select_from(Customer).where(
                Customer.import_source == IMPORT_SOURCE
            ),
            EntityType.PRODUCTS: select(func.count()).select_from(Product).where(
                Product.import_source == IMPORT_SOURCE
            ),
            EntityType.VEHICLES: select(func.count()).select_from(Vehicle).where(
                Vehicle.import_source == IMPORT_SOURCE
            ),
            EntityType.TRANSACTIONS: select(func.count()).select_from(Transaction).where(
                Transaction.import_source == IMPORT_SOURCE
            ),
            EntityType.LOYALTY: select(func.count(func.distinct(LoyaltyLedgerEntry.customer_id)))
            .select_from(LoyaltyLedgerEntry)
            .join(Customer, Customer.customer_id == LoyaltyLedgerEntry.customer_id)
            .where(Customer.import_source == IMPORT_SOURCE),
            EntityType.VENDORS: select(func.count()).select_from(Vendor),
        }[entity]
        async with self._sessions() as session:
            return int((await session.execute(query)).scalar_one())

    async def find_customer(self, reference_id: str) -> dict[str, Any] | None:
        await self._ensure_schema()
        async with self._sessions() as session:
            customer = await self._customer_by_ref(session, reference_id)
            if customer is None:
                return None
            return {
                "customer_id": str(customer.customer_id),
                "square_reference_id": customer.square_reference_id,
                "first_name": customer.first_name,
                "last_name": customer.last_name,
                "lifetime_spend": Decimal(customer.lifetime_spend or 0),
                "loyalty_points_balance": customer.loyalty_points_balance,
            }

    async def total_migrated_quantity(self) -> Decimal:
        await self._ensure_schema()
        query = select(func.coalesce(func.sum(Product.quantity_on_hand), 0)).where(
            Product.import_source == IMPORT_SOURCE
        )
        async with self._sessions() as session:
            return Decimal((await session.execute(query)).scalar_one())
