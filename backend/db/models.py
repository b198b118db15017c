"""
Square Migration Database Models

Target-store tables written by the migration. Every migrated row carries
``import_source = 'square'`` so reconciliation can count exactly what this
migration wrote.

Tables:
  1. customers          - Customer directory (+ loyalty balance)
  2. vendors            - Product vendors
  3. product_categories - Catalog categories (by slug)
  4. products           - Retail catalog
  5. vehicles           - Customer vehicles (size-only when inferred)
  6. transactions       - Payment headers
  7. transaction_items  - Line items
  8. payments           - Tender records
  9. loyalty_ledger     - Points movements
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
    types,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import relationship

from db.session import Base

IMPORT_SOURCE = "square"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GUID(TypeDecorator):
    """Platform-independent UUID type.

    Uses PostgreSQL UUID when available, stores as CHAR(36) on SQLite.
    """

    impl = types.String(36)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(PG_UUID(as_uuid=True))
        return dialect.type_descriptor(types.String(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if dialect.name == "postgresql":
            return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))
        return str(value) if isinstance(value, uuid.UUID) else value

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        if isinstance(value, uuid.UUID):
            return value
        return uuid.UUID(str(value))


Money = Numeric(12, 2)


# ─── 1. Customers ──────────────────────────────────────────────────────────


class Customer(Base):
    __tablename__ = "customers"

    customer_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    square_reference_id = Column(String(64), unique=True)
    square_customer_id = Column(String(64))
    first_name = Column(String(100), nullable=False, default="")
    last_name = Column(String(100), nullable=False, default="")
    phone = Column(String(20))  # E.164
    email = Column(String(255))
    birthday = Column(String(32))
    address_line_1 = Column(String(255))
    address_line_2 = Column(String(255))
    city = Column(String(100))
    state = Column(String(50))
    zip = Column(String(20))
    notes = Column(Text)
    tags = Column(JSON, nullable=False, default=list)
    sms_consent = Column(Boolean, nullable=False, default=False)
    email_consent = Column(Boolean, nullable=False, default=False)
    visit_count = Column(Integer, nullable=False, default=0)
    lifetime_spend = Column(Money, nullable=False, default=0)
    first_visit_date = Column(String(32))
    last_visit_date = Column(String(32))
    loyalty_points_balance = Column(Integer, nullable=False, default=0)
    import_source = Column(String(20))
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        Index("ix_customers_phone", "phone"),
        Index("ix_customers_email", "email"),
    )

    vehicles = relationship("Vehicle", back_populates="customer", cascade="all, delete-orphan")
    transactions = relationship("Transaction", back_populates="customer")
    loyalty_entries = relationship("LoyaltyLedgerEntry", back_populates="customer", cascade="all, delete-orphan")


# ─── 2. Vendors ────────────────────────────────────────────────────────────


class Vendor(Base):
    __tablename__ = "vendors"

    vendor_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    products = relationship("Product", back_populates="vendor")


# ─── 3. Product categories ─────────────────────────────────────────────────


class ProductCategory(Base):
    __tablename__ = "product_categories"

    category_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    slug = Column(String(100), nullable=False, unique=True)
    name = Column(String(100), nullable=False)

    products = relationship("Product", back_populates="category")


# ─── 4. Products ───────────────────────────────────────────────────────────


class Product(Base):
    __tablename__ = "products"

    product_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    square_item_id = Column(String(64), unique=True)
    sku = Column(String(100))
    gtin = Column(String(14))  # GS1 Global Trade Item Number
    name = Column(String(255), nullable=False)
    description = Column(Text)
    category_id = Column(GUID(), ForeignKey("product_categories.category_id"), nullable=True)
    vendor_id = Column(GUID(), ForeignKey("vendors.vendor_id"), nullable=True)
    cost_price = Column(Money, nullable=False, default=0)
    retail_price = Column(Money, nullable=False, default=0)
    quantity_on_hand = Column(Integer, nullable=False, default=0)
    reorder_threshold = Column(Integer)
    is_taxable = Column(Boolean, nullable=False, default=True)
    is_loyalty_eligible = Column(Boolean, nullable=False, default=True)
    is_active = Column(Boolean, nullable=False, default=True)
    import_source = Column(String(20))
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (Index("ix_products_sku", "sku"),)

    category = relationship("ProductCategory", back_populates="products")
    vendor = relationship("Vendor", back_populates="products")


# ─── 5. Vehicles ───────────────────────────────────────────────────────────


class Vehicle(Base):
    __tablename__ = "vehicles"

    vehicle_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    customer_id = Column(GUID(), ForeignKey("customers.customer_id"), nullable=False)
    vehicle_type = Column(String(30), nullable=False, default="standard")
    size_class = Column(String(30), nullable=False)
    make = Column(String(50))
    model = Column(String(50))
    year = Column(Integer)
    is_incomplete = Column(Boolean, nullable=False, default=True)
    notes = Column(Text)
    import_source = Column(String(20))
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        UniqueConstraint("customer_id", "size_class", "import_source", name="uq_vehicle_size_per_customer"),
        CheckConstraint(
            "size_class IN ('sedan', 'truck_suv_2row', 'suv_3row_van')",
            name="ck_vehicle_size_class",
        ),
    )

    customer = relationship("Customer", back_populates="vehicles")


# ─── 6. Transactions ───────────────────────────────────────────────────────


class Transaction(Base):
    __tablename__ = "transactions"

    transaction_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    square_transaction_id = Column(String(64), nullable=False)
    customer_id = Column(GUID(), ForeignKey("customers.customer_id"), nullable=True)
    staff_name = Column(String(100))
    transaction_date = Column(String(32))
    transaction_time = Column(String(32))
    status = Column(String(20), nullable=False, default="completed")
    gross_sales = Column(Money, nullable=False, default=0)
    discounts = Column(Money, nullable=False, default=0)
    net_sales = Column(Money, nullable=False, default=0)
    tax = Column(Money, nullable=False, default=0)
    tip = Column(Money, nullable=False, default=0)
    total_collected = Column(Money, nullable=False, default=0)
    fees = Column(Money, nullable=False, default=0)
    import_source = Column(String(20))
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        Index("ix_transactions_square_id", "square_transaction_id"),
        CheckConstraint("status IN ('completed', 'voided', 'refunded')", name="ck_transaction_status"),
    )

    customer = relationship("Customer", back_populates="transactions")
    items = relationship("TransactionItem", back_populates="transaction", cascade="all, delete-orphan")
    payments = relationship("Payment", back_populates="transaction", cascade="all, delete-orphan")


# ─── 7. Transaction items ──────────────────────────────────────────────────


class TransactionItem(Base):
    __tablename__ = "transaction_items"

    item_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    transaction_id = Column(GUID(), ForeignKey("transactions.transaction_id"), nullable=False)
    item_name = Column(String(255), nullable=False)
    category = Column(String(100))
    sku = Column(String(100))
    quantity = Column(Numeric(10, 3), nullable=False, default=1)
    gross_sales = Column(Money, nullable=False, default=0)
    discount = Column(Money, nullable=False, default=0)
    net_sales = Column(Money, nullable=False, default=0)
    tax = Column(Money, nullable=False, default=0)
    price_point_name = Column(String(255))
    itemization_type = Column(String(50))

    transaction = relationship("Transaction", back_populates="items")


# ─── 8. Payments ───────────────────────────────────────────────────────────


class Payment(Base):
    __tablename__ = "payments"

    payment_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    transaction_id = Column(GUID(), ForeignKey("transactions.transaction_id"), nullable=False)
    method = Column(String(20), nullable=False)
    amount = Column(Money, nullable=False)
    tip = Column(Money, nullable=False, default=0)
    card_brand = Column(String(30))
    card_last_four = Column(String(4))

    __table_args__ = (CheckConstraint("method IN ('cash', 'card')", name="ck_payment_method"),)

    transaction = relationship("Transaction", back_populates="payments")


# ─── 9. Loyalty ledger ─────────────────────────────────────────────────────


class LoyaltyLedgerEntry(Base):
    __tablename__ = "loyalty_ledger"

    entry_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    customer_id = Column(GUID(), ForeignKey("customers.customer_id"), nullable=False)
    action = Column(String(30), nullable=False)
    points_change = Column(Integer, nullable=False)
    points_balance = Column(Integer, nullable=False)
    description = Column(Text)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (Index("ix_loyalty_ledger_customer", "customer_id"),)

    customer = relationship("Customer", back_populates="loyalty_entries")
