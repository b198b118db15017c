"""
Test Configuration — Fixtures for the SQL store, migration rules and sample exports.

Each store test gets its own in-memory SQLite database. StaticPool keeps
every session on the one connection so the schema survives between them.
"""

import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from db.session import Base
from db.store import SqlMigrationStore
from factories import customer_row, item_row, product_row, transaction_row
from migration.pipeline import SourceData
from migration.rules import MigrationRules

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
async def test_engine():
    """Create a fresh database engine and build all tables."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def sql_store(test_engine):
    store = SqlMigrationStore({"engine": test_engine})
    yield store
    await store.close()


@pytest.fixture
def rules():
    return MigrationRules(migration_batch_size=2, transaction_batch_size=2)


@pytest.fixture
def sample_source():
    """A small but complete set of exports touching every stage."""
    return SourceData(
        customers=(
            customer_row(**{"Reference ID": "C1", "First Name": "Ana", "Phone Number": "(555) 123-4567",
                            "Transaction Count": "3", "Lifetime Spend": "$152.50"}),
            customer_row(**{"Reference ID": "C2", "First Name": "Ben", "Phone Number": "555.000.1111",
                            "Transaction Count": "1", "Lifetime Spend": "$40.00"}),
            customer_row(**{"Reference ID": "C3", "First Name": "Cy", "Email Address": "cy@example.com"}),
            customer_row(**{"Reference ID": "C4", "First Name": "Dee"}),
        ),
        products=(
            product_row(**{"Token": "P1", "SKU": "CER-1", "Current Quantity SDASAS": "10",
                           "Default Vendor Name": "Gyeon"}),
            product_row(**{"Token": "P2", "Item Name": "Bottled Water", "SKU": "0000001", "Categories": "Water",
                           "Price": "$1.00", "Current Quantity SDASAS": "24"}),
            product_row(**{"Token": "P3", "Item Name": "CC Fee", "SKU": "305152J"}),
        ),
        items=(
            item_row(**{"Transaction ID": "T1", "Price Point Name": "Vehicle Size - MEDIUM",
                        "Net Sales": "$150.00", "Customer Reference ID": "C1", "Employee": "Sam"}),
            item_row(**{"Transaction ID": "T1", "Item": "Bottled Water", "SKU": "0000001",
                        "Net Sales": "$2.50", "Customer Reference ID": "C1"}),
            item_row(**{"Transaction ID": "T2", "Price Point Name": "SMALL", "Net Sales": "$40.00"}),
        ),
        transactions=(
            transaction_row(**{"Transaction ID": "T1", "Gross Sales": "$152.50", "Net Sales": "$152.50",
                               "Total Collected": "$152.50", "Card": "$152.50",
                               "Customer Reference ID": "C1", "Staff Name": "Sam"}),
            transaction_row(**{"Transaction ID": "T2", "Date": "2024-05-02", "Gross Sales": "$40.00",
                               "Net Sales": "$40.00", "Total Collected": "$45.00", "Tip": "$5.00",
                               "Cash": "$45.00", "Customer Reference ID": "C2"}),
        ),
    )
