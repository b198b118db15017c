"""
Tests for the Reconciliation Validator.

Covers:
  - grade_check pass / warn / fail
  - Source counts recomputed with the import rules
  - Top-spender spot check (tolerance, concurrency, failed lookups)
  - Inventory check
"""

import asyncio
from decimal import Decimal

from factories import customer_row, product_row, transaction_row
from integrations.base import BatchWriteResult, EntityType, MigrationStore, StoreType
from migration.customers import classify_customers, summarize
from migration.reconciliation import (
    CheckStatus,
    check_inventory,
    check_top_spenders,
    grade_check,
    recompute_source_counts,
    validate_migration,
)
from migration.rules import MigrationRules
from migration.transactions import join_transactions


class ScriptedStore(MigrationStore):
    """In-memory store answering reconciliation queries from fixed data."""

    @property
    def store_type(self) -> StoreType:
        return StoreType.SQL

    def __init__(self, counts=None, customers=None, quantity=Decimal("0"), fail=()):
        super().__init__({})
        self.counts = counts or {}
        self.customers = customers or {}
        self.quantity = quantity
        self.fail = set(fail)
        self.in_flight = 0
        self.max_in_flight = 0

    async def test_connection(self) -> bool:
        return True

    async def write_batch(self, entity, records):
        return BatchWriteResult.from_counts(len(records), 0)

    async def ensure_vendors(self, names):
        return 0

    async def count_migrated(self, entity):
        if entity in self.fail:
            raise RuntimeError("count query timed out")
        return self.counts.get(entity, 0)

    async def find_customer(self, reference_id):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        await asyncio.sleep(0)
        self.in_flight -= 1
        if reference_id in self.fail:
            raise RuntimeError("lookup failed")
        return self.customers.get(reference_id)

    async def total_migrated_quantity(self):
        if "inventory" in self.fail:
            raise RuntimeError("sum failed")
        return self.quantity


# ── Grading ────────────────────────────────────────────────────────────


class TestGradeCheck:
    def test_query_failure_is_fail(self):
        check = grade_check("Customers", 500, None)
        assert check.status == CheckStatus.FAIL
        assert check.store_count is None

    def test_zero_store_count_is_skipped_warning(self):
        check = grade_check("Customers", 500, 0)
        assert check.status == CheckStatus.WARN
        assert check.note == "Step was skipped"

    def test_large_gap_is_warning_not_failure(self):
        check = grade_check("Customers", 500, 10)
        assert check.status == CheckStatus.WARN
        assert check.note == "Significant count difference"

    def test_documented_exclusions_pass_with_note(self):
        check = grade_check("Customers", 500, 420, "80 excluded (Tier 4)")
        assert check.status == CheckStatus.PASS
        assert check.note == "80 excluded (Tier 4)"

    def test_empty_source_passes(self):
        assert grade_check("Vehicles", 0, 0).status == CheckStatus.PASS


# ── Source counts ──────────────────────────────────────────────────────


class TestSourceCounts:
    def test_recomputed_with_import_rules(self, sample_source, rules):
        classification = summarize(classify_customers(sample_source.customers), include_tier3=False)
        counts = recompute_source_counts(
            sample_source.products,
            sample_source.items,
            sample_source.transactions,
            rules,
            classification,
        )

        assert counts.customers == 2
        assert counts.products == 2
        assert counts.transactions == 2
        assert counts.vehicles == 2
        assert counts.loyalty == 2
        assert counts.customer_note == "2 excluded (1 Tier 4 / 1 Tier 3 not selected)"
        assert counts.product_note == "1 skipped by import rules"

    def test_duplicate_payment_headers_counted_once(self, sample_source, rules):
        headers = [
            transaction_row(**{"Transaction ID": "T1"}),
            transaction_row(**{"Transaction ID": "T1"}),
            transaction_row(**{"Transaction ID": "T2"}),
            transaction_row(**{"Transaction ID": "T3", "Event Type": "Refund"}),
        ]
        classification = summarize(classify_customers(sample_source.customers), include_tier3=False)
        counts = recompute_source_counts((), (), headers, rules, classification)

        assert counts.transactions == join_transactions(headers, ()).count == 2


# ── Spot checks ────────────────────────────────────────────────────────


class TestTopSpenders:
    async def test_tolerance_and_missing_records(self):
        customers = [
            customer_row(**{"Reference ID": "A", "Lifetime Spend": "$500.00"}),
            customer_row(**{"Reference ID": "B", "Lifetime Spend": "$300.00"}),
            customer_row(**{"Reference ID": "C", "Lifetime Spend": "$200.00"}),
            customer_row(**{"Reference ID": "", "Lifetime Spend": "$100.00"}),
        ]
        store = ScriptedStore(
            customers={
                "A": {"lifetime_spend": Decimal("499.50")},
                "B": {"lifetime_spend": "$298.00"},
            }
        )
        checks = await check_top_spenders(store, customers, top_n=10, tolerance=Decimal("1.00"))

        assert [c.reference_id for c in checks] == ["A", "B", "C", ""]
        assert [c.match for c in checks] == [True, False, False, False]
        assert checks[2].store_spend == Decimal("0.00")
        assert checks[3].store_spend == Decimal("0.00")

    async def test_top_n_and_concurrent_lookups(self):
        customers = [
            customer_row(**{"Reference ID": f"C{i}", "Lifetime Spend": f"${i}.00"}) for i in range(1, 16)
        ]
        customers.append(customer_row(**{"Reference ID": "blank", "Lifetime Spend": ""}))
        store = ScriptedStore(customers={f"C{i}": {"lifetime_spend": f"{i}.00"} for i in range(1, 16)})
        checks = await check_top_spenders(store, customers, top_n=10)

        assert len(checks) == 10
        assert checks[0].reference_id == "C15"
        assert all(c.match for c in checks)
        assert store.max_in_flight > 1

    async def test_failed_lookup_is_mismatch(self):
        customers = [customer_row(**{"Reference ID": "X", "Lifetime Spend": "$5.00"})]
        (check,) = await check_top_spenders(ScriptedStore(fail={"X"}), customers)
        assert check.store_spend is None
        assert not check.match


class TestInventory:
    async def test_within_tolerance(self):
        products = [product_row(**{"Current Quantity SDASAS": "10"}), product_row(**{"Current Quantity SDASAS": "7"})]
        check = await check_inventory(ScriptedStore(quantity=Decimal("12")), products, tolerance=5)
        assert check.source_total == Decimal("17")
        assert check.delta == Decimal("-5")
        assert check.within_tolerance

    async def test_outside_tolerance(self):
        products = [product_row(**{"Current Quantity SDASAS": "20"})]
        check = await check_inventory(ScriptedStore(quantity=Decimal("14")), products, tolerance=5)
        assert not check.within_tolerance

    async def test_failed_query(self):
        check = await check_inventory(ScriptedStore(fail={"inventory"}), [product_row()], tolerance=5)
        assert check.store_total is None
        assert not check.within_tolerance


# ── Full report ────────────────────────────────────────────────────────


class TestValidateMigration:
    async def test_failed_count_query_fails_report(self, sample_source, rules):
        store = ScriptedStore(
            counts={EntityType.CUSTOMERS: 2, EntityType.PRODUCTS: 2, EntityType.VEHICLES: 2, EntityType.LOYALTY: 2},
            fail={EntityType.TRANSACTIONS},
        )
        classification = summarize(classify_customers(sample_source.customers), include_tier3=False)
        report = await validate_migration(
            store,
            sample_source.customers,
            sample_source.products,
            sample_source.items,
            sample_source.transactions,
            rules,
            classification,
        )

        statuses = {c.entity_label: c.status for c in report.checks}
        assert statuses["Transactions"] == CheckStatus.FAIL
        assert statuses["Customers"] == CheckStatus.PASS
        assert not report.passed

    async def test_skipped_stages_only_warn(self, sample_source):
        store = ScriptedStore(counts={EntityType.CUSTOMERS: 2})
        classification = summarize(classify_customers(sample_source.customers), include_tier3=False)
        report = await validate_migration(
            store,
            sample_source.customers,
            sample_source.products,
            sample_source.items,
            sample_source.transactions,
            MigrationRules(),
            classification,
        )

        assert report.passed
        assert {c.status for c in report.checks} == {CheckStatus.PASS, CheckStatus.WARN}
