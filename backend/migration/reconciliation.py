"""
Reconciliation Validator.

After the import stages have run, source-side counts are recomputed from the
untouched export rows with the same filters each stage applied, and compared
against what the store reports as migrated. Two spot checks follow: the top
customers' lifetime spend, and total on-hand inventory.

A store query that fails is a ``fail``. A store count of zero is only a
``warn``: the operator may have skipped that stage on purpose.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Sequence

import structlog

from integrations.base import EntityType, MigrationStore
from migration.customers import CustomerClassification, CustomerTier
from migration.loyalty import calculate_loyalty
from migration.products import process_products
from migration.rows import CustomerRow, ItemRow, ProductRow, TransactionRow, parse_money, parse_quantity
from migration.rules import MigrationRules
from migration.transactions import customer_directory, join_transactions
from migration.vehicles import infer_vehicles

logger = structlog.get_logger()


class CheckStatus(str, Enum):
    PASS = "pass"
    WARN = "warn"
    FAIL = "fail"


@dataclass(frozen=True)
class ValidationCheck:
    entity_label: str
    source_count: int
    store_count: int | None
    status: CheckStatus
    note: str | None = None


@dataclass(frozen=True)
class TopSpenderCheck:
    name: str
    reference_id: str
    source_spend: Decimal
    store_spend: Decimal | None
    match: bool


@dataclass(frozen=True)
class InventoryCheck:
    source_total: Decimal
    store_total: Decimal | None
    delta: Decimal | None
    within_tolerance: bool


@dataclass(frozen=True)
class ValidationReport:
    checks: tuple[ValidationCheck, ...]
    top_spenders: tuple[TopSpenderCheck, ...]
    inventory: InventoryCheck

    @property
    def passed(self) -> bool:
        return all(c.status != CheckStatus.FAIL for c in self.checks)

    @property
    def mismatched_spenders(self) -> tuple[TopSpenderCheck, ...]:
        return tuple(s for s in self.top_spenders if not s.match)


def grade_check(
    entity_label: str,
    source_count: int,
    store_count: int | None,
    note: str | None = None,
) -> ValidationCheck:
    if store_count is None:
        return ValidationCheck(entity_label, source_count, None, CheckStatus.FAIL, "Store query failed")
    if store_count == 0 and source_count > 0:
        return ValidationCheck(entity_label, source_count, store_count, CheckStatus.WARN, "Step was skipped")
    if store_count < source_count * 0.5:
        return ValidationCheck(
            entity_label, source_count, store_count, CheckStatus.WARN, "Significant count difference"
        )
    return ValidationCheck(entity_label, source_count, store_count, CheckStatus.PASS, note)


# ── Source-side recomputation ─────────────────────────────────────────────


@dataclass(frozen=True)
class SourceCounts:
    customers: int
    products: int
    transactions: int
    vehicles: int
    loyalty: int
    customer_note: str | None = None
    product_note: str | None = None


def customer_exclusion_note(classification: CustomerClassification) -> str | None:
    tier4 = classification.tier_counts[CustomerTier.UNREACHABLE]
    duplicates = len(classification.dedup.superseded)
    tier3 = 0 if classification.include_tier3 else classification.tier_counts[CustomerTier.EMAIL_ONLY]
    excluded = classification.excluded_count
    if excluded == 0:
        return None
    parts = []
    if tier4:
        parts.append(f"{tier4} Tier 4")
    if duplicates:
        parts.append(f"{duplicates} duplicates")
    if tier3:
        parts.append(f"{tier3} Tier 3 not selected")
    return f"{excluded} excluded ({' / '.join(parts)})"


def recompute_source_counts(
    products: Sequence[ProductRow],
    items: Sequence[ItemRow],
    headers: Sequence[TransactionRow],
    rules: MigrationRules,
    classification: CustomerClassification,
) -> SourceCounts:
    catalog = process_products(products, rules)
    directory = customer_directory(headers) if headers else None
    skipped = len(catalog.skipped)
    return SourceCounts(
        customers=classification.importable_count,
        products=len(catalog.importable),
        transactions=join_transactions(headers, items).count,
        vehicles=infer_vehicles(items, rules.size_class_map, directory).count,
        loyalty=calculate_loyalty(items, headers, rules.loyalty_excluded_sku).count,
        customer_note=customer_exclusion_note(classification),
        product_note=f"{skipped} skipped by import rules" if skipped else None,
    )


# ── Store-side queries ────────────────────────────────────────────────────


async def _store_count(store: MigrationStore, entity: EntityType) -> int | None:
    try:
        return await store.count_migrated(entity)
    except Exception as exc:
        logger.warning("reconciliation.count_query_failed", entity=entity.value, error=str(exc))
        return None


async def _lookup_spend(store: MigrationStore, row: CustomerRow) -> Decimal | None:
    if not row.reference_id:
        return Decimal("0.00")
    try:
        record = await store.find_customer(row.reference_id)
    except Exception as exc:
        logger.warning("reconciliation.customer_lookup_failed", reference_id=row.reference_id, error=str(exc))
        return None
    if record is None:
        return Decimal("0.00")
    return parse_money(str(record.get("lifetime_spend") or "0"))


async def check_top_spenders(
    store: MigrationStore,
    customers: Sequence[CustomerRow],
    top_n: int = 10,
    tolerance: Decimal = Decimal("1.00"),
) -> tuple[TopSpenderCheck, ...]:
    """Re-verify the biggest spenders. Lookups run concurrently; all finish before grading."""
    with_spend = [(parse_money(c.lifetime_spend), index, c) for index, c in enumerate(customers) if c.lifetime_spend]
    with_spend.sort(key=lambda t: (-t[0], t[1]))
    top = with_spend[:top_n]

    store_spends = await asyncio.gather(*(_lookup_spend(store, row) for _, _, row in top))

    checks = []
    for (source_spend, _, row), store_spend in zip(top, store_spends):
        match = store_spend is not None and abs(store_spend - source_spend) <= tolerance
        checks.append(
            TopSpenderCheck(
                name=row.full_name,
                reference_id=row.reference_id,
                source_spend=source_spend,
                store_spend=store_spend,
                match=match,
            )
        )
    return tuple(checks)


async def check_inventory(
    store: MigrationStore,
    products: Sequence[ProductRow],
    tolerance: int = 5,
) -> InventoryCheck:
    source_total = sum((parse_quantity(p.current_quantity, default=Decimal("0")) for p in products), Decimal("0"))
    try:
        store_total = Decimal(await store.total_migrated_quantity())
    except Exception as exc:
        logger.warning("reconciliation.inventory_query_failed", error=str(exc))
        return InventoryCheck(source_total=source_total, store_total=None, delta=None, within_tolerance=False)
    delta = store_total - source_total
    return InventoryCheck(
        source_total=source_total,
        store_total=store_total,
        delta=delta,
        within_tolerance=abs(delta) <= tolerance,
    )


async def validate_migration(
    store: MigrationStore,
    customers: Sequence[CustomerRow],
    products: Sequence[ProductRow],
    items: Sequence[ItemRow],
    headers: Sequence[TransactionRow],
    rules: MigrationRules,
    classification: CustomerClassification,
) -> ValidationReport:
    source = recompute_source_counts(products, items, headers, rules, classification)

    plan = [
        ("Customers", EntityType.CUSTOMERS, source.customers, source.customer_note),
        ("Products", EntityType.PRODUCTS, source.products, source.product_note),
        ("Transactions", EntityType.TRANSACTIONS, source.transactions, None),
        ("Vehicles", EntityType.VEHICLES, source.vehicles, None),
        ("Loyalty", EntityType.LOYALTY, source.loyalty, None),
    ]
    checks = []
    for label, entity, source_count, note in plan:
        store_count = await _store_count(store, entity)
        checks.append(grade_check(label, source_count, store_count, note))

    report = ValidationReport(
        checks=tuple(checks),
        top_spenders=await check_top_spenders(store, customers, rules.top_spender_count, rules.spend_tolerance),
        inventory=await check_inventory(store, products, rules.inventory_tolerance),
    )
    logger.info(
        "reconciliation.completed",
        passed=report.passed,
        failed_checks=sum(1 for c in checks if c.status == CheckStatus.FAIL),
        warned_checks=sum(1 for c in checks if c.status == CheckStatus.WARN),
        spend_mismatches=len(report.mismatched_spenders),
        inventory_within_tolerance=report.inventory.within_tolerance,
    )
    return report
