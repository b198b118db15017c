"""
Stage runners.

Each runner computes its stage from the immutable source rows using the pure
modules, writes the result through the store in fixed-size batches, and
records a StageResult on the orchestrator. Runners never move the wizard;
advancing or skipping is left to the operator.

Batches go out strictly one after another. A failed batch is recorded as
"Batch N: <error>" and the loop moves on to the next one.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

import structlog

from integrations.base import EntityType, MigrationStore, WriteStatus
from integrations.square_export import ExportFile, ExportKind
from migration.customers import (
    CustomerClassification,
    build_customer_payload,
    classify_customers,
    summarize,
)
from migration.employees import extract_employees
from migration.loyalty import build_loyalty_payload, calculate_loyalty
from migration.orchestrator import MigrationOrchestrator, MigrationStage, StageResult, StageStatus
from migration.products import build_product_payload, process_products
from migration.reconciliation import CheckStatus, ValidationReport, validate_migration
from migration.rows import CustomerRow, ItemRow, ProductRow, TransactionRow
from migration.rules import MigrationRules
from migration.transactions import build_transaction_payload, customer_directory, join_transactions
from migration.vehicles import build_vehicle_payload, infer_vehicles

logger = structlog.get_logger()

SKIP_HINT = "Skip this step or upload the export to continue"


@dataclass(frozen=True)
class SourceData:
    """The parsed exports, fixed for the whole run."""

    customers: tuple[CustomerRow, ...] = ()
    products: tuple[ProductRow, ...] = ()
    items: tuple[ItemRow, ...] = ()
    transactions: tuple[TransactionRow, ...] = ()

    @classmethod
    def from_exports(cls, exports: Mapping[ExportKind, ExportFile]) -> "SourceData":
        def rows(kind: ExportKind) -> list[dict[str, str]]:
            export = exports.get(kind)
            return export.rows if export is not None else []

        return cls(
            customers=tuple(CustomerRow.from_raw(r) for r in rows(ExportKind.CUSTOMERS)),
            products=tuple(ProductRow.from_raw(r) for r in rows(ExportKind.PRODUCTS)),
            items=tuple(ItemRow.from_raw(r) for r in rows(ExportKind.TRANSACTION_ITEMS)),
            transactions=tuple(TransactionRow.from_raw(r) for r in rows(ExportKind.TRANSACTIONS)),
        )


@dataclass
class BatchOutcome:
    written: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


async def write_in_batches(
    store: MigrationStore,
    entity: EntityType,
    records: Sequence[dict[str, Any]],
    batch_size: int,
) -> BatchOutcome:
    if batch_size <= 0:
        raise ValueError("batch_size must be positive")

    outcome = BatchOutcome()
    log = logger.bind(entity=entity.value, batch_size=batch_size)
    for number, start in enumerate(range(0, len(records), batch_size), start=1):
        batch = list(records[start : start + batch_size])
        try:
            result = await store.write_batch(entity, batch)
        except Exception as exc:
            log.warning("migration.batch.failed", batch=number, error=str(exc))
            outcome.errors.append(f"Batch {number}: {exc}")
            continue

        outcome.written += result.records_written
        if result.status in (WriteStatus.FAILED, WriteStatus.PARTIAL):
            detail = "; ".join(result.errors) or f"{result.records_failed} records failed"
            log.warning("migration.batch.failed", batch=number, error=detail, written=result.records_written)
            outcome.errors.append(f"Batch {number}: {detail}")
        else:
            log.debug("migration.batch.written", batch=number, written=result.records_written)
    return outcome


def _status(outcome: BatchOutcome) -> StageStatus:
    return StageStatus.COMPLETED if outcome.ok else StageStatus.ERROR


class MigrationRun:
    """Runs the migration stages against one store for one set of exports."""

    def __init__(
        self,
        source: SourceData,
        store: MigrationStore,
        rules: MigrationRules | None = None,
        orchestrator: MigrationOrchestrator | None = None,
    ):
        self.source = source
        self.store = store
        self.rules = rules or MigrationRules()
        self.orchestrator = orchestrator or MigrationOrchestrator()
        self.include_tier3 = False
        self.report: ValidationReport | None = None

    def _finish(self, result: StageResult) -> StageResult:
        return self.orchestrator.record(result)

    def _error(self, stage: MigrationStage, message: str) -> StageResult:
        return self._finish(StageResult(stage=stage, status=StageStatus.ERROR, message=message))

    def classify(self, include_tier3: bool | None = None) -> CustomerClassification:
        choice = self.include_tier3 if include_tier3 is None else include_tier3
        return summarize(classify_customers(self.source.customers), choice)

    # ── Stages ────────────────────────────────────────────────────────

    async def run_upload(self) -> StageResult:
        stage = MigrationStage.UPLOAD
        if not self.source.customers:
            return self._error(stage, "Customers export is required")
        counts = {
            "customers": len(self.source.customers),
            "products": len(self.source.products),
            "transaction items": len(self.source.items),
            "transactions": len(self.source.transactions),
        }
        message = ", ".join(f"{n} {label}" for label, n in counts.items() if n)
        return self._finish(
            StageResult(stage=stage, status=StageStatus.COMPLETED, count=sum(counts.values()), message=message)
        )

    async def run_customers(self, include_tier3: bool = False) -> StageResult:
        stage = MigrationStage.CUSTOMERS
        if not self.source.customers:
            return self._error(stage, "No CSV uploaded")
        self.orchestrator.start(stage)
        self.include_tier3 = include_tier3

        classification = self.classify(include_tier3)
        records = [build_customer_payload(c) for c in classification.importable]
        outcome = await write_in_batches(self.store, EntityType.CUSTOMERS, records, self.rules.migration_batch_size)
        return self._finish(
            StageResult(
                stage=stage,
                status=_status(outcome),
                count=outcome.written,
                message=f"{outcome.written} of {len(records)} customers imported",
                errors=tuple(outcome.errors),
            )
        )

    async def run_products(self) -> StageResult:
        stage = MigrationStage.PRODUCTS
        if not self.source.products:
            return self._error(stage, f"No CSV uploaded. {SKIP_HINT}")
        self.orchestrator.start(stage)

        catalog = process_products(self.source.products, self.rules)
        errors: list[str] = []
        try:
            await self.store.ensure_vendors(catalog.vendors)
        except Exception as exc:
            logger.warning("migration.vendors.failed", error=str(exc))
            errors.append(f"Vendors: {exc}")

        records = [build_product_payload(p) for p in catalog.importable]
        outcome = await write_in_batches(self.store, EntityType.PRODUCTS, records, self.rules.migration_batch_size)
        errors.extend(outcome.errors)
        message = f"{outcome.written} of {len(records)} products imported, {len(catalog.skipped)} skipped"
        if catalog.unmapped_categories:
            message += f", unmapped categories: {', '.join(catalog.unmapped_categories)}"
        return self._finish(
            StageResult(
                stage=stage,
                status=StageStatus.ERROR if errors else StageStatus.COMPLETED,
                count=outcome.written,
                message=message,
                errors=tuple(errors),
            )
        )

    async def run_employees(self) -> StageResult:
        stage = MigrationStage.EMPLOYEES
        if not self.source.items and not self.source.transactions:
            return self._error(stage, f"No transaction data. {SKIP_HINT}")
        sightings = extract_employees(self.source.items, self.source.transactions)
        return self._finish(
            StageResult(
                stage=stage,
                status=StageStatus.COMPLETED,
                count=len(sightings),
                message=f"{len(sightings)} staff names found; create their accounts in the store",
            )
        )

    async def run_vehicles(self) -> StageResult:
        stage = MigrationStage.VEHICLES
        if not self.source.items:
            return self._error(stage, f"No transaction items CSV. {SKIP_HINT}")
        self.orchestrator.start(stage)

        directory = customer_directory(self.source.transactions) if self.source.transactions else None
        inference = infer_vehicles(self.source.items, self.rules.size_class_map, directory)
        records = [build_vehicle_payload(v) for v in inference.vehicles]
        outcome = await write_in_batches(self.store, EntityType.VEHICLES, records, self.rules.migration_batch_size)
        return self._finish(
            StageResult(
                stage=stage,
                status=_status(outcome),
                count=outcome.written,
                message=f"{outcome.written} vehicles for {inference.unique_customers} customers",
                errors=tuple(outcome.errors),
            )
        )

    async def run_transactions(self) -> StageResult:
        stage = MigrationStage.TRANSACTIONS
        if not self.source.transactions:
            return self._error(stage, f"No transaction data. {SKIP_HINT}")
        self.orchestrator.start(stage)

        joined = join_transactions(self.source.transactions, self.source.items)
        records = [build_transaction_payload(t) for t in joined.joined]
        outcome = await write_in_batches(
            self.store, EntityType.TRANSACTIONS, records, self.rules.transaction_batch_size
        )
        message = f"{outcome.written} of {len(records)} transactions imported"
        if joined.orphaned_items:
            message += f", {joined.orphaned_items} orphaned items"
        return self._finish(
            StageResult(
                stage=stage,
                status=_status(outcome),
                count=outcome.written,
                message=message,
                errors=tuple(outcome.errors),
            )
        )

    async def run_loyalty(self) -> StageResult:
        stage = MigrationStage.LOYALTY
        if not self.source.items:
            return self._error(stage, f"No transaction items CSV. {SKIP_HINT}")
        self.orchestrator.start(stage)

        ledger = calculate_loyalty(self.source.items, self.source.transactions, self.rules.loyalty_excluded_sku)
        records = [build_loyalty_payload(e) for e in ledger.entries]
        outcome = await write_in_batches(self.store, EntityType.LOYALTY, records, self.rules.migration_batch_size)
        return self._finish(
            StageResult(
                stage=stage,
                status=_status(outcome),
                count=outcome.written,
                message=f"{ledger.total_points} points across {outcome.written} customers",
                errors=tuple(outcome.errors),
            )
        )

    async def run_validation(self) -> StageResult:
        stage = MigrationStage.VALIDATION
        self.orchestrator.start(stage)
        report = await validate_migration(
            self.store,
            self.source.customers,
            self.source.products,
            self.source.items,
            self.source.transactions,
            self.rules,
            self.classify(),
        )
        self.report = report
        failed = [c.entity_label for c in report.checks if c.status == CheckStatus.FAIL]
        if report.passed:
            return self._finish(
                StageResult(
                    stage=stage,
                    status=StageStatus.COMPLETED,
                    count=len(report.checks),
                    message="All validation checks passed",
                )
            )
        return self._finish(
            StageResult(
                stage=stage,
                status=StageStatus.ERROR,
                count=len(report.checks),
                message=f"{len(failed)} validation checks failed",
                errors=tuple(f"{label}: store query failed" for label in failed),
            )
        )
