#!/usr/bin/env python3
"""Run the Square → store migration from the command line.

Examples:
  python backend/scripts/run_migration.py --customers customers.csv --dry-run
  python backend/scripts/run_migration.py --customers customers.csv --products catalog.csv \\
      --items items.csv --transactions transactions.csv --store sql --create-schema
  python backend/scripts/run_migration.py --customers customers.csv --skip products --skip employees \\
      --skip vehicles --skip transactions --skip loyalty

Stages run in order. A stage that ends in error stops the run; pass
--skip <stage> to move past an optional stage deliberately.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys

# Add backend/ to path when run as a script.
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.config import Settings, get_settings
import db.store  # noqa: F401  registers the SQL store
from integrations.base import MigrationStore, StoreType, get_store
from integrations.square_export import ExportFileError, ExportKind, read_exports
from migration.customers import TIER_DESCRIPTIONS, classify_customers, summarize
from migration.loyalty import calculate_loyalty
from migration.orchestrator import SKIPPABLE_STAGES, MigrationStage, StageResult, StageStatus
from migration.pipeline import MigrationRun, SourceData
from migration.products import process_products
from migration.reconciliation import ValidationReport
from migration.rules import MigrationRules
from migration.transactions import customer_directory, join_transactions
from migration.vehicles import SIZE_CLASS_LABELS, infer_vehicles


def _build_store(kind: str, settings: Settings, create_schema: bool) -> MigrationStore:
    if kind == StoreType.REST_API.value:
        if not settings.store_api_url:
            raise ValueError("STORE_API_URL is required for --store api")
        return get_store(
            StoreType.REST_API,
            {
                "base_url": settings.store_api_url,
                "api_key": settings.store_api_key,
                "timeout": settings.store_api_timeout,
            },
        )
    return get_store(
        StoreType.SQL,
        {
            "database_url": settings.database_url,
            "echo": settings.database_echo,
            "create_schema": create_schema,
        },
    )


def _print_result(result: StageResult) -> None:
    print(f"[{result.stage.step}/8] {result.stage.label}: {result.status.value} ({result.count}) {result.message}")
    for error in result.errors:
        print(f"    - {error}")


def _print_report(report: ValidationReport) -> None:
    print("")
    print("Validation")
    for check in report.checks:
        store = "n/a" if check.store_count is None else str(check.store_count)
        note = f"  {check.note}" if check.note else ""
        print(f"  {check.entity_label:<13} source={check.source_count:<6} store={store:<6} {check.status.value}{note}")
    print("Top spenders")
    for spender in report.top_spenders:
        store = "n/a" if spender.store_spend is None else f"${spender.store_spend}"
        flag = "ok" if spender.match else "MISMATCH"
        print(f"  {spender.name or spender.reference_id:<30} ${spender.source_spend} vs {store} {flag}")
    inventory = report.inventory
    store_total = "n/a" if inventory.store_total is None else str(inventory.store_total)
    print(
        f"Inventory: source={inventory.source_total} store={store_total} "
        f"{'within tolerance' if inventory.within_tolerance else 'OUT OF TOLERANCE'}"
    )


def _dry_run(source: SourceData, rules: MigrationRules, include_tier3: bool) -> int:
    classification = summarize(classify_customers(source.customers), include_tier3)
    print(f"Customers: {len(classification.customers)} rows")
    for tier, count in classification.tier_counts.items():
        print(f"  Tier {int(tier)} ({TIER_DESCRIPTIONS[tier]}): {count}")
    print(f"  Invalid phones: {len(classification.invalid_phones)}")
    print(f"  Duplicate groups: {len(classification.dedup.groups)}")
    print(f"  Importable: {classification.importable_count}")

    if source.products:
        catalog = process_products(source.products, rules)
        print(f"Products: {len(catalog.importable)} importable, {len(catalog.skipped)} skipped")
        print(f"  Vendors: {len(catalog.vendors)}")
        if catalog.unmapped_categories:
            print(f"  Unmapped categories: {', '.join(catalog.unmapped_categories)}")

    if source.transactions:
        joined = join_transactions(source.transactions, source.items)
        print(f"Transactions: {joined.count} payments, {joined.orphaned_items} orphaned items")
        print(f"  Total collected: ${joined.total_collected}")

    if source.items:
        directory = customer_directory(source.transactions) if source.transactions else None
        inference = infer_vehicles(source.items, rules.size_class_map, directory)
        print(f"Vehicles: {inference.count} for {inference.unique_customers} customers")
        for size, count in inference.size_counts.items():
            print(f"  {SIZE_CLASS_LABELS[size]}: {count}")
        ledger = calculate_loyalty(source.items, source.transactions, rules.loyalty_excluded_sku)
        print(f"Loyalty: {ledger.total_points} points for {ledger.count} customers")
    return 0


async def _migrate(run: MigrationRun, include_tier3: bool, skip: set[MigrationStage]) -> int:
    orchestrator = run.orchestrator
    result = await run.run_upload()
    _print_result(result)
    if result.status != StageStatus.COMPLETED:
        return 1

    runners = {
        MigrationStage.CUSTOMERS: lambda: run.run_customers(include_tier3),
        MigrationStage.PRODUCTS: run.run_products,
        MigrationStage.EMPLOYEES: run.run_employees,
        MigrationStage.VEHICLES: run.run_vehicles,
        MigrationStage.TRANSACTIONS: run.run_transactions,
        MigrationStage.LOYALTY: run.run_loyalty,
        MigrationStage.VALIDATION: run.run_validation,
    }
    for stage, runner in runners.items():
        orchestrator.advance()
        if stage in skip:
            _print_result(orchestrator.skip(stage))
            continue
        result = await runner()
        _print_result(result)
        if stage == MigrationStage.VALIDATION:
            break
        if result.status == StageStatus.ERROR:
            hint = f" or pass --skip {stage.value}" if stage in SKIPPABLE_STAGES else ""
            print(f"Stopped at {stage.label}. Fix the errors and re-run{hint}.")
            return 1

    if run.report is not None:
        _print_report(run.report)
    return 0 if run.report is not None and run.report.passed else 1


def main() -> int:
    parser = argparse.ArgumentParser(description="Migrate Square exports into the store")
    parser.add_argument("--customers", required=True, help="Square customer directory export (CSV)")
    parser.add_argument("--products", default=None, help="Square item library export (CSV)")
    parser.add_argument("--items", default=None, help="Square item details export (CSV)")
    parser.add_argument("--transactions", default=None, help="Square transactions export (CSV)")
    parser.add_argument(
        "--include-tier3",
        action="store_true",
        default=None,
        help="Also import email-only customers (Tier 3)",
    )
    parser.add_argument("--store", choices=[t.value for t in StoreType], default=StoreType.SQL.value)
    parser.add_argument("--create-schema", action="store_true", help="Create missing tables (SQL store)")
    parser.add_argument(
        "--skip",
        action="append",
        default=[],
        choices=sorted(s.value for s in SKIPPABLE_STAGES),
        help="Skip an optional stage (repeatable)",
    )
    parser.add_argument("--dry-run", action="store_true", help="Classify and report without writing")
    parser.add_argument("--json", action="store_true", help="Print the final stage snapshot as JSON")
    args = parser.parse_args()

    try:
        settings = get_settings()
        exports = read_exports(
            {
                ExportKind.CUSTOMERS: args.customers,
                ExportKind.PRODUCTS: args.products,
                ExportKind.TRANSACTION_ITEMS: args.items,
                ExportKind.TRANSACTIONS: args.transactions,
            }
        )
    except (ExportFileError, ValueError) as exc:
        print(f"Migration setup failed: {exc}")
        return 2

    print(f"{settings.app_name} {settings.app_version}")
    for export in exports.values():
        missing = export.missing_columns()
        if missing:
            print(f"Warning: {export.kind.value} export is missing columns: {', '.join(missing)}")

    rules = MigrationRules.from_settings(settings)
    source = SourceData.from_exports(exports)
    include_tier3 = settings.include_tier3 if args.include_tier3 is None else args.include_tier3

    if args.dry_run:
        return _dry_run(source, rules, include_tier3)

    try:
        store = _build_store(args.store, settings, args.create_schema)
    except ValueError as exc:
        print(f"Migration setup failed: {exc}")
        return 2

    run = MigrationRun(source, store, rules)

    async def _go() -> int:
        try:
            status = await store.get_status()
            if not status["connected"]:
                print(f"Migration setup failed: {status['store_type']} store is unreachable")
                return 2
            return await _migrate(run, include_tier3, {MigrationStage(s) for s in args.skip})
        finally:
            await store.close()

    exit_code = asyncio.run(_go())
    if args.json:
        print(json.dumps(run.orchestrator.snapshot()))
    return exit_code


if __name__ == "__main__":
    raise SystemExit(main())
