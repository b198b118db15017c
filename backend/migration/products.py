"""
Product Normalizer — Square catalog rows → importable products.

Skip rules run in a fixed order and the first hit wins:
  1. SKU on the skip list (card processing fee line items)
  2. Item name on the skip list ("Custom Amount" placeholders)
  3. Archived in Square

A category with no mapping entry does not skip the product. It is
imported uncategorized and listed in ``ProductCatalog.unmapped_categories``
for the operator to map later.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable, Mapping

import structlog

from migration.rows import ProductRow, parse_int, parse_money
from migration.rules import MigrationRules

logger = structlog.get_logger()

UNCATEGORIZED = "Uncategorized"


@dataclass(frozen=True)
class ProcessedProduct:
    row: ProductRow
    skip: bool
    skip_reason: str | None
    is_loyalty_excluded: bool
    category_label: str
    category_slug: str | None
    vendor_name: str | None
    price: Decimal
    cost: Decimal
    quantity: int


@dataclass(frozen=True)
class ProductCatalog:
    products: tuple[ProcessedProduct, ...]
    vendors: tuple[str, ...]
    category_counts: tuple[tuple[str, int], ...]
    unmapped_categories: tuple[str, ...]

    @property
    def importable(self) -> tuple[ProcessedProduct, ...]:
        return tuple(p for p in self.products if not p.skip)

    @property
    def skipped(self) -> tuple[ProcessedProduct, ...]:
        return tuple(p for p in self.products if p.skip)

    @property
    def loyalty_excluded(self) -> ProcessedProduct | None:
        return next((p for p in self.products if p.is_loyalty_excluded), None)


def skip_reason(row: ProductRow, rules: MigrationRules) -> str | None:
    if row.sku and row.sku in rules.skip_skus:
        return f"SKU {row.sku} is a processing fee item"
    if row.item_name in rules.skip_item_names:
        return f'"{row.item_name}" is a custom amount placeholder'
    if row.archived.upper() == "Y":
        return "Archived item"
    return None


def is_product_importable(row: ProductRow, rules: MigrationRules) -> bool:
    return skip_reason(row, rules) is None


def process_product(row: ProductRow, rules: MigrationRules) -> ProcessedProduct:
    reason = skip_reason(row, rules)
    category = row.categories or row.reporting_category
    return ProcessedProduct(
        row=row,
        skip=reason is not None,
        skip_reason=reason,
        is_loyalty_excluded=bool(row.sku) and row.sku == rules.loyalty_excluded_sku,
        category_label=category,
        category_slug=rules.category_map.get(category),
        vendor_name=row.vendor_name or None,
        price=parse_money(row.price),
        cost=parse_money(row.unit_cost),
        quantity=parse_int(row.current_quantity),
    )


def process_products(rows: Iterable[ProductRow | Mapping[str, str]], rules: MigrationRules) -> ProductCatalog:
    processed = tuple(
        process_product(row if isinstance(row, ProductRow) else ProductRow.from_raw(row), rules) for row in rows
    )
    importable = [p for p in processed if not p.skip]

    vendor_counts = Counter(p.vendor_name for p in importable if p.vendor_name)
    vendors = tuple(name for name, _ in sorted(vendor_counts.items(), key=lambda kv: (-kv[1], kv[0])))

    category_counts = Counter(p.category_label or UNCATEGORIZED for p in importable)
    unmapped = sorted({p.category_label for p in importable if p.category_label and p.category_slug is None})

    catalog = ProductCatalog(
        products=processed,
        vendors=vendors,
        category_counts=tuple(sorted(category_counts.items(), key=lambda kv: (-kv[1], kv[0]))),
        unmapped_categories=tuple(unmapped),
    )
    logger.info(
        "migration.products.processed",
        total=len(processed),
        importable=len(importable),
        skipped=len(processed) - len(importable),
        vendors=len(vendors),
        unmapped_categories=len(unmapped),
        loyalty_excluded_found=catalog.loyalty_excluded is not None,
    )
    return catalog


def build_product_payload(product: ProcessedProduct) -> dict[str, Any]:
    row = product.row
    reorder = parse_int(row.stock_alert_count)
    return {
        "square_item_id": row.token or None,
        "sku": row.sku or None,
        "name": row.item_name,
        "description": row.description or None,
        "category_slug": product.category_slug,
        "vendor_name": product.vendor_name,
        "cost_price": product.cost,
        "retail_price": product.price,
        "quantity_on_hand": product.quantity,
        "reorder_threshold": reorder or None,
        "is_taxable": row.taxable,
        "is_loyalty_eligible": not product.is_loyalty_excluded,
        "gtin": row.gtin or None,
        "is_active": True,
    }
