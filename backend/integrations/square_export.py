"""
Square Export Reader

Square's dashboard exports four CSV files that feed the migration:
  - Customer directory        (required)
  - Item library / catalog    (optional)
  - Item details (line items) (optional)
  - Transactions (payments)   (optional)

Every column is read as text. Square formats currency, quantities and phone
numbers inconsistently, so typed parsing happens later in migration.rows,
never here. Blank cells become "" rather than NaN.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import IO

import pandas as pd
import structlog

from migration import rows as cols

logger = structlog.get_logger()


class ExportFileError(ValueError):
    """Raised when an export cannot be read as CSV."""


class ExportKind(str, Enum):
    CUSTOMERS = "customers"
    PRODUCTS = "products"
    TRANSACTION_ITEMS = "transaction_items"
    TRANSACTIONS = "transactions"


REQUIRED_EXPORTS = frozenset({ExportKind.CUSTOMERS})

# Headers each export is expected to carry. Extra columns are ignored.
EXPECTED_COLUMNS: dict[ExportKind, tuple[str, ...]] = {
    ExportKind.CUSTOMERS: (
        cols.COL_REFERENCE_ID,
        cols.COL_FIRST_NAME,
        cols.COL_LAST_NAME,
        cols.COL_EMAIL,
        cols.COL_PHONE,
        cols.COL_TRANSACTION_COUNT,
        cols.COL_LIFETIME_SPEND,
    ),
    ExportKind.PRODUCTS: (
        cols.COL_TOKEN,
        cols.COL_ITEM_NAME,
        cols.COL_SKU,
        cols.COL_CATEGORIES,
        cols.COL_PRICE,
        cols.COL_ARCHIVED,
        cols.COL_CURRENT_QUANTITY,
    ),
    ExportKind.TRANSACTION_ITEMS: (
        cols.COL_DATE,
        cols.COL_TRANSACTION_ID,
        cols.COL_ITEM,
        cols.COL_QTY,
        cols.COL_PRICE_POINT_NAME,
        cols.COL_SKU,
        cols.COL_NET_SALES,
        cols.COL_CUSTOMER_REFERENCE_ID,
    ),
    ExportKind.TRANSACTIONS: (
        cols.COL_DATE,
        cols.COL_TRANSACTION_ID,
        cols.COL_EVENT_TYPE,
        cols.COL_GROSS_SALES,
        cols.COL_NET_SALES,
        cols.COL_TOTAL_COLLECTED,
        cols.COL_CUSTOMER_REFERENCE_ID,
    ),
}


@dataclass(frozen=True)
class ExportFile:
    kind: ExportKind
    headers: list[str]
    rows: list[dict[str, str]]
    source: str = ""

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def missing_columns(self) -> list[str]:
        present = set(self.headers)
        return [c for c in EXPECTED_COLUMNS[self.kind] if c not in present]


def read_export(kind: ExportKind, path: str | Path | IO[str]) -> ExportFile:
    """Read one Square export into header list + string rows."""
    source = str(path) if isinstance(path, (str, Path)) else getattr(path, "name", "<stream>")
    try:
        df = pd.read_csv(
            path,
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
            encoding_errors="replace",
        )
    except pd.errors.EmptyDataError:
        logger.warning("square_export.empty", kind=kind.value, source=source)
        return ExportFile(kind=kind, headers=[], rows=[], source=source)
    except (OSError, UnicodeDecodeError, pd.errors.ParserError) as exc:
        raise ExportFileError(f"Cannot read {kind.value} export {source}: {exc}") from exc

    df.columns = [str(c).strip().lstrip("\ufeff") for c in df.columns]
    headers = list(df.columns)
    records = df.to_dict(orient="records")

    export = ExportFile(kind=kind, headers=headers, rows=records, source=source)
    missing = export.missing_columns()
    logger.info(
        "square_export.read",
        kind=kind.value,
        source=source,
        rows=export.row_count,
        columns=len(headers),
        missing_columns=missing,
    )
    return export


def read_exports(paths: dict[ExportKind, str | Path | None]) -> dict[ExportKind, ExportFile]:
    """Read every export that was supplied. Missing required exports raise."""
    exports: dict[ExportKind, ExportFile] = {}
    for kind, path in paths.items():
        if path is None:
            continue
        exports[kind] = read_export(kind, path)

    missing = [k.value for k in REQUIRED_EXPORTS if k not in exports or not exports[k].rows]
    if missing:
        raise ExportFileError(f"Required export missing or empty: {', '.join(sorted(missing))}")
    return exports
