"""
Transaction Joiner — payment headers + line items → joined transactions.

Square exports payments and their line items as two separate files keyed by
"Transaction ID". Only headers whose event type is "Payment" are retained;
refunds and adjustments are dropped on purpose. Monetary fields are parsed
one by one from the header and never derived from each other: the export's
own columns can disagree, and this stage reports them as-is.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from decimal import Decimal
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Sequence

import structlog

from migration.rows import CENTS, ItemRow, TransactionRow, parse_money, parse_quantity

logger = structlog.get_logger()

PAYMENT_EVENT = "Payment"

_STATUS_MAP = {
    "complete": "completed",
    "completed": "completed",
    "voided": "voided",
    "refunded": "refunded",
}


@dataclass(frozen=True)
class CustomerRef:
    reference_id: str
    name: str


@dataclass(frozen=True)
class JoinedTransaction:
    header: TransactionRow
    items: tuple[ItemRow, ...]
    gross_sales: Decimal
    net_sales: Decimal
    tax: Decimal
    tip: Decimal
    total_collected: Decimal
    customer_key: str | None
    staff_name: str | None
    date: str


@dataclass(frozen=True)
class JoinResult:
    joined: tuple[JoinedTransaction, ...]
    orphaned_items: int
    duplicate_headers: int
    total_gross: Decimal
    total_net: Decimal
    total_tax: Decimal
    total_tips: Decimal
    total_collected: Decimal
    with_customer: int
    with_staff: int
    with_items: int
    date_range: tuple[str, str] | None
    category_breakdown: tuple[tuple[str, int], ...]

    @property
    def count(self) -> int:
        return len(self.joined)


# ── Coercion ───────────────────────────────────────────────────────────────


def _as_headers(headers: Iterable[TransactionRow | Mapping[str, str]]) -> list[TransactionRow]:
    return [h if isinstance(h, TransactionRow) else TransactionRow.from_raw(h) for h in headers]


def _as_items(items: Iterable[ItemRow | Mapping[str, str]]) -> list[ItemRow]:
    return [i if isinstance(i, ItemRow) else ItemRow.from_raw(i) for i in items]


# ── Grouping & identity ────────────────────────────────────────────────────


def group_items(items: Iterable[ItemRow]) -> Mapping[str, tuple[ItemRow, ...]]:
    """Transaction ID → its item rows in source order. Blank IDs are not grouped."""
    grouped: dict[str, list[ItemRow]] = {}
    for item in items:
        if item.transaction_id:
            grouped.setdefault(item.transaction_id, []).append(item)
    return MappingProxyType({tid: tuple(rows) for tid, rows in grouped.items()})


def is_completed_payment(header: TransactionRow) -> bool:
    return bool(header.transaction_id) and header.event_type == PAYMENT_EVENT


def customer_directory(headers: Iterable[TransactionRow | Mapping[str, str]]) -> Mapping[str, CustomerRef]:
    """Transaction ID → customer identity as recorded on the payment header."""
    directory: dict[str, CustomerRef] = {}
    for header in _as_headers(headers):
        if header.transaction_id and header.customer_reference_id and header.transaction_id not in directory:
            directory[header.transaction_id] = CustomerRef(
                reference_id=header.customer_reference_id,
                name=header.customer_name,
            )
    return MappingProxyType(directory)


def resolve_customer(item: ItemRow, directory: Mapping[str, CustomerRef] | None = None) -> CustomerRef | None:
    """Item-level reference ID first, then the header's via the transaction ID."""
    if item.customer_reference_id:
        return CustomerRef(reference_id=item.customer_reference_id, name=item.customer_name)
    if directory and item.transaction_id:
        ref = directory.get(item.transaction_id)
        if ref is not None:
            return CustomerRef(reference_id=ref.reference_id, name=item.customer_name or ref.name)
    return None


# ── Join ───────────────────────────────────────────────────────────────────


def _customer_key(header: TransactionRow, items: Sequence[ItemRow]) -> str | None:
    if header.customer_reference_id:
        return header.customer_reference_id
    return next((i.customer_reference_id for i in items if i.customer_reference_id), None)


def join_transactions(
    headers: Iterable[TransactionRow | Mapping[str, str]],
    items: Iterable[ItemRow | Mapping[str, str]],
) -> JoinResult:
    typed_items = _as_items(items)
    grouped = group_items(typed_items)

    joined: list[tuple[int, JoinedTransaction]] = []
    seen: set[str] = set()
    duplicates = 0
    for position, header in enumerate(_as_headers(headers)):
        if not is_completed_payment(header):
            continue
        if header.transaction_id in seen:
            duplicates += 1
            continue
        seen.add(header.transaction_id)

        matched = grouped.get(header.transaction_id, ())
        joined.append(
            (
                position,
                JoinedTransaction(
                    header=header,
                    items=matched,
                    gross_sales=parse_money(header.gross_sales),
                    net_sales=parse_money(header.net_sales),
                    tax=parse_money(header.tax),
                    tip=parse_money(header.tip),
                    total_collected=parse_money(header.total_collected),
                    customer_key=_customer_key(header, matched),
                    staff_name=header.staff_name or None,
                    date=header.date,
                ),
            )
        )

    # Newest first; equal dates keep source order.
    joined.sort(key=lambda pair: pair[0])
    joined.sort(key=lambda pair: pair[1].date, reverse=True)
    ordered = tuple(txn for _, txn in joined)

    orphaned = sum(1 for item in typed_items if item.transaction_id not in seen)

    categories = Counter(item.category or "Uncategorized" for txn in ordered for item in txn.items)
    dates = sorted(txn.date for txn in ordered if txn.date)

    result = JoinResult(
        joined=ordered,
        orphaned_items=orphaned,
        duplicate_headers=duplicates,
        total_gross=sum((t.gross_sales for t in ordered), Decimal("0.00")),
        total_net=sum((t.net_sales for t in ordered), Decimal("0.00")),
        total_tax=sum((t.tax for t in ordered), Decimal("0.00")),
        total_tips=sum((t.tip for t in ordered), Decimal("0.00")),
        total_collected=sum((t.total_collected for t in ordered), Decimal("0.00")),
        with_customer=sum(1 for t in ordered if t.customer_key),
        with_staff=sum(1 for t in ordered if t.staff_name),
        with_items=sum(1 for t in ordered if t.items),
        date_range=(dates[0], dates[-1]) if dates else None,
        category_breakdown=tuple(sorted(categories.items(), key=lambda kv: (-kv[1], kv[0]))),
    )
    logger.info(
        "migration.transactions.joined",
        joined=result.count,
        orphaned_items=orphaned,
        duplicate_headers=duplicates,
        with_customer=result.with_customer,
    )
    return result


# ── Payloads ───────────────────────────────────────────────────────────────


def payment_method(header: TransactionRow) -> str | None:
    if parse_money(header.cash) > 0:
        return "cash"
    if parse_money(header.card) > 0:
        return "card"
    return None


def map_status(raw_status: str) -> str:
    return _STATUS_MAP.get(raw_status.strip().lower(), "completed")


def build_item_payload(item: ItemRow) -> dict[str, Any]:
    return {
        "item_name": item.item or "Unknown",
        "category": item.category or None,
        "sku": item.sku or None,
        "quantity": parse_quantity(item.qty),
        "gross_sales": parse_money(item.gross_sales),
        "discount": parse_money(item.discounts),
        "net_sales": parse_money(item.net_sales),
        "tax": parse_money(item.tax),
        "price_point_name": item.price_point_name or None,
        "itemization_type": item.itemization_type or None,
    }


def build_transaction_payload(joined: JoinedTransaction) -> dict[str, Any]:
    header = joined.header
    return {
        "square_transaction_id": header.transaction_id,
        "transaction_date": joined.date or None,
        "transaction_time": header.time or None,
        "customer_reference_id": joined.customer_key,
        "staff_name": joined.staff_name,
        "status": map_status(header.status),
        "payment_method": payment_method(header),
        "gross_sales": joined.gross_sales,
        "discounts": parse_money(header.discounts),
        "net_sales": joined.net_sales,
        "tax": joined.tax,
        "tip": joined.tip,
        "total_collected": joined.total_collected,
        "fees": parse_money(header.fees),
        "card_brand": header.card_brand or None,
        "card_last_four": header.pan_suffix or None,
        "payment_amount": (joined.total_collected - joined.tip).quantize(CENTS),
        "items": [build_item_payload(item) for item in joined.items],
    }
