"""
Loyalty Calculator.

One point per whole dollar of eligible net sales, floored. Sales of the
loyalty-excluded SKU (bottled water) are tracked separately and earn nothing.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_FLOOR, Decimal
from typing import Any, Iterable, Mapping

import structlog

from migration.rows import ItemRow, TransactionRow, parse_money
from migration.transactions import customer_directory, resolve_customer

logger = structlog.get_logger()

MIGRATION_LEDGER_ACTION = "welcome_bonus"


@dataclass(frozen=True)
class LoyaltyEntry:
    customer_key: str
    customer_name: str
    eligible_spend: Decimal
    excluded_spend: Decimal
    points: int
    transaction_count: int


@dataclass(frozen=True)
class LoyaltyLedger:
    entries: tuple[LoyaltyEntry, ...]
    total_points: int
    total_eligible_spend: Decimal
    total_excluded_spend: Decimal
    anonymous_items: int

    @property
    def count(self) -> int:
        return len(self.entries)


def points_for(eligible_spend: Decimal) -> int:
    if eligible_spend <= 0:
        return 0
    return int(eligible_spend.to_integral_value(rounding=ROUND_FLOOR))


@dataclass
class _Tally:
    name: str
    eligible: Decimal
    excluded: Decimal
    transactions: set[str]


def calculate_loyalty(
    items: Iterable[ItemRow | Mapping[str, str]],
    headers: Iterable[TransactionRow | Mapping[str, str]],
    excluded_sku: str,
) -> LoyaltyLedger:
    directory = customer_directory(headers)
    tallies: dict[str, _Tally] = {}
    anonymous = 0

    for raw in items:
        item = raw if isinstance(raw, ItemRow) else ItemRow.from_raw(raw)
        ref = resolve_customer(item, directory)
        if ref is None:
            anonymous += 1
            continue

        tally = tallies.setdefault(ref.reference_id, _Tally(ref.name, Decimal("0.00"), Decimal("0.00"), set()))
        if not tally.name and ref.name:
            tally.name = ref.name

        amount = parse_money(item.net_sales)
        if excluded_sku and item.sku == excluded_sku:
            tally.excluded += amount
        else:
            tally.eligible += amount
            if item.transaction_id:
                tally.transactions.add(item.transaction_id)

    entries = []
    for key, tally in tallies.items():
        points = points_for(tally.eligible)
        if points == 0:
            continue
        entries.append(
            LoyaltyEntry(
                customer_key=key,
                customer_name=tally.name,
                eligible_spend=tally.eligible,
                excluded_spend=tally.excluded,
                points=points,
                transaction_count=len(tally.transactions),
            )
        )
    entries.sort(key=lambda e: (-e.points, e.customer_key))

    ledger = LoyaltyLedger(
        entries=tuple(entries),
        total_points=sum(e.points for e in entries),
        total_eligible_spend=sum((e.eligible_spend for e in entries), Decimal("0.00")),
        total_excluded_spend=sum((e.excluded_spend for e in entries), Decimal("0.00")),
        anonymous_items=anonymous,
    )
    logger.info(
        "migration.loyalty.calculated",
        customers=ledger.count,
        total_points=ledger.total_points,
        anonymous_items=anonymous,
    )
    return ledger


def build_loyalty_payload(entry: LoyaltyEntry) -> dict[str, Any]:
    return {
        "customer_reference_id": entry.customer_key,
        "points": entry.points,
        "eligible_spend": entry.eligible_spend,
        "excluded_spend": entry.excluded_spend,
        "action": MIGRATION_LEDGER_ACTION,
        "description": (
            f"Migration welcome bonus: {entry.points} points from "
            f"${entry.eligible_spend:.2f} eligible spend (water purchases excluded)"
        ),
    }
