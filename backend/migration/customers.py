"""
Customer Classifier & Deduplicator.

Every customer row lands in exactly one tier:

    Tier 1 — valid phone, visited at least once   (active, reachable)
    Tier 2 — valid phone, never visited            (prospect, reachable)
    Tier 3 — no usable phone, has an email         (email only)
    Tier 4 — neither                               (unreachable, never imported)

Duplicates are resolved on normalized phone only. Two rows sharing an email
are NOT duplicates here; email-based matching is a known gap of the source
data, not something this module papers over.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal
from enum import IntEnum
from typing import Any, Iterable, Mapping, Sequence

import structlog

from migration.rows import CustomerRow, normalize_phone, parse_int, parse_money

logger = structlog.get_logger()

IMPORT_SOURCE_TAG = "source:square-import"


class CustomerTier(IntEnum):
    ACTIVE_WITH_PHONE = 1
    PROSPECT_WITH_PHONE = 2
    EMAIL_ONLY = 3
    UNREACHABLE = 4


TIER_DESCRIPTIONS = {
    CustomerTier.ACTIVE_WITH_PHONE: "Active with phone",
    CustomerTier.PROSPECT_WITH_PHONE: "Prospect with phone",
    CustomerTier.EMAIL_ONLY: "Email only",
    CustomerTier.UNREACHABLE: "No contact (excluded)",
}


@dataclass(frozen=True)
class ClassifiedCustomer:
    row: CustomerRow
    row_index: int
    tier: CustomerTier
    normalized_phone: str | None
    phone_valid: bool
    original_phone: str
    visit_count: int
    lifetime_spend: Decimal

    @property
    def has_invalid_phone(self) -> bool:
        return bool(self.original_phone.strip()) and not self.phone_valid


@dataclass(frozen=True)
class DuplicateGroup:
    phone: str
    kept: ClassifiedCustomer
    superseded: tuple[ClassifiedCustomer, ...]


@dataclass(frozen=True)
class DedupResult:
    kept: tuple[ClassifiedCustomer, ...]
    groups: tuple[DuplicateGroup, ...]

    @property
    def superseded(self) -> tuple[ClassifiedCustomer, ...]:
        return tuple(c for g in self.groups for c in g.superseded)

    @property
    def superseded_indexes(self) -> frozenset[int]:
        return frozenset(c.row_index for c in self.superseded)


@dataclass(frozen=True)
class CustomerClassification:
    customers: tuple[ClassifiedCustomer, ...]
    tier_counts: dict[CustomerTier, int]
    invalid_phones: tuple[ClassifiedCustomer, ...]
    missing_phones: tuple[ClassifiedCustomer, ...]
    with_company: tuple[ClassifiedCustomer, ...]
    dedup: DedupResult
    include_tier3: bool
    importable: tuple[ClassifiedCustomer, ...]

    @property
    def importable_count(self) -> int:
        return len(self.importable)

    @property
    def excluded_count(self) -> int:
        return len(self.customers) - self.importable_count


def classify_tier(*, has_phone: bool, has_email: bool, visit_count: int) -> CustomerTier:
    if has_phone and visit_count > 0:
        return CustomerTier.ACTIVE_WITH_PHONE
    if has_phone:
        return CustomerTier.PROSPECT_WITH_PHONE
    if has_email:
        return CustomerTier.EMAIL_ONLY
    return CustomerTier.UNREACHABLE


def classify_customer(row: CustomerRow, row_index: int) -> ClassifiedCustomer:
    phone = normalize_phone(row.phone)
    visits = max(0, parse_int(row.transaction_count))
    spend = max(Decimal("0.00"), parse_money(row.lifetime_spend))
    tier = classify_tier(has_phone=phone.valid, has_email=bool(row.email), visit_count=visits)
    return ClassifiedCustomer(
        row=row,
        row_index=row_index,
        tier=tier,
        normalized_phone=phone.normalized,
        phone_valid=phone.valid,
        original_phone=phone.original,
        visit_count=visits,
        lifetime_spend=spend,
    )


def classify_customers(rows: Iterable[CustomerRow | Mapping[str, str]]) -> list[ClassifiedCustomer]:
    """Classify every row; output order and length match the input."""
    classified = []
    for index, row in enumerate(rows):
        typed = row if isinstance(row, CustomerRow) else CustomerRow.from_raw(row)
        classified.append(classify_customer(typed, index))
    return classified


def deduplicate(customers: Sequence[ClassifiedCustomer]) -> DedupResult:
    """
    Collapse customers sharing a normalized phone.

    Winner: highest visit_count; ties go to the earliest source row.
    Customers without a phone are passed through untouched.
    """
    by_phone: dict[str, list[ClassifiedCustomer]] = defaultdict(list)
    for customer in customers:
        if customer.normalized_phone:
            by_phone[customer.normalized_phone].append(customer)

    groups: list[DuplicateGroup] = []
    superseded: set[int] = set()
    for phone, members in by_phone.items():
        if len(members) < 2:
            continue
        kept = min(members, key=lambda c: (-c.visit_count, c.row_index))
        losers = tuple(sorted((c for c in members if c is not kept), key=lambda c: c.row_index))
        superseded.update(c.row_index for c in losers)
        groups.append(DuplicateGroup(phone=phone, kept=kept, superseded=losers))

    kept_customers = tuple(c for c in customers if c.row_index not in superseded)
    groups.sort(key=lambda g: g.kept.row_index)
    return DedupResult(kept=kept_customers, groups=tuple(groups))


def is_tier_included(tier: CustomerTier, include_tier3: bool) -> bool:
    if tier == CustomerTier.UNREACHABLE:
        return False
    if tier == CustomerTier.EMAIL_ONLY:
        return include_tier3
    return True


def select_importable(
    customers: Sequence[ClassifiedCustomer],
    include_tier3: bool,
    dedup: DedupResult | None = None,
) -> list[ClassifiedCustomer]:
    """(Tier 1 ∪ Tier 2 ∪ optionally Tier 3) minus superseded duplicates, in source order."""
    dedup = dedup or deduplicate(customers)
    superseded = dedup.superseded_indexes
    return [
        c
        for c in customers
        if is_tier_included(c.tier, include_tier3) and c.row_index not in superseded
    ]


def summarize(customers: Sequence[ClassifiedCustomer], include_tier3: bool) -> CustomerClassification:
    tier_counts = {tier: 0 for tier in CustomerTier}
    for customer in customers:
        tier_counts[customer.tier] += 1

    dedup = deduplicate(customers)
    importable = select_importable(customers, include_tier3, dedup)
    summary = CustomerClassification(
        customers=tuple(customers),
        tier_counts=tier_counts,
        invalid_phones=tuple(c for c in customers if c.has_invalid_phone),
        missing_phones=tuple(c for c in customers if not c.original_phone.strip()),
        with_company=tuple(c for c in customers if c.row.company),
        dedup=dedup,
        include_tier3=include_tier3,
        importable=tuple(importable),
    )
    logger.info(
        "migration.customers.classified",
        total=len(customers),
        tier_1=tier_counts[CustomerTier.ACTIVE_WITH_PHONE],
        tier_2=tier_counts[CustomerTier.PROSPECT_WITH_PHONE],
        tier_3=tier_counts[CustomerTier.EMAIL_ONLY],
        tier_4=tier_counts[CustomerTier.UNREACHABLE],
        duplicate_groups=len(dedup.groups),
        invalid_phones=len(summary.invalid_phones),
        importable=summary.importable_count,
    )
    return summary


def build_customer_payload(customer: ClassifiedCustomer) -> dict[str, Any]:
    """Map a classified customer to the store's customer record."""
    row = customer.row
    tags = [f"tier-{int(customer.tier)}", IMPORT_SOURCE_TAG]
    if row.company:
        tags.append(f"company:{row.company}")

    return {
        "square_reference_id": row.reference_id or None,
        "square_customer_id": row.square_customer_id or None,
        "first_name": row.first_name,
        "last_name": row.last_name,
        "phone": customer.normalized_phone,
        "email": row.email or None,
        "birthday": row.birthday or None,
        "address_line_1": row.street_1 or None,
        "address_line_2": row.street_2 or None,
        "city": row.city or None,
        "state": row.state or None,
        "zip": row.postal_code or None,
        "notes": row.memo or None,
        "tags": tags,
        "sms_consent": False,
        "email_consent": False,
        "visit_count": customer.visit_count,
        "lifetime_spend": customer.lifetime_spend,
        "first_visit_date": row.first_visit or None,
        "last_visit_date": row.last_visit or None,
    }
