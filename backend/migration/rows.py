"""
Row Normalizer — Square export rows → typed rows.

Square exports are noisy: currency fields carry "$" and thousands
separators, phone numbers arrive with a leading apostrophe, and any
numeric column may be blank. Every parser here degrades to zero/absent
instead of raising.

The raw ``dict[str, str]`` produced by the CSV reader stops at this
module. Everything downstream works on the frozen ``*Row`` types.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Mapping

CENTS = Decimal("0.01")
ZERO = Decimal("0")

_NON_DIGITS = re.compile(r"[^\d]")


# ── Column names (exact Square export headers) ─────────────────────────────

# Customer export
COL_REFERENCE_ID = "Reference ID"
COL_FIRST_NAME = "First Name"
COL_LAST_NAME = "Last Name"
COL_EMAIL = "Email Address"
COL_PHONE = "Phone Number"
COL_COMPANY = "Company Name"
COL_STREET_1 = "Street Address 1"
COL_STREET_2 = "Street Address 2"
COL_CITY = "City"
COL_STATE = "State"
COL_POSTAL_CODE = "Postal Code"
COL_BIRTHDAY = "Birthday"
COL_MEMO = "Memo"
COL_SQUARE_CUSTOMER_ID = "Square Customer ID"
COL_FIRST_VISIT = "First Visit"
COL_LAST_VISIT = "Last Visit"
COL_TRANSACTION_COUNT = "Transaction Count"
COL_LIFETIME_SPEND = "Lifetime Spend"

# Catalog export
COL_TOKEN = "Token"
COL_ITEM_NAME = "Item Name"
COL_DESCRIPTION = "Description"
COL_SKU = "SKU"
COL_CATEGORIES = "Categories"
COL_REPORTING_CATEGORY = "Reporting Category"
COL_GTIN = "GTIN"
COL_PRICE = "Price"
COL_ARCHIVED = "Archived"
COL_UNIT_COST = "Default Unit Cost"
COL_VENDOR_NAME = "Default Vendor Name"
COL_CURRENT_QUANTITY = "Current Quantity SDASAS"
COL_STOCK_ALERT_COUNT = "Stock Alert Count SDASAS"
TAX_COLUMN_PREFIX = "Tax - "

# Transactions + transaction items exports
COL_DATE = "Date"
COL_TIME = "Time"
COL_TRANSACTION_ID = "Transaction ID"
COL_EVENT_TYPE = "Event Type"
COL_GROSS_SALES = "Gross Sales"
COL_DISCOUNTS = "Discounts"
COL_NET_SALES = "Net Sales"
COL_TAX = "Tax"
COL_TIP = "Tip"
COL_TOTAL_COLLECTED = "Total Collected"
COL_CARD = "Card"
COL_CASH = "Cash"
COL_FEES = "Fees"
COL_CARD_BRAND = "Card Brand"
COL_PAN_SUFFIX = "PAN Suffix"
COL_STAFF_NAME = "Staff Name"
COL_TRANSACTION_STATUS = "Transaction Status"
COL_CUSTOMER_NAME = "Customer Name"
COL_CUSTOMER_REFERENCE_ID = "Customer Reference ID"
COL_CATEGORY = "Category"
COL_ITEM = "Item"
COL_QTY = "Qty"
COL_PRICE_POINT_NAME = "Price Point Name"
COL_ITEMIZATION_TYPE = "Itemization Type"
COL_EMPLOYEE = "Employee"


# ── Scalar parsers ─────────────────────────────────────────────────────────


def clean_text(value: str | None) -> str:
    if value is None:
        return ""
    return str(value).strip()


def parse_money(value: str | None) -> Decimal:
    """
    Parse a Square currency cell ("$1,070.57", "-$5.00", "($5.00)").

    Blank or unparseable → 0.00.
    """
    text = clean_text(value)
    if not text:
        return ZERO.quantize(CENTS)

    negative = text.startswith("(") and text.endswith(")")
    cleaned = text.strip("()").replace("$", "").replace(",", "").strip()
    try:
        amount = Decimal(cleaned)
    except InvalidOperation:
        return ZERO.quantize(CENTS)
    if not amount.is_finite():
        return ZERO.quantize(CENTS)
    if negative:
        amount = -amount
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def parse_int(value: str | None) -> int:
    text = clean_text(value).replace(",", "")
    if not text:
        return 0
    try:
        return int(Decimal(text))
    except (InvalidOperation, ValueError, OverflowError):
        return 0


def parse_quantity(value: str | None, default: Decimal = Decimal("1")) -> Decimal:
    text = clean_text(value).replace(",", "")
    try:
        qty = Decimal(text)
    except InvalidOperation:
        return default
    if not qty.is_finite() or qty == 0:
        return default
    return qty


@dataclass(frozen=True)
class PhoneResult:
    normalized: str | None
    original: str
    valid: bool

    @property
    def is_missing(self) -> bool:
        return not self.original.strip()


def normalize_phone(raw: str | None) -> PhoneResult:
    """
    Normalize a phone cell to E.164 (+1XXXXXXXXXX).

    Handles "(555) 123-4567", "555.123.4567", "'+15551234567", "1 555 123 4567".
    Only North American numbers are accepted; anything else is invalid.
    """
    original = "" if raw is None else str(raw)
    if not original.strip():
        return PhoneResult(normalized=None, original=original, valid=False)

    digits = _NON_DIGITS.sub("", original)
    if len(digits) == 10:
        digits = "1" + digits

    if len(digits) == 11 and digits.startswith("1"):
        return PhoneResult(normalized="+" + digits, original=original, valid=True)
    return PhoneResult(normalized=None, original=original, valid=False)


# ── Typed rows ─────────────────────────────────────────────────────────────


def _get(raw: Mapping[str, str], column: str) -> str:
    return clean_text(raw.get(column))


@dataclass(frozen=True)
class CustomerRow:
    reference_id: str
    square_customer_id: str
    first_name: str
    last_name: str
    email: str
    phone: str
    company: str
    street_1: str
    street_2: str
    city: str
    state: str
    postal_code: str
    birthday: str
    memo: str
    first_visit: str
    last_visit: str
    transaction_count: str
    lifetime_spend: str

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @classmethod
    def from_raw(cls, raw: Mapping[str, str]) -> "CustomerRow":
        # Phone keeps its raw form so invalid values can be reported verbatim.
        return cls(
            reference_id=_get(raw, COL_REFERENCE_ID),
            square_customer_id=_get(raw, COL_SQUARE_CUSTOMER_ID),
            first_name=_get(raw, COL_FIRST_NAME),
            last_name=_get(raw, COL_LAST_NAME),
            email=_get(raw, COL_EMAIL),
            phone=raw.get(COL_PHONE) or "",
            company=_get(raw, COL_COMPANY),
            street_1=_get(raw, COL_STREET_1),
            street_2=_get(raw, COL_STREET_2),
            city=_get(raw, COL_CITY),
            state=_get(raw, COL_STATE),
            postal_code=_get(raw, COL_POSTAL_CODE),
            birthday=_get(raw, COL_BIRTHDAY),
            memo=_get(raw, COL_MEMO),
            first_visit=_get(raw, COL_FIRST_VISIT),
            last_visit=_get(raw, COL_LAST_VISIT),
            transaction_count=_get(raw, COL_TRANSACTION_COUNT),
            lifetime_spend=_get(raw, COL_LIFETIME_SPEND),
        )


@dataclass(frozen=True)
class ProductRow:
    token: str
    item_name: str
    description: str
    sku: str
    categories: str
    reporting_category: str
    gtin: str
    price: str
    archived: str
    unit_cost: str
    vendor_name: str
    current_quantity: str
    stock_alert_count: str
    taxable: bool

    @classmethod
    def from_raw(cls, raw: Mapping[str, str]) -> "ProductRow":
        taxable = any(
            column.startswith(TAX_COLUMN_PREFIX) and clean_text(value).upper() == "Y"
            for column, value in raw.items()
        )
        return cls(
            token=_get(raw, COL_TOKEN),
            item_name=_get(raw, COL_ITEM_NAME),
            description=_get(raw, COL_DESCRIPTION),
            sku=_get(raw, COL_SKU),
            categories=_get(raw, COL_CATEGORIES),
            reporting_category=_get(raw, COL_REPORTING_CATEGORY),
            gtin=_get(raw, COL_GTIN),
            price=_get(raw, COL_PRICE),
            archived=_get(raw, COL_ARCHIVED),
            unit_cost=_get(raw, COL_UNIT_COST),
            vendor_name=_get(raw, COL_VENDOR_NAME),
            current_quantity=_get(raw, COL_CURRENT_QUANTITY),
            stock_alert_count=_get(raw, COL_STOCK_ALERT_COUNT),
            taxable=taxable,
        )


@dataclass(frozen=True)
class TransactionRow:
    """One row of the Square transactions (payments) export."""

    transaction_id: str
    event_type: str
    date: str
    time: str
    gross_sales: str
    discounts: str
    net_sales: str
    tax: str
    tip: str
    total_collected: str
    card: str
    cash: str
    fees: str
    card_brand: str
    pan_suffix: str
    staff_name: str
    status: str
    customer_reference_id: str
    customer_name: str

    @classmethod
    def from_raw(cls, raw: Mapping[str, str]) -> "TransactionRow":
        return cls(
            transaction_id=_get(raw, COL_TRANSACTION_ID),
            event_type=_get(raw, COL_EVENT_TYPE),
            date=_get(raw, COL_DATE),
            time=_get(raw, COL_TIME),
            gross_sales=_get(raw, COL_GROSS_SALES),
            discounts=_get(raw, COL_DISCOUNTS),
            net_sales=_get(raw, COL_NET_SALES),
            tax=_get(raw, COL_TAX),
            tip=_get(raw, COL_TIP),
            total_collected=_get(raw, COL_TOTAL_COLLECTED),
            card=_get(raw, COL_CARD),
            cash=_get(raw, COL_CASH),
            fees=_get(raw, COL_FEES),
            card_brand=_get(raw, COL_CARD_BRAND),
            pan_suffix=_get(raw, COL_PAN_SUFFIX),
            staff_name=_get(raw, COL_STAFF_NAME),
            status=_get(raw, COL_TRANSACTION_STATUS),
            customer_reference_id=_get(raw, COL_CUSTOMER_REFERENCE_ID),
            customer_name=_get(raw, COL_CUSTOMER_NAME),
        )


@dataclass(frozen=True)
class ItemRow:
    """One row of the Square transaction items export."""

    transaction_id: str
    date: str
    category: str
    item: str
    qty: str
    price_point_name: str
    sku: str
    gross_sales: str
    discounts: str
    net_sales: str
    tax: str
    itemization_type: str
    employee: str
    customer_reference_id: str
    customer_name: str

    @classmethod
    def from_raw(cls, raw: Mapping[str, str]) -> "ItemRow":
        return cls(
            transaction_id=_get(raw, COL_TRANSACTION_ID),
            date=_get(raw, COL_DATE),
            category=_get(raw, COL_CATEGORY),
            item=_get(raw, COL_ITEM),
            qty=_get(raw, COL_QTY),
            price_point_name=_get(raw, COL_PRICE_POINT_NAME),
            sku=_get(raw, COL_SKU),
            gross_sales=_get(raw, COL_GROSS_SALES),
            discounts=_get(raw, COL_DISCOUNTS),
            net_sales=_get(raw, COL_NET_SALES),
            tax=_get(raw, COL_TAX),
            itemization_type=_get(raw, COL_ITEMIZATION_TYPE),
            employee=_get(raw, COL_EMPLOYEE),
            customer_reference_id=_get(raw, COL_CUSTOMER_REFERENCE_ID),
            customer_name=_get(raw, COL_CUSTOMER_NAME),
        )
