"""
Tests for the Row Normalizer.

Covers:
  - Currency, integer and quantity parsing of noisy Square cells
  - Phone normalization (valid, invalid, missing)
  - Raw row → typed row adapters
"""

from decimal import Decimal

from migration.rows import (
    CustomerRow,
    ProductRow,
    normalize_phone,
    parse_int,
    parse_money,
    parse_quantity,
)

# ── Scalar parsers ─────────────────────────────────────────────────────


class TestParseMoney:
    def test_currency_with_thousands_separator(self):
        assert parse_money("$1,070.57") == Decimal("1070.57")

    def test_leading_minus(self):
        assert parse_money("-$5.00") == Decimal("-5.00")

    def test_accounting_parentheses(self):
        """($5.00) is how some Square reports show refunds."""
        assert parse_money("($5.00)") == Decimal("-5.00")

    def test_blank_is_zero(self):
        assert parse_money("") == Decimal("0.00")
        assert parse_money(None) == Decimal("0.00")

    def test_garbage_is_zero(self):
        assert parse_money("N/A") == Decimal("0.00")

    def test_rounds_to_cents(self):
        assert parse_money("2.345") == Decimal("2.35")


class TestParseInt:
    def test_plain_and_decimal_forms(self):
        assert parse_int("3") == 3
        assert parse_int("3.0") == 3
        assert parse_int(" 1,200 ") == 1200

    def test_unparseable_is_zero(self):
        assert parse_int("") == 0
        assert parse_int("abc") == 0


class TestParseQuantity:
    def test_fractional(self):
        assert parse_quantity("0.5") == Decimal("0.5")

    def test_blank_and_zero_fall_back_to_default(self):
        assert parse_quantity("") == Decimal("1")
        assert parse_quantity("0") == Decimal("1")
        assert parse_quantity("x", default=Decimal("0")) == Decimal("0")


# ── Phones ─────────────────────────────────────────────────────────────


class TestNormalizePhone:
    def test_punctuated_us_number(self):
        result = normalize_phone("(555) 123-4567")
        assert result.valid
        assert result.normalized == "+15551234567"

    def test_square_apostrophe_prefix(self):
        assert normalize_phone("'+15551234567").normalized == "+15551234567"

    def test_country_code_with_spaces(self):
        assert normalize_phone("1 555 123 4567").normalized == "+15551234567"

    def test_dotted(self):
        assert normalize_phone("555.123.4567").normalized == "+15551234567"

    def test_too_short_is_invalid_not_missing(self):
        result = normalize_phone("123-4567")
        assert not result.valid
        assert result.normalized is None
        assert not result.is_missing
        assert result.original == "123-4567"

    def test_non_us_country_code_is_invalid(self):
        assert not normalize_phone("+44 20 7946 0958").valid

    def test_blank_is_missing(self):
        result = normalize_phone("  ")
        assert not result.valid
        assert result.is_missing


# ── Typed rows ─────────────────────────────────────────────────────────


class TestTypedRows:
    def test_customer_row_trims_and_keeps_raw_phone(self):
        row = CustomerRow.from_raw(
            {"First Name": " Ana ", "Last Name": "Lopez", "Phone Number": " (555) 123-4567"}
        )
        assert row.first_name == "Ana"
        assert row.full_name == "Ana Lopez"
        assert row.phone == " (555) 123-4567"
        assert row.email == ""

    def test_product_row_taxable_from_any_tax_column(self):
        row = ProductRow.from_raw({"Item Name": "Soap", "Tax - State": "N", "Tax - City": "Y"})
        assert row.taxable

    def test_product_row_not_taxable_without_tax_columns(self):
        assert not ProductRow.from_raw({"Item Name": "Soap"}).taxable
