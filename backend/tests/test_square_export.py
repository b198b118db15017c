"""
Tests for the Square CSV export reader.
"""

import io

import pytest

from integrations.square_export import ExportFileError, ExportKind, read_export, read_exports
from migration.pipeline import SourceData

CUSTOMERS_CSV = (
    "Reference ID,First Name,Last Name,Email Address,Phone Number,Transaction Count,Lifetime Spend\n"
    "C1,Ana,Lopez,,(555) 123-4567,3,\"$1,152.50\"\n"
    "C2,Ben,,ben@example.com,,0,$0.00\n"
)


def _write(tmp_path, name, text, encoding="utf-8"):
    path = tmp_path / name
    path.write_text(text, encoding=encoding)
    return path


class TestReadExport:
    def test_every_cell_is_text_and_blanks_are_empty(self, tmp_path):
        export = read_export(ExportKind.CUSTOMERS, _write(tmp_path, "customers.csv", CUSTOMERS_CSV))

        assert export.row_count == 2
        first = export.rows[0]
        assert first["Transaction Count"] == "3"
        assert first["Lifetime Spend"] == "$1,152.50"
        assert first["Email Address"] == ""
        assert export.rows[1]["Last Name"] == ""
        assert export.missing_columns() == []

    def test_leading_zero_skus_survive(self, tmp_path):
        csv = "Token,Item Name,SKU,Categories,Price,Archived,Current Quantity SDASAS\nP1,Water,0000001,Water,$1.00,N,24\n"
        export = read_export(ExportKind.PRODUCTS, _write(tmp_path, "catalog.csv", csv))
        assert export.rows[0]["SKU"] == "0000001"

    def test_byte_order_mark_stripped_from_headers(self, tmp_path):
        export = read_export(ExportKind.CUSTOMERS, _write(tmp_path, "c.csv", CUSTOMERS_CSV, encoding="utf-8-sig"))
        assert export.headers[0] == "Reference ID"
        assert export.rows[0]["Reference ID"] == "C1"

    def test_missing_columns_reported(self, tmp_path):
        export = read_export(ExportKind.TRANSACTIONS, _write(tmp_path, "t.csv", "Date,Transaction ID\n2024-05-01,T1\n"))
        assert "Event Type" in export.missing_columns()
        assert export.row_count == 1

    def test_empty_file_is_empty_export(self, tmp_path):
        export = read_export(ExportKind.PRODUCTS, _write(tmp_path, "empty.csv", ""))
        assert export.rows == []
        assert export.headers == []

    def test_header_only_file(self, tmp_path):
        export = read_export(ExportKind.CUSTOMERS, _write(tmp_path, "h.csv", CUSTOMERS_CSV.splitlines()[0] + "\n"))
        assert export.row_count == 0
        assert export.missing_columns() == []

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(ExportFileError, match="customers"):
            read_export(ExportKind.CUSTOMERS, tmp_path / "nope.csv")

    def test_reads_from_stream(self):
        export = read_export(ExportKind.CUSTOMERS, io.StringIO(CUSTOMERS_CSV))
        assert export.row_count == 2
        assert export.source == "<stream>"


class TestReadExports:
    def test_customers_required(self, tmp_path):
        products = _write(tmp_path, "catalog.csv", "Token,Item Name\nP1,Wax\n")
        with pytest.raises(ExportFileError, match="customers"):
            read_exports({ExportKind.CUSTOMERS: None, ExportKind.PRODUCTS: products})

    def test_empty_customers_rejected(self, tmp_path):
        with pytest.raises(ExportFileError):
            read_exports({ExportKind.CUSTOMERS: _write(tmp_path, "c.csv", "")})

    def test_optional_exports_omitted(self, tmp_path):
        exports = read_exports(
            {
                ExportKind.CUSTOMERS: _write(tmp_path, "c.csv", CUSTOMERS_CSV),
                ExportKind.PRODUCTS: None,
            }
        )
        source = SourceData.from_exports(exports)

        assert set(exports) == {ExportKind.CUSTOMERS}
        assert len(source.customers) == 2
        assert source.customers[0].reference_id == "C1"
        assert source.products == ()
