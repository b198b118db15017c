"""
Tests for the Transaction Joiner and the staff name extractor.
"""

from decimal import Decimal

from factories import item_row, transaction_row
from migration.employees import extract_employees
from migration.transactions import (
    build_transaction_payload,
    customer_directory,
    group_items,
    join_transactions,
    map_status,
    resolve_customer,
)


# ── Grouping ───────────────────────────────────────────────────────────


class TestGroupItems:
    def test_groups_without_filtering(self):
        items = [
            item_row(**{"Transaction ID": "T1"}),
            item_row(**{"Transaction ID": "T2"}),
            item_row(**{"Transaction ID": "T1", "Item": "Wax"}),
            item_row(),
        ]
        grouped = group_items(items)
        assert set(grouped) == {"T1", "T2"}
        assert [i.item for i in grouped["T1"]] == ["Full Detail", "Wax"]


# ── Join ───────────────────────────────────────────────────────────────


class TestJoinTransactions:
    def test_every_matching_item_joined_exactly_once_and_orphans_counted(self):
        headers = [
            transaction_row(**{"Transaction ID": "T1"}),
            transaction_row(**{"Transaction ID": "T2", "Event Type": "Refund"}),
        ]
        items = [
            item_row(**{"Transaction ID": "T1"}),
            item_row(**{"Transaction ID": "T1"}),
            item_row(**{"Transaction ID": "T2"}),
            item_row(**{"Transaction ID": "T9"}),
        ]
        result = join_transactions(headers, items)

        assert result.count == 1
        assert len(result.joined[0].items) == 2
        assert result.orphaned_items == 2

    def test_duplicate_payment_headers_joined_once(self):
        headers = [
            transaction_row(**{"Transaction ID": "T1", "Total Collected": "$10.00"}),
            transaction_row(**{"Transaction ID": "T1", "Total Collected": "$99.00"}),
        ]
        result = join_transactions(headers, [item_row(**{"Transaction ID": "T1"})])

        assert result.count == 1
        assert result.duplicate_headers == 1
        assert result.joined[0].total_collected == Decimal("10.00")
        assert sum(len(t.items) for t in result.joined) == 1

    def test_monetary_fields_parsed_independently(self):
        """Gross, net and total are reported as exported, even when they disagree."""
        header = transaction_row(
            **{
                "Transaction ID": "T1",
                "Gross Sales": "$100.00",
                "Net Sales": "$90.00",
                "Tax": "$7.00",
                "Tip": "$5.00",
                "Total Collected": "$1,000.00",
            }
        )
        (joined,) = join_transactions([header], []).joined

        assert joined.gross_sales == Decimal("100.00")
        assert joined.net_sales == Decimal("90.00")
        assert joined.total_collected == Decimal("1000.00")
        assert joined.items == ()

    def test_newest_first(self):
        headers = [
            transaction_row(**{"Transaction ID": "old", "Date": "2024-01-01"}),
            transaction_row(**{"Transaction ID": "new", "Date": "2024-06-01"}),
        ]
        result = join_transactions(headers, [])
        assert [t.header.transaction_id for t in result.joined] == ["new", "old"]
        assert result.date_range == ("2024-01-01", "2024-06-01")

    def test_customer_key_falls_back_to_items(self):
        header = transaction_row(**{"Transaction ID": "T1"})
        items = [item_row(**{"Transaction ID": "T1", "Customer Reference ID": "C7"})]
        (joined,) = join_transactions([header], items).joined
        assert joined.customer_key == "C7"

    def test_totals_and_coverage(self):
        headers = [
            transaction_row(**{"Transaction ID": "T1", "Total Collected": "$10.00", "Staff Name": "Sam",
                               "Customer Reference ID": "C1"}),
            transaction_row(**{"Transaction ID": "T2", "Total Collected": "$5.50", "Tip": "$1.00"}),
        ]
        result = join_transactions(headers, [item_row(**{"Transaction ID": "T1", "Category": "Services"})])

        assert result.total_collected == Decimal("15.50")
        assert result.total_tips == Decimal("1.00")
        assert result.with_customer == 1
        assert result.with_staff == 1
        assert result.with_items == 1
        assert result.category_breakdown == (("Services", 1),)


# ── Identity ───────────────────────────────────────────────────────────


class TestCustomerResolution:
    def test_item_reference_wins(self):
        directory = customer_directory([transaction_row(**{"Transaction ID": "T1", "Customer Reference ID": "H"})])
        ref = resolve_customer(item_row(**{"Transaction ID": "T1", "Customer Reference ID": "I"}), directory)
        assert ref.reference_id == "I"

    def test_backfilled_from_header(self):
        directory = customer_directory(
            [transaction_row(**{"Transaction ID": "T1", "Customer Reference ID": "H", "Customer Name": "Hal"})]
        )
        ref = resolve_customer(item_row(**{"Transaction ID": "T1"}), directory)
        assert ref.reference_id == "H"
        assert ref.name == "Hal"

    def test_unresolvable(self):
        assert resolve_customer(item_row(**{"Transaction ID": "T1"}), {}) is None


# ── Payload ────────────────────────────────────────────────────────────


class TestTransactionPayload:
    def test_cash_payment_and_items(self):
        header = transaction_row(
            **{
                "Transaction ID": "T1",
                "Total Collected": "$45.00",
                "Tip": "$5.00",
                "Cash": "$45.00",
                "Transaction Status": "Voided",
            }
        )
        items = [item_row(**{"Transaction ID": "T1", "Qty": "", "Item": ""})]
        (joined,) = join_transactions([header], items).joined
        payload = build_transaction_payload(joined)

        assert payload["payment_method"] == "cash"
        assert payload["payment_amount"] == Decimal("40.00")
        assert payload["status"] == "voided"
        assert payload["items"][0]["item_name"] == "Unknown"
        assert payload["items"][0]["quantity"] == Decimal("1")

    def test_card_payment(self):
        header = transaction_row(**{"Transaction ID": "T1", "Card": "$20.00", "Card Brand": "Visa",
                                    "PAN Suffix": "4242"})
        payload = build_transaction_payload(join_transactions([header], []).joined[0])
        assert payload["payment_method"] == "card"
        assert payload["card_last_four"] == "4242"

    def test_no_tender(self):
        header = transaction_row(**{"Transaction ID": "T1"})
        assert build_transaction_payload(join_transactions([header], []).joined[0])["payment_method"] is None

    def test_status_mapping(self):
        assert map_status("Complete") == "completed"
        assert map_status("Completed") == "completed"
        assert map_status("Refunded") == "refunded"
        assert map_status("Something else") == "completed"


# ── Staff ──────────────────────────────────────────────────────────────


class TestExtractEmployees:
    def test_counts_items_and_headers(self):
        items = [item_row(Employee="Sam"), item_row(Employee=" Sam "), item_row(Employee="Jo")]
        headers = [transaction_row(**{"Staff Name": "Jo"}), transaction_row(**{"Staff Name": "Lee"})]
        sightings = extract_employees(items, headers)

        assert [(s.name, s.record_count) for s in sightings] == [("Jo", 2), ("Sam", 2), ("Lee", 1)]
