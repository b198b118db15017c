"""Row builders shared by the migration tests."""

from migration.rows import CustomerRow, ItemRow, ProductRow, TransactionRow


def customer_row(**overrides) -> CustomerRow:
    raw = {
        "Reference ID": "",
        "First Name": "Test",
        "Last Name": "Customer",
        "Email Address": "",
        "Phone Number": "",
        "Transaction Count": "0",
        "Lifetime Spend": "$0.00",
    }
    raw.update(overrides)
    return CustomerRow.from_raw(raw)


def product_row(**overrides) -> ProductRow:
    raw = {
        "Token": "",
        "Item Name": "Ceramic Spray",
        "SKU": "",
        "Categories": "Paint Protection",
        "Price": "$24.99",
        "Default Unit Cost": "$9.50",
        "Archived": "N",
        "Current Quantity SDASAS": "0",
        "Tax - Sales Tax": "Y",
    }
    raw.update(overrides)
    return ProductRow.from_raw(raw)


def item_row(**overrides) -> ItemRow:
    raw = {
        "Date": "2024-05-01",
        "Transaction ID": "",
        "Category": "Services",
        "Item": "Full Detail",
        "Qty": "1",
        "Price Point Name": "",
        "SKU": "",
        "Net Sales": "$0.00",
        "Customer Reference ID": "",
        "Customer Name": "",
        "Employee": "",
    }
    raw.update(overrides)
    return ItemRow.from_raw(raw)


def transaction_row(**overrides) -> TransactionRow:
    raw = {
        "Date": "2024-05-01",
        "Time": "10:00:00",
        "Transaction ID": "",
        "Event Type": "Payment",
        "Gross Sales": "$0.00",
        "Net Sales": "$0.00",
        "Tax": "$0.00",
        "Tip": "$0.00",
        "Total Collected": "$0.00",
        "Card": "$0.00",
        "Cash": "$0.00",
        "Transaction Status": "Complete",
        "Customer Reference ID": "",
        "Customer Name": "",
        "Staff Name": "",
    }
    raw.update(overrides)
    return TransactionRow.from_raw(raw)
