"""
test_ingestion.py
------------------
Tests for the import path: amount/date normalization, the CSV reader,
column auto-detection and row-to-transaction conversion.

Run from the project root:
    python -m pytest tests/test_ingestion.py -v
"""

import sys
import os
import pytest
from datetime import date, datetime

# Ensure the project root is on the path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from config.config_loader import reset_config
from core.models import CSVColumnMapping, Transaction
from core.normalizers import parse_amount, parse_date, to_date
from ingestion.csv_parser import (
    auto_detect_columns,
    generate_sample_csv,
    get_csv_headers,
    parse_csv_string,
    parse_csv_to_transactions,
    read_csv_file,
)


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture(autouse=True)
def reset_config_cache():
    """Clears config cache before each test for isolation."""
    reset_config()
    yield
    reset_config()


FULL_MAPPING = CSVColumnMapping(
    amount="amount", date="date", category="category",
    note="note", merchant="merchant", type="type",
)


def _rows(*lines: str) -> list[dict]:
    """Helper: parse a CSV body under the full six-column header."""
    header = "date,amount,category,note,merchant,type"
    return parse_csv_string("\n".join((header,) + lines))


# =============================================================================
# NORMALIZATION TESTS
# =============================================================================

class TestParseAmount:
    @pytest.mark.parametrize("text,expected", [
        ("$1,234.50", 1234.5),
        ("(12.00)", -12.0),
        ("-45", -45.0),
        ("₹ 500", 500.0),
        ("€19.99", 19.99),
        (".5", 0.5),
        ("12.", 12.0),
    ])
    def test_valid_amounts(self, text, expected):
        assert parse_amount(text) == expected

    @pytest.mark.parametrize("text", ["", "   ", "abc", "1.2.3", "$", None, "9" * 400])
    def test_invalid_amounts(self, text):
        assert parse_amount(text) is None


class TestParseDate:
    @pytest.mark.parametrize("text,expected", [
        ("2024-01-05", "2024-01-05"),
        ("01/05/2024", "2024-01-05"),      # month first wins when ambiguous
        ("25/12/2024", "2024-12-25"),
        ("1/5/2024", "2024-01-05"),
        ("25/1/2024", "2024-01-25"),
        ("2024/01/05", "2024-01-05"),
        ("05-01-2024", "2024-01-05"),      # day first for dashes
        ("12-25-2024", "2024-12-25"),
        ("Jan 5, 2024", "2024-01-05"),
        ("January 5, 2024", "2024-01-05"),
        ("5 Jan 2024", "2024-01-05"),
    ])
    def test_configured_formats(self, text, expected):
        assert parse_date(text) == expected

    def test_two_digit_year_lands_in_2000s(self):
        assert parse_date("1/5/24") == "2024-01-05"
        assert parse_date("12/31/99") == "2099-12-31"

    def test_free_form_fallback(self):
        assert parse_date("2024-01-05T10:30:00") == "2024-01-05"

    @pytest.mark.parametrize("text,expected", [
        ("Jan 5, 99", "2099-01-05"),
        ("5 Jan 99", "2099-01-05"),
        ("Jan 5, 80", "2080-01-05"),
        ("Jan 5, 24", "2024-01-05"),
    ])
    def test_free_form_two_digit_year_lands_in_2000s(self, text, expected):
        assert parse_date(text) == expected

    @pytest.mark.parametrize("text", ["10:30", "5", "Jan 5", "March 2024"])
    def test_free_form_never_fills_missing_fields(self, text):
        assert parse_date(text) is None

    @pytest.mark.parametrize("text", ["", "   ", "abc", None])
    def test_unreadable(self, text):
        assert parse_date(text) is None


class TestToDate:
    def test_coercions(self):
        assert to_date(date(2024, 1, 5)) == date(2024, 1, 5)
        assert to_date(datetime(2024, 1, 5, 10, 30)) == date(2024, 1, 5)
        assert to_date("2024-01-05") == date(2024, 1, 5)
        assert to_date("2024-01-05T10:30:00Z") == date(2024, 1, 5)
        assert to_date("Jan 5, 2024") == date(2024, 1, 5)

    def test_missing_or_garbage(self):
        assert to_date(None) is None
        assert to_date("") is None
        assert to_date("abc") is None


class TestTransactionRecord:
    def test_from_store_record(self):
        record = {
            "id": "t1", "amount": 9.99, "category": "Streaming Services",
            "note": "Netflix", "date": "2025-03-02", "type": "expense",
            "merchant": "Netflix", "isSubscription": True,
            "subscriptionStartDate": "2024-12-01",
        }
        txn = Transaction.from_dict(record)
        assert txn.date == date(2025, 3, 2)
        assert txn.is_subscription
        assert txn.subscription_start_date == date(2024, 12, 1)
        assert txn.subscription_end_date is None
        assert txn.to_dict() == record

    def test_defaults_for_sparse_record(self):
        txn = Transaction.from_dict({"amount": 5, "date": "2025-01-01"})
        assert txn.category == "Other"
        assert txn.type == "expense"
        assert txn.merchant is None
        assert not txn.is_subscription


# =============================================================================
# CSV READER TESTS
# =============================================================================

class TestCSVReader:
    def test_quoted_fields_keep_commas(self):
        rows = parse_csv_string('date,amount,note\n2024-01-05,"1,234.50","Dinner, drinks"')
        assert rows == [{"date": "2024-01-05", "amount": "1,234.50", "note": "Dinner, drinks"}]

    def test_headers_lower_cased_and_trimmed(self):
        rows = parse_csv_string(" Date , AMOUNT\n2024-01-05,10")
        assert list(rows[0].keys()) == ["date", "amount"]

    def test_mismatched_rows_dropped(self):
        rows = parse_csv_string("date,amount\n2024-01-05,10\n2024-01-06\n2024-01-07,30")
        assert [r["amount"] for r in rows] == ["10", "30"]

    def test_crlf_line_endings(self):
        rows = parse_csv_string("date,amount\r\n2024-01-05,10\r\n")
        assert rows == [{"date": "2024-01-05", "amount": "10"}]

    @pytest.mark.parametrize("raw", ["", "date,amount", "   \n  "])
    def test_no_data_rows(self, raw):
        assert parse_csv_string(raw) == []

    def test_headers_keep_casing(self):
        assert get_csv_headers("Date,Amount,Payee\n2024-01-05,10,Shop") == ["Date", "Amount", "Payee"]
        assert get_csv_headers("") == []

    def test_read_file_drops_bom(self, tmp_path):
        path = tmp_path / "export.csv"
        path.write_text("date,amount\n2024-01-05,10", encoding="utf-8-sig")
        assert get_csv_headers(read_csv_file(str(path))) == ["date", "amount"]


# =============================================================================
# COLUMN DETECTION TESTS
# =============================================================================

class TestAutoDetectColumns:
    def test_sample_headers(self):
        mapping = auto_detect_columns(get_csv_headers(generate_sample_csv()))
        assert mapping == FULL_MAPPING

    def test_bank_style_headers(self):
        mapping = auto_detect_columns(["Transaction Date", "Description", "Amount", "Category", "Type"])
        assert mapping.date == "Transaction Date"
        assert mapping.note == "Description"
        assert mapping.amount == "Amount"
        assert mapping.category == "Category"
        assert mapping.type == "Type"
        assert mapping.merchant is None

    def test_first_matching_header_wins(self):
        mapping = auto_detect_columns(["Date", "Amount", "Payee", "Vendor"])
        assert mapping.merchant == "Payee"

    def test_type_needs_exact_header(self):
        mapping = auto_detect_columns(["Date", "Amount", "Type of purchase"])
        assert mapping.type is None
        assert mapping.category == "Type of purchase"

    def test_missing_required_roles(self):
        mapping = auto_detect_columns(["Memo", "Payee"])
        assert mapping.amount == ""
        assert mapping.date == ""
        assert mapping.missing_required


# =============================================================================
# ROWS -> TRANSACTIONS TESTS
# =============================================================================

class TestParseCSVToTransactions:
    def test_sample_round_trip(self):
        raw = generate_sample_csv()
        result = parse_csv_to_transactions(parse_csv_string(raw), auto_detect_columns(get_csv_headers(raw)))
        assert result.success
        assert len(result.transactions) == 5
        assert result.errors == []
        salary = result.transactions[2]
        assert salary.type == "income"
        assert salary.merchant is None
        assert salary.note == "Monthly salary"
        assert all(t.id is None for t in result.transactions)

    def test_invalid_amount_reported_and_skipped(self):
        result = parse_csv_to_transactions(_rows("2025-01-01,abc,Food & Dining,Lunch,Cafe,expense"), FULL_MAPPING)
        assert not result.success
        assert result.transactions == []
        assert len(result.errors) == 1
        assert "Row 2" in result.errors[0]
        assert '"abc"' in result.errors[0]
        assert result.skipped == 1
        assert result.total == 1

    def test_zero_amount_skipped(self):
        result = parse_csv_to_transactions(_rows("2025-01-01,0.00,Groceries,Milk,Walmart,expense"), FULL_MAPPING)
        assert result.skipped == 1
        assert "amount" in result.errors[0]

    def test_invalid_date_reported(self):
        result = parse_csv_to_transactions(
            _rows(
                "2025-01-01,10.00,Groceries,Milk,Walmart,expense",
                "someday,10.00,Groceries,Milk,Walmart,expense",
            ),
            FULL_MAPPING,
        )
        assert len(result.transactions) == 1
        assert result.errors == ['Row 3: Invalid or missing date "someday"']

    def test_error_list_capped(self):
        bad = ["2025-01-01,abc,Groceries,Milk,Walmart,expense"] * 15
        result = parse_csv_to_transactions(_rows(*bad), FULL_MAPPING)
        assert len(result.errors) == 10
        assert result.skipped == 15
        assert result.total == 15

    def test_uncategorized_rows_classified(self):
        result = parse_csv_to_transactions(
            _rows(
                "2025-01-01,5.50,Uncategorized,Starbucks latte,,expense",
                "2025-01-02,20.00,,Weekly grocery run,,expense",
            ),
            FULL_MAPPING,
        )
        assert [t.category for t in result.transactions] == ["Coffee & Cafe", "Groceries"]

    @pytest.mark.parametrize("type_value,note,expected", [
        ("Credit", "Transfer", "income"),
        ("DEPOSIT", "Cash", "income"),
        ("Debit", "Refund at store", "expense"),
        ("xyz", "Amazon refund", "income"),
        ("", "Salary payment", "income"),
        ("", "Groceries", "expense"),
    ])
    def test_type_resolution(self, type_value, note, expected):
        result = parse_csv_to_transactions(
            _rows(f"2025-01-01,10.00,Other,{note},,{type_value}"), FULL_MAPPING
        )
        assert result.transactions[0].type == expected

    def test_amounts_stored_absolute(self):
        result = parse_csv_to_transactions(_rows("2025-01-01,-45.00,Groceries,Groceries,Walmart,"), FULL_MAPPING)
        txn = result.transactions[0]
        assert txn.amount == 45.0
        assert txn.type == "expense"

    def test_note_fallbacks(self):
        result = parse_csv_to_transactions(
            _rows(
                "2025-01-01,30.00,Shopping,,Amazon,expense",
                "2025-01-02,30.00,Shopping,,,expense",
            ),
            FULL_MAPPING,
        )
        assert [t.note for t in result.transactions] == ["Amazon", "CSV Import"]

    def test_without_optional_columns(self):
        rows = parse_csv_string("when,cost\n03/15/2025,$12.00")
        result = parse_csv_to_transactions(rows, CSVColumnMapping(amount="cost", date="when"))
        txn = result.transactions[0]
        assert txn.date == date(2025, 3, 15)
        assert txn.amount == 12.0
        assert txn.category == "Other"
        assert txn.note == "CSV Import"
        assert txn.merchant is None


# =============================================================================
# ENTRY POINT
# =============================================================================

if __name__ == "__main__":
    pytest.main([__file__, "-v"])
