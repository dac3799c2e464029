"""
csv_parser.py
--------------
CSV transaction import.

Flow, as driven by the pipeline or an import screen:

    1. get_csv_headers()          -> header names, original casing
    2. parse_csv_string()         -> row dicts keyed by lower-cased header
    3. auto_detect_columns()      -> which header plays which role
    4. parse_csv_to_transactions() -> draft Transactions + per-row errors

Bad rows never abort an import: each one is skipped and, up to a display
cap, described in the result's error list. Column keywords and the error cap
come from config.yaml.
"""

import logging
from typing import Dict, List, Optional

from core.models import CSVColumnMapping, CSVParseResult, Transaction
from core.normalizers import parse_amount, parse_date, to_date
from core.taxonomy import CategoryClassifier
from config.config_loader import get_csv_import_config

logger = logging.getLogger(__name__)


SAMPLE_CSV = """date,amount,category,note,merchant,type
2025-11-01,45.50,Groceries,Weekly groceries,Walmart,expense
2025-11-02,12.99,Coffee & Cafe,Morning coffee,Starbucks,expense
2025-11-03,2700.00,Salary,Monthly salary,,income
2025-11-05,89.99,Shopping,New headphones,Amazon,expense
2025-11-07,15.99,Streaming Services,Monthly subscription,Netflix,expense"""


# =============================================================================
# RAW TEXT -> ROWS
# =============================================================================

def _split_lines(raw: str) -> List[str]:
    return [line.rstrip("\r") for line in raw.strip().split("\n")]


def _parse_csv_line(line: str) -> List[str]:
    """
    Split one line on commas, honoring double-quoted fields.

    A quote toggles the in-quotes state and is not kept, so `"a, b"` is one
    field and `""` inside a field collapses to nothing.
    """
    fields = []
    current = []
    in_quotes = False

    for char in line:
        if char == '"':
            in_quotes = not in_quotes
        elif char == "," and not in_quotes:
            fields.append("".join(current))
            current = []
        else:
            current.append(char)
    fields.append("".join(current))

    return [f.strip() for f in fields]


def parse_csv_string(raw: str) -> List[Dict[str, str]]:
    """
    Parse CSV text into row dicts keyed by lower-cased, trimmed header name.

    Rows whose field count differs from the header's are dropped. Empty or
    header-only input yields no rows.
    """
    if not raw:
        return []
    lines = _split_lines(raw)
    if len(lines) < 2:
        return []

    headers = [h.strip().lower() for h in _parse_csv_line(lines[0])]
    rows = []
    for line in lines[1:]:
        values = _parse_csv_line(line)
        if len(values) != len(headers):
            continue
        rows.append(dict(zip(headers, values)))
    return rows


def get_csv_headers(raw: str) -> List[str]:
    """Header names from the first line, original casing preserved."""
    if not raw or not raw.strip():
        return []
    return _parse_csv_line(_split_lines(raw)[0])


def read_csv_file(path: str) -> str:
    """Reads an export as text; a UTF-8 byte-order mark is dropped."""
    with open(path, "r", encoding="utf-8-sig") as f:
        return f.read()


# =============================================================================
# COLUMN DETECTION
# =============================================================================

def auto_detect_columns(headers: List[str]) -> CSVColumnMapping:
    """
    Guess which header plays which role.

    For each role, the first header (in file order) containing any of the
    role's keywords wins. The type role only binds on an exact header match,
    since "type" is also a category keyword. amount and date stay "" when
    undetected; the caller must ask the user for them.
    """
    config = get_csv_import_config()
    lower_headers = [h.lower() for h in headers]
    mapping = CSVColumnMapping()

    for role, keywords in config["column_keywords"].items():
        for header, lower in zip(headers, lower_headers):
            if any(keyword in lower for keyword in keywords):
                setattr(mapping, role, header)
                break

    for role, keywords in config["exact_column_keywords"].items():
        for header, lower in zip(headers, lower_headers):
            if lower in keywords:
                setattr(mapping, role, header)
                break

    return mapping


# =============================================================================
# ROWS -> TRANSACTIONS
# =============================================================================

def _lookup(row: Dict[str, str], column: Optional[str]) -> str:
    if not column:
        return ""
    return row.get(column.lower()) or ""


def _resolve_type(
    type_value: str, amount: float, text: str, classifier: CategoryClassifier, config: dict
) -> str:
    """
    An explicit type column wins when its value is unambiguous; otherwise
    the classifier reads the note and merchant.
    """
    lower_type = type_value.lower()
    if lower_type:
        if any(k in lower_type for k in config["income_type_keywords"]):
            return "income"
        if any(k in lower_type for k in config["expense_type_keywords"]):
            return "expense"
    return classifier.detect_type(amount, text)


def parse_csv_to_transactions(
    rows: List[Dict[str, str]],
    mapping: CSVColumnMapping,
    classifier: Optional[CategoryClassifier] = None,
) -> CSVParseResult:
    """
    Turn parsed rows into draft transactions.

    Args:
        rows: Output of parse_csv_string().
        mapping: Column roles; amount and date must be set for any row to parse.
        classifier: Category/type classifier. Defaults to a config-backed one.

    Returns:
        CSVParseResult. Row numbers in errors are 1-based file lines (the
        header is line 1). Amounts are stored as absolute values.
    """
    config = get_csv_import_config()
    classifier = classifier or CategoryClassifier()

    transactions: List[Transaction] = []
    errors: List[str] = []
    skipped = 0

    for index, row in enumerate(rows):
        row_num = index + 2

        amount_str = _lookup(row, mapping.amount)
        amount = parse_amount(amount_str)
        if amount is None or amount == 0:
            errors.append(f'Row {row_num}: Invalid or missing amount "{amount_str}"')
            skipped += 1
            continue

        date_str = _lookup(row, mapping.date)
        iso_date = parse_date(date_str)
        if iso_date is None:
            errors.append(f'Row {row_num}: Invalid or missing date "{date_str}"')
            skipped += 1
            continue

        note = _lookup(row, mapping.note)
        merchant = _lookup(row, mapping.merchant)
        text = f"{note} {merchant}"

        category = _lookup(row, mapping.category)
        if not category or category in config["uncategorized_labels"]:
            category = classifier.detect_category(text)

        txn_type = _resolve_type(_lookup(row, mapping.type), amount, text, classifier, config)

        transactions.append(Transaction(
            amount=abs(amount),
            date=to_date(iso_date),
            category=category,
            note=note or merchant or config["default_note"],
            type=txn_type,
            merchant=merchant or None,
        ))

    if skipped:
        logger.debug(f"CSV import skipped {skipped} of {len(rows)} rows.")

    return CSVParseResult(
        success=len(transactions) > 0,
        transactions=transactions,
        errors=errors[: config["max_errors"]],
        skipped=skipped,
        total=len(rows),
    )


def generate_sample_csv() -> str:
    """A small, valid example file for users to download and edit."""
    return SAMPLE_CSV
