"""
normalizers.py
---------------
Amount and date normalization for imported text.

Bank and app exports disagree on almost everything: currency prefixes,
thousands separators, accounting-style negatives, and a dozen date layouts.
These helpers turn that text into a float and an ISO date string, and return
None instead of raising when the text cannot be read.

Date formats and currency symbols come from config.yaml.
"""

import math
import re
from datetime import date, datetime

from dateutil import parser as date_parser

from config.config_loader import get_normalization_config


_NUMBER_RE = re.compile(r"^(\d+(\.\d*)?|\.\d+)$")
_FULL_YEAR_RE = re.compile(r"\d{4}")

# Two fill-in dates that differ in every field: a date read entirely from
# the text parses to the same day under both.
_FILL_DEFAULTS = (datetime(1, 1, 1), datetime(2, 2, 2))


def parse_amount(text) -> float | None:
    """
    Parse an amount string to float.

    Args:
        text: String like "$1,234.50", "-12", "(12.00)" or "₹ 500".

    Returns:
        Float value (negative for "-" or parenthesized input), or None when
        the text is empty, not a number, or too large for a float.
    """
    if text is None:
        return None
    text = str(text)
    if not text.strip():
        return None

    symbols = re.escape(get_normalization_config()["currency_symbols"])
    cleaned = re.sub(rf"[{symbols},\s]", "", text)

    negative = cleaned.startswith("-") or cleaned.startswith("(")
    cleaned = re.sub(r"[()\-]", "", cleaned)

    if not _NUMBER_RE.match(cleaned):
        return None

    amount = float(cleaned)
    if not math.isfinite(amount):
        return None
    return -amount if negative else amount


def parse_date(text) -> str | None:
    """
    Parse a date string, trying each configured format in priority order.

    Falls back to a free-form parse when no explicit format matches.
    Two-digit years are placed in the 2000s.

    Returns:
        ISO "YYYY-MM-DD" string, or None if the text is not a date.
    """
    if text is None:
        return None
    text = str(text).strip()
    if not text:
        return None

    config = get_normalization_config()
    for fmt in config["date_formats"]:
        try:
            return datetime.strptime(text, fmt).date().isoformat()
        except ValueError:
            continue

    for fmt in config["two_digit_year_formats"]:
        try:
            parsed = datetime.strptime(text, fmt).date()
        except ValueError:
            continue
        return _in_century(parsed, config["two_digit_year_base"]).isoformat()

    parsed = _parse_free_form(text)
    if parsed is None:
        return None
    if not _FULL_YEAR_RE.search(text):
        parsed = _in_century(parsed, config["two_digit_year_base"])
    return parsed.isoformat()


def to_date(value) -> date | None:
    """Coerces a date, datetime or ISO string to a date. None if unreadable."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        iso = parse_date(value)
        return date.fromisoformat(iso) if iso else None


def _parse_free_form(text: str) -> date | None:
    """
    Free-form parse that refuses to fill in missing fields.

    dateutil takes any year, month or day absent from the text from its
    default; parsing under two different defaults exposes that.
    """
    try:
        first, second = (date_parser.parse(text, default=d).date() for d in _FILL_DEFAULTS)
    except (ValueError, OverflowError):
        return None
    return first if first == second else None


def _in_century(parsed: date, base: int) -> date:
    # strptime and dateutil both roll some short years into the 1900s; here they always mean base + yy.
    return parsed.replace(year=base + parsed.year % 100)
