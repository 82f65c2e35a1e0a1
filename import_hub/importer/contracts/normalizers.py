"""
Per-field value normalizers shared by the import-type contracts.

Every normalizer receives a non-empty, already-trimmed string and returns the
canonical value or raises ``TransformError``. Empty values never reach these
functions; the row validator maps them to ``None`` first.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation

from ..errors import TransformError

PAN_PATTERN = re.compile(r"^[A-Z]{5}[0-9]{4}[A-Z]$")
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PINCODE_PATTERN = re.compile(r"^\d{6}$")
ISIN_PATTERN = re.compile(r"^[A-Z]{2}[A-Z0-9]{10}$")

_DAY_FIRST_PATTERN = re.compile(r"^(\d{1,2})[-/.](\d{1,2})[-/.](\d{2}|\d{4})$")
_YEAR_FIRST_PATTERN = re.compile(r"^(\d{4})[-/.](\d{1,2})[-/.](\d{1,2})$")
TWO_DIGIT_YEAR_PIVOT = 30


def uppercase(value: str) -> str:
    return value.upper()


def lowercase(value: str) -> str:
    return value.lower()


def parse_date(value: str) -> str:
    """
    Parse the date layouts seen in broker exports into ISO ``YYYY-MM-DD``.

    Accepts ISO dates/datetimes, ``YYYY/MM/DD`` and day-first ``DD-MM-YYYY``,
    ``DD/MM/YYYY`` or ``DD-MM-YY`` (two-digit years up to 30 are 20YY).
    """

    text = value.strip()
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date().isoformat()
    except ValueError:
        pass

    match = _YEAR_FIRST_PATTERN.match(text)
    if match:
        year, month, day = (int(part) for part in match.groups())
        return _build_date(year, month, day, value)

    match = _DAY_FIRST_PATTERN.match(text)
    if match:
        day, month, raw_year = match.groups()
        year = int(raw_year)
        if len(raw_year) == 2:
            year += 2000 if year <= TWO_DIGIT_YEAR_PIVOT else 1900
        return _build_date(year, int(month), int(day), value)

    raise TransformError(f"unrecognised date '{value}'")


def _build_date(year: int, month: int, day: int, original: str) -> str:
    try:
        return date(year, month, day).isoformat()
    except ValueError as exc:
        raise TransformError(f"invalid date '{original}'") from exc


def digits_only(value: str) -> str:
    return re.sub(r"\D", "", value)


def format_mobile(value: str) -> str:
    """Format an Indian mobile number as ``+91XXXXXXXXXX`` where possible."""

    digits = digits_only(value)
    if len(digits) == 10:
        return f"+91{digits}"
    if len(digits) == 12 and digits.startswith("91"):
        return f"+{digits}"
    if len(digits) == 11 and digits.startswith("0"):
        return f"+91{digits[1:]}"
    if 8 <= len(digits) <= 16:
        return value
    raise TransformError(f"invalid phone number '{value}'")


def normalize_email(value: str) -> str:
    email = value.lower()
    if not EMAIL_PATTERN.match(email):
        raise TransformError(f"invalid email address '{value}'")
    return email


def normalize_pan(value: str) -> str:
    pan = value.upper().replace(" ", "")
    if not PAN_PATTERN.match(pan):
        raise TransformError(f"invalid PAN '{value}'")
    return pan


def normalize_pincode(value: str) -> str:
    pincode = digits_only(value)
    if not PINCODE_PATTERN.match(pincode):
        raise TransformError(f"invalid pincode '{value}'")
    return pincode


def normalize_isin(value: str) -> str:
    isin = value.upper().replace(" ", "")
    if not ISIN_PATTERN.match(isin):
        raise TransformError(f"invalid ISIN '{value}'")
    return isin


def parse_amount(value: str) -> str:
    """Parse a decimal amount; returned as a plain decimal string so JSON keeps it exact."""
    cleaned = value.replace(",", "").replace(" ", "")
    try:
        amount = Decimal(cleaned)
    except InvalidOperation as exc:
        raise TransformError(f"not a number '{value}'") from exc
    if not amount.is_finite():
        raise TransformError(f"not a number '{value}'")
    return format(amount, "f")


def normalize_scheme_type(value: str) -> str:
    token = re.sub(r"[\s_-]", "", value).lower()
    if token.startswith("open"):
        return "OpenEnded"
    if token.startswith("close"):
        return "ClosedEnded"
    return value
