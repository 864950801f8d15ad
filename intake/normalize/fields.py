"""Scalar coercion for untrusted invoice fields.

Every function here is total: malformed input maps to a safe default
(empty string or the supplied fallback) instead of raising.
"""

import math
import re
from typing import Any

_NUMBER_PREFIX = re.compile(r"^-?(?:\d+(?:\.\d*)?|\.\d+)")
_NON_NUMERIC = re.compile(r"[^0-9.\-]")
_ORDINAL_SUFFIX = re.compile(r"(\d+)(st|nd|rd|th)\b", re.IGNORECASE)
_BID_TOKEN = re.compile(r"\bbid\b", re.IGNORECASE)

_ISO_DATE = re.compile(r"^(\d{4})[-/](\d{1,2})[-/](\d{1,2})$")
_US_DATE = re.compile(r"^(\d{1,2})[/.\-](\d{1,2})[/.\-](\d{2,4})$")

MONTHS = {
    "jan": 1,
    "january": 1,
    "feb": 2,
    "february": 2,
    "mar": 3,
    "march": 3,
    "apr": 4,
    "april": 4,
    "may": 5,
    "jun": 6,
    "june": 6,
    "jul": 7,
    "july": 7,
    "aug": 8,
    "august": 8,
    "sep": 9,
    "sept": 9,
    "september": 9,
    "oct": 10,
    "october": 10,
    "nov": 11,
    "november": 11,
    "dec": 12,
    "december": 12,
}
_MONTH_ALTERNATION = "|".join(sorted(MONTHS, key=len, reverse=True))
_WEEKDAY_PREFIX = r"(?:(?:mon|tue|tues|wed|thu|thur|thurs|fri|sat|sun)[a-z]*\.?,?\s+)?"
_MONTH_FIRST = re.compile(
    rf"^{_WEEKDAY_PREFIX}({_MONTH_ALTERNATION})\.?\s+(\d{{1,2}}),?\s+(\d{{4}})$", re.IGNORECASE
)
_DAY_FIRST = re.compile(
    rf"^{_WEEKDAY_PREFIX}(\d{{1,2}})\s+({_MONTH_ALTERNATION})\.?,?\s+(\d{{4}})$", re.IGNORECASE
)

# Tried in order by find_date_token
DATE_TOKEN_PATTERNS = (
    re.compile(r"\b\d{4}-\d{1,2}-\d{1,2}\b"),
    re.compile(r"\b\d{1,2}[/.\-]\d{1,2}[/.\-]\d{2,4}\b"),
    re.compile(rf"\b(?:{_MONTH_ALTERNATION})\s+\d{{1,2}},?\s+\d{{4}}\b", re.IGNORECASE),
)

PHONE_PATTERN = re.compile(
    r"(?<!\d)(?:\+?1[ \t.\-]*)?(?:\(\d{3}\)|\d{3})[ \t.\-]*\d{3}[ \t.\-]*\d{4}(?:[ \t]*(?:x|ext\.?)[ \t]*\d+)?",
    re.IGNORECASE,
)
_PHONE_EXTENSION = re.compile(r"(?:x|ext\.?)\s*(\d+)$", re.IGNORECASE)


def normalize_space(value: Any) -> str:
    """Collapse all whitespace (including non-breaking spaces) and trim."""
    if value is None:
        return ""
    return " ".join(str(value).replace("\u00a0", " ").split())


def _is_real_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def to_number(value: Any, fallback: float = 0.0) -> float:
    """Coerce a loosely formatted numeric value.

    Strips everything except digits, ``.`` and ``-`` (Unicode minus counts as
    ``-``) and parses the longest numeric prefix of what remains.

    Args:
        value: Raw value (number, string, or anything else)
        fallback: Returned when nothing parses to a finite number

    Returns:
        Parsed float or fallback
    """
    if _is_real_number(value):
        number = float(value)
        return number if math.isfinite(number) else fallback
    if not isinstance(value, str):
        return fallback

    cleaned = _NON_NUMERIC.sub("", value.replace("\u2212", "-"))
    match = _NUMBER_PREFIX.match(cleaned)
    if not match:
        return fallback
    number = float(match.group(0))
    return number if math.isfinite(number) else fallback


def to_currency_number(value: Any, fallback: float = 0.0) -> float:
    """Like to_number, but a fully parenthesized value such as ``(123.45)`` is negative."""
    if _is_real_number(value):
        return to_number(value, fallback)
    raw = normalize_space(value) if isinstance(value, str) else ""
    if not raw:
        return fallback

    parsed = to_number(raw, fallback)
    if raw.startswith("(") and raw.endswith(")"):
        return -abs(parsed)
    return parsed


def normalize_document_type(value: Any) -> str:
    """Return 'Bid' when the word "bid" appears anywhere in value, else 'Invoice'."""
    return "Bid" if _BID_TOKEN.search(str(value or "")) else "Invoice"


def _format_iso(year: int, month: int, day: int) -> str:
    if 1 <= month <= 12 and 1 <= day <= 31:
        return f"{year:04d}-{month:02d}-{day:02d}"
    return ""


def to_iso_date(value: Any) -> str:
    """Convert a date string to ``YYYY-MM-DD``.

    Accepts ISO dates, ``M/D/Y`` with slash, dot or dash separators (two-digit
    years map to 2000+Y), and month-name dates such as ``March 5th, 2024`` or
    ``5 Mar 2024``. Anything else yields an empty string.
    """
    if not isinstance(value, str):
        return ""
    raw = normalize_space(_ORDINAL_SUFFIX.sub(r"\1", value))
    if not raw:
        return ""

    match = _ISO_DATE.match(raw)
    if match:
        return _format_iso(int(match.group(1)), int(match.group(2)), int(match.group(3)))

    match = _US_DATE.match(raw)
    if match:
        year = int(match.group(3))
        if year < 100:
            year += 2000
        return _format_iso(year, int(match.group(1)), int(match.group(2)))

    match = _MONTH_FIRST.match(raw)
    if match:
        month = MONTHS[match.group(1).lower()]
        return _format_iso(int(match.group(3)), month, int(match.group(2)))

    match = _DAY_FIRST.match(raw)
    if match:
        month = MONTHS[match.group(2).lower()]
        return _format_iso(int(match.group(3)), month, int(match.group(1)))

    return ""


def find_date_token(text: Any) -> str:
    """Find the first recognizable date anywhere in text and return it as ISO."""
    haystack = _ORDINAL_SUFFIX.sub(r"\1", str(text or ""))
    for pattern in DATE_TOKEN_PATTERNS:
        match = pattern.search(haystack)
        if match:
            iso = to_iso_date(match.group(0))
            if iso:
                return iso
    return ""


def extract_phone(text: Any) -> str:
    """Return the first NANP-style phone number in text, or an empty string."""
    match = PHONE_PATTERN.search(str(text or ""))
    return normalize_space(match.group(0)) if match else ""


def format_phone(value: Any) -> str:
    """Format a 10-digit number as ``(NNN) NNN-NNNN`` with an optional `` xEXT``.

    A leading country digit 1 on an 11-digit number is dropped. Anything that
    does not reduce to exactly ten digits is returned unchanged.
    """
    raw = normalize_space(value)
    if not raw:
        return ""

    extension = ""
    base = raw
    ext_match = _PHONE_EXTENSION.search(raw)
    if ext_match:
        extension = ext_match.group(1)
        base = raw[: ext_match.start()]

    digits = re.sub(r"\D", "", base)
    if len(digits) == 11 and digits.startswith("1"):
        digits = digits[1:]
    if len(digits) != 10:
        return raw

    formatted = f"({digits[:3]}) {digits[3:6]}-{digits[6:]}"
    return f"{formatted} x{extension}" if extension else formatted
