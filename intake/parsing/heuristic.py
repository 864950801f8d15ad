"""Heuristic invoice parser for flat text.

Segments an ordered list of text lines (from a PDF text layer, an HTML/plain
upload, or a typed request) into company, client, date, items, totals and
notes by locating anchor lines:

    Bill To / Client        client section start
    Date                    invoice date
    Description ... Qty     item table header
    Subtotal/Tax/Discount/Total   totals block
    Notes / Additional Notes      notes

Used as the local fallback whenever a remote model is unavailable or returns
nothing usable. Best effort only: it never invents values that are not in
the text.
"""

import re
from collections.abc import Callable, Sequence
from typing import Any

from intake.normalize.canonical import canonicalize, is_line_item_meaningful, normalize_line_item
from intake.normalize.fields import (
    find_date_token,
    normalize_document_type,
    normalize_space,
    to_currency_number,
    to_iso_date,
    to_number,
)
from intake.normalize.schema import InvoiceRecord, LineItem
from intake.parsing.text_layer import split_lines

COMPANY_SECTION_MAX_LINES = 4
CLIENT_SECTION_MAX_LINES = 6

_CLIENT_ANCHOR = re.compile(r"^bill\s*to\b|^client\b", re.IGNORECASE)
_DATE_ANCHOR = re.compile(r"^date\b", re.IGNORECASE)
_DATE_LABEL = re.compile(r"^date\s*[:\-]?\s*", re.IGNORECASE)
_DOC_TYPE_ANCHOR = re.compile(r"^(invoice|bid)\b", re.IGNORECASE)
_TOTALS_ANCHOR = re.compile(r"^(subtotal|tax\b|discount\b|total\b)", re.IGNORECASE)
_NOTES_ANCHOR = re.compile(r"^notes?\b", re.IGNORECASE)
_NOTES_SECTION = re.compile(r"^notes?\b|^additional notes\b", re.IGNORECASE)
_COLUMN_LABEL = re.compile(r"^(description|qty|rate|amount)\b", re.IGNORECASE)
_HEADER_DESCRIPTION = re.compile(r"\bdescription\b", re.IGNORECASE)
_HEADER_QTY = re.compile(r"\bqty\b", re.IGNORECASE)

_AMOUNT = r"\$?(-?[\d,]+(?:\.\d{1,2})?)"
# description, quantity, rate, amount
_FULL_ROW = re.compile(rf"^(.*\S)\s+(-?\d+(?:\.\d+)?)\s+{_AMOUNT}\s+{_AMOUNT}$")
# description, quantity, rate
_COMPACT_ROW = re.compile(rf"^(.*\S)\s+(-?\d+(?:\.\d+)?)\s+{_AMOUNT}$")

_PERCENT = re.compile(r"(-?\d+(?:\.\d+)?)\s*%")
_CURRENCY_TOKEN = re.compile(r"-?\$?\(?-?[\d,]+(?:\.\d{1,2})?\)?")
_TAX_LINE = re.compile(r"^tax\b", re.IGNORECASE)
_DISCOUNT_LINE = re.compile(r"^discount\b", re.IGNORECASE)


def _find_index(lines: Sequence[str], predicate: Callable[[str], Any], start: int = 0) -> int:
    for index in range(start, len(lines)):
        if predicate(lines[index]):
            return index
    return -1


def find_item_header_index(lines: Sequence[str]) -> int:
    """Index of the first line naming both a description and a qty column, or -1."""
    return _find_index(
        lines, lambda line: _HEADER_DESCRIPTION.search(line) and _HEADER_QTY.search(line)
    )


def is_totals_line(line: str) -> bool:
    return bool(_TOTALS_ANCHOR.match(line))


def find_invoice_date(lines: Sequence[str]) -> str:
    """Resolve the invoice date.

    The first ``Date`` line wins, read from its remainder or the next line;
    otherwise the first date token anywhere in the text.
    """
    for index, line in enumerate(lines):
        if not _DATE_ANCHOR.match(line):
            continue
        remainder = _DATE_LABEL.sub("", line)
        found = find_date_token(remainder) or to_iso_date(remainder)
        if found:
            return found
        if index + 1 < len(lines):
            following = lines[index + 1]
            found = find_date_token(following) or to_iso_date(following)
            if found:
                return found

    for line in lines:
        found = find_date_token(line)
        if found:
            return found
    return ""


def _name_and_details(section: list[str]) -> tuple[str, str]:
    if not section:
        return "", ""
    return section[0], "\n".join(section[1:])


def extract_company_section(lines: Sequence[str]) -> tuple[str, str]:
    """Company name and details: everything before the first section anchor."""
    anchors = [
        _find_index(lines, _CLIENT_ANCHOR.match),
        _find_index(lines, _DATE_ANCHOR.match),
        find_item_header_index(lines),
        _find_index(lines, _DOC_TYPE_ANCHOR.match),
    ]
    ends = [index for index in anchors if index > 0]
    section_end = min(ends) if ends else min(len(lines), COMPANY_SECTION_MAX_LINES)

    section = [
        line
        for line in lines[:section_end]
        if not _DATE_ANCHOR.match(line) and not _DOC_TYPE_ANCHOR.match(line)
    ]
    return _name_and_details(section)


def extract_client_section(lines: Sequence[str]) -> tuple[str, str]:
    """Client name and details: the lines following a Bill To / Client anchor."""
    bill_to = _find_index(lines, _CLIENT_ANCHOR.match)
    if bill_to < 0:
        return "", ""

    anchors = [
        find_item_header_index(lines),
        _find_index(lines, is_totals_line, start=bill_to + 1),
        _find_index(lines, _NOTES_ANCHOR.match, start=bill_to + 1),
    ]
    ends = [index for index in anchors if index > bill_to]
    section_end = min(ends) if ends else min(len(lines), bill_to + CLIENT_SECTION_MAX_LINES)

    section = [
        line
        for line in lines[bill_to + 1 : section_end]
        if not _DATE_ANCHOR.match(line) and not _COLUMN_LABEL.match(line)
    ]
    return _name_and_details(section)


def _item_from_row(description: str, quantity: str, rate: str) -> LineItem:
    base = normalize_line_item({"description": description})
    return base.model_copy(
        update={
            "quantity": max(0.0, to_number(quantity, 0.0)),
            "rate": max(0.0, to_currency_number(rate, 0.0)),
        }
    )


def parse_items(lines: Sequence[str]) -> list[LineItem]:
    """Parse item rows after the item header (or across all lines without one).

    Lines that are not numeric rows accumulate in a description buffer that is
    attached to the next numeric row. A compact three-column row is only
    accepted while the buffer holds something.
    """
    header = find_item_header_index(lines)
    working = lines[header + 1 :] if header >= 0 else list(lines)

    items: list[LineItem] = []
    buffer: list[str] = []

    def flush(fragment: str = "") -> str:
        text = "\n".join([*buffer, fragment]).strip()
        buffer.clear()
        return text

    for raw_line in working:
        if not raw_line:
            continue
        if is_totals_line(raw_line) or _NOTES_ANCHOR.match(raw_line):
            break
        if _COLUMN_LABEL.match(raw_line):
            continue

        line = normalize_space(raw_line)
        match = _FULL_ROW.match(line)
        if match is None and buffer:
            match = _COMPACT_ROW.match(line)
        if match:
            items.append(_item_from_row(flush(match.group(1)), match.group(2), match.group(3)))
            continue

        buffer.append(line)

    if buffer:
        items.append(normalize_line_item({"description": flush(), "quantity": 1, "rate": 0}))

    return [item for item in items if is_line_item_meaningful(item)]


def parse_totals(lines: Sequence[str]) -> dict[str, Any]:
    """Tax rate and discount from the totals lines.

    ``Tax 5%`` sets taxRate. ``Discount 10%`` sets a percentage discount; a
    discount line without a percentage uses the absolute value of its last
    currency-like token as a fixed discount.
    """
    tax_rate = 0.0
    discount_type = "fixed"
    discount_value = 0.0

    for line in lines:
        if _TAX_LINE.match(line):
            percent = _PERCENT.search(line)
            if percent:
                tax_rate = max(0.0, to_number(percent.group(1), 0.0))

        if _DISCOUNT_LINE.match(line):
            percent = _PERCENT.search(line)
            if percent:
                discount_type = "percentage"
                discount_value = max(0.0, to_number(percent.group(1), 0.0))
                continue

            amounts = _CURRENCY_TOKEN.findall(line)
            if amounts:
                discount_type = "fixed"
                discount_value = abs(to_currency_number(amounts[-1], 0.0))

    return {"taxRate": tax_rate, "discountType": discount_type, "discountValue": discount_value}


def extract_notes(lines: Sequence[str]) -> str:
    """Everything after the first Notes anchor, joined verbatim."""
    index = _find_index(lines, _NOTES_SECTION.match)
    if index < 0:
        return ""
    return "\n".join(lines[index + 1 :]).strip()


def parse_invoice_lines(lines: Sequence[str], source_label: str = "") -> InvoiceRecord:
    """Parse normalized, non-empty text lines into a canonical record.

    Args:
        lines: Ordered lines of the document
        source_label: File name or other label; a "bid" token in it marks a Bid

    Returns:
        Canonical record (possibly without meaningful data)
    """
    company_name, company_details = extract_company_section(lines)
    client_name, client_details = extract_client_section(lines)
    items = parse_items(lines)

    candidate: dict[str, Any] = {
        "documentType": normalize_document_type(f"{source_label}\n" + "\n".join(lines)),
        "companyName": company_name,
        "companyDetails": company_details,
        "clientName": client_name,
        "clientDetails": client_details,
        "invoiceDate": find_invoice_date(lines),
        "items": [item.model_dump(by_alias=True) for item in items],
        "notes": extract_notes(lines),
        **parse_totals(lines),
    }
    return canonicalize(candidate)


def parse_invoice_text(text: str, source_label: str = "") -> InvoiceRecord:
    """Split raw text into lines and parse it with parse_invoice_lines."""
    return parse_invoice_lines(split_lines(text), source_label)
