"""Canonicalizer: the shared terminus of every extraction path.

Maps any loosely shaped candidate (remote model JSON, heuristic parser output,
uploaded JSON, legacy stored templates) onto InvoiceRecord. Alternate field
spellings are accepted per canonical field. Canonicalizing an already
canonical record returns an equal record.
"""

from collections.abc import Iterable, Mapping
from typing import Any

from intake.normalize.address import normalize_address_block, parse_description_fields
from intake.normalize.fields import (
    normalize_document_type,
    normalize_space,
    to_currency_number,
    to_iso_date,
    to_number,
)
from intake.normalize.schema import CompanyProfile, InvoiceRecord, LineItem
from intake.shared.diagnostics import DiagnosticSink

ITEM_COLLECTION_KEYS = ("items", "lineItems", "services")

_PERCENT_DISCOUNT_TYPES = {"percentage", "percent", "%"}
_DEFAULT_ITEM = LineItem()


def first_truthy(source: Mapping[str, Any], keys: Iterable[str], default: Any = "") -> Any:
    """Value of the first key whose value is truthy."""
    for key in keys:
        value = source.get(key)
        if value:
            return value
    return default


def first_present(source: Mapping[str, Any], keys: Iterable[str], default: Any = None) -> Any:
    """Value of the first key whose value is not None."""
    for key in keys:
        value = source.get(key)
        if value is not None:
            return value
    return default


def _as_mapping(candidate: Any) -> Mapping[str, Any]:
    if isinstance(candidate, InvoiceRecord):
        return candidate.model_dump(by_alias=True)
    if isinstance(candidate, LineItem):
        return candidate.model_dump(by_alias=True)
    if isinstance(candidate, Mapping):
        return candidate
    return {}


def _text(value: Any) -> str:
    return str(value).strip() if value else ""


def normalize_line_item(item: Any) -> LineItem:
    """Build a LineItem from an item-like mapping.

    Address and work come from their own fields when present; either one that
    is missing is recovered by splitting a legacy free-text description. The
    description is always rebuilt from address and work when either exists.
    """
    source = _as_mapping(item)

    address = normalize_address_block(
        first_truthy(source, ("address", "propertyAddress")), include_phone=False
    )
    work = _text(first_truthy(source, ("work", "workDone")))
    raw_description = _text(first_truthy(source, ("description", "item")))

    composed = "\n".join(part for part in (address, work) if part)
    if (not address or not work) and raw_description and raw_description != composed:
        parsed_address, parsed_work = parse_description_fields(raw_description)
        if not address:
            address = normalize_address_block(parsed_address, include_phone=False)
        if not work:
            work = parsed_work

    description = "\n".join(part for part in (address, work) if part) or raw_description
    quantity = first_present(source, ("quantity", "qty", "hours", "units"), 1)
    rate = first_present(source, ("rate", "price", "unitPrice", "amount"), 0)

    return LineItem(
        description=description,
        address=address,
        work=work,
        quantity=max(0.0, to_number(quantity, 1.0)),
        rate=max(0.0, to_currency_number(rate, 0.0)),
    )


def is_line_item_meaningful(item: LineItem) -> bool:
    """True when any text field is set or quantity/rate is non-zero."""
    return bool(
        item.address.strip()
        or item.work.strip()
        or item.description.strip()
        or item.quantity > 0
        or item.rate > 0
    )


def normalize_items(items: Any) -> list[LineItem]:
    """Normalize an item sequence, dropping empty rows; never returns an empty list."""
    if not isinstance(items, list):
        return [LineItem()]
    normalized = [normalize_line_item(entry) for entry in items]
    retained = [item for item in normalized if is_line_item_meaningful(item)]
    return retained or [LineItem()]


def canonicalize(candidate: Any) -> InvoiceRecord:
    """Map any invoice-like candidate onto a fully populated InvoiceRecord.

    Args:
        candidate: Mapping (any accepted key spelling) or InvoiceRecord.
            Anything else yields the default record.

    Returns:
        New canonical record
    """
    source = _as_mapping(candidate)

    items_source = next(
        (source[key] for key in ITEM_COLLECTION_KEYS if isinstance(source.get(key), list)),
        [],
    )
    logo = source.get("logo")
    discount_type = str(source.get("discountType") or "").lower()

    return InvoiceRecord(
        document_type=normalize_document_type(
            first_truthy(source, ("documentType", "type", "docType"), "Invoice")
        ),
        company_name=_text(first_truthy(source, ("companyName", "fromName", "businessName", "vendorName"))),
        company_details=normalize_address_block(
            first_truthy(source, ("companyDetails", "fromDetails", "businessDetails", "vendorDetails"))
        ),
        logo=logo if isinstance(logo, str) and logo else None,
        invoice_date=to_iso_date(first_truthy(source, ("invoiceDate", "date", "issueDate", "createdAt"))),
        client_name=_text(first_truthy(source, ("clientName", "customerName", "billToName"))),
        client_details=normalize_address_block(
            first_truthy(source, ("clientDetails", "customerDetails", "billToDetails"))
        ),
        items=normalize_items(items_source),
        tax_rate=max(0.0, to_number(first_present(source, ("taxRate", "tax", "vatRate"), 0))),
        discount_type="percentage" if discount_type in _PERCENT_DISCOUNT_TYPES else "fixed",
        discount_value=max(0.0, to_currency_number(first_present(source, ("discountValue", "discount"), 0))),
        notes=_text(first_truthy(source, ("notes", "note", "terms"))),
    )


def has_meaningful_data(record: InvoiceRecord) -> bool:
    """True when the record carries anything worth handing back to the caller.

    The lone default item (quantity 1, nothing else) does not count.
    """
    if any(
        text.strip()
        for text in (
            record.company_name,
            record.company_details,
            record.client_name,
            record.client_details,
            record.notes,
        )
    ):
        return True
    if record.tax_rate > 0 or record.discount_value > 0:
        return True
    return any(item != _DEFAULT_ITEM and is_line_item_meaningful(item) for item in record.items)


def normalize_company_profile(name: Any = "", details: Any = "") -> CompanyProfile:
    """Build a CompanyProfile with the details normalized as an address block."""
    return CompanyProfile(
        company_name=_text(name),
        company_details=normalize_address_block(details),
    )


def apply_default_company(
    record: InvoiceRecord,
    profile: CompanyProfile | None,
    diagnostics: DiagnosticSink | None = None,
    source_label: str = "",
) -> InvoiceRecord:
    """Fill a missing company name/details from an explicitly supplied profile.

    Args:
        record: Canonical record
        profile: Default company; None or an empty profile leaves the record as-is
        diagnostics: Sink that receives a note when anything was filled
        source_label: Input name for the diagnostic entry

    Returns:
        The same record when nothing was filled, otherwise an updated copy
    """
    if profile is None or profile.is_empty():
        return record

    fill_name = not normalize_space(record.company_name) and bool(normalize_space(profile.company_name))
    fill_details = not normalize_space(record.company_details) and bool(
        normalize_space(profile.company_details)
    )
    if not (fill_name or fill_details):
        return record

    update: dict[str, str] = {}
    if fill_name:
        update["company_name"] = profile.company_name
    if fill_details:
        update["company_details"] = profile.company_details

    if diagnostics is not None:
        diagnostics.record(
            "Applied default company fallback",
            {"source": source_label or "unknown", "filledName": fill_name, "filledDetails": fill_details},
        )
    return record.model_copy(update=update)
