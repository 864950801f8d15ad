"""Locate an invoice-like mapping inside arbitrarily nested JSON.

Uploaded exports, stored templates and model responses wrap the actual
record in different envelopes ({"data": {...}}, {"templates": [...]}, ...).
The search is depth-first, bounded, and returns the first hit only.
"""

from typing import Any

from intake.normalize.canonical import ITEM_COLLECTION_KEYS

MAX_DEPTH = 3

HINT_KEYS = (
    "companyName",
    "clientName",
    "invoiceDate",
    "documentType",
    "taxRate",
    "discountValue",
    "notes",
)

# Searched before any other value of a mapping
WRAPPER_KEYS = ("data", "invoice", "bid", "document", "template", "templates", "records", "payload")


def is_invoice_like(node: Any) -> bool:
    """True for a mapping with an item collection or any hint key."""
    if not isinstance(node, dict):
        return False
    if any(isinstance(node.get(key), list) for key in ITEM_COLLECTION_KEYS):
        return True
    return any(key in node for key in HINT_KEYS)


def find_invoice_candidate(payload: Any, depth: int = 0) -> dict[str, Any] | None:
    """Return the first invoice-like mapping in payload, or None.

    Args:
        payload: Decoded JSON value
        depth: Current recursion depth; nodes deeper than MAX_DEPTH are not visited

    Returns:
        The matching mapping itself (not a copy), or None
    """
    if not payload or depth > MAX_DEPTH:
        return None

    if is_invoice_like(payload):
        return payload

    if isinstance(payload, list):
        for entry in payload:
            found = find_invoice_candidate(entry, depth + 1)
            if found is not None:
                return found
        return None

    if not isinstance(payload, dict):
        return None

    for key in WRAPPER_KEYS:
        if key not in payload:
            continue
        found = find_invoice_candidate(payload[key], depth + 1)
        if found is not None:
            return found

    for value in payload.values():
        if not isinstance(value, (dict, list)):
            continue
        found = find_invoice_candidate(value, depth + 1)
        if found is not None:
            return found

    return None
