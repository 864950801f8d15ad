"""Self-describing payload embedded in generated documents.

Generated PDFs carry a copy of their canonical record as a text block:

    INVGET_PAYLOAD_BEGIN
    INVGET_PAYLOAD_CHUNK_001:<up to 180 chars of URL-safe base64>
    INVGET_PAYLOAD_CHUNK_002:...
    INVGET_PAYLOAD_END

Re-importing such a document restores the record exactly instead of
re-extracting it. Chunks may come back out of order from a text layer, so the
decoder sorts them by their index.
"""

import base64
import binascii
import json
import logging
import re

from intake.normalize.canonical import canonicalize
from intake.normalize.fields import normalize_space
from intake.normalize.schema import InvoiceRecord
from intake.parsing.json_locator import find_invoice_candidate

logger = logging.getLogger(__name__)

PAYLOAD_BEGIN = "INVGET_PAYLOAD_BEGIN"
PAYLOAD_END = "INVGET_PAYLOAD_END"
CHUNK_PREFIX = "INVGET_PAYLOAD_CHUNK_"
CHUNK_SIZE = 180

_CHUNK_LINE = re.compile(rf"^{CHUNK_PREFIX}(\d{{3}})\s*:\s*([A-Za-z0-9_\-\s]+)$")
_NON_BASE64URL = re.compile(r"[^A-Za-z0-9_-]")


def encode_base64url(value: str) -> str:
    """URL-safe base64 of the UTF-8 bytes of value, without padding."""
    if not value:
        return ""
    return base64.urlsafe_b64encode(value.encode("utf-8")).decode("ascii").rstrip("=")


def decode_base64url(value: str) -> str:
    """Inverse of encode_base64url; stray characters are ignored.

    Raises:
        ValueError: If the cleaned text is not valid base64 or not UTF-8
    """
    cleaned = _NON_BASE64URL.sub("", value or "")
    if not cleaned:
        return ""
    padded = cleaned + "=" * (-len(cleaned) % 4)
    try:
        return base64.urlsafe_b64decode(padded).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as e:
        raise ValueError(f"Invalid embedded payload encoding: {e}") from e


def encode_embedded_payload(record: InvoiceRecord) -> str:
    """Render the marker block for a record.

    The record is canonicalized first so the block always decodes to a
    canonical record.
    """
    canonical = canonicalize(record)
    serialized = json.dumps(canonical.to_payload(), separators=(",", ":"), ensure_ascii=False)
    encoded = encode_base64url(serialized)

    lines = [PAYLOAD_BEGIN]
    for number, start in enumerate(range(0, len(encoded), CHUNK_SIZE), start=1):
        lines.append(f"{CHUNK_PREFIX}{number:03d}:{encoded[start : start + CHUNK_SIZE]}")
    lines.append(PAYLOAD_END)
    return "\n".join(lines)


def extract_embedded_payload(text: str) -> InvoiceRecord | None:
    """Decode the first embedded payload block found in text.

    Args:
        text: Raw document text (for example a PDF text layer)

    Returns:
        Canonical record, or None when no complete, decodable block is present
    """
    text = text or ""
    start = text.find(PAYLOAD_BEGIN)
    if start < 0:
        return None
    end = text.find(PAYLOAD_END, start)
    if end < 0:
        return None

    chunks: list[tuple[int, str]] = []
    for raw_line in re.split(r"\r?\n", text[start:end]):
        match = _CHUNK_LINE.match(normalize_space(raw_line))
        if not match:
            continue
        chunk = _NON_BASE64URL.sub("", match.group(2))
        if chunk:
            chunks.append((int(match.group(1)), chunk))

    if not chunks:
        return None

    chunks.sort(key=lambda entry: entry[0])
    try:
        decoded = decode_base64url("".join(chunk for _, chunk in chunks))
        parsed = json.loads(decoded)
    except ValueError as e:
        # json.JSONDecodeError is a ValueError too
        logger.warning(f"Could not parse embedded payload: {e}")
        return None

    candidate = find_invoice_candidate(parsed)
    if candidate is None:
        return None
    return canonicalize(candidate)
