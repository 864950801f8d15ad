"""Canonical invoice data models.

Records serialize with camelCase aliases so their JSON is 1:1 with the
document format exchanged with remote models, uploads and embedded payloads.
Models are frozen: every normalization pass builds a new record.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

DocumentType = Literal["Invoice", "Bid"]
DiscountType = Literal["fixed", "percentage"]


class CanonicalModel(BaseModel):
    """Base for canonical models: camelCase JSON, immutable instances."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class LineItem(CanonicalModel):
    """One billable line of an invoice or bid."""

    description: str = Field("", description="Address and work joined, one per line")
    address: str = Field("", description="Property address block (no phone)")
    work: str = Field("", description="Free-text description of the work")
    quantity: float = Field(1.0, ge=0, description="Quantity or hours")
    rate: float = Field(0.0, ge=0, description="Unit price")


class InvoiceRecord(CanonicalModel):
    """Canonical invoice or bid record.

    Every extraction path (remote model, heuristic parser, uploaded JSON,
    embedded payload) ends in one of these via canonicalize().
    """

    document_type: DocumentType = Field("Invoice", description="Invoice or Bid")

    # Issuer
    company_name: str = Field("", description="Issuing company name")
    company_details: str = Field("", description="Issuer address block")
    logo: str | None = Field(None, description="Embedded image reference, set only by explicit upload")

    invoice_date: str = Field("", description="ISO YYYY-MM-DD or empty")

    # Recipient
    client_name: str = Field("", description="Client name")
    client_details: str = Field("", description="Client address block")

    items: list[LineItem] = Field(default_factory=lambda: [LineItem()], min_length=1)

    # Totals
    tax_rate: float = Field(0.0, ge=0, description="Tax percentage")
    discount_type: DiscountType = Field("fixed", description="fixed amount or percentage")
    discount_value: float = Field(0.0, ge=0, description="Discount amount or percentage")

    notes: str = Field("", description="Free-text notes or terms")

    def to_payload(self) -> dict[str, Any]:
        """Serialize to the camelCase JSON document shape."""
        return self.model_dump(mode="json", by_alias=True)


class CompanyProfile(CanonicalModel):
    """Default issuing company used when an imported document names none."""

    company_name: str = ""
    company_details: str = ""

    def is_empty(self) -> bool:
        return not (self.company_name.strip() or self.company_details.strip())


_ADDRESS_BLOCK_HINT = (
    "Address block format: line 1 street number + street name, "
    "line 2 city + state + ZIP, line 3 phone (if present)"
)

# JSON schema sent as the strict response constraint to remote models
INVOICE_RESPONSE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "required": [
        "documentType",
        "companyName",
        "companyDetails",
        "invoiceDate",
        "clientName",
        "clientDetails",
        "items",
        "taxRate",
        "discountType",
        "discountValue",
        "notes",
    ],
    "properties": {
        "documentType": {"type": "string", "enum": ["Invoice", "Bid"]},
        "companyName": {"type": "string"},
        "companyDetails": {"type": "string", "description": _ADDRESS_BLOCK_HINT},
        "invoiceDate": {
            "type": "string",
            "description": "Use YYYY-MM-DD if known, otherwise empty string",
        },
        "clientName": {"type": "string"},
        "clientDetails": {"type": "string", "description": _ADDRESS_BLOCK_HINT},
        "items": {
            "type": "array",
            "items": {
                "type": "object",
                "additionalProperties": False,
                "required": ["description", "address", "work", "quantity", "rate"],
                "properties": {
                    "description": {"type": "string"},
                    "address": {
                        "type": "string",
                        "description": (
                            "Property address block: line 1 street number + street name, "
                            "line 2 city + state + ZIP"
                        ),
                    },
                    "work": {"type": "string"},
                    "quantity": {"type": "number"},
                    "rate": {"type": "number"},
                },
            },
        },
        "taxRate": {"type": "number"},
        "discountType": {"type": "string", "enum": ["fixed", "percentage"]},
        "discountValue": {"type": "number"},
        "notes": {"type": "string"},
    },
}
