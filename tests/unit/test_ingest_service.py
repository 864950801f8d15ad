"""Unit tests for the import service.

Tests cover:
- Upload routing by extension and content type
- JSON, text and HTML uploads
- PDF uploads (embedded payload, remote extraction, text layer fallback)
- Chat requests and the default company
"""

import json
from datetime import date
from unittest.mock import MagicMock

import pytest

from intake.extraction.base import (
    ExtractionFailedError,
    InputEncodingError,
    InsufficientDataError,
    RemoteProvider,
    RemoteRejectedError,
)
from intake.ingest.service import IntakeService, decode_text, file_kind
from intake.normalize.schema import InvoiceRecord, LineItem
from intake.parsing.payload import PAYLOAD_BEGIN, encode_embedded_payload
from intake.shared.config import Settings
from intake.shared.diagnostics import DiagnosticLog

SAMPLE_TEXT = (
    "ACME LLC\n123 Oak St\nSpringfield, IL 62704\nBill To\nJane Doe\nDate: 2024-03-05\n"
    "Description Qty Rate Amount\nConsulting 3 100.00 300.00\nSubtotal $300.00\nTax 5%\nTotal $315.00"
)

REMOTE_RECORD = {
    "documentType": "Invoice",
    "clientName": "Bob Smith",
    "clientDetails": "9 Pine Ct\nBoulder, CO 80301",
    "invoiceDate": "2024-04-01",
    "items": [{"address": "9 Pine Ct", "work": "Gutter cleaning", "quantity": 1, "rate": 180}],
}


@pytest.fixture
def provider() -> MagicMock:
    """Remote provider double answering with REMOTE_RECORD."""
    mock = MagicMock(spec=RemoteProvider)
    mock.display_name = "Gemini"
    mock.provider_name = "gemini"
    mock.default_model = "gemini-test"
    mock.fallback_models = []
    mock.credentials_error.return_value = None
    mock.generate.return_value = json.dumps(REMOTE_RECORD)
    return mock


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        chat_max_chars=200,
        default_company_name="Default Co",
        default_company_details="1 Main St, Springfield, IL 62704",
    )


@pytest.fixture
def log() -> DiagnosticLog:
    return DiagnosticLog()


@pytest.fixture
def service(settings: Settings, provider: MagicMock, log: DiagnosticLog) -> IntakeService:
    return IntakeService(settings, provider=provider, diagnostics=log)


class TestRouting:
    @pytest.mark.parametrize(
        ("filename", "content_type", "expected"),
        [
            ("invoice.json", "", "json"),
            ("export", "application/json", "json"),
            ("Invoice.PDF", "", "pdf"),
            ("scan", "application/pdf", "pdf"),
            ("page.htm", "text/html", "html"),
            ("notes.txt", "text/plain", "text"),
            ("", "", "text"),
        ],
    )
    def test_file_kind(self, filename: str, content_type: str, expected: str) -> None:
        assert file_kind(filename, content_type) == expected

    def test_decode_drops_bom(self) -> None:
        assert decode_text("\ufeffACME".encode()) == "ACME"

    def test_decode_rejects_non_utf8(self) -> None:
        with pytest.raises(InputEncodingError, match="not UTF-8"):
            decode_text(b"\xff\xfe\x00A")

    def test_import_records_diagnostics(self, service: IntakeService, log: DiagnosticLog) -> None:
        service.import_file("invoice.txt", SAMPLE_TEXT.encode())

        entries = log.entries()
        assert "----- New import attempt -----" in entries[0]
        assert "File chosen" in entries[1]
        assert '"branch": "text"' in entries[1]


class TestJsonImport:
    def test_wrapped_record(self, service: IntakeService) -> None:
        data = json.dumps({"templates": [{"name": "x"}, {"customerName": "Jane", "lineItems": []}]}).encode()

        result = service.import_file("templates.json", data)

        assert result.source == "json"
        assert result.provider == "local"
        assert result.record.client_name == "Jane"

    def test_invalid_json(self, service: IntakeService) -> None:
        with pytest.raises(InputEncodingError, match="The JSON file is not valid"):
            service.import_file("invoice.json", b"{not json")

    def test_no_invoice_object(self, service: IntakeService) -> None:
        with pytest.raises(InsufficientDataError, match="did not contain invoice or bid data"):
            service.import_file("users.json", b'{"users": [{"name": "Jane"}]}')

    def test_no_meaningful_fields(self, service: IntakeService) -> None:
        with pytest.raises(InsufficientDataError, match="no invoice fields were recognized"):
            service.import_file("blank.json", b'{"documentType": "Invoice", "items": []}')


class TestTextImport:
    def test_plain_text(self, service: IntakeService, provider: MagicMock) -> None:
        result = service.import_file("invoice.txt", SAMPLE_TEXT.encode())

        assert result.source == "text"
        assert result.record.company_name == "ACME LLC"
        assert result.record.tax_rate == 5
        provider.generate.assert_not_called()

    def test_html(self, service: IntakeService) -> None:
        html = "".join(f"<p>{line}</p>" for line in SAMPLE_TEXT.split("\n"))

        result = service.import_file("invoice.html", html.encode())

        assert result.record.client_name == "Jane Doe"
        assert result.record.invoice_date == "2024-03-05"

    def test_embedded_payload_in_text(self, service: IntakeService) -> None:
        record = InvoiceRecord(client_name="Jane", items=[LineItem(work="Paint", rate=50)])
        data = ("Exported invoice\n" + encode_embedded_payload(record)).encode()

        result = service.import_file("export.txt", data)

        assert result.source == "payload"
        assert result.record.client_name == "Jane"

    def test_blank_file(self, service: IntakeService) -> None:
        with pytest.raises(InputEncodingError, match="The selected file is empty"):
            service.import_file("blank.txt", b" \n\t ")

    def test_unrecognized_text(self, service: IntakeService) -> None:
        with pytest.raises(InsufficientDataError, match="Could not recognize invoice fields"):
            service.import_file("header.txt", b"INVOICE\nDescription Qty Rate Amount")


class TestPdfImport:
    def test_embedded_payload_skips_remote(self, service: IntakeService, provider: MagicMock, make_pdf) -> None:
        record = InvoiceRecord(company_name="ACME LLC", client_name="Jane Doe", notes="Thanks " * 40)
        pdf = make_pdf(["INVOICE", *encode_embedded_payload(record).split("\n")])

        result = service.import_file("invoice.pdf", pdf)

        assert result.source == "payload"
        assert result.record.client_name == "Jane Doe"
        assert result.record.notes == record.notes.strip()
        provider.generate.assert_not_called()

    def test_remote_extraction(self, service: IntakeService, provider: MagicMock, make_pdf) -> None:
        pdf = make_pdf(["ACME LLC", "Bill To", "Bob Smith"])

        result = service.import_file("invoice.pdf", pdf, api_key="user-key", preferred_model="gemini-pro")

        assert result.source == "remote"
        assert result.model == "gemini-pro"
        assert result.record.client_details == "9 Pine Ct\nBoulder, CO 80301"
        model, request, use_schema = provider.generate.call_args.args
        assert model == "gemini-pro"
        assert use_schema is True
        assert request.document == pdf
        assert request.subject == "PDF"
        assert request.api_key == "user-key"
        assert "Bob Smith" in request.document_text

    def test_text_layer_fallback(self, service: IntakeService, provider: MagicMock, make_pdf) -> None:
        provider.generate.side_effect = RemoteRejectedError("API key not valid")
        pdf = make_pdf(SAMPLE_TEXT.split("\n"))

        result = service.import_file("invoice.pdf", pdf)

        assert result.source == "heuristic"
        assert result.record.company_name == "ACME LLC"
        assert result.record.client_name == "Jane Doe"

    def test_every_path_fails(self, service: IntakeService, provider: MagicMock) -> None:
        provider.generate.side_effect = RemoteRejectedError("API key not valid")

        with pytest.raises(ExtractionFailedError, match="API key not valid"):
            service.import_file("scan.pdf", b"%PDF-1.4 not really a pdf")

    def test_empty_pdf(self, service: IntakeService) -> None:
        with pytest.raises(InputEncodingError):
            service.import_pdf("empty.pdf", b"")


class TestChatImport:
    def test_default_company_is_applied(self, service: IntakeService, provider: MagicMock) -> None:
        result = service.import_chat("Gutter cleaning for Bob Smith, $180", today=date(2024, 3, 5))

        assert result.source == "remote"
        assert result.record.client_name == "Bob Smith"
        assert result.record.company_name == "Default Co"
        assert result.record.company_details == "1 Main St\nSpringfield, IL 62704"
        request = provider.generate.call_args.args[1]
        assert request.subject == "chat request"
        assert "2024-03-05" in request.prompt
        assert "Gutter cleaning for Bob Smith" in request.prompt

    def test_explicit_company_profile(self, service: IntakeService) -> None:
        profile = service.default_company().model_copy(update={"company_name": "Other Co"})

        result = service.import_chat("Gutter cleaning", company=profile)

        assert result.record.company_name == "Other Co"

    def test_remote_company_is_kept(self, service: IntakeService, provider: MagicMock) -> None:
        provider.generate.return_value = json.dumps({**REMOTE_RECORD, "companyName": "Own Co"})

        result = service.import_chat("Gutter cleaning")

        assert result.record.company_name == "Own Co"

    def test_fallback_to_prompt_text(self, service: IntakeService, provider: MagicMock) -> None:
        provider.generate.side_effect = RemoteRejectedError("quota exceeded")

        result = service.import_chat("Date: 2024-03-05\nBill To\nJane Doe\nLawn mowing 2 40.00 80.00")

        assert result.source == "heuristic"
        assert result.record.client_name == "Jane Doe"
        assert result.record.company_name == "Default Co"

    def test_empty_prompt(self, service: IntakeService) -> None:
        with pytest.raises(InputEncodingError, match="Describe the invoice"):
            service.import_chat("   ")

    def test_prompt_too_long(self, service: IntakeService) -> None:
        with pytest.raises(InputEncodingError, match="Keep it under 200 characters"):
            service.import_chat("x" * 201)


class TestNormalizeAndPayload:
    def test_normalize_nested_candidate(self, service: IntakeService) -> None:
        record = service.normalize({"data": {"clientName": "  Jane  ", "taxRate": "5%"}})

        assert record.client_name == "Jane"
        assert record.tax_rate == 5

    def test_normalize_non_invoice(self, service: IntakeService) -> None:
        assert service.normalize(["nothing"]) == InvoiceRecord()

    def test_encode_payload(self, service: IntakeService) -> None:
        block = service.encode_payload({"clientName": "Jane"})
        assert block.startswith(PAYLOAD_BEGIN)
