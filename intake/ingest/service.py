"""Import service: routes uploads and chat requests to an extraction path.

Upload routing is by file extension first, then content type:

- JSON: locate the invoice-like object and canonicalize it
- PDF: embedded payload if present, else remote extraction with the text
  layer as heuristic fallback
- anything else: decoded as text, HTML flattened, heuristic parser

Every path ends in a canonical InvoiceRecord wrapped in an ExtractionResult.
"""

import json
import logging
from datetime import date
from pathlib import PurePath
from typing import Any

from intake.extraction.base import (
    CompletionRequest,
    ExtractionResult,
    InputEncodingError,
    InsufficientDataError,
    RemoteProvider,
)
from intake.extraction.factory import create_remote_provider
from intake.extraction.orchestrator import ExtractionOrchestrator
from intake.extraction.prompts import build_chat_prompt, build_document_prompt
from intake.normalize.canonical import (
    apply_default_company,
    canonicalize,
    has_meaningful_data,
    normalize_company_profile,
)
from intake.normalize.fields import normalize_space
from intake.normalize.schema import CompanyProfile, InvoiceRecord
from intake.parsing.heuristic import parse_invoice_text
from intake.parsing.json_locator import find_invoice_candidate
from intake.parsing.payload import encode_embedded_payload, extract_embedded_payload
from intake.parsing.text_layer import extract_pdf_text, html_to_text, looks_like_html
from intake.shared.config import Settings
from intake.shared.diagnostics import DiagnosticLog, DiagnosticSink

logger = logging.getLogger(__name__)

CHAT_FALLBACK_LABEL = "chat-request.txt"


def file_kind(filename: str, content_type: str = "") -> str:
    """Classify an upload as json, pdf, html or text."""
    extension = PurePath(filename or "").suffix.lower().lstrip(".")
    media_type = (content_type or "").lower()
    if extension == "json" or "json" in media_type:
        return "json"
    if extension == "pdf" or "pdf" in media_type:
        return "pdf"
    if extension in ("html", "htm"):
        return "html"
    return "text"


def decode_text(data: bytes) -> str:
    """Decode uploaded bytes as UTF-8 (a leading BOM is dropped).

    Raises:
        InputEncodingError: Bytes are not valid UTF-8
    """
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise InputEncodingError("Unable to read file: content is not UTF-8 text") from e


class IntakeService:
    """Entry point for every import: uploaded files, chat requests, raw JSON.

    Settings, provider and diagnostic sink are injected; the service reads no
    global state.
    """

    def __init__(
        self,
        settings: Settings,
        provider: RemoteProvider | None = None,
        diagnostics: DiagnosticSink | None = None,
    ) -> None:
        """Initialize import service.

        Args:
            settings: Application settings
            provider: Remote provider; created from settings when omitted
            diagnostics: Diagnostic sink; a bounded DiagnosticLog when omitted
        """
        self.settings = settings
        self.provider = provider if provider is not None else create_remote_provider(settings)
        self.diagnostics = (
            diagnostics if diagnostics is not None else DiagnosticLog(settings.diagnostics_max_entries)
        )
        self.orchestrator = ExtractionOrchestrator(self.provider, self.diagnostics)

    def default_company(self) -> CompanyProfile:
        settings = self.settings
        return normalize_company_profile(settings.default_company_name, settings.default_company_details)

    def import_file(
        self,
        filename: str,
        data: bytes,
        content_type: str = "",
        api_key: str | None = None,
        preferred_model: str | None = None,
    ) -> ExtractionResult:
        """Import one uploaded file.

        Args:
            filename: Original file name (routing and document type hint)
            data: Raw file content
            content_type: Media type reported by the client
            api_key: Per-call remote API key, overrides the configured one
            preferred_model: Remote model tried first

        Returns:
            ExtractionResult with a meaningful canonical record

        Raises:
            InputEncodingError: File is empty, not UTF-8 or not valid JSON
            InsufficientDataError: File was read but holds no invoice fields
            ExtractionFailedError: PDF extraction failed on every path
        """
        kind = file_kind(filename, content_type)
        self.diagnostics.record("----- New import attempt -----")
        self.diagnostics.record(
            "File chosen", {"name": filename, "size": len(data), "type": content_type, "branch": kind}
        )
        logger.info(f"Importing {kind} file: {filename} ({len(data)} bytes)")

        if kind == "json":
            return self.import_json(data)
        if kind == "pdf":
            return self.import_pdf(filename, data, api_key=api_key, preferred_model=preferred_model)
        return self.import_text(filename, data)

    def import_json(self, data: bytes) -> ExtractionResult:
        """Locate and canonicalize the invoice object in an uploaded JSON document."""
        try:
            payload = json.loads(decode_text(data))
        except json.JSONDecodeError as e:
            raise InputEncodingError("The JSON file is not valid") from e

        candidate = find_invoice_candidate(payload)
        if candidate is None:
            raise InsufficientDataError("JSON did not contain invoice or bid data")

        record = canonicalize(candidate)
        if not has_meaningful_data(record):
            raise InsufficientDataError("JSON file was read, but no invoice fields were recognized")
        return ExtractionResult(record=record, provider="local", source="json")

    def import_text(self, filename: str, data: bytes) -> ExtractionResult:
        """Parse a plain-text or HTML upload with the heuristic parser."""
        text = decode_text(data)
        if not normalize_space(text):
            raise InputEncodingError("The selected file is empty")

        if file_kind(filename) == "html" or looks_like_html(text):
            text = html_to_text(text)

        embedded = extract_embedded_payload(text)
        if embedded is not None:
            self.diagnostics.record("Embedded invoice payload found in text")
            return ExtractionResult(record=embedded, provider="local", source="payload")

        record = parse_invoice_text(text, filename)
        if not has_meaningful_data(record):
            raise InsufficientDataError("Could not recognize invoice fields in this file")
        return ExtractionResult(record=record, provider="local", source="text")

    def import_pdf(
        self,
        filename: str,
        data: bytes,
        api_key: str | None = None,
        preferred_model: str | None = None,
    ) -> ExtractionResult:
        """Extract a record from a PDF.

        A PDF exported by this system carries its record as an embedded
        payload in the text layer; that is used without any remote call.
        """
        if not data:
            raise InputEncodingError("The selected file is empty")

        text_layer = extract_pdf_text(data)
        if not text_layer.success:
            self.diagnostics.record("Local PDF text extraction failed", text_layer.error)
        elif text_layer.text:
            self.diagnostics.record("Local PDF text layer extracted", {"textLength": len(text_layer.text)})
            embedded = extract_embedded_payload(text_layer.text)
            if embedded is not None:
                self.diagnostics.record("Embedded invoice payload found in PDF")
                return ExtractionResult(record=embedded, provider="local", source="payload")
        else:
            self.diagnostics.record("No selectable text found in PDF")

        self.diagnostics.record(
            f"{self.provider.display_name} PDF extraction requested",
            {"fileName": filename, "fileSize": len(data), "configuredModel": preferred_model or ""},
        )
        request = CompletionRequest(
            prompt=build_document_prompt(),
            subject="PDF",
            document=data,
            document_text=text_layer.text,
            api_key=api_key,
        )
        return self.orchestrator.extract(
            request,
            preferred_model=preferred_model,
            fallback_text=text_layer.text,
            fallback_label=filename or "invoice.pdf",
        )

    def import_chat(
        self,
        prompt: str,
        today: date | None = None,
        api_key: str | None = None,
        preferred_model: str | None = None,
        company: CompanyProfile | None = None,
    ) -> ExtractionResult:
        """Turn a free-text request into a record.

        Args:
            prompt: User's description of the invoice
            today: Date used to resolve relative dates; today when omitted
            api_key: Per-call remote API key
            preferred_model: Remote model tried first
            company: Default company; the configured one when omitted

        Returns:
            ExtractionResult, with the default company filled in where missing

        Raises:
            InputEncodingError: Prompt is empty or too long
            ExtractionFailedError: Remote extraction and the local parser both failed
        """
        text = (prompt or "").strip()
        if not text:
            raise InputEncodingError("Describe the invoice you want to generate first")
        limit = self.settings.chat_max_chars
        if len(text) > limit:
            raise InputEncodingError(f"Prompt is too long. Keep it under {limit} characters.")

        self.diagnostics.record(
            f"{self.provider.display_name} chat extraction requested",
            {"promptLength": len(text), "configuredModel": preferred_model or ""},
        )
        request = CompletionRequest(
            prompt=build_chat_prompt(text, today or date.today()),
            subject="chat request",
            api_key=api_key,
        )
        result = self.orchestrator.extract(
            request,
            preferred_model=preferred_model,
            fallback_text=text,
            fallback_label=CHAT_FALLBACK_LABEL,
        )

        profile = company if company is not None else self.default_company()
        record = apply_default_company(result.record, profile, self.diagnostics, "chat template")
        return result.model_copy(update={"record": record})

    def normalize(self, candidate: Any) -> InvoiceRecord:
        """Canonicalize an arbitrary candidate, locating nested invoice data first."""
        located = find_invoice_candidate(candidate)
        return canonicalize(located if located is not None else candidate)

    def encode_payload(self, candidate: Any) -> str:
        """Embedded payload block for a record, ready to place in an exported document."""
        return encode_embedded_payload(self.normalize(candidate))
