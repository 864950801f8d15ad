"""FastAPI application for invoice intake.

Production-ready API with:
- Health and readiness checks for Kubernetes
- File import (JSON, PDF, text/HTML) and chat-to-invoice
- Canonicalization and embedded payload encoding for stored records
- Structured error responses
- Prometheus metrics for monitoring

Based on FastAPI best practices:
https://fastapi.tiangolo.com/
"""

import time
from datetime import date
from typing import Any

from fastapi import Body, FastAPI, File, Form, HTTPException, Request, Response, UploadFile, status
from pydantic import BaseModel, Field
from starlette.concurrency import run_in_threadpool

from intake.api import metrics
from intake.extraction.base import (
    AttemptLog,
    ExtractionFailedError,
    ExtractionResult,
    InputEncodingError,
    IntakeError,
)
from intake.ingest.service import IntakeService, file_kind
from intake.normalize.canonical import normalize_company_profile
from intake.normalize.schema import InvoiceRecord
from intake.shared.config import get_settings
from intake.shared.diagnostics import DiagnosticLog
from intake.shared.logging import configure_logging

settings = get_settings()
configure_logging(settings)

app = FastAPI(
    title="Invoice Intake Service",
    description="Turns uploaded invoices, bids and free-text requests into canonical invoice records",
    version=settings.service_version,
)

diagnostics = DiagnosticLog(settings.diagnostics_max_entries)
intake_service = IntakeService(settings, diagnostics=diagnostics)


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):  # type: ignore[no-untyped-def]
    """Middleware to collect request metrics.

    Tracks:
    - Request count by method, endpoint, and status
    - Request duration by method and endpoint
    """
    # Skip metrics for /metrics endpoint itself
    if request.url.path == "/metrics":
        return await call_next(request)

    start_time = time.time()
    response = await call_next(request)
    duration = time.time() - start_time

    metrics.http_requests_total.labels(
        method=request.method,
        endpoint=request.url.path,
        status=response.status_code,
    ).inc()

    metrics.http_request_duration_seconds.labels(
        method=request.method,
        endpoint=request.url.path,
    ).observe(duration)

    return response


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    service: str


class ReadinessResponse(BaseModel):
    """Readiness check response."""

    ready: bool
    provider: str
    provider_configured: bool


class ImportResponse(BaseModel):
    """Import response.

    The record is serialized with camelCase field names.
    """

    success: bool
    record: InvoiceRecord
    provider: str
    model: str | None = None
    source: str
    attempts: list[AttemptLog] = Field(default_factory=list)


class ChatRequest(BaseModel):
    """Chat-to-invoice request."""

    prompt: str
    model: str | None = Field(None, description="Remote model tried first")
    api_key: str | None = Field(None, description="Remote API key for this request only")
    today: date | None = Field(None, description="Reference date for relative dates in the prompt")
    company_name: str | None = Field(None, description="Default company name for this request")
    company_details: str | None = Field(None, description="Default company address block for this request")


class PayloadResponse(BaseModel):
    """Embedded payload block for a record."""

    payload: str


class DiagnosticsResponse(BaseModel):
    """Snapshot of the diagnostic log, oldest entry first."""

    entries: list[str]


def _import_response(result: ExtractionResult) -> ImportResponse:
    return ImportResponse(
        success=True,
        record=result.record,
        provider=result.provider,
        model=result.model,
        source=result.source,
        attempts=result.attempts,
    )


def _observe_result(kind: str, result: ExtractionResult) -> None:
    metrics.invoice_imports_total.labels(kind=kind, status="success").inc()
    metrics.invoice_import_sources_total.labels(source=result.source).inc()
    metrics.record_attempts(result.provider, result.attempts)
    if result.source == "heuristic":
        metrics.heuristic_fallbacks_total.inc()


def _http_error(kind: str, error: IntakeError) -> HTTPException:
    """Translate an intake error into an HTTP error, recording the failure."""
    metrics.invoice_imports_total.labels(kind=kind, status="failed").inc()
    if isinstance(error, ExtractionFailedError):
        metrics.record_attempts(intake_service.provider.provider_name, error.attempts)

    if isinstance(error, InputEncodingError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))
    return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(error))


@app.get("/health", response_model=HealthResponse, tags=["Health"])
def health_check() -> HealthResponse:
    """Health check endpoint for liveness probe.

    Returns:
        Health status information
    """
    return HealthResponse(
        status="healthy", version=settings.service_version, service=settings.service_name
    )


@app.get("/ready", response_model=ReadinessResponse, tags=["Health"])
def readiness_check() -> ReadinessResponse:
    """Readiness check endpoint for Kubernetes readiness probe.

    The service is ready without a configured provider: requests can carry
    their own API key and the local parsers always run.

    Returns:
        Readiness status
    """
    provider = intake_service.provider
    return ReadinessResponse(
        ready=True,
        provider=provider.provider_name,
        provider_configured=provider.is_available(),
    )


@app.get("/metrics", tags=["Monitoring"])
def get_metrics() -> Response:
    """Prometheus metrics endpoint.

    Returns:
        Prometheus metrics in text format
    """
    metrics_data, content_type = metrics.get_metrics()
    return Response(content=metrics_data, media_type=content_type)


@app.post("/api/v1/invoices/import", response_model=ImportResponse, tags=["Invoices"])
async def import_invoice(
    file: UploadFile = File(..., description="Invoice or bid file (JSON, PDF, text or HTML)"),  # noqa: B008
    model: str | None = Form(None, description="Remote model tried first"),  # noqa: B008
    api_key: str | None = Form(None, description="Remote API key for this request only"),  # noqa: B008
) -> ImportResponse:
    """Import an invoice or bid file.

    Routing:
    1. **JSON**: the invoice-like object is located (up to 3 levels deep) and
       canonicalized
    2. **PDF**: an embedded payload is used when present; otherwise the PDF is
       sent to the remote model, falling back to the local text parser over
       the PDF text layer
    3. **Text/HTML**: HTML is flattened and the local text parser runs

    ## Usage Examples

    ```bash
    curl -X POST "http://localhost:8000/api/v1/invoices/import" \\
      -F "file=@invoice.pdf" -F "model=gemini-2.5-flash"
    ```

    ## Error Handling

    - Returns 400 if the file is empty, not UTF-8 text or not valid JSON
    - Returns 422 if no invoice fields could be recognized on any path

    Args:
        file: File to import (required)
        model: Remote model tried first (optional)
        api_key: Remote API key overriding the configured one (optional)

    Returns:
        Import response with the canonical record and the attempts made

    Raises:
        HTTPException: If the file is invalid or holds no invoice data
    """
    if not file.filename:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No filename provided")

    content = await file.read()
    if not content:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="The selected file is empty")

    metrics.document_upload_size_bytes.observe(len(content))
    kind = file_kind(file.filename, file.content_type or "")

    start = time.time()
    try:
        result = await run_in_threadpool(
            intake_service.import_file,
            file.filename,
            content,
            file.content_type or "",
            api_key,
            model,
        )
    except IntakeError as e:
        raise _http_error(kind, e) from e
    finally:
        metrics.extraction_processing_duration_seconds.observe(time.time() - start)

    _observe_result(kind, result)
    return _import_response(result)


@app.post("/api/v1/invoices/chat", response_model=ImportResponse, tags=["Invoices"])
async def chat_to_invoice(request: ChatRequest) -> ImportResponse:
    """Generate a record from a free-text description.

    Falls back to the local text parser over the prompt itself when the
    remote model fails. The default company fills a missing issuer.

    Returns:
        Import response with the canonical record

    Raises:
        HTTPException: 400 for an empty or too long prompt, 422 when nothing was recognized
    """
    company = None
    if request.company_name is not None or request.company_details is not None:
        company = normalize_company_profile(request.company_name or "", request.company_details or "")

    start = time.time()
    try:
        result = await run_in_threadpool(
            intake_service.import_chat,
            request.prompt,
            request.today,
            request.api_key,
            request.model,
            company,
        )
    except IntakeError as e:
        raise _http_error("chat", e) from e
    finally:
        metrics.extraction_processing_duration_seconds.observe(time.time() - start)

    _observe_result("chat", result)
    return _import_response(result)


@app.post("/api/v1/invoices/normalize", response_model=InvoiceRecord, tags=["Invoices"])
def normalize_invoice(candidate: Any = Body(...)) -> InvoiceRecord:  # noqa: B008
    """Canonicalize a loosely shaped invoice JSON document.

    Returns:
        Canonical record (camelCase)
    """
    return intake_service.normalize(candidate)


@app.post("/api/v1/invoices/payload", response_model=PayloadResponse, tags=["Invoices"])
def encode_payload(candidate: Any = Body(...)) -> PayloadResponse:  # noqa: B008
    """Encode a record as an embedded payload block.

    The block can be placed in an exported document's text layer; importing
    that document later restores the record without a remote call.

    Returns:
        Payload block text
    """
    return PayloadResponse(payload=intake_service.encode_payload(candidate))


@app.get("/api/v1/diagnostics", response_model=DiagnosticsResponse, tags=["Diagnostics"])
def get_diagnostics() -> DiagnosticsResponse:
    """Recent import diagnostics, oldest first."""
    return DiagnosticsResponse(entries=diagnostics.entries())


@app.delete("/api/v1/diagnostics", status_code=status.HTTP_204_NO_CONTENT, tags=["Diagnostics"])
def clear_diagnostics() -> Response:
    """Clear the diagnostic log."""
    diagnostics.clear()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
