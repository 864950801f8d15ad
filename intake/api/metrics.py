"""Prometheus metrics for the intake API.

Exposes key metrics for monitoring:
- Request counts by endpoint and status
- Request duration histograms
- Imports by source and outcome
- Remote model attempts by provider and outcome

Based on Prometheus best practices:
https://prometheus.io/docs/practices/naming/
"""

from prometheus_client import Counter, Histogram, generate_latest
from prometheus_client.openmetrics.exposition import CONTENT_TYPE_LATEST

from intake.extraction.base import AttemptLog

# Request metrics
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 90.0),
)

# Import metrics
invoice_imports_total = Counter(
    "invoice_imports_total",
    "Total invoice imports",
    ["kind", "status"],  # kind: json, pdf, html, text, chat; status: success, failed
)

invoice_import_sources_total = Counter(
    "invoice_import_sources_total",
    "Successful imports by the path that produced the record",
    ["source"],  # remote, heuristic, payload, json, text
)

document_upload_size_bytes = Histogram(
    "document_upload_size_bytes",
    "Document upload size in bytes",
    buckets=(1024, 10240, 102400, 1048576, 10485760),  # 1KB to 10MB
)

# Remote extraction metrics
remote_attempts_total = Counter(
    "remote_attempts_total",
    "Remote model calls made during extraction",
    ["provider", "outcome"],  # outcome: success, retry-same-model, advance-model, fatal
)

extraction_processing_duration_seconds = Histogram(
    "extraction_processing_duration_seconds",
    "Extraction duration in seconds, remote attempts and fallback included",
    buckets=(0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 90.0, 180.0),
)

heuristic_fallbacks_total = Counter(
    "heuristic_fallbacks_total",
    "Imports answered by the local text parser after remote extraction failed",
)


def record_attempts(provider: str, attempts: list[AttemptLog]) -> None:
    """Count remote attempts by outcome.

    Args:
        provider: Provider name (e.g., 'gemini')
        attempts: Attempts reported by the orchestrator
    """
    for attempt in attempts:
        remote_attempts_total.labels(provider=provider, outcome=attempt.outcome).inc()


def get_metrics() -> tuple[bytes, str]:
    """Generate Prometheus metrics in text format.

    Returns:
        Tuple of (metrics bytes, content type)
    """
    return generate_latest(), CONTENT_TYPE_LATEST
