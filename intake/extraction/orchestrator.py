"""Extraction orchestrator: remote model attempts with a deterministic fallback.

State machine over (model candidate, attempt):

1. Candidate models are the caller's preferred model, the provider default,
   then the provider's fallbacks, de-duplicated in that order.
2. Attempt 0 sends the strict response schema. Attempt 1 on the same model
   runs without it, only when attempt 0 failed with a "schema unsupported"
   style message.
3. A "model not found / permission denied" failure advances to the next
   candidate unless this was the last one, and is recognized before the
   schema markers. Anything else ends the remote phase.
4. If the remote phase produced nothing usable and raw text is available
   (a PDF text layer, the user's own prompt), the heuristic parser runs on it.

Candidates are tried strictly one at a time; order matters for deterministic
fallback and to avoid redundant billed calls.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Union

from intake.extraction.base import (
    AttemptLog,
    CompletionRequest,
    ContentBlockedError,
    ErrorKind,
    ExtractionFailedError,
    ExtractionResult,
    InsufficientDataError,
    IntakeError,
    ModelUnavailableError,
    RemoteMalformedError,
    RemoteProvider,
    RemoteTransientError,
    parse_json_response,
)
from intake.normalize.canonical import canonicalize, has_meaningful_data
from intake.normalize.fields import normalize_space
from intake.normalize.schema import InvoiceRecord
from intake.parsing.heuristic import parse_invoice_text
from intake.parsing.json_locator import find_invoice_candidate
from intake.shared.diagnostics import DiagnosticSink, NullDiagnosticLog

logger = logging.getLogger(__name__)

SCHEMA_UNSUPPORTED_MARKERS = (
    "responsejsonschema",
    "response schema",
    "invalid argument",
    "unsupported",
    # OpenAI phrasing
    "response_format",
    "json_schema",
    "not supported",
)
MODEL_UNAVAILABLE_MARKERS = ("model not found", "unknown model", "permission denied")


@dataclass(frozen=True)
class Success:
    record: InvoiceRecord


@dataclass(frozen=True)
class RetrySameModel:
    message: str


@dataclass(frozen=True)
class AdvanceModel:
    message: str


@dataclass(frozen=True)
class Fatal:
    message: str
    kind: ErrorKind = "remote-rejected"


AttemptOutcome = Union[Success, RetrySameModel, AdvanceModel, Fatal]

_OUTCOME_NAMES = {
    Success: "success",
    RetrySameModel: "retry-same-model",
    AdvanceModel: "advance-model",
    Fatal: "fatal",
}


def candidate_models(preferred: str | None, default: str, fallbacks: Iterable[str]) -> list[str]:
    """Ordered, de-duplicated model list: preferred, default, then fallbacks.

    Blank entries are dropped; an empty preferred model means the default.
    """
    ordered: list[str] = []
    for model in (preferred or default, default, *fallbacks):
        name = normalize_space(model)
        if name and name not in ordered:
            ordered.append(name)
    return ordered


def is_schema_unsupported_message(message: str) -> bool:
    text = normalize_space(message).lower()
    return any(marker in text for marker in SCHEMA_UNSUPPORTED_MARKERS)


def is_model_unavailable_message(message: str) -> bool:
    text = normalize_space(message).lower()
    if "model" in text and "not found" in text:
        return True
    return any(marker in text for marker in MODEL_UNAVAILABLE_MARKERS)


def classify_failure(error: IntakeError, use_schema: bool, is_last_candidate: bool) -> AttemptOutcome:
    """Decide what happens after a failed attempt.

    Args:
        error: Error raised by the provider or by response interpretation
        use_schema: Whether the failed attempt sent the response schema
        is_last_candidate: Whether no other model remains

    Returns:
        RetrySameModel, AdvanceModel or Fatal
    """
    message = normalize_space(str(error)) or "Remote extraction failed"

    if isinstance(error, (ContentBlockedError, RemoteTransientError)):
        return Fatal(message, error.kind)
    # Gemini's 404 text ends in "or is not supported for generateContent"
    if isinstance(error, ModelUnavailableError) or is_model_unavailable_message(message):
        if is_last_candidate:
            return Fatal(message, error.kind)
        return AdvanceModel(message)
    if use_schema and is_schema_unsupported_message(message):
        return RetrySameModel(message)
    return Fatal(message, error.kind)


class ExtractionOrchestrator:
    """Drives one provider through the candidate/attempt state machine.

    Holds no per-request state; one instance can serve many requests.
    """

    def __init__(self, provider: RemoteProvider, diagnostics: DiagnosticSink | None = None) -> None:
        """Initialize orchestrator.

        Args:
            provider: Remote completion provider
            diagnostics: Sink receiving one entry per step (advisory only)
        """
        self.provider = provider
        self.diagnostics = diagnostics if diagnostics is not None else NullDiagnosticLog()

    def interpret_response(self, text: str) -> InvoiceRecord:
        """Turn raw response text into a canonical record.

        Raises:
            RemoteMalformedError: Response text is not JSON
            InsufficientDataError: JSON carries no meaningful invoice fields
        """
        name = self.provider.display_name
        parsed = parse_json_response(text)
        if not isinstance(parsed, (dict, list)):
            self.diagnostics.record(f"{name} response JSON parse failed", (text or "")[:220])
            raise RemoteMalformedError(f"{name} response was not valid JSON")

        candidate = find_invoice_candidate(parsed)
        if candidate is None:
            candidate = parsed if isinstance(parsed, dict) else {}
        record = canonicalize(candidate)
        if not has_meaningful_data(record):
            self.diagnostics.record(f"{name} response missing required invoice fields")
            raise InsufficientDataError(f"{name} did not return enough invoice data to populate the form")
        return record

    def attempt(
        self, model: str, request: CompletionRequest, use_schema: bool, is_last_candidate: bool
    ) -> AttemptOutcome:
        """Make one remote call and classify its result."""
        try:
            text = self.provider.generate(model, request, use_schema)
            return Success(self.interpret_response(text))
        except IntakeError as e:
            return classify_failure(e, use_schema, is_last_candidate)

    def extract(
        self,
        request: CompletionRequest,
        preferred_model: str | None = None,
        fallback_text: str = "",
        fallback_label: str = "",
    ) -> ExtractionResult:
        """Extract a canonical record, remote first, heuristic parser last.

        Args:
            request: Prompt, optional document and optional per-call API key
            preferred_model: Model to try first; the provider default when empty
            fallback_text: Raw text for the heuristic parser; empty disables the fallback
            fallback_label: File name handed to the heuristic parser

        Returns:
            ExtractionResult with the first meaningful record

        Raises:
            ExtractionFailedError: Every path failed; carries the last error message
        """
        provider = self.provider
        attempts: list[AttemptLog] = []
        last_message = ""
        last_kind: ErrorKind = "remote-rejected"

        missing_credentials = provider.credentials_error(request.api_key)
        if missing_credentials:
            self.diagnostics.record(f"{provider.display_name} extraction skipped: missing API key")
            last_message = missing_credentials
        else:
            candidates = candidate_models(preferred_model, provider.default_model, provider.fallback_models)
            self.diagnostics.record(f"{provider.display_name} model candidates", ", ".join(candidates))

            model_index, attempt_index = 0, 0
            while model_index < len(candidates):
                model = candidates[model_index]
                use_schema = attempt_index == 0
                is_last = model_index == len(candidates) - 1
                self.diagnostics.record(
                    f"{provider.display_name} attempt",
                    {"model": model, "attempt": attempt_index + 1, "useSchema": use_schema},
                )

                outcome = self.attempt(model, request, use_schema, is_last)
                error = None if isinstance(outcome, Success) else outcome.message
                attempts.append(
                    AttemptLog(
                        model=model,
                        use_schema=use_schema,
                        outcome=_OUTCOME_NAMES[type(outcome)],
                        error=error,
                    )
                )

                if isinstance(outcome, Success):
                    self.diagnostics.record(
                        f"{provider.display_name} attempt succeeded",
                        {"model": model, "attempt": attempt_index + 1},
                    )
                    return ExtractionResult(
                        record=outcome.record,
                        provider=provider.provider_name,
                        model=model,
                        source="remote",
                        attempts=attempts,
                    )

                last_message = outcome.message
                self.diagnostics.record(
                    f"{provider.display_name} attempt failed",
                    {"model": model, "attempt": attempt_index + 1, "error": last_message},
                )

                if isinstance(outcome, RetrySameModel):
                    self.diagnostics.record("Retrying same model without schema", model)
                    attempt_index = 1
                elif isinstance(outcome, AdvanceModel):
                    self.diagnostics.record("Switching to next model candidate", model)
                    model_index, attempt_index = model_index + 1, 0
                else:
                    last_kind = outcome.kind
                    break

        return self._fallback(request, fallback_text, fallback_label, attempts, last_message, last_kind)

    def _fallback(
        self,
        request: CompletionRequest,
        text: str,
        label: str,
        attempts: list[AttemptLog],
        last_message: str,
        last_kind: ErrorKind,
    ) -> ExtractionResult:
        if normalize_space(text):
            logger.info(f"Remote extraction failed, falling back to local parser: {last_message}")
            self.diagnostics.record("Starting local text parser fallback", {"textLength": len(text)})
            record = parse_invoice_text(text, label)
            if has_meaningful_data(record):
                self.diagnostics.record("Local text parser produced usable invoice data")
                return ExtractionResult(
                    record=record,
                    provider=self.provider.provider_name,
                    source="heuristic",
                    attempts=attempts,
                )
            self.diagnostics.record("Local text parser text did not map to invoice fields")
            last_kind = "local-parse-failure"

        message = last_message or (
            f"{self.provider.display_name} could not extract invoice data from this {request.subject}"
        )
        self.diagnostics.record("Extraction failed after remote attempts and fallback", message)
        raise ExtractionFailedError(message, kind=last_kind, attempts=attempts)
