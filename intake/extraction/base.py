"""Abstract base class and error taxonomy for remote extraction providers.

Enables switching between remote completion backends (Gemini, OpenAI,
Ollama) behind one interface. Providers make exactly one logical call per
generate() and raise typed errors; the orchestrator owns every retry and
fallback decision except HTTP 429 backoff, which stays inside the provider.

Based on Strategy Pattern:
https://refactoring.guru/design-patterns/strategy/python

Error taxonomy:
- input-encoding: the uploaded file cannot be read or decoded
- remote-transient: timeout or network failure
- remote-rejected: schema unsupported, model unavailable, rate limited, content blocked
- remote-malformed: empty or non-JSON response
- insufficient-data: response parsed but carries no usable invoice fields
- local-parse-failure: the heuristic fallback found nothing usable either
"""

import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel, Field
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from intake.normalize.schema import InvoiceRecord
from intake.shared.config import Settings

logger = logging.getLogger(__name__)

ErrorKind = Literal[
    "input-encoding",
    "remote-transient",
    "remote-rejected",
    "remote-malformed",
    "insufficient-data",
    "local-parse-failure",
]


class IntakeError(Exception):
    """Base class for all intake errors."""

    kind: ErrorKind = "local-parse-failure"


class InputEncodingError(IntakeError):
    """Uploaded content could not be read, decoded or parsed."""

    kind: ErrorKind = "input-encoding"


class RemoteError(IntakeError):
    """Failure talking to a remote completion backend."""

    kind: ErrorKind = "remote-rejected"


class RemoteTransientError(RemoteError):
    kind: ErrorKind = "remote-transient"


class RemoteTimeoutError(RemoteTransientError):
    """The per-call timeout expired and the request was aborted."""


class RemoteNetworkError(RemoteTransientError):
    """The backend could not be reached."""


class RemoteRejectedError(RemoteError):
    """The backend answered with an error status."""

    kind: ErrorKind = "remote-rejected"


class RateLimitedError(RemoteRejectedError):
    """HTTP 429. Retried with backoff inside the provider."""


class ModelUnavailableError(RemoteRejectedError):
    """The requested model does not exist or is not accessible."""


class ContentBlockedError(RemoteRejectedError):
    """The backend refused to process the content."""


class RemoteMalformedError(RemoteError):
    """The response was not usable JSON."""

    kind: ErrorKind = "remote-malformed"


class EmptyResponseError(RemoteMalformedError):
    """The response carried no text at all."""


class InsufficientDataError(IntakeError):
    """Input was read but did not yield any meaningful invoice fields."""

    kind: ErrorKind = "insufficient-data"


class AttemptLog(BaseModel):
    """One remote call made while extracting a record.

    Attributes:
        model: Model identifier called
        use_schema: Whether the strict response schema was sent
        outcome: success, retry-same-model, advance-model or fatal
        error: Error message for failed attempts
    """

    model: str
    use_schema: bool
    outcome: str
    error: str | None = None


class ExtractionFailedError(IntakeError):
    """Every extraction path failed.

    The message is the last error encountered, the most actionable hint for
    the caller.
    """

    def __init__(
        self,
        message: str,
        kind: ErrorKind = "local-parse-failure",
        attempts: list[AttemptLog] | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.attempts = attempts or []


class ExtractionResult(BaseModel):
    """Result of a successful extraction.

    Attributes:
        record: Canonical invoice record
        provider: Name of the remote provider involved (e.g., 'gemini')
        model: Model that produced the record, None for local paths
        source: remote, heuristic, payload, json or text
        attempts: Every remote call made along the way
    """

    record: InvoiceRecord
    provider: str
    model: str | None = None
    source: str
    attempts: list[AttemptLog] = Field(default_factory=list)


@dataclass(frozen=True)
class CompletionRequest:
    """Everything a provider needs to make one completion call.

    Attributes:
        prompt: Instruction text
        subject: What is being extracted, used in messages ('PDF', 'chat request')
        document: Raw PDF bytes sent inline, when the backend accepts documents
        document_text: Text layer of the document, for backends that only take text
        api_key: Per-call key; falls back to the configured key when empty
    """

    prompt: str
    subject: str = "request"
    document: bytes | None = None
    document_text: str = ""
    api_key: str | None = None


_FENCED_JSON = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)


def parse_json_response(text: str) -> Any | None:
    """Parse JSON from model output.

    Tries the raw text, then the first fenced code block, then the outermost
    ``{...}`` slice.

    Returns:
        Decoded JSON value, or None when nothing parses
    """
    trimmed = (text or "").strip()
    if not trimmed:
        return None

    attempts = [trimmed]
    fenced = _FENCED_JSON.search(trimmed)
    if fenced and fenced.group(1).strip():
        attempts.append(fenced.group(1).strip())
    start, end = trimmed.find("{"), trimmed.rfind("}")
    if start >= 0 and end > start:
        attempts.append(trimmed[start : end + 1])

    for attempt in attempts:
        try:
            return json.loads(attempt)
        except json.JSONDecodeError:
            continue
    return None


class RemoteProvider(ABC):
    """Abstract base class for remote completion providers.

    Example implementations:
    - GeminiProvider: Google Gemini generateContent REST API
    - OpenAIProvider: OpenAI Chat Completions (cloud-based)
    - OllamaProvider: Ollama server (self-hosted)
    """

    # Display name used in user-facing messages
    display_name: str = "Remote model"
    # Whether raw PDF bytes can be sent inline
    accepts_documents: bool = True

    def __init__(self, settings: Settings) -> None:
        """Initialize provider with settings.

        Args:
            settings: Application settings
        """
        self.settings = settings

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Provider identifier for logging/metrics (e.g., 'gemini')."""

    @property
    @abstractmethod
    def default_model(self) -> str:
        """Model tried right after the caller's preferred model."""

    @property
    @abstractmethod
    def fallback_models(self) -> list[str]:
        """Secondary models tried in order after the default."""

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this provider is configured and reachable.

        Returns:
            True if provider can be used, False otherwise
        """

    @abstractmethod
    def _generate(self, model: str, request: CompletionRequest, use_schema: bool) -> str:
        """Make one completion call and return the response text.

        Raises:
            RemoteError: Typed by failure kind
        """

    def credentials_error(self, api_key: str | None = None) -> str | None:
        """Message explaining missing credentials, or None when the call can proceed."""
        return None

    def generate(self, model: str, request: CompletionRequest, use_schema: bool = True) -> str:
        """Call the backend, retrying HTTP 429 responses with exponential backoff.

        Args:
            model: Model identifier
            request: Prompt and optional document
            use_schema: Send the strict response schema constraint

        Returns:
            Raw response text

        Raises:
            RemoteError: Typed by failure kind; RateLimitedError once retries are exhausted
        """
        return self._rate_limit_retrying()(self._generate, model, request, use_schema)

    def _rate_limit_retrying(self) -> Retrying:
        backoff = self.settings.rate_limit_backoff_seconds
        return Retrying(
            retry=retry_if_exception_type(RateLimitedError),
            wait=wait_exponential_jitter(initial=backoff, max=30, jitter=backoff),
            stop=stop_after_attempt(self.settings.rate_limit_max_attempts),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
