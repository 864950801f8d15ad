"""Gemini-based extraction provider.

Calls the Gemini generateContent REST endpoint directly with httpx. PDFs are
sent inline as base64; the response is constrained to JSON matching
INVOICE_RESPONSE_SCHEMA when the schema mode is on.

See: https://ai.google.dev/api/generate-content
"""

import base64
import logging
from typing import Any
from urllib.parse import quote

import httpx

from intake.extraction.base import (
    CompletionRequest,
    ContentBlockedError,
    EmptyResponseError,
    ModelUnavailableError,
    RateLimitedError,
    RemoteNetworkError,
    RemoteProvider,
    RemoteRejectedError,
    RemoteTimeoutError,
)
from intake.normalize.fields import normalize_space
from intake.normalize.schema import INVOICE_RESPONSE_SCHEMA
from intake.shared.config import Settings

logger = logging.getLogger(__name__)

THINKING_LEVEL_MINIMAL = "minimal"
FALLBACK_THINKING_BUDGET = 1024


def build_thinking_config(model: str) -> dict[str, Any]:
    """Minimal-reasoning hint: Gemini 3 takes a level, older models a token budget."""
    if normalize_space(model).lower().startswith("gemini-3"):
        return {"thinkingLevel": THINKING_LEVEL_MINIMAL}
    return {"thinkingBudget": FALLBACK_THINKING_BUDGET}


def api_error_message(payload: Any, fallback: str) -> str:
    """Human-readable message from a Gemini error payload.

    Prefers error.message, then "STATUS (code)", then the fallback.
    """
    error = payload.get("error") if isinstance(payload, dict) else None
    if not isinstance(error, dict):
        return fallback

    message = normalize_space(error.get("message"))
    if message:
        return message
    status = normalize_space(error.get("status"))
    code = error.get("code")
    if status and code is not None:
        return f"{status} ({code})"
    if status:
        return status
    if code is not None:
        return f"Error {code}"
    return fallback


def extract_response_text(payload: Any) -> str:
    """Joined text parts of the first candidate that has any text."""
    if not isinstance(payload, dict):
        return ""
    for candidate in payload.get("candidates") or []:
        content = candidate.get("content") if isinstance(candidate, dict) else None
        parts = content.get("parts") if isinstance(content, dict) else None
        if not isinstance(parts, list):
            continue
        text = "\n".join(
            part["text"] for part in parts if isinstance(part, dict) and isinstance(part.get("text"), str)
        ).strip()
        if text:
            return text
    return ""


class GeminiProvider(RemoteProvider):
    """Gemini generateContent provider.

    Requires an API key, either configured (INTAKE_GEMINI_API_KEY) or passed
    per request.
    """

    display_name = "Gemini"
    accepts_documents = True

    def __init__(self, settings: Settings) -> None:
        """Initialize Gemini provider.

        Args:
            settings: Application settings
        """
        super().__init__(settings)
        self._base_url = settings.gemini_base_url.rstrip("/")
        # Timeout aborts the in-flight request
        self._client = httpx.Client(timeout=settings.request_timeout_seconds)

    @property
    def provider_name(self) -> str:
        return "gemini"

    @property
    def default_model(self) -> str:
        return self.settings.gemini_model

    @property
    def fallback_models(self) -> list[str]:
        return list(self.settings.gemini_fallback_models)

    def is_available(self) -> bool:
        """Check if a Gemini API key is configured.

        Returns:
            True if INTAKE_GEMINI_API_KEY is set
        """
        return bool(self.settings.gemini_api_key.strip())

    def _api_key(self, override: str | None) -> str:
        return (override or self.settings.gemini_api_key).strip()

    def credentials_error(self, api_key: str | None = None) -> str | None:
        if self._api_key(api_key):
            return None
        return "Enter your Gemini API key in Settings first"

    def build_request_body(self, model: str, request: CompletionRequest, use_schema: bool) -> dict[str, Any]:
        """Build the generateContent request body.

        Args:
            model: Model identifier (selects the thinking config)
            request: Prompt and optional PDF
            use_schema: Attach the strict response schema

        Returns:
            JSON-serializable request body
        """
        parts: list[dict[str, Any]] = [{"text": request.prompt}]
        if request.document:
            parts.append(
                {
                    "inlineData": {
                        "mimeType": "application/pdf",
                        "data": base64.b64encode(request.document).decode("ascii"),
                    }
                }
            )

        generation_config: dict[str, Any] = {
            "temperature": 0,
            "responseMimeType": "application/json",
            "thinkingConfig": build_thinking_config(model),
        }
        if use_schema:
            generation_config["responseJsonSchema"] = INVOICE_RESPONSE_SCHEMA

        return {
            "contents": [{"role": "user", "parts": parts}],
            "generationConfig": generation_config,
        }

    def _generate(self, model: str, request: CompletionRequest, use_schema: bool) -> str:
        body = self.build_request_body(model, request, use_schema)
        url = f"{self._base_url}/{quote(model, safe='')}:generateContent"
        logger.debug(f"Gemini request: model={model}, schema={use_schema}, pdf={request.document is not None}")

        try:
            response = self._client.post(
                url,
                json=body,
                headers={"x-goog-api-key": self._api_key(request.api_key)},
            )
        except httpx.TimeoutException as e:
            raise RemoteTimeoutError("Gemini request timed out while processing invoice data") from e
        except httpx.TransportError as e:
            raise RemoteNetworkError(
                "Could not reach Gemini API. Check your internet connection and API key."
            ) from e

        try:
            payload = response.json()
        except ValueError:
            payload = None

        status = response.status_code
        if status >= 400:
            message = api_error_message(payload, f"Gemini request failed ({status})")
            logger.warning(f"Gemini response error: model={model}, status={status}, error={message}")
            if status == 429:
                raise RateLimitedError(message)
            if status == 404:
                raise ModelUnavailableError(message)
            raise RemoteRejectedError(message)

        text = extract_response_text(payload)
        if text:
            return text

        feedback = payload.get("promptFeedback") if isinstance(payload, dict) else None
        block_reason = normalize_space(feedback.get("blockReason")) if isinstance(feedback, dict) else ""
        if block_reason:
            raise ContentBlockedError(f"Gemini blocked this {request.subject} ({block_reason})")
        raise EmptyResponseError(f"Gemini returned an empty response for this {request.subject}")
