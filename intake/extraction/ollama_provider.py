"""Ollama-based extraction provider for self-hosted LLM inference.

Runs entirely on-premises against an Ollama server. Ollama cannot read PDFs,
so documents are sent as their text layer inlined into the prompt.

Requires Ollama server running on localhost:11434.
See: https://ollama.ai/
"""

import logging
from typing import Any

import httpx

from intake.extraction.base import (
    CompletionRequest,
    EmptyResponseError,
    ModelUnavailableError,
    RateLimitedError,
    RemoteNetworkError,
    RemoteProvider,
    RemoteRejectedError,
    RemoteTimeoutError,
)
from intake.extraction.prompts import with_document_text
from intake.normalize.schema import INVOICE_RESPONSE_SCHEMA
from intake.shared.config import Settings

logger = logging.getLogger(__name__)


class OllamaProvider(RemoteProvider):
    """Ollama /api/generate provider.

    Supports models like Qwen2.5, Llama3, Mistral. No API key needed.
    """

    display_name = "Ollama"
    accepts_documents = False

    def __init__(self, settings: Settings) -> None:
        """Initialize Ollama provider.

        Args:
            settings: Application settings
        """
        super().__init__(settings)
        self._base_url = settings.ollama_base_url.rstrip("/")
        self._client = httpx.Client(timeout=settings.request_timeout_seconds)

    @property
    def provider_name(self) -> str:
        return "ollama"

    @property
    def default_model(self) -> str:
        return self.settings.ollama_model

    @property
    def fallback_models(self) -> list[str]:
        return list(self.settings.ollama_fallback_models)

    def is_available(self) -> bool:
        """Check if Ollama server is running and model is available.

        Returns:
            True if Ollama server responds and model is loaded
        """
        try:
            response = self._client.get(f"{self._base_url}/api/tags")
        except httpx.HTTPError:
            return False
        if response.status_code != 200:
            return False
        try:
            models = response.json().get("models", [])
        except ValueError:
            return False
        model_names = [m.get("name", "").split(":")[0] for m in models]
        return self.default_model.split(":")[0] in model_names

    def build_request_body(self, model: str, request: CompletionRequest, use_schema: bool) -> dict[str, Any]:
        """Build the /api/generate request body.

        Args:
            model: Model identifier
            request: Prompt plus the document's text layer
            use_schema: Constrain output to the schema instead of free JSON

        Returns:
            JSON-serializable request body
        """
        return {
            "model": model,
            "prompt": with_document_text(request.prompt, request.document_text),
            "stream": False,
            "think": False,
            "format": INVOICE_RESPONSE_SCHEMA if use_schema else "json",
            "options": {"temperature": 0},  # Deterministic output
        }

    def _generate(self, model: str, request: CompletionRequest, use_schema: bool) -> str:
        body = self.build_request_body(model, request, use_schema)
        try:
            response = self._client.post(f"{self._base_url}/api/generate", json=body)
        except httpx.TimeoutException as e:
            raise RemoteTimeoutError("Ollama request timed out while processing invoice data") from e
        except httpx.TransportError as e:
            raise RemoteNetworkError(
                f"Could not reach Ollama server at {self._base_url}. Check that it is running."
            ) from e

        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}

        status = response.status_code
        if status >= 400:
            message = str(payload.get("error") or f"Ollama request failed ({status})")
            logger.warning(f"Ollama response error: model={model}, status={status}, error={message}")
            if status == 429:
                raise RateLimitedError(message)
            if status == 404:
                raise ModelUnavailableError(message)
            raise RemoteRejectedError(message)

        text = str(payload.get("response") or "").strip()
        if not text:
            raise EmptyResponseError(f"Ollama returned an empty response for this {request.subject}")
        return text
