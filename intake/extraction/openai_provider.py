"""OpenAI-based extraction provider.

Uses the Chat Completions API with structured outputs (json_schema, strict)
when the schema mode is on and plain JSON mode otherwise. PDFs are attached
as file content parts.

SDK retries are disabled: the orchestrator decides what to retry, and rate
limits are retried by the shared tenacity policy in RemoteProvider.
"""

import base64
import logging
from typing import Any

from openai import (
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    NotFoundError,
    OpenAI,
    RateLimitError,
)

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
from intake.normalize.schema import INVOICE_RESPONSE_SCHEMA
from intake.shared.config import Settings

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = "You are an invoice data extraction assistant. Reply with JSON only."


def reasoning_effort_for(model: str) -> str | None:
    """Minimal-reasoning hint for reasoning models, None for everything else."""
    name = model.strip().lower()
    if name.startswith("gpt-5"):
        return "minimal"
    if name.startswith(("o1", "o3", "o4")):
        return "low"
    return None


class OpenAIProvider(RemoteProvider):
    """OpenAI Chat Completions provider.

    Requires an API key, either configured (INTAKE_OPENAI_API_KEY) or passed
    per request.
    """

    display_name = "OpenAI"
    accepts_documents = True

    def __init__(self, settings: Settings) -> None:
        """Initialize OpenAI provider.

        Args:
            settings: Application settings
        """
        super().__init__(settings)
        self._client: OpenAI | None = None

    @property
    def provider_name(self) -> str:
        return "openai"

    @property
    def default_model(self) -> str:
        return self.settings.openai_model

    @property
    def fallback_models(self) -> list[str]:
        return list(self.settings.openai_fallback_models)

    def is_available(self) -> bool:
        """Check if an OpenAI API key is configured.

        Returns:
            True if INTAKE_OPENAI_API_KEY is set
        """
        return bool(self.settings.openai_api_key.strip())

    def _api_key(self, override: str | None) -> str:
        return (override or self.settings.openai_api_key).strip()

    def credentials_error(self, api_key: str | None = None) -> str | None:
        if self._api_key(api_key):
            return None
        return "Enter your OpenAI API key in Settings first"

    def _get_client(self, api_key: str) -> OpenAI:
        # Re-create the client when the key changes between calls
        if self._client is None or self._client.api_key != api_key:
            self._client = OpenAI(
                api_key=api_key,
                timeout=self.settings.request_timeout_seconds,
                max_retries=0,
            )
        return self._client

    def build_messages(self, request: CompletionRequest) -> list[dict[str, Any]]:
        """System and user messages, with the PDF attached as a file part."""
        user_content: Any = request.prompt
        if request.document:
            encoded = base64.b64encode(request.document).decode("ascii")
            user_content = [
                {"type": "text", "text": request.prompt},
                {
                    "type": "file",
                    "file": {
                        "filename": "invoice.pdf",
                        "file_data": f"data:application/pdf;base64,{encoded}",
                    },
                },
            ]
        return [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": user_content},
        ]

    def build_request_options(self, model: str, use_schema: bool) -> dict[str, Any]:
        """Model-dependent keyword arguments for chat.completions.create."""
        options: dict[str, Any] = {"model": model}
        if use_schema:
            options["response_format"] = {
                "type": "json_schema",
                "json_schema": {"name": "invoice", "schema": INVOICE_RESPONSE_SCHEMA, "strict": True},
            }
        else:
            options["response_format"] = {"type": "json_object"}

        effort = reasoning_effort_for(model)
        if effort:
            # Reasoning models reject a temperature setting
            options["reasoning_effort"] = effort
        else:
            options["temperature"] = 0
        return options

    def _generate(self, model: str, request: CompletionRequest, use_schema: bool) -> str:
        client = self._get_client(self._api_key(request.api_key))
        logger.debug(f"OpenAI request: model={model}, schema={use_schema}, pdf={request.document is not None}")

        try:
            response = client.chat.completions.create(
                messages=self.build_messages(request),  # type: ignore[arg-type]
                **self.build_request_options(model, use_schema),
            )
        except APITimeoutError as e:
            raise RemoteTimeoutError("OpenAI request timed out while processing invoice data") from e
        except APIConnectionError as e:
            raise RemoteNetworkError(
                "Could not reach OpenAI API. Check your internet connection and API key."
            ) from e
        except RateLimitError as e:
            raise RateLimitedError(e.message) from e
        except NotFoundError as e:
            raise ModelUnavailableError(e.message) from e
        except APIStatusError as e:
            logger.warning(f"OpenAI response error: model={model}, status={e.status_code}, error={e.message}")
            raise RemoteRejectedError(e.message) from e

        if not response.choices:
            raise EmptyResponseError(f"OpenAI returned an empty response for this {request.subject}")

        choice = response.choices[0]
        refusal = getattr(choice.message, "refusal", None)
        if refusal:
            raise ContentBlockedError(f"OpenAI refused this {request.subject} ({refusal})")
        if choice.finish_reason == "content_filter":
            raise ContentBlockedError(f"OpenAI blocked this {request.subject} (content_filter)")

        text = (choice.message.content or "").strip()
        if not text:
            raise EmptyResponseError(f"OpenAI returned an empty response for this {request.subject}")
        return text
