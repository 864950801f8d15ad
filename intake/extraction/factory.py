"""Factory for creating remote providers based on configuration.

Implements Factory Pattern for provider selection with registry pattern for extensibility.

Based on:
- Factory Pattern: https://refactoring.guru/design-patterns/factory-method/python
- Registry Pattern: Python Cookbook 3rd Edition, Recipe 9.22
"""

import logging

from intake.extraction.base import RemoteProvider
from intake.extraction.gemini_provider import GeminiProvider
from intake.extraction.ollama_provider import OllamaProvider
from intake.extraction.openai_provider import OpenAIProvider
from intake.shared.config import Settings

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Registry of available remote providers.

    Maps provider names to their implementation classes. Supports runtime
    registration of new providers.
    """

    _providers: dict[str, type[RemoteProvider]] = {
        "gemini": GeminiProvider,
        "openai": OpenAIProvider,
        "ollama": OllamaProvider,
    }

    @classmethod
    def register(cls, name: str, provider_class: type[RemoteProvider]) -> None:
        """Register a new provider.

        Args:
            name: Provider identifier (must match Settings.extraction_provider)
            provider_class: Class implementing RemoteProvider
        """
        cls._providers[name] = provider_class
        logger.info(f"Registered extraction provider: {name}")

    @classmethod
    def get_provider_class(cls, name: str) -> type[RemoteProvider]:
        """Get provider class by name.

        Raises:
            ValueError: If provider not found in registry
        """
        if name not in cls._providers:
            available = ", ".join(cls._providers.keys())
            raise ValueError(f"Unknown extraction provider: '{name}'. Available providers: {available}")
        return cls._providers[name]

    @classmethod
    def list_providers(cls) -> list[str]:
        return list(cls._providers.keys())


def create_remote_provider(settings: Settings) -> RemoteProvider:
    """Instantiate the provider named by settings.extraction_provider.

    Logs a warning when the provider is not fully configured; requests can
    still supply their own API key, and the local fallback still runs.

    Args:
        settings: Application settings

    Returns:
        Configured provider instance

    Raises:
        ValueError: If configured provider is unknown
    """
    provider_name = settings.extraction_provider
    provider = ProviderRegistry.get_provider_class(provider_name)(settings)

    if not provider.is_available():
        logger.warning(
            f"Extraction provider '{provider_name}' is not fully available. "
            f"Check configuration (e.g., API keys, server URL)."
        )

    logger.info(f"Created extraction provider: {provider_name}")
    return provider
