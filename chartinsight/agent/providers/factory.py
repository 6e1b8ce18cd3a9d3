"""AI Provider factory for creating and managing provider instances.

This module provides factory functions for creating AI providers from the
application settings, with singleton caching for efficiency.
"""

import logging
from typing import Dict, List

from chartinsight.config import get_settings
from chartinsight.agent.providers import (
    AIProvider,
    ModelProvider,
    ProviderConfig,
)
from chartinsight.agent.providers.claude_provider import ClaudeProvider
from chartinsight.agent.providers.grok_provider import GROK_BASE_URL, GrokProvider

logger = logging.getLogger(__name__)

# Singleton cache for provider instances
_provider_cache: Dict[ModelProvider, AIProvider] = {}


def get_provider_config(provider: ModelProvider) -> ProviderConfig:
    """Get the configuration for a specific provider.

    Reads API keys and model names from the application settings.

    Args:
        provider: The provider to get configuration for

    Returns:
        ProviderConfig with all settings populated

    Raises:
        ValueError: If the provider's API key is not configured
    """
    settings = get_settings()

    if provider == ModelProvider.CLAUDE:
        if not settings.claude_api_key:
            raise ValueError(
                "Claude API key not configured. "
                "Set CLAUDE_API_KEY in your environment or .env file."
            )
        return ProviderConfig(
            provider=provider,
            planning_model=settings.claude_model_planning,
            fast_model=settings.claude_model_fast,
            api_key=settings.claude_api_key,
            base_url=None,
        )

    elif provider == ModelProvider.GROK:
        if not settings.grok_api_key:
            raise ValueError(
                "Grok API key not configured. "
                "Set GROK_API_KEY in your environment or .env file."
            )
        return ProviderConfig(
            provider=provider,
            planning_model=settings.grok_model_planning,
            fast_model=settings.grok_model_fast,
            api_key=settings.grok_api_key,
            base_url=GROK_BASE_URL,
        )

    else:
        raise ValueError(f"Unknown provider: {provider}")


def create_provider(provider: ModelProvider) -> AIProvider:
    """Create a new provider instance (not cached).

    Raises:
        ValueError: If the provider is not configured or unknown
    """
    config = get_provider_config(provider)

    if provider == ModelProvider.CLAUDE:
        return ClaudeProvider(config)
    elif provider == ModelProvider.GROK:
        return GrokProvider(config)
    else:
        raise ValueError(f"Unknown provider: {provider}")


def get_provider(provider: ModelProvider) -> AIProvider:
    """Get a cached provider instance (singleton).

    Args:
        provider: The provider type to get

    Returns:
        A cached AIProvider instance

    Raises:
        ValueError: If the provider is not configured or unknown
    """
    if provider not in _provider_cache:
        logger.info(f"Creating cached {provider.value} provider instance")
        _provider_cache[provider] = create_provider(provider)

    return _provider_cache[provider]


async def close_providers() -> None:
    """Close and forget every cached provider."""
    for provider in list(_provider_cache.values()):
        await provider.close()
    _provider_cache.clear()


def clear_provider_cache() -> None:
    """Clear the provider cache.

    Call this when configuration changes or during testing.
    """
    _provider_cache.clear()
    logger.info("Provider cache cleared")


def get_default_provider() -> ModelProvider:
    """Get the default AI provider based on configuration.

    An explicit DEFAULT_PROVIDER wins; otherwise Claude if configured,
    then Grok.

    Returns:
        The default ModelProvider
    """
    settings = get_settings()

    if settings.default_provider:
        try:
            return ModelProvider(settings.default_provider.lower())
        except ValueError:
            logger.warning(f"Unknown DEFAULT_PROVIDER '{settings.default_provider}', ignoring")

    if settings.claude_api_key:
        return ModelProvider.CLAUDE

    if settings.grok_api_key:
        return ModelProvider.GROK

    # Neither configured - will raise error when actually used
    logger.warning("No AI provider API key configured")
    return ModelProvider.CLAUDE


def get_available_providers() -> List[ModelProvider]:
    """Get a list of providers that are properly configured."""
    return [provider for provider in ModelProvider if is_provider_available(provider)]


def is_provider_available(provider: ModelProvider) -> bool:
    """Check if a provider is configured and available.

    Args:
        provider: The provider to check

    Returns:
        True if the provider's API key is configured
    """
    settings = get_settings()

    if provider == ModelProvider.CLAUDE:
        return bool(settings.claude_api_key)
    elif provider == ModelProvider.GROK:
        return bool(settings.grok_api_key)

    return False
