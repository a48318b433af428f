#!/usr/bin/env python3
# ══════════════════════════════════════════════════════════════════════════════
#  Analysis Bot - LLM Provider Factory
#  Copyright (c) 2025 SIRIUS Alpha
# ══════════════════════════════════════════════════════════════════════════════
"""
Factory for creating LLM providers based on configuration.
"""

import logging
from typing import List, Optional

from .base import LLMProvider, ProviderError
from .claude_provider import ClaudeProvider
from .gemini_provider import GeminiProvider
from .openai_provider import OpenAIProvider

logger = logging.getLogger(__name__)

PROVIDER_NAMES = ["claude", "openai", "gemini"]

_ALIASES = {
    "anthropic": "claude",
    "chatgpt": "openai",
    "gpt": "openai",
    "google": "gemini",
}


def create_provider(provider_type: str, **kwargs) -> LLMProvider:
    """
    Create an LLM provider instance.

    Args:
        provider_type: "claude", "openai" or "gemini"
        **kwargs: api_key, model, timeout

    Returns:
        Configured LLMProvider instance

    Raises:
        ProviderError: If provider type is unknown
    """
    provider_type = _ALIASES.get(provider_type.lower(), provider_type.lower())

    if provider_type == "claude":
        return ClaudeProvider(
            api_key=kwargs.get("api_key", ""),
            model=kwargs.get("model") or "claude-sonnet-4-20250514",
            timeout=kwargs.get("timeout", 180.0),
        )

    elif provider_type == "openai":
        return OpenAIProvider(
            api_key=kwargs.get("api_key", ""),
            model=kwargs.get("model") or "gpt-4.1",
            timeout=kwargs.get("timeout", 180.0),
        )

    elif provider_type == "gemini":
        return GeminiProvider(
            api_key=kwargs.get("api_key", ""),
            model=kwargs.get("model") or "gemini-2.5-pro",
            timeout=kwargs.get("timeout", 180.0),
        )

    else:
        raise ProviderError(
            f"Unknown provider type: {provider_type}\n" f"Available: {', '.join(PROVIDER_NAMES)}",
            provider="factory",
            retryable=False,
        )


def create_provider_from_config(config, provider_type: str) -> LLMProvider:
    """
    Create an LLM provider from a Config object.

    Args:
        config: Config object with llm settings
        provider_type: Which provider to build

    Returns:
        Configured LLMProvider instance
    """
    llm = config.llm
    provider_type = _ALIASES.get(provider_type.lower(), provider_type.lower())
    models = {
        "claude": llm.claude_model,
        "openai": llm.openai_model,
        "gemini": llm.gemini_model,
    }

    return create_provider(
        provider_type,
        api_key=llm.api_key_for(provider_type),
        model=models.get(provider_type, ""),
        timeout=llm.timeout,
    )


def create_optional_provider(config, provider_type: Optional[str]) -> Optional[LLMProvider]:
    """
    Build a provider only when it is named and has credentials.

    Used where an LLM is an enhancement (merger, scrape analysis) and the
    caller has a deterministic path without one.
    """
    if not provider_type:
        return None

    try:
        provider = create_provider_from_config(config, provider_type)
    except ProviderError as e:
        logger.warning(f"Provider {provider_type} unavailable: {e}")
        return None

    if not provider.is_available:
        logger.warning(f"Provider {provider_type} has no API key configured")
        return None

    return provider


def available_providers(config) -> List[str]:
    """List provider names that have an API key configured."""
    return [name for name in PROVIDER_NAMES if config.llm.api_key_for(name)]
