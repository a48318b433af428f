#!/usr/bin/env python3
# ══════════════════════════════════════════════════════════════════════════════
#  Analysis Bot - LLM Provider Abstraction
#  Copyright (c) 2025 SIRIUS Alpha
# ══════════════════════════════════════════════════════════════════════════════
"""
LLM provider abstraction layer.

Supports the cloud backends the analysis pipelines use:
- Claude (Anthropic Messages API + web search tool)
- OpenAI (Responses API + web_search_preview tool)
- Gemini (google-genai + Google Search grounding)

Every provider exposes ``await send(LLMRequest) -> LLMResponse``.
"""

from .base import (
    ClientError,
    LLMProvider,
    LLMRequest,
    LLMResponse,
    ProviderConnectionError,
    ProviderError,
    ProviderUnavailableError,
    RateLimitError,
    ServerError,
)
from .factory import (
    PROVIDER_NAMES,
    available_providers,
    create_optional_provider,
    create_provider,
    create_provider_from_config,
)

__all__ = [
    "LLMProvider",
    "LLMRequest",
    "LLMResponse",
    "ProviderError",
    "RateLimitError",
    "ServerError",
    "ClientError",
    "ProviderConnectionError",
    "ProviderUnavailableError",
    "create_provider",
    "create_provider_from_config",
    "create_optional_provider",
    "available_providers",
    "PROVIDER_NAMES",
]
