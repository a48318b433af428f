#!/usr/bin/env python3
# ══════════════════════════════════════════════════════════════════════════════
#  Analysis Bot - LLM Provider Tests
#  Copyright (c) 2025 SIRIUS Alpha
# ══════════════════════════════════════════════════════════════════════════════
"""
Offline tests for the provider factory and error mapping.
"""

import pytest

from analysis_bot.llm import (
    ClientError,
    LLMRequest,
    ProviderConnectionError,
    ProviderError,
    ProviderUnavailableError,
    RateLimitError,
    ServerError,
    create_provider,
)
from analysis_bot.llm.base import error_from_status
from analysis_bot.llm.claude_provider import ClaudeProvider
from analysis_bot.llm.gemini_provider import GeminiProvider
from analysis_bot.llm.openai_provider import OpenAIProvider


class TestFactory:
    @pytest.mark.parametrize(
        "name, cls",
        [
            ("claude", ClaudeProvider),
            ("anthropic", ClaudeProvider),
            ("OpenAI", OpenAIProvider),
            ("gpt", OpenAIProvider),
            ("gemini", GeminiProvider),
        ],
    )
    def test_create(self, name, cls):
        assert isinstance(create_provider(name, api_key="key"), cls)

    def test_model_override(self):
        provider = create_provider("openai", api_key="key", model="gpt-4o-mini")
        assert provider.model == "gpt-4o-mini"

    def test_unknown_provider(self):
        with pytest.raises(ProviderError):
            create_provider("mistral")

    def test_availability_follows_key(self):
        assert create_provider("claude", api_key="key").is_available
        assert not create_provider("claude").is_available


class TestErrorMapping:
    @pytest.mark.parametrize(
        "status, cls",
        [
            (429, RateLimitError),
            (500, ServerError),
            (529, ServerError),
            (400, ClientError),
            (404, ClientError),
            (None, ProviderConnectionError),
        ],
    )
    def test_error_from_status(self, status, cls):
        error = error_from_status(status, "boom", provider="x")
        assert type(error) is cls

    def test_client_errors_are_not_retryable(self):
        assert not error_from_status(403, "forbidden", provider="x").retryable
        assert error_from_status(503, "unavailable", provider="x").retryable


class TestMissingKey:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("name", ["claude", "openai", "gemini"])
    async def test_send_without_key(self, name):
        provider = create_provider(name)

        with pytest.raises(ProviderUnavailableError) as exc_info:
            await provider.send(LLMRequest(prompt="gold?"))
        assert not exc_info.value.retryable
