#!/usr/bin/env python3
# ══════════════════════════════════════════════════════════════════════════════
#  Analysis Bot - OpenAI Provider
#  Copyright (c) 2025 SIRIUS Alpha
# ══════════════════════════════════════════════════════════════════════════════
"""
OpenAI provider built on the Responses API.

Web search uses the ``web_search_preview`` tool. Structured requests without
a tool use JSON mode so the answer is a bare JSON document.
"""

import logging
import time

from .base import (
    LLMProvider,
    LLMRequest,
    LLMResponse,
    ProviderConnectionError,
    ProviderError,
    ProviderUnavailableError,
    error_from_status,
)

logger = logging.getLogger(__name__)

WEB_SEARCH_TOOL = {
    "type": "web_search_preview",
    "search_context_size": "high",
    "user_location": {
        "type": "approximate",
        "country": "US",
        "city": "New York",
        "timezone": "America/New_York",
    },
}


class OpenAIProvider(LLMProvider):
    """
    OpenAI provider using the async client.
    """

    name = "openai"

    def __init__(self, api_key: str = "", model: str = "gpt-4.1", timeout: float = 180.0):
        super().__init__(model=model)
        self.api_key = api_key
        self.timeout = timeout
        self._client = None

    @property
    def is_available(self) -> bool:
        return bool(self.api_key)

    def _get_client(self):
        """Get or create the OpenAI client."""
        if self._client is None:
            if not self.api_key:
                raise ProviderUnavailableError("OPENAI_API_KEY is not set", provider=self.name)
            try:
                from openai import AsyncOpenAI
            except ImportError:
                raise ProviderUnavailableError(
                    "openai library not installed. Install with:\n  pip install openai",
                    provider=self.name,
                )
            self._client = AsyncOpenAI(api_key=self.api_key, timeout=self.timeout, max_retries=0)
        return self._client

    async def send(self, request: LLMRequest) -> LLMResponse:
        client = self._get_client()
        import openai

        model = request.model or self.model

        params = {
            "model": model,
            "input": request.prompt,
            "max_output_tokens": request.max_tokens,
            "temperature": request.temperature,
        }
        if request.system:
            params["instructions"] = request.system
        if request.web_search:
            params["tools"] = [WEB_SEARCH_TOOL]
        elif request.structured:
            params["text"] = {"format": {"type": "json_object"}}

        start = time.time()
        try:
            response = await client.responses.create(**params)
        except openai.APIStatusError as e:
            raise error_from_status(e.status_code, f"OpenAI request failed: {e}", provider=self.name)
        except openai.APIConnectionError as e:
            raise ProviderConnectionError(f"OpenAI connection failed: {e}", provider=self.name)
        elapsed = time.time() - start

        text = response.output_text or ""
        if not text.strip():
            raise ProviderError("OpenAI returned no text output", provider=self.name, retryable=True)

        usage = {}
        if getattr(response, "usage", None) is not None:
            usage = {
                "input_tokens": response.usage.input_tokens or 0,
                "output_tokens": response.usage.output_tokens or 0,
            }

        return LLMResponse(
            text=text,
            tokens_used=sum(usage.values()),
            generation_time=elapsed,
            model=model,
            provider=self.name,
            usage=usage,
        )
