#!/usr/bin/env python3
# ══════════════════════════════════════════════════════════════════════════════
#  Analysis Bot - Gemini Provider
#  Copyright (c) 2025 SIRIUS Alpha
# ══════════════════════════════════════════════════════════════════════════════
"""
Google Gemini provider using the ``google.genai`` client.

Grounding with Google Search is enabled through the ``google_search`` tool.
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


class GeminiProvider(LLMProvider):
    """Google Gemini API provider."""

    name = "gemini"

    def __init__(self, api_key: str = "", model: str = "gemini-2.5-pro", timeout: float = 180.0):
        super().__init__(model=model)
        self.api_key = api_key
        self.timeout = timeout
        self._client = None

    @property
    def is_available(self) -> bool:
        return bool(self.api_key)

    def _get_client(self):
        """Get or create the genai client."""
        if self._client is None:
            if not self.api_key:
                raise ProviderUnavailableError("GEMINI_API_KEY is not set", provider=self.name)
            try:
                from google import genai
            except ImportError:
                raise ProviderUnavailableError(
                    "google-genai library not installed. Install with:\n  pip install google-genai",
                    provider=self.name,
                )
            self._client = genai.Client(api_key=self.api_key)
        return self._client

    async def send(self, request: LLMRequest) -> LLMResponse:
        client = self._get_client()
        from google.genai import errors, types

        model = request.model or self.model

        config = types.GenerateContentConfig(
            max_output_tokens=request.max_tokens,
            temperature=request.temperature,
            http_options=types.HttpOptions(timeout=int(self.timeout * 1000)),
        )
        if request.system:
            config.system_instruction = request.system
        if request.web_search:
            config.tools = [types.Tool(google_search=types.GoogleSearch())]
        elif request.structured:
            config.response_mime_type = "application/json"

        start = time.time()
        try:
            response = await client.aio.models.generate_content(model=model, contents=request.prompt, config=config)
        except errors.APIError as e:
            raise error_from_status(e.code, f"Gemini request failed: {e}", provider=self.name)
        except Exception as e:
            # httpx transport errors and timeouts surface as plain exceptions
            raise ProviderConnectionError(f"Gemini generation failed: {e}", provider=self.name)
        elapsed = time.time() - start

        text = response.text or ""
        if not text.strip():
            raise ProviderError("Gemini returned no text", provider=self.name, retryable=True)

        usage = {}
        metadata = getattr(response, "usage_metadata", None)
        if metadata is not None:
            usage = {
                "input_tokens": metadata.prompt_token_count or 0,
                "output_tokens": metadata.candidates_token_count or 0,
            }

        return LLMResponse(
            text=text,
            tokens_used=sum(usage.values()),
            generation_time=elapsed,
            model=model,
            provider=self.name,
            usage=usage,
        )
