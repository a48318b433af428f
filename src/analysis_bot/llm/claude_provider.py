#!/usr/bin/env python3
# ══════════════════════════════════════════════════════════════════════════════
#  Analysis Bot - Claude Provider
#  Copyright (c) 2025 SIRIUS Alpha
# ══════════════════════════════════════════════════════════════════════════════
"""
Anthropic Claude provider with the server-side web search tool.
"""

import logging
import time
from typing import Optional

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

WEB_SEARCH_TOOL = {"type": "web_search_20250305", "name": "web_search", "max_uses": 8}


class ClaudeProvider(LLMProvider):
    """
    Claude provider using the async Anthropic Messages API.
    """

    name = "claude"

    def __init__(
        self,
        api_key: str = "",
        model: str = "claude-sonnet-4-20250514",
        timeout: float = 180.0,
    ):
        super().__init__(model=model)
        self.api_key = api_key
        self.timeout = timeout
        self._client = None

    @property
    def is_available(self) -> bool:
        return bool(self.api_key)

    def _get_client(self):
        """Get or create the Anthropic client."""
        if self._client is None:
            if not self.api_key:
                raise ProviderUnavailableError("ANTHROPIC_API_KEY is not set", provider=self.name)
            try:
                import anthropic
            except ImportError:
                raise ProviderUnavailableError(
                    "anthropic library not installed. Install with:\n  pip install anthropic",
                    provider=self.name,
                )
            self._client = anthropic.AsyncAnthropic(api_key=self.api_key, timeout=self.timeout, max_retries=0)
        return self._client

    async def send(self, request: LLMRequest) -> LLMResponse:
        client = self._get_client()
        import anthropic

        model = request.model or self.model

        params = {
            "model": model,
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
            "messages": [{"role": "user", "content": request.prompt}],
        }
        if request.system:
            params["system"] = request.system
        if request.web_search:
            params["tools"] = [WEB_SEARCH_TOOL]

        start = time.time()
        try:
            message = await client.messages.create(**params)
        except anthropic.APIStatusError as e:
            raise error_from_status(e.status_code, f"Claude request failed: {e}", provider=self.name)
        except anthropic.APIConnectionError as e:
            raise ProviderConnectionError(f"Claude connection failed: {e}", provider=self.name)
        elapsed = time.time() - start

        # Web search responses interleave tool blocks with text blocks
        text = "".join(block.text for block in message.content if getattr(block, "type", "") == "text")
        if not text.strip():
            raise ProviderError("Claude returned no text content", provider=self.name, retryable=True)

        usage = _usage_dict(message)
        logger.debug(f"Claude usage: {usage}")

        return LLMResponse(
            text=text,
            tokens_used=usage.get("input_tokens", 0) + usage.get("output_tokens", 0),
            generation_time=elapsed,
            model=model,
            provider=self.name,
            usage=usage,
        )


def _usage_dict(message) -> dict:
    usage: Optional[object] = getattr(message, "usage", None)
    if usage is None:
        return {}
    return {
        "input_tokens": getattr(usage, "input_tokens", 0) or 0,
        "output_tokens": getattr(usage, "output_tokens", 0) or 0,
    }
