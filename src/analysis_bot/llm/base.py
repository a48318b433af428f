#!/usr/bin/env python3
# ══════════════════════════════════════════════════════════════════════════════
#  Analysis Bot - LLM Base Interface
#  Copyright (c) 2025 SIRIUS Alpha
# ══════════════════════════════════════════════════════════════════════════════
"""
Abstract base class for LLM providers.

Defines the narrow contract every cloud backend implements:
``await provider.send(request) -> LLMResponse``, raising ``ProviderError``
(with an HTTP-like ``status`` when the backend reports one) on failure.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional


class ProviderError(Exception):
    """Base exception for LLM provider errors."""

    def __init__(
        self,
        message: str,
        provider: str,
        retryable: bool = True,
        status: Optional[int] = None,
    ):
        super().__init__(message)
        self.provider = provider
        self.retryable = retryable
        self.status = status


class RateLimitError(ProviderError):
    """Raised when the provider answers with a rate-limit signal (429)."""

    def __init__(self, message: str, provider: str):
        super().__init__(message, provider=provider, retryable=True, status=429)


class ServerError(ProviderError):
    """Raised for 5xx responses."""

    pass


class ClientError(ProviderError):
    """Raised for 4xx responses other than rate limiting."""

    def __init__(self, message: str, provider: str, status: Optional[int] = 400):
        super().__init__(message, provider=provider, retryable=False, status=status)


class ProviderConnectionError(ProviderError):
    """Raised when the provider cannot be reached or the request times out."""

    pass


class ProviderUnavailableError(ProviderError):
    """Raised when a provider cannot be used at all (missing key or SDK)."""

    def __init__(self, message: str, provider: str):
        super().__init__(message, provider=provider, retryable=False)


def error_from_status(status: Optional[int], message: str, provider: str) -> ProviderError:
    """Map an HTTP-like status code onto the provider error hierarchy."""
    if status == 429:
        return RateLimitError(message, provider=provider)
    if status is None:
        return ProviderConnectionError(message, provider=provider)
    if status >= 500:
        return ServerError(message, provider=provider, status=status)
    if 400 <= status < 500:
        return ClientError(message, provider=provider, status=status)
    return ProviderError(message, provider=provider, status=status)


@dataclass
class LLMRequest:
    """
    A single request to an LLM.

    Attributes:
        prompt: User prompt (task description plus the desired JSON shape)
        system: System/style instruction
        model: Model identifier (provider default when empty)
        web_search: Enable the provider's built-in web search tool
        structured: Ask for a bare JSON document instead of free text
        max_tokens: Maximum tokens to generate
        temperature: Sampling temperature
    """

    prompt: str
    system: str = ""
    model: str = ""
    web_search: bool = False
    structured: bool = False
    max_tokens: int = 8000
    temperature: float = 0.3


@dataclass
class LLMResponse:
    """
    Response from an LLM provider.

    Attributes:
        text: Generated text content
        tokens_used: Number of tokens consumed (input + output)
        generation_time: Time taken for generation in seconds
        model: Model identifier used
        provider: Provider name
        usage: Raw token usage reported by the provider
    """

    text: str
    tokens_used: int = 0
    generation_time: float = 0.0
    model: str = ""
    provider: str = ""
    usage: dict = field(default_factory=dict)

    def __str__(self) -> str:
        return self.text

    def __repr__(self) -> str:
        return (
            f"LLMResponse(provider={self.provider!r}, model={self.model!r}, "
            f"tokens={self.tokens_used}, time={self.generation_time:.2f}s)"
        )


class LLMProvider(ABC):
    """
    Abstract base class for LLM providers.

    Providers are thin adapters: they translate an LLMRequest into one SDK
    call and SDK failures into ProviderError. Retrying is the caller's job.
    """

    name: str = "base"

    def __init__(self, model: str = ""):
        self.model = model

    @abstractmethod
    async def send(self, request: LLMRequest) -> LLMResponse:
        """
        Send one request to the provider.

        Raises:
            ProviderError: On any failure, with ``status`` when known
        """
        pass

    @property
    def is_available(self) -> bool:
        """Whether the provider has what it needs (key, SDK) to send."""
        return True

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} model={self.model!r}>"
