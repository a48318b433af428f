#!/usr/bin/env python3
# ══════════════════════════════════════════════════════════════════════════════
#  Analysis Bot - Retry / Backoff
#  Copyright (c) 2025 SIRIUS Alpha
# ══════════════════════════════════════════════════════════════════════════════
"""
Bounded retry for unreliable network operations (LLM calls, page loads).

Failures are classified before deciding whether and how long to wait:
- rate limited (429): fixed long delay, retried
- transient (5xx, timeouts, connection errors): exponential backoff, retried
- client (other 4xx, non-retryable provider errors): fail immediately
- parse errors: never retried, the caller decides on a fallback
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from .decoding import AnalysisParseError

logger = logging.getLogger(__name__)


class ErrorKind(str, Enum):
    """Failure classes used to pick a retry strategy."""

    RATE_LIMITED = "rate_limited"
    TRANSIENT = "transient"
    CLIENT = "client"
    PARSE = "parse"


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry configuration.

    Attributes:
        max_attempts: Total attempts including the first (>= 1)
        base_delay: First backoff delay in seconds
        rate_limit_delay: Fixed delay after a rate-limit response
        max_delay: Cap on exponential growth
        timeout: Optional wall-clock bound on each attempt, in seconds
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    rate_limit_delay: float = 60.0
    max_delay: float = 30.0
    timeout: Optional[float] = None

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")

    def backoff_delay(self, attempt: int) -> float:
        """Delay after failed attempt N (1-based): min(base * 2^(N-1), cap)."""
        return min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)

    def delay_for(self, kind: ErrorKind, attempt: int) -> float:
        """Delay before the next attempt after a failure of the given kind."""
        if kind == ErrorKind.RATE_LIMITED:
            return self.rate_limit_delay
        return self.backoff_delay(attempt)


class RetryExhaustedError(Exception):
    """Terminal failure of a retried operation."""

    def __init__(self, message: str, attempts: int, last_error: Optional[BaseException] = None):
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error


def status_of(error: BaseException) -> Optional[int]:
    """Extract an HTTP-like status code from an exception, if any."""
    for attr in ("status", "status_code", "code"):
        value = getattr(error, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return None


def classify(error: BaseException) -> ErrorKind:
    """Classify a failure to decide whether it is worth retrying."""
    if isinstance(error, AnalysisParseError):
        return ErrorKind.PARSE

    status = status_of(error)
    if status == 429:
        return ErrorKind.RATE_LIMITED

    if getattr(error, "retryable", True) is False:
        return ErrorKind.CLIENT

    if status is not None and 400 <= status < 500:
        return ErrorKind.CLIENT

    # 5xx, timeouts, dropped connections and unknown failures
    return ErrorKind.TRANSIENT


@dataclass
class CallResult:
    """
    Outcome of a retried call.

    Attributes:
        value: Operation result on success
        success: Whether any attempt succeeded
        error: Last error on failure
        attempts: Number of attempts made
        kind: Classification of the last error
    """

    value: Any = None
    success: bool = False
    error: Optional[BaseException] = None
    attempts: int = 0
    kind: Optional[ErrorKind] = None

    def unwrap(self) -> Any:
        """Return the value or raise RetryExhaustedError."""
        if self.success:
            return self.value
        raise RetryExhaustedError(
            f"Failed after {self.attempts} attempt(s): {self.error}",
            attempts=self.attempts,
            last_error=self.error,
        ) from self.error


class RetryingCaller:
    """
    Wraps async operations with classified retry and backoff.

    The sleep coroutine is injectable so tests can record delays instead of
    waiting them out.
    """

    def __init__(
        self,
        policy: Optional[RetryPolicy] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    ):
        self.policy = policy or RetryPolicy()
        self._sleep = sleep or asyncio.sleep

    async def _attempt(self, operation: Callable[[], Awaitable[Any]], policy: RetryPolicy) -> Any:
        if policy.timeout:
            return await asyncio.wait_for(operation(), timeout=policy.timeout)
        return await operation()

    async def call(
        self,
        operation: Callable[[], Awaitable[Any]],
        policy: Optional[RetryPolicy] = None,
        description: str = "operation",
    ) -> CallResult:
        """
        Run ``operation`` until it succeeds or the policy says stop.

        Args:
            operation: Zero-argument callable returning a fresh awaitable
            policy: Overrides the caller's default policy for this call
            description: Label used in log messages

        Returns:
            CallResult (never raises for operation failures)
        """
        policy = policy or self.policy
        result = CallResult()

        for attempt in range(1, policy.max_attempts + 1):
            result.attempts = attempt
            try:
                result.value = await self._attempt(operation, policy)
                result.success = True
                result.error = None
                result.kind = None
                if attempt > 1:
                    logger.info(f"{description} succeeded on attempt {attempt}/{policy.max_attempts}")
                return result
            except asyncio.CancelledError:
                raise
            except Exception as e:
                kind = classify(e)
                result.error = e
                result.kind = kind

                if kind in (ErrorKind.CLIENT, ErrorKind.PARSE):
                    logger.error(f"{description} failed with {kind.value} error, not retrying: {e}")
                    return result

                if attempt >= policy.max_attempts:
                    logger.error(f"{description} failed after {attempt} attempt(s): {e}")
                    return result

                delay = policy.delay_for(kind, attempt)
                logger.warning(
                    f"{description} {kind.value} error: {e or type(e).__name__} - "
                    f"retrying {attempt}/{policy.max_attempts} after {delay}s"
                )
                await self._sleep(delay)

        return result

    async def call_or_raise(
        self,
        operation: Callable[[], Awaitable[Any]],
        policy: Optional[RetryPolicy] = None,
        description: str = "operation",
    ) -> Any:
        """Like call(), but return the value or raise RetryExhaustedError."""
        result = await self.call(operation, policy=policy, description=description)
        return result.unwrap()
