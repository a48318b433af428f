#!/usr/bin/env python3
# ══════════════════════════════════════════════════════════════════════════════
#  Analysis Bot - Retry Tests
#  Copyright (c) 2025 SIRIUS Alpha
# ══════════════════════════════════════════════════════════════════════════════
"""
Tests for RetryingCaller, RetryPolicy and failure classification.
"""

import asyncio

import pytest
from conftest import SleepRecorder

from analysis_bot.decoding import AnalysisParseError
from analysis_bot.llm.base import ClientError, ProviderUnavailableError, RateLimitError, ServerError
from analysis_bot.retry import ErrorKind, RetryExhaustedError, RetryingCaller, RetryPolicy, classify


def failing(errors, value="ok"):
    """Operation that raises each error in turn, then returns ``value``."""
    errors = list(errors)
    calls = {"count": 0}

    async def operation():
        calls["count"] += 1
        if errors:
            raise errors.pop(0)
        return value

    return operation, calls


# ══════════════════════════════════════════════════════════════════════════════
# POLICY
# ══════════════════════════════════════════════════════════════════════════════


class TestRetryPolicy:
    """Tests for delay computation."""

    def test_backoff_doubles_until_cap(self):
        policy = RetryPolicy(base_delay=1.0, max_delay=30.0)
        delays = [policy.backoff_delay(n) for n in range(1, 8)]
        assert delays == [1.0, 2.0, 4.0, 8.0, 16.0, 30.0, 30.0]

    def test_rate_limit_delay_is_constant(self):
        policy = RetryPolicy(rate_limit_delay=60.0)
        assert {policy.delay_for(ErrorKind.RATE_LIMITED, n) for n in range(1, 6)} == {60.0}

    def test_transient_uses_backoff(self):
        policy = RetryPolicy(base_delay=0.5, max_delay=3.0)
        assert policy.delay_for(ErrorKind.TRANSIENT, 3) == 2.0

    def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)


# ══════════════════════════════════════════════════════════════════════════════
# CLASSIFICATION
# ══════════════════════════════════════════════════════════════════════════════


class StatusCodeError(Exception):
    def __init__(self, status_code):
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code


class TestClassify:
    """Tests for error classification."""

    @pytest.mark.parametrize(
        "error, kind",
        [
            (RateLimitError("slow down", provider="x"), ErrorKind.RATE_LIMITED),
            (StatusCodeError(429), ErrorKind.RATE_LIMITED),
            (ServerError("overloaded", provider="x", status=529), ErrorKind.TRANSIENT),
            (StatusCodeError(502), ErrorKind.TRANSIENT),
            (ConnectionError("reset"), ErrorKind.TRANSIENT),
            (asyncio.TimeoutError(), ErrorKind.TRANSIENT),
            (ClientError("bad request", provider="x", status=400), ErrorKind.CLIENT),
            (StatusCodeError(404), ErrorKind.CLIENT),
            (ProviderUnavailableError("no key", provider="x"), ErrorKind.CLIENT),
            (AnalysisParseError("no json"), ErrorKind.PARSE),
        ],
    )
    def test_classify(self, error, kind):
        assert classify(error) == kind


# ══════════════════════════════════════════════════════════════════════════════
# CALLER
# ══════════════════════════════════════════════════════════════════════════════


class TestRetryingCaller:
    """Tests for the retry loop."""

    @pytest.mark.asyncio
    async def test_two_transient_failures_then_success(self, caller, recorder):
        operation, calls = failing(
            [ServerError("503", provider="x", status=503), ServerError("503", provider="x", status=503)],
            value={"spot_price": 3280},
        )

        result = await caller.call(operation)

        assert result.success
        assert result.value == {"spot_price": 3280}
        assert result.attempts == 3
        assert calls["count"] == 3
        assert recorder.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_client_error_stops_after_one_attempt(self, caller, recorder):
        operation, calls = failing([ClientError("invalid model", provider="x", status=400)])

        result = await caller.call(operation)

        assert not result.success
        assert result.attempts == 1
        assert result.kind == ErrorKind.CLIENT
        assert calls["count"] == 1
        assert recorder.delays == []

    @pytest.mark.asyncio
    async def test_parse_error_is_not_retried(self, caller, recorder):
        operation, calls = failing([AnalysisParseError("garbage")])

        result = await caller.call(operation)

        assert result.attempts == 1
        assert result.kind == ErrorKind.PARSE
        assert recorder.delays == []

    @pytest.mark.asyncio
    async def test_rate_limit_waits_fixed_delay(self, recorder):
        caller = RetryingCaller(RetryPolicy(max_attempts=4, rate_limit_delay=60.0), sleep=recorder)
        operation, _ = failing([RateLimitError("429", provider="x") for _ in range(3)])

        result = await caller.call(operation)

        assert result.success
        assert recorder.delays == [60.0, 60.0, 60.0]

    @pytest.mark.asyncio
    async def test_single_attempt_policy_never_retries(self, recorder):
        caller = RetryingCaller(RetryPolicy(max_attempts=1), sleep=recorder)
        operation, calls = failing([ServerError("500", provider="x", status=500)])

        result = await caller.call(operation)

        assert not result.success
        assert result.attempts == 1
        assert calls["count"] == 1
        assert recorder.delays == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("max_attempts", [1, 2, 3, 5])
    async def test_attempts_never_exceed_maximum(self, max_attempts):
        caller = RetryingCaller(RetryPolicy(max_attempts=max_attempts), sleep=SleepRecorder())
        operation, calls = failing([ConnectionError("down") for _ in range(10)])

        result = await caller.call(operation)

        assert not result.success
        assert result.attempts == max_attempts
        assert calls["count"] == max_attempts

    @pytest.mark.asyncio
    async def test_unwrap_raises_with_attempt_count(self, caller):
        error = ServerError("500", provider="x", status=500)
        operation, _ = failing([error, error, error])

        result = await caller.call(operation)

        with pytest.raises(RetryExhaustedError) as exc_info:
            result.unwrap()
        assert exc_info.value.attempts == 3
        assert exc_info.value.last_error is error

    @pytest.mark.asyncio
    async def test_timeout_counts_as_transient(self, recorder):
        caller = RetryingCaller(RetryPolicy(max_attempts=2, timeout=0.05), sleep=recorder)
        calls = {"count": 0}

        async def slow_then_fast():
            calls["count"] += 1
            if calls["count"] == 1:
                await asyncio.sleep(5)
            return "done"

        result = await caller.call(slow_then_fast)

        assert result.success
        assert result.value == "done"
        assert result.attempts == 2
        assert recorder.delays == [1.0]

    @pytest.mark.asyncio
    async def test_call_or_raise_returns_value(self, caller):
        operation, _ = failing([ConnectionError("blip")], value=7)
        assert await caller.call_or_raise(operation) == 7
