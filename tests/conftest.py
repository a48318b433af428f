#!/usr/bin/env python3
# ══════════════════════════════════════════════════════════════════════════════
#  Analysis Bot - Shared Test Fixtures
#  Copyright (c) 2025 SIRIUS Alpha
# ══════════════════════════════════════════════════════════════════════════════
"""
Fakes for the network collaborators (LLM providers, browser pages) plus
common fixtures.
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from analysis_bot.llm.base import LLMProvider, LLMRequest, LLMResponse
from analysis_bot.models import AnalysisRecord
from analysis_bot.retry import RetryingCaller, RetryPolicy
from analysis_bot.store import ResultStore

# ══════════════════════════════════════════════════════════════════════════════
# FAKES
# ══════════════════════════════════════════════════════════════════════════════


class SleepRecorder:
    """Async sleep replacement that records requested delays."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class FakeProvider(LLMProvider):
    """Provider that replays queued texts or raises queued exceptions."""

    def __init__(self, responses, name: str = "fake"):
        super().__init__(model="fake-model")
        self.name = name
        self.responses = list(responses)
        self.requests: List[LLMRequest] = []

    async def send(self, request: LLMRequest) -> LLMResponse:
        self.requests.append(request)
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return LLMResponse(text=item, tokens_used=42, generation_time=0.5, model=self.model, provider=self.name)


class FakePage:
    """PageSession serving canned HTML; unknown URLs fail to load."""

    def __init__(self, pages: Dict[str, str]):
        self.pages = pages
        self.visited: List[str] = []
        self.closed = False
        self._current: Optional[str] = None

    async def goto(self, url: str, timeout_ms: int) -> bool:
        self.visited.append(url)
        if url not in self.pages:
            return False
        self._current = url
        return True

    async def content(self) -> str:
        return self.pages[self._current]

    async def close(self) -> None:
        self.closed = True


class FakeBrowser:
    def __init__(self, pages: Dict[str, str]):
        self.pages = pages
        self.opened: List[FakePage] = []

    async def new_page(self) -> FakePage:
        page = FakePage(self.pages)
        self.opened.append(page)
        return page


# ══════════════════════════════════════════════════════════════════════════════
# FIXTURES
# ══════════════════════════════════════════════════════════════════════════════


@pytest.fixture
def recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def caller(recorder: SleepRecorder) -> RetryingCaller:
    """Caller with default policy that never really sleeps."""
    return RetryingCaller(RetryPolicy(max_attempts=3, base_delay=1.0, rate_limit_delay=60.0, max_delay=30.0), sleep=recorder)


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    return tmp_path / "data"


@pytest.fixture
def store(data_dir: Path) -> ResultStore:
    return ResultStore(data_dir)


def make_record(
    source: str = "claude",
    spot: Optional[float] = 3280.0,
    daily_pct: Optional[float] = -0.4,
    trend: Optional[str] = "neutral",
    timestamp: Optional[datetime] = None,
    **analysis,
) -> AnalysisRecord:
    """Build a record from the unified layout."""
    body = {
        "spot_price": spot,
        "price_change": {"daily_pct": daily_pct},
        "technical_indicators": {"trend": trend},
    }
    body.update(analysis)
    return AnalysisRecord.from_dict(
        {
            "timestamp": (timestamp or datetime(2025, 7, 1, 8, 0, tzinfo=timezone.utc)).isoformat(),
            "source": source,
            "unified_analysis": body,
        }
    )
