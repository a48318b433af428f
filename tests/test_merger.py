#!/usr/bin/env python3
# ══════════════════════════════════════════════════════════════════════════════
#  Analysis Bot - Merger Tests
#  Copyright (c) 2025 SIRIUS Alpha
# ══════════════════════════════════════════════════════════════════════════════
"""
Tests for AnalysisMerger: presence cases, AI merge and the fallback merge.
"""

import json

import pytest
from conftest import FakeProvider, make_record

from analysis_bot.llm.base import ServerError
from analysis_bot.merger import AnalysisMerger, fallback_merge, load_latest_pair
from analysis_bot.models import SOURCE_MERGED_AI, SOURCE_MERGED_FALLBACK, SOURCE_NO_DATA, AnalysisRecord

AI_ANSWER = {
    "timestamp": "2025-07-01T09:00:00Z",
    "source": "merged_ai",
    "unified_analysis": {
        "spot_price": 3281.0,
        "price_change": {"daily_pct": -0.35},
        "technical_indicators": {"trend": "neutral", "supports": [3250, 3200]},
        "final_decision": {"action": "hold", "confidence": 70, "reasoning": "Both agree", "consensus": "strong"},
    },
}


@pytest.fixture
def claude():
    return make_record("claude", spot=3280.0, daily_pct=-0.4, trend="neutral")


@pytest.fixture
def openai():
    return make_record("openai", spot=3282.0, daily_pct=-0.3, trend="bullish")


# ══════════════════════════════════════════════════════════════════════════════
# PRESENCE CASES
# ══════════════════════════════════════════════════════════════════════════════


class TestPresence:
    """Tests for missing and single inputs."""

    @pytest.mark.asyncio
    async def test_first_only(self, claude):
        record = await AnalysisMerger().merge(claude, None)

        assert record.source == "claude_only"
        assert record.spot_price == 3280.0
        assert record.metadata["data_source"] == "claude_only"
        assert record.data_freshness_minutes >= 0

    @pytest.mark.asyncio
    async def test_second_only(self, openai):
        record = await AnalysisMerger().merge(None, openai)
        assert record.source == "openai_only"
        assert record.technical_indicators.trend == "bullish"

    @pytest.mark.asyncio
    async def test_neither(self):
        record = await AnalysisMerger().merge(None, None)

        assert record.ok
        assert record.source == SOURCE_NO_DATA
        assert record.spot_price is None
        assert record.news_highlights == []

    @pytest.mark.asyncio
    async def test_failed_record_counts_as_absent(self, openai):
        provider = FakeProvider([])
        record = await AnalysisMerger(provider).merge(AnalysisRecord.failed("claude", "timeout"), openai)

        assert record.source == "openai_only"
        assert provider.requests == []

    @pytest.mark.asyncio
    async def test_single_input_is_not_mutated(self, claude):
        await AnalysisMerger().merge(claude, None)
        assert claude.source == "claude"


# ══════════════════════════════════════════════════════════════════════════════
# AI MERGE
# ══════════════════════════════════════════════════════════════════════════════


class TestAIMerge:
    """Tests for the LLM-assisted path and its fallbacks."""

    @pytest.mark.asyncio
    async def test_fenced_answer_is_used(self, claude, openai, caller):
        provider = FakeProvider([f"```json\n{json.dumps(AI_ANSWER)}\n```"], name="claude")

        record = await AnalysisMerger(provider, caller).merge(claude, openai)

        assert record.source == SOURCE_MERGED_AI
        assert record.spot_price == 3281.0
        assert record.final_decision.confidence == 70
        assert record.final_decision.consensus == "strong"
        assert record.metadata["data_source"] == "claude_and_openai_merged"
        assert record.metadata["token_usage"] == 42

    @pytest.mark.asyncio
    async def test_prompt_carries_both_analyses(self, claude, openai, caller):
        provider = FakeProvider([json.dumps(AI_ANSWER)])

        await AnalysisMerger(provider, caller).merge(claude, openai)

        prompt = provider.requests[0].prompt
        assert "3280.0" in prompt and "3282.0" in prompt
        assert "## Claude analysis" in prompt and "## Openai analysis" in prompt
        assert provider.requests[0].structured

    @pytest.mark.asyncio
    async def test_failing_provider_falls_back(self, claude, openai, caller, recorder):
        errors = [ServerError("overloaded", provider="claude", status=503) for _ in range(3)]
        provider = FakeProvider(errors)

        record = await AnalysisMerger(provider, caller).merge(claude, openai)

        assert record.source == SOURCE_MERGED_FALLBACK
        assert record.spot_price == 3280.0
        assert record.price_change.daily_pct == -0.4
        assert record.technical_indicators.trend == "neutral"
        assert record.final_decision.confidence is None
        assert record.final_decision.consensus is None
        assert record.metadata["data_source"] == "fallback_merge"
        assert len(provider.requests) == 3
        assert recorder.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_unparseable_answer_falls_back_without_retry(self, claude, openai, caller):
        provider = FakeProvider(["I am unable to merge these analyses today."])

        record = await AnalysisMerger(provider, caller).merge(claude, openai)

        assert record.source == SOURCE_MERGED_FALLBACK
        assert len(provider.requests) == 1

    @pytest.mark.asyncio
    async def test_no_provider_falls_back(self, claude, openai):
        record = await AnalysisMerger().merge(claude, openai)
        assert record.source == SOURCE_MERGED_FALLBACK


# ══════════════════════════════════════════════════════════════════════════════
# FALLBACK MERGE
# ══════════════════════════════════════════════════════════════════════════════


class TestFallbackMerge:
    def test_levels_are_unioned_without_duplicates(self):
        a = make_record("claude", technical_indicators={"supports": [3250, 3200], "resistances": [3320]})
        b = make_record("openai", technical_indicators={"supports": [3250, 3180], "resistances": [3320, 3350]})

        record = fallback_merge(a, b)

        assert record.technical_indicators.supports == [3250.0, 3200.0, 3180.0]
        assert record.technical_indicators.resistances == [3320.0, 3350.0]

    def test_zero_is_a_value(self):
        a = make_record("claude", daily_pct=0.0)
        b = make_record("openai", daily_pct=-0.3)
        assert fallback_merge(a, b).price_change.daily_pct == 0.0

    def test_missing_values_come_from_second(self):
        a = make_record("claude", spot=None, trend=None)
        b = make_record("openai", spot=3282.0, trend="bullish")

        record = fallback_merge(a, b)

        assert record.spot_price == 3282.0
        assert record.technical_indicators.trend == "bullish"

    def test_news_and_risks_are_deduplicated(self):
        a = make_record(
            "claude",
            news_highlights=[{"headline": "Gold hits record high", "source": "Reuters"}],
            risk_factors=["Fed policy", "Dollar strength"],
        )
        b = make_record(
            "openai",
            news_highlights=[
                {"headline": "Gold hits record high!", "source": "Bloomberg"},
                {"headline": "ETF inflows accelerate", "source": "Kitco"},
            ],
            risk_factors=["fed policy", "Geopolitics"],
        )

        record = fallback_merge(a, b)

        assert [item.source for item in record.news_highlights] == ["Reuters", "Kitco"]
        assert record.risk_factors == ["Fed policy", "Dollar strength", "Geopolitics"]


class TestLoadLatestPair:
    def test_failed_latest_is_missing(self, store):
        claude = make_record("claude")
        store.save(claude, "claude")
        store.save(AnalysisRecord.failed("openai", "quota exceeded"), "openai")

        first, second = load_latest_pair(store)

        assert first == claude
        assert second is None

    def test_nothing_saved(self, store):
        assert load_latest_pair(store) == (None, None)
