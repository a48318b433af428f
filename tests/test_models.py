#!/usr/bin/env python3
# ══════════════════════════════════════════════════════════════════════════════
#  Analysis Bot - Model Tests
#  Copyright (c) 2025 SIRIUS Alpha
# ══════════════════════════════════════════════════════════════════════════════
"""
Tests for AnalysisRecord loading, normalization and serialization.
"""

from datetime import datetime, timezone

import pytest

from analysis_bot.models import (
    STATUS_FAILED,
    AnalysisRecord,
    NewsItem,
    choice,
    format_timestamp,
    parse_timestamp,
    to_confidence,
    to_float,
)


class TestNormalizers:
    @pytest.mark.parametrize(
        "raw, expected",
        [("$3,280.50", 3280.5), ("-0.4%", -0.4), (3282, 3282.0), ("n/a", None), (None, None), (True, None)],
    )
    def test_to_float(self, raw, expected):
        assert to_float(raw) == expected

    def test_confidence_is_clamped(self):
        assert to_confidence(150) == 100
        assert to_confidence("-5") == 0
        assert to_confidence("72.6%") == 73
        assert to_confidence("medium") is None

    def test_choice_normalizes_and_drops_unknown(self):
        assert choice("Strong Buy", ("buy", "sell", "hold"), {"strong_buy": "buy"}) == "buy"
        assert choice("HOLD", ("buy", "sell", "hold")) == "hold"
        assert choice("sideways", ("bullish", "bearish", "neutral")) is None

    def test_naive_timestamp_is_utc(self):
        parsed = parse_timestamp("2025-07-01T08:00:00")
        assert parsed == datetime(2025, 7, 1, 8, 0, tzinfo=timezone.utc)
        assert format_timestamp(parsed) == "2025-07-01T08:00:00.000Z"

    def test_unparseable_timestamp(self):
        assert parse_timestamp("Recent") is None


class TestAnalysisRecordFromDict:
    def test_unified_layout_is_normalized(self):
        record = AnalysisRecord.from_dict(
            {
                "timestamp": "2025-07-01T08:00:00Z",
                "source": "claude",
                "unified_analysis": {
                    "spot_price": "$3,280.50",
                    "technical_indicators": {"trend": "Bullish", "supports": ["3,250", 3200, "n/a"]},
                    "signals": {"short_term": "STRONG_BUY"},
                    "final_decision": {"action": "HOLD", "confidence": 150, "consensus": "unanimous"},
                    "news_highlights": [{"headline": "Gold climbs", "sentiment": "BULLISH", "relevance": 14}],
                },
            }
        )

        assert record.spot_price == 3280.5
        assert record.technical_indicators.trend == "bullish"
        assert record.technical_indicators.supports == [3250.0, 3200.0]
        assert record.signals.short_term == "buy"
        assert record.final_decision.action == "hold"
        assert record.final_decision.confidence == 100
        assert record.final_decision.consensus is None
        assert record.news_highlights[0].sentiment == "bullish"
        assert record.news_highlights[0].relevance == 10

    def test_flat_layout(self):
        record = AnalysisRecord.from_dict({"spot_price": 3290, "final_decision": {"action": "sell"}}, source="openai")
        assert record.spot_price == 3290.0
        assert record.final_decision.action == "sell"
        assert record.source == "openai"

    def test_legacy_layout(self):
        record = AnalysisRecord.from_dict(
            {
                "timestamp": "2025-07-01T00:00:00Z",
                "priceData": {"spotPrice": 3280, "changePercent24h": -0.4, "changeWeekly": 1.2},
                "technicalView": {"trend": "neutral", "supportLevels": [3250], "resistanceLevels": [3320], "rsi": 48},
                "news24h": [{"headline": "Fed holds rates", "source": "Reuters", "originalUrl": "https://x.test/a"}],
                "sentiment": "bearish",
                "confidence": "medium",
                "signal": "strong_sell",
                "keyFactors": ["Fed policy"],
                "summary": "Wait for a break of support",
            },
            source="claude",
        )

        assert record.spot_price == 3280.0
        assert record.price_change.daily_pct == -0.4
        assert record.price_change.weekly_pct == 1.2
        assert record.technical_indicators.rsi_14 == 48.0
        assert record.technical_indicators.resistances == [3320.0]
        assert record.signals.short_term == "sell"
        assert record.final_decision.action == "sell"
        assert record.final_decision.confidence is None
        assert record.market_sentiment.confidence == "medium"
        assert record.news_highlights[0].link == "https://x.test/a"
        assert record.risk_factors == ["Fed policy"]
        assert record.source == "claude"

    def test_non_object_is_rejected(self):
        with pytest.raises(ValueError):
            AnalysisRecord.from_dict(["not", "an", "object"])


class TestAnalysisRecordToDict:
    def test_unified_layout_round_trip(self):
        record = AnalysisRecord(
            timestamp=datetime(2025, 7, 1, 8, 0, tzinfo=timezone.utc),
            source="claude",
            spot_price=3280.0,
            news_highlights=[NewsItem(headline="Gold climbs", source="Reuters", sentiment="bullish", relevance=10)],
            metadata={"bot_version": "x"},
        )

        data = record.to_dict()

        assert data["timestamp"] == "2025-07-01T08:00:00.000Z"
        assert data["unified_analysis"]["spot_price"] == 3280.0
        assert data["unified_analysis"]["final_decision"]["confidence"] is None
        assert AnalysisRecord.from_dict(data) == record

    def test_failed_record(self):
        data = AnalysisRecord.failed("openai", "timeout").to_dict()
        assert data["status"] == STATUS_FAILED
        assert data["error"] == "timeout"
        assert data["unified_analysis"]["news_highlights"] == []

    def test_copy_is_deep(self):
        record = AnalysisRecord(risk_factors=["war"])
        clone = record.copy(source="claude_only")
        clone.risk_factors.append("inflation")
        assert record.risk_factors == ["war"]
        assert clone.source == "claude_only"
