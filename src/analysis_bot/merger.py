#!/usr/bin/env python3
# ══════════════════════════════════════════════════════════════════════════════
#  Analysis Bot - Analysis Merger
#  Copyright (c) 2025 SIRIUS Alpha
# ══════════════════════════════════════════════════════════════════════════════
"""
Merge two independently produced analyses into one unified record.

Strategy:
1. Neither input: an empty ``no_data`` record (a valid state, not an error)
2. One input: copied through, tagged ``<name>_only``
3. Both inputs: AI-assisted merge, tagged ``merged_ai``
4. AI merge unavailable or failed: deterministic field-by-field merge,
   tagged ``merged_fallback``

Records with ``status: failed`` count as absent.
"""

import json
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from .decoding import decode_analysis_json
from .llm import LLMProvider, LLMRequest, ProviderError, ProviderUnavailableError
from .models import (
    ANALYSIS_KEYS,
    FORMAT_VERSION,
    SOURCE_MERGED_AI,
    SOURCE_MERGED_FALLBACK,
    SOURCE_NO_DATA,
    AnalysisRecord,
    FinalDecision,
    ForecastScenarios,
    KeyEvent,
    MarketSentiment,
    PriceChange,
    Signals,
    TechnicalIndicators,
    format_timestamp,
    utc_now,
)
from .news import dedupe_news
from .retry import RetryExhaustedError, RetryingCaller
from .store import ResultStore

logger = logging.getLogger(__name__)

BOT_VERSION = "analysis_merger_v1.1"


# ══════════════════════════════════════════════════════════════════════════════
# PROMPT TEMPLATES
# ══════════════════════════════════════════════════════════════════════════════

MERGE_SYSTEM_PROMPT = """You are an expert financial analyst specializing in the gold market.
You reconcile analyses from different sources into one consistent, factual record.
You return only valid JSON."""

UNIFIED_SCHEMA = """{
  "timestamp": "ISO_DATETIME_NOW",
  "source": "merged_ai",
  "unified_analysis": {
    "spot_price": NUMBER_OR_NULL,
    "price_change": {"daily_pct": NUMBER_OR_NULL, "weekly_pct": NUMBER_OR_NULL, "monthly_pct": NUMBER_OR_NULL},
    "technical_indicators": {
      "rsi_14": NUMBER_OR_NULL,
      "atr_14": NUMBER_OR_NULL,
      "supports": [ARRAY_OF_NUMBERS],
      "resistances": [ARRAY_OF_NUMBERS],
      "trend": "bullish|bearish|neutral|null",
      "momentum": "positive|negative|neutral|null"
    },
    "signals": {"short_term": "buy|sell|hold|null", "medium_term": "buy|sell|hold|null", "long_term": "buy|sell|hold|null"},
    "market_sentiment": {"overall": "bullish|bearish|neutral|null", "summary": "STRING_OR_NULL", "confidence": "high|medium|low|null"},
    "news_highlights": [
      {"headline": "STRING", "source": "STRING", "sentiment": "bullish|bearish|neutral", "impact": "high|medium|low", "category": "STRING"}
    ],
    "forecast_scenarios": {"short": "STRING_OR_NULL", "medium": "STRING_OR_NULL", "long": "STRING_OR_NULL"},
    "key_events": [{"date": "DATE_STRING", "event": "STRING", "impact": "high|medium|low"}],
    "risk_factors": ["ARRAY_OF_STRINGS"],
    "final_decision": {
      "action": "buy|sell|hold|null",
      "confidence": NUMBER_0_TO_100_OR_NULL,
      "reasoning": "STRING_OR_NULL",
      "consensus": "strong|moderate|weak|split|null"
    }
  }
}"""

MERGE_PROMPT_TEMPLATE = """# Gold Analysis Merge Request

Merge the following two gold market analyses into the exact JSON structure below.

## {name_a} analysis (timestamp {time_a})
{data_a}

## {name_b} analysis (timestamp {time_b})
{data_b}

## Reconciliation rules
1. Numeric conflicts: prefer the fresher source, or average when both are equally recent
2. Technical levels: combine supports and resistances, dropping duplicates
3. News: union of both lists without duplicate or near-duplicate headlines
4. Final decision: build a consensus from both sources and label its strength
5. Use null only when neither source has the data

## Output format
{schema}

Return ONLY the JSON object, no other text."""


# ══════════════════════════════════════════════════════════════════════════════
# DETERMINISTIC MERGE HELPERS
# ══════════════════════════════════════════════════════════════════════════════


def _first(*values: Any) -> Any:
    """First value that is not None (0 and empty strings count as values)."""
    for value in values:
        if value is not None:
            return value
    return None


def _unique(values: Iterable[Any], key=lambda v: v) -> List[Any]:
    seen = set()
    result = []
    for value in values:
        marker = key(value)
        if marker in seen:
            continue
        seen.add(marker)
        result.append(value)
    return result


def fallback_merge(a: AnalysisRecord, b: AnalysisRecord) -> AnalysisRecord:
    """
    Field-by-field merge: scalars prefer ``a`` then ``b``; collections are
    ``a`` then ``b`` without duplicates. No consensus is invented, so the
    decision confidence and consensus stay None.
    """
    ta, tb = a.technical_indicators, b.technical_indicators

    return AnalysisRecord(
        source=SOURCE_MERGED_FALLBACK,
        spot_price=_first(a.spot_price, b.spot_price),
        price_change=PriceChange(
            daily_pct=_first(a.price_change.daily_pct, b.price_change.daily_pct),
            weekly_pct=_first(a.price_change.weekly_pct, b.price_change.weekly_pct),
            monthly_pct=_first(a.price_change.monthly_pct, b.price_change.monthly_pct),
        ),
        technical_indicators=TechnicalIndicators(
            rsi_14=_first(ta.rsi_14, tb.rsi_14),
            atr_14=_first(ta.atr_14, tb.atr_14),
            supports=_unique(ta.supports + tb.supports),
            resistances=_unique(ta.resistances + tb.resistances),
            trend=_first(ta.trend, tb.trend),
            momentum=_first(ta.momentum, tb.momentum),
        ),
        signals=Signals(
            short_term=_first(a.signals.short_term, b.signals.short_term),
            medium_term=_first(a.signals.medium_term, b.signals.medium_term),
            long_term=_first(a.signals.long_term, b.signals.long_term),
        ),
        market_sentiment=MarketSentiment(
            overall=_first(a.market_sentiment.overall, b.market_sentiment.overall),
            summary=_first(a.market_sentiment.summary, b.market_sentiment.summary),
            confidence=_first(a.market_sentiment.confidence, b.market_sentiment.confidence),
        ),
        news_highlights=dedupe_news(a.news_highlights + b.news_highlights),
        forecast_scenarios=ForecastScenarios(
            short=_first(a.forecast_scenarios.short, b.forecast_scenarios.short),
            medium=_first(a.forecast_scenarios.medium, b.forecast_scenarios.medium),
            long=_first(a.forecast_scenarios.long, b.forecast_scenarios.long),
        ),
        key_events=_unique(
            [KeyEvent(e.date, e.event, e.impact) for e in a.key_events + b.key_events],
            key=lambda e: (e.date, e.event.strip().lower()),
        ),
        risk_factors=_unique(a.risk_factors + b.risk_factors, key=lambda r: r.strip().lower()),
        final_decision=FinalDecision(
            action=_first(a.final_decision.action, b.final_decision.action),
            reasoning=_first(a.final_decision.reasoning, b.final_decision.reasoning),
        ),
    )


def freshness_minutes(records: Sequence[AnalysisRecord], now: Optional[datetime] = None) -> Optional[int]:
    """Minutes since the most recent of ``records`` was produced."""
    if not records:
        return None
    newest = max(record.timestamp for record in records)
    delta = (now or utc_now()) - newest
    return max(int(delta.total_seconds() // 60), 0)


# ══════════════════════════════════════════════════════════════════════════════
# MERGER
# ══════════════════════════════════════════════════════════════════════════════


class AnalysisMerger:
    """
    Combines two source analyses into a unified record.

    Usage:
        merger = AnalysisMerger(provider, RetryingCaller(policy))
        unified = await merger.merge(claude_record, openai_record)
    """

    def __init__(
        self,
        provider: Optional[LLMProvider] = None,
        caller: Optional[RetryingCaller] = None,
        names: Tuple[str, str] = ("claude", "openai"),
        max_tokens: int = 4000,
        temperature: float = 0.1,
    ):
        self.provider = provider
        self.caller = caller or RetryingCaller()
        self.names = names
        self.max_tokens = max_tokens
        self.temperature = temperature

    def _metadata(self, data_source: str, now: datetime, **extra: Any) -> Dict[str, Any]:
        metadata = {
            "bot_version": BOT_VERSION,
            "data_source": data_source,
            "format_version": FORMAT_VERSION,
            "processing_time": format_timestamp(now),
            "token_usage": None,
        }
        metadata.update(extra)
        return metadata

    def build_prompt(self, a: AnalysisRecord, b: AnalysisRecord) -> str:
        name_a, name_b = self.names
        return MERGE_PROMPT_TEMPLATE.format(
            name_a=name_a.title(),
            name_b=name_b.title(),
            time_a=format_timestamp(a.timestamp),
            time_b=format_timestamp(b.timestamp),
            data_a=json.dumps(a.analysis_dict(), indent=2, ensure_ascii=False),
            data_b=json.dumps(b.analysis_dict(), indent=2, ensure_ascii=False),
            schema=UNIFIED_SCHEMA,
        )

    async def merge_with_ai(self, a: AnalysisRecord, b: AnalysisRecord) -> AnalysisRecord:
        """
        Ask the LLM to reconcile both records.

        Raises:
            ProviderError: No provider, or the provider failed terminally
            RetryExhaustedError: All attempts failed
            AnalysisParseError: The answer carried no usable JSON
        """
        if self.provider is None:
            raise ProviderUnavailableError("No merge provider configured", provider="merger")

        request = LLMRequest(
            prompt=self.build_prompt(a, b),
            system=MERGE_SYSTEM_PROMPT,
            structured=True,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )
        provider = self.provider

        result = await self.caller.call(lambda: provider.send(request), description=f"{provider.name} merge")
        response = result.unwrap()

        data = decode_analysis_json(response.text, expected_keys=ANALYSIS_KEYS)
        record = AnalysisRecord.from_dict(data)

        now = utc_now()
        return record.copy(
            timestamp=now,
            source=SOURCE_MERGED_AI,
            status="success",
            error=None,
            data_freshness_minutes=freshness_minutes([a, b], now),
            metadata=self._metadata(
                f"{self.names[0]}_and_{self.names[1]}_merged",
                now,
                token_usage=response.tokens_used or None,
                provider=response.provider,
                model=response.model,
            ),
        )

    async def merge(self, a: Optional[AnalysisRecord], b: Optional[AnalysisRecord]) -> AnalysisRecord:
        """
        Merge two optional records. Never raises for source or AI failures.

        Args:
            a: Record from the first source (preferred in the fallback)
            b: Record from the second source

        Returns:
            Unified AnalysisRecord
        """
        a = a if a is not None and a.ok else None
        b = b if b is not None and b.ok else None
        now = utc_now()

        if a is None and b is None:
            logger.warning("No analysis data available to merge")
            return AnalysisRecord.empty(SOURCE_NO_DATA, metadata=self._metadata(SOURCE_NO_DATA, now))

        if a is None or b is None:
            present = a if a is not None else b
            name = self.names[0] if a is not None else self.names[1]
            source = f"{name}_only"
            logger.info(f"Only {name} analysis available, copying through")
            return present.copy(
                timestamp=now,
                source=source,
                data_freshness_minutes=freshness_minutes([present], now),
                metadata=self._metadata(source, now),
            )

        try:
            record = await self.merge_with_ai(a, b)
            logger.info("AI-assisted merge completed")
            return record
        except (ProviderError, RetryExhaustedError, ValueError) as e:
            # ValueError covers AnalysisParseError and malformed layouts
            logger.warning(f"AI merge failed, using fallback merge: {e}")

        record = fallback_merge(a, b)
        record.timestamp = now
        record.data_freshness_minutes = freshness_minutes([a, b], now)
        record.metadata = self._metadata("fallback_merge", now)
        return record


def load_latest_pair(
    store: ResultStore, names: Tuple[str, str] = ("claude", "openai")
) -> Tuple[Optional[AnalysisRecord], Optional[AnalysisRecord]]:
    """
    Load the latest record of each named tool.

    Failed runs are treated as missing.
    """
    records = []
    for name in names:
        record = store.load_latest(name)
        if record is not None and not record.ok:
            logger.info(f"Ignoring failed {name} analysis: {record.error}")
            record = None
        records.append(record)
    return records[0], records[1]
