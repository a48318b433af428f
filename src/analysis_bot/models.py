#!/usr/bin/env python3
# ══════════════════════════════════════════════════════════════════════════════
#  Analysis Bot - Data Model
#  Copyright (c) 2025 SIRIUS Alpha
# ══════════════════════════════════════════════════════════════════════════════
"""
Analysis records and news items.

An AnalysisRecord is what every pipeline produces and what the dashboard
reads. It serializes to the unified layout (format 3.0):

    {
      "timestamp": "...Z",
      "data_freshness_minutes": 12,
      "source": "claude",
      "status": "success",
      "error": null,
      "unified_analysis": { spot_price, price_change, technical_indicators, ... },
      "metadata": { ... }
    }

``from_dict()`` is lenient: it accepts the wrapped layout, the same fields
unwrapped at top level, and the legacy camelCase layout produced by older
bots (``priceData``, ``technicalView``, ``news24h``, ``signal`` ...).
LLM output is normalized on the way in: enum casing, numeric strings such as
"$3,280.50", and out-of-range confidences.
"""

import copy
import re
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from dateutil import parser as date_parser

FORMAT_VERSION = "3.0"

STATUS_SUCCESS = "success"
STATUS_FAILED = "failed"

SOURCE_NO_DATA = "no_data"
SOURCE_MERGED_AI = "merged_ai"
SOURCE_MERGED_FALLBACK = "merged_fallback"

# Sentinel for fields a scraper could not find
NOT_AVAILABLE = "N/A"

SENTIMENTS = ("bullish", "bearish", "neutral")
MOMENTUM = ("positive", "negative", "neutral")
ACTIONS = ("buy", "sell", "hold")
LEVELS = ("high", "medium", "low")
CONSENSUS = ("strong", "moderate", "weak", "split")

_ACTION_ALIASES = {
    "strong_buy": "buy",
    "strong_sell": "sell",
    "accumulate": "buy",
    "reduce": "sell",
    "neutral": "hold",
    "wait": "hold",
}

# Top-level keys that identify an analysis document inside LLM text
ANALYSIS_KEYS = (
    "unified_analysis",
    "spot_price",
    "price_change",
    "technical_indicators",
    "final_decision",
    "priceData",
    "technicalView",
    "news24h",
    "signal",
)

_LEGACY_KEYS = ("priceData", "technicalView", "news24h", "signal", "keyFactors")

_NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?")


# ══════════════════════════════════════════════════════════════════════════════
# NORMALIZATION HELPERS
# ══════════════════════════════════════════════════════════════════════════════


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse a timestamp into an aware UTC datetime.

    Naive values are taken as UTC. Returns None when unparseable.
    """
    if value is None or value == "":
        return None

    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = date_parser.parse(str(value))
        except (ValueError, OverflowError):
            return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_timestamp(dt: datetime) -> str:
    """ISO-8601 UTC with millisecond precision and a Z suffix."""
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def to_float(value: Any) -> Optional[float]:
    """Coerce numbers and numeric strings ("$3,280.50", "-0.4%") to float."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        cleaned = value.replace(",", "").replace("$", "").strip()
        match = _NUMBER_RE.search(cleaned)
        if match:
            return float(match.group(0))
    return None


def to_float_list(values: Any) -> List[float]:
    """Coerce a list of numeric-ish values, dropping the ones that are not."""
    if not isinstance(values, (list, tuple)):
        values = [values] if values is not None else []
    result = []
    for value in values:
        number = to_float(value)
        if number is not None:
            result.append(number)
    return result


def to_confidence(value: Any) -> Optional[int]:
    """Coerce a confidence to an int clamped into 0..100, None if not numeric."""
    number = to_float(value)
    if number is None:
        return None
    return int(round(min(max(number, 0.0), 100.0)))


def choice(value: Any, allowed: Iterable[str], aliases: Optional[Dict[str, str]] = None) -> Optional[str]:
    """Normalize an enum-like string; unknown values become None."""
    if not isinstance(value, str):
        return None
    key = re.sub(r"[\s\-]+", "_", value.strip().lower())
    if aliases and key in aliases:
        key = aliases[key]
    return key if key in allowed else None


def to_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _section(data: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = data.get(key)
    return value if isinstance(value, dict) else {}


def _list(value: Any) -> list:
    return value if isinstance(value, list) else []


# ══════════════════════════════════════════════════════════════════════════════
# RECORD SECTIONS
# ══════════════════════════════════════════════════════════════════════════════


@dataclass
class NewsItem:
    """
    A single news headline with its scores.

    Attributes:
        headline: Headline text
        source: Publisher name
        sentiment: bullish, bearish or neutral
        relevance: 0..10 topic relevance
        link: Article URL
        time: Publication time as given by the source
        description: Teaser text
        impact: high, medium or low
        category: Free-form topic tag (fed, geopolitical, technical ...)
    """

    headline: str
    source: str = ""
    sentiment: str = "neutral"
    relevance: int = 0
    link: Optional[str] = None
    time: Optional[str] = None
    description: Optional[str] = None
    impact: Optional[str] = None
    category: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NewsItem":
        relevance = to_float(data.get("relevance"))
        return cls(
            headline=to_text(data.get("headline") or data.get("title")) or "",
            source=to_text(data.get("source")) or "",
            sentiment=choice(data.get("sentiment"), SENTIMENTS) or "neutral",
            relevance=int(min(max(relevance, 0), 10)) if relevance is not None else 0,
            link=to_text(data.get("link") or data.get("url") or data.get("originalUrl")),
            time=to_text(data.get("time") or data.get("timePublished") or data.get("published_at")),
            description=to_text(data.get("description")),
            impact=choice(data.get("impact"), LEVELS),
            category=to_text(data.get("category")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class PriceChange:
    daily_pct: Optional[float] = None
    weekly_pct: Optional[float] = None
    monthly_pct: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PriceChange":
        return cls(
            daily_pct=to_float(data.get("daily_pct")),
            weekly_pct=to_float(data.get("weekly_pct")),
            monthly_pct=to_float(data.get("monthly_pct")),
        )


@dataclass
class TechnicalIndicators:
    rsi_14: Optional[float] = None
    atr_14: Optional[float] = None
    supports: List[float] = field(default_factory=list)
    resistances: List[float] = field(default_factory=list)
    trend: Optional[str] = None
    momentum: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TechnicalIndicators":
        return cls(
            rsi_14=to_float(data.get("rsi_14")),
            atr_14=to_float(data.get("atr_14")),
            supports=to_float_list(data.get("supports")),
            resistances=to_float_list(data.get("resistances")),
            trend=choice(data.get("trend"), SENTIMENTS),
            momentum=choice(data.get("momentum"), MOMENTUM),
        )


@dataclass
class Signals:
    short_term: Optional[str] = None
    medium_term: Optional[str] = None
    long_term: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Signals":
        return cls(
            short_term=choice(data.get("short_term"), ACTIONS, _ACTION_ALIASES),
            medium_term=choice(data.get("medium_term"), ACTIONS, _ACTION_ALIASES),
            long_term=choice(data.get("long_term"), ACTIONS, _ACTION_ALIASES),
        )


@dataclass
class MarketSentiment:
    overall: Optional[str] = None
    summary: Optional[str] = None
    confidence: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MarketSentiment":
        return cls(
            overall=choice(data.get("overall"), SENTIMENTS),
            summary=to_text(data.get("summary")),
            confidence=choice(data.get("confidence"), LEVELS),
        )


@dataclass
class ForecastScenarios:
    short: Optional[str] = None
    medium: Optional[str] = None
    long: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ForecastScenarios":
        return cls(
            short=to_text(data.get("short")),
            medium=to_text(data.get("medium")),
            long=to_text(data.get("long")),
        )


@dataclass
class KeyEvent:
    date: Optional[str] = None
    event: str = ""
    impact: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "KeyEvent":
        return cls(
            date=to_text(data.get("date")),
            event=to_text(data.get("event")) or "",
            impact=choice(data.get("impact"), LEVELS),
        )


@dataclass
class FinalDecision:
    action: Optional[str] = None
    confidence: Optional[int] = None
    reasoning: Optional[str] = None
    consensus: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FinalDecision":
        return cls(
            action=choice(data.get("action"), ACTIONS, _ACTION_ALIASES),
            confidence=to_confidence(data.get("confidence")),
            reasoning=to_text(data.get("reasoning")),
            consensus=choice(data.get("consensus"), CONSENSUS),
        )


# ══════════════════════════════════════════════════════════════════════════════
# ANALYSIS RECORD
# ══════════════════════════════════════════════════════════════════════════════


@dataclass
class AnalysisRecord:
    """
    One structured gold-market analysis.

    Created once per pipeline run (or merge) and never edited after it has
    been written; a newer analysis is always a new record.
    """

    timestamp: datetime = field(default_factory=utc_now)
    source: str = ""
    status: str = STATUS_SUCCESS
    error: Optional[str] = None
    data_freshness_minutes: Optional[int] = None

    spot_price: Optional[float] = None
    price_change: PriceChange = field(default_factory=PriceChange)
    technical_indicators: TechnicalIndicators = field(default_factory=TechnicalIndicators)
    signals: Signals = field(default_factory=Signals)
    market_sentiment: MarketSentiment = field(default_factory=MarketSentiment)
    news_highlights: List[NewsItem] = field(default_factory=list)
    forecast_scenarios: ForecastScenarios = field(default_factory=ForecastScenarios)
    key_events: List[KeyEvent] = field(default_factory=list)
    risk_factors: List[str] = field(default_factory=list)
    final_decision: FinalDecision = field(default_factory=FinalDecision)

    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status == STATUS_SUCCESS

    @classmethod
    def failed(cls, source: str, error: str, metadata: Optional[Dict[str, Any]] = None) -> "AnalysisRecord":
        """Record written when a run could not produce an analysis."""
        return cls(source=source, status=STATUS_FAILED, error=error, metadata=dict(metadata or {}))

    @classmethod
    def empty(cls, source: str = SOURCE_NO_DATA, metadata: Optional[Dict[str, Any]] = None) -> "AnalysisRecord":
        """Valid record with every analysis field empty."""
        return cls(source=source, metadata=dict(metadata or {}))

    def copy(self, **changes: Any) -> "AnalysisRecord":
        """Deep copy with some top-level fields replaced."""
        clone = copy.deepcopy(self)
        for name, value in changes.items():
            setattr(clone, name, value)
        return clone

    def analysis_dict(self) -> Dict[str, Any]:
        """The ``unified_analysis`` body."""
        return {
            "spot_price": self.spot_price,
            "price_change": asdict(self.price_change),
            "technical_indicators": asdict(self.technical_indicators),
            "signals": asdict(self.signals),
            "market_sentiment": asdict(self.market_sentiment),
            "news_highlights": [item.to_dict() for item in self.news_highlights],
            "forecast_scenarios": asdict(self.forecast_scenarios),
            "key_events": [asdict(event) for event in self.key_events],
            "risk_factors": list(self.risk_factors),
            "final_decision": asdict(self.final_decision),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": format_timestamp(self.timestamp),
            "data_freshness_minutes": self.data_freshness_minutes,
            "source": self.source,
            "status": self.status,
            "error": self.error,
            "unified_analysis": self.analysis_dict(),
            "metadata": copy.deepcopy(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], source: Optional[str] = None) -> "AnalysisRecord":
        """
        Build a record from any supported layout.

        Args:
            data: Parsed JSON (unified, flat or legacy layout)
            source: Source tag to use when the data carries none

        Raises:
            ValueError: If data is not a JSON object
        """
        if not isinstance(data, dict):
            raise ValueError(f"Analysis must be a JSON object, got {type(data).__name__}")

        if isinstance(data.get("unified_analysis"), dict):
            body = data["unified_analysis"]
        elif any(key in data for key in _LEGACY_KEYS):
            return cls._from_legacy(data, source)
        else:
            body = data

        status = STATUS_FAILED if data.get("status") == STATUS_FAILED else STATUS_SUCCESS
        freshness = to_float(data.get("data_freshness_minutes"))

        return cls(
            timestamp=parse_timestamp(data.get("timestamp")) or utc_now(),
            source=to_text(data.get("source")) or source or "",
            status=status,
            error=to_text(data.get("error")),
            data_freshness_minutes=int(freshness) if freshness is not None else None,
            spot_price=to_float(body.get("spot_price")),
            price_change=PriceChange.from_dict(_section(body, "price_change")),
            technical_indicators=TechnicalIndicators.from_dict(_section(body, "technical_indicators")),
            signals=Signals.from_dict(_section(body, "signals")),
            market_sentiment=MarketSentiment.from_dict(_section(body, "market_sentiment")),
            news_highlights=[
                NewsItem.from_dict(item) for item in _list(body.get("news_highlights")) if isinstance(item, dict)
            ],
            forecast_scenarios=ForecastScenarios.from_dict(_section(body, "forecast_scenarios")),
            key_events=[KeyEvent.from_dict(item) for item in _list(body.get("key_events")) if isinstance(item, dict)],
            risk_factors=[str(item) for item in _list(body.get("risk_factors")) if item],
            final_decision=FinalDecision.from_dict(_section(body, "final_decision")),
            metadata=dict(_section(data, "metadata")),
        )

    @classmethod
    def _from_legacy(cls, data: Dict[str, Any], source: Optional[str]) -> "AnalysisRecord":
        """Map the camelCase layout of the older search bots."""
        price = _section(data, "priceData")
        technical = _section(data, "technicalView")
        signal = choice(data.get("signal"), ACTIONS, _ACTION_ALIASES)
        summary = to_text(data.get("summary"))

        return cls(
            timestamp=parse_timestamp(data.get("timestamp")) or utc_now(),
            source=to_text(data.get("source")) or source or "",
            status=STATUS_FAILED if data.get("status") == STATUS_FAILED else STATUS_SUCCESS,
            error=to_text(data.get("error")),
            spot_price=to_float(price.get("spotPrice")),
            price_change=PriceChange(
                daily_pct=to_float(price.get("changePercent24h")),
                weekly_pct=to_float(price.get("changeWeekly")),
            ),
            technical_indicators=TechnicalIndicators(
                rsi_14=to_float(technical.get("rsi")),
                supports=to_float_list(technical.get("supportLevels")),
                resistances=to_float_list(technical.get("resistanceLevels")),
                trend=choice(technical.get("trend"), SENTIMENTS),
            ),
            signals=Signals(short_term=signal),
            market_sentiment=MarketSentiment(
                overall=choice(data.get("sentiment"), SENTIMENTS),
                summary=summary,
                confidence=choice(data.get("confidence"), LEVELS),
            ),
            news_highlights=[
                NewsItem.from_dict(item) for item in _list(data.get("news24h")) if isinstance(item, dict)
            ],
            forecast_scenarios=ForecastScenarios(short=to_text(data.get("priceTarget"))),
            risk_factors=[str(item) for item in _list(data.get("keyFactors")) if item],
            final_decision=FinalDecision(action=signal, reasoning=summary),
            metadata=dict(_section(data, "metadata")),
        )
