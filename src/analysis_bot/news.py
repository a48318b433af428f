#!/usr/bin/env python3
# ══════════════════════════════════════════════════════════════════════════════
#  Analysis Bot - News Scoring
#  Copyright (c) 2025 SIRIUS Alpha
# ══════════════════════════════════════════════════════════════════════════════
"""
Keyword sentiment and topic relevance for scraped headlines.

Keywords match as whole words with their common inflections
("rise" matches "rises" and "rising", not "sunrise"; "up" does not match
"update").
"""

import difflib
import re
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence

from .models import NewsItem, parse_timestamp, utc_now

BULLISH_KEYWORDS = ("rise", "gain", "up", "bullish", "rally", "surge", "climb", "strong", "positive")
BEARISH_KEYWORDS = ("fall", "drop", "down", "bearish", "decline", "weak", "negative", "crash", "plunge")

RELEVANCE_POINTS: Dict[str, int] = {
    "gold": 10,
    "xau": 8,
    "bullion": 7,
    "precious metal": 6,
    "futures": 4,
    "commodity": 3,
    "trading": 2,
    "market": 1,
}

GOLD_KEYWORDS = ("gold", "precious metal", "bullion", "xau")

MAX_RELEVANCE = 10
HIGH_RELEVANCE = 7

_SUFFIXES = "s|es|ed|d|ing|er|ers|est|ly|ness"
_RELATIVE_RE = re.compile(r"(\d+)\s*(minute|min|hour|hr|day|week)s?\s+ago", re.IGNORECASE)


def _inflections(keyword: str) -> str:
    """Regex alternatives for a keyword and its usual English inflections."""
    stem = re.escape(keyword)
    forms = [f"{stem}(?:{_SUFFIXES})?"]
    if keyword.endswith("e"):
        forms.append(f"{re.escape(keyword[:-1])}ing")
    if keyword.endswith("y"):
        forms.append(f"{re.escape(keyword[:-1])}(?:ies|ied)")
    if re.search(r"[aeiou][bdgmnpt]$", keyword):
        forms.append(f"{stem}{keyword[-1]}(?:ed|ing)")
    return "|".join(forms)


def _keyword_pattern(keyword: str) -> "re.Pattern[str]":
    return re.compile(rf"\b(?:{_inflections(keyword)})\b", re.IGNORECASE)


def _count(patterns: Sequence["re.Pattern[str]"], text: str) -> int:
    return sum(len(pattern.findall(text)) for pattern in patterns)


@dataclass(frozen=True)
class NewsScore:
    sentiment: str
    relevance: int


@dataclass
class NewsSummary:
    """Aggregate counts over a batch of scored news."""

    total: int = 0
    bullish: int = 0
    bearish: int = 0
    neutral: int = 0
    high_relevance: int = 0
    overall: str = "neutral"


def parse_news_time(value: Optional[str], now: Optional[datetime] = None) -> Optional[datetime]:
    """
    Parse a publication time, including relative forms like "5 hours ago".

    Returns an aware UTC datetime, or None when unparseable.
    """
    if not value:
        return None

    match = _RELATIVE_RE.search(value)
    if match:
        amount = int(match.group(1))
        unit = match.group(2).lower()
        deltas = {
            "minute": timedelta(minutes=amount),
            "min": timedelta(minutes=amount),
            "hour": timedelta(hours=amount),
            "hr": timedelta(hours=amount),
            "day": timedelta(days=amount),
            "week": timedelta(weeks=amount),
        }
        return (now or utc_now()) - deltas[unit]

    return parse_timestamp(value)


class NewsScorer:
    """Assigns sentiment and relevance to headlines and orders them."""

    def __init__(
        self,
        bullish: Iterable[str] = BULLISH_KEYWORDS,
        bearish: Iterable[str] = BEARISH_KEYWORDS,
        relevance_points: Optional[Dict[str, int]] = None,
    ):
        self._bullish = [_keyword_pattern(k) for k in bullish]
        self._bearish = [_keyword_pattern(k) for k in bearish]
        points = relevance_points if relevance_points is not None else RELEVANCE_POINTS
        self._relevance = [(_keyword_pattern(k), p) for k, p in points.items()]

    def sentiment(self, text: str) -> str:
        """Larger keyword count wins; a tie is neutral."""
        bullish = _count(self._bullish, text or "")
        bearish = _count(self._bearish, text or "")
        if bullish > bearish:
            return "bullish"
        if bearish > bullish:
            return "bearish"
        return "neutral"

    def relevance(self, text: str) -> int:
        """Sum of points for each topic keyword present, capped at 10."""
        total = sum(points for pattern, points in self._relevance if pattern.search(text or ""))
        return min(total, MAX_RELEVANCE)

    def score(self, text: str) -> NewsScore:
        return NewsScore(sentiment=self.sentiment(text), relevance=self.relevance(text))

    def score_item(self, item: NewsItem) -> NewsItem:
        """Return a copy of ``item`` scored on its headline and description."""
        text = " ".join(part for part in (item.headline, item.description) if part)
        result = self.score(text)
        return replace(item, sentiment=result.sentiment, relevance=result.relevance)

    def sort_items(self, items: Iterable[NewsItem], now: Optional[datetime] = None) -> List[NewsItem]:
        """
        Order by relevance descending, then most recent first.

        Items with unparseable times sort after dated ones of equal relevance.
        """
        now = now or utc_now()

        def key(item: NewsItem):
            published = parse_news_time(item.time, now)
            if published is None:
                return (-item.relevance, 1, 0.0)
            return (-item.relevance, 0, -published.timestamp())

        return sorted(items, key=key)

    def summarize(self, items: Sequence[NewsItem]) -> NewsSummary:
        summary = NewsSummary(total=len(items))
        for item in items:
            if item.sentiment == "bullish":
                summary.bullish += 1
            elif item.sentiment == "bearish":
                summary.bearish += 1
            else:
                summary.neutral += 1
            if item.relevance >= HIGH_RELEVANCE:
                summary.high_relevance += 1

        if summary.bullish > summary.bearish:
            summary.overall = "bullish"
        elif summary.bearish > summary.bullish:
            summary.overall = "bearish"
        return summary


_GOLD_PATTERNS = [_keyword_pattern(k) for k in GOLD_KEYWORDS]


def mentions_gold(text: Optional[str]) -> bool:
    """Topic filter for general market news pages."""
    return any(pattern.search(text or "") for pattern in _GOLD_PATTERNS)


def _normalize_headline(headline: str) -> str:
    return re.sub(r"[^a-z0-9]+", " ", (headline or "").lower()).strip()


def headlines_similar(a: str, b: str, threshold: float = 0.9) -> bool:
    """Near-equality of two headlines (punctuation and case insensitive)."""
    left, right = _normalize_headline(a), _normalize_headline(b)
    if not left or not right:
        return False
    if left == right or left[:50] == right[:50]:
        return True
    return difflib.SequenceMatcher(None, left, right).ratio() >= threshold


def dedupe_news(items: Iterable[NewsItem], threshold: float = 0.9) -> List[NewsItem]:
    """Keep the first of each group of near-equal headlines, preserving order."""
    kept: List[NewsItem] = []
    for item in items:
        if any(headlines_similar(item.headline, other.headline, threshold) for other in kept):
            continue
        kept.append(item)
    return kept
