#!/usr/bin/env python3
# ══════════════════════════════════════════════════════════════════════════════
#  Analysis Bot - Pipelines
#  Copyright (c) 2025 SIRIUS Alpha
# ══════════════════════════════════════════════════════════════════════════════
"""
Fetch, prompt, parse, save.

AnalysisPipeline acquires market data from up to two branches:
- search: the provider's built-in web search answers with the analysis JSON
- scrape: the headless browser collects price and news from finance sites

Branches run concurrently and settle independently. The run only fails
when every branch failed, and even then a record with ``status: failed``
is written so the dashboard can tell "no new data" from "missing data".

MergePipeline loads the latest record of two tools and writes the unified
result.
"""

import asyncio
import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from .config import Config
from .decoding import decode_analysis_json
from .llm import LLMProvider, LLMRequest, create_optional_provider, create_provider_from_config
from .merger import UNIFIED_SCHEMA, AnalysisMerger, load_latest_pair
from .models import (
    ANALYSIS_KEYS,
    FORMAT_VERSION,
    SOURCE_NO_DATA,
    AnalysisRecord,
    MarketSentiment,
    PriceChange,
    format_timestamp,
    utc_now,
)
from .retry import RetryingCaller
from .scraper import GoldDataScraper, MarketData, PlaywrightBrowser
from .store import ResultStore, SaveResult

logger = logging.getLogger(__name__)

BOT_VERSION = "analysis_bot_v2.0"

ScrapeFunc = Callable[[], Awaitable[MarketData]]


# ══════════════════════════════════════════════════════════════════════════════
# PROMPT TEMPLATES
# ══════════════════════════════════════════════════════════════════════════════

ANALYSIS_SYSTEM_PROMPT = """You are a senior gold market analyst.
You give accurate, concise analysis grounded in the data you found or were given.
Every number you report must come from a source; use null when you have none."""

SEARCH_PROMPT_TEMPLATE = """# Gold Market Analysis - Latest 24 Hours

Today's date: {date}

## Research strategy
Run 3 to 8 short, distinct web searches covering:
1. Gold price news today
2. Gold technical analysis (levels, RSI, trend)
3. Fed policy, inflation data and the US dollar
4. Gold ETF flows and central bank buying
5. Geopolitical risk and safe-haven demand

Prefer Reuters, Bloomberg, Financial Times, MarketWatch and TradingView.
Only use news from the last 24 to 48 hours and cross-check prices across sources.

## Output format
End your answer with one JSON object in exactly this structure:

{schema}

Include at least 5 news_highlights. Make sure the JSON is valid."""

SCRAPED_PROMPT_TEMPLATE = """# Gold Market Analysis From Scraped Data

Today's date: {date}

The following price and news data was scraped from finance sites a few minutes ago:

{market_data}

Analyze it and answer with one JSON object in exactly this structure:

{schema}

Keep the scraped spot price and headlines; infer indicators only when the data supports them.
Return ONLY the JSON object."""


# ══════════════════════════════════════════════════════════════════════════════
# RESULTS
# ══════════════════════════════════════════════════════════════════════════════


@dataclass
class PipelineResult:
    """
    Result of one pipeline run.

    Attributes:
        tool: Tool name the record was saved under
        record: Record produced (failed records included)
        save: Outcome of the write
        branches: Branch name -> "ok" or the branch's error
    """

    tool: str
    record: Optional[AnalysisRecord] = None
    save: Optional[SaveResult] = None
    branches: Dict[str, str] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return (
            self.record is not None
            and self.record.ok
            and self.record.source != SOURCE_NO_DATA
            and self.save is not None
            and self.save.success
        )

    @property
    def exit_code(self) -> int:
        return 0 if self.success else 1

    @property
    def error(self) -> Optional[str]:
        if self.save is not None and not self.save.success:
            return f"Write failed: {self.save.error}"
        if self.record is not None and self.record.error:
            return self.record.error
        if self.record is not None and self.record.source == SOURCE_NO_DATA:
            return "No analysis data available"
        return None


def record_from_market(market: MarketData, source: str) -> AnalysisRecord:
    """Deterministic record built from scraped data alone (no decision)."""
    summary = market.summary
    sentiment = MarketSentiment()
    if summary.total:
        sentiment = MarketSentiment(
            overall=summary.overall,
            summary=(
                f"{summary.total} news items: {summary.bullish} bullish, "
                f"{summary.bearish} bearish, {summary.high_relevance} highly relevant"
            ),
        )

    return AnalysisRecord(
        source=source,
        spot_price=market.price.price if market.price else None,
        price_change=PriceChange(daily_pct=market.price.change_percent if market.price else None),
        market_sentiment=sentiment,
        news_highlights=list(market.news),
    )


def _enrich(record: AnalysisRecord, market: MarketData) -> AnalysisRecord:
    """Fill gaps in an LLM record with scraped values."""
    if record.spot_price is None and market.price is not None:
        record.spot_price = market.price.price
    if record.price_change.daily_pct is None and market.price is not None:
        record.price_change.daily_pct = market.price.change_percent
    if not record.news_highlights and market.news:
        record.news_highlights = list(market.news)
    return record


async def scrape_market_data(config: Config, caller: Optional[RetryingCaller] = None) -> MarketData:
    """Run the default scraper in a fresh Playwright browser."""
    caller = caller or RetryingCaller(config.retry.policy())
    async with PlaywrightBrowser(config.scraper) as browser:
        scraper = GoldDataScraper(browser, caller=caller, config=config.scraper)
        return await scraper.get_market_data()


# ══════════════════════════════════════════════════════════════════════════════
# ANALYSIS PIPELINE
# ══════════════════════════════════════════════════════════════════════════════


class AnalysisPipeline:
    """
    Single-source or hybrid analysis for one tool.

    Usage:
        pipeline = AnalysisPipeline("claude", provider, store, caller, scrape=scrape_func)
        result = await pipeline.run()
    """

    def __init__(
        self,
        tool: str,
        provider: Optional[LLMProvider],
        store: ResultStore,
        caller: Optional[RetryingCaller] = None,
        scrape: Optional[ScrapeFunc] = None,
        use_search: bool = True,
        max_tokens: int = 8000,
        temperature: float = 0.3,
    ):
        if use_search and provider is None:
            raise ValueError("Web search needs an LLM provider")
        if not use_search and scrape is None:
            raise ValueError("Pipeline needs at least one data source")

        self.tool = tool
        self.provider = provider
        self.store = store
        self.caller = caller or RetryingCaller()
        self.scrape = scrape
        self.use_search = use_search
        self.max_tokens = max_tokens
        self.temperature = temperature
        self._usage: Dict[str, Any] = {}

    # ── LLM calls ─────────────────────────────────────────────────────────────

    async def _ask(self, request: LLMRequest, label: str) -> AnalysisRecord:
        provider = self.provider
        result = await self.caller.call(lambda: provider.send(request), description=f"{provider.name} {label}")
        response = result.unwrap()

        self._usage = {
            "provider": response.provider,
            "model": response.model,
            "token_usage": response.tokens_used or None,
            "generation_time": round(response.generation_time, 2),
            "attempts": result.attempts,
        }

        data = decode_analysis_json(response.text, expected_keys=ANALYSIS_KEYS)
        return AnalysisRecord.from_dict(data, source=self.tool)

    async def search(self) -> AnalysisRecord:
        """Web-search branch."""
        request = LLMRequest(
            prompt=SEARCH_PROMPT_TEMPLATE.format(date=date.today().isoformat(), schema=UNIFIED_SCHEMA),
            system=ANALYSIS_SYSTEM_PROMPT,
            web_search=True,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )
        return await self._ask(request, "web search analysis")

    async def analyze_market(self, market: MarketData) -> AnalysisRecord:
        """Ask the provider for a decision on scraped data."""
        request = LLMRequest(
            prompt=SCRAPED_PROMPT_TEMPLATE.format(
                date=date.today().isoformat(),
                market_data=json.dumps(market.to_dict(), indent=2, ensure_ascii=False),
                schema=UNIFIED_SCHEMA,
            ),
            system=ANALYSIS_SYSTEM_PROMPT,
            structured=True,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )
        return _enrich(await self._ask(request, "scraped data analysis"), market)

    # ── Orchestration ─────────────────────────────────────────────────────────

    async def _gather(self) -> Tuple[Dict[str, Any], Dict[str, str]]:
        branches: List[Tuple[str, Awaitable[Any]]] = []
        if self.use_search:
            branches.append(("search", self.search()))
        if self.scrape is not None:
            branches.append(("scrape", self.scrape()))

        outcomes = await asyncio.gather(*(coro for _, coro in branches), return_exceptions=True)

        values: Dict[str, Any] = {}
        status: Dict[str, str] = {}
        for (name, _), outcome in zip(branches, outcomes):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, Exception):
                logger.warning(f"{self.tool} {name} branch failed: {outcome}")
                status[name] = f"{type(outcome).__name__}: {outcome}"
            else:
                values[name] = outcome
                status[name] = "ok"
        return values, status

    async def _from_market(self, market: MarketData, status: Dict[str, str]) -> AnalysisRecord:
        if self.provider is None:
            return record_from_market(market, self.tool)
        try:
            return await self.analyze_market(market)
        except Exception as e:
            logger.warning(f"LLM analysis of scraped data failed, saving scraped data only: {e}")
            status["analysis"] = f"{type(e).__name__}: {e}"
            return record_from_market(market, self.tool)

    async def run(self) -> PipelineResult:
        """Acquire, decode and save. Never raises for source failures."""
        self._usage = {}
        values, status = await self._gather()
        market: Optional[MarketData] = values.get("scrape")

        if "search" in values:
            record = values["search"]
            if market is not None:
                record = _enrich(record, market)
        elif market is not None:
            record = await self._from_market(market, status)
        else:
            errors = "; ".join(f"{name}: {error}" for name, error in status.items())
            record = AnalysisRecord.failed(self.tool, f"All sources failed ({errors})")

        now = utc_now()
        data_sources = [name for name in ("search", "scrape") if name in values]
        record = record.copy(
            timestamp=now,
            source=self.tool,
            metadata={
                "bot_version": BOT_VERSION,
                "data_source": "+".join(data_sources) or "none",
                "format_version": FORMAT_VERSION,
                "processing_time": format_timestamp(now),
                "branches": dict(status),
                **self._usage,
            },
        )
        if market is not None:
            record.metadata["scrape"] = {
                "price_source": market.price.source if market.price else None,
                "news_summary": asdict(market.summary),
                "errors": dict(market.errors),
            }

        save = self.store.save(record, self.tool)
        return PipelineResult(tool=self.tool, record=record, save=save, branches=status)


# ══════════════════════════════════════════════════════════════════════════════
# MERGE PIPELINE
# ══════════════════════════════════════════════════════════════════════════════


class MergePipeline:
    """Loads the latest record of two tools and saves the unified record."""

    def __init__(self, merger: AnalysisMerger, store: ResultStore, output_tool: str = "unified"):
        self.merger = merger
        self.store = store
        self.output_tool = output_tool

    async def run(self) -> PipelineResult:
        first, second = load_latest_pair(self.store, self.merger.names)
        status = {
            self.merger.names[0]: "ok" if first is not None else "missing",
            self.merger.names[1]: "ok" if second is not None else "missing",
        }

        record = await self.merger.merge(first, second)
        save = self.store.save(record, self.output_tool)
        return PipelineResult(tool=self.output_tool, record=record, save=save, branches=status)


# ══════════════════════════════════════════════════════════════════════════════
# BUILDERS
# ══════════════════════════════════════════════════════════════════════════════


def build_analysis_pipeline(config: Config, tool: str, search: bool = True, scrape: bool = False) -> AnalysisPipeline:
    """Analysis pipeline for a provider, with optional scraping."""
    provider = create_provider_from_config(config, tool)
    scrape_func = None
    if scrape:
        scrape_caller = RetryingCaller(config.retry.policy())

        async def scrape_func() -> MarketData:
            return await scrape_market_data(config, scrape_caller)

    return AnalysisPipeline(
        tool=provider.name,
        provider=provider,
        store=ResultStore(config.paths.data_dir),
        caller=RetryingCaller(config.retry.policy(timeout=config.llm.timeout)),
        scrape=scrape_func,
        use_search=search,
        max_tokens=config.llm.max_tokens,
        temperature=config.llm.temperature,
    )


def build_scrape_pipeline(config: Config) -> AnalysisPipeline:
    """Scrape-only pipeline; the LLM decision is used when SCRAPE_PROVIDER is set."""
    scrape_caller = RetryingCaller(config.retry.policy())

    async def scrape_func() -> MarketData:
        return await scrape_market_data(config, scrape_caller)

    return AnalysisPipeline(
        tool="scraper",
        provider=create_optional_provider(config, config.llm.scrape_provider),
        store=ResultStore(config.paths.data_dir),
        caller=RetryingCaller(config.retry.policy(timeout=config.llm.timeout)),
        scrape=scrape_func,
        use_search=False,
        max_tokens=config.llm.max_tokens,
        temperature=config.llm.temperature,
    )


def build_merge_pipeline(config: Config, first: str = "claude", second: str = "openai") -> MergePipeline:
    """Merge pipeline using the configured merger provider (fallback only if none)."""
    merger = AnalysisMerger(
        provider=create_optional_provider(config, config.llm.merger_provider),
        caller=RetryingCaller(config.retry.policy(timeout=config.llm.timeout)),
        names=(first, second),
    )
    return MergePipeline(merger, ResultStore(config.paths.data_dir))
