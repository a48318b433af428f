#!/usr/bin/env python3
# ══════════════════════════════════════════════════════════════════════════════
#  Analysis Bot - Gold Market Scraper
#  Copyright (c) 2025 SIRIUS Alpha
# ══════════════════════════════════════════════════════════════════════════════
"""
Headless-browser collection of gold price and news.

The browser is only used through a narrow page capability:

    await page.goto(url, timeout_ms) -> bool
    await page.content() -> str

PlaywrightBrowser implements it with Playwright's async API; tests pass
fake pages. Every scrape branch (price, news) gets its own page so the
branches can run concurrently.

Site selectors ship as plain data in DEFAULT_PRICE_SOURCES and
DEFAULT_NEWS_SOURCES. They break whenever a site changes its markup.
"""

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence
from urllib.parse import urljoin

from .config import ScraperConfig
from .extractor import ResilientExtractor, SelectorRule
from .models import NOT_AVAILABLE, NewsItem, format_timestamp, to_float, utc_now
from .news import NewsScorer, NewsSummary, dedupe_news, mentions_gold
from .retry import RetryExhaustedError, RetryingCaller

logger = logging.getLogger(__name__)


class ScrapeError(Exception):
    """Raised when a page cannot be loaded or yields no usable data."""

    pass


# ══════════════════════════════════════════════════════════════════════════════
# BROWSER CAPABILITY
# ══════════════════════════════════════════════════════════════════════════════


class PageSession(Protocol):
    async def goto(self, url: str, timeout_ms: int) -> bool: ...

    async def content(self) -> str: ...

    async def close(self) -> None: ...


class BrowserSession(Protocol):
    async def new_page(self) -> PageSession: ...


class PlaywrightPage:
    """PageSession backed by a Playwright page."""

    def __init__(self, page, settle_ms: int = 2000):
        self._page = page
        self.settle_ms = settle_ms

    async def goto(self, url: str, timeout_ms: int) -> bool:
        from playwright.async_api import Error as PlaywrightError

        try:
            response = await self._page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)
        except PlaywrightError as e:
            logger.warning(f"Navigation to {url} failed: {e}")
            return False

        if response is not None and response.status >= 400:
            logger.warning(f"Navigation to {url} returned HTTP {response.status}")
            return False

        # Let client-side rendering fill in prices
        if self.settle_ms:
            await self._page.wait_for_timeout(self.settle_ms)
        return True

    async def content(self) -> str:
        return await self._page.content()

    async def close(self) -> None:
        await self._page.close()


class PlaywrightBrowser:
    """
    Chromium via Playwright, used as an async context manager.

    Usage:
        async with PlaywrightBrowser(config.scraper) as browser:
            page = await browser.new_page()
    """

    def __init__(self, config: ScraperConfig):
        self.config = config
        self._playwright = None
        self._browser = None
        self._context = None

    async def __aenter__(self) -> "PlaywrightBrowser":
        try:
            from playwright.async_api import async_playwright
        except ImportError:
            raise ScrapeError(
                "playwright not installed. Install with:\n"
                "  pip install playwright && playwright install chromium"
            )

        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(
            headless=self.config.headless,
            args=["--no-sandbox", "--disable-setuid-sandbox"],
        )
        self._context = await self._browser.new_context(
            user_agent=self.config.user_agent,
            viewport={"width": 1920, "height": 1080},
        )
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def new_page(self) -> PlaywrightPage:
        if self._context is None:
            raise ScrapeError("Browser is not started")
        page = await self._context.new_page()
        return PlaywrightPage(page, settle_ms=self.config.settle_ms)

    async def close(self) -> None:
        if self._browser is not None:
            await self._browser.close()
            self._browser = None
            self._context = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None


# ══════════════════════════════════════════════════════════════════════════════
# SOURCES
# ══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class PriceSource:
    """A quote page and its rules for price, change and change_percent."""

    name: str
    url: str
    rules: Mapping[str, Sequence[SelectorRule]]


@dataclass(frozen=True)
class NewsSource:
    """
    A news listing page.

    ``rules`` must define ``title``; ``description``, ``time`` and ``link``
    are optional. ``gold_only`` filters general market pages by topic.
    """

    name: str
    url: str
    item_selector: str
    rules: Mapping[str, Sequence[SelectorRule]]
    per_source_limit: int = 15
    gold_only: bool = False


DEFAULT_PRICE_SOURCES = (
    PriceSource(
        name="Investing.com",
        url="https://www.investing.com/commodities/gold",
        rules={
            "price": [
                SelectorRule('[data-test="instrument-price-last"]'),
                SelectorRule(".text-2xl"),
                SelectorRule('[class*="price"]'),
            ],
            "change": [
                SelectorRule('[data-test="instrument-price-change"]'),
                SelectorRule('[class*="change"]'),
            ],
            "change_percent": [SelectorRule('[data-test="instrument-price-change-percent"]')],
        },
    ),
    PriceSource(
        name="MarketWatch",
        url="https://www.marketwatch.com/investing/future/gc00",
        rules={
            "price": [SelectorRule(".price-value"), SelectorRule("bg-quote.value")],
            "change": [SelectorRule(".price-change"), SelectorRule(".change--point--q bg-quote")],
            "change_percent": [SelectorRule(".change--percent--q bg-quote")],
        },
    ),
)

DEFAULT_NEWS_SOURCES = (
    NewsSource(
        name="Investing.com",
        url="https://www.investing.com/commodities/gold-news",
        item_selector="article",
        rules={
            "title": [SelectorRule('[data-test="article-title-link"]'), SelectorRule("a")],
            "description": [SelectorRule('[data-test="article-description"]'), SelectorRule("p")],
            "time": [SelectorRule("time", attr="datetime"), SelectorRule("time")],
            "link": [SelectorRule('[data-test="article-title-link"]', attr="href"), SelectorRule("a", attr="href")],
        },
        per_source_limit=15,
    ),
    NewsSource(
        name="MarketWatch",
        url="https://www.marketwatch.com/markets/metals",
        item_selector=".article__content",
        rules={
            "title": [SelectorRule("h3 a"), SelectorRule(".headline")],
            "description": [SelectorRule("p")],
            "time": [SelectorRule("time")],
            "link": [SelectorRule("h3 a", attr="href"), SelectorRule("a", attr="href")],
        },
        per_source_limit=10,
        gold_only=True,
    ),
)


# ══════════════════════════════════════════════════════════════════════════════
# RESULTS
# ══════════════════════════════════════════════════════════════════════════════


@dataclass
class GoldPrice:
    price: float
    change: Optional[float] = None
    change_percent: Optional[float] = None
    source: str = ""
    timestamp: datetime = field(default_factory=utc_now)


@dataclass
class MarketData:
    """Outcome of one scrape; a branch that failed leaves its error in ``errors``."""

    price: Optional[GoldPrice] = None
    news: List[NewsItem] = field(default_factory=list)
    summary: NewsSummary = field(default_factory=NewsSummary)
    errors: Dict[str, str] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        price = None
        if self.price is not None:
            price = asdict(self.price)
            price["timestamp"] = format_timestamp(self.price.timestamp)
        return {
            "timestamp": format_timestamp(self.timestamp),
            "price": price,
            "news": [item.to_dict() for item in self.news],
            "summary": asdict(self.summary),
            "errors": dict(self.errors),
        }


def _value(fields: Mapping[str, str], name: str) -> Optional[str]:
    value = fields.get(name, NOT_AVAILABLE)
    return None if value == NOT_AVAILABLE else value


# ══════════════════════════════════════════════════════════════════════════════
# SCRAPER
# ══════════════════════════════════════════════════════════════════════════════


class GoldDataScraper:
    """
    Collects gold price and news from finance sites.

    Each source is tried in order; navigation goes through the retrying
    caller, so a flaky page load is retried before moving on.
    """

    def __init__(
        self,
        browser: BrowserSession,
        caller: Optional[RetryingCaller] = None,
        config: Optional[ScraperConfig] = None,
        price_sources: Sequence[PriceSource] = DEFAULT_PRICE_SOURCES,
        news_sources: Sequence[NewsSource] = DEFAULT_NEWS_SOURCES,
        extractor: Optional[ResilientExtractor] = None,
        scorer: Optional[NewsScorer] = None,
    ):
        self.browser = browser
        self.caller = caller or RetryingCaller()
        self.config = config or ScraperConfig()
        self.price_sources = list(price_sources)
        self.news_sources = list(news_sources)
        self.extractor = extractor or ResilientExtractor()
        self.scorer = scorer or NewsScorer()

    async def fetch_html(self, page: PageSession, url: str) -> str:
        """
        Load a URL and return its HTML.

        Raises:
            RetryExhaustedError: If every navigation attempt failed
        """

        async def navigate() -> str:
            if not await page.goto(url, self.config.navigation_timeout_ms):
                raise ScrapeError(f"Navigation to {url} failed")
            return await page.content()

        result = await self.caller.call(navigate, description=f"load {url}")
        return result.unwrap()

    async def get_gold_price(self) -> GoldPrice:
        """
        Scrape the spot price from the first source that yields one.

        Raises:
            ScrapeError: If no source produced a price
        """
        page = await self.browser.new_page()
        try:
            for source in self.price_sources:
                logger.info(f"Fetching gold price from {source.name}")
                try:
                    html = await self.fetch_html(page, source.url)
                except RetryExhaustedError as e:
                    logger.warning(f"{source.name} price unavailable: {e}")
                    continue

                fields = self.extractor.extract(html, source.rules)
                price = to_float(_value(fields, "price"))
                if price is None:
                    logger.warning(f"{source.name}: no price found on page")
                    continue

                logger.info(f"Price found on {source.name}: {price}")
                return GoldPrice(
                    price=price,
                    change=to_float(_value(fields, "change")),
                    change_percent=to_float(_value(fields, "change_percent")),
                    source=source.name,
                )
        finally:
            await page.close()

        raise ScrapeError("No price source returned a gold price")

    def _news_from_source(self, html: str, source: NewsSource) -> List[NewsItem]:
        rows = self.extractor.extract_items(
            html,
            source.item_selector,
            source.rules,
            primary_field="title",
            limit=source.per_source_limit,
        )

        items = []
        for row in rows:
            headline = row["title"]
            description = _value(row, "description")
            if source.gold_only and not mentions_gold(f"{headline} {description or ''}"):
                continue

            link = _value(row, "link")
            item = NewsItem(
                headline=headline,
                source=source.name,
                link=urljoin(source.url, link) if link else None,
                time=_value(row, "time"),
                description=description,
            )
            items.append(self.scorer.score_item(item))
        return items

    async def get_gold_news(self) -> List[NewsItem]:
        """
        Scrape, score, de-duplicate and rank gold news.

        Raises:
            ScrapeError: If every news source failed to load
        """
        collected: List[NewsItem] = []
        loaded = 0

        page = await self.browser.new_page()
        try:
            for source in self.news_sources:
                logger.info(f"Fetching gold news from {source.name}")
                try:
                    html = await self.fetch_html(page, source.url)
                except RetryExhaustedError as e:
                    logger.warning(f"{source.name} news unavailable: {e}")
                    continue
                loaded += 1
                items = self._news_from_source(html, source)
                logger.info(f"{source.name}: {len(items)} news items")
                collected.extend(items)
        finally:
            await page.close()

        if self.news_sources and loaded == 0:
            raise ScrapeError("No news source could be loaded")

        ranked = self.scorer.sort_items(dedupe_news(collected))
        return ranked[: self.config.max_news]

    async def get_market_data(self) -> MarketData:
        """
        Run the price and news branches concurrently.

        A failed branch is recorded in ``MarketData.errors``; only when both
        fail is ScrapeError raised.
        """
        price_result, news_result = await asyncio.gather(
            self.get_gold_price(),
            self.get_gold_news(),
            return_exceptions=True,
        )

        data = MarketData()

        for name, outcome in (("price", price_result), ("news", news_result)):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, Exception):
                logger.warning(f"Scrape branch {name} failed: {outcome}")
                data.errors[name] = str(outcome)

        if "price" not in data.errors:
            data.price = price_result
        if "news" not in data.errors:
            data.news = news_result
            data.summary = self.scorer.summarize(news_result)

        if len(data.errors) == 2:
            raise ScrapeError(f"All scrape branches failed: {data.errors}")

        return data
