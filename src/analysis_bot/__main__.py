#!/usr/bin/env python3
# ══════════════════════════════════════════════════════════════════════════════
#  Analysis Bot - CLI Entry Point
#  Copyright (c) 2025 SIRIUS Alpha
# ══════════════════════════════════════════════════════════════════════════════
"""
Command-line interface for the Analysis Bot.

Features:
- Per-provider web search analysis, optionally combined with scraping
- Scrape-only analysis
- Merging of the latest analyses into a unified record
- One-shot sequence and scheduler daemon
- Structured logging (console + rotating file)
"""

import asyncio
import logging
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

import click

from .config import Config, get_config
from .llm import PROVIDER_NAMES, available_providers
from .models import AnalysisRecord
from .pipeline import PipelineResult, build_analysis_pipeline, build_merge_pipeline, build_scrape_pipeline
from .scheduler import AnalysisScheduler
from .store import ResultStore

# ══════════════════════════════════════════════════════════════════════════════
# LOGGING SETUP
# ══════════════════════════════════════════════════════════════════════════════


def setup_logging(
    verbose: bool = False,
    log_file: Optional[Path] = None,
    quiet: bool = False,
) -> None:
    """
    Configure logging for the application.

    Args:
        verbose: Enable DEBUG level
        log_file: Path to log file
        quiet: Suppress console output
    """
    root = logging.getLogger()
    root.setLevel(logging.DEBUG if verbose else logging.INFO)
    root.handlers.clear()

    fmt = "%(asctime)s [%(levelname)-.1s] %(name)s: %(message)s"
    datefmt = "%H:%M:%S"
    formatter = logging.Formatter(fmt, datefmt)

    if not quiet:
        console = logging.StreamHandler(sys.stderr)
        console.setLevel(logging.DEBUG if verbose else logging.INFO)
        console.setFormatter(formatter)
        root.addHandler(console)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=5 * 1024 * 1024,  # 5 MB
            backupCount=3,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.DEBUG)

        file_fmt = "%(asctime)s [%(levelname)-8s] %(name)s: %(message)s"
        file_handler.setFormatter(logging.Formatter(file_fmt))
        root.addHandler(file_handler)

    # SDK clients log every request at INFO
    for noisy in ("httpx", "httpcore", "anthropic", "openai", "google_genai"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════════
# CONSOLE OUTPUT HELPERS
# ══════════════════════════════════════════════════════════════════════════════


class Console:
    """Simple console output with status indicators."""

    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"

    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    RED = "\033[31m"
    BLUE = "\033[34m"
    CYAN = "\033[36m"

    @classmethod
    def supports_color(cls) -> bool:
        return sys.stdout.isatty()

    @classmethod
    def _color(cls, text: str, color: str) -> str:
        if not cls.supports_color():
            return text
        return f"{color}{text}{cls.RESET}"

    @classmethod
    def _safe_print(cls, text: str) -> None:
        """Print text with fallback for encoding issues."""
        try:
            click.echo(text)
        except UnicodeEncodeError:
            click.echo(text.encode("ascii", errors="replace").decode("ascii"))

    @classmethod
    def header(cls, text: str) -> None:
        line = "=" * 60
        cls._safe_print(cls._color(line, cls.CYAN))
        cls._safe_print(cls._color(f"  {text}", cls.BOLD + cls.CYAN))
        cls._safe_print(cls._color(line, cls.CYAN))

    @classmethod
    def step(cls, text: str) -> None:
        cls._safe_print(f"  {cls._color('->', cls.BLUE)} {text}")

    @classmethod
    def success(cls, text: str) -> None:
        cls._safe_print(f"  {cls._color('[OK]', cls.GREEN)} {text}")

    @classmethod
    def warning(cls, text: str) -> None:
        cls._safe_print(f"  {cls._color('[!]', cls.YELLOW)} {text}")

    @classmethod
    def error(cls, text: str) -> None:
        cls._safe_print(f"  {cls._color('[X]', cls.RED)} {text}")

    @classmethod
    def info(cls, text: str) -> None:
        cls._safe_print(f"  {cls._color('*', cls.DIM)} {text}")

    @classmethod
    def divider(cls) -> None:
        cls._safe_print(cls._color("  " + "-" * 56, cls.DIM))


def _fmt(value, suffix: str = "") -> str:
    return "N/A" if value is None else f"{value}{suffix}"


def print_record(record: AnalysisRecord) -> None:
    """Print the headline numbers of a record."""
    Console.info(f"Source: {record.source}")
    Console.info(f"Spot Price: {_fmt(record.spot_price)}")
    Console.info(f"Daily Change: {_fmt(record.price_change.daily_pct, '%')}")
    Console.info(f"Trend: {_fmt(record.technical_indicators.trend)}")
    Console.info(f"Signal: {_fmt(record.signals.short_term)}")
    Console.info(f"Sentiment: {_fmt(record.market_sentiment.overall)}")
    Console.info(f"Action: {_fmt(record.final_decision.action)} (confidence {_fmt(record.final_decision.confidence)})")
    Console.info(f"News Items: {len(record.news_highlights)}")
    Console.info(f"Risk Factors: {len(record.risk_factors)}")


def report_result(result: PipelineResult) -> int:
    """Print a pipeline result and return its exit code."""
    Console.divider()

    for branch, state in result.branches.items():
        if state == "ok":
            Console.success(f"{branch}: ok")
        else:
            Console.warning(f"{branch}: {state}")

    if result.record is not None:
        if result.record.ok:
            print_record(result.record)
        else:
            Console.error(f"Analysis failed: {result.record.error}")

    if result.save is not None and result.save.success:
        Console.success(f"Saved: {result.save.path}")
        Console.info(f"Latest: {result.save.latest_path}")
    elif result.save is not None:
        Console.error(f"Write failed: {result.save.error}")

    Console.divider()
    if result.success:
        Console.success("Done")
    else:
        Console.error(result.error or "Run failed")

    return result.exit_code


# ══════════════════════════════════════════════════════════════════════════════
# ORCHESTRATION
# ══════════════════════════════════════════════════════════════════════════════


def run_analysis_pipeline(config: Config, tool: str, search: bool = True, scrape: bool = False) -> int:
    """
    Run one tool's analysis.

    Returns:
        Exit code (0=saved, 1=failure)
    """
    mode = "+".join(name for name, on in (("search", search), ("scrape", scrape)) if on)
    Console.header(f"Gold Analysis - {tool} ({mode})")

    if not search and not scrape:
        Console.error("Nothing to do: enable --search and/or --scrape")
        return 1

    Console.step("Collecting market data...")
    pipeline = build_analysis_pipeline(config, tool, search=search, scrape=scrape)
    result = asyncio.run(pipeline.run())
    return report_result(result)


def run_scrape_pipeline(config: Config) -> int:
    Console.header("Gold Analysis - scraper")
    provider = config.llm.scrape_provider
    Console.info(f"Decision provider: {provider or 'none (scraped data only)'}")
    Console.step("Scraping finance sites...")

    result = asyncio.run(build_scrape_pipeline(config).run())
    return report_result(result)


def run_merge_pipeline(config: Config, first: str, second: str) -> int:
    Console.header(f"Unified Analysis - {first} + {second}")
    Console.info(f"Merge provider: {config.llm.merger_provider or 'fallback only'}")
    Console.step("Merging latest analyses...")

    result = asyncio.run(build_merge_pipeline(config, first, second).run())
    return report_result(result)


# ══════════════════════════════════════════════════════════════════════════════
# CLI COMMANDS
# ══════════════════════════════════════════════════════════════════════════════


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose (debug) output")
@click.option("--quiet", "-q", is_flag=True, help="Suppress log output on the console")
@click.option("--log-file", type=click.Path(path_type=Path), help="Path to log file")
@click.pass_context
def main(ctx: click.Context, verbose: bool, quiet: bool, log_file: Optional[Path]) -> None:
    """
    Gold Analysis Bot

    Gathers gold market data through LLM web search and site scraping,
    produces structured trading analyses and merges them for the dashboard.
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose

    if log_file is None:
        log_file = get_config().paths.log_file

    setup_logging(verbose, log_file, quiet)


@main.command()
@click.option("--tool", "-t", type=click.Choice(PROVIDER_NAMES), default="claude", show_default=True)
@click.option("--search/--no-search", default=True, help="Use the provider's web search")
@click.option("--scrape/--no-scrape", default=False, help="Also scrape finance sites")
def analyze(tool: str, search: bool, scrape: bool) -> None:
    """
    Run an analysis with one provider.

    Examples:

        analysis-bot analyze --tool claude

        analysis-bot analyze --tool openai --scrape
    """
    sys.exit(run_analysis_pipeline(get_config(), tool, search=search, scrape=scrape))


@main.command()
def scrape() -> None:
    """Scrape price and news, with an LLM decision when SCRAPE_PROVIDER is set."""
    sys.exit(run_scrape_pipeline(get_config()))


@main.command()
@click.option("--first", default="claude", show_default=True, help="Preferred source")
@click.option("--second", default="openai", show_default=True, help="Secondary source")
def merge(first: str, second: str) -> None:
    """Merge the latest analyses of two tools into the unified record."""
    sys.exit(run_merge_pipeline(get_config(), first, second))


@main.command()
def sequence() -> None:
    """Run every configured tool, then merge, once."""
    config = get_config()
    Console.header("Analysis Sequence")
    Console.info(f"Tools: {', '.join(config.schedule.tools)}")

    result = AnalysisScheduler(config).run_sequence()

    Console.divider()
    for name in result.successful:
        Console.success(name)
    for name, error in result.errors.items():
        Console.error(f"{name}: {error}")

    sys.exit(0 if result.success else 1)


@main.command()
@click.option("--no-initial-run", is_flag=True, help="Wait for the first interval before running")
def daemon(no_initial_run: bool) -> None:
    """Run the analysis sequence on a schedule until interrupted."""
    config = get_config()
    Console.header("Analysis Scheduler")
    Console.info(f"Interval: every {config.schedule.interval_hours}h")
    Console.info(f"Tools: {', '.join(config.schedule.tools)}")
    Console.info("Press Ctrl+C to stop")

    AnalysisScheduler(config).run_forever(run_immediately=not no_initial_run)
    Console.success("Scheduler stopped gracefully")


@main.command()
def check() -> None:
    """
    Check configuration and environment.

    Validates API keys, SDK availability and the data directory.
    """
    config = get_config()
    click.echo(config.summary())

    Console.step("Checking providers...")
    configured = available_providers(config)
    for name in PROVIDER_NAMES:
        if name in configured:
            Console.success(f"{name}: API key set")
        else:
            Console.warning(f"{name}: no API key")

    Console.step("Checking libraries...")
    for module, package in (
        ("anthropic", "anthropic"),
        ("openai", "openai"),
        ("google.genai", "google-genai"),
        ("playwright", "playwright"),
    ):
        try:
            __import__(module)
            Console.success(f"{package}: installed")
        except ImportError:
            Console.warning(f"{package}: not installed")

    Console.step("Checking paths...")
    if config.paths.data_dir.exists():
        Console.success(f"Data dir: {config.paths.data_dir}")
    else:
        Console.warning(f"Data dir missing (created on first save): {config.paths.data_dir}")

    issues = config.validate()
    Console.divider()
    if issues:
        for issue in issues:
            Console.warning(issue)
    else:
        Console.success("Configuration check complete")


@main.command()
@click.option("--tool", "-t", default="unified", show_default=True, help="Tool name")
@click.option("--limit", "-n", type=int, default=10, help="Number of snapshots to list")
def history(tool: str, limit: int) -> None:
    """List recent snapshots of a tool."""
    store = ResultStore(get_config().paths.data_dir)

    Console.header(f"Recent {tool} analyses")
    snapshots = store.list_snapshots(tool, limit)

    if not snapshots:
        Console.info("No snapshots found")
        return

    for path in snapshots:
        stat = path.stat()
        mtime = datetime.fromtimestamp(stat.st_mtime)
        Console.info(f"{path.name}  {mtime.strftime('%Y-%m-%d %H:%M')}  {stat.st_size / 1024:.1f} KB")


@main.command()
@click.option("--tool", "-t", required=True, help="Tool name")
@click.option("--keep", "-k", type=int, default=30, help="Number of recent snapshots to keep")
@click.option("--dry-run", "-n", is_flag=True, help="Only show what would be removed")
@click.confirmation_option(prompt="Are you sure you want to remove old snapshots?")
def cleanup(tool: str, keep: int, dry_run: bool) -> None:
    """Remove old snapshots of a tool (the latest file is kept)."""
    store = ResultStore(get_config().paths.data_dir)

    Console.header(f"Cleanup {tool} snapshots")
    deleted = store.cleanup(tool, keep, dry_run)

    if not deleted:
        Console.success("Nothing to clean up")
    elif dry_run:
        Console.warning(f"Would delete {len(deleted)} snapshots")
    else:
        Console.success(f"Deleted {len(deleted)} old snapshots")


# ══════════════════════════════════════════════════════════════════════════════
# ENTRY POINT
# ══════════════════════════════════════════════════════════════════════════════

if __name__ == "__main__":
    main()
