#!/usr/bin/env python3
# ══════════════════════════════════════════════════════════════════════════════
#  Analysis Bot - CLI Tests
#  Copyright (c) 2025 SIRIUS Alpha
# ══════════════════════════════════════════════════════════════════════════════
"""
Tests for the click commands, run offline against a temporary data directory.
"""

import logging
from datetime import datetime, timezone

import pytest
from click.testing import CliRunner
from conftest import make_record

from analysis_bot.__main__ import main
from analysis_bot.config import reset_config
from analysis_bot.store import ResultStore


@pytest.fixture
def cli_env(monkeypatch, tmp_path):
    """Point the CLI at a temporary data dir and disable every provider."""
    for var in ("ANTHROPIC_API_KEY", "OPENAI_API_KEY", "GEMINI_API_KEY"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("ANALYSIS_LOG_FILE", str(tmp_path / "logs" / "analysis_bot.log"))
    monkeypatch.setenv("MERGER_PROVIDER", "")
    reset_config()
    yield tmp_path
    reset_config()
    # setup_logging attaches handlers to the root logger
    root = logging.getLogger()
    for handler in list(root.handlers):
        if not type(handler).__module__.startswith("_pytest"):
            root.removeHandler(handler)
            handler.close()


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def store(cli_env):
    return ResultStore(cli_env / "data")


class TestMergeCommand:
    def test_merge_fallback(self, runner, store):
        store.save(make_record("claude", spot=3280.0), "claude")
        store.save(make_record("openai", spot=3282.0), "openai")

        result = runner.invoke(main, ["merge"])

        assert result.exit_code == 0, result.output
        assert "merged_fallback" in result.output
        assert store.load_latest("unified").spot_price == 3280.0

    def test_merge_without_data_fails(self, runner, store):
        result = runner.invoke(main, ["merge"])

        assert result.exit_code == 1
        assert store.load_latest("unified").source == "no_data"


class TestAnalyzeCommand:
    def test_nothing_enabled(self, runner, cli_env):
        result = runner.invoke(main, ["analyze", "--no-search", "--no-scrape"])

        assert result.exit_code == 1
        assert "Nothing to do" in result.output

    def test_missing_key_writes_failed_record(self, runner, store):
        result = runner.invoke(main, ["analyze", "--tool", "claude"])

        assert result.exit_code == 1
        latest = store.load_latest("claude")
        assert not latest.ok
        assert "ANTHROPIC_API_KEY" in latest.error

    def test_unknown_tool_is_rejected(self, runner, cli_env):
        result = runner.invoke(main, ["analyze", "--tool", "mistral"])
        assert result.exit_code == 2


class TestHistoryAndCleanup:
    def test_history_empty(self, runner, cli_env):
        result = runner.invoke(main, ["history"])

        assert result.exit_code == 0
        assert "No snapshots found" in result.output

    def test_history_lists_snapshots(self, runner, store):
        store.save(make_record("unified", timestamp=datetime(2025, 7, 1, 8, 0, tzinfo=timezone.utc)), "unified")

        result = runner.invoke(main, ["history", "--tool", "unified"])

        assert "unified-analysis-2025-07-01T08-00-00-000Z.json" in result.output

    def test_cleanup(self, runner, store):
        for hour in (8, 12, 16):
            store.save(make_record(timestamp=datetime(2025, 7, 1, hour, 0, tzinfo=timezone.utc)), "claude")

        result = runner.invoke(main, ["cleanup", "--tool", "claude", "--keep", "1", "--yes"])

        assert result.exit_code == 0
        assert "Deleted 2 old snapshots" in result.output
        assert len(store.list_snapshots("claude")) == 1

    def test_cleanup_needs_confirmation(self, runner, store):
        store.save(make_record(), "claude")

        result = runner.invoke(main, ["cleanup", "--tool", "claude", "--keep", "0"], input="n\n")

        assert result.exit_code == 1
        assert len(store.list_snapshots("claude")) == 1


class TestCheckCommand:
    def test_check(self, runner, cli_env):
        result = runner.invoke(main, ["check"])

        assert result.exit_code == 0
        assert "ANALYSIS BOT CONFIGURATION" in result.output
        assert "claude: no API key" in result.output
