#!/usr/bin/env python3
# ══════════════════════════════════════════════════════════════════════════════
#  Analysis Bot - Result Store Tests
#  Copyright (c) 2025 SIRIUS Alpha
# ══════════════════════════════════════════════════════════════════════════════
"""
Tests for snapshot and latest-file persistence.
"""

import json
from datetime import datetime, timezone
from pathlib import Path

from conftest import make_record

from analysis_bot.models import AnalysisRecord
from analysis_bot.store import ResultStore

T1 = datetime(2025, 7, 1, 8, 0, tzinfo=timezone.utc)
T2 = datetime(2025, 7, 1, 12, 0, tzinfo=timezone.utc)
T3 = datetime(2025, 7, 1, 16, 0, tzinfo=timezone.utc)


class TestSave:
    def test_two_saves_keep_both_snapshots(self, store, data_dir):
        first = store.save(make_record(spot=3280.0, timestamp=T1), "claude")
        second = store.save(make_record(spot=3301.0, timestamp=T2), "claude")

        assert first.success and second.success
        assert first.path.name == "claude-analysis-2025-07-01T08-00-00-000Z.json"
        assert second.path.name == "claude-analysis-2025-07-01T12-00-00-000Z.json"
        assert first.path.exists() and second.path.exists()

        latest = json.loads((data_dir / "latest_claude_analysis.json").read_text(encoding="utf-8"))
        assert latest == json.loads(second.path.read_text(encoding="utf-8"))
        assert latest["unified_analysis"]["spot_price"] == 3301.0

    def test_same_timestamp_gets_suffix(self, store):
        first = store.save(make_record(timestamp=T1), "openai")
        second = store.save(make_record(timestamp=T1), "openai")

        assert first.path != second.path
        assert second.path.name == "openai-analysis-2025-07-01T08-00-00-000Z_001.json"
        assert store.list_snapshots("openai") == [second.path, first.path]

    def test_names_sort_in_save_order(self, store):
        paths = [store.save(make_record(timestamp=T1), "claude").path for _ in range(3)]
        assert sorted(path.name for path in paths) == [path.name for path in paths]

    def test_milliseconds_are_kept(self, store):
        first = store.save(make_record(timestamp=T1.replace(microsecond=120000)), "claude")
        second = store.save(make_record(timestamp=T1.replace(microsecond=450000)), "claude")

        assert first.path.name == "claude-analysis-2025-07-01T08-00-00-120Z.json"
        assert second.path.name == "claude-analysis-2025-07-01T08-00-00-450Z.json"
        assert store.list_snapshots("claude") == [second.path, first.path]

    def test_no_temporary_files_left(self, store, data_dir):
        store.save(make_record(timestamp=T1), "claude")
        assert not list(data_dir.glob("*.tmp"))

    def test_unwritable_directory_reports_failure(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory", encoding="utf-8")

        result = ResultStore(blocker).save(make_record(), "claude")

        assert not result.success
        assert result.error

    def test_invalid_tool_name(self, store):
        result = store.save(make_record(), "../claude")
        assert not result.success
        assert "Invalid tool name" in result.error

    def test_failed_record_is_saved(self, store):
        result = store.save(AnalysisRecord.failed("claude", "timeout"), "claude")

        assert result.success
        loaded = store.load_latest("claude")
        assert not loaded.ok
        assert loaded.error == "timeout"


class TestLoad:
    def test_round_trip(self, store):
        record = make_record(timestamp=T1, risk_factors=["Fed policy"])
        store.save(record, "claude")
        assert store.load_latest("claude") == record

    def test_missing_latest(self, store):
        assert store.load_latest("claude") is None

    def test_corrupt_latest(self, store, data_dir):
        data_dir.mkdir(parents=True)
        (data_dir / "latest_claude_analysis.json").write_text("{not json", encoding="utf-8")
        assert store.load_latest("claude") is None


class TestHistory:
    def test_list_newest_first_with_limit(self, store):
        for ts in (T2, T1, T3):
            store.save(make_record(timestamp=ts), "unified")

        names = [path.name for path in store.list_snapshots("unified", limit=2)]

        assert names == ["unified-analysis-2025-07-01T16-00-00-000Z.json", "unified-analysis-2025-07-01T12-00-00-000Z.json"]

    def test_other_tools_are_not_listed(self, store):
        store.save(make_record(timestamp=T1), "claude")
        store.save(make_record(timestamp=T1), "claude_only")
        assert len(store.list_snapshots("claude")) == 1

    def test_cleanup_keeps_recent_and_latest(self, store):
        for ts in (T1, T2, T3):
            store.save(make_record(timestamp=ts), "claude")

        deleted = store.cleanup("claude", keep=1)

        assert [path.name for path in deleted] == [
            "claude-analysis-2025-07-01T12-00-00-000Z.json",
            "claude-analysis-2025-07-01T08-00-00-000Z.json",
        ]
        assert len(store.list_snapshots("claude")) == 1
        assert store.latest_path("claude").exists()

    def test_cleanup_dry_run_deletes_nothing(self, store):
        for ts in (T1, T2):
            store.save(make_record(timestamp=ts), "claude")

        assert len(store.cleanup("claude", keep=0, dry_run=True)) == 2
        assert len(store.list_snapshots("claude")) == 2

    def test_cleanup_skips_undeletable_snapshot(self, store, monkeypatch):
        for ts in (T1, T2, T3):
            store.save(make_record(timestamp=ts), "claude")
        stuck = store.list_snapshots("claude")[1]
        unlink = Path.unlink

        def guarded_unlink(path, *args, **kwargs):
            if path == stuck:
                raise PermissionError("read-only snapshot")
            return unlink(path, *args, **kwargs)

        monkeypatch.setattr(Path, "unlink", guarded_unlink)

        deleted = store.cleanup("claude", keep=1)

        assert [path.name for path in deleted] == ["claude-analysis-2025-07-01T08-00-00-000Z.json"]
        assert stuck.exists()
        assert len(store.list_snapshots("claude")) == 2
