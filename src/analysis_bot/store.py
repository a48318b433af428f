#!/usr/bin/env python3
# ══════════════════════════════════════════════════════════════════════════════
#  Analysis Bot - Result Store
#  Copyright (c) 2025 SIRIUS Alpha
# ══════════════════════════════════════════════════════════════════════════════
"""
Persistence for analysis records.

Layout inside the data directory:

    claude-analysis-2025-07-01T08-00-00-000Z.json   snapshot, never overwritten
    latest_claude_analysis.json                      rolling copy of the newest run

The latest file is overwritten without locking; two pipelines writing the
same tool at once race and the last write wins.
"""

import json
import logging
import re
from dataclasses import dataclass
from datetime import timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from .models import AnalysisRecord

logger = logging.getLogger(__name__)

_TOOL_RE = re.compile(r"^[a-z0-9_]+$")
_STAMP_FORMAT = "%Y-%m-%dT%H-%M-%S"
_STAMP_RE = r"\d{4}-\d{2}-\d{2}T\d{2}-\d{2}-\d{2}-\d{3}Z"


@dataclass
class SaveResult:
    """
    Result of a save operation.

    Attributes:
        success: Whether both files were written
        path: Snapshot path
        latest_path: Latest file path
        error: Error message if failed
    """

    success: bool
    path: Optional[Path] = None
    latest_path: Optional[Path] = None
    error: Optional[str] = None


class ResultStore:
    """Writes snapshots plus a latest file per tool."""

    def __init__(self, data_dir: Path):
        self.data_dir = Path(data_dir)

    @staticmethod
    def latest_name(tool: str) -> str:
        return f"latest_{tool}_analysis.json"

    def latest_path(self, tool: str) -> Path:
        return self.data_dir / self.latest_name(tool)

    def _snapshot_pattern(self, tool: str) -> "re.Pattern[str]":
        return re.compile(rf"^{re.escape(tool)}-analysis-({_STAMP_RE})(?:_(\d+))?\.json$")

    @staticmethod
    def stamp(record: AnalysisRecord) -> str:
        """UTC timestamp with milliseconds, e.g. 2025-07-01T08-00-00-000Z."""
        ts = record.timestamp.astimezone(timezone.utc)
        return f"{ts.strftime(_STAMP_FORMAT)}-{ts.microsecond // 1000:03d}Z"

    def snapshot_path(self, record: AnalysisRecord, tool: str) -> Path:
        """
        First free snapshot path for the record's timestamp.

        Collisions get a zero-padded "_001" suffix, which sorts after the
        plain name so file names stay in save order.
        """
        stamp = self.stamp(record)
        path = self.data_dir / f"{tool}-analysis-{stamp}.json"

        counter = 1
        while path.exists():
            path = self.data_dir / f"{tool}-analysis-{stamp}_{counter:03d}.json"
            counter += 1

        return path

    def write_json(self, path: Path, data: Dict[str, Any]) -> Path:
        """Write JSON through a temporary file so readers never see half a file."""
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(path.name + ".tmp")
        tmp.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
        tmp.replace(path)
        return path

    def save(self, record: AnalysisRecord, tool: str) -> SaveResult:
        """
        Persist a record as a new snapshot and as the tool's latest file.

        Args:
            record: Record to write
            tool: Tool name (claude, openai, unified ...)

        Returns:
            SaveResult; failures are reported here, not raised
        """
        if not _TOOL_RE.match(tool or ""):
            return SaveResult(success=False, error=f"Invalid tool name: {tool!r}")

        data = record.to_dict()
        snapshot = None

        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            snapshot = self.write_json(self.snapshot_path(record, tool), data)
            latest = self.write_json(self.latest_path(tool), data)
        except OSError as e:
            logger.error(f"Failed to save {tool} analysis: {e}")
            return SaveResult(success=False, path=snapshot, error=str(e))

        logger.info(f"Saved {tool} analysis: {snapshot.name}")
        return SaveResult(success=True, path=snapshot, latest_path=latest)

    def load(self, path: Path) -> Optional[AnalysisRecord]:
        """Load a record from a file, None if missing or unreadable."""
        if not path.exists():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return AnalysisRecord.from_dict(data)
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read {path.name}: {e}")
            return None

    def load_latest(self, tool: str) -> Optional[AnalysisRecord]:
        """Load the tool's latest record."""
        return self.load(self.latest_path(tool))

    def list_snapshots(self, tool: str, limit: Optional[int] = None) -> List[Path]:
        """
        List a tool's snapshots, newest first.

        Args:
            tool: Tool name
            limit: Maximum number of paths to return
        """
        if not self.data_dir.exists():
            return []

        pattern = self._snapshot_pattern(tool)
        entries = []
        for path in self.data_dir.glob(f"{tool}-analysis-*.json"):
            match = pattern.match(path.name)
            if match:
                entries.append((match.group(1), int(match.group(2) or 0), path))

        entries.sort(reverse=True)
        paths = [path for _, _, path in entries]
        return paths[:limit] if limit is not None else paths

    def cleanup(self, tool: str, keep: int = 30, dry_run: bool = False) -> List[Path]:
        """
        Remove old snapshots, keeping the most recent ones.

        The latest file is never touched.

        Returns:
            Paths deleted (or that would be deleted); snapshots that could
            not be removed are logged and left out
        """
        old = self.list_snapshots(tool)[max(keep, 0) :]

        if dry_run:
            for path in old:
                logger.info(f"Would delete: {path.name}")
            return old

        deleted = []
        for path in old:
            try:
                path.unlink()
            except OSError as e:
                logger.error(f"Failed to delete {path.name}: {e}")
                continue
            logger.info(f"Deleted: {path.name}")
            deleted.append(path)

        return deleted
