#!/usr/bin/env python3
# ══════════════════════════════════════════════════════════════════════════════
#  Analysis Bot - Scheduler
#  Copyright (c) 2025 SIRIUS Alpha
# ══════════════════════════════════════════════════════════════════════════════
"""
Analysis sequence and periodic runs.

A sequence runs each configured tool's pipeline in order, pausing between
steps to stay under provider rate limits, then merges the first two tools.

The scheduler owns an explicit RunState. A run requested while another is
in progress is skipped, not queued.
"""

import asyncio
import logging
import signal
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import schedule

from .config import Config
from .models import format_timestamp, utc_now
from .pipeline import build_analysis_pipeline, build_merge_pipeline
from .store import ResultStore

logger = logging.getLogger(__name__)

STATUS_FILE = "scheduler_status.json"


class RunState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


@dataclass
class StepResult:
    name: str
    success: bool
    exit_code: int = 1
    error: Optional[str] = None
    path: Optional[str] = None
    duration_sec: float = 0.0


@dataclass
class SequenceResult:
    """Outcome of one analysis sequence."""

    started_at: datetime = field(default_factory=utc_now)
    finished_at: Optional[datetime] = None
    steps: List[StepResult] = field(default_factory=list)
    skipped: bool = False

    @property
    def successful(self) -> List[str]:
        return [step.name for step in self.steps if step.success]

    @property
    def failed(self) -> List[str]:
        return [step.name for step in self.steps if not step.success]

    @property
    def errors(self) -> Dict[str, str]:
        return {step.name: step.error or "failed" for step in self.steps if not step.success}

    @property
    def success(self) -> bool:
        return not self.skipped and bool(self.steps) and not self.failed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "started_at": format_timestamp(self.started_at),
            "finished_at": format_timestamp(self.finished_at) if self.finished_at else None,
            "skipped": self.skipped,
            "successful": self.successful,
            "failed": self.failed,
            "errors": self.errors,
            "steps": [
                {
                    "name": step.name,
                    "success": step.success,
                    "exit_code": step.exit_code,
                    "error": step.error,
                    "path": step.path,
                    "duration_sec": round(step.duration_sec, 2),
                }
                for step in self.steps
            ],
        }


class AnalysisScheduler:
    """
    Runs analysis sequences once or on an interval.

    Pipelines are built through factories so tests can substitute fakes:
    ``pipeline_factory(tool)`` and ``merge_factory(first, second)`` must
    return objects with an ``async run() -> PipelineResult`` method.
    """

    def __init__(
        self,
        config: Config,
        pipeline_factory: Optional[Callable[[str], Any]] = None,
        merge_factory: Optional[Callable[[str, str], Any]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self.pipeline_factory = pipeline_factory or (lambda tool: build_analysis_pipeline(config, tool))
        self.merge_factory = merge_factory or (lambda first, second: build_merge_pipeline(config, first, second))
        self._sleep = sleep

        self._state = RunState.IDLE
        self._lock = threading.Lock()
        self._shutdown_requested = False
        self._schedule = schedule.Scheduler()
        self.last_result: Optional[SequenceResult] = None

    # ── State ─────────────────────────────────────────────────────────────────

    @property
    def state(self) -> RunState:
        return self._state

    def try_begin(self) -> bool:
        """Atomically move IDLE -> RUNNING. False if a run is in progress."""
        with self._lock:
            if self._state == RunState.RUNNING:
                return False
            self._state = RunState.RUNNING
            return True

    def finish(self) -> None:
        with self._lock:
            self._state = RunState.IDLE

    # ── Sequence ──────────────────────────────────────────────────────────────

    def _run_step(self, name: str, build: Callable[[], Any]) -> StepResult:
        start = time.monotonic()
        try:
            pipeline = build()
            result = asyncio.run(pipeline.run())
        except Exception as e:
            logger.error(f"Step {name} crashed: {e}", exc_info=True)
            return StepResult(name=name, success=False, error=str(e), duration_sec=time.monotonic() - start)

        path = result.save.path if result.save is not None else None
        step = StepResult(
            name=name,
            success=result.success,
            exit_code=result.exit_code,
            error=result.error,
            path=str(path) if path else None,
            duration_sec=time.monotonic() - start,
        )
        if step.success:
            logger.info(f"Step {name} completed in {step.duration_sec:.1f}s")
        else:
            logger.warning(f"Step {name} failed: {step.error}")
        return step

    def run_sequence(self) -> SequenceResult:
        """
        Run every configured tool, then the merger.

        Returns:
            SequenceResult (``skipped`` when a run was already in progress)
        """
        if not self.try_begin():
            logger.warning("Analysis sequence already running, skipping this trigger")
            return SequenceResult(finished_at=utc_now(), skipped=True)

        result = SequenceResult()
        try:
            tools = list(self.config.schedule.tools)
            steps: List[tuple] = [(tool, lambda tool=tool: self.pipeline_factory(tool)) for tool in tools]
            if len(tools) >= 2:
                first, second = tools[0], tools[1]
                steps.append(("merge", lambda: self.merge_factory(first, second)))

            logger.info(f"Starting analysis sequence: {', '.join(name for name, _ in steps)}")

            for index, (name, build) in enumerate(steps):
                if self._shutdown_requested:
                    logger.info("Shutdown requested, stopping sequence")
                    break
                result.steps.append(self._run_step(name, build))
                if index < len(steps) - 1 and self.config.schedule.step_delay_sec > 0:
                    self._sleep(self.config.schedule.step_delay_sec)
        finally:
            result.finished_at = utc_now()
            self.last_result = result
            self.finish()
            self.write_status(result)

        logger.info(
            f"Sequence finished: {len(result.successful)} succeeded, {len(result.failed)} failed"
        )
        return result

    def write_status(self, result: Optional[SequenceResult] = None) -> None:
        """Write scheduler_status.json next to the analysis files."""
        next_run = self._schedule.next_run if self._schedule.jobs else None
        status = {
            "state": self._state.value,
            "interval_hours": self.config.schedule.interval_hours,
            "tools": list(self.config.schedule.tools),
            "next_run": next_run.isoformat() if next_run else None,
            "last_run": result.to_dict() if result else None,
            "updated_at": format_timestamp(utc_now()),
        }
        store = ResultStore(self.config.paths.data_dir)
        try:
            store.write_json(store.data_dir / STATUS_FILE, status)
        except OSError as e:
            logger.error(f"Failed to write scheduler status: {e}")

    # ── Daemon ────────────────────────────────────────────────────────────────

    def request_shutdown(self) -> None:
        self._shutdown_requested = True

    def _handle_signal(self, signum, frame) -> None:
        logger.info(f"Received {signal.Signals(signum).name}, shutting down after the current step")
        self.request_shutdown()

    def run_forever(self, run_immediately: bool = True) -> None:
        """Run a sequence every ``interval_hours`` until SIGINT/SIGTERM."""
        signal.signal(signal.SIGINT, self._handle_signal)
        signal.signal(signal.SIGTERM, self._handle_signal)

        interval = self.config.schedule.interval_hours
        self._schedule.every(interval).hours.do(self.run_sequence)

        if run_immediately:
            self.run_sequence()
        else:
            self.write_status(self.last_result)

        logger.info(f"Scheduler running every {interval}h, next run at {self._schedule.next_run}")

        while not self._shutdown_requested:
            try:
                self._schedule.run_pending()
            except Exception as e:
                logger.error(f"Error in scheduler loop: {e}", exc_info=True)
                time.sleep(5)
            time.sleep(1)

        self._schedule.clear()
        logger.info("Scheduler stopped")
