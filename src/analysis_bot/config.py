#!/usr/bin/env python3
# ══════════════════════════════════════════════════════════════════════════════
#  Analysis Bot - Configuration Module
#  Copyright (c) 2025 SIRIUS Alpha
# ══════════════════════════════════════════════════════════════════════════════
"""
Configuration management for Analysis Bot.

Loads settings from environment variables with sensible defaults.
Each section is a dataclass so tests can build configs explicitly.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from .retry import RetryPolicy


def _get_project_root() -> Path:
    """Find the project root directory."""
    current = Path(__file__).resolve().parent
    # Walk up until we find pyproject.toml
    for _ in range(10):
        if (current / "pyproject.toml").exists():
            return current
        current = current.parent
    # Fallback to 2 levels up from src/analysis_bot
    return Path(__file__).resolve().parent.parent.parent


def _load_dotenv() -> None:
    """Load .env file from the project root."""
    from dotenv import load_dotenv

    env_path = _get_project_root() / ".env"
    if env_path.exists():
        load_dotenv(env_path)


# Load environment on module import
_load_dotenv()


def _env(key: str, default: str = "") -> str:
    """Get environment variable with default."""
    return os.environ.get(key, default)


def _env_int(key: str, default: int) -> int:
    """Get integer environment variable."""
    try:
        return int(os.environ.get(key, str(default)))
    except ValueError:
        return default


def _env_float(key: str, default: float) -> float:
    """Get float environment variable."""
    try:
        return float(os.environ.get(key, str(default)))
    except ValueError:
        return default


def _env_bool(key: str, default: bool = False) -> bool:
    """Get boolean environment variable."""
    val = os.environ.get(key, "").lower()
    if val in ("1", "true", "yes", "on"):
        return True
    if val in ("0", "false", "no", "off"):
        return False
    return default


def _env_list(key: str, default: List[str]) -> List[str]:
    """Get comma separated list environment variable."""
    val = os.environ.get(key, "")
    if not val:
        return list(default)
    return [item.strip() for item in val.split(",") if item.strip()]


def _env_path(key: str, default: Path) -> Path:
    """Get path environment variable."""
    val = os.environ.get(key, "")
    if val:
        path = Path(val).expanduser()
        return path if path.is_absolute() else _get_project_root() / path
    return default


@dataclass
class LLMConfig:
    """LLM provider configuration."""

    anthropic_api_key: str = field(default_factory=lambda: _env("ANTHROPIC_API_KEY"))
    openai_api_key: str = field(default_factory=lambda: _env("OPENAI_API_KEY"))
    gemini_api_key: str = field(default_factory=lambda: _env("GEMINI_API_KEY"))

    claude_model: str = field(default_factory=lambda: _env("CLAUDE_MODEL", "claude-sonnet-4-20250514"))
    openai_model: str = field(default_factory=lambda: _env("OPENAI_MODEL", "gpt-4.1"))
    gemini_model: str = field(default_factory=lambda: _env("GEMINI_MODEL", "gemini-2.5-pro"))

    # Provider used by the merger and by the scrape-only pipeline ("" disables)
    merger_provider: str = field(default_factory=lambda: _env("MERGER_PROVIDER", "openai"))
    scrape_provider: str = field(default_factory=lambda: _env("SCRAPE_PROVIDER", ""))

    # Generation settings
    max_tokens: int = field(default_factory=lambda: _env_int("LLM_MAX_TOKENS", 8000))
    temperature: float = field(default_factory=lambda: _env_float("LLM_TEMPERATURE", 0.3))
    timeout: float = field(default_factory=lambda: _env_float("LLM_TIMEOUT", 180.0))

    def api_key_for(self, provider: str) -> str:
        """Return the API key configured for a provider name."""
        return {
            "claude": self.anthropic_api_key,
            "openai": self.openai_api_key,
            "gemini": self.gemini_api_key,
        }.get(provider.lower(), "")


@dataclass
class RetryConfig:
    """Retry/backoff configuration for network calls."""

    max_attempts: int = field(default_factory=lambda: _env_int("RETRY_MAX_ATTEMPTS", 3))
    base_delay: float = field(default_factory=lambda: _env_float("RETRY_BASE_DELAY", 1.0))
    rate_limit_delay: float = field(default_factory=lambda: _env_float("RETRY_RATE_LIMIT_DELAY", 60.0))
    max_delay: float = field(default_factory=lambda: _env_float("RETRY_MAX_DELAY", 30.0))

    def policy(self, timeout: Optional[float] = None) -> RetryPolicy:
        """Build a RetryPolicy, optionally bounding each attempt."""
        return RetryPolicy(
            max_attempts=self.max_attempts,
            base_delay=self.base_delay,
            rate_limit_delay=self.rate_limit_delay,
            max_delay=self.max_delay,
            timeout=timeout,
        )


@dataclass
class ScraperConfig:
    """Headless browser scraper configuration."""

    user_agent: str = field(
        default_factory=lambda: _env(
            "SCRAPER_USER_AGENT",
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/116.0 Safari/537.36",
        )
    )
    navigation_timeout_ms: int = field(default_factory=lambda: _env_int("SCRAPER_NAV_TIMEOUT_MS", 30000))
    settle_ms: int = field(default_factory=lambda: _env_int("SCRAPER_SETTLE_MS", 2000))
    max_news: int = field(default_factory=lambda: _env_int("SCRAPER_MAX_NEWS", 10))
    headless: bool = field(default_factory=lambda: _env_bool("SCRAPER_HEADLESS", True))


@dataclass
class PathConfig:
    """File and directory path configuration."""

    project_root: Path = field(default_factory=_get_project_root)

    # Snapshot directory read by the dashboard
    data_dir: Path = field(default_factory=lambda: _env_path("DATA_DIR", _get_project_root() / "data"))

    log_file: Path = field(
        default_factory=lambda: _env_path("ANALYSIS_LOG_FILE", _get_project_root() / "logs" / "analysis_bot.log")
    )


@dataclass
class ScheduleConfig:
    """Analysis sequence and scheduler configuration."""

    interval_hours: int = field(default_factory=lambda: _env_int("SCHEDULE_INTERVAL_HOURS", 4))
    tools: List[str] = field(default_factory=lambda: _env_list("SEQUENCE_TOOLS", ["claude", "openai"]))
    step_delay_sec: float = field(default_factory=lambda: _env_float("SEQUENCE_STEP_DELAY_SEC", 15.0))


@dataclass
class Config:
    """
    Master configuration for Analysis Bot.

    Aggregates all sub-configurations and provides utility methods.
    """

    llm: LLMConfig = field(default_factory=LLMConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    scraper: ScraperConfig = field(default_factory=ScraperConfig)
    paths: PathConfig = field(default_factory=PathConfig)
    schedule: ScheduleConfig = field(default_factory=ScheduleConfig)

    # Runtime flags
    debug: bool = field(default_factory=lambda: _env_bool("DEBUG", False))

    def validate(self) -> list[str]:
        """
        Validate configuration and return list of issues.

        Returns:
            List of validation error messages (empty if valid)
        """
        issues = []

        for tool in self.schedule.tools:
            if tool not in ("claude", "openai", "gemini"):
                issues.append(f"Unknown tool in SEQUENCE_TOOLS: {tool}")
            elif not self.llm.api_key_for(tool):
                issues.append(f"No API key configured for {tool}")

        if self.llm.merger_provider and not self.llm.api_key_for(self.llm.merger_provider):
            issues.append(
                f"Merger provider '{self.llm.merger_provider}' has no API key\n"
                f"  The merger will use the deterministic fallback"
            )

        if self.retry.max_attempts < 1:
            issues.append(f"RETRY_MAX_ATTEMPTS must be >= 1 (got {self.retry.max_attempts})")

        return issues

    def summary(self) -> str:
        """Generate human-readable configuration summary."""

        def _key_state(key: str) -> str:
            return "set" if key else "missing"

        lines = [
            "═" * 60,
            "  ANALYSIS BOT CONFIGURATION",
            "═" * 60,
            "",
            "LLM Providers:",
            f"  Claude: {self.llm.claude_model} (key {_key_state(self.llm.anthropic_api_key)})",
            f"  OpenAI: {self.llm.openai_model} (key {_key_state(self.llm.openai_api_key)})",
            f"  Gemini: {self.llm.gemini_model} (key {_key_state(self.llm.gemini_api_key)})",
            f"  Merger: {self.llm.merger_provider or 'fallback only'}",
            f"  Timeout: {self.llm.timeout:.0f}s",
            "",
            "Retry Policy:",
            f"  Max Attempts: {self.retry.max_attempts}",
            f"  Base Delay: {self.retry.base_delay}s (cap {self.retry.max_delay}s)",
            f"  Rate Limit Delay: {self.retry.rate_limit_delay}s",
            "",
            "Paths:",
            f"  Data: {self.paths.data_dir}",
            f"  Log: {self.paths.log_file}",
            "",
            "Schedule:",
            f"  Interval: every {self.schedule.interval_hours}h",
            f"  Tools: {', '.join(self.schedule.tools)}",
            "",
            "═" * 60,
        ]

        return "\n".join(lines)


# Singleton config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get or create the global configuration instance."""
    global _config
    if _config is None:
        _config = Config()
    return _config


def reset_config() -> None:
    """Reset the global configuration (for testing)."""
    global _config
    _config = None
