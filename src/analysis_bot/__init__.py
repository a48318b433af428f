#!/usr/bin/env python3
# ══════════════════════════════════════════════════════════════════════════════
#  Analysis Bot - Gold Market LLM Analysis
#  Copyright (c) 2025 SIRIUS Alpha
# ══════════════════════════════════════════════════════════════════════════════
"""
Analysis Bot: gold market analyses from LLM web search and site scraping.

Each pipeline fetches market data, asks an LLM for a structured trading
analysis, and writes a timestamped JSON snapshot plus a rolling latest file
for the dashboard. A merger combines two sources into a unified record.

Usage:
    python -m analysis_bot analyze --tool claude
    python -m analysis_bot analyze --tool openai --scrape
    python -m analysis_bot merge
    python -m analysis_bot daemon
"""

__version__ = "2.0.0"
__author__ = "SIRIUS Alpha"

from .config import Config, get_config
from .decoding import AnalysisParseError, decode_analysis_json
from .extractor import ResilientExtractor, SelectorRule, clean_text
from .merger import AnalysisMerger
from .models import NOT_AVAILABLE, AnalysisRecord, NewsItem
from .news import NewsScore, NewsScorer
from .retry import CallResult, ErrorKind, RetryExhaustedError, RetryingCaller, RetryPolicy
from .store import ResultStore, SaveResult

__all__ = [
    # Version
    "__version__",
    "__author__",
    # Config
    "Config",
    "get_config",
    # Model
    "AnalysisRecord",
    "NewsItem",
    "NOT_AVAILABLE",
    # Retry
    "RetryingCaller",
    "RetryPolicy",
    "CallResult",
    "ErrorKind",
    "RetryExhaustedError",
    # Extraction
    "ResilientExtractor",
    "SelectorRule",
    "clean_text",
    # News
    "NewsScorer",
    "NewsScore",
    # Decoding
    "decode_analysis_json",
    "AnalysisParseError",
    # Merger
    "AnalysisMerger",
    # Store
    "ResultStore",
    "SaveResult",
]
