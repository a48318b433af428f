#!/usr/bin/env python3
# ══════════════════════════════════════════════════════════════════════════════
#  Analysis Bot - LLM Output Decoding
#  Copyright (c) 2025 SIRIUS Alpha
# ══════════════════════════════════════════════════════════════════════════════
"""
Locate and parse the JSON document inside LLM output.

Two response styles are handled:
- structured: the whole answer is JSON, possibly wrapped in code fences
- extraction: free text with an embedded JSON block somewhere inside

The contract: return the first balanced ``{...}`` block that parses and
carries at least one of the expected top-level keys, else raise
AnalysisParseError.
"""

import json
import re
from typing import Any, Dict, Iterable, Iterator, Optional

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*(.*?)\s*```", re.DOTALL)


class AnalysisParseError(ValueError):
    """Raised when no valid analysis JSON can be found in a response."""

    def __init__(self, message: str, text: str = ""):
        super().__init__(message)
        self.text = text


def strip_code_fences(text: str) -> str:
    """
    Remove markdown code fence markup around a JSON answer.

    If the text contains a fenced block, the block's body is returned;
    otherwise stray fence markers are dropped.
    """
    if not text:
        return ""

    match = _FENCE_RE.search(text)
    if match:
        return match.group(1).strip()

    return re.sub(r"```(?:json|JSON)?", "", text).strip()


def iter_json_blocks(text: str) -> Iterator[str]:
    """
    Yield every top-level balanced ``{...}`` substring, in order.

    Braces inside JSON strings are ignored, so a headline containing
    "{" does not break the scan.
    """
    depth = 0
    start = -1
    in_string = False
    escaped = False

    for i, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue

        if ch == '"' and depth > 0:
            in_string = True
        elif ch == "{":
            if depth == 0:
                start = i
            depth += 1
        elif ch == "}" and depth > 0:
            depth -= 1
            if depth == 0:
                yield text[start : i + 1]


def _matches(data: Any, expected_keys: Optional[Iterable[str]]) -> bool:
    if not isinstance(data, dict):
        return False
    if not expected_keys:
        return True
    return any(key in data for key in expected_keys)


def decode_analysis_json(text: str, expected_keys: Optional[Iterable[str]] = None) -> Dict[str, Any]:
    """
    Decode the analysis JSON from an LLM answer.

    Args:
        text: Raw model output
        expected_keys: Top-level keys of which at least one must be present

    Returns:
        Parsed JSON object

    Raises:
        AnalysisParseError: If no matching JSON object is found
    """
    if not text or not text.strip():
        raise AnalysisParseError("Empty response", text=text or "")

    keys = list(expected_keys) if expected_keys else None

    # Structured mode: the (unfenced) answer is the document
    candidate = strip_code_fences(text)
    try:
        data = json.loads(candidate)
        if _matches(data, keys):
            return data
    except json.JSONDecodeError:
        pass

    # Extraction mode: scan fenced bodies first, then the full text
    sources = [m.group(1) for m in _FENCE_RE.finditer(text)] + [text]
    for source in sources:
        for block in iter_json_blocks(source):
            try:
                data = json.loads(block)
            except json.JSONDecodeError:
                continue
            if _matches(data, keys):
                return data

    raise AnalysisParseError(
        f"No JSON object with keys {keys or 'any'} found in response ({len(text)} chars)",
        text=text,
    )
