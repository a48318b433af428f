#!/usr/bin/env python3
# ══════════════════════════════════════════════════════════════════════════════
#  Analysis Bot - Resilient HTML Extraction
#  Copyright (c) 2025 SIRIUS Alpha
# ══════════════════════════════════════════════════════════════════════════════
"""
Best-effort field extraction from finance pages.

Site layouts change often, so each logical field (price, change, title ...)
maps to an ordered list of selector rules instead of one selector. The first
rule that yields non-empty text wins; when none does the field gets the
``NOT_AVAILABLE`` sentinel and the caller decides what that means.

Example:

    rules = {
        "price": [SelectorRule('[data-test="instrument-price-last"]'), SelectorRule(".text-2xl")],
        "link": [SelectorRule("a", attr="href")],
    }
    fields = ResilientExtractor().extract(html, rules)
"""

import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence, Union

from bs4 import BeautifulSoup
from bs4.element import Tag

from .models import NOT_AVAILABLE

logger = logging.getLogger(__name__)

# "By Jane Doe • 5 minutes ago"
_BYLINE_AGO_RE = re.compile(r"By[A-Za-z\s.]+•\s*\d+\s+(?:minutes?|hours?|days?)\s+ago", re.IGNORECASE)
# trailing " | By Jane Doe" after a separator
_BYLINE_TAIL_RE = re.compile(r"\s*[•|\-–]\s*By\s+[A-Z][A-Za-z\s.]*$")
_DOTS_RE = re.compile(r"\.{2,}")
_SPACE_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class SelectorRule:
    """A CSS selector plus an optional attribute to read instead of text."""

    selector: str
    attr: Optional[str] = None


Rule = Union[SelectorRule, str]
FieldRules = Mapping[str, Sequence[Rule]]


def clean_text(text: Optional[str]) -> str:
    """
    Strip scraping boilerplate from a text fragment.

    Collapses whitespace, removes author bylines with relative times,
    and turns runs of dots into an ellipsis.
    """
    if not text:
        return ""

    text = _SPACE_RE.sub(" ", text)
    text = _BYLINE_AGO_RE.sub("", text)
    text = _BYLINE_TAIL_RE.sub("", text.strip())
    text = _DOTS_RE.sub("...", text)
    return _SPACE_RE.sub(" ", text).strip()


def as_document(document: Union[str, bytes, Tag]) -> Tag:
    """Parse raw HTML, or pass through an already parsed node."""
    if isinstance(document, Tag):
        return document
    return BeautifulSoup(document or "", "html.parser")


def _as_rule(rule: Rule) -> SelectorRule:
    return rule if isinstance(rule, SelectorRule) else SelectorRule(rule)


class ResilientExtractor:
    """
    Applies ordered selector rules to HTML documents.

    Never raises for a missing field or a broken selector.
    """

    def __init__(self, min_length: int = 6, sentinel: str = NOT_AVAILABLE):
        self.min_length = min_length
        self.sentinel = sentinel

    def first_match(self, root: Tag, rules: Sequence[Rule]) -> str:
        """Return the first non-empty value produced by ``rules``, else the sentinel."""
        for raw_rule in rules:
            rule = _as_rule(raw_rule)
            try:
                node = root.select_one(rule.selector)
            except Exception as e:
                # soupsieve raises SelectorSyntaxError for malformed selectors
                logger.debug(f"Selector {rule.selector!r} failed: {e}")
                continue

            if node is None:
                continue

            if rule.attr:
                value = node.get(rule.attr)
                if isinstance(value, list):
                    value = " ".join(value)
                value = (value or "").strip()
            else:
                value = clean_text(node.get_text(" ", strip=True))

            if value:
                return value

        return self.sentinel

    def extract(self, document: Union[str, bytes, Tag], field_rules: FieldRules) -> Dict[str, str]:
        """
        Extract every field in ``field_rules`` from a document.

        Args:
            document: HTML string or parsed node
            field_rules: Field name -> ordered rules

        Returns:
            Field name -> extracted text (or the sentinel)
        """
        root = as_document(document)
        return {name: self.first_match(root, rules) for name, rules in field_rules.items()}

    def extract_items(
        self,
        document: Union[str, bytes, Tag],
        item_selector: str,
        field_rules: FieldRules,
        primary_field: str,
        limit: Optional[int] = None,
    ) -> List[Dict[str, str]]:
        """
        Extract a collection of items (e.g. news articles).

        Items whose primary field is missing, shorter than ``min_length`` or
        identical to one already collected are skipped.
        """
        root = as_document(document)

        try:
            nodes = root.select(item_selector)
        except Exception as e:
            logger.debug(f"Item selector {item_selector!r} failed: {e}")
            return []

        items: List[Dict[str, str]] = []
        seen = set()

        for node in nodes:
            fields = self.extract(node, field_rules)
            primary = fields.get(primary_field, self.sentinel)

            if primary == self.sentinel or len(primary) < self.min_length:
                continue
            if primary in seen:
                continue

            seen.add(primary)
            items.append(fields)

            if limit is not None and len(items) >= limit:
                break

        return items
