"""
Lexical pre-filter for saved items.

A cheap, recall-oriented filter: it narrows the candidate set handed to
the optional semantic reranker and is not itself a relevance ranking.
Every query token must appear as a substring of the item's haystack;
there is no stemming, phrase matching or fuzzy matching.
"""

import re
from collections.abc import Iterable, Sequence
from typing import Optional

from .types import DEFAULT_SEARCH_FIELDS, SEARCH_FIELDS, SavedItem

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_text(s: Optional[str]) -> str:
    return (s or "").lower()


def tokenize(query: Optional[str]) -> list[str]:
    """Lower-case a query and split it on runs of whitespace."""
    q = normalize_text(query).strip()
    if not q:
        return []
    return _WHITESPACE_RE.split(q)


def normalize_fields(fields: Optional[Iterable[str]]) -> list[str]:
    """
    Validate a search field selection.

    Unknown names are dropped (case-insensitively). An empty result falls
    back to the default selection rather than an empty one.
    """
    cleaned: list[str] = []
    for f in fields or ():
        name = str(f).lower()
        if name in SEARCH_FIELDS and name not in cleaned:
            cleaned.append(name)
    return cleaned or list(DEFAULT_SEARCH_FIELDS)


def build_haystack(item: SavedItem, fields: Sequence[str]) -> str:
    """Lower-cased text of the selected field groups of an item."""
    parts: list[str] = []
    if "title" in fields:
        parts.extend([item.title or "", item.url or ""])
    if "description" in fields:
        parts.extend([item.summary.tldr or "", item.summary.key_points or "", item.note or ""])
    if "tags" in fields:
        parts.append(" ".join(item.tags or []))
    return normalize_text(" ".join(parts))


def lexical_filter(
    items: Sequence[SavedItem],
    query: Optional[str],
    fields: Optional[Iterable[str]] = None,
) -> list[SavedItem]:
    """
    Keep items whose haystack contains every query token.

    An empty (or whitespace-only) query returns the input unchanged.
    Surviving items keep their input order.
    """
    tokens = tokenize(query)
    if not tokens:
        return list(items)
    selected = normalize_fields(fields)
    result = []
    for item in items:
        hay = build_haystack(item, selected)
        if all(tok in hay for tok in tokens):
            result.append(item)
    return result
