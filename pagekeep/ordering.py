"""
Deterministic result ordering, applied after retrieval.

Python's sort is stable, so items with equal keys keep the order they
arrived in. That order may carry reranker relevance, which is why equal
keys are never broken by anything other than the documented tie-break.
"""

import functools
from collections.abc import Sequence
from typing import Optional

from .types import DEFAULT_ORDER, ORDER_OPTIONS, SavedItem

RATING_TOLERANCE = 1e-6


def normalize_order(order: Optional[str]) -> str:
    """Return ``order`` if it is a known order mode, else the default."""
    return order if order in ORDER_OPTIONS else DEFAULT_ORDER


def _rating_comparator(descending: bool):
    def compare(a: SavedItem, b: SavedItem) -> int:
        diff = (a.rating or 0) - (b.rating or 0)
        if descending:
            diff = -diff
        if abs(diff) > RATING_TOLERANCE:
            return -1 if diff < 0 else 1
        # Equal ratings: newest first
        return (b.saved_at or 0) - (a.saved_at or 0)
    return compare


def order_items(items: Sequence[SavedItem], order: Optional[str] = None) -> list[SavedItem]:
    """
    Sort items by the given order mode.

    - date_desc / date_asc: by ``saved_at``
    - rating_desc / rating_asc: by ``rating``, ties (within 1e-6) broken
      by ``saved_at`` newest first

    Unknown or missing modes sort as ``date_desc``.
    """
    mode = normalize_order(order)
    data = list(items)
    if mode == "date_asc":
        return sorted(data, key=lambda it: it.saved_at or 0)
    if mode == "date_desc":
        return sorted(data, key=lambda it: it.saved_at or 0, reverse=True)
    descending = mode == "rating_desc"
    return sorted(data, key=functools.cmp_to_key(_rating_comparator(descending)))
