"""
Retrieval pipeline: lexical filter, candidate cap, optional rerank, ordering.

    load all items -> lexical filter -> cap -> (rerank) -> order

The pipeline keeps no state between calls, so overlapping searches are
safe without locking. Deciding which result to show when searches
overlap is the caller's job; LatestQueryGate is a helper for that.
"""

import asyncio
import itertools
import logging
import math
import threading
from collections.abc import Mapping, Sequence
from typing import Optional

from .errors import RerankFailure
from .item_store import ItemStore
from .lexical import lexical_filter, normalize_fields, tokenize
from .ordering import order_items
from .providers.base import Reranker
from .types import SavedItem, SearchPreferences

logger = logging.getLogger(__name__)

DEFAULT_CANDIDATE_CAP = 50


def should_rerank(query: Optional[str], candidates: Sequence[SavedItem]) -> bool:
    """
    Rerank only multi-token queries with at least two candidates.

    Single-token queries are treated as exact or tag lookups where the
    lexical match is enough.
    """
    return len(tokenize(query)) > 1 and len(candidates) > 1


def apply_rerank_scores(
    candidates: Sequence[SavedItem],
    scores: Mapping[int, float],
) -> list[SavedItem]:
    """
    Order candidates by score, highest first.

    Ids missing from ``scores``, and non-numeric or non-finite scores,
    count as 0. Equal scores keep lexical order. The result is always a
    permutation of ``candidates``.
    """
    def score(item: SavedItem) -> float:
        value = scores.get(item.id, 0) if item.id is not None else 0
        try:
            value = float(value or 0)
        except (TypeError, ValueError):
            return 0.0
        return value if math.isfinite(value) else 0.0
    return sorted(candidates, key=score, reverse=True)


class RetrievalPipeline:
    """
    Runs one search against an ItemStore.

    Example:
        pipeline = RetrievalPipeline(store, reranker=ai_service)
        results = pipeline.search("css grid layout", prefs)
    """

    def __init__(
        self,
        store: ItemStore,
        reranker: Optional[Reranker] = None,
        *,
        candidate_cap: int = DEFAULT_CANDIDATE_CAP,
    ):
        """
        Args:
            store: Item source
            reranker: Optional semantic reranker (best effort)
            candidate_cap: Maximum candidates kept after lexical filtering;
                the rest are dropped before reranking
        """
        if candidate_cap < 1:
            raise ValueError(f"candidate_cap must be positive: {candidate_cap}")
        self._store = store
        self._reranker = reranker
        self._candidate_cap = candidate_cap

    @property
    def candidate_cap(self) -> int:
        return self._candidate_cap

    def _candidates(self, items: Sequence[SavedItem], query: str, fields: list[str]) -> list[SavedItem]:
        return lexical_filter(items, query, fields)[:self._candidate_cap]

    def _rerank(self, query: str, candidates: list[SavedItem]) -> list[SavedItem]:
        """Rerank if applicable; any failure keeps the lexical order."""
        if self._reranker is None or not should_rerank(query, candidates):
            return candidates
        try:
            scores = self._reranker.rerank(query, candidates)
            if not isinstance(scores, Mapping):
                raise RerankFailure(f"expected a mapping of scores, got {type(scores).__name__}")
            return apply_rerank_scores(candidates, scores)
        except Exception as e:
            logger.warning("Rerank failed, keeping lexical order: %s", e)
            return candidates

    def search(
        self,
        query: Optional[str],
        prefs: Optional[SearchPreferences] = None,
    ) -> list[SavedItem]:
        """
        Run a search and return the ordered results.

        An empty query returns every item in the preferred order, up to
        the candidate cap.

        Raises:
            StorageFailure: If items cannot be loaded
        """
        prefs = prefs or SearchPreferences()
        q = (query or "").strip()
        fields = normalize_fields(prefs.fields)

        items = self._store.get_all()
        candidates = self._candidates(items, q, fields)
        candidates = self._rerank(q, candidates)
        results = order_items(candidates, prefs.order)
        logger.debug("Search %r: %d items, %d results", q, len(items), len(results))
        return results

    async def asearch(
        self,
        query: Optional[str],
        prefs: Optional[SearchPreferences] = None,
    ) -> list[SavedItem]:
        """
        Async variant of :meth:`search`.

        The store read and the rerank call run in worker threads; filtering
        and ordering run inline.
        """
        prefs = prefs or SearchPreferences()
        q = (query or "").strip()
        fields = normalize_fields(prefs.fields)

        items = await asyncio.to_thread(self._store.get_all)
        candidates = self._candidates(items, q, fields)
        candidates = await asyncio.to_thread(self._rerank, q, candidates)
        return order_items(candidates, prefs.order)


class LatestQueryGate:
    """
    Generation counter for front ends that issue overlapping searches.

    Call ``begin()`` before starting a search and render its result only
    if ``is_current(token)`` still holds when it completes.
    """

    def __init__(self):
        self._counter = itertools.count(1)
        self._latest = 0
        self._lock = threading.Lock()

    def begin(self) -> int:
        with self._lock:
            self._latest = next(self._counter)
            return self._latest

    def is_current(self, token: int) -> bool:
        with self._lock:
            return token == self._latest
