"""Tests for the retrieval pipeline: filter, cap, rerank fallback, ordering."""

import asyncio

import pytest

from pagekeep.errors import StorageFailure
from pagekeep.pipeline import (
    LatestQueryGate,
    RetrievalPipeline,
    apply_rerank_scores,
    should_rerank,
)
from pagekeep.types import SearchPreferences

from tests.conftest import FailingReranker, MockReranker, make_item


def _ids(items):
    return [i.id for i in items]


@pytest.fixture
def populated(store):
    """Three items saved at t=1,2,3, all matching 'python'."""
    added = []
    for t, title in ((1, "python basics"), (2, "python asyncio guide"), (3, "python packaging")):
        added.append(store.add(make_item(f"https://ex.com/{t}", title, saved_at=t)))
    return added


class TestShouldRerank:

    def test_single_token_never_reranks(self):
        many = [make_item(id=i) for i in range(10)]
        assert should_rerank("python", many) is False

    def test_needs_two_candidates(self):
        assert should_rerank("python asyncio", [make_item(id=1)]) is False
        assert should_rerank("python asyncio", [make_item(id=1), make_item(id=2)]) is True

    def test_empty_query(self):
        assert should_rerank("", [make_item(id=1), make_item(id=2)]) is False


class TestApplyScores:

    def test_sorts_by_score(self):
        items = [make_item(id=i) for i in (1, 2, 3)]
        assert _ids(apply_rerank_scores(items, {1: 0.1, 2: 0.9, 3: 0.5})) == [2, 3, 1]

    def test_absent_ids_score_zero_and_are_kept(self):
        items = [make_item(id=i) for i in (1, 2, 3)]
        result = apply_rerank_scores(items, {3: 0.7})
        assert _ids(result) == [3, 1, 2]

    def test_equal_scores_keep_lexical_order(self):
        items = [make_item(id=i) for i in (5, 4, 6)]
        assert _ids(apply_rerank_scores(items, {})) == [5, 4, 6]

    def test_unknown_ids_ignored(self):
        items = [make_item(id=1), make_item(id=2)]
        assert sorted(_ids(apply_rerank_scores(items, {99: 1.0, 2: 0.5}))) == [1, 2]

    @pytest.mark.parametrize("bad", [float("nan"), float("inf"), float("-inf"), "high", None])
    def test_unusable_scores_count_as_zero(self, bad):
        items = [make_item(id=i) for i in (1, 2, 3)]
        assert _ids(apply_rerank_scores(items, {1: 0.9, 2: bad, 3: 0.5})) == [1, 3, 2]
        assert _ids(apply_rerank_scores(items[::-1], {1: 0.9, 2: bad, 3: 0.5})) == [1, 3, 2]


class TestSearch:

    def test_empty_query_date_desc(self, store, populated):
        pipeline = RetrievalPipeline(store)
        results = pipeline.search("", SearchPreferences(order="date_desc"))
        assert [i.saved_at for i in results] == [3, 2, 1]

    def test_default_prefs(self, store, populated):
        results = RetrievalPipeline(store).search(None)
        assert [i.saved_at for i in results] == [3, 2, 1]

    def test_filters_conjunctively(self, store, populated):
        results = RetrievalPipeline(store).search("python guide")
        assert [i.title for i in results] == ["python asyncio guide"]

    def test_candidate_cap_drops_excess(self, store):
        for t in range(10):
            store.add(make_item(f"https://ex.com/{t}", "match", saved_at=t))
        pipeline = RetrievalPipeline(store, candidate_cap=4)
        assert len(pipeline.search("match")) == 4

    def test_invalid_cap_rejected(self, store):
        with pytest.raises(ValueError):
            RetrievalPipeline(store, candidate_cap=0)

    def test_single_token_does_not_call_reranker(self, store, populated):
        reranker = MockReranker()
        RetrievalPipeline(store, reranker).search("python")
        assert reranker.calls == []

    def test_multi_token_calls_reranker_with_capped_candidates(self, store):
        for t in range(5):
            store.add(make_item(f"https://ex.com/{t}", "css grid", saved_at=t))
        reranker = MockReranker()
        RetrievalPipeline(store, reranker, candidate_cap=3).search("css grid")
        [(query, ids)] = reranker.calls
        assert query == "css grid"
        assert len(ids) == 3

    def test_rerank_order_survives_equal_order_keys(self, store):
        # Equal saved_at: date ordering must keep the reranked order
        a = store.add(make_item("https://a/", "css grid", saved_at=5))
        b = store.add(make_item("https://b/", "css grid", saved_at=5))
        c = store.add(make_item("https://c/", "css grid", saved_at=5))
        reranker = MockReranker({a.id: 0.1, b.id: 0.2, c.id: 0.9})
        results = RetrievalPipeline(store, reranker).search("css grid")
        assert _ids(results) == [c.id, b.id, a.id]

    def test_ordering_applies_after_rerank(self, store, populated):
        reranker = MockReranker(score_fn=lambda item: -item.saved_at)
        results = RetrievalPipeline(store, reranker).search(
            "python ex.com", SearchPreferences(order="date_desc"),
        )
        assert [i.saved_at for i in results] == [3, 2, 1]

    def test_rating_order(self, store):
        store.add(make_item("https://a/", "x", saved_at=1, rating=3.0))
        store.add(make_item("https://b/", "x", saved_at=1, rating=5.0))
        store.add(make_item("https://c/", "x", saved_at=2, rating=3.0))
        results = RetrievalPipeline(store).search("x", SearchPreferences(order="rating_desc"))
        assert [(i.rating, i.saved_at) for i in results] == [(5.0, 1), (3.0, 2), (3.0, 1)]

    def test_field_preferences_respected(self, store):
        store.add(make_item("https://a/", "title only", saved_at=1))
        store.add(make_item("https://b/", "other", tags=["title"], saved_at=2))
        results = RetrievalPipeline(store).search("title", SearchPreferences(fields=["tags"]))
        assert [i.url for i in results] == ["https://b/"]

    def test_store_failure_propagates(self, tmp_path):
        from pagekeep.item_store import ItemStore
        s = ItemStore(tmp_path / "x.db")
        s.close()
        with pytest.raises(StorageFailure):
            RetrievalPipeline(s).search("anything")


class TestRerankFailure:

    @pytest.mark.parametrize("error", [
        TimeoutError("timed out"),
        ValueError("malformed"),
        RuntimeError("unavailable"),
    ])
    def test_failure_keeps_every_candidate(self, store, error):
        for t in range(6):
            store.add(make_item(f"https://ex.com/{t}", "css grid", saved_at=t))
        reranker = FailingReranker(error)
        results = RetrievalPipeline(store, reranker).search("css grid")
        assert reranker.calls == 1
        assert len(results) == 6

    def test_failure_falls_back_to_lexical_then_ordered(self, store, populated, caplog):
        results = RetrievalPipeline(store, FailingReranker()).search(
            "python ex.com", SearchPreferences(order="date_asc"),
        )
        assert [i.saved_at for i in results] == [1, 2, 3]
        assert "Rerank failed" in caplog.text

    @pytest.mark.parametrize("returned", [None, [0.9, 0.1, 0.5], "1:0.9"])
    def test_non_mapping_scores_keep_lexical_order(self, store, populated, returned, caplog):
        class OddReranker:
            def rerank(self, query, candidates):
                return returned

        results = RetrievalPipeline(store, OddReranker()).search(
            "python ex.com", SearchPreferences(order="date_asc"),
        )
        assert [i.saved_at for i in results] == [1, 2, 3]
        assert "Rerank failed" in caplog.text

    def test_partial_scores_never_drop_candidates(self, store, populated):
        first = populated[0]
        reranker = MockReranker({first.id: 0.9})
        results = RetrievalPipeline(store, reranker).search(
            "python ex.com", SearchPreferences(order="rating_desc"),
        )
        assert sorted(_ids(results)) == sorted(_ids(populated))


class TestAsyncSearch:

    @pytest.mark.asyncio
    async def test_asearch_matches_search(self, store, populated):
        pipeline = RetrievalPipeline(store, MockReranker(score_fn=lambda i: i.saved_at))
        prefs = SearchPreferences(order="rating_desc")
        assert _ids(await pipeline.asearch("python ex.com", prefs)) == _ids(
            pipeline.search("python ex.com", prefs)
        )

    @pytest.mark.asyncio
    async def test_asearch_failing_reranker(self, store, populated):
        pipeline = RetrievalPipeline(store, FailingReranker())
        results = await pipeline.asearch("python ex.com")
        assert len(results) == 3

    @pytest.mark.asyncio
    async def test_overlapping_searches(self, store, populated):
        pipeline = RetrievalPipeline(store, MockReranker())
        a, b = await asyncio.gather(
            pipeline.asearch("python basics"),
            pipeline.asearch("python"),
        )
        assert [i.title for i in a] == ["python basics"]
        assert len(b) == 3


class TestLatestQueryGate:

    def test_only_latest_is_current(self):
        gate = LatestQueryGate()
        first = gate.begin()
        second = gate.begin()
        assert not gate.is_current(first)
        assert gate.is_current(second)
