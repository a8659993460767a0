"""
Shared pytest fixtures for pagekeep tests.

Provides mock language models and rerankers so no test talks to a real
model server.
"""

import json
from collections.abc import Callable, Mapping, Sequence
from typing import Any, Optional

import pytest

from pagekeep.ai import AIService
from pagekeep.config import StoreConfig, save_config
from pagekeep.errors import RerankFailure
from pagekeep.item_store import ItemStore
from pagekeep.providers.base import (
    AVAILABLE,
    KEY_POINTS_SYSTEM_PROMPT,
    RERANK_SYSTEM_PROMPT,
    TAGS_SYSTEM_PROMPT,
    TLDR_SYSTEM_PROMPT,
)
from pagekeep.types import SavedItem, Summary


class MockLanguageModel:
    """
    Deterministic language model for testing.

    Answers each prompt type from canned values. ``rerank_scores`` maps
    item id to score; candidates without an entry are left out of the
    response, like a model that only ranks its top picks.
    """

    def __init__(
        self,
        *,
        tldr: str = "A short summary.",
        key_points: str = "- point one\n- point two",
        tags: Optional[dict[str, Any]] = None,
        rerank_scores: Optional[Mapping[int, float]] = None,
        state: str = AVAILABLE,
    ):
        self.tldr = tldr
        self.key_points = key_points
        self.tags = tags if tags is not None else {
            "tags": ["Python", "testing"],
            "intent": "learn pytest",
            "entities": ["pytest"],
        }
        self.rerank_scores = dict(rerank_scores or {})
        self.state = state
        self.prepare_calls = 0
        self.calls: list[tuple[str, str]] = []

    def availability(self) -> str:
        return self.state

    def prepare(self) -> None:
        self.prepare_calls += 1

    def generate(self, system: str, user: str, *, json_schema=None, max_tokens: int = 1024) -> str:
        self.calls.append((system, user))
        if system == TLDR_SYSTEM_PROMPT:
            return self.tldr
        if system == KEY_POINTS_SYSTEM_PROMPT:
            return self.key_points
        if system == TAGS_SYSTEM_PROMPT:
            return json.dumps(self.tags)
        if system == RERANK_SYSTEM_PROMPT:
            ranked = sorted(self.rerank_scores.items(), key=lambda kv: kv[1], reverse=True)
            return json.dumps({"ranked": [{"id": i, "score": s} for i, s in ranked]})
        raise AssertionError(f"Unexpected prompt: {system[:40]}")


class RaisingLanguageModel(MockLanguageModel):
    """Language model whose generate() raises for selected prompt types."""

    def __init__(self, fail_on: Sequence[str], error: Optional[Exception] = None, **kwargs):
        super().__init__(**kwargs)
        self.fail_on = set(fail_on)
        self.error = error or RuntimeError("model exploded")

    def generate(self, system: str, user: str, **kwargs) -> str:
        if system in self.fail_on:
            self.calls.append((system, user))
            raise self.error
        return super().generate(system, user, **kwargs)


class MockReranker:
    """Reranker returning fixed scores and recording what it was asked."""

    def __init__(self, scores: Optional[Mapping[int, float]] = None,
                 score_fn: Optional[Callable[[SavedItem], float]] = None):
        self.scores = dict(scores or {})
        self.score_fn = score_fn
        self.calls: list[tuple[str, list[int]]] = []

    def rerank(self, query: str, candidates: Sequence[SavedItem]) -> dict[int, float]:
        self.calls.append((query, [c.id for c in candidates]))
        if self.score_fn is not None:
            return {c.id: self.score_fn(c) for c in candidates}
        return dict(self.scores)


class FailingReranker:
    """Reranker that always raises."""

    def __init__(self, error: Optional[Exception] = None):
        self.error = error or RerankFailure("rerank timed out")
        self.calls = 0

    def rerank(self, query: str, candidates: Sequence[SavedItem]) -> dict[int, float]:
        self.calls += 1
        raise self.error


def make_item(
    url: str = "https://example.com/",
    title: str = "",
    *,
    saved_at: int = 1_000,
    tldr: str = "",
    key_points: str = "",
    tags: Optional[list[str]] = None,
    note: str = "",
    rating: float = 0.0,
    id: Optional[int] = None,
) -> SavedItem:
    """Build a SavedItem with test-friendly defaults."""
    return SavedItem(
        url=url,
        title=title,
        saved_at=saved_at,
        summary=Summary(tldr=tldr, key_points=key_points),
        tags=list(tags or []),
        note=note,
        rating=rating,
        id=id,
    )


@pytest.fixture(autouse=True)
def _isolated_store_env(tmp_path, monkeypatch):
    """Keep the default store, error log and provider detection inside tmp_path."""
    monkeypatch.setenv("PAGEKEEP_STORE_PATH", str(tmp_path / "default-store"))
    for var in ("PAGEKEEP_OPENAI_API_KEY", "OPENAI_API_KEY", "ANTHROPIC_API_KEY", "OLLAMA_HOST"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def store(tmp_path):
    """A fresh ItemStore in a temp directory."""
    s = ItemStore(tmp_path / "items.db")
    yield s
    s.close()


@pytest.fixture
def mock_model():
    return MockLanguageModel()


@pytest.fixture
def ai(mock_model):
    return AIService(mock_model)


@pytest.fixture
def store_config(tmp_path):
    """A saved StoreConfig with no language model."""
    config = StoreConfig(path=tmp_path / "store")
    save_config(config)
    return config


@pytest.fixture
def keeper(store_config, ai):
    """PageKeeper over a temp store with the mock model."""
    from pagekeep.api import PageKeeper

    kp = PageKeeper(config=store_config, ai=ai)
    yield kp
    kp.close()
