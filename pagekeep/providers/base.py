"""
Base provider protocols.

These define the interfaces that concrete providers must implement.
Using Protocol for structural subtyping - no explicit inheritance required.
"""

import json
import re
from collections.abc import Mapping, Sequence
from typing import Any, Protocol, runtime_checkable

from ..types import SavedItem


# Availability states reported by a language model provider
AVAILABLE = "available"
DOWNLOADABLE = "downloadable"
UNAVAILABLE = "unavailable"


# -----------------------------------------------------------------------------
# Language models
# -----------------------------------------------------------------------------

@runtime_checkable
class LanguageModel(Protocol):
    """
    A text-generation capability used for enrichment and reranking.

    Implementations wrap a local or hosted model. None of them is
    guaranteed to be present: callers check ``availability()`` and treat
    every failure as recoverable.

    Example implementation:
        class EchoModel:
            def availability(self) -> str:
                return "available"

            def prepare(self) -> None:
                pass

            def generate(self, system, user, *, json_schema=None, max_tokens=1024):
                return user
    """

    def availability(self) -> str:
        """
        Report whether the model can be used.

        Returns:
            "available", "downloadable" (usable after ``prepare``),
            or "unavailable"
        """
        ...

    def prepare(self) -> None:
        """
        Make the model ready for use (e.g. pull model weights).

        Raises:
            RuntimeError: If the model cannot be made ready
        """
        ...

    def generate(
        self,
        system: str,
        user: str,
        *,
        json_schema: dict[str, Any] | None = None,
        max_tokens: int = 1024,
    ) -> str:
        """
        Send a system+user prompt and return the generated text.

        Args:
            system: System prompt
            user: User prompt
            json_schema: If given, ask the model for JSON matching this schema
            max_tokens: Maximum tokens in response

        Returns:
            Generated text (JSON text when ``json_schema`` is given)
        """
        ...


@runtime_checkable
class Reranker(Protocol):
    """
    Scores a bounded candidate list against a query.

    The returned mapping need not cover every candidate and carries no
    ordering; the caller sorts by score.
    """

    def rerank(self, query: str, candidates: Sequence[SavedItem]) -> Mapping[int, float]:
        ...


# -----------------------------------------------------------------------------
# Prompts
# -----------------------------------------------------------------------------

TLDR_SYSTEM_PROMPT = """Summarize this web page in two or three sentences.

Begin with the subject directly - do not start with meta-phrases like "This page describes..." or "The article is about...".

Say what it is and why someone might find it useful."""

KEY_POINTS_SYSTEM_PROMPT = """List the key points of this web page as a short markdown bullet list.

Use at most five bullets, one line each. Output the list only."""

TAGS_SYSTEM_PROMPT = """You extract concise tags, a short intent and key entities from web page text.
Rules:
- Output JSON ONLY that matches the given schema.
- Tags: max 8, single or double-word, lower-case, kebab-case preferred, no punctuation, no duplicates.
- Intent: short phrase of what the page helps a user do (e.g., "learn css grid", "buy laptop", "api reference").
- Entities: proper nouns like libraries, products, people, orgs."""

TAGS_SCHEMA = {
    "type": "object",
    "properties": {
        "tags": {"type": "array", "items": {"type": "string"}, "maxItems": 8},
        "intent": {"type": "string"},
        "entities": {"type": "array", "items": {"type": "string"}, "maxItems": 10},
    },
    "required": ["tags"],
}

RERANK_SYSTEM_PROMPT = """You are a retrieval re-ranker. Given a user query and a list of saved web pages,
return a JSON object { "ranked": [{ "id", "score" }] } sorted descending by relevance.
Consider semantic similarity to the query, exact matches on tags, and usefulness."""

# Limits applied to prompt payloads
TAG_TEXT_LIMIT = 8000
RERANK_PAYLOAD_LIMIT = 12000
RERANK_MAX_RANKED = 10


def rerank_schema(candidate_count: int) -> dict[str, Any]:
    """JSON schema for a rerank response over ``candidate_count`` items."""
    return {
        "type": "object",
        "properties": {
            "ranked": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "id": {"type": "number"},
                        "score": {"type": "number"},
                    },
                    "required": ["id", "score"],
                },
                "maxItems": min(RERANK_MAX_RANKED, candidate_count),
            },
        },
        "required": ["ranked"],
    }


def rerank_payload(candidates: Sequence[SavedItem]) -> list[dict[str, Any]]:
    """Reduce candidates to the fields a reranker sees."""
    return [
        {
            "id": c.id,
            "title": c.title,
            "url": c.url,
            "tags": ", ".join(c.tags or []),
            "summary": c.summary.tldr or "",
            "keyPoints": c.summary.key_points or "",
        }
        for c in candidates
    ]


def build_rerank_prompt(query: str, candidates: Sequence[SavedItem]) -> str:
    """User prompt for reranking, with the item list clipped to a fixed size."""
    items = json.dumps(rerank_payload(candidates), ensure_ascii=False)[:RERANK_PAYLOAD_LIMIT]
    return f"Query: {query}\nItems:\n{items}"


def build_tags_prompt(text: str) -> str:
    return f"Text:\n{text[:TAG_TEXT_LIMIT]}"


def strip_summary_preamble(text: str) -> str:
    """
    Remove common LLM preambles from summaries.

    Many models add introductory phrases despite instructions not to.
    This post-processes the output to strip them.
    """
    preambles = [
        r"^here is a summary[^:]*[:.]\s*",
        r"^here is a concise summary[^:]*:\s*",
        r"^here's a summary[^:]*:\s*",
        r"^here are the key points[^:]*:\s*",
        r"^summary:\s*",
        r"^tl;?dr:?\s*",
        r"^this (page|article|document) (describes|covers|is about)\s+",
        r"^the (page|article|document) (describes|covers|is about)\s+",
    ]
    result = text.strip()
    for pattern in preambles:
        result = re.sub(pattern, "", result, flags=re.IGNORECASE)
    return result


def strip_code_fences(text: str) -> str:
    """Strip a surrounding markdown code fence from model output."""
    text = text.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else text[3:]
        if text.endswith("```"):
            text = text[:-3].strip()
    return text


# -----------------------------------------------------------------------------
# Provider Registry
# -----------------------------------------------------------------------------

class ProviderRegistry:
    """
    Registry for discovering and instantiating language model providers.

    Providers are registered by name so the store configuration (TOML) can
    select one without code changes.

    Example:
        registry = ProviderRegistry()
        registry.register_model("ollama", OllamaModel)

        # Later, from config:
        model = registry.create_model("ollama", {"model": "llama3.2"})
    """

    def __init__(self):
        self._model_providers: dict[str, type] = {}
        self._lazy_loaded = False

    def _ensure_providers_loaded(self) -> None:
        """Lazily load provider modules."""
        if self._lazy_loaded:
            return
        self._lazy_loaded = True
        # Importing registers the built-in providers; it never instantiates them
        from . import llm  # noqa: F401

    def register_model(self, name: str, provider_class: type) -> None:
        """Register a language model provider class."""
        self._model_providers[name] = provider_class

    def create_model(self, name: str, params: dict | None = None) -> LanguageModel:
        """Create a language model provider instance."""
        self._ensure_providers_loaded()
        providers = self._model_providers
        if name not in providers:
            available = ", ".join(providers.keys()) or "none"
            raise ValueError(
                f"Unknown model provider: '{name}'. "
                f"Available providers: {available}."
            )
        try:
            return providers[name](**(params or {}))
        except TypeError as e:
            raise ValueError(f"Invalid parameters for model provider '{name}': {e}") from e
        except ImportError as e:
            raise RuntimeError(
                f"Failed to create model provider '{name}': {e}\n"
                f"Install required dependencies."
            ) from e

    def list_model_providers(self) -> list[str]:
        """List registered model provider names."""
        self._ensure_providers_loaded()
        return list(self._model_providers.keys())


# Global registry instance
# Concrete providers register themselves on import
_registry = ProviderRegistry()


def get_registry() -> ProviderRegistry:
    """Get the global provider registry."""
    return _registry
