"""
AI capability service: summarization, tag extraction and reranking.

One AIService owns at most one prepared language model session and
reuses it across calls. It is injected into the components that need it
(enrichment, the retrieval pipeline) rather than held as a module global.

Lifecycle:
    ai = AIService(model)
    ai.check_availability()   # probe, notify listeners
    ai.ensure_session()       # prepare once (may download a model)
    ai.rerank(query, items)   # invoke
"""

import json
import logging
import math
import threading
from collections.abc import Callable, Sequence
from typing import Optional

from .errors import EnhancementFailure, RerankFailure
from .providers.base import (
    AVAILABLE,
    KEY_POINTS_SYSTEM_PROMPT,
    RERANK_SYSTEM_PROMPT,
    TAGS_SCHEMA,
    TAGS_SYSTEM_PROMPT,
    TLDR_SYSTEM_PROMPT,
    UNAVAILABLE,
    LanguageModel,
    build_rerank_prompt,
    build_tags_prompt,
    get_registry,
    rerank_schema,
    strip_code_fences,
    strip_summary_preamble,
)
from .types import SavedItem, Summary, TagResult, normalize_tags

logger = logging.getLogger(__name__)

AvailabilityListener = Callable[[str], None]


class AIService:
    """
    Shared access to an optional language model.

    Availability is observable: listeners registered with ``on_change``
    are called with the new state whenever it is (re)determined.
    """

    def __init__(self, model: Optional[LanguageModel] = None):
        """
        Args:
            model: Language model provider. None means no AI capability;
                every call fails with the relevant recoverable error.
        """
        self._model = model
        self._session: Optional[LanguageModel] = None
        self._availability = "checking"
        self._listeners: list[AvailabilityListener] = []
        self._session_lock = threading.Lock()

    @classmethod
    def from_config(cls, name: str, params: dict | None = None) -> "AIService":
        """
        Build a service from a provider name and parameters.

        A provider that cannot be constructed (missing library, missing
        API key) yields a service with no model, not an error.
        """
        try:
            model = get_registry().create_model(name, params)
        except (ValueError, RuntimeError) as e:
            logger.warning("Language model '%s' unavailable: %s", name, e)
            model = None
        return cls(model)

    # -------------------------------------------------------------------------
    # Availability
    # -------------------------------------------------------------------------

    @property
    def availability(self) -> str:
        """Last known availability ("checking" until first probe)."""
        return self._availability

    def on_change(self, listener: AvailabilityListener) -> Callable[[], None]:
        """Register an availability listener. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def _set_availability(self, state: str) -> None:
        self._availability = state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception as e:
                logger.warning("Availability listener failed: %s", e)

    def _probe(self) -> str:
        if self._model is None:
            return UNAVAILABLE
        try:
            return self._model.availability()
        except Exception as e:
            logger.warning("Availability check failed: %s", e)
            return UNAVAILABLE

    def check_availability(self) -> str:
        """Probe the model and notify listeners."""
        state = self._probe()
        self._set_availability(state)
        return state

    def ensure_session(self) -> LanguageModel:
        """
        Return the prepared model, preparing it on first use.

        Raises:
            RuntimeError: If no model is configured or it is unavailable
        """
        session = self._session
        if session is not None:
            return session
        with self._session_lock:
            session = self._session
            if session is None:
                state = self._probe()
                if state != UNAVAILABLE:
                    self._model.prepare()
                    self._session = session = self._model
                    state = AVAILABLE
            else:
                state = AVAILABLE
        # Listeners may call back into the service
        self._set_availability(state)
        if session is None:
            if self._model is None:
                raise RuntimeError("No language model configured")
            raise RuntimeError("Language model unavailable")
        return session

    def release(self) -> None:
        """Drop the prepared session. The next call prepares again."""
        with self._session_lock:
            self._session = None

    # -------------------------------------------------------------------------
    # Enrichment
    # -------------------------------------------------------------------------

    def summarize(self, text: str) -> Summary:
        """
        Produce a TL;DR and key points for page text.

        Errors from the model propagate unchanged so callers can react to
        specific failures (e.g. input too large).

        Raises:
            RuntimeError: If no model is available
        """
        session = self.ensure_session()
        tldr = session.generate(TLDR_SYSTEM_PROMPT, text, max_tokens=200)
        key_points = session.generate(KEY_POINTS_SYSTEM_PROMPT, text, max_tokens=300)
        return Summary(
            tldr=strip_summary_preamble(tldr),
            key_points=strip_summary_preamble(key_points),
        )

    def extract_tags(self, text: str) -> TagResult:
        """
        Extract tags, intent and entities from page text.

        Raises:
            EnhancementFailure: If the model is unavailable or its output
                cannot be parsed
        """
        try:
            session = self.ensure_session()
            raw = session.generate(
                TAGS_SYSTEM_PROMPT,
                build_tags_prompt(text),
                json_schema=TAGS_SCHEMA,
                max_tokens=300,
            )
        except Exception as e:
            raise EnhancementFailure(f"Tag extraction failed: {e}") from e

        try:
            parsed = json.loads(strip_code_fences(raw))
        except json.JSONDecodeError as e:
            raise EnhancementFailure(f"Tag extraction returned invalid JSON: {e}") from e
        if not isinstance(parsed, dict):
            raise EnhancementFailure("Tag extraction returned a non-object")

        entities = parsed.get("entities") or []
        return TagResult(
            tags=normalize_tags(parsed.get("tags") or []),
            intent=str(parsed.get("intent") or ""),
            entities=[str(e) for e in entities if str(e).strip()],
        )

    # -------------------------------------------------------------------------
    # Reranking
    # -------------------------------------------------------------------------

    def rerank(self, query: str, candidates: Sequence[SavedItem]) -> dict[int, float]:
        """
        Score candidates for relevance to ``query``.

        Returns:
            Mapping of item id to score. Ids the model left out are absent.

        Raises:
            RerankFailure: If the model is unavailable, fails, or returns
                output that cannot be parsed
        """
        if not candidates:
            return {}
        try:
            session = self.ensure_session()
            raw = session.generate(
                RERANK_SYSTEM_PROMPT,
                build_rerank_prompt(query, candidates),
                json_schema=rerank_schema(len(candidates)),
                max_tokens=400,
            )
        except Exception as e:
            raise RerankFailure(f"Rerank call failed: {e}") from e

        try:
            ranked = json.loads(strip_code_fences(raw))["ranked"]
            scores: dict[int, float] = {}
            for entry in ranked:
                score = float(entry["score"])
                if not math.isfinite(score):
                    raise ValueError(f"non-finite score {score!r} for id {entry['id']!r}")
                scores[int(entry["id"])] = score
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            raise RerankFailure(f"Rerank returned malformed output: {e}") from e
        return scores
