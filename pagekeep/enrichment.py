"""
Background enrichment of saved items: summary, tags, intent, entities.

Summarization and tag extraction are attempted independently. A part
that fails leaves the item's existing values in place; nothing is ever
overwritten with empty output from a failed step.
"""

import logging
import re
from collections.abc import Callable
from typing import Optional

from .ai import AIService
from .capture import PageCapture
from .errors import EnhancementFailure
from .item_store import ItemStore
from .types import SavedItem, Summary, TagResult, now_ms

logger = logging.getLogger(__name__)

# Successively smaller inputs tried when the model rejects a summary input
SUMMARY_LIMITS = (60000, 45000, 32000, 22000, 16000, 11000, 8000, 6000)
TAG_CONTEXT_LIMIT = 8000

_TOO_LARGE_RE = re.compile(r"too\s+large|exceeds|length|token", re.IGNORECASE)


def sanitize_whitespace(value: Optional[str]) -> str:
    """Collapse runs of spaces/tabs and blank lines; drop carriage returns."""
    text = (value or "").replace("\r", "")
    text = re.sub(r"[ \t]+", " ", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def build_ai_context(page: PageCapture) -> str:
    """Assemble the text handed to the model for a captured page."""
    parts = []
    if page.title:
        parts.append(sanitize_whitespace(page.title))
    if page.description:
        parts.append(f"Description:\n{sanitize_whitespace(page.description)}")
    if page.keywords:
        parts.append(f"Keywords: {sanitize_whitespace(page.keywords)}")
    if page.selection:
        parts.append(f"User selection:\n{sanitize_whitespace(page.selection)}")
    if page.text:
        parts.append(sanitize_whitespace(page.text))
    return "\n\n".join(parts).strip()


def trim_context(text: str, limit: int) -> str:
    """
    Clip text to ``limit`` characters.

    Cuts at the last newline when that keeps more than 60% of the limit.
    """
    if len(text) <= limit:
        return text
    head = text[:limit]
    last_break = head.rfind("\n")
    if last_break > limit * 0.6:
        return head[:last_break]
    return head


def is_too_large_error(err: BaseException) -> bool:
    return bool(_TOO_LARGE_RE.search(str(err) or type(err).__name__))


def summarize_with_retries(
    ai: AIService,
    text: str,
    on_trim: Optional[Callable[[int], None]] = None,
) -> Summary:
    """
    Summarize, shrinking the input while the model reports it as too large.

    Any other error propagates immediately.
    """
    limits: list[int] = []
    for limit in SUMMARY_LIMITS:
        size = min(limit, len(text))
        if size not in limits:
            limits.append(size)

    last_error: Optional[Exception] = None
    working = text
    for limit in limits:
        snippet = trim_context(working, limit)
        if len(snippet) < len(working) and on_trim:
            on_trim(limit)
        try:
            return ai.summarize(snippet)
        except Exception as e:
            if not is_too_large_error(e):
                raise
            logger.debug("Summary input of %d chars too large, trimming", len(snippet))
            last_error = e
            working = snippet
    if last_error is not None:
        raise last_error
    return ai.summarize(trim_context(working, SUMMARY_LIMITS[-1]))


def enrich_item(
    store: ItemStore,
    ai: AIService,
    item: SavedItem,
    context: str,
    *,
    on_trim: Optional[Callable[[int], None]] = None,
) -> SavedItem:
    """
    Enrich ``item`` and write it back.

    The written record is ``item`` (the caller's snapshot) with the new
    enrichment fields and ``enhanced_at`` set. If both steps fail the
    store is not touched and ``item`` is returned unchanged.

    Raises:
        StorageFailure: If the write-back fails
    """
    summary: Optional[Summary] = None
    try:
        summary = summarize_with_retries(ai, context, on_trim)
    except Exception as e:
        logger.warning("Summarization failed for item %s: %s", item.id, e)

    meta: Optional[TagResult] = None
    try:
        meta = ai.extract_tags(trim_context(context, TAG_CONTEXT_LIMIT))
    except EnhancementFailure as e:
        logger.warning("Tag extraction failed for item %s: %s", item.id, e)

    if summary is None and meta is None:
        return item

    updated = item.copy(enhanced_at=now_ms())
    if summary is not None:
        updated.summary = summary
    if meta is not None:
        updated.tags = list(meta.tags)
        updated.intent = meta.intent
        updated.entities = list(meta.entities)

    store.update(updated)
    logger.info("Enriched item %s (%d tags)", updated.id, len(updated.tags))
    return updated
