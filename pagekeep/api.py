"""
Core API for saved pages.

- save(): capture → add to the store (→ enrich)
- find(): lexical filter → rerank → order
- rate() / edit() / delete(): single-record edits
"""

import asyncio
import logging
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Optional

from .ai import AIService
from .capture import PageCapture, fetch_page, item_from_capture
from .config import StoreConfig, load_or_create_config
from .enrichment import build_ai_context, enrich_item
from .export import build_export_filename, build_export_markdown
from .item_store import ItemStore
from .ordering import normalize_order, order_items
from .pipeline import RetrievalPipeline
from .preferences import PreferenceStore, normalize_preferences
from .types import SavedItem, SearchPreferences, clamp_rating, normalize_tags

logger = logging.getLogger(__name__)

# Ratings closer than this are treated as unchanged
_RATING_EPSILON = 0.001


class PageKeeper:
    """
    Local saved-page store with search.

    Example:
        with PageKeeper() as pk:
            item = pk.save(fetch_page("https://example.com/"))
            results = pk.find("example domain")
    """

    def __init__(
        self,
        store_path: Optional[str | Path] = None,
        *,
        config: Optional[StoreConfig] = None,
        store: Optional[ItemStore] = None,
        ai: Optional[AIService] = None,
    ) -> None:
        """
        Initialize or open an existing store.

        Args:
            store_path: Path to store directory. Uses default if not specified.
            config: Pre-loaded StoreConfig (skips filesystem config discovery).
            store: Injected item store (skips opening the default database).
            ai: Injected AI service (skips provider creation from config).

        Raises:
            StorageFailure: If the item database cannot be opened
        """
        # --- Config resolution ---
        if config is not None:
            self._config = config
        else:
            path = Path(store_path).expanduser().resolve() if store_path is not None else None
            self._config = load_or_create_config(path)
        self._store_path = self._config.path

        # --- Persistent operations log ---
        from .logging_config import configure_ops_log
        self._ops_log_handler = configure_ops_log(self._store_path)

        # --- Storage and AI (injected or created) ---
        try:
            self._store = store if store is not None else ItemStore(self._config.database_path)
            self._preferences = PreferenceStore(self._store)
            if ai is not None:
                self._ai = ai
            else:
                self._ai = AIService.from_config(self._config.model.name, self._config.model.params)

            self._pipeline = RetrievalPipeline(
                self._store,
                reranker=self._ai,
                candidate_cap=self._config.candidate_cap,
            )
        except BaseException:
            # Detach the ops log and close whatever was opened
            self.close()
            raise

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    @property
    def config(self) -> StoreConfig:
        """Public access to store configuration."""
        return self._config

    @property
    def store(self) -> ItemStore:
        return self._store

    @property
    def ai(self) -> AIService:
        return self._ai

    @property
    def pipeline(self) -> RetrievalPipeline:
        return self._pipeline

    # -------------------------------------------------------------------------
    # Save and enrich
    # -------------------------------------------------------------------------

    def save(self, page: PageCapture) -> SavedItem:
        """
        Add a captured page as a new, unenriched item.

        Raises:
            StorageFailure: If the item cannot be written
        """
        return self._store.add(item_from_capture(page))

    def enrich(self, item: SavedItem, page: Optional[PageCapture] = None) -> SavedItem:
        """
        Summarize and tag an item, writing the result back.

        Without ``page`` the item's URL is fetched again for context.
        Enrichment failures leave the item as it was; only a failed
        write-back raises.

        Raises:
            StorageFailure: If the enriched item cannot be written
            IOError: If ``page`` is omitted and the URL cannot be fetched
        """
        if page is None:
            page = fetch_page(item.url, selection=item.note)
        return enrich_item(self._store, self._ai, item, build_ai_context(page))

    def save_and_enrich(self, page: PageCapture) -> SavedItem:
        """Save a page, then enrich it in the same call."""
        item = self.save(page)
        return self.enrich(item, page)

    async def asave_and_enrich(self, page: PageCapture) -> tuple[SavedItem, "asyncio.Task[SavedItem]"]:
        """
        Save a page and start enrichment in the background.

        Returns the saved item at once, plus the task that completes with
        the enriched item.
        """
        item = await asyncio.to_thread(self.save, page)
        task = asyncio.create_task(asyncio.to_thread(self.enrich, item, page))
        return item, task

    # -------------------------------------------------------------------------
    # Query
    # -------------------------------------------------------------------------

    def get(self, id: int) -> Optional[SavedItem]:
        return self._store.get(id)

    def list_items(self, order: Optional[str] = None) -> list[SavedItem]:
        """Every item, in ``order`` (default: the saved preference)."""
        order = order or self._preferences.load().order
        return order_items(self._store.get_all(), order)

    def _resolve_prefs(
        self,
        fields: Optional[Iterable[str]],
        order: Optional[str],
    ) -> SearchPreferences:
        prefs = self._preferences.load()
        if fields:
            prefs.fields = list(fields)
        if order:
            prefs.order = order
        return normalize_preferences(prefs)

    def find(
        self,
        query: Optional[str] = None,
        *,
        fields: Optional[Iterable[str]] = None,
        order: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[SavedItem]:
        """
        Search saved items.

        ``fields`` and ``order`` override the saved preferences for this
        call only. ``limit`` trims the ordered result.
        """
        results = self._pipeline.search(query, self._resolve_prefs(fields, order))
        return results[:limit] if limit else results

    async def afind(
        self,
        query: Optional[str] = None,
        *,
        fields: Optional[Iterable[str]] = None,
        order: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[SavedItem]:
        """Async variant of :meth:`find`."""
        prefs = await asyncio.to_thread(self._resolve_prefs, fields, order)
        results = await self._pipeline.asearch(query, prefs)
        return results[:limit] if limit else results

    # -------------------------------------------------------------------------
    # Edits
    # -------------------------------------------------------------------------

    def rate(self, id: int, value: float) -> Optional[SavedItem]:
        """
        Set an item's rating, clamped to [0, 5] in half steps.

        Returns:
            The updated item, or None if no item has this id
        """
        item = self._store.get(id)
        if item is None:
            return None
        rating = clamp_rating(value)
        if abs((item.rating or 0) - rating) < _RATING_EPSILON:
            return item
        return self._store.update(item.copy(rating=rating))

    def edit(
        self,
        id: int,
        *,
        tags: Optional[Sequence[str]] = None,
        tldr: Optional[str] = None,
        key_points: Optional[str] = None,
    ) -> Optional[SavedItem]:
        """
        Edit an item's tags and summary. Unspecified fields keep their values.

        Returns:
            The updated item, or None if no item has this id
        """
        item = self._store.get(id)
        if item is None:
            return None
        updated = item.copy()
        if tags is not None:
            updated.tags = normalize_tags(tags)
        if tldr is not None:
            updated.summary.tldr = tldr.strip()
        if key_points is not None:
            updated.summary.key_points = key_points.strip()
        return self._store.update(updated)

    def delete(self, id: int) -> bool:
        """Delete an item. Returns False if it did not exist."""
        return self._store.remove(id)

    # -------------------------------------------------------------------------
    # Preferences
    # -------------------------------------------------------------------------

    def get_preferences(self) -> SearchPreferences:
        return self._preferences.load()

    def set_preferences(
        self,
        *,
        fields: Optional[Iterable[str]] = None,
        order: Optional[str] = None,
    ) -> SearchPreferences:
        """
        Update and persist preferences. Persisting is best effort.

        Returns:
            The normalized preferences now in effect
        """
        prefs = self._preferences.load()
        if fields is not None:
            prefs.fields = list(fields)
        if order is not None:
            prefs.order = normalize_order(order)
        prefs = normalize_preferences(prefs)
        self._preferences.save(prefs)
        return prefs

    # -------------------------------------------------------------------------
    # Export
    # -------------------------------------------------------------------------

    def export(self, items: Sequence[SavedItem], directory: Optional[Path] = None) -> Path:
        """
        Write items as Markdown into ``directory`` (default: current directory).

        Returns:
            Path of the written file
        """
        directory = Path(directory) if directory is not None else Path.cwd()
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / build_export_filename()
        path.write_text(build_export_markdown(items), encoding="utf-8")
        logger.info("Exported %d items to %s", len(items), path)
        return path

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Close the item store and detach the ops log."""
        if getattr(self, "_ai", None) is not None:
            self._ai.release()

        if getattr(self, "_store", None) is not None:
            self._store.close()

        if getattr(self, "_ops_log_handler", None) is not None:
            logging.getLogger("pagekeep").removeHandler(self._ops_log_handler)
            self._ops_log_handler.close()
            self._ops_log_handler = None

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit - close resources."""
        self.close()
        return False
