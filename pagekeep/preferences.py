"""
Persisted search preferences.

Preferences are a convenience, not critical state: reads fall back to
defaults and write failures are logged and swallowed.
"""

import json
import logging

from .errors import PreferenceFailure, StorageFailure
from .item_store import ItemStore
from .lexical import normalize_fields
from .ordering import normalize_order
from .types import SearchPreferences

logger = logging.getLogger(__name__)

SEARCH_PREF_KEY = "search_prefs"


def normalize_preferences(prefs: SearchPreferences) -> SearchPreferences:
    """Drop unknown fields (empty falls back to defaults) and unknown orders."""
    return SearchPreferences(
        fields=normalize_fields(prefs.fields),
        order=normalize_order(prefs.order),
    )


class PreferenceStore:
    """Reads and writes SearchPreferences as one keyed record in the item store."""

    def __init__(self, store: ItemStore, key: str = SEARCH_PREF_KEY):
        self._store = store
        self._key = key

    def _read(self) -> SearchPreferences:
        try:
            raw = self._store.read_setting(self._key)
        except StorageFailure as e:
            raise PreferenceFailure(str(e)) from e
        if raw is None:
            return SearchPreferences()
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise PreferenceFailure(f"Corrupt preferences record: {e}") from e
        if not isinstance(data, dict):
            raise PreferenceFailure("Preferences record is not an object")

        fields = data.get("fields")
        if not isinstance(fields, list):
            fields = []
        order = data.get("order")
        if not isinstance(order, str):
            order = None
        return normalize_preferences(SearchPreferences(fields=fields, order=order))

    def load(self) -> SearchPreferences:
        """Load preferences. Never raises; returns defaults on any problem."""
        try:
            return self._read()
        except PreferenceFailure as e:
            logger.warning("Failed to load search preferences, using defaults: %s", e)
            return SearchPreferences()

    def save(self, prefs: SearchPreferences) -> bool:
        """
        Normalize and persist preferences.

        Returns:
            True if written, False if the write failed (already logged)
        """
        normalized = normalize_preferences(prefs)
        try:
            self._store.write_setting(self._key, json.dumps(normalized.to_dict()))
        except StorageFailure as e:
            logger.warning("Failed to save search preferences: %s", e)
            return False
        return True
