"""
pagekeep

A local store of saved web pages with lexical search, optional
LLM-based reranking, and per-page summaries and tags.

Quick Start:
    from pagekeep import PageKeeper, fetch_page

    with PageKeeper() as pk:  # uses ~/.pagekeep/
        page = fetch_page("https://example.com/")
        pk.save_and_enrich(page)
        results = pk.find("example domain")

CLI Usage:
    pagekeep save https://example.com/
    pagekeep find "css grid layout" --order rating_desc
    pagekeep rate 12 4.5

Environment Variables:
    PAGEKEEP_STORE_PATH      - Override default store location
    PAGEKEEP_VERBOSE         - Enable debug logging to stderr
    PAGEKEEP_OPENAI_API_KEY  - API key for the OpenAI provider
    ANTHROPIC_API_KEY        - API key for the Anthropic provider
    OLLAMA_HOST              - Ollama server URL

The store is initialized automatically on first use. Configuration is
persisted in a TOML file within the store directory.
"""

__version__ = "0.1.0"

from .api import PageKeeper
from .capture import PageCapture, fetch_page
from .errors import (
    EnhancementFailure,
    NotFoundOrStorageFailure,
    PagekeepError,
    PreferenceFailure,
    RerankFailure,
    StorageFailure,
)
from .types import SavedItem, SearchPreferences, Summary

__all__ = [
    "PageKeeper",
    "PageCapture",
    "fetch_page",
    "SavedItem",
    "SearchPreferences",
    "Summary",
    "PagekeepError",
    "StorageFailure",
    "NotFoundOrStorageFailure",
    "EnhancementFailure",
    "RerankFailure",
    "PreferenceFailure",
]
