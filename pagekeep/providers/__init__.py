"""
Provider interfaces for pagekeep's optional AI capabilities.

A single language model provider backs summarization, tag extraction
and semantic reranking. It is configured in the store's TOML file and
may be absent entirely.

Concrete providers are auto-registered when this module is imported.
"""

from .base import (
    AVAILABLE,
    DOWNLOADABLE,
    UNAVAILABLE,
    LanguageModel,
    ProviderRegistry,
    Reranker,
    get_registry,
)

# Import concrete providers to trigger registration
from . import llm

__all__ = [
    # Protocols
    "LanguageModel",
    "Reranker",
    # Availability states
    "AVAILABLE",
    "DOWNLOADABLE",
    "UNAVAILABLE",
    # Registry
    "ProviderRegistry",
    "get_registry",
]
