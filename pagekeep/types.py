"""
Data types for saved pages.
"""

import math
import time
from dataclasses import dataclass, field, replace
from typing import Any, Optional


# Searchable field groups. "title" covers title + url, "description" covers
# tldr + key points + note, "tags" covers the joined tag list.
SEARCH_FIELDS = ("title", "description", "tags")
DEFAULT_SEARCH_FIELDS = list(SEARCH_FIELDS)

ORDER_OPTIONS = ("date_desc", "date_asc", "rating_desc", "rating_asc")
DEFAULT_ORDER = "date_desc"

MAX_RATING = 5.0


def now_ms() -> int:
    """Current time as integer milliseconds since the epoch.

    All timestamps in pagekeep use this representation.
    """
    return int(time.time() * 1000)


def clamp_rating(value: Optional[float]) -> float:
    """Clamp a rating to [0, 5] and quantize it to half steps."""
    if value is None:
        return 0.0
    bounded = max(0.0, min(MAX_RATING, float(value)))
    # Halves round up
    return math.floor(bounded * 2 + 0.5) / 2


def normalize_tags(tags) -> list[str]:
    """Lower-case and strip tags, dropping blanks. Order is preserved."""
    if not tags:
        return []
    cleaned = (str(t).strip().lower() for t in tags)
    return [t for t in cleaned if t]


def parse_tag_list(value: str) -> list[str]:
    """Parse a comma-separated tag string as typed by a user."""
    return [t.strip() for t in (value or "").split(",") if t.strip()]


@dataclass
class Summary:
    """Enrichment summary: a one-paragraph TL;DR plus key points."""
    tldr: str = ""
    key_points: str = ""


@dataclass
class SavedItem:
    """
    A saved web page.

    ``id`` is None until the item has been added to an ItemStore.
    ``saved_at`` and ``enhanced_at`` are milliseconds since the epoch;
    ``enhanced_at`` stays 0 until enrichment has completed once.
    """
    url: str
    title: str = ""
    saved_at: int = 0
    summary: Summary = field(default_factory=Summary)
    tags: list[str] = field(default_factory=list)
    intent: str = ""
    entities: list[str] = field(default_factory=list)
    note: str = ""
    rating: float = 0.0
    enhanced_at: int = 0
    id: Optional[int] = None

    def copy(self, **changes: Any) -> "SavedItem":
        """Return a deep-enough copy with the given fields replaced."""
        base = replace(
            self,
            summary=Summary(self.summary.tldr, self.summary.key_points),
            tags=list(self.tags),
            entities=list(self.entities),
        )
        return replace(base, **changes) if changes else base

    def to_dict(self) -> dict[str, Any]:
        """Serialize using the camelCase record layout."""
        return {
            "id": self.id,
            "url": self.url,
            "title": self.title,
            "savedAt": self.saved_at,
            "summary": {
                "tldr": self.summary.tldr,
                "keyPoints": self.summary.key_points,
            },
            "tags": list(self.tags),
            "intent": self.intent,
            "entities": list(self.entities),
            "note": self.note,
            "rating": self.rating,
            "enhancedAt": self.enhanced_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SavedItem":
        """Inverse of :meth:`to_dict`. Missing keys take their defaults."""
        summary = data.get("summary") or {}
        return cls(
            id=data.get("id"),
            url=data.get("url") or "",
            title=data.get("title") or "",
            saved_at=int(data.get("savedAt") or 0),
            summary=Summary(
                tldr=summary.get("tldr") or "",
                key_points=summary.get("keyPoints") or "",
            ),
            tags=list(data.get("tags") or []),
            intent=data.get("intent") or "",
            entities=list(data.get("entities") or []),
            note=data.get("note") or "",
            rating=float(data.get("rating") or 0),
            enhanced_at=int(data.get("enhancedAt") or 0),
        )


@dataclass
class TagResult:
    """Output of tag extraction."""
    tags: list[str] = field(default_factory=list)
    intent: str = ""
    entities: list[str] = field(default_factory=list)


@dataclass
class SearchPreferences:
    """The user's chosen search fields and result order."""
    fields: list[str] = field(default_factory=lambda: list(DEFAULT_SEARCH_FIELDS))
    order: str = DEFAULT_ORDER

    def to_dict(self) -> dict[str, Any]:
        return {"fields": list(self.fields), "order": self.order}
