"""
Markdown export of a result list.
"""

import re
from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Optional

from .types import SavedItem

NONE_TEXT = "None"


def sanitize_heading(value: Optional[str]) -> str:
    """Single-line heading text without leading '#' markers."""
    cleaned = re.sub(r"\n+", " ", str(value or "").replace("\r", "")).strip()
    if not cleaned:
        return "Untitled"
    return re.sub(r"^#+\s*", "", cleaned).strip() or "Untitled"


def sanitize_block(value: Optional[str], fallback: str = NONE_TEXT) -> str:
    if value is None:
        return fallback
    cleaned = str(value).replace("\r", "").strip()
    return cleaned or fallback


def format_tags(tags: Optional[Sequence[str]]) -> str:
    if not tags:
        return NONE_TEXT
    cleaned = [str(tag or "").strip() for tag in tags]
    cleaned = [t for t in cleaned if t]
    return ", ".join(cleaned) if cleaned else NONE_TEXT


def format_rating(rating: Optional[float]) -> str:
    value = float(rating or 0)
    return str(int(value)) if value.is_integer() else str(value)


def build_export_markdown(items: Sequence[SavedItem]) -> str:
    """
    Render items as one Markdown section each, in the given order.

    Each section has the title as a level-2 heading followed by Rating,
    Tags, Summary and Keypoints subsections. Absent values read "None".
    """
    sections = []
    for index, item in enumerate(items):
        title = sanitize_heading(item.title or item.url or f"Item {index + 1}")
        sections.append("\n".join([
            f"## {title}",
            "### Rating",
            format_rating(item.rating),
            "### Tags",
            format_tags(item.tags),
            "### Summary",
            sanitize_block(item.summary.tldr),
            "### Keypoints",
            sanitize_block(item.summary.key_points),
            "",
        ]))
    body = "\n".join(sections).strip()
    return body + "\n" if body else ""


def build_export_filename(now: Optional[datetime] = None) -> str:
    """``pagekeep-export-<UTC ISO timestamp>.md`` with ':' and '.' replaced."""
    now = now or datetime.now(timezone.utc)
    stamp = now.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"
    return f"pagekeep-export-{re.sub(r'[:.]', '-', stamp)}.md"
