"""Tests for Markdown export."""

from datetime import datetime, timezone

from pagekeep.export import (
    build_export_filename,
    build_export_markdown,
    format_rating,
    format_tags,
    sanitize_heading,
)

from tests.conftest import make_item


class TestFormatting:

    def test_format_rating(self):
        assert format_rating(3.0) == "3"
        assert format_rating(3.5) == "3.5"
        assert format_rating(0) == "0"
        assert format_rating(None) == "0"

    def test_format_tags(self):
        assert format_tags(["css", " grid ", ""]) == "css, grid"
        assert format_tags([]) == "None"
        assert format_tags(None) == "None"

    def test_sanitize_heading(self):
        assert sanitize_heading("## Already a heading") == "Already a heading"
        assert sanitize_heading("two\nlines") == "two lines"
        assert sanitize_heading("   ") == "Untitled"


class TestMarkdown:

    def test_section_layout(self):
        item = make_item(
            "https://a/", "CSS Grid", tldr="Grid layout.",
            key_points="- rows\n- cols", tags=["css", "layout"], rating=4.5,
        )
        assert build_export_markdown([item]) == (
            "## CSS Grid\n"
            "### Rating\n4.5\n"
            "### Tags\ncss, layout\n"
            "### Summary\nGrid layout.\n"
            "### Keypoints\n- rows\n- cols\n"
        )

    def test_absent_values_read_none(self):
        text = build_export_markdown([make_item("https://bare/")])
        assert text.startswith("## https://bare/\n")
        assert "### Tags\nNone\n" in text
        assert "### Summary\nNone\n" in text
        assert "### Keypoints\nNone\n" in text
        assert "### Rating\n0\n" in text

    def test_keeps_given_order(self):
        items = [make_item(f"https://{n}/", n.upper()) for n in ("b", "a", "c")]
        text = build_export_markdown(items)
        headings = [line for line in text.splitlines() if line.startswith("## ")]
        assert headings == ["## B", "## A", "## C"]

    def test_empty_list(self):
        assert build_export_markdown([]) == ""


class TestFilename:

    def test_timestamp_filename(self):
        now = datetime(2026, 3, 4, 5, 6, 7, 890_000, tzinfo=timezone.utc)
        assert build_export_filename(now) == "pagekeep-export-2026-03-04T05-06-07-890Z.md"

    def test_default_now(self):
        name = build_export_filename()
        assert name.startswith("pagekeep-export-")
        assert name.endswith("Z.md")
        assert ":" not in name
