"""Tests for page capture: HTML parsing and URL checks."""

import pytest

from pagekeep.capture import (
    MAX_TEXT_CHARS,
    PageCapture,
    PageFetcher,
    _is_private_url,
    item_from_capture,
    parse_html,
)

HTML = """<!doctype html>
<html>
<head>
  <title> CSS Grid Guide </title>
  <meta name="description" content="Everything about grid.">
  <meta name="keywords" content="css, grid, layout">
  <style>body { color: red; }</style>
</head>
<body>
  <h1>Grid</h1>
  <p>Rows and   columns.</p>
  <script>var tracking = 1;</script>
</body>
</html>
"""


class TestParseHtml:

    def test_extracts_fields(self):
        page = parse_html("https://css.example/grid", HTML, selection="Rows")
        assert page.url == "https://css.example/grid"
        assert page.title == "CSS Grid Guide"
        assert page.description == "Everything about grid."
        assert page.keywords == "css, grid, layout"
        assert page.selection == "Rows"

    def test_text_starts_with_title_and_description(self):
        page = parse_html("https://x/", HTML)
        assert page.text.startswith("CSS Grid Guide\n\nEverything about grid.\n\n")
        assert "Rows and   columns." in page.text

    def test_scripts_and_styles_dropped(self):
        page = parse_html("https://x/", HTML)
        assert "tracking" not in page.text
        assert "color: red" not in page.text

    def test_og_description_fallback(self):
        html = '<html><head><meta property="og:description" content="OG text"></head><body></body></html>'
        assert parse_html("https://x/", html).description == "OG text"

    def test_text_is_clipped(self):
        html = "<html><body><p>" + "z" * (MAX_TEXT_CHARS + 500) + "</p></body></html>"
        assert len(parse_html("https://x/", html).text) == MAX_TEXT_CHARS


class TestItemFromCapture:

    def test_initial_item(self):
        page = PageCapture(url="https://x/", title="X", selection="picked", text="body")
        item = item_from_capture(page, saved_at=77)
        assert item.id is None
        assert (item.url, item.title, item.note, item.saved_at) == ("https://x/", "X", "picked", 77)
        assert item.rating == 0.0
        assert item.enhanced_at == 0
        assert item.tags == []

    def test_saved_at_defaults_to_now(self):
        item = item_from_capture(PageCapture(url="https://x/"))
        assert item.saved_at > 1_600_000_000_000


class TestUrlChecks:

    @pytest.mark.parametrize("url", [
        "http://127.0.0.1/",
        "http://10.0.0.5/admin",
        "http://[::1]/",
        "http://169.254.169.254/latest/meta-data",
        "http:///no-host",
    ])
    def test_private_addresses(self, url):
        assert _is_private_url(url)

    def test_public_ip_literal(self):
        assert not _is_private_url("https://93.184.216.34/")

    @pytest.mark.parametrize("url", ["ftp://example.com/", "file:///etc/passwd", "javascript:alert(1)"])
    def test_unsupported_scheme_refused(self, url):
        with pytest.raises(IOError, match="scheme"):
            PageFetcher().fetch(url)

    def test_private_address_refused(self):
        with pytest.raises(IOError, match="private"):
            PageFetcher().fetch("http://127.0.0.1:9/")
