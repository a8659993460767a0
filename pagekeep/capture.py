"""
Page capture: turn a URL into the snapshot a saved item is built from.

Browser front ends supply PageCapture directly; ``fetch_page`` is the
command-line stand-in that fetches the page over HTTP.
"""

import ipaddress
import logging
import socket
from dataclasses import dataclass
from urllib.parse import urljoin, urlparse

import requests
from bs4 import BeautifulSoup

from .types import SavedItem, Summary, now_ms

logger = logging.getLogger(__name__)

MAX_TEXT_CHARS = 120_000


@dataclass
class PageCapture:
    """What the capture collaborator reports for a page."""
    url: str
    title: str = ""
    description: str = ""
    keywords: str = ""
    selection: str = ""
    text: str = ""


def item_from_capture(page: PageCapture, *, saved_at: int | None = None) -> SavedItem:
    """Build the initial (unenriched, unrated) item for a captured page."""
    return SavedItem(
        url=page.url,
        title=page.title or "",
        saved_at=saved_at if saved_at is not None else now_ms(),
        summary=Summary(),
        tags=[],
        intent="",
        entities=[],
        note=page.selection or "",
        rating=0.0,
        enhanced_at=0,
    )


def _meta(soup: BeautifulSoup, name: str) -> str:
    el = soup.find("meta", attrs={"name": name}) or soup.find("meta", attrs={"property": name})
    if el is None:
        return ""
    return (el.get("content") or "").strip()


def parse_html(url: str, html: str, *, selection: str = "") -> PageCapture:
    """
    Extract title, meta description/keywords and readable text from HTML.

    The text starts with title and description so enrichment sees them
    first, and is clipped to MAX_TEXT_CHARS.
    """
    soup = BeautifulSoup(html, "html.parser")
    title = soup.title.get_text(strip=True) if soup.title else ""
    description = _meta(soup, "description") or _meta(soup, "og:description")
    keywords = _meta(soup, "keywords")

    for script in soup(["script", "style", "noscript"]):
        script.decompose()
    body = soup.body or soup
    lines = (line.strip() for line in body.get_text("\n").splitlines())
    raw = "\n".join(line for line in lines if line)

    text = f"{title}\n\n{description}\n\n{raw}"[:MAX_TEXT_CHARS]
    return PageCapture(
        url=url,
        title=title,
        description=description,
        keywords=keywords,
        selection=selection,
        text=text,
    )


def _is_private_url(uri: str) -> bool:
    """Check if URL targets a private/internal network address.

    DNS resolution here is TOCTOU; good enough for a local CLI.
    """
    hostname = urlparse(uri).hostname
    if not hostname:
        return True

    def blocked(addr) -> bool:
        return (addr.is_private or addr.is_loopback or addr.is_link_local
                or addr.is_reserved or addr.is_unspecified or addr.is_multicast)

    try:
        return blocked(ipaddress.ip_address(hostname))
    except ValueError:
        pass  # Not an IP literal, resolve it

    try:
        for _, _, _, _, sockaddr in socket.getaddrinfo(hostname, None):
            if blocked(ipaddress.ip_address(sockaddr[0])):
                return True
    except socket.gaierror:
        pass  # DNS failure will be caught by requests
    return False


class PageFetcher:
    """
    Fetches and parses web pages over HTTP(S).

    Redirects are followed manually so each hop is checked against
    private/internal addresses.
    """

    _MAX_REDIRECTS = 5

    def __init__(self, timeout: int = 30, max_size: int = 10_000_000, allow_private: bool = False):
        self.timeout = timeout
        self.max_size = max_size
        self.allow_private = allow_private

    def _check(self, uri: str) -> None:
        if not uri.startswith(("http://", "https://")):
            raise IOError(f"Unsupported URL scheme: {uri}")
        if not self.allow_private and _is_private_url(uri):
            raise IOError(f"Blocked request to private/internal address: {uri}")

    def fetch(self, uri: str, *, selection: str = "") -> PageCapture:
        """
        Fetch a page and extract its capture fields.

        Raises:
            IOError: If the URL is refused or cannot be fetched
        """
        from . import __version__

        self._check(uri)
        target = uri
        try:
            for _ in range(self._MAX_REDIRECTS):
                resp = requests.get(
                    target,
                    timeout=self.timeout,
                    headers={"User-Agent": f"pagekeep/{__version__}"},
                    stream=True,
                    allow_redirects=False,
                )
                if resp.is_redirect:
                    target = urljoin(target, resp.headers.get("Location", ""))
                    resp.close()
                    self._check(target)
                    continue
                break
            else:
                raise IOError(f"Too many redirects fetching {uri}")

            with resp:
                resp.raise_for_status()
                chunks: list[bytes] = []
                downloaded = 0
                for chunk in resp.iter_content(chunk_size=65536):
                    downloaded += len(chunk)
                    chunks.append(chunk)
                    if downloaded > self.max_size:
                        break
                raw = b"".join(chunks)[:self.max_size]
                content = raw.decode(resp.encoding or "utf-8", errors="replace")
                content_type = resp.headers.get("content-type", "text/html").split(";")[0].strip()
        except requests.RequestException as e:
            raise IOError(f"Failed to fetch {uri}: {e}") from e

        if content_type in ("text/html", "application/xhtml+xml"):
            page = parse_html(uri, content, selection=selection)
        else:
            page = PageCapture(url=uri, selection=selection, text=content[:MAX_TEXT_CHARS])
        logger.debug("Fetched %s (%d chars of text)", uri, len(page.text))
        return page


def fetch_page(url: str, *, selection: str = "", timeout: int = 30) -> PageCapture:
    """Fetch ``url`` with default settings."""
    return PageFetcher(timeout=timeout).fetch(url, selection=selection)
