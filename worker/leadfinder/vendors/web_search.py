"""Basic contact-source provider: scrape public search-engine result pages."""

from __future__ import annotations

import json
import logging
from typing import List, Optional, Sequence, Tuple
from urllib.parse import parse_qs, quote, quote_plus, urlparse

import requests
from bs4 import BeautifulSoup

from leadfinder.models import RawSearchHit

logger = logging.getLogger(__name__)

PROVIDER_NAME = "basic"
USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"
REQUEST_TIMEOUT = 10
MIN_CONTENT_LENGTH = 100
MAX_PAGE_TEXT = 5000
SEARCH_ENGINES: Tuple[Tuple[str, str], ...] = (
    ("google", "https://www.google.com/search?q="),
    ("bing", "https://www.bing.com/search?q="),
)


class WebSearchError(RuntimeError):
    """Raised when no search engine produced usable content."""


class WebSearchProvider:
    """Weak-signal fallback that needs no credentials.

    Result pages are fetched directly or through a generic retrieval proxy
    (``proxy_url`` is a prefix the target url is appended to, url-encoded).
    """

    name = PROVIDER_NAME

    def __init__(
        self,
        *,
        proxy_url: str = "",
        session: Optional[requests.Session] = None,
        engines: Sequence[Tuple[str, str]] = SEARCH_ENGINES,
    ) -> None:
        self.proxy_url = proxy_url
        self.engines = tuple(engines)
        self.session = session or requests.Session()
        self.session.headers.setdefault("User-Agent", USER_AGENT)
        self.session.headers.setdefault("Accept", "text/html,application/xhtml+xml")

    def _target_url(self, search_url: str) -> str:
        if not self.proxy_url:
            return search_url
        return f"{self.proxy_url}{quote(search_url, safe='')}"

    def fetch_page(self, search_url: str) -> Optional[str]:
        """Return page content, or None when the fetch is not a usable success."""
        try:
            response = self.session.get(self._target_url(search_url), timeout=REQUEST_TIMEOUT)
            response.raise_for_status()
        except requests.RequestException as exc:
            logger.warning("Failed to fetch %s: %s", search_url, exc)
            return None

        content = response.text or ""
        content_type = response.headers.get("Content-Type", "").lower()
        if "json" in content_type:
            # allorigins-style proxies wrap the page as {"contents": "..."}
            try:
                content = json.loads(content).get("contents") or ""
            except (ValueError, AttributeError):
                logger.debug("Proxy returned non-wrapped JSON for %s", search_url)
        if not isinstance(content, str) or len(content) <= MIN_CONTENT_LENGTH:
            logger.debug("Content too short from %s (%d chars)", search_url, len(content or ""))
            return None
        return content

    def search(self, query: str, num_results: int = 10) -> List[RawSearchHit]:
        if not query or not query.strip():
            raise ValueError("Query must be provided for web search.")

        for engine, base_url in self.engines:
            search_url = f"{base_url}{quote_plus(query.strip())}"
            content = self.fetch_page(search_url)
            if content is None:
                continue
            hits = parse_result_page(content, query, engine, search_url, self.name)
            logger.info("Basic search via %s returned %d hits for query=%s", engine, len(hits), query)
            return hits[:num_results]

        raise WebSearchError(f"All search attempts failed for query={query}")


def _unwrap_google_href(href: str) -> str:
    if href.startswith("/url?"):
        target = parse_qs(urlparse(href).query).get("q")
        if target:
            return target[0]
    return href


def parse_result_page(
    content: str,
    query: str,
    engine: str,
    search_url: str,
    provider: str = PROVIDER_NAME,
) -> List[RawSearchHit]:
    """Parse organic result blocks; fall back to one hit carrying the page text."""
    soup = BeautifulSoup(content, "html.parser")
    hits: List[RawSearchHit] = []

    if engine == "bing":
        blocks = soup.select("li.b_algo")
    else:
        blocks = soup.select("div.g")

    for block in blocks:
        anchor = block.find("a", href=True)
        heading = block.find(["h2", "h3"])
        if anchor is None:
            continue
        url = _unwrap_google_href(anchor["href"].strip())
        if not url.startswith("http"):
            continue
        title = heading.get_text(" ", strip=True) if heading else anchor.get_text(" ", strip=True)
        snippet_node = block.find("p") or block.select_one("div.VwiC3b")
        snippet = snippet_node.get_text(" ", strip=True) if snippet_node else block.get_text(" ", strip=True)
        hits.append(RawSearchHit(title=title, snippet=snippet, url=url, query=query, provider=provider))

    if hits:
        return hits

    page_text = soup.get_text(" ", strip=True)[:MAX_PAGE_TEXT]
    if not page_text:
        return []
    return [RawSearchHit(title=query, snippet=page_text, url=search_url, query=query, provider=provider)]
