"""SerpAPI Google web search, the premium contact-source provider."""

from __future__ import annotations

import logging
import random
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

from serpapi import GoogleSearch

from leadfinder.models import RawSearchHit

logger = logging.getLogger(__name__)

PROVIDER_NAME = "premium"
RETRY_LIMIT = 1
RETRY_DELAY_SECONDS = 1.2
_EMPTY_RESULT_MARKER = "hasn't returned any results"


class SerpSearchError(RuntimeError):
    """Raised when SerpAPI rejects a request or returns an unusable payload."""


class SerpSearchProvider:
    """Structured Google results through SerpAPI, one billable call per query."""

    name = PROVIDER_NAME

    def __init__(
        self,
        api_key: str,
        *,
        language: str = "th",
        country: str = "th",
        search_factory: Callable[[Dict[str, Any]], Any] = GoogleSearch,
        sleep: Callable[[float], None] = time.sleep,
        retry_limit: int = RETRY_LIMIT,
    ) -> None:
        if not api_key:
            raise ValueError("A SerpAPI key is required for the premium provider")
        self._api_key = api_key
        self.language = language
        self.country = country
        self._search_factory = search_factory
        self._sleep = sleep
        self.retry_limit = retry_limit

    def build_params(self, query: str, num_results: int) -> Dict[str, Any]:
        if not query or not query.strip():
            raise ValueError("Query must be provided for SerpAPI lookups.")
        return {
            "engine": "google",
            "q": query.strip(),
            "num": num_results,
            "hl": self.language,
            "gl": self.country,
            "api_key": self._api_key,
        }

    def _fetch_once(self, params: Dict[str, Any]) -> Dict[str, Any]:
        data = self._search_factory(params).get_dict()
        if not data:
            raise SerpSearchError("SerpAPI returned an empty payload.")
        error = data.get("error")
        if error and _EMPTY_RESULT_MARKER not in str(error):
            raise SerpSearchError(f"SerpAPI returned an error response: {error}")
        return data

    def fetch(self, query: str, num_results: int = 10) -> Dict[str, Any]:
        """Call SerpAPI and return the raw JSON response with retry logic."""
        params = self.build_params(query, num_results)

        attempt = 0
        while True:
            attempt += 1
            try:
                logger.info("Calling SerpAPI (attempt %s) for query=%s", attempt, query)
                return self._fetch_once(params)
            except Exception as exc:  # noqa: BLE001
                logger.warning("SerpAPI request failed (attempt %s/%s): %s", attempt, self.retry_limit + 1, exc)
                if attempt > self.retry_limit:
                    logger.error("SerpAPI request exhausted retries for query=%s", query)
                    if isinstance(exc, SerpSearchError):
                        raise
                    raise SerpSearchError(str(exc)) from exc
                self._sleep(RETRY_DELAY_SECONDS + random.uniform(0, 0.8))

    def search(self, query: str, num_results: int = 10) -> List[RawSearchHit]:
        data = self.fetch(query, num_results)
        hits = parse_organic_results(data, query, self.name)
        metadata = data.get("search_metadata") or {}
        information = data.get("search_information") or {}
        logger.info(
            "SerpAPI returned %d hits (total=%s, elapsed=%ss) for query=%s",
            len(hits),
            information.get("total_results"),
            metadata.get("total_time_taken"),
            query,
        )
        return hits

    def check_credentials(self) -> Tuple[bool, Optional[str]]:
        """Check the key with a one-result query, without retries."""
        try:
            self._fetch_once(self.build_params("test search api key validation", 1))
        except Exception as exc:  # noqa: BLE001
            logger.warning("SerpAPI credential check failed: %s", exc)
            return False, str(exc)
        return True, None


def parse_organic_results(data: Optional[Dict[str, Any]], query: str, provider: str) -> List[RawSearchHit]:
    """Convert SerpAPI organic results into RawSearchHit values."""
    if not data:
        return []

    items = data.get("organic_results")
    if not isinstance(items, list):
        return []

    ordered = sorted(
        (item for item in items if isinstance(item, dict)),
        key=lambda item: item.get("position") or 0,
    )
    hits: List[RawSearchHit] = []
    for item in ordered:
        url = (item.get("link") or "").strip()
        title = (item.get("title") or "").strip()
        if not url and not title:
            continue
        hits.append(
            RawSearchHit(
                title=title,
                snippet=(item.get("snippet") or "").strip(),
                url=url,
                query=query,
                provider=provider,
            )
        )
    return hits
