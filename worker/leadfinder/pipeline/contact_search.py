"""Targeted contact-source queries on top of a text-search provider."""

from __future__ import annotations

import logging
import time
from typing import Callable, Dict, List, Optional, Protocol, Sequence

from leadfinder.core.contact_extractor import normalize_url
from leadfinder.core.locale_rules import THAI_RULES, LocaleRules
from leadfinder.models import RawSearchHit

logger = logging.getLogger(__name__)

INTENTS = ("contact", "general", "directors")
BUSINESS_RESULTS = 15
PERSON_RESULTS = 8
REGISTRY_RESULTS = 5
QUERY_DELAY_SECONDS = 1.0


class SearchProvider(Protocol):
    name: str

    def search(self, query: str, num_results: int = 10) -> List[RawSearchHit]:
        ...


def dedupe_hits(hits: Sequence[RawSearchHit]) -> List[RawSearchHit]:
    """Keep the first hit per normalized url, preserving order."""
    unique: Dict[str, RawSearchHit] = {}
    for hit in hits:
        key = normalize_url(hit.url) if hit.url else f"{hit.title}|{hit.snippet}"
        unique.setdefault(key, hit)
    return list(unique.values())


class ContactSourceSearch:
    def __init__(
        self,
        provider: SearchProvider,
        *,
        rules: LocaleRules = THAI_RULES,
        query_delay: float = QUERY_DELAY_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.provider = provider
        self.rules = rules
        self.query_delay = query_delay
        self._sleep = sleep

    @property
    def provider_name(self) -> str:
        return self.provider.name

    def search_for_business(self, name: str, intent: str = "general") -> List[RawSearchHit]:
        if intent not in INTENTS:
            raise ValueError(f"Unknown search intent: {intent}")
        query = self.rules.business_query(name, intent)
        logger.info("Business search (%s, %s) for %s", self.provider_name, intent, name)
        return dedupe_hits(self.provider.search(query, BUSINESS_RESULTS))

    def search_for_person(self, person_name: str, business_name: str) -> List[RawSearchHit]:
        queries = self.rules.person_queries(person_name, business_name)
        return self._run_batch(queries, PERSON_RESULTS)

    def search_for_directors_via_registry(self, business_name: str) -> List[RawSearchHit]:
        queries = self.rules.registry_queries(business_name)
        return self._run_batch(queries, REGISTRY_RESULTS)

    def _run_batch(self, queries: Sequence[str], num_results: int) -> List[RawSearchHit]:
        """Run queries in order and union the hits.

        A failing query is skipped; the batch only fails when every query did.
        """
        collected: List[RawSearchHit] = []
        last_error: Optional[Exception] = None
        succeeded = 0
        for index, query in enumerate(queries):
            if index > 0:
                self._sleep(self.query_delay)
            try:
                collected.extend(self.provider.search(query, num_results))
                succeeded += 1
            except Exception as exc:  # noqa: BLE001
                logger.warning("Query failed on %s provider (%s): %s", self.provider_name, query, exc)
                last_error = exc

        if queries and succeeded == 0 and last_error is not None:
            raise last_error
        return dedupe_hits(collected)
