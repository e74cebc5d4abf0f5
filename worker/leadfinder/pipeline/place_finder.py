"""Discover businesses near a point through the Places Nearby Search."""

from __future__ import annotations

import logging
import time
from typing import Callable, List, Optional

from leadfinder.etl.transform import to_places
from leadfinder.models import GeoPoint, Place
from leadfinder.vendors import google_places

logger = logging.getLogger(__name__)

PAGE_TOKEN_DELAY_SECONDS = 2.0


class PlaceFinder:
    def __init__(
        self,
        api_key: str,
        *,
        page_token_delay: float = PAGE_TOKEN_DELAY_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.api_key = api_key
        self.page_token_delay = page_token_delay
        self._sleep = sleep

    def find_places(self, keywords: str, center: GeoPoint, radius_meters: float, limit: int) -> List[Place]:
        """Page through results until ``limit`` places are collected or the provider runs dry.

        Raises ``GooglePlacesError`` (or one of its subclasses) on provider failure.
        """
        if limit <= 0:
            raise ValueError("limit must be positive")
        if radius_meters <= 0:
            raise ValueError("radius_meters must be positive")

        places: List[Place] = []
        page_token: Optional[str] = None
        page = 0
        while True:
            if page_token:
                # Continuation tokens are rejected until they become active.
                self._sleep(self.page_token_delay)
            payload = google_places.nearby_search(
                keyword=keywords,
                location=center,
                radius_meters=radius_meters,
                api_key=self.api_key,
                pagetoken=page_token,
            )
            page += 1
            results = payload.get("results") or []
            places.extend(to_places(results))
            logger.info("Fetched %d results on page %d (%d usable so far)", len(results), page, len(places))

            page_token = payload.get("next_page_token")
            if len(places) >= limit or not page_token:
                break

        return places[:limit]
