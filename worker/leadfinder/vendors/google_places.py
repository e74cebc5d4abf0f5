"""Client utilities for the Google Places API."""

import logging
from typing import Any, Dict, Optional

import requests

from leadfinder.models import GeoPoint

logger = logging.getLogger(__name__)
_SESSION = requests.Session()
_BASE_URL = "https://maps.googleapis.com/maps/api/place"
_SUCCESS_STATUSES = {"OK", "ZERO_RESULTS"}


class GooglePlacesError(RuntimeError):
    """Raised when the Places API returns a non-successful response."""

    def __init__(self, message: str, status: Optional[str] = None) -> None:
        super().__init__(message)
        self.status = status


class InvalidCredentialsError(GooglePlacesError):
    """The API key is invalid or not allowed to call the Places API."""


class QuotaExceededError(GooglePlacesError):
    """The project ran out of Places API quota."""


def _raise_for_status(payload: Dict[str, Any], operation: str) -> None:
    status = payload.get("status")
    if status in _SUCCESS_STATUSES:
        return
    error_message = payload.get("error_message")
    logger.error("%s failed: status=%s, error_message=%s", operation, status, error_message)
    if status == "REQUEST_DENIED":
        raise InvalidCredentialsError(error_message or "Google Maps API key is invalid or restricted", status)
    if status == "OVER_QUERY_LIMIT":
        raise QuotaExceededError(error_message or "Google Maps API quota exceeded", status)
    raise GooglePlacesError(error_message or f"Google Maps API error: {status}", status)


def nearby_search(
    keyword: str,
    location: GeoPoint,
    radius_meters: float,
    api_key: str,
    pagetoken: Optional[str] = None,
) -> Dict[str, Any]:
    params: Dict[str, Any] = {
        "location": location.as_param(),
        "radius": str(int(radius_meters)),
        "keyword": keyword,
        "type": "establishment",
        "key": api_key,
    }
    if pagetoken:
        params["pagetoken"] = pagetoken
    try:
        response = _SESSION.get(f"{_BASE_URL}/nearbysearch/json", params=params, timeout=10)
        response.raise_for_status()
        payload = response.json()
    except (requests.RequestException, ValueError) as exc:
        raise GooglePlacesError(f"Places request failed: {exc}") from exc
    _raise_for_status(payload, "nearby_search")
    return payload
