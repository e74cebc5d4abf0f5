"""Utilities for transforming Places responses and leads into rows."""

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional

from leadfinder.models import NO_EMAIL, NOT_AVAILABLE, GeoPoint, LeadRecord, Place, SearchRequest

logger = logging.getLogger(__name__)

_IGNORE_TYPES = {"point_of_interest", "establishment", "political", "premise"}
CLOSED_PERMANENTLY = "CLOSED_PERMANENTLY"


def _extract_primary_type(types: Iterable[str]) -> Optional[str]:
    for type_name in types or []:
        if type_name not in _IGNORE_TYPES:
            return type_name
    return None


def _safe_float(value: Any) -> Optional[float]:
    try:
        if value is None:
            return None
        return float(value)
    except (TypeError, ValueError):
        return None


def _parse_location(result: Dict[str, Any]) -> Optional[GeoPoint]:
    location = (result.get("geometry") or {}).get("location") or {}
    lat = _safe_float(location.get("lat"))
    lng = _safe_float(location.get("lng"))
    if lat is None or lng is None:
        return None
    return GeoPoint(lat=lat, lng=lng)


def to_place(result: Dict[str, Any]) -> Optional[Place]:
    """Normalise one Nearby Search result; None when it must be skipped."""
    name = (result.get("name") or "").strip()
    place_id = (result.get("place_id") or "").strip()
    if not name or not place_id:
        logger.debug("Skipping result without name or place_id: %s", result)
        return None
    if result.get("business_status") == CLOSED_PERMANENTLY:
        logger.debug("Skipping permanently closed place %s", place_id)
        return None

    return Place(
        place_id=place_id,
        name=name,
        address=result.get("formatted_address") or result.get("vicinity") or "",
        rating=_safe_float(result.get("rating")),
        types=tuple(result.get("types") or ()),
        location=_parse_location(result),
    )


def to_places(results: Iterable[Dict[str, Any]]) -> List[Place]:
    places = []
    for result in results or []:
        place = to_place(result)
        if place is not None:
            places.append(place)
    return places


def primary_category(place: Place) -> Optional[str]:
    return _extract_primary_type(place.types)


def to_lead_row(
    record: LeadRecord,
    *,
    search_id: str,
    request: SearchRequest,
    premium_used: bool,
) -> Dict[str, Any]:
    return {
        "search_id": search_id,
        "company_name": record.company_name,
        "lead_name": record.lead_name,
        "lead_title": record.lead_title,
        "email": record.email,
        "phone": record.phone,
        "search_phase": record.search_phase,
        "target_url": record.target_url,
        "search_step": record.search_step,
        "search_keywords": request.keywords,
        "search_location": {"lat": request.location.lat, "lng": request.location.lng},
        "search_radius": request.radius_meters,
        "premium_used": premium_used,
    }


def lead_row_from_dict(row: Mapping[str, Any]) -> LeadRecord:
    return LeadRecord(
        company_name=row.get("company_name") or "",
        lead_name=row.get("lead_name") or NOT_AVAILABLE,
        lead_title=row.get("lead_title") or NOT_AVAILABLE,
        email=row.get("email") or NO_EMAIL,
        phone=row.get("phone") or NOT_AVAILABLE,
        search_phase=row.get("search_phase") or "",
        target_url=row.get("target_url") or NOT_AVAILABLE,
        search_step=int(row["search_step"]) if row.get("search_step") is not None else 1,
    )
