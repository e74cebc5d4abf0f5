"""Core data models shared by the lead finder pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

NOT_AVAILABLE = "N/A"
NO_EMAIL = "none"


@dataclass(frozen=True, slots=True)
class GeoPoint:
    lat: float
    lng: float

    def as_param(self) -> str:
        return f"{self.lat},{self.lng}"


@dataclass(frozen=True, slots=True)
class SearchRequest:
    """Parameters of one lead search; immutable once a run starts."""

    keywords: str
    target_titles: Tuple[str, ...]
    location: GeoPoint
    radius_meters: float
    result_limit: int

    def __post_init__(self) -> None:
        if not self.keywords or not self.keywords.strip():
            raise ValueError("keywords must be provided")
        if self.radius_meters <= 0:
            raise ValueError("radius_meters must be positive")
        if self.result_limit <= 0:
            raise ValueError("result_limit must be positive")

    @property
    def titles_text(self) -> str:
        return ", ".join(self.target_titles)


@dataclass(frozen=True, slots=True)
class Place:
    """Normalized snapshot of a business returned by the places search."""

    place_id: str
    name: str
    address: str = ""
    rating: Optional[float] = None
    types: Tuple[str, ...] = ()
    location: Optional[GeoPoint] = None


@dataclass(frozen=True, slots=True)
class RawSearchHit:
    title: str
    snippet: str
    url: str
    query: str
    provider: str


@dataclass(slots=True)
class SocialHandles:
    facebook: Optional[str] = None
    line: Optional[str] = None


@dataclass(slots=True)
class ExtractedSignals:
    """Candidate contact data pulled out of search hits by pattern matching."""

    emails: List[str] = field(default_factory=list)
    phones: List[str] = field(default_factory=list)
    names: List[str] = field(default_factory=list)
    websites: List[str] = field(default_factory=list)
    social: SocialHandles = field(default_factory=SocialHandles)
    raw_text: str = ""

    def first_email(self) -> str:
        return self.emails[0] if self.emails else NO_EMAIL

    def first_phone(self) -> str:
        return self.phones[0] if self.phones else NOT_AVAILABLE

    def first_name(self) -> str:
        return self.names[0] if self.names else NOT_AVAILABLE


@dataclass(frozen=True, slots=True)
class ResolvedLead:
    lead_name: str = NOT_AVAILABLE
    lead_title: str = NOT_AVAILABLE
    email: str = NO_EMAIL
    phone: str = NOT_AVAILABLE
    confidence: int = 0


@dataclass(frozen=True, slots=True)
class LeadRecord:
    """Final best-effort contact identification for one place."""

    company_name: str
    lead_name: str = NOT_AVAILABLE
    lead_title: str = NOT_AVAILABLE
    email: str = NO_EMAIL
    phone: str = NOT_AVAILABLE
    search_phase: str = "Error"
    target_url: str = NOT_AVAILABLE
    search_step: int = 0

    @classmethod
    def errored(cls, company_name: str) -> "LeadRecord":
        return cls(company_name=company_name)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "companyName": self.company_name,
            "leadName": self.lead_name,
            "leadTitle": self.lead_title,
            "email": self.email,
            "phone": self.phone,
            "searchPhase": self.search_phase,
            "targetUrl": self.target_url,
            "searchStep": self.search_step,
        }


@dataclass(frozen=True, slots=True)
class SourceOutcome:
    """Result of a contact-source search: hits with provenance, or a failure reason."""

    provider: str
    hits: Tuple[RawSearchHit, ...] = ()
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, provider: str, hits: List[RawSearchHit]) -> "SourceOutcome":
        return cls(provider=provider, hits=tuple(hits))

    @classmethod
    def failure(cls, provider: str, reason: str) -> "SourceOutcome":
        return cls(provider=provider, error=reason)
