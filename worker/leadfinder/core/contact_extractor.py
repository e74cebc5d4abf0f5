"""Pattern-based extraction of contact signals from search results."""

from __future__ import annotations

import logging
import re
from typing import Dict, Iterable, List, Optional, Pattern, Sequence, Tuple
from urllib.parse import urlparse, urlunparse

from leadfinder.core.locale_rules import THAI_RULES, LocaleRules
from leadfinder.models import ExtractedSignals, RawSearchHit, SocialHandles

logger = logging.getLogger(__name__)

MAX_EMAILS = 5
MAX_PHONES = 5
MAX_NAMES = 8
MAX_WEBSITES = 3
MAX_WEBSITE_LENGTH = 200

EMAIL_REGEX = re.compile(r"[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}", re.IGNORECASE)
URL_REGEX = re.compile(r"https?://[^\s<>\"']+", re.IGNORECASE)
FACEBOOK_REGEX = re.compile(r"(?:https?://)?(?:www\.)?facebook\.com/[a-zA-Z0-9.]+", re.IGNORECASE)
MESSAGING_HANDLE_REGEX = re.compile(r"(?<![A-Za-z0-9._%+-])@[a-zA-Z0-9._-]+")

EXCLUDED_EMAIL_DOMAINS = frozenset({"example.com", "test.com", "google.com", "facebook.com", "w3.org"})
EXCLUDED_WEBSITE_DOMAINS = frozenset(
    {
        "google.com",
        "google.co.th",
        "goo.gl",
        "bing.com",
        "facebook.com",
        "fb.com",
        "instagram.com",
        "twitter.com",
        "x.com",
        "tiktok.com",
        "line.me",
        "youtube.com",
        "youtu.be",
    }
)


def _domain_matches(host: str, domains: Iterable[str]) -> bool:
    host = host.lower().strip(".")
    if host.startswith("www."):
        host = host[4:]
    return any(host == domain or host.endswith(f".{domain}") for domain in domains)


def normalize_url(url: str) -> str:
    """Key used to treat trivially different spellings of a url as one."""
    parsed = urlparse(url.strip())
    path = parsed.path.rstrip("/")
    return urlunparse((parsed.scheme.lower(), parsed.netloc.lower(), path, parsed.params, parsed.query, ""))


def is_excluded_email(email: str) -> bool:
    domain = email.rsplit("@", 1)[-1]
    return _domain_matches(domain, EXCLUDED_EMAIL_DOMAINS)


def is_business_website(url: str) -> bool:
    if not url or len(url) >= MAX_WEBSITE_LENGTH:
        return False
    parsed = urlparse(url)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        return False
    return not _domain_matches(parsed.netloc, EXCLUDED_WEBSITE_DOMAINS)


def extract_emails(text: str) -> List[str]:
    """Return unique, non-placeholder emails in order of appearance."""

    found: Dict[str, str] = {}
    for match in EMAIL_REGEX.finditer(text or ""):
        email = match.group(0).rstrip(".")
        if is_excluded_email(email):
            continue
        found.setdefault(email.lower(), email)
    return list(found.values())


def extract_phones(text: str, patterns: Sequence[Pattern[str]]) -> List[str]:
    """Run every phone pattern independently and union the matches."""

    found: Dict[str, str] = {}
    for pattern in patterns:
        for match in pattern.finditer(text or ""):
            phone = match.group(0)
            found.setdefault(re.sub(r"[^\d+]", "", phone), phone)
    return list(found.values())


def extract_names(text: str, patterns: Sequence[Pattern[str]], business_name: str = "") -> List[str]:
    business = " ".join((business_name or "").split())
    found: Dict[str, None] = {}
    for pattern in patterns:
        for match in pattern.finditer(text or ""):
            name = " ".join(match.group(1).split())
            if len(name) < 2:
                continue
            if business and (business in name or name in business):
                continue
            found.setdefault(name, None)
    return list(found)


def extract_websites(urls: Iterable[str]) -> List[str]:
    found: Dict[str, str] = {}
    for url in urls:
        url = (url or "").strip().rstrip(".,;)")
        if is_business_website(url):
            found.setdefault(normalize_url(url), url)
    return list(found.values())


class ContactExtractor:
    """Turn raw search hits into deduplicated, capped contact candidates."""

    def __init__(self, rules: LocaleRules = THAI_RULES) -> None:
        self.rules = rules
        self._phone_patterns = rules.compiled_phone_patterns()
        self._name_patterns = rules.compiled_name_patterns()

    def extract(self, hits: Sequence[RawSearchHit], business_name: str) -> ExtractedSignals:
        chunks: List[str] = []
        url_candidates: List[str] = []
        for hit in hits:
            chunks.append(f"{hit.title} {hit.snippet}")
            if hit.url:
                url_candidates.append(hit.url)
        raw_text = " ".join(chunks).strip()
        url_candidates.extend(URL_REGEX.findall(raw_text))

        signals = ExtractedSignals(
            emails=extract_emails(raw_text)[:MAX_EMAILS],
            phones=extract_phones(raw_text, self._phone_patterns)[:MAX_PHONES],
            names=extract_names(raw_text, self._name_patterns, business_name)[:MAX_NAMES],
            websites=extract_websites(url_candidates)[:MAX_WEBSITES],
            social=self._extract_social(url_candidates, raw_text),
            raw_text=raw_text,
        )
        logger.debug(
            "Extracted for %s: emails=%d phones=%d names=%d websites=%d text=%d chars",
            business_name,
            len(signals.emails),
            len(signals.phones),
            len(signals.names),
            len(signals.websites),
            len(raw_text),
        )
        return signals

    @staticmethod
    def _extract_social(urls: Sequence[str], text: str) -> SocialHandles:
        facebook: Optional[str] = None
        for candidate in (*urls, text):
            match = FACEBOOK_REGEX.search(candidate or "")
            if match:
                facebook = match.group(0)
                break
        line_match = MESSAGING_HANDLE_REGEX.search(text or "")
        return SocialHandles(facebook=facebook, line=line_match.group(0) if line_match else None)


def summarize_signals(signals: ExtractedSignals) -> Tuple[int, int, int, int]:
    return len(signals.emails), len(signals.phones), len(signals.names), len(signals.websites)
