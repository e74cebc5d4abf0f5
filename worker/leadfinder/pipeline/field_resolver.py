"""AI-assisted selection of the single best lead from extracted evidence."""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional, Protocol, Sequence, Union

from leadfinder.core.contact_extractor import EMAIL_REGEX
from leadfinder.core.locale_rules import THAI_RULES, LocaleRules
from leadfinder.models import NO_EMAIL, NOT_AVAILABLE, ResolvedLead
from leadfinder.vendors.openai_chat import ChatCompletionError

logger = logging.getLogger(__name__)

MAX_TEXT_CHARS = 4000
_EMPTY_VALUES = {"", "n/a", "na", "none", "null", "unknown", "-"}

SYSTEM_PROMPT = """You are a professional data extraction AI specializing in business contacts. \
Your task is to analyze text and extract contact information for decision-makers.

STRICT RULES:
1. Only extract information that is explicitly stated in the text
2. Match person titles to one of the target titles: {titles}
3. NEVER generate or guess email addresses - only use emails that are clearly visible in the text
4. If no email is found, return "none"
5. Extract phone numbers in the local format ({phone_format})
6. Return confidence score (0-100) based on information quality
7. Prioritize information that appears to be from official sources
8. If multiple contacts are found, choose the highest-ranking person

Response format: JSON object with leadName, leadTitle, email, phone, confidence"""

USER_PROMPT = """Company: {company}
Target Titles: {titles}

Text to analyze:
{text}

Extract the best matching decision-maker's contact information."""


class FieldResolverError(RuntimeError):
    """Raised when the extraction capability fails or replies with garbage."""


class JsonCompleter(Protocol):
    def complete_json(self, messages: List[Dict[str, str]], **kwargs: Any) -> Dict[str, Any]:
        ...


def _clean(value: Any, sentinel: str) -> str:
    if value is None:
        return sentinel
    text = str(value).strip()
    if text.lower() in _EMPTY_VALUES:
        return sentinel
    return text


def _clamp_confidence(value: Any) -> int:
    try:
        confidence = int(float(value))
    except (TypeError, ValueError, OverflowError):
        # Covers NaN and the Infinity/1e999 values json.loads accepts.
        return 0
    return max(0, min(100, confidence))


def _grounded_email(value: Any, evidence: str) -> str:
    email = _clean(value, NO_EMAIL)
    if email == NO_EMAIL:
        return NO_EMAIL
    if not EMAIL_REGEX.fullmatch(email):
        logger.info("Discarding malformed email from the reply: %s", email)
        return NO_EMAIL
    # Return the spelling used in the evidence, never the model's rewrite of it.
    match = re.search(re.escape(email), evidence, re.IGNORECASE)
    if match is None:
        logger.info("Discarding email not present in the evidence text: %s", email)
        return NO_EMAIL
    return match.group(0)


class FieldResolver:
    def __init__(
        self,
        client: JsonCompleter,
        *,
        rules: LocaleRules = THAI_RULES,
        max_text_chars: int = MAX_TEXT_CHARS,
    ) -> None:
        self.client = client
        self.rules = rules
        self.max_text_chars = max_text_chars

    def build_messages(self, text: str, titles: str, company_name: str) -> List[Dict[str, str]]:
        return [
            {
                "role": "system",
                "content": SYSTEM_PROMPT.format(titles=titles, phone_format=self.rules.phone_format_hint or "local"),
            },
            {"role": "user", "content": USER_PROMPT.format(company=company_name, titles=titles, text=text)},
        ]

    def resolve(
        self,
        raw_text: str,
        target_titles: Union[str, Sequence[str]],
        company_name: str,
    ) -> ResolvedLead:
        titles = target_titles if isinstance(target_titles, str) else ", ".join(target_titles)
        evidence = (raw_text or "")[: self.max_text_chars]
        logger.info("Resolving lead for %s from %d chars of evidence", company_name, len(evidence))

        try:
            reply: Optional[Dict[str, Any]] = self.client.complete_json(
                self.build_messages(evidence, titles, company_name),
                temperature=0.1,
                max_tokens=300,
            )
        except ChatCompletionError as exc:
            raise FieldResolverError(f"Extraction call failed: {exc}") from exc
        if not isinstance(reply, dict):
            raise FieldResolverError("Extraction reply is not a JSON object")

        resolved = ResolvedLead(
            lead_name=_clean(reply.get("leadName"), NOT_AVAILABLE),
            lead_title=_clean(reply.get("leadTitle"), NOT_AVAILABLE),
            email=_grounded_email(reply.get("email"), evidence),
            phone=_clean(reply.get("phone"), NOT_AVAILABLE),
            confidence=_clamp_confidence(reply.get("confidence")),
        )
        logger.info(
            "Resolved %s: name=%s title=%s email=%s phone=%s confidence=%d",
            company_name,
            resolved.lead_name,
            resolved.lead_title,
            resolved.email,
            resolved.phone,
            resolved.confidence,
        )
        return resolved
