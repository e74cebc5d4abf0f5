"""Locale-specific pattern and query vocabularies used by extraction and search."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, Pattern, Tuple


@dataclass(frozen=True)
class LocaleRules:
    """Everything that changes when targeting a different country/language.

    Query templates are ``str.format`` strings and may reference ``{business}``,
    ``{person}`` and ``{domain}``.
    """

    code: str
    language: str
    country: str
    phone_patterns: Tuple[str, ...]
    honorifics: Tuple[str, ...]
    role_terms: Tuple[str, ...]
    name_charset: str
    name_length: Tuple[int, int] = (2, 30)
    name_max_tokens: int = 2
    phone_format_hint: str = ""
    intent_templates: Dict[str, str] = field(default_factory=dict)
    person_templates: Tuple[str, ...] = ()
    registry_domains: Tuple[str, ...] = ()
    registry_templates: Tuple[str, ...] = ()
    company_keywords: Tuple[str, ...] = ()

    def compiled_phone_patterns(self) -> Tuple[Pattern[str], ...]:
        return tuple(re.compile(pattern) for pattern in self.phone_patterns)

    def compiled_name_patterns(self) -> Tuple[Pattern[str], ...]:
        # Longest alternatives first so e.g. "นางสาว" wins over "นาง".
        honorifics = "|".join(re.escape(h) for h in sorted(self.honorifics, key=len, reverse=True))
        roles = "|".join(re.escape(r) for r in sorted(self.role_terms, key=len, reverse=True))
        # A name is at most name_max_tokens words (given name + surname) so the
        # capture stops before whatever Thai text follows it.
        low, high = self.name_length
        token = f"[{self.name_charset}]{{{low},{high}}}"
        capture = f"({token}(?:[ \\t]+{token}){{0,{self.name_max_tokens - 1}}})"
        return (
            re.compile(f"(?:{honorifics})\\s*{capture}"),
            re.compile(f"(?:{roles})[:\\s]*(?:{honorifics})?\\s*{capture}"),
        )

    def business_query(self, business: str, intent: str) -> str:
        template = self.intent_templates.get(intent) or self.intent_templates["general"]
        return template.format(business=business)

    def person_queries(self, person: str, business: str) -> Tuple[str, ...]:
        return tuple(t.format(person=person, business=business) for t in self.person_templates)

    def registry_queries(self, business: str) -> Tuple[str, ...]:
        queries = []
        for template in self.registry_templates:
            if "{domain}" in template:
                queries.extend(template.format(business=business, domain=d) for d in self.registry_domains)
            else:
                queries.append(template.format(business=business))
        return tuple(dict.fromkeys(queries))

    def is_company_keyword(self, keywords: str) -> bool:
        lowered = (keywords or "").lower()
        return any(term in lowered for term in self.company_keywords)


THAI_RULES = LocaleRules(
    code="th",
    language="th",
    country="th",
    phone_patterns=(
        r"0[2-9]\d{8}",
        r"0[6-9]\d{8}",
        r"\+66[2-9]\d{8}",
        r"0[2-9][-\s]\d{3}[-\s]\d{4}",
        r"0[6-9]\d[-\s]\d{3}[-\s]\d{4}",
    ),
    honorifics=("คุณ", "นาย", "นาง", "นางสาว", "ดร.", "ดร", "ศาสตราจารย์"),
    role_terms=("ผู้จัดการ", "กรรมการ", "เจ้าของ", "ผู้อำนวยการ"),
    name_charset="ก-๏",
    phone_format_hint="02-xxx-xxxx or 08x-xxx-xxxx",
    intent_templates={
        "contact": '"{business}" ติดต่อ email โทรศัพท์ เบอร์โทร contact phone',
        "directors": '"{business}" กรรมการ ผู้บริหาร ผู้จัดการ directors management',
        "general": '"{business}" website official contact information',
    },
    person_templates=(
        '"{person}" "{business}" contact email phone',
        '"{person}" "{business}" ติดต่อ อีเมล โทรศัพท์',
        '"{person}" "{business}" manager director',
    ),
    registry_domains=("dbd.go.th", "datawarehouse.dbd.go.th"),
    registry_templates=(
        'site:{domain} "{business}"',
        '"{business}" กรรมการ ผู้บริหาร site:dbd.go.th',
        '"{business}" directors management site:dbd.go.th',
    ),
    company_keywords=(
        "บริษัท", "company", "corp", "corporation", "จำกัด", "limited", "ltd",
        "ห้างหุ้นส่วน", "partnership", "องค์กร", "organization", "สำนักงาน", "office",
    ),
)

LOCALES: Dict[str, LocaleRules] = {THAI_RULES.code: THAI_RULES}


def get_locale_rules(code: str) -> LocaleRules:
    try:
        return LOCALES[(code or "").lower()]
    except KeyError as exc:
        raise ValueError(f"Unsupported search locale: {code!r}") from exc
