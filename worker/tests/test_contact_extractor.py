import dataclasses

from leadfinder.core import contact_extractor
from leadfinder.core.contact_extractor import ContactExtractor
from leadfinder.core.locale_rules import THAI_RULES
from leadfinder.models import RawSearchHit


def _hit(title, snippet, url=""):
    return RawSearchHit(title=title, snippet=snippet, url=url, query="q", provider="premium")


def test_extract_collects_contact_signals():
    hits = [
        _hit(
            "Acme Coffee - ติดต่อเรา",
            "คุณสมชาย ใจดี (owner) โทร 02-123-4567 หรือ 0812345678 อีเมล info@acme.co.th",
            "https://www.acme.co.th/contact",
        ),
        _hit("Acme Coffee", "LINE @acmecoffee test@example.com", "https://www.facebook.com/acmecoffee"),
    ]

    signals = ContactExtractor().extract(hits, "Acme Coffee")

    assert signals.emails == ["info@acme.co.th"]
    assert "02-123-4567" in signals.phones
    assert "0812345678" in signals.phones
    assert signals.names == ["สมชาย ใจดี"]
    assert signals.websites == ["https://www.acme.co.th/contact"]
    assert signals.social.facebook == "https://www.facebook.com/acmecoffee"
    assert signals.social.line == "@acmecoffee"
    assert "info@acme.co.th" in signals.raw_text


def test_extract_from_no_hits():
    signals = ContactExtractor().extract([], "Acme")
    assert signals.emails == []
    assert signals.raw_text == ""
    assert signals.first_email() == "none"
    assert signals.first_phone() == "N/A"


def test_extract_emails_dedupes_case_insensitively_and_excludes_placeholders():
    text = "Info@Acme.co.th info@acme.co.th demo@test.com a@mail.google.com"
    assert contact_extractor.extract_emails(text) == ["Info@Acme.co.th"]


def test_extract_phones_dedupes_by_digits():
    patterns = THAI_RULES.compiled_phone_patterns()
    phones = contact_extractor.extract_phones("โทร 0812345678 / +66812345678 / 081 234 5678", patterns)
    assert phones[0] == "0812345678"
    assert "+66812345678" in phones
    assert len(phones) == 2


def test_extract_names_skips_business_name():
    patterns = THAI_RULES.compiled_name_patterns()
    names = contact_extractor.extract_names("คุณสมชาย (ok) กรรมการ นางสาวมาลี (x)", patterns, "ร้านสมชาย")
    assert names == ["มาลี"]


def test_extract_names_prefers_longest_honorific():
    patterns = THAI_RULES.compiled_name_patterns()
    names = contact_extractor.extract_names("ติดต่อ นางสาวมาลี ศรีสุข (HR)", patterns)
    assert names == ["มาลี ศรีสุข"]


def test_is_business_website():
    assert contact_extractor.is_business_website("https://acme.co.th")
    assert not contact_extractor.is_business_website("https://maps.google.com/?q=acme")
    assert not contact_extractor.is_business_website("https://www.youtube.com/watch?v=1")
    assert not contact_extractor.is_business_website("ftp://acme.co.th")
    assert not contact_extractor.is_business_website("https://acme.co.th/" + "a" * 250)


def test_caps_are_applied():
    thai_names = ["สมชาย", "สมศรี", "มาลี", "วิชัย", "สุดา", "ประยุทธ", "อนันต์", "กมล", "ชัยวัฒน์"]
    snippet = " ".join(
        [
            " ".join(f"user{i}@shop{i}.co.th" for i in range(10)),
            " ".join(f"081234567{i}" for i in range(7)),
            ", ".join(f"คุณ{name}" for name in thai_names),
            " ".join(f"https://shop{i}.co.th" for i in range(5)),
        ]
    )

    signals = ContactExtractor().extract([_hit("t", snippet)], "Shop")

    assert len(signals.emails) == contact_extractor.MAX_EMAILS == 5
    assert len(signals.phones) == contact_extractor.MAX_PHONES == 5
    assert len(signals.names) == contact_extractor.MAX_NAMES == 8
    assert len(signals.websites) == contact_extractor.MAX_WEBSITES == 3
    assert signals.names == thai_names[:8]


def test_extract_names_stops_after_given_name_and_surname():
    patterns = THAI_RULES.compiled_name_patterns()
    names = contact_extractor.extract_names("ติดต่อ คุณสมชาย ใจดี ยินดีให้บริการ ตลอด (24 ชม.)", patterns)
    assert names == ["สมชาย ใจดี"]


def test_name_token_limit_is_configurable():
    rules = dataclasses.replace(THAI_RULES, name_max_tokens=1)
    signals = ContactExtractor(rules).extract([_hit("t", "ติดต่อ คุณสมชาย ใจดี ยินดีให้บริการ")], "Shop")
    assert signals.names == ["สมชาย"]


def test_normalize_url_ignores_trailing_slash_and_fragment():
    assert contact_extractor.normalize_url("HTTPS://Acme.co.th/contact/#top") == contact_extractor.normalize_url(
        "https://acme.co.th/contact"
    )
