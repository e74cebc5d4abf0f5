import pytest

from leadfinder.vendors import serp_search
from leadfinder.vendors.serp_search import SerpSearchError, SerpSearchProvider


def _factory(payloads):
    calls = []

    def factory(params):
        calls.append(params)
        payload = payloads.pop(0)
        if isinstance(payload, Exception):
            raise payload
        return type("Result", (), {"get_dict": lambda self: payload})()

    return factory, calls


ORGANIC = {
    "organic_results": [
        {"position": 2, "title": "Second", "link": "https://b.example", "snippet": "two"},
        {"position": 1, "title": "First", "link": "https://a.example", "snippet": "one"},
        {"position": 3, "title": "", "link": ""},
    ],
    "search_information": {"total_results": 2},
}


def test_build_params():
    provider = SerpSearchProvider("key", language="th", country="th")
    params = provider.build_params(" cafe ", 15)
    assert params == {"engine": "google", "q": "cafe", "num": 15, "hl": "th", "gl": "th", "api_key": "key"}
    with pytest.raises(ValueError):
        provider.build_params(" ", 10)


def test_provider_requires_key():
    with pytest.raises(ValueError):
        SerpSearchProvider("")


def test_search_parses_organic_results_in_position_order():
    factory, calls = _factory([ORGANIC])
    provider = SerpSearchProvider("key", search_factory=factory, sleep=lambda _: None)

    hits = provider.search("cafe", 10)

    assert [h.url for h in hits] == ["https://a.example", "https://b.example"]
    assert hits[0].provider == "premium"
    assert hits[0].query == "cafe"
    assert len(calls) == 1


def test_search_treats_no_results_error_as_empty():
    factory, _ = _factory([{"error": "Google hasn't returned any results for this query."}])
    provider = SerpSearchProvider("key", search_factory=factory, sleep=lambda _: None)
    assert provider.search("cafe") == []


def test_fetch_retries_once_then_raises():
    sleeps = []
    factory, calls = _factory([RuntimeError("boom"), {"error": "Invalid API key"}])
    provider = SerpSearchProvider("key", search_factory=factory, sleep=sleeps.append)

    with pytest.raises(SerpSearchError):
        provider.fetch("cafe")

    assert len(calls) == 2
    assert len(sleeps) == 1


def test_fetch_recovers_on_retry():
    factory, _ = _factory([RuntimeError("timeout"), ORGANIC])
    provider = SerpSearchProvider("key", search_factory=factory, sleep=lambda _: None)
    assert len(provider.search("cafe")) == 2


def test_check_credentials():
    factory, calls = _factory([{"organic_results": []}, {"error": "Invalid API key."}])
    provider = SerpSearchProvider("key", search_factory=factory, sleep=lambda _: None)

    assert provider.check_credentials() == (True, None)
    valid, reason = provider.check_credentials()
    assert valid is False
    assert "Invalid API key" in reason
    assert calls[0]["num"] == 1


def test_parse_organic_results_handles_garbage():
    assert serp_search.parse_organic_results(None, "q", "premium") == []
    assert serp_search.parse_organic_results({"organic_results": "nope"}, "q", "premium") == []
