import pytest

from leadfinder.models import RawSearchHit
from leadfinder.pipeline.contact_search import ContactSourceSearch, dedupe_hits


class FakeProvider:
    name = "premium"

    def __init__(self, responses=None, fail_on=()):
        self.responses = responses or {}
        self.fail_on = set(fail_on)
        self.queries = []

    def search(self, query, num_results=10):
        self.queries.append((query, num_results))
        if query in self.fail_on or "*" in self.fail_on:
            raise RuntimeError(f"failed: {query}")
        return list(self.responses.get(query, []))


def _hit(url, query="q"):
    return RawSearchHit(title="t", snippet="s", url=url, query=query, provider="premium")


@pytest.fixture
def sleeps():
    return []


def test_search_for_business_builds_intent_query(sleeps):
    provider = FakeProvider()
    search = ContactSourceSearch(provider, sleep=sleeps.append)

    search.search_for_business("Acme", "contact")

    query, num = provider.queries[0]
    assert query.startswith('"Acme"')
    assert "ติดต่อ" in query
    assert num == 15
    assert sleeps == []


def test_search_for_business_rejects_unknown_intent():
    search = ContactSourceSearch(FakeProvider())
    with pytest.raises(ValueError):
        search.search_for_business("Acme", "gossip")


def test_search_for_business_propagates_provider_failure():
    search = ContactSourceSearch(FakeProvider(fail_on=["*"]))
    with pytest.raises(RuntimeError):
        search.search_for_business("Acme")


def test_search_for_person_unions_and_dedupes(sleeps):
    provider = FakeProvider()
    search = ContactSourceSearch(provider, query_delay=1.0, sleep=sleeps.append)
    queries = search.rules.person_queries("สมชาย", "Acme")
    provider.responses = {
        queries[0]: [_hit("https://acme.co.th/team/")],
        queries[1]: [_hit("https://acme.co.th/team"), _hit("https://news.example/acme")],
    }
    provider.fail_on = {queries[2]}

    hits = search.search_for_person("สมชาย", "Acme")

    assert [h.url for h in hits] == ["https://acme.co.th/team/", "https://news.example/acme"]
    assert len(provider.queries) == 3
    assert all(num == 8 for _, num in provider.queries)
    assert sleeps == [1.0, 1.0]


def test_search_for_directors_via_registry_fails_when_every_query_fails(sleeps):
    search = ContactSourceSearch(FakeProvider(fail_on=["*"]), sleep=sleeps.append)
    with pytest.raises(RuntimeError):
        search.search_for_directors_via_registry("Acme")


def test_search_for_directors_via_registry_uses_registry_domains(sleeps):
    provider = FakeProvider()
    search = ContactSourceSearch(provider, sleep=sleeps.append)

    assert search.search_for_directors_via_registry("Acme") == []
    assert all("dbd.go.th" in query for query, _ in provider.queries)
    assert all(num == 5 for _, num in provider.queries)


def test_dedupe_hits_without_url_uses_text():
    a = RawSearchHit(title="t", snippet="s", url="", query="q", provider="basic")
    b = RawSearchHit(title="t", snippet="s", url="", query="q2", provider="basic")
    assert dedupe_hits([a, b]) == [a]
