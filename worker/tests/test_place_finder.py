import pytest

from leadfinder.models import GeoPoint
from leadfinder.pipeline import place_finder
from leadfinder.vendors.google_places import QuotaExceededError

CENTER = GeoPoint(13.75, 100.50)


def _result(pid):
    return {"place_id": pid, "name": f"Cafe {pid}", "vicinity": "Bangkok"}


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def finder(sleeps):
    return place_finder.PlaceFinder("key", page_token_delay=2.0, sleep=sleeps.append)


def test_find_places_follows_page_tokens(monkeypatch, finder, sleeps):
    calls = []

    def fake_nearby_search(keyword, location, radius_meters, api_key, pagetoken=None):
        calls.append(pagetoken)
        if not pagetoken:
            return {"results": [_result("1"), _result("2")], "next_page_token": "next"}
        return {"results": [_result("3")], "next_page_token": None}

    monkeypatch.setattr(place_finder.google_places, "nearby_search", fake_nearby_search)

    places = finder.find_places("ร้านกาแฟ", CENTER, 5000, 10)

    assert [p.place_id for p in places] == ["1", "2", "3"]
    assert calls == [None, "next"]
    assert sleeps == [2.0]


def test_find_places_truncates_to_limit(monkeypatch, finder):
    calls = []

    def fake_nearby_search(keyword, location, radius_meters, api_key, pagetoken=None):
        calls.append(pagetoken)
        return {"results": [_result("1"), _result("2"), _result("3")], "next_page_token": "more"}

    monkeypatch.setattr(place_finder.google_places, "nearby_search", fake_nearby_search)

    places = finder.find_places("cafe", CENTER, 5000, 2)

    assert len(places) == 2
    assert calls == [None]


def test_find_places_empty(monkeypatch, finder):
    monkeypatch.setattr(
        place_finder.google_places,
        "nearby_search",
        lambda **kwargs: {"status": "ZERO_RESULTS", "results": []},
    )
    assert finder.find_places("cafe", CENTER, 5000, 5) == []


def test_find_places_propagates_provider_errors(monkeypatch, finder):
    def fake_nearby_search(**kwargs):
        raise QuotaExceededError("quota", "OVER_QUERY_LIMIT")

    monkeypatch.setattr(place_finder.google_places, "nearby_search", fake_nearby_search)

    with pytest.raises(QuotaExceededError):
        finder.find_places("cafe", CENTER, 5000, 5)


@pytest.mark.parametrize("radius, limit", [(0, 5), (5000, 0)])
def test_find_places_validates_arguments(finder, radius, limit):
    with pytest.raises(ValueError):
        finder.find_places("cafe", CENTER, radius, limit)
