from leadfinder.etl import transform
from leadfinder.models import GeoPoint, LeadRecord, Place, SearchRequest


def test_extract_primary_type():
    assert transform._extract_primary_type(["point_of_interest", "cafe"]) == "cafe"
    assert transform._extract_primary_type([]) is None


def test_to_place_uses_vicinity_fallback():
    result = {
        "place_id": "pid",
        "name": " Acme Coffee ",
        "vicinity": "Sukhumvit 11",
        "rating": "4.5",
        "types": ["cafe", "establishment"],
        "geometry": {"location": {"lat": 13.7, "lng": 100.5}},
    }

    place = transform.to_place(result)

    assert place.name == "Acme Coffee"
    assert place.address == "Sukhumvit 11"
    assert place.rating == 4.5
    assert place.location == GeoPoint(13.7, 100.5)
    assert transform.primary_category(place) == "cafe"


def test_to_places_skips_unusable_results():
    results = [
        {"place_id": "1", "name": "Open"},
        {"place_id": "2", "name": ""},
        {"name": "No id"},
        {"place_id": "3", "name": "Closed", "business_status": "CLOSED_PERMANENTLY"},
    ]

    places = transform.to_places(results)

    assert [p.place_id for p in places] == ["1"]
    assert places[0].location is None


def test_lead_row_round_trip_defaults():
    request = SearchRequest("cafe", ("owner",), GeoPoint(1.0, 2.0), 1000, 3)
    record = LeadRecord(company_name="Acme", email="a@acme.co.th", search_phase="basic fallback (1 sources)", search_step=1)

    row = transform.to_lead_row(record, search_id="sid", request=request, premium_used=False)
    assert row["search_radius"] == 1000
    assert row["premium_used"] is False

    restored = transform.lead_row_from_dict({"company_name": "Acme", "search_step": None})
    assert restored.lead_name == "N/A"
    assert restored.email == "none"
    assert restored.search_step == 1


def test_primary_category_none_for_generic_types():
    place = Place(place_id="p", name="x", types=("establishment", "point_of_interest"))
    assert transform.primary_category(place) is None
