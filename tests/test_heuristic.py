from fakes import page
from provider_scout.extract.heuristic import (
    build_service_record,
    collect_ld_objects,
    empty_service_record,
    extract_address,
    extract_geo,
    hours_candidate_links,
    summarize_text,
)


def test_collect_ld_objects_follows_graph_in_order():
    items = collect_ld_objects([{"@graph": [{"name": "A"}, {"name": "B"}]}, [{"name": "C"}], None])
    assert [item.get("name") for item in items] == [None, "A", "B", "C"]


def test_build_record_from_structured_page(pantry_page):
    record = build_service_record(pantry_page, "FOOD_BANK")
    assert record.name == "Marion Food Pantry"
    assert record.description == "Free groceries for Salem families."
    assert record.address == "123 Main St, Salem, OR, 97301"
    assert record.location.lat == 44.94
    assert record.location.lng == -123.03
    assert record.service_category == "FOOD_BANK"
    assert record.contact.phone == "+15035550100"
    assert record.contact.email == "help@pantry.example.org"
    assert record.contact.website == "https://pantry.example.org"
    assert record.hours_of_operation.weekday_text == [
        "Monday: 9am - 5pm",
        "Tuesday: 10:00 - 14:00",
        "Sunday closed",
    ]


def test_build_record_is_deterministic(pantry_page):
    assert build_service_record(pantry_page, "FOOD_BANK") == build_service_record(pantry_page, "FOOD_BANK")


def test_description_falls_back_to_first_sentence(bare_page):
    record = build_service_record(bare_page, "SHELTER")
    assert record.name == "Harbor Shelter"
    assert record.description == "Harbor Shelter offers beds and meals."
    assert record.location is None
    assert record.hours_of_operation.is_empty


def test_name_falls_back_to_website():
    record = build_service_record(page("https://nameless.example.org/x"), "SHELTER")
    assert record.name == "https://nameless.example.org"


def test_summarize_text_drops_css_noise_and_caps_length():
    text = ".sqs-block { color: red }\n" + "word " * 100
    summary = summarize_text(text)
    assert "sqs" not in summary
    assert len(summary) == 240


def test_address_as_plain_string():
    assert extract_address([{"address": "  1 Elm St,  Salem "}]) == "1 Elm St, Salem"


def test_geo_skips_items_without_numbers():
    geo = extract_geo([{"geo": {"latitude": "n/a"}}, {"geo": {"lat": 1.5, "lon": "2"}}])
    assert (geo.lat, geo.lng) == (1.5, 2.0)


def test_hours_links_ranked_same_origin_only(pantry_page, bare_page):
    assert hours_candidate_links(pantry_page) == [
        "https://pantry.example.org/hours",
        "https://pantry.example.org/about",
    ]
    assert hours_candidate_links(bare_page) == [
        "https://shelter.example.org/our-hours",
        "https://shelter.example.org/contact",
    ]


def test_empty_record_keeps_shape():
    record = empty_service_record("https://down.example.org/page?x=1", "SHELTER")
    data = record.model_dump(by_alias=True)
    assert set(data) == {
        "name",
        "description",
        "address",
        "location",
        "serviceCategory",
        "hoursOfOperation",
        "contact",
    }
    assert record.name == ""
    assert record.contact.website == "https://down.example.org"
    assert record.service_category == "SHELTER"
