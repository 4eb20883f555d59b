from __future__ import annotations

from datetime import datetime, timezone

import pytest

from schedule_scraper.database.models import Location, TrainerInfo
from schedule_scraper.validation import normalize_record, parse_instant, validate_class_record

from .conftest import make_record


def raw_class(**overrides):
    data = {
        "name": "Spin 45",
        "description": "Indoor cycling",
        "datetime": "2025-06-26T17:30:00Z",
        "location": {"name": "Koepel", "address": "Dome 2", "lat": 51.2, "long": 4.4},
        "trainer": "Jan",
        "intensity": 7,
        "price": 18.5,
        "bookingUrl": "https://koepel.example/book/9",
        "providerId": "koepel-9",
        "providerName": "koepel",
        "capacity": 20,
        "tags": ["spin", "cardio"],
    }
    data.update(overrides)
    return data


def test_valid_record_passes(record) -> None:
    assert validate_class_record(record) is True


def test_valid_camel_case_mapping_passes() -> None:
    assert validate_class_record(raw_class()) is True


@pytest.mark.parametrize(
    "overrides",
    [
        {"intensity": 0},
        {"intensity": 11},
        {"intensity": 5.5},
        {"intensity": True},
        {"price": -1},
        {"price": float("nan")},
        {"price": float("inf")},
        {"capacity": -1},
        {"capacity": 2.5},
        {"name": ""},
        {"name": "   "},
        {"trainer": None},
        {"datetime": "next tuesday"},
        {"datetime": None},
        {"tags": "pilates"},
        {"tags": ["pilates", 3]},
        {"location": Location(name="Rite", address="Main Street 1", lat=91, long=3.7)},
        {"location": Location(name="Rite", address="Main Street 1", lat=51.0, long=-181)},
        {"location": None},
    ],
)
def test_invalid_fields_are_rejected(overrides) -> None:
    assert validate_class_record(make_record(**overrides)) is False


@pytest.mark.parametrize(
    "overrides",
    [
        {"photos": ["a.jpg"] * 6},
        {"photos": "a.jpg"},
        {"photos": ["a.jpg", ""]},
        {"real_time_availability": -2},
        {"booking_status": "sold-out"},
        {"last_availability_check": "yesterday"},
        {"trainer_info": "Jan"},
        {"trainer_info": {"bio": "no name"}},
        {"trainer_info": {"name": "Jan", "certifications": "ACE"}},
        {"amenities": ["showers"]},
        {"amenities": {"type": "showers"}},
        {"amenities": [{"available": True}]},
        {"pricing_details": 25},
        {"pricing_details": {"packages": ["10-class pass"]}},
    ],
)
def test_invalid_enrichment_is_rejected(overrides) -> None:
    assert validate_class_record(make_record(**overrides)) is False


def test_enrichment_within_bounds_passes() -> None:
    record = make_record(
        photos=["a.jpg"] * 5,
        real_time_availability=0,
        booking_status="full",
        last_availability_check="2025-06-26T10:00:00+02:00",
    )

    assert validate_class_record(record) is True


def test_validation_never_raises_on_garbage() -> None:
    assert validate_class_record(None) is False
    assert validate_class_record("Reformer Pilates") is False
    assert validate_class_record({}) is False
    assert validate_class_record(raw_class(location="Main Street 1")) is False


def test_whole_float_intensity_is_accepted() -> None:
    assert validate_class_record(make_record(intensity=7.0, capacity=12.0)) is True


def test_parse_instant() -> None:
    assert parse_instant("2025-06-26T17:30:00Z") == datetime(2025, 6, 26, 17, 30, tzinfo=timezone.utc)
    assert parse_instant(datetime(2025, 6, 26, 17, 30)).tzinfo is timezone.utc
    assert parse_instant("") is None
    assert parse_instant(1719423000) is None


def test_normalize_mapping() -> None:
    record = normalize_record(
        raw_class(
            name="  Spin 45 ",
            tags=["spin", " cardio", "spin", " "],
            trainerInfo={"name": "Jan", "certifications": ["ACE"], "yearsExperience": 4},
            intensity=7.0,
        )
    )

    assert record.name == "Spin 45"
    assert record.provider_record_id == "koepel-9"
    assert record.booking_url == "https://koepel.example/book/9"
    assert record.datetime == datetime(2025, 6, 26, 17, 30, tzinfo=timezone.utc)
    assert record.location == Location(name="Koepel", address="Dome 2", lat=51.2, long=4.4)
    assert record.tags == frozenset({"spin", "cardio"})
    assert record.intensity == 7 and isinstance(record.intensity, int)
    assert record.trainer_info == TrainerInfo(name="Jan", certifications=("ACE",), years_experience=4)


def test_normalize_treats_naive_datetime_as_utc() -> None:
    record = normalize_record(make_record(datetime=datetime(2025, 6, 26, 17, 30)))

    assert record.datetime == datetime(2025, 6, 26, 17, 30, tzinfo=timezone.utc)


def test_payload_uses_backend_field_names(record) -> None:
    payload = normalize_record(record).to_payload()

    assert payload["providerId"] == "rite-1"
    assert payload["bookingUrl"] == "https://rite.trainin.app/book/1"
    assert payload["datetime"] == "2025-06-26T17:30:00+00:00"
    assert payload["tags"] == ["pilates"]
    assert "photos" not in payload


def test_enrichment_mappings_are_accepted_and_typed() -> None:
    candidate = raw_class(
        amenities=[{"type": "showers", "available": True}],
        pricingDetails={"dropIn": 25, "packages": [{"name": "10 classes", "price": 200, "classes": 10}]},
    )

    assert validate_class_record(candidate) is True
    record = normalize_record(candidate)
    assert record.amenities[0].type == "showers"
    assert record.pricing_details.packages[0].classes == 10
