"""
Record Validation

Structural and range checks that gate every write into the local store, plus
the normalization applied to a candidate once it has been accepted.
"""

import math
from dataclasses import fields
from datetime import datetime, timezone
from numbers import Integral, Real
from typing import Any, Mapping, Optional

from .database.models import (
    BOOKING_STATUSES,
    MAX_PHOTOS,
    Amenity,
    ClassRecord,
    Location,
    PricingDetails,
    TrainerInfo,
)

REQUIRED_STRINGS = (
    "name",
    "description",
    "trainer",
    "booking_url",
    "provider_record_id",
    "provider_name",
)

# camelCase keys accepted from raw provider dictionaries
FIELD_ALIASES = {
    "booking_url": ("bookingUrl",),
    "provider_record_id": ("providerRecordId", "providerId", "provider_id"),
    "provider_name": ("providerName",),
    "trainer_info": ("trainerInfo",),
    "real_time_availability": ("realTimeAvailability",),
    "booking_status": ("bookingStatus",),
    "last_availability_check": ("lastAvailabilityCheck",),
    "pricing_details": ("pricingDetails",),
}

_MISSING = object()


def _get(candidate: Any, name: str, default: Any = _MISSING) -> Any:
    if isinstance(candidate, Mapping):
        if name in candidate:
            return candidate[name]
        for alias in FIELD_ALIASES.get(name, ()):
            if alias in candidate:
                return candidate[alias]
        return default
    return getattr(candidate, name, default)


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, Real):
        return False
    return not math.isnan(value)


def _is_whole(value: Any) -> bool:
    if not _is_number(value):
        return False
    return isinstance(value, Integral) or float(value).is_integer()


def parse_instant(value: Any) -> Optional[datetime]:
    """Turn a datetime or ISO-8601 string into an aware datetime.

    Naive values are interpreted as UTC. Returns None when unparseable.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _valid_location(location: Any) -> bool:
    if location is None or location is _MISSING:
        return False
    name = _get(location, "name", None)
    address = _get(location, "address", None)
    lat = _get(location, "lat", _get(location, "latitude", None))
    long = _get(location, "long", _get(location, "longitude", None))

    if not isinstance(name, str) or not isinstance(address, str):
        return False
    if not _is_number(lat) or not _is_number(long):
        return False
    return -90 <= lat <= 90 and -180 <= long <= 180


def _valid_tags(tags: Any) -> bool:
    if isinstance(tags, (str, bytes, Mapping)):
        return False
    if not isinstance(tags, (set, frozenset, list, tuple)):
        return False
    return all(isinstance(tag, str) for tag in tags)


def _valid_trainer_info(info: Any) -> bool:
    if isinstance(info, TrainerInfo):
        return True
    if not isinstance(info, Mapping):
        return False
    name = info.get("name")
    certifications = info.get("certifications")
    if not isinstance(name, str) or not name.strip():
        return False
    return certifications is None or (
        isinstance(certifications, (list, tuple)) and all(isinstance(c, str) for c in certifications)
    )


def _valid_amenities(amenities: Any) -> bool:
    if not isinstance(amenities, (list, tuple)):
        return False
    for amenity in amenities:
        if isinstance(amenity, Amenity):
            continue
        if not isinstance(amenity, Mapping) or not isinstance(amenity.get("type"), str):
            return False
    return True


def _valid_pricing(pricing: Any) -> bool:
    if isinstance(pricing, PricingDetails):
        return True
    if not isinstance(pricing, Mapping):
        return False
    packages = pricing.get("packages")
    if packages is None:
        return True
    return isinstance(packages, (list, tuple)) and all(isinstance(p, Mapping) for p in packages)


def _valid_enrichment(candidate: Any) -> bool:
    trainer_info = _get(candidate, "trainer_info", None)
    if trainer_info is not None and not _valid_trainer_info(trainer_info):
        return False

    amenities = _get(candidate, "amenities", None)
    if amenities is not None and not _valid_amenities(amenities):
        return False

    pricing = _get(candidate, "pricing_details", None)
    if pricing is not None and not _valid_pricing(pricing):
        return False

    photos = _get(candidate, "photos", None)
    if photos is not None:
        if isinstance(photos, str) or not isinstance(photos, (list, tuple)):
            return False
        if len(photos) > MAX_PHOTOS or not all(isinstance(p, str) and p for p in photos):
            return False

    spots = _get(candidate, "real_time_availability", None)
    if spots is not None and (not _is_whole(spots) or spots < 0):
        return False

    status = _get(candidate, "booking_status", None)
    if status is not None and status not in BOOKING_STATUSES:
        return False

    checked = _get(candidate, "last_availability_check", None)
    if checked is not None and parse_instant(checked) is None:
        return False

    return True


def validate_class_record(candidate: Any) -> bool:
    """
    Check a candidate class against the record invariants.

    Accepts a ClassRecord or a raw mapping (snake_case or camelCase keys).
    Never raises; a malformed candidate simply returns False.

    Args:
        candidate: The record to check

    Returns:
        True if the candidate may enter the pipeline
    """
    if candidate is None or not isinstance(candidate, (ClassRecord, Mapping)):
        return False

    for name in REQUIRED_STRINGS:
        value = _get(candidate, name, None)
        if not isinstance(value, str) or not value.strip():
            return False

    if parse_instant(_get(candidate, "datetime", None)) is None:
        return False

    if not _valid_location(_get(candidate, "location", None)):
        return False

    intensity = _get(candidate, "intensity", None)
    if not _is_whole(intensity) or not 1 <= intensity <= 10:
        return False

    price = _get(candidate, "price", None)
    if not _is_number(price) or math.isinf(price) or price < 0:
        return False

    capacity = _get(candidate, "capacity", None)
    if not _is_whole(capacity) or capacity < 0:
        return False

    if not _valid_tags(_get(candidate, "tags", None)):
        return False

    return _valid_enrichment(candidate)


def _coerce(value: Any, cls: Any) -> Any:
    if value is None or isinstance(value, cls):
        return value
    return cls.from_dict(value)


def normalize_record(candidate: Any) -> ClassRecord:
    """
    Build the canonical ClassRecord for a validated candidate.

    Strings are trimmed, the start time becomes an aware datetime, tags become
    a frozenset and enrichment dictionaries become their typed counterparts.
    Only call this on candidates that passed validate_class_record.
    """
    values = {f.name: _get(candidate, f.name, f.default) for f in fields(ClassRecord)}

    for name in REQUIRED_STRINGS:
        values[name] = values[name].strip()

    values["datetime"] = parse_instant(values["datetime"])
    values["location"] = _coerce(values["location"], Location)
    values["intensity"] = int(values["intensity"])
    values["capacity"] = int(values["capacity"])
    values["tags"] = frozenset(tag.strip() for tag in values["tags"] if tag.strip())

    if values["photos"] is not None:
        values["photos"] = tuple(values["photos"])
    values["trainer_info"] = _coerce(values["trainer_info"], TrainerInfo)
    if values["amenities"] is not None:
        values["amenities"] = tuple(_coerce(a, Amenity) for a in values["amenities"])
    if values["real_time_availability"] is not None:
        values["real_time_availability"] = int(values["real_time_availability"])
    if values["last_availability_check"] is not None:
        values["last_availability_check"] = parse_instant(values["last_availability_check"])
    values["pricing_details"] = _coerce(values["pricing_details"], PricingDetails)

    return ClassRecord(**values)
