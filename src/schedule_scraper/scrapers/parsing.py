"""
Parsing helpers shared by providers.

Turn the loose strings scraped from schedule pages (prices, capacities,
"3 / 5" availability, date headers, time ranges) into typed values.
"""

import re
from datetime import datetime
from typing import Any, Dict, FrozenSet, Iterable, Optional, Tuple

DEFAULT_DATE_FORMATS = (
    "%d/%m/%Y %H:%M",
    "%d/%m/%Y %I:%M %p",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d %I:%M %p",
    "%Y-%m-%dT%H:%M:%S",
    "%A %d %B %H:%M",
    "%A %d %B %I:%M %p",
    "%B %d, %Y %I:%M %p",
    "%B %d, %Y %H:%M",
)

TIME_FORMATS = ("%H:%M", "%I:%M %p", "%I:%M%p")

TODAY_WORDS = ("today", "vandaag")

TAG_KEYWORDS = {
    "yoga": "yoga",
    "pilates": "pilates",
    "reform": "pilates",
    "spin": "spin",
    "cycling": "cycling",
    "hiit": "hiit",
    "circuit": "circuit",
    "strength": "strength",
    "weights": "weights",
    "cardio": "cardio",
    "kickboxing": "kickboxing",
    "boxing": "boxing",
    "barre": "barre",
    "dance": "dance",
    "zumba": "zumba",
    "bootcamp": "bootcamp",
    "crossfit": "crossfit",
    "martial arts": "martial-arts",
    "swimming": "swimming",
    "aqua": "aqua",
    "stretching": "stretching",
    "core": "core",
    "abs": "abs",
    "running": "running",
    "rowing": "rowing",
}


def coalesce(d: Dict[str, Any], *keys, default=None):
    """Return the first non-None, non-empty value from the dict for the given keys."""
    for k in keys:
        if k in d and d[k] not in (None, ""):
            return d[k]
    return default


def sanitize_string(text: Optional[str]) -> str:
    """Trim and collapse internal whitespace."""
    if not text:
        return ""
    return re.sub(r"\s+", " ", text).strip()


def parse_intensity(text: Optional[str], default: int = 5) -> int:
    """Map words like "High" or "Beginner" onto the 1-10 intensity scale."""
    lower = (text or "").lower()
    if any(word in lower for word in ("high", "intense", "advanced")):
        return 8
    if any(word in lower for word in ("medium", "moderate", "intermediate")):
        return 5
    if any(word in lower for word in ("low", "beginner", "gentle")):
        return 3
    return default


def parse_tags(text: Optional[str]) -> FrozenSet[str]:
    lower = (text or "").lower()
    return frozenset(tag for keyword, tag in TAG_KEYWORDS.items() if keyword in lower)


def parse_price(text: Optional[str]) -> float:
    """Extract a price from text such as "$25.00" or "€ 1,250"; 0 when absent."""
    if not text:
        return 0.0
    cleaned = re.sub(r"[$£€,\s]", "", text)
    match = re.search(r"\d+(?:\.\d+)?", cleaned)
    return float(match.group(0)) if match else 0.0


def parse_capacity(text: Optional[str]) -> int:
    """Total capacity from "15/20", "Capacity: 20" or a bare number; 0 when absent."""
    if not text:
        return 0
    match = re.search(r"(\d+)\s*/\s*(\d+)|capacity:\s*(\d+)", text, re.IGNORECASE)
    if match:
        return int(match.group(2) or match.group(3))
    digits = re.sub(r"\D", "", text)
    return int(digits) if digits else 0


def parse_availability(availability_str: Optional[str]) -> Tuple[Optional[int], Optional[int]]:
    """Parse availability string like '3 / 5' into (spots_available, capacity)."""
    if not availability_str or availability_str in ("Not specified", "Unknown"):
        return None, None

    try:
        # Handle formats like "3 / 5", "3/5", "3 of 5"
        availability_str = availability_str.replace(" of ", " / ")
        if "/" in availability_str:
            parts = availability_str.split("/")
            if len(parts) == 2:
                available = int(parts[0].strip())
                capacity = int(parts[1].strip())
                return available, capacity
    except (ValueError, IndexError):
        pass

    return None, None


def start_time(time_str: str) -> str:
    """Take the start of a range like "17:30 - 18:25"."""
    return time_str.split(" - ")[0].strip() if " - " in time_str else time_str.strip()


def parse_datetime(
    date_str: Optional[str],
    time_str: Optional[str] = None,
    formats: Iterable[str] = DEFAULT_DATE_FORMATS,
    now: Optional[datetime] = None,
) -> Optional[datetime]:
    """
    Parse date and time strings into a naive datetime.

    Formats without a year (e.g. "SATURDAY 10 MAY") get the current year;
    a "TODAY" header takes the date of ``now``.
    Returns None when nothing matches.
    """
    if not date_str:
        return None

    reference = now or datetime.now()
    if sanitize_string(date_str).lower() in TODAY_WORDS:
        for fmt in TIME_FORMATS:
            try:
                clock = datetime.strptime(start_time(time_str or ""), fmt)
            except ValueError:
                continue
            return datetime.combine(reference.date(), clock.time())
        return None

    combined = sanitize_string(date_str)
    if time_str:
        combined = f"{combined} {start_time(time_str)}"

    for fmt in formats:
        try:
            parsed = datetime.strptime(combined, fmt)
        except ValueError:
            continue
        if "%Y" not in fmt and "%y" not in fmt:
            parsed = parsed.replace(year=reference.year)
        return parsed

    try:
        return datetime.fromisoformat(combined)
    except ValueError:
        return None


def normalize_url(url: str, base_url: str) -> str:
    """Make a scraped href absolute against the provider's base URL."""
    if url.startswith(("http://", "https://")):
        return url
    base = base_url.rstrip("/")
    if url.startswith("/"):
        return f"{base}{url}"
    return f"{base}/{url}"


def parse_booking_status(text: Optional[str], spots_available: Optional[int] = None) -> Optional[str]:
    """Map booking-button text onto open/closed/full/waitlist."""
    lower = (text or "").lower()
    if "waitlist" in lower or "wachtlijst" in lower:
        return "waitlist"
    if "full" in lower or "volzet" in lower or "sold out" in lower:
        return "full"
    if "closed" in lower or "gesloten" in lower:
        return "closed"
    if any(word in lower for word in ("book", "open", "reserve", "boek")):
        return "open"
    if spots_available == 0:
        return "full"
    return None
