"""
Database Models

Dataclasses representing scraped classes, scrape runs and provider stats.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

RUN_RUNNING = "running"
RUN_COMPLETED = "completed"
RUN_FAILED = "failed"
RUN_STATUSES = (RUN_RUNNING, RUN_COMPLETED, RUN_FAILED)

BOOKING_STATUSES = ("open", "closed", "full", "waitlist")

MAX_PHOTOS = 5


@dataclass
class Location:
    """Venue a class takes place at."""
    name: str
    address: str
    lat: float
    long: float

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "address": self.address, "lat": self.lat, "long": self.long}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Location":
        return cls(
            name=data.get("name"),
            address=data.get("address"),
            lat=data.get("lat", data.get("latitude")),
            long=data.get("long", data.get("longitude")),
        )


@dataclass
class TrainerInfo:
    name: str
    bio: Optional[str] = None
    certifications: Tuple[str, ...] = ()
    years_experience: Optional[int] = None
    photo_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "bio": self.bio,
            "certifications": list(self.certifications),
            "yearsExperience": self.years_experience,
            "photoUrl": self.photo_url,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TrainerInfo":
        return cls(
            name=data.get("name"),
            bio=data.get("bio"),
            certifications=tuple(data.get("certifications") or ()),
            years_experience=data.get("yearsExperience", data.get("years_experience")),
            photo_url=data.get("photoUrl", data.get("photo_url")),
        )


@dataclass
class Amenity:
    type: str
    available: bool
    description: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "available": self.available, "description": self.description}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Amenity":
        return cls(type=data.get("type"), available=bool(data.get("available")), description=data.get("description"))


@dataclass
class PricingPackage:
    name: str
    price: float
    classes: Optional[int] = None


@dataclass
class PricingDetails:
    """Structured pricing tiers offered next to the drop-in price."""
    drop_in: Optional[float] = None
    packages: Tuple[PricingPackage, ...] = ()
    intro_offer: Optional[Dict[str, Any]] = None
    membership: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dropIn": self.drop_in,
            "packages": [
                {"name": p.name, "price": p.price, "classes": p.classes} for p in self.packages
            ],
            "introOffer": self.intro_offer,
            "membership": self.membership,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PricingDetails":
        packages = tuple(
            PricingPackage(name=p.get("name"), price=p.get("price"), classes=p.get("classes"))
            for p in data.get("packages") or ()
        )
        return cls(
            drop_in=data.get("dropIn", data.get("drop_in")),
            packages=packages,
            intro_offer=data.get("introOffer", data.get("intro_offer")),
            membership=data.get("membership"),
        )


@dataclass
class ClassRecord:
    """A normalized fitness class occurrence, before persistence."""
    name: str
    description: str
    datetime: Any
    location: Any
    trainer: str
    intensity: int
    price: float
    booking_url: str
    provider_record_id: str
    provider_name: str
    capacity: int
    tags: Any = frozenset()
    # Optional enrichment
    photos: Optional[Tuple[str, ...]] = None
    trainer_info: Optional[TrainerInfo] = None
    amenities: Optional[Tuple[Amenity, ...]] = None
    real_time_availability: Optional[int] = None
    booking_status: Optional[str] = None
    last_availability_check: Optional[datetime] = None
    pricing_details: Optional[PricingDetails] = None

    @property
    def identity(self) -> Tuple[str, Any]:
        """Duplicate identity: provider record id plus exact start time."""
        return (self.provider_record_id, self.datetime)

    def to_payload(self) -> Dict[str, Any]:
        """Serialize to the camelCase JSON shape the backend accepts."""
        payload = {
            "name": self.name,
            "description": self.description,
            "datetime": self.datetime.isoformat(),
            "location": self.location.to_dict(),
            "trainer": self.trainer,
            "intensity": self.intensity,
            "price": self.price,
            "bookingUrl": self.booking_url,
            "providerId": self.provider_record_id,
            "providerName": self.provider_name,
            "capacity": self.capacity,
            "tags": sorted(self.tags),
        }
        if self.photos is not None:
            payload["photos"] = list(self.photos)
        if self.trainer_info is not None:
            payload["trainerInfo"] = self.trainer_info.to_dict()
        if self.amenities is not None:
            payload["amenities"] = [a.to_dict() for a in self.amenities]
        if self.real_time_availability is not None:
            payload["realTimeAvailability"] = self.real_time_availability
        if self.booking_status is not None:
            payload["bookingStatus"] = self.booking_status
        if self.last_availability_check is not None:
            payload["lastAvailabilityCheck"] = self.last_availability_check.isoformat()
        if self.pricing_details is not None:
            payload["pricingDetails"] = self.pricing_details.to_dict()
        return payload


@dataclass
class StoredClass(ClassRecord):
    """A ClassRecord persisted under the scrape run that produced it."""
    id: Optional[int] = None
    scrape_run_id: Optional[str] = None
    uploaded: bool = False
    created_at: Optional[datetime] = None


@dataclass
class ScrapeRun:
    """Represents a scraping run."""
    run_id: str
    provider: str
    started_at: datetime
    status: str = RUN_RUNNING
    ended_at: Optional[datetime] = None
    classes_found: int = 0
    classes_uploaded: int = 0
    errors: Optional[str] = None
    git_sha: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (RUN_COMPLETED, RUN_FAILED)


@dataclass
class ProviderStats:
    """Running aggregate of every run a provider has completed."""
    name: str
    enabled: bool = True
    last_scrape: Optional[datetime] = None
    total_runs: int = 0
    successful_runs: int = 0
    total_classes_found: int = 0


@dataclass
class ScrapeOptions:
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    location: Optional[str] = None
    max_results: Optional[int] = None


@dataclass
class ScrapeResult:
    """What a provider hands back for one invocation.

    ``records`` may be a lazy iterable; ``errors`` is read after it has been
    consumed, so providers that yield records can keep appending to it.
    """
    provider: str
    records: Any = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    success: bool = True


