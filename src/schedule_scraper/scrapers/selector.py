"""
Selector-driven scraper.

Every studio site differs only in its URL and CSS selectors, so a site is
described by a SiteConfig and scraped by the one SelectorScraper class.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterator, Optional, Tuple
from zoneinfo import ZoneInfo

from selenium.common.exceptions import TimeoutException, WebDriverException
from selenium.webdriver.common.by import By
from selenium.webdriver.support import expected_conditions as EC
from selenium.webdriver.support.ui import WebDriverWait

from ..database.models import ClassRecord, Location, ScrapeOptions, ScrapeResult
from .base import BaseScraper
from .parsing import (
    DEFAULT_DATE_FORMATS,
    coalesce,
    normalize_url,
    parse_availability,
    parse_booking_status,
    parse_capacity,
    parse_datetime,
    parse_intensity,
    parse_price,
    parse_tags,
    sanitize_string,
)


@dataclass
class SiteConfig:
    """Everything that distinguishes one studio's schedule page from another."""
    name: str
    base_url: str
    item_selector: str
    location: Location
    schedule_path: str = ""
    fields: Dict[str, str] = field(default_factory=dict)
    date_header_selector: Optional[str] = None
    date_formats: Tuple[str, ...] = DEFAULT_DATE_FORMATS
    timezone: Optional[str] = None
    tags: Tuple[str, ...] = ()
    default_description: str = ""
    default_trainer: str = "Unknown"
    default_price: float = 0.0
    default_intensity: int = 5
    default_capacity: int = 0
    wait_timeout: float = 10.0
    enabled: bool = True

    @property
    def schedule_url(self) -> str:
        return normalize_url(self.schedule_path, self.base_url) if self.schedule_path else self.base_url

    @classmethod
    def from_dict(cls, name: str, data: Dict[str, Any]) -> "SiteConfig":
        defaults = data.get("defaults") or {}
        return cls(
            name=name,
            base_url=data["baseUrl"],
            item_selector=data["itemSelector"],
            location=Location.from_dict(data["location"]),
            schedule_path=data.get("schedulePath", ""),
            fields=dict(data.get("fields") or {}),
            date_header_selector=data.get("dateHeaderSelector"),
            date_formats=tuple(data.get("dateFormats") or DEFAULT_DATE_FORMATS),
            timezone=data.get("timezone"),
            tags=tuple(data.get("tags") or ()),
            default_description=defaults.get("description", ""),
            default_trainer=defaults.get("trainer", "Unknown"),
            default_price=float(defaults.get("price", 0.0)),
            default_intensity=int(defaults.get("intensity", 5)),
            default_capacity=int(defaults.get("capacity", 0)),
            wait_timeout=float(data.get("waitTimeout", 10.0)),
            enabled=bool(data.get("enabled", True)),
        )


def build_record(
    site: SiteConfig,
    fields: Dict[str, str],
    current_date: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Optional[ClassRecord]:
    """
    Turn the raw strings scraped for one schedule item into a ClassRecord.

    Args:
        site: Site the item came from
        fields: Field name -> scraped text
        current_date: Text of the nearest date header, if the site groups by day
        now: Reference time for year-less dates

    Returns:
        The record, or None when the item has no name or usable start time
    """
    name = sanitize_string(fields.get("name"))
    start = parse_datetime(coalesce(fields, "date", default=current_date), fields.get("time"), site.date_formats, now)
    if not name or start is None:
        return None
    if site.timezone and start.tzinfo is None:
        start = start.replace(tzinfo=ZoneInfo(site.timezone))

    description = sanitize_string(fields.get("description")) or site.default_description or name
    spots, total = parse_availability(fields.get("availability"))
    if fields.get("capacity"):
        capacity = parse_capacity(fields["capacity"])
    elif total is not None:
        capacity = total
    else:
        capacity = site.default_capacity

    booking_url = fields.get("booking_url") or site.schedule_url
    record_id = sanitize_string(fields.get("id")) or f"{site.name}:{name.lower()}:{start.isoformat()}"

    return ClassRecord(
        name=name,
        description=description,
        datetime=start,
        location=site.location,
        trainer=sanitize_string(fields.get("trainer")) or site.default_trainer,
        intensity=parse_intensity(fields.get("intensity") or name, site.default_intensity),
        price=parse_price(fields["price"]) if fields.get("price") else site.default_price,
        booking_url=normalize_url(booking_url, site.base_url),
        provider_record_id=record_id,
        provider_name=site.name,
        capacity=capacity,
        tags=parse_tags(f"{name} {description}") | frozenset(site.tags),
        real_time_availability=spots,
        booking_status=parse_booking_status(fields.get("booking_status"), spots),
    )


def extract_field(element, selector: str) -> str:
    """
    Read one field from a schedule item.

    ``"css"`` reads the text of the first match, ``"css@attr"`` an attribute
    of it and ``"@attr"`` an attribute of the item itself.
    """
    css, _, attribute = selector.partition("@")
    if css:
        matches = element.find_elements(By.CSS_SELECTOR, css)
        if not matches:
            return ""
        target = matches[0]
    else:
        target = element

    if attribute:
        return (target.get_attribute(attribute) or "").strip()
    return target.text.strip()


class SelectorScraper(BaseScraper):
    """Scrapes one studio's schedule page using the selectors in its SiteConfig."""

    def __init__(self, site: SiteConfig, headless: bool = True):
        super().__init__(site.name, base_url=site.base_url, headless=headless, enabled=site.enabled)
        self.site = site

    def scrape(self, options: ScrapeOptions) -> ScrapeResult:
        result = self.create_result()
        result.records = self.filter_records(self._iter_records(result), options)
        return result

    def _iter_records(self, result: ScrapeResult) -> Iterator[ClassRecord]:
        site = self.site
        selector = site.item_selector
        if site.date_header_selector:
            selector = f"{site.date_header_selector}, {site.item_selector}"

        with self.browser() as driver:
            driver.get(site.schedule_url)
            self.log_progress(f"Loaded {site.schedule_url}")

            try:
                elements = WebDriverWait(driver, site.wait_timeout).until(
                    EC.presence_of_all_elements_located((By.CSS_SELECTOR, selector))
                )
            except TimeoutException:
                self.log_error("Schedule not found on page. Selectors may need adjustment.")
                result.errors.append("Schedule container not found")
                result.success = False
                return

            self.log_progress(f"Found {len(elements)} schedule elements")
            current_date = None
            for element in elements:
                try:
                    if site.date_header_selector and driver.execute_script(
                        "return arguments[0].matches(arguments[1]);", element, site.date_header_selector
                    ):
                        current_date = element.text.strip()
                        continue

                    fields = {key: extract_field(element, css) for key, css in site.fields.items()}
                except WebDriverException as e:
                    result.errors.append(f"Could not read schedule item: {e.__class__.__name__}")
                    continue

                record = build_record(site, fields, current_date)
                if record is None:
                    self.log_error(f"Skipping unparseable item: {fields.get('name')!r}")
                    continue
                yield record
