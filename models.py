"""
models.py - Data models for the car listing search engine.
"""

import copy
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Optional, Union

# Job statuses
JOB_RUNNING = "running"
JOB_CANCELLED = "cancelled"
JOB_DONE = "done"
JOB_FAILED = "failed"
JOB_TERMINAL = (JOB_CANCELLED, JOB_DONE, JOB_FAILED)

# SiteRun states
SITE_PENDING = "pending"
SITE_CONNECTING = "connecting"
SITE_FETCHING = "fetching"
SITE_PARSING = "parsing"
SITE_OK = "ok"
SITE_ERROR = "error"
SITE_SKIPPED = "skipped"
SITE_CANCELLED = "cancelled"
SITE_TERMINAL = (SITE_OK, SITE_ERROR, SITE_SKIPPED, SITE_CANCELLED)

# Passes, in execution order
PASS_STRICT = "strict"
PASS_RELAXED = "relaxed"
PASS_OPPORTUNITY = "opportunity"

# Fetch strategies
DIRECT_HTTP = "direct-http"
MANAGED_RENDER = "managed-render"
HEADLESS_BROWSER = "headless-browser"
CACHE_HIT = "cache"

Number = Union[int, float]


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class SearchCriteria:
    """Structured search request. Immutable once a job starts."""
    brand: str
    model: Optional[str] = None
    min_price: Optional[int] = None
    max_price: Optional[int] = None
    min_year: Optional[int] = None
    max_year: Optional[int] = None
    min_mileage: Optional[int] = None
    max_mileage: Optional[int] = None
    fuel: Optional[str] = None
    gearbox: Optional[str] = None
    body_type: Optional[str] = None
    zip_code: Optional[str] = None
    radius_km: Optional[int] = None
    sites: tuple = ()           # empty = every registered source
    excluded_sites: tuple = ()

    def to_dict(self) -> dict:
        """Render the camelCase request shape."""
        out = {
            "brand": self.brand,
            "model": self.model,
            "minPrice": self.min_price,
            "maxPrice": self.max_price,
            "minYear": self.min_year,
            "maxYear": self.max_year,
            "minMileage": self.min_mileage,
            "maxMileage": self.max_mileage,
            "fuelType": self.fuel,
            "gearbox": self.gearbox,
            "bodyType": self.body_type,
            "zipCode": self.zip_code,
            "radiusKm": self.radius_km,
            "sites": list(self.sites),
            "excludedSites": list(self.excluded_sites),
        }
        return out


@dataclass
class PassSpec:
    """One relaxation level of a search."""
    name: str
    criteria: SearchCriteria
    run_below: Optional[int] = None  # run only while fewer items were collected


@dataclass
class PassAttempt:
    """Outcome of one pass against one source."""
    pass_name: str
    strategy: Optional[str] = None
    outcome: str = "ok"  # "ok", "empty", "error", "cache", "cancelled"
    item_count: int = 0
    duration_ms: int = 0
    note: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "pass": self.pass_name,
            "strategy": self.strategy,
            "outcome": self.outcome,
            "itemCount": self.item_count,
            "durationMs": self.duration_ms,
            "note": self.note,
        }


@dataclass
class SiteRun:
    """Record of one source's execution within one job."""
    source: str
    state: str = SITE_PENDING
    attempts: list[PassAttempt] = field(default_factory=list)
    item_count: int = 0
    duration_ms: int = 0
    error: Optional[str] = None
    strategy: Optional[str] = None

    @property
    def terminal(self) -> bool:
        return self.state in SITE_TERMINAL

    def transition(self, state: str, error: Optional[str] = None):
        """Move to a new state. A terminal SiteRun never changes again."""
        if self.terminal:
            raise RuntimeError(f"SiteRun for {self.source} is already {self.state}")
        self.state = state
        if error is not None:
            self.error = error

    def record(self, attempt: PassAttempt):
        if self.terminal:
            raise RuntimeError(f"SiteRun for {self.source} is already {self.state}")
        self.attempts.append(attempt)

    def snapshot(self) -> "SiteRun":
        return copy.deepcopy(self)

    def to_dict(self) -> dict:
        return {
            "source": self.source,
            "state": self.state,
            "items": self.item_count,
            "durationMs": self.duration_ms,
            "strategy": self.strategy,
            "error": self.error,
            "attempts": [a.to_dict() for a in self.attempts],
        }


@dataclass
class RawListing:
    """Listing fields as extracted by a source parser. Values may be raw text."""
    title: str
    url: str
    price: Optional[Union[str, Number]] = None
    year: Optional[Union[str, int]] = None
    mileage: Optional[Union[str, Number]] = None
    city: Optional[str] = None
    image_url: Optional[str] = None
    external_id: Optional[str] = None
    fuel: Optional[str] = None
    gearbox: Optional[str] = None
    brand: Optional[str] = None
    model: Optional[str] = None
    text: Optional[str] = None


@dataclass
class NormalizedListing:
    """Canonical listing. Price is in euro cents, mileage in km."""
    id: str
    external_id: str
    canonical_id: str
    title: str
    url: str
    source: str
    brand: Optional[str] = None
    model: Optional[str] = None
    price: Optional[int] = None
    currency: str = "EUR"
    year: Optional[int] = None
    mileage: Optional[int] = None
    fuel: Optional[str] = None
    gearbox: Optional[str] = None
    city: Optional[str] = None
    image_url: Optional[str] = None

    @property
    def price_eur(self) -> Optional[float]:
        return None if self.price is None else self.price / 100

    def completeness(self) -> int:
        """Count of populated optional fields. Higher = more complete."""
        fields = (
            self.brand, self.model, self.price, self.year, self.mileage,
            self.fuel, self.gearbox, self.city, self.image_url,
        )
        return sum(1 for value in fields if value not in (None, ""))

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class CacheEntry:
    value: object
    stored_at: float


@dataclass
class SiteEvent:
    """Pushed on the result stream when one source finishes."""
    site_run: SiteRun
    listings: list[NormalizedListing] = field(default_factory=list)


@dataclass
class Job:
    """One search request's lifecycle across all sources."""
    id: str
    criteria: SearchCriteria
    owner_id: Optional[str] = None
    status: str = JOB_RUNNING
    created_at: str = field(default_factory=utc_now)
    finished_at: Optional[str] = None
    site_runs: dict[str, SiteRun] = field(default_factory=dict)
    total_listings: int = 0
    sites_total: int = 0

    @property
    def terminal(self) -> bool:
        return self.status in JOB_TERMINAL


@dataclass
class SearchStats:
    total_items: int = 0
    sites_scraped: int = 0
    total_ms: int = 0


@dataclass
class SearchResponse:
    criteria: SearchCriteria
    items: list[NormalizedListing] = field(default_factory=list)
    site_results: list[SiteRun] = field(default_factory=list)
    stats: SearchStats = field(default_factory=SearchStats)
    job_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "jobId": self.job_id,
            "criteria": self.criteria.to_dict(),
            "items": [item.to_dict() for item in self.items],
            "siteResults": [run.to_dict() for run in self.site_results],
            "stats": {
                "totalItems": self.stats.total_items,
                "sitesScraped": self.stats.sites_scraped,
                "totalMs": self.stats.total_ms,
            },
        }
