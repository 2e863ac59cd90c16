import os
import tempfile
import threading
from typing import Any, Optional
from urllib.parse import parse_qs, urlparse

# keep test runs from writing into the project's logs/ directory
os.environ.setdefault("CAR_FINDER_LOG_DIR", tempfile.mkdtemp(prefix="car_finder_logs_"))

import pytest  # noqa: E402

from errors import FetchCancelled  # noqa: E402
from fetching import FetchResult  # noqa: E402
from models import DIRECT_HTTP, RawListing, SearchCriteria  # noqa: E402
from scrapers.base import SourceParser  # noqa: E402
from sources import SourceConfig  # noqa: E402

EMPTY_PAGE = "<html><body><p>Aucune annonce ne correspond à votre recherche.</p></body></html>"


def car(external_id: str, title: str, price: Any, year: Any = None, km: Any = None) -> dict:
    return {"id": external_id, "title": title, "price": price, "year": year, "km": km}


def cards_page(cars: list[dict]) -> str:
    """Markup understood by CardParser."""
    cards = []
    for c in cars:
        attrs = [
            f'data-id="{c["id"]}"',
            f'data-title="{c["title"]}"',
            f'data-url="/annonce/{c["id"]}"',
        ]
        if c.get("price") is not None:
            attrs.append(f'data-price="{c["price"]}"')
        if c.get("year") is not None:
            attrs.append(f'data-year="{c["year"]}"')
        if c.get("km") is not None:
            attrs.append(f'data-km="{c["km"]}"')
        cards.append(f'<div class="car" {" ".join(attrs)}></div>')
    return f"<html><body>{''.join(cards)}</body></html>"


class CardParser(SourceParser):
    """Minimal parser over <div class="car" data-*> cards."""

    base_url = "https://cars.example.test"

    def __init__(self, key: str):
        self.key = key
        self.name = key.title()

    def search_url(self, criteria: SearchCriteria, page: int = 1) -> str:
        return (
            f"{self.base_url}/{self.key}?brand={criteria.brand}"
            f"&model={criteria.model or ''}&max={criteria.max_price or ''}&page={page}"
        )

    def _extract(self, soup) -> list[RawListing]:
        return [
            RawListing(
                title=div["data-title"],
                url=div["data-url"],
                price=div.get("data-price"),
                year=div.get("data-year"),
                mileage=div.get("data-km"),
                external_id=div["data-id"],
            )
            for div in soup.select("div.car")
        ]


class FakeFetcher:
    """
    Stands in for StrategyProvider. Serves scripted pages per source
    (same pages for every pass), raises scripted errors, and can block on
    the cancellation token to simulate a slow source.
    """

    def __init__(
        self,
        pages: Optional[dict] = None,
        errors: Optional[dict] = None,
        delays: Optional[dict] = None,
    ):
        self.pages = pages or {}
        self.errors = errors or {}
        self.delays = delays or {}
        self.calls: list[str] = []
        self.started = threading.Event()
        self.active = 0
        self.peak = 0  # most fetches in flight at once
        self._lock = threading.Lock()

    def fetch(self, url: str, source, token=None) -> FetchResult:
        with self._lock:
            self.calls.append(url)
            self.active += 1
            self.peak = max(self.peak, self.active)
        self.started.set()
        try:
            return self._serve(url, source, token)
        finally:
            with self._lock:
                self.active -= 1

    def _serve(self, url: str, source, token=None) -> FetchResult:
        delay = self.delays.get(source.key)
        if delay:
            if token is not None and token.wait(delay):
                raise FetchCancelled(f"{source.key}: cancelled")

        if source.key in self.errors:
            raise self.errors[source.key]

        page = int(parse_qs(urlparse(url).query)["page"][0])
        markups = self.pages.get(source.key, [])
        markup = markups[page - 1] if page <= len(markups) else EMPTY_PAGE
        return FetchResult(markup=markup, strategy=DIRECT_HTTP, duration_ms=1)

    def calls_for(self, key: str) -> list[str]:
        with self._lock:
            return [url for url in self.calls if f"/{key}?" in url]

    def close(self):
        pass


def make_source(key: str, priority: int = 1, **overrides) -> SourceConfig:
    settings = {
        "key": key,
        "name": key.title(),
        "parser": CardParser(key),
        "enabled": True,
        "priority": priority,
        "timeout_seconds": 5.0,
        "strategies": [DIRECT_HTTP],
        "race": False,
        "skip_if_no_results": False,
        "max_items_per_pass": 50,
    }
    settings.update(overrides)
    return SourceConfig(**settings)


@pytest.fixture
def peugeot() -> SearchCriteria:
    return SearchCriteria(brand="Peugeot", model="208", max_price=12000)
