"""
procarlease.py - Parser for ProCarLease dealer stock pages.
Plain server-rendered vehicle cards; no JSON payload.
"""

import re

from bs4 import BeautifulSoup

from models import RawListing, SearchCriteria
from scrapers.base import SourceParser
from monitoring import get_logger

logger = get_logger("scrapers.procarlease")


class ProCarLeaseParser(SourceParser):
    key = "procarlease"
    name = "ProCarLease"
    base_url = "https://www.procarlease.com"

    def search_url(self, criteria: SearchCriteria, page: int = 1) -> str:
        params = {
            "marque": _slug(criteria.brand),
            "modele": _slug(criteria.model),
            "prix_min": criteria.min_price,
            "prix_max": criteria.max_price,
            "km_max": criteria.max_mileage,
            "annee_min": criteria.min_year,
            "annee_max": criteria.max_year,
            "energie": criteria.fuel,
            "boite": criteria.gearbox,
            "page": page if page > 1 else None,
        }
        return self._url("/vehicules-occasion", params)

    def _extract(self, soup: BeautifulSoup) -> list[RawListing]:
        cards = soup.select("div.vehicle-card, article.vehicle-card")
        listings = []

        for card in cards:
            link = card.select_one("a.vehicle-link[href], h3 a[href], a[href]")
            if link is None:
                continue
            title = self._text(card.select_one(".vehicle-title")) or self._text(link)
            if not title:
                continue

            href = link["href"]
            ref = card.get("data-id") or card.get("data-ref")
            if not ref:
                match = re.search(r"-(\d+)/?$", href)
                ref = match.group(1) if match else None

            image = card.find("img")
            listings.append(RawListing(
                title=title,
                url=self._absolute(href),
                price=card.get("data-price") or self._text(card.select_one(".vehicle-price, .price")),
                year=card.get("data-year") or self._text(card.select_one(".vehicle-year, .year")),
                mileage=card.get("data-km") or self._text(card.select_one(".vehicle-km, .mileage")),
                city=self._text(card.select_one(".vehicle-location, .location")),
                image_url=self._absolute((image.get("data-src") or image.get("src")) if image else None),
                external_id=ref,
                fuel=self._text(card.select_one(".vehicle-fuel, .fuel")),
                gearbox=self._text(card.select_one(".vehicle-gearbox, .gearbox")),
                brand=card.get("data-brand"),
                model=card.get("data-model"),
            ))

        if not listings and cards:
            logger.warning(f"ProCarLease: {len(cards)} cards found but none parsed")
        return listings


def _slug(value):
    if not value:
        return None
    return re.sub(r"[^a-z0-9]+", "-", value.strip().lower()).strip("-")
