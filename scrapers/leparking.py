"""
leparking.py - Parser for LeParking, a used-car meta search.
Results are li.li-result items linking out to the listing's origin site.
"""

import re

from bs4 import BeautifulSoup

from models import RawListing, SearchCriteria
from scrapers.base import SourceParser


class LeParkingParser(SourceParser):
    key = "leparking"
    name = "LeParking"
    base_url = "https://www.leparking.fr"

    def search_url(self, criteria: SearchCriteria, page: int = 1) -> str:
        path = "/voiture-occasion"
        slug = "-".join(_slug(part) for part in (criteria.brand, criteria.model) if part)
        if slug:
            path += f"/{slug}.html"
        params = {
            "prix_min": criteria.min_price,
            "prix_max": criteria.max_price,
            "km_max": criteria.max_mileage,
            "annee_min": criteria.min_year,
            "annee_max": criteria.max_year,
            "page": page if page > 1 else None,
        }
        return self._url(path, params)

    def _extract(self, soup: BeautifulSoup) -> list[RawListing]:
        listings = []
        for item in soup.select("li.li-result"):
            link = item.select_one("a.external[href], a[href]")
            title = self._text(item.select_one(".title-block, h2, h3"))
            if link is None or not title:
                continue

            text = self._text(item) or ""
            price, year, mileage = self._card_numbers(text)
            image = item.find("img")
            listings.append(RawListing(
                title=title,
                url=self._absolute(link["href"]),
                price=self._text(item.select_one(".price-block")) or price,
                year=year,
                mileage=mileage,
                city=self._text(item.select_one(".location, .upper")),
                image_url=(image.get("data-src") or image.get("src")) if image else None,
                external_id=item.get("data-id") or item.get("id"),
                fuel=self._text(item.select_one(".fuel")),
                gearbox=self._text(item.select_one(".gearbox")),
                text=text,
            ))
        return listings


def _slug(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", value.strip().lower()).strip("-")
