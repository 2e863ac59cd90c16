"""
autoscout24.py - Parser for AutoScout24 (French site) search results.
Reads the __NEXT_DATA__ listings; falls back to article[data-guid] cards,
whose data-* attributes carry make, model, price, mileage and registration.
"""

import re
from typing import Optional

from bs4 import BeautifulSoup

from models import RawListing, SearchCriteria
from scrapers.base import SourceParser
from monitoring import get_logger

logger = get_logger("scrapers.autoscout24")

# data-fuel-type codes
FUEL_CODES = {"b": "essence", "d": "diesel", "e": "electrique", "2": "hybride", "l": "gpl"}
FUEL_PARAMS = {"essence": "B", "diesel": "D", "electrique": "E", "hybride": "2", "gpl": "L"}
GEARBOX_PARAMS = {"manuelle": "M", "automatique": "A"}


class AutoScout24Parser(SourceParser):
    key = "autoscout24"
    name = "AutoScout24"
    base_url = "https://www.autoscout24.fr"

    def search_url(self, criteria: SearchCriteria, page: int = 1) -> str:
        path = "/lst"
        if criteria.brand:
            path += f"/{_slug(criteria.brand)}"
            if criteria.model:
                path += f"/{_slug(criteria.model)}"
        params = {
            "atype": "C",
            "cy": "F",
            "ustate": "U",
            "sort": "standard",
            "desc": "0",
            "pricefrom": criteria.min_price,
            "priceto": criteria.max_price,
            "kmfrom": criteria.min_mileage,
            "kmto": criteria.max_mileage,
            "fregfrom": criteria.min_year,
            "fregto": criteria.max_year,
            "fuel": FUEL_PARAMS.get((criteria.fuel or "").lower()),
            "gear": GEARBOX_PARAMS.get((criteria.gearbox or "").lower()),
            "zip": criteria.zip_code,
            "zipr": criteria.radius_km if criteria.zip_code else None,
            "page": page,
        }
        return self._url(path, params)

    def _extract(self, soup: BeautifulSoup) -> list[RawListing]:
        data = self._next_data(soup)
        if data:
            items = self._dig(data, "props.pageProps.listings", "props.pageProps.searchResult.listings")
            if isinstance(items, list) and items:
                return [listing for listing in (self._from_json(item) for item in items) if listing]
        return self._from_articles(soup)

    def _from_json(self, item: dict) -> Optional[RawListing]:
        vehicle = item.get("vehicle") or {}
        guid = item.get("id")
        url = item.get("url")
        brand = vehicle.get("make")
        model = vehicle.get("model")
        title = " ".join(p for p in (brand, model, vehicle.get("modelVersionInput")) if p)
        if not guid or not url or not title:
            return None

        return RawListing(
            title=title,
            url=self._absolute(url),
            price=self._dig(item, "tracking.price", "price.priceFormatted"),
            year=self._dig(item, "tracking.firstRegistration"),
            mileage=self._dig(item, "tracking.mileage", "vehicle.mileageInKm"),
            city=self._dig(item, "location.city"),
            image_url=self._dig(item, "images.0"),
            external_id=guid,
            fuel=vehicle.get("fuel"),
            gearbox=vehicle.get("transmission"),
            brand=brand,
            model=model,
        )

    def _from_articles(self, soup: BeautifulSoup) -> list[RawListing]:
        listings = []
        for article in soup.find_all("article", attrs={"data-guid": True}):
            guid = article["data-guid"]
            link = article.find("a", href=True)
            href = link["href"] if link else f"/offres/{guid}"

            make = article.get("data-make", "").strip()
            model = article.get("data-model", "").strip()
            title = self._text(article.find(["h2", "h3"])) or " ".join(p for p in (make, model) if p)
            if not title:
                continue

            price = article.get("data-price")
            if not price:
                price = self._text(article.find(attrs={"data-testid": re.compile(r"price", re.I)}))
            location = article.find(attrs={"data-testid": re.compile(r"location|address", re.I)})
            image = article.find("img")

            listings.append(RawListing(
                title=title,
                url=self._absolute(href),
                price=price,
                year=article.get("data-first-registration"),
                mileage=article.get("data-mileage"),
                city=self._text(location),
                image_url=image.get("src") if image else None,
                external_id=guid,
                fuel=FUEL_CODES.get(article.get("data-fuel-type", "").lower()),
                brand=make or None,
                model=model or None,
            ))
        return listings


def _slug(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", value.strip().lower()).strip("-")
