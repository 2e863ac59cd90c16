"""
lacentrale.py - Parser for LaCentrale used-car listings.
Tries the window.__INITIAL_STATE__ store, then JSON-LD Car entries,
then the annonce links on the page.
"""

import re
from typing import Optional

from bs4 import BeautifulSoup

from models import RawListing, SearchCriteria
from scrapers.base import SourceParser
from monitoring import get_logger

logger = get_logger("scrapers.lacentrale")

FUEL_CODES = {"essence": "ess", "diesel": "dies", "hybride": "hyb", "electrique": "elec", "gpl": "gpl"}
GEARBOX_CODES = {"manuelle": "MANUAL", "automatique": "AUTO"}

_AD_HREF = re.compile(r"/auto-occasion-annonce-([\w-]+?)\.html")


class LaCentraleParser(SourceParser):
    key = "lacentrale"
    name = "LaCentrale"
    base_url = "https://www.lacentrale.fr"

    def search_url(self, criteria: SearchCriteria, page: int = 1) -> str:
        make = _upper(criteria.brand)
        if make and criteria.model:
            make = f"{make}:{_upper(criteria.model)}"
        params = {
            "makesModelsCommercialNames": make,
            "priceMin": criteria.min_price,
            "priceMax": criteria.max_price,
            "mileageMin": criteria.min_mileage,
            "mileageMax": criteria.max_mileage,
            "yearMin": criteria.min_year,
            "yearMax": criteria.max_year,
            "energies": FUEL_CODES.get((criteria.fuel or "").lower()),
            "gearbox": GEARBOX_CODES.get((criteria.gearbox or "").lower()),
            "page": page if page > 1 else None,
        }
        return self._url("/listing", params)

    def _extract(self, soup: BeautifulSoup) -> list[RawListing]:
        state = self._assigned_json(soup, "__INITIAL_STATE__")
        if state:
            ads = self._dig(
                state,
                "search.hits",
                "ads",
                "listings",
                "vehicles",
                "data.ads",
                "data.listings",
                "searchResults.ads",
                "search.results.listings",
                "listing.results",
            )
            if isinstance(ads, list) and ads:
                return [listing for listing in (self._from_ad(ad) for ad in ads if isinstance(ad, dict)) if listing]

        cars = [item for item in self._json_ld(soup) if item.get("@type") in ("Car", "Vehicle", "Product")]
        if cars:
            return [listing for listing in (self._from_json_ld(car) for car in cars) if listing]

        return self._from_links(soup)

    def _from_ad(self, ad: dict) -> Optional[RawListing]:
        item = ad.get("item") if isinstance(ad.get("item"), dict) else ad
        vehicle = item.get("vehicle") if isinstance(item.get("vehicle"), dict) else item

        ad_id = item.get("reference") or item.get("id") or item.get("adId")
        brand = vehicle.get("make") or vehicle.get("brand")
        model = vehicle.get("model") or vehicle.get("commercialName")
        title = item.get("title") or " ".join(p for p in (brand, model, vehicle.get("version")) if p)
        if not title or not ad_id:
            return None

        url = item.get("url") or item.get("link") or f"/auto-occasion-annonce-{ad_id}.html"
        return RawListing(
            title=title,
            url=self._absolute(str(url).split("#")[0].split("?")[0]),
            price=item.get("price") or item.get("priceEur"),
            year=vehicle.get("year") or vehicle.get("registrationYear"),
            mileage=vehicle.get("mileage") or vehicle.get("mileageKm"),
            city=self._dig(item, "location.city", "city", "cityLabel"),
            image_url=self._absolute(self._dig(item, "photoUrl", "images.0.url", "images.0", "photos.0")),
            external_id=str(ad_id),
            fuel=vehicle.get("energy") or vehicle.get("fuel"),
            gearbox=vehicle.get("gearbox"),
            brand=brand,
            model=model,
        )

    def _from_json_ld(self, car: dict) -> Optional[RawListing]:
        url = car.get("url") or self._dig(car, "offers.url")
        title = car.get("name")
        if not url or not title:
            return None
        match = _AD_HREF.search(url)
        brand = car.get("brand")
        if isinstance(brand, dict):
            brand = brand.get("name")
        return RawListing(
            title=title,
            url=self._absolute(url),
            price=self._dig(car, "offers.price"),
            year=car.get("vehicleModelDate") or car.get("productionDate"),
            mileage=self._dig(car, "mileageFromOdometer.value"),
            image_url=_first(car.get("image")),
            external_id=match.group(1) if match else None,
            fuel=car.get("fuelType"),
            gearbox=car.get("vehicleTransmission"),
            brand=brand,
            model=car.get("model"),
        )

    def _from_links(self, soup: BeautifulSoup) -> list[RawListing]:
        listings = []
        seen = set()
        for link in soup.find_all("a", href=_AD_HREF):
            href = link["href"]
            match = _AD_HREF.search(href)
            if match.group(1) in seen:
                continue
            card = link.find_parent(["article", "div"]) or link
            title = self._text(card.find(["h2", "h3"])) or link.get("title") or self._text(link)
            if not title:
                continue
            seen.add(match.group(1))
            text = self._text(card) or ""
            price, year, mileage = self._card_numbers(text)
            image = card.find("img")
            listings.append(RawListing(
                title=title,
                url=self._absolute(href),
                price=price,
                year=year,
                mileage=mileage,
                image_url=(image.get("src") or image.get("data-src")) if image else None,
                external_id=match.group(1),
                text=text,
            ))
        return listings


def _upper(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    return re.sub(r"\s+", "", value.strip().upper())


def _first(value):
    if isinstance(value, list):
        return value[0] if value else None
    return value
