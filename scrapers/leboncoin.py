"""
leboncoin.py - Parser for LeBonCoin car search results.
Reads the __NEXT_DATA__ ads payload; falls back to data-qa-id ad cards.
"""

import re
from typing import Optional

from bs4 import BeautifulSoup

from models import RawListing, SearchCriteria
from scrapers.base import SourceParser
from monitoring import get_logger

logger = get_logger("scrapers.leboncoin")

CATEGORY_CARS = "2"

FUEL_CODES = {"essence": "1", "diesel": "2", "gpl": "3", "electrique": "4", "hybride": "6"}
GEARBOX_CODES = {"manuelle": "1", "automatique": "2"}


class LeBonCoinParser(SourceParser):
    key = "leboncoin"
    name = "LeBonCoin"
    base_url = "https://www.leboncoin.fr"

    def search_url(self, criteria: SearchCriteria, page: int = 1) -> str:
        text = " ".join(part for part in (criteria.brand, criteria.model) if part)
        params = {
            "category": CATEGORY_CARS,
            "text": text,
            "price": _range(criteria.min_price, criteria.max_price),
            "mileage": _range(criteria.min_mileage, criteria.max_mileage),
            "regdate": _range(criteria.min_year, criteria.max_year),
            "fuel": FUEL_CODES.get((criteria.fuel or "").lower()),
            "gearbox": GEARBOX_CODES.get((criteria.gearbox or "").lower()),
            "locations": criteria.zip_code,
            "page": page if page > 1 else None,
        }
        return self._url("/recherche", params)

    def _extract(self, soup: BeautifulSoup) -> list[RawListing]:
        data = self._next_data(soup)
        if data:
            ads = self._dig(
                data,
                "props.pageProps.searchData.ads",
                "props.pageProps.ads",
                "props.pageProps.data.ads",
                "props.initialState.ads",
            )
            if isinstance(ads, list) and ads:
                return [listing for listing in (self._from_ad(ad) for ad in ads) if listing]
        return self._from_cards(soup)

    def _from_ad(self, ad: dict) -> Optional[RawListing]:
        title = ad.get("subject") or ad.get("title")
        ad_id = ad.get("list_id") or ad.get("id")
        if not title or not ad_id:
            return None

        attributes = _attributes(ad.get("attributes"))
        price = ad.get("price")
        if isinstance(price, list):
            price = price[0] if price else None

        return RawListing(
            title=title,
            url=ad.get("url") or f"{self.base_url}/ad/voitures/{ad_id}",
            price=price,
            year=attributes.get("regdate") or attributes.get("year"),
            mileage=attributes.get("mileage"),
            city=self._dig(ad, "location.city", "location.city_label"),
            image_url=self._dig(ad, "images.urls_thumb.0", "images.urls_large.0", "images.thumb_url", "images.small_url"),
            external_id=str(ad_id),
            fuel=attributes.get("fuel"),
            gearbox=attributes.get("gearbox"),
            brand=attributes.get("brand"),
            model=attributes.get("model"),
        )

    def _from_cards(self, soup: BeautifulSoup) -> list[RawListing]:
        listings = []
        for card in soup.find_all("a", attrs={"data-qa-id": "aditem_container"}):
            href = card.get("href", "")
            title = self._text(card.find(attrs={"data-qa-id": "aditem_title"}))
            if not title or not href:
                continue
            id_match = re.search(r"/(\d+)(?:\.htm)?/?$", href)
            image = card.find("img")
            text = self._text(card) or ""
            price, year, mileage = self._card_numbers(text)
            listings.append(RawListing(
                title=title,
                url=self._absolute(href),
                price=self._text(card.find(attrs={"data-qa-id": "aditem_price"})) or price,
                year=year,
                mileage=mileage,
                city=self._text(card.find(attrs={"data-qa-id": "aditem_location"})),
                image_url=image.get("src") if image else None,
                external_id=id_match.group(1) if id_match else None,
                text=text,
            ))

        if listings:
            logger.debug(f"LeBonCoin: {len(listings)} listings from ad cards")
        return listings


def _range(low, high) -> Optional[str]:
    if low is None and high is None:
        return None
    return f"{low if low is not None else 'min'}-{high if high is not None else 'max'}"


def _attributes(raw) -> dict:
    """LeBonCoin attributes come as [{key, value, value_label}] or a plain dict."""
    if isinstance(raw, dict):
        return raw
    out = {}
    for attribute in raw or []:
        if isinstance(attribute, dict) and attribute.get("key"):
            out[attribute["key"]] = attribute.get("value_label") or attribute.get("value")
    return out
