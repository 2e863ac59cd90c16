"""
transakauto.py - Parser for TransakAuto classifieds (annonces.transakauto.com).

Tries, in order: the __NEXT_DATA__ payload, a JSON-LD ItemList, then
listing containers in the markup.
"""

import re
from typing import Optional

from bs4 import BeautifulSoup

from models import RawListing, SearchCriteria
from scrapers.base import SourceParser
from monitoring import get_logger

logger = get_logger("scrapers.transakauto")

MAX_ITEMS = 50

_LIST_KEY = re.compile(r"listing|annonce|vehic|^ads?$|^results?$", re.I)
_CONTAINER_CLASS = re.compile(r"card|listing|annonce|vehicule|product|item")


class TransakAutoParser(SourceParser):
    key = "transakauto"
    name = "TransakAuto"
    base_url = "https://annonces.transakauto.com"

    def search_url(self, criteria: SearchCriteria, page: int = 1) -> str:
        params = {
            "marque": criteria.brand.lower().strip(),
            "modele": (criteria.model or "").lower().strip(),
            "prix_max": criteria.max_price,
            "page": page if page > 1 else None,
        }
        return self._url("/", params)

    def _extract(self, soup: BeautifulSoup) -> list[RawListing]:
        data = self._next_data(soup)
        if data:
            ads = _find_list(data)
            listings = [listing for listing in (self._from_ad(ad) for ad in ads[:MAX_ITEMS]) if listing]
            if listings:
                return listings

        listings = []
        for entry in self._json_ld(soup):
            if not isinstance(entry, dict) or entry.get("@type") != "ItemList":
                continue
            for element in entry.get("itemListElement") or []:
                item = element.get("item") if isinstance(element, dict) else None
                if isinstance(item, dict):
                    listing = self._from_ad(item)
                    if listing:
                        listings.append(listing)
        if listings:
            return listings[:MAX_ITEMS]

        return self._from_containers(soup)

    def _from_ad(self, ad: dict) -> Optional[RawListing]:
        url = ad.get("url") or ad.get("link") or ad.get("href")
        title = ad.get("title") or ad.get("name") or " ".join(
            str(p) for p in (ad.get("brand") or ad.get("marque"), ad.get("model") or ad.get("modele")) if p
        )
        if not url or not title:
            return None
        offers = ad.get("offers") if isinstance(ad.get("offers"), dict) else {}
        image = self._dig(ad, "imageUrl", "image", "images.0")
        return RawListing(
            title=str(title),
            url=self._absolute(str(url)),
            price=ad.get("price") or ad.get("prix") or offers.get("price"),
            year=ad.get("year") or ad.get("annee") or ad.get("vehicleModelDate"),
            mileage=ad.get("mileage") or ad.get("kilometrage") or self._dig(ad, "mileageFromOdometer.value"),
            city=ad.get("city") or ad.get("ville"),
            image_url=self._absolute(image) if isinstance(image, str) else None,
            external_id=str(ad["id"]) if ad.get("id") not in (None, "") else None,
        )

    def _from_containers(self, soup: BeautifulSoup) -> list[RawListing]:
        listings = []
        seen = set()
        containers = soup.find_all(["div", "li"], class_=_CONTAINER_CLASS) + soup.find_all("article")
        for container in containers:
            link = container.find("a", href=True)
            if link is None:
                continue
            href = link["href"]
            if href in seen or href.startswith(("#", "javascript:", "mailto:")):
                continue
            title = self._text(container.find(["h2", "h3"])) or link.get("title")
            if not title:
                continue
            seen.add(href)
            text = self._text(container) or ""
            price, year, mileage = self._card_numbers(text)
            listings.append(RawListing(
                title=title,
                url=self._absolute(href),
                price=price,
                year=year,
                mileage=mileage,
                text=text,
            ))
            if len(listings) >= MAX_ITEMS:
                break

        logger.debug(f"TransakAuto: {len(listings)} listings from page containers")
        return listings


def _find_list(node) -> list[dict]:
    """First list of objects stored under a listing-like key, depth first."""
    if isinstance(node, dict):
        for key, value in node.items():
            if _LIST_KEY.search(key) and isinstance(value, list):
                ads = [v for v in value if isinstance(v, dict)]
                if ads:
                    return ads
            found = _find_list(value)
            if found:
                return found
    elif isinstance(node, list):
        for value in node:
            found = _find_list(value)
            if found:
                return found
    return []
