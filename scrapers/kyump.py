"""
kyump.py - Parser for Kyump used-car search results.
"""

import re

from bs4 import BeautifulSoup

from models import RawListing, SearchCriteria
from scrapers.base import SourceParser
from monitoring import get_logger

logger = get_logger("scrapers.kyump")

LINK_FALLBACK_MIN_CHARS = 50000
MAX_CARDS = 100
MAX_LINKS = 50

_CARD_CLASS = re.compile(r"car-card|vehicle-card|listing-item")
_AD_LINK = re.compile(r"/voiture-occasion[^\"'?#]*/[^\"'?#]+")


class KyumpParser(SourceParser):
    key = "kyump"
    name = "Kyump"
    base_url = "https://www.kyump.com"

    def search_url(self, criteria: SearchCriteria, page: int = 1) -> str:
        params = {
            "marque": criteria.brand.upper(),
            "modele": (criteria.model or "").upper(),
            "prixMin": criteria.min_price,
            "prixMax": criteria.max_price,
            "anneeMin": criteria.min_year,
            "anneeMax": criteria.max_year,
            "kmMax": criteria.max_mileage,
            "page": page if page > 1 else None,
        }
        return self._url("/voiture-occasion", params)

    def _extract(self, soup: BeautifulSoup) -> list[RawListing]:
        cards = soup.find_all("div", class_=_CARD_CLASS) + soup.find_all("article")
        listings = []
        seen = set()
        for card in cards[:MAX_CARDS]:
            link = card.find("a", href=_AD_LINK)
            href = link["href"] if link else card.get("data-url")
            if not href or href in seen:
                continue
            title = self._text(card.find(["h2", "h3"])) or (link.get("title") if link else None)
            if not title:
                continue
            seen.add(href)
            listings.append(self._listing(card, href, title))

        if not listings and len(str(soup)) > LINK_FALLBACK_MIN_CHARS:
            for link in soup.find_all("a", href=_AD_LINK)[:MAX_LINKS]:
                title = link.get("title") or self._text(link)
                if title and link["href"] not in seen:
                    seen.add(link["href"])
                    listings.append(self._listing(link.parent or link, link["href"], title))
            logger.debug(f"Kyump: {len(listings)} listings from detail links")

        return listings

    def _listing(self, card, href: str, title: str) -> RawListing:
        text = self._text(card) or ""
        price, year, mileage = self._card_numbers(text)
        image = card.find("img")
        id_match = re.search(r"(\d{5,})(?:\.html)?/?$", href.split("?")[0])
        return RawListing(
            title=title,
            url=self._absolute(href),
            price=price,
            year=year,
            mileage=mileage,
            city=self._text(card.find("span", class_=re.compile("city"))),
            image_url=self._absolute(image.get("src") or image.get("data-src")) if image else None,
            external_id=id_match.group(1) if id_match else None,
            text=text,
        )
