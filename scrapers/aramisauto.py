"""
aramisauto.py - Parser for Aramisauto dealer stock.
Reads vehicle cards; on large pages with no cards, falls back to the text
around /acheter/ detail links.
"""

import re

from bs4 import BeautifulSoup

from models import RawListing, SearchCriteria
from scrapers.base import SourceParser
from monitoring import get_logger

logger = get_logger("scrapers.aramisauto")

LINK_FALLBACK_MIN_CHARS = 50000
MAX_CARDS = 100
MAX_LINKS = 50

_CARD_CLASS = re.compile(r"listing-item|ad-card|vehicle-card|car-card")
_AD_LINK = re.compile(r"/acheter/(?!recherche)[^\"'?#]+")


class AramisautoParser(SourceParser):
    key = "aramisauto"
    name = "Aramisauto"
    base_url = "https://www.aramisauto.com"

    def search_url(self, criteria: SearchCriteria, page: int = 1) -> str:
        params = {
            "makes[]": criteria.brand.upper(),
            "models[]": (criteria.model or "").upper(),
            "priceMin": criteria.min_price,
            "priceMax": criteria.max_price,
            "yearMin": criteria.min_year,
            "yearMax": criteria.max_year,
            "mileageMax": criteria.max_mileage,
            "page": page if page > 1 else None,
        }
        return self._url("/acheter/recherche", params)

    def _extract(self, soup: BeautifulSoup) -> list[RawListing]:
        cards = soup.find_all("div", class_=_CARD_CLASS) or soup.find_all("article")
        listings = []
        seen = set()
        for card in cards[:MAX_CARDS]:
            link = card.find("a", href=_AD_LINK)
            href = link["href"] if link else card.get("data-url")
            if not href or href in seen:
                continue
            title = (
                self._text(card.find(["h2", "h3"]))
                or (link.get("title") if link else None)
                or card.get("data-title")
            )
            if not title:
                continue
            seen.add(href)
            listings.append(self._listing(card, href, title))

        if not listings and len(str(soup)) > LINK_FALLBACK_MIN_CHARS:
            links = soup.find_all("a", href=_AD_LINK)[:MAX_LINKS]
            logger.debug(f"Aramisauto: no vehicle cards, scanning {len(links)} detail links")
            for link in links:
                title = link.get("title") or self._text(link)
                if title and link["href"] not in seen:
                    seen.add(link["href"])
                    listings.append(self._listing(link.parent or link, link["href"], title))

        return listings

    def _listing(self, card, href: str, title: str) -> RawListing:
        text = self._text(card) or ""
        price, year, mileage = self._card_numbers(text)
        image = card.find("img")
        id_match = re.search(r"(\d{5,})/?$", href.split("?")[0])
        return RawListing(
            title=title,
            url=self._absolute(href),
            price=price or card.get("data-price"),
            year=year,
            mileage=mileage,
            city=self._text(card.find(class_=re.compile("city"))),
            image_url=self._absolute(image.get("src") or image.get("data-src")) if image else None,
            external_id=id_match.group(1) if id_match else None,
            text=text,
        )
