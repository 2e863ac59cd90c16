"""
paruvendu.py - Parser for ParuVendu car classifieds.
Reads ad blocks; on large pages with no blocks, falls back to scanning the
text around /a/voiture/ detail links.
"""

import re

from bs4 import BeautifulSoup

from models import RawListing, SearchCriteria
from scrapers.base import SourceParser
from monitoring import get_logger

logger = get_logger("scrapers.paruvendu")

LINK_FALLBACK_MIN_CHARS = 50000
MAX_LINKS = 50

_AD_LINK = re.compile(r"/a/voiture[^\"']*")


class ParuVenduParser(SourceParser):
    key = "paruvendu"
    name = "ParuVendu"
    base_url = "https://www.paruvendu.fr"

    def search_url(self, criteria: SearchCriteria, page: int = 1) -> str:
        params = {
            "tt": "1",
            "tbMar": criteria.brand,
            "tbMod": criteria.model,
            "px0": criteria.min_price,
            "px1": criteria.max_price,
            "km1": criteria.max_mileage,
            "a0": criteria.min_year,
            "a1": criteria.max_year,
            "codeINSEE": criteria.zip_code,
            "p": page if page > 1 else None,
        }
        return self._url("/a/voiture-occasion/", params)

    def _extract(self, soup: BeautifulSoup) -> list[RawListing]:
        listings = []
        blocks = soup.select("div.ergov3-annonce, article.annonce")
        for block in blocks:
            link = block.find("a", href=_AD_LINK)
            if link is None:
                continue
            title = self._text(block.find(["h2", "h3"])) or link.get("title")
            if not title:
                continue
            listings.append(self._listing(block, link["href"], title))

        if not listings and len(str(soup)) > LINK_FALLBACK_MIN_CHARS:
            links = soup.find_all("a", href=_AD_LINK)[:MAX_LINKS]
            logger.debug(f"ParuVendu: no ad blocks, scanning {len(links)} detail links")
            for link in links:
                title = link.get("title") or self._text(link)
                if title:
                    listings.append(self._listing(link.parent or link, link["href"], title))

        return listings

    def _listing(self, block, href: str, title: str) -> RawListing:
        text = self._text(block) or ""
        price, year, mileage = self._card_numbers(text)
        image = block.find("img")
        id_match = re.search(r"/(\d{6,})(?:[/?#]|$)", href)
        return RawListing(
            title=title,
            url=self._absolute(href),
            price=price,
            year=year,
            mileage=mileage,
            city=self._text(block.select_one(".ville, .city")),
            image_url=self._absolute(image.get("src")) if image else None,
            external_id=id_match.group(1) if id_match else None,
            text=text,
        )
