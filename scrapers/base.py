"""
base.py - Base parser for marketplace search result pages.
Parsers are pure: markup in, RawListings out. Fetching lives in fetching.py.
"""

import json
import re
from abc import ABC, abstractmethod
from typing import Optional
from urllib.parse import urlencode, urljoin

from bs4 import BeautifulSoup

from filters import apply_price_ceiling
from models import RawListing, SearchCriteria
from monitoring import get_logger

logger = get_logger("scrapers.base")

_PRICE = re.compile(r"(\d{1,3}(?:\s?\d{3})*)\s*€")
_MILEAGE = re.compile(r"(\d{1,3}(?:\s?\d{3})*)\s*km\b", re.I)
_YEAR = re.compile(r"\b(19[5-9]\d|20\d\d)\b")


class SourceParser(ABC):
    key = ""
    name = ""
    base_url = ""

    @abstractmethod
    def search_url(self, criteria: SearchCriteria, page: int = 1) -> str:
        """Search results URL for the criteria and 1-based page number."""

    def parse(self, markup: str, criteria: SearchCriteria) -> list[RawListing]:
        """Extract listings and apply the criteria's price ceiling."""
        soup = BeautifulSoup(markup, "html.parser")
        listings = self._extract(soup)
        return apply_price_ceiling(listings, criteria, self.key)

    @abstractmethod
    def _extract(self, soup: BeautifulSoup) -> list[RawListing]:
        pass

    # --- helpers shared by parsers ---

    def _url(self, path: str, params: dict) -> str:
        query = urlencode({k: v for k, v in params.items() if v not in (None, "")})
        return f"{self.base_url}{path}?{query}" if query else f"{self.base_url}{path}"

    def _absolute(self, href: Optional[str]) -> Optional[str]:
        if not href:
            return None
        href = href.strip()
        if href.startswith("//"):
            return f"https:{href}"
        return urljoin(self.base_url + "/", href)

    @staticmethod
    def _next_data(soup: BeautifulSoup) -> Optional[dict]:
        """The Next.js __NEXT_DATA__ payload, if present and valid."""
        script = soup.find("script", id="__NEXT_DATA__")
        if script is None or not script.string:
            return None
        try:
            return json.loads(script.string)
        except ValueError as e:
            logger.debug(f"Invalid __NEXT_DATA__ JSON: {e}")
            return None

    @staticmethod
    def _assigned_json(soup: BeautifulSoup, variable: str) -> Optional[dict]:
        """JSON object assigned to a window variable in an inline script."""
        for script in soup.find_all("script"):
            text = script.string or ""
            marker = text.find(variable)
            if marker == -1:
                continue
            start = text.find("{", marker)
            if start == -1:
                continue
            try:
                payload, _ = json.JSONDecoder().raw_decode(text[start:])
            except ValueError as e:
                logger.debug(f"Invalid {variable} JSON: {e}")
                continue
            if isinstance(payload, dict):
                return payload
        return None

    @staticmethod
    def _json_ld(soup: BeautifulSoup) -> list[dict]:
        """Every JSON-LD object on the page, flattened."""
        items = []
        for script in soup.find_all("script", type="application/ld+json"):
            try:
                payload = json.loads(script.string or "")
            except ValueError:
                continue
            if isinstance(payload, list):
                items.extend(p for p in payload if isinstance(p, dict))
            elif isinstance(payload, dict):
                items.extend(payload.get("@graph", [payload]))
        return items

    @staticmethod
    def _dig(data, *paths):
        """First non-empty value among dotted paths ("props.pageProps.ads")."""
        for path in paths:
            value = data
            for part in path.split("."):
                if isinstance(value, dict):
                    value = value.get(part)
                elif isinstance(value, list) and part.isdigit() and int(part) < len(value):
                    value = value[int(part)]
                else:
                    value = None
                    break
            if value not in (None, "", [], {}):
                return value
        return None

    @staticmethod
    def _text(element) -> Optional[str]:
        if element is None:
            return None
        text = re.sub(r"\s+", " ", element.get_text(" ", strip=True)).strip()
        return text or None

    @staticmethod
    def _card_numbers(text: str) -> tuple[Optional[str], Optional[str], Optional[str]]:
        """Price, year and mileage strings found in a card's visible text."""
        price = _PRICE.search(text)
        mileage = _MILEAGE.search(text)
        year = _YEAR.search(text)
        return (
            price.group(1) if price else None,
            year.group(1) if year else None,
            mileage.group(1) if mileage else None,
        )
