"""
normalization.py - Turns raw parser output into canonical NormalizedListings.
Handles French number formats, miles, 2-digit years, fuel/gearbox vocabulary,
absolute URLs, and brand/model resolution.
"""

import hashlib
import re
import unicodedata
from datetime import date
from typing import Optional, Union
from urllib.parse import urljoin

from rapidfuzz import fuzz

from deduplication import canonical_id
from models import NormalizedListing, RawListing, SearchCriteria

KM_PER_MILE = 1.609344
MODEL_MATCH_THRESHOLD = 85  # partial_ratio needed to accept the requested model

FUEL_ALIASES = {
    "essence": "essence",
    "petrol": "essence",
    "gasoline": "essence",
    "sp95": "essence",
    "sp98": "essence",
    "diesel": "diesel",
    "gazole": "diesel",
    "gasoil": "diesel",
    "hdi": "diesel",
    "dci": "diesel",
    "tdi": "diesel",
    "hybride": "hybride",
    "hybrid": "hybride",
    "electrique": "electrique",
    "electric": "electrique",
    "ev": "electrique",
    "gpl": "gpl",
    "lpg": "gpl",
}

GEARBOX_ALIASES = {
    "manuelle": "manuelle",
    "manual": "manuelle",
    "mecanique": "manuelle",
    "bvm": "manuelle",
    "automatique": "automatique",
    "automatic": "automatique",
    "auto": "automatique",
    "bva": "automatique",
    "eat6": "automatique",
    "eat8": "automatique",
    "edc": "automatique",
    "dsg": "automatique",
}

# Title words that are never a brand
TITLE_STOPWORDS = {"vends", "vend", "a", "vendre", "voiture", "occasion", "superbe", "belle", "tres"}

_NUMBER = re.compile(r"\d[\d\s.,]*")  # \s also covers non-breaking spaces
_YEAR = re.compile(r"\b(19[5-9]\d|20\d\d)\b")
_SHORT_YEAR = re.compile(r"^\s*'?(\d{2})\s*$")


def strip_accents(text: str) -> str:
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(c for c in decomposed if unicodedata.category(c) != "Mn")


def clean_text(text: Optional[str]) -> Optional[str]:
    """Collapse whitespace; empty becomes None."""
    if text is None:
        return None
    text = re.sub(r"\s+", " ", str(text)).strip()
    return text or None


def parse_number(value: Union[str, int, float, None]) -> Optional[float]:
    """
    Parse a French-formatted number: "12 500 €", "12.500", "98 000 km", "7,5".
    Returns None when no digits are present.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)

    match = _NUMBER.search(str(value))
    if not match:
        return None
    digits = re.sub(r"\s", "", match.group(0)).rstrip(".,")

    if "," in digits and "." in digits:
        # "12.500,50" -> thousands "." and decimal ","
        digits = digits.replace(".", "").replace(",", ".")
    elif "," in digits:
        head, _, tail = digits.rpartition(",")
        digits = f"{head.replace(',', '')}{tail}" if len(tail) == 3 else f"{head.replace(',', '')}.{tail}"
    elif digits.count(".") > 1 or re.search(r"\.\d{3}$", digits):
        digits = digits.replace(".", "")

    try:
        return float(digits)
    except ValueError:
        return None


def parse_price_cents(value) -> Optional[int]:
    """Price in euro cents."""
    amount = parse_number(value)
    if amount is None or amount <= 0:
        return None
    return int(round(amount * 100))


def parse_mileage_km(value) -> Optional[int]:
    """Mileage in km. Values labelled in miles are converted."""
    amount = parse_number(value)
    if amount is None or amount < 0:
        return None
    if isinstance(value, str) and re.search(r"\b(miles?|mi)\b", value.lower()):
        amount *= KM_PER_MILE
    return int(round(amount))


def parse_year(value, today: Optional[date] = None) -> Optional[int]:
    """
    Four-digit model year. Two-digit years map to 20xx when not in the
    future, else 19xx.
    """
    if value is None or isinstance(value, bool):
        return None
    today = today or date.today()
    if isinstance(value, (int, float)):
        value = str(int(value))

    text = str(value)
    match = _YEAR.search(text)
    if match:
        return int(match.group(1))

    match = _SHORT_YEAR.match(text)
    if match:
        short = int(match.group(1))
        century = 2000 if short <= today.year % 100 else 1900
        return century + short
    return None


def normalize_fuel(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    key = strip_accents(str(value)).lower()
    for word in re.findall(r"[a-z0-9]+", key):
        if word in FUEL_ALIASES:
            return FUEL_ALIASES[word]
    return None


def normalize_gearbox(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    key = strip_accents(str(value)).lower()
    for word in re.findall(r"[a-z0-9]+", key):
        if word in GEARBOX_ALIASES:
            return GEARBOX_ALIASES[word]
    return None


def absolute_url(url: Optional[str], base_url: Optional[str] = None) -> Optional[str]:
    if not url:
        return None
    url = url.strip()
    if url.startswith("//"):
        return f"https:{url}"
    if url.startswith("http://") or url.startswith("https://"):
        return url
    if base_url:
        return urljoin(base_url, url)
    return url


def resolve_brand_model(
    raw: RawListing,
    title: str,
    criteria: Optional[SearchCriteria] = None,
) -> tuple[Optional[str], Optional[str]]:
    """
    Brand and model, in order of preference:
    1. Explicit parser fields.
    2. The requested brand/model when the title matches them (fuzzy for the model).
    3. The first significant title words.
    """
    brand = clean_text(raw.brand)
    model = clean_text(raw.model)
    title_key = strip_accents(title).lower()
    words = [w for w in re.findall(r"[\w-]+", title) if strip_accents(w).lower() not in TITLE_STOPWORDS]

    if not brand and criteria and criteria.brand:
        if strip_accents(criteria.brand).lower() in title_key:
            brand = criteria.brand
    if not brand and words:
        brand = words[0]

    if not model and criteria and criteria.model:
        wanted = strip_accents(criteria.model).lower()
        if fuzz.partial_ratio(wanted, title_key) >= MODEL_MATCH_THRESHOLD:
            model = criteria.model
    if not model and brand:
        brand_key = strip_accents(brand).lower()
        rest = [w for w in words if strip_accents(w).lower() != brand_key]
        if rest:
            model = rest[0]

    return brand, model


def external_id_for(raw: RawListing) -> str:
    if raw.external_id not in (None, ""):
        return str(raw.external_id)
    return hashlib.md5(raw.url.encode("utf-8")).hexdigest()[:16]


def normalize(
    raw: RawListing,
    source: str,
    criteria: Optional[SearchCriteria] = None,
    base_url: Optional[str] = None,
) -> NormalizedListing:
    """Build the canonical listing for one raw parser record."""
    title = clean_text(raw.title) or ""
    brand, model = resolve_brand_model(raw, title, criteria)
    price = parse_price_cents(raw.price)
    year = parse_year(raw.year)
    mileage = parse_mileage_km(raw.mileage)
    external_id = external_id_for(raw)

    return NormalizedListing(
        id=f"{source}_{external_id}",
        external_id=external_id,
        canonical_id=canonical_id(brand, model, year, mileage, None if price is None else price / 100),
        title=title,
        url=absolute_url(raw.url, base_url) or "",
        source=source,
        brand=brand,
        model=model,
        price=price,
        year=year,
        mileage=mileage,
        fuel=normalize_fuel(raw.fuel) or normalize_fuel(title),
        gearbox=normalize_gearbox(raw.gearbox) or normalize_gearbox(title),
        city=clean_text(raw.city),
        image_url=absolute_url(raw.image_url, base_url),
    )
