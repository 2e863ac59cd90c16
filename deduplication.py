"""
deduplication.py - Canonical vehicle fingerprints and cross-source deduplication.
The same car listed on two marketplaces collapses to one result.
"""

import hashlib
import re
import unicodedata
from typing import Optional, Sequence

from models import NormalizedListing
from monitoring import get_logger

logger = get_logger("deduplication")

MILEAGE_BUCKET_KM = 5000
PRICE_BUCKET_EUR = 500


def _round_to(value: float, step: int) -> int:
    """Nearest multiple of step, halves rounded up."""
    return int((value + step / 2) // step) * step


def normalize_name(name: Optional[str]) -> str:
    """Lowercase, accent-stripped, single-spaced brand or model name."""
    if not name:
        return ""
    name = unicodedata.normalize("NFD", name)
    name = "".join(c for c in name if unicodedata.category(c) != "Mn")
    name = re.sub(r"[^\w\s]", " ", name.lower())
    return " ".join(name.split())


def canonical_id(
    brand: Optional[str],
    model: Optional[str],
    year: Optional[int],
    mileage_km: Optional[int],
    price_eur: Optional[float],
) -> str:
    """
    md5 of brand|model|year|mileage|price with mileage rounded to the
    nearest 5,000 km and price to the nearest 500 EUR.
    """
    mileage = "" if mileage_km is None else str(_round_to(mileage_km, MILEAGE_BUCKET_KM))
    price = "" if price_eur is None else str(_round_to(price_eur, PRICE_BUCKET_EUR))
    parts = [
        normalize_name(brand),
        normalize_name(model),
        "" if year is None else str(year),
        mileage,
        price,
    ]
    return hashlib.md5("|".join(parts).encode("utf-8")).hexdigest()


def dedupe(
    listings: list[NormalizedListing],
    source_priority: Optional[Sequence[str]] = None,
) -> list[NormalizedListing]:
    """
    Collapse listings sharing a canonical_id.
    Keeps the most complete record; ties go to the source earliest in
    source_priority, then to the first seen. Groups keep the order in which
    they first appeared, so dedupe(dedupe(x)) == dedupe(x).
    """
    if not listings:
        return []

    rank = {source: i for i, source in enumerate(source_priority or [])}
    fallback_rank = len(rank)
    best: dict[str, NormalizedListing] = {}

    for listing in listings:
        current = best.get(listing.canonical_id)
        if current is None:
            best[listing.canonical_id] = listing
            continue
        if _better(listing, current, rank, fallback_rank):
            best[listing.canonical_id] = listing

    unique = list(best.values())
    dupes_removed = len(listings) - len(unique)
    if dupes_removed > 0:
        logger.info(f"Deduplication: {len(listings)} -> {len(unique)} ({dupes_removed} duplicates removed)")

    return unique


def dedupe_within_source(listings: list[NormalizedListing]) -> list[NormalizedListing]:
    """Drop repeated external ids from one source (pages and passes overlap)."""
    seen = set()
    unique = []
    for listing in listings:
        if listing.external_id in seen:
            continue
        seen.add(listing.external_id)
        unique.append(listing)
    return unique


def _better(candidate: NormalizedListing, current: NormalizedListing, rank: dict, fallback_rank: int) -> bool:
    """Strictly better only. Equal records keep the one seen first."""
    if candidate.completeness() != current.completeness():
        return candidate.completeness() > current.completeness()
    return rank.get(candidate.source, fallback_rank) < rank.get(current.source, fallback_rank)
