"""
filters.py - Hard pass/fail filters applied to parser output.
A listing that fails ANY of these is excluded entirely.
"""

from typing import Optional

from models import RawListing, SearchCriteria
from monitoring import get_logger
from normalization import parse_number

logger = get_logger("filters")


def apply_price_ceiling(
    listings: list[RawListing],
    criteria: SearchCriteria,
    source: Optional[str] = None,
) -> list[RawListing]:
    """
    Drop listings priced above criteria.max_price and records with no
    title or URL. A listing with no readable price is kept.
    """
    initial_count = len(listings)

    results = []
    filter_stats = {
        "incomplete": 0,
        "price": 0,
    }

    for listing in listings:
        if not _check_complete(listing):
            filter_stats["incomplete"] += 1
            continue
        if not _check_price(listing, criteria.max_price):
            filter_stats["price"] += 1
            continue
        results.append(listing)

    if initial_count != len(results):
        prefix = f"[{source}] " if source else ""
        logger.debug(
            f"{prefix}Hard filters: {initial_count} -> {len(results)} "
            f"(incomplete: -{filter_stats['incomplete']}, "
            f"price: -{filter_stats['price']})"
        )

    return results


def _check_complete(listing: RawListing) -> bool:
    """A listing needs at least a title and a link."""
    return bool((listing.title or "").strip()) and bool((listing.url or "").strip())


def _check_price(listing: RawListing, max_price: Optional[int]) -> bool:
    """
    Check the asking price against the ceiling (in euros).
    If no price is listed, pass (don't penalize).
    """
    if max_price is None:
        return True
    price = parse_number(listing.price)
    if price is None:
        return True
    return price <= max_price
