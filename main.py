"""
main.py - Command-line entry point for a one-off car listing search.

    python main.py --brand Peugeot --model 208 --max-price 12000
    python main.py --brand Renault --sites leboncoin lacentrale --json
"""

import argparse
import json
import sys
from datetime import datetime

from config import validate_config
from coordinator import SearchCoordinator
from errors import ValidationError
from models import SearchResponse
from monitoring import get_logger, setup_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Search used-car listings across French marketplaces")
    parser.add_argument("--brand", required=True, help="Car brand, e.g. Peugeot")
    parser.add_argument("--model", help="Model, e.g. 208")
    parser.add_argument("--min-price", type=int, help="Minimum price in EUR")
    parser.add_argument("--max-price", type=int, help="Maximum price in EUR")
    parser.add_argument("--min-year", type=int)
    parser.add_argument("--max-year", type=int)
    parser.add_argument("--min-mileage", type=int, help="Minimum mileage in km")
    parser.add_argument("--max-mileage", type=int, help="Maximum mileage in km")
    parser.add_argument("--fuel", help="essence, diesel, hybride, electrique, gpl")
    parser.add_argument("--gearbox", help="manuelle or automatique")
    parser.add_argument("--body-type")
    parser.add_argument("--zip-code")
    parser.add_argument("--radius-km", type=int)
    parser.add_argument("--sites", nargs="+", default=[], help="Only query these source keys")
    parser.add_argument("--exclude", nargs="+", default=[], help="Skip these source keys")
    parser.add_argument("--json", action="store_true", help="Print the full JSON response")
    return parser


def request_from_args(args: argparse.Namespace) -> dict:
    return {
        "brand": args.brand,
        "model": args.model,
        "minPrice": args.min_price,
        "maxPrice": args.max_price,
        "minYear": args.min_year,
        "maxYear": args.max_year,
        "minMileage": args.min_mileage,
        "maxMileage": args.max_mileage,
        "fuelType": args.fuel,
        "gearbox": args.gearbox,
        "bodyType": args.body_type,
        "zipCode": args.zip_code,
        "radiusKm": args.radius_km,
        "sites": args.sites,
        "excludedSites": args.exclude,
    }


def print_summary(response: SearchResponse):
    print(f"\n{response.stats.total_items} listings from {response.stats.sites_scraped} source(s) "
          f"in {response.stats.total_ms / 1000:.1f}s\n")

    for run in response.site_results:
        detail = f" ({run.error})" if run.error else ""
        print(f"  {run.source:<12} {run.state:<10} {run.item_count:>3} items{detail}")
    print()

    for item in response.items:
        price = f"{item.price_eur:,.0f} EUR".replace(",", " ") if item.price is not None else "price n/a"
        year = item.year or "----"
        mileage = f"{item.mileage:,} km".replace(",", " ") if item.mileage is not None else "km n/a"
        print(f"  [{item.source}] {item.title} | {price} | {year} | {mileage}")
        print(f"      {item.url}")


def run(argv: list[str] = None) -> int:
    """Execute one search. Returns the process exit code."""
    args = build_parser().parse_args(argv)

    setup_logging()
    logger = get_logger("main")

    logger.info("=" * 60)
    logger.info("CAR FINDER SEARCH - Starting")
    logger.info(f"Timestamp: {datetime.now().isoformat()}")
    logger.info("=" * 60)

    for warning in validate_config():
        logger.warning(f"Config: {warning}")

    with SearchCoordinator() as coordinator:
        try:
            response = coordinator.search(request_from_args(args))
        except ValidationError as e:
            logger.error(f"Invalid search: {e.message}")
            print(json.dumps(e.to_dict()), file=sys.stderr)
            return 2

    if args.json:
        print(json.dumps(response.to_dict(), ensure_ascii=False, indent=2))
    else:
        print_summary(response)

    if response.stats.sites_scraped == 0:
        logger.error("No source returned results - check connectivity and ZENROWS_API_KEY")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(run())
