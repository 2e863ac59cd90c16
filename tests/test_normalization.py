from datetime import date

import pytest

from deduplication import canonical_id
from models import RawListing, SearchCriteria
from normalization import (
    normalize,
    normalize_fuel,
    normalize_gearbox,
    parse_mileage_km,
    parse_number,
    parse_price_cents,
    parse_year,
)


@pytest.mark.parametrize("text, expected", [
    ("12 500 €", 12500.0),
    ("12\u00a0500\u00a0€", 12500.0),
    ("12\u202f500 €", 12500.0),
    ("12.500", 12500.0),
    ("12,500", 12500.0),
    ("1.250.000", 1250000.0),
    ("12.500,50", 12500.5),
    ("7,5", 7.5),
    ("98 000 km", 98000.0),
    (9990, 9990.0),
])
def test_parse_number_handles_french_formats(text, expected) -> None:
    assert parse_number(text) == expected


@pytest.mark.parametrize("value", [None, "", "Prix sur demande", True])
def test_parse_number_without_digits_is_none(value) -> None:
    assert parse_number(value) is None


def test_price_is_stored_in_cents() -> None:
    assert parse_price_cents("8 990 €") == 899000
    assert parse_price_cents("12.500,50") == 1250050
    assert parse_price_cents("0 €") is None
    assert parse_price_cents(None) is None


def test_mileage_in_miles_is_converted() -> None:
    assert parse_mileage_km("98 000 km") == 98000
    assert parse_mileage_km("10 000 miles") == 16093
    assert parse_mileage_km("kilométrage inconnu") is None


def test_two_digit_years_pick_the_nearest_past_century() -> None:
    today = date(2024, 6, 1)

    assert parse_year("18", today=today) == 2018
    assert parse_year("24", today=today) == 2024
    assert parse_year("'99", today=today) == 1999
    assert parse_year("25", today=today) == 1925


def test_four_digit_year_is_found_in_text() -> None:
    assert parse_year("Mise en circulation : 03/2017") == 2017
    assert parse_year(2019) == 2019
    assert parse_year("n/c") is None


def test_fuel_and_gearbox_vocabulary() -> None:
    assert normalize_fuel("Gazole") == "diesel"
    assert normalize_fuel("Électrique") == "electrique"
    assert normalize_fuel("1.2 PureTech Essence") == "essence"
    assert normalize_fuel("inconnu") is None
    assert normalize_gearbox("Boîte automatique") == "automatique"
    assert normalize_gearbox("BVA") == "automatique"
    assert normalize_gearbox("Manuelle") == "manuelle"


def test_canonical_id_buckets_mileage_and_price() -> None:
    base = canonical_id("Peugeot", "208", 2018, 80000, 10000)

    assert canonical_id("PEUGEOT", "208", 2018, 81500, 10200) == base
    assert canonical_id("peugeot", " 208 ", 2018, 79000, 9800) == base
    assert canonical_id("Peugeot", "208", 2018, 83000, 10000) != base
    assert canonical_id("Peugeot", "208", 2019, 80000, 10000) != base
    assert canonical_id("Peugeot", "208", 2018, 80000, 10300) != base


def test_normalize_builds_canonical_listing() -> None:
    raw = RawListing(
        title="Peugeot 208 1.2 PureTech 82ch Active",
        url="/annonce/42",
        price="9 490 €",
        year="2018",
        mileage="67 000 km",
        city=" Lyon ",
        external_id="42",
        gearbox="Manuelle",
    )
    criteria = SearchCriteria(brand="Peugeot", model="208")

    listing = normalize(raw, "leboncoin", criteria, base_url="https://www.leboncoin.fr")

    assert listing.id == "leboncoin_42"
    assert listing.url == "https://www.leboncoin.fr/annonce/42"
    assert listing.brand == "Peugeot"
    assert listing.model == "208"
    assert listing.price == 949000
    assert listing.price_eur == 9490.0
    assert listing.year == 2018
    assert listing.mileage == 67000
    assert listing.city == "Lyon"
    assert listing.gearbox == "manuelle"
    assert listing.canonical_id == canonical_id("Peugeot", "208", 2018, 67000, 9490)


def test_normalize_falls_back_to_title_words_and_url_hash() -> None:
    raw = RawListing(title="Vends Renault Clio IV diesel", url="https://example.test/a/1")

    listing = normalize(raw, "paruvendu")

    assert listing.brand == "Renault"
    assert listing.model == "Clio"
    assert listing.fuel == "diesel"
    assert listing.price is None
    assert len(listing.external_id) == 16
    assert listing.id == f"paruvendu_{listing.external_id}"


def test_explicit_parser_fields_win_over_title() -> None:
    raw = RawListing(title="Superbe citadine", url="https://example.test/a/2", brand="Toyota", model="Yaris")

    listing = normalize(raw, "autoscout24", SearchCriteria(brand="Peugeot", model="208"))

    assert (listing.brand, listing.model) == ("Toyota", "Yaris")
