"""
criteria.py - Parses and validates search requests into SearchCriteria.
Validation runs before any source is contacted.
"""

import math
from dataclasses import asdict, fields
from typing import Optional, Union

from errors import ValidationError
from models import SearchCriteria

# camelCase request keys -> SearchCriteria fields
REQUEST_KEYS = {
    "brand": "brand",
    "model": "model",
    "minPrice": "min_price",
    "maxPrice": "max_price",
    "minYear": "min_year",
    "maxYear": "max_year",
    "minMileage": "min_mileage",
    "maxMileage": "max_mileage",
    "fuelType": "fuel",
    "fuel_type": "fuel",
    "gearbox": "gearbox",
    "bodyType": "body_type",
    "zipCode": "zip_code",
    "radiusKm": "radius_km",
    "sites": "sites",
    "excludedSites": "excluded_sites",
}

INT_FIELDS = (
    "min_price", "max_price", "min_year", "max_year",
    "min_mileage", "max_mileage", "radius_km",
)
TEXT_FIELDS = ("brand", "model", "fuel", "gearbox", "body_type", "zip_code")
RANGES = (
    ("min_price", "max_price"),
    ("min_year", "max_year"),
    ("min_mileage", "max_mileage"),
)


def from_request(request: Union[dict, SearchCriteria]) -> SearchCriteria:
    """
    Build a validated SearchCriteria from a request dict.
    Accepts camelCase or snake_case keys; unknown keys are ignored.
    Raises ValidationError on the first problem found.
    """
    if isinstance(request, SearchCriteria):
        return validate(request)
    if not isinstance(request, dict):
        raise ValidationError("Search request must be an object")

    known = {f.name for f in fields(SearchCriteria)}
    values = {}
    for key, value in request.items():
        name = REQUEST_KEYS.get(key, key)
        if name in known:
            values[name] = value

    for name in TEXT_FIELDS:
        if name in values:
            values[name] = _text(values[name], name)
    for name in INT_FIELDS:
        if name in values:
            values[name] = _integer(values[name], name)
    for name in ("sites", "excluded_sites"):
        if name in values:
            values[name] = _site_list(values[name], name)

    if not values.get("brand"):
        raise ValidationError("brand is required", field="brand")

    return validate(SearchCriteria(**values))


def validate(criteria: SearchCriteria) -> SearchCriteria:
    """Check required fields and numeric bounds. Returns the criteria unchanged."""
    if not criteria.brand or not str(criteria.brand).strip():
        raise ValidationError("brand is required", field="brand")

    for name in INT_FIELDS:
        value = getattr(criteria, name)
        if value is not None and value < 0:
            raise ValidationError(f"{name} must be non-negative", field=name)

    for low_name, high_name in RANGES:
        low = getattr(criteria, low_name)
        high = getattr(criteria, high_name)
        if low is not None and high is not None and low > high:
            raise ValidationError(f"{low_name} must not exceed {high_name}", field=low_name)

    return criteria


def normalized(criteria: SearchCriteria) -> dict:
    """
    Canonical form of the criteria for cache keys: lowercased text,
    sorted site lists, no empty values.
    """
    out = {}
    for name, value in asdict(criteria).items():
        if value in (None, "", (), []):
            continue
        if isinstance(value, str):
            value = value.strip().lower()
        elif isinstance(value, (list, tuple)):
            value = sorted(str(v).lower() for v in value)
        out[name] = value
    return out


def _text(value, name: str) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, (str, int)) or isinstance(value, bool):
        raise ValidationError(f"{name} must be a string", field=name)
    value = str(value).strip()
    return value or None


def _integer(value, name: str) -> Optional[int]:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be a number", field=name)
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValidationError(f"{name} must be a finite number", field=name)
        return int(round(value))
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        cleaned = value.replace("\u00a0", "").replace("\u202f", "").replace(" ", "")
        try:
            number = float(cleaned)
        except ValueError:
            raise ValidationError(f"{name} must be a number", field=name) from None
        if not math.isfinite(number):
            raise ValidationError(f"{name} must be a finite number", field=name)
        return int(number)
    raise ValidationError(f"{name} must be a number", field=name)


def _site_list(value, name: str) -> tuple:
    if value is None:
        return ()
    if isinstance(value, str):
        value = value.split(",")
    if not isinstance(value, (list, tuple)):
        raise ValidationError(f"{name} must be a list of source keys", field=name)
    return tuple(str(v).strip().lower() for v in value if str(v).strip())
