"""
passes.py - Plans the strict / relaxed / opportunity passes for a search.
Each pass loosens the criteria so sparse searches still surface listings.
"""

import math
from dataclasses import replace
from typing import Optional

from config import RELAXATION, SEARCH
from models import PASS_OPPORTUNITY, PASS_RELAXED, PASS_STRICT, PassSpec, SearchCriteria


class PassPlanner:
    def __init__(
        self,
        price_ceiling_pct: float = None,
        mileage_pct: float = None,
        year_span_pct: float = None,
        relaxed_below: int = None,
        opportunity_below: int = None,
    ):
        self.price_ceiling_pct = _pick(price_ceiling_pct, RELAXATION.get("price_ceiling_pct", 10))
        self.mileage_pct = _pick(mileage_pct, RELAXATION.get("mileage_pct", 20))
        self.year_span_pct = _pick(year_span_pct, RELAXATION.get("year_span_pct", 20))
        self.relaxed_below = int(_pick(relaxed_below, SEARCH.get("relaxed_below", 10)))
        self.opportunity_below = int(_pick(opportunity_below, SEARCH.get("opportunity_below", 5)))

    def passes(self, criteria: SearchCriteria) -> list[PassSpec]:
        """Return the ordered passes for a search."""
        return [
            PassSpec(PASS_STRICT, criteria),
            PassSpec(PASS_RELAXED, self.relax(criteria), run_below=self.relaxed_below),
            PassSpec(PASS_OPPORTUNITY, self.opportunity(criteria), run_below=self.opportunity_below),
        ]

    def relax(self, criteria: SearchCriteria) -> SearchCriteria:
        """
        Widen the numeric bounds and drop the location filter:
        - max price +price_ceiling_pct
        - max mileage +mileage_pct, min mileage -mileage_pct
        - year bounds widened by year_span_pct of their span (at least one year)
        """
        max_price = criteria.max_price
        if max_price is not None:
            max_price = int(math.ceil(max_price * (100 + self.price_ceiling_pct) / 100))

        max_mileage = criteria.max_mileage
        if max_mileage is not None:
            max_mileage = int(math.ceil(max_mileage * (100 + self.mileage_pct) / 100))
        min_mileage = criteria.min_mileage
        if min_mileage is not None:
            min_mileage = max(0, int(math.floor(min_mileage * (100 - self.mileage_pct) / 100)))

        min_year, max_year = criteria.min_year, criteria.max_year
        if min_year is not None or max_year is not None:
            span = (max_year - min_year) if (min_year is not None and max_year is not None) else 0
            widen = max(1, int(round(span * self.year_span_pct / 100)))
            if min_year is not None:
                min_year -= widen
            if max_year is not None:
                max_year += widen

        return replace(
            criteria,
            max_price=max_price,
            min_mileage=min_mileage,
            max_mileage=max_mileage,
            min_year=min_year,
            max_year=max_year,
            zip_code=None,
            radius_km=None,
        )

    def opportunity(self, criteria: SearchCriteria) -> SearchCriteria:
        """Brand only. Every other bound and filter is dropped."""
        return SearchCriteria(
            brand=criteria.brand,
            sites=criteria.sites,
            excluded_sites=criteria.excluded_sites,
        )

    def should_run(self, spec: PassSpec, collected: int) -> bool:
        """A relaxed pass only runs while results are scarce."""
        return spec.run_below is None or collected < spec.run_below

    def should_continue(self, source, last_item_count: int) -> bool:
        """Sources flagged skip_if_no_results stop after an empty pass."""
        if getattr(source, "skip_if_no_results", False) and last_item_count == 0:
            return False
        return True


def _pick(value, default) -> Optional[float]:
    return default if value is None else value
