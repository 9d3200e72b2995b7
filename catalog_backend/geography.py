"""
catalog_backend.geography — Hierarchical geography filter.

A GeographyFilter is an AND over five optional levels. Empty levels are
unconstrained. Matching is exact and case-sensitive; callers normalize
input (the HTTP layer lowercases and strips query parameters).

The continent level carries one carve-out: "global" resources have no
continent, so continent="global" tests geographic_scope == "global"
instead.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from catalog_backend.constants import GLOBAL_SCOPE, SUB_GEOGRAPHY, Dimension
from catalog_backend.records import Record


@dataclass(frozen=True, slots=True)
class GeographyFilter:
    continent: str = ""
    country: str = ""
    state: str = ""
    county: str = ""
    city: str = ""

    @classmethod
    def normalized(
        cls,
        continent: Optional[str] = None,
        country: Optional[str] = None,
        state: Optional[str] = None,
        county: Optional[str] = None,
        city: Optional[str] = None,
    ) -> GeographyFilter:
        """Build from raw user input: None → "", lowercased, stripped."""

        def _norm(value: Optional[str]) -> str:
            return (value or "").strip().lower()

        return cls(
            continent=_norm(continent),
            country=_norm(country),
            state=_norm(state),
            county=_norm(county),
            city=_norm(city),
        )

    # -- matching -----------------------------------------------------------

    def matches(self, record: Record) -> bool:
        geo = record.geo
        if self.continent:
            if self.continent == GLOBAL_SCOPE:
                if geo.geographic_scope != GLOBAL_SCOPE:
                    return False
            elif geo.continent != self.continent:
                return False
        if self.country and geo.country != self.country:
            return False
        if self.state and geo.state_province != self.state:
            return False
        if self.county and geo.admin2 != self.county:
            return False
        if self.city and geo.city != self.city:
            return False
        return True

    def apply(self, records: Iterable[Record]) -> list[Record]:
        """Matching records, input order preserved."""
        if self.is_empty:
            return list(records)
        return [r for r in records if self.matches(r)]

    # -- description --------------------------------------------------------

    @property
    def is_empty(self) -> bool:
        return not (self.continent or self.country or self.state or self.county or self.city)

    @property
    def level(self) -> Optional[Dimension]:
        """Most specific constrained level, or None when unconstrained."""
        for dimension, value in self._levels():
            if value:
                return dimension
        return None

    @property
    def name(self) -> str:
        for _, value in self._levels():
            if value:
                return value
        return ""

    @property
    def child_dimension(self) -> Optional[Dimension]:
        """Dimension used to drill one level down from this filter."""
        level = self.level
        if level is None:
            return None
        return SUB_GEOGRAPHY.get(level)

    def to_dict(self) -> dict[str, str]:
        return {
            "continent": self.continent,
            "country": self.country,
            "state": self.state,
            "county": self.county,
            "city": self.city,
        }

    def _levels(self) -> tuple[tuple[Dimension, str], ...]:
        return (
            (Dimension.CITY, self.city),
            (Dimension.COUNTY, self.county),
            (Dimension.STATE, self.state),
            (Dimension.COUNTRY, self.country),
            (Dimension.CONTINENT, self.continent),
        )
