"""
catalog_backend.facets — Per-dimension counts with a fixed presentation order.

count_by() is one linear pass over the records. Empty values are excluded:
there is no "unknown" bucket.

ordered_facets() is the ONLY ordering used for facet presentation:
count descending, then value ascending. Ties therefore render the same way
on every request.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from catalog_backend.constants import JOB_COLLECTIONS, Dimension
from catalog_backend.records import Record


@dataclass(frozen=True, slots=True)
class FacetCount:
    value: str
    count: int

    def to_dict(self) -> dict[str, Any]:
        return {"value": self.value, "count": self.count}


def count_by(records: Iterable[Record], dimension: Dimension) -> dict[str, int]:
    """{value: count} for every distinct non-empty value of dimension."""
    counts: Counter[str] = Counter()
    for record in records:
        value = record.value_of(dimension)
        if value:
            counts[value] += 1
    return dict(counts)


def ordered_facets(counts: Mapping[str, int]) -> list[FacetCount]:
    ordered = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    return [FacetCount(value=value, count=count) for value, count in ordered]


def facet_list(records: Iterable[Record], dimension: Dimension) -> list[dict[str, Any]]:
    """count_by + ordered_facets, serialized."""
    return [f.to_dict() for f in ordered_facets(count_by(records, dimension))]


def catalog_overview(records: list[Record]) -> dict[str, Any]:
    """Landing-page statistics for a record set."""
    collections = count_by(records, Dimension.COLLECTION)
    job_records = sum(collections.get(code, 0) for code in JOB_COLLECTIONS)
    return {
        "total": len(records),
        "data_records": len(records) - job_records,
        "collections": [f.to_dict() for f in ordered_facets(collections)],
        "continents": facet_list(records, Dimension.CONTINENT),
        "countries": facet_list(records, Dimension.COUNTRY),
    }
