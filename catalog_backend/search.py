"""
catalog_backend.search — Search collaborator used by the listing endpoints.

The API depends only on the SearchBackend protocol. InMemorySearch is the
default backend: it scans the per-request record list.

InMemorySearch semantics:
    - query: case-insensitive substring over id, title and abstract.
    - collections: record collection must be one of them (empty = any).
    - filters: exact, case-sensitive equality per PROPERTY_FILTER_KEYS.
      Geography keys go through GeographyFilter, so continent="global"
      matches globally scoped records.
    - Results ordered by record id. offset < 0 → 0, limit clamped to
      [0, MAX_PAGE_SIZE].
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Iterable, Mapping, Protocol, Sequence

from catalog_backend.constants import MAX_PAGE_SIZE
from catalog_backend.geography import GeographyFilter
from catalog_backend.records import Record

# Query parameter → record accessor for non-geography filters.
_FIELD_ACCESSORS: dict[str, Callable[[Record], str]] = {
    "collection": lambda r: r.properties.collection,
    "type": lambda r: r.type,
    "title": lambda r: r.properties.title,
    "owner": lambda r: r.geo.owner,
    "data_format": lambda r: r.geo.data_format,
    "status": lambda r: r.geo.implementation_status,
    "implementation_status": lambda r: r.geo.implementation_status,
    "geographic_scope": lambda r: r.geo.geographic_scope,
    "database_table": lambda r: r.geo.database_table,
    "v6_job_file": lambda r: r.geo.v6_job_file,
    "v6_job_type": lambda r: r.geo.v6_job_type,
    "s3_path": lambda r: r.geo.s3_path,
}

# Query parameter → GeographyFilter field.
_GEO_KEYS: dict[str, str] = {
    "continent": "continent",
    "country": "country",
    "state": "state",
    "admin2": "county",
    "city": "city",
}

PROPERTY_FILTER_KEYS: tuple[str, ...] = tuple(_GEO_KEYS) + tuple(_FIELD_ACCESSORS)


@dataclass(frozen=True, slots=True)
class SearchResult:
    matched: int
    records: list[Record] = field(default_factory=list)


class SearchBackend(Protocol):
    def search(
        self,
        query: str = "",
        filters: Mapping[str, str] | None = None,
        offset: int = 0,
        limit: int = MAX_PAGE_SIZE,
        collections: Sequence[str] = (),
    ) -> SearchResult:
        ...


def clamp_page(offset: int, limit: int) -> tuple[int, int]:
    return max(offset, 0), min(max(limit, 0), MAX_PAGE_SIZE)


class InMemorySearch:
    """Linear scan over a record list."""

    def __init__(self, records: Iterable[Record]) -> None:
        self._records = sorted(records, key=lambda r: r.id)

    def search(
        self,
        query: str = "",
        filters: Mapping[str, str] | None = None,
        offset: int = 0,
        limit: int = MAX_PAGE_SIZE,
        collections: Sequence[str] = (),
    ) -> SearchResult:
        filters = dict(filters or {})
        unknown = set(filters) - set(PROPERTY_FILTER_KEYS)
        if unknown:
            raise ValueError(f"Unknown property filter(s): {sorted(unknown)}")

        geo_filter = GeographyFilter(**{
            _GEO_KEYS[key]: value for key, value in filters.items() if key in _GEO_KEYS and value
        })
        predicates = [
            (_FIELD_ACCESSORS[key], value)
            for key, value in filters.items()
            if key in _FIELD_ACCESSORS and value
        ]
        needle = query.strip().lower()
        wanted_collections = {c for c in collections if c}

        matched: list[Record] = []
        for record in self._records:
            if wanted_collections and record.properties.collection not in wanted_collections:
                continue
            if needle and not _text_matches(record, needle):
                continue
            if not geo_filter.matches(record):
                continue
            if any(accessor(record) != value for accessor, value in predicates):
                continue
            matched.append(record)

        offset, limit = clamp_page(offset, limit)
        return SearchResult(matched=len(matched), records=matched[offset:offset + limit])


def _text_matches(record: Record, needle: str) -> bool:
    return (
        needle in record.id.lower()
        or needle in record.properties.title.lower()
        or needle in record.properties.abstract.lower()
    )
