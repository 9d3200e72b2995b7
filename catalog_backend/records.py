"""
catalog_backend.records — Catalog record model and per-request loader.

A catalog record is one flat entry of the catalog JSON array:

    {
      "id": str,
      "type": str,
      "properties": {
        "title": str,
        "collection": str,          # primary classification, e.g. "existing_db"
        "gro_metadata": {
          "continent", "country", "state_province", "admin2", "city",
          "geographic_scope", "data_format", "implementation_status",
          "owner", "s3_path", "database_table", "v6_job_file", ...
        },
        ...
      },
      ...
    }

Design contract:
    - Deserialization is tolerant: missing or null attributes become "",
      unknown keys are kept verbatim and echoed back by model_dump().
    - Records are frozen once parsed.
    - load_records() reads the file on every call. There is NO cache:
      each request observes the catalog as it is on disk at that moment.
    - An unreadable or unparseable catalog raises CatalogUnavailableError.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Iterable

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from catalog_backend.constants import Dimension

logger = logging.getLogger("catalog.records")


# ---------------------------------------------------------------------------
# Model
# ---------------------------------------------------------------------------

class GroMetadata(BaseModel):
    """Geography and classification attributes of one record."""

    model_config = ConfigDict(extra="allow", frozen=True)

    implementation_status: str = ""
    data_format: str = ""
    geographic_scope: str = ""
    owner: str = ""
    update_frequency: str = ""
    continent: str = ""
    country: str = ""
    state_province: str = ""
    admin2: str = ""
    city: str = ""
    file_path: str = ""
    s3_path: str = ""
    database_table: str = ""
    v6_job_file: str = ""
    v6_job_type: str = ""
    file_size_mb: str = ""

    @field_validator("*", mode="before")
    @classmethod
    def _coerce_to_str(cls, v: Any) -> str:
        # file_size_mb arrives as a number in some exports
        if v is None:
            return ""
        return v if isinstance(v, str) else str(v)


class RecordProperties(BaseModel):
    model_config = ConfigDict(extra="allow", frozen=True)

    title: str = ""
    abstract: str = ""
    collection: str = ""
    gro_metadata: GroMetadata = Field(default_factory=GroMetadata)

    @field_validator("title", "abstract", "collection", mode="before")
    @classmethod
    def _none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("gro_metadata", mode="before")
    @classmethod
    def _null_metadata(cls, v: Any) -> Any:
        return {} if v is None else v


_DIMENSION_FIELDS: dict[Dimension, str] = {
    Dimension.CONTINENT: "continent",
    Dimension.COUNTRY: "country",
    Dimension.STATE: "state_province",
    Dimension.COUNTY: "admin2",
    Dimension.CITY: "city",
    Dimension.DATA_FORMAT: "data_format",
    Dimension.IMPLEMENTATION_STATUS: "implementation_status",
    Dimension.OWNER: "owner",
}


class Record(BaseModel):
    """One immutable catalog entry."""

    model_config = ConfigDict(extra="allow", frozen=True)

    id: str = ""
    type: str = ""
    properties: RecordProperties = Field(default_factory=RecordProperties)

    @property
    def geo(self) -> GroMetadata:
        return self.properties.gro_metadata

    @property
    def collection(self) -> str:
        return self.properties.collection

    def value_of(self, dimension: Dimension) -> str:
        """Return the record's value for a facet dimension ("" if unset)."""
        if dimension is Dimension.COLLECTION:
            return self.properties.collection
        return getattr(self.properties.gro_metadata, _DIMENSION_FIELDS[dimension])

    def summary(self) -> dict[str, str]:
        """Compact reference used inside tree and list payloads."""
        return {
            "id": self.id,
            "title": self.properties.title,
            "collection": self.properties.collection,
        }


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class CatalogUnavailableError(Exception):
    """Raised when the catalog JSON file cannot be read or parsed."""

    def __init__(self, path: Path, detail: str) -> None:
        self.path = path
        self.detail = detail
        super().__init__(detail)


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

_RECORD_LIST: TypeAdapter[list[Record]] = TypeAdapter(list[Record])


def parse_records(payload: Any) -> list[Record]:
    """Validate an already-decoded catalog array into Records."""
    return _RECORD_LIST.validate_python(payload)


def load_records(path: Path) -> list[Record]:
    """Read and parse the catalog file. Called once per request.

    Raises:
        CatalogUnavailableError: file missing, unreadable, not JSON, or not
            an array of record objects.
    """
    try:
        raw = path.read_bytes()
    except OSError as exc:
        logger.error(json.dumps({
            "event": "catalog_read_failed",
            "path": str(path),
            "error_type": type(exc).__name__,
        }))
        raise CatalogUnavailableError(path, f"Failed to load catalog: {exc.strerror or exc}") from exc

    try:
        records = _RECORD_LIST.validate_json(raw)
    except ValidationError as exc:
        logger.error(json.dumps({
            "event": "catalog_parse_failed",
            "path": str(path),
            "error_count": exc.error_count(),
        }))
        raise CatalogUnavailableError(path, "Failed to parse catalog.") from exc

    logger.debug(json.dumps({
        "event": "catalog_loaded",
        "path": str(path),
        "records": len(records),
    }))
    return records


def find_record(records: Iterable[Record], record_id: str) -> Record | None:
    """First record with the given id, or None."""
    for record in records:
        if record.id == record_id:
            return record
    return None
