"""
catalog_backend.metadata_store — Unified index over the introspection files.

Twelve introspection files, each written by a different offline scanner,
are loaded once at process start and indexed for one polymorphic lookup:

    job file path   → JobEntry
    table name      → DatabaseTable
    storage key     → CsvFile | ParquetFile | ... | PdfFile  (by declared format)

plus a README index used to attach geographic context to geography pages.

Design contract:
    - Each file is loaded independently. A missing, unreadable or
      malformed file leaves its category empty, records a LoadWarning and
      is logged at WARNING. Loading never raises for a single file.
    - Read-only after load. Safe to share across request threads without
      locks.
    - Duplicate keys inside one format: the last entry in the file wins.
    - A lookup miss returns None. It is not an error.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional

from pydantic import TypeAdapter, ValidationError

from catalog_backend.constants import (
    DEFAULT_STORAGE_PREFIX,
    FILE_KINDS,
    FORMAT_ALIASES,
    INTROSPECTION_FILES,
    IntrospectionKind,
)
from catalog_backend.introspection import (
    FILE_ENTRY_MODELS,
    JOB_DOCUMENT,
    README_DOCUMENT,
    DatabaseSchema,
    DatabaseTable,
    FileEntry,
    Introspection,
    JobEntry,
    ReadmeEntry,
)

if TYPE_CHECKING:
    from catalog_backend.records import Record

logger = logging.getLogger("catalog.metadata")

# Categories in the order the files are loaded and reported.
CATEGORIES: tuple[str, ...] = tuple(INTROSPECTION_FILES)

# README geography levels, most specific first.
README_LEVELS: tuple[str, ...] = ("city", "county", "state", "country", "continent")


@dataclass(frozen=True, slots=True)
class LoadWarning:
    """One introspection file that could not be loaded."""

    category: str
    path: str
    reason: str

    def to_dict(self) -> dict[str, str]:
        return {"category": self.category, "path": self.path, "reason": self.reason}


class _DocumentError(ValueError):
    pass


def _read_document(path: Path) -> Any:
    with open(path, "r", encoding="utf-8") as fh:
        return json.load(fh)


def _unwrap(document: Any, list_key: str) -> list[Any]:
    if not isinstance(document, dict):
        raise _DocumentError(f"expected a JSON object with '{list_key}'")
    items = document.get(list_key)
    if items is None:
        return []
    if not isinstance(items, list):
        raise _DocumentError(f"'{list_key}' is not a list")
    return items


def _describe(exc: Exception) -> str:
    if isinstance(exc, ValidationError):
        return f"validation failed ({exc.error_count()} errors)"
    if isinstance(exc, json.JSONDecodeError):
        return f"invalid JSON at line {exc.lineno}"
    if isinstance(exc, RecursionError):
        return "invalid JSON: nesting too deep"
    if isinstance(exc, FileNotFoundError):
        return "file not found"
    if isinstance(exc, OSError):
        return f"unreadable: {exc.strerror or type(exc).__name__}"
    return str(exc)


# ---------------------------------------------------------------------------
# MetadataStore
# ---------------------------------------------------------------------------

class MetadataStore:
    """Immutable introspection index. Build with MetadataStore.load()."""

    def __init__(
        self,
        *,
        database: Optional[DatabaseSchema] = None,
        files: Optional[dict[IntrospectionKind, dict[str, FileEntry]]] = None,
        jobs: Optional[dict[str, JobEntry]] = None,
        readmes: Optional[list[ReadmeEntry]] = None,
        storage_prefix: str = DEFAULT_STORAGE_PREFIX,
        warnings: tuple[LoadWarning, ...] = (),
    ) -> None:
        self._database = database
        files = files or {}
        self._files: dict[IntrospectionKind, dict[str, FileEntry]] = {
            kind: dict(files.get(kind, {})) for kind in FILE_KINDS
        }
        self._jobs: dict[str, JobEntry] = dict(jobs or {})
        self._readmes: tuple[ReadmeEntry, ...] = tuple(readmes or ())
        self._storage_prefix = storage_prefix
        self._warnings = tuple(warnings)

    # -- construction -------------------------------------------------------

    @classmethod
    def load(
        cls,
        base_dir: Path,
        storage_prefix: str = DEFAULT_STORAGE_PREFIX,
    ) -> MetadataStore:
        """Load every introspection file under base_dir.

        Never raises for an individual file; see .warnings.
        """
        base_dir = Path(base_dir)
        warnings: list[LoadWarning] = []
        database: Optional[DatabaseSchema] = None
        files: dict[IntrospectionKind, dict[str, FileEntry]] = {}
        jobs: dict[str, JobEntry] = {}
        readmes: list[ReadmeEntry] = []

        for category, (filename, list_key) in INTROSPECTION_FILES.items():
            path = base_dir / filename
            try:
                document = _read_document(path)
                if category == "database":
                    database = DatabaseSchema.model_validate(document)
                elif category == "jobs":
                    jobs = JOB_DOCUMENT.validate_python(document)
                elif category == "readmes":
                    readmes = README_DOCUMENT.validate_python(document)
                else:
                    kind = IntrospectionKind(category)
                    files[kind] = _index_files(kind, _unwrap(document, list_key or ""))
            except (OSError, ValueError, RecursionError) as exc:
                # json.JSONDecodeError and pydantic.ValidationError are ValueErrors.
                # RecursionError comes from arrays or objects nested past the
                # interpreter limit.
                warning = LoadWarning(category=category, path=str(path), reason=_describe(exc))
                warnings.append(warning)
                logger.warning(json.dumps({
                    "event": "introspection_load_failed",
                    **warning.to_dict(),
                }))
                continue

            logger.debug(json.dumps({
                "event": "introspection_loaded",
                "category": category,
                "path": str(path),
            }))

        store = cls(
            database=database,
            files=files,
            jobs=jobs,
            readmes=readmes,
            storage_prefix=storage_prefix,
            warnings=tuple(warnings),
        )
        logger.info(json.dumps({
            "event": "metadata_store_loaded",
            "base_dir": str(base_dir),
            "counts": store.category_counts(),
            "warnings": len(warnings),
        }))
        return store

    # -- inspection ---------------------------------------------------------

    @property
    def warnings(self) -> tuple[LoadWarning, ...]:
        return self._warnings

    @property
    def storage_prefix(self) -> str:
        return self._storage_prefix

    @property
    def database(self) -> Optional[DatabaseSchema]:
        return self._database

    def category_counts(self) -> dict[str, int]:
        """Entries per category, in load order."""
        counts: dict[str, int] = {}
        for category in CATEGORIES:
            if category == "database":
                counts[category] = len(self._database.tables) if self._database else 0
            elif category == "jobs":
                counts[category] = len(self._jobs)
            elif category == "readmes":
                counts[category] = len(self._readmes)
            else:
                counts[category] = len(self._files[IntrospectionKind(category)])
        return counts

    # -- lookup -------------------------------------------------------------

    def storage_key(self, storage_path: str) -> str:
        """Strip the bucket prefix from a storage path."""
        if self._storage_prefix and storage_path.startswith(self._storage_prefix):
            return storage_path[len(self._storage_prefix):]
        return storage_path

    def lookup(
        self,
        record_id: str = "",
        storage_path: str = "",
        table_name: str = "",
        declared_format: str = "",
        job_file_path: str = "",
    ) -> Optional[Introspection]:
        """Resolve a record's introspection entry.

        Precedence: job file path, then database table name, then storage
        path routed by declared format. A miss at one step falls through to
        the next one.
        """
        if job_file_path:
            job = self._jobs.get(job_file_path)
            if job is not None:
                return job

        if table_name and self._database is not None:
            for table in self._database.tables:
                if table.name == table_name:
                    return table

        if storage_path:
            kind = FORMAT_ALIASES.get(declared_format.strip().lower())
            if kind is not None:
                entry = self._files[kind].get(self.storage_key(storage_path))
                if entry is not None:
                    return entry

        logger.debug(json.dumps({"event": "introspection_miss", "record_id": record_id}))
        return None

    def lookup_record(self, record: Record) -> Optional[Introspection]:
        geo = record.geo
        return self.lookup(
            record_id=record.id,
            storage_path=geo.s3_path,
            table_name=geo.database_table,
            declared_format=geo.data_format,
            job_file_path=geo.v6_job_file,
        )

    def find_readme_for_geography(
        self,
        city: str = "",
        county: str = "",
        state: str = "",
        country: str = "",
        continent: str = "",
    ) -> Optional[ReadmeEntry]:
        """Most specific README describing the given geography, or None."""
        values = {
            "city": city,
            "county": county,
            "state": state,
            "country": country,
            "continent": continent,
        }
        for level in README_LEVELS:
            value = values[level]
            if not value:
                continue
            for readme in self._readmes:
                if readme.describes(level, value):
                    return readme
        return None


def _index_files(kind: IntrospectionKind, items: list[Any]) -> dict[str, FileEntry]:
    adapter: TypeAdapter[list[FileEntry]] = TypeAdapter(list[FILE_ENTRY_MODELS[kind]])  # type: ignore[valid-type]
    index: dict[str, FileEntry] = {}
    for entry in adapter.validate_python(items):
        if entry.s3_key:
            index[entry.s3_key] = entry
    return index
