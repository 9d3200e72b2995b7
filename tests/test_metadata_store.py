"""
tests/test_metadata_store.py — Introspection loading and polymorphic lookup.

Covers:
    - Loading all twelve introspection files from the fixture directory
    - Per-category load isolation (one bad file never blocks the others)
    - Lookup precedence: job path → table name → storage path
    - Fall-through on a miss at an earlier step
    - Format alias table and bucket prefix stripping
    - Last-wins on duplicate storage keys
    - README geography specificity order
"""

from __future__ import annotations

import json
import shutil
from pathlib import Path

import pytest

from catalog_backend.constants import FORMAT_ALIASES, INTROSPECTION_FILES, IntrospectionKind
from catalog_backend.introspection import (
    CsvFile,
    DatabaseTable,
    JobEntry,
    ParquetFile,
    introspection_payload,
)
from catalog_backend.metadata_store import CATEGORIES, LoadWarning, MetadataStore
from catalog_backend.records import Record

INTROSPECTION_DIR = Path(__file__).parent / "data" / "introspection"

JOB_PATH = "v6/jobs/africa/ml/bamako/bootstrap/010_roads.yml"


@pytest.fixture(scope="module")
def store() -> MetadataStore:
    return MetadataStore.load(INTROSPECTION_DIR)


@pytest.fixture()
def data_copy(tmp_path: Path) -> Path:
    """Writable copy of the fixture introspection directory."""
    target = tmp_path / "introspection"
    shutil.copytree(INTROSPECTION_DIR, target)
    return target


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

class TestLoad:
    """Loading the fixture directory."""

    def test_no_warnings(self, store: MetadataStore):
        assert store.warnings == ()

    def test_category_counts(self, store: MetadataStore):
        counts = store.category_counts()
        assert list(counts) == list(CATEGORIES)
        assert counts["database"] == 2
        assert counts["csv"] == 3  # duplicate key collapsed
        assert counts["parquet"] == 1
        assert counts["shapefile"] == 1
        assert counts["geopackage"] == 1
        assert counts["excel"] == 1
        assert counts["json"] == 1
        assert counts["filegdb"] == 1
        assert counts["png"] == 1
        assert counts["pdf"] == 1
        assert counts["jobs"] == 2
        assert counts["readmes"] == 3

    def test_twelve_categories(self):
        assert len(INTROSPECTION_FILES) == 12

    def test_null_fields_fall_back_to_defaults(self, store: MetadataStore):
        table = store.lookup(table_name="pois_ml")
        assert isinstance(table, DatabaseTable)
        assert table.indexes == []

    def test_empty_directory_yields_warnings_not_errors(self, tmp_path: Path):
        empty = MetadataStore.load(tmp_path)
        assert len(empty.warnings) == 12
        assert all(c == 0 for c in empty.category_counts().values())
        assert all(w.reason == "file not found" for w in empty.warnings)


class TestLoadIsolation:
    """A broken file empties only its own category."""

    def test_invalid_json(self, data_copy: Path):
        (data_copy / "parquet_introspection.json").write_text("{oops", encoding="utf-8")
        store = MetadataStore.load(data_copy)

        assert [w.category for w in store.warnings] == ["parquet"]
        assert store.warnings[0].reason.startswith("invalid JSON")
        counts = store.category_counts()
        assert counts["parquet"] == 0
        assert counts["csv"] == 3
        assert counts["jobs"] == 2

    def test_deeply_nested_json(self, data_copy: Path):
        depth = 100_000
        (data_copy / "pdf_introspection.json").write_text(
            "[" * depth + "]" * depth, encoding="utf-8"
        )
        store = MetadataStore.load(data_copy)

        assert [w.category for w in store.warnings] == ["pdf"]
        assert store.warnings[0].reason.startswith("invalid JSON")
        counts = store.category_counts()
        assert counts["pdf"] == 0
        assert counts["csv"] == 3

    def test_wrong_document_shape(self, data_copy: Path):
        (data_copy / "png_introspection.json").write_text(json.dumps([1, 2]), encoding="utf-8")
        store = MetadataStore.load(data_copy)
        assert [w.category for w in store.warnings] == ["png"]
        assert store.category_counts()["png"] == 0

    def test_validation_failure(self, data_copy: Path):
        (data_copy / "pdf_introspection.json").write_text(
            json.dumps({"pdfs": [{"s3_key": "x.pdf", "page_count": "many"}]}),
            encoding="utf-8",
        )
        store = MetadataStore.load(data_copy)
        assert len(store.warnings) == 1
        warning = store.warnings[0]
        assert isinstance(warning, LoadWarning)
        assert warning.category == "pdf"
        assert warning.path.endswith("pdf_introspection.json")
        assert "validation failed" in warning.reason

    def test_missing_list_key_is_empty_not_error(self, data_copy: Path):
        (data_copy / "excel_introspection.json").write_text("{}", encoding="utf-8")
        store = MetadataStore.load(data_copy)
        assert store.warnings == ()
        assert store.category_counts()["excel"] == 0

    def test_broken_job_file(self, data_copy: Path):
        (data_copy / "v6_job_metadata.json").write_text("[]", encoding="utf-8")
        store = MetadataStore.load(data_copy)
        assert [w.category for w in store.warnings] == ["jobs"]
        assert store.lookup(job_file_path=JOB_PATH) is None


# ---------------------------------------------------------------------------
# Lookup
# ---------------------------------------------------------------------------

class TestLookupPrecedence:
    """job path → table name → storage path."""

    def test_job_wins_over_table_and_storage(self, store: MetadataStore):
        entry = store.lookup(
            record_id="r",
            storage_path="s3://geosure-data-dev/population/mali.csv",
            table_name="roads_ml",
            declared_format="csv",
            job_file_path=JOB_PATH,
        )
        assert isinstance(entry, JobEntry)
        assert entry.kind is IntrospectionKind.JOB
        assert entry.dataset_id == "roads_ml"
        assert entry.raw_text.startswith("dataset_id")
        assert entry.parsed_fields["source"] == "osm"

    def test_table_wins_over_storage(self, store: MetadataStore):
        entry = store.lookup(
            storage_path="s3://geosure-data-dev/population/mali.csv",
            table_name="roads_ml",
            declared_format="csv",
        )
        assert isinstance(entry, DatabaseTable)
        assert entry.schema_name == "public"
        assert entry.row_count == 1200

    def test_unknown_job_falls_through_to_table(self, store: MetadataStore):
        entry = store.lookup(table_name="roads_ml", job_file_path="v6/jobs/none.yml")
        assert isinstance(entry, DatabaseTable)

    def test_unknown_table_falls_through_to_storage(self, store: MetadataStore):
        entry = store.lookup(
            storage_path="s3://geosure-data-dev/crime/la.parquet",
            table_name="no_such_table",
            declared_format="parquet",
        )
        assert isinstance(entry, ParquetFile)
        assert entry.columns[0].name == "incident_id"

    def test_all_empty_is_miss(self, store: MetadataStore):
        assert store.lookup(record_id="r") is None

    def test_unknown_format_is_miss(self, store: MetadataStore):
        entry = store.lookup(
            storage_path="s3://geosure-data-dev/population/mali.csv",
            declared_format="netcdf",
        )
        assert entry is None

    def test_key_in_other_format_map_is_miss(self, store: MetadataStore):
        entry = store.lookup(
            storage_path="s3://geosure-data-dev/population/mali.csv",
            declared_format="parquet",
        )
        assert entry is None


class TestStorageKeys:
    """Prefix stripping, aliases and duplicates."""

    def test_prefix_is_stripped(self, store: MetadataStore):
        assert store.storage_key("s3://geosure-data-dev/a/b.csv") == "a/b.csv"

    def test_unprefixed_path_used_verbatim(self, store: MetadataStore):
        assert store.storage_key("population/mali.csv") == "population/mali.csv"
        assert isinstance(
            store.lookup(storage_path="population/mali.csv", declared_format="csv"),
            CsvFile,
        )

    def test_custom_prefix(self):
        store = MetadataStore.load(INTROSPECTION_DIR, storage_prefix="gs://other/")
        assert store.storage_key("gs://other/population/mali.csv") == "population/mali.csv"
        assert store.storage_key("s3://geosure-data-dev/x.csv") == "s3://geosure-data-dev/x.csv"

    def test_format_alias_is_case_insensitive(self, store: MetadataStore):
        entry = store.lookup(
            storage_path="s3://geosure-data-dev/population/mali.csv",
            declared_format="  CSV ",
        )
        assert isinstance(entry, CsvFile)
        assert entry.columns[1].column_name == "population"

    @pytest.mark.parametrize(
        "declared, key, kind",
        [
            ("tsv", "population/mali.csv", IntrospectionKind.CSV),
            ("txt", "population/mali.csv", IntrospectionKind.CSV),
            ("shp", "boundaries/world.shp", IntrospectionKind.SHAPEFILE),
            ("shapefile", "boundaries/world.shp", IntrospectionKind.SHAPEFILE),
            ("gpkg", "roads/ml.gpkg", IntrospectionKind.GEOPACKAGE),
            ("gdb", "parcels/la.gdb", IntrospectionKind.FILEGDB),
            ("xlsx", "budget/2024.xlsx", IntrospectionKind.EXCEL),
            ("xls", "budget/2024.xlsx", IntrospectionKind.EXCEL),
            ("geojson", "gov/ca_permits.geojson", IntrospectionKind.JSON),
            ("image", "maps/bamako.png", IntrospectionKind.PNG),
            ("pdf", "reports/annual.pdf", IntrospectionKind.PDF),
        ],
    )
    def test_alias_routes_to_format_map(self, store: MetadataStore, declared, key, kind):
        entry = store.lookup(storage_path=f"s3://geosure-data-dev/{key}", declared_format=declared)
        assert entry is not None
        assert entry.kind is kind

    def test_alias_table_covers_every_file_kind(self):
        assert set(FORMAT_ALIASES.values()) == {
            IntrospectionKind.CSV,
            IntrospectionKind.PARQUET,
            IntrospectionKind.SHAPEFILE,
            IntrospectionKind.GEOPACKAGE,
            IntrospectionKind.EXCEL,
            IntrospectionKind.JSON,
            IntrospectionKind.FILEGDB,
            IntrospectionKind.PNG,
            IntrospectionKind.PDF,
        }

    def test_duplicate_key_last_wins(self, store: MetadataStore):
        entry = store.lookup(storage_path="population/dup.csv", declared_format="csv")
        assert isinstance(entry, CsvFile)
        assert entry.row_count == 2


class TestLookupRecord:
    """Record convenience wrapper and response envelope."""

    def test_record_resolves_by_storage_path(self, store: MetadataStore):
        record = Record.model_validate({
            "id": "csv-pop-ml",
            "properties": {"gro_metadata": {
                "data_format": "CSV",
                "s3_path": "s3://geosure-data-dev/population/mali.csv",
            }},
        })
        entry = store.lookup_record(record)
        assert isinstance(entry, CsvFile)

    def test_payload_envelope(self, store: MetadataStore):
        entry = store.lookup(table_name="roads_ml")
        payload = introspection_payload(entry)
        assert payload["kind"] == "database_table"
        assert payload["data"]["schema"] == "public"
        assert payload["data"]["columns"][0] == {"name": "id", "type": "integer"}

    def test_payload_for_miss(self):
        assert introspection_payload(None) is None

    def test_job_payload_uses_file_keys(self, store: MetadataStore):
        payload = introspection_payload(store.lookup(job_file_path=JOB_PATH))
        assert payload["kind"] == "job"
        assert set(payload["data"]) == {"path", "raw_yaml", "parsed", "dataset_id"}


# ---------------------------------------------------------------------------
# README geography context
# ---------------------------------------------------------------------------

class TestReadmeForGeography:
    """Most specific level first; the entry's own level must match."""

    def test_city_preferred_over_country(self, store: MetadataStore):
        readme = store.find_readme_for_geography(city="bamako", country="mali", continent="africa")
        assert readme is not None
        assert readme.path.endswith("bamako/README.md")
        assert readme.size == 31

    def test_country_ignores_city_level_entries(self, store: MetadataStore):
        # The bamako README also carries country=mali, but its level is city.
        readme = store.find_readme_for_geography(country="mali")
        assert readme is not None
        assert readme.path == "v6/jobs/africa/ml/README.md"

    def test_unknown_city_falls_back_to_state(self, store: MetadataStore):
        readme = store.find_readme_for_geography(
            city="fresno", state="california", country="united_states",
        )
        assert readme is not None
        assert readme.geography["level"] == "state"

    def test_no_match(self, store: MetadataStore):
        assert store.find_readme_for_geography(country="peru") is None

    def test_no_geography(self, store: MetadataStore):
        assert store.find_readme_for_geography() is None

    def test_continent_is_least_specific(self, data_copy: Path):
        readmes = json.loads((data_copy / "v6_readme_metadata.json").read_text(encoding="utf-8"))
        readmes.append({
            "path": "v6/jobs/africa/README.md",
            "content": "# Africa",
            "geography": {"level": "continent", "continent": "africa"},
            "size_bytes": 8,
        })
        (data_copy / "v6_readme_metadata.json").write_text(json.dumps(readmes), encoding="utf-8")
        store = MetadataStore.load(data_copy)

        assert store.find_readme_for_geography(continent="africa").path == "v6/jobs/africa/README.md"
        readme = store.find_readme_for_geography(country="mali", continent="africa")
        assert readme.path == "v6/jobs/africa/ml/README.md"
        assert store.find_readme_for_geography(continent="europe") is None

    def test_to_dict_uses_size_bytes(self, store: MetadataStore):
        readme = store.find_readme_for_geography(country="mali")
        assert readme.to_dict()["size_bytes"] == 27
