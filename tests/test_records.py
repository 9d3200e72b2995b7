"""
tests/test_records.py — Catalog record model and loader.

Covers:
    - Tolerant deserialization (missing / null attributes, extra keys)
    - Immutability
    - Dimension accessors
    - Loader failure modes (missing file, invalid JSON, wrong shape)
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from catalog_backend.constants import Dimension
from catalog_backend.records import (
    CatalogUnavailableError,
    Record,
    find_record,
    load_records,
    parse_records,
)

CATALOG_PATH = Path(__file__).parent / "data" / "catalog_records.json"


class TestRecordModel:
    """Tolerant, immutable record parsing."""

    def test_missing_attributes_are_empty_strings(self):
        record = Record.model_validate({"id": "r1"})
        assert record.properties.title == ""
        assert record.geo.continent == ""
        assert record.geo.v6_job_file == ""

    def test_null_gro_metadata(self):
        record = Record.model_validate({"id": "r1", "properties": {"gro_metadata": None}})
        assert record.geo.country == ""

    def test_null_values_become_empty(self):
        record = Record.model_validate({
            "id": "r1",
            "properties": {"abstract": None, "gro_metadata": {"owner": None}},
        })
        assert record.properties.abstract == ""
        assert record.geo.owner == ""

    def test_numeric_file_size_coerced_to_string(self):
        record = Record.model_validate({
            "id": "r1",
            "properties": {"gro_metadata": {"file_size_mb": 1.5}},
        })
        assert record.geo.file_size_mb == "1.5"

    def test_unknown_keys_survive_serialization(self):
        record = Record.model_validate({"id": "r1", "links": [{"rel": "self"}]})
        assert record.model_dump()["links"] == [{"rel": "self"}]

    def test_frozen(self):
        record = Record.model_validate({"id": "r1"})
        with pytest.raises(ValidationError):
            record.id = "r2"  # type: ignore[misc]

    def test_value_of_maps_dimensions(self):
        record = Record.model_validate({
            "id": "r1",
            "properties": {
                "collection": "existing_db",
                "gro_metadata": {"state_province": "bamako", "admin2": "district"},
            },
        })
        assert record.value_of(Dimension.COLLECTION) == "existing_db"
        assert record.value_of(Dimension.STATE) == "bamako"
        assert record.value_of(Dimension.COUNTY) == "district"


class TestLoadRecords:
    """Per-request loader."""

    def test_fixture_catalog_loads(self):
        records = load_records(CATALOG_PATH)
        assert len(records) == 10
        assert records[0].id == "db-roads-ml"

    def test_missing_file_raises(self, tmp_path: Path):
        with pytest.raises(CatalogUnavailableError) as exc_info:
            load_records(tmp_path / "absent.json")
        assert exc_info.value.path == tmp_path / "absent.json"

    def test_invalid_json_raises(self, tmp_path: Path):
        path = tmp_path / "catalog.json"
        path.write_text("[{not json", encoding="utf-8")
        with pytest.raises(CatalogUnavailableError):
            load_records(path)

    def test_object_instead_of_array_raises(self, tmp_path: Path):
        path = tmp_path / "catalog.json"
        path.write_text(json.dumps({"records": []}), encoding="utf-8")
        with pytest.raises(CatalogUnavailableError):
            load_records(path)

    def test_empty_array_is_valid(self, tmp_path: Path):
        path = tmp_path / "catalog.json"
        path.write_text("[]", encoding="utf-8")
        assert load_records(path) == []

    def test_every_call_rereads_the_file(self, tmp_path: Path):
        path = tmp_path / "catalog.json"
        path.write_text(json.dumps([{"id": "a"}]), encoding="utf-8")
        assert [r.id for r in load_records(path)] == ["a"]
        path.write_text(json.dumps([{"id": "a"}, {"id": "b"}]), encoding="utf-8")
        assert [r.id for r in load_records(path)] == ["a", "b"]


class TestFindRecord:
    def test_found(self):
        records = parse_records([{"id": "a"}, {"id": "b"}])
        assert find_record(records, "b").id == "b"

    def test_missing(self):
        assert find_record(parse_records([{"id": "a"}]), "zzz") is None
