"""
catalog_backend.introspection — Per-format introspection entry shapes.

Each introspection file on disk is produced by a separate offline scanner
and carries its own schema. This module gives every shape a frozen pydantic
model tagged with a KIND so callers can dispatch on the result of a
MetadataStore lookup without isinstance chains.

Design contract:
    - Best-effort deserialization. Unknown keys are ignored; null values
      fall back to the field default instead of failing the whole file.
    - Entries are immutable once parsed.
    - to_dict() returns the on-disk key names (aliases), so API payloads
      look like the introspection files they came from.
"""

from __future__ import annotations

from typing import Any, ClassVar, Optional, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    model_validator,
)

from catalog_backend.constants import IntrospectionKind


class _Tolerant(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data: Any) -> Any:
        # Scanners emit null for "not measured"; treat it as absent.
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data


class _Entry(_Tolerant):
    KIND: ClassVar[IntrospectionKind]

    @property
    def kind(self) -> IntrospectionKind:
        return self.KIND

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


# ---------------------------------------------------------------------------
# Database schema
# ---------------------------------------------------------------------------

class DatabaseColumn(_Tolerant):
    name: str = ""
    type: str = ""


class DatabaseTable(_Entry):
    KIND: ClassVar[IntrospectionKind] = IntrospectionKind.DATABASE_TABLE

    name: str = ""
    schema_name: str = Field("", alias="schema")
    row_count: int = 0
    size: str = ""
    columns: list[DatabaseColumn] = Field(default_factory=list)
    indexes: list[str] = Field(default_factory=list)


class DatabaseSchemaInfo(_Tolerant):
    timestamp: str = ""
    database: str = ""
    total_tables: int = 0
    total_rows: int = 0


class DatabaseSchema(_Tolerant):
    """Top-level document of database_schema_latest.json."""

    metadata: DatabaseSchemaInfo = Field(default_factory=DatabaseSchemaInfo)
    tables: list[DatabaseTable] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# File formats, keyed by storage key
# ---------------------------------------------------------------------------

class FileEntry(_Entry):
    """Fields every file scanner writes."""

    s3_key: str = ""
    s3_path: str = ""
    success: bool = False
    file_size_mb: float = 0.0


class CsvColumn(_Tolerant):
    column_name: str = ""
    data_type: str = ""
    nullable: bool = False


class CsvFile(FileEntry):
    KIND: ClassVar[IntrospectionKind] = IntrospectionKind.CSV

    row_count: int = 0
    column_count: int = 0
    columns: list[CsvColumn] = Field(default_factory=list, alias="schema")
    error: str = ""


class ParquetColumn(_Tolerant):
    name: str = ""
    type: str = ""
    nullable: bool = False


class ParquetFile(FileEntry):
    KIND: ClassVar[IntrospectionKind] = IntrospectionKind.PARQUET

    row_count: int = 0
    column_count: int = 0
    columns: list[ParquetColumn] = Field(default_factory=list, alias="schema")


class ShapefileField(_Tolerant):
    name: str = ""
    type: str = ""
    width: int = 0


class ShapefileFile(FileEntry):
    KIND: ClassVar[IntrospectionKind] = IntrospectionKind.SHAPEFILE

    feature_count: int = 0
    geometry_type: str = ""
    srs: str = ""
    extent: list[float] = Field(default_factory=list)
    fields: list[ShapefileField] = Field(default_factory=list, alias="schema")
    xml_metadata: dict[str, str] = Field(default_factory=dict)


class LayerField(_Tolerant):
    name: str = ""
    type: str = ""


class Layer(_Tolerant):
    """A vector layer inside a GeoPackage or File Geodatabase."""

    name: str = ""
    feature_count: int = 0
    geometry_type: str = ""
    crs: str = ""
    extent: list[float] = Field(default_factory=list)
    fields: list[LayerField] = Field(default_factory=list)


class GeoPackageFile(FileEntry):
    KIND: ClassVar[IntrospectionKind] = IntrospectionKind.GEOPACKAGE

    layers: list[Layer] = Field(default_factory=list)


class FileGdbFile(FileEntry):
    KIND: ClassVar[IntrospectionKind] = IntrospectionKind.FILEGDB

    layers: list[Layer] = Field(default_factory=list)


class ExcelSheet(_Tolerant):
    name: str = ""
    row_count: int = 0
    column_count: int = 0
    headers: list[str] = Field(default_factory=list)


class ExcelFile(FileEntry):
    KIND: ClassVar[IntrospectionKind] = IntrospectionKind.EXCEL

    sheets: list[ExcelSheet] = Field(default_factory=list)


class JsonFile(FileEntry):
    KIND: ClassVar[IntrospectionKind] = IntrospectionKind.JSON

    file_type: str = ""
    feature_count: int = 0
    geometry_type: str = ""
    properties: list[str] = Field(default_factory=list)
    structure: dict[str, str] = Field(default_factory=dict)


class PngFile(FileEntry):
    KIND: ClassVar[IntrospectionKind] = IntrospectionKind.PNG

    image_type: str = ""
    content_analysis: dict[str, Any] = Field(default_factory=dict)
    keywords: list[str] = Field(default_factory=list)


class PdfFile(FileEntry):
    KIND: ClassVar[IntrospectionKind] = IntrospectionKind.PDF

    page_count: int = 0
    metadata: dict[str, Any] = Field(default_factory=dict)
    structure: dict[str, Any] = Field(default_factory=dict)


FILE_ENTRY_MODELS: dict[IntrospectionKind, type[FileEntry]] = {
    IntrospectionKind.CSV: CsvFile,
    IntrospectionKind.PARQUET: ParquetFile,
    IntrospectionKind.SHAPEFILE: ShapefileFile,
    IntrospectionKind.GEOPACKAGE: GeoPackageFile,
    IntrospectionKind.EXCEL: ExcelFile,
    IntrospectionKind.JSON: JsonFile,
    IntrospectionKind.FILEGDB: FileGdbFile,
    IntrospectionKind.PNG: PngFile,
    IntrospectionKind.PDF: PdfFile,
}


# ---------------------------------------------------------------------------
# Jobs and READMEs
# ---------------------------------------------------------------------------

class JobEntry(_Entry):
    """A job definition, keyed by its file path."""

    KIND: ClassVar[IntrospectionKind] = IntrospectionKind.JOB

    path: str = ""
    raw_text: str = Field("", alias="raw_yaml")
    parsed_fields: dict[str, Any] = Field(default_factory=dict, alias="parsed")
    dataset_id: str = ""


class ReadmeEntry(_Tolerant):
    """Geographic context extracted from a README.

    geography carries a "level" key naming which of its other keys
    (city, county, state, country) the README describes.
    """

    path: str = ""
    content: str = ""
    geography: dict[str, Any] = Field(default_factory=dict)
    size: int = Field(0, validation_alias=AliasChoices("size_bytes", "size"))

    def describes(self, level: str, value: str) -> bool:
        return (
            self.geography.get(level) == value
            and self.geography.get("level") == level
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "content": self.content,
            "geography": self.geography,
            "size_bytes": self.size,
        }


Introspection = Union[
    DatabaseTable,
    CsvFile,
    ParquetFile,
    ShapefileFile,
    GeoPackageFile,
    ExcelFile,
    JsonFile,
    FileGdbFile,
    PngFile,
    PdfFile,
    JobEntry,
]
"""Result type of a MetadataStore lookup (dispatch on .kind)."""


# ---------------------------------------------------------------------------
# Document adapters
# ---------------------------------------------------------------------------

JOB_DOCUMENT: TypeAdapter[dict[str, JobEntry]] = TypeAdapter(dict[str, JobEntry])
README_DOCUMENT: TypeAdapter[list[ReadmeEntry]] = TypeAdapter(list[ReadmeEntry])


def introspection_payload(entry: Optional[Introspection]) -> Optional[dict[str, Any]]:
    """{kind, data} envelope for API responses, or None on a lookup miss."""
    if entry is None:
        return None
    return {"kind": entry.kind.value, "data": entry.to_dict()}
