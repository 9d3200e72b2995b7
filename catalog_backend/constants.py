"""
catalog_backend.constants — Single source of truth for catalog constants.

Every module that needs these values MUST import from here.
No hardcoded duplicates anywhere in the codebase.

Do not add deploy-time configuration here; that lives in
catalog_backend.settings and is read from the environment.
"""

from __future__ import annotations

from enum import Enum

# ---------------------------------------------------------------------------
# Storage keys
# ---------------------------------------------------------------------------

DEFAULT_STORAGE_PREFIX: str = "s3://geosure-data-dev/"
"""Bucket prefix stripped from a record's s3_path to obtain the storage key
used by every file-format introspection map."""

DEFAULT_JOBS_ROOT: str = "v6/jobs"
"""Two-segment root prefix under which job file paths live."""

GLOBAL_SCOPE: str = "global"
"""Continent sentinel. Globally scoped resources carry no continent value;
a continent filter of "global" tests geographic_scope instead."""

# ---------------------------------------------------------------------------
# Collection codes: the primary classification axis
# ---------------------------------------------------------------------------

COLLECTION_EXISTING_DB: str = "existing_db"
COLLECTION_EXISTING_LOCAL: str = "existing_local"
COLLECTION_POTENTIAL_V6: str = "potential_v6"
COLLECTION_EXTERNAL_API: str = "external_api"
COLLECTION_EXTERNAL_NEWS: str = "external_news"
COLLECTION_EXTERNAL_GOVERNMENT: str = "external_government"
COLLECTION_EXTERNAL_OTHER: str = "external_other"
COLLECTION_AI_AGENT: str = "ai_agent"

JOB_COLLECTIONS: frozenset[str] = frozenset({COLLECTION_POTENTIAL_V6})
"""Collections that describe jobs rather than data sources. Excluded from
the overview's data_records figure."""

# ---------------------------------------------------------------------------
# Facet dimensions
# ---------------------------------------------------------------------------


class Dimension(str, Enum):
    """Categorical record attributes that can be counted or filtered."""

    CONTINENT = "continent"
    COUNTRY = "country"
    STATE = "state"
    COUNTY = "county"
    CITY = "city"
    COLLECTION = "collection"
    DATA_FORMAT = "data_format"
    IMPLEMENTATION_STATUS = "implementation_status"
    OWNER = "owner"


GEOGRAPHY_LEVELS: tuple[Dimension, ...] = (
    Dimension.CITY,
    Dimension.COUNTY,
    Dimension.STATE,
    Dimension.COUNTRY,
    Dimension.CONTINENT,
)
"""Geography levels, most specific first."""

SUB_GEOGRAPHY: dict[Dimension, Dimension] = {
    Dimension.CONTINENT: Dimension.COUNTRY,
    Dimension.COUNTRY: Dimension.STATE,
    Dimension.STATE: Dimension.CITY,
}
"""Drill-down dimension shown beneath a geography page."""

# ---------------------------------------------------------------------------
# Introspection kinds and files
# ---------------------------------------------------------------------------


class IntrospectionKind(str, Enum):
    """Tag of each introspection entry shape returned by a lookup."""

    DATABASE_TABLE = "database_table"
    CSV = "csv"
    PARQUET = "parquet"
    SHAPEFILE = "shapefile"
    GEOPACKAGE = "geopackage"
    EXCEL = "excel"
    JSON = "json"
    FILEGDB = "filegdb"
    PNG = "png"
    PDF = "pdf"
    JOB = "job"


FILE_KINDS: tuple[IntrospectionKind, ...] = (
    IntrospectionKind.CSV,
    IntrospectionKind.PARQUET,
    IntrospectionKind.SHAPEFILE,
    IntrospectionKind.GEOPACKAGE,
    IntrospectionKind.EXCEL,
    IntrospectionKind.JSON,
    IntrospectionKind.FILEGDB,
    IntrospectionKind.PNG,
    IntrospectionKind.PDF,
)
"""Kinds keyed by normalized storage key."""

FORMAT_ALIASES: dict[str, IntrospectionKind] = {
    "csv": IntrospectionKind.CSV,
    "tsv": IntrospectionKind.CSV,
    "txt": IntrospectionKind.CSV,
    "parquet": IntrospectionKind.PARQUET,
    "shapefile": IntrospectionKind.SHAPEFILE,
    "shp": IntrospectionKind.SHAPEFILE,
    "geopackage": IntrospectionKind.GEOPACKAGE,
    "gpkg": IntrospectionKind.GEOPACKAGE,
    "filegdb": IntrospectionKind.FILEGDB,
    "gdb": IntrospectionKind.FILEGDB,
    "excel": IntrospectionKind.EXCEL,
    "xlsx": IntrospectionKind.EXCEL,
    "xls": IntrospectionKind.EXCEL,
    "json": IntrospectionKind.JSON,
    "geojson": IntrospectionKind.JSON,
    "png": IntrospectionKind.PNG,
    "image": IntrospectionKind.PNG,
    "pdf": IntrospectionKind.PDF,
}
"""Declared data_format (lowercased) → file introspection map."""

# Introspection category → (file name, list key inside the document).
# The list key is None where the document is not a {key: [...]} wrapper.
INTROSPECTION_FILES: dict[str, tuple[str, str | None]] = {
    "database": ("database_schema_latest.json", None),
    "csv": ("csv_introspection.json", "files"),
    "parquet": ("parquet_introspection.json", "files"),
    "shapefile": ("shapefile_introspection.json", "shapefiles"),
    "geopackage": ("geopackage_introspection.json", "geopackages"),
    "excel": ("excel_introspection.json", "files"),
    "json": ("json_introspection.json", "files"),
    "filegdb": ("filegdb_introspection.json", "filegdbs"),
    "png": ("png_introspection.json", "images"),
    "pdf": ("pdf_introspection.json", "pdfs"),
    "jobs": ("v6_job_metadata.json", None),
    "readmes": ("v6_readme_metadata.json", None),
}

# ---------------------------------------------------------------------------
# Paging
# ---------------------------------------------------------------------------

MAX_PAGE_SIZE: int = 1000
DEFAULT_SEARCH_SIZE: int = 10
DEFAULT_DIMENSION_SIZE: int = 100
