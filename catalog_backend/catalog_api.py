#!/usr/bin/env python3
"""
catalog_api.py — Catalog navigation API (read-only).

Serves the dataset catalog for browsing along geography, collection,
data format, implementation status and owner, with per-record
introspection detail and the job tree.

The catalog records file is read on EVERY request: an edit on disk is
visible to the next request without a restart. The introspection store is
loaded once at startup and never mutated.

Endpoints:
    GET /                                   → API metadata + catalog overview
    GET /health                             → Liveness, no I/O
    GET /ready                              → Readiness diagnostics
    GET /search                             → Free text + property filters
    GET /geography                          → Geography page (README, facets)
    GET /geography/{continent}[/...]        → Records under a geography path
    GET /format/{format}                    → Records with a data format
    GET /status/{status}                    → Records with an implementation status
    GET /owner/{owner}                      → Records with an owner
    GET /collection/{collection}            → Records in a collection
    GET /collections | /formats | /statuses | /owners → Ordered counts
    GET /facets/{dimension}                 → Ordered counts for any dimension
    GET /record/{record_id}                 → One record + its introspection
    GET /jobs/tree                          → Ordered job hierarchy

Environment variables: see catalog_backend.settings.

Requires: fastapi, uvicorn, slowapi
"""

import json
import logging
import os
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.middleware.gzip import GZipMiddleware

from catalog_backend.constants import (
    DEFAULT_DIMENSION_SIZE,
    DEFAULT_SEARCH_SIZE,
    MAX_PAGE_SIZE,
    Dimension,
)
from catalog_backend.facets import catalog_overview, count_by, facet_list, ordered_facets
from catalog_backend.geography import GeographyFilter
from catalog_backend.hierarchy import build_hierarchy
from catalog_backend.introspection import introspection_payload
from catalog_backend.metadata_store import MetadataStore
from catalog_backend.records import CatalogUnavailableError, Record, find_record, load_records
from catalog_backend.search import PROPERTY_FILTER_KEYS, InMemorySearch, SearchResult
from catalog_backend.security import (
    ETagMiddleware,
    RequestIdMiddleware,
    RequestSizeLimitMiddleware,
    SecurityHeadersMiddleware,
)
from catalog_backend.settings import Settings

API_VERSION = "1.0.0"


# ---------------------------------------------------------------------------
# Logging: structured JSON to stdout
# ---------------------------------------------------------------------------

_log_level = logging.DEBUG if os.getenv("ENV", "prod") == "dev" else logging.INFO
logging.basicConfig(
    level=_log_level,
    format="%(message)s",
    stream=sys.stdout,
)
logger = logging.getLogger("catalog.api")


# ---------------------------------------------------------------------------
# Rate limiter
# ---------------------------------------------------------------------------

_env_settings = Settings.from_env()

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["120/minute"],
    storage_uri=_env_settings.redis_url or "memory://",
    strategy="fixed-window",
    enabled=_env_settings.rate_limit_enabled,
)


# ---------------------------------------------------------------------------
# CORS
#
# Strict allow-list, no wildcard. Credentials disabled, GET only.
# ALLOWED_ORIGINS extends the list at deploy time.
# ---------------------------------------------------------------------------

DEV_ORIGINS: list[str] = [
    "http://localhost:3000",
    "http://localhost:8080",
]


def _cors_origins(settings: Settings) -> list[str]:
    origins = list(DEV_ORIGINS)
    for origin in settings.allowed_origins:
        if origin not in origins:
            origins.append(origin)
    return origins


# ---------------------------------------------------------------------------
# Request-scoped dependencies
# ---------------------------------------------------------------------------

def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_metadata_store(request: Request) -> MetadataStore:
    return request.app.state.metadata_store


def get_records(request: Request) -> list[Record]:
    """Fresh record set for this request. No cross-request caching."""
    return load_records(request.app.state.settings.catalog_path)


def geography_query(
    continent: Optional[str] = Query(None, max_length=100),
    country: Optional[str] = Query(None, max_length=100),
    state: Optional[str] = Query(None, max_length=100),
    county: Optional[str] = Query(None, max_length=100),
    city: Optional[str] = Query(None, max_length=100),
) -> GeographyFilter:
    return GeographyFilter.normalized(continent, country, state, county, city)


def _dump(records: list[Record]) -> list[dict[str, Any]]:
    return [r.model_dump(mode="json") for r in records]


def _listing(key: str, value: str, result: SearchResult) -> dict[str, Any]:
    return {
        key: value,
        "matched": result.matched,
        "returned": len(result.records),
        "records": _dump(result.records),
    }


def _counts(key: str, records: list[Record], dimension: Dimension) -> dict[str, Any]:
    facets = ordered_facets(count_by(records, dimension))
    return {"total": len(facets), key: [f.to_dict() for f in facets]}


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

router = APIRouter()


@router.get("/")
@limiter.limit("60/minute")
def root(request: Request, records: list[Record] = Depends(get_records)) -> dict:
    """API metadata and landing-page statistics."""
    return {
        "name": "Catalog API",
        "version": API_VERSION,
        "overview": catalog_overview(records),
    }


@router.get("/health", include_in_schema=False)
def health(request: Request) -> JSONResponse:
    """Liveness probe. Always 200, no file I/O."""
    return JSONResponse(status_code=200, content={"status": "ok", "version": API_VERSION})


@router.get("/ready")
@limiter.limit("60/minute")
def ready(
    request: Request,
    settings: Settings = Depends(get_settings),
    store: MetadataStore = Depends(get_metadata_store),
) -> JSONResponse:
    """Readiness probe, always 200.

    Readiness is reported in the body: the catalog file must exist.
    Introspection load warnings degrade status but do not block readiness.
    """
    catalog_present = settings.catalog_path.is_file()
    warnings = [w.to_dict() for w in store.warnings]
    if not catalog_present:
        status = "unavailable"
    elif warnings:
        status = "degraded"
    else:
        status = "healthy"

    body = {
        "ready": catalog_present,
        "status": status,
        "version": API_VERSION,
        "catalog_present": catalog_present,
        "introspection_counts": store.category_counts(),
        "introspection_warnings": warnings,
        "timestamp": datetime.now(UTC).isoformat(),
    }
    return JSONResponse(status_code=200, content=body)


@router.get("/search")
@limiter.limit("60/minute")
def search(
    request: Request,
    q: str = Query("", max_length=200),
    from_: int = Query(0, alias="from", ge=0),
    size: int = Query(DEFAULT_SEARCH_SIZE, ge=0, le=MAX_PAGE_SIZE),
    collections: str = Query("", max_length=500),
    records: list[Record] = Depends(get_records),
) -> dict:
    """Free-text query plus exact property filters."""
    filters = {
        key: request.query_params[key]
        for key in PROPERTY_FILTER_KEYS
        if request.query_params.get(key)
    }
    result = InMemorySearch(records).search(
        query=q,
        filters=filters,
        offset=from_,
        limit=size,
        collections=[c.strip() for c in collections.split(",") if c.strip()],
    )
    return {
        "matched": result.matched,
        "returned": len(result.records),
        "from": from_,
        "size": size,
        "records": _dump(result.records),
    }


@router.get("/geography")
@limiter.limit("60/minute")
def geography_page(
    request: Request,
    geo: GeographyFilter = Depends(geography_query),
    from_: int = Query(0, alias="from", ge=0),
    size: int = Query(DEFAULT_DIMENSION_SIZE, ge=0, le=MAX_PAGE_SIZE),
    records: list[Record] = Depends(get_records),
    store: MetadataStore = Depends(get_metadata_store),
) -> dict:
    """Geography page: README context, records, collection and sub-geography facets."""
    if geo.is_empty:
        raise HTTPException(
            status_code=400,
            detail="At least one of continent, country, state, county, city is required.",
        )

    matched = geo.apply(records)
    readme = store.find_readme_for_geography(
        city=geo.city,
        county=geo.county,
        state=geo.state,
        country=geo.country,
        continent=geo.continent,
    )
    child = geo.child_dimension
    page = matched[from_:from_ + size]

    return {
        "level": geo.level.value if geo.level else None,
        "name": geo.name,
        "filters": geo.to_dict(),
        "readme": readme.to_dict() if readme is not None else None,
        "matched": len(matched),
        "returned": len(page),
        "from": from_,
        "size": size,
        "records": _dump(page),
        "collections": facet_list(matched, Dimension.COLLECTION),
        "sub_geography": (
            {"dimension": child.value, "facets": facet_list(matched, child)}
            if child is not None
            else None
        ),
    }


def _geography_path(
    records: list[Record],
    offset: int,
    size: int,
    continent: str,
    country: str = "",
    state: str = "",
    city: str = "",
) -> dict:
    geo = GeographyFilter.normalized(continent=continent, country=country, state=state, city=city)
    filters = {k: v for k, v in geo.to_dict().items() if v}
    result = InMemorySearch(records).search(filters=filters, offset=offset, limit=size)
    return {
        "filters": filters,
        "matched": result.matched,
        "returned": len(result.records),
        "from": offset,
        "size": size,
        "records": _dump(result.records),
    }


@router.get("/geography/{continent}")
@limiter.limit("60/minute")
def geography_continent(
    continent: str,
    request: Request,
    from_: int = Query(0, alias="from", ge=0),
    size: int = Query(DEFAULT_DIMENSION_SIZE, ge=0, le=MAX_PAGE_SIZE),
    records: list[Record] = Depends(get_records),
) -> dict:
    return _geography_path(records, from_, size, continent)


@router.get("/geography/{continent}/{country}")
@limiter.limit("60/minute")
def geography_country(
    continent: str,
    country: str,
    request: Request,
    from_: int = Query(0, alias="from", ge=0),
    size: int = Query(DEFAULT_DIMENSION_SIZE, ge=0, le=MAX_PAGE_SIZE),
    records: list[Record] = Depends(get_records),
) -> dict:
    return _geography_path(records, from_, size, continent, country)


@router.get("/geography/{continent}/{country}/{state}")
@limiter.limit("60/minute")
def geography_state(
    continent: str,
    country: str,
    state: str,
    request: Request,
    from_: int = Query(0, alias="from", ge=0),
    size: int = Query(DEFAULT_DIMENSION_SIZE, ge=0, le=MAX_PAGE_SIZE),
    records: list[Record] = Depends(get_records),
) -> dict:
    return _geography_path(records, from_, size, continent, country, state)


@router.get("/geography/{continent}/{country}/{state}/{city}")
@limiter.limit("60/minute")
def geography_city(
    continent: str,
    country: str,
    state: str,
    city: str,
    request: Request,
    from_: int = Query(0, alias="from", ge=0),
    size: int = Query(DEFAULT_DIMENSION_SIZE, ge=0, le=MAX_PAGE_SIZE),
    records: list[Record] = Depends(get_records),
) -> dict:
    return _geography_path(records, from_, size, continent, country, state, city)


@router.get("/format/{data_format}")
@limiter.limit("60/minute")
def by_format(
    data_format: str,
    request: Request,
    size: int = Query(DEFAULT_DIMENSION_SIZE, ge=0, le=MAX_PAGE_SIZE),
    records: list[Record] = Depends(get_records),
) -> dict:
    result = InMemorySearch(records).search(filters={"data_format": data_format}, limit=size)
    return _listing("format", data_format, result)


@router.get("/status/{status}")
@limiter.limit("60/minute")
def by_status(
    status: str,
    request: Request,
    size: int = Query(DEFAULT_DIMENSION_SIZE, ge=0, le=MAX_PAGE_SIZE),
    records: list[Record] = Depends(get_records),
) -> dict:
    result = InMemorySearch(records).search(filters={"implementation_status": status}, limit=size)
    return _listing("status", status, result)


@router.get("/owner/{owner}")
@limiter.limit("60/minute")
def by_owner(
    owner: str,
    request: Request,
    size: int = Query(DEFAULT_DIMENSION_SIZE, ge=0, le=MAX_PAGE_SIZE),
    records: list[Record] = Depends(get_records),
) -> dict:
    result = InMemorySearch(records).search(filters={"owner": owner}, limit=size)
    return _listing("owner", owner, result)


@router.get("/collection/{collection}")
@limiter.limit("60/minute")
def by_collection(
    collection: str,
    request: Request,
    size: int = Query(DEFAULT_DIMENSION_SIZE, ge=0, le=MAX_PAGE_SIZE),
    records: list[Record] = Depends(get_records),
) -> dict:
    result = InMemorySearch(records).search(filters={"collection": collection}, limit=size)
    return _listing("collection", collection, result)


@router.get("/collections")
@limiter.limit("60/minute")
def list_collections(request: Request, records: list[Record] = Depends(get_records)) -> dict:
    return _counts("collections", records, Dimension.COLLECTION)


@router.get("/formats")
@limiter.limit("60/minute")
def list_formats(request: Request, records: list[Record] = Depends(get_records)) -> dict:
    return _counts("formats", records, Dimension.DATA_FORMAT)


@router.get("/statuses")
@limiter.limit("60/minute")
def list_statuses(request: Request, records: list[Record] = Depends(get_records)) -> dict:
    return _counts("statuses", records, Dimension.IMPLEMENTATION_STATUS)


@router.get("/owners")
@limiter.limit("60/minute")
def list_owners(request: Request, records: list[Record] = Depends(get_records)) -> dict:
    return _counts("owners", records, Dimension.OWNER)


@router.get("/facets/{dimension}")
@limiter.limit("60/minute")
def facets(
    dimension: str,
    request: Request,
    geo: GeographyFilter = Depends(geography_query),
    records: list[Record] = Depends(get_records),
) -> dict:
    """Ordered counts of one dimension over the geography-filtered records."""
    try:
        dim = Dimension(dimension.strip().lower())
    except ValueError:
        raise HTTPException(
            status_code=404,
            detail=f"Unknown dimension '{dimension}'. Valid: {[d.value for d in Dimension]}.",
        )
    matched = geo.apply(records)
    return {
        "dimension": dim.value,
        "filters": geo.to_dict(),
        "total": len(matched),
        "facets": facet_list(matched, dim),
    }


@router.get("/record/{record_id}")
@limiter.limit("60/minute")
def get_record(
    record_id: str,
    request: Request,
    records: list[Record] = Depends(get_records),
    store: MetadataStore = Depends(get_metadata_store),
) -> dict:
    """One record with its introspection entry ({kind, data} or null)."""
    record = find_record(records, record_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Record not found")
    return {
        "record": record.model_dump(mode="json"),
        "introspection": introspection_payload(store.lookup_record(record)),
    }


@router.get("/jobs/tree")
@limiter.limit("30/minute")
def jobs_tree(
    request: Request,
    geo: GeographyFilter = Depends(geography_query),
    records: list[Record] = Depends(get_records),
    settings: Settings = Depends(get_settings),
) -> dict:
    """Job hierarchy of the geography-filtered records."""
    tree = build_hierarchy(geo.apply(records), root_prefix=settings.jobs_root)
    return {
        "root_prefix": settings.jobs_root,
        "filters": geo.to_dict(),
        "tree": tree.to_dict(),
    }


# ---------------------------------------------------------------------------
# App construction
# ---------------------------------------------------------------------------

def _build_docs_kwargs(settings: Settings) -> dict[str, Any]:
    if not settings.docs_enabled:
        return {"docs_url": None, "redoc_url": None, "openapi_url": None}
    return {"docs_url": "/docs", "redoc_url": "/redoc"}


def create_app(
    settings: Optional[Settings] = None,
    metadata_store: Optional[MetadataStore] = None,
) -> FastAPI:
    """Build the API.

    The MetadataStore is loaded from settings.data_path in the lifespan
    unless one is passed in.
    """
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info(json.dumps({
            "event": "startup",
            "env": settings.env,
            "data_path": str(settings.data_path),
            "catalog_path": str(settings.catalog_path),
            "docs_enabled": settings.docs_enabled,
            "rate_limit_enabled": settings.rate_limit_enabled,
            "rate_limit_backend": "redis" if _env_settings.redis_url else "memory",
        }))

        if app.state.metadata_store is None:
            app.state.metadata_store = MetadataStore.load(
                settings.data_path,
                storage_prefix=settings.storage_prefix,
            )
        store: MetadataStore = app.state.metadata_store
        if store.warnings:
            logger.warning(json.dumps({
                "event": "startup_degraded",
                "reason": "Some introspection files failed to load",
                "categories": [w.category for w in store.warnings],
            }))

        if not settings.catalog_path.is_file():
            logger.warning(json.dumps({
                "event": "catalog_missing",
                "catalog_path": str(settings.catalog_path),
            }))

        yield

        logger.info(json.dumps({"event": "shutdown"}))

    app = FastAPI(
        title="Catalog API",
        description="Dataset catalog index and faceted navigation",
        version=API_VERSION,
        lifespan=_lifespan,
        **_build_docs_kwargs(settings),
    )
    app.state.settings = settings
    app.state.metadata_store = metadata_store
    app.state.limiter = limiter
    # The limiter is shared by every app in the process; the storage backend
    # stays the one chosen from REDIS_URL at import.
    limiter.enabled = settings.rate_limit_enabled

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(settings),
        allow_credentials=False,
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "ETag"],
        max_age=3600,
    )

    # Starlette runs middleware in reverse registration order.
    # Execution (outermost first): GZip → RequestId → RequestSizeLimit → ETag → SecurityHeaders → CORS
    app.add_middleware(SecurityHeadersMiddleware, enable_hsts=(settings.env == "prod"))
    app.add_middleware(ETagMiddleware)
    app.add_middleware(RequestSizeLimitMiddleware)
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(GZipMiddleware, minimum_size=500)

    app.add_exception_handler(RateLimitExceeded, _rate_limit_handler)
    app.add_exception_handler(CatalogUnavailableError, _catalog_unavailable_handler)
    app.add_exception_handler(Exception, _global_exception_handler)

    app.include_router(router)
    return app


# ---------------------------------------------------------------------------
# Error handlers
# ---------------------------------------------------------------------------

async def _rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    return JSONResponse(
        status_code=429,
        content={"detail": "Rate limit exceeded. Try again later."},
        headers={"Retry-After": "60"},
    )


async def _catalog_unavailable_handler(request: Request, exc: CatalogUnavailableError) -> JSONResponse:
    """This request fails; the process keeps serving."""
    logger.error(json.dumps({
        "event": "catalog_unavailable",
        "request_id": getattr(request.state, "request_id", "unknown"),
        "path": request.url.path,
        "detail": exc.detail,
    }))
    return JSONResponse(status_code=500, content={"detail": "Failed to load catalog."})


async def _global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Never leak internals."""
    logger.error(json.dumps({
        "event": "unhandled_exception",
        "exception_type": type(exc).__name__,
        "request_id": getattr(request.state, "request_id", "unknown"),
        "path": request.url.path,
    }))
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error."},
    )


app = create_app(_env_settings)


# ---------------------------------------------------------------------------
# Entry point (development only)
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn

    print(f"Catalog API {API_VERSION}, catalog at {_env_settings.catalog_path}")
    uvicorn.run(app, host="0.0.0.0", port=8000)  # noqa: S104
