"""
catalog_backend.settings — Deploy-time configuration from the environment.

Environment variables:
    CATALOG_DATA_PATH       — introspection directory (default: <repo>/data)
    CATALOG_JSON_PATH       — catalog records file
                              (default: $CATALOG_DATA_PATH/geocatalogo_records.json)
    CATALOG_STORAGE_PREFIX  — bucket prefix stripped from storage paths
    CATALOG_JOBS_ROOT       — root prefix of job file paths (default: v6/jobs)
    ENV                     — "dev" or "prod" (default: "prod")
    ENABLE_DOCS             — "1" to force-enable /docs in prod
    ALLOWED_ORIGINS         — comma-separated extra CORS origins
    RATE_LIMIT_ENABLED      — "0" disables rate limiting (default: "1")
    REDIS_URL               — optional Redis URL for distributed rate limiting
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from catalog_backend.constants import DEFAULT_JOBS_ROOT, DEFAULT_STORAGE_PREFIX

REPO_ROOT = Path(__file__).resolve().parent.parent
DEFAULT_DATA_PATH = REPO_ROOT / "data"
CATALOG_FILENAME = "geocatalogo_records.json"


@dataclass(frozen=True, slots=True)
class Settings:
    data_path: Path = DEFAULT_DATA_PATH
    catalog_path: Path = DEFAULT_DATA_PATH / CATALOG_FILENAME
    storage_prefix: str = DEFAULT_STORAGE_PREFIX
    jobs_root: str = DEFAULT_JOBS_ROOT
    env: str = "prod"
    enable_docs: bool = False
    allowed_origins: tuple[str, ...] = field(default_factory=tuple)
    rate_limit_enabled: bool = True
    redis_url: Optional[str] = None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> Settings:
        env = os.environ if environ is None else environ

        data_path = Path(env.get("CATALOG_DATA_PATH", "").strip() or DEFAULT_DATA_PATH)
        catalog_raw = env.get("CATALOG_JSON_PATH", "").strip()
        origins = tuple(
            o.strip() for o in env.get("ALLOWED_ORIGINS", "").split(",") if o.strip()
        )

        return cls(
            data_path=data_path,
            catalog_path=Path(catalog_raw) if catalog_raw else data_path / CATALOG_FILENAME,
            storage_prefix=env.get("CATALOG_STORAGE_PREFIX", DEFAULT_STORAGE_PREFIX).strip(),
            jobs_root=env.get("CATALOG_JOBS_ROOT", "").strip() or DEFAULT_JOBS_ROOT,
            env=env.get("ENV", "prod").lower().strip(),
            enable_docs=env.get("ENABLE_DOCS", "").strip() == "1",
            allowed_origins=origins,
            rate_limit_enabled=env.get("RATE_LIMIT_ENABLED", "1").strip() != "0",
            redis_url=env.get("REDIS_URL", "").strip() or None,
        )

    @property
    def is_dev(self) -> bool:
        return self.env == "dev"

    @property
    def docs_enabled(self) -> bool:
        return self.is_dev or self.enable_docs
