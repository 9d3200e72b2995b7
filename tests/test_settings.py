"""
tests/test_settings.py — Environment-driven configuration.
"""

from __future__ import annotations

from pathlib import Path

from catalog_backend.constants import DEFAULT_JOBS_ROOT, DEFAULT_STORAGE_PREFIX
from catalog_backend.settings import CATALOG_FILENAME, DEFAULT_DATA_PATH, Settings


class TestSettingsFromEnv:
    """Defaults and overrides."""

    def test_defaults(self):
        s = Settings.from_env({})
        assert s.data_path == DEFAULT_DATA_PATH
        assert s.catalog_path == DEFAULT_DATA_PATH / CATALOG_FILENAME
        assert s.storage_prefix == DEFAULT_STORAGE_PREFIX
        assert s.jobs_root == DEFAULT_JOBS_ROOT
        assert s.env == "prod"
        assert s.rate_limit_enabled is True
        assert s.redis_url is None
        assert s.docs_enabled is False

    def test_catalog_defaults_under_data_path(self):
        s = Settings.from_env({"CATALOG_DATA_PATH": "/srv/data"})
        assert s.catalog_path == Path("/srv/data") / CATALOG_FILENAME

    def test_explicit_catalog_path(self):
        s = Settings.from_env({
            "CATALOG_DATA_PATH": "/srv/data",
            "CATALOG_JSON_PATH": "/srv/other/records.json",
        })
        assert s.catalog_path == Path("/srv/other/records.json")

    def test_overrides(self):
        s = Settings.from_env({
            "CATALOG_STORAGE_PREFIX": "gs://bucket/",
            "CATALOG_JOBS_ROOT": "ns/jobs",
            "ENV": " DEV ",
            "RATE_LIMIT_ENABLED": "0",
            "REDIS_URL": "redis://cache:6379/0",
            "ALLOWED_ORIGINS": "https://a.example, ,https://b.example",
        })
        assert s.storage_prefix == "gs://bucket/"
        assert s.jobs_root == "ns/jobs"
        assert s.is_dev
        assert s.docs_enabled
        assert s.rate_limit_enabled is False
        assert s.redis_url == "redis://cache:6379/0"
        assert s.allowed_origins == ("https://a.example", "https://b.example")

    def test_enable_docs_in_prod(self):
        assert Settings.from_env({"ENABLE_DOCS": "1"}).docs_enabled
