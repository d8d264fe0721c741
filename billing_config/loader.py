"""
Configuration Loader (``billing_config.loader``).

Responsibility
--------------
Reads an optional YAML file, overlays ``BILLING_*`` environment variables and
parses the merged mapping into ``billing_config.schema`` dataclasses.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Values of the wrong type are collected as problems and reported together
  by ``load_config`` as a ``ConfigurationError``.
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from billing_config.schema import (
    BillingConfig,
    DatabaseConfig,
    DocumentConfig,
    LoggingConfig,
    StorageConfig,
)

# Environment variable -> (section, key).  ``None`` section means top level.
ENV_OVERRIDES: dict[str, tuple[str | None, str]] = {
    "BILLING_DATABASE_URL": ("database", "url"),
    "BILLING_DATABASE_ECHO": ("database", "echo"),
    "BILLING_DATABASE_POOL_SIZE": ("database", "pool_size"),
    "BILLING_DATABASE_MAX_OVERFLOW": ("database", "max_overflow"),
    "BILLING_DATABASE_POOL_TIMEOUT": ("database", "pool_timeout"),
    "BILLING_DATABASE_POOL_RECYCLE": ("database", "pool_recycle"),
    "BILLING_STORAGE_ROOT": ("storage", "root"),
    "BILLING_STORAGE_BUCKET": ("storage", "bucket"),
    "BILLING_STORAGE_SCHEME": ("storage", "scheme"),
    "BILLING_STORAGE_BACKEND": ("storage", "backend"),
    "BILLING_ACCESS_URL_TTL": ("storage", "access_url_ttl_seconds"),
    "BILLING_DOCUMENT_EXTENSION": ("documents", "extension"),
    "BILLING_DOCUMENT_CONTENT_TYPE": ("documents", "content_type"),
    "BILLING_LOG_LEVEL": ("logging", "level"),
    "BILLING_TIMEZONE": (None, "timezone"),
}

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a single YAML file and return its contents as a dict."""
    with open(path) as f:
        return yaml.safe_load(f) or {}


def merge_environment(
    data: dict[str, Any],
    environ: Mapping[str, str],
) -> dict[str, Any]:
    """Return a copy of ``data`` with ``BILLING_*`` overrides applied."""
    merged: dict[str, Any] = {
        key: dict(value) if isinstance(value, dict) else value
        for key, value in data.items()
    }
    for env_name, (section, key) in ENV_OVERRIDES.items():
        if env_name not in environ:
            continue
        if section is None:
            merged[key] = environ[env_name]
        else:
            merged.setdefault(section, {})[key] = environ[env_name]
    return merged


def parse_bool(value: Any, name: str, problems: list[str]) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    problems.append(f"{name}: expected a boolean, got {value!r}")
    return False


def parse_int(value: Any, name: str, problems: list[str]) -> int:
    if isinstance(value, bool):
        problems.append(f"{name}: expected an integer, got {value!r}")
        return 0
    try:
        return int(value)
    except (TypeError, ValueError):
        problems.append(f"{name}: expected an integer, got {value!r}")
        return 0


def parse_config(data: dict[str, Any], problems: list[str]) -> BillingConfig:
    """
    Parse a merged mapping into a ``BillingConfig``.

    Type problems are appended to ``problems`` instead of raised so that the
    caller can report every one of them at once.
    """
    db = data.get("database") or {}
    storage = data.get("storage") or {}
    documents = data.get("documents") or {}
    logging_data = data.get("logging") or {}

    defaults_db = DatabaseConfig(url="")
    database = DatabaseConfig(
        url=str(db.get("url") or ""),
        echo=parse_bool(db.get("echo", defaults_db.echo), "database.echo", problems),
        pool_size=parse_int(
            db.get("pool_size", defaults_db.pool_size), "database.pool_size", problems
        ),
        max_overflow=parse_int(
            db.get("max_overflow", defaults_db.max_overflow),
            "database.max_overflow",
            problems,
        ),
        pool_timeout=parse_int(
            db.get("pool_timeout", defaults_db.pool_timeout),
            "database.pool_timeout",
            problems,
        ),
        pool_recycle=parse_int(
            db.get("pool_recycle", defaults_db.pool_recycle),
            "database.pool_recycle",
            problems,
        ),
    )

    defaults_storage = StorageConfig(root="")
    storage_config = StorageConfig(
        root=str(storage.get("root") or ""),
        bucket=str(storage.get("bucket", defaults_storage.bucket)),
        scheme=str(storage.get("scheme", defaults_storage.scheme)),
        backend=str(storage.get("backend", defaults_storage.backend)),
        access_url_ttl_seconds=parse_int(
            storage.get(
                "access_url_ttl_seconds", defaults_storage.access_url_ttl_seconds
            ),
            "storage.access_url_ttl_seconds",
            problems,
        ),
    )

    defaults_docs = DocumentConfig()
    document_config = DocumentConfig(
        extension=str(documents.get("extension", defaults_docs.extension)),
        content_type=str(documents.get("content_type", defaults_docs.content_type)),
    )

    return BillingConfig(
        database=database,
        storage=storage_config,
        documents=document_config,
        logging=LoggingConfig(level=str(logging_data.get("level", "INFO")).upper()),
        timezone=str(data.get("timezone") or BillingConfig.timezone),
    )
