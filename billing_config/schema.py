"""
Configuration schema (``billing_config.schema``).

Frozen dataclasses describing every runtime setting.  Parsed from YAML by
``billing_config.loader`` and checked by ``billing_config.validator`` before
any component is built.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class DatabaseConfig:
    """Connection settings for the ``Database`` handle."""

    url: str
    echo: bool = False
    pool_size: int = 10
    max_overflow: int = 5
    pool_timeout: int = 30
    pool_recycle: int = 1800


@dataclass(frozen=True)
class StorageConfig:
    """
    Artifact store settings.

    References are written as ``<scheme>://<bucket>/<path>``; only references
    with exactly that prefix are trusted when read back.
    """

    root: str
    bucket: str = "billing-documents"
    scheme: str = "file"
    backend: str = "filesystem"
    access_url_ttl_seconds: int = 60

    @property
    def reference_prefix(self) -> str:
        return f"{self.scheme}://{self.bucket}/"


@dataclass(frozen=True)
class DocumentConfig:
    extension: str = "pdf"
    content_type: str = "application/pdf"


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"


@dataclass(frozen=True)
class BillingConfig:
    """Root configuration object, validated once at startup."""

    database: DatabaseConfig
    storage: StorageConfig
    documents: DocumentConfig = field(default_factory=DocumentConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    # IANA zone used to default the month of monthly charge generation
    timezone: str = "America/Mexico_City"
