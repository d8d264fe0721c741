"""
Configuration Validator (``billing_config.validator``).

Checks a parsed ``BillingConfig`` for missing and out-of-range values.  Every
problem is collected so an operator sees them all in one run.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from billing_config.schema import BillingConfig

_SAFE_SEGMENT = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")
_SCHEME = re.compile(r"^[a-z][a-z0-9+.-]*$")
_BACKENDS = ("filesystem",)


@dataclass
class ConfigValidationResult:
    """
    Result of configuration validation.

    Contract
    --------
    * ``is_valid`` returns ``True`` only when ``errors`` is empty.
    """

    errors: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)


def validate_configuration(config: BillingConfig) -> ConfigValidationResult:
    """Validate every section of ``config``."""
    result = ConfigValidationResult()

    _validate_database(config, result)
    _validate_storage(config, result)
    _validate_documents(config, result)
    _validate_logging(config, result)
    _validate_timezone(config, result)

    return result


def _validate_database(config: BillingConfig, result: ConfigValidationResult) -> None:
    db = config.database
    if not db.url:
        result.add_error("database.url is required")
    if db.pool_size < 1:
        result.add_error("database.pool_size must be >= 1")
    if db.max_overflow < 0:
        result.add_error("database.max_overflow must be >= 0")
    if db.pool_timeout < 1:
        result.add_error("database.pool_timeout must be >= 1")


def _validate_storage(config: BillingConfig, result: ConfigValidationResult) -> None:
    storage = config.storage
    if storage.backend not in _BACKENDS:
        result.add_error(
            f"storage.backend must be one of {', '.join(_BACKENDS)}, got {storage.backend!r}"
        )
    if not storage.root:
        result.add_error("storage.root is required")
    if not _SAFE_SEGMENT.match(storage.bucket):
        result.add_error(f"storage.bucket is not a safe name: {storage.bucket!r}")
    if not _SCHEME.match(storage.scheme):
        result.add_error(f"storage.scheme is not a valid URI scheme: {storage.scheme!r}")
    if storage.access_url_ttl_seconds < 1:
        result.add_error("storage.access_url_ttl_seconds must be >= 1")


def _validate_documents(config: BillingConfig, result: ConfigValidationResult) -> None:
    if not _SAFE_SEGMENT.match(config.documents.extension):
        result.add_error(
            f"documents.extension is not a safe name: {config.documents.extension!r}"
        )
    if "/" not in config.documents.content_type:
        result.add_error(
            f"documents.content_type is not a MIME type: {config.documents.content_type!r}"
        )


def _validate_logging(config: BillingConfig, result: ConfigValidationResult) -> None:
    if not isinstance(logging.getLevelName(config.logging.level), int):
        result.add_error(f"logging.level is not a known level: {config.logging.level!r}")


def _validate_timezone(config: BillingConfig, result: ConfigValidationResult) -> None:
    try:
        ZoneInfo(config.timezone)
    except (ZoneInfoNotFoundError, ValueError):
        result.add_error(f"timezone is not a known IANA zone: {config.timezone!r}")
