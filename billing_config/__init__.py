"""
billing_config -- single public entrypoint for runtime configuration.

Responsibility:
    ``load_config()`` is the only way components obtain settings.  It reads an
    optional YAML file, overlays ``BILLING_*`` environment variables, and
    validates the result once; nothing downstream re-reads the environment.

Architecture position:
    Configuration -- sits beside ``billing_kernel``.  The kernel MUST NEVER
    import from ``billing_config``; services receive the parsed dataclasses
    through their constructors.

Failure modes:
    - ``FileNotFoundError`` -- an explicit path that does not exist.
    - ``ConfigurationError`` -- one or more missing or invalid settings,
      all listed in ``problems``.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path

from billing_config.loader import load_yaml_file, merge_environment, parse_config
from billing_config.schema import (
    BillingConfig,
    DatabaseConfig,
    DocumentConfig,
    LoggingConfig,
    StorageConfig,
)
from billing_config.validator import ConfigValidationResult, validate_configuration
from billing_kernel.exceptions import ConfigurationError

_logger = logging.getLogger("billing_kernel.config")

CONFIG_PATH_ENV = "BILLING_CONFIG"


def load_config(
    path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> BillingConfig:
    """
    Load, merge and validate configuration.

    Args:
        path: YAML file.  Defaults to ``$BILLING_CONFIG`` when set, else no
            file (environment only).
        environ: Environment mapping; defaults to ``os.environ``.

    Raises:
        ConfigurationError: listing every problem found.
    """
    env = os.environ if environ is None else environ
    if path is None and env.get(CONFIG_PATH_ENV):
        path = env[CONFIG_PATH_ENV]

    data = load_yaml_file(Path(path)) if path is not None else {}
    if not isinstance(data, dict):
        raise ConfigurationError([f"{path}: top-level YAML must be a mapping"])

    problems: list[str] = []
    config = parse_config(merge_environment(data, env), problems)

    result = validate_configuration(config)
    problems.extend(result.errors)
    if problems:
        raise ConfigurationError(problems)

    _logger.info(
        "config_loaded",
        extra={
            "source": str(path) if path is not None else "environment",
            "storage_backend": config.storage.backend,
            "timezone": config.timezone,
        },
    )
    return config


__all__ = [
    "BillingConfig",
    "ConfigValidationResult",
    "DatabaseConfig",
    "DocumentConfig",
    "LoggingConfig",
    "StorageConfig",
    "load_config",
    "validate_configuration",
]
