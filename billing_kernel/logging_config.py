"""
Structured JSON logging for billing operations.

Every record under the ``billing_kernel`` logger becomes one JSON line that
carries the bound operation context (correlation, receipt, cash cut, actor).
Typed billing errors attached to a record contribute their code, category
and attributes as ``exc_*`` fields; anything else also gets a traceback.
"""

__all__ = [
    "CONTEXT_FIELDS",
    "LOGGER_NAMESPACE",
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, TextIO

from billing_kernel.exceptions import BillingKernelError

LOGGER_NAMESPACE = "billing_kernel"

CONTEXT_FIELDS = ("correlation_id", "operation", "receipt_id", "cash_cut_id", "actor_id")

# Treated as immutable: every change installs a new dict.
_context: ContextVar[dict[str, str]] = ContextVar("billing_log_context", default={})


class LogContext:
    """Operation-scoped fields merged into every billing log record."""

    @staticmethod
    def _merged(fields: dict[str, object]) -> dict[str, str]:
        unknown = set(fields) - set(CONTEXT_FIELDS)
        if unknown:
            raise TypeError(f"Unknown log context fields: {sorted(unknown)}")
        merged = dict(_context.get())
        merged.update({k: str(v) for k, v in fields.items() if v is not None})
        return merged

    @classmethod
    def set(cls, **fields: object) -> None:
        """Set fields for the rest of the current context.  None values are skipped."""
        _context.set(cls._merged(fields))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(_context.get())

    @classmethod
    def clear(cls) -> None:
        _context.set({})

    @classmethod
    @contextmanager
    def bind(cls, **fields: object) -> Iterator[None]:
        """Set fields for the duration of a block, restoring the previous values on exit."""
        token = _context.set(cls._merged(fields))
        try:
            yield
        finally:
            _context.reset(token)


_RECORD_ATTRIBUTES: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _json_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    # UUID keys and Decimal money render as their canonical strings.
    return str(value)


def _error_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    if isinstance(exc, BillingKernelError):
        fields["exc_code"] = exc.code
        fields["exc_category"] = exc.category
        fields.update(
            (f"exc_{name}", value)
            for name, value in vars(exc).items()
            if not name.startswith("_")
        )
    return fields


class StructuredFormatter(logging.Formatter):
    """Formats each log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(LogContext.get_all())
        payload.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRIBUTES and key not in payload
        )

        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            payload.update(_error_fields(exc))
            if not isinstance(exc, BillingKernelError):
                payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_value)


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the billing_kernel namespace."""
    return logging.getLogger(f"{LOGGER_NAMESPACE}.{name}")


_handler: logging.Handler | None = None


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: TextIO | None = None,
) -> None:
    """Attach the JSON handler to the billing_kernel logger.  Repeat calls are no-ops."""
    global _handler
    if _handler is not None:
        return

    logger = logging.getLogger(LOGGER_NAMESPACE)
    logger.setLevel(level)
    logger.propagate = False

    _handler = logging.StreamHandler(stream or sys.stderr)
    _handler.setFormatter(StructuredFormatter())
    logger.addHandler(_handler)


def reset_logging() -> None:
    """Detach the handler installed by configure_logging."""
    global _handler
    logger = logging.getLogger(LOGGER_NAMESPACE)
    if _handler is not None:
        logger.removeHandler(_handler)
        _handler = None
    logger.setLevel(logging.WARNING)
