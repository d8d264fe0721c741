"""
billing_services.outcomes -- Operation results and the failure log policy.

``LifecycleResult`` is what every receipt operation returns on success
(possibly with a non-fatal warning).  ``log_failure`` is the single place
that maps an error category to a log level:

    validation / conflict  -> WARNING
    side_effect            -> ERROR
    consistency            -> CRITICAL
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from billing_kernel.exceptions import BillingKernelError


class ReceiptOperation(str, Enum):
    COMPUTE = "compute"
    ISSUE = "issue"
    CANCEL = "cancel"
    REGENERATE = "regenerate"


@dataclass(frozen=True)
class LifecycleResult:
    """
    Outcome of a receipt lifecycle operation.

    ``ok`` stays True when only the post-commit document step failed; the
    failure is then reported in ``warning`` and ``artifact_ref`` is None.
    """

    ok: bool
    operation: ReceiptOperation
    receipt_id: str
    status: str
    total: Decimal | None = None
    cash_cut_id: str | None = None
    artifact_ref: str | None = None
    warning: str | None = None
    duration_ms: float = 0.0

    @property
    def has_warning(self) -> bool:
        return self.warning is not None

    def to_dict(self) -> dict:
        return {
            "ok": self.ok,
            "operation": self.operation.value,
            "receipt_id": self.receipt_id,
            "status": self.status,
            "total": str(self.total) if self.total is not None else None,
            "cash_cut_id": self.cash_cut_id,
            "artifact_ref": self.artifact_ref,
            "warning": self.warning,
            "duration_ms": self.duration_ms,
        }


_LEVELS = {
    "validation": logging.WARNING,
    "conflict": logging.WARNING,
    "configuration": logging.ERROR,
    "side_effect": logging.ERROR,
    "consistency": logging.CRITICAL,
}


def warning_text(exc: BillingKernelError) -> str:
    return f"{exc.code}: {exc}"


def log_failure(
    logger: logging.Logger,
    operation: str,
    exc: BillingKernelError,
    *,
    downgraded: bool = False,
) -> None:
    """
    Log a typed failure at the level its category calls for.

    ``downgraded`` marks side-effect failures that were turned into a warning
    on an otherwise successful operation.
    """
    level = _LEVELS.get(exc.category, logging.ERROR)
    logger.log(
        level,
        f"{operation}_failed" if not downgraded else f"{operation}_document_warning",
        extra={"operation": operation, "downgraded": downgraded},
        exc_info=exc,
    )
