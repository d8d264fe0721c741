"""
Short-lived access URLs for published receipt and cash-cut documents.

A receipt document is served only while the receipt is Issued or Cancelled
and carries a reference inside the configured bucket.  Cash-cut documents
are addressed by their deterministic path.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from billing_kernel.db.engine import Database
from billing_kernel.domain.values import ReceiptStatus
from billing_kernel.exceptions import (
    ArtifactNotAvailableError,
    BillingKernelError,
    CashCutNotFoundError,
    InvalidIdentifierError,
    ReceiptNotFoundError,
)
from billing_kernel.logging_config import get_logger
from billing_kernel.models.cash_cut import CashCut
from billing_kernel.models.receipt import Receipt
from billing_services.artifact_paths import cash_cut_path, ensure_safe_name, strip_reference
from billing_services.artifact_store import ArtifactStore
from billing_services.outcomes import log_failure

logger = get_logger("services.artifact_access")

_SERVABLE_STATUSES = (ReceiptStatus.ISSUED.value, ReceiptStatus.CANCELLED.value)


@dataclass(frozen=True)
class ArtifactAccess:
    entity_id: str
    path: str
    url: str
    expires_in: int

    def to_dict(self) -> dict:
        return {
            "ok": True,
            "entity_id": self.entity_id,
            "path": self.path,
            "url": self.url,
            "expires_in": self.expires_in,
        }


def parse_receipt_id(value: str | UUID) -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError as exc:
        raise InvalidIdentifierError("receipt", str(value)) from exc


class ArtifactAccessService:
    def __init__(
        self,
        db: Database,
        store: ArtifactStore,
        reference_prefix: str,
        extension: str,
        ttl_seconds: int = 60,
    ):
        self._db = db
        self._store = store
        self._prefix = reference_prefix
        self._extension = extension
        self._ttl = ttl_seconds

    def receipt_url(self, receipt_id: str | UUID) -> ArtifactAccess:
        try:
            rid = parse_receipt_id(receipt_id)
            with self._db.session() as session:
                receipt = session.get(Receipt, rid)
                if receipt is None:
                    raise ReceiptNotFoundError(str(rid))
                status = receipt.status
                reference = receipt.artifact_ref
            if status not in _SERVABLE_STATUSES or not reference:
                raise ArtifactNotAvailableError("receipt", str(rid))
            path = strip_reference(reference, self._prefix)
            url = self._store.access_url(path, self._ttl)
        except BillingKernelError as exc:
            log_failure(logger, "receipt_access_url", exc)
            raise

        logger.info(
            "artifact_access_granted",
            extra={"kind": "receipt", "entity_id": str(rid), "path": path},
        )
        return ArtifactAccess(str(rid), path, url, self._ttl)

    def cash_cut_url(self, cash_cut_id: str) -> ArtifactAccess:
        try:
            ensure_safe_name(cash_cut_id)
            with self._db.session() as session:
                cut = session.get(CashCut, cash_cut_id)
                if cut is None:
                    raise CashCutNotFoundError(cash_cut_id)
                reference = cut.artifact_ref
            if reference:
                path = strip_reference(reference, self._prefix)
            else:
                path = cash_cut_path(cash_cut_id, self._extension)
            url = self._store.access_url(path, self._ttl)
        except BillingKernelError as exc:
            log_failure(logger, "cash_cut_access_url", exc)
            raise

        logger.info(
            "artifact_access_granted",
            extra={"kind": "cash_cut", "entity_id": cash_cut_id, "path": path},
        )
        return ArtifactAccess(cash_cut_id, path, url, self._ttl)
