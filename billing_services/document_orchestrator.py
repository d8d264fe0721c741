"""
billing_services.document_orchestrator -- Post-commit document publication.

Responsibility:
    After a lifecycle transaction commits, re-read the hydrated entity,
    render it, replace the artifact at its target path and write the
    reference back under an optimistic guard.  Also owns the release of the
    persisted document lock on every exit path.

Architecture position:
    Services -- runs OUTSIDE the lifecycle transaction, on fresh sessions.

Invariants enforced:
    - Guarded write-back: the artifact reference is stored only while the
      entity is still in the expected status AND the document lock is held
      by the publishing operation's token.  Zero rows is a consistency
      fault, never a silent overwrite.
    - Lock release matches on the operation's token, so cleanup never clears
      a lock owned by another operation and is safe to run unconditionally.
    - Lock cleanup failures are logged and never re-raised.

Failure modes:
    - DocumentGenerationError: hydration miss, renderer or store failure,
      or a database error while hydrating or writing back a receipt.
    - DocumentStateChangedError: guarded write-back affected zero rows.
    - DocumentLockHeldError / CashCutNotFoundError: cash-cut publication
      could not take the bucket's document lock.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from uuid import UUID, uuid4

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from billing_config.schema import BillingConfig
from billing_kernel.db.engine import Database
from billing_kernel.exceptions import (
    BillingKernelError,
    CashCutNotFoundError,
    DocumentGenerationError,
    DocumentLockHeldError,
    DocumentStateChangedError,
)
from billing_kernel.logging_config import LogContext, get_logger
from billing_kernel.models.cash_cut import CashCut
from billing_kernel.models.receipt import Receipt
from billing_kernel.selectors.cash_cut_selector import CashCutSelector
from billing_kernel.selectors.receipt_selector import ReceiptSelector
from billing_services.artifact_paths import cash_cut_path, resolve_receipt_path
from billing_services.artifact_store import ArtifactStore
from billing_services.cash_cut_service import CashCutService
from billing_services.outcomes import log_failure
from billing_services.rendering import DocumentKind, DocumentRenderer

logger = get_logger("services.documents")


@dataclass(frozen=True)
class PublicationSettings:
    extension: str
    content_type: str
    reference_prefix: str

    @classmethod
    def from_config(cls, config: BillingConfig) -> "PublicationSettings":
        return cls(
            extension=config.documents.extension,
            content_type=config.documents.content_type,
            reference_prefix=config.storage.reference_prefix,
        )


@dataclass(frozen=True)
class CashCutPublication:
    cash_cut_id: str
    artifact_ref: str
    grand_total: str
    net_cash: str
    duration_ms: float


class DocumentOrchestrator:
    """Renders, stores and reconciles receipt and cash-cut documents."""

    def __init__(
        self,
        db: Database,
        renderer: DocumentRenderer,
        store: ArtifactStore,
        settings: PublicationSettings,
    ):
        self._db = db
        self._renderer = renderer
        self._store = store
        self._settings = settings

    @property
    def settings(self) -> PublicationSettings:
        return self._settings

    def receipt_target(
        self,
        receipt_id: UUID,
        existing_ref: str | None,
        *,
        strict: bool,
    ) -> str:
        """Bucket-relative path a receipt document is (re)written to."""
        return resolve_receipt_path(
            existing_ref,
            receipt_id,
            self._settings.reference_prefix,
            self._settings.extension,
            strict=strict,
        )

    # ------------------------------------------------------------------
    # Receipts
    # ------------------------------------------------------------------

    def publish_receipt(
        self,
        receipt_id: UUID,
        expected_status: str,
        lock_token: str,
        path: str,
    ) -> str:
        """
        Render and store a receipt, then write the reference back.

        Preconditions:
            The lifecycle transaction that set ``generating_document`` with
            ``lock_token`` has committed.

        Returns:
            The stored artifact reference.
        """
        try:
            with self._db.session() as session:
                hydrated = ReceiptSelector(session).hydrated(receipt_id)
        except SQLAlchemyError as exc:
            raise DocumentGenerationError(str(receipt_id), f"hydration failed: {exc}") from exc
        if hydrated is None:
            raise DocumentGenerationError(str(receipt_id), "receipt not found for rendering")

        reference = self._render_and_store(
            str(receipt_id), DocumentKind.RECEIPT, hydrated, path
        )

        try:
            with self._db.session_scope() as session:
                result = session.execute(
                    update(Receipt)
                    .where(
                        Receipt.id == receipt_id,
                        Receipt.status == expected_status,
                        Receipt.generating_document.is_(True),
                        Receipt.document_lock_token == lock_token,
                    )
                    .values(
                        artifact_ref=reference,
                        generating_document=False,
                        document_lock_token=None,
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    raise DocumentStateChangedError(str(receipt_id), expected_status)
        except SQLAlchemyError as exc:
            raise DocumentGenerationError(str(receipt_id), f"write-back failed: {exc}") from exc

        logger.info(
            "document_published",
            extra={"kind": DocumentKind.RECEIPT.value, "path": path, "artifact_ref": reference},
        )
        return reference

    def release_receipt_lock(self, receipt_id: UUID, lock_token: str) -> bool:
        """
        Clear the receipt's document lock if this token still owns it.

        Returns True when a lock was released.  Never raises.
        """
        try:
            with self._db.session_scope() as session:
                result = session.execute(
                    update(Receipt)
                    .where(
                        Receipt.id == receipt_id,
                        Receipt.generating_document.is_(True),
                        Receipt.document_lock_token == lock_token,
                    )
                    .values(generating_document=False, document_lock_token=None)
                    .execution_options(synchronize_session=False)
                )
                released = result.rowcount == 1
        except SQLAlchemyError:
            logger.error(
                "document_lock_release_failed",
                extra={"receipt_id": str(receipt_id)},
                exc_info=True,
            )
            return False
        if released:
            logger.info("document_lock_released", extra={"receipt_id": str(receipt_id)})
        return released

    # ------------------------------------------------------------------
    # Cash cuts
    # ------------------------------------------------------------------

    def publish_cash_cut(self, cash_cut_id: str) -> CashCutPublication:
        """
        Recompute a bucket, render its report and overwrite ``cuts/<id>``.

        Raises:
            CashCutNotFoundError, DocumentLockHeldError: before any change.
            DocumentGenerationError, DocumentStateChangedError: after the
                recompute committed; the lock is released either way.
        """
        start = time.monotonic()
        token = str(uuid4())
        path = cash_cut_path(cash_cut_id, self._settings.extension)

        with LogContext.bind(operation="publish_cash_cut", cash_cut_id=cash_cut_id):
            try:
                return self._publish_cash_cut(cash_cut_id, token, path, start)
            except BillingKernelError as exc:
                log_failure(logger, "publish_cash_cut", exc)
                raise

    def _publish_cash_cut(
        self, cash_cut_id: str, token: str, path: str, start: float
    ) -> CashCutPublication:
        with self._db.session_scope() as session:
            cut = session.get(CashCut, cash_cut_id, with_for_update=True)
            if cut is None:
                raise CashCutNotFoundError(cash_cut_id)
            if cut.generating_document:
                raise DocumentLockHeldError(cash_cut_id)
            totals = CashCutService(session).recompute(cash_cut_id)
            cut.generating_document = True
            cut.document_lock_token = token
            cut.printing = True

        try:
            with self._db.session() as session:
                hydrated = CashCutSelector(session).hydrated(cash_cut_id)
            if hydrated is None:
                raise DocumentGenerationError(cash_cut_id, "cash cut not found for rendering")

            reference = self._render_and_store(
                cash_cut_id, DocumentKind.CASH_CUT, hydrated, path
            )

            with self._db.session_scope() as session:
                result = session.execute(
                    update(CashCut)
                    .where(
                        CashCut.id == cash_cut_id,
                        CashCut.generating_document.is_(True),
                        CashCut.document_lock_token == token,
                    )
                    .values(
                        artifact_ref=reference,
                        printing=False,
                        generating_document=False,
                        document_lock_token=None,
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    raise DocumentStateChangedError(cash_cut_id, None)
        finally:
            self.release_cash_cut_lock(cash_cut_id, token)

        duration_ms = round((time.monotonic() - start) * 1000, 2)
        logger.info(
            "document_published",
            extra={
                "kind": DocumentKind.CASH_CUT.value,
                "path": path,
                "artifact_ref": reference,
                "duration_ms": duration_ms,
            },
        )
        return CashCutPublication(
            cash_cut_id=cash_cut_id,
            artifact_ref=reference,
            grand_total=str(totals.grand_total),
            net_cash=str(totals.net_cash),
            duration_ms=duration_ms,
        )

    def release_cash_cut_lock(self, cash_cut_id: str, lock_token: str) -> bool:
        """Clear the bucket's document lock and printing flag for this token.  Never raises."""
        try:
            with self._db.session_scope() as session:
                result = session.execute(
                    update(CashCut)
                    .where(
                        CashCut.id == cash_cut_id,
                        CashCut.document_lock_token == lock_token,
                    )
                    .values(
                        generating_document=False,
                        document_lock_token=None,
                        printing=False,
                    )
                    .execution_options(synchronize_session=False)
                )
                return result.rowcount == 1
        except SQLAlchemyError:
            logger.error(
                "document_lock_release_failed",
                extra={"cash_cut_id": cash_cut_id},
                exc_info=True,
            )
            return False

    # ------------------------------------------------------------------

    def _render_and_store(
        self,
        entity_id: str,
        kind: DocumentKind,
        hydrated: object,
        path: str,
    ) -> str:
        """Render, delete any prior artifact at ``path``, upload the new bytes."""
        try:
            content = self._renderer.render(kind, hydrated)
        except Exception as exc:
            raise DocumentGenerationError(entity_id, f"render failed: {exc}") from exc

        try:
            existed = self._store.delete(path)
            reference = self._store.put(content, path, self._settings.content_type)
        except Exception as exc:
            raise DocumentGenerationError(entity_id, f"upload failed: {exc}") from exc

        logger.debug(
            "artifact_replaced",
            extra={"path": path, "replaced": existed, "bytes": len(content)},
        )
        return reference
