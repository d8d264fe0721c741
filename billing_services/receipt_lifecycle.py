"""
billing_services.receipt_lifecycle -- Receipt state machine.

Responsibility:
    Drive receipts through Draft -> Issued -> Cancelled under row-level
    locks, recompute totals, guard against duplicate monthly charges, keep
    cash-cut buckets current, and hand committed state to the document
    orchestrator.

Architecture position:
    Services -- owns the transaction boundary of every lifecycle operation.
    Composes PricingService, CashCutService and DocumentOrchestrator.

Invariants enforced:
    - Transitions are Draft -> Issued -> Cancelled; every state change is a
      guarded UPDATE filtered by the required status, and affecting any
      row count other than one is a consistency fault.
    - A receipt is Issued at most once: the Draft row lock plus the status
      filter on the UPDATE make a second concurrent Issue a conflict.
    - One Issued Monthly line per (student, product, month, year); the
      student row is locked while the check runs.
    - Cash-cut buckets come from (cashier, campus, operating date).
    - Post-commit document failures never roll back the transition; on
      Issue and Cancel they surface as a warning on an ok result.
    - The document lock set by an operation is released with that
      operation's token on every exit path.

Failure modes:
    - Validation: MissingRequiredFieldError, MissingOperatingDateError,
      EmptyReceiptError, NegativeTotalError, InvalidArtifactReferenceError.
    - Conflict: ReceiptNotFoundError, ReceiptNotAvailableError,
      DocumentLockHeldError, DuplicateMonthlyChargeError,
      CancellationNotRequestedError.
    - Consistency: UnexpectedRowCountError, PostCommitVerificationError.
    - Side effect: DocumentGenerationError (Regenerate only).

Usage:
    lifecycle = ReceiptLifecycleService(db, orchestrator, clock=clock)
    result = lifecycle.issue(receipt_id)
    if result.has_warning:
        ...  # issued, but the document must be regenerated
"""

from __future__ import annotations

import time
from collections.abc import Sequence
from uuid import UUID, uuid4

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from billing_kernel.db.engine import Database
from billing_kernel.db.types import ZERO, to_decimal
from billing_kernel.domain.clock import Clock, SystemClock
from billing_kernel.domain.values import ReceiptStatus, Recurrence
from billing_kernel.exceptions import (
    BillingKernelError,
    CancellationNotRequestedError,
    DocumentLockHeldError,
    DuplicateMonthlyChargeError,
    EmptyReceiptError,
    MissingRequiredFieldError,
    NegativeTotalError,
    PostCommitVerificationError,
    ReceiptNotAvailableError,
    ReceiptNotFoundError,
    UnexpectedRowCountError,
)
from billing_kernel.logging_config import LogContext, get_logger
from billing_kernel.models.receipt import Receipt, ReceiptLineItem
from billing_kernel.models.reference import Student
from billing_services.cash_cut_service import CashCutService
from billing_services.document_orchestrator import DocumentOrchestrator
from billing_services.outcomes import (
    LifecycleResult,
    ReceiptOperation,
    log_failure,
    warning_text,
)
from billing_services.pricing_service import PricingService

logger = get_logger("services.receipt_lifecycle")

_ERROR_MESSAGE_LIMIT = 500


def _elapsed_ms(start: float) -> float:
    return round((time.monotonic() - start) * 1000, 2)


class ReceiptLifecycleService:
    """
    Compute, Issue, Cancel and Regenerate for receipts.

    Contract:
        Each public method runs its own transaction on ``db`` and returns a
        ``LifecycleResult`` or raises a ``BillingKernelError``.  Every
        failure is logged once, here, at the level its category calls for.
    """

    def __init__(
        self,
        db: Database,
        orchestrator: DocumentOrchestrator,
        clock: Clock | None = None,
    ):
        self._db = db
        self._orchestrator = orchestrator
        self._clock = clock or SystemClock()

    # ------------------------------------------------------------------
    # Locking helpers
    # ------------------------------------------------------------------

    def _lock_receipt(
        self,
        session: Session,
        receipt_id: UUID,
        statuses: Sequence[ReceiptStatus],
        *,
        require_lock_clear: bool,
    ) -> Receipt:
        """
        SELECT ... FOR UPDATE the receipt scoped by status (and lock state).

        When no row qualifies, a plain read decides which conflict to raise.
        """
        values = [s.value for s in statuses]
        stmt = (
            select(Receipt)
            .where(Receipt.id == receipt_id, Receipt.status.in_(values))
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        if require_lock_clear:
            stmt = stmt.where(Receipt.generating_document.is_(False))
        receipt = session.execute(stmt).scalar_one_or_none()
        if receipt is not None:
            return receipt

        current = session.execute(
            select(Receipt.status, Receipt.generating_document).where(
                Receipt.id == receipt_id
            )
        ).one_or_none()
        if current is None:
            raise ReceiptNotFoundError(str(receipt_id))
        status, generating = current
        if status not in values:
            raise ReceiptNotAvailableError(str(receipt_id), "/".join(values), status)
        if generating:
            raise DocumentLockHeldError(str(receipt_id))
        raise ReceiptNotAvailableError(str(receipt_id), "/".join(values), status)

    def _check_row_count(self, result, receipt_id: UUID, statement: str) -> None:
        if result.rowcount != 1:
            raise UnexpectedRowCountError(str(receipt_id), statement, 1, result.rowcount)

    # ------------------------------------------------------------------
    # Compute
    # ------------------------------------------------------------------

    def compute(self, receipt_id: UUID) -> LifecycleResult:
        """
        Recompute line prices and the total of a Draft receipt.

        Idempotent.  On failure the error is recorded in ``error_message``;
        the ``computing`` hint is always cleared afterwards.
        """
        start = time.monotonic()
        with LogContext.bind(operation="compute", receipt_id=str(receipt_id)):
            self._set_computing(receipt_id, True)
            try:
                with self._db.session_scope() as session:
                    receipt = self._lock_receipt(
                        session, receipt_id, (ReceiptStatus.DRAFT,), require_lock_clear=False
                    )
                    total = PricingService(session).recompute_receipt(receipt)
                    receipt.error_message = None
            except BillingKernelError as exc:
                log_failure(logger, "compute", exc)
                self._record_error(receipt_id, warning_text(exc))
                raise
            finally:
                self._set_computing(receipt_id, False)

            duration_ms = _elapsed_ms(start)
            logger.info(
                "receipt_computed",
                extra={"total": str(total), "duration_ms": duration_ms},
            )
            return LifecycleResult(
                ok=True,
                operation=ReceiptOperation.COMPUTE,
                receipt_id=str(receipt_id),
                status=ReceiptStatus.DRAFT.value,
                total=total,
                duration_ms=duration_ms,
            )

    def _set_computing(self, receipt_id: UUID, value: bool) -> None:
        try:
            with self._db.session_scope() as session:
                session.execute(
                    update(Receipt)
                    .where(Receipt.id == receipt_id)
                    .values(computing=value)
                    .execution_options(synchronize_session=False)
                )
        except SQLAlchemyError:
            logger.error("computing_flag_update_failed", extra={"value": value}, exc_info=True)

    def _record_error(self, receipt_id: UUID, message: str) -> None:
        try:
            with self._db.session_scope() as session:
                session.execute(
                    update(Receipt)
                    .where(Receipt.id == receipt_id)
                    .values(error_message=message[:_ERROR_MESSAGE_LIMIT])
                    .execution_options(synchronize_session=False)
                )
        except SQLAlchemyError:
            logger.error("error_message_update_failed", exc_info=True)

    # ------------------------------------------------------------------
    # Issue
    # ------------------------------------------------------------------

    def issue(self, receipt_id: UUID) -> LifecycleResult:
        """
        Issue a Draft receipt and publish its document.

        The transition commits before any document work starts.  Render or
        upload failures after commit yield ``ok=True`` with a warning and no
        artifact reference.
        """
        start = time.monotonic()
        token = str(uuid4())
        with LogContext.bind(operation="issue", receipt_id=str(receipt_id)):
            try:
                try:
                    total, cash_cut_id = self._issue_transaction(receipt_id, token)
                    self._verify_committed(receipt_id, ReceiptStatus.ISSUED, cash_cut_id)
                except BillingKernelError as exc:
                    log_failure(logger, "issue", exc)
                    raise

                logger.info(
                    "receipt_issued",
                    extra={"cash_cut_id": cash_cut_id, "total": str(total)},
                )
                path = self._orchestrator.receipt_target(receipt_id, None, strict=True)
                artifact_ref, warning = self._publish_best_effort(
                    "issue", receipt_id, ReceiptStatus.ISSUED, token, path
                )
            finally:
                self._orchestrator.release_receipt_lock(receipt_id, token)

            return LifecycleResult(
                ok=True,
                operation=ReceiptOperation.ISSUE,
                receipt_id=str(receipt_id),
                status=ReceiptStatus.ISSUED.value,
                total=total,
                cash_cut_id=cash_cut_id,
                artifact_ref=artifact_ref,
                warning=warning,
                duration_ms=_elapsed_ms(start),
            )

    def _issue_transaction(self, receipt_id: UUID, token: str):
        with self._db.session_scope() as session:
            receipt = self._lock_receipt(
                session, receipt_id, (ReceiptStatus.DRAFT,), require_lock_clear=True
            )

            missing = [
                name
                for name, value in (
                    ("student_id", receipt.student_id),
                    ("campus_id", receipt.campus_id),
                    ("cashier_id", receipt.cashier_id),
                    ("operating_date", receipt.operating_date),
                )
                if value is None
            ]
            if missing:
                raise MissingRequiredFieldError(str(receipt_id), missing)
            if to_decimal(receipt.total) < ZERO:
                raise NegativeTotalError(str(receipt_id), str(receipt.total))

            line_count = session.execute(
                select(func.count(ReceiptLineItem.id)).where(
                    ReceiptLineItem.receipt_id == receipt_id,
                    ReceiptLineItem.status == ReceiptStatus.DRAFT.value,
                )
            ).scalar_one()
            if line_count == 0:
                raise EmptyReceiptError(str(receipt_id))

            self._guard_duplicate_monthly_charges(session, receipt)

            total = PricingService(session).recompute_receipt(receipt)
            if total < ZERO:
                raise NegativeTotalError(str(receipt_id), str(total))

            cuts = CashCutService(session)
            cut = cuts.ensure(receipt.cashier_id, receipt.campus_id, receipt.operating_date)
            cash_cut_id = cut.id

            result = session.execute(
                update(Receipt)
                .where(
                    Receipt.id == receipt_id,
                    Receipt.status == ReceiptStatus.DRAFT.value,
                    Receipt.generating_document.is_(False),
                )
                .values(
                    status=ReceiptStatus.ISSUED.value,
                    cash_cut_id=cash_cut_id,
                    issued_at=self._clock.now(),
                    printing=False,
                    generating_document=True,
                    document_lock_token=token,
                    error_message=None,
                )
                .execution_options(synchronize_session=False)
            )
            self._check_row_count(result, receipt_id, "issue_receipt")

            session.execute(
                update(ReceiptLineItem)
                .where(
                    ReceiptLineItem.receipt_id == receipt_id,
                    ReceiptLineItem.status == ReceiptStatus.DRAFT.value,
                )
                .values(status=ReceiptStatus.ISSUED.value)
                .execution_options(synchronize_session=False)
            )

            cuts.recompute(cash_cut_id)
        return total, cash_cut_id

    def _guard_duplicate_monthly_charges(self, session: Session, receipt: Receipt) -> None:
        """Reject a Monthly line already billed on another Issued line for this student."""
        session.execute(
            select(Student.id).where(Student.id == receipt.student_id).with_for_update()
        )

        monthly_lines = session.execute(
            select(
                ReceiptLineItem.product_id,
                ReceiptLineItem.billing_month,
                ReceiptLineItem.billing_year,
            ).where(
                ReceiptLineItem.receipt_id == receipt.id,
                ReceiptLineItem.status == ReceiptStatus.DRAFT.value,
                ReceiptLineItem.recurrence == Recurrence.MONTHLY.value,
                ReceiptLineItem.billing_month.is_not(None),
                ReceiptLineItem.billing_year.is_not(None),
            )
        ).all()

        for product_id, month, year in monthly_lines:
            existing = session.execute(
                select(Receipt.id)
                .join(ReceiptLineItem, ReceiptLineItem.receipt_id == Receipt.id)
                .where(
                    Receipt.student_id == receipt.student_id,
                    Receipt.id != receipt.id,
                    ReceiptLineItem.product_id == product_id,
                    ReceiptLineItem.billing_month == month,
                    ReceiptLineItem.billing_year == year,
                    ReceiptLineItem.recurrence == Recurrence.MONTHLY.value,
                    ReceiptLineItem.status == ReceiptStatus.ISSUED.value,
                )
                .limit(1)
            ).scalar_one_or_none()
            if existing is not None:
                raise DuplicateMonthlyChargeError(
                    receipt_id=str(receipt.id),
                    student_id=str(receipt.student_id),
                    product_id=str(product_id),
                    month=month,
                    year=year,
                    existing_receipt_id=str(existing),
                )

    def _verify_committed(
        self,
        receipt_id: UUID,
        status: ReceiptStatus,
        cash_cut_id: str | None,
    ) -> None:
        """Re-read committed state on a fresh session."""
        with self._db.session() as session:
            stmt = select(Receipt.id).where(
                Receipt.id == receipt_id, Receipt.status == status.value
            )
            if cash_cut_id is not None:
                stmt = stmt.where(Receipt.cash_cut_id == cash_cut_id)
            found = session.execute(stmt).scalar_one_or_none()
        if found is None:
            raise PostCommitVerificationError(str(receipt_id), status.value, cash_cut_id)

    def _publish_best_effort(
        self,
        operation: str,
        receipt_id: UUID,
        status: ReceiptStatus,
        token: str,
        path: str,
    ) -> tuple[str | None, str | None]:
        """Publish the document; a failure becomes (None, warning)."""
        try:
            return (
                self._orchestrator.publish_receipt(receipt_id, status.value, token, path),
                None,
            )
        except BillingKernelError as exc:
            log_failure(logger, operation, exc, downgraded=True)
            return None, warning_text(exc)

    # ------------------------------------------------------------------
    # Cancel
    # ------------------------------------------------------------------

    def cancel(self, receipt_id: UUID) -> LifecycleResult:
        """
        Cancel an Issued receipt whose cancellation was requested.

        The document is re-rendered with a cancellation watermark at the
        receipt's existing artifact path.
        """
        start = time.monotonic()
        token = str(uuid4())
        with LogContext.bind(operation="cancel", receipt_id=str(receipt_id)):
            try:
                try:
                    cash_cut_id, existing_ref, total = self._cancel_transaction(
                        receipt_id, token
                    )
                    self._verify_committed(receipt_id, ReceiptStatus.CANCELLED, cash_cut_id)
                except BillingKernelError as exc:
                    log_failure(logger, "cancel", exc)
                    raise

                logger.info("receipt_cancelled", extra={"cash_cut_id": cash_cut_id})
                path = self._orchestrator.receipt_target(receipt_id, existing_ref, strict=False)
                artifact_ref, warning = self._publish_best_effort(
                    "cancel", receipt_id, ReceiptStatus.CANCELLED, token, path
                )
            finally:
                self._orchestrator.release_receipt_lock(receipt_id, token)

            return LifecycleResult(
                ok=True,
                operation=ReceiptOperation.CANCEL,
                receipt_id=str(receipt_id),
                status=ReceiptStatus.CANCELLED.value,
                total=total,
                cash_cut_id=cash_cut_id,
                artifact_ref=artifact_ref,
                warning=warning,
                duration_ms=_elapsed_ms(start),
            )

    def _cancel_transaction(self, receipt_id: UUID, token: str):
        with self._db.session_scope() as session:
            receipt = self._lock_receipt(
                session, receipt_id, (ReceiptStatus.ISSUED,), require_lock_clear=True
            )
            if not receipt.cancellation_requested:
                raise CancellationNotRequestedError(str(receipt_id))

            cash_cut_id = receipt.cash_cut_id
            existing_ref = receipt.artifact_ref
            total = receipt.total

            result = session.execute(
                update(Receipt)
                .where(
                    Receipt.id == receipt_id,
                    Receipt.status == ReceiptStatus.ISSUED.value,
                    Receipt.cancellation_requested.is_(True),
                    Receipt.generating_document.is_(False),
                )
                .values(
                    status=ReceiptStatus.CANCELLED.value,
                    cancelled_at=self._clock.now(),
                    cancellation_requested=False,
                    generating_document=True,
                    document_lock_token=token,
                )
                .execution_options(synchronize_session=False)
            )
            self._check_row_count(result, receipt_id, "cancel_receipt")

            session.execute(
                update(ReceiptLineItem)
                .where(
                    ReceiptLineItem.receipt_id == receipt_id,
                    ReceiptLineItem.status == ReceiptStatus.ISSUED.value,
                )
                .values(status=ReceiptStatus.CANCELLED.value)
                .execution_options(synchronize_session=False)
            )

            if cash_cut_id is not None:
                CashCutService(session).recompute(cash_cut_id)
        return cash_cut_id, existing_ref, total

    # ------------------------------------------------------------------
    # Regenerate
    # ------------------------------------------------------------------

    def regenerate(self, receipt_id: UUID) -> LifecycleResult:
        """
        Re-render an Issued or Cancelled receipt from persisted state.

        Unlike Issue and Cancel there is no committed transition to report,
        so a document failure raises DocumentGenerationError.
        """
        start = time.monotonic()
        token = str(uuid4())
        with LogContext.bind(operation="regenerate", receipt_id=str(receipt_id)):
            try:
                status, path, cash_cut_id, total = self._regenerate_lock(receipt_id, token)
                artifact_ref = self._orchestrator.publish_receipt(
                    receipt_id, status, token, path
                )
            except BillingKernelError as exc:
                log_failure(logger, "regenerate", exc)
                raise
            finally:
                self._orchestrator.release_receipt_lock(receipt_id, token)

            logger.info("receipt_regenerated", extra={"artifact_ref": artifact_ref})
            return LifecycleResult(
                ok=True,
                operation=ReceiptOperation.REGENERATE,
                receipt_id=str(receipt_id),
                status=status,
                total=total,
                cash_cut_id=cash_cut_id,
                artifact_ref=artifact_ref,
                duration_ms=_elapsed_ms(start),
            )

    def _regenerate_lock(self, receipt_id: UUID, token: str):
        with self._db.session_scope() as session:
            receipt = self._lock_receipt(
                session,
                receipt_id,
                (ReceiptStatus.ISSUED, ReceiptStatus.CANCELLED),
                require_lock_clear=True,
            )
            status = receipt.status
            path = self._orchestrator.receipt_target(
                receipt_id, receipt.artifact_ref, strict=True
            )

            result = session.execute(
                update(Receipt)
                .where(
                    Receipt.id == receipt_id,
                    Receipt.status == status,
                    Receipt.generating_document.is_(False),
                )
                .values(generating_document=True, document_lock_token=token)
                .execution_options(synchronize_session=False)
            )
            self._check_row_count(result, receipt_id, "lock_receipt_document")
            return status, path, receipt.cash_cut_id, receipt.total
