"""
billing_services.cash_cut_service -- Cash-cut bucket creation and recomputation.

Responsibility:
    Create the (cashier, campus, day) bucket on first Issue and recompute its
    totals from the full member set whenever a receipt enters or leaves it.

Architecture position:
    Services -- runs inside the lifecycle transaction.  Flushes, never
    commits.

Invariants enforced:
    - Bucket ids derive from the receipt's operating date, never the clock.
    - Recompute locks the bucket row, so concurrent Issues into the same
      bucket serialize and the last writer sees every committed member.
    - Concurrent creation of the same bucket is resolved with a savepoint
      and a retry of the locked read.

Failure modes:
    - CashCutNotFoundError when recomputing a bucket that does not exist.
"""

from __future__ import annotations

from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from billing_engines.cash_cut import CashCutTotals, CutMember, aggregate_cash_cut
from billing_kernel.domain.values import ReceiptStatus
from billing_kernel.exceptions import CashCutNotFoundError
from billing_kernel.logging_config import get_logger
from billing_kernel.models.cash_cut import CashCut, CashExpense
from billing_kernel.models.receipt import Receipt

logger = get_logger("services.cash_cut")


def cash_cut_bucket_id(cashier_id: UUID, campus_id: UUID, operating_date: date) -> str:
    """``<cashier-id>-<campus-id>-<YYYYMMDD>``."""
    return f"{cashier_id}-{campus_id}-{operating_date:%Y%m%d}"


class CashCutService:
    """Bucket maintenance within a caller-owned transaction."""

    def __init__(self, session: Session):
        self._session = session

    def _lock(self, cash_cut_id: str) -> CashCut | None:
        return self._session.execute(
            select(CashCut)
            .where(CashCut.id == cash_cut_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def ensure(
        self,
        cashier_id: UUID,
        campus_id: UUID,
        operating_date: date,
    ) -> CashCut:
        """Return the locked bucket for the key, creating it if needed."""
        cash_cut_id = cash_cut_bucket_id(cashier_id, campus_id, operating_date)
        cut = self._lock(cash_cut_id)
        if cut is not None:
            return cut

        savepoint = self._session.begin_nested()
        try:
            cut = CashCut(
                id=cash_cut_id,
                cashier_id=cashier_id,
                campus_id=campus_id,
                business_date=operating_date,
            )
            self._session.add(cut)
            self._session.flush()
            savepoint.commit()
            logger.info("cash_cut_created", extra={"cash_cut_id": cash_cut_id})
            return cut
        except IntegrityError:
            logger.debug("cash_cut_create_race_retry", extra={"cash_cut_id": cash_cut_id})
            savepoint.rollback()
            self._session.expire_all()
            cut = self._lock(cash_cut_id)
            if cut is None:
                raise CashCutNotFoundError(cash_cut_id)
            return cut

    def recompute(self, cash_cut_id: str) -> CashCutTotals:
        """
        Recompute the bucket from its Issued/Cancelled members and expenses.

        Idempotent: recomputing twice writes identical values.
        """
        cut = self._lock(cash_cut_id)
        if cut is None:
            raise CashCutNotFoundError(cash_cut_id)

        rows = self._session.execute(
            select(Receipt.status, Receipt.payment_method, Receipt.total).where(
                Receipt.cash_cut_id == cash_cut_id,
                Receipt.status.in_(
                    [ReceiptStatus.ISSUED.value, ReceiptStatus.CANCELLED.value]
                ),
            )
        ).all()
        members = [
            CutMember(status=status, payment_method=method, total=total)
            for status, method, total in rows
        ]
        expenses = list(
            self._session.execute(
                select(CashExpense.amount).where(CashExpense.cash_cut_id == cash_cut_id)
            ).scalars()
        )

        totals = aggregate_cash_cut(members, expenses)
        for column, value in totals.as_column_values().items():
            setattr(cut, column, value)
        self._session.flush()

        logger.info(
            "cash_cut_recomputed",
            extra={
                "cash_cut_id": cash_cut_id,
                "members": len(members),
                "grand_total": str(totals.grand_total),
                "net_cash": str(totals.net_cash),
            },
        )
        return totals
