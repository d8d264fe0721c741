"""
Module: billing_kernel.models.cash_cut
Responsibility: ORM persistence for cash-cut buckets (one cashier, one
    campus, one business day) and the cash expenses recorded against them.
Architecture position: Kernel > Models.  May import from db/ and
    domain/values.py only.

Invariants enforced:
    - id is the natural key ``<cashier-id>-<campus-id>-<YYYYMMDD>`` derived
      from the receipts' operating date, never from the processing clock.
    - Totals are recomputed from the full member set; never hand-edited.
    - net_cash = total_cash - cash_expenses.
    - grand_total = total_card + total_transfer + total_cash (pre-expense).
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, Date, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from billing_kernel.db.base import TrackedBase, UUIDString
from billing_kernel.db.types import Money


class CashCut(TrackedBase):
    """
    Aggregation bucket summarizing one cashier's receipts for one campus/day.

    Contract:
        Created implicitly on the first Issue that lands in the bucket and
        recomputed on every Issue/Cancel touching it.
    """

    __tablename__ = "cash_cuts"

    __table_args__ = (Index("idx_cash_cut_day", "campus_id", "business_date"),)

    id: Mapped[str] = mapped_column(String(120), primary_key=True)

    cashier_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("cashiers.id"), nullable=False
    )
    campus_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("campuses.id"), nullable=False
    )
    business_date: Mapped[date] = mapped_column(Date, nullable=False)

    # Receipt counts by status and payment method
    issued_card_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    issued_transfer_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    issued_cash_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    cancelled_card_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    cancelled_transfer_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    cancelled_cash_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Money collected (Issued receipts only)
    total_card: Mapped[Money] = mapped_column(default=Decimal("0"), nullable=False)
    total_transfer: Mapped[Money] = mapped_column(default=Decimal("0"), nullable=False)
    total_cash: Mapped[Money] = mapped_column(default=Decimal("0"), nullable=False)
    grand_total: Mapped[Money] = mapped_column(default=Decimal("0"), nullable=False)
    cash_expenses: Mapped[Money] = mapped_column(default=Decimal("0"), nullable=False)
    net_cash: Mapped[Money] = mapped_column(default=Decimal("0"), nullable=False)

    artifact_ref: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    printing: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    generating_document: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    document_lock_token: Mapped[str | None] = mapped_column(String(36), nullable=True)

    def __repr__(self) -> str:
        return f"<CashCut {self.id} total={self.grand_total}>"


class CashExpense(TrackedBase):
    """A cash outflow paid from the drawer during the bucket's day."""

    __tablename__ = "cash_expenses"

    __table_args__ = (Index("idx_cash_expense_cut", "cash_cut_id"),)

    cash_cut_id: Mapped[str] = mapped_column(
        String(120), ForeignKey("cash_cuts.id"), nullable=False
    )
    amount: Mapped[Money] = mapped_column(nullable=False)
    description: Mapped[str] = mapped_column(String(300), nullable=False, default="")
