"""
Module: billing_kernel.models.receipt
Responsibility: ORM persistence for receipts and their line items, including
    the advisory flags that coordinate document generation across
    transactions and processes.
Architecture position: Kernel > Models.  May import from db/ and
    domain/values.py only.

Invariants enforced:
    - Status transitions are Draft -> Issued -> Cancelled only (enforced by
      ReceiptLifecycleService with guarded UPDATEs).
    - total >= 0.
    - A Draft receipt has no cash_cut_id and no issued_at.
    - Line final_price = max(0, ceil(base - discount - scholarship + surcharge
      + adjustment)); recomputed only while the receipt is Draft.
    - Line status mirrors the receipt status.

Failure modes:
    - None at the model level; every transition is validated by the service.

Audit relevance:
    Receipts are never physically deleted.  Cancelled receipts are retained
    with cancelled_at, and their document is re-rendered with a cancellation
    watermark.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from billing_kernel.db.base import TrackedBase, UUIDString
from billing_kernel.db.types import Money
from billing_kernel.domain.values import PaymentMethod, ReceiptStatus, Recurrence


class Receipt(TrackedBase):
    """
    A billable transaction for one student.

    Contract:
        Created as Draft (with its lines) by an external intake process and
        mutated only by the lifecycle service.

    Advisory flags:
        computing            -- UX hint while totals are recomputed; not
                                authoritative, always cleared afterwards.
        printing             -- print in progress; cleared on issue.
        generating_document  -- authoritative mutual-exclusion lock for
                                document generation.  Survives the owning
                                transaction; ``document_lock_token`` names
                                the operation holding it.
        cancellation_requested -- set by an external approval step; required
                                for Cancel and consumed by it.
    """

    __tablename__ = "receipts"

    __table_args__ = (
        Index("idx_receipt_status", "status"),
        Index("idx_receipt_cash_cut", "cash_cut_id"),
        Index("idx_receipt_student", "student_id"),
    )

    student_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("students.id"), nullable=True
    )
    campus_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("campuses.id"), nullable=True
    )
    cashier_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("cashiers.id"), nullable=True
    )

    # Business date of the receipt; drives pricing and cash-cut bucketing
    operating_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    payment_method: Mapped[PaymentMethod | None] = mapped_column(
        String(20), nullable=True
    )

    status: Mapped[ReceiptStatus] = mapped_column(
        String(20), default=ReceiptStatus.DRAFT.value, nullable=False
    )

    total: Mapped[Money] = mapped_column(default=Decimal("0"), nullable=False)

    cash_cut_id: Mapped[str | None] = mapped_column(
        String(120), ForeignKey("cash_cuts.id"), nullable=True
    )

    issued_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    cancelled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Canonical artifact reference (scheme://bucket/path)
    artifact_ref: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    computing: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    printing: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    generating_document: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    document_lock_token: Mapped[str | None] = mapped_column(String(36), nullable=True)
    cancellation_requested: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )

    error_message: Mapped[str | None] = mapped_column(String(500), nullable=True)

    lines: Mapped[list["ReceiptLineItem"]] = relationship(
        back_populates="receipt",
        cascade="all, delete-orphan",
        order_by="ReceiptLineItem.position",
    )

    def __repr__(self) -> str:
        return f"<Receipt {self.id} status={self.status}>"


class ReceiptLineItem(TrackedBase):
    """
    One priced product entry on a receipt.

    Contract:
        billing_month / billing_year are set iff recurrence is Monthly.
        discount, surcharge, scholarship and final_price are written by the
        pricing step; adjustment is a manual amount set at intake.
    """

    __tablename__ = "receipt_line_items"

    __table_args__ = (
        Index("idx_line_receipt", "receipt_id"),
        Index("idx_line_monthly", "product_id", "billing_year", "billing_month"),
    )

    receipt_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("receipts.id"), nullable=False
    )
    product_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("products.id"), nullable=False
    )

    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    description: Mapped[str | None] = mapped_column(String(200), nullable=True)

    recurrence: Mapped[Recurrence] = mapped_column(String(20), nullable=False)
    billing_month: Mapped[int | None] = mapped_column(Integer, nullable=True)
    billing_year: Mapped[int | None] = mapped_column(Integer, nullable=True)

    base_price: Mapped[Money] = mapped_column(nullable=False)
    discount: Mapped[Money] = mapped_column(default=Decimal("0"), nullable=False)
    surcharge: Mapped[Money] = mapped_column(default=Decimal("0"), nullable=False)
    scholarship: Mapped[Money] = mapped_column(default=Decimal("0"), nullable=False)
    adjustment: Mapped[Money] = mapped_column(default=Decimal("0"), nullable=False)
    final_price: Mapped[Money] = mapped_column(default=Decimal("0"), nullable=False)

    status: Mapped[ReceiptStatus] = mapped_column(
        String(20), default=ReceiptStatus.DRAFT.value, nullable=False
    )

    receipt: Mapped["Receipt"] = relationship(back_populates="lines")

    def __repr__(self) -> str:
        return f"<ReceiptLineItem {self.id} final={self.final_price}>"
