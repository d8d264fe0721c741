"""
Module: billing_kernel.models.monthly_charge
Responsibility: ORM persistence for the per-month obligation of a student for
    a monthly product.
Architecture position: Kernel > Models.  May import from db/ and
    domain/values.py only.

Invariants enforced:
    - One row per (student, product, month, year) (uq_monthly_charge).
    - Regeneration reactivates a cancelled charge instead of inserting a
      second row.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from billing_kernel.db.base import TrackedBase, UUIDString
from billing_kernel.domain.values import ChargeStatus


class MonthlyCharge(TrackedBase):
    """
    Ledger entry for one student's obligation for one product in one month.

    Contract:
        Consumed, not owned, by pricing: ``scholarship_pct`` is read when a
        Monthly line for the same (student, product, month, year) is priced.
    """

    __tablename__ = "monthly_charges"

    __table_args__ = (
        UniqueConstraint(
            "student_id", "product_id", "month", "year", name="uq_monthly_charge"
        ),
    )

    student_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("students.id"), nullable=False
    )
    product_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("products.id"), nullable=False
    )
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)

    scholarship_pct: Mapped[Decimal] = mapped_column(
        Numeric(12, 6), default=Decimal("0"), nullable=False
    )

    status: Mapped[ChargeStatus] = mapped_column(
        String(20), default=ChargeStatus.ACTIVE.value, nullable=False
    )
    cancellation_reason: Mapped[str | None] = mapped_column(String(300), nullable=True)

    def __repr__(self) -> str:
        return f"<MonthlyCharge {self.student_id} {self.year}-{self.month:02d} {self.status}>"
