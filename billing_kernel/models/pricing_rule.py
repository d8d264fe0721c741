"""
Module: billing_kernel.models.pricing_rule
Responsibility: ORM persistence for conditional discount/surcharge rules and
    the payment methods and temporal cases each rule is restricted to.
Architecture position: Kernel > Models.  May import from db/ and
    domain/values.py only.

Invariants enforced:
    - Percentages are fractions (0.10 == 10%) applied to the base price.
    - A periodic rule carries an inclusive day-of-month range.
    - A rule matches a Monthly line only if one of its temporal cases equals
      the line's case; the case restriction is ignored for one-time lines.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    Date,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from billing_kernel.db.base import TrackedBase, UUIDString
from billing_kernel.domain.values import PaymentMethod, TemporalCase


class PricingRule(TrackedBase):
    """A conditional percentage discount and/or surcharge for one product."""

    __tablename__ = "pricing_rules"

    __table_args__ = (Index("idx_rule_product", "product_id"),)

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("products.id"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False, default="")

    # Validity window, open-ended when NULL
    valid_from: Mapped[date | None] = mapped_column(Date, nullable=True)
    valid_to: Mapped[date | None] = mapped_column(Date, nullable=True)

    is_periodic: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    day_of_month_start: Mapped[int | None] = mapped_column(Integer, nullable=True)
    day_of_month_end: Mapped[int | None] = mapped_column(Integer, nullable=True)

    priority: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    pct_discount: Mapped[Decimal | None] = mapped_column(Numeric(12, 6), nullable=True)
    pct_surcharge: Mapped[Decimal | None] = mapped_column(Numeric(12, 6), nullable=True)

    payment_methods: Mapped[list["PricingRulePaymentMethod"]] = relationship(
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    temporal_cases: Mapped[list["PricingRuleCase"]] = relationship(
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<PricingRule {self.name} priority={self.priority}>"


class PricingRulePaymentMethod(TrackedBase):
    """Payment method a pricing rule applies to."""

    __tablename__ = "pricing_rule_payment_methods"

    __table_args__ = (
        UniqueConstraint("rule_id", "payment_method", name="uq_rule_payment_method"),
    )

    rule_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("pricing_rules.id"), nullable=False
    )
    payment_method: Mapped[PaymentMethod] = mapped_column(String(20), nullable=False)


class PricingRuleCase(TrackedBase):
    """Temporal case a pricing rule applies to (Monthly lines only)."""

    __tablename__ = "pricing_rule_cases"

    __table_args__ = (UniqueConstraint("rule_id", "case", name="uq_rule_case"),)

    rule_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("pricing_rules.id"), nullable=False
    )
    case: Mapped[TemporalCase] = mapped_column(String(20), nullable=False)
