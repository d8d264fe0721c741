"""
billing_services.pricing_service -- Receipt repricing inside a lifecycle transaction.

Responsibility:
    Recompute the priced lines and total of one Draft receipt
    inside the caller's transaction, delegating the arithmetic to the pure
    PricingEvaluator.

Architecture position:
    Services -- stateful orchestration over engines + kernel.  Flushes,
    never commits.

Invariants enforced:
    - Only Draft lines are repriced; Issued and Cancelled lines are frozen.
    - The receipt total equals the sum of the repriced lines' final prices,
      and is exactly 0 when the receipt has no Draft lines.
    - The caller holds the receipt row lock before calling.

Failure modes:
    - MissingOperatingDateError when the receipt has no operating date.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from billing_engines.pricing import (
    LineInput,
    LinePricing,
    PricingContext,
    PricingEvaluator,
    PricingRuleSpec,
)
from billing_kernel.db.types import ZERO, to_decimal
from billing_kernel.domain.values import ReceiptStatus, Recurrence
from billing_kernel.exceptions import MissingOperatingDateError
from billing_kernel.logging_config import get_logger
from billing_kernel.models.monthly_charge import MonthlyCharge
from billing_kernel.models.pricing_rule import PricingRule
from billing_kernel.models.receipt import Receipt, ReceiptLineItem
from billing_kernel.models.reference import StudentProduct

logger = get_logger("services.pricing")


def rule_to_spec(rule: PricingRule) -> PricingRuleSpec:
    """Snapshot an ORM rule (with its children loaded) for the engine."""
    return PricingRuleSpec(
        rule_id=str(rule.id),
        product_id=str(rule.product_id),
        payment_methods=frozenset(str(pm.payment_method) for pm in rule.payment_methods),
        temporal_cases=frozenset(str(c.case) for c in rule.temporal_cases),
        priority=rule.priority,
        pct_discount=to_decimal(rule.pct_discount),
        pct_surcharge=to_decimal(rule.pct_surcharge),
        valid_from=rule.valid_from,
        valid_to=rule.valid_to,
        is_periodic=rule.is_periodic,
        day_from=rule.day_of_month_start,
        day_to=rule.day_of_month_end,
    )


class PricingService:
    """Loads rules and scholarships, prices lines, writes results back."""

    def __init__(self, session: Session, evaluator: PricingEvaluator | None = None):
        self.session = session
        self._evaluator = evaluator or PricingEvaluator()
        self._rules_by_product: dict[UUID, list[PricingRuleSpec]] = {}

    def rules_for_product(self, product_id: UUID) -> list[PricingRuleSpec]:
        if product_id not in self._rules_by_product:
            rules = self.session.execute(
                select(PricingRule)
                .where(PricingRule.product_id == product_id)
                .order_by(PricingRule.priority.desc(), PricingRule.id)
            ).scalars().all()
            self._rules_by_product[product_id] = [rule_to_spec(r) for r in rules]
        return self._rules_by_product[product_id]

    def scholarship_pct(
        self,
        student_id: UUID | None,
        line: ReceiptLineItem,
    ) -> Decimal:
        """
        Scholarship fraction for a Monthly line.

        The month's MonthlyCharge wins when one exists for (student, product,
        month, year); otherwise the standing enrollment percentage applies.
        """
        if student_id is None:
            return ZERO
        if line.billing_month and line.billing_year:
            pct = self.session.execute(
                select(MonthlyCharge.scholarship_pct).where(
                    MonthlyCharge.student_id == student_id,
                    MonthlyCharge.product_id == line.product_id,
                    MonthlyCharge.month == line.billing_month,
                    MonthlyCharge.year == line.billing_year,
                )
            ).scalar_one_or_none()
            if pct is not None:
                return to_decimal(pct)
        pct = self.session.execute(
            select(StudentProduct.scholarship_pct).where(
                StudentProduct.student_id == student_id,
                StudentProduct.product_id == line.product_id,
            )
        ).scalar_one_or_none()
        return to_decimal(pct)

    def draft_lines(self, receipt_id: UUID) -> list[ReceiptLineItem]:
        return list(
            self.session.execute(
                select(ReceiptLineItem)
                .where(
                    ReceiptLineItem.receipt_id == receipt_id,
                    ReceiptLineItem.status == ReceiptStatus.DRAFT.value,
                )
                .order_by(ReceiptLineItem.position, ReceiptLineItem.id)
            ).scalars()
        )

    def price_line(self, receipt: Receipt, line: ReceiptLineItem) -> LinePricing:
        is_monthly = line.recurrence == Recurrence.MONTHLY.value
        return self._evaluator.evaluate_line(
            context=PricingContext(
                operating_date=receipt.operating_date,
                payment_method=receipt.payment_method,
                receipt_id=str(receipt.id),
            ),
            line=LineInput(
                product_id=str(line.product_id),
                recurrence=line.recurrence,
                base_price=to_decimal(line.base_price),
                adjustment=to_decimal(line.adjustment),
                billing_month=line.billing_month,
                billing_year=line.billing_year,
            ),
            rules=self.rules_for_product(line.product_id),
            scholarship_pct=(
                self.scholarship_pct(receipt.student_id, line) if is_monthly else ZERO
            ),
        )

    def recompute_receipt(self, receipt: Receipt) -> Decimal:
        """
        Reprice every Draft line and store the receipt total.

        Preconditions:
            ``receipt`` is locked by the caller and in Draft status.

        Returns:
            The new receipt total.
        """
        if receipt.operating_date is None:
            raise MissingOperatingDateError(str(receipt.id))

        pricings = []
        for line in self.draft_lines(receipt.id):
            pricing = self.price_line(receipt, line)
            line.discount = pricing.discount
            line.surcharge = pricing.surcharge
            line.scholarship = pricing.scholarship
            line.final_price = pricing.final_price
            pricings.append(pricing)

        total = self._evaluator.receipt_total(pricings)
        receipt.total = total
        self.session.flush()

        logger.debug(
            "receipt_total_computed",
            extra={
                "receipt_id": str(receipt.id),
                "line_count": len(pricings),
                "total": str(total),
            },
        )
        return total
