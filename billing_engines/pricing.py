"""
billing_engines.pricing -- Rule-driven price evaluation for receipt lines.

Responsibility:
    Given a receipt's operating context, one line item, the candidate pricing
    rules for the line's product and the applicable scholarship percentage,
    compute the line's discount, surcharge, scholarship and final price.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import billing_kernel/domain and billing_kernel/db/types.
    Consumed by billing_services.pricing_service.

Invariants enforced:
    - Determinism: identical inputs produce identical outputs; no clock
      access, no I/O.
    - Every matching rule applies additively against the BASE price
      (not compounded); priority only orders evaluation.
    - final_price = max(0, ceil(base - discount - scholarship + surcharge
      + adjustment)), always an integral currency amount.

Failure modes:
    - MissingOperatingDateError if the context has no operating date.

Usage:
    from billing_engines.pricing import PricingEvaluator, PricingContext, LineInput

    result = PricingEvaluator().evaluate_line(
        context=PricingContext(operating_date=date(2024, 3, 5), payment_method="cash"),
        line=LineInput(product_id="p1", recurrence="monthly", base_price=Decimal("1000"),
                       billing_month=3, billing_year=2024),
        rules=rules,
        scholarship_pct=Decimal("0"),
    )
    print(result.final_price)  # Decimal("900") with one 10% rule
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from billing_engines.tracer import traced_engine
from billing_kernel.db.types import ZERO, ceil_to_unit
from billing_kernel.domain.values import Recurrence, TemporalCase
from billing_kernel.exceptions import MissingOperatingDateError
from billing_kernel.logging_config import get_logger

logger = get_logger("engines.pricing")


@dataclass(frozen=True)
class PricingContext:
    """Receipt-level inputs that every line is priced against."""

    operating_date: date | None
    payment_method: str | None
    receipt_id: str = ""


@dataclass(frozen=True)
class LineInput:
    """The persisted attributes of one line that pricing reads."""

    product_id: str
    recurrence: str
    base_price: Decimal
    adjustment: Decimal = ZERO
    billing_month: int | None = None
    billing_year: int | None = None

    @property
    def is_monthly(self) -> bool:
        return self.recurrence == Recurrence.MONTHLY.value


@dataclass(frozen=True)
class PricingRuleSpec:
    """
    Immutable snapshot of a pricing rule.

    Percentages are fractions: Decimal("0.10") is 10%.
    An empty ``temporal_cases`` set never matches a Monthly line.
    """

    rule_id: str
    product_id: str
    payment_methods: frozenset[str]
    temporal_cases: frozenset[str] = frozenset()
    priority: int = 0
    pct_discount: Decimal = ZERO
    pct_surcharge: Decimal = ZERO
    valid_from: date | None = None
    valid_to: date | None = None
    is_periodic: bool = False
    day_from: int | None = None
    day_to: int | None = None


@dataclass(frozen=True)
class LinePricing:
    """Result of pricing one line."""

    temporal_case: TemporalCase | None
    discount: Decimal
    surcharge: Decimal
    scholarship: Decimal
    final_price: Decimal
    applied_rule_ids: tuple[str, ...] = field(default_factory=tuple)


def classify_temporal_case(
    operating_date: date,
    billing_month: int | None,
    billing_year: int | None,
) -> TemporalCase:
    """
    Classify a billed month against the operating month.

    EARLY if (year, month) is strictly after the operating (year, month),
    LATE if strictly before, CURRENT otherwise or when month/year are unset.
    """
    if not billing_month or not billing_year:
        return TemporalCase.CURRENT
    billed = (billing_year, billing_month)
    operating = (operating_date.year, operating_date.month)
    if billed > operating:
        return TemporalCase.EARLY
    if billed < operating:
        return TemporalCase.LATE
    return TemporalCase.CURRENT


def rule_matches(
    rule: PricingRuleSpec,
    *,
    product_id: str,
    payment_method: str | None,
    operating_date: date,
    temporal_case: TemporalCase | None,
) -> bool:
    """True when the rule applies to this product, method, case and date."""
    if rule.product_id != product_id:
        return False
    if payment_method is None or payment_method not in rule.payment_methods:
        return False
    if temporal_case is not None and temporal_case.value not in rule.temporal_cases:
        return False
    if rule.valid_from is not None and rule.valid_from > operating_date:
        return False
    if rule.valid_to is not None and rule.valid_to < operating_date:
        return False
    if rule.is_periodic:
        # Inclusive day-of-month window; a periodic rule without bounds never matches
        if rule.day_from is None or rule.day_to is None:
            return False
        if not (rule.day_from <= operating_date.day <= rule.day_to):
            return False
    return True


class PricingEvaluator:
    """
    Pure pricing engine.

    Stateless; a single instance may be shared across threads.
    """

    @traced_engine(
        "pricing", "1.0", fingerprint_fields=("context", "line", "scholarship_pct")
    )
    def evaluate_line(
        self,
        *,
        context: PricingContext,
        line: LineInput,
        rules: list[PricingRuleSpec] | tuple[PricingRuleSpec, ...],
        scholarship_pct: Decimal = ZERO,
    ) -> LinePricing:
        """
        Price one line.

        Args:
            context: Operating date and payment method of the receipt.
            line: The line to price.
            rules: Candidate rules (typically every rule for the product).
            scholarship_pct: Fraction applied to the base of a Monthly line.

        Raises:
            MissingOperatingDateError: If the context has no operating date.
        """
        if context.operating_date is None:
            raise MissingOperatingDateError(context.receipt_id)

        operating_date = context.operating_date
        base = line.base_price

        case: TemporalCase | None = None
        if line.is_monthly:
            case = classify_temporal_case(
                operating_date, line.billing_month, line.billing_year
            )

        matching = [
            rule
            for rule in rules
            if rule_matches(
                rule,
                product_id=line.product_id,
                payment_method=context.payment_method,
                operating_date=operating_date,
                temporal_case=case,
            )
        ]
        matching.sort(key=lambda r: (-r.priority, r.rule_id))

        discount = ZERO
        surcharge = ZERO
        for rule in matching:
            discount += base * (rule.pct_discount or ZERO)
            surcharge += base * (rule.pct_surcharge or ZERO)

        scholarship = base * scholarship_pct if line.is_monthly else ZERO

        raw = base - discount - scholarship + surcharge + (line.adjustment or ZERO)
        final_price = max(ZERO, ceil_to_unit(raw))

        return LinePricing(
            temporal_case=case,
            discount=discount,
            surcharge=surcharge,
            scholarship=scholarship,
            final_price=final_price,
            applied_rule_ids=tuple(r.rule_id for r in matching),
        )

    def receipt_total(self, pricings: list[LinePricing]) -> Decimal:
        """Sum of final prices; zero for an empty line set."""
        return sum((p.final_price for p in pricings), ZERO)
