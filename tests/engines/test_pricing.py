"""
Tests for the pricing evaluator.

Covers:
- Temporal case classification
- Rule matching on product, payment method, case, validity window and
  day-of-month window
- Additive application of discounts and surcharges
- Scholarship, adjustment, ceiling rounding and the zero floor
"""

from datetime import date
from decimal import Decimal

import pytest

from billing_engines.pricing import (
    LineInput,
    PricingContext,
    PricingEvaluator,
    PricingRuleSpec,
    classify_temporal_case,
    rule_matches,
)
from billing_kernel.domain.values import TemporalCase
from billing_kernel.exceptions import MissingOperatingDateError

MARCH_5 = date(2024, 3, 5)


def monthly_line(month=3, year=2024, base="1000", adjustment="0") -> LineInput:
    return LineInput(
        product_id="p1",
        recurrence="monthly",
        base_price=Decimal(base),
        adjustment=Decimal(adjustment),
        billing_month=month,
        billing_year=year,
    )


def one_time_line(base="500") -> LineInput:
    return LineInput(product_id="p1", recurrence="one_time", base_price=Decimal(base))


def rule(rule_id="r1", **kwargs) -> PricingRuleSpec:
    defaults = dict(
        product_id="p1",
        payment_methods=frozenset({"cash"}),
        temporal_cases=frozenset({"current"}),
    )
    defaults.update(kwargs)
    return PricingRuleSpec(rule_id=rule_id, **defaults)


class TestTemporalCase:
    def test_same_month_is_current(self):
        assert classify_temporal_case(MARCH_5, 3, 2024) == TemporalCase.CURRENT

    def test_next_month_is_early(self):
        assert classify_temporal_case(MARCH_5, 4, 2024) == TemporalCase.EARLY

    def test_previous_month_is_late(self):
        assert classify_temporal_case(MARCH_5, 2, 2024) == TemporalCase.LATE

    def test_year_boundary(self):
        assert classify_temporal_case(date(2023, 12, 20), 1, 2024) == TemporalCase.EARLY
        assert classify_temporal_case(date(2024, 1, 2), 12, 2023) == TemporalCase.LATE

    def test_missing_period_is_current(self):
        assert classify_temporal_case(MARCH_5, None, None) == TemporalCase.CURRENT


class TestRuleMatching:
    def _matches(self, spec, *, method="cash", on=MARCH_5, case=TemporalCase.CURRENT):
        return rule_matches(
            spec,
            product_id="p1",
            payment_method=method,
            operating_date=on,
            temporal_case=case,
        )

    def test_plain_rule_matches(self):
        assert self._matches(rule())

    def test_other_product_never_matches(self):
        assert not self._matches(rule(product_id="p2"))

    def test_payment_method_must_be_listed(self):
        assert not self._matches(rule(), method="card")

    def test_missing_payment_method_never_matches(self):
        assert not self._matches(rule(), method=None)

    def test_rule_without_methods_never_matches(self):
        assert not self._matches(rule(payment_methods=frozenset()))

    def test_monthly_line_requires_listed_case(self):
        assert not self._matches(rule(), case=TemporalCase.LATE)

    def test_case_ignored_for_one_time_lines(self):
        assert self._matches(rule(temporal_cases=frozenset()), case=None)

    def test_validity_window_inclusive(self):
        spec = rule(valid_from=date(2024, 3, 5), valid_to=date(2024, 3, 5))
        assert self._matches(spec)
        assert not self._matches(spec, on=date(2024, 3, 6))
        assert not self._matches(spec, on=date(2024, 3, 4))

    def test_periodic_day_window_inclusive(self):
        spec = rule(is_periodic=True, day_from=1, day_to=10)
        assert self._matches(spec, on=date(2024, 3, 1))
        assert self._matches(spec, on=date(2024, 3, 10))
        assert not self._matches(spec, on=date(2024, 3, 11))

    def test_periodic_rule_without_bounds_never_matches(self):
        assert not self._matches(rule(is_periodic=True, day_from=None, day_to=5))


class TestEvaluateLine:
    def setup_method(self):
        self.evaluator = PricingEvaluator()
        self.context = PricingContext(operating_date=MARCH_5, payment_method="cash")

    def test_current_month_discount(self):
        """Base 1000, Current case, one 10% cash discount -> 900."""
        result = self.evaluator.evaluate_line(
            context=self.context,
            line=monthly_line(),
            rules=[rule(pct_discount=Decimal("0.10"))],
        )

        assert result.temporal_case == TemporalCase.CURRENT
        assert result.discount == Decimal("100")
        assert result.final_price == Decimal("900")
        assert result.applied_rule_ids == ("r1",)

    def test_next_month_is_early_and_skips_current_rule(self):
        result = self.evaluator.evaluate_line(
            context=self.context,
            line=monthly_line(month=4),
            rules=[rule(pct_discount=Decimal("0.10"))],
        )

        assert result.temporal_case == TemporalCase.EARLY
        assert result.final_price == Decimal("1000")
        assert result.applied_rule_ids == ()

    def test_late_surcharge(self):
        result = self.evaluator.evaluate_line(
            context=self.context,
            line=monthly_line(month=1),
            rules=[rule(temporal_cases=frozenset({"late"}), pct_surcharge=Decimal("0.05"))],
        )

        assert result.surcharge == Decimal("50")
        assert result.final_price == Decimal("1050")

    def test_rules_apply_additively_against_base(self):
        rules = [
            rule("a", pct_discount=Decimal("0.10"), priority=2),
            rule("b", pct_discount=Decimal("0.10"), priority=1),
        ]
        result = self.evaluator.evaluate_line(
            context=self.context, line=monthly_line(), rules=rules
        )

        # Compounded would be 810
        assert result.final_price == Decimal("800")
        assert result.applied_rule_ids == ("a", "b")

    def test_priority_then_id_orders_application(self):
        rules = [rule("b"), rule("a"), rule("z", priority=5)]
        result = self.evaluator.evaluate_line(
            context=self.context, line=monthly_line(), rules=rules
        )

        assert result.applied_rule_ids == ("z", "a", "b")

    def test_scholarship_on_monthly_line(self):
        result = self.evaluator.evaluate_line(
            context=self.context,
            line=monthly_line(),
            rules=[],
            scholarship_pct=Decimal("0.25"),
        )

        assert result.scholarship == Decimal("250")
        assert result.final_price == Decimal("750")

    def test_scholarship_ignored_for_one_time_line(self):
        result = self.evaluator.evaluate_line(
            context=self.context,
            line=one_time_line(),
            rules=[],
            scholarship_pct=Decimal("0.50"),
        )

        assert result.scholarship == Decimal("0")
        assert result.final_price == Decimal("500")
        assert result.temporal_case is None

    def test_ceiling_rounding(self):
        result = self.evaluator.evaluate_line(
            context=self.context,
            line=monthly_line(base="999"),
            rules=[rule(pct_discount=Decimal("0.333"))],
        )

        # 999 - 332.667 = 666.333 -> 667
        assert result.final_price == Decimal("667")

    def test_adjustment_is_added(self):
        result = self.evaluator.evaluate_line(
            context=self.context,
            line=monthly_line(adjustment="-150.5"),
            rules=[],
        )

        assert result.final_price == Decimal("850")

    def test_final_price_never_negative(self):
        result = self.evaluator.evaluate_line(
            context=self.context,
            line=monthly_line(adjustment="-5000"),
            rules=[],
        )

        assert result.final_price == Decimal("0")

    def test_missing_operating_date_raises(self):
        with pytest.raises(MissingOperatingDateError):
            self.evaluator.evaluate_line(
                context=PricingContext(operating_date=None, payment_method="cash"),
                line=monthly_line(),
                rules=[],
            )

    def test_receipt_total_of_no_lines_is_zero(self):
        assert self.evaluator.receipt_total([]) == Decimal("0")


class TestTracing:
    def test_engine_invocation_is_traced(self, captured_logs):
        PricingEvaluator().evaluate_line(
            context=PricingContext(operating_date=MARCH_5, payment_method="cash"),
            line=monthly_line(),
            rules=[],
        )

        traces = [r for r in captured_logs() if r["message"] == "BILLING_ENGINE_TRACE"]
        assert traces
        assert traces[-1]["engine_name"] == "pricing"
