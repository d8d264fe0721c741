"""
Hypothesis property tests for the pricing evaluator.

Properties:
- Determinism: the same inputs always price identically
- final_price is a non-negative whole amount
- Rule order in the input never changes the result
- A rule for another payment method never changes the result
"""

from datetime import date
from decimal import Decimal

from hypothesis import given, settings
from hypothesis import strategies as st

from billing_engines.pricing import (
    LineInput,
    PricingContext,
    PricingEvaluator,
    PricingRuleSpec,
)

evaluator = PricingEvaluator()

amounts = st.decimals(
    min_value=Decimal("0"), max_value=Decimal("100000"), places=2, allow_nan=False
)
fractions = st.decimals(
    min_value=Decimal("0"), max_value=Decimal("1"), places=3, allow_nan=False
)
methods = st.sampled_from(["card", "transfer", "cash"])
cases = st.sampled_from(["early", "current", "late"])


@st.composite
def rule_specs(draw, rule_id: str):
    return PricingRuleSpec(
        rule_id=rule_id,
        product_id="p1",
        payment_methods=frozenset(draw(st.sets(methods, min_size=1))),
        temporal_cases=frozenset(draw(st.sets(cases))),
        priority=draw(st.integers(min_value=0, max_value=5)),
        pct_discount=draw(fractions),
        pct_surcharge=draw(fractions),
    )


@st.composite
def rule_lists(draw):
    count = draw(st.integers(min_value=0, max_value=6))
    return [draw(rule_specs(f"r{i}")) for i in range(count)]


@st.composite
def lines(draw):
    monthly = draw(st.booleans())
    return LineInput(
        product_id="p1",
        recurrence="monthly" if monthly else "one_time",
        base_price=draw(amounts),
        adjustment=draw(
            st.decimals(min_value=Decimal("-5000"), max_value=Decimal("5000"), places=2)
        ),
        billing_month=draw(st.integers(min_value=1, max_value=12)) if monthly else None,
        billing_year=draw(st.integers(min_value=2023, max_value=2025)) if monthly else None,
    )


operating_dates = st.dates(min_value=date(2023, 1, 1), max_value=date(2025, 12, 31))


def price(line, rules, on, method, scholarship=Decimal("0")):
    return evaluator.evaluate_line(
        context=PricingContext(operating_date=on, payment_method=method),
        line=line,
        rules=rules,
        scholarship_pct=scholarship,
    )


@settings(max_examples=200, deadline=None)
@given(line=lines(), rules=rule_lists(), on=operating_dates, method=methods, scholarship=fractions)
def test_pricing_is_deterministic(line, rules, on, method, scholarship):
    assert price(line, rules, on, method, scholarship) == price(
        line, rules, on, method, scholarship
    )


@settings(max_examples=200, deadline=None)
@given(line=lines(), rules=rule_lists(), on=operating_dates, method=methods, scholarship=fractions)
def test_final_price_is_non_negative_whole_amount(line, rules, on, method, scholarship):
    result = price(line, rules, on, method, scholarship)

    assert result.final_price >= 0
    assert result.final_price == result.final_price.to_integral_value()


@settings(max_examples=100, deadline=None)
@given(line=lines(), rules=rule_lists(), on=operating_dates, method=methods)
def test_rule_input_order_is_irrelevant(line, rules, on, method):
    assert price(line, rules, on, method) == price(line, list(reversed(rules)), on, method)


@settings(max_examples=100, deadline=None)
@given(line=lines(), rules=rule_lists(), on=operating_dates)
def test_rule_for_other_method_has_no_effect(line, rules, on):
    foreign = PricingRuleSpec(
        rule_id="foreign",
        product_id="p1",
        payment_methods=frozenset({"card"}),
        temporal_cases=frozenset({"early", "current", "late"}),
        pct_discount=Decimal("0.5"),
    )

    assert price(line, rules + [foreign], on, "cash") == price(line, rules, on, "cash")
