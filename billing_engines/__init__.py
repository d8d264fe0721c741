"""
Module: billing_engines
Responsibility:
    Package entrypoint that re-exports the pure calculation engines used by
    billing_services.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import billing_kernel domain values, db types, exceptions and
    logging.  MUST NOT import billing_services.

Invariants enforced:
    - Engines never read the clock; operating dates are passed in.
    - Decimal-only arithmetic.
    - Every invocation is traced via ``@traced_engine``.
"""

from billing_engines.cash_cut import CashCutTotals, CutMember, aggregate_cash_cut
from billing_engines.pricing import (
    LineInput,
    LinePricing,
    PricingContext,
    PricingEvaluator,
    PricingRuleSpec,
    classify_temporal_case,
    rule_matches,
)
from billing_engines.tracer import compute_input_fingerprint, traced_engine

__all__ = [
    "CashCutTotals",
    "CutMember",
    "aggregate_cash_cut",
    "LineInput",
    "LinePricing",
    "PricingContext",
    "PricingEvaluator",
    "PricingRuleSpec",
    "classify_temporal_case",
    "rule_matches",
    "compute_input_fingerprint",
    "traced_engine",
]
