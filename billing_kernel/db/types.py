"""
Module: billing_kernel.db.types
Responsibility: Annotated type aliases and rounding helpers for money and
    percentage columns.  Centralizes precision so that every model, engine and
    service uses identical definitions.
Architecture position: Kernel > DB.  May be imported by models/, selectors/,
    services/ and the engines.  MUST NOT import from any of those layers.

Invariants enforced:
    - No floats anywhere: all monetary amounts and percentages are Decimal.
    - Billed amounts are whole currency units rounded with a CEILING, never
      half-even, so that rounding can only favour the campus.
"""

from decimal import ROUND_CEILING, Decimal
from typing import Annotated

from sqlalchemy import Numeric, String

# Monetary amount, 38 digits total, 9 decimal places
Money = Annotated[Decimal, Numeric(38, 9)]

# Fractional percentage (0.10 == 10%)
Percentage = Annotated[Decimal, Numeric(12, 6)]

# Short identifier strings (status, payment method, recurrence)
ShortCode = Annotated[str, String(20)]

# Human-readable names
Name = Annotated[str, String(200)]

ZERO = Decimal("0")


def to_decimal(value: object) -> Decimal:
    """Coerce a stored numeric value (or None) to Decimal.  None becomes zero."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def ceil_to_unit(value: Decimal) -> Decimal:
    """
    Round up to the next whole currency unit.

    This is the ONLY sanctioned rounding for billed amounts.

    Example:
        ceil_to_unit(Decimal("899.01")) -> Decimal("900")
        ceil_to_unit(Decimal("-0.5"))   -> Decimal("-0")
    """
    return value.to_integral_value(rounding=ROUND_CEILING)
