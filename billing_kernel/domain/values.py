"""
Value enums shared by models, engines and services.

Stored as their string ``value`` in String columns; engines compare against
these without importing the ORM.
"""

from enum import Enum


class ReceiptStatus(str, Enum):
    """Lifecycle status of a receipt (and of its line items).

    Contract: Transitions are DRAFT -> ISSUED -> CANCELLED.
    CANCELLED is terminal; nothing reverses it.
    """

    DRAFT = "draft"
    ISSUED = "issued"
    CANCELLED = "cancelled"


class PaymentMethod(str, Enum):
    """How the receipt was paid."""

    CARD = "card"
    TRANSFER = "transfer"
    CASH = "cash"


class Recurrence(str, Enum):
    """How often a product is billed."""

    MONTHLY = "monthly"
    ONE_TIME = "one_time"


class TemporalCase(str, Enum):
    """Billed month relative to the receipt's operating month."""

    EARLY = "early"  # billed month after the operating month
    CURRENT = "current"
    LATE = "late"  # billed month before the operating month


class ChargeStatus(str, Enum):
    """Status of a monthly charge."""

    ACTIVE = "active"
    CANCELLED = "cancelled"


class RecordStatus(str, Enum):
    """Active/inactive flag shared by students and products."""

    ACTIVE = "active"
    INACTIVE = "inactive"
