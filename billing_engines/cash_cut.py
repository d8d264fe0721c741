"""
billing_engines.cash_cut -- Cash-cut bucket aggregation.

Responsibility:
    Fold the full member set of a cash-cut bucket (Issued and Cancelled
    receipts plus recorded cash expenses) into counts and totals by payment
    method.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Consumed by billing_services.cash_cut_service.

Invariants enforced:
    - Idempotent: the result depends only on the member set, so recomputing
      twice yields identical totals.
    - Money totals count Issued receipts only; Cancelled receipts are
      counted but contribute no money.
    - net_cash = total_cash - cash_expenses.
    - grand_total = total_card + total_transfer + total_cash.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from billing_engines.tracer import traced_engine
from billing_kernel.db.types import ZERO, to_decimal
from billing_kernel.domain.values import PaymentMethod, ReceiptStatus


@dataclass(frozen=True)
class CutMember:
    """One receipt linked to the bucket."""

    status: str
    payment_method: str | None
    total: Decimal


@dataclass(frozen=True)
class CashCutTotals:
    issued_card_count: int = 0
    issued_transfer_count: int = 0
    issued_cash_count: int = 0
    cancelled_card_count: int = 0
    cancelled_transfer_count: int = 0
    cancelled_cash_count: int = 0
    total_card: Decimal = ZERO
    total_transfer: Decimal = ZERO
    total_cash: Decimal = ZERO
    cash_expenses: Decimal = ZERO
    net_cash: Decimal = ZERO
    grand_total: Decimal = ZERO

    def as_column_values(self) -> dict[str, object]:
        """Column name -> value mapping for an UPDATE of the bucket row."""
        return {
            "issued_card_count": self.issued_card_count,
            "issued_transfer_count": self.issued_transfer_count,
            "issued_cash_count": self.issued_cash_count,
            "cancelled_card_count": self.cancelled_card_count,
            "cancelled_transfer_count": self.cancelled_transfer_count,
            "cancelled_cash_count": self.cancelled_cash_count,
            "total_card": self.total_card,
            "total_transfer": self.total_transfer,
            "total_cash": self.total_cash,
            "cash_expenses": self.cash_expenses,
            "net_cash": self.net_cash,
            "grand_total": self.grand_total,
        }


_METHODS = (PaymentMethod.CARD.value, PaymentMethod.TRANSFER.value, PaymentMethod.CASH.value)


@traced_engine("cash_cut", "1.0")
def aggregate_cash_cut(
    members: list[CutMember],
    expenses: list[Decimal],
) -> CashCutTotals:
    """
    Aggregate a bucket's members and expenses.

    Receipts in any status other than Issued/Cancelled, or with a payment
    method outside Card/Transfer/Cash, are ignored.
    """
    counts = {
        (status, method): 0
        for status in (ReceiptStatus.ISSUED.value, ReceiptStatus.CANCELLED.value)
        for method in _METHODS
    }
    money = {method: ZERO for method in _METHODS}

    for member in members:
        key = (member.status, member.payment_method)
        if key not in counts:
            continue
        counts[key] += 1
        if member.status == ReceiptStatus.ISSUED.value:
            money[member.payment_method] += to_decimal(member.total)

    cash_expenses = sum((to_decimal(e) for e in expenses), ZERO)

    issued = ReceiptStatus.ISSUED.value
    cancelled = ReceiptStatus.CANCELLED.value
    return CashCutTotals(
        issued_card_count=counts[(issued, PaymentMethod.CARD.value)],
        issued_transfer_count=counts[(issued, PaymentMethod.TRANSFER.value)],
        issued_cash_count=counts[(issued, PaymentMethod.CASH.value)],
        cancelled_card_count=counts[(cancelled, PaymentMethod.CARD.value)],
        cancelled_transfer_count=counts[(cancelled, PaymentMethod.TRANSFER.value)],
        cancelled_cash_count=counts[(cancelled, PaymentMethod.CASH.value)],
        total_card=money[PaymentMethod.CARD.value],
        total_transfer=money[PaymentMethod.TRANSFER.value],
        total_cash=money[PaymentMethod.CASH.value],
        cash_expenses=cash_expenses,
        net_cash=money[PaymentMethod.CASH.value] - cash_expenses,
        grand_total=sum(money.values(), ZERO),
    )
