"""
Module: billing_kernel.selectors.cash_cut_selector
Responsibility: Hydrate a cash-cut bucket with campus and cashier metadata
    and the Issued/Cancelled x payment-method count matrix.
Architecture position: Kernel > Selectors.

Failure modes:
    - Returns None when the bucket does not exist.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from sqlalchemy import select

from billing_kernel.models.cash_cut import CashCut
from billing_kernel.models.reference import Campus, Cashier
from billing_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class CountRow:
    """One status row of the count matrix."""

    label: str
    card: int
    transfer: int
    cash: int

    @property
    def total(self) -> int:
        return self.card + self.transfer + self.cash


@dataclass(frozen=True)
class CountMatrix:
    issued: CountRow
    cancelled: CountRow

    @property
    def column_totals(self) -> CountRow:
        return CountRow(
            label="total",
            card=self.issued.card + self.cancelled.card,
            transfer=self.issued.transfer + self.cancelled.transfer,
            cash=self.issued.cash + self.cancelled.cash,
        )

    @property
    def global_total(self) -> int:
        return self.issued.total + self.cancelled.total


@dataclass(frozen=True)
class HydratedCashCut:
    cash_cut_id: str
    business_date: date
    campus_name: str
    campus_legal_name: str | None
    campus_tax_id: str | None
    campus_location: str | None
    cashier_name: str
    matrix: CountMatrix
    total_card: Decimal
    total_transfer: Decimal
    total_cash: Decimal
    cash_expenses: Decimal
    net_cash: Decimal
    grand_total: Decimal
    artifact_ref: str | None


class CashCutSelector(BaseSelector[CashCut]):
    """Read path for cash-cut documents."""

    def hydrated(self, cash_cut_id: str) -> HydratedCashCut | None:
        row = self.session.execute(
            select(CashCut, Campus, Cashier)
            .outerjoin(Campus, Campus.id == CashCut.campus_id)
            .outerjoin(Cashier, Cashier.id == CashCut.cashier_id)
            .where(CashCut.id == cash_cut_id)
        ).one_or_none()
        if row is None:
            return None
        cut, campus, cashier = row

        matrix = CountMatrix(
            issued=CountRow(
                label="issued",
                card=cut.issued_card_count,
                transfer=cut.issued_transfer_count,
                cash=cut.issued_cash_count,
            ),
            cancelled=CountRow(
                label="cancelled",
                card=cut.cancelled_card_count,
                transfer=cut.cancelled_transfer_count,
                cash=cut.cancelled_cash_count,
            ),
        )

        return HydratedCashCut(
            cash_cut_id=cut.id,
            business_date=cut.business_date,
            campus_name=campus.name if campus else "",
            campus_legal_name=campus.legal_name if campus else None,
            campus_tax_id=campus.tax_id if campus else None,
            campus_location=campus.location if campus else None,
            cashier_name=cashier.full_name if cashier else "",
            matrix=matrix,
            total_card=cut.total_card,
            total_transfer=cut.total_transfer,
            total_cash=cut.total_cash,
            cash_expenses=cut.cash_expenses,
            net_cash=cut.net_cash,
            grand_total=cut.grand_total,
            artifact_ref=cut.artifact_ref,
        )
