"""
Module: billing_kernel.selectors.receipt_selector
Responsibility: Hydrate a receipt with its student, campus and cashier
    metadata and its priced lines, as committed in the database.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Lines are ordered by position, then id, for deterministic rendering.

Failure modes:
    - Returns None when the receipt does not exist.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from billing_kernel.models.receipt import Receipt, ReceiptLineItem
from billing_kernel.models.reference import Campus, Cashier, Product, Student
from billing_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class HydratedReceiptLine:
    product_name: str
    description: str | None
    recurrence: str
    billing_month: int | None
    billing_year: int | None
    base_price: Decimal
    discount: Decimal
    surcharge: Decimal
    scholarship: Decimal
    adjustment: Decimal
    final_price: Decimal


@dataclass(frozen=True)
class HydratedReceipt:
    receipt_id: UUID
    status: str
    operating_date: date | None
    payment_method: str | None
    total: Decimal
    cash_cut_id: str | None
    issued_at: datetime | None
    cancelled_at: datetime | None
    artifact_ref: str | None
    student_name: str
    campus_name: str
    campus_legal_name: str | None
    campus_tax_id: str | None
    campus_location: str | None
    cashier_name: str
    lines: tuple[HydratedReceiptLine, ...] = ()


class ReceiptSelector(BaseSelector[Receipt]):
    """Read path for receipt documents."""

    def hydrated(self, receipt_id: UUID) -> HydratedReceipt | None:
        row = self.session.execute(
            select(Receipt, Student, Campus, Cashier)
            .outerjoin(Student, Student.id == Receipt.student_id)
            .outerjoin(Campus, Campus.id == Receipt.campus_id)
            .outerjoin(Cashier, Cashier.id == Receipt.cashier_id)
            .where(Receipt.id == receipt_id)
        ).one_or_none()
        if row is None:
            return None
        receipt, student, campus, cashier = row

        line_rows = self.session.execute(
            select(ReceiptLineItem, Product.name)
            .join(Product, Product.id == ReceiptLineItem.product_id)
            .where(ReceiptLineItem.receipt_id == receipt_id)
            .order_by(ReceiptLineItem.position, ReceiptLineItem.id)
        ).all()

        lines = tuple(
            HydratedReceiptLine(
                product_name=product_name,
                description=line.description,
                recurrence=line.recurrence,
                billing_month=line.billing_month,
                billing_year=line.billing_year,
                base_price=line.base_price,
                discount=line.discount,
                surcharge=line.surcharge,
                scholarship=line.scholarship,
                adjustment=line.adjustment,
                final_price=line.final_price,
            )
            for line, product_name in line_rows
        )

        return HydratedReceipt(
            receipt_id=receipt.id,
            status=receipt.status,
            operating_date=receipt.operating_date,
            payment_method=receipt.payment_method,
            total=receipt.total,
            cash_cut_id=receipt.cash_cut_id,
            issued_at=receipt.issued_at,
            cancelled_at=receipt.cancelled_at,
            artifact_ref=receipt.artifact_ref,
            student_name=student.full_name if student else "",
            campus_name=campus.name if campus else "",
            campus_legal_name=campus.legal_name if campus else None,
            campus_tax_id=campus.tax_id if campus else None,
            campus_location=campus.location if campus else None,
            cashier_name=cashier.full_name if cashier else "",
            lines=lines,
        )
