"""
Document rendering for receipts and cash cuts.

``DocumentRenderer`` is the interface the orchestrator depends on.
``ReportLabRenderer`` is the default PDF implementation; it builds documents
with ``invariant=1`` so identical input produces identical bytes.
"""

from __future__ import annotations

import io
from decimal import Decimal
from enum import Enum
from typing import Protocol, Union
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from billing_kernel.domain.values import ReceiptStatus
from billing_kernel.selectors.cash_cut_selector import HydratedCashCut
from billing_kernel.selectors.receipt_selector import HydratedReceipt

HydratedDocument = Union[HydratedReceipt, HydratedCashCut]


class DocumentKind(str, Enum):
    RECEIPT = "receipt"
    CASH_CUT = "cash_cut"


class DocumentRenderer(Protocol):
    """Turns a hydrated entity into document bytes; deterministic per input."""

    def render(self, kind: DocumentKind, document: HydratedDocument) -> bytes:
        ...


_TABLE_STYLE = TableStyle(
    [
        ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#366092")),
        ("TEXTCOLOR", (0, 0), (-1, 0), colors.whitesmoke),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, -1), 9),
        ("ALIGN", (1, 1), (-1, -1), "RIGHT"),
        ("GRID", (0, 0), (-1, -1), 0.5, colors.grey),
        ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, colors.HexColor("#F8FAFC")]),
    ]
)


def _money(value: Decimal | None) -> str:
    if value is None:
        return "0.00"
    return f"{value.quantize(Decimal('0.01')):,}"


def _text(value: object) -> str:
    return escape("" if value is None else str(value))


class ReportLabRenderer:
    """Letter-size PDF documents built with ReportLab platypus."""

    def __init__(self, title_prefix: str = ""):
        self._title_prefix = title_prefix
        styles = getSampleStyleSheet()
        self._title = ParagraphStyle(
            "BillingTitle",
            parent=styles["Title"],
            fontSize=16,
            textColor=colors.HexColor("#1E293B"),
            spaceAfter=10,
        )
        self._normal = styles["Normal"]

    def render(self, kind: DocumentKind, document: HydratedDocument) -> bytes:
        if kind == DocumentKind.RECEIPT:
            return self._render_receipt(document)
        if kind == DocumentKind.CASH_CUT:
            return self._render_cash_cut(document)
        raise ValueError(f"Unknown document kind: {kind!r}")

    def _build(self, story: list, title: str, watermark: str | None = None) -> bytes:
        buf = io.BytesIO()
        doc = SimpleDocTemplate(
            buf,
            pagesize=letter,
            leftMargin=0.6 * inch,
            rightMargin=0.6 * inch,
            topMargin=0.6 * inch,
            bottomMargin=0.6 * inch,
            title=f"{self._title_prefix}{title}",
            invariant=1,
        )

        def on_page(canvas, _doc):
            if watermark is None:
                return
            canvas.saveState()
            canvas.setFont("Helvetica-Bold", 72)
            canvas.setFillColor(colors.Color(0.8, 0.1, 0.1, alpha=0.25))
            canvas.translate(letter[0] / 2, letter[1] / 2)
            canvas.rotate(45)
            canvas.drawCentredString(0, 0, watermark)
            canvas.restoreState()

        doc.build(story, onFirstPage=on_page, onLaterPages=on_page)
        return buf.getvalue()

    def _campus_header(self, document: HydratedDocument) -> list:
        story = [Paragraph(f"<b>{_text(document.campus_name)}</b>", self._normal)]
        for value in (
            document.campus_legal_name,
            document.campus_tax_id,
            document.campus_location,
        ):
            if value:
                story.append(Paragraph(_text(value), self._normal))
        return story

    def _render_receipt(self, receipt: HydratedReceipt) -> bytes:
        story: list = [Paragraph(f"Receipt {_text(receipt.receipt_id)}", self._title)]
        story.extend(self._campus_header(receipt))
        story.append(Spacer(1, 0.15 * inch))
        story.append(Paragraph(f"<b>Student:</b> {_text(receipt.student_name)}", self._normal))
        story.append(Paragraph(f"<b>Cashier:</b> {_text(receipt.cashier_name)}", self._normal))
        story.append(Paragraph(f"<b>Date:</b> {_text(receipt.operating_date)}", self._normal))
        story.append(
            Paragraph(f"<b>Payment method:</b> {_text(receipt.payment_method)}", self._normal)
        )
        story.append(Spacer(1, 0.2 * inch))

        rows = [["Concept", "Period", "Base", "Discount", "Scholarship", "Surcharge", "Adj.", "Total"]]
        for line in receipt.lines:
            period = ""
            if line.billing_month and line.billing_year:
                period = f"{line.billing_year}-{line.billing_month:02d}"
            rows.append(
                [
                    line.description or line.product_name,
                    period,
                    _money(line.base_price),
                    _money(line.discount),
                    _money(line.scholarship),
                    _money(line.surcharge),
                    _money(line.adjustment),
                    _money(line.final_price),
                ]
            )
        rows.append(["", "", "", "", "", "", "Total", _money(receipt.total)])
        table = Table(rows, repeatRows=1)
        table.setStyle(_TABLE_STYLE)
        story.append(table)

        watermark = "CANCELLED" if receipt.status == ReceiptStatus.CANCELLED.value else None
        return self._build(story, f"Receipt {receipt.receipt_id}", watermark)

    def _render_cash_cut(self, cut: HydratedCashCut) -> bytes:
        story: list = [Paragraph(f"Cash cut {_text(cut.cash_cut_id)}", self._title)]
        story.extend(self._campus_header(cut))
        story.append(Spacer(1, 0.15 * inch))
        story.append(Paragraph(f"<b>Cashier:</b> {_text(cut.cashier_name)}", self._normal))
        story.append(Paragraph(f"<b>Date:</b> {_text(cut.business_date)}", self._normal))
        story.append(Spacer(1, 0.2 * inch))

        matrix = cut.matrix
        totals = matrix.column_totals
        counts = [
            ["Receipts", "Card", "Transfer", "Cash", "Total"],
            ["Issued", matrix.issued.card, matrix.issued.transfer, matrix.issued.cash, matrix.issued.total],
            [
                "Cancelled",
                matrix.cancelled.card,
                matrix.cancelled.transfer,
                matrix.cancelled.cash,
                matrix.cancelled.total,
            ],
            ["Total", totals.card, totals.transfer, totals.cash, matrix.global_total],
        ]
        count_table = Table(counts)
        count_table.setStyle(_TABLE_STYLE)
        story.append(count_table)
        story.append(Spacer(1, 0.2 * inch))

        amounts = [
            ["Concept", "Amount"],
            ["Card", _money(cut.total_card)],
            ["Transfer", _money(cut.total_transfer)],
            ["Cash", _money(cut.total_cash)],
            ["Cash expenses", _money(cut.cash_expenses)],
            ["Net cash", _money(cut.net_cash)],
            ["Grand total", _money(cut.grand_total)],
        ]
        amount_table = Table(amounts)
        amount_table.setStyle(_TABLE_STYLE)
        story.append(amount_table)

        return self._build(story, f"Cash cut {cut.cash_cut_id}")
