"""Read-only selectors that hydrate receipts and cash cuts for rendering."""

from billing_kernel.selectors.cash_cut_selector import (
    CashCutSelector,
    CountMatrix,
    CountRow,
    HydratedCashCut,
)
from billing_kernel.selectors.receipt_selector import (
    HydratedReceipt,
    HydratedReceiptLine,
    ReceiptSelector,
)

__all__ = [
    "CashCutSelector",
    "CountMatrix",
    "CountRow",
    "HydratedCashCut",
    "HydratedReceipt",
    "HydratedReceiptLine",
    "ReceiptSelector",
]
