"""Domain models for the billing kernel."""

from billing_kernel.domain.values import (
    ChargeStatus,
    PaymentMethod,
    ReceiptStatus,
    RecordStatus,
    Recurrence,
    TemporalCase,
)
from billing_kernel.models.cash_cut import CashCut, CashExpense
from billing_kernel.models.monthly_charge import MonthlyCharge
from billing_kernel.models.pricing_rule import (
    PricingRule,
    PricingRuleCase,
    PricingRulePaymentMethod,
)
from billing_kernel.models.receipt import Receipt, ReceiptLineItem
from billing_kernel.models.reference import (
    Campus,
    Cashier,
    Product,
    Student,
    StudentProduct,
)

__all__ = [
    "Campus",
    "Cashier",
    "CashCut",
    "CashExpense",
    "ChargeStatus",
    "MonthlyCharge",
    "PaymentMethod",
    "PricingRule",
    "PricingRuleCase",
    "PricingRulePaymentMethod",
    "Product",
    "Receipt",
    "ReceiptLineItem",
    "ReceiptStatus",
    "RecordStatus",
    "Recurrence",
    "Student",
    "StudentProduct",
    "TemporalCase",
]
