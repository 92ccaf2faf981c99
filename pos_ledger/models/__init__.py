"""Ledger data models."""

from pos_ledger.models.schemas import (
    PaymentStatus, DebtKind, MovementKind, LedgerSide,
    InvoiceDebt, OpeningBalanceDebt, CreditAccountDebt, DebtRef, parse_debt_ref,
    derive_payment_status,
    Partner, Invoice, Payment, DeletedPayment, CreditNote,
    Debt, AccountMovement, Statement,
)

__all__ = [
    "PaymentStatus", "DebtKind", "MovementKind", "LedgerSide",
    "InvoiceDebt", "OpeningBalanceDebt", "CreditAccountDebt", "DebtRef", "parse_debt_ref",
    "derive_payment_status",
    "Partner", "Invoice", "Payment", "DeletedPayment", "CreditNote",
    "Debt", "AccountMovement", "Statement",
]
