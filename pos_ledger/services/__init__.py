"""Ledger services: allocation, reversal, statements, summaries and credit notes."""

from pos_ledger.services.credit_balance import CreditBalanceManager
from pos_ledger.services.debt_catalog import DebtCatalogBuilder, collect_debts, order_debts
from pos_ledger.services.payment_allocator import (
    AllocationPlan, InvoiceUpdate, PaymentAllocator, PaymentRequest, plan_allocation,
)
from pos_ledger.services.reversal_engine import EditPlan, ReversalEngine, ReversalPlan, plan_edit, plan_reversal
from pos_ledger.services.statement_projector import StatementProjector, project_statement
from pos_ledger.services.account_summary import (
    AccountSummary, AccountSummaryService, CreditLimitCheck, check_credit_limit, outstanding_balance,
)
from pos_ledger.services.credit_note_service import CreditNoteService

__all__ = [
    "CreditBalanceManager",
    "DebtCatalogBuilder", "collect_debts", "order_debts",
    "AllocationPlan", "InvoiceUpdate", "PaymentAllocator", "PaymentRequest", "plan_allocation",
    "EditPlan", "ReversalEngine", "ReversalPlan", "plan_edit", "plan_reversal",
    "StatementProjector", "project_statement",
    "AccountSummary", "AccountSummaryService", "CreditLimitCheck", "check_credit_limit", "outstanding_balance",
    "CreditNoteService",
]
