"""
Debt catalog construction.

Lists what a partner still owes (the unpaid part of the opening balance and
every unsettled invoice) in the order a payment should settle it: the debt
the caller picked first, then oldest first.
"""

import logging
from datetime import datetime
from typing import Iterable, List, Optional

from pos_ledger.config import OPENING_BALANCE_LABEL, SETTLEMENT_EPSILON
from pos_ledger.models.schemas import (
    Debt, DebtKind, DebtRef, Invoice, InvoiceDebt, LedgerSide, OpeningBalanceDebt, Partner, Payment,
)
from pos_ledger.repositories.invoice_repository import InvoiceRepository
from pos_ledger.repositories.partner_repository import PartnerRepository
from pos_ledger.repositories.payment_repository import PaymentRepository
from pos_ledger.utils.parsing import round_amount

logger = logging.getLogger(__name__)

_KIND_RANK = {DebtKind.OPENING: 0, DebtKind.INVOICE: 1}


def opening_debt(partner: Partner, opening_payments: Iterable[Payment]) -> Optional[Debt]:
    """The unpaid part of the opening balance, or None when nothing is left."""
    if partner.opening_balance <= 0:
        return None
    paid = sum(p.amount for p in opening_payments)
    remaining = round_amount(partner.opening_balance - paid)
    if remaining <= SETTLEMENT_EPSILON:
        return None
    return Debt(
        debt_ref=OpeningBalanceDebt(partner.id),
        kind=DebtKind.OPENING,
        remaining=remaining,
        # No recorded adoption date means it predates everything else
        date=partner.opening_balance_date or datetime.min,
        ref_label=OPENING_BALANCE_LABEL,
    )


def invoice_debt(invoice: Invoice) -> Optional[Debt]:
    remaining = round_amount(invoice.remaining)
    if remaining <= SETTLEMENT_EPSILON:
        return None
    return Debt(
        debt_ref=InvoiceDebt(invoice.id),
        kind=DebtKind.INVOICE,
        remaining=remaining,
        date=invoice.date or datetime.min,
        ref_label=invoice.reference_number or invoice.id,
    )


def collect_debts(partner: Partner, invoices: Iterable[Invoice], opening_payments: Iterable[Payment]) -> List[Debt]:
    """Every outstanding obligation of a partner, unordered."""
    debts = []
    opening = opening_debt(partner, opening_payments)
    if opening is not None:
        debts.append(opening)
    for invoice in invoices:
        debt = invoice_debt(invoice)
        if debt is not None:
            debts.append(debt)
    return debts


def order_debts(debts: Iterable[Debt], selected: Optional[DebtRef] = None) -> List[Debt]:
    """
    Sort debts into settlement order.

    The selected debt comes first; the rest follow by ascending date, then
    opening balance before invoices, then storage id, which makes the order total.
    """
    return sorted(
        debts,
        key=lambda d: (
            0 if selected is not None and d.debt_ref == selected else 1,
            d.date or datetime.min,
            _KIND_RANK[d.kind],
            d.debt_id,
        )
    )


class DebtCatalogBuilder:
    """Reads a partner's current state and returns its ordered debt catalog."""

    def __init__(self, partner_repo: PartnerRepository, invoice_repo: InvoiceRepository,
                 payment_repo: PaymentRepository):
        self.partner_repo = partner_repo
        self.invoice_repo = invoice_repo
        self.payment_repo = payment_repo

    async def load_state(self, side: LedgerSide, partner_id: str, transaction=None):
        """Read partner, invoices and opening-balance payments.

        Raises:
            PartnerNotFoundError: the partner does not exist
        """
        partner = await self.partner_repo.require(side, partner_id, transaction)
        invoices = await self.invoice_repo.get_by_partner(side, partner_id, transaction)
        opening_payments = []
        if partner.opening_balance > 0:
            opening_payments = await self.payment_repo.get_by_debt(side, OpeningBalanceDebt(partner_id), transaction)
        return partner, invoices, opening_payments

    async def build(self, side: LedgerSide, partner_id: str, selected: Optional[DebtRef] = None,
                    transaction=None) -> List[Debt]:
        partner, invoices, opening_payments = await self.load_state(side, partner_id, transaction)
        catalog = order_debts(collect_debts(partner, invoices, opening_payments), selected)
        logger.info(f"Debt catalog for {side.value} partner {partner_id}: {len(catalog)} open debts, "
                    f"{sum(d.remaining for d in catalog):g} outstanding")
        return catalog
