"""
Account statement projection.

A statement is never stored: it is replayed from the opening balance, the
invoices and the payments of a partner every time it is viewed.
"""

import logging
from datetime import datetime
from typing import Dict, Iterable, List

from pos_ledger.config import (
    CREDIT_ACCOUNT_METHOD, CREDIT_NOTE_METHOD, DEPOSIT_DISCREPANCY_TOLERANCE, OPENING_BALANCE_LABEL,
)
from pos_ledger.models.schemas import (
    AccountMovement, CreditAccountDebt, Invoice, InvoiceDebt, LedgerSide, MovementKind,
    OpeningBalanceDebt, Partner, Payment, Statement,
)
from pos_ledger.repositories.invoice_repository import InvoiceRepository
from pos_ledger.repositories.partner_repository import PartnerRepository
from pos_ledger.repositories.payment_repository import PaymentRepository
from pos_ledger.utils.parsing import round_amount

logger = logging.getLogger(__name__)

_INVOICE_LABELS = {
    LedgerSide.SALES: ("Facture de vente", "Paiement initial reçu"),
    LedgerSide.PURCHASES: ("Facture d'achat", "Règlement initial effectué"),
}


def payment_reference(payment: Payment) -> str:
    return f"REG-{payment.id[-4:].upper()}"


def _credit_row(payment: Payment, kind: MovementKind, ref: str, description: str) -> AccountMovement:
    return AccountMovement(
        date=payment.date, ref=ref, description=description, debit=0.0, credit=payment.amount, kind=kind
    )


def project_statement(partner: Partner, invoices: Iterable[Invoice], payments: Iterable[Payment],
                      side: LedgerSide = LedgerSide.SALES) -> Statement:
    """
    Replay a partner's movements into a running-balance statement.

    Debits increase what the partner owes, credits decrease it. A negative
    final balance is credit held for the partner.
    """
    invoices = list(invoices)
    invoice_by_id = {invoice.id: invoice for invoice in invoices}
    invoice_label, deposit_label = _INVOICE_LABELS[side]
    movements: List[AccountMovement] = []
    paid_by_invoice: Dict[str, float] = {}

    if partner.opening_balance > 0:
        movements.append(AccountMovement(
            date=partner.opening_balance_date,
            ref=OPENING_BALANCE_LABEL,
            description="Solde d'ouverture",
            debit=partner.opening_balance,
            credit=0.0,
            kind=MovementKind.OPENING_BALANCE,
        ))

    for invoice in invoices:
        movements.append(AccountMovement(
            date=invoice.date,
            ref=invoice.reference_number,
            description=invoice_label,
            debit=invoice.grand_total,
            credit=0.0,
            kind=MovementKind.INVOICE,
        ))

    for payment in payments:
        ref = payment.debt_ref
        if isinstance(ref, OpeningBalanceDebt):
            movements.append(_credit_row(
                payment, MovementKind.OPENING_PAYMENT, payment_reference(payment), "Règlement solde d'ouverture"
            ))
        elif isinstance(ref, CreditAccountDebt):
            description = "Avoir (note de crédit)" if payment.method == CREDIT_NOTE_METHOD else "Avoir (trop-perçu)"
            movements.append(_credit_row(payment, MovementKind.CREDIT_DEPOSIT, payment_reference(payment), description))
        else:
            invoice = invoice_by_id.get(ref.invoice_id)
            paid_by_invoice[ref.invoice_id] = paid_by_invoice.get(ref.invoice_id, 0.0) + payment.amount
            movements.append(_credit_row(
                payment, MovementKind.INVOICE_PAYMENT, payment_reference(payment),
                f"Règlement facture {invoice.reference_number if invoice else ''}".strip()
            ))

        if payment.method == CREDIT_ACCOUNT_METHOD and not isinstance(ref, CreditAccountDebt):
            # The credit was already counted when it was deposited
            movements.append(AccountMovement(
                date=payment.date,
                ref=payment_reference(payment),
                description="Utilisation avoir",
                debit=payment.amount,
                credit=0.0,
                kind=MovementKind.CREDIT_USAGE,
            ))

    for invoice in invoices:
        unexplained = round_amount(invoice.paid_amount - paid_by_invoice.get(invoice.id, 0.0))
        if unexplained > DEPOSIT_DISCREPANCY_TOLERANCE:
            movements.append(AccountMovement(
                date=invoice.date,
                ref=invoice.reference_number,
                description=deposit_label,
                debit=0.0,
                credit=unexplained,
                kind=MovementKind.DEPOSIT,
            ))

    # Stable sort keeps each invoice ahead of same-day movements on it
    movements.sort(key=lambda m: m.date or datetime.min)

    balance = 0.0
    total_debit = 0.0
    total_credit = 0.0
    for movement in movements:
        balance = round_amount(balance + movement.debit - movement.credit)
        total_debit += movement.debit
        total_credit += movement.credit
        movement.balance = balance

    return Statement(
        partner=partner,
        side=side,
        movements=movements,
        total_debit=round_amount(total_debit),
        total_credit=round_amount(total_credit),
        balance=balance,
    )


class StatementProjector:
    """Loads a partner's history with batch reads and projects it."""

    def __init__(self, partner_repo: PartnerRepository, invoice_repo: InvoiceRepository,
                 payment_repo: PaymentRepository):
        self.partner_repo = partner_repo
        self.invoice_repo = invoice_repo
        self.payment_repo = payment_repo

    async def load(self, side: LedgerSide, partner_id: str) -> Statement:
        try:
            partner = await self.partner_repo.require(side, partner_id)
            invoices = await self.invoice_repo.get_by_partner(side, partner_id)
            debt_refs = [InvoiceDebt(invoice.id) for invoice in invoices]
            debt_refs += [OpeningBalanceDebt(partner_id), CreditAccountDebt(partner_id)]
            payments = await self.payment_repo.get_by_debts(side, debt_refs)

        except Exception as e:
            logger.error(f"Error loading statement of {side.value} partner {partner_id}: {str(e)}")
            raise

        statement = project_statement(partner, invoices, payments, side)
        logger.info(f"Projected {len(statement.movements)} movements for {partner_id}, balance {statement.balance:g}")
        return statement
