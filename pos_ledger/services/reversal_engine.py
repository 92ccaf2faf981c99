"""
Reversal of recorded payments.

Deleting a payment restores the invoice it settled and undoes its effect on
the partner's credit balance, then moves the payment to the deleted
collection with an audit reason. Editing a payment changes its amount in
place and moves the invoice by the difference.
"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional

from pos_ledger.config import CREDIT_ACCOUNT_METHOD, CREDIT_NOTE_METHOD, MOBILE_MONEY_METHOD, SETTLEMENT_EPSILON
from pos_ledger.exceptions import (
    CreditAlreadyUsedError, CreditNotePaymentError, InvalidAmountError, MissingDeleteReasonError,
    MissingMobileMoneyDetailsError, OverpaymentError, PartnerNotFoundError, PaymentNotFoundError,
    UnsupportedPaymentEditError,
)
from pos_ledger.models.schemas import (
    CreditAccountDebt, DeletedPayment, Invoice, InvoiceDebt, LedgerSide, Partner, Payment,
    derive_payment_status,
)
from pos_ledger.repositories.invoice_repository import InvoiceRepository
from pos_ledger.repositories.partner_repository import PartnerRepository
from pos_ledger.repositories.payment_repository import PaymentRepository
from pos_ledger.services.credit_balance import CreditBalanceManager
from pos_ledger.services.payment_allocator import InvoiceUpdate
from pos_ledger.utils.parsing import round_amount

logger = logging.getLogger(__name__)


@dataclass
class ReversalPlan:
    payment: Payment
    invoice_update: Optional[InvoiceUpdate] = None
    partner_id: Optional[str] = None
    credit_balance_before: Optional[float] = None
    credit_balance_after: Optional[float] = None

    @property
    def changes_credit(self) -> bool:
        return self.credit_balance_after is not None and self.credit_balance_after != self.credit_balance_before


@dataclass
class EditPlan:
    payment: Payment
    previous_amount: float
    invoice_update: Optional[InvoiceUpdate] = None


def touches_credit(payment: Payment) -> bool:
    """Whether undoing this payment moves the partner's credit balance."""
    return isinstance(payment.debt_ref, CreditAccountDebt) or payment.method == CREDIT_ACCOUNT_METHOD


def _partner_id(payment: Payment, invoice: Optional[Invoice]) -> Optional[str]:
    if not isinstance(payment.debt_ref, InvoiceDebt):
        return payment.debt_ref.partner_id
    if invoice is not None and invoice.partner_id:
        return invoice.partner_id
    return payment.partner_id


def plan_reversal(payment: Payment, invoice: Optional[Invoice] = None,
                  partner: Optional[Partner] = None) -> ReversalPlan:
    """
    Compute what deleting a payment changes.

    A payment on the credit account generated credit, so its amount is taken
    back out and must still be there. Any other payment funded by credit gives
    its amount back to the credit balance.

    Raises:
        CreditAlreadyUsedError: the credit this payment generated was spent
    """
    plan = ReversalPlan(payment=payment)

    if isinstance(payment.debt_ref, InvoiceDebt):
        if invoice is None:
            logger.warning(f"Invoice {payment.debt_ref.invoice_id} of payment {payment.id} not found, "
                           f"nothing to restore")
        else:
            paid = round_amount(max(0.0, invoice.paid_amount - payment.amount))
            plan.invoice_update = InvoiceUpdate(
                invoice.id, invoice.paid_amount, paid, derive_payment_status(paid, invoice.grand_total)
            )

    if touches_credit(payment) and partner is not None:
        manager = CreditBalanceManager()
        plan.partner_id = partner.id
        plan.credit_balance_before = partner.credit_balance
        if isinstance(payment.debt_ref, CreditAccountDebt):
            plan.credit_balance_after = manager.debit(
                partner.credit_balance, payment.amount, error_cls=CreditAlreadyUsedError
            )
        else:
            plan.credit_balance_after = manager.credit(partner.credit_balance, payment.amount)
    return plan


def plan_edit(payment: Payment, invoice: Optional[Invoice], new_amount: float, date: datetime = None,
              method: str = None, notes: str = None, momo_operator: str = None,
              momo_number: str = None) -> EditPlan:
    """
    Compute an in-place amount change.

    Payments that touch the credit account are refused; they have to be
    deleted and entered again. Mobile Money details are kept unless new ones
    are given, and dropped when the payment moves to another method.

    Raises:
        InvalidAmountError: new amount is not positive
        UnsupportedPaymentEditError: the payment or the new method involves credit
        MissingMobileMoneyDetailsError: Mobile Money without operator or number
        OverpaymentError: the invoice would be paid above its total
    """
    if new_amount is None or new_amount <= 0:
        raise InvalidAmountError(new_amount)
    if touches_credit(payment):
        raise UnsupportedPaymentEditError(payment.id, "payment moved the credit balance")
    if method == CREDIT_ACCOUNT_METHOD:
        raise UnsupportedPaymentEditError(payment.id, "new method draws on the credit balance")

    new_method = method or payment.method
    if new_method == MOBILE_MONEY_METHOD:
        momo_operator = momo_operator or payment.momo_operator
        momo_number = momo_number or payment.momo_number
        if not (momo_operator and momo_number):
            raise MissingMobileMoneyDetailsError(momo_operator, momo_number)
    else:
        momo_operator = momo_number = None

    new_amount = round_amount(new_amount)
    updated = replace(
        payment,
        amount=new_amount,
        date=date or payment.date,
        method=new_method,
        notes=payment.notes if notes is None else notes,
        momo_operator=momo_operator,
        momo_number=momo_number,
    )
    plan = EditPlan(payment=updated, previous_amount=payment.amount)

    if invoice is not None:
        diff = new_amount - payment.amount
        if round_amount(invoice.paid_amount + diff - invoice.grand_total) > SETTLEMENT_EPSILON:
            raise OverpaymentError(new_amount, round_amount(invoice.remaining + payment.amount), invoice.id)
        paid = round_amount(max(0.0, invoice.paid_amount + diff))
        plan.invoice_update = InvoiceUpdate(
            invoice.id, invoice.paid_amount, paid, derive_payment_status(paid, invoice.grand_total)
        )
    return plan


class ReversalEngine:
    """Deletes and edits recorded payments atomically."""

    def __init__(self, dao, partner_repo: PartnerRepository, invoice_repo: InvoiceRepository,
                 payment_repo: PaymentRepository):
        self.dao = dao
        self.partner_repo = partner_repo
        self.invoice_repo = invoice_repo
        self.payment_repo = payment_repo

    async def _read_payment(self, side: LedgerSide, payment_id: str, transaction):
        payment = await self.payment_repo.get_by_id(side, payment_id, transaction)
        if payment is None:
            logger.error(f"Payment {payment_id} not found in {side.payment_collection}")
            raise PaymentNotFoundError(payment_id)
        invoice = None
        if isinstance(payment.debt_ref, InvoiceDebt):
            invoice = await self.invoice_repo.get_by_id(side, payment.debt_ref.invoice_id, transaction)
        return payment, invoice

    def _stage_invoice(self, transaction, side: LedgerSide, update: Optional[InvoiceUpdate]) -> None:
        if update is not None:
            self.invoice_repo.stage_settlement(
                transaction, side, update.invoice_id, update.paid_amount, update.payment_status
            )

    async def delete_payment(self, side: LedgerSide, payment_id: str, reason: str,
                             deleted_by: str = None) -> ReversalPlan:
        """
        Delete a payment and undo its effects.

        Payments created by a credit note are refused here; deleting the note
        removes them together with its credit. A credit-linked payment on a
        vanished invoice can only be reversed when the payment itself stores
        partnerId, which documents from older clients lack.

        Args:
            side: Sales or purchases
            payment_id: Payment document id
            reason: Audit reason, mandatory
            deleted_by: User performing the deletion

        Returns:
            The committed ReversalPlan
        """
        if not reason or not reason.strip():
            raise MissingDeleteReasonError(payment_id)

        async def _delete(transaction) -> ReversalPlan:
            payment, invoice = await self._read_payment(side, payment_id, transaction)
            if payment.method == CREDIT_NOTE_METHOD:
                logger.warning(f"Payment {payment.id} belongs to a credit note, refusing direct deletion")
                raise CreditNotePaymentError(payment.id)
            partner = None
            if touches_credit(payment):
                partner_id = _partner_id(payment, invoice)
                if not partner_id:
                    logger.error(
                        f"Cannot resolve the partner of payment {payment.id}: invoice "
                        f"{payment.debt_ref.to_storage_id()} is gone and the payment has no partnerId, "
                        f"so its {payment.amount:g} of credit cannot be restored"
                    )
                    raise PartnerNotFoundError(f"<payment {payment.id}>", side.partner_collection)
                partner = await self.partner_repo.require(side, partner_id, transaction)

            plan = plan_reversal(payment, invoice, partner)

            self._stage_invoice(transaction, side, plan.invoice_update)
            if plan.changes_credit:
                self.partner_repo.stage_credit_balance(transaction, side, plan.partner_id, plan.credit_balance_after)
            self.payment_repo.stage_delete(transaction, side, DeletedPayment(
                payment=payment,
                deleted_by=deleted_by,
                delete_reason=reason.strip(),
            ))
            return plan

        try:
            plan = await self.dao.run_transaction(_delete, operation="delete_payment")
        except Exception as e:
            logger.error(f"Deletion of payment {payment_id} failed: {str(e)}")
            raise

        logger.info(f"Deleted payment {payment_id} ({plan.payment.amount:g} on {plan.payment.debt_ref.to_storage_id()})")
        return plan

    async def edit_payment(self, side: LedgerSide, payment_id: str, new_amount: float, date: datetime = None,
                           method: str = None, notes: str = None, momo_operator: str = None,
                           momo_number: str = None) -> EditPlan:
        """Change a payment's amount, date, method or notes in place."""
        if new_amount is None or new_amount <= 0:
            raise InvalidAmountError(new_amount)

        async def _edit(transaction) -> EditPlan:
            payment, invoice = await self._read_payment(side, payment_id, transaction)
            plan = plan_edit(payment, invoice, new_amount, date, method, notes, momo_operator, momo_number)
            self._stage_invoice(transaction, side, plan.invoice_update)
            self.payment_repo.stage_update(transaction, side, plan.payment)
            return plan

        try:
            plan = await self.dao.run_transaction(_edit, operation="edit_payment")
        except Exception as e:
            logger.error(f"Edit of payment {payment_id} failed: {str(e)}")
            raise

        logger.info(f"Edited payment {payment_id}: {plan.previous_amount:g} -> {plan.payment.amount:g}")
        return plan
