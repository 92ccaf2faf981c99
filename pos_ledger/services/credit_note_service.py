"""
Credit notes (avoirs) issued to customers.

Issuing a note deposits its amount on the customer's credit account;
deleting it takes the amount back out, which is only possible while the
credit is still unspent.
"""

import logging
from datetime import datetime
from typing import Optional

from pos_ledger.config import CREDIT_NOTE_METHOD, CREDIT_NOTE_REFERENCE_PREFIX, CREDIT_NOTES_COLLECTION
from pos_ledger.exceptions import CreditAlreadyUsedError, CreditNoteNotFoundError, InvalidAmountError, MissingDeleteReasonError
from pos_ledger.models.schemas import CreditAccountDebt, CreditNote, DeletedPayment, LedgerSide, Payment
from pos_ledger.repositories.credit_note_repository import CreditNoteRepository
from pos_ledger.repositories.partner_repository import PartnerRepository
from pos_ledger.repositories.payment_repository import PaymentRepository
from pos_ledger.services.credit_balance import CreditBalanceManager
from pos_ledger.utils.parsing import round_amount

logger = logging.getLogger(__name__)

SIDE = LedgerSide.SALES


def credit_note_reference(now: datetime) -> str:
    return f"{CREDIT_NOTE_REFERENCE_PREFIX}{str(int(now.timestamp() * 1000))[-6:]}"


class CreditNoteService:
    """Issues and cancels customer credit notes."""

    def __init__(self, dao, partner_repo: PartnerRepository, payment_repo: PaymentRepository,
                 credit_note_repo: CreditNoteRepository):
        self.dao = dao
        self.partner_repo = partner_repo
        self.payment_repo = payment_repo
        self.credit_note_repo = credit_note_repo
        self.credit_manager = CreditBalanceManager()

    async def issue(self, customer_id: str, amount: float, reason: str, created_by: str = None) -> CreditNote:
        """
        Create a credit note and credit the customer.

        Args:
            customer_id: Customer receiving the credit
            amount: Credit amount, positive
            reason: Why the credit is granted
            created_by: User issuing the note

        Returns:
            The committed CreditNote
        """
        if amount is None or amount <= 0:
            raise InvalidAmountError(amount)
        amount = round_amount(amount)
        now = datetime.utcnow()
        reference = credit_note_reference(now)

        async def _issue(transaction) -> CreditNote:
            customer = await self.partner_repo.require(SIDE, customer_id, transaction)
            new_balance = self.credit_manager.credit(customer.credit_balance, amount)

            payment = Payment(
                id=transaction.new_document_id(SIDE.payment_collection),
                debt_ref=CreditAccountDebt(customer_id),
                amount=amount,
                date=now,
                method=CREDIT_NOTE_METHOD,
                notes=f"Note de Crédit: {reference} - {reason}",
                created_by=created_by,
                partner_id=customer_id,
            )
            note = CreditNote(
                id=transaction.new_document_id(CREDIT_NOTES_COLLECTION),
                reference_number=reference,
                customer_id=customer_id,
                amount=amount,
                reason=reason,
                payment_id=payment.id,
                date=now,
                created_by=created_by,
            )
            self.payment_repo.stage_create(transaction, SIDE, payment)
            self.credit_note_repo.stage_create(transaction, note)
            self.partner_repo.stage_credit_balance(transaction, SIDE, customer_id, new_balance)
            return note

        note = await self.dao.run_transaction(_issue, operation="issue_credit_note")
        logger.info(f"Issued credit note {note.reference_number} of {amount:g} to customer {customer_id}")
        return note

    async def delete(self, credit_note_id: str, reason: str, deleted_by: str = None) -> CreditNote:
        """
        Cancel a credit note whose credit has not been spent.

        Raises:
            MissingDeleteReasonError: no reason given
            CreditNoteNotFoundError: unknown credit note
            CreditAlreadyUsedError: the customer's credit no longer covers the note
        """
        if not reason or not reason.strip():
            raise MissingDeleteReasonError(credit_note_id)

        async def _delete(transaction) -> CreditNote:
            note = await self.credit_note_repo.get_by_id(credit_note_id, transaction)
            if note is None:
                raise CreditNoteNotFoundError(credit_note_id)
            customer = await self.partner_repo.require(SIDE, note.customer_id, transaction)
            payment: Optional[Payment] = None
            if note.payment_id:
                payment = await self.payment_repo.get_by_id(SIDE, note.payment_id, transaction)

            new_balance = self.credit_manager.debit(
                customer.credit_balance, note.amount, error_cls=CreditAlreadyUsedError
            )

            if payment is not None:
                self.payment_repo.stage_delete(transaction, SIDE, DeletedPayment(
                    payment=payment,
                    deleted_by=deleted_by,
                    delete_reason=f"Suppression de la note {note.reference_number}: {reason.strip()}",
                ))
            else:
                logger.warning(f"Credit note {note.reference_number} has no payment to remove")
            self.credit_note_repo.stage_delete(transaction, note.id)
            self.partner_repo.stage_credit_balance(transaction, SIDE, note.customer_id, new_balance)
            return note

        try:
            note = await self.dao.run_transaction(_delete, operation="delete_credit_note")
        except Exception as e:
            logger.error(f"Deletion of credit note {credit_note_id} failed: {str(e)}")
            raise

        logger.info(f"Deleted credit note {note.reference_number}, {note.amount:g} removed from customer credit")
        return note
