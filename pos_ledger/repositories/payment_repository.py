"""Repository for payment documents and their deletion audit trail."""

import logging
from typing import Dict, Any, List, Optional, Iterable

from pos_ledger.models.schemas import DebtRef, DeletedPayment, LedgerSide, Payment
from pos_ledger.repositories.base_repository import BaseRepository
from pos_ledger.utils.parsing import format_date, round_amount

logger = logging.getLogger(__name__)


class PaymentRepository(BaseRepository):
    """Repository for Payment data operations."""

    async def get_by_id(self, side: LedgerSide, payment_id: str, transaction=None) -> Optional[Payment]:
        """
        Get a payment by its id.

        Returns:
            Payment object or None if not found
        """
        doc = await self._get(side.payment_collection, payment_id, transaction)
        if doc:
            return Payment.from_document(side, doc)
        return None

    async def get_by_debt(self, side: LedgerSide, debt_ref: DebtRef, transaction=None) -> List[Payment]:
        """Get every payment recorded against one debt."""
        docs = await self._query(
            side.payment_collection,
            [(side.payment_debt_field, "==", debt_ref.to_storage_id())],
            transaction
        )
        return [Payment.from_document(side, doc) for doc in docs]

    async def get_by_debts(self, side: LedgerSide, debt_refs: Iterable[DebtRef], transaction=None) -> List[Payment]:
        """
        Get the payments of several debts with batched "in" queries.

        Args:
            side: Sales or purchases
            debt_refs: Invoices and pseudo-debts to collect payments for

        Returns:
            List of Payment objects
        """
        storage_ids = list(dict.fromkeys(ref.to_storage_id() for ref in debt_refs))
        if not storage_ids:
            return []
        try:
            docs = await self._query(
                side.payment_collection,
                [(side.payment_debt_field, "in", storage_ids)],
                transaction
            )
            logger.info(f"Loaded {len(docs)} payments for {len(storage_ids)} debts")
            return [Payment.from_document(side, doc) for doc in docs]

        except Exception as e:
            logger.error(f"Error retrieving payments for {len(storage_ids)} debts: {str(e)}")
            raise

    def stage_create(self, transaction, side: LedgerSide, payment: Payment) -> None:
        transaction.set(side.payment_collection, payment.id, payment.to_document(side))
        logger.info(f"Staged payment {payment.id} of {payment.amount:g} on {payment.debt_ref.to_storage_id()}")

    def stage_update(self, transaction, side: LedgerSide, payment: Payment) -> None:
        fields: Dict[str, Any] = {
            "amount": round_amount(payment.amount),
            "date": format_date(payment.date),
            "method": payment.method,
            "notes": payment.notes,
            "momoOperator": payment.momo_operator,
            "momoNumber": payment.momo_number,
        }
        transaction.update(side.payment_collection, payment.id, fields)
        logger.info(f"Staged update of payment {payment.id}: amount={payment.amount:g}")

    def stage_delete(self, transaction, side: LedgerSide, deleted: DeletedPayment) -> None:
        """Write the audit snapshot and hard-delete the payment in the same commit."""
        payment_id = deleted.payment.id
        transaction.set(side.deleted_payment_collection, payment_id, deleted.to_document(side))
        transaction.delete(side.payment_collection, payment_id)
        logger.info(f"Staged deletion of payment {payment_id} (reason: {deleted.delete_reason})")
