"""Repository for sale and purchase documents."""

import logging
from typing import Dict, List, Optional, Iterable

from pos_ledger.models.schemas import Invoice, LedgerSide, PaymentStatus
from pos_ledger.repositories.base_repository import BaseRepository
from pos_ledger.utils.parsing import round_amount

logger = logging.getLogger(__name__)


class InvoiceRepository(BaseRepository):
    """Repository for Invoice data operations."""

    async def get_by_id(self, side: LedgerSide, invoice_id: str, transaction=None) -> Optional[Invoice]:
        """
        Get an invoice by its id.

        Args:
            side: Sales or purchases
            invoice_id: Document id of the sale or purchase
            transaction: Optional open transaction to read through

        Returns:
            Invoice object or None if not found
        """
        try:
            doc = await self._get(side.invoice_collection, invoice_id, transaction)
            if doc:
                return Invoice.from_document(side, doc)
            return None

        except Exception as e:
            logger.error(f"Error retrieving invoice {invoice_id}: {str(e)}")
            raise

    async def get_many(self, side: LedgerSide, invoice_ids: Iterable[str], transaction=None) -> Dict[str, Invoice]:
        """Batch-read invoices; ids that no longer exist are left out."""
        docs = await self._get_many(side.invoice_collection, invoice_ids, transaction)
        return {doc_id: Invoice.from_document(side, doc) for doc_id, doc in docs.items()}

    async def get_by_partner(self, side: LedgerSide, partner_id: str, transaction=None) -> List[Invoice]:
        """
        Get all invoices of a customer or supplier.

        Returns:
            List of Invoice objects
        """
        try:
            docs = await self._query(
                side.invoice_collection,
                [(side.invoice_partner_field, "==", partner_id)],
                transaction
            )
            return [Invoice.from_document(side, doc) for doc in docs]

        except Exception as e:
            logger.error(f"Error retrieving invoices for partner {partner_id}: {str(e)}")
            raise

    def stage_settlement(self, transaction, side: LedgerSide, invoice_id: str,
                         paid_amount: float, payment_status: PaymentStatus) -> None:
        """Queue new paidAmount and paymentStatus on the transaction."""
        transaction.update(side.invoice_collection, invoice_id, {
            "paidAmount": round_amount(paid_amount),
            "paymentStatus": payment_status.value,
        })
        logger.info(f"Staged invoice {invoice_id}: paidAmount={paid_amount:g}, status={payment_status.value}")
