"""Repository for customer and supplier documents."""

import logging
from typing import Optional

from pos_ledger.exceptions import PartnerNotFoundError
from pos_ledger.models.schemas import LedgerSide, Partner
from pos_ledger.repositories.base_repository import BaseRepository
from pos_ledger.utils.parsing import round_amount

logger = logging.getLogger(__name__)


class PartnerRepository(BaseRepository):
    """Repository for Partner data operations."""

    async def get_by_id(self, side: LedgerSide, partner_id: str, transaction=None) -> Optional[Partner]:
        """
        Get a customer (sales side) or supplier (purchases side) by id.

        Returns:
            Partner object or None if not found
        """
        doc = await self._get(side.partner_collection, partner_id, transaction)
        if doc:
            return Partner.from_document(doc)
        return None

    async def require(self, side: LedgerSide, partner_id: str, transaction=None) -> Partner:
        """Same as get_by_id, but a missing partner is fatal."""
        partner = await self.get_by_id(side, partner_id, transaction)
        if partner is None:
            logger.error(f"Partner {partner_id} not found in {side.partner_collection}")
            raise PartnerNotFoundError(partner_id, side.partner_collection)
        return partner

    def stage_credit_balance(self, transaction, side: LedgerSide, partner_id: str, credit_balance: float) -> None:
        """Queue the new credit balance on the transaction."""
        transaction.update(side.partner_collection, partner_id, {"creditBalance": round_amount(credit_balance)})
        logger.info(f"Staged creditBalance={credit_balance:g} for partner {partner_id}")
