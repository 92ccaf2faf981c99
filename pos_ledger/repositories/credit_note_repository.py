"""Repository for credit note documents."""

import logging
from typing import Optional

from pos_ledger.config import CREDIT_NOTES_COLLECTION
from pos_ledger.models.schemas import CreditNote
from pos_ledger.repositories.base_repository import BaseRepository

logger = logging.getLogger(__name__)


class CreditNoteRepository(BaseRepository):
    """Repository for CreditNote data operations."""

    async def get_by_id(self, credit_note_id: str, transaction=None) -> Optional[CreditNote]:
        doc = await self._get(CREDIT_NOTES_COLLECTION, credit_note_id, transaction)
        if doc:
            return CreditNote.from_document(doc)
        return None

    def stage_create(self, transaction, credit_note: CreditNote) -> None:
        transaction.set(CREDIT_NOTES_COLLECTION, credit_note.id, credit_note.to_document())
        logger.info(f"Staged credit note {credit_note.reference_number} ({credit_note.amount:g})")

    def stage_delete(self, transaction, credit_note_id: str) -> None:
        transaction.delete(CREDIT_NOTES_COLLECTION, credit_note_id)
        logger.info(f"Staged deletion of credit note {credit_note_id}")
