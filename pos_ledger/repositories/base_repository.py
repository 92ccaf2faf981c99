"""Shared read helpers for repositories.

Every read can go through the DAO directly or through an open transaction
handle, so the same repository serves statement views and atomic updates.
"""

from typing import Dict, Any, List, Optional, Iterable


class BaseRepository:
    """Routes reads to a transaction when one is given."""

    def __init__(self, dao):
        """Initialize with a FirestoreDAO (or compatible) instance."""
        self.dao = dao

    async def _get(self, collection: str, document_id: str, transaction=None) -> Optional[Dict[str, Any]]:
        if transaction is not None:
            return await transaction.get(collection, document_id)
        return await self.dao.get_document(collection, document_id)

    async def _get_many(self, collection: str, document_ids: Iterable[str], transaction=None) -> Dict[str, Dict[str, Any]]:
        if transaction is not None:
            return await transaction.get_many(collection, document_ids)
        return await self.dao.get_documents(collection, document_ids)

    async def _query(self, collection: str, filters: List[tuple], transaction=None) -> List[Dict[str, Any]]:
        if transaction is not None:
            return await transaction.query(collection, filters)
        return await self.dao.query_documents(collection, filters=filters)
