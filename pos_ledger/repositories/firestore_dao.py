"""
Firestore Data Access Object for the ledger collections.

This module provides a unified interface for reading and writing partner,
invoice and payment documents, and for running the multi-document atomic
transactions every reconciliation operation needs.
"""

import os
import logging
from typing import Dict, Any, List, Optional, Iterable, Callable, Awaitable, TypeVar
from datetime import datetime, date

from google.api_core import exceptions as gcp_exceptions
from google.cloud.firestore_v1 import AsyncClient, async_transactional

from pos_ledger.config import (
    FIRESTORE_DATABASE_ID, FIRESTORE_IN_QUERY_LIMIT, TRANSACTION_MAX_ATTEMPTS,
)
from pos_ledger.exceptions import LedgerError, ReadAfterWriteError, TransactionFailedError
from pos_ledger.utils.parsing import format_date

T = TypeVar('T')

logger = logging.getLogger(__name__)


def _snapshot_to_dict(snapshot) -> Optional[Dict[str, Any]]:
    if not snapshot.exists:
        return None
    data = snapshot.to_dict() or {}
    data["id"] = snapshot.id
    return data


def _chunks(values: List[Any], size: int) -> Iterable[List[Any]]:
    for start in range(0, len(values), size):
        yield values[start:start + size]


def convert_to_document(data: Dict[str, Any]) -> Dict[str, Any]:
    """Store dates the way the web client writes them (ISO strings)."""
    if not isinstance(data, dict):
        raise TypeError(f"Object of type {type(data)} is not supported for Firestore conversion")
    result = {}
    for key, value in data.items():
        if isinstance(value, datetime):
            result[key] = format_date(value)
        elif isinstance(value, date):
            result[key] = format_date(datetime.combine(value, datetime.min.time()))
        else:
            result[key] = value
    return result


class FirestoreTransaction:
    """
    Read/write handle passed to transaction callbacks.

    Reads are awaited, writes are buffered by Firestore and sent on commit.
    Firestore rejects reads issued after a write, so the handle fails fast
    when that ordering is broken.
    """

    def __init__(self, dao: "FirestoreDAO", transaction):
        self._dao = dao
        self._transaction = transaction
        self._has_written = False

    def _check_read(self, collection: str, document_id: str = None) -> None:
        if self._has_written:
            raise ReadAfterWriteError(collection, document_id)

    async def get(self, collection: str, document_id: str) -> Optional[Dict[str, Any]]:
        self._check_read(collection, document_id)
        doc_ref = self._dao.document_ref(collection, document_id)
        snapshot = await doc_ref.get(transaction=self._transaction)
        return _snapshot_to_dict(snapshot)

    async def get_many(self, collection: str, document_ids: Iterable[str]) -> Dict[str, Dict[str, Any]]:
        """Read a set of documents in one round trip; missing ids are absent from the result."""
        self._check_read(collection)
        ids = list(dict.fromkeys(document_ids))
        if not ids:
            return {}
        refs = [self._dao.document_ref(collection, doc_id) for doc_id in ids]
        results = {}
        async for snapshot in self._dao.db.get_all(refs, transaction=self._transaction):
            data = _snapshot_to_dict(snapshot)
            if data is not None:
                results[data["id"]] = data
        return results

    async def query(self, collection: str, filters: List[tuple] = None) -> List[Dict[str, Any]]:
        self._check_read(collection)
        results = []
        for query in self._dao.build_queries(collection, filters):
            async for snapshot in query.stream(transaction=self._transaction):
                results.append(_snapshot_to_dict(snapshot))
        return results

    def new_document_id(self, collection: str) -> str:
        return self._dao.new_document_id(collection)

    def set(self, collection: str, document_id: str, data: Dict[str, Any]) -> None:
        self._has_written = True
        self._transaction.set(self._dao.document_ref(collection, document_id), convert_to_document(data))

    def update(self, collection: str, document_id: str, data: Dict[str, Any]) -> None:
        self._has_written = True
        self._transaction.update(self._dao.document_ref(collection, document_id), convert_to_document(data))

    def delete(self, collection: str, document_id: str) -> None:
        self._has_written = True
        self._transaction.delete(self._dao.document_ref(collection, document_id))


class FirestoreDAO:
    """Data Access Object for Firestore operations."""

    def __init__(self, project_id: str = None, collection_prefix: str = "", database_id: str = None):
        """
        Initialize the Firestore DAO.

        Args:
            project_id: Optional Firestore project ID (defaults to env variable)
            collection_prefix: Optional prefix for collections (for testing)
            database_id: Optional Firestore database ID (defaults to env variable or '(default)')
        """
        self.project_id = project_id or os.environ.get("FIRESTORE_PROJECT_ID")
        if not self.project_id:
            raise ValueError("Firestore project ID not provided and FIRESTORE_PROJECT_ID env variable not set")

        self.database_id = database_id or os.environ.get("FIRESTORE_DATABASE_ID", FIRESTORE_DATABASE_ID)

        self.db = AsyncClient(project=self.project_id, database=self.database_id)
        self.collection_prefix = collection_prefix
        logger.info(f"Initialized FirestoreDAO with project {self.project_id}, database {self.database_id}, prefix: '{collection_prefix}'")

    def _get_collection_name(self, name: str) -> str:
        """Get the full collection name with prefix."""
        return f"{self.collection_prefix}{name}"

    def document_ref(self, collection: str, document_id: str):
        return self.db.collection(self._get_collection_name(collection)).document(document_id)

    def new_document_id(self, collection: str) -> str:
        """Allocate an auto-generated document id without writing anything."""
        return self.db.collection(self._get_collection_name(collection)).document().id

    def build_queries(self, collection: str, filters: List[tuple] = None) -> List[Any]:
        """
        Build one query per chunk of an "in" filter.

        Firestore limits "in" filters to FIRESTORE_IN_QUERY_LIMIT values, so a
        larger id set is split into several queries whose results are concatenated.
        """
        filters = list(filters or [])
        in_filter = next((f for f in filters if f[1] == "in"), None)
        value_sets = [None]
        if in_filter is not None:
            values = list(in_filter[2])
            if not values:
                return []
            value_sets = list(_chunks(values, FIRESTORE_IN_QUERY_LIMIT))

        queries = []
        for value_set in value_sets:
            query = self.db.collection(self._get_collection_name(collection))
            for field, op, value in filters:
                if op == "in":
                    value = value_set
                query = query.where(field, op, value)
            queries.append(query)
        return queries

    async def get_document(self, collection: str, document_id: str) -> Optional[Dict[str, Any]]:
        """
        Get a document by ID.

        Args:
            collection: Collection name
            document_id: Document ID

        Returns:
            Document data (with its "id") or None if not found
        """
        try:
            snapshot = await self.document_ref(collection, document_id).get()
            data = _snapshot_to_dict(snapshot)
            if data is None:
                logger.warning(f"Document {document_id} not found in {collection}")
            return data

        except Exception as e:
            logger.error(f"Error getting document {document_id} from {collection}: {str(e)}")
            raise

    async def get_documents(self, collection: str, document_ids: Iterable[str]) -> Dict[str, Dict[str, Any]]:
        """
        Batch-read documents by id.

        Returns:
            Mapping of id to document data; missing documents are omitted
        """
        ids = list(dict.fromkeys(document_ids))
        if not ids:
            return {}
        try:
            refs = [self.document_ref(collection, doc_id) for doc_id in ids]
            results = {}
            async for snapshot in self.db.get_all(refs):
                data = _snapshot_to_dict(snapshot)
                if data is not None:
                    results[data["id"]] = data
            logger.info(f"Batch read {len(results)}/{len(ids)} documents from {collection}")
            return results

        except Exception as e:
            logger.error(f"Error batch reading {collection}: {str(e)}")
            raise

    async def query_documents(self, collection: str, filters: List[tuple] = None) -> List[Dict[str, Any]]:
        """
        Query documents with filters.

        Args:
            collection: Collection name
            filters: List of (field, operator, value) tuples

        Returns:
            List of document dictionaries
        """
        try:
            results = []
            for query in self.build_queries(collection, filters):
                async for snapshot in query.stream():
                    results.append(_snapshot_to_dict(snapshot))

            logger.info(f"Query returned {len(results)} results from {collection}")
            return results

        except Exception as e:
            logger.error(f"Error querying {collection}: {str(e)}")
            raise

    async def run_transaction(self, callback: Callable[[FirestoreTransaction], Awaitable[T]],
                              operation: str = "transaction", max_attempts: int = None) -> T:
        """
        Run callback atomically with optimistic retries.

        The callback may be executed several times when documents it read are
        modified concurrently; it must keep all side effects in its staged writes.

        Raises:
            LedgerError: domain errors raised by the callback, unchanged
            TransactionFailedError: retries exhausted or the backend call failed
        """
        transaction = self.db.transaction(max_attempts=max_attempts or TRANSACTION_MAX_ATTEMPTS)

        @async_transactional
        async def _run(tx):
            return await callback(FirestoreTransaction(self, tx))

        try:
            result = await _run(transaction)
            logger.info(f"Committed {operation}")
            return result
        except LedgerError:
            raise
        except (ValueError, gcp_exceptions.GoogleAPICallError) as e:
            # async_transactional raises ValueError once max_attempts is exhausted
            logger.error(f"Transaction {operation} failed: {str(e)}")
            raise TransactionFailedError(operation, e) from e
