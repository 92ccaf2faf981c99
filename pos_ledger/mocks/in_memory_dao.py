"""
In-memory stand-in for FirestoreDAO.

Keeps collections as dictionaries and offers the same read, write and
transaction interface, so the reconciliation services run unchanged against
it. Used by the test-suite and by the CLI when a JSON data file is given.
"""

import copy
import json
import logging
import uuid
from typing import Dict, Any, List, Optional, Iterable, Callable, Awaitable, TypeVar

from google.api_core import exceptions as gcp_exceptions

from pos_ledger.config import TRANSACTION_MAX_ATTEMPTS
from pos_ledger.exceptions import ReadAfterWriteError, TransactionFailedError
from pos_ledger.repositories.firestore_dao import convert_to_document

T = TypeVar('T')

logger = logging.getLogger(__name__)

_SUPPORTED_OPERATORS = ("==", "in")


def _matches(doc: Dict[str, Any], filters: List[tuple]) -> bool:
    for field, op, value in filters:
        if op not in _SUPPORTED_OPERATORS:
            raise ValueError(f"Unsupported operator in mock query: {op}")
        current = doc.get(field)
        if op == "==" and current != value:
            return False
        if op == "in" and current not in value:
            return False
    return True


class InMemoryTransaction:
    """Transaction handle with staged writes, applied only on commit."""

    def __init__(self, dao: "InMemoryDAO"):
        self._dao = dao
        self._writes: List[tuple] = []

    def _check_read(self, collection: str, document_id: str = None) -> None:
        if self._writes:
            raise ReadAfterWriteError(collection, document_id)

    async def get(self, collection: str, document_id: str) -> Optional[Dict[str, Any]]:
        self._check_read(collection, document_id)
        self._dao.reads += 1
        return self._dao._read(collection, document_id)

    async def get_many(self, collection: str, document_ids: Iterable[str]) -> Dict[str, Dict[str, Any]]:
        self._check_read(collection)
        self._dao.reads += 1
        results = {}
        for doc_id in dict.fromkeys(document_ids):
            data = self._dao._read(collection, doc_id)
            if data is not None:
                results[doc_id] = data
        return results

    async def query(self, collection: str, filters: List[tuple] = None) -> List[Dict[str, Any]]:
        self._check_read(collection)
        self._dao.reads += 1
        return self._dao._query(collection, filters or [])

    def new_document_id(self, collection: str) -> str:
        return self._dao.new_document_id(collection)

    def set(self, collection: str, document_id: str, data: Dict[str, Any]) -> None:
        self._writes.append(("set", collection, document_id, convert_to_document(data)))

    def update(self, collection: str, document_id: str, data: Dict[str, Any]) -> None:
        self._writes.append(("update", collection, document_id, convert_to_document(data)))

    def delete(self, collection: str, document_id: str) -> None:
        self._writes.append(("delete", collection, document_id, None))

    def commit(self) -> None:
        # Validate everything first so a failing write leaves the store untouched
        staged = copy.deepcopy(self._dao.collections)
        for op, collection, document_id, data in self._writes:
            docs = staged.setdefault(self._dao._get_collection_name(collection), {})
            if op == "set":
                docs[document_id] = copy.deepcopy(data)
            elif op == "update":
                if document_id not in docs:
                    raise gcp_exceptions.NotFound(f"No document to update: {collection}/{document_id}")
                docs[document_id].update(copy.deepcopy(data))
            elif op == "delete":
                docs.pop(document_id, None)
        self._dao.collections = staged
        self._dao.commits += 1


class InMemoryDAO:
    """Dictionary-backed implementation of the FirestoreDAO interface."""

    def __init__(self, collection_prefix: str = "", simulated_conflicts: int = 0):
        """
        Args:
            collection_prefix: Optional prefix for collections
            simulated_conflicts: Number of upcoming commits that fail as contended
                and force the transaction callback to run again
        """
        self.collection_prefix = collection_prefix
        self.collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.simulated_conflicts = simulated_conflicts
        self.commits = 0
        self.reads = 0
        self.attempts = 0

    @classmethod
    def from_json_file(cls, path: str) -> "InMemoryDAO":
        """Load {collection: [documents with "id"]} from a JSON file."""
        with open(path, "r", encoding="utf-8") as handle:
            payload = json.load(handle)
        dao = cls()
        for collection, docs in payload.items():
            dao.seed(collection, docs)
        logger.info(f"Loaded {sum(len(d) for d in payload.values())} documents from {path}")
        return dao

    def dump_json_file(self, path: str) -> None:
        payload = {
            name[len(self.collection_prefix):]: list(docs.values())
            for name, docs in self.collections.items()
        }
        with open(path, "w", encoding="utf-8") as handle:
            json.dump(payload, handle, ensure_ascii=False, indent=2)

    def seed(self, collection: str, docs: Iterable[Dict[str, Any]]) -> None:
        target = self.collections.setdefault(self._get_collection_name(collection), {})
        for doc in docs:
            data = convert_to_document(copy.deepcopy(doc))
            target[data["id"]] = data

    def _get_collection_name(self, name: str) -> str:
        return f"{self.collection_prefix}{name}"

    def _read(self, collection: str, document_id: str) -> Optional[Dict[str, Any]]:
        doc = self.collections.get(self._get_collection_name(collection), {}).get(document_id)
        if doc is None:
            return None
        data = copy.deepcopy(doc)
        data["id"] = document_id
        return data

    def _query(self, collection: str, filters: List[tuple]) -> List[Dict[str, Any]]:
        docs = self.collections.get(self._get_collection_name(collection), {})
        return [
            self._read(collection, doc_id)
            for doc_id, doc in docs.items()
            if _matches({**doc, "id": doc_id}, filters)
        ]

    def new_document_id(self, collection: str) -> str:
        return uuid.uuid4().hex[:20]

    async def get_document(self, collection: str, document_id: str) -> Optional[Dict[str, Any]]:
        return self._read(collection, document_id)

    async def get_documents(self, collection: str, document_ids: Iterable[str]) -> Dict[str, Dict[str, Any]]:
        results = {}
        for doc_id in dict.fromkeys(document_ids):
            data = self._read(collection, doc_id)
            if data is not None:
                results[doc_id] = data
        return results

    async def query_documents(self, collection: str, filters: List[tuple] = None) -> List[Dict[str, Any]]:
        return self._query(collection, filters or [])

    async def run_transaction(self, callback: Callable[[InMemoryTransaction], Awaitable[T]],
                              operation: str = "transaction", max_attempts: int = None) -> T:
        max_attempts = max_attempts or TRANSACTION_MAX_ATTEMPTS
        for attempt in range(1, max_attempts + 1):
            self.attempts += 1
            transaction = InMemoryTransaction(self)
            result = await callback(transaction)
            if self.simulated_conflicts > 0:
                self.simulated_conflicts -= 1
                logger.warning(f"Simulated contention on {operation}, attempt {attempt}/{max_attempts}")
                continue
            try:
                transaction.commit()
            except gcp_exceptions.GoogleAPICallError as e:
                logger.error(f"Transaction {operation} failed: {str(e)}")
                raise TransactionFailedError(operation, e) from e
            logger.info(f"Committed {operation}")
            return result

        error = ValueError(f"Failed to commit transaction in {max_attempts} attempts.")
        logger.error(f"Transaction {operation} failed: {error}")
        raise TransactionFailedError(operation, error)
