"""Document store for BuildBid.

Single-table record store keyed on ``PK``/``SK`` with secondary index
attributes (``GSI3PK``/``GSI3SK`` and friends). ``DocumentStore`` is the
contract the quote service depends on; ``FirestoreDocumentStore`` backs
it with one Firestore collection.
"""

from abc import ABC, abstractmethod
from typing import Dict, Any, Optional, List
import inspect
import structlog

from firebase_admin import firestore
from google.api_core.exceptions import AlreadyExists
from google.cloud.firestore_v1.base_query import FieldFilter

from config.errors import DocumentStoreError, ErrorCode
from config.settings import settings

logger = structlog.get_logger()

# Upper bound for prefix range queries on string fields
PREFIX_SENTINEL = "\uf8ff"


class DocumentStore(ABC):
    """Key-value document store contract.

    Records are plain dicts carrying their own ``PK`` and ``SK``.
    Implementations raise ``DocumentStoreError`` on infrastructure faults.
    """

    @abstractmethod
    async def get(self, pk: str, sk: str) -> Optional[Dict[str, Any]]:
        """Fetch one record, or None."""

    @abstractmethod
    async def put(self, item: Dict[str, Any]) -> None:
        """Create or overwrite a record."""

    @abstractmethod
    async def put_if_absent(self, item: Dict[str, Any]) -> bool:
        """Atomically create a record. False if the key already exists."""

    @abstractmethod
    async def query_by_partition_prefix(self, pk: str, sk_prefix: str = "") -> List[Dict[str, Any]]:
        """Records in a partition whose SK starts with ``sk_prefix``, SK ascending."""

    @abstractmethod
    async def query_by_index(
        self,
        index_name: str,
        key: str,
        sort_prefix: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """Records where ``{index}PK == key`` and ``{index}SK`` starts with ``sort_prefix``."""


def record_id(pk: str, sk: str) -> str:
    """Firestore document ID for a PK/SK pair."""
    return f"{pk}|{sk}".replace("/", "_")


class FirestoreDocumentStore(DocumentStore):
    """DocumentStore backed by a single Firestore collection.

    Note: Firebase Admin SDK for Python is synchronous. Methods are
    async for interface compatibility but operations are sync.
    """

    def __init__(self, db=None, collection_name: Optional[str] = None):
        """Initialize FirestoreDocumentStore.

        Args:
            db: Optional Firestore client. If not provided, uses default.
            collection_name: Collection holding all records.
        """
        self._db = db
        self.collection_name = collection_name or settings.records_collection

    @property
    def db(self):
        """Get Firestore client (lazy initialization)."""
        if self._db is None:
            self._db = firestore.client()
        return self._db

    @property
    def collection(self):
        return self.db.collection(self.collection_name)

    async def _maybe_await(self, result: Any) -> Any:
        """Await result if it is awaitable (supports AsyncMock in unit tests)."""
        if inspect.isawaitable(result):
            return await result
        return result

    def _doc_ref(self, item_or_pk, sk: Optional[str] = None):
        if isinstance(item_or_pk, dict):
            return self.collection.document(record_id(item_or_pk["PK"], item_or_pk["SK"]))
        return self.collection.document(record_id(item_or_pk, sk))

    async def get(self, pk: str, sk: str) -> Optional[Dict[str, Any]]:
        try:
            doc = await self._maybe_await(self._doc_ref(pk, sk).get())
            if doc.exists:
                return doc.to_dict()
            return None
        except Exception as e:
            logger.error("document_get_failed", pk=pk, sk=sk, error=str(e))
            raise DocumentStoreError(
                code=ErrorCode.DOCUMENT_STORE_ERROR,
                message=f"Failed to get record: {str(e)}",
                operation="get",
                details={"pk": pk, "sk": sk}
            )

    async def put(self, item: Dict[str, Any]) -> None:
        try:
            await self._maybe_await(self._doc_ref(item).set(item))
            logger.info("document_put", pk=item["PK"], sk=item["SK"])
        except Exception as e:
            logger.error("document_put_failed", pk=item.get("PK"), sk=item.get("SK"), error=str(e))
            raise DocumentStoreError(
                code=ErrorCode.DOCUMENT_STORE_WRITE_FAILED,
                message=f"Failed to write record: {str(e)}",
                operation="put",
                details={"pk": item.get("PK"), "sk": item.get("SK")}
            )

    async def put_if_absent(self, item: Dict[str, Any]) -> bool:
        """Uses Firestore ``create()``, which fails if the document exists."""
        try:
            await self._maybe_await(self._doc_ref(item).create(item))
            logger.info("document_created", pk=item["PK"], sk=item["SK"])
            return True
        except AlreadyExists:
            logger.info("document_already_exists", pk=item["PK"], sk=item["SK"])
            return False
        except Exception as e:
            logger.error("document_create_failed", pk=item.get("PK"), sk=item.get("SK"), error=str(e))
            raise DocumentStoreError(
                code=ErrorCode.DOCUMENT_STORE_WRITE_FAILED,
                message=f"Failed to create record: {str(e)}",
                operation="put_if_absent",
                details={"pk": item.get("PK"), "sk": item.get("SK")}
            )

    def _prefix_query(self, key_field: str, key: str, sort_field: str, prefix: Optional[str]):
        query = self.collection.where(filter=FieldFilter(key_field, "==", key))
        if prefix:
            query = (
                query
                .where(filter=FieldFilter(sort_field, ">=", prefix))
                .where(filter=FieldFilter(sort_field, "<", prefix + PREFIX_SENTINEL))
            )
        return query.order_by(sort_field)

    async def _run(self, query, operation: str, details: Dict[str, Any]) -> List[Dict[str, Any]]:
        try:
            docs = query.stream()
            return [doc.to_dict() or {} for doc in docs]
        except Exception as e:
            logger.error("document_query_failed", operation=operation, error=str(e), **details)
            raise DocumentStoreError(
                code=ErrorCode.DOCUMENT_STORE_ERROR,
                message=f"Failed to query records: {str(e)}",
                operation=operation,
                details=details
            )

    async def query_by_partition_prefix(self, pk: str, sk_prefix: str = "") -> List[Dict[str, Any]]:
        query = self._prefix_query("PK", pk, "SK", sk_prefix)
        return await self._run(query, "query_by_partition_prefix", {"pk": pk, "sk_prefix": sk_prefix})

    async def query_by_index(
        self,
        index_name: str,
        key: str,
        sort_prefix: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        query = self._prefix_query(f"{index_name}PK", key, f"{index_name}SK", sort_prefix)
        return await self._run(
            query,
            "query_by_index",
            {"index": index_name, "key": key, "sort_prefix": sort_prefix}
        )
