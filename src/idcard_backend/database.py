"""
Document store access for ID-card requests.

This module wraps the document database the portal writes to. It exposes a
small collection-scoped API (list, find by id, insert, delete by id, exists)
with two backends:

- ``MongoDocumentStore``: motor (async MongoDB driver), used in production
- ``InMemoryDocumentStore``: dictionaries, used for local development and tests

Driver errors never leak out of this module; they are re-raised as
``StoreError`` (or ``StoreTimeout`` when the server gave up on a query).
"""

from __future__ import annotations

import asyncio
import base64
import copy
import logging
import uuid
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager, contextmanager
from datetime import date, datetime
from typing import Any, AsyncIterator, Dict, Iterator, List, Optional

from bson import Decimal128, ObjectId, json_util
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import ExecutionTimeout, NetworkTimeout, PyMongoError

from .configuration import Settings
from .models import FACULTY_COLLECTION, Document

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Raised when the document store cannot complete an operation."""


class StoreTimeout(StoreError):
    """Raised when a store operation exceeded its time budget."""


def id_candidates(doc_id: str) -> List[Any]:
    """
    Return the ``_id`` values a path identifier may refer to.

    Records created through the portal carry ObjectIds, but documents inserted
    by hand may use plain strings, so both forms are matched.
    """
    candidates: List[Any] = [doc_id]
    if ObjectId.is_valid(doc_id):
        candidates.insert(0, ObjectId(doc_id))
    return candidates


def serialize_value(value: Any) -> Any:
    """
    Convert BSON-specific values into JSON-compatible ones.

    ObjectIds, Decimal128 and UUIDs become strings, datetimes ISO-8601
    strings and binary payloads base64 text. Anything else the JSON encoder
    cannot handle is rendered as MongoDB relaxed extended JSON.
    """
    if value is None or isinstance(value, (str, bool, int, float)):
        return value
    if isinstance(value, (ObjectId, Decimal128, uuid.UUID)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, bytes):
        # bson.Binary is a bytes subclass
        return base64.b64encode(value).decode("ascii")
    if isinstance(value, dict):
        return {key: serialize_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [serialize_value(item) for item in value]
    try:
        return serialize_value(json_util.default(value, json_options=json_util.RELAXED_JSON_OPTIONS))
    except (TypeError, ValueError):
        return str(value)


def serialize_documents(documents: List[Document]) -> List[Document]:
    return [serialize_value(document) for document in documents]


class DocumentStore(ABC):
    """Collection-scoped access to a document database."""

    @abstractmethod
    async def open(self) -> None:
        """Connect and verify the store is reachable."""

    @abstractmethod
    async def close(self) -> None:
        """Release connections."""

    @abstractmethod
    async def ensure_indexes(self) -> None:
        """Create the indexes the service relies on."""

    @abstractmethod
    async def find_all(self, collection: str) -> List[Document]:
        """Return every document in ``collection``."""

    @abstractmethod
    async def find_by_id(self, collection: str, doc_id: str, session: Any = None) -> Optional[Document]:
        """Return the document whose ``_id`` matches ``doc_id``, or None."""

    @abstractmethod
    async def insert_one(self, collection: str, document: Document, session: Any = None) -> Any:
        """Insert ``document`` and return its store-assigned ``_id``."""

    @abstractmethod
    async def delete_by_id(self, collection: str, doc_id: Any, session: Any = None) -> bool:
        """Delete the document with the exact ``_id`` value ``doc_id``."""

    @abstractmethod
    async def exists(self, collection: str, query: Dict[str, Any], max_time_ms: Optional[int] = None) -> bool:
        """Return True if any document in ``collection`` matches ``query``."""

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[Any]:
        """
        Group writes into a single unit.

        The default implementation yields no session, meaning every write
        applies on its own.
        """
        yield None


@contextmanager
def _store_errors(action: str) -> Iterator[None]:
    try:
        yield
    except (ExecutionTimeout, NetworkTimeout) as exc:
        raise StoreTimeout(f"Timed out while {action}: {exc}") from exc
    except PyMongoError as exc:
        raise StoreError(f"Store failure while {action}: {exc}") from exc


class MongoDocumentStore(DocumentStore):
    """
    MongoDB-backed store using motor.

    The client is created in ``open()``. If the initial ping fails, the client
    is kept so later requests can succeed once the server becomes reachable.
    """

    def __init__(
        self,
        connection_url: str,
        database_name: Optional[str] = None,
        max_pool_size: int = 10,
        server_selection_timeout_ms: int = 5000,
        socket_timeout_ms: int = 45000,
        use_transactions: bool = False,
    ) -> None:
        self._connection_url = connection_url
        self._database_name = database_name
        self._max_pool_size = max_pool_size
        self._server_selection_timeout_ms = server_selection_timeout_ms
        self._socket_timeout_ms = socket_timeout_ms
        self.use_transactions = use_transactions
        self._client: Optional[AsyncIOMotorClient] = None

    @property
    def _database(self):
        if self._client is None:
            raise StoreError("MongoDB client not initialized")
        if self._database_name:
            return self._client[self._database_name]
        return self._client.get_default_database(default="test")

    async def open(self) -> None:
        if self._client is None:
            try:
                self._client = AsyncIOMotorClient(
                    self._connection_url,
                    maxPoolSize=self._max_pool_size,
                    serverSelectionTimeoutMS=self._server_selection_timeout_ms,
                    socketTimeoutMS=self._socket_timeout_ms,
                )
            except (PyMongoError, ValueError) as exc:
                raise StoreError(f"Invalid MongoDB connection URL: {exc}") from exc

        with _store_errors("connecting to MongoDB"):
            await self._client.admin.command("ping")
        logger.info(f"MongoDB connected (database={self._database.name})")

    async def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
            logger.info("MongoDB connection closed")

    async def ensure_indexes(self) -> None:
        with _store_errors(f"creating indexes on {FACULTY_COLLECTION}"):
            await self._database[FACULTY_COLLECTION].create_index("facNumber", unique=True)

    async def find_all(self, collection: str) -> List[Document]:
        with _store_errors(f"reading {collection}"):
            return await self._database[collection].find({}).to_list(length=None)

    async def find_by_id(self, collection: str, doc_id: str, session: Any = None) -> Optional[Document]:
        with _store_errors(f"looking up {doc_id} in {collection}"):
            return await self._database[collection].find_one(
                {"_id": {"$in": id_candidates(doc_id)}}, session=session
            )

    async def insert_one(self, collection: str, document: Document, session: Any = None) -> Any:
        # insert_one sets _id on the dict it is given
        payload = dict(document)
        with _store_errors(f"inserting into {collection}"):
            result = await self._database[collection].insert_one(payload, session=session)
        return result.inserted_id

    async def delete_by_id(self, collection: str, doc_id: Any, session: Any = None) -> bool:
        with _store_errors(f"deleting {doc_id} from {collection}"):
            result = await self._database[collection].delete_one({"_id": doc_id}, session=session)
        return result.deleted_count > 0

    async def exists(self, collection: str, query: Dict[str, Any], max_time_ms: Optional[int] = None) -> bool:
        options: Dict[str, Any] = {}
        if max_time_ms is not None:
            options["max_time_ms"] = max_time_ms
        with _store_errors(f"querying {collection}"):
            found = await self._database[collection].find_one(query, {"_id": 1}, **options)
        return found is not None

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[Any]:
        if not self.use_transactions:
            yield None
            return
        if self._client is None:
            raise StoreError("MongoDB client not initialized")
        # Requires a replica set or sharded cluster.
        with _store_errors("running transaction"):
            async with await self._client.start_session() as session:
                async with session.start_transaction():
                    yield session


class InMemoryDocumentStore(DocumentStore):
    """
    Dictionary-backed store with the same semantics as the Mongo store.

    Documents are deep-copied on the way in and out so callers never share
    state with the store. Writes are serialized with an ``asyncio.Lock``.
    """

    def __init__(self) -> None:
        self._collections: Dict[str, List[Document]] = {}
        self._unique_fields: Dict[str, List[str]] = {}
        self._write_lock = asyncio.Lock()

    def clear(self) -> None:
        self._collections.clear()

    async def open(self) -> None:
        logger.info("Using in-memory document store")

    async def close(self) -> None:
        pass

    async def ensure_indexes(self) -> None:
        self._unique_fields.setdefault(FACULTY_COLLECTION, [])
        if "facNumber" not in self._unique_fields[FACULTY_COLLECTION]:
            self._unique_fields[FACULTY_COLLECTION].append("facNumber")
        seen = set()
        for document in self._collections.get(FACULTY_COLLECTION, []):
            value = document.get("facNumber")
            if value in seen:
                raise StoreError(f"Duplicate facNumber {value!r} in {FACULTY_COLLECTION}")
            seen.add(value)

    async def find_all(self, collection: str) -> List[Document]:
        return copy.deepcopy(self._collections.get(collection, []))

    async def find_by_id(self, collection: str, doc_id: str, session: Any = None) -> Optional[Document]:
        candidates = id_candidates(doc_id)
        for document in self._collections.get(collection, []):
            if document.get("_id") in candidates:
                return copy.deepcopy(document)
        return None

    async def insert_one(self, collection: str, document: Document, session: Any = None) -> Any:
        payload = copy.deepcopy(document)
        payload.setdefault("_id", ObjectId())
        async with self._write_lock:
            documents = self._collections.setdefault(collection, [])
            if any(existing.get("_id") == payload["_id"] for existing in documents):
                raise StoreError(f"Duplicate _id {payload['_id']} in {collection}")
            for field in self._unique_fields.get(collection, []):
                if any(existing.get(field) == payload.get(field) for existing in documents):
                    raise StoreError(f"Duplicate {field} {payload.get(field)!r} in {collection}")
            documents.append(payload)
        return payload["_id"]

    async def delete_by_id(self, collection: str, doc_id: Any, session: Any = None) -> bool:
        async with self._write_lock:
            documents = self._collections.get(collection, [])
            for index, document in enumerate(documents):
                if document.get("_id") == doc_id:
                    del documents[index]
                    return True
        return False

    async def exists(self, collection: str, query: Dict[str, Any], max_time_ms: Optional[int] = None) -> bool:
        return any(
            all(document.get(key) == value for key, value in query.items())
            for document in self._collections.get(collection, [])
        )


def create_store(settings: Settings) -> DocumentStore:
    """Build the store selected by ``STORE_BACKEND``."""
    if settings.store_backend == "memory":
        return InMemoryDocumentStore()
    if settings.store_backend != "mongo":
        raise ValueError(f"Unknown STORE_BACKEND: {settings.store_backend!r}")
    return MongoDocumentStore(
        settings.mongo_uri,
        database_name=settings.mongo_db_name,
        max_pool_size=settings.max_pool_size,
        server_selection_timeout_ms=settings.server_selection_timeout_ms,
        socket_timeout_ms=settings.socket_timeout_ms,
        use_transactions=settings.use_transactions,
    )
