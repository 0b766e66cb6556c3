"""Document store access.

The pipeline only needs four operations, captured by the ``ListingStore``
protocol so the Mongo implementation and the in-memory one used by tests and
dry runs are interchangeable. Filters use the Mongo vocabulary, limited to
equality on ``relativeLink`` / ``applyLink`` / ``source`` and ``$gte``/``$lt``
ranges on ``createdAt``.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Protocol

from pymongo import ASCENDING, AsyncMongoClient
from pymongo.errors import DuplicateKeyError, PyMongoError

from .errors import DuplicateListingError, StoreError, StoreUnavailableError
from .models import ListingRecord

logger = logging.getLogger(__name__)

COLLECTION_NAME = "jobs"
UNIQUE_SPARSE_FIELDS = ("relativeLink", "slug")


class ListingStore(Protocol):
    """Protocol for listing persistence."""

    async def find_one(self, filter: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        ...

    async def save(self, record: ListingRecord) -> None:
        """Insert a new record.

        Raises:
            DuplicateListingError: A unique index (relativeLink, slug) was violated.
            StoreError: Any other store failure.
        """
        ...

    async def find(self, projection: Mapping[str, Any]) -> List[Dict[str, Any]]:
        ...

    async def delete_many(self, filter: Mapping[str, Any]) -> int:
        ...


def _matches(doc: Mapping[str, Any], filter: Mapping[str, Any]) -> bool:
    for field, expected in filter.items():
        actual = doc.get(field)
        if isinstance(expected, Mapping):
            for op, bound in expected.items():
                if actual is None:
                    return False
                if op == "$gte" and not actual >= bound:
                    return False
                if op == "$lt" and not actual < bound:
                    return False
                if op not in ("$gte", "$lt"):
                    raise StoreError(f"Unsupported filter operator: {op}")
        elif actual != expected:
            return False
    return True


class InMemoryListingStore:
    """Store kept in a dict, enforcing the same sparse unique indexes as Mongo."""

    def __init__(self, documents: Optional[List[Dict[str, Any]]] = None) -> None:
        self.documents: Dict[str, Dict[str, Any]] = {}
        for doc in documents or []:
            self.documents[str(doc["_id"])] = dict(doc)

    async def find_one(self, filter: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        for doc in self.documents.values():
            if _matches(doc, filter):
                return dict(doc)
        return None

    async def save(self, record: ListingRecord) -> None:
        doc = record.to_document()
        if doc["_id"] in self.documents:
            raise DuplicateListingError(f"Duplicate _id: {doc['_id']}")
        for field in UNIQUE_SPARSE_FIELDS:
            value = doc.get(field)
            if value is None:
                continue
            if any(other.get(field) == value for other in self.documents.values()):
                raise DuplicateListingError(f"Duplicate {field}: {value}")
        self.documents[doc["_id"]] = doc

    async def find(self, projection: Mapping[str, Any]) -> List[Dict[str, Any]]:
        fields = [f for f, include in projection.items() if include]
        return [
            {"_id": doc["_id"], **{f: doc[f] for f in fields if f in doc}}
            for doc in self.documents.values()
        ]

    async def delete_many(self, filter: Mapping[str, Any]) -> int:
        doomed = [key for key, doc in self.documents.items() if _matches(doc, filter)]
        for key in doomed:
            del self.documents[key]
        return len(doomed)


class MongoListingStore:
    """MongoDB-backed store using the pymongo asyncio client."""

    def __init__(self, client: AsyncMongoClient, database: str, collection: str = COLLECTION_NAME):
        self._client = client
        self._collection = client[database][collection]

    @classmethod
    async def connect(
        cls,
        uri: Optional[str],
        database: str,
        collection: str = COLLECTION_NAME,
        timeout_ms: int = 10000,
    ) -> "MongoListingStore":
        """Connect, verify the server answers, and ensure indexes exist.

        Raises:
            StoreUnavailableError: Missing URI, unreachable server, or the
                unique indexes cannot be built (e.g. duplicates already stored).
        """
        if not uri:
            raise StoreUnavailableError("MONGODB_URI is not configured")
        client: AsyncMongoClient = AsyncMongoClient(
            uri, serverSelectionTimeoutMS=timeout_ms, tz_aware=True
        )
        try:
            await client.admin.command("ping")
        except PyMongoError as e:
            await client.close()
            raise StoreUnavailableError(f"MongoDB connection failed: {e}") from e

        store = cls(client, database, collection)
        try:
            await store.ensure_indexes()
        except PyMongoError as e:
            await client.close()
            raise StoreUnavailableError(f"Could not create indexes on '{collection}': {e}") from e
        logger.info(f"Connected to MongoDB database '{database}'")
        return store

    async def ensure_indexes(self) -> None:
        for field in UNIQUE_SPARSE_FIELDS:
            await self._collection.create_index([(field, ASCENDING)], unique=True, sparse=True)

    async def close(self) -> None:
        await self._client.close()

    async def find_one(self, filter: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        try:
            return await self._collection.find_one(dict(filter))
        except PyMongoError as e:
            raise StoreError(f"find_one failed: {e}") from e

    async def save(self, record: ListingRecord) -> None:
        try:
            await self._collection.insert_one(record.to_document())
        except DuplicateKeyError as e:
            raise DuplicateListingError(str(e)) from e
        except PyMongoError as e:
            raise StoreError(f"insert failed: {e}") from e

    async def find(self, projection: Mapping[str, Any]) -> List[Dict[str, Any]]:
        try:
            cursor = self._collection.find({}, dict(projection))
            return await cursor.to_list(None)
        except PyMongoError as e:
            raise StoreError(f"find failed: {e}") from e

    async def delete_many(self, filter: Mapping[str, Any]) -> int:
        try:
            result = await self._collection.delete_many(dict(filter))
        except PyMongoError as e:
            raise StoreError(f"delete_many failed: {e}") from e
        return result.deleted_count
