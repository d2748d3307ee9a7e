"""
MongoDB access layer for the catalog.
Handles connection, indexing, transactions, id-keyed CRUD, back-reference
array updates and reference expansion (populate).
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

import structlog
from bson import ObjectId
from motor.motor_asyncio import (
    AsyncIOMotorClient,
    AsyncIOMotorClientSession,
    AsyncIOMotorDatabase,
)
from pymongo import ReturnDocument
from pymongo.errors import ConnectionFailure

from .models import AUTHORS, BOOKS, CATEGORIES, unique_ids

logger = structlog.get_logger(__name__)

Document = Dict[str, Any]
Session = Optional[AsyncIOMotorClientSession]


class CatalogDatabase:
    """
    Async MongoDB handle for the authors, categories and books collections.

    One instance is created at application startup and passed to the services
    that need it. Every read and write accepts an optional ``session`` so a
    sequence of calls can run inside :meth:`transaction`.
    """

    def __init__(self, connection_url: str, database_name: str, use_transactions: bool = True):
        """
        Initialize the database handle.

        Args:
            connection_url: MongoDB connection URL
            database_name: Name of the database
            use_transactions: Run multi-document writes in a transaction when
                the server supports it
        """
        self.connection_url = connection_url
        self.database_name = database_name
        self.use_transactions = use_transactions
        self.transactions_enabled = False
        self.client: Optional[AsyncIOMotorClient] = None
        self.database: Optional[AsyncIOMotorDatabase] = None

    async def connect(self) -> None:
        """Establish connection to MongoDB and prepare indexes."""
        try:
            self.client = AsyncIOMotorClient(self.connection_url)
            self.database = self.client[self.database_name]

            hello = await self.client.admin.command("hello")
            logger.info("Successfully connected to MongoDB", database=self.database_name)

        except ConnectionFailure as e:
            logger.error("Failed to connect to MongoDB", error=str(e))
            raise

        # Multi-document transactions need a replica set or a mongos router
        server_supports_transactions = "setName" in hello or hello.get("msg") == "isdbgrid"
        self.transactions_enabled = self.use_transactions and server_supports_transactions
        if self.use_transactions and not server_supports_transactions:
            logger.warning(
                "MongoDB server is standalone; relationship updates will run without transactions",
                database=self.database_name,
            )

        await self._create_indexes()

    async def disconnect(self) -> None:
        """Close MongoDB connection."""
        if self.client:
            self.client.close()
            self.client = None
            self.database = None
            logger.info("Disconnected from MongoDB")

    async def _create_indexes(self) -> None:
        """Create indexes for the lookups the services perform."""
        try:
            # Reverse lookups from authors and categories to their books
            await self.database[BOOKS].create_index("author")
            await self.database[BOOKS].create_index("categories")

            await self.database[AUTHORS].create_index("name")
            await self.database[CATEGORIES].create_index("name")

            logger.info("Successfully created MongoDB indexes")

        except Exception as e:
            logger.error("Failed to create indexes", error=str(e))
            raise

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[Session]:
        """
        Run the enclosed calls in one multi-document transaction.

        Yields the session to pass to every call. When transactions are
        disabled the block runs with ``None`` and each write commits on its own.
        """
        if not self.transactions_enabled:
            yield None
            return

        async with await self.client.start_session() as session:
            async with session.start_transaction():
                yield session

    # ── Reads ─────────────────────────────────────────────────────────────

    async def find_all(
        self,
        collection: str,
        projection: Optional[Sequence[str]] = None,
        session: Session = None,
    ) -> List[Document]:
        """Return every document of a collection in natural order."""
        cursor = self.database[collection].find({}, _projection(projection), session=session)
        return await cursor.to_list(length=None)

    async def find_by_id(
        self,
        collection: str,
        document_id: ObjectId,
        projection: Optional[Sequence[str]] = None,
        session: Session = None,
    ) -> Optional[Document]:
        """Return one document by ``_id`` or None."""
        return await self.database[collection].find_one(
            {"_id": document_id}, _projection(projection), session=session
        )

    async def find_by_ids(
        self,
        collection: str,
        document_ids: Sequence[ObjectId],
        projection: Optional[Sequence[str]] = None,
        session: Session = None,
    ) -> List[Document]:
        """Return the documents whose ``_id`` is in ``document_ids`` (missing ids are skipped)."""
        if not document_ids:
            return []
        cursor = self.database[collection].find(
            {"_id": {"$in": list(document_ids)}}, _projection(projection), session=session
        )
        return await cursor.to_list(length=None)

    async def count_referencing(
        self,
        collection: str,
        field: str,
        value: ObjectId,
        session: Session = None,
    ) -> int:
        """Count documents whose ``field`` equals (or, for arrays, contains) ``value``."""
        return await self.database[collection].count_documents({field: value}, session=session)

    # ── Writes ────────────────────────────────────────────────────────────

    async def insert(self, collection: str, document: Document, session: Session = None) -> Document:
        """Insert a document and return it with its new ``_id``."""
        document = dict(document)
        result = await self.database[collection].insert_one(document, session=session)
        document["_id"] = result.inserted_id
        logger.debug("Inserted document", collection=collection, document_id=str(result.inserted_id))
        return document

    async def update_by_id(
        self,
        collection: str,
        document_id: ObjectId,
        fields: Document,
        session: Session = None,
    ) -> Optional[Document]:
        """Set ``fields`` on one document and return it after the update, or None if absent."""
        return await self.database[collection].find_one_and_update(
            {"_id": document_id},
            {"$set": fields},
            return_document=ReturnDocument.AFTER,
            session=session,
        )

    async def delete_by_id(
        self,
        collection: str,
        document_id: ObjectId,
        session: Session = None,
    ) -> Optional[Document]:
        """Delete one document and return it, or None if absent."""
        return await self.database[collection].find_one_and_delete(
            {"_id": document_id}, session=session
        )

    async def add_to_set(
        self,
        collection: str,
        document_ids: Sequence[ObjectId],
        field: str,
        value: ObjectId,
        session: Session = None,
    ) -> int:
        """Add ``value`` to the ``field`` array of each document unless already present."""
        if not document_ids:
            return 0
        result = await self.database[collection].update_many(
            {"_id": {"$in": list(document_ids)}},
            {"$addToSet": {field: value}},
            session=session,
        )
        return result.modified_count

    async def pull(
        self,
        collection: str,
        document_ids: Sequence[ObjectId],
        field: str,
        value: ObjectId,
        session: Session = None,
    ) -> int:
        """Remove every occurrence of ``value`` from the ``field`` array of each document."""
        if not document_ids:
            return 0
        result = await self.database[collection].update_many(
            {"_id": {"$in": list(document_ids)}},
            {"$pull": {field: value}},
            session=session,
        )
        return result.modified_count

    async def pull_everywhere(
        self,
        collection: str,
        field: str,
        value: ObjectId,
        session: Session = None,
    ) -> int:
        """Remove ``value`` from the ``field`` array of every document that contains it."""
        result = await self.database[collection].update_many(
            {field: value},
            {"$pull": {field: value}},
            session=session,
        )
        return result.modified_count

    # ── Reference expansion ───────────────────────────────────────────────

    async def populate(
        self,
        documents: List[Document],
        field: str,
        collection: str,
        projection: Optional[Sequence[str]] = None,
        session: Session = None,
    ) -> List[Document]:
        """
        Replace the ids stored in ``field`` with the documents they point to.

        ``field`` may hold a single id or an array of ids. Array order is kept
        and ids without a document are dropped; a single dangling id becomes
        None. The input documents are not modified.
        """
        referenced_ids = []
        for document in documents:
            value = document.get(field)
            if isinstance(value, list):
                referenced_ids.extend(value)
            elif value is not None:
                referenced_ids.append(value)

        referenced = await self.find_by_ids(
            collection, unique_ids(referenced_ids), projection, session=session
        )
        by_id = {item["_id"]: item for item in referenced}

        expanded = []
        for document in documents:
            copy = dict(document)
            value = document.get(field)
            if isinstance(value, list):
                copy[field] = [by_id[item] for item in value if item in by_id]
            elif value is not None:
                copy[field] = by_id.get(value)
            expanded.append(copy)
        return expanded

    # ── Monitoring ────────────────────────────────────────────────────────

    async def get_stats(self) -> Dict[str, int]:
        """Document counts per collection."""
        return {
            "authors": await self.database[AUTHORS].count_documents({}),
            "categories": await self.database[CATEGORIES].count_documents({}),
            "books": await self.database[BOOKS].count_documents({}),
        }

    async def health_check(self) -> Dict[str, Any]:
        """
        Perform database health check.

        Returns:
            Dictionary with health status
        """
        try:
            await self.database.command("ping")
            stats = await self.get_stats()
            return {
                "status": "healthy",
                "transactions": self.transactions_enabled,
                **stats,
            }
        except Exception as e:
            logger.error("Database health check failed", error=str(e))
            return {
                "status": "unhealthy",
                "error": str(e)
            }


def _projection(fields: Optional[Sequence[str]]) -> Optional[Dict[str, int]]:
    if not fields:
        return None
    return {field: 1 for field in fields}
