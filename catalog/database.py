"""
MongoDB database utilities for async operations.
Handles connection, indexing, and health checks for the review service.
"""

from typing import Any, Dict, Iterable, List, Optional

import structlog
from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import ConnectionFailure

logger = structlog.get_logger(__name__)

USERS_COLLECTION = "users"
BOOKS_COLLECTION = "books"
REVIEWS_COLLECTION = "reviews"
OTPS_COLLECTION = "otps"


class MongoDBManager:
    """
    Async MongoDB manager holding the single long-lived client.
    Safe to share between concurrent requests.
    """

    def __init__(self, connection_url: str, database_name: str):
        """
        Initialize MongoDB manager.

        Args:
            connection_url: MongoDB connection URL
            database_name: Name of the database
        """
        self.connection_url = connection_url
        self.database_name = database_name
        self.client: Optional[AsyncIOMotorClient] = None
        self.database: Optional[AsyncIOMotorDatabase] = None

    async def connect(self) -> None:
        """Establish connection to MongoDB and ensure indexes exist."""
        if self.client is not None:
            logger.debug("MongoDB client already connected", database=self.database_name)
            return

        try:
            self.client = AsyncIOMotorClient(self.connection_url)
            self.database = self.client[self.database_name]

            # Test connection
            await self.client.admin.command("ping")
            logger.info("Successfully connected to MongoDB", database=self.database_name)

            await self._create_indexes()

        except ConnectionFailure as e:
            logger.error("Failed to connect to MongoDB", error=str(e))
            self.client = None
            self.database = None
            raise

    async def disconnect(self) -> None:
        """Close MongoDB connection."""
        if self.client:
            self.client.close()
            self.client = None
            self.database = None
            logger.info("Disconnected from MongoDB")

    @property
    def users(self) -> AsyncIOMotorCollection:
        return self.database[USERS_COLLECTION]

    @property
    def books(self) -> AsyncIOMotorCollection:
        return self.database[BOOKS_COLLECTION]

    @property
    def reviews(self) -> AsyncIOMotorCollection:
        return self.database[REVIEWS_COLLECTION]

    @property
    def otps(self) -> AsyncIOMotorCollection:
        return self.database[OTPS_COLLECTION]

    async def _create_indexes(self) -> None:
        """
        Create indexes for uniqueness rules and the listing query patterns.
        """
        try:
            # One account per normalized email
            await self.users.create_index("email", unique=True)

            # Listing filters and sorts
            await self.books.create_index("addedBy")
            await self.books.create_index([("createdAt", DESCENDING)])
            await self.books.create_index("year")
            await self.books.create_index("genre")

            # At most one review per (book, author), enforced by the server
            await self.reviews.create_index(
                [("bookId", ASCENDING), ("userId", ASCENDING)],
                unique=True,
                name="bookId_userId_unique",
            )
            await self.reviews.create_index("userId")

            # Expired one-time codes are removed by MongoDB itself
            await self.otps.create_index("expiresAt", expireAfterSeconds=0)

            logger.info("Successfully created MongoDB indexes")

        except Exception as e:
            logger.error("Failed to create indexes", error=str(e))
            raise

    async def health_check(self) -> Dict[str, Any]:
        """
        Perform database health check.

        Returns:
            Dictionary with health status
        """
        try:
            await self.database.command("ping")

            return {
                "status": "healthy",
                "users_count": await self.users.count_documents({}),
                "books_count": await self.books.count_documents({}),
                "reviews_count": await self.reviews.count_documents({}),
            }
        except Exception as e:
            logger.error("Database health check failed", error=str(e))
            return {
                "status": "unhealthy",
                "error": str(e),
            }


async def attach_references(
    documents: List[Dict[str, Any]],
    field: str,
    collection: AsyncIOMotorCollection,
    fields: Iterable[str],
) -> List[Dict[str, Any]]:
    """
    Replace an ObjectId reference field with the referenced document.

    Only `fields` (plus `_id`) of the referenced document are fetched, in a
    single query for the whole batch. References that no longer resolve
    become None.

    Args:
        documents: Documents to update in place
        field: Name of the reference field
        collection: Collection the references point into
        fields: Fields to keep from each referenced document

    Returns:
        The same list of documents
    """
    ids = {doc.get(field) for doc in documents if isinstance(doc.get(field), ObjectId)}
    if not ids:
        return documents

    projection = {name: 1 for name in fields}
    cursor = collection.find({"_id": {"$in": list(ids)}}, projection)
    referenced = {doc["_id"]: doc for doc in await cursor.to_list(length=None)}

    for doc in documents:
        doc[field] = referenced.get(doc.get(field))
    return documents
