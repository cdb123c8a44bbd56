"""
MongoDB connection management for the book review catalog.
Owns the client (connection pool) and the indexes that enforce uniqueness.
"""

from typing import Optional

import structlog
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase, AsyncIOMotorCollection
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import ConnectionFailure

logger = structlog.get_logger(__name__)

USERS_COLLECTION = "users"
BOOKS_COLLECTION = "books"
REVIEWS_COLLECTION = "reviews"


class MongoDBManager:
    """
    Async MongoDB manager.
    Handles connection, indexing and access to the users, books and reviews collections.
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

    @property
    def users(self) -> AsyncIOMotorCollection:
        return self.database[USERS_COLLECTION]

    @property
    def books(self) -> AsyncIOMotorCollection:
        return self.database[BOOKS_COLLECTION]

    @property
    def reviews(self) -> AsyncIOMotorCollection:
        return self.database[REVIEWS_COLLECTION]

    async def connect(self) -> None:
        """Establish connection to MongoDB and make sure the indexes exist."""
        try:
            self.client = AsyncIOMotorClient(self.connection_url, tz_aware=True)
            self.database = self.client[self.database_name]

            await self.client.admin.command("ping")
            logger.info("Successfully connected to MongoDB", database=self.database_name)

            await self._create_indexes()

        except ConnectionFailure as e:
            logger.error("Failed to connect to MongoDB", error=str(e))
            raise

    async def disconnect(self) -> None:
        """Close MongoDB connection."""
        if self.client:
            self.client.close()
            logger.info("Disconnected from MongoDB")

    async def _create_indexes(self) -> None:
        """
        Create indexes for the query patterns of the API.
        The unique ones are the only guard against concurrent duplicate inserts.
        """
        try:
            await self.users.create_index("email", unique=True)
            await self.users.create_index("username", unique=True)

            await self.books.create_index("isbn", unique=True)
            await self.books.create_index([("createdAt", DESCENDING)])
            await self.books.create_index("title")
            await self.books.create_index("author")
            await self.books.create_index("genre")

            # One review per user per book
            await self.reviews.create_index([("book", ASCENDING), ("user", ASCENDING)], unique=True)
            await self.reviews.create_index([("book", ASCENDING), ("createdAt", DESCENDING)])

            logger.info("Successfully created MongoDB indexes")

        except Exception as e:
            logger.error("Failed to create indexes", error=str(e))
            raise

    async def ping(self) -> bool:
        """Return True when the server answers a ping."""
        if self.database is None:
            return False
        try:
            await self.database.command("ping")
            return True
        except Exception as e:
            logger.warning("Database ping failed", error=str(e))
            return False
