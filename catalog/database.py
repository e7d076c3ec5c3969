"""
MongoDB connection and index management for the catalog collections.
"""

from typing import Optional
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase, AsyncIOMotorCollection
from pymongo import ASCENDING, TEXT
from pymongo.errors import ConnectionFailure, PyMongoError
import structlog

logger = structlog.get_logger(__name__)


class MongoDBManager:
    """
    Async MongoDB manager for the books, reviews and counters collections.
    Handles connection and indexing.
    """

    def __init__(
        self,
        connection_url: str,
        database_name: str,
        books_collection: str = "books",
        reviews_collection: str = "reviews",
        counters_collection: str = "counters",
    ):
        """
        Initialize MongoDB manager.

        Args:
            connection_url: MongoDB connection URL
            database_name: Name of the database
            books_collection: Name of the books collection
            reviews_collection: Name of the reviews collection
            counters_collection: Name of the counters collection
        """
        self.connection_url = connection_url
        self.database_name = database_name
        self.books_collection_name = books_collection
        self.reviews_collection_name = reviews_collection
        self.counters_collection_name = counters_collection
        self.client: Optional[AsyncIOMotorClient] = None
        self.database: Optional[AsyncIOMotorDatabase] = None

    @property
    def books(self) -> AsyncIOMotorCollection:
        return self.database[self.books_collection_name]

    @property
    def reviews(self) -> AsyncIOMotorCollection:
        return self.database[self.reviews_collection_name]

    @property
    def counters(self) -> AsyncIOMotorCollection:
        return self.database[self.counters_collection_name]

    async def connect(self) -> None:
        """Establish connection to MongoDB and ensure indexes exist."""
        try:
            self.client = AsyncIOMotorClient(self.connection_url)
            self.database = self.client[self.database_name]

            # Test connection
            await self.client.admin.command('ping')
            logger.info("Successfully connected to MongoDB", database=self.database_name)

            await self.create_indexes()

        except ConnectionFailure as e:
            logger.error("Failed to connect to MongoDB", error=str(e))
            raise

    async def disconnect(self) -> None:
        """Close MongoDB connection."""
        if self.client:
            self.client.close()
            logger.info("Disconnected from MongoDB")

    async def create_indexes(self) -> None:
        """
        Create the indexes the engine relies on.

        The unique indexes are what reject duplicate sequential IDs, duplicate
        ISBNs and a second review by the same user for the same book.
        Counters are keyed by ``_id`` and need nothing extra.
        """
        try:
            await self.books.create_index("book_id", unique=True)
            await self.books.create_index("isbn", unique=True, sparse=True)
            await self.books.create_index([("title", TEXT), ("author", TEXT)])

            await self.reviews.create_index(
                [("book", ASCENDING), ("user", ASCENDING)], unique=True
            )
            await self.reviews.create_index([("book", ASCENDING), ("created_at", -1)])

            logger.info("Successfully created MongoDB indexes")

        except PyMongoError as e:
            logger.error("Failed to create indexes", error=str(e))
            raise
