"""
Database service layer for the FastAPI application.

Wires the catalog engine onto the Mongo collections and converts store
documents into API response models.
"""

from datetime import datetime
from typing import Any, Dict, Optional

import structlog
from motor.motor_asyncio import AsyncIOMotorDatabase

from api.models import (
    BookResponse, BookListResponse, BookDetailResponse,
    ReviewResponse, PaginationInfo
)
from catalog.books import BookService
from catalog.counters import SequenceAllocator
from catalog.models import BookCreate, ReviewCreate
from catalog.ratings import RatingAggregator
from catalog.resolver import BookResolver
from catalog.reviews import ReviewService
from utilities.config import config

logger = structlog.get_logger(__name__)


def _isoformat(value: Any) -> Optional[str]:
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def book_to_response(book_doc: Dict[str, Any]) -> BookResponse:
    """Convert a book document to its API representation."""
    return BookResponse(
        id=book_doc["book_id"],
        object_id=str(book_doc["_id"]),
        title=book_doc["title"],
        author=book_doc["author"],
        genre=book_doc["genre"],
        description=book_doc["description"],
        published_year=book_doc["published_year"],
        isbn=book_doc.get("isbn"),
        added_by=str(book_doc["added_by"]),
        average_rating=book_doc.get("average_rating", 0.0),
        review_count=book_doc.get("review_count", 0),
        created_at=_isoformat(book_doc.get("created_at")),
        updated_at=_isoformat(book_doc.get("updated_at")),
    )


def review_to_response(review_doc: Dict[str, Any]) -> ReviewResponse:
    """Convert a review document to its API representation."""
    return ReviewResponse(
        id=str(review_doc["_id"]),
        book=str(review_doc["book"]),
        book_id=review_doc["book_id"],
        user=str(review_doc["user"]),
        rating=review_doc["rating"],
        comment=review_doc["comment"],
        created_at=_isoformat(review_doc.get("created_at")),
        updated_at=_isoformat(review_doc.get("updated_at")),
    )


class APIDatabaseService:
    """Database service for API operations."""

    def __init__(self, database: AsyncIOMotorDatabase):
        self.database = database
        self.books_collection = database[config.books_collection]
        self.reviews_collection = database[config.reviews_collection]
        self.counters_collection = database[config.counters_collection]

        self.allocator = SequenceAllocator(self.counters_collection)
        self.resolver = BookResolver(self.books_collection)
        self.aggregator = RatingAggregator(self.reviews_collection, self.books_collection)
        self.books = BookService(
            self.books_collection,
            self.allocator,
            self.resolver,
            counter_name=config.book_counter_name,
        )
        self.reviews = ReviewService(self.reviews_collection, self.resolver, self.aggregator)

    async def create_book(self, data: BookCreate, user: str) -> BookResponse:
        book_doc = await self.books.create_book(data, added_by=user)
        return book_to_response(book_doc)

    async def get_books(
        self,
        author: Optional[str],
        genre: Optional[str],
        page: int,
        size: int
    ) -> BookListResponse:
        result = await self.books.list_books(author=author, genre=genre, page=page, size=size)
        return BookListResponse(
            books=[book_to_response(doc) for doc in result["books"]],
            pagination=PaginationInfo(**result["pagination"]),
        )

    async def search_books(self, query: str, page: int, size: int) -> BookListResponse:
        result = await self.books.search_books(query, page=page, size=size)
        return BookListResponse(
            books=[book_to_response(doc) for doc in result["books"]],
            pagination=PaginationInfo(**result["pagination"]),
            search_query=result["search_query"],
        )

    async def get_book_detail(self, raw_id: str, page: int, size: int) -> BookDetailResponse:
        """
        Get a single book and a page of its reviews.

        Args:
            raw_id: Sequential ID or ObjectId string

        Raises:
            NotFound: If the book does not exist
        """
        book_doc = await self.books.get_book(raw_id)
        result = await self.reviews.list_reviews(book_doc["_id"], page=page, size=size)
        return BookDetailResponse(
            book=book_to_response(book_doc),
            reviews=[review_to_response(doc) for doc in result["reviews"]],
            reviews_pagination=PaginationInfo(**result["pagination"]),
        )

    async def add_review(self, raw_book_id: str, user: str, data: ReviewCreate) -> ReviewResponse:
        review_doc = await self.reviews.add_review(raw_book_id, user, data)
        return review_to_response(review_doc)

    async def update_review(self, review_id: str, user: str, data: ReviewCreate) -> ReviewResponse:
        review_doc = await self.reviews.update_review(review_id, user, data)
        return review_to_response(review_doc)

    async def delete_review(self, review_id: str, user: str) -> None:
        await self.reviews.delete_review(review_id, user)

    async def health_check(self) -> Dict:
        """
        Perform database health check.

        Returns:
            Dictionary with health status
        """
        try:
            await self.database.command("ping")
            books_count = await self.books_collection.count_documents({})
            reviews_count = await self.reviews_collection.count_documents({})

            return {
                "status": "healthy",
                "books_count": books_count,
                "reviews_count": reviews_count
            }
        except Exception as e:
            logger.error("Database health check failed", error=str(e))
            return {
                "status": "unhealthy",
                "error": str(e)
            }
