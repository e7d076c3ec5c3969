"""
Book creation, listing and lookup.

A new book is numbered by the sequence allocator before it is written, so the
sequential ID is part of the initial insert and never backfilled.
"""

import re
from datetime import datetime
from typing import Any, Dict, List, Optional

import structlog
from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo.errors import DuplicateKeyError

from .counters import SequenceAllocator
from .exceptions import DuplicateBook
from .models import Book, BookCreate
from .pagination import page_window, pagination_info
from .resolver import BookResolver

logger = structlog.get_logger(__name__)


class BookService:
    """Operations on the books collection."""

    def __init__(
        self,
        books: AsyncIOMotorCollection,
        allocator: SequenceAllocator,
        resolver: BookResolver,
        counter_name: str = "book_id",
    ):
        self.books = books
        self.allocator = allocator
        self.resolver = resolver
        self.counter_name = counter_name

    async def create_book(self, data: BookCreate, added_by: str) -> Dict[str, Any]:
        """
        Number and insert a new book.

        Args:
            data: Validated book fields
            added_by: Reference of the creating user

        Returns:
            The inserted book document

        Raises:
            AllocationFailure: If no sequential ID could be issued; nothing is written
            DuplicateBook: If the ISBN is already taken
        """
        book_id = await self.allocator.allocate(self.counter_name)

        now = datetime.utcnow()
        book = Book(
            **data.model_dump(),
            book_id=book_id,
            added_by=added_by,
            created_at=now,
            updated_at=now,
        )
        # sparse unique index only skips documents without the field
        book_doc = book.model_dump(exclude_none=True)

        try:
            result = await self.books.insert_one(book_doc)
        except DuplicateKeyError as e:
            # book_id is spent; gaps in the sequence are acceptable
            key_pattern = (e.details or {}).get("keyPattern") or {}
            if "isbn" not in key_pattern:
                logger.error("Book insert hit unexpected unique key", book_id=book_id, error=str(e))
                raise
            logger.warning("Duplicate book rejected", book_id=book_id, isbn=book_doc.get("isbn"))
            raise DuplicateBook("isbn") from e

        book_doc["_id"] = result.inserted_id
        logger.info("Book created", book_id=book_id, book_key=str(result.inserted_id))
        return book_doc

    async def list_books(
        self,
        author: Optional[str] = None,
        genre: Optional[str] = None,
        page: int = 0,
        size: int = 10,
    ) -> Dict[str, Any]:
        """
        List books ordered by sequential ID with optional filters.

        Args:
            author: Case-insensitive author substring
            genre: Case-insensitive genre substring
            page: Zero-based page index
            size: Page size

        Returns:
            Dict with ``books`` and ``pagination``
        """
        filter_query: Dict[str, Any] = {}
        if author:
            filter_query["author"] = {"$regex": re.escape(author), "$options": "i"}
        if genre:
            filter_query["genre"] = {"$regex": re.escape(genre), "$options": "i"}

        books, pagination = await self._find_page(filter_query, page, size)
        return {"books": books, "pagination": pagination}

    async def search_books(self, query: str, page: int = 0, size: int = 10) -> Dict[str, Any]:
        """
        Search books by title or author.

        Raises:
            ValueError: If the query is empty
        """
        if not query or not query.strip():
            raise ValueError("Search query is required")

        pattern = {"$regex": re.escape(query.strip()), "$options": "i"}
        filter_query = {"$or": [{"title": pattern}, {"author": pattern}]}

        books, pagination = await self._find_page(filter_query, page, size)
        return {"books": books, "search_query": query, "pagination": pagination}

    async def get_book(self, raw_id: str) -> Dict[str, Any]:
        """
        Get a book by sequential ID or ObjectId.

        Raises:
            NotFound: If no book matches
        """
        return await self.resolver.resolve(raw_id)

    async def _find_page(self, filter_query: Dict[str, Any], page: int, size: int):
        skip, limit = page_window(page, size)
        cursor = self.books.find(filter_query).sort("book_id", 1).skip(skip).limit(limit)
        books: List[Dict[str, Any]] = await cursor.to_list(length=limit)
        total = await self.books.count_documents(filter_query)
        return books, pagination_info(page, limit, total)
