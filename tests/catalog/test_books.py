"""
Unit tests for book creation, listing and lookup.
"""

from unittest.mock import AsyncMock

import pytest
from bson import ObjectId
from pymongo.errors import ServerSelectionTimeoutError

from catalog.exceptions import AllocationFailure, DuplicateBook, NotFound
from catalog.models import BookCreate


def _book(title, author="Ursula K. Le Guin", genre="Science Fiction", isbn=None):
    return BookCreate(
        title=title,
        author=author,
        genre=genre,
        description="A description.",
        published_year=1970,
        isbn=isbn,
    )


class TestCreateBook:
    """Test cases for BookService.create_book."""

    @pytest.mark.asyncio
    async def test_create_assigns_sequential_id(self, book_service, books, book_data):
        book = await book_service.create_book(book_data, added_by="alice")

        assert book["book_id"] == 1
        assert isinstance(book["_id"], ObjectId)
        assert book["added_by"] == "alice"
        assert book["average_rating"] == 0.0
        assert book["review_count"] == 0
        assert books.docs[0]["book_id"] == 1

    @pytest.mark.asyncio
    async def test_id_is_part_of_initial_insert(self, book_service, books, book_data):
        """The book is written once, already numbered, never backfilled."""
        await book_service.create_book(book_data, added_by="alice")

        assert books.operations() == ["insert_one"]
        assert books.calls[0][1]["book_id"] == 1

    @pytest.mark.asyncio
    async def test_ids_increase(self, book_service):
        first = await book_service.create_book(_book("One"), added_by="alice")
        second = await book_service.create_book(_book("Two"), added_by="alice")

        assert (first["book_id"], second["book_id"]) == (1, 2)

    @pytest.mark.asyncio
    async def test_allocation_failure_writes_nothing(self, book_service, books, counters, book_data):
        counters.fail_on["find_one_and_update"] = ServerSelectionTimeoutError("no servers")

        with pytest.raises(AllocationFailure):
            await book_service.create_book(book_data, added_by="alice")

        assert books.docs == []
        assert "insert_one" not in books.operations()

    @pytest.mark.asyncio
    async def test_duplicate_isbn_leaves_gap(self, book_service, books):
        """A rejected insert consumes its ID; the next book skips it."""
        await book_service.create_book(_book("One", isbn="111"), added_by="alice")

        with pytest.raises(DuplicateBook):
            await book_service.create_book(_book("Copy", isbn="111"), added_by="bob")

        third = await book_service.create_book(_book("Three", isbn="333"), added_by="alice")
        assert third["book_id"] == 3
        assert [doc["book_id"] for doc in books.docs] == [1, 3]

    @pytest.mark.asyncio
    async def test_books_without_isbn_do_not_collide(self, book_service, books):
        await book_service.create_book(_book("One"), added_by="alice")
        await book_service.create_book(_book("Two"), added_by="alice")

        assert len(books.docs) == 2
        assert all("isbn" not in doc for doc in books.docs)

    @pytest.mark.asyncio
    async def test_uses_configured_counter(self, books, resolver):
        from catalog.books import BookService

        allocator = AsyncMock()
        allocator.allocate.return_value = 41
        service = BookService(books, allocator, resolver, counter_name="library_book")

        book = await service.create_book(_book("One"), added_by="alice")

        allocator.allocate.assert_awaited_once_with("library_book")
        assert book["book_id"] == 41


class TestListAndSearchBooks:
    """Test cases for listing, searching and fetching books."""

    @pytest.mark.asyncio
    async def test_list_sorted_by_sequential_id(self, book_service, make_book):
        make_book(3)
        make_book(1)
        make_book(2)

        result = await book_service.list_books(page=0, size=10)

        assert [b["book_id"] for b in result["books"]] == [1, 2, 3]
        assert result["pagination"]["total_items"] == 3
        assert result["pagination"]["total_pages"] == 1
        assert result["pagination"]["has_next"] is False

    @pytest.mark.asyncio
    async def test_list_filters_case_insensitive(self, book_service, make_book):
        make_book(1, author="Ursula K. Le Guin", genre="Science Fiction")
        make_book(2, author="Octavia Butler", genre="Science Fiction")
        make_book(3, author="Le Guin", genre="Fantasy")

        by_author = await book_service.list_books(author="le guin")
        by_both = await book_service.list_books(author="LE GUIN", genre="fantasy")

        assert [b["book_id"] for b in by_author["books"]] == [1, 3]
        assert [b["book_id"] for b in by_both["books"]] == [3]

    @pytest.mark.asyncio
    async def test_list_pagination(self, book_service, make_book):
        for book_id in range(1, 6):
            make_book(book_id)

        result = await book_service.list_books(page=1, size=2)

        assert [b["book_id"] for b in result["books"]] == [3, 4]
        assert result["pagination"] == {
            "current_page": 1,
            "total_pages": 3,
            "total_items": 5,
            "page_size": 2,
            "has_next": True,
            "has_prev": True,
        }

    @pytest.mark.asyncio
    async def test_search_title_or_author(self, book_service, make_book):
        make_book(1, title="The Lathe of Heaven", author="Le Guin")
        make_book(2, title="Kindred", author="Octavia Butler")
        make_book(3, title="Heaven's River", author="Dennis Taylor")

        result = await book_service.search_books("heaven")

        assert [b["book_id"] for b in result["books"]] == [1, 3]
        assert result["search_query"] == "heaven"

    @pytest.mark.asyncio
    async def test_search_escapes_pattern(self, book_service, make_book):
        make_book(1, title="C++ Primer")
        make_book(2, title="C Programming")

        result = await book_service.search_books("C++")

        assert [b["book_id"] for b in result["books"]] == [1]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("query", ["", "   ", None])
    async def test_search_requires_query(self, book_service, query):
        with pytest.raises(ValueError):
            await book_service.search_books(query)

    @pytest.mark.asyncio
    async def test_get_book_by_either_key(self, book_service, make_book):
        book = make_book(8)

        assert (await book_service.get_book("8"))["_id"] == book["_id"]
        assert (await book_service.get_book(str(book["_id"])))["book_id"] == 8

    @pytest.mark.asyncio
    async def test_get_missing_book(self, book_service):
        with pytest.raises(NotFound):
            await book_service.get_book("8")
