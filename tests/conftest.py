"""
Pytest configuration and shared fixtures.

The store fakes below implement the subset of the motor collection API the
catalog uses. Every operation yields to the event loop once before running,
so concurrently scheduled coroutines interleave between store calls while
each single call stays atomic, like a single-document MongoDB operation.
"""

import asyncio
import copy
import re
from types import SimpleNamespace

import bson
import pytest
from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from catalog.counters import SequenceAllocator
from catalog.ratings import RatingAggregator
from catalog.resolver import BookResolver
from catalog.books import BookService
from catalog.reviews import ReviewService

_MISSING = object()


def _encode(query):
    # the driver serialises every filter before it reaches the server
    bson.encode(query or {})


def _matches(doc, query):
    for key, cond in (query or {}).items():
        if key == "$or":
            if not any(_matches(doc, sub) for sub in cond):
                return False
            continue
        value = doc.get(key, _MISSING)
        if isinstance(cond, dict) and "$regex" in cond:
            flags = re.IGNORECASE if "i" in cond.get("$options", "") else 0
            if not isinstance(value, str) or not re.search(cond["$regex"], value, flags):
                return False
        elif value is _MISSING or value != cond:
            return False
    return True


def _apply_update(doc, update):
    for field, amount in update.get("$inc", {}).items():
        doc[field] = doc.get(field, 0) + amount
    for field, value in update.get("$set", {}).items():
        doc[field] = value


def _resolve(doc, expr):
    if isinstance(expr, str) and expr.startswith("$"):
        return doc.get(expr[1:])
    return expr


class FakeCursor:
    """Cursor over a materialised list of documents."""

    def __init__(self, docs):
        self._docs = [copy.deepcopy(d) for d in docs]

    def sort(self, key, direction=1):
        if isinstance(key, list):
            key, direction = key[0]
        self._docs.sort(key=lambda d: d.get(key), reverse=direction == -1)
        return self

    def skip(self, count):
        self._docs = self._docs[count:]
        return self

    def limit(self, count):
        if count:
            self._docs = self._docs[:count]
        return self

    async def to_list(self, length=None):
        await asyncio.sleep(0)
        if length is None:
            return list(self._docs)
        return self._docs[:length]


class FakeCollection:
    """In-memory stand-in for an AsyncIOMotorCollection."""

    def __init__(self, name, unique=None):
        self.name = name
        self.docs = []
        self.unique = [tuple(keys) for keys in (unique or [])]
        self.calls = []
        self.fail_on = {}

    def _record(self, operation, *args):
        self.calls.append((operation,) + args)
        error = self.fail_on.get(operation)
        if error is not None:
            raise error

    def operations(self):
        return [call[0] for call in self.calls]

    def _check_unique(self, candidate):
        for keys in self.unique:
            if any(k not in candidate or candidate[k] is None for k in keys):
                continue
            for doc in self.docs:
                if all(doc.get(k) == candidate[k] for k in keys):
                    raise DuplicateKeyError(
                        "E11000 duplicate key error",
                        11000,
                        {"keyPattern": {k: 1 for k in keys}},
                    )

    async def create_index(self, keys, unique=False, sparse=False, **kwargs):
        await asyncio.sleep(0)
        self._record("create_index", keys)
        if isinstance(keys, str):
            fields = (keys,)
        else:
            fields = tuple(k for k, _ in keys)
        if unique and fields not in self.unique:
            self.unique.append(fields)
        return "_".join(fields)

    async def insert_one(self, doc):
        await asyncio.sleep(0)
        self._record("insert_one", doc)
        doc.setdefault("_id", ObjectId())
        self._check_unique(doc)
        self.docs.append(copy.deepcopy(doc))
        return SimpleNamespace(inserted_id=doc["_id"])

    async def find_one(self, query=None, projection=None):
        await asyncio.sleep(0)
        self._record("find_one", query)
        _encode(query)
        for doc in self.docs:
            if _matches(doc, query):
                return copy.deepcopy(doc)
        return None

    def find(self, query=None, projection=None):
        self._record("find", query)
        _encode(query)
        return FakeCursor([d for d in self.docs if _matches(d, query)])

    async def count_documents(self, query):
        await asyncio.sleep(0)
        self._record("count_documents", query)
        _encode(query)
        return sum(1 for d in self.docs if _matches(d, query))

    async def find_one_and_update(self, query, update, upsert=False,
                                  return_document=ReturnDocument.BEFORE):
        await asyncio.sleep(0)
        self._record("find_one_and_update", query, update)
        _encode(query)
        for doc in self.docs:
            if _matches(doc, query):
                before = copy.deepcopy(doc)
                _apply_update(doc, update)
                return copy.deepcopy(doc) if return_document == ReturnDocument.AFTER else before
        if not upsert:
            return None
        doc = {k: v for k, v in query.items() if not k.startswith("$")}
        _apply_update(doc, update)
        self.docs.append(doc)
        return copy.deepcopy(doc) if return_document == ReturnDocument.AFTER else None

    async def update_one(self, query, update, upsert=False):
        await asyncio.sleep(0)
        self._record("update_one", query, update)
        _encode(query)
        for doc in self.docs:
            if _matches(doc, query):
                _apply_update(doc, update)
                return SimpleNamespace(matched_count=1, modified_count=1, upserted_id=None)
        return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=None)

    async def delete_one(self, query):
        await asyncio.sleep(0)
        self._record("delete_one", query)
        _encode(query)
        for index, doc in enumerate(self.docs):
            if _matches(doc, query):
                del self.docs[index]
                return SimpleNamespace(deleted_count=1)
        return SimpleNamespace(deleted_count=0)

    def aggregate(self, pipeline):
        self._record("aggregate", pipeline)
        docs = list(self.docs)
        for stage in pipeline:
            if "$match" in stage:
                docs = [d for d in docs if _matches(d, stage["$match"])]
            elif "$group" in stage:
                group = stage["$group"]
                groups = {}
                for d in docs:
                    key = _resolve(d, group["_id"])
                    acc = groups.setdefault(
                        key, dict({"_id": key}, **{f: 0 for f in group if f != "_id"})
                    )
                    for field, op in group.items():
                        if field != "_id":
                            acc[field] += _resolve(d, op["$sum"])
                docs = list(groups.values())
        return FakeCursor(docs)


class FakeDatabase:
    """In-memory stand-in for an AsyncIOMotorDatabase."""

    def __init__(self):
        self.collections = {}

    def __getitem__(self, name):
        if name not in self.collections:
            self.collections[name] = FakeCollection(name)
        return self.collections[name]

    async def command(self, name):
        await asyncio.sleep(0)
        return {"ok": 1.0}


@pytest.fixture
def counters():
    return FakeCollection("counters")


@pytest.fixture
def books():
    return FakeCollection("books", unique=[("book_id",), ("isbn",)])


@pytest.fixture
def reviews():
    return FakeCollection("reviews", unique=[("book", "user")])


@pytest.fixture
def allocator(counters):
    return SequenceAllocator(counters)


@pytest.fixture
def resolver(books):
    return BookResolver(books)


@pytest.fixture
def aggregator(reviews, books):
    return RatingAggregator(reviews, books)


@pytest.fixture
def book_service(books, allocator, resolver):
    return BookService(books, allocator, resolver, counter_name="book_id")


@pytest.fixture
def review_service(reviews, resolver, aggregator):
    return ReviewService(reviews, resolver, aggregator)


@pytest.fixture
def book_data():
    """Create sample book input for testing."""
    from catalog.models import BookCreate

    return BookCreate(
        title="The Dispossessed",
        author="Ursula K. Le Guin",
        genre="Science Fiction",
        description="An ambiguous utopia.",
        published_year=1974,
        isbn="9780061054884",
    )


@pytest.fixture
def make_book(books):
    """Insert a numbered book document directly into the fake store."""
    def _make_book(book_id, **fields):
        doc = {
            "_id": ObjectId(),
            "book_id": book_id,
            "title": f"Book {book_id}",
            "author": "Author",
            "genre": "Fiction",
            "description": "Description",
            "published_year": 2000,
            "added_by": "owner",
            "average_rating": 0.0,
            "review_count": 0,
        }
        doc.update(fields)
        books.docs.append(doc)
        return doc
    return _make_book


@pytest.fixture
def fake_database():
    """Database with the unique indexes MongoDBManager.create_indexes declares."""
    from utilities.config import config

    database = FakeDatabase()
    database[config.books_collection].unique = [("book_id",), ("isbn",)]
    database[config.reviews_collection].unique = [("book", "user")]
    return database
