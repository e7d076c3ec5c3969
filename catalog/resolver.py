"""
Dual-key book lookup.

Books can be addressed either by their sequential ``book_id`` or by the
store's ObjectId. The raw identifier is classified once, at the boundary:
a string of ASCII decimal digits is always a sequential ID, anything else is
always an opaque key.
"""

import re
from typing import Any, Dict, NamedTuple, Union

import structlog
from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorCollection

from .exceptions import NotFound

logger = structlog.get_logger(__name__)

SEQUENTIAL_ID_PATTERN = re.compile(r"[0-9]+")

# BSON integers are signed 64-bit
MAX_SEQUENTIAL_ID = 2 ** 63 - 1


class SequentialId(NamedTuple):
    """Human-facing integer identifier."""
    value: int


class OpaqueKey(NamedTuple):
    """Store-assigned identifier, passed through as text."""
    value: str


BookIdentifier = Union[SequentialId, OpaqueKey]


def classify_identifier(raw_id: str) -> BookIdentifier:
    """
    Classify a caller-supplied book identifier.

    Args:
        raw_id: Identifier as received (path parameter, payload field, ...)

    Returns:
        SequentialId for digit-only strings, OpaqueKey otherwise
    """
    raw_id = str(raw_id)
    if SEQUENTIAL_ID_PATTERN.fullmatch(raw_id):
        return SequentialId(int(raw_id))
    return OpaqueKey(raw_id)


def to_object_id(raw_key: str, entity: str = "book") -> ObjectId:
    """
    Convert an opaque key to an ObjectId.

    Raises:
        NotFound: If the key is not a valid ObjectId
    """
    if isinstance(raw_key, ObjectId):
        return raw_key
    try:
        return ObjectId(raw_key)
    except (InvalidId, TypeError):
        logger.debug("Malformed store key", entity=entity, raw_id=raw_key)
        raise NotFound(entity, str(raw_key))


def lookup_filter(identifier: BookIdentifier) -> Dict[str, Any]:
    """
    Build the store filter for a classified identifier.

    Raises:
        NotFound: If an opaque key is not a valid ObjectId, or a sequential
            ID is too large for any book to carry
    """
    if isinstance(identifier, SequentialId):
        if identifier.value > MAX_SEQUENTIAL_ID:
            logger.debug("Sequential ID out of range", raw_id=str(identifier.value))
            raise NotFound("book", str(identifier.value))
        return {"book_id": identifier.value}
    return {"_id": to_object_id(identifier.value)}


class BookResolver:
    """Resolves sequential IDs and opaque keys to book documents."""

    def __init__(self, books: AsyncIOMotorCollection):
        self.books = books

    async def resolve(self, raw_id: str) -> Dict[str, Any]:
        """
        Find the book a raw identifier refers to.

        Args:
            raw_id: Sequential ID or ObjectId string

        Returns:
            Book document

        Raises:
            NotFound: If no book matches or the key is malformed
        """
        identifier = classify_identifier(raw_id)
        book = await self.books.find_one(lookup_filter(identifier))

        if book is None:
            logger.warning("Book not found", raw_id=raw_id, kind=type(identifier).__name__)
            raise NotFound("book", str(raw_id))

        return book
