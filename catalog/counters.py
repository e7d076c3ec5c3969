"""
Store-backed sequence counters.

Each counter is one document ``{_id: <name>, sequence_value: <int>}`` in the
counters collection. Values are issued by a single atomic
``find_one_and_update`` with ``$inc`` and ``upsert``, so concurrent callers in
any number of processes always receive distinct values. A value consumed by a
create that later fails is simply skipped: IDs are unique and increasing but
not necessarily contiguous.
"""

import structlog
from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from .exceptions import AllocationFailure
from .models import Counter

logger = structlog.get_logger(__name__)

SEQUENCE_FIELD = "sequence_value"


class SequenceAllocator:
    """Issues monotonically increasing integers per counter name."""

    def __init__(self, collection: AsyncIOMotorCollection):
        """
        Initialize the allocator.

        Args:
            collection: Counters collection
        """
        self.collection = collection

    async def allocate(self, counter_name: str) -> int:
        """
        Atomically increment a counter and return the new value.

        The counter document is created on first use, so the first value
        issued for a name is 1.

        Args:
            counter_name: Name of the counter (e.g. "book_id")

        Returns:
            The post-increment value

        Raises:
            AllocationFailure: If the store rejects or cannot perform the increment
        """
        try:
            counter = await self.collection.find_one_and_update(
                {"_id": counter_name},
                {"$inc": {SEQUENCE_FIELD: 1}},
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as e:
            logger.error("Sequence allocation failed", counter=counter_name, error=str(e))
            raise AllocationFailure(counter_name, str(e)) from e

        if not counter or SEQUENCE_FIELD not in counter:
            logger.error("Sequence allocation returned no counter", counter=counter_name)
            raise AllocationFailure(counter_name, "no counter document returned")

        value = int(counter[SEQUENCE_FIELD])
        logger.debug("Allocated sequential ID", counter=counter_name, value=value)
        return value

    async def current(self, counter_name: str) -> Counter:
        """
        Read a counter without changing it.

        Only for diagnostics: never derive a new ID from this value.
        """
        try:
            doc = await self.collection.find_one({"_id": counter_name})
        except PyMongoError as e:
            logger.error("Failed to read counter", counter=counter_name, error=str(e))
            raise
        value = int(doc[SEQUENCE_FIELD]) if doc else 0
        return Counter(name=counter_name, value=value)
