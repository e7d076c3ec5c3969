"""
Rating aggregate maintenance.

A book's ``average_rating`` and ``review_count`` are a cache over its review
set. ``RatingAggregator.recompute`` rebuilds both from a full scan of the
book's reviews and writes them back. It is not transactional with the read:
a review committed between the scan and the write is picked up by that
review's own recompute, and racing recomputes resolve as last writer wins.
"""

from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP

import structlog
from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo.errors import PyMongoError

from .exceptions import AggregateWriteFailure
from .models import RatingAggregate

logger = structlog.get_logger(__name__)

ONE_DECIMAL = Decimal("0.1")


def round_average(total: int, count: int) -> float:
    """
    Mean of ``count`` ratings summing to ``total``, half-up to one decimal.

    Works on the exact integer sum so that e.g. 4.25 rounds to 4.3 rather
    than following binary float rounding.
    """
    if count <= 0:
        return 0.0
    mean = Decimal(total) / Decimal(count)
    return float(mean.quantize(ONE_DECIMAL, rounding=ROUND_HALF_UP))


def compute_aggregate(total: int, count: int) -> RatingAggregate:
    """Build the aggregate for ``count`` reviews whose ratings sum to ``total``."""
    if count <= 0:
        return RatingAggregate(average_rating=0.0, review_count=0)
    return RatingAggregate(average_rating=round_average(total, count), review_count=count)


class RatingAggregator:
    """Recomputes and persists per-book rating aggregates."""

    def __init__(self, reviews: AsyncIOMotorCollection, books: AsyncIOMotorCollection):
        """
        Initialize the aggregator.

        Args:
            reviews: Reviews collection (read)
            books: Books collection (aggregate fields written)
        """
        self.reviews = reviews
        self.books = books

    async def read_aggregate(self, book_key: ObjectId) -> RatingAggregate:
        """Scan every review of a book and compute its aggregate."""
        pipeline = [
            {"$match": {"book": book_key}},
            {
                "$group": {
                    "_id": "$book",
                    "total": {"$sum": "$rating"},
                    "count": {"$sum": 1},
                }
            },
        ]
        cursor = self.reviews.aggregate(pipeline)
        stats = await cursor.to_list(length=1)

        if not stats:
            return compute_aggregate(0, 0)
        return compute_aggregate(int(stats[0]["total"]), int(stats[0]["count"]))

    async def recompute(self, book_key: ObjectId) -> RatingAggregate:
        """
        Rebuild a book's rating aggregate from its current reviews.

        Args:
            book_key: ObjectId of the book

        Returns:
            The aggregate that was written

        Raises:
            AggregateWriteFailure: If the scan or the write fails, or the
                book no longer exists
        """
        try:
            aggregate = await self.read_aggregate(book_key)
            result = await self.books.update_one(
                {"_id": book_key},
                {
                    "$set": {
                        "average_rating": aggregate.average_rating,
                        "review_count": aggregate.review_count,
                        "updated_at": datetime.utcnow(),
                    }
                },
            )
        except PyMongoError as e:
            logger.error("Rating aggregate update failed", book_key=str(book_key), error=str(e))
            raise AggregateWriteFailure(book_key, str(e)) from e

        if result.matched_count == 0:
            logger.error("Rating aggregate target missing", book_key=str(book_key))
            raise AggregateWriteFailure(book_key, "book not found")

        logger.info(
            "Rating aggregate updated",
            book_key=str(book_key),
            average_rating=aggregate.average_rating,
            review_count=aggregate.review_count,
        )
        return aggregate
