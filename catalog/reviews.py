"""
Review mutations.

Every successful create, update or delete is followed by an explicit
``RatingAggregator.recompute`` for the affected book. The recompute runs
after the review write has committed; if it fails the review change stands
and the error is surfaced as AggregateWriteFailure.
"""

from datetime import datetime
from typing import Any, Dict

import structlog
from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from .exceptions import DuplicateReview, NotFound, PermissionDenied
from .models import Review, ReviewCreate
from .pagination import page_window, pagination_info
from .ratings import RatingAggregator
from .resolver import BookResolver, to_object_id

logger = structlog.get_logger(__name__)


class ReviewService:
    """Creates, updates and deletes reviews and keeps book aggregates in sync."""

    def __init__(
        self,
        reviews: AsyncIOMotorCollection,
        resolver: BookResolver,
        aggregator: RatingAggregator,
    ):
        self.reviews = reviews
        self.resolver = resolver
        self.aggregator = aggregator

    async def add_review(self, raw_book_id: str, user: str, data: ReviewCreate) -> Dict[str, Any]:
        """
        Add a review to a book.

        Args:
            raw_book_id: Sequential ID or ObjectId of the book
            user: Reference of the reviewing user
            data: Validated rating and comment

        Returns:
            The inserted review document

        Raises:
            NotFound: If the book does not exist
            DuplicateReview: If the user already reviewed the book
            AggregateWriteFailure: If the review was stored but the aggregate was not
        """
        book = await self.resolver.resolve(raw_book_id)
        book_key = book["_id"]

        existing = await self.reviews.find_one({"book": book_key, "user": user})
        if existing:
            logger.warning("Duplicate review rejected", book_key=str(book_key), user=user)
            raise DuplicateReview(book_key, user)

        now = datetime.utcnow()
        review_doc = Review(
            book=book_key,
            book_id=book["book_id"],
            user=user,
            rating=data.rating,
            comment=data.comment,
            created_at=now,
            updated_at=now,
        ).model_dump()

        try:
            result = await self.reviews.insert_one(review_doc)
        except DuplicateKeyError as e:
            # lost a race with a concurrent insert for the same (book, user)
            logger.warning("Duplicate review rejected by index", book_key=str(book_key), user=user)
            raise DuplicateReview(book_key, user) from e

        review_doc["_id"] = result.inserted_id
        logger.info("Review created", review_id=str(result.inserted_id), book_id=book["book_id"])

        await self.aggregator.recompute(book_key)
        return review_doc

    async def update_review(self, review_id: str, user: str, data: ReviewCreate) -> Dict[str, Any]:
        """
        Replace the rating and comment of a review owned by ``user``.

        Raises:
            NotFound: If the review does not exist
            PermissionDenied: If the review belongs to another user
            AggregateWriteFailure: If the review was stored but the aggregate was not
        """
        review = await self._get_owned(review_id, user, "update")

        updated = await self.reviews.find_one_and_update(
            {"_id": review["_id"]},
            {
                "$set": {
                    "rating": data.rating,
                    "comment": data.comment,
                    "updated_at": datetime.utcnow(),
                }
            },
            return_document=ReturnDocument.AFTER,
        )
        if updated is None:
            # deleted between the ownership check and the write
            raise NotFound("review", review_id)

        logger.info("Review updated", review_id=review_id, book_id=review.get("book_id"))

        await self.aggregator.recompute(review["book"])
        return updated

    async def delete_review(self, review_id: str, user: str) -> None:
        """
        Delete a review owned by ``user``.

        Raises:
            NotFound: If the review does not exist
            PermissionDenied: If the review belongs to another user
            AggregateWriteFailure: If the review was removed but the aggregate was not
        """
        review = await self._get_owned(review_id, user, "delete")

        result = await self.reviews.delete_one({"_id": review["_id"]})
        if result.deleted_count == 0:
            raise NotFound("review", review_id)

        logger.info("Review deleted", review_id=review_id, book_id=review.get("book_id"))

        await self.aggregator.recompute(review["book"])

    async def list_reviews(self, book_key: ObjectId, page: int = 0, size: int = 5) -> Dict[str, Any]:
        """Page through a book's reviews, newest first."""
        skip, limit = page_window(page, size)
        cursor = self.reviews.find({"book": book_key}).sort("created_at", -1).skip(skip).limit(limit)
        reviews = await cursor.to_list(length=limit)
        total = await self.reviews.count_documents({"book": book_key})
        return {"reviews": reviews, "pagination": pagination_info(page, limit, total)}

    async def _get_owned(self, review_id: str, user: str, action: str) -> Dict[str, Any]:
        review = await self.reviews.find_one({"_id": to_object_id(review_id, "review")})
        if review is None:
            logger.warning("Review not found", review_id=review_id)
            raise NotFound("review", review_id)

        if str(review["user"]) != str(user):
            logger.warning("Review ownership check failed", review_id=review_id, user=user, action=action)
            raise PermissionDenied(action, "review")

        return review
