"""
Review service: one review per user per book, author-only mutations.
"""

from typing import Any, Dict

import structlog
from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from catalog.books import is_owner, pick_updates
from catalog.database import MongoDBManager
from catalog.exceptions import ConflictError, NotFoundError, OwnershipError
from catalog.models import ReviewRecord, serialize_document, utc_now

logger = structlog.get_logger(__name__)

REVIEW_UPDATE_FIELDS = ("rating", "reviewText")
DUPLICATE_REVIEW_MESSAGE = "You have already reviewed this book"


class ReviewService:
    """Review operations backed by the `reviews` collection."""

    def __init__(self, db_manager: MongoDBManager):
        self.db_manager = db_manager

    async def create_review(self, book_id: str, rating: int, review_text: str, author_id: Any) -> Dict[str, Any]:
        """
        Create the author's review of a book.

        The existence check gives a friendly error for the common case; the
        unique (bookId, userId) index catches concurrent duplicates.

        Raises:
            ConflictError: If the author already reviewed this book
        """
        book_oid = ObjectId(book_id)
        author_oid = ObjectId(str(author_id))

        existing = await self.db_manager.reviews.find_one({"bookId": book_oid, "userId": author_oid})
        if existing:
            logger.info("Duplicate review rejected", book_id=book_id, user_id=str(author_id))
            raise ConflictError(DUPLICATE_REVIEW_MESSAGE)

        record = ReviewRecord(
            book_id=book_oid,
            user_id=author_oid,
            rating=rating,
            review_text=review_text,
        )
        document = record.to_document()
        try:
            result = await self.db_manager.reviews.insert_one(document)
        except DuplicateKeyError:
            logger.info("Concurrent duplicate review rejected", book_id=book_id, user_id=str(author_id))
            raise ConflictError(DUPLICATE_REVIEW_MESSAGE)

        document["_id"] = result.inserted_id
        logger.info("Review created", review_id=str(result.inserted_id), book_id=book_id, user_id=str(author_id))
        return serialize_document(document)

    async def _get_review_or_404(self, review_id: str) -> Dict[str, Any]:
        review = await self.db_manager.reviews.find_one({"_id": ObjectId(review_id)})
        if not review:
            raise NotFoundError("Review not found")
        return review

    async def update_review(self, review_id: str, data: Dict[str, Any], caller_id: Any) -> Dict[str, Any]:
        """
        Apply a partial update from the review's author.

        Raises:
            NotFoundError: If the review does not exist
            OwnershipError: If the caller did not write the review
        """
        review = await self._get_review_or_404(review_id)
        if not is_owner(review.get("userId"), caller_id):
            logger.warning("Rejected review update from non-owner", review_id=review_id, user_id=str(caller_id))
            raise OwnershipError()

        changes = pick_updates(data, REVIEW_UPDATE_FIELDS)
        changes["updatedAt"] = utc_now()

        updated = await self.db_manager.reviews.find_one_and_update(
            {"_id": review["_id"]},
            {"$set": changes},
            return_document=ReturnDocument.AFTER,
        )
        if not updated:
            raise NotFoundError("Review not found")

        logger.info("Review updated", review_id=review_id)
        return serialize_document(updated)

    async def delete_review(self, review_id: str, caller_id: Any) -> None:
        """
        Delete a review on behalf of its author.

        Raises:
            NotFoundError: If the review does not exist
            OwnershipError: If the caller did not write the review
        """
        review = await self._get_review_or_404(review_id)
        if not is_owner(review.get("userId"), caller_id):
            logger.warning("Rejected review deletion from non-owner", review_id=review_id, user_id=str(caller_id))
            raise OwnershipError()

        await self.db_manager.reviews.delete_one({"_id": review["_id"]})
        logger.info("Review deleted", review_id=review_id)
