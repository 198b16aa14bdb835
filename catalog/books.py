"""
Book catalog service: listing with search/filter/sort/pagination, detail
pages with reviews and average rating, and creator-only mutations.
"""

import math
import re
from typing import Any, Dict, List

import structlog
from bson import ObjectId
from pymongo import ReturnDocument

from catalog.database import MongoDBManager, attach_references
from catalog.exceptions import NotFoundError, OwnershipError
from catalog.models import BookListQuery, BookRecord, SortBy, SortOrder, serialize_document, utc_now

logger = structlog.get_logger(__name__)

BOOKS_PER_PAGE = 5
BOOK_UPDATE_FIELDS = ("title", "author", "description", "genre", "year")
PUBLIC_USER_FIELDS = ("name", "email")


def build_book_filter(query: BookListQuery) -> Dict[str, Any]:
    """
    Build the MongoDB filter for a listing query.

    Search and genre are case-insensitive literal substrings; year is exact.
    """
    filter_query: Dict[str, Any] = {}

    if query.search:
        pattern = re.escape(query.search)
        filter_query["$or"] = [
            {"title": {"$regex": pattern, "$options": "i"}},
            {"author": {"$regex": pattern, "$options": "i"}},
        ]

    if query.genre:
        filter_query["genre"] = {"$regex": re.escape(query.genre), "$options": "i"}

    if query.year is not None:
        filter_query["year"] = query.year

    return filter_query


def build_sort(query: BookListQuery) -> Dict[str, int]:
    """MongoDB sort document; `_id` is the final tie-breaker so pages are stable."""
    direction = 1 if query.sort_order == SortOrder.ASC else -1

    if query.sort_by == SortBy.YEAR:
        return {"year": direction, "_id": direction}
    if query.sort_by == SortBy.AVERAGE_RATING:
        return {"averageRating": direction, "createdAt": direction, "_id": direction}
    return {"createdAt": direction, "_id": direction}


def build_listing_pipeline(query: BookListQuery, page_size: int = BOOKS_PER_PAGE) -> List[Dict[str, Any]]:
    """
    Aggregation pipeline for one listing page.

    Every returned book gets an `averageRating` computed from its reviews
    (0 when it has none). Only rating sort needs it for every matching book;
    other sorts page first and join reviews for the page alone.
    """
    rating_stages = [
        {"$lookup": {
            "from": "reviews",
            "localField": "_id",
            "foreignField": "bookId",
            "as": "ratings",
        }},
        {"$addFields": {"averageRating": {"$ifNull": [{"$avg": "$ratings.rating"}, 0]}}},
        {"$project": {"ratings": 0}},
    ]
    page_stages = [
        {"$sort": build_sort(query)},
        {"$skip": (query.page - 1) * page_size},
        {"$limit": page_size},
    ]

    match = [{"$match": build_book_filter(query)}]
    if query.sort_by == SortBy.AVERAGE_RATING:
        return match + rating_stages + page_stages
    return match + page_stages + rating_stages


def average_rating(reviews: List[Dict[str, Any]]) -> float:
    """Arithmetic mean of review ratings, exactly 0 when there are none."""
    if not reviews:
        return 0
    return sum(review["rating"] for review in reviews) / len(reviews)


def pick_updates(data: Dict[str, Any], fields) -> Dict[str, Any]:
    """
    Select the fields an update applies.

    Missing, None, empty-string and zero values are treated as "not provided"
    and leave the stored value unchanged.
    """
    return {field: data[field] for field in fields if data.get(field)}


def is_owner(owner_id: Any, caller_id: Any) -> bool:
    return owner_id is not None and str(owner_id) == str(caller_id)


class BookService:
    """Book catalog operations backed by the `books` collection."""

    def __init__(self, db_manager: MongoDBManager, page_size: int = BOOKS_PER_PAGE):
        self.db_manager = db_manager
        self.page_size = page_size

    async def list_books(self, query: BookListQuery) -> Dict[str, Any]:
        """
        Get books with filtering, sorting, and pagination.

        Args:
            query: Parsed listing parameters

        Returns:
            Dictionary with page, totalPages, totalBooks and books; a page
            past the end has an empty book list and the real totals
        """
        filter_query = build_book_filter(query)
        total = await self.db_manager.books.count_documents(filter_query)
        total_pages = math.ceil(total / self.page_size)

        books = []
        # Pages past the end skip the query; their offset may not fit in a BSON int64
        if query.page <= total_pages:
            cursor = self.db_manager.books.aggregate(build_listing_pipeline(query, self.page_size))
            books = await cursor.to_list(length=self.page_size)
            await attach_references(books, "addedBy", self.db_manager.users, PUBLIC_USER_FIELDS)

        logger.debug(
            "Listed books",
            page=query.page,
            total=total,
            returned=len(books),
            sort_by=query.sort_by.value,
        )

        return {
            "page": query.page,
            "totalPages": total_pages,
            "totalBooks": total,
            "books": [serialize_document(book) for book in books],
        }

    async def _get_book_or_404(self, book_id: str) -> Dict[str, Any]:
        book = await self.db_manager.books.find_one({"_id": ObjectId(book_id)})
        if not book:
            raise NotFoundError("Book not found")
        return book

    async def get_book_details(self, book_id: str) -> Dict[str, Any]:
        """
        Get a book with its creator, its reviews (with reviewers) and the
        average rating.

        Raises:
            NotFoundError: If the book does not exist
        """
        book = await self._get_book_or_404(book_id)
        await attach_references([book], "addedBy", self.db_manager.users, PUBLIC_USER_FIELDS)

        cursor = self.db_manager.reviews.find({"bookId": book["_id"]}).sort("createdAt", -1)
        reviews = await cursor.to_list(length=None)
        mean = average_rating(reviews)
        await attach_references(reviews, "userId", self.db_manager.users, PUBLIC_USER_FIELDS)

        return {
            "book": serialize_document(book),
            "reviews": [serialize_document(review) for review in reviews],
            "averageRating": mean,
        }

    async def create_book(self, data: Dict[str, Any], owner_id: Any) -> Dict[str, Any]:
        """Persist a new book owned by `owner_id`."""
        record = BookRecord(
            title=data["title"],
            author=data["author"],
            description=data["description"],
            genre=data["genre"],
            year=data["year"],
            added_by=ObjectId(str(owner_id)),
        )
        document = record.to_document()
        result = await self.db_manager.books.insert_one(document)
        document["_id"] = result.inserted_id

        logger.info("Book created", book_id=str(result.inserted_id), user_id=str(owner_id))
        return serialize_document(document)

    async def update_book(self, book_id: str, data: Dict[str, Any], caller_id: Any) -> Dict[str, Any]:
        """
        Apply a partial update from the book's creator.

        Raises:
            NotFoundError: If the book does not exist
            OwnershipError: If the caller did not create the book
        """
        book = await self._get_book_or_404(book_id)
        if not is_owner(book.get("addedBy"), caller_id):
            logger.warning("Rejected book update from non-owner", book_id=book_id, user_id=str(caller_id))
            raise OwnershipError()

        changes = pick_updates(data, BOOK_UPDATE_FIELDS)
        changes["updatedAt"] = utc_now()

        updated = await self.db_manager.books.find_one_and_update(
            {"_id": book["_id"]},
            {"$set": changes},
            return_document=ReturnDocument.AFTER,
        )
        if not updated:
            raise NotFoundError("Book not found")

        logger.info("Book updated", book_id=book_id, fields=sorted(k for k in changes if k != "updatedAt"))
        return serialize_document(updated)

    async def delete_book(self, book_id: str, caller_id: Any) -> None:
        """
        Delete a book and its reviews on behalf of its creator.

        Raises:
            NotFoundError: If the book does not exist
            OwnershipError: If the caller did not create the book
        """
        book = await self._get_book_or_404(book_id)
        if not is_owner(book.get("addedBy"), caller_id):
            logger.warning("Rejected book deletion from non-owner", book_id=book_id, user_id=str(caller_id))
            raise OwnershipError()

        await self.db_manager.books.delete_one({"_id": book["_id"]})
        result = await self.db_manager.reviews.delete_many({"bookId": book["_id"]})

        logger.info("Book deleted", book_id=book_id, reviews_deleted=result.deleted_count)
