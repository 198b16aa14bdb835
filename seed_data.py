#!/usr/bin/env python3
"""
Seed the database with sample users, books and reviews.

Usage: python seed_data.py [--keep]

Without --keep the users, books and reviews collections are emptied first.
"""

import asyncio
import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from api.config import config
from catalog.database import MongoDBManager
from catalog.models import BookRecord, ReviewRecord, UserRecord
from catalog.security import hash_password
from utilities.logger import get_logger, setup_logging

SAMPLE_PASSWORD = "password123"

USERS = [
    {"name": "Alice", "email": "alice@example.com"},
    {"name": "Bob", "email": "bob@example.com"},
    {"name": "Charlie", "email": "charlie@example.com"},
]

BOOKS = [
    {
        "title": "The Great Gatsby",
        "author": "F. Scott Fitzgerald",
        "description": "A novel set in the Jazz Age that tells the story of Jay Gatsby "
                       "and his unrequited love for Daisy Buchanan.",
        "genre": "Classic",
        "year": 1925,
    },
    {
        "title": "To Kill a Mockingbird",
        "author": "Harper Lee",
        "description": "A novel about racial injustice in the Deep South seen through "
                       "the eyes of young Scout Finch.",
        "genre": "Classic",
        "year": 1960,
    },
    {
        "title": "1984",
        "author": "George Orwell",
        "description": "A dystopian novel about totalitarianism and surveillance.",
        "genre": "Dystopian",
        "year": 1949,
    },
]

REVIEWS = [
    {"rating": 5, "review_text": "A masterpiece of American literature."},
    {"rating": 4, "review_text": "A powerful and moving story."},
    {"rating": 5, "review_text": "Chilling and thought-provoking."},
]


async def seed(db_manager: MongoDBManager, keep_existing: bool = False) -> dict:
    """
    Insert the sample data.

    Book i is added by user i and reviewed by the next user, so nobody
    reviews their own book.
    """
    if not keep_existing:
        await db_manager.reviews.delete_many({})
        await db_manager.books.delete_many({})
        await db_manager.users.delete_many({})

    password_hash = hash_password(SAMPLE_PASSWORD)
    user_ids = []
    for user in USERS:
        record = UserRecord(name=user["name"], email=user["email"], password_hash=password_hash)
        result = await db_manager.users.insert_one(record.to_document())
        user_ids.append(result.inserted_id)

    book_ids = []
    for i, book in enumerate(BOOKS):
        record = BookRecord(added_by=user_ids[i % len(user_ids)], **book)
        result = await db_manager.books.insert_one(record.to_document())
        book_ids.append(result.inserted_id)

    for i, review in enumerate(REVIEWS):
        record = ReviewRecord(
            book_id=book_ids[i % len(book_ids)],
            user_id=user_ids[(i + 1) % len(user_ids)],
            **review,
        )
        await db_manager.reviews.insert_one(record.to_document())

    return {"users": len(user_ids), "books": len(book_ids), "reviews": len(REVIEWS)}


async def main():
    """Main function to seed the database."""
    setup_logging(
        log_level=config.log_level,
        log_format=config.log_format,
        log_file=config.log_file,
        debug=config.debug
    )
    logger = get_logger(__name__)
    keep_existing = "--keep" in sys.argv[1:]

    db_manager = MongoDBManager(config.mongodb_url, config.mongodb_database)
    try:
        await db_manager.connect()
        counts = await seed(db_manager, keep_existing=keep_existing)
        logger.info("Seed data created successfully", **counts)
    except Exception as e:
        logger.error("Error seeding data", error=str(e), exc_info=e)
        sys.exit(1)
    finally:
        await db_manager.disconnect()


if __name__ == "__main__":
    asyncio.run(main())
