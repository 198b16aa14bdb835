"""
Pytest configuration and shared fixtures.
"""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from bson import ObjectId

from catalog.database import MongoDBManager
from catalog.security import TokenManager
from tests.mocks import make_collection

TEST_SECRET = "test-secret"


@pytest.fixture
def mock_db_manager():
    """Create a mock MongoDB manager with mocked collections."""
    manager = MagicMock(spec=MongoDBManager)
    manager.users = make_collection()
    manager.books = make_collection()
    manager.reviews = make_collection()
    manager.otps = make_collection()
    return manager


@pytest.fixture
def token_manager():
    return TokenManager(secret=TEST_SECRET, algorithm="HS256", expire_days=7)


@pytest.fixture
def owner_id():
    return ObjectId()


@pytest.fixture
def other_user_id():
    return ObjectId()


@pytest.fixture
def sample_user(owner_id):
    """Stored user document as returned without the password hash."""
    return {
        "_id": owner_id,
        "name": "Alice",
        "email": "alice@example.com",
        "createdAt": datetime(2024, 1, 15, 10, 30),
    }


@pytest.fixture
def sample_book(owner_id):
    """Stored book document."""
    return {
        "_id": ObjectId(),
        "title": "The Great Gatsby",
        "author": "F. Scott Fitzgerald",
        "description": "A novel set in the Jazz Age.",
        "genre": "Classic",
        "year": 1925,
        "addedBy": owner_id,
        "createdAt": datetime(2024, 1, 15, 10, 30),
        "updatedAt": datetime(2024, 1, 15, 10, 30),
    }


@pytest.fixture
def sample_review(sample_book, owner_id):
    """Stored review document."""
    return {
        "_id": ObjectId(),
        "bookId": sample_book["_id"],
        "userId": owner_id,
        "rating": 5,
        "reviewText": "A masterpiece of American literature.",
        "createdAt": datetime(2024, 1, 16, 9, 0),
        "updatedAt": datetime(2024, 1, 16, 9, 0),
    }


@pytest.fixture
def current_year():
    return datetime.now(timezone.utc).year
