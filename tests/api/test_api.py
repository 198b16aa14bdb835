"""
Tests for the FastAPI application.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from bson import ObjectId
from bson.errors import InvalidId
from fastapi.testclient import TestClient
from pydantic import ValidationError
from pymongo.errors import DuplicateKeyError

from api.config import config
from api.dependencies import get_book_service, get_db_manager, get_review_service, get_user_service
from api.main import app
from catalog.books import BookService
from catalog.database import MongoDBManager
from catalog.exceptions import (
    AuthenticationError, ConflictError, InvalidCredentialsError, NotFoundError,
    OwnershipError, TokenConfigurationError
)
from catalog.models import BookListQuery, BookRecord, SortBy, SortOrder
from catalog.reviews import ReviewService
from catalog.users import UserService

VALID_TOKEN = "valid-token"
AUTH_HEADERS = {"Authorization": f"Bearer {VALID_TOKEN}"}


@pytest.fixture
def current_user(owner_id):
    return {"_id": owner_id, "name": "Alice", "email": "alice@example.com"}


@pytest.fixture
def user_service(current_user):
    service = AsyncMock(spec=UserService)

    async def authenticate(token):
        if token != VALID_TOKEN:
            raise AuthenticationError("Token is not valid")
        return current_user

    service.authenticate.side_effect = authenticate
    return service


@pytest.fixture
def book_service():
    return AsyncMock(spec=BookService)


@pytest.fixture
def review_service():
    return AsyncMock(spec=ReviewService)


@pytest.fixture
def db_manager():
    manager = MagicMock(spec=MongoDBManager)
    manager.health_check = AsyncMock(return_value={"status": "healthy"})
    return manager


@pytest.fixture
def client(user_service, book_service, review_service, db_manager):
    """Create test client with the services replaced."""
    app.dependency_overrides[get_user_service] = lambda: user_service
    app.dependency_overrides[get_book_service] = lambda: book_service
    app.dependency_overrides[get_review_service] = lambda: review_service
    app.dependency_overrides[get_db_manager] = lambda: db_manager
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()


@pytest.fixture
def book_payload():
    return {
        "title": "1984",
        "author": "George Orwell",
        "description": "A dystopian novel.",
        "genre": "Dystopian",
        "year": 1949,
    }


def error_fields(response):
    return {error["field"]: error["message"] for error in response.json()["errors"]}


class TestHealth:

    def test_health_check(self, client):
        """Test health check endpoint."""
        response = client.get("/api/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "OK"
        assert data["message"] == "Book Review API is running"
        assert data["database_status"] == "healthy"
        assert "version" in data

    def test_health_without_database(self, client):
        app.dependency_overrides[get_db_manager] = lambda: None

        response = client.get("/api/health")

        assert response.status_code == 200
        assert response.json()["status"] == "DEGRADED"


class TestAuthEndpoints:
    """Test cases for signup, login and profile."""

    def test_signup(self, client, user_service):
        user = {"id": str(ObjectId()), "name": "Alice", "email": "alice@example.com"}
        user_service.signup.return_value = {"token": "new-token", "user": user}

        response = client.post(
            "/api/auth/signup",
            json={"name": " Alice ", "email": "alice@example.com", "password": "password123"},
        )

        assert response.status_code == 201
        assert response.json() == {"message": "User created successfully", "token": "new-token", "user": user}
        user_service.signup.assert_awaited_once_with("Alice", "alice@example.com", "password123")

    def test_signup_duplicate_email(self, client, user_service):
        user_service.signup.side_effect = ConflictError("Email already exists")

        response = client.post(
            "/api/auth/signup",
            json={"name": "Alice", "email": "alice@example.com", "password": "password123"},
        )

        assert response.status_code == 400
        assert response.json() == {"message": "Email already exists"}

    def test_signup_invalid_email_lists_field_errors(self, client, user_service):
        response = client.post(
            "/api/auth/signup",
            json={"name": "Alice", "email": "not-an-email", "password": "123"},
        )

        assert response.status_code == 400
        assert response.json()["message"] == "Validation Error"
        assert set(error_fields(response)) == {"email", "password"}
        user_service.signup.assert_not_called()

    def test_signup_without_secret(self, client, user_service):
        user_service.signup.side_effect = TokenConfigurationError()

        response = client.post(
            "/api/auth/signup",
            json={"name": "Alice", "email": "alice@example.com", "password": "password123"},
        )

        assert response.status_code == 500
        assert "token" not in response.json()

    def test_login(self, client, user_service):
        user = {"id": str(ObjectId()), "name": "Alice", "email": "alice@example.com"}
        user_service.login.return_value = {"token": "login-token", "user": user}

        response = client.post("/api/auth/login", json={"email": "alice@example.com", "password": "password123"})

        assert response.status_code == 200
        assert response.json()["message"] == "Login successful"
        assert response.json()["token"] == "login-token"

    def test_login_failure_is_generic(self, client, user_service):
        user_service.login.side_effect = InvalidCredentialsError()

        response = client.post("/api/auth/login", json={"email": "alice@example.com", "password": "wrong"})

        assert response.status_code == 401
        assert response.json() == {"message": "Invalid credentials"}

    def test_profile_requires_token(self, client, user_service):
        response = client.get("/api/auth/profile")

        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"
        user_service.get_profile.assert_not_called()

    def test_profile_rejects_bad_token(self, client):
        response = client.get("/api/auth/profile", headers={"Authorization": "Bearer forged"})

        assert response.status_code == 401
        assert response.json() == {"message": "Token is not valid"}

    def test_profile(self, client, user_service, current_user):
        user_service.get_profile.return_value = {
            "user": {"id": str(current_user["_id"]), "name": "Alice", "email": "alice@example.com"},
            "books": [],
            "reviews": [],
        }

        response = client.get("/api/auth/profile", headers=AUTH_HEADERS)

        assert response.status_code == 200
        assert response.json()["user"]["name"] == "Alice"
        user_service.get_profile.assert_awaited_once_with(current_user)


class TestBookEndpoints:
    """Test cases for the book endpoints."""

    def test_list_books_is_public(self, client, book_service):
        book_service.list_books.return_value = {"page": 1, "totalPages": 0, "totalBooks": 0, "books": []}

        response = client.get("/api/books")

        assert response.status_code == 200
        assert response.json() == {"page": 1, "totalPages": 0, "totalBooks": 0, "books": []}

    def test_list_books_query_parameters(self, client, book_service):
        book_service.list_books.return_value = {"page": 2, "totalPages": 3, "totalBooks": 12, "books": []}

        response = client.get(
            "/api/books?page=2&search=orwell&genre=dystopian&year=1949&sortBy=averageRating&sortOrder=asc"
        )

        assert response.status_code == 200
        query = book_service.list_books.call_args[0][0]
        assert isinstance(query, BookListQuery)
        assert query.page == 2
        assert query.search == "orwell"
        assert query.genre == "dystopian"
        assert query.year == 1949
        assert query.sort_by == SortBy.AVERAGE_RATING
        assert query.sort_order == SortOrder.ASC

    def test_list_books_tolerates_bad_parameters(self, client, book_service):
        book_service.list_books.return_value = {"page": 1, "totalPages": 0, "totalBooks": 0, "books": []}

        response = client.get("/api/books?page=abc&year=soon&sortBy=title")

        assert response.status_code == 200
        query = book_service.list_books.call_args[0][0]
        assert query.page == 1
        assert query.year is None
        assert query.sort_by == SortBy.CREATED_AT

    def test_get_book(self, client, book_service):
        book_id = str(ObjectId())
        book_service.get_book_details.return_value = {
            "book": {"_id": book_id, "title": "1984"},
            "reviews": [],
            "averageRating": 0,
        }

        response = client.get(f"/api/books/{book_id}")

        assert response.status_code == 200
        assert response.json()["averageRating"] == 0
        book_service.get_book_details.assert_awaited_once_with(book_id)

    def test_get_unknown_book(self, client, book_service):
        book_service.get_book_details.side_effect = NotFoundError("Book not found")

        response = client.get(f"/api/books/{ObjectId()}")

        assert response.status_code == 404
        assert response.json() == {"message": "Book not found"}

    def test_malformed_book_id(self, client, book_service):
        book_service.get_book_details.side_effect = InvalidId("'bad' is not a valid ObjectId")

        response = client.get("/api/books/bad")

        assert response.status_code == 400
        assert response.json() == {"message": "Invalid ID format"}

    def test_create_book_requires_token(self, client, book_service, book_payload):
        response = client.post("/api/books", json=book_payload)

        assert response.status_code == 401
        book_service.create_book.assert_not_called()

    def test_create_book(self, client, book_service, book_payload, current_user):
        book_service.create_book.return_value = dict(book_payload, _id=str(ObjectId()))

        response = client.post("/api/books", json=dict(book_payload, title="  1984  "), headers=AUTH_HEADERS)

        assert response.status_code == 201
        assert response.json()["message"] == "Book added successfully"
        data, owner = book_service.create_book.call_args[0]
        assert data["title"] == "1984"
        assert owner == current_user["_id"]

    def test_create_book_year_bounds(self, client, book_service, book_payload):
        book_service.create_book.return_value = dict(book_payload, _id=str(ObjectId()))
        next_year = datetime.now(timezone.utc).year + 1

        too_old = client.post("/api/books", json=dict(book_payload, year=999), headers=AUTH_HEADERS)
        upcoming = client.post("/api/books", json=dict(book_payload, year=next_year), headers=AUTH_HEADERS)
        too_new = client.post("/api/books", json=dict(book_payload, year=next_year + 1), headers=AUTH_HEADERS)

        assert too_old.status_code == 400
        assert error_fields(too_old) == {"year": "Valid year is required"}
        assert upcoming.status_code == 201
        assert too_new.status_code == 400

    @pytest.mark.parametrize("field", ["title", "author", "description", "genre"])
    def test_create_book_requires_text_fields(self, client, book_service, book_payload, field):
        blank = client.post("/api/books", json=dict(book_payload, **{field: "   "}), headers=AUTH_HEADERS)
        missing_payload = dict(book_payload)
        del missing_payload[field]
        missing = client.post("/api/books", json=missing_payload, headers=AUTH_HEADERS)

        assert blank.status_code == 400
        assert missing.status_code == 400
        assert field in error_fields(missing)
        book_service.create_book.assert_not_called()

    def test_update_book_with_empty_title_is_accepted(self, client, book_service, current_user):
        book_id = str(ObjectId())
        book_service.update_book.return_value = {"_id": book_id, "title": "1984"}

        response = client.put(f"/api/books/{book_id}", json={"title": ""}, headers=AUTH_HEADERS)

        assert response.status_code == 200
        assert response.json()["message"] == "Book updated successfully"
        book_service.update_book.assert_awaited_once_with(
            book_id,
            {"title": "", "author": None, "description": None, "genre": None, "year": None},
            current_user["_id"],
        )

    def test_update_book_by_non_owner(self, client, book_service):
        book_service.update_book.side_effect = OwnershipError()

        response = client.put(f"/api/books/{ObjectId()}", json={"title": "Mine now"}, headers=AUTH_HEADERS)

        assert response.status_code == 403
        assert response.json() == {"message": "Unauthorized"}

    def test_update_unknown_book(self, client, book_service):
        book_service.update_book.side_effect = NotFoundError("Book not found")

        response = client.put(f"/api/books/{ObjectId()}", json={"title": "New"}, headers=AUTH_HEADERS)

        assert response.status_code == 404

    def test_delete_book(self, client, book_service, current_user):
        book_id = str(ObjectId())

        response = client.delete(f"/api/books/{book_id}", headers=AUTH_HEADERS)

        assert response.status_code == 200
        assert response.json() == {"message": "Book deleted successfully"}
        book_service.delete_book.assert_awaited_once_with(book_id, current_user["_id"])


class TestReviewEndpoints:
    """Test cases for the review endpoints."""

    def test_create_review_accepts_comment(self, client, review_service, current_user):
        book_id = str(ObjectId())
        review_service.create_review.return_value = {"_id": str(ObjectId()), "bookId": book_id, "rating": 4}

        response = client.post(
            "/api/reviews",
            json={"bookId": book_id, "rating": 4, "comment": "Chilling"},
            headers=AUTH_HEADERS,
        )

        assert response.status_code == 201
        assert response.json()["message"] == "Review added successfully"
        review_service.create_review.assert_awaited_once_with(book_id, 4, "Chilling", current_user["_id"])

    def test_create_review_prefers_review_text(self, client, review_service, current_user):
        book_id = str(ObjectId())
        review_service.create_review.return_value = {"_id": str(ObjectId())}

        client.post(
            "/api/reviews",
            json={"bookId": book_id, "rating": 5, "reviewText": "Superb", "comment": "Ignored"},
            headers=AUTH_HEADERS,
        )

        review_service.create_review.assert_awaited_once_with(book_id, 5, "Superb", current_user["_id"])

    @pytest.mark.parametrize("rating", [0, 6])
    def test_create_review_rating_out_of_range(self, client, review_service, rating):
        response = client.post(
            "/api/reviews",
            json={"bookId": str(ObjectId()), "rating": rating, "reviewText": "Text"},
            headers=AUTH_HEADERS,
        )

        assert response.status_code == 400
        assert error_fields(response)["rating"] == "Rating must be between 1 and 5"
        review_service.create_review.assert_not_called()

    def test_create_review_requires_valid_book_id_and_text(self, client, review_service):
        response = client.post(
            "/api/reviews",
            json={"bookId": "bad", "rating": 4, "reviewText": "  "},
            headers=AUTH_HEADERS,
        )

        assert response.status_code == 400
        fields = error_fields(response)
        assert fields["bookId"] == "Valid book ID is required"
        assert fields["comment"] == "Review text is required"

    def test_create_duplicate_review(self, client, review_service):
        review_service.create_review.side_effect = ConflictError("You have already reviewed this book")

        response = client.post(
            "/api/reviews",
            json={"bookId": str(ObjectId()), "rating": 4, "reviewText": "Again"},
            headers=AUTH_HEADERS,
        )

        assert response.status_code == 400
        assert response.json() == {"message": "You have already reviewed this book"}

    def test_create_review_requires_token(self, client, review_service):
        response = client.post("/api/reviews", json={"bookId": str(ObjectId()), "rating": 4, "reviewText": "Hi"})

        assert response.status_code == 401
        review_service.create_review.assert_not_called()

    def test_update_review(self, client, review_service, current_user):
        review_id = str(ObjectId())
        review_service.update_review.return_value = {"_id": review_id, "rating": 3}

        response = client.put(f"/api/reviews/{review_id}", json={"rating": 3}, headers=AUTH_HEADERS)

        assert response.status_code == 200
        assert response.json()["message"] == "Review updated successfully"
        review_service.update_review.assert_awaited_once_with(
            review_id, {"rating": 3, "reviewText": None}, current_user["_id"]
        )

    def test_update_review_by_non_author(self, client, review_service):
        review_service.update_review.side_effect = OwnershipError()

        response = client.put(f"/api/reviews/{ObjectId()}", json={"rating": 1}, headers=AUTH_HEADERS)

        assert response.status_code == 403

    def test_delete_review(self, client, review_service):
        response = client.delete(f"/api/reviews/{ObjectId()}", headers=AUTH_HEADERS)

        assert response.status_code == 200
        assert response.json() == {"message": "Review deleted successfully"}

    def test_delete_unknown_review(self, client, review_service):
        review_service.delete_review.side_effect = NotFoundError("Review not found")

        response = client.delete(f"/api/reviews/{ObjectId()}", headers=AUTH_HEADERS)

        assert response.status_code == 404
        assert response.json() == {"message": "Review not found"}


class TestErrorHandling:

    def test_duplicate_key_from_storage(self, client, user_service):
        user_service.signup.side_effect = DuplicateKeyError(
            "E11000 duplicate key error", 11000, {"keyPattern": {"email": 1}}
        )

        response = client.post(
            "/api/auth/signup",
            json={"name": "Alice", "email": "alice@example.com", "password": "password123"},
        )

        assert response.status_code == 400
        assert response.json() == {"message": "A user with this email already exists."}

    def test_unexpected_error_hides_details(self, client, book_service, monkeypatch):
        monkeypatch.setattr(config, "debug", False)
        book_service.list_books.side_effect = RuntimeError("connection pool exhausted")

        response = client.get("/api/books")

        assert response.status_code == 500
        assert response.json() == {"message": "Internal server error"}

    def test_stored_record_validation_failure_is_server_error(self, client, book_service, book_payload, monkeypatch):
        """Test that a record rejected after request validation is not reported as bad input."""
        monkeypatch.setattr(config, "debug", False)
        with pytest.raises(ValidationError) as exc_info:
            BookRecord(added_by=ObjectId(), **dict(book_payload, year=999))
        book_service.create_book.side_effect = exc_info.value

        response = client.post("/api/books", json=book_payload, headers=AUTH_HEADERS)

        assert response.status_code == 500
        assert response.json() == {"message": "Internal server error"}


class TestOpenAPI:

    def test_description_comes_from_settings(self):
        assert config.api_description in app.description
