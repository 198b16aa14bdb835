"""
Service registry and FastAPI dependency providers.

The lifespan manager in `api.main` fills the registry once at startup;
tests replace providers through `app.dependency_overrides`.
"""

from typing import Optional

from fastapi import HTTPException, status

from catalog.books import BookService
from catalog.database import MongoDBManager
from catalog.reviews import ReviewService
from catalog.users import UserService


class ServiceRegistry:
    """Process-wide handles on the database manager and services."""

    def __init__(self):
        self.db_manager: Optional[MongoDBManager] = None
        self.user_service: Optional[UserService] = None
        self.book_service: Optional[BookService] = None
        self.review_service: Optional[ReviewService] = None

    def clear(self) -> None:
        self.__init__()


services = ServiceRegistry()


def _require(service):
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Database service not available",
        )
    return service


def get_db_manager() -> Optional[MongoDBManager]:
    """Database manager, or None before startup (health check reports it)."""
    return services.db_manager


def get_user_service() -> UserService:
    return _require(services.user_service)


def get_book_service() -> BookService:
    return _require(services.book_service)


def get_review_service() -> ReviewService:
    return _require(services.review_service)
