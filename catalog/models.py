"""
Pydantic models for the documents stored in MongoDB.
Field aliases match the stored (and serialized) camelCase keys.
"""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Optional

from bson import ObjectId
from pydantic import BaseModel, Field, validator

MIN_BOOK_YEAR = 1000


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def max_book_year() -> int:
    """Latest accepted publication year (next calendar year)."""
    return utc_now().year + 1


class ReviewRating(int, Enum):
    """Enum for review rating values (1-5 stars)."""
    ONE = 1
    TWO = 2
    THREE = 3
    FOUR = 4
    FIVE = 5


class OtpPurpose(str, Enum):
    SIGNUP = "signup"
    LOGIN = "login"


class StoredDocument(BaseModel):
    """Base for stored records; `to_document()` yields the MongoDB shape."""

    model_config = {
        "populate_by_name": True,
        "arbitrary_types_allowed": True,
    }

    def to_document(self) -> Dict[str, Any]:
        document = self.dict(by_alias=True)
        for key, value in document.items():
            if isinstance(value, Enum):
                document[key] = value.value
        return document


class UserRecord(StoredDocument):
    """Registered user. Email is stored trimmed and lower-cased."""
    name: str = Field(..., min_length=1, description="Display name")
    email: str = Field(..., description="Unique, case-normalized email")
    password_hash: str = Field(..., alias="passwordHash", description="bcrypt hash")
    created_at: datetime = Field(default_factory=utc_now, alias="createdAt")

    @validator("email")
    def normalize_email(cls, v):
        return v.strip().lower()


class BookRecord(StoredDocument):
    """
    Book added by a user. `addedBy` never changes after creation.
    """
    title: str = Field(..., min_length=1)
    author: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    genre: str = Field(..., min_length=1)
    year: int = Field(..., description="Publication year")
    added_by: ObjectId = Field(..., alias="addedBy", description="Creator user id")
    created_at: datetime = Field(default_factory=utc_now, alias="createdAt")
    updated_at: datetime = Field(default_factory=utc_now, alias="updatedAt")

    @validator("year")
    def validate_year(cls, v):
        """Ensure the year is between 1000 and next calendar year."""
        if v < MIN_BOOK_YEAR or v > max_book_year():
            raise ValueError(f"year must be between {MIN_BOOK_YEAR} and {max_book_year()}")
        return v


class ReviewRecord(StoredDocument):
    """One user's review of one book; (bookId, userId) is unique."""
    book_id: ObjectId = Field(..., alias="bookId")
    user_id: ObjectId = Field(..., alias="userId")
    rating: ReviewRating = Field(..., description="Rating (1-5)")
    review_text: str = Field(..., min_length=1, alias="reviewText")
    created_at: datetime = Field(default_factory=utc_now, alias="createdAt")
    updated_at: datetime = Field(default_factory=utc_now, alias="updatedAt")


class OneTimeCode(StoredDocument):
    """Verification code kept in the TTL-indexed `otps` collection."""
    email: str
    otp: str
    purpose: OtpPurpose
    expires_at: datetime = Field(
        default_factory=lambda: utc_now() + timedelta(minutes=10),
        alias="expiresAt",
    )

    @validator("email")
    def normalize_email(cls, v):
        return v.strip().lower()


class SortBy(str, Enum):
    """Sort options for book listings."""
    CREATED_AT = "createdAt"
    YEAR = "year"
    AVERAGE_RATING = "averageRating"


class SortOrder(str, Enum):
    """Sort order options."""
    ASC = "asc"
    DESC = "desc"


class BookListQuery(BaseModel):
    """
    Query parameters for book listing.

    Parsing is lenient: unusable values fall back to defaults instead of
    failing the request (page 1, no year filter, newest first).
    """
    page: int = Field(1, ge=1, description="Page number")
    search: Optional[str] = Field(None, description="Substring of title or author")
    genre: Optional[str] = Field(None, description="Substring of genre")
    year: Optional[int] = Field(None, description="Exact publication year")
    sort_by: SortBy = Field(SortBy.CREATED_AT, description="Sort field")
    sort_order: SortOrder = Field(SortOrder.DESC, description="Sort order")

    @validator("page", pre=True, always=True)
    def parse_page(cls, v):
        try:
            page = int(v)
        except (TypeError, ValueError):
            return 1
        return page if page >= 1 else 1

    @validator("search", "genre", pre=True, always=True)
    def blank_to_none(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    @validator("year", pre=True, always=True)
    def parse_year(cls, v):
        try:
            return int(v) or None
        except (TypeError, ValueError):
            return None

    @validator("sort_by", pre=True, always=True)
    def parse_sort_by(cls, v):
        try:
            return SortBy(v)
        except ValueError:
            return SortBy.CREATED_AT

    @validator("sort_order", pre=True, always=True)
    def parse_sort_order(cls, v):
        return SortOrder.ASC if v == SortOrder.ASC.value else SortOrder.DESC


def serialize_value(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        # motor hands back naive datetimes that are already UTC
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.isoformat()
    if isinstance(value, dict):
        return serialize_document(value)
    if isinstance(value, list):
        return [serialize_value(item) for item in value]
    return value


def serialize_document(document: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """
    Convert a stored document into JSON-safe values.

    ObjectIds become hex strings and datetimes ISO-8601 strings. Password
    hashes are dropped at every nesting level.
    """
    if document is None:
        return None
    return {
        key: serialize_value(value)
        for key, value in document.items()
        if key != "passwordHash"
    }


def public_user(user: Dict[str, Any]) -> Dict[str, str]:
    """Public view of a user: {id, name, email}."""
    return {
        "id": str(user["_id"]),
        "name": user.get("name"),
        "email": user.get("email"),
    }
