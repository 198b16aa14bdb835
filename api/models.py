"""
API models and schemas for the FastAPI application.
"""

from typing import Any, Dict, List, Optional

from bson import ObjectId
from pydantic import BaseModel, EmailStr, Field, validator

from catalog.models import MIN_BOOK_YEAR, max_book_year

BOOK_TEXT_FIELDS = ("title", "author", "description", "genre")


def strip_text(v):
    return v.strip() if isinstance(v, str) else v


def check_year(v: int) -> int:
    if v < MIN_BOOK_YEAR or v > max_book_year():
        raise ValueError("Valid year is required")
    return v


def check_rating(v: int) -> int:
    if v < 1 or v > 5:
        raise ValueError("Rating must be between 1 and 5")
    return v


# Requests

class SignupRequest(BaseModel):
    """User registration request."""
    name: str = Field(..., min_length=1, max_length=100, description="Display name")
    email: EmailStr = Field(..., description="Email address")
    # bcrypt only looks at the first 72 bytes
    password: str = Field(..., min_length=6, max_length=72, description="Password")

    @validator("name", pre=True)
    def strip_name(cls, v):
        return strip_text(v)


class LoginRequest(BaseModel):
    """User login request."""
    email: EmailStr = Field(..., description="Email address")
    password: str = Field(..., min_length=1, description="Password")


class BookCreateRequest(BaseModel):
    """New book submission; every field is required."""
    title: str = Field(..., min_length=1, description="Book title")
    author: str = Field(..., min_length=1, description="Book author")
    description: str = Field(..., min_length=1, description="Book description")
    genre: str = Field(..., min_length=1, description="Book genre")
    year: int = Field(..., description="Publication year (1000 to next year)")

    @validator(*BOOK_TEXT_FIELDS, pre=True)
    def strip_fields(cls, v):
        return strip_text(v)

    @validator("year")
    def validate_year(cls, v):
        return check_year(v)


class BookUpdateRequest(BaseModel):
    """
    Partial book update.

    Empty strings and 0 are accepted and mean "leave unchanged".
    """
    title: Optional[str] = None
    author: Optional[str] = None
    description: Optional[str] = None
    genre: Optional[str] = None
    year: Optional[int] = None

    @validator(*BOOK_TEXT_FIELDS, pre=True)
    def strip_fields(cls, v):
        return strip_text(v)

    @validator("year")
    def validate_year(cls, v):
        if v:
            check_year(v)
        return v


class ReviewCreateRequest(BaseModel):
    """New review; the text may be sent as `reviewText` or `comment`."""
    bookId: str = Field(..., description="Reviewed book id")
    rating: int = Field(..., description="Rating (1-5)")
    reviewText: Optional[str] = Field(None, description="Review text")
    comment: Optional[str] = Field(None, description="Alias of reviewText")

    @validator("reviewText", "comment", pre=True)
    def strip_fields(cls, v):
        return strip_text(v)

    @validator("bookId")
    def validate_book_id(cls, v):
        if not ObjectId.is_valid(v):
            raise ValueError("Valid book ID is required")
        return v

    @validator("rating")
    def validate_rating(cls, v):
        return check_rating(v)

    @validator("comment", always=True)
    def require_text(cls, v, values):
        """Either reviewText or comment must carry non-empty text."""
        if not (values.get("reviewText") or v):
            raise ValueError("Review text is required")
        return v

    @property
    def text(self) -> str:
        return self.reviewText or self.comment


class ReviewUpdateRequest(BaseModel):
    """Partial review update; 0 and empty text mean "leave unchanged"."""
    rating: Optional[int] = None
    reviewText: Optional[str] = None

    @validator("reviewText", pre=True)
    def strip_review_text(cls, v):
        return strip_text(v)

    @validator("rating")
    def validate_rating(cls, v):
        if v:
            check_rating(v)
        return v


# Responses

class PublicUser(BaseModel):
    id: str
    name: str
    email: str


class AuthResponse(BaseModel):
    """Signup / login response."""
    message: str
    token: str
    user: PublicUser


class ProfileResponse(BaseModel):
    user: PublicUser
    books: List[Dict[str, Any]]
    reviews: List[Dict[str, Any]]


class BookListResponse(BaseModel):
    """Response model for book list with pagination."""
    page: int = Field(..., description="Current page number")
    totalPages: int = Field(..., description="Total number of pages")
    totalBooks: int = Field(..., description="Total number of matching books")
    books: List[Dict[str, Any]] = Field(..., description="Books on this page")


class BookDetailResponse(BaseModel):
    book: Dict[str, Any]
    reviews: List[Dict[str, Any]]
    averageRating: float = Field(..., description="Mean rating, 0 without reviews")


class BookMutationResponse(BaseModel):
    message: str
    book: Dict[str, Any]


class ReviewMutationResponse(BaseModel):
    message: str
    review: Dict[str, Any]


class MessageResponse(BaseModel):
    message: str


class FieldError(BaseModel):
    field: str
    message: str


class ErrorResponse(BaseModel):
    """Error response model."""
    message: str = Field(..., description="Error message")
    errors: Optional[List[FieldError]] = Field(None, description="Field-level validation errors")
    detail: Optional[str] = Field(None, description="Additional error details (debug only)")


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(..., description="Service status")
    message: str = Field(..., description="Human readable status")
    version: str = Field(..., description="API version")
    database_status: str = Field(..., description="Database connection status")
