"""
FastAPI main application for the Book Review API.
"""

from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

import structlog
from bson.errors import InvalidId
from fastapi import Depends, FastAPI, Request, status
from fastapi.exceptions import HTTPException, RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import DuplicateKeyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.auth import get_current_user
from api.config import config
from api.dependencies import (
    get_book_service, get_db_manager, get_review_service, get_user_service, services
)
from api.models import (
    AuthResponse, BookCreateRequest, BookDetailResponse, BookListResponse,
    BookMutationResponse, BookUpdateRequest, ErrorResponse, FieldError,
    HealthResponse, LoginRequest, MessageResponse, ProfileResponse,
    ReviewCreateRequest, ReviewMutationResponse, ReviewUpdateRequest, SignupRequest
)
from catalog.books import BookService
from catalog.database import MongoDBManager
from catalog.exceptions import CatalogError
from catalog.models import BookListQuery
from catalog.reviews import DUPLICATE_REVIEW_MESSAGE, ReviewService
from catalog.security import TokenManager
from catalog.users import UserService
from utilities.logger import RequestTimer, setup_logging

# Setup logging
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager; the single startup routine."""
    setup_logging(
        log_level=config.log_level,
        log_format=config.log_format,
        log_file=config.log_file,
        debug=config.debug
    )
    logger.info("Starting Book Review API", port=config.port)

    if not config.jwt_secret:
        logger.warning("JWT_SECRET is not set; signup and login will fail")

    db_manager = MongoDBManager(config.mongodb_url, config.mongodb_database)
    try:
        await db_manager.connect()
    except Exception as e:
        logger.error("Failed to connect to database", error=str(e))
        raise

    token_manager = TokenManager(
        secret=config.jwt_secret,
        algorithm=config.jwt_algorithm,
        expire_days=config.jwt_expire_days,
    )
    services.db_manager = db_manager
    services.user_service = UserService(db_manager, token_manager)
    services.book_service = BookService(db_manager, page_size=config.books_per_page)
    services.review_service = ReviewService(db_manager)

    yield

    # Shutdown
    logger.info("Shutting down Book Review API")
    await db_manager.disconnect()
    services.clear()


# Create FastAPI application
app = FastAPI(
    title=config.api_title,
    description=f"""
    {config.api_description}

    ## Authentication

    Signup and login return a token. Send it on protected endpoints:

    ```
    Authorization: Bearer your_token_here
    ```

    Books and reviews can only be changed or deleted by the user who created them.
    """,
    version=config.api_version,
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log method, path, status and duration of every request."""
    timer = RequestTimer(logger, request.method, request.url.path)
    response = await call_next(request)
    timer.log_response(response.status_code)
    return response


def error_response(status_code: int, message: str, headers: Optional[Dict[str, str]] = None, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(message=message, **extra).dict(exclude_none=True),
        headers=headers,
    )


def catalog_http_error(exc: CatalogError) -> HTTPException:
    """Map a domain error to the HTTP error the route answers with."""
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == status.HTTP_401_UNAUTHORIZED else None
    return HTTPException(status_code=exc.status_code, detail=exc.message, headers=headers)


# Exception handlers
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions."""
    return error_response(exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))


def field_errors(errors) -> list:
    result = []
    for error in errors:
        location = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        message = error.get("msg", "Invalid value")
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        result.append(FieldError(field=".".join(location) or "body", message=message))
    return result


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Malformed or missing request fields answer 400 with per-field messages."""
    return error_response(
        status.HTTP_400_BAD_REQUEST,
        "Validation Error",
        errors=field_errors(exc.errors()),
    )


@app.exception_handler(DuplicateKeyError)
async def duplicate_key_handler(request: Request, exc: DuplicateKeyError):
    """Unique index violations are conflicts, reported as 400."""
    key_pattern = (exc.details or {}).get("keyPattern", {})
    if "email" in key_pattern:
        message = "A user with this email already exists."
    elif "bookId" in key_pattern:
        message = DUPLICATE_REVIEW_MESSAGE
    else:
        message = "Duplicate value"
    logger.warning("Duplicate key rejected", path=request.url.path, key_pattern=key_pattern)
    return error_response(status.HTTP_400_BAD_REQUEST, message)


@app.exception_handler(InvalidId)
async def invalid_id_handler(request: Request, exc: InvalidId):
    return error_response(status.HTTP_400_BAD_REQUEST, "Invalid ID format")


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle general exceptions."""
    logger.error("Unhandled exception", error=str(exc), path=request.url.path, exc_info=exc)
    return error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "Internal server error",
        detail=str(exc) if config.debug else None,
    )


# Health check endpoint (no authentication required)
@app.get("/api/health", response_model=HealthResponse, tags=["Health"])
async def health_check(db_manager: Optional[MongoDBManager] = Depends(get_db_manager)):
    """Health check endpoint."""
    db_status = "unavailable"
    if db_manager:
        health_info = await db_manager.health_check()
        db_status = health_info.get("status", "unknown")

    healthy = db_status == "healthy"
    return HealthResponse(
        status="OK" if healthy else "DEGRADED",
        message="Book Review API is running",
        version=config.api_version,
        database_status=db_status
    )


# Auth endpoints
@app.post("/api/auth/signup", response_model=AuthResponse, status_code=status.HTTP_201_CREATED, tags=["Auth"])
async def signup(payload: SignupRequest, user_service: UserService = Depends(get_user_service)):
    """Register a new user and return a token."""
    try:
        result = await user_service.signup(payload.name, payload.email, payload.password)
    except CatalogError as e:
        raise catalog_http_error(e)

    return {"message": "User created successfully", **result}


@app.post("/api/auth/login", response_model=AuthResponse, tags=["Auth"])
async def login(payload: LoginRequest, user_service: UserService = Depends(get_user_service)):
    """Exchange email and password for a token."""
    try:
        result = await user_service.login(payload.email, payload.password)
    except CatalogError as e:
        raise catalog_http_error(e)

    return {"message": "Login successful", **result}


@app.get("/api/auth/profile", response_model=ProfileResponse, tags=["Auth"])
async def get_profile(
    current_user: Dict[str, Any] = Depends(get_current_user),
    user_service: UserService = Depends(get_user_service),
):
    """The caller's public profile with their books and reviews."""
    return await user_service.get_profile(current_user)


# Books endpoints
@app.get("/api/books", response_model=BookListResponse, tags=["Books"])
async def list_books(
    page: Optional[str] = None,
    search: Optional[str] = None,
    genre: Optional[str] = None,
    year: Optional[str] = None,
    sortBy: Optional[str] = None,
    sortOrder: Optional[str] = None,
    book_service: BookService = Depends(get_book_service),
):
    """
    Get books with search, filtering, sorting, and pagination.

    - **page**: Page number (starts from 1, 5 books per page)
    - **search**: Case-insensitive substring of title or author
    - **genre**: Case-insensitive substring of genre
    - **year**: Exact publication year
    - **sortBy**: createdAt, year or averageRating
    - **sortOrder**: asc or desc (default)
    """
    query = BookListQuery(
        page=page,
        search=search,
        genre=genre,
        year=year,
        sort_by=sortBy,
        sort_order=sortOrder,
    )
    return await book_service.list_books(query)


@app.get("/api/books/{book_id}", response_model=BookDetailResponse, tags=["Books"])
async def get_book(book_id: str, book_service: BookService = Depends(get_book_service)):
    """Get a book with its reviews and average rating."""
    try:
        return await book_service.get_book_details(book_id)
    except CatalogError as e:
        raise catalog_http_error(e)


@app.post("/api/books", response_model=BookMutationResponse, status_code=status.HTTP_201_CREATED, tags=["Books"])
async def create_book(
    payload: BookCreateRequest,
    current_user: Dict[str, Any] = Depends(get_current_user),
    book_service: BookService = Depends(get_book_service),
):
    """Add a book owned by the caller."""
    book = await book_service.create_book(payload.dict(), current_user["_id"])
    return {"message": "Book added successfully", "book": book}


@app.put("/api/books/{book_id}", response_model=BookMutationResponse, tags=["Books"])
async def update_book(
    book_id: str,
    payload: BookUpdateRequest,
    current_user: Dict[str, Any] = Depends(get_current_user),
    book_service: BookService = Depends(get_book_service),
):
    """Update fields of a book the caller added."""
    try:
        book = await book_service.update_book(book_id, payload.dict(), current_user["_id"])
    except CatalogError as e:
        raise catalog_http_error(e)

    return {"message": "Book updated successfully", "book": book}


@app.delete("/api/books/{book_id}", response_model=MessageResponse, tags=["Books"])
async def delete_book(
    book_id: str,
    current_user: Dict[str, Any] = Depends(get_current_user),
    book_service: BookService = Depends(get_book_service),
):
    """Delete a book the caller added, with its reviews."""
    try:
        await book_service.delete_book(book_id, current_user["_id"])
    except CatalogError as e:
        raise catalog_http_error(e)

    return {"message": "Book deleted successfully"}


# Reviews endpoints
@app.post("/api/reviews", response_model=ReviewMutationResponse, status_code=status.HTTP_201_CREATED, tags=["Reviews"])
async def create_review(
    payload: ReviewCreateRequest,
    current_user: Dict[str, Any] = Depends(get_current_user),
    review_service: ReviewService = Depends(get_review_service),
):
    """Review a book; one review per user per book."""
    try:
        review = await review_service.create_review(
            payload.bookId, payload.rating, payload.text, current_user["_id"]
        )
    except CatalogError as e:
        raise catalog_http_error(e)

    return {"message": "Review added successfully", "review": review}


@app.put("/api/reviews/{review_id}", response_model=ReviewMutationResponse, tags=["Reviews"])
async def update_review(
    review_id: str,
    payload: ReviewUpdateRequest,
    current_user: Dict[str, Any] = Depends(get_current_user),
    review_service: ReviewService = Depends(get_review_service),
):
    """Update the caller's own review."""
    try:
        review = await review_service.update_review(review_id, payload.dict(), current_user["_id"])
    except CatalogError as e:
        raise catalog_http_error(e)

    return {"message": "Review updated successfully", "review": review}


@app.delete("/api/reviews/{review_id}", response_model=MessageResponse, tags=["Reviews"])
async def delete_review(
    review_id: str,
    current_user: Dict[str, Any] = Depends(get_current_user),
    review_service: ReviewService = Depends(get_review_service),
):
    """Delete the caller's own review."""
    try:
        await review_service.delete_review(review_id, current_user["_id"])
    except CatalogError as e:
        raise catalog_http_error(e)

    return {"message": "Review deleted successfully"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "api.main:app",
        host=config.host,
        port=config.port,
        reload=config.debug,
        log_level="info"
    )
