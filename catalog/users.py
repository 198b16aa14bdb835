"""
User accounts: signup, login, token-based lookup and profile.
"""

from typing import Any, Dict, Optional

import structlog
from bson import ObjectId
from bson.errors import InvalidId
from pymongo.errors import DuplicateKeyError

from catalog.database import MongoDBManager, attach_references
from catalog.exceptions import AuthenticationError, ConflictError, InvalidCredentialsError, TokenConfigurationError
from catalog.models import UserRecord, public_user, serialize_document
from catalog.security import TokenManager, hash_password, verify_password

logger = structlog.get_logger(__name__)

EMAIL_EXISTS_MESSAGE = "Email already exists"


def normalize_email(email: str) -> str:
    return email.strip().lower()


class UserService:
    """Authentication service over the `users` collection."""

    def __init__(self, db_manager: MongoDBManager, token_manager: TokenManager):
        self.db_manager = db_manager
        self.token_manager = token_manager

    async def signup(self, name: str, email: str, password: str) -> Dict[str, Any]:
        """
        Register a new user and sign them in.

        Args:
            name: Display name
            email: Email address, compared case-insensitively
            password: Plain password, stored only as a salted hash

        Returns:
            Dictionary with `token` and the public `user` view

        Raises:
            ConflictError: If the email is already registered
            TokenConfigurationError: If tokens cannot be signed
        """
        # Fail before writing anything if no token could be issued
        if not self.token_manager.is_configured:
            raise TokenConfigurationError()

        email = normalize_email(email)
        if await self.db_manager.users.find_one({"email": email}, {"_id": 1}):
            logger.info("Signup rejected, email exists")
            raise ConflictError(EMAIL_EXISTS_MESSAGE)

        record = UserRecord(name=name.strip(), email=email, password_hash=hash_password(password))
        document = record.to_document()
        try:
            result = await self.db_manager.users.insert_one(document)
        except DuplicateKeyError:
            raise ConflictError(EMAIL_EXISTS_MESSAGE)

        document["_id"] = result.inserted_id
        logger.info("User signed up", user_id=str(result.inserted_id))

        return {
            "token": self.token_manager.issue(result.inserted_id),
            "user": public_user(document),
        }

    async def login(self, email: str, password: str) -> Dict[str, Any]:
        """
        Check credentials and issue a token.

        Unknown email and wrong password raise the same error.

        Raises:
            InvalidCredentialsError: If the credentials do not match a user
        """
        user = await self.db_manager.users.find_one({"email": normalize_email(email)})
        if not user or not verify_password(password, user.get("passwordHash", "")):
            logger.info("Login failed")
            raise InvalidCredentialsError()

        logger.info("User logged in", user_id=str(user["_id"]))
        return {
            "token": self.token_manager.issue(user["_id"]),
            "user": public_user(user),
        }

    async def get_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        """Fetch a user without the password hash; None for unknown or malformed ids."""
        try:
            object_id = ObjectId(user_id)
        except (InvalidId, TypeError):
            return None
        return await self.db_manager.users.find_one({"_id": object_id}, {"passwordHash": 0})

    async def authenticate(self, token: Optional[str]) -> Dict[str, Any]:
        """
        Resolve the user a bearer token belongs to.

        Raises:
            AuthenticationError: If the token is invalid or the user is gone
        """
        user_id = self.token_manager.verify(token)
        user = await self.get_user(user_id)
        if not user:
            raise AuthenticationError("Token is not valid")
        return user

    async def get_profile(self, user: Dict[str, Any]) -> Dict[str, Any]:
        """The user's public view, the books they added and the reviews they wrote."""
        books_cursor = self.db_manager.books.find({"addedBy": user["_id"]}).sort("createdAt", -1)
        books = await books_cursor.to_list(length=None)

        reviews_cursor = self.db_manager.reviews.find({"userId": user["_id"]}).sort("createdAt", -1)
        reviews = await reviews_cursor.to_list(length=None)
        await attach_references(reviews, "bookId", self.db_manager.books, ("title",))

        return {
            "user": public_user(user),
            "books": [serialize_document(book) for book in books],
            "reviews": [serialize_document(review) for review in reviews],
        }
