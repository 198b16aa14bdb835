"""
Password hashing and bearer token handling.
"""

from datetime import timedelta
from typing import Optional

import structlog
from jose import JWTError, jwt
from passlib.context import CryptContext

from catalog.exceptions import AuthenticationError, TokenConfigurationError
from catalog.models import utc_now

logger = structlog.get_logger(__name__)

# Password hashing context
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    """Hash a password with a per-password salt."""
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash."""
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError:
        # Stored value is not a recognizable hash
        return False


class TokenManager:
    """
    Issues and verifies signed tokens whose only claim is the user id.
    """

    def __init__(self, secret: Optional[str], algorithm: str = "HS256", expire_days: int = 7):
        self.secret = secret
        self.algorithm = algorithm
        self.expire_days = expire_days

    @property
    def is_configured(self) -> bool:
        return bool(self.secret)

    def issue(self, user_id) -> str:
        """
        Create a signed token for a user.

        Raises:
            TokenConfigurationError: If no signing secret is configured
        """
        if not self.is_configured:
            logger.error("Refusing to issue token without a signing secret")
            raise TokenConfigurationError()

        claims = {
            "userId": str(user_id),
            "exp": utc_now() + timedelta(days=self.expire_days),
        }
        return jwt.encode(claims, self.secret, algorithm=self.algorithm)

    def verify(self, token: Optional[str]) -> str:
        """
        Verify a token and return the user id it carries.

        Raises:
            AuthenticationError: If the token is missing, malformed, expired,
                signed with another key, or no secret is configured
        """
        if not token:
            raise AuthenticationError("No token, authorization denied")
        if not self.is_configured:
            logger.error("Cannot verify token without a signing secret")
            raise AuthenticationError("Token is not valid")

        try:
            payload = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except JWTError as e:
            logger.debug("Token verification failed", error=str(e))
            raise AuthenticationError("Token is not valid")

        user_id = payload.get("userId")
        if not user_id:
            raise AuthenticationError("Token is not valid")
        return user_id
