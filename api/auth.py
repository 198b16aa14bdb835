"""
Bearer token guard for the FastAPI API.
"""

from typing import Any, Dict, Optional

import structlog
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from api.dependencies import get_user_service
from catalog.exceptions import AuthenticationError
from catalog.users import UserService

logger = structlog.get_logger(__name__)

# Missing credentials must answer 401, not FastAPI's default 403
security = HTTPBearer(auto_error=False)


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    user_service: UserService = Depends(get_user_service),
) -> Dict[str, Any]:
    """
    Resolve the caller from the bearer token.

    The full user record (without password hash) is returned and also kept
    on `request.state.user` for downstream handlers.

    Raises:
        HTTPException: 401 if the token is missing, invalid, expired, or
            belongs to a user that no longer exists
    """
    token = credentials.credentials if credentials else None

    try:
        user = await user_service.authenticate(token)
    except AuthenticationError as e:
        logger.info("Rejected request without valid token", path=request.url.path, reason=e.message)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=e.message,
            headers={"WWW-Authenticate": "Bearer"},
        )

    request.state.user = user
    return user
