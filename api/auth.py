"""
Bearer token authentication for the FastAPI API.

Tokens are issued elsewhere; this module only verifies them and extracts the
user reference from the ``sub`` claim.
"""

import structlog
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from api.config import config

logger = structlog.get_logger(__name__)

# Security scheme
security = HTTPBearer(auto_error=False)


def decode_token(token: str) -> str:
    """
    Verify a bearer token and return its subject.

    Args:
        token: Encoded JWT

    Returns:
        User reference from the ``sub`` claim

    Raises:
        HTTPException: If the token is invalid, expired or has no subject
    """
    try:
        payload = jwt.decode(token, config.secret_key, algorithms=[config.algorithm])
    except JWTError as e:
        logger.warning("Invalid token presented", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = payload.get("sub")
    if not user:
        logger.warning("Token without subject presented")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return str(user)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> str:
    """
    Resolve the authenticated user for write operations.

    Raises:
        HTTPException: 401 if no valid bearer token was supplied
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authorized, no token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return decode_token(credentials.credentials)
