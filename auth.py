"""
Authentication for the /api routes.
Issues and verifies HS256 JWT bearer tokens carrying the user id in `sub`.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional
import jwt
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from config import Config
from utils.logger import app_logger

bearer_scheme = HTTPBearer(auto_error=False)


def create_access_token(user_id: str, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a signed access token for a user.

    Args:
        user_id: Stored as the `sub` claim
        expires_delta: Lifetime (default: Config.JWT_EXPIRATION_HOURS)
    """
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(hours=Config.JWT_EXPIRATION_HOURS))
    claims = {"sub": user_id, "iat": now, "exp": expire}
    return jwt.encode(claims, Config.JWT_SECRET, algorithm=Config.JWT_ALGORITHM)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user_id(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)
) -> str:
    """
    FastAPI dependency returning the authenticated user id.

    Raises:
        HTTPException: 500 when no JWT secret is configured, 401 when the
            token is missing, invalid or expired
    """
    if not Config.JWT_SECRET:
        app_logger.error("CRITICAL: JWT_SECRET not set in .env file!")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Server misconfiguration: JWT_SECRET not set. Please configure JWT_SECRET in .env file.",
        )

    client_host = request.client.host if request.client else "unknown"

    if credentials is None or not credentials.credentials:
        app_logger.warning(f"Unauthorized request from {client_host} - Missing bearer token")
        raise _unauthorized("Missing bearer token. Include 'Authorization: Bearer <token>' header in your request.")

    try:
        claims = jwt.decode(credentials.credentials, Config.JWT_SECRET, algorithms=[Config.JWT_ALGORITHM])
    except ExpiredSignatureError:
        app_logger.warning(f"Unauthorized request from {client_host} - Expired token")
        raise _unauthorized("Token has expired")
    except InvalidTokenError as e:
        app_logger.warning(f"Unauthorized request from {client_host} - Invalid token: {e}")
        raise _unauthorized("Invalid token")

    user_id = claims.get("sub")
    if not user_id:
        raise _unauthorized("Invalid token")
    return user_id
