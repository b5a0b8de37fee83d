"""
JWT Session Management Module
==============================

Handles creation and verification of the gateway's own session JWTs.
These tokens identify a student to the gateway; they are unrelated to the
upstream portal credentials kept in the credential store.

Clients send the token either as ``Authorization: Bearer <jwt>`` or, for
older app builds, in a bare ``token`` header.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from fastapi import Depends, Header, HTTPException, status
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError, PyJWTError

from ..config import Settings, get_settings

logger = logging.getLogger(__name__)


# =============================================================================
# Exceptions
# =============================================================================

class JWTSessionError(Exception):
    """Base exception for JWT session errors"""
    pass


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


# =============================================================================
# Token Creation
# =============================================================================

def create_session_jwt(
    user_id: str,
    name: str = "",
    settings: Optional[Settings] = None,
) -> str:
    """
    Create a session JWT for a student.

    Args:
        user_id: Student number, written to the ``sub`` claim
        name: Display name, written to the ``name`` claim
        settings: Settings to take key material from (defaults to get_settings())

    Returns:
        Encoded JWT string

    Raises:
        JWTSessionError: If JWT creation fails

    Example:
        >>> token = create_session_jwt("202012345678", "张三")
    """
    settings = settings or get_settings()

    if not user_id:
        raise JWTSessionError("Missing required claim: 'sub' (student id)")

    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "name": name,
        "iat": now,
        "exp": now + timedelta(minutes=settings.SESSION_JWT_EXPIRY_MINUTES),
        "iss": settings.JWT_ISSUER,
    }

    try:
        token = jwt.encode(
            payload,
            settings.SESSION_JWT_SECRET,
            algorithm=settings.SESSION_JWT_ALGORITHM,
        )
    except (PyJWTError, NotImplementedError, TypeError, ValueError) as e:
        logger.error(f"Failed to create session JWT: {e}", exc_info=True)
        raise JWTSessionError(f"Failed to create session JWT: {str(e)}") from e

    logger.debug(
        "Created session JWT",
        extra={
            "user_id": user_id,
            "expires_in_minutes": settings.SESSION_JWT_EXPIRY_MINUTES,
        },
    )
    return token


# =============================================================================
# Token Verification
# =============================================================================

def verify_session_jwt(token: str, settings: Optional[Settings] = None) -> Dict[str, Any]:
    """
    Verify and decode a session JWT.

    Args:
        token: JWT string to verify
        settings: Settings to take key material from (defaults to get_settings())

    Returns:
        Dictionary containing the decoded claims

    Raises:
        HTTPException: 401 if the token is missing, expired, forged or
                       issued by someone else
    """
    settings = settings or get_settings()

    if not token:
        logger.warning("Empty token provided for verification")
        raise _unauthorized("No authentication token provided")

    try:
        decoded = jwt.decode(
            token,
            settings.SESSION_JWT_SECRET,
            algorithms=[settings.SESSION_JWT_ALGORITHM],
            issuer=settings.JWT_ISSUER,
            options={
                "verify_signature": True,
                "verify_exp": True,
                "verify_iat": True,
                "require": ["exp", "iat", "sub", "iss"],
            },
        )
    except ExpiredSignatureError:
        logger.warning("JWT token expired")
        raise _unauthorized("Token has expired")
    except InvalidTokenError as e:
        logger.warning(f"Invalid JWT token: {e}")
        raise _unauthorized(f"Invalid token: {str(e)}")

    logger.debug("JWT verified successfully", extra={"user_id": decoded.get("sub")})
    return decoded


# =============================================================================
# Helper Functions
# =============================================================================

def extract_token_from_header(authorization: Optional[str]) -> str:
    """
    Extract Bearer token from Authorization header.

    Raises:
        HTTPException: If header is missing or its format is invalid
    """
    if not authorization:
        raise _unauthorized("Missing Authorization header")

    parts = authorization.split()

    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise _unauthorized("Invalid Authorization header format. Expected: 'Bearer <token>'")

    return parts[1]


# =============================================================================
# FastAPI Dependencies
# =============================================================================

async def get_current_user(
    authorization: Optional[str] = Header(None),
    token: Optional[str] = Header(None),
    settings: Settings = Depends(get_settings),
) -> Dict[str, Any]:
    """
    FastAPI dependency to extract and verify the session JWT from a request.

    The Authorization header wins when both it and the legacy ``token``
    header are present.

    Usage in routes:
        @router.get("/protected")
        async def protected_route(user: dict = Depends(get_current_user)):
            return {"student_id": user["sub"]}
    """
    if authorization:
        raw = extract_token_from_header(authorization)
    elif token:
        raw = token.strip()
    else:
        raise _unauthorized("Missing Authorization header")
    return verify_session_jwt(raw, settings)


async def get_current_user_id(user: Dict[str, Any] = Depends(get_current_user)) -> str:
    """Student number of the authenticated caller."""
    return user["sub"]


# =============================================================================
# Exports
# =============================================================================

__all__ = [
    "create_session_jwt",
    "verify_session_jwt",
    "extract_token_from_header",
    "get_current_user",
    "get_current_user_id",
    "JWTSessionError",
]
