"""
Session JWT issue and verification for gateway clients.
"""

from .session import (
    JWTSessionError,
    create_session_jwt,
    extract_token_from_header,
    get_current_user,
    get_current_user_id,
    verify_session_jwt,
)

__all__ = [
    "JWTSessionError",
    "create_session_jwt",
    "extract_token_from_header",
    "get_current_user",
    "get_current_user_id",
    "verify_session_jwt",
]
