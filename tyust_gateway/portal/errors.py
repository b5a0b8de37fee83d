"""
Error taxonomy for the portal client.

Every failure of a single upstream hop is one of the ``PortalError``
subclasses below. The SSO pipeline wraps them in ``LoginError`` so callers
can tell which hop failed.
"""

from enum import Enum
from typing import Optional


class LoginStage(str, Enum):
    """Labels for the hops of the SSO login pipeline."""
    BOOTSTRAP = "bootstrap"
    CREDENTIALS = "credentials"
    TOKEN_EXCHANGE = "token_exchange"
    SECONDARY_PORTAL = "secondary_portal"
    ROUTING = "routing"
    SESSION_WALK = "session_walk"
    PROFILE = "profile"
    ASSEMBLE = "assemble"


class PortalError(Exception):
    """Base exception for upstream portal failures"""
    pass


class CookieMissing(PortalError):
    """An expected cookie was absent from Set-Cookie."""


class TokenMissing(PortalError):
    """The anti-forgery execution token was not found in the login page."""


class RedirectMissing(PortalError):
    """A response that must redirect carried no Location header."""


class TicketMissing(PortalError):
    """A redirect did not carry the expected ``ticket`` query parameter."""


class CodeMissing(PortalError):
    """The final OAuth redirect did not carry a ``code`` query parameter."""


class RouteMissing(PortalError):
    """The routing endpoint did not set a ``route`` cookie."""


class SessionNotObtained(PortalError):
    """The redirect walk ended without ever seeing the session cookie."""


class CryptoError(PortalError):
    """Password encryption failed."""


class UpstreamUnreachable(PortalError):
    """Network or transport failure talking to the portal."""


class UpstreamMalformed(PortalError):
    """The portal answered with an unexpected response shape."""


class ReauthenticationRequired(PortalError):
    """No valid cached credentials exist for the user; they must log in again."""

    def __init__(self, user_id: str, reason: str = "missing"):
        self.user_id = user_id
        self.reason = reason
        super().__init__(f"Auth bundle {reason} for user {user_id}. Please login again.")


class LoginError(PortalError):
    """
    A login attempt failed at a specific pipeline stage.

    Attributes:
        stage: The LoginStage whose hop failed
        cause: The underlying PortalError
    """

    def __init__(self, stage: LoginStage, cause: PortalError):
        self.stage = stage
        self.cause = cause
        super().__init__(f"{stage.value}: {cause}")

    @property
    def kind(self) -> str:
        """Name of the underlying error class, e.g. ``RedirectMissing``."""
        return type(self.cause).__name__


def describe(error: Optional[BaseException]) -> str:
    """Short, secret-free description of an error for logs and API messages."""
    if error is None:
        return ""
    if isinstance(error, LoginError):
        return f"{error.stage.value} failed ({error.kind}): {error.cause}"
    return f"{type(error).__name__}: {error}"


__all__ = [
    "LoginStage",
    "PortalError",
    "CookieMissing",
    "TokenMissing",
    "RedirectMissing",
    "TicketMissing",
    "CodeMissing",
    "RouteMissing",
    "SessionNotObtained",
    "CryptoError",
    "UpstreamUnreachable",
    "UpstreamMalformed",
    "ReauthenticationRequired",
    "LoginError",
    "describe",
]
