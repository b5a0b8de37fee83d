"""
Client for the university portal: SSO login pipeline and academic queries.
"""

from .errors import LoginError, LoginStage, PortalError, ReauthenticationRequired
from .fetchers import AcademicFetcher
from .sso import AuthBundle, LoginResult, SsoPipeline

__all__ = [
    "AcademicFetcher",
    "AuthBundle",
    "LoginError",
    "LoginResult",
    "LoginStage",
    "PortalError",
    "ReauthenticationRequired",
    "SsoPipeline",
]
