"""
Shared fixtures for the gateway test suite.
"""

from datetime import datetime, timezone

import pytest

from tyust_gateway.config import Settings
from tyust_gateway.portal.sso import AuthBundle

TEST_JWT_SECRET = "test-jwt-secret-1234567890123456"
FIXED_NOW = datetime(2025, 3, 10, 8, 0, tzinfo=timezone.utc)


@pytest.fixture
def settings():
    """Settings pointing at the default upstream hosts, with a test JWT secret"""
    return Settings(SESSION_JWT_SECRET=TEST_JWT_SECRET, _env_file=None)


def make_bundle(obtained_at: datetime = FIXED_NOW, **overrides) -> AuthBundle:
    values = {
        "session_id": "sess-1",
        "tracking_cookie_a": "tgc-1",
        "tracking_cookie_b": "rg1",
        "access_token": "access-1",
        "route_cookie": "route-1",
        "portal_session_id": "jwglxt-js",
        "secondary_portal_session_id": "portal-js",
        "obtained_at": obtained_at,
    }
    values.update(overrides)
    return AuthBundle(**values)


@pytest.fixture
def bundle():
    return make_bundle()
