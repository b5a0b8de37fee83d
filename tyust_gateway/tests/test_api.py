"""
Unit Tests for the REST Surface
===============================

Test Coverage:
--------------
1. GET /health
2. POST /api/auth/login => UserInfo with a verifiable session JWT
3. Failed login => 401 ApiResponse naming the stage
4. Protected routes without/with bad token => 401
5. Bearer and legacy ``token`` header both authenticate
6. Missing or stale credentials => 401, upstream failure => 502, unexpected error => 500
7. /api/user/info and /api/auth/logout
8. /api/schedule week filter, /api/raw-scores parameters
9. /api/semester-config unset => 404, set => current week

Run tests:
----------
    pytest tyust_gateway/tests/test_api.py -v
"""

from datetime import date, timedelta
from unittest.mock import AsyncMock

import pytest
from fastapi import status
from fastapi.testclient import TestClient

from tyust_gateway.auth.session import create_session_jwt, verify_session_jwt
from tyust_gateway.config import get_settings
from tyust_gateway.main import create_app
from tyust_gateway.models import Course, Score, ScoreSummary
from tyust_gateway.portal.errors import (
    LoginError,
    LoginStage,
    RedirectMissing,
    UpstreamUnreachable,
)
from tyust_gateway.portal.sso import LoginResult
from tyust_gateway.service import PortalService
from tyust_gateway.store import CredentialStore, ProfileStore
from tyust_gateway.tests.conftest import FIXED_NOW, make_bundle


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def pipeline():
    mock = AsyncMock()
    mock.login.return_value = LoginResult(bundle=make_bundle(), display_name="张三")
    return mock


@pytest.fixture
def fetcher():
    return AsyncMock()


def build_app(settings, pipeline, fetcher):
    app = create_app()
    app.dependency_overrides[get_settings] = lambda: settings
    app.state.service = PortalService(
        settings,
        CredentialStore(clock=lambda: FIXED_NOW),
        ProfileStore(),
        pipeline=pipeline,
        fetcher=fetcher,
        clock=lambda: FIXED_NOW,
    )
    return app


@pytest.fixture
def app(settings, pipeline, fetcher):
    return build_app(settings, pipeline, fetcher)


@pytest.fixture
def client(app):
    """Create test client"""
    return TestClient(app)


@pytest.fixture
def auth_headers(settings):
    return {"Authorization": f"Bearer {create_session_jwt('2021001', '张三', settings)}"}


def login(client):
    return client.post("/api/auth/login", json={"stuId": "2021001", "password": "secret"})


# ============================================================================
# System
# ============================================================================

def test_health(client):
    response = client.get("/health")

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["status"] == "ok"


# ============================================================================
# Authentication
# ============================================================================

def test_login_returns_user_info_with_token(client, settings, pipeline):
    response = login(client)

    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert body["code"] == 0
    assert body["message"] == "success"
    assert body["data"]["studentId"] == "2021001"
    assert body["data"]["name"] == "张三"
    assert body["data"]["class"] == ""
    assert verify_session_jwt(body["data"]["token"], settings)["sub"] == "2021001"
    pipeline.login.assert_awaited_once_with("2021001", "secret")


def test_login_failure_is_401_with_stage(client, pipeline):
    pipeline.login.side_effect = LoginError(LoginStage.CREDENTIALS, RedirectMissing("no Location"))

    response = login(client)

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    body = response.json()
    assert body["code"] == 401
    assert body["data"] is None
    assert "credentials" in body["message"]


def test_login_requires_both_fields(client):
    response = client.post("/api/auth/login", json={"stuId": "2021001"})

    assert response.status_code == 422


def test_user_info_after_login(client):
    token = login(client).json()["data"]["token"]

    response = client.get("/api/user/info", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["data"]["name"] == "张三"


def test_user_info_without_profile(client, auth_headers):
    response = client.get("/api/user/info", headers=auth_headers)

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json()["message"] == "User session not found"


def test_logout_forgets_user(client):
    token = login(client).json()["data"]["token"]
    headers = {"Authorization": f"Bearer {token}"}

    response = client.post("/api/auth/logout", headers=headers)

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["code"] == 0
    assert client.get("/api/user/info", headers=headers).status_code == status.HTTP_401_UNAUTHORIZED


# ============================================================================
# Token handling
# ============================================================================

def test_protected_route_requires_token(client):
    response = client.get("/api/courses")

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert "detail" in response.json()


def test_protected_route_rejects_bad_token(client):
    response = client.get("/api/courses", headers={"Authorization": "Bearer not-a-jwt"})

    assert response.status_code == status.HTTP_401_UNAUTHORIZED


def test_legacy_token_header_is_accepted(client, settings, fetcher):
    login(client)
    fetcher.fetch_courses.return_value = []
    token = create_session_jwt("2021001", "张三", settings)

    response = client.get("/api/courses", headers={"token": token})

    assert response.status_code == status.HTTP_200_OK


# ============================================================================
# Academic data
# ============================================================================

def test_schedule_filters_by_week(client, auth_headers, fetcher):
    login(client)
    fetcher.fetch_courses.return_value = [
        Course(id="C1", name="高等数学", weeks=[1, 2, 3]),
        Course(id="C2", name="大学英语", weeks=[4, 5]),
    ]

    everything = client.get("/api/schedule", headers=auth_headers).json()["data"]
    week_four = client.get("/api/schedule?week=4", headers=auth_headers).json()["data"]

    assert [c["id"] for c in everything] == ["C1", "C2"]
    assert [c["id"] for c in week_four] == ["C2"]
    assert "sectionCount" in week_four[0]


def test_scores_without_login_require_reauthentication(client, auth_headers):
    response = client.get("/api/scores", headers=auth_headers)

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert "Please login again" in response.json()["message"]


def test_scores_with_stale_bundle_require_reauthentication(client, auth_headers, pipeline, fetcher):
    pipeline.login.return_value = LoginResult(
        bundle=make_bundle(obtained_at=FIXED_NOW - timedelta(hours=25)), display_name="张三"
    )
    login(client)

    response = client.get("/api/scores", headers=auth_headers)

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert "expired" in response.json()["message"]
    fetcher.fetch_scores.assert_not_called()


def test_scores_upstream_failure_is_502(client, auth_headers, fetcher):
    login(client)
    fetcher.fetch_scores.side_effect = UpstreamUnreachable("timed out")

    response = client.get("/api/scores", headers=auth_headers)

    assert response.status_code == status.HTTP_502_BAD_GATEWAY
    assert response.json()["code"] == 502


def test_scores_success(client, auth_headers, fetcher):
    login(client)
    fetcher.fetch_scores.return_value = [Score(semester="2024-2025 1", course="物理", course_type="必修")]

    response = client.get("/api/scores", headers=auth_headers)

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["data"][0]["courseType"] == "必修"


def test_score_summary(client, auth_headers, app):
    login(client)
    service = app.state.service
    service.fetch_score_summary = AsyncMock(return_value=ScoreSummary(
        student_name="张三", academic_year="2024-2025", semester="1", subjects=[]
    ))

    response = client.get("/api/scores/summary", headers=auth_headers)

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["data"]["studentName"] == "张三"


def test_raw_scores_pass_query_parameters(client, auth_headers, fetcher):
    login(client)
    fetcher.fetch_raw_score_rows.return_value = []

    response = client.get("/api/raw-scores?xh_id=2021999&xnm=2024&xqm=12", headers=auth_headers)

    assert response.status_code == status.HTTP_200_OK
    _, xh_id, xnm, xqm = fetcher.fetch_raw_score_rows.await_args.args
    assert (xh_id, xnm, xqm) == ("2021999", "2024", "12")


def test_unexpected_error_is_500(settings, pipeline, fetcher, auth_headers):
    app = build_app(settings, pipeline, fetcher)
    client = TestClient(app, raise_server_exceptions=False)
    login(client)
    fetcher.fetch_courses.side_effect = RuntimeError("boom")

    response = client.get("/api/courses", headers=auth_headers)

    assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
    assert response.json()["code"] == 500


# ============================================================================
# Teaching calendar
# ============================================================================

def test_semester_config_unset_is_404(client):
    response = client.get("/api/semester-config")

    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json()["code"] == 404


def test_semester_config_reports_current_week(settings, pipeline, fetcher):
    configured = settings.model_copy(
        update={"SEMESTER_NAME": "2025-2026学年第一学期", "SEMESTER_START_DATE": date(2000, 1, 3)}
    )
    client = TestClient(build_app(configured, pipeline, fetcher))

    response = client.get("/api/semester-config")

    assert response.status_code == status.HTTP_200_OK
    data = response.json()["data"]
    assert data["semesterName"] == "2025-2026学年第一学期"
    assert data["semesterStartDate"] == "2000-01-03"
    assert data["currentWeek"] == 20
