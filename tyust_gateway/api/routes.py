"""
REST Routes
===========

Thin handlers over ``PortalService``. Every body is wrapped in
``ApiResponse``; portal failures propagate to the exception handlers
registered in the app factory.

Endpoints:
----------
- POST /auth/login        : Log in upstream, issue a session JWT
- POST /auth/logout       : Forget the caller's credentials and profile
- GET  /user/info         : Stored profile of the caller
- GET  /schedule          : Timetable, optionally narrowed to one teaching week
- GET  /courses           : Timetable
- GET  /scores            : All grades
- GET  /scores/summary    : Grades grouped under student and term
- GET  /raw-scores        : Grades for an explicit student id, year and term
- GET  /semester-config   : Configured semester and today's teaching week
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse

from ..auth.session import create_session_jwt, get_current_user_id
from ..config import Settings, get_settings
from ..models import (
    ApiResponse,
    Course,
    LoginRequest,
    Score,
    ScoreSummary,
    SemesterConfigResponse,
    UserInfo,
)
from ..service import PortalService


router = APIRouter()


def get_service(request: Request) -> PortalService:
    """The PortalService built by the application lifespan."""
    return request.app.state.service


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ApiResponse.error(status_code, message).model_dump(),
    )


# ============================================================================
# Authentication
# ============================================================================

@router.post("/auth/login", response_model=ApiResponse[UserInfo], tags=["Authentication"])
async def login(
    body: LoginRequest,
    service: PortalService = Depends(get_service),
    settings: Settings = Depends(get_settings),
):
    name = await service.authenticate(body.student_id, body.password)
    token = create_session_jwt(body.student_id, name, settings)

    previous = await service.get_profile(body.student_id)
    profile = UserInfo(
        student_id=body.student_id,
        name=name,
        class_name=previous.class_name if previous else "",
        token=token,
        avatar_url=previous.avatar_url if previous else None,
    )
    await service.save_profile(profile)
    return ApiResponse.success(profile)


@router.post("/auth/logout", response_model=ApiResponse[None], tags=["Authentication"])
async def logout(
    user_id: str = Depends(get_current_user_id),
    service: PortalService = Depends(get_service),
):
    await service.logout(user_id)
    return ApiResponse.success()


@router.get("/user/info", response_model=ApiResponse[UserInfo], tags=["Authentication"])
async def user_info(
    user_id: str = Depends(get_current_user_id),
    service: PortalService = Depends(get_service),
):
    profile = await service.get_profile(user_id)
    if profile is None:
        return error_response(status.HTTP_401_UNAUTHORIZED, "User session not found")
    return ApiResponse.success(profile)


# ============================================================================
# Timetable
# ============================================================================

@router.get("/schedule", response_model=ApiResponse[List[Course]], tags=["Academic"])
async def schedule(
    week: Optional[int] = Query(None, ge=1, le=30, description="Only courses meeting in this teaching week"),
    user_id: str = Depends(get_current_user_id),
    service: PortalService = Depends(get_service),
):
    courses = await service.fetch_courses(user_id)
    if week is not None:
        courses = [course for course in courses if course.meets_in_week(week)]
    return ApiResponse.success(courses)


@router.get("/courses", response_model=ApiResponse[List[Course]], tags=["Academic"])
async def courses(
    user_id: str = Depends(get_current_user_id),
    service: PortalService = Depends(get_service),
):
    return ApiResponse.success(await service.fetch_courses(user_id))


# ============================================================================
# Grades
# ============================================================================

@router.get("/scores", response_model=ApiResponse[List[Score]], tags=["Academic"])
async def scores(
    user_id: str = Depends(get_current_user_id),
    service: PortalService = Depends(get_service),
):
    return ApiResponse.success(await service.fetch_scores(user_id))


@router.get("/scores/summary", response_model=ApiResponse[ScoreSummary], tags=["Academic"])
async def score_summary(
    user_id: str = Depends(get_current_user_id),
    service: PortalService = Depends(get_service),
):
    return ApiResponse.success(await service.fetch_score_summary(user_id))


@router.get("/raw-scores", response_model=ApiResponse[List[Score]], tags=["Academic"])
async def raw_scores(
    xh_id: Optional[str] = Query(None, description="Student id to query, defaults to the caller"),
    xnm: Optional[str] = Query(None, description="Academic year code"),
    xqm: Optional[str] = Query(None, description="Term code"),
    user_id: str = Depends(get_current_user_id),
    service: PortalService = Depends(get_service),
):
    return ApiResponse.success(await service.fetch_raw_scores(user_id, xh_id, xnm, xqm))


# ============================================================================
# Teaching Calendar
# ============================================================================

@router.get(
    "/semester-config",
    response_model=ApiResponse[SemesterConfigResponse],
    tags=["Calendar"],
)
async def semester_config(service: PortalService = Depends(get_service)):
    config = service.semester_config()
    if config is None:
        return error_response(status.HTTP_404_NOT_FOUND, "Semester configuration not found")
    return ApiResponse.success(config)
