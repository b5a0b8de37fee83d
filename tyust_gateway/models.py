"""
Data Models Module

This module defines Pydantic models for request/response validation
and data serialization throughout the gateway.

Models are organized by functional area:
- Response envelope (ApiResponse)
- Authentication models (login request, user info)
- Academic records (courses, scores, score summaries)
- Teaching calendar (semester configuration)

Public field names follow the camelCase names the mobile client already
uses; Python attribute names stay snake_case.
"""

from datetime import date
from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")

SUCCESS_CODE = 0


class CamelModel(BaseModel):
    """Base model that accepts either attribute names or their aliases."""
    model_config = ConfigDict(populate_by_name=True)


# ============================================================================
# Response Envelope
# ============================================================================

class ApiResponse(BaseModel, Generic[T]):
    """Envelope wrapping every JSON body returned under /api."""
    code: int = Field(default=SUCCESS_CODE, description="0 on success, otherwise the HTTP status")
    message: str = Field(default="success", description="Human-readable status message")
    data: Optional[T] = Field(None, description="Payload, absent on error")

    @classmethod
    def success(cls, data: Optional[T] = None) -> "ApiResponse[T]":
        return cls(code=SUCCESS_CODE, message="success", data=data)

    @classmethod
    def error(cls, code: int, message: str) -> "ApiResponse[T]":
        return cls(code=code, message=message, data=None)


# ============================================================================
# Authentication Models
# ============================================================================

class LoginRequest(CamelModel):
    """Credentials submitted to POST /api/auth/login."""
    student_id: str = Field(..., alias="stuId", min_length=1, description="Student number")
    password: str = Field(..., min_length=1, description="SSO password")


class UserInfo(CamelModel):
    """What the gateway remembers about a logged-in student."""
    student_id: str = Field(..., alias="studentId", description="Student number")
    name: str = Field(..., description="Display name from the campus portal")
    class_name: str = Field(default="", alias="class", description="Class the student belongs to")
    token: str = Field(..., description="Session JWT issued by this gateway")
    avatar_url: Optional[str] = Field(None, alias="avatarUrl", description="Avatar image URL")


# ============================================================================
# Academic Records
# ============================================================================

class Course(CamelModel):
    """One timetable entry."""
    id: str = Field(..., description="Course id (kch_id)")
    name: str = Field(..., description="Course name")
    teacher: str = Field(default="", description="Teacher name")
    classroom: str = Field(default="", description="Room")
    time: str = Field(default="", description="Weekday name and section range, e.g. '星期一 1-2节'")
    week: int = Field(default=1, description="Weekday, 1 (Monday) to 7")
    section: int = Field(default=1, description="First section")
    section_count: int = Field(default=1, alias="sectionCount", description="Number of sections")
    weeks: List[int] = Field(default_factory=list, description="Teaching weeks the course meets in")
    raw_weeks: str = Field(default="", alias="rawWeeks", description="Week range as the portal wrote it")
    raw_section: str = Field(default="", alias="rawSection", description="Section range as the portal wrote it")
    address: str = Field(default="", description="Location")
    credit: str = Field(default="", description="Credit")
    category: str = Field(default="", description="Course category")
    method: str = Field(default="", description="Assessment method")

    def meets_in_week(self, week: int) -> bool:
        return week in self.weeks


class Score(CamelModel):
    """One graded course."""
    semester: str = Field(..., description="Academic year and term, e.g. '2024-2025 1'")
    course: str = Field(..., description="Course name")
    credit: str = Field(default="")
    score: str = Field(default="")
    gpa: str = Field(default="", description="Grade point")
    teacher: str = Field(default="")
    course_type: str = Field(default="", alias="courseType")


class SubjectInfo(CamelModel):
    """A course inside a ScoreSummary."""
    course_name: str = Field(..., alias="courseName")
    course_type: str = Field(default="", alias="courseType")
    score: str = Field(default="")
    percentage_score: str = Field(default="", alias="percentageScore")
    grade_point: str = Field(default="", alias="gradePoint")
    credit: str = Field(default="")
    teacher: str = Field(default="")
    department: str = Field(default="")


class ScoreSummary(CamelModel):
    """Grades grouped under the student and term of the first record."""
    student_name: str = Field(..., alias="studentName")
    academic_year: str = Field(..., alias="academicYear")
    semester: str = Field(...)
    subjects: List[SubjectInfo] = Field(default_factory=list)


# ============================================================================
# Teaching Calendar
# ============================================================================

class SemesterConfigResponse(CamelModel):
    """Configured semester plus the teaching week it is today."""
    semester_name: str = Field(..., alias="semesterName")
    semester_start_date: date = Field(..., alias="semesterStartDate")
    current_week: int = Field(..., alias="currentWeek", ge=1, le=20)


# ============================================================================
# Health Check Models
# ============================================================================

class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(..., description="Service health status")
    service: str = Field(..., description="Service name")
    version: str = Field(..., description="Service version")
