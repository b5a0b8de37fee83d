"""
Parsing of academic-system JSON into the gateway's public records.

The academic system answers with loosely typed rows whose keys are pinyin
abbreviations (``kcmc`` for course name, ``jsxm`` for teacher name, ...).
The ``*Row`` models below give those rows a shape; the functions convert
them to ``Course``, ``Score`` and ``ScoreSummary``.
"""

from typing import Any, Iterable, List, Tuple

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    ValidationInfo,
    field_validator,
)

from ..models import Course, Score, ScoreSummary, SubjectInfo
from .errors import UpstreamMalformed


class PortalRow(BaseModel):
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    @field_validator("*", mode="before")
    @classmethod
    def null_as_default(cls, v: Any, info: ValidationInfo) -> Any:
        # The portal sends null for blank columns
        if v is None:
            return cls.model_fields[info.field_name].get_default(call_default_factory=True)
        return v


class TimetableRow(PortalRow):
    """One ``kbList`` entry of the timetable query."""
    kch_id: str = ""
    kcmc: str = ""
    xm: str = ""
    cdmc: str = ""
    xqjmc: str = ""
    jc: str = ""
    xqj: str = ""
    zcd: str = ""
    xf: str = ""
    kclb: str = ""
    khfsmc: str = ""


class ScoreRow(PortalRow):
    """One ``items`` entry of the grade query."""
    xnmmc: str = ""
    xqmmc: str = ""
    kcmc: str = ""
    xf: str = ""
    cj: str = ""
    jd: str = ""
    jsxm: str = ""
    kcxzmc: str = ""
    xm: str = ""
    kclbmc: str = ""
    bfzcj: str = ""
    kkbmmc: str = ""


class TimetableResponse(PortalRow):
    kb_list: List[TimetableRow] = Field(default_factory=list, alias="kbList")


class ScoreResponse(PortalRow):
    items: List[ScoreRow] = Field(default_factory=list)


# =============================================================================
# Field parsing
# =============================================================================

def _to_int(text: str):
    try:
        return int(text.strip())
    except ValueError:
        return None


def parse_week_range(raw: str) -> List[int]:
    """
    Expand a teaching-week description into a sorted list of weeks.

    Examples:
        >>> parse_week_range("1-16周")[:3]
        [1, 2, 3]
        >>> parse_week_range("1-8周(单)")
        [1, 3, 5, 7]
        >>> parse_week_range("1,3,5-8周")
        [1, 3, 5, 6, 7, 8]

    An odd/even marker filters only the ranges, never single weeks.
    Unparseable pieces are skipped.
    """
    text = raw.replace("周", "")
    base = text.split("(", 1)[0]
    odd_only = "单" in text
    even_only = "双" in text

    weeks = set()
    for part in base.split(","):
        if "-" in part:
            bounds = part.split("-")
            if len(bounds) != 2:
                continue
            start, end = _to_int(bounds[0]), _to_int(bounds[1])
            if start is None or end is None:
                continue
            for week in range(start, end + 1):
                if odd_only and week % 2 == 0:
                    continue
                if even_only and week % 2 == 1:
                    continue
                weeks.add(week)
        else:
            week = _to_int(part)
            if week is not None:
                weeks.add(week)
    return sorted(weeks)


def parse_section(raw: str) -> Tuple[int, int]:
    """
    Turn a section range into ``(first_section, section_count)``.

    ``"1-2"`` gives ``(1, 2)``, ``"3"`` gives ``(3, 1)``; a trailing 节 is
    ignored. Unparseable values fall back to section 1.
    """
    text = raw.strip().rstrip("节")
    parts = text.split("-")
    if len(parts) == 2:
        start = _to_int(parts[0])
        if start is None:
            start = 1
        end = _to_int(parts[1])
        if end is None:
            end = start
        return start, end - start + 1
    section = _to_int(text)
    return (section if section is not None else 1), 1


# =============================================================================
# Row conversion
# =============================================================================

def course_from_row(row: TimetableRow) -> Course:
    section, section_count = parse_section(row.jc)
    weekday = _to_int(row.xqj)
    return Course(
        id=row.kch_id,
        name=row.kcmc,
        teacher=row.xm,
        classroom=row.cdmc,
        time=f"{row.xqjmc} {row.jc}",
        week=weekday if weekday is not None else 1,
        section=section,
        section_count=section_count,
        weeks=parse_week_range(row.zcd),
        raw_weeks=row.zcd,
        raw_section=row.jc,
        address=row.cdmc,
        credit=row.xf,
        category=row.kclb,
        method=row.khfsmc,
    )


def score_from_row(row: ScoreRow) -> Score:
    return Score(
        semester=f"{row.xnmmc} {row.xqmmc}",
        course=row.kcmc,
        credit=row.xf,
        score=row.cj,
        gpa=row.jd,
        teacher=row.jsxm,
        course_type=row.kcxzmc,
    )


def parse_timetable(payload: Any) -> List[Course]:
    """
    Convert a timetable response body to courses.

    Raises:
        UpstreamMalformed: If the body is not a timetable document
    """
    try:
        response = TimetableResponse.model_validate(payload)
    except ValidationError as e:
        raise UpstreamMalformed(f"Unexpected timetable response: {e.error_count()} errors") from e
    return [course_from_row(row) for row in response.kb_list]


def parse_score_rows(payload: Any) -> List[ScoreRow]:
    try:
        response = ScoreResponse.model_validate(payload)
    except ValidationError as e:
        raise UpstreamMalformed(f"Unexpected grade response: {e.error_count()} errors") from e
    return response.items


def summarize_scores(rows: Iterable[ScoreRow]) -> ScoreSummary:
    """
    Group grade rows under the student and term named by the first row.

    Raises:
        UpstreamMalformed: If there are no rows
    """
    rows = list(rows)
    if not rows:
        raise UpstreamMalformed("Grade query returned no records")

    first = rows[0]
    return ScoreSummary(
        student_name=first.xm,
        academic_year=first.xnmmc,
        semester=first.xqmmc,
        subjects=[
            SubjectInfo(
                course_name=row.kcmc,
                course_type=row.kclbmc,
                score=row.cj,
                percentage_score=row.bfzcj,
                grade_point=row.jd,
                credit=row.xf,
                teacher=row.jsxm,
                department=row.kkbmmc,
            )
            for row in rows
        ],
    )
