"""
Portal Service
==============

Public surface of the gateway. Runs logins through the SSO pipeline,
persists the resulting credentials, and answers schedule and grade queries
from the cached credentials.

A login persists nothing unless every pipeline stage succeeded. Queries
never log in on their own: a missing or expired bundle raises
``ReauthenticationRequired`` and the student has to log in again.
"""

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Callable, List, Optional

from .config import Settings
from .models import Course, Score, ScoreSummary, SemesterConfigResponse, UserInfo
from .portal.errors import ReauthenticationRequired
from .portal.fetchers import AcademicFetcher
from .portal.parsers import score_from_row, summarize_scores
from .portal.sso import AuthBundle, SsoPipeline
from .store import CredentialStore, ProfileStore

logger = logging.getLogger(__name__)

MAX_TEACHING_WEEK = 20


def current_teaching_week(start: date, today: date) -> int:
    """
    Teaching week that ``today`` falls in, counting ``start`` as day one of week 1.

    Days before ``start`` count as week 1 and the result never exceeds 20.
    """
    days = (today - start).days
    if days < 0:
        return 1
    return max(1, min(days // 7 + 1, MAX_TEACHING_WEEK))


class PortalService:
    """
    Login and query operations for one gateway process.

    Args:
        settings: Application settings
        credentials: Store of upstream credentials
        profiles: Store of user profiles
        pipeline: SSO pipeline, built from ``settings`` when omitted
        fetcher: Academic-system client, built from ``settings`` when omitted
        clock: Current UTC time, used for bundle validity
    """

    def __init__(
        self,
        settings: Settings,
        credentials: CredentialStore,
        profiles: ProfileStore,
        pipeline: Optional[SsoPipeline] = None,
        fetcher: Optional[AcademicFetcher] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.settings = settings
        self.credentials = credentials
        self.profiles = profiles
        self.pipeline = pipeline if pipeline is not None else SsoPipeline(settings)
        self.fetcher = fetcher if fetcher is not None else AcademicFetcher(settings)
        self._clock = clock

    @property
    def bundle_ttl(self) -> timedelta:
        return timedelta(hours=self.settings.AUTH_BUNDLE_TTL_HOURS)

    # =========================================================================
    # Login / Logout
    # =========================================================================

    async def authenticate(self, user_id: str, password: str) -> str:
        """
        Log ``user_id`` in upstream and cache the credentials.

        Returns:
            The student's display name

        Raises:
            LoginError: If any pipeline stage failed; nothing is stored
        """
        result = await self.pipeline.login(user_id, password)
        await self.credentials.save(user_id, result.bundle)
        logger.info("User authenticated", extra={"user_id": user_id})
        return result.display_name

    async def logout(self, user_id: str) -> None:
        await self.credentials.delete(user_id)
        await self.profiles.delete(user_id)
        logger.info("User logged out", extra={"user_id": user_id})

    async def save_profile(self, profile: UserInfo) -> None:
        await self.profiles.save(profile.student_id, profile)

    async def get_profile(self, user_id: str) -> Optional[UserInfo]:
        return await self.profiles.get(user_id)

    # =========================================================================
    # Queries
    # =========================================================================

    async def valid_bundle(self, user_id: str) -> AuthBundle:
        """
        Cached bundle for ``user_id`` if it is still fresh.

        An expired bundle is evicted on the way out.

        Raises:
            ReauthenticationRequired: If there is no bundle or it has expired
        """
        bundle = await self.credentials.get(user_id)
        if bundle is None:
            raise ReauthenticationRequired(user_id, "missing")
        if not bundle.is_valid(now=self._clock(), ttl=self.bundle_ttl):
            await self.credentials.delete(user_id)
            raise ReauthenticationRequired(user_id, "expired")
        return bundle

    async def fetch_courses(self, user_id: str) -> List[Course]:
        bundle = await self.valid_bundle(user_id)
        return await self.fetcher.fetch_courses(
            bundle, self.settings.ACADEMIC_YEAR, self.settings.TERM
        )

    async def fetch_scores(self, user_id: str) -> List[Score]:
        bundle = await self.valid_bundle(user_id)
        return await self.fetcher.fetch_scores(bundle)

    async def fetch_raw_scores(
        self,
        user_id: str,
        xh_id: Optional[str] = None,
        xnm: Optional[str] = None,
        xqm: Optional[str] = None,
    ) -> List[Score]:
        """Grades for an explicit student id, year and term; defaults to the caller, all terms."""
        bundle = await self.valid_bundle(user_id)
        rows = await self.fetcher.fetch_raw_score_rows(
            bundle, xh_id or user_id, xnm or "", xqm or ""
        )
        return [score_from_row(row) for row in rows]

    async def fetch_score_summary(self, user_id: str) -> ScoreSummary:
        bundle = await self.valid_bundle(user_id)
        return summarize_scores(await self.fetcher.fetch_score_rows(bundle))

    # =========================================================================
    # Teaching Calendar
    # =========================================================================

    def semester_config(self, today: Optional[date] = None) -> Optional[SemesterConfigResponse]:
        """Configured semester with today's teaching week, or None when unset."""
        start = self.settings.SEMESTER_START_DATE
        name = self.settings.SEMESTER_NAME
        if start is None or not name:
            return None
        return SemesterConfigResponse(
            semester_name=name,
            semester_start_date=start,
            current_week=current_teaching_week(start, today or date.today()),
        )
