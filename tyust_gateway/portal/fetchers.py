"""
Schedule and grade queries against the academic system.

Every query reuses the cookies of a cached ``AuthBundle``; no login happens
here. Callers are expected to have checked the bundle's validity already.
"""

import logging
import time
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional

import httpx

from ..config import Settings
from ..models import Course, Score
from .cookies import cookie_headers
from .errors import PortalError, UpstreamMalformed, UpstreamUnreachable
from .parsers import ScoreRow, parse_score_rows, parse_timetable, score_from_row
from .sso import AuthBundle

logger = logging.getLogger(__name__)

TIMETABLE_MODULE = "N253508"
GRADES_MODULE = "N305005"
PAGE_SIZE = "5000"


def _now_millis() -> str:
    return str(int(time.time() * 1000))


@contextmanager
def upstream_errors(query: str) -> Iterator[None]:
    """Translate httpx and JSON failures of ``query`` into PortalError subclasses."""
    try:
        yield
    except PortalError as e:
        logger.warning(f"{query} failed: {type(e).__name__}", extra={"query": query})
        raise
    except httpx.HTTPError as e:
        logger.warning(f"{query} failed: {type(e).__name__}", extra={"query": query})
        raise UpstreamUnreachable(f"{query}: {type(e).__name__}: {e}") from e
    except ValueError as e:
        logger.warning(f"{query} returned a non-JSON body", extra={"query": query})
        raise UpstreamMalformed(f"{query}: response is not JSON") from e


class AcademicFetcher:
    """
    Client for the academic system's timetable and grade endpoints.

    Args:
        settings: Upstream URLs, timeouts and user agent
        transport: Optional httpx transport for tests
    """

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self._transport = transport

    def new_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=self._transport,
            timeout=self.settings.UPSTREAM_TIMEOUT_SECONDS,
            headers={"User-Agent": self.settings.USER_AGENT},
            follow_redirects=False,
        )

    def _page_url(self, page: str) -> str:
        return f"{self.settings.JWGLXT_BASE_URL}/jwglxt/{page}"

    def _headers(self, cookies: Dict[str, str], referer: str) -> Dict[str, str]:
        return {**cookie_headers(cookies), "Referer": referer}

    async def _post_json(
        self,
        query: str,
        url: str,
        params: Dict[str, str],
        form: Dict[str, str],
        headers: Dict[str, str],
    ):
        async with self.new_client() as client:
            with upstream_errors(query):
                response = await client.post(url, params=params, data=form, headers=headers)
                if response.is_redirect:
                    raise UpstreamMalformed(
                        f"{query}: academic system redirected instead of answering, session rejected"
                    )
                return response.json()

    # =========================================================================
    # Queries
    # =========================================================================

    async def fetch_courses(self, bundle: AuthBundle, xnm: str, xqm: str) -> List[Course]:
        """
        Fetch the personal timetable for academic year ``xnm`` and term ``xqm``.

        Raises:
            UpstreamUnreachable: On transport failure
            UpstreamMalformed: If the answer is not a timetable document
        """
        payload = await self._post_json(
            "timetable query",
            self._page_url("kbcx/xskbcx_cxXsgrkb.html"),
            params={"gnmkdm": TIMETABLE_MODULE},
            form={"xnm": xnm, "xqm": xqm, "kzlx": "ck", "xsdm": ""},
            headers=self._headers(
                bundle.academic_cookies(),
                self._page_url(
                    f"kbcx/xskbcx_cxXskbcxIndex.html?gnmkdm={TIMETABLE_MODULE}&layout=default"
                ),
            ),
        )
        with upstream_errors("timetable query"):
            return parse_timetable(payload)

    async def fetch_score_rows(self, bundle: AuthBundle) -> List[ScoreRow]:
        """Fetch every grade record of the student, across all terms."""
        form = {
            "xnm": "",
            "xqm": "",
            "_search": "false",
            "nd": _now_millis(),
            "queryModel.showCount": PAGE_SIZE,
            "queryModel.currentPage": "1",
            "queryModel.sortName": "",
            "queryModel.sortOrder": "asc",
            "time": "1",
        }
        payload = await self._post_json(
            "grade query",
            self._page_url("cjcx/cjcx_cxDgXscj.html"),
            params={"gnmkdm": GRADES_MODULE},
            form=form,
            headers=self._headers(
                bundle.academic_cookies(),
                self._page_url(f"cjcx/cjcx_cxDgXscj.html?gnmkdm={GRADES_MODULE}&layout=default"),
            ),
        )
        with upstream_errors("grade query"):
            return parse_score_rows(payload)

    async def fetch_scores(self, bundle: AuthBundle) -> List[Score]:
        return [score_from_row(row) for row in await self.fetch_score_rows(bundle)]

    async def fetch_raw_score_rows(
        self,
        bundle: AuthBundle,
        xh_id: str,
        xnm: str = "",
        xqm: str = "",
    ) -> List[ScoreRow]:
        """
        Query grades for an explicit student id, year and term.

        Only the session and route cookies are sent; this query does not need
        the access token.
        """
        form = {
            "xh_id": xh_id,
            "xnm": xnm,
            "xqm": xqm,
            "_search": "false",
            "nd": _now_millis(),
            "queryModel.showCount": PAGE_SIZE,
            "queryModel.currentPage": "1",
            "queryModel.sortName": " ",
            "queryModel.sortOrder": "asc",
            "time": "0",
        }
        cookies = {"JSESSIONID": bundle.portal_session_id, "route": bundle.route_cookie}
        payload = await self._post_json(
            "raw grade query",
            self._page_url("cjcx/cjcx_cxDgXscj.html"),
            params={"gnmkdm": GRADES_MODULE, "doType": "query"},
            form=form,
            headers=self._headers(
                cookies,
                self._page_url(f"cjcx/cjcx_cxDgXscj.html?gnmkdm={GRADES_MODULE}&layout=default"),
            ),
        )
        with upstream_errors("raw grade query"):
            return parse_score_rows(payload)
