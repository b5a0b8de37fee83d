"""
Manual redirect walker for the final academic-system session.

The academic system only hands out a usable ``JSESSIONID`` at the end of a
CAS redirect chain, and sets a throwaway one earlier in the same chain.
Redirects are therefore followed by hand, one hop at a time, so every
``Set-Cookie`` along the way can be inspected.
"""

import logging
from dataclasses import dataclass, field
from typing import Mapping, Optional
from urllib.parse import urljoin

import httpx

from .cookies import CookieJar, cookie_headers, iter_cookie_pairs, set_cookie_values
from .errors import SessionNotObtained

logger = logging.getLogger(__name__)

DEFAULT_TARGET_COOKIE = "JSESSIONID"


@dataclass
class RedirectChainState:
    """Mutable bookkeeping for one walk. Lives only for the duration of the walk."""
    current_url: str
    jar: CookieJar = field(default_factory=dict)
    hops_remaining: int = 0
    saw_target_once: bool = False
    last_seen: Optional[str] = None

    def absorb(self, response: httpx.Response, target: str) -> Optional[str]:
        """
        Merge the response's cookies into the jar.

        Returns the target cookie's value if this response carries its
        second occurrence in the walk, otherwise None.
        """
        for line in set_cookie_values(response):
            for name, value in iter_cookie_pairs(line):
                self.jar[name] = value
                if name != target:
                    continue
                if self.saw_target_once:
                    return value
                self.saw_target_once = True
                self.last_seen = value
        return None


async def walk_for_session_id(
    client: httpx.AsyncClient,
    start_url: str,
    initial_jar: Mapping[str, str],
    max_hops: int,
    target: str = DEFAULT_TARGET_COOKIE,
) -> str:
    """
    Follow redirects from ``start_url`` until the target cookie is issued twice.

    Each hop is a GET carrying the accumulated jar as an explicit ``Cookie``
    header, with automatic redirects disabled. The walk stops early when a
    response has no ``Location``. Relative locations are resolved against the
    URL of the hop that produced them.

    Args:
        client: HTTP client used for every hop
        start_url: First URL to request
        initial_jar: Cookies to send on the first hop
        max_hops: Maximum number of requests to make
        target: Name of the session cookie to look for

    Returns:
        The second value of ``target`` seen, or the last value seen if the
        chain ended before a second occurrence

    Raises:
        SessionNotObtained: If ``target`` never appeared
    """
    state = RedirectChainState(
        current_url=start_url,
        jar=dict(initial_jar),
        hops_remaining=max_hops,
    )

    while state.hops_remaining > 0:
        state.hops_remaining -= 1
        response = await client.get(
            state.current_url,
            headers=cookie_headers(state.jar),
            follow_redirects=False,
        )
        logger.debug(
            "Redirect walk hop",
            extra={
                "hop": max_hops - state.hops_remaining,
                "status_code": response.status_code,
            },
        )

        found = state.absorb(response, target)
        if found is not None:
            return found

        location = response.headers.get("location")
        if not location:
            break
        state.current_url = urljoin(state.current_url, location)

    if state.last_seen is not None:
        return state.last_seen

    raise SessionNotObtained(
        f"{target} was not set within {max_hops} redirect hops"
    )
