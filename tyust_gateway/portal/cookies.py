"""
Cookie and header helpers shared by every hop of the login pipeline.

The portal is driven with explicit ``Cookie`` headers rather than a
browser-style cookie store, so these helpers read raw ``Set-Cookie`` lines
and assemble ``Cookie`` headers from plain mappings.
"""

from typing import Dict, Iterator, List, Mapping, Optional, Tuple
from urllib.parse import parse_qsl, urlsplit

import httpx

CookieJar = Dict[str, str]


def iter_cookie_pairs(set_cookie_value: str) -> Iterator[Tuple[str, str]]:
    """
    Yield ``(name, value)`` for each cookie in a Set-Cookie header value.

    A single header value may hold several comma-separated cookies. Only the
    leading ``name=value`` pair of each segment is considered; attributes
    after the first ``;`` are ignored, and segments without ``=`` are skipped.
    """
    for segment in set_cookie_value.split(","):
        pair = segment.split(";", 1)[0].strip()
        if "=" not in pair:
            continue
        name, value = pair.split("=", 1)
        yield name.strip(), value.strip()


def extract_cookie(set_cookie_value: str, name: str) -> Optional[str]:
    """
    Find the value of cookie ``name`` in a Set-Cookie header value.

    Args:
        set_cookie_value: Raw Set-Cookie header value (may hold several cookies)
        name: Cookie name, matched case-sensitively

    Returns:
        The cookie value, or None if the cookie is not present
    """
    for key, value in iter_cookie_pairs(set_cookie_value):
        if key == name:
            return value
    return None


def build_cookie_header(jar: Mapping[str, str]) -> str:
    """Join a cookie mapping into a ``Cookie`` header value."""
    return "; ".join(f"{name}={value}" for name, value in jar.items())


def extract_query_param(url: str, key: str) -> Optional[str]:
    """
    Return the first value of query parameter ``key`` in an absolute URL.

    Malformed or relative URLs yield None rather than raising.
    """
    try:
        parts = urlsplit(url)
    except ValueError:
        return None
    if not parts.scheme or not parts.netloc:
        return None
    for name, value in parse_qsl(parts.query, keep_blank_values=True):
        if name == key:
            return value
    return None


# =============================================================================
# httpx response helpers
# =============================================================================

def set_cookie_values(response: httpx.Response) -> List[str]:
    """Every Set-Cookie header line of a response, in order."""
    return response.headers.get_list("set-cookie")


def find_cookie(response: httpx.Response, name: str) -> Optional[str]:
    """Look up cookie ``name`` across all Set-Cookie lines of a response."""
    for value in set_cookie_values(response):
        found = extract_cookie(value, name)
        if found is not None:
            return found
    return None


def cookie_headers(jar: Mapping[str, str]) -> Dict[str, str]:
    """Request headers carrying ``jar`` as an explicit Cookie header."""
    if not jar:
        return {}
    return {"Cookie": build_cookie_header(jar)}
