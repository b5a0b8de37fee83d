"""
SSO Session Pipeline
====================

Logs a student into the campus SSO on their behalf and collects every
credential the academic system needs afterwards.

Flow:
    1. Bootstrap        GET the SSO login page, keep SESSION + execution token
    2. Credentials      POST the encrypted password, follow the OAuth hops
                        up to the authorization ``code``
    3. Token exchange   CAS ticket -> access gateway token      (concurrent
       Secondary portal OAuth ``code`` -> portal JSESSIONID     with each other)
    4. Routing          access token -> ``route`` cookie
    5. Session walk     manual redirect walk -> academic JSESSIONID
    6. Profile          portal JSESSIONID -> display name

Each attempt runs on its own ``httpx.AsyncClient`` so no cookie ever leaks
between users or attempts. Failures are raised as ``LoginError`` carrying
the stage that failed. Nothing is stored here; persisting the resulting
``AuthBundle`` is the caller's job.
"""

import asyncio
import json
import logging
import re
import secrets
from contextlib import contextmanager
from dataclasses import dataclass, fields
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Iterator, List, Optional, Tuple
from urllib.parse import urlencode, urljoin

import httpx

from ..config import Settings
from .cookies import cookie_headers, extract_query_param, find_cookie, set_cookie_values
from .crypto import make_cipher_material
from .errors import (
    CodeMissing,
    CookieMissing,
    LoginError,
    LoginStage,
    PortalError,
    RedirectMissing,
    RouteMissing,
    TicketMissing,
    TokenMissing,
    UpstreamMalformed,
    UpstreamUnreachable,
)
from .redirects import walk_for_session_id

logger = logging.getLogger(__name__)

EXECUTION_PATTERN = re.compile(r'<p id="login-page-flowkey">(.*?)</p>')
RG_OBJECTID_PATTERN = re.compile(r"rg_objectid=([a-zA-Z0-9]+)")

DEFAULT_BUNDLE_TTL = timedelta(hours=24)


# =============================================================================
# Auth Bundle
# =============================================================================

@dataclass(frozen=True, repr=False)
class AuthBundle:
    """
    Upstream credentials obtained by one successful login.

    Attributes:
        session_id: SSO ``SESSION`` cookie
        tracking_cookie_a: SSO ``SOURCEID_TGC`` cookie
        tracking_cookie_b: SSO ``rg_objectid`` cookie
        access_token: access gateway ``__access_token``
        route_cookie: academic system load-balancer ``route`` cookie
        portal_session_id: academic system ``JSESSIONID``
        secondary_portal_session_id: campus portal ``JSESSIONID``
        obtained_at: When the login finished (UTC)
    """
    session_id: str
    tracking_cookie_a: str
    tracking_cookie_b: str
    access_token: str
    route_cookie: str
    portal_session_id: str
    secondary_portal_session_id: str
    obtained_at: datetime

    def missing_fields(self) -> List[str]:
        return [
            f.name for f in fields(self)
            if f.name != "obtained_at" and not getattr(self, f.name)
        ]

    def is_complete(self) -> bool:
        return not self.missing_fields()

    def age(self, now: Optional[datetime] = None) -> timedelta:
        return (now or datetime.now(timezone.utc)) - self.obtained_at

    def is_valid(
        self,
        now: Optional[datetime] = None,
        ttl: timedelta = DEFAULT_BUNDLE_TTL,
    ) -> bool:
        """True while less than ``ttl`` has elapsed since ``obtained_at``."""
        return self.age(now) < ttl

    def academic_cookies(self) -> Dict[str, str]:
        """Cookies sent with schedule and grade queries."""
        return {
            "__access_token": self.access_token,
            "JSESSIONID": self.portal_session_id,
            "route": self.route_cookie,
        }

    def __repr__(self) -> str:
        return f"AuthBundle(obtained_at={self.obtained_at.isoformat()}, <credentials redacted>)"


@dataclass(frozen=True)
class LoginResult:
    bundle: AuthBundle
    display_name: str


# =============================================================================
# Helpers
# =============================================================================

def generate_device_id() -> str:
    """Random 16-byte device id, hex encoded, as a browser would report it."""
    return secrets.token_hex(16)


def extract_execution_token(html: str) -> Optional[str]:
    match = EXECUTION_PATTERN.search(html)
    if match is None or not match.group(1):
        return None
    return match.group(1)


def extract_rg_objectid(response: httpx.Response) -> Optional[str]:
    for line in set_cookie_values(response):
        match = RG_OBJECTID_PATTERN.search(line)
        if match:
            return match.group(1)
    return None


def require_location(response: httpx.Response, what: str) -> str:
    location = response.headers.get("location")
    if not location:
        raise RedirectMissing(f"{what} returned {response.status_code} without a Location header")
    return location


def require_json_field(payload, *path: str):
    """Walk ``path`` into a decoded JSON document, raising UpstreamMalformed on any gap."""
    current = payload
    for key in path:
        if not isinstance(current, dict) or key not in current:
            raise UpstreamMalformed(f"Response has no '{'.'.join(path)}' field")
        current = current[key]
    if current is None or current == "":
        raise UpstreamMalformed(f"Response field '{'.'.join(path)}' is empty")
    return current


def _stage_failure(stage: LoginStage, user_id: str, cause: PortalError) -> LoginError:
    error = LoginError(stage, cause)
    logger.warning(
        f"Login failed at stage {stage.value}: {error.kind}",
        extra={"stage": stage.value, "user_id": user_id, "error_type": error.kind},
    )
    return error


@contextmanager
def login_stage(stage: LoginStage, user_id: str) -> Iterator[None]:
    """
    Label every failure inside the block with ``stage``.

    Portal errors are wrapped as-is; httpx errors become UpstreamUnreachable
    and JSON decoding or shape errors become UpstreamMalformed.
    """
    logger.debug("Login stage started", extra={"stage": stage.value, "user_id": user_id})
    try:
        yield
    except LoginError:
        raise
    except PortalError as e:
        raise _stage_failure(stage, user_id, e) from e
    except httpx.HTTPError as e:
        cause = UpstreamUnreachable(f"{type(e).__name__}: {e}")
        raise _stage_failure(stage, user_id, cause) from e
    except (ValueError, KeyError, TypeError) as e:
        cause = UpstreamMalformed(f"{type(e).__name__}: {e}")
        raise _stage_failure(stage, user_id, cause) from e


# =============================================================================
# Pipeline
# =============================================================================

class SsoPipeline:
    """
    Runs the multi-hop SSO login against the configured upstream hosts.

    Args:
        settings: Upstream URLs, timeouts and hop budget
        transport: Optional httpx transport, used by tests to script the
                   upstream conversation
        clock: Returns the current UTC time; stamped into ``obtained_at``
    """

    def __init__(
        self,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.settings = settings
        self._transport = transport
        self._clock = clock

    # -------------------------------------------------------------------------
    # URLs
    # -------------------------------------------------------------------------

    @property
    def sso_login_url(self) -> str:
        return f"{self.settings.SSO_BASE_URL}/login"

    @property
    def cas_callback_url(self) -> str:
        return f"{self.settings.ACCESS_BASE_URL}/login/casCallback/{self.settings.CAS_EXTERNAL_ID}/"

    @property
    def jwglxt_entry_url(self) -> str:
        return f"{self.settings.JWGLXT_BASE_URL}/sso/jasiglogin/jwglxt"

    def service_login_url(self, service: str) -> str:
        return f"{self.sso_login_url}?{urlencode({'service': service})}"

    def new_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=self._transport,
            timeout=self.settings.UPSTREAM_TIMEOUT_SECONDS,
            headers={"User-Agent": self.settings.USER_AGENT},
            follow_redirects=False,
        )

    # -------------------------------------------------------------------------
    # Entry point
    # -------------------------------------------------------------------------

    async def login(self, user_id: str, password: str) -> LoginResult:
        """
        Run every stage for ``user_id`` and return the finished bundle.

        Raises:
            LoginError: Labelled with the stage that failed
        """
        async with self.new_client() as client:
            with login_stage(LoginStage.BOOTSTRAP, user_id):
                session_id, execution = await self._bootstrap(client)

            with login_stage(LoginStage.CREDENTIALS, user_id):
                tgc, rg_objectid, code = await self._submit_credentials(
                    client, user_id, password, session_id, execution
                )

            sso_cookies = {
                "SESSION": session_id,
                "SOURCEID_TGC": tgc,
                "rg_objectid": rg_objectid,
            }
            access_token, secondary_session_id = await self._parallel_logins(
                client, user_id, sso_cookies, code
            )

            with login_stage(LoginStage.ROUTING, user_id):
                route = await self._fetch_route(client, access_token)

            with login_stage(LoginStage.SESSION_WALK, user_id):
                portal_session_id = await walk_for_session_id(
                    client,
                    self.service_login_url(self.jwglxt_entry_url),
                    {**sso_cookies, "__access_token": access_token, "route": route},
                    self.settings.REDIRECT_HOP_LIMIT,
                )

            with login_stage(LoginStage.PROFILE, user_id):
                display_name = await self._fetch_display_name(client, secondary_session_id)

        bundle = AuthBundle(
            session_id=session_id,
            tracking_cookie_a=tgc,
            tracking_cookie_b=rg_objectid,
            access_token=access_token,
            route_cookie=route,
            portal_session_id=portal_session_id,
            secondary_portal_session_id=secondary_session_id,
            obtained_at=self._clock(),
        )

        with login_stage(LoginStage.ASSEMBLE, user_id):
            missing = bundle.missing_fields()
            if missing:
                raise UpstreamMalformed(f"Login produced empty credentials: {', '.join(missing)}")

        logger.info("SSO login completed", extra={"user_id": user_id})
        return LoginResult(bundle=bundle, display_name=display_name)

    # -------------------------------------------------------------------------
    # Stages
    # -------------------------------------------------------------------------

    async def _bootstrap(self, client: httpx.AsyncClient) -> Tuple[str, str]:
        response = await client.get(self.sso_login_url, follow_redirects=True)

        session_id = find_cookie(response, "SESSION")
        if not session_id:
            raise CookieMissing("Login page did not set a SESSION cookie")

        execution = extract_execution_token(response.text)
        if execution is None:
            raise TokenMissing("Login page has no login-page-flowkey element")

        return session_id, execution

    async def _submit_credentials(
        self,
        client: httpx.AsyncClient,
        user_id: str,
        password: str,
        session_id: str,
        execution: str,
    ) -> Tuple[str, str, str]:
        material = make_cipher_material(password)
        form = {
            "username": user_id,
            "type": "UsernamePassword",
            "_eventId": "submit",
            "geolocation": "",
            "execution": execution,
            "captcha_code": "",
            "croypto": material.key_base64,
            "password": material.ciphertext_base64,
        }
        response = await client.post(
            self.sso_login_url,
            data=form,
            headers=cookie_headers({"SESSION": session_id}),
            follow_redirects=False,
        )

        location = require_location(response, "Credential submission")
        if extract_query_param(location, "ticket") is None:
            raise TicketMissing("Credential redirect carried no ticket")

        tgc = find_cookie(response, "SOURCEID_TGC") or ""
        rg_objectid = extract_rg_objectid(response) or ""
        for name, value in (("SOURCEID_TGC", tgc), ("rg_objectid", rg_objectid)):
            if not value:
                logger.warning(
                    f"Tracking cookie {name} not set by credential submission",
                    extra={"user_id": user_id, "cookie": name},
                )

        response = await client.get(location, follow_redirects=False)
        next_location = urljoin(location, require_location(response, "Ticket validation"))

        response = await client.get(
            next_location,
            headers=cookie_headers({
                "SESSION": session_id,
                "SOURCEID_TGC": tgc,
                "rg_objectid": rg_objectid,
            }),
            follow_redirects=True,
        )
        code = extract_query_param(str(response.url), "code")
        if not code:
            raise CodeMissing("OAuth redirect chain ended without a code")

        return tgc, rg_objectid, code

    async def _parallel_logins(
        self,
        client: httpx.AsyncClient,
        user_id: str,
        sso_cookies: Dict[str, str],
        code: str,
    ) -> Tuple[str, str]:
        async def token_exchange() -> str:
            with login_stage(LoginStage.TOKEN_EXCHANGE, user_id):
                return await self._exchange_token(client, sso_cookies)

        async def secondary_login() -> str:
            with login_stage(LoginStage.SECONDARY_PORTAL, user_id):
                return await self._secondary_portal_login(client, code)

        results = await asyncio.gather(
            token_exchange(), secondary_login(), return_exceptions=True
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result
        access_token, secondary_session_id = results
        return access_token, secondary_session_id

    async def _exchange_token(self, client: httpx.AsyncClient, sso_cookies: Dict[str, str]) -> str:
        callback = self.cas_callback_url
        response = await client.get(
            self.service_login_url(callback),
            headers=cookie_headers(sso_cookies),
            follow_redirects=False,
        )
        location = require_location(response, "CAS service login")
        ticket = extract_query_param(location, "ticket")
        if not ticket:
            raise TicketMissing("CAS callback redirect carried no ticket")

        payload = {
            "externalId": self.settings.CAS_EXTERNAL_ID,
            "data": json.dumps({
                "callbackUrl": callback,
                "ticket": ticket,
                "deviceId": generate_device_id(),
            }),
        }
        response = await client.post(
            f"{self.settings.ACCESS_BASE_URL}/api/access/auth/finish",
            json=payload,
        )
        token = require_json_field(response.json(), "data", "token")
        if not isinstance(token, str):
            raise UpstreamMalformed("Access token is not a string")
        return token

    async def _secondary_portal_login(self, client: httpx.AsyncClient, code: str) -> str:
        response = await client.post(
            f"{self.settings.PORTAL_BASE_URL}/portal/publish/web/login/loginByOauth",
            json={"code": code, "username": "", "password": ""},
            follow_redirects=False,
        )
        session_id = find_cookie(response, "JSESSIONID")
        if not session_id:
            raise CookieMissing("Portal OAuth login did not set JSESSIONID")
        return session_id

    async def _fetch_route(self, client: httpx.AsyncClient, access_token: str) -> str:
        response = await client.get(
            self.jwglxt_entry_url,
            headers=cookie_headers({"__access_token": access_token}),
            follow_redirects=False,
        )
        route = find_cookie(response, "route")
        if not route:
            raise RouteMissing("Academic system did not set a route cookie")
        return route

    async def _fetch_display_name(self, client: httpx.AsyncClient, secondary_session_id: str) -> str:
        response = await client.get(
            f"{self.settings.PORTAL_BASE_URL}/portal/publish/web/login/user",
            headers=cookie_headers({"JSESSIONID": secondary_session_id}),
            follow_redirects=False,
        )
        name = require_json_field(response.json(), "data", "name")
        return str(name)


__all__ = [
    "AuthBundle",
    "LoginResult",
    "SsoPipeline",
    "generate_device_id",
    "extract_execution_token",
    "login_stage",
]
