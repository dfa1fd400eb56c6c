"""
Session handling for the Strapi admin API.

A ``Session`` holds the two kinds of credentials the adapter knows about: a
static API token supplied by configuration and a session token obtained by
logging in as an admin. The ``SessionAuthenticator`` acquires session tokens,
backs off on rate limiting, and makes sure concurrent callers share a single
login round trip.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Dict, Optional

import httpx

from strapi_mcp.config import StrapiSettings
from strapi_mcp.errors import BackendUnreachableError

logger = logging.getLogger("strapi_mcp.auth")

LOGIN_PATH = "/admin/login"
MAX_LOGIN_ATTEMPTS = 5
INITIAL_BACKOFF_S = 1.0


class CredentialKind(str, Enum):
    SESSION = "session"
    API_TOKEN = "api_token"
    NONE = "none"


@dataclass(frozen=True)
class Credential:
    """The credential a single request was sent with."""

    kind: CredentialKind
    token: Optional[str] = None

    def headers(self) -> Dict[str, str]:
        if self.token is None:
            return {}
        return {"Authorization": f"Bearer {self.token}"}


@dataclass
class Session:
    api_token: Optional[str] = None
    session_token: Optional[str] = field(default=None, repr=False)

    def current(self) -> Credential:
        # a session token always wins over the static token
        if self.session_token:
            return Credential(CredentialKind.SESSION, self.session_token)
        if self.api_token:
            return Credential(CredentialKind.API_TOKEN, self.api_token)
        return Credential(CredentialKind.NONE)

    def static(self) -> Credential:
        if self.api_token:
            return Credential(CredentialKind.API_TOKEN, self.api_token)
        return Credential(CredentialKind.NONE)

    def invalidate(self, token: Optional[str] = None) -> None:
        """Drop the session token, but only if it is still the one given."""
        if token is None or self.session_token == token:
            self.session_token = None


class SessionAuthenticator:
    def __init__(
        self,
        settings: StrapiSettings,
        http: httpx.AsyncClient,
        session: Session,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_login: Optional[Callable[[], Awaitable[None]]] = None,
        max_attempts: int = MAX_LOGIN_ATTEMPTS,
        initial_backoff: float = INITIAL_BACKOFF_S,
    ):
        self._settings = settings
        self._http = http
        self.session = session
        self._sleep = sleep
        self._on_login = on_login
        self._max_attempts = max_attempts
        self._initial_backoff = initial_backoff
        self._inflight: Optional["asyncio.Future[bool]"] = None

    @property
    def can_login(self) -> bool:
        return self._settings.has_admin_credentials

    @property
    def login_in_progress(self) -> bool:
        return self._inflight is not None

    def get_auth_headers(self) -> Dict[str, str]:
        return self.session.current().headers()

    async def login(self) -> bool:
        """Obtain a session token; returns False on ordinary authentication failure.

        Raises BackendUnreachableError when the backend cannot be reached at all.
        """
        if self._inflight is not None:
            return await asyncio.shield(self._inflight)
        if not self.can_login:
            logger.debug("No admin credentials configured, skipping admin login")
            return False
        if self.session.session_token:
            return True
        self._inflight = asyncio.ensure_future(self._run_login())
        return await asyncio.shield(self._inflight)

    async def _run_login(self) -> bool:
        try:
            return await self._perform_login()
        finally:
            self._inflight = None

    async def _perform_login(self) -> bool:
        delay = self._initial_backoff
        payload = {"email": self._settings.admin_email, "password": self._settings.admin_password}
        for attempt in range(1, self._max_attempts + 1):
            try:
                response = await self._http.post(LOGIN_PATH, json=payload)
            except httpx.ConnectError as e:
                logger.error(f"Login failed, backend unreachable at {self._settings.url}: {e}")
                raise BackendUnreachableError(
                    f"Connection refused, check if Strapi is running at {self._settings.url}"
                ) from e
            except httpx.HTTPError as e:
                logger.warning(f"Login request error: {e}")
                return False

            if response.status_code == 429:
                logger.warning(f"Login rate limited (429), attempt {attempt}/{self._max_attempts}")
                if attempt < self._max_attempts:
                    await self._sleep(delay)
                    delay *= 2
                    continue
                return False

            token = _extract_token(response)
            if response.status_code == 200 and token:
                self.session.session_token = token
                logger.info("Logged in to Strapi admin")
                if self._on_login is not None:
                    await self._on_login()
                return True

            logger.error(f"Login failed with status {response.status_code}")
            return False
        return False

    async def handle_auth_error(self, response: httpx.Response, sent: Credential) -> bool:
        """Try to recover from a 401; returns True when the request may be retried.

        Only session tokens are refreshed. A 401 on a request sent with the
        static API token, or with no credential at all, is not recoverable here.
        """
        if response.status_code != 401:
            return False
        if sent.kind is not CredentialKind.SESSION:
            logger.debug(f"401 with {sent.kind.value} credential, no session to refresh")
            return False
        logger.warning("Admin session expired, attempting re-login")
        self.session.invalidate(sent.token)
        return await self.login()


def _extract_token(response: httpx.Response) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        return None
    data = body.get("data") if isinstance(body, dict) else None
    return data.get("token") if isinstance(data, dict) else None
