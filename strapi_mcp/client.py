"""
Composition root for one configured Strapi connection.

Each ``StrapiClient`` owns its own HTTP client, session and authenticator, so
several independently configured clients can live in one process.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from strapi_mcp.auth import Session, SessionAuthenticator
from strapi_mcp.config import StrapiSettings
from strapi_mcp.content import ContentOperations
from strapi_mcp.content_types import ContentTypeRegistry
from strapi_mcp.dispatcher import EndpointFamily, RequestDispatcher
from strapi_mcp.errors import BackendUnreachableError, ForbiddenError
from strapi_mcp.i18n import LocaleOperations
from strapi_mcp.media import MediaOperations
from strapi_mcp.query import to_content_api_params
from strapi_mcp.redact import redact_binary
from strapi_mcp.tokens import ApiTokenOperations, TokenCache

logger = logging.getLogger("strapi_mcp.client")

_ADMIN_PREFIXES = ("admin/", "content-manager", "content-type-builder", "i18n", "upload")
_SCHEMA_BUILDER = "content-type-builder"


def is_admin_endpoint(endpoint: str) -> bool:
    return endpoint.lstrip("/").startswith(_ADMIN_PREFIXES)


class StrapiClient:
    def __init__(
        self,
        settings: StrapiSettings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.settings = settings
        self.http = httpx.AsyncClient(
            base_url=settings.url,
            timeout=settings.timeout,
            headers={"Accept": "application/json"},
            transport=transport,
        )
        self.session = Session(api_token=settings.api_token)
        self.token_cache = TokenCache(settings.token_cache_path)
        self.auth = SessionAuthenticator(
            settings, self.http, self.session, sleep=sleep, on_login=self.token_cache.record_login
        )
        self.dispatcher = RequestDispatcher(self.http, self.auth)
        self.content_types = ContentTypeRegistry(self.dispatcher)
        self.content = ContentOperations(self.dispatcher, self.content_types)
        self.media = MediaOperations(self.dispatcher)
        self.locales = LocaleOperations(self.dispatcher)
        self.tokens = ApiTokenOperations(self.dispatcher, self.token_cache)

    @classmethod
    def from_env(cls) -> "StrapiClient":
        return cls(StrapiSettings.from_env())

    async def __aenter__(self) -> "StrapiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.http.aclose()

    async def ensure_api_token(self) -> Optional[str]:
        """Make sure public API calls have a static token, provisioning one via the admin API."""
        if self.session.api_token is None and self.auth.can_login:
            self.session.api_token = await self.tokens.provision_api_token()
        return self.session.api_token

    async def check_health(self) -> Dict[str, str]:
        try:
            response = await self.http.get("/_health", timeout=5.0)
        except httpx.ConnectError:
            return {"status": "unhealthy", "message": "Connection refused, check if Strapi is running"}
        except httpx.HTTPError as e:
            return {"status": "unhealthy", "message": f"Failed to connect to Strapi: {e}"}
        if response.status_code in (200, 204):
            return {"status": "healthy"}
        if response.status_code == 503:
            return {"status": "reloading", "message": "Strapi is restarting"}
        return {"status": "unhealthy", "message": f"Health check returned {response.status_code}"}

    async def validate_connection(self) -> str:
        """Probe the backend with whatever credentials are configured; returns the method used."""
        try:
            if self.auth.can_login:
                await self.dispatcher.request("GET", "/admin/users/me")
                method = "admin credentials"
            else:
                await self.dispatcher.request(
                    "GET", "/api/upload/files", params={"pagination": {"limit": 1}}, family=EndpointFamily.PUBLIC
                )
                method = "API token"
        except BackendUnreachableError as e:
            raise BackendUnreachableError(
                f"Cannot connect to Strapi: connection refused. Is Strapi running at {self.settings.url}?"
            ) from e
        logger.info(f"Connected to Strapi at {self.settings.url} using {method}")
        return method

    async def rest(
        self,
        endpoint: str,
        method: str = "GET",
        params: Optional[Dict[str, Any]] = None,
        body: Any = None,
        authenticated: bool = True,
    ) -> Any:
        """Raw passthrough for endpoints the typed operations don't cover."""
        method = method.upper()
        path = "/" + endpoint.lstrip("/")
        admin = is_admin_endpoint(endpoint)
        if admin and _SCHEMA_BUILDER in path and method != "GET" and not self.settings.dev_mode:
            raise ForbiddenError(
                f"{method} {path} modifies the schema and is only allowed with STRAPI_DEV_MODE=true",
                status=403,
            )
        if admin:
            result = await self.dispatcher.request(
                method, path, json_body=body, params=params, authenticated=authenticated
            )
        else:
            if authenticated:
                await self.ensure_api_token()
            result = await self.dispatcher.request(
                method,
                path,
                json_body=body,
                params=to_content_api_params(params) if params else None,
                family=EndpointFamily.PUBLIC,
                authenticated=authenticated,
            )
        return redact_binary(result)

