import json
import logging
from enum import Enum
from typing import Any, Dict, Optional

import httpx

from strapi_mcp.auth import Credential, CredentialKind, SessionAuthenticator
from strapi_mcp.errors import (
    AuthenticationError,
    BackendError,
    BackendUnreachableError,
    error_from_response,
)
from strapi_mcp.query import encode_query

logger = logging.getLogger("strapi_mcp.dispatcher")


class EndpointFamily(str, Enum):
    """Which credential a request travels with.

    ADMIN requests use the session token when there is one (falling back to the
    static token), PUBLIC requests only ever use the static API token.
    """

    ADMIN = "admin"
    PUBLIC = "public"


class RequestDispatcher:
    def __init__(self, http: httpx.AsyncClient, authenticator: SessionAuthenticator):
        self._http = http
        self.auth = authenticator

    async def request(
        self,
        method: str,
        path: str,
        *,
        json_body: Any = None,
        params: Optional[Dict[str, Any]] = None,
        files: Any = None,
        data: Optional[Dict[str, Any]] = None,
        family: EndpointFamily = EndpointFamily.ADMIN,
        authenticated: bool = True,
    ) -> Any:
        """Send one request and return its decoded JSON body.

        A 401 on a session-authenticated request triggers one re-login and one
        retry; every other failure is raised as the matching StrapiError.
        """
        method = method.upper()
        if family is EndpointFamily.ADMIN and authenticated:
            await self._ensure_session()

        credential = self._credential(family, authenticated)
        response = await self._send(method, path, credential, json_body, params, files, data)

        if response.status_code == 401 and authenticated:
            recovered = await self.auth.handle_auth_error(response, credential)
            if recovered:
                credential = self._credential(family, authenticated)
                logger.info(f"Re-authenticated, retrying {method} {path}")
                response = await self._send(method, path, credential, json_body, params, files, data)

        return self._decode(response, method, path)

    async def _ensure_session(self) -> None:
        if not self.auth.can_login or self.auth.session.session_token:
            return
        if not await self.auth.login():
            raise AuthenticationError("Failed to authenticate with the configured admin credentials")

    def _credential(self, family: EndpointFamily, authenticated: bool) -> Credential:
        if not authenticated:
            return Credential(CredentialKind.NONE)
        if family is EndpointFamily.PUBLIC:
            return self.auth.session.static()
        return self.auth.session.current()

    async def _send(
        self,
        method: str,
        path: str,
        credential: Credential,
        json_body: Any,
        params: Optional[Dict[str, Any]],
        files: Any,
        data: Optional[Dict[str, Any]],
    ) -> httpx.Response:
        logger.debug(f"{method} {path} (credential={credential.kind.value})")
        try:
            return await self._http.request(
                method,
                path,
                params=encode_query(params) if params else None,
                json=json_body if files is None else None,
                files=files,
                data=data,
                headers=credential.headers(),
            )
        except httpx.ConnectError as e:
            raise BackendUnreachableError(
                f"Connection refused, check if Strapi is running at {self._http.base_url}"
            ) from e

    def _decode(self, response: httpx.Response, method: str, path: str) -> Any:
        if response.status_code >= 400:
            error = error_from_response(response, method, path)
            logger.warning(f"{method} {path} -> {response.status_code}: {error.message}")
            raise error

        if not response.content:
            return None

        content_type = response.headers.get("content-type", "")
        if "text/html" in content_type:
            if "Strapi Admin" in response.text or "strapi--root" in response.text:
                raise BackendError(
                    f"Authentication failed or wrong endpoint: got the admin login page for {method} {path}"
                )
            raise BackendError(f"Invalid API endpoint {method} {path}: got HTML instead of JSON")

        try:
            body = response.json()
        except json.JSONDecodeError:
            return response.text

        # some endpoints report errors inside a 2xx envelope
        if isinstance(body, dict) and isinstance(body.get("error"), dict):
            raise error_from_response(
                httpx.Response(body["error"].get("status") or 400, json=body), method, path
            )
        return body
