"""
Environment-driven settings for the Strapi MCP adapter.

Env:
  STRAPI_URL             = base URL of the Strapi server (default http://localhost:1337)
  STRAPI_API_TOKEN       = static API token for the public content API
  STRAPI_ADMIN_EMAIL     = admin login, enables the content-manager API
  STRAPI_ADMIN_PASSWORD
  STRAPI_DEV_MODE        = true|false, allows schema-mutating passthrough calls
  STRAPI_TIMEOUT         = HTTP timeout in seconds (default 30)
  STRAPI_TOKEN_CACHE     = path of the on-disk token cache
  MCP_LOG_LEVEL          = DEBUG|INFO|WARNING|ERROR (default INFO)
"""

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from strapi_mcp.errors import AuthenticationError

DEFAULT_URL = "http://localhost:1337"
DEFAULT_TOKEN_CACHE = Path.home() / ".mcp" / "strapi-mcp.tokens.json"

_PLACEHOLDER_TOKENS = {"strapi_token", "your-api-token-here"}
_TRUTHY = {"1", "true", "yes", "on"}


class StrapiSettings(BaseModel):
    url: str = DEFAULT_URL
    api_token: Optional[str] = None
    admin_email: Optional[str] = None
    admin_password: Optional[str] = Field(default=None, repr=False)
    dev_mode: bool = False
    timeout: float = Field(default=30.0, gt=0)
    token_cache_path: Path = DEFAULT_TOKEN_CACHE
    log_level: str = "INFO"

    @field_validator("url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("log_level")
    @classmethod
    def _upper_log_level(cls, value: str) -> str:
        return value.upper()

    @property
    def has_admin_credentials(self) -> bool:
        return bool(self.admin_email and self.admin_password)

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "StrapiSettings":
        """Build settings from the process environment (and a .env file, if present)."""
        if dotenv:
            load_dotenv()
        cache_path = os.getenv("STRAPI_TOKEN_CACHE")
        return cls(
            url=os.getenv("STRAPI_URL", DEFAULT_URL),
            api_token=os.getenv("STRAPI_API_TOKEN") or None,
            admin_email=os.getenv("STRAPI_ADMIN_EMAIL") or None,
            admin_password=os.getenv("STRAPI_ADMIN_PASSWORD") or None,
            dev_mode=os.getenv("STRAPI_DEV_MODE", "false").strip().lower() in _TRUTHY,
            timeout=float(os.getenv("STRAPI_TIMEOUT", "30")),
            token_cache_path=Path(cache_path).expanduser() if cache_path else DEFAULT_TOKEN_CACHE,
            log_level=os.getenv("MCP_LOG_LEVEL", "INFO"),
        )

    def validate_credentials(self) -> None:
        """Fail fast when no usable credential of any kind is configured."""
        if not self.api_token and not self.has_admin_credentials:
            raise AuthenticationError(
                "Missing required authentication. Provide STRAPI_API_TOKEN or both "
                "STRAPI_ADMIN_EMAIL and STRAPI_ADMIN_PASSWORD."
            )
        if self.api_token and (
            self.api_token in _PLACEHOLDER_TOKENS or "placeholder" in self.api_token
        ):
            raise AuthenticationError(
                "STRAPI_API_TOKEN appears to be a placeholder value. "
                "Please provide a real API token from your Strapi admin panel."
            )
