"""MCP adapter exposing a Strapi CMS as callable tools."""

from strapi_mcp.client import StrapiClient
from strapi_mcp.config import StrapiSettings
from strapi_mcp.errors import (
    AuthenticationError,
    BackendError,
    BackendUnreachableError,
    ForbiddenError,
    MediaError,
    MissingRequiredFieldsError,
    NotFoundError,
    RateLimitedError,
    StrapiError,
    ValidationFailedError,
)
from strapi_mcp.query import QuerySpec

__version__ = "0.5.0"

__all__ = [
    "AuthenticationError",
    "BackendError",
    "BackendUnreachableError",
    "ForbiddenError",
    "MediaError",
    "MissingRequiredFieldsError",
    "NotFoundError",
    "QuerySpec",
    "RateLimitedError",
    "StrapiClient",
    "StrapiError",
    "StrapiSettings",
    "ValidationFailedError",
    "__version__",
]
