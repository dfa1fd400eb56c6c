"""
API-token management and the on-disk token cache.

The cache only saves provisioning work across restarts: an issued API key and
the time of the last admin login. Nothing depends on it for correctness, so
unreadable or missing files are treated as empty.
"""

import asyncio
import logging
import secrets
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from strapi_mcp.dispatcher import RequestDispatcher
from strapi_mcp.errors import StrapiError, ValidationFailedError

logger = logging.getLogger("strapi_mcp.tokens")

API_TOKENS_PATH = "/admin/api-tokens"
DEFAULT_TOKEN_NAME = "strapi-mcp"
MAX_NAME_ATTEMPTS = 5
_DAY_MS = 24 * 60 * 60 * 1000

TokenType = Literal["read-only", "full-access", "custom"]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class TokenCacheRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    api_key: Optional[str] = Field(default=None, alias="apiKey")
    created_at: Optional[str] = Field(default=None, alias="createdAt")
    last_login_at: Optional[str] = Field(default=None, alias="lastLoginAt")


class TokenCache:
    def __init__(self, path: Path):
        self.path = Path(path)

    def _read(self) -> TokenCacheRecord:
        try:
            return TokenCacheRecord.model_validate_json(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return TokenCacheRecord()
        except (OSError, ValidationError) as e:
            logger.warning(f"Ignoring unreadable token cache {self.path}: {e}")
            return TokenCacheRecord()

    def _write(self, record: TokenCacheRecord) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(record.model_dump_json(by_alias=True, indent=2), encoding="utf-8")

    async def load(self) -> TokenCacheRecord:
        return await asyncio.to_thread(self._read)

    async def save(self, record: TokenCacheRecord) -> None:
        try:
            await asyncio.to_thread(self._write, record)
        except OSError as e:
            logger.warning(f"Failed to save token cache {self.path}: {e}")

    async def record_login(self) -> None:
        record = await self.load()
        record.last_login_at = _now()
        await self.save(record)

    async def clear(self) -> bool:
        def _unlink() -> bool:
            try:
                self.path.unlink()
                return True
            except FileNotFoundError:
                return False

        return await asyncio.to_thread(_unlink)


class ApiTokenOperations:
    def __init__(self, dispatcher: RequestDispatcher, cache: TokenCache):
        self._dispatcher = dispatcher
        self.cache = cache

    async def create_api_token(
        self,
        name: str,
        description: str = "",
        token_type: TokenType = "full-access",
        lifespan_days: Optional[int] = None,
    ) -> Dict[str, Any]:
        body = {
            "name": name,
            "description": description,
            "type": token_type,
            "lifespan": lifespan_days * _DAY_MS if lifespan_days else None,
            "permissions": None,
        }
        response = await self._dispatcher.request("POST", API_TOKENS_PATH, json_body=body)
        access_key = ((response or {}).get("data") or {}).get("accessKey")
        if not access_key:
            return {"success": False, "message": "Failed to create API token"}
        return {
            "success": True,
            "token": access_key,
            "message": "API token created successfully. Save this token as it will not be shown again.",
        }

    async def list_api_tokens(self) -> List[Dict[str, Any]]:
        response = await self._dispatcher.request("GET", API_TOKENS_PATH)
        return (response or {}).get("data") or []

    async def delete_api_token(self, token_id: int) -> Dict[str, Any]:
        await self._dispatcher.request("DELETE", f"{API_TOKENS_PATH}/{token_id}")
        return {"success": True, "message": f"API token {token_id} deleted successfully"}

    async def provision_api_token(self) -> Optional[str]:
        """Return the cached API key, creating and caching a new one if needed."""
        record = await self.cache.load()
        if record.api_key:
            return record.api_key

        for attempt in range(MAX_NAME_ATTEMPTS):
            name = DEFAULT_TOKEN_NAME if attempt == 0 else f"{DEFAULT_TOKEN_NAME}-{secrets.token_hex(3)}"
            try:
                result = await self.create_api_token(
                    name, description="Auto-generated token for MCP server REST API access"
                )
            except ValidationFailedError as e:
                if "Name already taken" in e.message:
                    logger.info(f"Token name {name} taken, retrying ({attempt + 1}/{MAX_NAME_ATTEMPTS})")
                    continue
                raise
            except StrapiError as e:
                logger.error(f"Failed to provision API token: {e}")
                return None
            if not result["success"]:
                return None
            record.api_key = result["token"]
            record.created_at = _now()
            await self.cache.save(record)
            logger.info("API token created and cached")
            return record.api_key
        return None

    async def clear_token_cache(self) -> Dict[str, Any]:
        removed = await self.cache.clear()
        message = "Token cache cleared successfully" if removed else "Token cache was already empty"
        return {"success": True, "message": message}
