"""Media library uploads and listings.

Inline uploads carry base64 in the tool call itself, so they are capped far
below path-based uploads. Both limits are checked before any network call.
"""

import asyncio
import base64
import binascii
import json
import logging
import mimetypes
import re
from pathlib import Path
from typing import Any, Dict, Optional

from strapi_mcp.dispatcher import RequestDispatcher
from strapi_mcp.errors import MediaError
from strapi_mcp.query import to_content_manager_params
from strapi_mcp.redact import redact_binary

logger = logging.getLogger("strapi_mcp.media")

MAX_INLINE_BASE64_CHARS = 1024 * 1024
MAX_PATH_UPLOAD_BYTES = 10 * 1024 * 1024

_BASE64_RE = re.compile(r"^[A-Za-z0-9+/]*={0,2}$")
_DATA_URL_RE = re.compile(r"^data:[\w.+-]+/[\w.+-]+;base64,")

_MB = 1024 * 1024


def decode_inline_payload(file_data: str) -> bytes:
    """Validate and decode a base64 payload, enforcing the inline size ceiling."""
    file_data = _DATA_URL_RE.sub("", file_data.strip())
    if len(file_data) > MAX_INLINE_BASE64_CHARS:
        approx_mb = len(file_data) * 3 / 4 / _MB
        raise MediaError(
            f"File too large: ~{approx_mb:.2f}MB. Maximum ~0.75MB for base64 upload; "
            "use upload_media_from_path for larger files."
        )
    if not file_data or not _BASE64_RE.match(file_data):
        raise MediaError("Invalid base64 data")
    try:
        return base64.b64decode(file_data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise MediaError(f"Invalid base64 data: {e}") from e


def guess_mime_type(file_name: str) -> str:
    mime, _ = mimetypes.guess_type(file_name)
    return mime or "application/octet-stream"


class MediaOperations:
    def __init__(self, dispatcher: RequestDispatcher):
        self._dispatcher = dispatcher

    async def upload_media(self, file_data: str, file_name: str, file_type: str) -> Dict[str, Any]:
        content = decode_inline_payload(file_data)
        return await self._upload(content, file_name, file_type)

    async def upload_media_from_path(
        self, file_path: str, file_name: Optional[str] = None, file_type: Optional[str] = None
    ) -> Dict[str, Any]:
        path = Path(file_path).expanduser()
        if not path.is_file():
            raise MediaError(f"File not found: {file_path}")
        size = path.stat().st_size
        if size > MAX_PATH_UPLOAD_BYTES:
            raise MediaError(f"File too large: {size / _MB:.2f}MB. Maximum 10MB.")
        content = await asyncio.to_thread(path.read_bytes)
        name = file_name or path.name
        return await self._upload(content, name, file_type or guess_mime_type(name))

    async def _upload(self, content: bytes, file_name: str, file_type: str) -> Dict[str, Any]:
        logger.info(f"Uploading {file_name} ({len(content)} bytes, {file_type})")
        body = await self._dispatcher.request(
            "POST",
            "/upload",
            files={"files": (file_name, content, file_type)},
            data={"fileInfo": json.dumps({"name": file_name, "folder": None})},
        )
        uploaded = body[0] if isinstance(body, list) and body else body
        return redact_binary(uploaded)

    async def list_media(
        self,
        page: Optional[int] = None,
        page_size: Optional[int] = None,
        sort: Optional[str] = None,
        filters: Optional[Dict[str, Any]] = None,
    ) -> Any:
        params = to_content_manager_params(
            {"pagination": {"page": page, "pageSize": page_size}, "sort": sort, "filters": filters}
        )
        return redact_binary(await self._dispatcher.request("GET", "/upload/files", params=params))

    async def list_media_folders(
        self,
        page: Optional[int] = None,
        page_size: Optional[int] = None,
        sort: Optional[str] = None,
        filters: Optional[Dict[str, Any]] = None,
    ) -> Any:
        params = to_content_manager_params(
            {"pagination": {"page": page, "pageSize": page_size}, "sort": sort, "filters": filters}
        )
        return await self._dispatcher.request("GET", "/upload/folders", params=params)
