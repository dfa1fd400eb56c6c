"""
MCP server exposing Strapi content operations as tools.

Runs in two modes:
  1) MCP over stdio  ->  `strapi-mcp --mode stdio`
  2) HTTP (FastAPI)  ->  `strapi-mcp --mode http --host 0.0.0.0 --port 8000`

Every tool call gets a correlation id and a timing line in the logs. Backend
errors are surfaced to the client with their full message (missing fields,
offending paths, sizes); unexpected errors are logged with a traceback and
returned as a generic message.
"""

import argparse
import logging
import signal
import sys
import time
import traceback
import uuid
from typing import Any, Awaitable, Callable, Dict, List, Literal, Optional, Tuple

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError
from pydantic import Field, ValidationError

from strapi_mcp import __version__
from strapi_mcp.client import StrapiClient
from strapi_mcp.config import StrapiSettings
from strapi_mcp.errors import AuthenticationError, StrapiError
from strapi_mcp.logging_setup import configure_logging
from strapi_mcp.query import QuerySpec

logger = logging.getLogger("strapi_mcp.server")

SERVER_NAME = "strapi-mcp"

_LOCALE_HELP = "Locale code (e.g. 'en', 'ru'). Omit or use 'all' to target every locale."


# -----------------------------
# Helpers
# -----------------------------
def _time_call() -> Tuple[float, Callable[[], float]]:
    start = time.perf_counter()

    def done() -> float:
        return time.perf_counter() - start

    return start, done


def _summarize(args: Dict[str, Any]) -> Dict[str, Any]:
    # keeps base64 payloads and long bodies out of the logs
    return {k: (f"<{len(v)} chars>" if isinstance(v, str) and len(v) > 200 else v) for k, v in args.items()}


async def _run(tool: str, call: Callable[[], Awaitable[Any]], **args: Any) -> Any:
    call_id = str(uuid.uuid4())
    logger.debug(f"[{call_id}] {tool}() invoked with {_summarize(args)}")
    _, done = _time_call()
    try:
        result = await call()
        logger.info(f"[{call_id}] {tool}() success in {done():.3f}s")
        return result
    except StrapiError as e:
        logger.warning(f"[{call_id}] {tool}() {type(e).__name__} after {done():.3f}s: {e}")
        raise ToolError(str(e)) from e
    except ValidationError as e:
        logger.warning(f"[{call_id}] {tool}() pydantic validation error after {done():.3f}s: {e}")
        raise ValueError(f"Validation failed: {e}") from e
    except (TypeError, ValueError) as e:
        logger.warning(f"[{call_id}] {tool}() validation error after {done():.3f}s: {e}")
        raise ValueError(f"Invalid input: {e}") from e
    except Exception as e:
        tb = "".join(traceback.format_exception(type(e), e, e.__traceback__))
        logger.error(f"[{call_id}] {tool}() unexpected error after {done():.3f}s:\n{tb}")
        raise RuntimeError(f"An unexpected error occurred while running {tool}.") from e


def _query(options: Optional[Dict[str, Any]]) -> QuerySpec:
    return QuerySpec.coerce(options)


# -----------------------------
# MCP server
# -----------------------------
def build_server(client: StrapiClient) -> FastMCP:
    mcp = FastMCP(
        name=SERVER_NAME,
        instructions=(
            "Tools for managing Strapi content. Entries are created as drafts; publish them "
            "explicitly. Delete, publish and unpublish without a locale affect every locale."
        ),
    )
    content = client.content

    # ---- content types -------------------------------------------------
    @mcp.tool(title="List content types", description="Lists the content types managed by this Strapi instance.")
    async def list_content_types() -> Any:
        async def call():
            types = await client.content_types.list_content_types(refresh=True)
            return [t.model_dump(by_alias=True) for t in types]

        return await _run("list_content_types", call)

    @mcp.tool(
        title="Get content type schema",
        description="Returns the full schema of a content type. Check required fields here before creating entries.",
    )
    async def get_content_type_schema(
        content_type: str = Field(description="Content type UID, e.g. 'api::article.article'"),
    ) -> Any:
        return await _run(
            "get_content_type_schema",
            lambda: client.content_types.get_content_type_schema(content_type),
            content_type=content_type,
        )

    @mcp.tool(title="List components", description="Lists component schemas (read-only).")
    async def list_components() -> Any:
        return await _run("list_components", client.content_types.list_components)

    @mcp.tool(title="Get component schema", description="Returns the schema of one component (read-only).")
    async def get_component_schema(
        component: str = Field(description="Component UID, e.g. 'blocks.hero'"),
    ) -> Any:
        return await _run(
            "get_component_schema",
            lambda: client.content_types.get_component_schema(component),
            component=component,
        )

    # ---- reads ---------------------------------------------------------
    @mcp.tool(
        title="Get entries",
        description=(
            "Lists entries (drafts included) with filters, pagination, sort, populate, fields, locale and "
            "status. populate='*' only goes one level deep; for dynamic zones use "
            "{'populate': {'sections': {'populate': '*'}}}."
        ),
    )
    async def get_entries(
        content_type: str = Field(description="Content type UID or plural API id"),
        options: Optional[Dict[str, Any]] = Field(
            default=None,
            description=(
                "Query options object: filters, pagination {page, pageSize}, sort ('field:asc' or list), "
                "populate ('*', list, or nested object), fields, locale ('all' for every locale), "
                "status ('draft'|'published'|'all'). Unknown keys are passed through."
            ),
        ),
    ) -> Any:
        return await _run(
            "get_entries",
            lambda: content.get_entries(content_type, _query(options)),
            content_type=content_type,
            options=options,
        )

    @mcp.tool(title="Get entry", description="Fetches one entry by document id through the admin API (draft state).")
    async def get_entry(
        content_type: str = Field(description="Content type UID or plural API id"),
        document_id: str = Field(description="Document id"),
        locale: Optional[str] = Field(default=None, description="Locale to fetch; omit for the default locale"),
        options: Optional[Dict[str, Any]] = Field(default=None, description="populate / fields options"),
    ) -> Any:
        return await _run(
            "get_entry",
            lambda: content.get_entry(content_type, document_id, locale=locale, query=_query(options)),
            content_type=content_type,
            document_id=document_id,
            locale=locale,
        )

    @mcp.tool(
        title="Get published entry",
        description="Fetches the published version of an entry through the public API. Drafts are not visible here.",
    )
    async def get_published_entry(
        content_type: str = Field(description="Plural API id or content type UID"),
        document_id: str = Field(description="Document id"),
        locale: Optional[str] = Field(default=None, description="Locale to fetch; omit for the default locale"),
        options: Optional[Dict[str, Any]] = Field(default=None, description="populate / fields options"),
    ) -> Any:
        async def call():
            await client.ensure_api_token()
            return await content.get_published_entry(content_type, document_id, locale=locale, query=_query(options))

        return await _run(
            "get_published_entry", call, content_type=content_type, document_id=document_id, locale=locale
        )

    # ---- writes --------------------------------------------------------
    @mcp.tool(
        title="Create entry",
        description=(
            "Creates an entry as a draft, or creates and publishes it when publish=true. "
            "Required fields are checked against the schema first."
        ),
    )
    async def create_entry(
        content_type: str = Field(description="Content type UID or plural API id"),
        data: Dict[str, Any] = Field(description="Entry fields, with required fields at the root level"),
        locale: Optional[str] = Field(default=None, description="Locale of the new entry; omit for the default"),
        publish: bool = Field(default=False, description="Publish immediately after creation"),
    ) -> Any:
        op = content.create_published_entry if publish else content.create_entry
        return await _run(
            "create_entry",
            lambda: op(content_type, data, locale=locale),
            content_type=content_type,
            locale=locale,
            publish=publish,
        )

    @mcp.tool(
        title="Update entry",
        description=(
            "Updates an entry's draft, optionally publishing it. With partial=true only the given top-level "
            "fields change and the rest of the entry is kept."
        ),
    )
    async def update_entry(
        content_type: str = Field(description="Content type UID or plural API id"),
        document_id: str = Field(description="Document id"),
        data: Dict[str, Any] = Field(description="Fields to write"),
        locale: Optional[str] = Field(default=None, description="Locale variant to update; omit for the default"),
        publish: bool = Field(default=False, description="Also publish the updated entry"),
        partial: bool = Field(default=False, description="Merge into the existing entry instead of replacing it"),
    ) -> Any:
        op = content.update_entry_and_publish if publish else content.update_entry_draft
        return await _run(
            "update_entry",
            lambda: op(content_type, document_id, data, locale=locale, partial=partial),
            content_type=content_type,
            document_id=document_id,
            locale=locale,
            publish=publish,
            partial=partial,
        )

    @mcp.tool(
        title="Delete entry",
        description="Deletes an entry. WARNING: without a locale every locale variant of the document is deleted.",
    )
    async def delete_entry(
        content_type: str = Field(description="Content type UID or plural API id"),
        document_id: str = Field(description="Document id"),
        locale: Optional[str] = Field(default=None, description=_LOCALE_HELP),
    ) -> Any:
        return await _run(
            "delete_entry",
            lambda: content.delete_entry(content_type, document_id, locale=locale),
            content_type=content_type,
            document_id=document_id,
            locale=locale,
        )

    @mcp.tool(
        title="Delete all entries",
        description="DESTRUCTIVE: deletes every entry of a content type. Requires confirm=true.",
    )
    async def delete_all_entries(
        content_type: str = Field(description="Content type UID or plural API id"),
        confirm: bool = Field(description="Must be true to confirm this destructive operation"),
    ) -> Any:
        async def call():
            if confirm is not True:
                raise ValueError("Deletion not confirmed. Set confirm to true to proceed.")
            return await content.delete_all_entries(content_type)

        return await _run("delete_all_entries", call, content_type=content_type)

    # ---- publication ---------------------------------------------------
    @mcp.tool(title="Publish entry", description="Publishes one locale of an entry, or every locale when none is given.")
    async def publish_entry(
        content_type: str = Field(description="Content type UID or plural API id"),
        document_id: str = Field(description="Document id"),
        locale: Optional[str] = Field(default=None, description=_LOCALE_HELP),
    ) -> Any:
        return await _run(
            "publish_entry",
            lambda: content.publish_entry(content_type, document_id, locale=locale),
            content_type=content_type,
            document_id=document_id,
            locale=locale,
        )

    @mcp.tool(
        title="Unpublish entry",
        description="Moves one locale of an entry back to draft, or every locale when none is given.",
    )
    async def unpublish_entry(
        content_type: str = Field(description="Content type UID or plural API id"),
        document_id: str = Field(description="Document id"),
        locale: Optional[str] = Field(default=None, description=_LOCALE_HELP),
    ) -> Any:
        return await _run(
            "unpublish_entry",
            lambda: content.unpublish_entry(content_type, document_id, locale=locale),
            content_type=content_type,
            document_id=document_id,
            locale=locale,
        )

    @mcp.tool(title="Publish entries", description="Publishes every locale of every listed document.")
    async def publish_entries(
        content_type: str = Field(description="Content type UID or plural API id"),
        document_ids: List[str] = Field(description="Document ids to publish"),
    ) -> Any:
        return await _run(
            "publish_entries",
            lambda: content.publish_entries(content_type, document_ids),
            content_type=content_type,
            document_ids=document_ids,
        )

    @mcp.tool(title="Unpublish entries", description="Unpublishes every locale of every listed document.")
    async def unpublish_entries(
        content_type: str = Field(description="Content type UID or plural API id"),
        document_ids: List[str] = Field(description="Document ids to unpublish"),
    ) -> Any:
        return await _run(
            "unpublish_entries",
            lambda: content.unpublish_entries(content_type, document_ids),
            content_type=content_type,
            document_ids=document_ids,
        )

    @mcp.tool(
        title="Create localized entry",
        description="Adds a locale variant to an existing document, as a draft or published (publish=true).",
    )
    async def create_localized_entry(
        content_type: str = Field(description="Content type UID or plural API id"),
        document_id: str = Field(description="Document id of the existing entry"),
        locale: str = Field(description="Locale code of the new variant"),
        data: Dict[str, Any] = Field(description="Fields of the new locale variant"),
        publish: bool = Field(default=False, description="Publish the new variant immediately"),
    ) -> Any:
        op = content.create_and_publish_localized_entry if publish else content.create_localized_draft
        return await _run(
            "create_localized_entry",
            lambda: op(content_type, document_id, data, locale),
            content_type=content_type,
            document_id=document_id,
            locale=locale,
            publish=publish,
        )

    # ---- relations -----------------------------------------------------
    def _relation_tool(name: str, verb: str):
        op = getattr(content, name)

        async def relation(
            content_type: str = Field(description="Content type UID or plural API id"),
            document_id: str = Field(description="Document id of the owning entry"),
            relation_field: str = Field(description="Name of the relation field"),
            related_ids: List[str] = Field(description="Document ids of the related entries"),
            locale: Optional[str] = Field(default=None, description="Locale variant to change"),
        ) -> Any:
            return await _run(
                name,
                lambda: op(content_type, document_id, relation_field, related_ids, locale=locale),
                content_type=content_type,
                document_id=document_id,
                relation_field=relation_field,
            )

        relation.__name__ = name
        mcp.tool(name=name, title=name.replace("_", " ").capitalize(), description=verb)(relation)

    _relation_tool("connect_relation", "Adds related entries to a relation field.")
    _relation_tool("disconnect_relation", "Removes related entries from a relation field.")
    _relation_tool("set_relation", "Replaces all related entries of a relation field.")

    # ---- dynamic-zone sections -----------------------------------------
    @mcp.tool(
        title="Add section",
        description=(
            "Inserts a section into a dynamic zone without touching the other sections. "
            "The section must include __component."
        ),
    )
    async def add_section(
        content_type: str = Field(description="Content type UID or plural API id"),
        document_id: str = Field(description="Document id"),
        zone: str = Field(min_length=1, description="Dynamic zone field, e.g. 'sections'"),
        section: Dict[str, Any] = Field(description="Section data including __component"),
        position: Optional[int] = Field(default=None, ge=0, description="0-based position; omit to append"),
        locale: Optional[str] = Field(default=None, description="Locale variant to change; omit for the default"),
        publish: bool = Field(default=False, description="Publish the entry after the change"),
    ) -> Any:
        return await _run(
            "add_section",
            lambda: content.add_section(content_type, document_id, zone, section, position, locale, publish),
            content_type=content_type,
            document_id=document_id,
            zone=zone,
            position=position,
        )

    @mcp.tool(title="Update section", description="Replaces one section of a dynamic zone by index.")
    async def update_section(
        content_type: str = Field(description="Content type UID or plural API id"),
        document_id: str = Field(description="Document id"),
        zone: str = Field(min_length=1, description="Dynamic zone field, e.g. 'sections'"),
        index: int = Field(ge=0, description="0-based index of the section"),
        section: Dict[str, Any] = Field(description="New section data including __component"),
        locale: Optional[str] = Field(default=None, description="Locale variant to change; omit for the default"),
        publish: bool = Field(default=False, description="Publish the entry after the change"),
    ) -> Any:
        return await _run(
            "update_section",
            lambda: content.update_section(content_type, document_id, zone, index, section, locale, publish),
            content_type=content_type,
            document_id=document_id,
            zone=zone,
            index=index,
        )

    @mcp.tool(title="Delete section", description="Removes one section of a dynamic zone by index.")
    async def delete_section(
        content_type: str = Field(description="Content type UID or plural API id"),
        document_id: str = Field(description="Document id"),
        zone: str = Field(min_length=1, description="Dynamic zone field, e.g. 'sections'"),
        index: int = Field(ge=0, description="0-based index of the section"),
        locale: Optional[str] = Field(default=None, description="Locale variant to change; omit for the default"),
        publish: bool = Field(default=False, description="Publish the entry after the change"),
    ) -> Any:
        return await _run(
            "delete_section",
            lambda: content.delete_section(content_type, document_id, zone, index, locale, publish),
            content_type=content_type,
            document_id=document_id,
            zone=zone,
            index=index,
        )

    @mcp.tool(title="Reorder sections", description="Moves one section of a dynamic zone to another position.")
    async def reorder_sections(
        content_type: str = Field(description="Content type UID or plural API id"),
        document_id: str = Field(description="Document id"),
        zone: str = Field(min_length=1, description="Dynamic zone field, e.g. 'sections'"),
        from_index: int = Field(ge=0, description="Current 0-based index"),
        to_index: int = Field(ge=0, description="Target 0-based index"),
        locale: Optional[str] = Field(default=None, description="Locale variant to change; omit for the default"),
        publish: bool = Field(default=False, description="Publish the entry after the change"),
    ) -> Any:
        return await _run(
            "reorder_sections",
            lambda: content.reorder_sections(
                content_type, document_id, zone, from_index, to_index, locale, publish
            ),
            content_type=content_type,
            document_id=document_id,
            zone=zone,
        )

    # ---- media ---------------------------------------------------------
    @mcp.tool(
        title="Upload media",
        description="Uploads a base64-encoded file. Limited to ~750KB; use upload_media_from_path for larger files.",
    )
    async def upload_media(
        file_data: str = Field(description="Base64 encoded file data"),
        file_name: str = Field(min_length=1, description="Name for the file"),
        file_type: str = Field(min_length=1, description="MIME type, e.g. 'image/jpeg'"),
    ) -> Any:
        return await _run(
            "upload_media",
            lambda: client.media.upload_media(file_data, file_name, file_type),
            file_data=file_data,
            file_name=file_name,
            file_type=file_type,
        )

    @mcp.tool(title="Upload media from path", description="Uploads a local file (up to 10MB).")
    async def upload_media_from_path(
        file_path: str = Field(min_length=1, description="Local file system path"),
        file_name: Optional[str] = Field(default=None, description="Override the file name"),
        file_type: Optional[str] = Field(default=None, description="Override the MIME type"),
    ) -> Any:
        return await _run(
            "upload_media_from_path",
            lambda: client.media.upload_media_from_path(file_path, file_name, file_type),
            file_path=file_path,
        )

    @mcp.tool(title="List media", description="Lists media library files with optional filters and pagination.")
    async def list_media(
        page: Optional[int] = Field(default=None, ge=1, description="Page number"),
        page_size: Optional[int] = Field(default=None, ge=1, description="Items per page"),
        sort: Optional[str] = Field(default=None, description="Sort order, e.g. 'createdAt:desc'"),
        filters: Optional[Dict[str, Any]] = Field(
            default=None, description="Filters, e.g. {'mime': {'$contains': 'image'}}"
        ),
    ) -> Any:
        return await _run(
            "list_media",
            lambda: client.media.list_media(page, page_size, sort, filters),
            page=page,
            page_size=page_size,
        )

    @mcp.tool(title="List media folders", description="Lists media library folders.")
    async def list_media_folders(
        page: Optional[int] = Field(default=None, ge=1, description="Page number"),
        page_size: Optional[int] = Field(default=None, ge=1, description="Items per page"),
        sort: Optional[str] = Field(default=None, description="Sort order"),
        filters: Optional[Dict[str, Any]] = Field(default=None, description="Filters"),
    ) -> Any:
        return await _run(
            "list_media_folders",
            lambda: client.media.list_media_folders(page, page_size, sort, filters),
            page=page,
            page_size=page_size,
        )

    # ---- locales -------------------------------------------------------
    @mcp.tool(title="List locales", description="Lists the locales enabled in the i18n plugin.")
    async def list_locales() -> Any:
        return await _run("list_locales", client.locales.list_locales)

    @mcp.tool(title="Create locale", description="Enables a new locale in the i18n plugin.")
    async def create_locale(
        code: str = Field(min_length=1, description="Locale code, e.g. 'fr'"),
        name: Optional[str] = Field(default=None, description="Display name, e.g. 'French (fr)'"),
        is_default: bool = Field(default=False, description="Make this the default locale"),
    ) -> Any:
        return await _run(
            "create_locale", lambda: client.locales.create_locale(code, name, is_default), code=code
        )

    @mcp.tool(title="Delete locale", description="Removes a locale from the i18n plugin.")
    async def delete_locale(locale_id: int = Field(description="Numeric id of the locale")) -> Any:
        return await _run("delete_locale", lambda: client.locales.delete_locale(locale_id), locale_id=locale_id)

    # ---- API tokens ----------------------------------------------------
    @mcp.tool(title="Create API token", description="Creates an API token for REST API access.")
    async def create_api_token(
        name: str = Field(min_length=1, description="Token name"),
        description: str = Field(default="", description="Token description"),
        token_type: Literal["read-only", "full-access", "custom"] = Field(
            default="full-access", description="Access type"
        ),
        lifespan_days: Optional[int] = Field(default=None, ge=1, description="Lifespan in days; omit for no expiry"),
    ) -> Any:
        return await _run(
            "create_api_token",
            lambda: client.tokens.create_api_token(name, description, token_type, lifespan_days),
            name=name,
            token_type=token_type,
        )

    @mcp.tool(title="List API tokens", description="Lists API tokens (token values are not shown).")
    async def list_api_tokens() -> Any:
        return await _run("list_api_tokens", client.tokens.list_api_tokens)

    @mcp.tool(title="Delete API token", description="Deletes an API token.")
    async def delete_api_token(token_id: int = Field(description="Numeric id of the token")) -> Any:
        return await _run("delete_api_token", lambda: client.tokens.delete_api_token(token_id), token_id=token_id)

    @mcp.tool(title="Clear token cache", description="Clears the cached API token used for REST API calls.")
    async def clear_token_cache() -> Any:
        return await _run("clear_token_cache", client.tokens.clear_token_cache)

    # ---- passthrough ---------------------------------------------------
    @mcp.tool(
        title="Strapi REST",
        description=(
            "Direct REST request for cases the other tools don't cover. Admin endpoints (admin/, "
            "content-manager, content-type-builder, i18n, upload) use the admin session. Schema changes "
            "through content-type-builder require dev mode."
        ),
    )
    async def strapi_rest(
        endpoint: str = Field(min_length=1, description="Endpoint path, e.g. 'api/articles'"),
        method: Literal["GET", "POST", "PUT", "DELETE", "PATCH"] = Field(default="GET", description="HTTP method"),
        params: Optional[Dict[str, Any]] = Field(default=None, description="Query parameters"),
        body: Optional[Dict[str, Any]] = Field(default=None, description="Request body"),
        authenticated: bool = Field(default=True, description="Send credentials (false tests public access)"),
    ) -> Any:
        return await _run(
            "strapi_rest",
            lambda: client.rest(endpoint, method, params, body, authenticated),
            endpoint=endpoint,
            method=method,
        )

    return mcp


# -----------------------------
# HTTP app (optional mode)
# -----------------------------
def build_http_app(mcp: FastMCP, client: StrapiClient):
    """
    FastAPI app serving a health route plus the MCP endpoint at /mcp.
    Only imported in --mode http to keep stdio free of web dependencies.
    """
    from fastapi import FastAPI

    mcp_app = mcp.http_app(path="/mcp")
    app = FastAPI(title=f"{SERVER_NAME} HTTP", version=__version__, lifespan=mcp_app.lifespan)

    @app.get("/health")
    async def health():
        return {"status": "ok", "service": SERVER_NAME, "backend": await client.check_health()}

    app.mount("/", mcp_app)
    return app


def _install_signal_handlers():
    def _handler(signum, _frame):
        name = signal.Signals(signum).name
        logger.info(f"Received {name}. Shutting down gracefully...")
        for h in logging.getLogger().handlers:
            h.flush()
        sys.exit(0)

    try:
        signal.signal(signal.SIGINT, _handler)
        signal.signal(signal.SIGTERM, _handler)
    except (ValueError, OSError) as e:
        # Not all environments allow installing signal handlers (e.g. non-main threads).
        logger.debug(f"Signal handlers not installed: {e}")


# -----------------------------
# Entrypoint
# -----------------------------
def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Strapi MCP server (stdio or HTTP).")
    p.add_argument("--mode", choices=["stdio", "http"], default="stdio",
                   help="Run as MCP over stdio (default) or expose as an HTTP server.")
    p.add_argument("--host", default="127.0.0.1", help="HTTP host (when --mode http).")
    p.add_argument("--port", type=int, default=8000, help="HTTP port (when --mode http).")
    return p.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)
    settings = StrapiSettings.from_env()
    configure_logging(settings.log_level)

    try:
        settings.validate_credentials()
    except AuthenticationError as e:
        logger.critical(str(e))
        sys.exit(1)

    logger.info(f"Starting {SERVER_NAME} {__version__} in mode={args.mode} against {settings.url}")
    logger.debug(f"Effective log level={settings.log_level}, dev_mode={settings.dev_mode}")
    client = StrapiClient(settings)
    mcp = build_server(client)
    _install_signal_handlers()

    if args.mode == "stdio":
        try:
            mcp.run(transport="stdio")
        except Exception as e:
            tb = "".join(traceback.format_exception(type(e), e, e.__traceback__))
            logger.critical(f"Fatal MCP stdio error:\n{tb}")
            sys.exit(1)

    elif args.mode == "http":
        try:
            import uvicorn

            uvicorn.run(build_http_app(mcp, client), host=args.host, port=args.port,
                        log_level=settings.log_level.lower())
        except Exception as e:
            tb = "".join(traceback.format_exception(type(e), e, e.__traceback__))
            logger.critical(f"Fatal HTTP error:\n{tb}")
            sys.exit(1)


if __name__ == "__main__":
    main()
