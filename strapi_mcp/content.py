"""
Content operations on top of the dispatcher and the query translator.

Every locale variant of a document has its own draft and, optionally, a
published version. Creating never publishes; publishing is a separate step
(or the explicit create-and-publish composition). Delete, publish and
unpublish treat "no locale" (or ``"all"``) as *every* locale of the
document, so callers have to name a locale to narrow the scope. Writes that
touch a single variant reject ``"all"`` and fall back to the default locale
when none is given.

Payloads written back to the backend are built from unredacted fetches;
redaction only applies to what callers get back.
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Union

from strapi_mcp.content_types import ContentTypeRegistry
from strapi_mcp.dispatcher import EndpointFamily, RequestDispatcher
from strapi_mcp.errors import BackendError, NotFoundError, ValidationFailedError
from strapi_mcp.query import (
    ALL_LOCALES,
    BACKEND_ALL_LOCALES,
    QuerySpec,
    to_content_api_params,
    to_content_manager_params,
)
from strapi_mcp.redact import redact_binary

logger = logging.getLogger("strapi_mcp.content")

# Fields the backend manages itself; sending them back makes it reject the payload.
METADATA_FIELDS = frozenset(
    {
        "id",
        "documentId",
        "createdAt",
        "updatedAt",
        "publishedAt",
        "locale",
        "status",
        "createdBy",
        "updatedBy",
        "localizations",
        "meta",
    }
)

DELETE_ALL_PAGE_SIZE = 100

QueryLike = Union[QuerySpec, Dict[str, Any], None]


def strip_metadata(entry: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Copy of ``entry`` without backend-managed top-level fields."""
    return {key: value for key, value in (entry or {}).items() if key not in METADATA_FIELDS}


def _unwrap(body: Any) -> Any:
    if isinstance(body, dict) and "data" in body:
        return body["data"]
    return body


def _is_all_locales(locale: Optional[str]) -> bool:
    return locale is None or locale in (ALL_LOCALES, BACKEND_ALL_LOCALES)


def _require_locale(locale: Optional[str], operation: str) -> str:
    if _is_all_locales(locale):
        raise ValidationFailedError(f"{operation} needs one concrete locale code, got {locale!r}")
    return locale


def _single_locale(locale: Optional[str], operation: str) -> Optional[str]:
    # None targets the default locale; the all-locales sentinel makes no sense for one variant
    if locale is None:
        return None
    return _require_locale(locale, operation)


class ContentOperations:
    def __init__(self, dispatcher: RequestDispatcher, registry: ContentTypeRegistry):
        self._dispatcher = dispatcher
        self._registry = registry

    async def _uid(self, content_type: str) -> str:
        if "::" in content_type:
            return content_type
        return (await self._registry.resolve(content_type)).uid

    async def _plural(self, content_type: str) -> str:
        if "::" not in content_type:
            return content_type
        return (await self._registry.resolve(content_type)).plural_api_id

    @staticmethod
    def _path(uid: str, *parts: str) -> str:
        return "/".join(["/content-manager/collection-types", uid, *parts])

    async def _admin(
        self, method: str, path: str, body: Any = None, params: Optional[Dict[str, Any]] = None
    ) -> Any:
        return await self._dispatcher.request(method, path, json_body=body, params=params)

    # ---- reads ---------------------------------------------------------

    async def get_entries(self, content_type: str, query: QueryLike = None) -> Dict[str, Any]:
        """List entries (drafts included) through the content-manager API."""
        uid = await self._uid(content_type)
        body = await self._admin("GET", self._path(uid), params=to_content_manager_params(query))
        if isinstance(body, dict) and "results" in body:
            listing = {"data": body["results"], "meta": {"pagination": body.get("pagination") or {}}}
            return redact_binary(listing)
        return {"data": [], "meta": {}}

    async def get_entry(
        self,
        content_type: str,
        document_id: str,
        locale: Optional[str] = None,
        query: QueryLike = None,
    ) -> Dict[str, Any]:
        return redact_binary(await self._fetch_entry(content_type, document_id, locale, query))

    async def _fetch_entry(
        self, content_type: str, document_id: str, locale: Optional[str], query: QueryLike = None
    ) -> Dict[str, Any]:
        """Unredacted entry; anything written back to the backend is built from this."""
        uid = await self._uid(content_type)
        spec = QuerySpec.coerce(query)
        if locale is not None:
            spec = spec.model_copy(update={"locale": locale})
        params = to_content_manager_params(spec)
        entry = _unwrap(await self._admin("GET", self._path(uid, document_id), params=params))
        if not isinstance(entry, dict) or not entry.get("documentId"):
            where = f" in locale '{locale}'" if locale else ""
            raise NotFoundError(f"Entry {document_id} of {uid} not found{where}", status=404)
        return entry

    async def get_published_entries(self, content_type: str, query: QueryLike = None) -> Dict[str, Any]:
        """List entries through the public API, published versions only unless asked otherwise."""
        plural = await self._plural(content_type)
        spec = QuerySpec.coerce(query)
        if spec.status is None:
            spec = spec.model_copy(update={"status": "published"})
        body = await self._dispatcher.request(
            "GET", f"/api/{plural}", params=to_content_api_params(spec), family=EndpointFamily.PUBLIC
        )
        return redact_binary(body if isinstance(body, dict) else {"data": body or [], "meta": {}})

    async def get_published_entry(
        self,
        content_type: str,
        document_id: str,
        locale: Optional[str] = None,
        query: QueryLike = None,
    ) -> Dict[str, Any]:
        plural = await self._plural(content_type)
        update: Dict[str, Any] = {"status": "published"}
        if locale is not None:
            update["locale"] = locale
        spec = QuerySpec.coerce(query).model_copy(update=update)
        body = await self._dispatcher.request(
            "GET",
            f"/api/{plural}/{document_id}",
            params=to_content_api_params(spec),
            family=EndpointFamily.PUBLIC,
        )
        entry = _unwrap(body)
        if not entry:
            raise NotFoundError(f"No published entry {document_id} in {plural}", status=404)
        return redact_binary(entry)

    # ---- creation ------------------------------------------------------

    async def create_entry(
        self, content_type: str, data: Dict[str, Any], locale: Optional[str] = None, validate: bool = True
    ) -> Dict[str, Any]:
        """Create a draft. Publishing is always a separate step."""
        locale = _single_locale(locale, "create_entry")
        uid = await self._uid(content_type)
        payload = strip_metadata(data)
        if validate:
            await self._registry.check_payload(uid, payload)
        params = {"locale": locale} if locale else None
        entry = _unwrap(await self._admin("POST", self._path(uid), payload, params))
        logger.info(f"Created draft {_doc_id(entry)} in {uid}")
        return entry

    async def create_published_entry(
        self, content_type: str, data: Dict[str, Any], locale: Optional[str] = None, validate: bool = True
    ) -> Dict[str, Any]:
        locale = _single_locale(locale, "create_published_entry")
        uid = await self._uid(content_type)
        payload = strip_metadata(data)
        if validate:
            await self._registry.check_payload(uid, payload)
        params = {"locale": locale} if locale else None
        entry = _unwrap(await self._admin("POST", self._path(uid, "actions", "publish"), payload, params))
        logger.info(f"Created and published {_doc_id(entry)} in {uid}")
        return entry

    # ---- updates -------------------------------------------------------

    async def _update_payload(
        self, uid: str, document_id: str, data: Dict[str, Any], locale: Optional[str], partial: bool
    ) -> Dict[str, Any]:
        payload = strip_metadata(data)
        if not partial:
            return payload
        existing = await self._fetch_entry(uid, document_id, locale)
        merged = strip_metadata(existing)
        merged.update(payload)
        return merged

    async def update_entry_draft(
        self,
        content_type: str,
        document_id: str,
        data: Dict[str, Any],
        locale: Optional[str] = None,
        partial: bool = False,
    ) -> Dict[str, Any]:
        locale = _single_locale(locale, "update_entry_draft")
        uid = await self._uid(content_type)
        payload = await self._update_payload(uid, document_id, data, locale, partial)
        params = {"locale": locale} if locale else None
        return _unwrap(await self._admin("PUT", self._path(uid, document_id), payload, params))

    async def update_entry_and_publish(
        self,
        content_type: str,
        document_id: str,
        data: Dict[str, Any],
        locale: Optional[str] = None,
        partial: bool = False,
    ) -> Dict[str, Any]:
        locale = _single_locale(locale, "update_entry_and_publish")
        uid = await self._uid(content_type)
        payload = await self._update_payload(uid, document_id, data, locale, partial)
        params = {"locale": locale} if locale else None
        return _unwrap(
            await self._admin("POST", self._path(uid, document_id, "actions", "publish"), payload, params)
        )

    # ---- deletion ------------------------------------------------------

    async def delete_entry(
        self, content_type: str, document_id: str, locale: Optional[str] = None
    ) -> Dict[str, Any]:
        """Delete one locale variant, or every variant when no locale is given."""
        uid = await self._uid(content_type)
        scope = BACKEND_ALL_LOCALES if _is_all_locales(locale) else locale
        if scope == BACKEND_ALL_LOCALES:
            logger.warning(f"Deleting every locale of {uid}/{document_id}")
        await self._admin("DELETE", self._path(uid, document_id), params={"locale": scope})
        return {
            "documentId": document_id,
            "locale": ALL_LOCALES if scope == BACKEND_ALL_LOCALES else scope,
            "deleted": True,
        }

    async def delete_all_entries(self, content_type: str) -> Dict[str, Any]:
        uid = await self._uid(content_type)
        deleted = 0
        failed: Dict[str, str] = {}
        attempted = set()
        page_number = 1
        while True:
            query = {"pagination": {"page": page_number, "pageSize": DELETE_ALL_PAGE_SIZE}, "locale": ALL_LOCALES}
            rows = (await self.get_entries(uid, query))["data"]
            if not rows:
                break
            # one row per locale variant; each document is deleted once, across all locales
            pending = list(
                dict.fromkeys(e["documentId"] for e in rows if e.get("documentId") not in attempted)
            )
            if not pending:
                # the whole page is documents that could not be deleted
                page_number += 1
                continue
            for document_id in pending:
                attempted.add(document_id)
                try:
                    await self.delete_entry(uid, document_id)
                    deleted += 1
                except (NotFoundError, BackendError, ValidationFailedError) as e:
                    logger.error(f"Failed to delete {uid}/{document_id}: {e}")
                    failed[document_id] = str(e)
        return {"deletedCount": deleted, "failed": failed}

    # ---- publication ---------------------------------------------------

    async def publish_entries(self, content_type: str, document_ids: List[str]) -> Any:
        """Publish every locale variant of every listed document."""
        return await self._bulk(content_type, "bulkPublish", document_ids)

    async def unpublish_entries(self, content_type: str, document_ids: List[str]) -> Any:
        """Unpublish every locale variant of every listed document."""
        return await self._bulk(content_type, "bulkUnpublish", document_ids)

    async def _bulk(self, content_type: str, action: str, document_ids: List[str]) -> Any:
        if not document_ids:
            raise ValidationFailedError(f"{action} needs at least one document id")
        uid = await self._uid(content_type)
        return await self._admin(
            "POST",
            self._path(uid, "actions", action),
            {"documentIds": list(document_ids)},
            {"locale": BACKEND_ALL_LOCALES},
        )

    async def publish_entry(self, content_type: str, document_id: str, locale: Optional[str] = None) -> Any:
        if _is_all_locales(locale):
            return await self.publish_entries(content_type, [document_id])
        return await self.publish_localized_entry(content_type, document_id, locale)

    async def unpublish_entry(self, content_type: str, document_id: str, locale: Optional[str] = None) -> Any:
        if _is_all_locales(locale):
            return await self.unpublish_entries(content_type, [document_id])
        uid = await self._uid(content_type)
        return _unwrap(
            await self._admin(
                "POST",
                self._path(uid, document_id, "actions", "unpublish"),
                {"discardDraft": False},
                {"locale": locale},
            )
        )

    async def publish_localized_entry(self, content_type: str, document_id: str, locale: str) -> Dict[str, Any]:
        """Publish the current draft of one locale variant.

        The publish action wants the full payload, so the draft is fetched first.
        """
        locale = _require_locale(locale, "publish_localized_entry")
        uid = await self._uid(content_type)
        draft = await self._fetch_entry(uid, document_id, locale)
        entry = _unwrap(
            await self._admin(
                "POST",
                self._path(uid, document_id, "actions", "publish"),
                strip_metadata(draft),
                {"locale": locale},
            )
        )
        return _check_document_id(entry, document_id)

    # ---- localization --------------------------------------------------

    async def create_localized_draft(
        self, content_type: str, document_id: str, data: Dict[str, Any], locale: str
    ) -> Dict[str, Any]:
        locale = _require_locale(locale, "create_localized_draft")
        uid = await self._uid(content_type)
        entry = _unwrap(
            await self._admin("PUT", self._path(uid, document_id), strip_metadata(data), {"locale": locale})
        )
        return _check_document_id(entry, document_id)

    async def create_and_publish_localized_entry(
        self, content_type: str, document_id: str, data: Dict[str, Any], locale: str
    ) -> Dict[str, Any]:
        locale = _require_locale(locale, "create_and_publish_localized_entry")
        uid = await self._uid(content_type)
        entry = _unwrap(
            await self._admin(
                "POST",
                self._path(uid, document_id, "actions", "publish"),
                strip_metadata(data),
                {"locale": locale},
            )
        )
        return _check_document_id(entry, document_id)

    # ---- relations -----------------------------------------------------

    async def connect_relation(
        self, content_type: str, document_id: str, field: str, related_ids: List[str], locale: Optional[str] = None
    ) -> Dict[str, Any]:
        data = {field: {"connect": [{"documentId": rid} for rid in related_ids]}}
        return await self.update_entry_draft(content_type, document_id, data, locale=locale)

    async def disconnect_relation(
        self, content_type: str, document_id: str, field: str, related_ids: List[str], locale: Optional[str] = None
    ) -> Dict[str, Any]:
        data = {field: {"disconnect": [{"documentId": rid} for rid in related_ids]}}
        return await self.update_entry_draft(content_type, document_id, data, locale=locale)

    async def set_relation(
        self, content_type: str, document_id: str, field: str, related_ids: List[str], locale: Optional[str] = None
    ) -> Dict[str, Any]:
        data = {field: {"set": [{"documentId": rid} for rid in related_ids]}}
        return await self.update_entry_draft(content_type, document_id, data, locale=locale)

    # ---- dynamic-zone sections -----------------------------------------

    async def _edit_sections(
        self,
        content_type: str,
        document_id: str,
        zone: str,
        edit: Callable[[List[Any]], None],
        locale: Optional[str],
        publish: bool,
    ) -> Dict[str, Any]:
        """Rewrite one dynamic zone of an entry and save the whole entry.

        The other sections and fields are sent back exactly as fetched.
        """
        locale = _single_locale(locale, "section edit")
        uid = await self._uid(content_type)
        entry = await self._fetch_entry(uid, document_id, locale, {"populate": "*"})
        sections = entry.get(zone)
        if not isinstance(sections, list):
            raise ValidationFailedError(f"Field '{zone}' is not a dynamic zone or does not exist")
        sections = list(sections)
        edit(sections)
        payload = strip_metadata(entry)
        payload[zone] = sections
        await self._registry.check_payload(uid, payload)
        op = self.update_entry_and_publish if publish else self.update_entry_draft
        return await op(uid, document_id, payload, locale=locale)

    async def add_section(
        self,
        content_type: str,
        document_id: str,
        zone: str,
        section: Dict[str, Any],
        position: Optional[int] = None,
        locale: Optional[str] = None,
        publish: bool = False,
    ) -> Dict[str, Any]:
        """Insert a section at ``position`` (appended when omitted)."""
        _check_component(section)

        def edit(sections: List[Any]) -> None:
            index = len(sections) if position is None else position
            if not 0 <= index <= len(sections):
                raise ValidationFailedError(
                    f"Position {index} is out of range. Valid positions: 0-{len(sections)}"
                )
            sections.insert(index, section)

        return await self._edit_sections(content_type, document_id, zone, edit, locale, publish)

    async def update_section(
        self,
        content_type: str,
        document_id: str,
        zone: str,
        index: int,
        section: Dict[str, Any],
        locale: Optional[str] = None,
        publish: bool = False,
    ) -> Dict[str, Any]:
        _check_component(section)

        def edit(sections: List[Any]) -> None:
            _check_index(sections, index, "Section index")
            sections[index] = section

        return await self._edit_sections(content_type, document_id, zone, edit, locale, publish)

    async def delete_section(
        self,
        content_type: str,
        document_id: str,
        zone: str,
        index: int,
        locale: Optional[str] = None,
        publish: bool = False,
    ) -> Dict[str, Any]:
        def edit(sections: List[Any]) -> None:
            _check_index(sections, index, "Section index")
            del sections[index]

        return await self._edit_sections(content_type, document_id, zone, edit, locale, publish)

    async def reorder_sections(
        self,
        content_type: str,
        document_id: str,
        zone: str,
        from_index: int,
        to_index: int,
        locale: Optional[str] = None,
        publish: bool = False,
    ) -> Dict[str, Any]:
        """Move one section; the relative order of the others is kept."""

        def edit(sections: List[Any]) -> None:
            _check_index(sections, from_index, "From index")
            _check_index(sections, to_index, "To index")
            sections.insert(to_index, sections.pop(from_index))

        return await self._edit_sections(content_type, document_id, zone, edit, locale, publish)


def _check_component(section: Dict[str, Any]) -> None:
    if not isinstance(section, dict) or not section.get("__component"):
        raise ValidationFailedError("Section must include __component field")


def _check_index(sections: List[Any], index: int, label: str) -> None:
    if not 0 <= index < len(sections):
        available = f"0-{len(sections) - 1}" if sections else "none"
        raise ValidationFailedError(f"{label} {index} is out of range. Available sections: {available}")


def _doc_id(entry: Any) -> str:
    return entry.get("documentId", "?") if isinstance(entry, dict) else "?"


def _check_document_id(entry: Any, document_id: str) -> Dict[str, Any]:
    returned = entry.get("documentId") if isinstance(entry, dict) else None
    if returned is not None and returned != document_id:
        raise BackendError(
            f"Backend returned document {returned} for a locale variant of {document_id}"
        )
    return entry
