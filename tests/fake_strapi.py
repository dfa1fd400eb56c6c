"""In-memory stand-in for the parts of the Strapi HTTP API the adapter talks to.

Served through ``httpx.MockTransport``. Documents are stored per content type,
document id and locale; each locale variant has a draft and an optional
published copy. Mutation bodies carrying backend-managed keys are rejected
with a 400, the way Strapi rejects them.
"""

import asyncio
import copy
import itertools
import json
import math
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "s3cret"

PROJECT_UID = "api::project.project"
ARTICLE_UID = "api::article.article"

REJECTED_BODY_KEYS = {
    "id",
    "documentId",
    "createdAt",
    "updatedAt",
    "publishedAt",
    "createdBy",
    "updatedBy",
    "locale",
    "localizations",
    "status",
}

PROJECT_ATTRIBUTES = {
    "name": {"type": "string", "required": True},
    "description": {"type": "text"},
    "tags": {"type": "relation", "relation": "manyToMany", "target": "api::tag.tag"},
}

ARTICLE_ATTRIBUTES = {
    "title": {"type": "string", "required": True},
    "seo": {"type": "component", "component": "shared.seo", "repeatable": False},
    "sections": {"type": "dynamiczone", "components": ["blocks.hero", "blocks.text"]},
}

COMPONENTS = {
    "shared.seo": {"uid": "shared.seo", "category": "shared", "schema": {"attributes": {
        "metaTitle": {"type": "string", "required": True},
        "metaDescription": {"type": "text"},
    }}},
    "blocks.hero": {"uid": "blocks.hero", "category": "blocks", "schema": {"attributes": {
        "heading": {"type": "string", "required": True},
        "image": {"type": "media"},
    }}},
    "blocks.text": {"uid": "blocks.text", "category": "blocks", "schema": {"attributes": {
        "body": {"type": "richtext", "required": True},
    }}},
}

INIT_CONTENT_TYPES = [
    {
        "uid": PROJECT_UID,
        "apiID": "project",
        "kind": "collectionType",
        "info": {"displayName": "Project", "singularName": "project", "pluralName": "projects"},
        "options": {"draftAndPublish": True},
        "pluginOptions": {"i18n": {"localized": True}},
        "attributes": PROJECT_ATTRIBUTES,
    },
    {
        "uid": ARTICLE_UID,
        "apiID": "article",
        "kind": "collectionType",
        "info": {"displayName": "Article", "singularName": "article", "pluralName": "articles"},
        "options": {"draftAndPublish": True},
        "pluginOptions": {"i18n": {"localized": False}},
        "attributes": ARTICLE_ATTRIBUTES,
    },
    {"uid": "admin::user", "apiID": "user", "info": {"displayName": "User", "pluralName": "users"}},
    {"uid": "plugin::upload.file", "apiID": "file", "info": {"displayName": "File", "pluralName": "files"}},
]

SCHEMA = {
    "contentTypes": {
        PROJECT_UID: {"uid": PROJECT_UID, "schema": {"kind": "collectionType", "attributes": PROJECT_ATTRIBUTES}},
        ARTICLE_UID: {"uid": ARTICLE_UID, "schema": {"kind": "collectionType", "attributes": ARTICLE_ATTRIBUTES}},
    },
    "components": COMPONENTS,
}

PLURALS = {"projects": PROJECT_UID, "articles": ARTICLE_UID}

_RELATION_OPS = {"connect", "disconnect", "set"}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def ok(body: Any, status: int = 200) -> httpx.Response:
    return httpx.Response(status, json=body)


def error(status: int, name: str, message: str, details: Optional[Dict[str, Any]] = None) -> httpx.Response:
    return httpx.Response(
        status,
        json={"data": None, "error": {"status": status, "name": name, "message": message, "details": details or {}}},
    )


def _apply(previous: Dict[str, Any], body: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(previous)
    for key, value in body.items():
        if isinstance(value, dict) and value and set(value) <= _RELATION_OPS:
            current = list(merged.get(key) or [])
            if "set" in value:
                current = [item["documentId"] for item in value["set"]]
            for item in value.get("connect", []):
                if item["documentId"] not in current:
                    current.append(item["documentId"])
            for item in value.get("disconnect", []):
                if item["documentId"] in current:
                    current.remove(item["documentId"])
            merged[key] = current
        else:
            merged[key] = copy.deepcopy(value)
    return merged


class FakeStrapi:
    def __init__(self):
        self.login_calls = 0
        self.login_statuses: List[int] = []
        self.sessions: set = set()
        self.reject_sessions = False
        self.api_keys: set = set()
        self.refuse_connections = False
        self.requests: List[httpx.Request] = []
        self.default_locale = "en"
        self.documents: Dict[str, Dict[str, Dict[str, Dict[str, Any]]]] = {PROJECT_UID: {}, ARTICLE_UID: {}}
        self.locales = [
            {"id": 1, "code": "en", "name": "English (en)", "isDefault": True},
            {"id": 2, "code": "ru", "name": "Russian (ru)", "isDefault": False},
            {"id": 3, "code": "fr", "name": "French (fr)", "isDefault": False},
        ]
        self.api_tokens: List[Dict[str, Any]] = []
        self.files: List[Dict[str, Any]] = []
        self.content_types_created: List[Dict[str, Any]] = []
        self.undeletable: set = set()
        self._ids = itertools.count(100)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def expire_sessions(self) -> None:
        self.sessions.clear()

    def requests_to(self, method: str, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]

    def sent_json(self, method: str, path: str) -> Any:
        return json.loads(self.requests_to(method, path)[-1].content)

    def variant(self, uid: str, document_id: str, locale: str) -> Optional[Dict[str, Any]]:
        return self.documents[uid].get(document_id, {}).get(locale)

    # ---- dispatch ------------------------------------------------------

    async def handle(self, request: httpx.Request) -> httpx.Response:
        await request.aread()
        self.requests.append(request)
        if self.refuse_connections:
            raise httpx.ConnectError("Connection refused", request=request)

        path = request.url.path
        if path == "/_health":
            return httpx.Response(204)
        if path == "/admin/login" and request.method == "POST":
            return await self._login(request)
        token = self._bearer(request)
        if path.startswith("/api/"):
            if token not in self.api_keys:
                return error(401, "UnauthorizedError", "Missing or invalid credentials")
            return self._public(request, path)
        if self.reject_sessions or token not in self.sessions:
            return error(401, "UnauthorizedError", "Missing or invalid credentials")
        return self._admin(request, path)

    @staticmethod
    def _bearer(request: httpx.Request) -> Optional[str]:
        header = request.headers.get("authorization", "")
        return header[len("Bearer "):] if header.startswith("Bearer ") else None

    @staticmethod
    def _body(request: httpx.Request) -> Dict[str, Any]:
        if not request.content or not request.headers.get("content-type", "").startswith("application/json"):
            return {}
        return json.loads(request.content)

    async def _login(self, request: httpx.Request) -> httpx.Response:
        self.login_calls += 1
        # give concurrent callers a chance to pile up behind this login
        await asyncio.sleep(0)
        if self.login_statuses:
            status = self.login_statuses.pop(0)
            if status == 429:
                return error(429, "RateLimitError", "Too many requests, please try again later.")
            if status != 200:
                return error(status, "ApplicationError", "Login failed")
        body = self._body(request)
        if body.get("email") != ADMIN_EMAIL or body.get("password") != ADMIN_PASSWORD:
            return error(400, "ValidationError", "Invalid credentials")
        token = f"session-{next(self._ids)}"
        self.sessions.add(token)
        return ok({"data": {"token": token, "user": {"email": ADMIN_EMAIL}}})

    def _admin(self, request: httpx.Request, path: str) -> httpx.Response:
        method = request.method
        parts = path.strip("/").split("/")
        if path == "/admin/users/me":
            return ok({"data": {"email": ADMIN_EMAIL}})
        if path == "/content-manager/init":
            return ok({"data": {"contentTypes": INIT_CONTENT_TYPES}})
        if path == "/content-type-builder/schema":
            return ok({"data": SCHEMA})
        if path == "/content-type-builder/content-types" and method == "POST":
            self.content_types_created.append(self._body(request))
            return ok({"data": {"uid": "api::widget.widget"}}, status=201)
        if parts[:2] == ["content-manager", "collection-types"] and len(parts) >= 3:
            return self._collection(request, parts[2], parts[3:])
        if path == "/upload" and method == "POST":
            return self._upload(request)
        if path == "/upload/files" and method == "GET":
            return ok({"results": self.files, "pagination": self._pagination(request, len(self.files))})
        if path == "/upload/folders" and method == "GET":
            return ok([{"id": 1, "name": "Marketing", "path": "/1"}])
        if parts[:2] == ["i18n", "locales"]:
            return self._locales(request, parts[2:])
        if parts[:2] == ["admin", "api-tokens"]:
            return self._tokens(request, parts[2:])
        return error(404, "NotFoundError", "Not Found")

    # ---- content manager -----------------------------------------------

    def _collection(self, request: httpx.Request, uid: str, rest: List[str]) -> httpx.Response:
        if uid not in self.documents:
            return error(404, "NotFoundError", f"Content type {uid} not found")
        method = request.method
        locale = request.url.params.get("locale")
        body = self._body(request)

        if not rest:
            if method == "GET":
                return self._list(uid, request)
            if method == "POST":
                return self._create(uid, body, locale, publish=False)
        elif rest[0] == "actions" and len(rest) == 2 and method == "POST":
            if rest[1] == "publish":
                return self._create(uid, body, locale, publish=True)
            if rest[1] in ("bulkPublish", "bulkUnpublish"):
                return self._bulk(uid, body, locale, publish=rest[1] == "bulkPublish")
        elif len(rest) == 1:
            if method == "GET":
                return self._get(uid, rest[0], locale)
            if method == "PUT":
                return self._update(uid, rest[0], body, locale)
            if method == "DELETE":
                return self._delete(uid, rest[0], locale)
        elif len(rest) == 3 and rest[1] == "actions" and method == "POST":
            if rest[2] == "publish":
                return self._publish(uid, rest[0], body, locale)
            if rest[2] == "unpublish":
                return self._unpublish(uid, rest[0], locale)
        return error(405, "MethodNotAllowedError", "Method Not Allowed")

    def _reject_metadata(self, body: Dict[str, Any]) -> Optional[httpx.Response]:
        bad = sorted(REJECTED_BODY_KEYS & set(body))
        if not bad:
            return None
        return error(
            400,
            "ValidationError",
            f"Invalid key {bad[0]}",
            {"errors": [{"path": [key], "message": "Invalid key", "name": "ValidationError"} for key in bad]},
        )

    def _new_variant(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        stamp = _now()
        return {
            "id": next(self._ids),
            "draft": fields,
            "published": None,
            "createdAt": stamp,
            "updatedAt": stamp,
            "publishedAt": None,
        }

    @staticmethod
    def _publish_variant(variant: Dict[str, Any]) -> None:
        variant["published"] = copy.deepcopy(variant["draft"])
        variant["publishedAt"] = _now()

    @staticmethod
    def _unpublish_variant(variant: Dict[str, Any]) -> None:
        variant["published"] = None
        variant["publishedAt"] = None

    @staticmethod
    def _view(document_id: str, locale: str, variant: Dict[str, Any], published: bool = False) -> Dict[str, Any]:
        fields = variant["published"] if published else variant["draft"]
        if variant["published"] is None:
            status = "draft"
        else:
            status = "published" if variant["published"] == variant["draft"] else "modified"
        return {
            "id": variant["id"],
            "documentId": document_id,
            **copy.deepcopy(fields),
            "locale": locale,
            "createdAt": variant["createdAt"],
            "updatedAt": variant["updatedAt"],
            "publishedAt": variant["publishedAt"],
            "status": status,
        }

    def _create(self, uid: str, body: Dict[str, Any], locale: Optional[str], publish: bool) -> httpx.Response:
        rejected = self._reject_metadata(body)
        if rejected is not None:
            return rejected
        locale = locale or self.default_locale
        document_id = f"doc{next(self._ids)}"
        variant = self._new_variant(_apply({}, body))
        if publish:
            self._publish_variant(variant)
        self.documents[uid][document_id] = {locale: variant}
        return ok({"data": self._view(document_id, locale, variant)}, status=201)

    def _get(self, uid: str, document_id: str, locale: Optional[str]) -> httpx.Response:
        document = self.documents[uid].get(document_id)
        if document is None:
            return error(404, "NotFoundError", "Document not found")
        locale = locale or self.default_locale
        variant = document.get(locale)
        meta = {"availableLocales": [{"locale": code} for code in document]}
        if variant is None:
            return ok({"data": {}, "meta": meta})
        return ok({"data": self._view(document_id, locale, variant), "meta": meta})

    def _update(self, uid: str, document_id: str, body: Dict[str, Any], locale: Optional[str]) -> httpx.Response:
        rejected = self._reject_metadata(body)
        if rejected is not None:
            return rejected
        document = self.documents[uid].get(document_id)
        if document is None:
            return error(404, "NotFoundError", "Document not found")
        locale = locale or self.default_locale
        variant = document.get(locale)
        if variant is None:
            variant = document[locale] = self._new_variant(_apply({}, body))
        else:
            variant["draft"] = _apply(variant["draft"], body)
            variant["updatedAt"] = _now()
        return ok({"data": self._view(document_id, locale, variant)})

    def _delete(self, uid: str, document_id: str, locale: Optional[str]) -> httpx.Response:
        document = self.documents[uid].get(document_id)
        if document is None:
            return error(404, "NotFoundError", "Document not found")
        if document_id in self.undeletable:
            return error(500, "InternalServerError", "Internal Server Error")
        if locale == "*":
            del self.documents[uid][document_id]
            return ok({})
        locale = locale or self.default_locale
        if locale not in document:
            return error(404, "NotFoundError", "Document not found")
        del document[locale]
        if not document:
            del self.documents[uid][document_id]
        return ok({})

    def _publish(self, uid: str, document_id: str, body: Dict[str, Any], locale: Optional[str]) -> httpx.Response:
        rejected = self._reject_metadata(body)
        if rejected is not None:
            return rejected
        document = self.documents[uid].get(document_id)
        if document is None:
            return error(404, "NotFoundError", "Document not found")
        locale = locale or self.default_locale
        variant = document.get(locale)
        if variant is None:
            variant = document[locale] = self._new_variant(_apply({}, body))
        elif body:
            variant["draft"] = _apply(variant["draft"], body)
            variant["updatedAt"] = _now()
        self._publish_variant(variant)
        return ok({"data": self._view(document_id, locale, variant, published=True)})

    def _unpublish(self, uid: str, document_id: str, locale: Optional[str]) -> httpx.Response:
        variant = self.variant(uid, document_id, locale or self.default_locale)
        if variant is None:
            return error(404, "NotFoundError", "Document not found")
        self._unpublish_variant(variant)
        return ok({"data": self._view(document_id, locale or self.default_locale, variant)})

    def _bulk(self, uid: str, body: Dict[str, Any], locale: Optional[str], publish: bool) -> httpx.Response:
        document_ids = body.get("documentIds")
        if not isinstance(document_ids, list):
            return error(400, "ValidationError", "documentIds is a required field")
        count = 0
        for document_id in document_ids:
            document = self.documents[uid].get(document_id) or {}
            codes = list(document) if locale == "*" else [locale or self.default_locale]
            for code in codes:
                variant = document.get(code)
                if variant is None:
                    continue
                if publish:
                    self._publish_variant(variant)
                else:
                    self._unpublish_variant(variant)
                count += 1
        return ok({"data": {"count": count}})

    def _rows(self, uid: str, locale: Optional[str], published_only: bool) -> List[Dict[str, Any]]:
        rows = []
        for document_id, document in self.documents[uid].items():
            for code, variant in document.items():
                if locale != "*" and code != (locale or self.default_locale):
                    continue
                if published_only and variant["published"] is None:
                    continue
                rows.append(self._view(document_id, code, variant, published=published_only))
        return rows

    @staticmethod
    def _pagination(request: httpx.Request, total: int, nested: bool = False) -> Dict[str, int]:
        params = request.url.params
        if nested:
            page = int(params.get("pagination[page]", 1))
            page_size = int(params.get("pagination[pageSize]", 25))
        else:
            page = int(params.get("page", 1))
            page_size = int(params.get("pageSize", 10))
        return {"page": page, "pageSize": page_size, "pageCount": math.ceil(total / page_size), "total": total}

    def _list(self, uid: str, request: httpx.Request) -> httpx.Response:
        params = request.url.params
        rows = self._rows(uid, params.get("locale"), params.get("status") == "published")
        pagination = self._pagination(request, len(rows))
        start = (pagination["page"] - 1) * pagination["pageSize"]
        return ok({"results": rows[start:start + pagination["pageSize"]], "pagination": pagination})

    # ---- public content API --------------------------------------------

    def _public(self, request: httpx.Request, path: str) -> httpx.Response:
        parts = path.strip("/").split("/")[1:]
        if parts[:2] == ["upload", "files"]:
            return ok(self.files)
        uid = PLURALS.get(parts[0])
        if uid is None or request.method != "GET":
            return error(404, "NotFoundError", "Not Found")
        params = request.url.params
        published_only = params.get("status") != "draft"
        locale = params.get("locale")

        if len(parts) == 2:
            variant = self.variant(uid, parts[1], locale or self.default_locale)
            if variant is None or (published_only and variant["published"] is None):
                return error(404, "NotFoundError", "Not Found")
            view = self._view(parts[1], locale or self.default_locale, variant, published=published_only)
            return ok({"data": view, "meta": {}})

        rows = self._rows(uid, locale, published_only)
        pagination = self._pagination(request, len(rows), nested=True)
        start = (pagination["page"] - 1) * pagination["pageSize"]
        return ok({"data": rows[start:start + pagination["pageSize"]], "meta": {"pagination": pagination}})

    # ---- upload / i18n / tokens ----------------------------------------

    def _upload(self, request: httpx.Request) -> httpx.Response:
        content = request.content
        name = re.search(rb'filename="([^"]+)"', content)
        mime = re.search(rb"Content-Type: ([\w.+/-]+)", content)
        if name is None:
            return error(400, "ValidationError", "Files are empty")
        item = {
            "id": next(self._ids),
            "name": name.group(1).decode(),
            "mime": mime.group(1).decode() if mime else None,
            "size": len(content),
            "url": f"/uploads/{name.group(1).decode()}",
        }
        self.files.append(item)
        return ok([item], status=201)

    def _locales(self, request: httpx.Request, rest: List[str]) -> httpx.Response:
        if not rest and request.method == "GET":
            return ok(self.locales)
        if not rest and request.method == "POST":
            body = self._body(request)
            if any(locale["code"] == body.get("code") for locale in self.locales):
                return error(400, "ApplicationError", "This locale already exists")
            locale = {"id": next(self._ids), **body}
            self.locales.append(locale)
            return ok(locale)
        if len(rest) == 1 and request.method == "DELETE":
            for locale in self.locales:
                if str(locale["id"]) == rest[0]:
                    self.locales.remove(locale)
                    return ok(locale)
        return error(404, "NotFoundError", "Locale not found")

    def _tokens(self, request: httpx.Request, rest: List[str]) -> httpx.Response:
        if not rest and request.method == "GET":
            return ok({"data": [{k: v for k, v in t.items() if k != "accessKey"} for t in self.api_tokens]})
        if not rest and request.method == "POST":
            body = self._body(request)
            if any(t["name"] == body.get("name") for t in self.api_tokens):
                return error(400, "ApplicationError", "Name already taken")
            token_id = next(self._ids)
            token = {"id": token_id, **body, "accessKey": f"key-{token_id}"}
            self.api_tokens.append(token)
            self.api_keys.add(token["accessKey"])
            return ok({"data": token}, status=201)
        if len(rest) == 1 and request.method == "DELETE":
            for token in self.api_tokens:
                if str(token["id"]) == rest[0]:
                    self.api_tokens.remove(token)
                    self.api_keys.discard(token["accessKey"])
                    return ok({"data": token})
        return error(404, "NotFoundError", "Token not found")
