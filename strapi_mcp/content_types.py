"""Content-type and component introspection, plus payload checks against schemas."""

import logging
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from strapi_mcp.dispatcher import RequestDispatcher
from strapi_mcp.errors import MissingRequiredFieldsError, NotFoundError, ValidationFailedError

logger = logging.getLogger("strapi_mcp.content_types")

INIT_PATH = "/content-manager/init"
SCHEMA_PATH = "/content-type-builder/schema"

_SYSTEM_PREFIXES = ("admin::", "plugin::")


class ContentType(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    uid: str
    api_id: str = Field(alias="apiID")
    plural_api_id: str = Field(alias="pluralApiId")
    display_name: str = Field(alias="displayName")
    kind: str = "collectionType"
    is_localized: bool = Field(default=False, alias="isLocalized")
    draft_and_publish: bool = Field(default=True, alias="draftAndPublish")
    attributes: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_init(cls, raw: Dict[str, Any]) -> "ContentType":
        info = raw.get("info") or {}
        schema = raw.get("schema") or {}
        api_id = raw.get("apiID") or raw["uid"].split(".")[-1]
        plugin_options = raw.get("pluginOptions") or schema.get("pluginOptions") or {}
        options = raw.get("options") or schema.get("options") or {}
        return cls(
            uid=raw["uid"],
            apiID=api_id,
            pluralApiId=raw.get("pluralApiId") or info.get("pluralName") or f"{api_id}s",
            displayName=info.get("displayName") or schema.get("displayName") or api_id,
            kind=raw.get("kind") or schema.get("kind") or "collectionType",
            isLocalized=(plugin_options.get("i18n") or {}).get("localized") is True,
            draftAndPublish=options.get("draftAndPublish", True) is not False,
            attributes=raw.get("attributes") or schema.get("attributes") or {},
        )


def normalize_attributes(attributes: Any) -> Dict[str, Dict[str, Any]]:
    """The schema endpoint returns attributes either as a mapping or as a list of named dicts."""
    if isinstance(attributes, dict):
        return attributes
    if isinstance(attributes, list):
        return {attr["name"]: attr for attr in attributes if isinstance(attr, dict) and attr.get("name")}
    return {}


class ContentTypeRegistry:
    def __init__(self, dispatcher: RequestDispatcher):
        self._dispatcher = dispatcher
        self._content_types: Optional[List[ContentType]] = None

    def invalidate(self) -> None:
        self._content_types = None

    async def list_content_types(self, refresh: bool = False) -> List[ContentType]:
        if self._content_types is None or refresh:
            body = await self._dispatcher.request("GET", INIT_PATH)
            raw_types = ((body or {}).get("data") or {}).get("contentTypes") or []
            self._content_types = [
                ContentType.from_init(raw)
                for raw in raw_types
                if raw.get("uid") and not raw["uid"].startswith(_SYSTEM_PREFIXES)
            ]
            logger.debug(f"Loaded {len(self._content_types)} content types")
        return self._content_types

    async def resolve(self, identifier: str) -> ContentType:
        """Find a content type by uid (``api::article.article``) or plural API id."""
        for content_type in await self.list_content_types():
            if identifier in (content_type.uid, content_type.plural_api_id):
                return content_type
        raise NotFoundError(f"Content type not found: {identifier}", status=404)

    async def _schema_data(self) -> Dict[str, Any]:
        body = await self._dispatcher.request("GET", SCHEMA_PATH)
        return (body or {}).get("data") or {}

    async def get_content_type_schema(self, uid: str) -> Dict[str, Any]:
        schema = _find_schema(await self._schema_data(), uid)
        if schema is not None:
            return schema
        raise NotFoundError(f"Content type {uid} not found", status=404)

    async def list_components(self) -> List[Dict[str, Any]]:
        return list(_values((await self._schema_data()).get("components")))

    async def get_component_schema(self, uid: str) -> Dict[str, Any]:
        for component in await self.list_components():
            if component.get("uid") == uid:
                return component
        raise NotFoundError(f"Component {uid} not found", status=404)

    async def check_payload(self, uid: str, data: Dict[str, Any]) -> None:
        """Reject payloads that miss required fields or misuse dynamic zones."""
        schema_data = await self._schema_data()
        schema = _find_schema(schema_data, uid)
        if schema is None:
            logger.debug(f"No schema found for {uid}, skipping payload checks")
            return
        components = {c.get("uid"): c for c in _values(schema_data.get("components"))}
        check_payload_against_schema(schema, components, data)


def _find_schema(schema_data: Dict[str, Any], uid: str) -> Optional[Dict[str, Any]]:
    for group in ("contentTypes", "singleTypes"):
        for schema in _values(schema_data.get(group)):
            if schema.get("uid") == uid:
                return schema
    return None


def _values(group: Any) -> List[Dict[str, Any]]:
    if isinstance(group, dict):
        return list(group.values())
    if isinstance(group, list):
        return group
    return []


def _attributes_of(schema: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    nested = schema.get("schema") if isinstance(schema.get("schema"), dict) else {}
    return normalize_attributes(schema.get("attributes") or nested.get("attributes"))


def check_payload_against_schema(
    schema: Dict[str, Any], components: Dict[str, Dict[str, Any]], data: Dict[str, Any]
) -> None:
    missing: List[Dict[str, str]] = []
    zone_errors: List[str] = []
    _walk(_attributes_of(schema), data, "root", components, missing, zone_errors)
    if zone_errors:
        raise ValidationFailedError(
            "Dynamic zone validation failed:\n"
            + "\n".join(zone_errors)
            + "\nCheck the content type schema for the components each zone allows.",
            status=400,
            details={"errors": zone_errors},
        )
    if missing:
        raise MissingRequiredFieldsError(missing, provided=list(data.keys()))


def _walk(
    attributes: Dict[str, Dict[str, Any]],
    data: Dict[str, Any],
    location: str,
    components: Dict[str, Dict[str, Any]],
    missing: List[Dict[str, str]],
    zone_errors: List[str],
) -> None:
    for name, attr in attributes.items():
        if attr.get("required") and name not in data:
            missing.append({"name": name, "type": attr.get("type") or "unknown", "location": location})
            continue
        value = data.get(name)
        if value is None:
            continue
        prefix = name if location == "root" else f"{location}.{name}"
        kind = attr.get("type")

        if kind == "component":
            component = components.get(attr.get("component"))
            if component is None:
                continue
            items = value if isinstance(value, list) else [value]
            for index, item in enumerate(items):
                if not isinstance(item, dict):
                    continue
                where = f"{prefix}[{index}]" if attr.get("repeatable") else prefix
                _walk(_attributes_of(component), item, where, components, missing, zone_errors)

        elif kind == "dynamiczone" and isinstance(value, list):
            allowed = attr.get("components") or []
            for index, item in enumerate(value):
                if not isinstance(item, dict):
                    continue
                component_uid = item.get("__component")
                if not component_uid:
                    zone_errors.append(f"Component {prefix}[{index}] is missing the __component field")
                    continue
                if allowed and component_uid not in allowed:
                    zone_errors.append(
                        f"Invalid component '{component_uid}' in dynamic zone '{prefix}' "
                        f"(allowed: {', '.join(allowed)})"
                    )
                    continue
                component = components.get(component_uid)
                if component is not None:
                    where = f"{prefix}[{index}] ({component_uid})"
                    _walk(_attributes_of(component), item, where, components, missing, zone_errors)
