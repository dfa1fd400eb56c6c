"""
Query vocabulary and its translation onto Strapi's two endpoint families.

Callers describe what they want with a ``QuerySpec``: filters, pagination,
sort, population, field projection, locale and publish state. The spec is
never sent as-is. ``to_content_api_params`` shapes it for the public REST API
(``/api/...``) and ``to_content_manager_params`` for the admin content-manager
API (``/content-manager/...``). The two families disagree on pagination
nesting, so each gets its own adapter.

Population is a tagged union:

* ``"*"`` - every first-level relation
* ``["author", "tags"]`` - an ordered list of relation names
* ``{"author": PopulateSpec | True | "*"}`` - per-relation nested specs,
  to any depth

Unknown top-level keys are kept in an extras bag and merged last.
"""

import re
from typing import Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

ALL_LOCALES = "all"
BACKEND_ALL_LOCALES = "*"

_SORT_RE = re.compile(r"^[A-Za-z0-9_.\-]+(:(asc|desc))?$", re.IGNORECASE)

PublishState = Literal["draft", "published", "all"]


def _validate_sort(value: Union[str, List[str], None]) -> Union[str, List[str], None]:
    if value is None:
        return value
    items = [value] if isinstance(value, str) else value
    for item in items:
        if not _SORT_RE.match(item):
            raise ValueError(
                f"Invalid sort '{item}': expected 'field' or 'field:asc' / 'field:desc'"
            )
    return value


def _reject_encoded_filters(value: Any) -> Any:
    if isinstance(value, str):
        raise ValueError("filters must be a structured object, not a JSON-encoded string")
    return value


class PopulateSpec(BaseModel):
    """Nested population directive for one relation."""

    model_config = ConfigDict(extra="allow")

    populate: Optional["Populate"] = None
    fields: Optional[List[str]] = None
    sort: Optional[Union[str, List[str]]] = None
    filters: Optional[Dict[str, Any]] = None
    on: Optional[Dict[str, Any]] = None

    @field_validator("sort")
    @classmethod
    def _check_sort(cls, value):
        return _validate_sort(value)

    @field_validator("filters", mode="before")
    @classmethod
    def _check_filters(cls, value):
        return _reject_encoded_filters(value)


PopulateEntry = Union[bool, Literal["*"], PopulateSpec]
Populate = Union[Literal["*"], List[str], Dict[str, PopulateEntry]]

PopulateSpec.model_rebuild()


class Pagination(BaseModel):
    """Page-based or offset-based; unrecognised keys (e.g. ``withCount``) are kept."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    page: Optional[int] = Field(default=None, ge=1)
    page_size: Optional[int] = Field(default=None, ge=1, alias="pageSize")
    start: Optional[int] = Field(default=None, ge=0)
    limit: Optional[int] = Field(default=None, ge=-1)


class QuerySpec(BaseModel):
    model_config = ConfigDict(extra="allow")

    filters: Optional[Dict[str, Any]] = None
    pagination: Optional[Pagination] = None
    sort: Optional[Union[str, List[str]]] = None
    populate: Optional[Populate] = None
    fields: Optional[List[str]] = None
    locale: Optional[str] = None
    status: Optional[PublishState] = None

    @field_validator("sort")
    @classmethod
    def _check_sort(cls, value):
        return _validate_sort(value)

    @field_validator("filters", mode="before")
    @classmethod
    def _check_filters(cls, value):
        return _reject_encoded_filters(value)

    @classmethod
    def coerce(cls, value: Union["QuerySpec", Dict[str, Any], None]) -> "QuerySpec":
        if value is None:
            return cls()
        if isinstance(value, QuerySpec):
            return value
        return cls.model_validate(value)

    @property
    def extras(self) -> Dict[str, Any]:
        return dict(self.model_extra or {})


def translate_populate(populate: Populate) -> Any:
    """Turn a populate directive back into plain data, nesting untouched."""
    if isinstance(populate, str):
        return populate
    if isinstance(populate, list):
        return list(populate)
    translated = {}
    for relation, entry in populate.items():
        if isinstance(entry, PopulateSpec):
            translated[relation] = _translate_populate_spec(entry)
        else:
            translated[relation] = entry
    return translated


def _translate_populate_spec(spec: PopulateSpec) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    if spec.populate is not None:
        out["populate"] = translate_populate(spec.populate)
    if spec.fields is not None:
        out["fields"] = list(spec.fields)
    if spec.sort is not None:
        out["sort"] = spec.sort
    if spec.filters is not None:
        out["filters"] = spec.filters
    if spec.on is not None:
        out["on"] = spec.on
    out.update(spec.model_extra or {})
    return out


def backend_locale(locale: Optional[str]) -> Optional[str]:
    """Map the caller's locale selector onto the backend's (``all`` becomes ``*``)."""
    if locale is None or locale == "":
        return None
    if locale in (ALL_LOCALES, BACKEND_ALL_LOCALES):
        return BACKEND_ALL_LOCALES
    return locale


def _common_params(spec: QuerySpec) -> Dict[str, Any]:
    params: Dict[str, Any] = {}
    if spec.filters is not None:
        params["filters"] = spec.filters
    if spec.sort is not None:
        params["sort"] = spec.sort
    if spec.populate is not None:
        params["populate"] = translate_populate(spec.populate)
    if spec.fields is not None:
        params["fields"] = list(spec.fields)
    locale = backend_locale(spec.locale)
    if locale is not None:
        params["locale"] = locale
    return params


def _pagination_dict(pagination: Optional[Pagination]) -> Dict[str, Any]:
    if pagination is None:
        return {}
    return pagination.model_dump(by_alias=True, exclude_none=True)


def _flat_pagination(pagination: Dict[str, Any]) -> Dict[str, Any]:
    """Top-level page/pageSize for the content-manager API.

    ``limit`` stands in for a missing ``pageSize``. An offset that falls on a
    page boundary becomes a page number; any other offset is sent as ``start``.
    Remaining keys are passed through.
    """
    rest = dict(pagination)
    flat: Dict[str, Any] = {}
    page = rest.pop("page", None)
    page_size = rest.pop("pageSize", None)
    limit = rest.pop("limit", None)
    if page_size is None:
        page_size = limit
    start = rest.pop("start", None)
    if start is not None and page is None and page_size and page_size > 0 and start % page_size == 0:
        page, start = start // page_size + 1, None
    if page is not None:
        flat["page"] = page
    if page_size is not None:
        flat["pageSize"] = page_size
    if start is not None:
        flat["start"] = start
    flat.update(rest)
    return flat


def to_content_api_params(spec: Union[QuerySpec, Dict[str, Any], None]) -> Dict[str, Any]:
    """Parameters for the public REST API: pagination stays nested."""
    spec = QuerySpec.coerce(spec)
    params = _common_params(spec)
    pagination = _pagination_dict(spec.pagination)
    if pagination:
        params["pagination"] = pagination
    if spec.status is not None and spec.status != "all":
        params["status"] = spec.status
    params.update(spec.extras)
    return params


def to_content_manager_params(spec: Union[QuerySpec, Dict[str, Any], None]) -> Dict[str, Any]:
    """Parameters for the admin content-manager API: page and pageSize are top level."""
    spec = QuerySpec.coerce(spec)
    params = _common_params(spec)
    params.update(_flat_pagination(_pagination_dict(spec.pagination)))
    if spec.status is not None and spec.status != "all":
        params["status"] = spec.status
    params.update(spec.extras)
    return params


def _scalar(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def encode_query(params: Optional[Dict[str, Any]]) -> List[Tuple[str, str]]:
    """Flatten nested params into bracketed query pairs (``a[b][0]=c``)."""
    pairs: List[Tuple[str, str]] = []

    def walk(prefix: str, value: Any) -> None:
        if value is None:
            return
        if isinstance(value, dict):
            for key, inner in value.items():
                walk(f"{prefix}[{key}]", inner)
        elif isinstance(value, (list, tuple)):
            for index, inner in enumerate(value):
                walk(f"{prefix}[{index}]", inner)
        else:
            pairs.append((prefix, _scalar(value)))

    for key, value in (params or {}).items():
        if isinstance(value, (dict, list, tuple)):
            walk(key, value)
        elif value is not None:
            pairs.append((key, _scalar(value)))
    return pairs
