"""
Request parameter source.

``QueryParameters`` reads the five parameter groups (filters, sorts,
includes, fields, appends) from a Django ``HttpRequest`` or a plain mapping
and turns them into python values. The helpers at the bottom of the module
extract the candidate names a request asks for, before validation.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from django.http import HttpRequest, QueryDict

from .conf import QueryWizardSettings, get_settings
from .values import Sort

logger = logging.getLogger(__name__)

_BRACKET_KEY = re.compile(r"^([^\[\]]+)((?:\[[^\[\]]*\])*)$")
_MISSING = object()


def parse_bracket_params(data: Any) -> Dict[str, Any]:
    """
    Expand ``filter[author][name]=x`` style keys into nested dictionaries.

    ``QueryDict`` keys with several values (or ending in ``[]``) become lists.
    """
    result: Dict[str, Any] = {}
    if isinstance(data, QueryDict):
        items = []
        for key in data.keys():
            values = data.getlist(key)
            if len(values) == 1 and not key.endswith("[]"):
                values = values[0]
            items.append((key, values))
    else:
        items = list((data or {}).items())

    for raw_key, value in items:
        match = _BRACKET_KEY.match(str(raw_key))
        if not match:
            result[raw_key] = value
            continue
        head, tail = match.groups()
        path = [head] + re.findall(r"\[([^\[\]]*)\]", tail)
        if path[-1] == "":
            path.pop()
            value = value if isinstance(value, list) else [value]
        node = result
        for segment in path[:-1]:
            child = node.get(segment)
            if not isinstance(child, dict):
                child = {}
                node[segment] = child
            node = child
        node[path[-1]] = value
    return result


class FilterValueTransformer:
    """
    Coerce raw filter values.

    Strings containing the separator are split into lists (blank parts
    dropped), ``"true"``/``"false"`` become booleans and blank strings become
    ``None``. Mappings and lists are transformed recursively.
    """

    def __init__(self, separator: str = ","):
        self.separator = separator

    def __call__(self, value: Any) -> Any:
        if isinstance(value, Mapping):
            return {key: self(item) for key, item in value.items()}
        if isinstance(value, (list, tuple)):
            return [self(item) for item in value]
        if not isinstance(value, str):
            return value
        if value.strip() == "":
            return None
        if self.separator and self.separator in value:
            parts = [part for part in value.split(self.separator) if part.strip() != ""]
            return parts or None
        if value == "true":
            return True
        if value == "false":
            return False
        return value


class QueryParameters:
    """Parsed query parameters for one request."""

    def __init__(
        self,
        request: Optional[HttpRequest] = None,
        data: Optional[Mapping[str, Any]] = None,
        settings: Optional[QueryWizardSettings] = None,
    ):
        self.settings = settings or get_settings()
        self._request = request
        self._data = dict(data) if data is not None else None
        self._version = 0
        self.reset()

    @classmethod
    def from_request(
        cls, request: HttpRequest, settings: Optional[QueryWizardSettings] = None
    ) -> "QueryParameters":
        return cls(request=request, settings=settings)

    @classmethod
    def from_dict(
        cls, data: Mapping[str, Any], settings: Optional[QueryWizardSettings] = None
    ) -> "QueryParameters":
        return cls(data=data, settings=settings)

    @property
    def request(self) -> Optional[HttpRequest]:
        return self._request

    def set_request(self, request: HttpRequest) -> "QueryParameters":
        self._request = request
        self._data = None
        return self.reset()._changed()

    def reset(self) -> "QueryParameters":
        self._raw: Optional[Dict[str, Any]] = None
        self._filters: Optional[Dict[str, Any]] = None
        self._sorts: Optional[List[Sort]] = None
        self._includes: Optional[List[str]] = None
        self._fields: Optional[Dict[str, List[str]]] = None
        self._appends: Optional[List[str]] = None
        return self

    # ------------------------------------------------------------------ #
    # Raw data
    # ------------------------------------------------------------------ #
    def _request_data(self) -> Dict[str, Any]:
        if self._raw is not None:
            return self._raw
        if self._data is not None:
            self._raw = parse_bracket_params(self._data)
        elif self._request is None:
            self._raw = {}
        elif self.settings.request_data_source == "body":
            self._raw = self._read_body(self._request)
        else:
            self._raw = parse_bracket_params(self._request.GET)
        return self._raw

    def _read_body(self, request: HttpRequest) -> Dict[str, Any]:
        content_type = getattr(request, "content_type", "") or ""
        if content_type.startswith("application/json"):
            try:
                payload = json.loads(request.body or b"{}")
            except (TypeError, ValueError):
                logger.warning("Ignoring malformed JSON request body")
                return {}
            return payload if isinstance(payload, dict) else {}
        return parse_bracket_params(request.POST)

    def _get(self, group: str) -> Any:
        name = self.settings.parameter_name(group)
        if not name:
            return None
        return self._request_data().get(name)

    def _split(self, value: str) -> List[str]:
        return value.split(self.settings.array_value_separator)

    def _prepare_list(self, values: Any) -> List[str]:
        if values is None:
            return []
        if isinstance(values, str):
            values = self._split(values)
        elif not isinstance(values, (list, tuple)):
            values = [values]
        result: List[str] = []
        for value in values:
            if value is None:
                continue
            text = str(value).strip()
            if text and text not in result:
                result.append(text)
        return result

    # ------------------------------------------------------------------ #
    # Groups
    # ------------------------------------------------------------------ #
    def filters(self) -> Dict[str, Any]:
        if self._filters is None:
            self._filters = self._parse_filters(self._get("filters"))
        return self._filters

    def sorts(self) -> List[Sort]:
        if self._sorts is None:
            self._sorts = self._parse_sorts(self._get("sorts"))
        return self._sorts

    def includes(self) -> List[str]:
        if self._includes is None:
            self._includes = self._prepare_list(self._get("includes"))
        return self._includes

    def fields(self) -> Dict[str, List[str]]:
        if self._fields is None:
            self._fields = self._parse_fields(self._get("fields"))
        return self._fields

    def appends(self) -> List[str]:
        if self._appends is None:
            self._appends = self._prepare_list(self._get("appends"))
        return self._appends

    # Setters replace a group and change ``signature()``, so a wizard built
    # from these parameters rebuilds on its next ``build()``.
    def set_filters(self, value: Any) -> "QueryParameters":
        self._filters = self._parse_filters(value)
        return self._changed()

    def set_sorts(self, value: Any) -> "QueryParameters":
        self._sorts = self._parse_sorts(value)
        return self._changed()

    def set_includes(self, value: Any) -> "QueryParameters":
        self._includes = self._prepare_list(value)
        return self._changed()

    def set_fields(self, value: Any) -> "QueryParameters":
        self._fields = self._parse_fields(value)
        return self._changed()

    def set_appends(self, value: Any) -> "QueryParameters":
        self._appends = self._prepare_list(value)
        return self._changed()

    def _changed(self) -> "QueryParameters":
        self._version += 1
        return self

    def _parse_filters(self, value: Any) -> Dict[str, Any]:
        if not isinstance(value, Mapping):
            return {}
        transform = FilterValueTransformer(self.settings.array_value_separator)
        return {str(key): transform(item) for key, item in value.items()}

    def _parse_sorts(self, value: Any) -> List[Sort]:
        sorts: List[Sort] = []
        seen = set()
        for token in self._prepare_list(value):
            sort = Sort.parse(token)
            if not sort.field or sort.field in seen:
                continue
            seen.add(sort.field)
            sorts.append(sort)
        return sorts

    def _parse_fields(self, value: Any) -> Dict[str, List[str]]:
        if isinstance(value, (str, list, tuple)):
            grouped: Dict[str, List[str]] = {}
            for item in self._prepare_list(value):
                resource, _, field = item.rpartition(".")
                grouped.setdefault(resource, []).append(field)
            value = grouped
        fields: Dict[str, List[str]] = {}
        if isinstance(value, Mapping):
            for resource, items in value.items():
                prepared = self._prepare_list(items)
                if prepared:
                    fields[str(resource)] = prepared
        return fields

    # ------------------------------------------------------------------ #
    # Filter lookups
    # ------------------------------------------------------------------ #
    def has_filter(self, name: str) -> bool:
        return _lookup(self.filters(), name) is not _MISSING

    def get_filter_value(self, name: str) -> Any:
        value = _lookup(self.filters(), name)
        return None if value is _MISSING else value

    def signature(self) -> tuple:
        return (id(self), self._version)


def _lookup(data: Mapping[str, Any], name: str) -> Any:
    """Find ``name`` in ``data``, either as a flat key or as a dotted path."""
    if name in data:
        return data[name]
    parts = name.split(".")
    for index in range(1, len(parts)):
        key = ".".join(parts[:index])
        if key in data and isinstance(data[key], Mapping):
            found = _lookup(data[key], ".".join(parts[index:]))
            if found is not _MISSING:
                return found
    return _MISSING


def extract_requested_filter_names(
    filters: Mapping[str, Any],
    allowed: Iterable[str],
    max_depth: Optional[int] = None,
) -> List[str]:
    """
    Collect the dotted filter names a request asks for.

    Keys matching an allowed name are emitted as-is. Non-empty mappings are
    walked while the current depth is below ``max_depth``; a mapping key
    sitting at the limit is emitted itself and its children are dropped.
    Lists are leaf values.
    """
    allowed_index = set(allowed)
    names: List[str] = []

    def walk(data: Mapping[str, Any], prefix: str, depth: int) -> None:
        for key, value in data.items():
            full_key = f"{prefix}.{key}" if prefix else str(key)
            if full_key in allowed_index:
                names.append(full_key)
                continue
            nested = isinstance(value, Mapping) and len(value) > 0
            if nested and (max_depth is None or depth < max_depth):
                walk(value, full_key, depth + 1)
                continue
            names.append(full_key)

    walk(filters or {}, "", 1)
    return names


def merge_requested_includes(defaults: Sequence[str], requested: Sequence[str]) -> List[str]:
    """Defaults first, then requested names; duplicates removed."""
    merged: List[str] = []
    for name in list(defaults) + list(requested):
        if name not in merged:
            merged.append(name)
    return merged
