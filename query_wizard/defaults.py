"""
Default configuration for django-query-wizard.

Every key consumed by ``query_wizard.conf.settings`` is declared here so that
the library has a single source of truth. Projects override any subset of
these values through the ``QUERY_WIZARD`` Django setting.
"""

from __future__ import annotations

from typing import Any, Dict

LIBRARY_NAME = "django-query-wizard"

REQUEST_DATA_SOURCES = ("query_string", "body")

LIBRARY_DEFAULTS: dict[str, Any] = {
    # Request keys for each parameter group.
    "parameters": {
        "includes": "include",
        "filters": "filter",
        "sorts": "sort",
        "fields": "fields",
        "appends": "append",
    },
    # Suffix turning a relation name into its count include ("postsCount").
    "count_suffix": "Count",
    # Suffix turning a relation name into its exists include ("postsExists").
    "exists_suffix": "Exists",
    # Separator used to split list values ("a,b,c").
    "array_value_separator": ",",
    # Where parameters are read from: "query_string" or "body".
    "request_data_source": "query_string",
    # Fall back to a filter's default when the request sends an explicit null.
    "apply_filter_default_on_null": False,
    # Permissive switches: drop invalid names instead of raising.
    "disable_invalid_filter_query_exception": False,
    "disable_invalid_sort_query_exception": False,
    "disable_invalid_include_query_exception": False,
    "disable_invalid_field_query_exception": False,
    "disable_invalid_append_query_exception": False,
    # Abuse guards. None (or a value <= 0) disables a check.
    "limits": {
        "max_include_depth": 5,
        "max_includes_count": 10,
        "max_filters_count": 15,
        "max_filter_depth": 5,
        "max_sorts_count": 5,
        "max_appends_count": 10,
        "max_append_depth": 3,
    },
    # Extra drivers, name -> dotted import path.
    "drivers": {},
}


def merge_settings(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge ``override`` into a copy of ``base``."""
    result = dict(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = merge_settings(result[key], value)
        else:
            result[key] = value
    return result
