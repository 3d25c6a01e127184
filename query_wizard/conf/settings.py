"""
Runtime settings for django-query-wizard.

Settings are read once from ``settings.QUERY_WIZARD``, merged over
``LIBRARY_DEFAULTS`` and frozen. The cached value is dropped whenever Django
reports a change to ``QUERY_WIZARD`` (``override_settings`` in tests).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from functools import lru_cache
from typing import Any, Dict, Optional

from django.conf import settings as django_settings

from ..defaults import LIBRARY_DEFAULTS, REQUEST_DATA_SOURCES, merge_settings

logger = logging.getLogger(__name__)

SETTINGS_NAME = "QUERY_WIZARD"


def _as_limit(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        limit = int(value)
    except (TypeError, ValueError):
        logger.warning("Ignoring non-numeric query limit %r", value)
        return None
    return limit if limit > 0 else None


@dataclass(frozen=True)
class QueryLimits:
    max_include_depth: Optional[int] = 5
    max_includes_count: Optional[int] = 10
    max_filters_count: Optional[int] = 15
    max_filter_depth: Optional[int] = 5
    max_sorts_count: Optional[int] = 5
    max_appends_count: Optional[int] = 10
    max_append_depth: Optional[int] = 3

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "QueryLimits":
        valid_fields = set(cls.__dataclass_fields__.keys())
        return cls(**{k: _as_limit(v) for k, v in (raw or {}).items() if k in valid_fields})


@dataclass(frozen=True)
class QueryWizardSettings:
    parameters: Dict[str, str] = field(
        default_factory=lambda: dict(LIBRARY_DEFAULTS["parameters"])
    )
    count_suffix: str = "Count"
    exists_suffix: str = "Exists"
    array_value_separator: str = ","
    request_data_source: str = "query_string"
    apply_filter_default_on_null: bool = False
    disable_invalid_filter_query_exception: bool = False
    disable_invalid_sort_query_exception: bool = False
    disable_invalid_include_query_exception: bool = False
    disable_invalid_field_query_exception: bool = False
    disable_invalid_append_query_exception: bool = False
    limits: QueryLimits = field(default_factory=QueryLimits)
    drivers: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: Optional[Dict[str, Any]] = None) -> "QueryWizardSettings":
        merged = merge_settings(LIBRARY_DEFAULTS, raw or {})
        source = str(merged.get("request_data_source") or "query_string")
        if source not in REQUEST_DATA_SOURCES:
            logger.warning(
                "Unknown request_data_source %r, falling back to 'query_string'",
                source,
            )
            source = "query_string"
        return cls(
            parameters={k: str(v) for k, v in merged["parameters"].items()},
            count_suffix=str(merged["count_suffix"]),
            exists_suffix=str(merged["exists_suffix"]),
            array_value_separator=str(merged["array_value_separator"] or ","),
            request_data_source=source,
            apply_filter_default_on_null=bool(merged["apply_filter_default_on_null"]),
            disable_invalid_filter_query_exception=bool(
                merged["disable_invalid_filter_query_exception"]
            ),
            disable_invalid_sort_query_exception=bool(
                merged["disable_invalid_sort_query_exception"]
            ),
            disable_invalid_include_query_exception=bool(
                merged["disable_invalid_include_query_exception"]
            ),
            disable_invalid_field_query_exception=bool(
                merged["disable_invalid_field_query_exception"]
            ),
            disable_invalid_append_query_exception=bool(
                merged["disable_invalid_append_query_exception"]
            ),
            limits=QueryLimits.from_dict(merged.get("limits") or {}),
            drivers=dict(merged.get("drivers") or {}),
        )

    def parameter_name(self, group: str) -> str:
        return self.parameters.get(group, group)

    def with_overrides(self, **changes: Any) -> "QueryWizardSettings":
        """Return a copy with ``changes`` applied; ``limits`` may be a dict."""
        limits = changes.pop("limits", None)
        if isinstance(limits, dict):
            changes["limits"] = replace(
                self.limits, **{k: _as_limit(v) for k, v in limits.items()}
            )
        elif limits is not None:
            changes["limits"] = limits
        return replace(self, **changes)


@lru_cache(maxsize=1)
def get_settings() -> QueryWizardSettings:
    raw = getattr(django_settings, SETTINGS_NAME, {}) or {}
    return QueryWizardSettings.from_dict(raw)


def clear_settings_cache() -> None:
    get_settings.cache_clear()


def _on_setting_changed(sender, setting=None, **kwargs) -> None:
    if setting == SETTINGS_NAME:
        clear_settings_cache()


def connect_setting_signals() -> None:
    from django.test.signals import setting_changed

    setting_changed.connect(
        _on_setting_changed, dispatch_uid="query_wizard.conf.setting_changed"
    )
