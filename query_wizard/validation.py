"""
Validation of requested names against effective sets.

Every allow-list violation either raises or, when the matching
``disable_invalid_*_query_exception`` setting is on, is logged and dropped.
Count and depth limits always raise.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from .conf import QueryWizardSettings, get_settings
from .definitions import FilterDefinition, IncludeDefinition, SortDefinition
from .exceptions import (
    AppendsNotAllowed,
    FieldsNotAllowed,
    FiltersNotAllowed,
    IncludesNotAllowed,
    MaxAppendDepthExceeded,
    MaxAppendsCountExceeded,
    MaxFiltersCountExceeded,
    MaxIncludeDepthExceeded,
    MaxIncludesCountExceeded,
    MaxSortsCountExceeded,
    SortsNotAllowed,
)
from .normalizer import DefinitionNormalizer
from .resolution import WILDCARD, is_name_disallowed
from .values import Sort

logger = logging.getLogger(__name__)


def build_prefix_index(names: Iterable[str]) -> Set[str]:
    """Every strict ancestor path of every name (``a.b.c`` gives ``a``, ``a.b``)."""
    index: Set[str] = set()
    for name in names:
        parts = name.split(".")
        for end in range(1, len(parts)):
            index.add(".".join(parts[:end]))
    return index


def is_append_allowed(name: str, allowed: Sequence[str]) -> bool:
    """``*`` allows everything, ``posts.*`` allows any append under ``posts``."""
    if WILDCARD in allowed or name in allowed:
        return True
    parts = name.split(".")
    for end in range(len(parts) - 1, 0, -1):
        if ".".join(parts[:end]) + ".*" in allowed:
            return True
    return False


def path_depth(path: str) -> int:
    return path.count(".") + 1


class RequestValidator:
    """Validate one request against the effective sets of one build."""

    def __init__(self, settings: Optional[QueryWizardSettings] = None):
        self.settings = settings or get_settings()

    @property
    def limits(self):
        return self.settings.limits

    def _reject(self, exc, switch: str):
        if getattr(self.settings, switch):
            logger.warning(
                "Dropping invalid %s: %s",
                exc.capability,
                ", ".join(exc.unknown),
                extra={"capability": exc.capability, "unknown": exc.unknown},
            )
            return
        raise exc

    # ------------------------------------------------------------------ #
    # Filters
    # ------------------------------------------------------------------ #
    def check_filters_count(self, requested: Sequence[str]) -> None:
        limit = self.limits.max_filters_count
        if limit is not None and len(requested) > limit:
            raise MaxFiltersCountExceeded(len(requested), limit)

    def validate_filters(
        self, requested: Sequence[str], effective: Mapping[str, FilterDefinition]
    ) -> List[str]:
        """
        Return the requested names that are valid.

        A name is valid when it is an effective filter name or an ancestor
        of one (``address`` when ``address.city`` is allowed).
        """
        self.check_filters_count(requested)
        allowed = list(effective.keys())
        allowed_index = set(allowed)
        prefix_index = build_prefix_index(allowed)
        valid: List[str] = []
        for name in requested:
            if name in allowed_index or name in prefix_index:
                valid.append(name)
                continue
            self._reject(
                FiltersNotAllowed([name], allowed),
                "disable_invalid_filter_query_exception",
            )
        return valid

    # ------------------------------------------------------------------ #
    # Sorts
    # ------------------------------------------------------------------ #
    def validate_sorts(
        self,
        requested: Sequence[Sort],
        defaults: Sequence[Sort],
        effective: Mapping[str, SortDefinition],
        configured: bool,
        normalizer: DefinitionNormalizer,
    ) -> List[Tuple[SortDefinition, Sort]]:
        """
        Return ``(definition, sort)`` pairs to apply, in order.

        Requested sorts win over defaults. Defaults are never rejected: with
        no allowed sorts they apply as plain field sorts, otherwise unknown
        defaults are skipped.
        """
        using_defaults = not requested
        sorts = list(defaults) if using_defaults else list(requested)
        if not sorts:
            return []
        limit = self.limits.max_sorts_count
        if limit is not None and len(sorts) > limit:
            raise MaxSortsCountExceeded(len(sorts), limit)

        if not effective:
            if using_defaults:
                return [(normalizer.normalize_sort(sort.field), sort) for sort in sorts]
            if configured:
                self._reject(
                    SortsNotAllowed([sort.field for sort in sorts], []),
                    "disable_invalid_sort_query_exception",
                )
            return []

        allowed = list(effective.keys())
        applied: List[Tuple[SortDefinition, Sort]] = []
        seen: Set[str] = set()
        for sort in sorts:
            if sort.field in seen:
                continue
            definition = effective.get(sort.field)
            if definition is None:
                if not using_defaults:
                    self._reject(
                        SortsNotAllowed([sort.field], allowed),
                        "disable_invalid_sort_query_exception",
                    )
                continue
            seen.add(sort.field)
            applied.append((definition, sort))
        return applied

    # ------------------------------------------------------------------ #
    # Includes
    # ------------------------------------------------------------------ #
    def check_include_depth(self, definition: IncludeDefinition) -> None:
        limit = self.limits.max_include_depth
        depth = definition.depth
        if limit is not None and depth > limit:
            raise MaxIncludeDepthExceeded(definition.name, depth, limit)

    def validate_includes(
        self,
        requested: Sequence[str],
        defaults: Sequence[str],
        effective: Mapping[str, IncludeDefinition],
        configured: bool,
    ) -> List[IncludeDefinition]:
        """
        Return the include definitions to apply.

        ``requested`` is the merged default + requested list. Default names
        missing from the effective set are skipped without error.
        """
        if not requested:
            return []
        default_index = set(defaults)
        limit = self.limits.max_includes_count
        if limit is not None and len(requested) > limit:
            raise MaxIncludesCountExceeded(len(requested), limit)

        if not effective:
            user_only = [name for name in requested if name not in default_index]
            if user_only and configured:
                self._reject(
                    IncludesNotAllowed(user_only, []),
                    "disable_invalid_include_query_exception",
                )
            return []

        allowed = list(effective.keys())
        valid: List[IncludeDefinition] = []
        for name in requested:
            definition = effective.get(name)
            if definition is None:
                if name not in default_index:
                    self._reject(
                        IncludesNotAllowed([name], allowed),
                        "disable_invalid_include_query_exception",
                    )
                continue
            self.check_include_depth(definition)
            valid.append(definition)
        return valid

    # ------------------------------------------------------------------ #
    # Fields
    # ------------------------------------------------------------------ #
    def validate_fields(
        self,
        requested: Optional[Sequence[str]],
        allowed: Sequence[str],
        configured: bool,
        disallowed: Sequence[str] = (),
    ) -> Optional[List[str]]:
        """
        Validate root fields. ``None`` means "no field selection".

        A wildcard (or unconfigured) allow-list accepts any name that is not
        disallowed.
        """
        if not requested:
            return None
        requested = list(dict.fromkeys(requested))
        if WILDCARD in requested:
            return None
        open_list = WILDCARD in allowed or (not allowed and not configured)
        invalid = [
            name
            for name in requested
            if (not open_list and name not in allowed) or is_name_disallowed(name, disallowed)
        ]
        if invalid:
            self._reject(
                FieldsNotAllowed(invalid, allowed),
                "disable_invalid_field_query_exception",
            )
            requested = [name for name in requested if name not in invalid]
        return requested or None

    def validate_relation_fields(
        self,
        requested: Mapping[str, Sequence[str]],
        allowed: Sequence[str],
        aliases: Mapping[str, str],
        disallowed: Sequence[str] = (),
    ) -> Dict[str, List[str]]:
        """
        Validate field selections for related resources.

        ``allowed`` holds dotted entries (``author.name``) grouped by the part
        before the last dot; ``aliases`` maps include names to relation
        paths. Returns ``relation path -> visible fields``.
        """
        if not requested:
            return {}
        all_allowed = WILDCARD in allowed
        groups: Dict[str, List[str]] = {}
        for entry in allowed:
            group, _, field = entry.rpartition(".")
            if not group or not field:
                continue
            group = aliases.get(group, group)
            groups.setdefault(group, [])
            if field not in groups[group]:
                groups[group].append(field)

        switch = "disable_invalid_field_query_exception"
        result: Dict[str, List[str]] = {}
        for key, fields in requested.items():
            fields = list(dict.fromkeys(fields))
            path = aliases.get(key)
            if path is None and (key in groups or all_allowed):
                path = key
            if path is None:
                self._reject(
                    FieldsNotAllowed([f"{key}.{f}" for f in fields], _flatten_groups(groups)),
                    switch,
                )
                continue
            allowed_for_path = groups.get(path, [])
            open_list = all_allowed or WILDCARD in allowed_for_path
            invalid = [
                f
                for f in fields
                if (not open_list and f not in allowed_for_path)
                or is_name_disallowed(f"{path}.{f}", disallowed)
            ]
            if invalid:
                self._reject(
                    FieldsNotAllowed(
                        [f"{key}.{f}" for f in invalid],
                        [f"{key}.{f}" for f in allowed_for_path],
                    ),
                    switch,
                )
                fields = [f for f in fields if f not in invalid]
            if not fields:
                continue
            if WILDCARD in fields:
                result[path] = [WILDCARD]
                continue
            current = result.setdefault(path, [])
            if WILDCARD not in current:
                current.extend(f for f in fields if f not in current)
        return result

    # ------------------------------------------------------------------ #
    # Appends
    # ------------------------------------------------------------------ #
    def _check_appends_count(self, count: int) -> None:
        limit = self.limits.max_appends_count
        if limit is not None and count > limit:
            raise MaxAppendsCountExceeded(count, limit)

    def _check_append_depth(self, name: str) -> None:
        limit = self.limits.max_append_depth
        depth = path_depth(name)
        if limit is not None and depth > limit:
            raise MaxAppendDepthExceeded(name, depth, limit)

    def validate_appends(
        self,
        requested: Sequence[str],
        defaults: Sequence[str],
        allowed: Sequence[str],
        configured: bool,
    ) -> List[str]:
        """
        Return the append names to apply: defaults first, then requested.

        Without a configured allow-list the requested names are ignored and
        only defaults apply.
        """
        self._check_appends_count(len(requested))
        if not configured:
            valid_requested: List[str] = []
            valid_defaults = list(defaults)
        else:
            invalid = [name for name in requested if not is_append_allowed(name, allowed)]
            if invalid:
                self._reject(
                    AppendsNotAllowed(invalid, allowed),
                    "disable_invalid_append_query_exception",
                )
            valid_requested = [n for n in requested if is_append_allowed(n, allowed)]
            valid_defaults = [n for n in defaults if is_append_allowed(n, allowed)]

        merged: List[str] = []
        for name in valid_defaults + valid_requested:
            if name not in merged:
                self._check_append_depth(name)
                merged.append(name)
        self._check_appends_count(len(merged))
        return merged


def _flatten_groups(groups: Mapping[str, Sequence[str]]) -> List[str]:
    return [f"{group}.{field}" for group, fields in groups.items() for field in fields]
