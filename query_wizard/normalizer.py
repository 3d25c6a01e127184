"""
Turn raw names or definitions into canonical definitions.
"""

from typing import Optional

from .conf import QueryWizardSettings, get_settings
from .definitions import (
    FilterDefinition,
    FilterInput,
    IncludeDefinition,
    IncludeInput,
    SortDefinition,
    SortInput,
)
from .definitions import includes as include_types
from .exceptions import InvalidDefinition


class DefinitionNormalizer:
    """
    Resolve ``str | Definition`` inputs once, at the configuration boundary.

    Strings map to the default type of each capability. Count and exists
    includes declared without an alias are renamed to ``relation + suffix``
    so that ``posts`` counted becomes addressable as ``postsCount``.
    Normalizing an already normalized definition returns it unchanged.
    """

    def __init__(self, settings: Optional[QueryWizardSettings] = None):
        self.settings = settings or get_settings()

    @property
    def count_suffix(self) -> str:
        return self.settings.count_suffix

    @property
    def exists_suffix(self) -> str:
        return self.settings.exists_suffix

    def normalize_filter(self, value: FilterInput) -> FilterDefinition:
        if isinstance(value, FilterDefinition):
            return value
        if isinstance(value, str):
            return FilterDefinition.exact(value)
        raise InvalidDefinition(f"Cannot build a filter from {value!r}")

    def normalize_sort(self, value: SortInput) -> SortDefinition:
        if isinstance(value, SortDefinition):
            return value
        if isinstance(value, str):
            return SortDefinition.field(value.strip().lstrip("-"))
        raise InvalidDefinition(f"Cannot build a sort from {value!r}")

    def normalize_include(self, value: IncludeInput) -> IncludeDefinition:
        if isinstance(value, IncludeDefinition):
            if value.alias is None:
                suffix = self._suffix_for(value.type)
                if suffix:
                    return value.with_alias(value.relation + suffix)
            return value
        if not isinstance(value, str):
            raise InvalidDefinition(f"Cannot build an include from {value!r}")

        name = value.strip()
        for suffix, factory in (
            (self.count_suffix, IncludeDefinition.count),
            (self.exists_suffix, IncludeDefinition.exists),
        ):
            if suffix and name.endswith(suffix) and len(name) > len(suffix):
                return factory(name[: -len(suffix)], alias=name)
        return IncludeDefinition.relationship(name)

    def _suffix_for(self, include_type: str) -> Optional[str]:
        if include_type == include_types.COUNT:
            return self.count_suffix
        if include_type == include_types.EXISTS:
            return self.exists_suffix
        return None

    def derived_includes(self, definition: IncludeDefinition):
        """Yield the count and exists includes implied by a relationship include."""
        if not definition.is_relationship:
            return
        for suffix, factory in (
            (self.count_suffix, IncludeDefinition.count),
            (self.exists_suffix, IncludeDefinition.exists),
        ):
            if suffix:
                yield factory(definition.relation, alias=definition.relation + suffix)
