"""
Driver base classes.

A driver knows how to apply definitions to one kind of subject. It keeps a
registry per capability mapping a definition type tag to a strategy, so new
types are added by registration instead of branching in the wizard.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from django.utils.module_loading import import_string

from ..definitions import FilterDefinition, IncludeDefinition, SortDefinition
from ..enums import Capability, SortDirection
from ..exceptions import UnknownDefinitionType, UnsupportedCapability

logger = logging.getLogger(__name__)


class FilterStrategy:
    def apply(self, subject: Any, definition: FilterDefinition, value: Any) -> Any:
        raise NotImplementedError


class SortStrategy:
    def apply(self, subject: Any, definition: SortDefinition, direction: SortDirection) -> Any:
        raise NotImplementedError


class IncludeStrategy:
    def apply(
        self, subject: Any, definition: IncludeDefinition, fields: Optional[Sequence[str]] = None
    ) -> Any:
        raise NotImplementedError


StrategySpec = Union[str, type, Any]


def _instantiate(strategy: StrategySpec) -> Any:
    if isinstance(strategy, str):
        strategy = import_string(strategy)
    if isinstance(strategy, type):
        return strategy()
    return strategy


class BaseDriver:
    """Uniform entry point used by the wizard to mutate a subject."""

    name: str = ""
    capabilities: Tuple[Capability, ...] = tuple(Capability)

    filter_strategies: Dict[str, StrategySpec] = {}
    sort_strategies: Dict[str, StrategySpec] = {}
    include_strategies: Dict[str, StrategySpec] = {}

    def __init__(self):
        self._strategies: Dict[str, Dict[str, StrategySpec]] = {
            Capability.FILTERS.value: dict(self.filter_strategies),
            Capability.SORTS.value: dict(self.sort_strategies),
            Capability.INCLUDES.value: dict(self.include_strategies),
        }
        self._instances: Dict[Tuple[str, str], Any] = {}

    # ------------------------------------------------------------------ #
    # Subjects
    # ------------------------------------------------------------------ #
    def supports(self, subject: Any) -> bool:
        raise NotImplementedError

    def prepare_subject(self, subject: Any) -> Any:
        return subject

    def clone_subject(self, subject: Any) -> Any:
        return subject

    def resource_key(self, subject: Any) -> str:
        raise NotImplementedError

    # ------------------------------------------------------------------ #
    # Capabilities and strategies
    # ------------------------------------------------------------------ #
    def supports_capability(self, capability: Union[Capability, str]) -> bool:
        return Capability(capability) in self.capabilities

    def ensure_capability(self, capability: Union[Capability, str]) -> None:
        if not self.supports_capability(capability):
            raise UnsupportedCapability(self.name, Capability(capability).value)

    def register_strategy(
        self, capability: Union[Capability, str], type_name: str, strategy: StrategySpec
    ) -> None:
        capability = Capability(capability).value
        self._strategies[capability][type_name] = strategy
        self._instances.pop((capability, type_name), None)
        logger.debug("Registered %s strategy '%s' on driver '%s'", capability, type_name, self.name)

    def has_strategy(self, capability: Union[Capability, str], type_name: str) -> bool:
        return type_name in self._strategies.get(Capability(capability).value, {})

    def get_strategy(self, capability: Union[Capability, str], definition) -> Any:
        capability = Capability(capability).value
        if definition.strategy is not None:
            return _instantiate(definition.strategy)
        key = (capability, definition.type)
        if key not in self._instances:
            entry = self._strategies.get(capability, {}).get(definition.type)
            if entry is None:
                raise UnknownDefinitionType(capability, definition.type, self.name)
            self._instances[key] = _instantiate(entry)
        return self._instances[key]

    # ------------------------------------------------------------------ #
    # Application
    # ------------------------------------------------------------------ #
    def apply_filter(self, subject: Any, definition: FilterDefinition, value: Any) -> Any:
        return self.get_strategy(Capability.FILTERS, definition).apply(subject, definition, value)

    def apply_sort(self, subject: Any, definition: SortDefinition, direction: SortDirection) -> Any:
        return self.get_strategy(Capability.SORTS, definition).apply(subject, definition, direction)

    def apply_include(
        self,
        subject: Any,
        definition: IncludeDefinition,
        fields: Optional[Sequence[str]] = None,
    ) -> Any:
        return self.get_strategy(Capability.INCLUDES, definition).apply(subject, definition, fields)

    def apply_fields(self, subject: Any, fields: Sequence[str]) -> Tuple[Any, List[str]]:
        """Restrict selected fields; returns the subject and fields added for loading."""
        return subject, []

    def annotation_names(self, subject: Any) -> List[str]:
        """Names of computed values the subject adds to each result."""
        return []

    def apply_appends(self, results: Any, appends: Sequence[str]) -> Any:
        return results

    def clear_caches(self) -> None:
        """Drop per-process metadata caches."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name!r}>"
