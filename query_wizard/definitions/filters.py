"""
Filter definitions.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Callable, ClassVar, Optional, Union

from ..enums import FilterOperator
from ..exceptions import InvalidDefinition
from .base import BaseDefinition

EXACT = "exact"
PARTIAL = "partial"
OPERATOR = "operator"
SCOPE = "scope"
TRASHED = "trashed"
RANGE = "range"
DATE_RANGE = "date_range"
NULL = "null"
JSON_CONTAINS = "json_contains"
CALLBACK = "callback"
PASSTHROUGH = "passthrough"
CUSTOM = "custom"


@dataclass(frozen=True, repr=False)
class FilterDefinition(BaseDefinition):
    default: Any = field(default=None, compare=False)
    prepare: Optional[Callable[[Any], Any]] = field(default=None, compare=False)

    capability: ClassVar[str] = "filter"

    __hash__ = BaseDefinition.__hash__

    @classmethod
    def exact(cls, property: str, alias: Optional[str] = None) -> "FilterDefinition":
        return cls(property, EXACT, alias)

    @classmethod
    def partial(cls, property: str, alias: Optional[str] = None) -> "FilterDefinition":
        return cls(property, PARTIAL, alias)

    @classmethod
    def operator(
        cls,
        property: str,
        operator: Union[FilterOperator, str] = FilterOperator.EQUAL,
        alias: Optional[str] = None,
    ) -> "FilterDefinition":
        try:
            operator = FilterOperator(operator)
        except ValueError as exc:
            raise InvalidDefinition(f"Unknown filter operator `{operator}`") from exc
        return cls(property, OPERATOR, alias, options={"operator": operator})

    @classmethod
    def scope(cls, scope: str, alias: Optional[str] = None) -> "FilterDefinition":
        """Filter through a custom QuerySet method named ``scope``."""
        return cls(scope, SCOPE, alias)

    @classmethod
    def trashed(
        cls, alias: Optional[str] = None, column: str = "deleted_at"
    ) -> "FilterDefinition":
        return cls("trashed", TRASHED, alias, options={"column": column})

    @classmethod
    def range(
        cls,
        property: str,
        alias: Optional[str] = None,
        min_key: str = "min",
        max_key: str = "max",
    ) -> "FilterDefinition":
        return cls(property, RANGE, alias, options={"min_key": min_key, "max_key": max_key})

    @classmethod
    def date_range(
        cls,
        property: str,
        alias: Optional[str] = None,
        from_key: str = "from",
        to_key: str = "to",
        date_format: Optional[str] = None,
    ) -> "FilterDefinition":
        return cls(
            property,
            DATE_RANGE,
            alias,
            options={"from_key": from_key, "to_key": to_key, "date_format": date_format},
        )

    @classmethod
    def null(
        cls, property: str, alias: Optional[str] = None, invert_logic: bool = False
    ) -> "FilterDefinition":
        return cls(property, NULL, alias, options={"invert_logic": invert_logic})

    @classmethod
    def json_contains(
        cls, property: str, alias: Optional[str] = None, match_all: bool = True
    ) -> "FilterDefinition":
        return cls(property, JSON_CONTAINS, alias, options={"match_all": match_all})

    @classmethod
    def using(
        cls,
        property: str,
        callback: Callable[..., Any],
        alias: Optional[str] = None,
    ) -> "FilterDefinition":
        """Filter with ``callback(queryset, value, property)``."""
        return cls(property, CALLBACK, alias, callback=callback)

    @classmethod
    def passthrough(cls, name: str) -> "FilterDefinition":
        return cls(name, PASSTHROUGH)

    @classmethod
    def custom(
        cls, property: str, strategy: Any, alias: Optional[str] = None
    ) -> "FilterDefinition":
        return cls(property, CUSTOM, alias, strategy=strategy)

    def with_default(self, value: Any) -> "FilterDefinition":
        return replace(self, default=value)

    def prepare_value_with(self, prepare: Optional[Callable[[Any], Any]]) -> "FilterDefinition":
        return replace(self, prepare=prepare)

    def with_relation_constraint(self, value: bool = True) -> "FilterDefinition":
        return self.with_options(with_relation_constraint=value)

    def prepare_value(self, value: Any) -> Any:
        if self.prepare is None:
            return value
        return self.prepare(value)

    @property
    def is_passthrough(self) -> bool:
        return self.type == PASSTHROUGH
