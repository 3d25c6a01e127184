"""
Sort definitions.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, ClassVar, Optional

from ..exceptions import InvalidDefinition
from .base import BaseDefinition

FIELD = "field"
COUNT = "count"
RELATION = "relation"
CALLBACK = "callback"
CUSTOM = "custom"

RELATION_AGGREGATES = ("min", "max", "sum", "avg", "count")


@dataclass(frozen=True, repr=False)
class SortDefinition(BaseDefinition):
    capability: ClassVar[str] = "sort"

    __hash__ = BaseDefinition.__hash__

    @classmethod
    def field(cls, property: str, alias: Optional[str] = None) -> "SortDefinition":
        return cls(property, FIELD, alias)

    @classmethod
    def count(cls, relation: str, alias: Optional[str] = None) -> "SortDefinition":
        """Order by the number of related rows."""
        return cls(relation, COUNT, alias)

    @classmethod
    def relation(
        cls,
        relation: str,
        column: str,
        aggregate: str = "max",
        alias: Optional[str] = None,
    ) -> "SortDefinition":
        """Order by an aggregate over a column of a related model."""
        if aggregate not in RELATION_AGGREGATES:
            raise InvalidDefinition(
                f"Invalid aggregate `{aggregate}`. "
                f"Allowed: {', '.join(RELATION_AGGREGATES)}."
            )
        return cls(
            relation, RELATION, alias, options={"column": column, "aggregate": aggregate}
        )

    @classmethod
    def using(
        cls,
        name: str,
        callback: Callable[..., Any],
        alias: Optional[str] = None,
    ) -> "SortDefinition":
        """Sort with ``callback(queryset, direction, property)``."""
        return cls(name, CALLBACK, alias, callback=callback)

    @classmethod
    def custom(cls, property: str, strategy: Any, alias: Optional[str] = None) -> "SortDefinition":
        return cls(property, CUSTOM, alias, strategy=strategy)
