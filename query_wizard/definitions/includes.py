"""
Include definitions.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, ClassVar, Optional

from .base import BaseDefinition

RELATIONSHIP = "relationship"
COUNT = "count"
EXISTS = "exists"
CALLBACK = "callback"
CUSTOM = "custom"


@dataclass(frozen=True, repr=False)
class IncludeDefinition(BaseDefinition):
    capability: ClassVar[str] = "include"

    __hash__ = BaseDefinition.__hash__

    @property
    def relation(self) -> str:
        return self.property

    @classmethod
    def relationship(cls, relation: str, alias: Optional[str] = None) -> "IncludeDefinition":
        return cls(relation, RELATIONSHIP, alias)

    @classmethod
    def count(cls, relation: str, alias: Optional[str] = None) -> "IncludeDefinition":
        return cls(relation, COUNT, alias)

    @classmethod
    def exists(cls, relation: str, alias: Optional[str] = None) -> "IncludeDefinition":
        return cls(relation, EXISTS, alias)

    @classmethod
    def using(
        cls,
        name: str,
        callback: Callable[..., Any],
        alias: Optional[str] = None,
    ) -> "IncludeDefinition":
        """Include with ``callback(queryset, relation, fields)``."""
        return cls(name, CALLBACK, alias, callback=callback)

    @classmethod
    def custom(cls, relation: str, strategy: Any, alias: Optional[str] = None) -> "IncludeDefinition":
        return cls(relation, CUSTOM, alias, strategy=strategy)

    @property
    def is_relationship(self) -> bool:
        return self.type == RELATIONSHIP
