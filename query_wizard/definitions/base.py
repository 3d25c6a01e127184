"""
Immutable definitions describing one allowed client operation.

A definition pairs a public ``name`` (the alias, or the backend path when
no alias is given) with the backend-facing ``property`` path, a ``type`` tag
used to pick a driver strategy, and type-specific ``options``. Every
modifier returns a new instance.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Callable, ClassVar, Dict, Mapping, Optional, Tuple

from ..exceptions import InvalidDefinition


@dataclass(frozen=True)
class BaseDefinition:
    property: str
    type: str
    alias: Optional[str] = None
    callback: Optional[Callable[..., Any]] = field(default=None, compare=False)
    strategy: Optional[Any] = field(default=None, compare=False)
    options: Mapping[str, Any] = field(default_factory=dict, compare=False)

    capability: ClassVar[str] = ""

    def __post_init__(self):
        prop = self.property.strip() if isinstance(self.property, str) else ""
        if not prop:
            raise InvalidDefinition(
                f"{self.capability or 'Definition'} name must be a non-empty string"
            )
        object.__setattr__(self, "property", prop)
        if self.alias is not None:
            alias = self.alias.strip() if isinstance(self.alias, str) else ""
            if not alias:
                raise InvalidDefinition(
                    f"Alias for `{prop}` must be a non-empty string"
                )
            object.__setattr__(self, "alias", alias)
        object.__setattr__(self, "options", MappingProxyType(dict(self.options)))

    def __hash__(self) -> int:
        return hash((type(self).__name__, self.property, self.type, self.alias))

    @property
    def name(self) -> str:
        return self.alias or self.property

    @property
    def path(self) -> Tuple[str, ...]:
        return tuple(self.property.split("."))

    @property
    def depth(self) -> int:
        """Nesting depth of the backend path, never of the alias."""
        return len(self.path)

    def get_option(self, key: str, default: Any = None) -> Any:
        return self.options.get(key, default)

    def with_alias(self, alias: Optional[str]):
        return replace(self, alias=alias)

    def with_options(self, **options: Any):
        merged: Dict[str, Any] = dict(self.options)
        merged.update(options)
        return replace(self, options=merged)

    def __repr__(self) -> str:
        alias = f" as {self.alias!r}" if self.alias else ""
        return f"<{type(self).__name__} {self.type}:{self.property!r}{alias}>"
