"""
Declarative resource schemas.

A ``ResourceSchema`` subclass groups the allow-lists and defaults of one
resource so views do not repeat them::

    class PostSchema(ResourceSchema):
        model = Post
        filters = ["title", FilterDefinition.partial("body")]
        sorts = ["created_at"]
        includes = ["author", "comments"]
        default_sorts = ["-created_at"]

        def list_context(self, wizard):
            return SchemaContext(disallowed_includes=["comments"])

Every attribute can be replaced by a ``get_<name>(wizard)`` override when
the value depends on the request. ``None`` means "not declared", which is
different from an empty list.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence, Type

from django.db import models

if TYPE_CHECKING:
    from .wizard import BaseQueryWizard

LIST = "list"
ITEM = "item"


@dataclass
class SchemaContext:
    """
    Overrides applied for one context (list or single item).

    ``allowed_*`` replace the resolved allow-list when set; ``disallowed_*``
    are added to the disallow list; ``default_*`` replace the defaults.
    """

    allowed_filters: Optional[List[Any]] = None
    allowed_sorts: Optional[List[Any]] = None
    allowed_includes: Optional[List[Any]] = None
    allowed_fields: Optional[List[str]] = None
    allowed_appends: Optional[List[str]] = None
    disallowed_filters: List[str] = field(default_factory=list)
    disallowed_sorts: List[str] = field(default_factory=list)
    disallowed_includes: List[str] = field(default_factory=list)
    disallowed_fields: List[str] = field(default_factory=list)
    disallowed_appends: List[str] = field(default_factory=list)
    default_sorts: Optional[List[str]] = None
    default_includes: Optional[List[str]] = None
    default_fields: Optional[List[str]] = None
    default_appends: Optional[List[str]] = None

    def allowed(self, capability: str) -> Optional[List[Any]]:
        return getattr(self, f"allowed_{capability}", None)

    def disallowed(self, capability: str) -> List[str]:
        return list(getattr(self, f"disallowed_{capability}", None) or [])

    def defaults(self, capability: str) -> Optional[List[Any]]:
        return getattr(self, f"default_{capability}", None)


class ResourceSchema:
    model: Optional[Type[models.Model]] = None
    type: Optional[str] = None

    filters: Optional[Sequence[Any]] = None
    sorts: Optional[Sequence[Any]] = None
    includes: Optional[Sequence[Any]] = None
    fields: Optional[Sequence[str]] = None
    appends: Optional[Sequence[str]] = None

    default_filters: Dict[str, Any] = {}
    default_sorts: Sequence[str] = ()
    default_includes: Sequence[str] = ()
    default_fields: Sequence[str] = ()
    default_appends: Sequence[str] = ()

    def get_model(self) -> Type[models.Model]:
        if self.model is None:
            raise NotImplementedError(f"{type(self).__name__} must define `model`")
        return self.model

    def get_type(self) -> str:
        if self.type:
            return self.type
        name = self.get_model().__name__
        return name[:1].lower() + name[1:]

    def get_queryset(self, wizard: "BaseQueryWizard") -> models.QuerySet:
        return self.get_model()._default_manager.all()

    def get_allowed(self, capability: str, wizard: "BaseQueryWizard") -> Optional[List[Any]]:
        getter = getattr(self, f"get_{capability}", None)
        value = getter(wizard) if callable(getter) else getattr(self, capability, None)
        return None if value is None else list(value)

    def get_defaults(self, capability: str, wizard: "BaseQueryWizard") -> List[Any]:
        getter = getattr(self, f"get_default_{capability}", None)
        value = getter(wizard) if callable(getter) else getattr(self, f"default_{capability}", ())
        return list(value or ())

    def get_default_filters(self, wizard: "BaseQueryWizard") -> Dict[str, Any]:
        return dict(self.default_filters or {})

    def list_context(self, wizard: "BaseQueryWizard") -> Optional[SchemaContext]:
        return None

    def item_context(self, wizard: "BaseQueryWizard") -> Optional[SchemaContext]:
        return None

    def get_context(self, mode: str, wizard: "BaseQueryWizard") -> Optional[SchemaContext]:
        if mode == LIST:
            return self.list_context(wizard)
        if mode == ITEM:
            return self.item_context(wizard)
        return None
