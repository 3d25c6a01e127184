"""
Query wizard: turn request parameters into validated queryset operations.

    wizard = (
        QueryWizard.for_subject(Post.objects.all(), request)
        .allowed_filters("status", FilterDefinition.partial("title"))
        .allowed_sorts("created_at")
        .allowed_includes("author", "comments")
    )
    posts = wizard.process(list(wizard.build()))
"""

from .definitions import FilterDefinition, IncludeDefinition, SortDefinition
from .drivers import BaseDriver, driver_registry
from .enums import BuildState, Capability, FilterOperator, SortDirection
from .exceptions import InvalidDefinition, InvalidQuery, QueryWizardError
from .model_wizard import ModelQueryWizard
from .parameters import QueryParameters
from .postprocessing import appendable, serialize
from .schema import ResourceSchema, SchemaContext
from .values import Sort
from .wizard import BaseQueryWizard, ItemQueryWizard, QueryWizard

__version__ = "1.0.0"


def clear_caches() -> None:
    """Clear metadata caches of every registered driver."""
    driver_registry.clear_caches()


__all__ = [
    "BaseDriver",
    "BaseQueryWizard",
    "BuildState",
    "Capability",
    "FilterDefinition",
    "FilterOperator",
    "IncludeDefinition",
    "InvalidDefinition",
    "InvalidQuery",
    "ItemQueryWizard",
    "ModelQueryWizard",
    "QueryParameters",
    "QueryWizard",
    "QueryWizardError",
    "ResourceSchema",
    "SchemaContext",
    "Sort",
    "SortDefinition",
    "SortDirection",
    "appendable",
    "clear_caches",
    "driver_registry",
    "serialize",
    "__version__",
]
