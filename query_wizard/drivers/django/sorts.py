"""
Sort strategies for Django querysets.

Sorts are appended to the queryset's current ordering, so applying several
sorts keeps the request order.
"""

from django.db import models
from django.db.models import Avg, Count, Max, Min, Sum

from ...definitions import SortDefinition
from ...enums import SortDirection
from ..base import SortStrategy
from .utils import is_to_many, to_alias, to_lookup, walk_relations

AGGREGATES = {
    "min": Min,
    "max": Max,
    "sum": Sum,
    "avg": Avg,
    "count": Count,
}


def order_by_appending(queryset: models.QuerySet, name: str, direction: SortDirection):
    token = f"-{name}" if direction == SortDirection.DESC else name
    return queryset.order_by(*queryset.query.order_by, token)


def annotate_count(queryset: models.QuerySet, relation: str) -> tuple:
    """Annotate ``<relation>_count`` once and return ``(queryset, alias)``."""
    alias = f"{to_alias(relation)}_count"
    if alias not in queryset.query.annotations:
        distinct = any(is_to_many(field) for _, field in walk_relations(queryset.model, relation))
        queryset = queryset.annotate(**{alias: Count(to_lookup(relation), distinct=distinct)})
    return queryset, alias


class FieldSort(SortStrategy):
    def apply(self, subject, definition: SortDefinition, direction: SortDirection):
        return order_by_appending(subject, to_lookup(definition.property), direction)


class CountSort(SortStrategy):
    """Order by the number of related rows."""

    def apply(self, subject, definition: SortDefinition, direction: SortDirection):
        queryset, alias = annotate_count(subject, definition.property)
        return order_by_appending(queryset, alias, direction)


class RelationAggregateSort(SortStrategy):
    """Order by ``min``/``max``/``sum``/``avg``/``count`` of a related column."""

    def apply(self, subject, definition: SortDefinition, direction: SortDirection):
        aggregate = definition.get_option("aggregate", "max")
        column = definition.get_option("column")
        alias = f"{to_alias(definition.property)}_{aggregate}_{column}"
        if alias not in subject.query.annotations:
            function = AGGREGATES[aggregate]
            lookup = f"{to_lookup(definition.property)}__{column}"
            subject = subject.annotate(**{alias: function(lookup)})
        return order_by_appending(subject, alias, direction)


class CallbackSort(SortStrategy):
    """``callback(queryset, direction, property)``; a ``None`` return keeps the queryset."""

    def apply(self, subject, definition: SortDefinition, direction: SortDirection):
        result = definition.callback(subject, direction.value, definition.property)
        return subject if result is None else result
