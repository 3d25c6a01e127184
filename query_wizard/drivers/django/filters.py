"""
Filter strategies for Django querysets.

Dotted properties are turned into ``__`` lookups; a filter that traverses
a to-many relation adds ``distinct()`` so root rows are not duplicated.
"""

from __future__ import annotations

import logging
from datetime import datetime
from functools import reduce
from operator import or_
from typing import Any, Dict, List, Optional, Sequence

from django.db import models
from django.db.models import Q

from ...definitions import FilterDefinition
from ...enums import FilterOperator
from ...exceptions import InvalidDefinition, InvalidFilterValue
from ..base import FilterStrategy
from ..cache import ScopeSignatureCache
from .utils import (
    crosses_to_many,
    related_model,
    split_relation_path,
    to_lookup,
)

logger = logging.getLogger(__name__)

TRUE_VALUES = {"1", "true", "yes", "on"}
FALSE_VALUES = {"0", "false", "no", "off"}


def as_list(value: Any) -> List[Any]:
    if isinstance(value, (list, tuple, set)):
        return list(value)
    return [value]


def as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    text = str(value).strip().lower()
    if text in TRUE_VALUES:
        return True
    if text in FALSE_VALUES:
        return False
    return None


def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


class QuerySetFilter(FilterStrategy):
    """
    Base class for strategies that filter along a model path.

    A property crossing a relation (``comments.status``) is applied to the
    related model and root rows are kept when they have a matching related
    row. With ``with_relation_constraint=False`` the path is used as a plain
    join lookup instead, with ``distinct()`` when it crosses a to-many
    relation.
    """

    def apply(self, subject: models.QuerySet, definition: FilterDefinition, value: Any):
        relation, column = split_relation_path(definition.property)
        if relation and definition.get_option("with_relation_constraint", True):
            target = related_model(subject.model, relation)
            if target is not None:
                return self.apply_on_relation(subject, definition, relation, target, column, value)

        lookup = to_lookup(definition.property)
        queryset = self.filter(subject, definition, lookup, value)
        if queryset is not subject and self.needs_distinct(subject, definition):
            queryset = queryset.distinct()
        return queryset

    def apply_on_relation(self, subject, definition, relation, target, column, value):
        base = target._default_manager.all()
        related = self.filter(base, definition, column, value)
        if related is base:
            return subject
        condition = {f"{to_lookup(relation)}__in": related}
        if not crosses_to_many(subject.model, relation):
            return subject.filter(**condition)
        matching = subject.model._default_manager.filter(**condition).values("pk")
        return subject.filter(pk__in=matching)

    def needs_distinct(self, subject: models.QuerySet, definition: FilterDefinition) -> bool:
        return crosses_to_many(subject.model, definition.property)

    def filter(self, queryset: models.QuerySet, definition: FilterDefinition, lookup: str, value: Any):
        raise NotImplementedError


class ExactFilter(QuerySetFilter):
    def filter(self, queryset, definition, lookup, value):
        if isinstance(value, (list, tuple, set)):
            values = [item for item in value if item is not None]
            if not values:
                return queryset
            return queryset.filter(**{f"{lookup}__in": values})
        return queryset.filter(**{lookup: value})


class PartialFilter(QuerySetFilter):
    """Case-insensitive substring match; list values are OR'ed."""

    def filter(self, queryset, definition, lookup, value):
        values = [str(item) for item in as_list(value) if not is_blank(item)]
        if not values:
            return queryset
        condition = reduce(or_, (Q(**{f"{lookup}__icontains": item}) for item in values))
        return queryset.filter(condition)


OPERATOR_LOOKUPS = {
    FilterOperator.EQUAL: "exact",
    FilterOperator.GREATER_THAN: "gt",
    FilterOperator.GREATER_THAN_OR_EQUAL: "gte",
    FilterOperator.LESS_THAN: "lt",
    FilterOperator.LESS_THAN_OR_EQUAL: "lte",
    FilterOperator.LIKE: "contains",
}


class OperatorFilter(QuerySetFilter):
    """
    Compare with a fixed operator, or parse it from the value when the
    operator is ``dynamic`` (``>=10``, ``!=draft``).
    """

    def filter(self, queryset, definition, lookup, value):
        operator = FilterOperator(definition.get_option("operator", FilterOperator.EQUAL))
        if operator == FilterOperator.DYNAMIC:
            operator, value = FilterOperator.parse_dynamic(value)
            if operator is None:
                return queryset

        if isinstance(value, (list, tuple, set)):
            values = list(value)
            if not values:
                return queryset
            if not operator.accepts_list:
                raise InvalidFilterValue(value, definition.name)
            if operator == FilterOperator.EQUAL:
                return queryset.filter(**{f"{lookup}__in": values})
            return queryset.exclude(**{f"{lookup}__in": values})

        if operator == FilterOperator.NOT_EQUAL:
            return queryset.exclude(**{lookup: value})
        if operator == FilterOperator.NOT_LIKE:
            return queryset.exclude(**{f"{lookup}__contains": value})
        return queryset.filter(**{f"{lookup}__{OPERATOR_LOOKUPS[operator]}": value})


class ScopeFilter(FilterStrategy):
    """
    Call a custom QuerySet method (``published``) with the request value.

    ``author.active`` calls ``active()`` on the related model's queryset and
    keeps root rows whose ``author`` is in the result. Parameters annotated
    with a model class receive the instance whose pk is the given value.
    Positional values beyond the method's parameters are dropped, so
    ``filter[published]=true`` calls ``published()``.
    """

    def __init__(self, signatures: Optional[ScopeSignatureCache] = None):
        self.signatures = signatures if signatures is not None else ScopeSignatureCache()

    def apply(self, subject: models.QuerySet, definition: FilterDefinition, value: Any):
        relation, scope = split_relation_path(definition.property)
        if not relation:
            return self._call_scope(subject, scope, definition, value)

        model = related_model(subject.model, relation)
        if model is None:
            raise InvalidDefinition(
                f"`{relation}` is not a relation of {subject.model.__name__}"
            )
        related = self._call_scope(model._default_manager.all(), scope, definition, value)
        queryset = subject.filter(**{f"{to_lookup(relation)}__in": related})
        if crosses_to_many(subject.model, relation):
            queryset = queryset.distinct()
        return queryset

    def _call_scope(self, queryset: models.QuerySet, scope: str, definition, value):
        method = getattr(type(queryset), scope, None)
        if not callable(method):
            raise InvalidDefinition(
                f"{type(queryset).__name__} has no scope method `{scope}`"
            )
        args, kwargs = self._arguments(queryset, scope, definition, value)
        return getattr(queryset, scope)(*args, **kwargs)

    def _arguments(self, queryset, scope, definition, value):
        parameters = self.signatures.parameters(type(queryset), scope)
        if isinstance(value, dict):
            kwargs = dict(value)
            for name, model in parameters:
                if model is not None and name in kwargs:
                    kwargs[name] = self._resolve_instance(model, kwargs[name], definition)
            return [], kwargs

        args = as_list(value)[: len(parameters)]
        for index, (name, model) in enumerate(parameters[: len(args)]):
            if model is not None:
                args[index] = self._resolve_instance(model, args[index], definition)
        return args, {}

    def _resolve_instance(self, model, value, definition):
        if isinstance(value, model):
            return value
        instance = None
        if not is_blank(value):
            try:
                instance = model._default_manager.filter(pk=value).first()
            except (TypeError, ValueError):
                instance = None
        if instance is None:
            raise InvalidFilterValue(value, definition.name)
        return instance


class TrashedFilter(FilterStrategy):
    """``with`` keeps soft-deleted rows, ``only`` keeps just those, anything else hides them."""

    def apply(self, subject: models.QuerySet, definition: FilterDefinition, value: Any):
        column = definition.get_option("column", "deleted_at")
        mode = str(value).strip().lower()
        if mode == "with":
            return subject
        if mode == "only":
            return subject.filter(**{f"{column}__isnull": False})
        return subject.filter(**{f"{column}__isnull": True})


class RangeFilter(QuerySetFilter):
    """Accepts ``{"min": x, "max": y}`` (keys configurable) or ``[x, y]``."""

    lower_key_option = "min_key"
    upper_key_option = "max_key"
    lower_default = "min"
    upper_default = "max"

    def bounds(self, definition: FilterDefinition, value: Any):
        if isinstance(value, dict):
            lower = value.get(definition.get_option(self.lower_key_option, self.lower_default))
            upper = value.get(definition.get_option(self.upper_key_option, self.upper_default))
            return lower, upper
        if isinstance(value, (list, tuple)) and len(value) >= 2:
            return value[0], value[1]
        return None, None

    def convert(self, definition: FilterDefinition, value: Any) -> Any:
        return value

    def filter(self, queryset, definition, lookup, value):
        lower, upper = self.bounds(definition, value)
        conditions: Dict[str, Any] = {}
        if not is_blank(lower):
            conditions[f"{lookup}__gte"] = self.convert(definition, lower)
        if not is_blank(upper):
            conditions[f"{lookup}__lte"] = self.convert(definition, upper)
        if not conditions:
            return queryset
        return queryset.filter(**conditions)


class DateRangeFilter(RangeFilter):
    """Like ``RangeFilter`` with ``from``/``to`` keys and optional ``date_format`` parsing."""

    lower_key_option = "from_key"
    upper_key_option = "to_key"
    lower_default = "from"
    upper_default = "to"

    def convert(self, definition: FilterDefinition, value: Any) -> Any:
        date_format = definition.get_option("date_format")
        if not date_format or not isinstance(value, str):
            return value
        try:
            return datetime.strptime(value, date_format)
        except ValueError as exc:
            raise InvalidFilterValue(value, definition.name) from exc


class NullFilter(QuerySetFilter):
    """``true`` keeps rows where the property is null; ``invert_logic`` flips it."""

    def filter(self, queryset, definition, lookup, value):
        flag = as_bool(value)
        if flag is None:
            return queryset
        if definition.get_option("invert_logic", False):
            flag = not flag
        return queryset.filter(**{f"{lookup}__isnull": flag})


class JsonContainsFilter(QuerySetFilter):
    """JSON containment; ``match_all`` requires every value, otherwise any."""

    def filter(self, queryset, definition, lookup, value):
        values = [item for item in as_list(value) if item is not None]
        if not values:
            return queryset
        if definition.get_option("match_all", True):
            return queryset.filter(**{f"{lookup}__contains": values})
        condition = reduce(or_, (Q(**{f"{lookup}__contains": [item]}) for item in values))
        return queryset.filter(condition)


class CallbackFilter(FilterStrategy):
    """``callback(queryset, value, property)``; a ``None`` return keeps the queryset."""

    def apply(self, subject, definition: FilterDefinition, value: Any):
        result = definition.callback(subject, value, definition.property)
        return subject if result is None else result


class PassthroughFilter(FilterStrategy):
    def apply(self, subject, definition: FilterDefinition, value: Any):
        return subject
