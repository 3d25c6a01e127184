"""
Include strategies for Django querysets.
"""

from typing import Optional, Sequence

from django.db import models
from django.db.models import BooleanField, Case, Count, Prefetch, Value, When

from ...definitions import IncludeDefinition
from ..base import IncludeStrategy
from .sorts import annotate_count
from .utils import (
    get_relation_field,
    is_forward_single_path,
    related_model,
    to_alias,
    to_lookup,
)


def prefetch_queryset(model, relation: str, fields: Sequence[str]) -> Optional[models.QuerySet]:
    """
    A queryset for ``Prefetch`` restricted to ``fields``.

    The primary key and, for reverse foreign keys, the column pointing back
    to the parent are always loaded so Django can attach the rows.
    """
    target = related_model(model, relation)
    if target is None or not fields or "*" in fields:
        return None
    columns = [target._meta.pk.name]
    parent_model = related_model(model, relation.rpartition(".")[0]) if "." in relation else model
    field = get_relation_field(parent_model, relation.rpartition(".")[2])
    if getattr(field, "one_to_many", False) and getattr(field, "field", None) is not None:
        columns.append(field.field.name)
    for name in fields:
        if name not in columns:
            columns.append(name)
    return target._default_manager.only(*columns)


class RelationshipInclude(IncludeStrategy):
    """
    Load a relation with the queryset.

    Chains of forward foreign keys use ``select_related``; anything crossing
    a reverse or many-to-many relation uses ``prefetch_related``.
    """

    def apply(self, subject, definition: IncludeDefinition, fields: Optional[Sequence[str]] = None):
        lookup = to_lookup(definition.relation)
        if is_forward_single_path(subject.model, definition.relation):
            return subject.select_related(lookup)
        queryset = prefetch_queryset(subject.model, definition.relation, fields or ())
        if queryset is not None:
            return subject.prefetch_related(Prefetch(lookup, queryset=queryset))
        return subject.prefetch_related(lookup)


class CountInclude(IncludeStrategy):
    """Annotate ``<relation>_count``."""

    def apply(self, subject, definition: IncludeDefinition, fields: Optional[Sequence[str]] = None):
        queryset, _ = annotate_count(subject, definition.relation)
        return queryset


class ExistsInclude(IncludeStrategy):
    """Annotate ``<relation>_exists`` as a boolean."""

    def apply(self, subject, definition: IncludeDefinition, fields: Optional[Sequence[str]] = None):
        base = to_alias(definition.relation)
        alias = f"{base}_exists"
        if alias in subject.query.annotations:
            return subject
        counter = f"_{base}_exists_count"
        return subject.alias(
            **{counter: Count(to_lookup(definition.relation), distinct=True)}
        ).annotate(
            **{
                alias: Case(
                    When(**{f"{counter}__gt": 0}, then=Value(True)),
                    default=Value(False),
                    output_field=BooleanField(),
                )
            }
        )


class CallbackInclude(IncludeStrategy):
    """``callback(queryset, relation, fields)``; a ``None`` return keeps the queryset."""

    def apply(self, subject, definition: IncludeDefinition, fields: Optional[Sequence[str]] = None):
        result = definition.callback(subject, definition.relation, fields)
        return subject if result is None else result
