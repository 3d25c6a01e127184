"""
Driver applying definitions to Django querysets.
"""

import logging
from typing import Any, List, Sequence, Tuple

from django.db import models
from django.db.models import Prefetch

from ...definitions import filters as filter_types
from ...definitions import includes as include_types
from ...definitions import sorts as sort_types
from ...enums import Capability
from ..base import BaseDriver
from ..cache import ScopeSignatureCache
from . import filters, includes, sorts
from .utils import camel_case, get_relation_field, is_concrete_field

logger = logging.getLogger(__name__)


class DjangoDriver(BaseDriver):
    """
    Subjects are querysets, managers or model classes; all are normalized to
    a ``QuerySet``. QuerySets are immutable, so every strategy returns a new
    one and the wizard keeps the latest.
    """

    name = "django"
    capabilities = tuple(Capability)

    filter_strategies = {
        filter_types.EXACT: filters.ExactFilter,
        filter_types.PARTIAL: filters.PartialFilter,
        filter_types.OPERATOR: filters.OperatorFilter,
        filter_types.TRASHED: filters.TrashedFilter,
        filter_types.RANGE: filters.RangeFilter,
        filter_types.DATE_RANGE: filters.DateRangeFilter,
        filter_types.NULL: filters.NullFilter,
        filter_types.JSON_CONTAINS: filters.JsonContainsFilter,
        filter_types.CALLBACK: filters.CallbackFilter,
        filter_types.PASSTHROUGH: filters.PassthroughFilter,
    }
    sort_strategies = {
        sort_types.FIELD: sorts.FieldSort,
        sort_types.COUNT: sorts.CountSort,
        sort_types.RELATION: sorts.RelationAggregateSort,
        sort_types.CALLBACK: sorts.CallbackSort,
    }
    include_strategies = {
        include_types.RELATIONSHIP: includes.RelationshipInclude,
        include_types.COUNT: includes.CountInclude,
        include_types.EXISTS: includes.ExistsInclude,
        include_types.CALLBACK: includes.CallbackInclude,
    }

    def __init__(self):
        super().__init__()
        self.scope_signatures = ScopeSignatureCache()
        self.register_strategy(
            Capability.FILTERS, filter_types.SCOPE, filters.ScopeFilter(self.scope_signatures)
        )

    def supports(self, subject: Any) -> bool:
        if isinstance(subject, (models.QuerySet, models.Manager)):
            return True
        return isinstance(subject, type) and issubclass(subject, models.Model)

    def prepare_subject(self, subject: Any) -> models.QuerySet:
        if isinstance(subject, models.QuerySet):
            return subject
        if isinstance(subject, models.Manager):
            return subject.all()
        return subject._default_manager.all()

    def clone_subject(self, subject: models.QuerySet) -> models.QuerySet:
        return subject.all()

    def resource_key(self, subject: models.QuerySet) -> str:
        return camel_case(subject.model.__name__)

    def loaded_relation_columns(self, subject: models.QuerySet) -> List[str]:
        """Forward relation fields that must stay loaded for includes to work."""
        model = subject.model
        names = []
        select_related = subject.query.select_related
        if isinstance(select_related, dict):
            names.extend(select_related.keys())
        for lookup in getattr(subject, "_prefetch_related_lookups", ()):
            path = lookup.prefetch_through if isinstance(lookup, Prefetch) else lookup
            names.append(path.split("__")[0])
        columns = []
        for name in names:
            field = get_relation_field(model, name)
            if field is None or not getattr(field, "concrete", False):
                continue
            if (field.many_to_one or field.one_to_one) and field.name not in columns:
                columns.append(field.name)
        return columns

    def apply_fields(self, subject: models.QuerySet, fields: Sequence[str]) -> Tuple[models.QuerySet, List[str]]:
        """
        Defer everything but ``fields``. Annotation names are left alone.

        The primary key and forward relations used by includes are loaded
        too and returned so they can be hidden from the output.
        """
        columns = [name for name in fields if is_concrete_field(subject.model, name)]
        required = [subject.model._meta.pk.name] + self.loaded_relation_columns(subject)
        added = [name for name in required if name not in columns]
        if not columns:
            return subject, []
        return subject.only(*columns, *added), added

    def annotation_names(self, subject: models.QuerySet) -> List[str]:
        return list(subject.query.annotation_select)

    def apply_appends(self, results: Any, appends: Sequence[str]) -> Any:
        from ...postprocessing import PostProcessor

        return PostProcessor().apply_appends(results, appends)

    def clear_caches(self) -> None:
        self.scope_signatures.clear()
