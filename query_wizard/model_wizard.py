"""
Wizard for an already loaded model instance.

Used on detail endpoints where the instance was fetched elsewhere (for
example by ``get_object_or_404``). Includes are loaded onto the instance,
relations the request did not ask for are dropped from its caches and the
field masks and appends are recorded for serialization.
"""

import logging
from typing import Any, List

from django.db import models
from django.db.models import Prefetch, prefetch_related_objects

from .drivers.django.includes import prefetch_queryset
from .drivers.django.utils import is_forward_single_path, to_lookup
from .enums import BuildState, Capability
from .exceptions import InvalidSubject
from .definitions import IncludeDefinition
from .postprocessing import PostProcessor, get_loaded_relation, is_relation_loaded, loaded_relations
from .schema import ITEM
from .wizard import BaseQueryWizard

logger = logging.getLogger(__name__)


class ModelQueryWizard(BaseQueryWizard):
    context_mode = ITEM

    def __init__(self, instance: models.Model, parameters=None, **kwargs):
        if not isinstance(instance, models.Model):
            raise InvalidSubject(instance)
        self.instance = instance
        subject = type(instance)._default_manager.filter(pk=instance.pk)
        super().__init__(subject, parameters, **kwargs)

    def build(self) -> models.Model:
        signature = self.parameters.signature()
        if self.state is BuildState.BUILT:
            if signature == self._built_signature:
                return self.instance
            self.invalidate()

        logger.debug("Processing %r for pk=%s", self, self.instance.pk)
        for callback in self._tap_callbacks:
            result = callback(self.instance)
            if isinstance(result, models.Model):
                self.instance = result

        includes = self.validated_includes()
        self._relation_fields = self._validated_relation_fields()
        if includes:
            self.driver.ensure_capability(Capability.INCLUDES)
        self._drop_unrequested_relations(includes)
        self._load_includes(includes)

        processor = PostProcessor()
        fields = self.validated_fields()
        if fields:
            self.driver.ensure_capability(Capability.FIELDS)
            processor.set_visible_fields(self.instance, fields)
        if self._relation_fields:
            processor.apply_relation_fields(self.instance, self._relation_fields)
        appends = self.valid_appends()
        if appends:
            self.driver.ensure_capability(Capability.APPENDS)
            self.driver.apply_appends(self.instance, appends)

        self.state = BuildState.BUILT
        self._built_signature = signature
        return self.instance

    def process(self, results: Any = None) -> models.Model:
        return self.build()

    def _drop_unrequested_relations(self, includes: List[IncludeDefinition]) -> None:
        keep = {
            definition.relation.split(".")[0]
            for definition in includes
            if definition.is_relationship
        }
        prefetched = getattr(self.instance, "_prefetched_objects_cache", None) or {}
        fields_cache = self.instance._state.fields_cache
        for name in list(loaded_relations(self.instance)):
            if name in keep:
                continue
            prefetched.pop(name, None)
            fields_cache.pop(name, None)

    def _load_includes(self, includes: List[IncludeDefinition]) -> None:
        annotated = self.subject
        for definition in includes:
            if definition.is_relationship:
                self._load_relation(definition)
            else:
                annotated = self.driver.apply_include(annotated, definition)

        names = self.driver.annotation_names(annotated)
        if not names:
            return
        values = annotated.values(*names).first() or {}
        for name in names:
            setattr(self.instance, name, values.get(name))
        PostProcessor().mark_annotations(self.instance, names)

    def _load_relation(self, definition: IncludeDefinition) -> None:
        if self._is_loaded(definition.relation):
            return
        model = type(self.instance)
        lookup = to_lookup(definition.relation)
        fields = self._relation_fields.get(definition.relation)
        queryset = None
        if not is_forward_single_path(model, definition.relation):
            queryset = prefetch_queryset(model, definition.relation, fields or ())
        prefetch_related_objects(
            [self.instance], Prefetch(lookup, queryset=queryset) if queryset is not None else lookup
        )

    def _is_loaded(self, path: str) -> bool:
        current: List[models.Model] = [self.instance]
        for segment in path.split("."):
            found: List[models.Model] = []
            for instance in current:
                if not is_relation_loaded(instance, segment):
                    return False
                value = get_loaded_relation(instance, segment)
                if isinstance(value, models.Model):
                    found.append(value)
                elif value is not None:
                    found.extend(value)
            current = found
        return True
