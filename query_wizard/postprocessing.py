"""
Post-processing of executed results.

After the query has run, appends are computed on the loaded instances and
field masks are recorded on them. Nothing here issues queries: only
relations that were already loaded (``select_related`` or
``prefetch_related``) are walked. ``serialize()`` turns a processed instance
into a plain dict honoring the masks.
"""

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from django.db import models

from .resolution import WILDCARD

logger = logging.getLogger(__name__)

APPENDS_ATTR = "_query_wizard_appends"
VISIBLE_FIELDS_ATTR = "_query_wizard_visible_fields"
HIDDEN_FIELDS_ATTR = "_query_wizard_hidden_fields"
ANNOTATIONS_ATTR = "_query_wizard_annotations"

_MISSING = object()


def appendable(func):
    """Mark a model method as callable through appends."""
    func.query_wizard_append = True
    return func


def as_instances(results: Any) -> List[models.Model]:
    if results is None:
        return []
    if isinstance(results, models.Model):
        return [results]
    return [item for item in results if isinstance(item, models.Model)]


def get_loaded_relation(instance: models.Model, name: str) -> Any:
    """The cached value of relation ``name`` or ``_MISSING`` when not loaded."""
    prefetched = getattr(instance, "_prefetched_objects_cache", None) or {}
    if name in prefetched:
        return list(prefetched[name])
    fields_cache = getattr(instance._state, "fields_cache", None) or {}
    if name in fields_cache:
        return fields_cache[name]
    return _MISSING


def loaded_relations(instance: models.Model) -> Dict[str, Any]:
    relations: Dict[str, Any] = dict(getattr(instance._state, "fields_cache", None) or {})
    for name, queryset in (getattr(instance, "_prefetched_objects_cache", None) or {}).items():
        relations[name] = list(queryset)
    return relations


def _related_list(value: Any) -> List[models.Model]:
    if value is None or value is _MISSING:
        return []
    if isinstance(value, models.Model):
        return [value]
    return [item for item in value if isinstance(item, models.Model)]


def build_path_tree(paths: Iterable[str]) -> Dict[str, dict]:
    """``["a", "b.c", "b.d"]`` -> ``{"a": {}, "b": {"c": {}, "d": {}}}``."""
    tree: Dict[str, dict] = {}
    for path in paths:
        node = tree
        for segment in path.split("."):
            node = node.setdefault(segment, {})
    return tree


def resolve_append(instance: models.Model, name: str) -> Any:
    """
    Read the append ``name`` from ``instance``.

    Attributes and properties are read as-is. Methods are only called when
    marked with ``@appendable``.
    """
    if name.startswith("_"):
        return _MISSING
    value = getattr(instance, name, _MISSING)
    if value is _MISSING:
        logger.warning(
            "Append '%s' does not exist on %s",
            name,
            type(instance).__name__,
            extra={"append": name, "model": type(instance).__name__},
        )
        return _MISSING
    if callable(value):
        if getattr(value, "query_wizard_append", False):
            return value()
        logger.warning(
            "Append '%s' on %s is a method not marked as appendable",
            name,
            type(instance).__name__,
        )
        return _MISSING
    return value


class PostProcessor:
    """Record appends and field masks on loaded model instances."""

    def apply_appends(self, results: Any, appends: Sequence[str]) -> Any:
        tree = build_path_tree(appends)
        if tree:
            for instance in as_instances(results):
                self._append(instance, tree)
        return results

    def _append(self, instance: models.Model, tree: Mapping[str, dict]) -> None:
        values = dict(getattr(instance, APPENDS_ATTR, None) or {})
        for name, children in tree.items():
            if not children:
                value = resolve_append(instance, name)
                if value is not _MISSING:
                    values[name] = value
                continue
            related = get_loaded_relation(instance, name)
            if related is _MISSING:
                logger.debug(
                    "Skipping appends under '%s': relation not loaded on %s",
                    name,
                    type(instance).__name__,
                )
                continue
            for item in _related_list(related):
                self._append(item, children)
        setattr(instance, APPENDS_ATTR, values)

    def apply_relation_fields(self, results: Any, field_map: Mapping[str, Sequence[str]]) -> Any:
        """Record visible fields on related instances, keyed by relation path."""
        roots = as_instances(results)
        for path, fields in field_map.items():
            if not fields or WILDCARD in fields:
                continue
            for instance in self._walk(roots, path.split(".")):
                setattr(instance, VISIBLE_FIELDS_ATTR, list(fields))
        return results

    def set_visible_fields(self, results: Any, fields: Optional[Sequence[str]]) -> Any:
        if fields and WILDCARD not in fields:
            for instance in as_instances(results):
                setattr(instance, VISIBLE_FIELDS_ATTR, list(fields))
        return results

    def hide_fields(self, results: Any, fields: Sequence[str]) -> Any:
        """Hide fields that were only loaded for the query to work."""
        for instance in as_instances(results):
            hidden = list(getattr(instance, HIDDEN_FIELDS_ATTR, None) or [])
            hidden.extend(name for name in fields if name not in hidden)
            setattr(instance, HIDDEN_FIELDS_ATTR, hidden)
        return results

    def mark_annotations(self, results: Any, names: Sequence[str]) -> Any:
        if names:
            for instance in as_instances(results):
                setattr(instance, ANNOTATIONS_ATTR, list(names))
        return results

    def _walk(self, instances: List[models.Model], segments: List[str]) -> List[models.Model]:
        current = instances
        for segment in segments:
            found: List[models.Model] = []
            for instance in current:
                found.extend(_related_list(get_loaded_relation(instance, segment)))
            current = found
        return current


def get_appends(instance: models.Model) -> Dict[str, Any]:
    return dict(getattr(instance, APPENDS_ATTR, None) or {})


def is_field_visible(instance: models.Model, name: str, attname: Optional[str] = None) -> bool:
    names = {name, attname or name}
    hidden = getattr(instance, HIDDEN_FIELDS_ATTR, None) or ()
    if names.intersection(hidden):
        return False
    visible = getattr(instance, VISIBLE_FIELDS_ATTR, None)
    if visible is None:
        return True
    return bool(names.intersection(visible))


def serialize(instance: models.Model, _ancestors: tuple = ()) -> Dict[str, Any]:
    """
    Plain dict of the loaded, visible data of ``instance``.

    Deferred columns are left out, so serializing never triggers a query.
    Loaded relations are serialized recursively; back references to an
    instance being serialized are skipped.
    """
    data: Dict[str, Any] = {}
    deferred = instance.get_deferred_fields()
    for field in instance._meta.concrete_fields:
        if field.attname in deferred:
            continue
        key = field.attname if field.is_relation else field.name
        if not is_field_visible(instance, field.name, field.attname):
            continue
        data[key] = field.value_from_object(instance)

    for name in getattr(instance, ANNOTATIONS_ATTR, None) or ():
        if name in instance.__dict__:
            data[name] = instance.__dict__[name]

    data.update(get_appends(instance))

    ancestors = _ancestors + (id(instance),)
    for name, related in loaded_relations(instance).items():
        if isinstance(related, models.Model) and id(related) in ancestors:
            continue
        if related is None or isinstance(related, models.Model):
            data[name] = serialize(related, ancestors) if related is not None else None
        else:
            data[name] = [serialize(item, ancestors) for item in related if id(item) not in ancestors]
    return data


def is_relation_loaded(instance: models.Model, name: str) -> bool:
    return get_loaded_relation(instance, name) is not _MISSING
