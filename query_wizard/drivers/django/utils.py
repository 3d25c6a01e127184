"""
Model introspection helpers for the Django driver.
"""

from typing import List, Optional, Tuple, Type

from django.core.exceptions import FieldDoesNotExist
from django.db import models


def to_lookup(path: str) -> str:
    """``author.profile.name`` -> ``author__profile__name``."""
    return path.replace(".", "__")


def to_alias(path: str) -> str:
    """Annotation name for a relation path (``posts.comments`` -> ``posts_comments``)."""
    return path.replace(".", "_")


def get_relation_field(model: Type[models.Model], name: str):
    """Find a forward or reverse relation field by name or accessor name."""
    try:
        field = model._meta.get_field(name)
    except FieldDoesNotExist:
        field = None
        for rel in model._meta.related_objects:
            if rel.get_accessor_name() == name:
                field = rel
                break
    if field is None or not getattr(field, "is_relation", False):
        return None
    return field


def walk_relations(model: Type[models.Model], path: str) -> List[Tuple[str, object]]:
    """
    Resolve each segment of a dotted path to its relation field.

    Stops at the first segment that is not a relation (the column part).
    """
    result = []
    current = model
    for segment in path.split("."):
        field = get_relation_field(current, segment)
        if field is None:
            break
        result.append((segment, field))
        current = field.related_model
        if current is None:
            break
    return result


def is_to_many(field) -> bool:
    return bool(getattr(field, "many_to_many", False) or getattr(field, "one_to_many", False))


def crosses_to_many(model: Type[models.Model], path: str) -> bool:
    """Whether filtering along ``path`` can duplicate root rows."""
    return any(is_to_many(field) for _, field in walk_relations(model, path))


def is_relation_path(model: Type[models.Model], path: str) -> bool:
    return len(walk_relations(model, path)) == len(path.split("."))


def is_forward_single_path(model: Type[models.Model], path: str) -> bool:
    """Whether every segment is a forward FK / one-to-one (``select_related`` safe)."""
    relations = walk_relations(model, path)
    if len(relations) != len(path.split(".")):
        return False
    return all(
        getattr(field, "concrete", False)
        and (getattr(field, "many_to_one", False) or getattr(field, "one_to_one", False))
        for _, field in relations
    )


def related_model(model: Type[models.Model], path: str) -> Optional[Type[models.Model]]:
    relations = walk_relations(model, path)
    if len(relations) != len(path.split(".")):
        return None
    return relations[-1][1].related_model


def split_relation_path(path: str) -> Tuple[str, str]:
    """``author.profile.name`` -> (``author.profile``, ``name``)."""
    relation, _, column = path.rpartition(".")
    return relation, column


def camel_case(name: str) -> str:
    return name[:1].lower() + name[1:]


def is_concrete_field(model: Type[models.Model], name: str) -> bool:
    try:
        field = model._meta.get_field(name)
    except FieldDoesNotExist:
        return False
    return getattr(field, "concrete", False)
