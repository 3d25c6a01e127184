"""
Effective-set resolution.

An effective set is the allow-list a build validates against: the caller's
explicit list (or the schema's, or a default), with a schema context
override applied, disallowed names removed and definitions indexed by name.
"""

from __future__ import annotations

from typing import Callable, Dict, Iterable, List, Optional, Sequence, TypeVar

from .definitions import BaseDefinition, IncludeDefinition
from .normalizer import DefinitionNormalizer

D = TypeVar("D", bound=BaseDefinition)

WILDCARD = "*"


def is_name_disallowed(name: str, disallowed: Iterable[str]) -> bool:
    """
    Match ``name`` against a disallow list.

    ``*`` blocks everything, ``posts`` blocks ``posts`` and every descendant
    path, ``posts.*`` blocks only direct children of ``posts``.
    """
    for pattern in disallowed:
        if pattern == WILDCARD:
            return True
        if name == pattern or name.startswith(pattern + "."):
            return True
        if pattern.endswith(".*"):
            parent = pattern[:-2]
            if name.startswith(parent + "."):
                remainder = name[len(parent) + 1:]
                if "." not in remainder:
                    return True
    return False


def select_source(
    explicit: Optional[Sequence],
    schema: Optional[Sequence],
    context: Optional[Sequence] = None,
    default: Sequence = (),
) -> Optional[List]:
    """
    Pick the allow-list source.

    Returns ``None`` when nothing declared a list for the capability, so the
    caller can tell "unconfigured" from "configured as empty".
    """
    if context is not None:
        return list(context)
    if explicit is not None:
        return list(explicit)
    if schema is not None:
        return list(schema)
    if default:
        return list(default)
    return None


def resolve_definitions(
    items: Iterable,
    normalize: Callable[[object], D],
    disallowed: Sequence[str] = (),
) -> Dict[str, D]:
    """Normalize ``items``, drop disallowed names and index by name."""
    result: Dict[str, D] = {}
    for item in items:
        if item is None or item == "":
            continue
        definition = normalize(item)
        if disallowed and is_name_disallowed(definition.name, disallowed):
            continue
        result[definition.name] = definition
    return result


def resolve_includes(
    items: Iterable,
    normalizer: DefinitionNormalizer,
    disallowed: Sequence[str] = (),
) -> Dict[str, IncludeDefinition]:
    """
    Resolve includes and synthesize the derived ones.

    Every relationship include implies a count include (``postsCount``) and
    an exists include (``postsExists``) unless that name is already taken.
    """
    result = resolve_definitions(items, normalizer.normalize_include, disallowed)
    for definition in list(result.values()):
        for derived in normalizer.derived_includes(definition):
            if derived.name in result:
                continue
            if disallowed and is_name_disallowed(derived.name, disallowed):
                continue
            result[derived.name] = derived
    return result


def resolve_names(items: Iterable[str], disallowed: Sequence[str] = ()) -> List[str]:
    """Resolve a plain name list (fields, appends), keeping first-seen order."""
    result: List[str] = []
    for item in items:
        if not isinstance(item, str) or not item.strip():
            continue
        name = item.strip()
        if disallowed and is_name_disallowed(name, disallowed):
            continue
        if name not in result:
            result.append(name)
    return result


def flatten(items) -> List:
    """Flatten one level of lists so that ``f("a", ["b", "c"])`` works."""
    result = []
    for item in items:
        if isinstance(item, (list, tuple, set)):
            result.extend(i for i in item if i is not None and i != "")
        elif item is not None and item != "":
            result.append(item)
    return result
