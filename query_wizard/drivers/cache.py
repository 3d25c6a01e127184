"""
Explicitly clearable metadata caches used by driver strategies.
"""

import inspect
import logging
import threading
import typing
from typing import Any, Callable, Dict, Hashable, List, Optional, Tuple

logger = logging.getLogger(__name__)


class MetadataCache:
    """
    A keyed cache with an explicit ``clear()``.

    Entries are computed on first access. Hosts call ``clear()`` between
    requests (``query_wizard.clear_caches``) in long-running workers.
    """

    def __init__(self, name: str):
        self.name = name
        self._entries: Dict[Hashable, Any] = {}
        self._lock = threading.Lock()

    def get_or_set(self, key: Hashable, factory: Callable[[], Any]) -> Any:
        with self._lock:
            if key in self._entries:
                return self._entries[key]
        value = factory()
        with self._lock:
            self._entries.setdefault(key, value)
            return self._entries[key]

    def __contains__(self, key: Hashable) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        with self._lock:
            size = len(self._entries)
            self._entries.clear()
        if size:
            logger.debug("Cleared %s entries from %s cache", size, self.name)


ScopeParameter = Tuple[str, Optional[type]]


class ScopeSignatureCache(MetadataCache):
    """Parameters of scope methods, keyed by ``(queryset class, method name)``."""

    def __init__(self):
        super().__init__("scope signature")

    def parameters(self, queryset_class: type, method_name: str) -> List[ScopeParameter]:
        return self.get_or_set(
            (queryset_class, method_name),
            lambda: _inspect_parameters(getattr(queryset_class, method_name)),
        )


def _inspect_parameters(method: Callable) -> List[ScopeParameter]:
    from django.db import models

    try:
        hints = typing.get_type_hints(method)
    except (NameError, TypeError):
        hints = {}
    result: List[ScopeParameter] = []
    for index, parameter in enumerate(inspect.signature(method).parameters.values()):
        if index == 0 and parameter.name == "self":
            continue
        if parameter.kind in (parameter.VAR_POSITIONAL, parameter.VAR_KEYWORD):
            continue
        annotation = hints.get(parameter.name, parameter.annotation)
        model = None
        if isinstance(annotation, type) and issubclass(annotation, models.Model):
            model = annotation
        result.append((parameter.name, model))
    return result
