from typing import Union

from .base import BaseDefinition
from .filters import FilterDefinition
from .includes import IncludeDefinition
from .sorts import SortDefinition

FilterInput = Union[str, FilterDefinition]
SortInput = Union[str, SortDefinition]
IncludeInput = Union[str, IncludeDefinition]

__all__ = [
    "BaseDefinition",
    "FilterDefinition",
    "FilterInput",
    "IncludeDefinition",
    "IncludeInput",
    "SortDefinition",
    "SortInput",
]
