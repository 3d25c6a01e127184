from .base import BaseDriver, FilterStrategy, IncludeStrategy, SortStrategy
from .cache import MetadataCache, ScopeSignatureCache
from .registry import DriverRegistry, driver_registry

__all__ = [
    "BaseDriver",
    "DriverRegistry",
    "FilterStrategy",
    "IncludeStrategy",
    "MetadataCache",
    "ScopeSignatureCache",
    "SortStrategy",
    "driver_registry",
]
