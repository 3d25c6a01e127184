"""
DriverRegistry implementation.
"""

import logging
import threading
from typing import Any, Dict, List, Optional, Type, Union

from django.utils.module_loading import import_string

from ..exceptions import DriverNotFound, InvalidSubject
from .base import BaseDriver

logger = logging.getLogger(__name__)

DEFAULT_DRIVERS = {
    "django": "query_wizard.drivers.django.DjangoDriver",
}


class DriverRegistry:
    """
    Registry of drivers, resolved by name or by the subject they support.

    Built-in drivers and the ones declared in ``QUERY_WIZARD["drivers"]``
    are loaded on first use.
    """

    def __init__(self):
        self._drivers: Dict[str, BaseDriver] = {}
        self._lock = threading.Lock()
        self._initialized = False

    def _ensure_initialized(self) -> None:
        if self._initialized:
            return
        from ..conf import get_settings

        with self._lock:
            if self._initialized:
                return
            self._initialized = True
            declared = dict(DEFAULT_DRIVERS)
            declared.update(get_settings().drivers)
        for name, path in declared.items():
            if name in self._drivers:
                continue
            driver = import_string(path) if isinstance(path, str) else path
            self.register(driver, name=name)

    def register(
        self, driver: Union[BaseDriver, Type[BaseDriver]], name: Optional[str] = None
    ) -> BaseDriver:
        if isinstance(driver, type):
            driver = driver()
        if not isinstance(driver, BaseDriver):
            raise TypeError(f"{driver!r} is not a query wizard driver")
        name = name or driver.name
        with self._lock:
            self._drivers[name] = driver
        logger.info("Registered query wizard driver '%s'", name)
        return driver

    def unregister(self, name: str) -> None:
        with self._lock:
            self._drivers.pop(name, None)

    def has(self, name: str) -> bool:
        self._ensure_initialized()
        return name in self._drivers

    def get(self, name: str) -> BaseDriver:
        self._ensure_initialized()
        try:
            return self._drivers[name]
        except KeyError:
            raise DriverNotFound(name) from None

    def all(self) -> List[BaseDriver]:
        self._ensure_initialized()
        return list(self._drivers.values())

    def resolve(self, subject: Any) -> BaseDriver:
        """Return the first driver supporting ``subject``."""
        for driver in self.all():
            if driver.supports(subject):
                return driver
        raise InvalidSubject(subject)

    def clear_caches(self) -> None:
        for driver in list(self._drivers.values()):
            driver.clear_caches()

    def reset(self) -> None:
        """Forget every driver; defaults are reloaded on next use."""
        with self._lock:
            self._drivers.clear()
            self._initialized = False


driver_registry = DriverRegistry()
