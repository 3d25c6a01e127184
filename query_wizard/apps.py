"""
Django app configuration for the query wizard.
"""

import logging

from django.apps import AppConfig as BaseAppConfig

logger = logging.getLogger(__name__)


class AppConfig(BaseAppConfig):
    """Connects settings reload and per-request cache clearing."""

    name = "query_wizard"
    verbose_name = "Query Wizard"
    label = "query_wizard"

    def ready(self):
        from django.core.signals import request_finished

        from .conf.settings import connect_setting_signals

        connect_setting_signals()
        request_finished.connect(
            _clear_caches_receiver, dispatch_uid="query_wizard.clear_caches"
        )
        logger.debug("Query wizard initialized")


def _clear_caches_receiver(sender, **kwargs):
    from . import clear_caches

    clear_caches()
