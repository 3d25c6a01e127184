from .settings import QueryLimits, QueryWizardSettings, clear_settings_cache, get_settings

__all__ = [
    "QueryLimits",
    "QueryWizardSettings",
    "clear_settings_cache",
    "get_settings",
]
