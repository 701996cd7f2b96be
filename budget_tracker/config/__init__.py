"""Configuration package."""

from budget_tracker.config.settings import (
    AppSettings,
    FirebaseSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "FirebaseSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
