"""Configuration package."""

from homeledger.config.settings import (
    AppSettings,
    FirestoreSettings,
    LocalMirrorSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "FirestoreSettings",
    "LocalMirrorSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
