"""Configuration helpers for the Azure Backup client."""

from .settings import (
    DEFAULT_STORAGE_API_VERSION,
    DEFAULT_STORAGE_SCOPE,
    Settings,
    SettingsManager,
)

__all__ = [
    "DEFAULT_STORAGE_API_VERSION",
    "DEFAULT_STORAGE_SCOPE",
    "Settings",
    "SettingsManager",
]
