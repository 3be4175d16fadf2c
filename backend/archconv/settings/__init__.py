"""
Conversion settings: models, loading and validation.
"""

from .errors import InvalidSettingsError, SettingsError, SettingsFileNotFoundError
from .loader import ENV_SETTINGS_PATH, load_settings, resolve_settings_path, save_settings
from .models import (
    ConversionSettings,
    FileClass,
    FileTypeSetting,
    FolderOverride,
    default_max_threads,
)

__all__ = [
    "ConversionSettings",
    "FileClass",
    "FileTypeSetting",
    "FolderOverride",
    "default_max_threads",
    "ENV_SETTINGS_PATH",
    "load_settings",
    "resolve_settings_path",
    "save_settings",
    "SettingsError",
    "SettingsFileNotFoundError",
    "InvalidSettingsError",
]
