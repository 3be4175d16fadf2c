"""
Settings loading.

Settings are a JSON document validated against ConversionSettings.
The path may come from the caller or from the ARCHCONV_SETTINGS
environment variable.
"""

import json
import logging
import os
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from .errors import InvalidSettingsError, SettingsFileNotFoundError
from .models import ConversionSettings

logger = logging.getLogger(__name__)

ENV_SETTINGS_PATH = "ARCHCONV_SETTINGS"
DEFAULT_SETTINGS_FILE = "archconv_settings.json"


def resolve_settings_path(path: Optional[str] = None) -> Path:
    """Explicit path, then environment, then the default file name."""
    if path:
        return Path(path)
    override = os.environ.get(ENV_SETTINGS_PATH)
    if override:
        return Path(override)
    return Path(DEFAULT_SETTINGS_FILE)


def load_settings(path: Optional[str] = None) -> ConversionSettings:
    """
    Load and validate settings.

    Raises:
        SettingsFileNotFoundError: If the file does not exist
        InvalidSettingsError: If the JSON is malformed or fails validation
    """
    settings_path = resolve_settings_path(path)
    if not settings_path.is_file():
        raise SettingsFileNotFoundError(str(settings_path))

    try:
        with open(settings_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise InvalidSettingsError(str(settings_path), f"invalid JSON: {e}")

    try:
        settings = ConversionSettings.model_validate(data)
    except ValidationError as e:
        raise InvalidSettingsError(str(settings_path), str(e))

    logger.info(
        f"[Settings] Loaded {settings_path}: "
        f"{len(settings.format_targets())} format targets, "
        f"{len(settings.folder_overrides)} folder overrides"
    )
    return settings


def save_settings(settings: ConversionSettings, path: str) -> Path:
    """Write settings as indented JSON."""
    settings_path = Path(path)
    settings_path.write_text(settings.model_dump_json(indent=2), encoding="utf-8")
    return settings_path
