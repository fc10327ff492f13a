"""Per-user settings storage for FloHub."""

from .exceptions import SettingsError, SettingsPersistenceError
from .models import SCHEMA_VERSION, SettingsMetadata, UserSettings
from .persistence import UserSettingsStore

__all__ = [
    "SCHEMA_VERSION",
    "SettingsError",
    "SettingsMetadata",
    "SettingsPersistenceError",
    "UserSettings",
    "UserSettingsStore",
]
