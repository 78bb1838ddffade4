"""Configuration modules for sketchbuild."""

from .directories import DEFAULT_INDEX_URL, LIBRARY_INDEX_URL, DataDirectory
from .properties import PropertiesError, PropertiesMap
from .settings import Settings, SettingsError

__all__ = [
    "DataDirectory",
    "DEFAULT_INDEX_URL",
    "LIBRARY_INDEX_URL",
    "PropertiesMap",
    "PropertiesError",
    "Settings",
    "SettingsError",
]
