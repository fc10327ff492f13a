"""Configuration management for FloHub."""

from .settings import FloHubSettings, get_settings

__all__ = ["FloHubSettings", "get_settings"]
