"""Configuration management utilities."""

from .env import LoggingSettings, get_settings

__all__ = [
    "LoggingSettings",
    "get_settings",
]
