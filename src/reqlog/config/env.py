# Assumptions:
# - Configuration management using environment variables
# - Pydantic Settings for validation
# - Default values for development environment

import logging

from pydantic import field_validator
from pydantic_settings import BaseSettings

_LEVEL_ALIASES = {"WARN": "WARNING", "FATAL": "CRITICAL"}


def parse_level(level: str | int) -> int:
    """Resolve a level name or number to a stdlib logging level"""
    if isinstance(level, int):
        return level

    name = level.strip().upper()
    name = _LEVEL_ALIASES.get(name, name)
    value = logging.getLevelName(name)
    if not isinstance(value, int):
        raise ValueError(f"Unknown log level: {level}")
    return value


class LoggingSettings(BaseSettings):
    """Request logging settings"""

    # Service
    service_name: str = "reqlog-service"
    log_level: str = "INFO"

    # Request identifier
    request_id_header: str = "X-Request-ID"
    echo_request_id: bool = True

    # Client IP resolution behind reverse proxies
    trust_forwarded_headers: bool = False

    class Config:
        env_file = ".env"
        case_sensitive = False

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        return logging.getLevelName(parse_level(value))


def get_settings() -> LoggingSettings:
    """Get logging settings from the environment"""
    return LoggingSettings()
