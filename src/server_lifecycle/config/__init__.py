"""Configuration package for the server lifecycle controller."""

from .exceptions import ConfigurationError
from .logging import configure_logging
from .settings import LifecycleSettings, LoggingConfig, Settings

__all__ = [
    "ConfigurationError",
    "LifecycleSettings",
    "LoggingConfig",
    "Settings",
    "configure_logging",
]
