"""Configuration models and loaders."""

from mpaka.config.loader import YamlConfigLoader
from mpaka.config.models import (
    AppConfig,
    CacheSettings,
    ConfigLoadRequest,
    FetchSettings,
    LoggingSettings,
    RenderSettings,
    ServerSettings,
)

__all__ = [
    "AppConfig",
    "CacheSettings",
    "ConfigLoadRequest",
    "FetchSettings",
    "LoggingSettings",
    "RenderSettings",
    "ServerSettings",
    "YamlConfigLoader",
]
