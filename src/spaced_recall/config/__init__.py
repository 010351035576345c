"""Configuration package for spaced recall."""

from spaced_recall.config.app_config import (
    AppConfig,
    IntegrationsConfig,
    ProviderConfig,
    SchedulingConfig,
    get_provider_config,
    load_app_config,
)
from spaced_recall.config.themes import (
    AvatarLevel,
    Theme,
    get_default_theme,
    get_theme,
    list_themes,
    load_themes,
)

__all__ = [
    "AppConfig",
    "IntegrationsConfig",
    "ProviderConfig",
    "SchedulingConfig",
    "get_provider_config",
    "load_app_config",
    "AvatarLevel",
    "Theme",
    "get_default_theme",
    "get_theme",
    "list_themes",
    "load_themes",
]
