"""Application configuration loader.

Loads centralized configuration from data/config/app_config_v1.yaml,
falling back to built-in defaults when the file is missing.

Usage:
    from spaced_recall.config.app_config import load_app_config, get_provider_config

    config = load_app_config()
    provider = get_provider_config("openai")
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog
import yaml

logger = structlog.get_logger(__name__)

# Config file path (relative to project root)
CONFIG_FILE = Path("data/config/app_config_v1.yaml")


@dataclass
class ProviderConfig:
    """Configuration for a single LLM provider."""

    base_url: str | None
    default_model: str
    api_key_env: str | None = None

    def get_api_key(self) -> str | None:
        """Get API key from environment variable."""
        if self.api_key_env:
            return os.environ.get(self.api_key_env)
        return None


@dataclass
class SchedulingConfig:
    """Spaced repetition and exam-mode settings."""

    target_retention: float = 0.9
    exam_prep_days: int = 30
    weak_area_threshold: int = 60


@dataclass
class IntegrationsConfig:
    """Credentials and locations for Notion, Obsidian and Google Calendar."""

    notion_token_env: str = "NOTION_TOKEN"
    google_calendar_token_env: str = "GOOGLE_CALENDAR_TOKEN"
    calendar_id: str = "primary"
    export_dir: str = "data/exports"

    def get_notion_token(self) -> str | None:
        return os.environ.get(self.notion_token_env)

    def get_calendar_token(self) -> str | None:
        return os.environ.get(self.google_calendar_token_env)


@dataclass
class AppConfig:
    """Application-wide configuration."""

    providers: dict[str, ProviderConfig] = field(default_factory=dict)
    default_provider: str = "openai"
    scheduling: SchedulingConfig = field(default_factory=SchedulingConfig)
    integrations: IntegrationsConfig = field(default_factory=IntegrationsConfig)
    paths: dict[str, str] = field(default_factory=dict)

    @property
    def db_path(self) -> Path:
        return Path(self.paths.get("db_path", "db/spaced_recall.db"))


# Module-level cache
_cached_config: AppConfig | None = None


def _get_defaults() -> dict[str, Any]:
    """Get default configuration values."""
    return {
        "providers": {
            "lmstudio": {
                "base_url": "http://localhost:1234/v1",
                "default_model": "llama-3.2-3b-instruct",
                "api_key_env": None,
            },
            "openai": {
                "base_url": None,
                "default_model": "gpt-4o-mini",
                "api_key_env": "OPENAI_API_KEY",
            },
            "anthropic": {
                "base_url": None,
                "default_model": "claude-sonnet-4-20250514",
                "api_key_env": "ANTHROPIC_API_KEY",
            },
        },
        "default_provider": "openai",
        "scheduling": {
            "target_retention": 0.9,
            "exam_prep_days": 30,
            "weak_area_threshold": 60,
        },
        "integrations": {
            "notion_token_env": "NOTION_TOKEN",
            "google_calendar_token_env": "GOOGLE_CALENDAR_TOKEN",
            "calendar_id": "primary",
            "export_dir": "data/exports",
        },
        "paths": {
            "db_path": "db/spaced_recall.db",
            "config_dir": "data/config",
        },
    }


def _parse_config(data: dict[str, Any]) -> AppConfig:
    """Parse configuration dictionary into AppConfig object."""
    defaults = _get_defaults()

    providers = {}
    for name, pconfig in data.get("providers", defaults["providers"]).items():
        providers[name] = ProviderConfig(
            base_url=pconfig.get("base_url"),
            default_model=pconfig.get("default_model", "default"),
            api_key_env=pconfig.get("api_key_env"),
        )

    sched_data = data.get("scheduling", {})
    scheduling = SchedulingConfig(
        target_retention=sched_data.get("target_retention", 0.9),
        exam_prep_days=sched_data.get("exam_prep_days", 30),
        weak_area_threshold=sched_data.get("weak_area_threshold", 60),
    )

    int_data = data.get("integrations", {})
    integrations = IntegrationsConfig(
        notion_token_env=int_data.get("notion_token_env", "NOTION_TOKEN"),
        google_calendar_token_env=int_data.get(
            "google_calendar_token_env", "GOOGLE_CALENDAR_TOKEN"
        ),
        calendar_id=int_data.get("calendar_id", "primary"),
        export_dir=int_data.get("export_dir", "data/exports"),
    )

    paths = {**defaults["paths"], **data.get("paths", {})}

    return AppConfig(
        providers=providers,
        default_provider=data.get("default_provider", "openai"),
        scheduling=scheduling,
        integrations=integrations,
        paths=paths,
    )


def load_app_config(force_reload: bool = False) -> AppConfig:
    """Load application config.

    Args:
        force_reload: If True, ignore cached config and reload from file.

    Returns:
        AppConfig object with all settings.
    """
    global _cached_config

    if _cached_config is not None and not force_reload:
        return _cached_config

    data: dict[str, Any]

    if CONFIG_FILE.exists():
        logger.debug("loading_app_config", source=str(CONFIG_FILE))
        data = yaml.safe_load(CONFIG_FILE.read_text(encoding="utf-8")) or {}
    else:
        logger.info("using_default_config")
        data = _get_defaults()

    _cached_config = _parse_config(data)
    return _cached_config


def get_provider_config(provider: str) -> ProviderConfig | None:
    """Get configuration for a specific provider.

    Args:
        provider: Provider name (e.g., "lmstudio", "openai")

    Returns:
        ProviderConfig or None if provider not found.
    """
    config = load_app_config()
    return config.providers.get(provider)


def clear_config_cache() -> None:
    """Clear the configuration cache.

    Useful for testing or when config is modified at runtime.
    """
    global _cached_config
    _cached_config = None
