"""Theme configuration loader.

Loads progression themes from data/config/themes_v1.yaml. A theme sets the
XP multiplier used for level calculation and the avatar earned at each level.

Usage:
    from spaced_recall.config.themes import get_theme, list_themes

    theme = get_theme("fantasy")
    all_themes = list_themes()
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import structlog
import yaml

logger = structlog.get_logger(__name__)

# Config file path (relative to project root)
THEMES_FILE = Path("data/config/themes_v1.yaml")


@dataclass
class AvatarLevel:
    """Avatar unlocked once the user reaches `level`."""

    level: int
    name: str
    description: str = ""
    image: str = ""


@dataclass
class Theme:
    """A progression theme."""

    id: str
    name: str
    description: str
    xp_multiplier: float = 1.0
    avatar_levels: list[AvatarLevel] = field(default_factory=list)
    default: bool = False


# Module-level cache
_cached_themes: dict[str, Theme] | None = None


def _avatars(theme_id: str, levels: list[tuple[int, str, str]]) -> list[AvatarLevel]:
    return [
        AvatarLevel(
            level=level,
            name=name,
            description=description,
            image=f"/avatars/{theme_id}/{name.lower().replace(' ', '-')}.png",
        )
        for level, name, description in levels
    ]


def _get_default_themes() -> dict[str, Theme]:
    """Get default themes when config file is missing."""
    return {
        "neutral": Theme(
            id="neutral",
            name="Neutral",
            description="A clean, professional theme focused on learning progression",
            xp_multiplier=1.0,
            avatar_levels=_avatars(
                "neutral",
                [
                    (1, "Newbie", "Just starting your learning journey"),
                    (5, "Learner", "Making steady progress"),
                    (10, "Mentor", "Sharing knowledge with others"),
                    (15, "Master", "Deep understanding of subjects"),
                    (20, "Grandmaster", "Expert in multiple fields"),
                ],
            ),
            default=True,
        ),
        "fantasy": Theme(
            id="fantasy",
            name="Fantasy",
            description="Magical journey through learning realms",
            xp_multiplier=1.1,
            avatar_levels=_avatars(
                "fantasy",
                [
                    (1, "Apprentice", "Beginning your magical studies"),
                    (5, "Mage", "Mastering basic spells"),
                    (10, "Archmage", "Commanding powerful magic"),
                    (15, "Wizard", "Creating new spells"),
                    (20, "Sorcerer Supreme", "Master of all magical arts"),
                ],
            ),
        ),
        "scifi": Theme(
            id="scifi",
            name="Sci-Fi",
            description="Space exploration and technological advancement",
            xp_multiplier=1.2,
            avatar_levels=_avatars(
                "scifi",
                [
                    (1, "Cadet", "Starting space academy"),
                    (5, "Officer", "Commanding small vessels"),
                    (10, "Captain", "Leading space missions"),
                    (15, "Admiral", "Fleet commander"),
                    (20, "Fleet Admiral", "Supreme commander of all fleets"),
                ],
            ),
        ),
    }


def _parse_avatar_levels(data: list[dict] | None) -> list[AvatarLevel]:
    """Parse avatar_levels from YAML data."""
    if not data:
        return []
    return [
        AvatarLevel(
            level=int(item.get("level", 1)),
            name=item.get("name", ""),
            description=item.get("description", ""),
            image=item.get("image", ""),
        )
        for item in data
    ]


def load_themes(force_reload: bool = False) -> dict[str, Theme]:
    """Load all themes from config file.

    Args:
        force_reload: If True, ignore cache and reload from file.

    Returns:
        Dictionary mapping theme ID to Theme object.
    """
    global _cached_themes

    if _cached_themes is not None and not force_reload:
        return _cached_themes

    if not THEMES_FILE.exists():
        logger.debug("themes_file_not_found", path=str(THEMES_FILE))
        _cached_themes = _get_default_themes()
        return _cached_themes

    try:
        data = yaml.safe_load(THEMES_FILE.read_text(encoding="utf-8")) or {}
        themes_data = data.get("themes", {})

        _cached_themes = {}
        for tid, tdata in themes_data.items():
            _cached_themes[tid] = Theme(
                id=tdata.get("id", tid),
                name=tdata.get("name", tid),
                description=tdata.get("description", ""),
                xp_multiplier=float(tdata.get("xp_multiplier", 1.0)),
                avatar_levels=_parse_avatar_levels(tdata.get("avatar_levels")),
                default=tdata.get("default", False),
            )

        if not _cached_themes:
            _cached_themes = _get_default_themes()

        logger.debug("loaded_themes", count=len(_cached_themes))
        return _cached_themes

    except (yaml.YAMLError, AttributeError, TypeError, ValueError) as e:
        logger.error("failed_to_load_themes", error=str(e))
        _cached_themes = _get_default_themes()
        return _cached_themes


def get_theme(theme_id: str) -> Theme | None:
    """Get a specific theme by ID.

    Args:
        theme_id: The theme identifier (e.g., "fantasy")

    Returns:
        Theme object or None if not found.
    """
    return load_themes().get(theme_id)


def get_default_theme() -> Theme:
    """Get the default theme.

    Returns:
        The theme marked as default, or the first available theme.
    """
    themes = load_themes()

    for theme in themes.values():
        if theme.default:
            return theme

    if themes:
        return list(themes.values())[0]

    return _get_default_themes()["neutral"]


def list_themes() -> list[Theme]:
    """List all available themes."""
    return list(load_themes().values())


def clear_themes_cache() -> None:
    """Clear the themes cache.

    Useful for testing or when themes are modified at runtime.
    """
    global _cached_themes
    _cached_themes = None
