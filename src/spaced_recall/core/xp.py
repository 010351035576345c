"""XP, levels, theme loyalty and rewards.

Session XP:
    base_xp * difficulty * (minutes / 30) ** 1.1 * (1 + log10(level + 1) * 0.2)

Levels come from 20 fixed thresholds; XP is divided by the theme's
multiplier before the lookup, so richer themes level up more slowly.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, replace
from datetime import datetime

import structlog

from spaced_recall.config.themes import AvatarLevel, Theme, get_default_theme, get_theme
from spaced_recall.db import users_repository, xp_repository
from spaced_recall.errors import NotFoundError
from spaced_recall.utils.dates import parse_iso, utc_now

logger = structlog.get_logger(__name__)

# =============================================================================
# Tables
# =============================================================================

ACTIVITY_TYPES: dict[str, dict] = {
    "backtesting": {"name": "Backtesting", "base_xp": 150},
    "paperTrading": {"name": "Paper Trading", "base_xp": 120},
    "technicalAnalysis": {"name": "Technical Analysis", "base_xp": 135},
    "fundamentalAnalysis": {"name": "Fundamental Analysis", "base_xp": 135},
    "riskManagement": {"name": "Risk Management", "base_xp": 105},
    "tradingPsychology": {"name": "Trading Psychology", "base_xp": 90},
    "marketAnalysis": {"name": "Market Analysis", "base_xp": 120},
    "strategyDevelopment": {"name": "Strategy Development", "base_xp": 150},
    "tradeJournaling": {"name": "Trade Journaling", "base_xp": 75},
    "study": {"name": "Study Session", "base_xp": 100},
    "review": {"name": "Review Session", "base_xp": 85},
    "practice": {"name": "Practice Session", "base_xp": 115},
    "habit": {"name": "Habit Completion", "base_xp": 50},
    "todo": {"name": "Todo Completion", "base_xp": 75},
    "project": {"name": "Project Progress", "base_xp": 120},
    "milestone": {"name": "Project Milestone", "base_xp": 200},
}

DIFFICULTY_MULTIPLIERS = {"easy": 0.8, "medium": 1.2, "hard": 1.6, "expert": 2.0}

LEVEL_THRESHOLDS = [
    0,
    1000,
    2500,
    5000,
    10000,
    15000,
    25000,
    40000,
    60000,
    85000,
    115000,
    150000,
    200000,
    275000,
    350000,
    450000,
    600000,
    800000,
    1000000,
    1500000,
]

# XP for creating study content
CONTENT_XP = {
    "subject": 0,
    "topic": 25,
    "concept": 15,
    "quiz": 30,
}

# Base XP and bonuses for project work items
WORK_ITEM_XP_RULES: dict[str, dict] = {
    "task": {
        "base": 150,
        "priority": {"low": 25, "medium": 50, "high": 100},
    },
    "implementation": {
        "base": 300,
        "impact": {"minor": 50, "moderate": 100, "major": 200},
        "with_technical_details": 50,
    },
    "improvement": {
        "base": 225,
        "impact": {"minor": 25, "moderate": 75, "major": 150},
        "with_technical_details": 50,
    },
    "tool": {
        "base": 300,
        "impact": {"minor": 50, "moderate": 100, "major": 200},
        "with_technical_details": 50,
    },
}

_QUICK_XP_BASE = {"study": 20, "quiz": 30, "practice": 25, "review": 15}
_MASTERY_FACTORS = {
    "beginner": 1.0,
    "intermediate": 0.9,
    "advanced": 0.8,
    "master": 0.7,
}


@dataclass(frozen=True)
class Reward:
    id: str
    name: str
    description: str
    cost: int
    type: str
    value: int | None = None


AVAILABLE_REWARDS = [
    Reward("theme_discount", "Theme Discount", "50% off your next theme purchase", 500, "theme"),
    Reward("xp_boost", "XP Boost", "2x XP for your next 5 study sessions", 300, "points"),
    Reward(
        "gift_card_5",
        "$5 Gift Card",
        "$5 gift card for the app store of your choice",
        1000,
        "giftCard",
        5,
    ),
    Reward(
        "gift_card_10",
        "$10 Gift Card",
        "$10 gift card for the app store of your choice",
        2000,
        "giftCard",
        10,
    ),
]


# =============================================================================
# Session XP
# =============================================================================


@dataclass
class SessionXP:
    xp: int
    mastery_gained: int


def calculate_session_xp(
    activity_type: str,
    difficulty: str,
    duration: float,
    current_level: int = 1,
) -> SessionXP:
    """XP and mastery gained for a timed activity.

    Args:
        activity_type: Key of ACTIVITY_TYPES
        difficulty: easy, medium, hard or expert
        duration: Minutes spent (floored to 1)
        current_level: User or item level, floored to 1

    Returns:
        SessionXP; (0, 0) for an unknown activity type or difficulty
    """
    activity = ACTIVITY_TYPES.get(activity_type)
    if activity is None:
        logger.warning("xp.invalid_activity_type", activity_type=activity_type)
        return SessionXP(0, 0)

    multiplier = DIFFICULTY_MULTIPLIERS.get(difficulty)
    if multiplier is None:
        logger.warning("xp.invalid_difficulty", difficulty=difficulty)
        return SessionXP(0, 0)

    minutes = max(1.0, float(duration or 0))
    level = max(1, int(current_level or 1))

    duration_factor = (minutes / 30) ** 1.1
    level_factor = 1 + math.log10(level + 1) * 0.2

    xp = round(activity["base_xp"] * multiplier * duration_factor * level_factor)
    mastery = min(25, round(multiplier * math.sqrt(minutes / 30) * 5))

    return SessionXP(xp=xp, mastery_gained=mastery)


def calculate_xp(
    type: str,
    duration: float,
    difficulty: float,
    performance: float = 100,
    mastery_level: str = "beginner",
) -> int:
    """XP for quizzes and short study/practice/review activities.

    Args:
        type: study, quiz, practice or review
        duration: Minutes
        difficulty: 1..10
        performance: Score percentage 0..100
        mastery_level: beginner, intermediate, advanced or master
    """
    base = _QUICK_XP_BASE.get(type, 0)
    difficulty_factor = 0.8 + difficulty / 10
    duration_factor = math.sqrt(max(0.0, duration) / 15)
    performance_factor = 0.5 + performance / 200
    mastery_factor = _MASTERY_FACTORS.get(mastery_level, 1.0)

    return round(
        base * difficulty_factor * duration_factor * performance_factor * mastery_factor
    )


def level_for_item_xp(xp: int) -> int:
    """Level used when scoring activities on a single habit/todo/project."""
    return xp // 1000 + 1


# =============================================================================
# Levels and avatars
# =============================================================================


@dataclass
class LevelProgress:
    current_xp: int
    needed_xp: int
    percent: int


def _multiplier(theme: Theme | None) -> float:
    return theme.xp_multiplier if theme and theme.xp_multiplier else 1.0


def get_level_from_xp(xp: float, theme: Theme | None = None) -> int:
    """Level 1..20 for a total XP amount."""
    adjusted = xp / _multiplier(theme)
    for index, threshold in enumerate(LEVEL_THRESHOLDS):
        if adjusted < threshold:
            return index
    return len(LEVEL_THRESHOLDS)


def get_progress_to_next_level(xp: float, theme: Theme | None = None) -> LevelProgress:
    """XP earned within the current level and XP the level spans.

    At the top level the span is 0 and percent is 100.
    """
    adjusted = xp / _multiplier(theme)
    level = get_level_from_xp(xp, theme)

    current_threshold = LEVEL_THRESHOLDS[level - 1] if level >= 1 else 0
    if level < len(LEVEL_THRESHOLDS):
        next_threshold = LEVEL_THRESHOLDS[level]
    else:
        next_threshold = LEVEL_THRESHOLDS[-1]

    current = adjusted - current_threshold
    needed = next_threshold - current_threshold
    percent = 100 if needed <= 0 else min(100, round(current / needed * 100))

    return LevelProgress(current_xp=round(current), needed_xp=round(needed), percent=percent)


def get_avatar_for_level(theme: Theme, level: int) -> AvatarLevel | None:
    """Highest avatar unlocked at `level`; the first avatar below that."""
    if not theme.avatar_levels:
        return None

    best = theme.avatar_levels[0]
    for avatar in theme.avatar_levels:
        if level >= avatar.level and avatar.level > best.level:
            best = avatar
    return best


# =============================================================================
# Theme loyalty
# =============================================================================


@dataclass
class ThemeLoyalty:
    theme_id: str
    started_at: datetime
    total_days: int
    streak_days: int
    last_active: datetime
    loyalty_points: int = 0
    stars: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


def loyalty_from_user(user, now: datetime) -> ThemeLoyalty:
    """Theme loyalty state stored on a user record."""
    return ThemeLoyalty(
        theme_id=user.theme_id,
        started_at=parse_iso(user.theme_started_at) or now,
        total_days=user.theme_total_days,
        streak_days=user.theme_streak_days,
        last_active=parse_iso(user.theme_last_active) or now,
        loyalty_points=user.loyalty_points,
        stars=user.stars,
    )


def calculate_loyalty_points(xp: int, loyalty: ThemeLoyalty) -> int:
    """Loyalty points earned alongside an XP award."""
    points = xp * 0.1

    if loyalty.streak_days >= 7:
        points *= 1.5
    elif loyalty.streak_days >= 3:
        points *= 1.2

    if loyalty.total_days >= 30:
        points *= 1.3

    return round(points)


def calculate_stars(loyalty: ThemeLoyalty) -> int:
    stars = 0

    if loyalty.total_days >= 90:
        stars += 2
    elif loyalty.total_days >= 30:
        stars += 1

    if loyalty.streak_days >= 30:
        stars += 3
    elif loyalty.streak_days >= 14:
        stars += 2
    elif loyalty.streak_days >= 7:
        stars += 1

    if loyalty.loyalty_points >= 10000:
        stars += 3
    elif loyalty.loyalty_points >= 5000:
        stars += 2
    elif loyalty.loyalty_points >= 1000:
        stars += 1

    return stars


def update_loyalty_status(
    loyalty: ThemeLoyalty, now: datetime, new_theme: str | None = None
) -> ThemeLoyalty:
    """Advance loyalty for activity at `now`, or reset it on a theme switch."""
    if new_theme and new_theme != loyalty.theme_id:
        return ThemeLoyalty(
            theme_id=new_theme,
            started_at=now,
            total_days=1,
            streak_days=1,
            last_active=now,
        )

    days_since_active = int((now - loyalty.last_active).total_seconds() // 86400)
    if days_since_active <= 0:
        streak_days = loyalty.streak_days
    elif days_since_active == 1:
        streak_days = loyalty.streak_days + 1
    else:
        streak_days = 1

    updated = replace(
        loyalty,
        total_days=loyalty.total_days + (1 if days_since_active > 0 else 0),
        streak_days=streak_days,
        last_active=now,
    )
    updated.stars = calculate_stars(updated)
    return updated


def get_reward(reward_id: str) -> Reward | None:
    for reward in AVAILABLE_REWARDS:
        if reward.id == reward_id:
            return reward
    return None


@dataclass
class RedeemResult:
    success: bool
    loyalty: ThemeLoyalty
    message: str


def redeem_reward(loyalty: ThemeLoyalty, reward: Reward) -> RedeemResult:
    """Spend loyalty points on a reward; unchanged on insufficient points."""
    if loyalty.loyalty_points < reward.cost:
        return RedeemResult(False, loyalty, "Insufficient loyalty points")

    updated = replace(loyalty, loyalty_points=loyalty.loyalty_points - reward.cost)
    return RedeemResult(True, updated, f"Successfully redeemed {reward.name}")


# =============================================================================
# Project work items
# =============================================================================


def calculate_potential_xp(
    type: str,
    priority: str | None = None,
    impact: str | None = None,
    technical_details: str = "",
) -> int:
    """XP a work item will award once completed.

    Raises:
        ValueError: If type is not a known work item type
    """
    rules = WORK_ITEM_XP_RULES.get(type)
    if rules is None:
        raise ValueError(f"Unknown work item type: {type}")

    total = rules["base"]
    if type == "task":
        if priority:
            total += rules["priority"].get(priority, 0)
    elif impact:
        total += rules["impact"].get(impact, 0)
        if technical_details and technical_details.strip():
            total += rules["with_technical_details"]

    return total


def calculate_completion_xp(type: str) -> int:
    """Completion award for a work item type (its base XP)."""
    return WORK_ITEM_XP_RULES[type]["base"]


# =============================================================================
# User XP summary (from the ledger)
# =============================================================================


def resolve_theme(theme_id: str | None) -> Theme:
    return (get_theme(theme_id) if theme_id else None) or get_default_theme()


def calculate_user_xp(user_id: str) -> dict:
    """XP summary for a user, derived from the XP ledger.

    Returns:
        Dict with total_xp, breakdown (per source), recent_activities
        (5 newest events), level, progress and avatar

    Raises:
        NotFoundError: If the user does not exist
    """
    user = users_repository.get_user(user_id)
    if user is None:
        raise NotFoundError("User", user_id)

    breakdown = xp_repository.sum_xp_by_source(user_id)
    total = sum(breakdown.values())
    recent = xp_repository.list_xp_events(user_id, limit=5)

    theme = resolve_theme(user.theme_id)
    level = get_level_from_xp(total, theme)
    avatar = get_avatar_for_level(theme, level)

    return {
        "user_id": user_id,
        "total_xp": total,
        "breakdown": breakdown,
        "recent_activities": [e.to_dict() for e in recent],
        "level": level,
        "progress": asdict(get_progress_to_next_level(total, theme)),
        "theme": theme.id,
        "avatar": asdict(avatar) if avatar else None,
    }


def award_xp(
    user_id: str,
    source: str,
    xp: int,
    source_id: str | None = None,
    description: str = "",
    tokens: int = 0,
    now: datetime | None = None,
) -> int:
    """Record an XP award in the ledger and credit the user.

    Loyalty points for the active theme are credited alongside the XP.

    Returns:
        XP awarded (0 when nothing was awarded)

    Raises:
        NotFoundError: If the user does not exist
    """
    if xp <= 0 and tokens <= 0:
        return 0

    user = users_repository.get_user(user_id)
    if user is None:
        raise NotFoundError("User", user_id)

    now = now or utc_now()
    xp = max(0, xp)
    if xp:
        xp_repository.record_xp_event(
            user_id, source, xp, source_id=source_id, description=description, created_at=now
        )

    points = calculate_loyalty_points(xp, loyalty_from_user(user, now))
    users_repository.update_user_stats(
        user_id,
        total_xp=user.total_xp + xp,
        tokens=user.tokens + tokens,
        loyalty_points=user.loyalty_points + points,
    )

    logger.info("xp.awarded", user_id=user_id, source=source, xp=xp, tokens=tokens)
    return xp
