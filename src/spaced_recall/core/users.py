"""User accounts, themes and reward redemption."""

from __future__ import annotations

from datetime import datetime

import structlog

from spaced_recall.config.themes import get_theme
from spaced_recall.core.xp import (
    RedeemResult,
    get_reward,
    loyalty_from_user,
    redeem_reward,
    update_loyalty_status,
)
from spaced_recall.db import users_repository
from spaced_recall.db.users_repository import UserRecord
from spaced_recall.errors import NotFoundError, ValidationError
from spaced_recall.utils.dates import to_iso, utc_now
from spaced_recall.utils.validators import validate_email

logger = structlog.get_logger(__name__)


def create_user(name: str, email: str = "", theme_id: str = "neutral") -> UserRecord:
    """Create a user.

    Raises:
        ValidationError: On an empty name, bad email or unknown theme
        DuplicateError: If the name is taken
    """
    name = name.strip()
    if not name:
        raise ValidationError("Name is required")
    if email and not validate_email(email):
        raise ValidationError("Invalid email format")
    if get_theme(theme_id) is None:
        raise ValidationError(f"Unknown theme '{theme_id}'")

    user = users_repository.insert_user(name, email, theme_id)
    logger.info("users.created", user_id=user.user_id)
    return user


def require_user(user_id: str) -> UserRecord:
    user = users_repository.get_user(user_id)
    if user is None:
        raise NotFoundError("User", user_id)
    return user


def change_theme(user_id: str, theme_id: str, now: datetime | None = None) -> UserRecord:
    """Switch theme. Loyalty restarts; points and stars already earned are kept.

    Raises:
        NotFoundError: Unknown user
        ValidationError: Unknown theme
    """
    now = now or utc_now()
    user = require_user(user_id)
    if get_theme(theme_id) is None:
        raise ValidationError(f"Unknown theme '{theme_id}'")
    if theme_id == user.theme_id:
        return user

    loyalty = update_loyalty_status(loyalty_from_user(user, now), now, new_theme=theme_id)
    updated = users_repository.update_user_stats(
        user_id,
        theme_id=loyalty.theme_id,
        theme_started_at=to_iso(loyalty.started_at),
        theme_total_days=loyalty.total_days,
        theme_streak_days=loyalty.streak_days,
        theme_last_active=to_iso(loyalty.last_active),
    )
    logger.info("users.theme_changed", user_id=user_id, theme=theme_id)
    return updated  # type: ignore[return-value]


def redeem(user_id: str, reward_id: str, now: datetime | None = None) -> RedeemResult:
    """Spend loyalty points on a reward.

    Raises:
        NotFoundError: Unknown user or reward
    """
    user = require_user(user_id)
    reward = get_reward(reward_id)
    if reward is None:
        raise NotFoundError("Reward", reward_id)

    result = redeem_reward(loyalty_from_user(user, now or utc_now()), reward)
    if result.success:
        users_repository.update_user_stats(
            user_id, loyalty_points=result.loyalty.loyalty_points
        )
        logger.info("users.reward_redeemed", user_id=user_id, reward=reward_id)
    return result
