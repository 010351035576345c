"""Daily streaks and streak milestones.

A check-in on a new calendar day extends the streak; missing a day resets
it to 1. Crossing a milestone (3, 7, 14, ... 365 days) awards XP and tokens.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime

import structlog

from spaced_recall.core.xp import award_xp, loyalty_from_user, update_loyalty_status
from spaced_recall.db import users_repository
from spaced_recall.errors import NotFoundError
from spaced_recall.utils.dates import days_between, parse_iso, to_iso, utc_now

logger = structlog.get_logger(__name__)

STREAK_MILESTONES = [3, 7, 14, 30, 60, 90, 180, 365]

STREAK_REWARDS = {
    3: (50, 5),
    7: (100, 10),
    14: (250, 25),
    30: (500, 50),
    60: (1000, 100),
    90: (2500, 250),
    180: (5000, 500),
    365: (10000, 1000),
}


def calculate_streak(
    last_activity: datetime | None, current_streak: int, today: datetime
) -> int:
    """New streak length after activity on `today`.

    Args:
        last_activity: Previous activity time, None if there was none
        current_streak: Streak before this activity
        today: Time of this activity

    Returns:
        1 for a first or broken streak, the same value for a repeat on the
        same day, current_streak + 1 for consecutive days
    """
    if last_activity is None:
        return 1

    gap = days_between(last_activity, today)
    if gap == 0:
        return current_streak
    if gap == 1:
        return current_streak + 1
    return 1


def check_streak_milestone(
    previous: int, current: int, milestones: list[int] | None = None
) -> int | None:
    """First milestone crossed going from `previous` to `current`."""
    for milestone in milestones or STREAK_MILESTONES:
        if previous < milestone <= current:
            return milestone
    return None


def calculate_streak_rewards(milestone: int) -> tuple[int, int]:
    """(xp, tokens) for reaching a milestone; (0, 0) for other values."""
    return STREAK_REWARDS.get(milestone, (0, 0))


@dataclass
class CheckInResult:
    user_id: str
    current_streak: int
    highest_streak: int
    milestone: int | None
    xp_awarded: int
    tokens_awarded: int

    def to_dict(self) -> dict:
        return asdict(self)


def check_in(user_id: str, now: datetime | None = None) -> CheckInResult:
    """Register daily activity for a user.

    Updates the login streak, the highest streak and theme loyalty, and
    awards milestone rewards.

    Raises:
        NotFoundError: If the user does not exist
    """
    now = now or utc_now()
    user = users_repository.get_user(user_id)
    if user is None:
        raise NotFoundError("User", user_id)

    previous = user.current_streak
    streak = calculate_streak(parse_iso(user.last_login), previous, now)
    highest = max(user.highest_streak, streak)
    loyalty = update_loyalty_status(loyalty_from_user(user, now), now)

    users_repository.update_user_stats(
        user_id,
        current_streak=streak,
        highest_streak=highest,
        last_login=to_iso(now),
        theme_total_days=loyalty.total_days,
        theme_streak_days=loyalty.streak_days,
        theme_last_active=to_iso(loyalty.last_active),
        stars=loyalty.stars,
    )

    milestone = check_streak_milestone(previous, streak)
    xp, tokens = calculate_streak_rewards(milestone) if milestone else (0, 0)
    if milestone:
        award_xp(
            user_id,
            "streak",
            xp,
            description=f"{milestone}-day streak",
            tokens=tokens,
            now=now,
        )
        logger.info("streaks.milestone", user_id=user_id, milestone=milestone)

    return CheckInResult(
        user_id=user_id,
        current_streak=streak,
        highest_streak=highest,
        milestone=milestone,
        xp_awarded=xp,
        tokens_awarded=tokens,
    )
