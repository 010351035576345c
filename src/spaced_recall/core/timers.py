"""Quick timer sessions.

Keeps running timers in memory. Stopping a timer converts the focused time
into minutes and credits session XP for the chosen activity type.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import structlog

from spaced_recall.core.xp import (
    ACTIVITY_TYPES,
    DIFFICULTY_MULTIPLIERS,
    award_xp,
    calculate_session_xp,
    get_level_from_xp,
    resolve_theme,
)
from spaced_recall.db import users_repository
from spaced_recall.errors import NotFoundError, ValidationError
from spaced_recall.utils.dates import to_iso, utc_now

logger = structlog.get_logger(__name__)

TIMER_TYPES = ("pomodoro", "continuous")
POMODORO_MINUTES = 25


@dataclass
class TimerSession:
    """A running or paused timer."""

    timer_id: str
    user_id: str
    activity_type: str
    difficulty: str
    started_at: datetime
    timer_type: str = "continuous"
    state: str = "running"  # running | paused | completed
    active_seconds: float = 0.0
    resumed_at: datetime | None = None
    ended_at: datetime | None = None

    def __post_init__(self):
        if self.resumed_at is None:
            self.resumed_at = self.started_at

    def elapsed_seconds(self, now: datetime) -> float:
        """Focused time so far; paused spans are not counted."""
        if self.state == "running" and self.resumed_at is not None:
            return self.active_seconds + (now - self.resumed_at).total_seconds()
        return self.active_seconds

    def to_dict(self, now: datetime | None = None) -> dict[str, Any]:
        return {
            "timer_id": self.timer_id,
            "user_id": self.user_id,
            "activity_type": self.activity_type,
            "difficulty": self.difficulty,
            "timer_type": self.timer_type,
            "state": self.state,
            "started_at": to_iso(self.started_at),
            "ended_at": to_iso(self.ended_at),
            "active_seconds": round(self.elapsed_seconds(now or utc_now())),
        }


@dataclass
class TimerResult:
    timer: TimerSession
    minutes: int
    xp_gained: int
    mastery_gained: int
    overtime_minutes: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "timer": self.timer.to_dict(self.timer.ended_at),
            "minutes": self.minutes,
            "xp_gained": self.xp_gained,
            "mastery_gained": self.mastery_gained,
            "overtime_minutes": self.overtime_minutes,
        }


class TimerManager:
    """Manages active timers.

    Async-safe with a single lock around the timer table.
    """

    def __init__(self):
        self._timers: dict[str, TimerSession] = {}
        self._lock = asyncio.Lock()

    async def start_timer(
        self,
        user_id: str,
        activity_type: str = "study",
        difficulty: str = "medium",
        timer_type: str = "continuous",
        now: datetime | None = None,
    ) -> TimerSession:
        """Start a timer for a user.

        Raises:
            NotFoundError: If the user does not exist
            ValidationError: On unknown activity type, difficulty or timer type
        """
        if users_repository.get_user(user_id) is None:
            raise NotFoundError("User", user_id)
        if activity_type not in ACTIVITY_TYPES:
            raise ValidationError(f"Unknown activity type '{activity_type}'")
        if difficulty not in DIFFICULTY_MULTIPLIERS:
            raise ValidationError(f"Unknown difficulty '{difficulty}'")
        if timer_type not in TIMER_TYPES:
            raise ValidationError(f"Unknown timer type '{timer_type}'")

        timer = TimerSession(
            timer_id=str(uuid.uuid4())[:8],
            user_id=user_id,
            activity_type=activity_type,
            difficulty=difficulty,
            started_at=now or utc_now(),
            timer_type=timer_type,
        )

        async with self._lock:
            self._timers[timer.timer_id] = timer

        logger.info("timer_started", timer_id=timer.timer_id, user_id=user_id)
        return timer

    async def get_timer(self, timer_id: str) -> TimerSession | None:
        async with self._lock:
            return self._timers.get(timer_id)

    async def pause_timer(self, timer_id: str, now: datetime | None = None) -> TimerSession | None:
        now = now or utc_now()
        async with self._lock:
            timer = self._timers.get(timer_id)
            if timer is None:
                return None
            if timer.state == "running":
                timer.active_seconds = timer.elapsed_seconds(now)
                timer.state = "paused"
                timer.resumed_at = None
        return timer

    async def resume_timer(self, timer_id: str, now: datetime | None = None) -> TimerSession | None:
        now = now or utc_now()
        async with self._lock:
            timer = self._timers.get(timer_id)
            if timer is None:
                return None
            if timer.state == "paused":
                timer.state = "running"
                timer.resumed_at = now
        return timer

    async def stop_timer(self, timer_id: str, now: datetime | None = None) -> TimerResult | None:
        """Stop a timer and credit XP for the focused minutes.

        Returns:
            TimerResult, or None if the timer does not exist
        """
        now = now or utc_now()
        async with self._lock:
            timer = self._timers.pop(timer_id, None)

        if timer is None:
            return None

        seconds = timer.elapsed_seconds(now)
        timer.active_seconds = seconds
        timer.state = "completed"
        timer.ended_at = now
        minutes = max(1, round(seconds / 60))

        user = users_repository.get_user(timer.user_id)
        if user is None:
            raise NotFoundError("User", timer.user_id)

        level = get_level_from_xp(user.total_xp, resolve_theme(user.theme_id))
        session_xp = calculate_session_xp(timer.activity_type, timer.difficulty, minutes, level)
        award_xp(
            timer.user_id,
            "timer",
            session_xp.xp,
            source_id=timer.timer_id,
            description=f"{ACTIVITY_TYPES[timer.activity_type]['name']} ({minutes} min)",
            now=now,
        )

        overtime = 0
        if timer.timer_type == "pomodoro":
            overtime = max(0, minutes - POMODORO_MINUTES)

        logger.info(
            "timer_stopped",
            timer_id=timer_id,
            minutes=minutes,
            xp=session_xp.xp,
        )
        return TimerResult(
            timer=timer,
            minutes=minutes,
            xp_gained=session_xp.xp,
            mastery_gained=session_xp.mastery_gained,
            overtime_minutes=overtime,
        )

    async def list_timers(self, user_id: str | None = None) -> list[TimerSession]:
        async with self._lock:
            timers = list(self._timers.values())
        if user_id is not None:
            timers = [t for t in timers if t.user_id == user_id]
        return timers


# Global timer manager instance
_timer_manager: TimerManager | None = None


def get_timer_manager() -> TimerManager:
    """Get the global timer manager instance."""
    global _timer_manager
    if _timer_manager is None:
        _timer_manager = TimerManager()
    return _timer_manager


def reset_timer_manager() -> None:
    """Reset the timer manager (for testing)."""
    global _timer_manager
    _timer_manager = None
