"""Tests for quick timers."""

from datetime import datetime, timedelta, timezone

import pytest

from spaced_recall.core.timers import TimerManager, get_timer_manager, reset_timer_manager
from spaced_recall.db import users_repository, xp_repository
from spaced_recall.errors import NotFoundError, ValidationError

NOW = datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc)


@pytest.fixture
def manager():
    return TimerManager()


class TestTimerManager:
    """Tests for TimerManager."""

    @pytest.mark.asyncio
    async def test_start_timer(self, manager, user):
        timer = await manager.start_timer(user.user_id, now=NOW)

        assert timer.state == "running"
        assert await manager.get_timer(timer.timer_id) is timer
        assert timer.to_dict(NOW + timedelta(minutes=2))["active_seconds"] == 120

    @pytest.mark.asyncio
    async def test_start_validates(self, manager, user):
        with pytest.raises(NotFoundError):
            await manager.start_timer("usr-missing")
        with pytest.raises(ValidationError):
            await manager.start_timer(user.user_id, activity_type="napping")
        with pytest.raises(ValidationError):
            await manager.start_timer(user.user_id, timer_type="egg")

    @pytest.mark.asyncio
    async def test_stop_credits_xp(self, manager, user):
        """Thirty focused minutes of medium study is worth 127 XP."""
        timer = await manager.start_timer(user.user_id, now=NOW)

        result = await manager.stop_timer(timer.timer_id, now=NOW + timedelta(minutes=30))

        assert result.minutes == 30
        assert result.xp_gained == 127
        assert result.timer.state == "completed"
        assert users_repository.get_user(user.user_id).total_xp == 127
        assert xp_repository.sum_xp_by_source(user.user_id) == {"timer": 127}
        assert await manager.get_timer(timer.timer_id) is None

    @pytest.mark.asyncio
    async def test_xp_event_points_at_timer(self, manager, user):
        timer = await manager.start_timer(user.user_id, now=NOW)
        await manager.stop_timer(timer.timer_id, now=NOW + timedelta(minutes=5))

        [event] = xp_repository.list_xp_events(user.user_id)
        assert event.source_id == timer.timer_id
        assert "work_item_id" not in timer.to_dict(NOW)

    @pytest.mark.asyncio
    async def test_paused_time_is_not_counted(self, manager, user):
        timer = await manager.start_timer(user.user_id, now=NOW)
        await manager.pause_timer(timer.timer_id, now=NOW + timedelta(minutes=10))
        await manager.resume_timer(timer.timer_id, now=NOW + timedelta(minutes=20))

        result = await manager.stop_timer(timer.timer_id, now=NOW + timedelta(minutes=40))

        assert result.minutes == 30

    @pytest.mark.asyncio
    async def test_pause_twice_is_harmless(self, manager, user):
        timer = await manager.start_timer(user.user_id, now=NOW)
        await manager.pause_timer(timer.timer_id, now=NOW + timedelta(minutes=5))
        paused = await manager.pause_timer(timer.timer_id, now=NOW + timedelta(minutes=9))
        assert paused.active_seconds == 300

    @pytest.mark.asyncio
    async def test_pomodoro_overtime(self, manager, user):
        timer = await manager.start_timer(user.user_id, timer_type="pomodoro", now=NOW)
        result = await manager.stop_timer(timer.timer_id, now=NOW + timedelta(minutes=40))
        assert result.overtime_minutes == 15

    @pytest.mark.asyncio
    async def test_short_timer_counts_one_minute(self, manager, user):
        timer = await manager.start_timer(user.user_id, now=NOW)
        result = await manager.stop_timer(timer.timer_id, now=NOW + timedelta(seconds=5))
        assert result.minutes == 1

    @pytest.mark.asyncio
    async def test_unknown_timer(self, manager):
        assert await manager.pause_timer("nope") is None
        assert await manager.resume_timer("nope") is None
        assert await manager.stop_timer("nope") is None

    @pytest.mark.asyncio
    async def test_list_timers_by_user(self, manager, user):
        other = users_repository.insert_user("Bea")
        await manager.start_timer(user.user_id, now=NOW)
        await manager.start_timer(other.user_id, now=NOW)

        assert len(await manager.list_timers()) == 2
        assert [t.user_id for t in await manager.list_timers(user.user_id)] == [user.user_id]


class TestGlobalManager:
    def test_singleton(self):
        assert get_timer_manager() is get_timer_manager()

    def test_reset(self):
        first = get_timer_manager()
        reset_timer_manager()
        assert get_timer_manager() is not first
