"""Tests for daily streaks and milestone rewards."""

from datetime import datetime, timedelta, timezone

import pytest

from spaced_recall.core.streaks import (
    calculate_streak,
    calculate_streak_rewards,
    check_in,
    check_streak_milestone,
)
from spaced_recall.db import users_repository
from spaced_recall.errors import NotFoundError

NOW = datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc)


class TestCalculateStreak:
    def test_first_activity(self):
        assert calculate_streak(None, 0, NOW) == 1

    def test_same_day_keeps_streak(self):
        assert calculate_streak(NOW - timedelta(hours=3), 4, NOW) == 4

    def test_next_calendar_day_extends(self):
        """Late evening then early morning still counts as consecutive."""
        late = datetime(2026, 3, 1, 23, 30, tzinfo=timezone.utc)
        early = datetime(2026, 3, 2, 0, 15, tzinfo=timezone.utc)
        assert calculate_streak(late, 4, early) == 5

    def test_missed_day_resets(self):
        assert calculate_streak(NOW - timedelta(days=2), 9, NOW) == 1


class TestMilestones:
    def test_crossing_a_milestone(self):
        assert check_streak_milestone(2, 3) == 3
        assert check_streak_milestone(6, 7) == 7

    def test_no_milestone(self):
        assert check_streak_milestone(3, 4) is None

    def test_custom_milestones(self):
        assert check_streak_milestone(1, 2, [2, 5]) == 2

    def test_rewards(self):
        assert calculate_streak_rewards(3) == (50, 5)
        assert calculate_streak_rewards(365) == (10000, 1000)
        assert calculate_streak_rewards(4) == (0, 0)


class TestCheckIn:
    """Tests for check_in against the database."""

    def test_three_days_reach_first_milestone(self, user):
        results = [check_in(user.user_id, NOW + timedelta(days=i)) for i in range(3)]

        assert [r.current_streak for r in results] == [1, 2, 3]
        assert results[-1].milestone == 3
        assert (results[-1].xp_awarded, results[-1].tokens_awarded) == (50, 5)

        stored = users_repository.get_user(user.user_id)
        assert stored.total_xp == 50
        assert stored.tokens == 5
        assert stored.highest_streak == 3

    def test_repeat_check_in_same_day(self, user):
        check_in(user.user_id, NOW)
        result = check_in(user.user_id, NOW + timedelta(hours=2))
        assert result.current_streak == 1
        assert result.milestone is None

    def test_same_day_sessions_keep_theme_streak(self, user):
        """Loyalty streak follows days, not the number of check-ins."""
        results = [check_in(user.user_id, NOW + timedelta(minutes=i)) for i in range(8)]

        stored = users_repository.get_user(user.user_id)
        assert results[-1].current_streak == 1
        assert stored.theme_streak_days == 1
        assert stored.stars == 0

        check_in(user.user_id, NOW + timedelta(days=1))
        assert users_repository.get_user(user.user_id).theme_streak_days == 2

    def test_broken_streak_keeps_highest(self, user):
        for i in range(3):
            check_in(user.user_id, NOW + timedelta(days=i))
        result = check_in(user.user_id, NOW + timedelta(days=6))

        assert result.current_streak == 1
        assert result.highest_streak == 3

    def test_unknown_user(self):
        with pytest.raises(NotFoundError):
            check_in("usr-00000000", NOW)
