"""Tests for XP formulas, levels, theme loyalty and rewards."""

from datetime import datetime, timedelta, timezone

import pytest

from spaced_recall.config.themes import get_theme
from spaced_recall.core import users
from spaced_recall.core.xp import (
    CONTENT_XP,
    ThemeLoyalty,
    award_xp,
    calculate_completion_xp,
    calculate_loyalty_points,
    calculate_potential_xp,
    calculate_session_xp,
    calculate_stars,
    calculate_user_xp,
    calculate_xp,
    get_avatar_for_level,
    get_level_from_xp,
    get_progress_to_next_level,
    get_reward,
    redeem_reward,
    update_loyalty_status,
)
from spaced_recall.db import users_repository, xp_repository
from spaced_recall.errors import DuplicateError, NotFoundError, ValidationError

NOW = datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc)


def _loyalty(**overrides) -> ThemeLoyalty:
    values = dict(
        theme_id="neutral",
        started_at=NOW,
        total_days=1,
        streak_days=1,
        last_active=NOW,
    )
    values.update(overrides)
    return ThemeLoyalty(**values)


class TestSessionXP:
    """Tests for calculate_session_xp and calculate_xp."""

    def test_medium_study_half_hour(self):
        result = calculate_session_xp("study", "medium", 30, 1)
        assert result.xp == 127
        assert result.mastery_gained == 6

    def test_longer_sessions_earn_more(self):
        short = calculate_session_xp("practice", "hard", 15)
        long = calculate_session_xp("practice", "hard", 60)
        assert long.xp > short.xp

    def test_unknown_activity_type(self):
        result = calculate_session_xp("juggling", "medium", 30)
        assert (result.xp, result.mastery_gained) == (0, 0)

    def test_unknown_difficulty(self):
        result = calculate_session_xp("study", "impossible", 30)
        assert result.xp == 0

    def test_mastery_is_capped(self):
        assert calculate_session_xp("study", "expert", 600).mastery_gained == 25

    def test_quiz_xp(self):
        """Quick XP uses base 30 for quizzes."""
        assert calculate_xp("quiz", 15, 5, 100) == 39

    def test_quick_xp_unknown_type(self):
        assert calculate_xp("nap", 15, 5) == 0


class TestLevels:
    """Tests for level thresholds and themed progress."""

    @pytest.mark.parametrize(
        "xp,level",
        [(0, 1), (999, 1), (1000, 2), (2500, 3), (2_000_000, 20)],
    )
    def test_level_thresholds(self, xp, level):
        assert get_level_from_xp(xp) == level

    def test_theme_multiplier_slows_levelling(self):
        fantasy = get_theme("fantasy")
        assert get_level_from_xp(1050, fantasy) == 1
        assert get_level_from_xp(1100, fantasy) == 2

    def test_progress_within_level(self):
        progress = get_progress_to_next_level(1500)
        assert (progress.current_xp, progress.needed_xp, progress.percent) == (500, 1500, 33)

    def test_progress_at_top_level(self):
        assert get_progress_to_next_level(2_000_000).percent == 100

    def test_avatar_for_level(self):
        neutral = get_theme("neutral")
        assert get_avatar_for_level(neutral, 1).name == "Newbie"
        assert get_avatar_for_level(neutral, 12).name == "Mentor"
        assert get_avatar_for_level(get_theme("scifi"), 20).name == "Fleet Admiral"


class TestLoyalty:
    """Tests for theme loyalty points, stars and rewards."""

    def test_loyalty_points_with_bonuses(self):
        """Streak of 3 gives x1.2 and 30 total days gives x1.3."""
        assert calculate_loyalty_points(200, _loyalty(streak_days=3, total_days=30)) == 31

    def test_loyalty_points_base(self):
        assert calculate_loyalty_points(200, _loyalty()) == 20

    def test_stars(self):
        loyalty = _loyalty(total_days=90, streak_days=14, loyalty_points=1000)
        assert calculate_stars(loyalty) == 5

    def test_next_day_extends_streak(self):
        updated = update_loyalty_status(_loyalty(), NOW + timedelta(days=1))
        assert (updated.total_days, updated.streak_days) == (2, 2)

    def test_same_day_keeps_streak(self):
        updated = update_loyalty_status(_loyalty(streak_days=4), NOW + timedelta(hours=5))
        assert (updated.total_days, updated.streak_days) == (1, 4)

    def test_gap_resets_streak(self):
        updated = update_loyalty_status(_loyalty(streak_days=5), NOW + timedelta(days=3))
        assert updated.streak_days == 1
        assert updated.total_days == 2

    def test_theme_switch_resets(self):
        loyalty = _loyalty(total_days=40, streak_days=10, loyalty_points=700)
        updated = update_loyalty_status(loyalty, NOW, new_theme="fantasy")
        assert updated.theme_id == "fantasy"
        assert (updated.total_days, updated.streak_days, updated.loyalty_points) == (1, 1, 0)

    def test_redeem_insufficient_points(self):
        loyalty = _loyalty(loyalty_points=100)
        result = redeem_reward(loyalty, get_reward("xp_boost"))
        assert not result.success
        assert result.loyalty.loyalty_points == 100

    def test_redeem_deducts_cost(self):
        result = redeem_reward(_loyalty(loyalty_points=1200), get_reward("gift_card_5"))
        assert result.success
        assert result.loyalty.loyalty_points == 200

    def test_reward_catalog(self):
        assert get_reward("theme_discount").cost == 500
        assert get_reward("gift_card_10").cost == 2000
        assert get_reward("free_lunch") is None


class TestPotentialXP:
    """Tests for work item XP."""

    def test_task_priority(self):
        assert calculate_potential_xp("task", priority="high") == 250

    def test_implementation_with_details(self):
        xp = calculate_potential_xp("implementation", impact="major", technical_details="WAL mode")
        assert xp == 550

    def test_blank_details_do_not_count(self):
        assert calculate_potential_xp("improvement", impact="minor", technical_details="  ") == 250

    def test_unknown_type(self):
        with pytest.raises(ValueError):
            calculate_potential_xp("meeting")

    def test_completion_xp_is_base(self):
        assert calculate_completion_xp("task") == 150
        assert calculate_completion_xp("implementation") == 300


class TestAwardXP:
    """Tests for the XP ledger."""

    def test_award_credits_user_and_ledger(self, user):
        awarded = award_xp(user.user_id, "study", 200, source_id="ses-1", now=NOW)

        assert awarded == 200
        stored = users_repository.get_user(user.user_id)
        assert stored.total_xp == 200
        assert stored.loyalty_points == 20
        assert xp_repository.sum_xp_by_source(user.user_id) == {"study": 200}

    def test_zero_award_is_ignored(self, user):
        assert award_xp(user.user_id, "study", 0) == 0
        assert xp_repository.list_xp_events(user.user_id) == []

    def test_tokens_without_xp(self, user):
        award_xp(user.user_id, "streak", 0, tokens=5)
        assert users_repository.get_user(user.user_id).tokens == 5

    def test_unknown_user(self):
        with pytest.raises(NotFoundError):
            award_xp("usr-missing", "study", 10)

    def test_user_summary(self, user):
        award_xp(user.user_id, "study", 1200, now=NOW)
        award_xp(user.user_id, "quiz", 300, now=NOW)

        summary = calculate_user_xp(user.user_id)

        assert summary["total_xp"] == 1500
        assert summary["breakdown"] == {"study": 1200, "quiz": 300}
        assert summary["level"] == 2
        assert summary["progress"]["percent"] == 33
        assert summary["avatar"]["name"] == "Newbie"
        assert len(summary["recent_activities"]) == 2

    def test_content_xp_table(self):
        assert CONTENT_XP["topic"] == 25
        assert CONTENT_XP["subject"] == 0


class TestUsers:
    """Tests for user creation, theme change and redemption."""

    def test_create_user_validates(self):
        with pytest.raises(ValidationError):
            users.create_user("  ")
        with pytest.raises(ValidationError):
            users.create_user("Bo", "not-an-email")
        with pytest.raises(ValidationError):
            users.create_user("Bo", theme_id="steampunk")

    def test_duplicate_name(self, user):
        with pytest.raises(DuplicateError):
            users.create_user("Ana")

    def test_change_theme_keeps_points(self, user):
        users_repository.update_user_stats(user.user_id, loyalty_points=800, theme_total_days=12)

        updated = users.change_theme(user.user_id, "scifi", now=NOW)

        assert updated.theme_id == "scifi"
        assert updated.theme_total_days == 1
        assert updated.loyalty_points == 800

    def test_redeem_updates_points(self, user):
        users_repository.update_user_stats(user.user_id, loyalty_points=600)

        result = users.redeem(user.user_id, "theme_discount", now=NOW)

        assert result.success
        assert users_repository.get_user(user.user_id).loyalty_points == 100

    def test_redeem_unknown_reward(self, user):
        with pytest.raises(NotFoundError):
            users.redeem(user.user_id, "yacht")
