"""Tests for spaced repetition, study phases and exam-mode intervals."""

from datetime import datetime, timedelta, timezone

import pytest

from spaced_recall.core.scheduling import (
    MemoryState,
    SpacedRepetition,
    adjust_review_schedule,
    calculate_phase_xp,
    create_phase,
    exam_review_interval,
    find_weak_areas,
    full_days_between,
    get_rating_description,
    get_spacing_interval,
    next_phase,
    rating_from_pass_fail,
    review_interval_days,
    suggest_initial_interval,
    update_activity,
)

NOW = datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc)


class TestSpacedRepetition:
    """Tests for the stability/difficulty/retrievability update."""

    def test_easy_rating_lowers_difficulty(self):
        """Rating 5 moves difficulty down by 0.03."""
        assert SpacedRepetition.update_difficulty(0.3, 5) == pytest.approx(0.27)

    def test_hard_rating_raises_difficulty(self):
        """Rating 1 moves difficulty up by 0.05."""
        assert SpacedRepetition.update_difficulty(0.3, 1) == pytest.approx(0.35)

    def test_difficulty_is_clamped(self):
        """Difficulty never drops below 0.1."""
        assert SpacedRepetition.update_difficulty(0.1, 5) == pytest.approx(0.1)

    def test_stability_growth(self):
        """Stability grows by rating/5 divided by difficulty."""
        assert SpacedRepetition.update_stability(1.0, 0.27, 5) == pytest.approx(1 + 1 / 0.27)

    def test_stability_is_clamped(self):
        """Stability never exceeds 100."""
        assert SpacedRepetition.update_stability(90.0, 0.1, 5) == 100.0

    def test_retrievability_never_reviewed(self):
        """An item without a previous review has full retrievability."""
        assert SpacedRepetition.retrievability(1.0, NOW, None) == 1.0

    def test_retrievability_decays(self):
        """One day after review with stability 1 gives exp(-1)."""
        value = SpacedRepetition.retrievability(1.0, NOW, NOW - timedelta(days=1))
        assert value == pytest.approx(0.3679, abs=1e-4)

    def test_next_review_hits_target_retention(self):
        """Next review falls when retrievability reaches 0.9."""
        scheduled = SpacedRepetition.next_review_date(1.0, NOW)
        hours = (scheduled - NOW).total_seconds() / 3600
        assert hours == pytest.approx(2.5287, abs=1e-3)

    def test_better_rating_schedules_later(self):
        """Easier recall pushes the next review further out."""
        state = MemoryState()
        easy = SpacedRepetition.repeat(state, NOW, 5)
        hard = SpacedRepetition.repeat(state, NOW, 1)
        assert easy.scheduled_date > hard.scheduled_date
        assert easy.stability > hard.stability

    def test_out_of_range_rating_is_clamped(self):
        """Ratings outside 1..5 behave like the nearest bound."""
        state = MemoryState()
        assert SpacedRepetition.repeat(state, NOW, 9) == SpacedRepetition.repeat(state, NOW, 5)


class TestReviewInterval:
    """Tests for review_interval_days."""

    def test_interval_is_at_least_one_day(self):
        """A fresh item is never scheduled for the same day."""
        days, _ = review_interval_days(MemoryState(), NOW, 5, "initial")
        assert days == 1

    @pytest.mark.parametrize(
        "phase,expected",
        [("initial", 8), ("consolidation", 10), ("mastery", 12)],
    )
    def test_phase_multiplier(self, phase, expected):
        """Phase stretches or shrinks the base interval (10 days here)."""
        state = MemoryState(stability=50.0, difficulty=0.3)
        days, scheduling = review_interval_days(state, NOW, 3, phase)
        assert scheduling.stability == 100.0
        assert days == expected

    def test_pass_fail_ratings(self):
        """Pass maps to 4 and fail to 2."""
        assert rating_from_pass_fail(True) == 4
        assert rating_from_pass_fail(False) == 2

    def test_rating_description(self):
        assert get_rating_description(1).startswith("Difficult")
        assert get_rating_description(5).startswith("Very easy")

    def test_full_days_truncates(self):
        """Partial days are dropped."""
        assert full_days_between(NOW, NOW + timedelta(days=2, hours=23)) == 2
        assert full_days_between(NOW, NOW - timedelta(hours=30)) == -1


class TestStudyPhases:
    """Tests for study phase activities."""

    def test_create_initial_phase(self):
        phase = create_phase("initial")
        assert [a.type for a in phase.activities] == ["video", "book", "recall"]
        assert phase.status == "in-progress"
        assert calculate_phase_xp(phase) == 0

    def test_unknown_phase_raises(self):
        with pytest.raises(ValueError):
            create_phase("expert")

    def test_update_activity_recomputes_xp(self):
        """Marking an activity updates earned XP without mutating the input."""
        phase = create_phase("initial")
        updated = update_activity(phase, "recall", True)
        assert updated.xp_earned == 100
        assert phase.xp_earned == 0
        assert updated.status == "in-progress"

    def test_phase_completes_when_all_done(self):
        phase = create_phase("consolidation")
        phase = update_activity(phase, "mindmap", True)
        phase = update_activity(phase, "questions", True)
        assert phase.is_complete
        assert phase.status == "completed"
        assert phase.xp_earned == 250

    def test_phase_round_trip(self):
        """Phase state survives to_dict/from_dict."""
        phase = update_activity(create_phase("mastery"), "teaching", True)
        assert type(phase).from_dict(phase.to_dict()) == phase

    def test_next_phase_order(self):
        assert next_phase("initial") == "consolidation"
        assert next_phase("consolidation") == "mastery"
        assert next_phase("mastery") == "mastery"

    def test_spacing_intervals(self):
        assert get_spacing_interval("initial") == 1
        assert get_spacing_interval("mastery") == 7


class TestExamMode:
    """Tests for exam-preparation intervals and plans."""

    def test_critical_period_weak_area(self):
        """Close to the exam, very weak items are reviewed daily."""
        assert exam_review_interval(5, 20, True) == 1

    def test_high_priority_weak_area_leaves_room_for_reviews(self):
        """Ten days out, a weak item gets room for five reviews."""
        assert exam_review_interval(10, 50, True) == 2

    def test_prep_period_strong_item(self):
        """Twenty days out, a strong item is capped at a third of the time left."""
        assert exam_review_interval(20, 70, False) == 6

    def test_poor_rating_shortens_interval(self):
        assert exam_review_interval(25, 45, True, last_rating=1) == 2
        assert exam_review_interval(25, 45, True, last_rating=3) == 3

    def test_interval_never_below_one(self):
        assert exam_review_interval(1, 90, False) == 1

    def test_suggest_initial_interval(self):
        assert suggest_initial_interval(80) == 4
        assert suggest_initial_interval(80, NOW + timedelta(days=10), NOW) == 3
        assert suggest_initial_interval(0) == 1

    def test_find_weak_areas_sorted(self):
        """Weak topics and concepts are returned lowest mastery first."""
        topics = [
            {
                "name": "Limits",
                "mastery_level": 55,
                "concepts": [{"name": "Epsilon-delta", "mastery_level": 10}],
            },
            {"name": "Derivatives", "mastery_level": 90, "concepts": []},
        ]
        areas = find_weak_areas(topics)
        assert [(a.name, a.type) for a in areas] == [
            ("Epsilon-delta", "concept"),
            ("Limits", "topic"),
        ]

    def test_plan_requires_exam_mode(self):
        subject = {"exam_mode": False, "exam_date": "2026-03-10T00:00:00+00:00"}
        assert adjust_review_schedule(subject, [], NOW) is None

    def test_plan_outside_prep_window(self):
        subject = {"exam_mode": True, "exam_date": NOW + timedelta(days=45)}
        assert adjust_review_schedule(subject, [], NOW) is None

    def test_critical_plan(self):
        """Within a week of the exam the plan has all three priorities."""
        subject = {"exam_mode": True, "exam_date": NOW + timedelta(days=5)}
        topics = [{"name": "Limits", "mastery_level": 30, "concepts": []}]
        plan = adjust_review_schedule(subject, topics, NOW)

        assert plan is not None
        assert plan.days_until_exam == 5
        assert plan.message.startswith("Critical exam preparation period!")
        assert [r.priority for r in plan.recommendations] == ["Immediate", "High", "Normal"]
        assert plan.recommendations[0].items[0].name == "Limits"
