"""Tests for study content, study sessions and reviews."""

from datetime import datetime, timedelta, timezone

import pytest

from spaced_recall.core import study
from spaced_recall.db import sessions_repository, subjects_repository, users_repository, xp_repository
from spaced_recall.errors import DuplicateError, NotFoundError, ValidationError
from spaced_recall.utils.dates import parse_iso, to_iso

NOW = datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc)


def _strengthen(item_type: str, item_id: str) -> None:
    """Give an item a long-lived memory state."""
    subjects_repository.update_review_state(
        item_type,
        item_id,
        stability=50.0,
        difficulty=0.3,
        retrievability=0.9,
        last_review=NOW - timedelta(days=3),
        next_review=NOW,
        review_interval=3,
    )


class TestContent:
    """Tests for subject, topic and concept creation."""

    def test_content_xp(self, user, concept):
        """A topic is worth 25 XP and a concept 15."""
        assert xp_repository.sum_xp_by_source(user.user_id) == {"content": 40}

    def test_unknown_study_style(self, user):
        with pytest.raises(ValidationError):
            study.create_subject(user.user_id, "Art", study_style="osmosis")

    def test_bad_exam_date(self, user):
        with pytest.raises(ValidationError):
            study.create_subject(user.user_id, "Art", exam_date="next tuesday")

    def test_exam_date_normalized(self, user):
        subject = study.create_subject(
            user.user_id, "Art", exam_mode=True, exam_date="2026-06-01"
        )
        assert subject.exam_date == "2026-06-01T00:00:00+00:00"

    def test_duplicate_subject(self, user, subject):
        with pytest.raises(DuplicateError):
            study.create_subject(user.user_id, "Calculus")

    def test_topic_for_missing_subject(self):
        with pytest.raises(NotFoundError):
            study.create_topic("sub-missing", "Limits")

    def test_update_subject(self, subject):
        updated = study.update_subject(subject.subject_id, description="Now with series")
        assert updated.description == "Now with series"

    def test_subject_tree(self, subject, concept):
        tree = study.subject_tree(subject.subject_id)
        assert tree["subject"]["name"] == "Calculus"
        assert [c["name"] for c in tree["topics"][0]["concepts"]] == ["Epsilon-delta"]

    def test_delete_subject_removes_topics_and_concepts(self, subject, topic, concept):
        assert subjects_repository.delete_subject(subject.subject_id)

        assert subjects_repository.get_subject(subject.subject_id) is None
        assert subjects_repository.get_topic(topic.topic_id) is None
        assert subjects_repository.get_concept(concept.concept_id) is None

    def test_delete_topic_removes_concepts(self, subject, topic, concept):
        assert subjects_repository.delete_topic(topic.topic_id)

        assert subjects_repository.get_concept(concept.concept_id) is None
        assert subjects_repository.get_subject(subject.subject_id) is not None

    def test_delete_missing_subject(self):
        assert subjects_repository.delete_subject("sub-missing") is False


class TestStudySessions:
    """Tests for log_study_session."""

    def test_session_without_topic(self, user, subject):
        result = study.log_study_session(user.user_id, subject.subject_id, 30, now=NOW)

        assert result.session_xp == 127
        assert result.phase_xp == 0
        assert result.topic is None
        assert result.streak == 1
        stored = subjects_repository.get_subject(subject.subject_id)
        assert stored.total_study_time == 30
        assert stored.xp == 127

    def test_confidence_sets_mastery_gain(self, user, subject, topic):
        result = study.log_study_session(
            user.user_id, subject.subject_id, 30, topic_id=topic.topic_id, confidence=50, now=NOW
        )

        assert result.mastery_gained == 5
        assert result.topic.mastery_level == 5
        assert result.topic.total_study_time == 30

    def test_first_study_schedules_review(self, user, subject, topic):
        result = study.log_study_session(
            user.user_id, subject.subject_id, 30, topic_id=topic.topic_id, now=NOW
        )
        assert parse_iso(result.topic.next_review) == NOW + timedelta(days=1)

    def test_completing_phase_advances(self, user, subject, topic):
        result = study.log_study_session(
            user.user_id,
            subject.subject_id,
            45,
            topic_id=topic.topic_id,
            completed_activities=["video", "book", "recall"],
            now=NOW,
        )

        assert result.phase_advanced
        assert result.phase_xp > 0
        assert result.topic.current_phase == "consolidation"
        assert result.total_xp == result.session_xp + result.phase_xp

    def test_activity_outside_phase(self, user, subject, topic):
        with pytest.raises(ValidationError):
            study.log_study_session(
                user.user_id,
                subject.subject_id,
                30,
                topic_id=topic.topic_id,
                completed_activities=["teaching"],
            )

    def test_activities_need_topic(self, user, subject):
        with pytest.raises(ValidationError):
            study.log_study_session(
                user.user_id, subject.subject_id, 30, completed_activities=["video"]
            )

    def test_rating_reschedules_topic(self, user, subject, topic):
        result = study.log_study_session(
            user.user_id, subject.subject_id, 30, topic_id=topic.topic_id, rating=4, now=NOW
        )

        assert result.review is not None
        assert result.topic.review_count == 1
        assert len(subjects_repository.list_review_logs("topic", topic.topic_id)) == 1

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"duration": 0},
            {"duration": 30, "difficulty": "brutal"},
            {"duration": 30, "activity_type": "napping"},
            {"duration": 30, "confidence": 120},
            {"duration": 30, "rating": 6},
        ],
    )
    def test_invalid_inputs(self, user, subject, kwargs):
        with pytest.raises(ValidationError):
            study.log_study_session(user.user_id, subject.subject_id, **kwargs)

    def test_subject_of_another_user(self, subject):
        other = users_repository.insert_user("Bea")
        with pytest.raises(NotFoundError):
            study.log_study_session(other.user_id, subject.subject_id, 30)

    def test_sessions_are_stored(self, user, subject):
        study.log_study_session(user.user_id, subject.subject_id, 20, notes="chapter 1", now=NOW)
        sessions = sessions_repository.list_study_sessions(user.user_id, subject.subject_id)
        assert [s.notes for s in sessions] == ["chapter 1"]


class TestReviews:
    """Tests for review_item and due reviews."""

    def test_pass_maps_to_rating_four(self, user, concept):
        outcome = study.review_item(user.user_id, "concept", concept.concept_id, passed=True, now=NOW)

        assert outcome.rating == 4
        assert outcome.interval_days == 1
        assert outcome.xp_gained > 0
        assert outcome.log_id is not None

    def test_rating_and_pass_are_exclusive(self, user, concept):
        with pytest.raises(ValidationError):
            study.review_item(user.user_id, "concept", concept.concept_id, rating=3, passed=True)
        with pytest.raises(ValidationError):
            study.review_item(user.user_id, "concept", concept.concept_id)

    def test_unknown_item_type(self, user, concept):
        with pytest.raises(ValidationError):
            study.review_item(user.user_id, "chapter", concept.concept_id, rating=3)

    def test_review_of_another_users_item(self, concept):
        other = users_repository.insert_user("Bea")
        with pytest.raises(NotFoundError):
            study.review_item(other.user_id, "concept", concept.concept_id, rating=3)

    def test_strong_item_gets_long_interval(self, user, concept):
        """Stability 50 caps at 100; the initial phase shortens 10 days to 8."""
        _strengthen("concept", concept.concept_id)

        outcome = study.review_item(user.user_id, "concept", concept.concept_id, rating=3, now=NOW)

        assert outcome.interval_days == 8
        assert not outcome.exam_adjusted

    def test_exam_mode_shortens_interval(self, user):
        subject = study.create_subject(
            user.user_id, "Physics", exam_mode=True, exam_date=to_iso(NOW + timedelta(days=5))
        )
        topic = study.create_topic(subject.subject_id, "Kinematics")
        concept = study.create_concept(topic.topic_id, "Velocity")
        _strengthen("concept", concept.concept_id)

        outcome = study.review_item(user.user_id, "concept", concept.concept_id, rating=3, now=NOW)

        assert outcome.exam_adjusted
        assert outcome.interval_days == 1

    def test_due_and_overdue(self, user, concept):
        study.review_item(user.user_id, "concept", concept.concept_id, passed=True, now=NOW)

        assert study.list_due_reviews(user.user_id, NOW) == []
        due = study.list_due_reviews(user.user_id, NOW + timedelta(days=1))
        assert [(d.item_id, d.overdue) for d in due] == [(concept.concept_id, False)]
        late = study.list_due_reviews(user.user_id, NOW + timedelta(days=3))
        assert late[0].overdue

    def test_review_history(self, user, concept):
        study.review_item(user.user_id, "concept", concept.concept_id, rating=2, now=NOW)
        study.review_item(
            user.user_id, "concept", concept.concept_id, rating=5, now=NOW + timedelta(days=1)
        )
        logs = subjects_repository.list_review_logs("concept", concept.concept_id)
        assert [log.rating for log in logs] == [2, 5]


class TestProgressAndQuizzes:
    def test_subject_progress(self, user, subject, topic):
        study.create_topic(subject.subject_id, "Derivatives")
        subjects_repository.update_topic(topic.topic_id, mastery_level=90)

        progress = study.subject_progress(subject.subject_id)

        assert progress.total_topics == 2
        assert progress.completed_topics == 1
        assert progress.average_mastery == 45

    def test_quiz_result(self, user, subject):
        result = study.record_quiz_result(
            user.user_id, subject.subject_id, 8, 10, weak_areas=["Limits"], now=NOW
        )

        assert result.xp_earned == 30
        assert xp_repository.sum_xp_by_source(user.user_id)["quiz"] == 30
        assert sessions_repository.list_quiz_results(user.user_id)[0].weak_areas == ["Limits"]

    def test_quiz_score_out_of_range(self, user, subject):
        with pytest.raises(ValidationError):
            study.record_quiz_result(user.user_id, subject.subject_id, 11, 10)

    def test_exam_plan(self, user):
        subject = study.create_subject(
            user.user_id, "Physics", exam_mode=True, exam_date=to_iso(NOW + timedelta(days=5))
        )
        study.create_topic(subject.subject_id, "Kinematics")

        plan = study.get_exam_plan(subject.subject_id, NOW)

        assert plan.days_until_exam == 5
        assert plan.weak_areas[0].name == "Kinematics"

    def test_no_exam_plan_without_exam_mode(self, subject):
        assert study.get_exam_plan(subject.subject_id, NOW) is None
