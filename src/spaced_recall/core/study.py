"""Study content, study sessions and reviews.

Ties the subject hierarchy to the scheduler and the XP ledger:
- creating topics and concepts earns content XP
- logging a study session raises topic mastery, advances study phases and
  credits session XP
- reviewing a topic or concept reschedules it, shortened in exam mode
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta

import structlog

from spaced_recall.config.app_config import load_app_config
from spaced_recall.core import scheduling
from spaced_recall.core.scheduling import MemoryState, StudyPhase
from spaced_recall.core.streaks import check_in
from spaced_recall.core.xp import (
    CONTENT_XP,
    DIFFICULTY_MULTIPLIERS,
    award_xp,
    calculate_session_xp,
    get_level_from_xp,
    resolve_theme,
)
from spaced_recall.db import sessions_repository, subjects_repository, users_repository
from spaced_recall.db.sessions_repository import QuizResultRecord, StudySessionRecord
from spaced_recall.db.subjects_repository import (
    ConceptRecord,
    SubjectRecord,
    TopicRecord,
)
from spaced_recall.errors import NotFoundError, ValidationError
from spaced_recall.utils.dates import days_between, parse_iso, to_iso, utc_now

logger = structlog.get_logger(__name__)

STUDY_STYLES = ("visual", "auditory", "reading", "kinesthetic", "mixed")
STUDY_ACTIVITY_TYPES = ("study", "review", "practice")
COMPLETED_TOPIC_MASTERY = 80
DEFAULT_REVIEW_MINUTES = 10


# =============================================================================
# Lookups
# =============================================================================


def _require_user(user_id: str):
    user = users_repository.get_user(user_id)
    if user is None:
        raise NotFoundError("User", user_id)
    return user


def _require_subject(subject_id: str, user_id: str | None = None) -> SubjectRecord:
    subject = subjects_repository.get_subject(subject_id)
    if subject is None or (user_id is not None and subject.user_id != user_id):
        raise NotFoundError("Subject", subject_id)
    return subject


def _require_topic(topic_id: str, subject_id: str | None = None) -> TopicRecord:
    topic = subjects_repository.get_topic(topic_id)
    if topic is None or (subject_id is not None and topic.subject_id != subject_id):
        raise NotFoundError("Topic", topic_id)
    return topic


def _require_item(item_type: str, item_id: str) -> TopicRecord | ConceptRecord:
    if item_type == "topic":
        return _require_topic(item_id)
    if item_type == "concept":
        concept = subjects_repository.get_concept(item_id)
        if concept is None:
            raise NotFoundError("Concept", item_id)
        return concept
    raise ValidationError(f"Unknown item type '{item_type}'")


def _user_level(user) -> int:
    return get_level_from_xp(user.total_xp, resolve_theme(user.theme_id))


# =============================================================================
# Content creation
# =============================================================================


def create_subject(
    user_id: str,
    name: str,
    description: str = "",
    study_style: str = "mixed",
    exam_mode: bool = False,
    exam_date: str | None = None,
) -> SubjectRecord:
    """Create a subject for a user.

    Raises:
        NotFoundError: If the user does not exist
        ValidationError: On an unknown study style or bad exam date
        DuplicateError: If the user already has a subject with this name
    """
    _require_user(user_id)
    if study_style not in STUDY_STYLES:
        raise ValidationError(f"Unknown study style '{study_style}'")
    exam_date = _normalize_exam_date(exam_date)

    subject = subjects_repository.insert_subject(
        user_id, name, description, study_style, exam_mode, exam_date
    )
    award_xp(user_id, "content", CONTENT_XP["subject"], source_id=subject.subject_id)
    logger.info("subjects.created", subject_id=subject.subject_id, user_id=user_id)
    return subject


def update_subject(subject_id: str, **fields) -> SubjectRecord:
    """Update name, description, study style or exam settings."""
    _require_subject(subject_id)
    if "study_style" in fields and fields["study_style"] not in STUDY_STYLES:
        raise ValidationError(f"Unknown study style '{fields['study_style']}'")
    if "exam_date" in fields:
        fields["exam_date"] = _normalize_exam_date(fields["exam_date"])
    return subjects_repository.update_subject(subject_id, **fields)  # type: ignore[return-value]


def _normalize_exam_date(exam_date: str | None) -> str | None:
    if not exam_date:
        return None
    try:
        return to_iso(parse_iso(exam_date))
    except ValueError as e:
        raise ValidationError(f"Invalid exam date '{exam_date}'") from e


def create_topic(subject_id: str, name: str, description: str = "") -> TopicRecord:
    """Create a topic and credit topic-creation XP to the subject owner."""
    subject = _require_subject(subject_id)
    topic = subjects_repository.insert_topic(subject_id, name, description)
    award_xp(
        subject.user_id,
        "content",
        CONTENT_XP["topic"],
        source_id=topic.topic_id,
        description=f"Created topic {name}",
    )
    return topic


def create_concept(
    topic_id: str, name: str, description: str = "", content: str = ""
) -> ConceptRecord:
    """Create a concept and credit concept-creation XP to the subject owner."""
    topic = _require_topic(topic_id)
    subject = _require_subject(topic.subject_id)
    concept = subjects_repository.insert_concept(topic_id, name, description, content)
    award_xp(
        subject.user_id,
        "content",
        CONTENT_XP["concept"],
        source_id=concept.concept_id,
        description=f"Created concept {name}",
    )
    return concept


# =============================================================================
# Study sessions
# =============================================================================


@dataclass
class StudyLogResult:
    session: StudySessionRecord
    session_xp: int
    phase_xp: int
    mastery_gained: int
    topic: TopicRecord | None = None
    phase_advanced: bool = False
    review: "ReviewOutcome | None" = None
    streak: int = 0

    @property
    def total_xp(self) -> int:
        return self.session_xp + self.phase_xp

    def to_dict(self) -> dict:
        return {
            "session": self.session.to_dict(),
            "xp": {
                "session": self.session_xp,
                "phase": self.phase_xp,
                "total": self.total_xp,
            },
            "mastery_gained": self.mastery_gained,
            "topic": self.topic.to_dict() if self.topic else None,
            "phase_advanced": self.phase_advanced,
            "review": self.review.to_dict() if self.review else None,
            "streak": self.streak,
        }


def log_study_session(
    user_id: str,
    subject_id: str,
    duration: int,
    topic_id: str | None = None,
    difficulty: str = "medium",
    activity_type: str = "study",
    confidence: int | None = None,
    rating: int | None = None,
    completed_activities: list[str] | None = None,
    notes: str = "",
    now: datetime | None = None,
) -> StudyLogResult:
    """Record a study session and apply its effects.

    Args:
        user_id: Who studied
        subject_id: Subject studied
        duration: Minutes, must be positive
        topic_id: Topic studied, if any
        difficulty: easy, medium, hard or expert
        activity_type: study, review or practice
        confidence: Self-assessed 0..100; mastery gain is confidence // 10
        rating: Recall rating 1..5; reschedules the topic
        completed_activities: Phase activities finished in this session
            (e.g. ["video", "recall"]); needs a topic
        notes: Free text
        now: Session time

    Returns:
        StudyLogResult with the stored session and the XP breakdown

    Raises:
        NotFoundError: Unknown user, subject or topic
        ValidationError: Out-of-range inputs
    """
    now = now or utc_now()
    user = _require_user(user_id)
    subject = _require_subject(subject_id, user_id)
    topic = _require_topic(topic_id, subject_id) if topic_id else None

    if duration <= 0:
        raise ValidationError("Duration must be positive")
    if activity_type not in STUDY_ACTIVITY_TYPES:
        raise ValidationError(f"Unknown activity type '{activity_type}'")
    if difficulty not in DIFFICULTY_MULTIPLIERS:
        raise ValidationError(f"Unknown difficulty '{difficulty}'")
    if confidence is not None and not 0 <= confidence <= 100:
        raise ValidationError("Confidence must be between 0 and 100")
    if rating is not None and not 1 <= rating <= 5:
        raise ValidationError("Rating must be between 1 and 5")
    if completed_activities and topic is None:
        raise ValidationError("Phase activities need a topic")

    session_xp = calculate_session_xp(activity_type, difficulty, duration, _user_level(user))
    mastery_gained = confidence // 10 if confidence is not None else session_xp.mastery_gained

    phase_xp = 0
    phase_advanced = False
    review = None
    if topic is not None:
        phase_xp, phase_advanced, topic = _apply_topic_study(
            topic, subject, duration, mastery_gained, session_xp.xp, completed_activities or [], now
        )
        if rating is not None:
            review = _apply_review(subject, "topic", topic, rating, now)
            topic = subjects_repository.get_topic(topic.topic_id)
        elif topic.next_review is None:
            interval = scheduling.suggest_initial_interval(
                topic.mastery_level, parse_iso(subject.exam_date), now
            )
            subjects_repository.set_next_review("topic", topic.topic_id, now + timedelta(days=interval))
            topic = subjects_repository.get_topic(topic.topic_id)

    total_xp = session_xp.xp + phase_xp
    subjects_repository.add_subject_progress(subject_id, total_xp, duration, now)

    session = sessions_repository.insert_study_session(
        user_id,
        subject_id,
        duration,
        now,
        topic_id=topic_id,
        activity_type=activity_type,
        difficulty=difficulty,
        rating=rating,
        confidence=confidence,
        phase=topic.current_phase if topic else None,
        mastery_gained=mastery_gained,
        xp_earned=total_xp,
        next_review=parse_iso(topic.next_review) if topic else None,
        notes=notes,
    )
    award_xp(
        user_id,
        "study",
        total_xp,
        source_id=session.session_id,
        description=f"{subject.name}: {duration} min",
        now=now,
    )
    streak = check_in(user_id, now)

    logger.info(
        "study.session_logged",
        session_id=session.session_id,
        subject_id=subject_id,
        topic_id=topic_id,
        xp=total_xp,
    )
    return StudyLogResult(
        session=session,
        session_xp=session_xp.xp,
        phase_xp=phase_xp,
        mastery_gained=mastery_gained,
        topic=topic,
        phase_advanced=phase_advanced,
        review=review,
        streak=streak.current_streak,
    )


def _apply_topic_study(
    topic: TopicRecord,
    subject: SubjectRecord,
    duration: int,
    mastery_gained: int,
    session_xp: int,
    completed_activities: list[str],
    now: datetime,
) -> tuple[int, bool, TopicRecord]:
    """Update topic mastery, study time and phase. Returns (phase_xp, advanced, topic)."""
    phase = (
        StudyPhase.from_dict(topic.phase_state)
        if topic.phase_state
        else scheduling.create_phase(topic.current_phase)
    )
    known = {a.type for a in phase.activities}
    unknown = [a for a in completed_activities if a not in known]
    if unknown:
        raise ValidationError(
            f"Activities {unknown} are not part of the {phase.type} phase "
            f"({', '.join(sorted(known))})"
        )

    before = phase.xp_earned
    for activity in completed_activities:
        phase = scheduling.update_activity(phase, activity, True)
    phase_xp = phase.xp_earned - before

    current_phase = topic.current_phase
    advanced = False
    if phase.status == "completed" and current_phase != "mastery":
        current_phase = scheduling.next_phase(current_phase)
        phase = scheduling.create_phase(current_phase)
        advanced = True
        logger.info("study.phase_advanced", topic_id=topic.topic_id, phase=current_phase)

    updated = subjects_repository.update_topic(
        topic.topic_id,
        mastery_level=min(100, topic.mastery_level + mastery_gained),
        xp=topic.xp + session_xp + phase_xp,
        total_study_time=topic.total_study_time + duration,
        current_phase=current_phase,
        phase_state=phase.to_dict(),
        last_studied=to_iso(now),
    )
    return phase_xp, advanced, updated  # type: ignore[return-value]


# =============================================================================
# Reviews
# =============================================================================


@dataclass
class ReviewOutcome:
    item_type: str
    item_id: str
    rating: int
    description: str
    interval_days: int
    next_review: datetime
    stability: float
    difficulty: float
    retrievability: float
    exam_adjusted: bool = False
    xp_gained: int = 0
    log_id: int | None = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["next_review"] = to_iso(self.next_review)
        return data


def _apply_review(
    subject: SubjectRecord,
    item_type: str,
    item: TopicRecord | ConceptRecord,
    rating: int,
    now: datetime,
) -> ReviewOutcome:
    """Reschedule an item and append to the review log."""
    config = load_app_config().scheduling
    state = MemoryState.from_item(item)
    interval, result = scheduling.review_interval_days(state, now, rating, item.current_phase)

    exam_adjusted = False
    exam_date = parse_iso(subject.exam_date)
    if subject.exam_mode and exam_date is not None:
        days_until_exam = scheduling.full_days_between(now, exam_date)
        if 0 < days_until_exam <= config.exam_prep_days:
            exam_interval = scheduling.exam_review_interval(
                days_until_exam,
                item.mastery_level,
                scheduling.is_weak_area(item.mastery_level, config.weak_area_threshold),
                rating,
                item.review_count,
            )
            if exam_interval < interval:
                interval = exam_interval
                exam_adjusted = True

    next_review = now + timedelta(days=interval)
    item_id = item.topic_id if item_type == "topic" else item.concept_id  # type: ignore[union-attr]

    subjects_repository.update_review_state(
        item_type,
        item_id,
        stability=result.stability,
        difficulty=result.difficulty,
        retrievability=result.retrievability,
        last_review=now,
        next_review=next_review,
        review_interval=interval,
    )
    log_id = subjects_repository.add_review_log(
        item_type, item_id, now, rating, interval, next_review
    )

    logger.info(
        "reviews.scheduled",
        item_type=item_type,
        item_id=item_id,
        rating=rating,
        interval=interval,
        exam_adjusted=exam_adjusted,
    )
    return ReviewOutcome(
        item_type=item_type,
        item_id=item_id,
        rating=rating,
        description=scheduling.get_rating_description(rating),
        interval_days=interval,
        next_review=next_review,
        stability=result.stability,
        difficulty=result.difficulty,
        retrievability=result.retrievability,
        exam_adjusted=exam_adjusted,
        log_id=log_id,
    )


def review_item(
    user_id: str,
    item_type: str,
    item_id: str,
    rating: int | None = None,
    passed: bool | None = None,
    duration: int = DEFAULT_REVIEW_MINUTES,
    now: datetime | None = None,
) -> ReviewOutcome:
    """Review a topic or concept.

    Exactly one of `rating` (1..5) or `passed` (pass = 4, fail = 2) is given.

    Raises:
        NotFoundError: Unknown user or item, or item of another user
        ValidationError: Bad rating input or item type
    """
    now = now or utc_now()
    if (rating is None) == (passed is None):
        raise ValidationError("Give either a rating or a pass/fail result")
    if rating is None:
        rating = scheduling.rating_from_pass_fail(bool(passed))
    if not 1 <= rating <= 5:
        raise ValidationError("Rating must be between 1 and 5")

    user = _require_user(user_id)
    item = _require_item(item_type, item_id)
    subject_id = subjects_repository.get_subject_id_for_item(item_type, item_id)
    subject = _require_subject(subject_id or "", user_id)

    outcome = _apply_review(subject, item_type, item, rating, now)

    xp = calculate_session_xp("review", "medium", duration, _user_level(user)).xp
    outcome.xp_gained = award_xp(
        user_id,
        "review",
        xp,
        source_id=item_id,
        description=f"Reviewed {item.name}",
        now=now,
    )
    return outcome


@dataclass
class DueReview:
    item_type: str
    item_id: str
    name: str
    subject_id: str
    subject_name: str
    topic_id: str
    mastery_level: int
    next_review: str
    review_count: int
    overdue: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


def list_due_reviews(user_id: str, now: datetime | None = None) -> list[DueReview]:
    """Items due now, oldest first; overdue when due before today."""
    now = now or utc_now()
    _require_user(user_id)

    return [
        DueReview(
            **item.to_dict(),
            overdue=days_between(parse_iso(item.next_review), now) >= 1,
        )
        for item in subjects_repository.list_due_items(user_id, now)
    ]


# =============================================================================
# Progress, quizzes, exam plans
# =============================================================================


@dataclass
class SubjectProgress:
    subject_id: str
    total_xp: int
    average_mastery: int
    completed_topics: int
    total_topics: int
    total_study_time: int
    last_studied: str | None
    topics: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


def subject_progress(subject_id: str) -> SubjectProgress:
    subject = _require_subject(subject_id)
    topics = subjects_repository.get_topics_for_subject(subject_id)

    average = round(sum(t.mastery_level for t in topics) / len(topics)) if topics else 0
    return SubjectProgress(
        subject_id=subject_id,
        total_xp=subject.xp,
        average_mastery=average,
        completed_topics=sum(1 for t in topics if t.mastery_level >= COMPLETED_TOPIC_MASTERY),
        total_topics=len(topics),
        total_study_time=subject.total_study_time,
        last_studied=subject.last_studied,
        topics=[
            {
                "topic_id": t.topic_id,
                "name": t.name,
                "mastery_level": t.mastery_level,
                "current_phase": t.current_phase,
                "next_review": t.next_review,
            }
            for t in topics
        ],
    )


def record_quiz_result(
    user_id: str,
    subject_id: str,
    score: int,
    total: int,
    weak_areas: list[str] | None = None,
    now: datetime | None = None,
) -> QuizResultRecord:
    """Store a quiz result and credit quiz-completion XP.

    Raises:
        ValidationError: If total < 1 or score is outside 0..total
    """
    now = now or utc_now()
    _require_user(user_id)
    _require_subject(subject_id, user_id)
    if total < 1 or not 0 <= score <= total:
        raise ValidationError("Score must be between 0 and total, total at least 1")

    xp = CONTENT_XP["quiz"]
    result = sessions_repository.insert_quiz_result(
        user_id, subject_id, score, total, now, weak_areas, xp_earned=xp
    )
    award_xp(user_id, "quiz", xp, source_id=result.quiz_id, description=f"Quiz {score}/{total}", now=now)
    return result


def subject_tree(subject_id: str) -> dict:
    """Subject with nested topics and concepts."""
    tree = subjects_repository.get_subject_tree(subject_id)
    if tree is None:
        raise NotFoundError("Subject", subject_id)
    return tree


def get_exam_plan(subject_id: str, now: datetime | None = None) -> scheduling.ReviewPlan | None:
    """Exam-preparation plan for a subject, None outside exam preparation."""
    now = now or utc_now()
    config = load_app_config().scheduling
    tree = subject_tree(subject_id)

    return scheduling.adjust_review_schedule(
        tree["subject"],
        tree["topics"],
        now,
        threshold=config.weak_area_threshold,
        prep_days=config.exam_prep_days,
    )
