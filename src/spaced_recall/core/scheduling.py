"""Spaced repetition scheduling.

Memory model:
- difficulty moves by ((6 - rating) / 5 - 0.5) * 0.1 per review, rating 1..5
  where 1 is the hardest recall
- stability grows by stability * (rating / 5) * (1 / difficulty)
- retrievability decays as exp(-hours_since_review / (stability * 24))
- next review falls when retrievability reaches the 0.9 target

Study phases (initial -> consolidation -> mastery) carry XP-bearing
activities and stretch or shrink review intervals.

Exam mode shortens intervals in the 30 days before an exam, harder for weak
areas (mastery below 60).
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Iterable

from spaced_recall.utils.dates import ensure_aware, parse_iso

# =============================================================================
# Constants
# =============================================================================

TARGET_RETRIEVABILITY = 0.9

INITIAL_STABILITY = 1.0
INITIAL_DIFFICULTY = 0.3
INITIAL_RETRIEVABILITY = 0.9

PASS_RATING = 4
FAIL_RATING = 2

PHASES = ("initial", "consolidation", "mastery")

PHASE_ACTIVITY_XP: dict[str, dict[str, int]] = {
    "initial": {"video": 50, "book": 50, "recall": 100},
    "consolidation": {"mindmap": 150, "questions": 100},
    "mastery": {"questions": 200, "teaching": 300},
}

SPACING_INTERVALS = {"initial": 1, "consolidation": 3, "mastery": 7}

PHASE_MULTIPLIERS = {"initial": 0.8, "consolidation": 1.0, "mastery": 1.2}

PHASE_EXPLANATIONS = {
    "initial": "Initial learning phase (shorter intervals)",
    "consolidation": "Consolidation phase (standard intervals)",
    "mastery": "Mastery phase (longer intervals)",
}

RATING_DESCRIPTIONS = {
    1: "Difficult to recall - will need shorter interval",
    2: "Recalled with effort - moderate interval",
    3: "Recalled well - standard interval",
    4: "Perfect recall - extended interval",
    5: "Very easy recall - maximum interval",
}

WEAK_AREA_THRESHOLD = 60
CRITICAL_EXAM_PERIOD = 7
HIGH_PRIORITY_PERIOD = 14
EXAM_PREP_PERIOD = 30


# =============================================================================
# Memory model
# =============================================================================


@dataclass
class MemoryState:
    """Spaced-repetition state of a topic or concept."""

    stability: float = INITIAL_STABILITY
    difficulty: float = INITIAL_DIFFICULTY
    retrievability: float = INITIAL_RETRIEVABILITY
    last_review: datetime | None = None

    @classmethod
    def from_item(cls, item) -> "MemoryState":
        """Build state from a topic/concept record, defaulting unset fields."""
        return cls(
            stability=item.stability if item.stability is not None else INITIAL_STABILITY,
            difficulty=(
                item.difficulty if item.difficulty is not None else INITIAL_DIFFICULTY
            ),
            retrievability=(
                item.retrievability
                if item.retrievability is not None
                else INITIAL_RETRIEVABILITY
            ),
            last_review=parse_iso(item.last_review),
        )


@dataclass
class Scheduling:
    """Result of one review."""

    scheduled_date: datetime
    stability: float
    difficulty: float
    retrievability: float


class SpacedRepetition:
    """Stability/difficulty/retrievability update and next-review calculation."""

    MIN_STABILITY = 0.1
    MAX_STABILITY = 100.0
    MIN_DIFFICULTY = 0.1
    MAX_DIFFICULTY = 10.0

    @classmethod
    def repeat(cls, state: MemoryState, now: datetime, rating: int) -> Scheduling:
        """Apply a review with the given rating (1 hardest, 5 easiest).

        Difficulty is updated first; the new stability uses the new difficulty.
        """
        rating = clamp_rating(rating)
        difficulty = cls.update_difficulty(state.difficulty, rating)
        stability = cls.update_stability(state.stability, difficulty, rating)
        retrievability = cls.retrievability(stability, now, state.last_review)
        scheduled_date = cls.next_review_date(stability, now)

        return Scheduling(
            scheduled_date=scheduled_date,
            stability=stability,
            difficulty=difficulty,
            retrievability=retrievability,
        )

    @classmethod
    def update_difficulty(cls, difficulty: float, rating: int) -> float:
        rating_factor = (6 - rating) / 5
        new_difficulty = difficulty + (rating_factor - 0.5) * 0.1
        return max(cls.MIN_DIFFICULTY, min(cls.MAX_DIFFICULTY, new_difficulty))

    @classmethod
    def update_stability(cls, stability: float, difficulty: float, rating: int) -> float:
        rating_factor = rating / 5
        new_stability = stability * (1 + rating_factor * (1 / difficulty))
        return max(cls.MIN_STABILITY, min(cls.MAX_STABILITY, new_stability))

    @staticmethod
    def retrievability(
        stability: float, now: datetime, last_review: datetime | None
    ) -> float:
        """Recall probability at `now`; 1.0 for an item never reviewed."""
        if last_review is None:
            return 1.0
        hours = (ensure_aware(now) - ensure_aware(last_review)).total_seconds() / 3600
        return math.exp(-hours / (stability * 24))

    @staticmethod
    def next_review_date(stability: float, now: datetime) -> datetime:
        hours = -math.log(TARGET_RETRIEVABILITY) * stability * 24
        return now + timedelta(hours=hours)


def clamp_rating(rating: int) -> int:
    return max(1, min(5, int(rating)))


def rating_from_pass_fail(passed: bool) -> int:
    """Pass maps to 4 (easy), fail to 2 (hard)."""
    return PASS_RATING if passed else FAIL_RATING


def get_rating_description(rating: int) -> str:
    return RATING_DESCRIPTIONS[clamp_rating(rating)]


def full_days_between(start: datetime, end: datetime) -> int:
    """Whole days from start to end, truncated toward zero."""
    seconds = (ensure_aware(end) - ensure_aware(start)).total_seconds()
    return int(seconds / 86400)


def review_interval_days(
    state: MemoryState, now: datetime, rating: int, phase: str = "initial"
) -> tuple[int, Scheduling]:
    """Days until the next review, adjusted for the study phase.

    Args:
        state: Current memory state
        now: Review time
        rating: Recall quality 1..5
        phase: Current study phase of the item

    Returns:
        (interval_days, scheduling) with interval_days >= 1
    """
    scheduling = SpacedRepetition.repeat(state, now, rating)
    multiplier = PHASE_MULTIPLIERS.get(phase, 1.0)
    days = round(full_days_between(now, scheduling.scheduled_date) * multiplier)
    return max(1, days), scheduling


# =============================================================================
# Study phases
# =============================================================================


@dataclass
class PhaseActivity:
    type: str
    xp: int
    completed: bool = False
    notes: str | None = None


@dataclass
class StudyPhase:
    """A study phase with its activities."""

    type: str
    status: str = "in-progress"
    xp_earned: int = 0
    activities: list[PhaseActivity] = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return all(a.completed for a in self.activities)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "StudyPhase":
        return cls(
            type=data["type"],
            status=data.get("status", "in-progress"),
            xp_earned=data.get("xp_earned", 0),
            activities=[PhaseActivity(**a) for a in data.get("activities", [])],
        )


def create_phase(phase_type: str) -> StudyPhase:
    """Create a fresh phase with all activities pending.

    Raises:
        ValueError: If phase_type is not a known phase
    """
    if phase_type not in PHASE_ACTIVITY_XP:
        raise ValueError(f"Unknown phase: {phase_type}")

    return StudyPhase(
        type=phase_type,
        activities=[
            PhaseActivity(type=name, xp=xp)
            for name, xp in PHASE_ACTIVITY_XP[phase_type].items()
        ],
    )


def calculate_phase_xp(phase: StudyPhase) -> int:
    return sum(a.xp for a in phase.activities if a.completed)


def update_activity(
    phase: StudyPhase, activity_type: str, completed: bool, notes: str | None = None
) -> StudyPhase:
    """Return a copy of the phase with one activity marked.

    XP earned and status are recomputed from the activities.
    """
    activities = [
        PhaseActivity(type=a.type, xp=a.xp, completed=completed, notes=notes)
        if a.type == activity_type
        else PhaseActivity(type=a.type, xp=a.xp, completed=a.completed, notes=a.notes)
        for a in phase.activities
    ]
    updated = StudyPhase(type=phase.type, activities=activities)
    updated.xp_earned = calculate_phase_xp(updated)
    updated.status = "completed" if updated.is_complete else "in-progress"
    return updated


def next_phase(current: str) -> str:
    """initial -> consolidation -> mastery; mastery stays mastery."""
    if current == "initial":
        return "consolidation"
    return "mastery"


def get_spacing_interval(phase: str) -> int:
    return SPACING_INTERVALS[phase]


# =============================================================================
# Exam mode
# =============================================================================


@dataclass
class WeakArea:
    name: str
    mastery_level: int
    type: str


@dataclass
class Recommendation:
    priority: str
    items: list[WeakArea]
    frequency: str


@dataclass
class ReviewPlan:
    """Exam-preparation review plan for a subject."""

    days_until_exam: int
    weak_areas: list[WeakArea]
    review_intervals: dict[str, int]
    recommendations: list[Recommendation]
    message: str
    increased_frequency: bool = True

    def to_dict(self) -> dict:
        return asdict(self)


def exam_review_interval(
    days_until_exam: int,
    mastery_level: int,
    is_weak_area: bool,
    last_rating: int | None = None,
    review_count: int = 0,
) -> int:
    """Review interval in days while preparing for an exam.

    Args:
        days_until_exam: Whole days left
        mastery_level: Item mastery 0..100
        is_weak_area: Whether the item is below the weak-area threshold
        last_rating: Rating of the latest review (1..5), defaults to 3
        review_count: Reviews so far

    Returns:
        Interval in days, at least 1
    """
    rating = 3 if last_rating is None else last_rating

    if days_until_exam <= CRITICAL_EXAM_PERIOD:
        if is_weak_area:
            interval = 1 if mastery_level < 30 else 2 if mastery_level < 50 else 3
        else:
            interval = 2 if mastery_level < 50 else 3
    elif days_until_exam <= HIGH_PRIORITY_PERIOD:
        if is_weak_area:
            interval = 2 if mastery_level < 40 else 3
        else:
            interval = max(3, mastery_level // 20)
    else:
        if is_weak_area:
            interval = max(3, mastery_level // 15)
        else:
            interval = max(4, mastery_level // 10)

    if rating <= 2:
        interval = max(1, interval - 1)
    if review_count >= 3 and rating >= 3:
        interval = min(interval + 1, days_until_exam // 3)

    # Leave room for at least 5 (weak) or 3 reviews before the exam
    minimum_reviews = 5 if is_weak_area else 3
    interval = min(interval, days_until_exam // minimum_reviews)

    return max(1, interval)


def suggest_initial_interval(
    mastery_level: int, exam_date: datetime | None = None, now: datetime | None = None
) -> int:
    """First review interval for a newly studied item."""
    interval = max(1, mastery_level // 20)

    if exam_date is not None and now is not None:
        days_until_exam = full_days_between(now, exam_date)
        if days_until_exam > 0:
            desired_reviews = 5 if mastery_level < 50 else 3
            interval = min(interval, days_until_exam // desired_reviews)

    return max(1, interval)


def is_weak_area(mastery_level: int, threshold: int = WEAK_AREA_THRESHOLD) -> bool:
    return mastery_level < threshold


def find_weak_areas(
    topics: Iterable[dict], threshold: int = WEAK_AREA_THRESHOLD
) -> list[WeakArea]:
    """Topics and concepts below the threshold, lowest mastery first."""
    areas: list[WeakArea] = []
    for topic in topics:
        if topic["mastery_level"] < threshold:
            areas.append(WeakArea(topic["name"], topic["mastery_level"], "topic"))
        for concept in topic.get("concepts") or []:
            if concept["mastery_level"] < threshold:
                areas.append(
                    WeakArea(concept["name"], concept["mastery_level"], "concept")
                )

    areas.sort(key=lambda a: a.mastery_level)
    return areas


def _recommendations(days_until_exam: int, weak_areas: list[WeakArea]) -> list[Recommendation]:
    recommendations = []

    if days_until_exam <= CRITICAL_EXAM_PERIOD:
        recommendations.append(
            Recommendation(
                priority="Immediate",
                items=[a for a in weak_areas if a.mastery_level < 40],
                frequency="Daily review required",
            )
        )

    if days_until_exam <= HIGH_PRIORITY_PERIOD:
        recommendations.append(
            Recommendation(
                priority="High",
                items=[a for a in weak_areas if 40 <= a.mastery_level < 60],
                frequency="Review every 2-3 days",
            )
        )

    spacing = "3-4" if days_until_exam <= HIGH_PRIORITY_PERIOD else "4-5"
    recommendations.append(
        Recommendation(
            priority="Normal",
            items=[a for a in weak_areas if a.mastery_level >= 60],
            frequency=f"Review every {spacing} days",
        )
    )
    return recommendations


def _exam_prep_message(days_until_exam: int, weak_areas: list[WeakArea]) -> str:
    if days_until_exam <= CRITICAL_EXAM_PERIOD:
        return (
            "Critical exam preparation period! "
            f"Focus on {len(weak_areas)} weak areas with daily reviews."
        )
    if days_until_exam <= HIGH_PRIORITY_PERIOD:
        return (
            "High priority review period. "
            "Increase focus on weak areas with reviews every 2-3 days."
        )
    return (
        "Exam preparation mode active. "
        "Maintaining regular review schedule with emphasis on weak areas."
    )


def adjust_review_schedule(
    subject: dict,
    topics: list[dict],
    now: datetime,
    threshold: int = WEAK_AREA_THRESHOLD,
    prep_days: int = EXAM_PREP_PERIOD,
) -> ReviewPlan | None:
    """Build the exam-preparation plan for a subject.

    Args:
        subject: Subject fields, needs exam_mode and exam_date
        topics: Topics with name, mastery_level and nested concepts
        now: Reference time
        threshold: Mastery below which an item is weak
        prep_days: Days before the exam when the plan applies

    Returns:
        ReviewPlan, or None when exam mode is off, there is no exam date,
        or the exam is further away than prep_days
    """
    exam_date = subject.get("exam_date")
    if not subject.get("exam_mode") or not exam_date:
        return None

    if isinstance(exam_date, str):
        exam_date = parse_iso(exam_date)

    days_until_exam = full_days_between(now, exam_date)
    if days_until_exam > prep_days:
        return None

    weak_areas = find_weak_areas(topics, threshold)

    return ReviewPlan(
        days_until_exam=days_until_exam,
        weak_areas=weak_areas,
        review_intervals={
            "critical": exam_review_interval(days_until_exam, 0, True),
            "weak": exam_review_interval(days_until_exam, 50, True),
            "normal": exam_review_interval(days_until_exam, 80, False),
        },
        recommendations=_recommendations(days_until_exam, weak_areas),
        message=_exam_prep_message(days_until_exam, weak_areas),
    )
