"""Repository functions for study_sessions and quiz_results tables."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import datetime

import structlog

from spaced_recall.db.database import get_db
from spaced_recall.utils.dates import to_iso
from spaced_recall.utils.validators import new_id

logger = structlog.get_logger(__name__)


@dataclass
class StudySessionRecord:
    """Study session record from database."""

    session_id: str
    user_id: str
    subject_id: str
    topic_id: str | None
    activity_type: str
    difficulty: str
    duration_minutes: int
    rating: int | None
    confidence: int | None
    phase: str | None
    mastery_gained: int
    xp_earned: int
    next_review: str | None
    notes: str
    studied_at: str

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class QuizResultRecord:
    """Quiz result record from database."""

    quiz_id: str
    user_id: str
    subject_id: str
    score: int
    total: int
    weak_areas: list[str]
    xp_earned: int
    taken_at: str

    @property
    def percentage(self) -> float:
        return round(self.score / self.total * 100, 1) if self.total else 0.0

    def to_dict(self) -> dict:
        data = asdict(self)
        data["percentage"] = self.percentage
        return data


def insert_study_session(
    user_id: str,
    subject_id: str,
    duration_minutes: int,
    studied_at: datetime,
    topic_id: str | None = None,
    activity_type: str = "study",
    difficulty: str = "medium",
    rating: int | None = None,
    confidence: int | None = None,
    phase: str | None = None,
    mastery_gained: int = 0,
    xp_earned: int = 0,
    next_review: datetime | None = None,
    notes: str = "",
) -> StudySessionRecord:
    """Insert a study session.

    Returns:
        The stored StudySessionRecord
    """
    session_id = new_id("session")

    with get_db() as conn:
        conn.execute(
            """
            INSERT INTO study_sessions (
                session_id, user_id, subject_id, topic_id, activity_type,
                difficulty, duration_minutes, rating, confidence, phase,
                mastery_gained, xp_earned, next_review, notes, studied_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                session_id,
                user_id,
                subject_id,
                topic_id,
                activity_type,
                difficulty,
                duration_minutes,
                rating,
                confidence,
                phase,
                mastery_gained,
                xp_earned,
                to_iso(next_review),
                notes,
                to_iso(studied_at),
            ),
        )
        row = conn.execute(
            "SELECT * FROM study_sessions WHERE session_id = ?", (session_id,)
        ).fetchone()

    logger.debug("sessions.inserted", session_id=session_id, xp=xp_earned)
    return _row_to_session(row)


def list_study_sessions(
    user_id: str,
    subject_id: str | None = None,
    limit: int | None = None,
) -> list[StudySessionRecord]:
    """List study sessions of a user, newest first.

    Args:
        user_id: User identifier
        subject_id: Restrict to one subject
        limit: Maximum number of sessions
    """
    query = "SELECT * FROM study_sessions WHERE user_id = ?"
    params: list = [user_id]
    if subject_id is not None:
        query += " AND subject_id = ?"
        params.append(subject_id)
    query += " ORDER BY studied_at DESC, rowid DESC"
    if limit is not None:
        query += " LIMIT ?"
        params.append(limit)

    with get_db() as conn:
        rows = conn.execute(query, params).fetchall()

    return [_row_to_session(row) for row in rows]


def insert_quiz_result(
    user_id: str,
    subject_id: str,
    score: int,
    total: int,
    taken_at: datetime,
    weak_areas: list[str] | None = None,
    xp_earned: int = 0,
) -> QuizResultRecord:
    quiz_id = new_id("quiz")

    with get_db() as conn:
        conn.execute(
            """
            INSERT INTO quiz_results (
                quiz_id, user_id, subject_id, score, total,
                weak_areas, xp_earned, taken_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                quiz_id,
                user_id,
                subject_id,
                score,
                total,
                json.dumps(weak_areas or []),
                xp_earned,
                to_iso(taken_at),
            ),
        )
        row = conn.execute(
            "SELECT * FROM quiz_results WHERE quiz_id = ?", (quiz_id,)
        ).fetchone()

    logger.debug("quiz_results.inserted", quiz_id=quiz_id, score=score, total=total)
    return _row_to_quiz(row)


def list_quiz_results(
    user_id: str, subject_id: str | None = None
) -> list[QuizResultRecord]:
    """List quiz results, newest first."""
    query = "SELECT * FROM quiz_results WHERE user_id = ?"
    params: list = [user_id]
    if subject_id is not None:
        query += " AND subject_id = ?"
        params.append(subject_id)
    query += " ORDER BY taken_at DESC, rowid DESC"

    with get_db() as conn:
        rows = conn.execute(query, params).fetchall()

    return [_row_to_quiz(row) for row in rows]


def _row_to_session(row) -> StudySessionRecord:
    return StudySessionRecord(
        session_id=row["session_id"],
        user_id=row["user_id"],
        subject_id=row["subject_id"],
        topic_id=row["topic_id"],
        activity_type=row["activity_type"],
        difficulty=row["difficulty"],
        duration_minutes=row["duration_minutes"],
        rating=row["rating"],
        confidence=row["confidence"],
        phase=row["phase"],
        mastery_gained=row["mastery_gained"],
        xp_earned=row["xp_earned"],
        next_review=row["next_review"],
        notes=row["notes"],
        studied_at=row["studied_at"],
    )


def _row_to_quiz(row) -> QuizResultRecord:
    return QuizResultRecord(
        quiz_id=row["quiz_id"],
        user_id=row["user_id"],
        subject_id=row["subject_id"],
        score=row["score"],
        total=row["total"],
        weak_areas=json.loads(row["weak_areas"]),
        xp_earned=row["xp_earned"],
        taken_at=row["taken_at"],
    )
