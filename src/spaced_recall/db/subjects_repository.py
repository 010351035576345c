"""Repository functions for the subject hierarchy.

Provides CRUD operations for subjects, topics and concepts, their
spaced-repetition state and the review log.
"""

from __future__ import annotations

import json
import sqlite3
from dataclasses import asdict, dataclass
from datetime import datetime

import structlog

from spaced_recall.db.database import get_db
from spaced_recall.errors import DuplicateError
from spaced_recall.utils.dates import to_iso, utc_now
from spaced_recall.utils.validators import new_id

logger = structlog.get_logger(__name__)

SUBJECT_FIELDS = frozenset(
    {"name", "description", "study_style", "exam_mode", "exam_date"}
)
TOPIC_FIELDS = frozenset(
    {
        "name",
        "description",
        "mastery_level",
        "xp",
        "total_study_time",
        "current_phase",
        "phase_state",
        "last_studied",
    }
)
CONCEPT_FIELDS = frozenset(
    {"name", "description", "content", "mastery_level", "current_phase"}
)

_ITEM_TABLES = {
    "topic": ("topics", "topic_id"),
    "concept": ("concepts", "concept_id"),
}


# =============================================================================
# Records
# =============================================================================


@dataclass
class SubjectRecord:
    """Subject record from database."""

    subject_id: str
    user_id: str
    name: str
    description: str
    study_style: str
    xp: int
    total_study_time: int
    exam_mode: bool
    exam_date: str | None
    last_studied: str | None
    created_at: str
    updated_at: str

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class TopicRecord:
    """Topic record from database."""

    topic_id: str
    subject_id: str
    name: str
    description: str
    mastery_level: int
    xp: int
    total_study_time: int
    current_phase: str
    phase_state: dict | None
    stability: float | None
    difficulty: float | None
    retrievability: float | None
    last_review: str | None
    next_review: str | None
    review_interval: int | None
    review_count: int
    last_studied: str | None
    created_at: str
    updated_at: str

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ConceptRecord:
    """Concept record from database."""

    concept_id: str
    topic_id: str
    name: str
    description: str
    content: str
    mastery_level: int
    current_phase: str
    stability: float | None
    difficulty: float | None
    retrievability: float | None
    last_review: str | None
    next_review: str | None
    review_interval: int | None
    review_count: int
    created_at: str
    updated_at: str

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ReviewLogRecord:
    """One review of a topic or concept."""

    log_id: int
    item_type: str
    item_id: str
    reviewed_at: str
    rating: int
    interval_days: int
    next_review: str
    added_to_calendar: bool

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class DueItem:
    """A topic or concept whose next review is due."""

    item_type: str
    item_id: str
    name: str
    subject_id: str
    subject_name: str
    topic_id: str
    mastery_level: int
    next_review: str
    review_count: int

    def to_dict(self) -> dict:
        return asdict(self)


# =============================================================================
# Subjects
# =============================================================================


def insert_subject(
    user_id: str,
    name: str,
    description: str = "",
    study_style: str = "mixed",
    exam_mode: bool = False,
    exam_date: str | None = None,
) -> SubjectRecord:
    """Insert a new subject.

    Raises:
        DuplicateError: If the user already has a subject with this name
    """
    subject_id = new_id("subject")
    now = to_iso(utc_now())

    try:
        with get_db() as conn:
            conn.execute(
                """
                INSERT INTO subjects (
                    subject_id, user_id, name, description, study_style,
                    exam_mode, exam_date, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    subject_id,
                    user_id,
                    name,
                    description,
                    study_style,
                    int(exam_mode),
                    exam_date,
                    now,
                    now,
                ),
            )
    except sqlite3.IntegrityError as e:
        raise DuplicateError(f"Subject '{name}' already exists") from e

    logger.debug("subjects.inserted", subject_id=subject_id, user_id=user_id)
    return get_subject(subject_id)  # type: ignore[return-value]


def get_subject(subject_id: str) -> SubjectRecord | None:
    with get_db() as conn:
        row = conn.execute(
            "SELECT * FROM subjects WHERE subject_id = ?", (subject_id,)
        ).fetchone()

    if row is None:
        return None

    return _row_to_subject(row)


def get_subject_by_name(user_id: str, name: str) -> SubjectRecord | None:
    with get_db() as conn:
        row = conn.execute(
            "SELECT * FROM subjects WHERE user_id = ? AND name = ?",
            (user_id, name),
        ).fetchone()

    if row is None:
        return None

    return _row_to_subject(row)


def get_subjects_for_user(user_id: str) -> list[SubjectRecord]:
    """Get all subjects of a user, alphabetically."""
    with get_db() as conn:
        rows = conn.execute(
            "SELECT * FROM subjects WHERE user_id = ? ORDER BY name",
            (user_id,),
        ).fetchall()

    return [_row_to_subject(row) for row in rows]


def update_subject(subject_id: str, **fields) -> SubjectRecord | None:
    """Update editable subject fields.

    Raises:
        DuplicateError: If renaming collides with another subject
    """
    if "exam_mode" in fields:
        fields["exam_mode"] = int(bool(fields["exam_mode"]))
    _update("subjects", "subject_id", subject_id, SUBJECT_FIELDS, fields)
    return get_subject(subject_id)


def add_subject_progress(
    subject_id: str, xp: int, minutes: int, studied_at: datetime
) -> None:
    """Accumulate XP and study time on a subject."""
    with get_db() as conn:
        conn.execute(
            """
            UPDATE subjects
            SET xp = xp + ?, total_study_time = total_study_time + ?,
                last_studied = ?, updated_at = ?
            WHERE subject_id = ?
            """,
            (xp, minutes, to_iso(studied_at), to_iso(utc_now()), subject_id),
        )


def delete_subject(subject_id: str) -> bool:
    """Delete a subject with its topics and concepts."""
    with get_db() as conn:
        cursor = conn.execute(
            "DELETE FROM subjects WHERE subject_id = ?", (subject_id,)
        )

    deleted = cursor.rowcount > 0
    if deleted:
        logger.info("subjects.deleted", subject_id=subject_id)
    return deleted


# =============================================================================
# Topics
# =============================================================================


def insert_topic(subject_id: str, name: str, description: str = "") -> TopicRecord:
    """Insert a new topic.

    Raises:
        DuplicateError: If the subject already has a topic with this name
    """
    topic_id = new_id("topic")
    now = to_iso(utc_now())

    try:
        with get_db() as conn:
            conn.execute(
                """
                INSERT INTO topics (
                    topic_id, subject_id, name, description, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                (topic_id, subject_id, name, description, now, now),
            )
    except sqlite3.IntegrityError as e:
        raise DuplicateError(f"Topic '{name}' already exists") from e

    logger.debug("topics.inserted", topic_id=topic_id, subject_id=subject_id)
    return get_topic(topic_id)  # type: ignore[return-value]


def get_topic(topic_id: str) -> TopicRecord | None:
    with get_db() as conn:
        row = conn.execute(
            "SELECT * FROM topics WHERE topic_id = ?", (topic_id,)
        ).fetchone()

    if row is None:
        return None

    return _row_to_topic(row)


def get_topics_for_subject(subject_id: str) -> list[TopicRecord]:
    """Get topics of a subject in creation order."""
    with get_db() as conn:
        rows = conn.execute(
            "SELECT * FROM topics WHERE subject_id = ? ORDER BY created_at, rowid",
            (subject_id,),
        ).fetchall()

    return [_row_to_topic(row) for row in rows]


def update_topic(topic_id: str, **fields) -> TopicRecord | None:
    if "phase_state" in fields and fields["phase_state"] is not None:
        fields["phase_state"] = json.dumps(fields["phase_state"])
    _update("topics", "topic_id", topic_id, TOPIC_FIELDS, fields)
    return get_topic(topic_id)


def delete_topic(topic_id: str) -> bool:
    with get_db() as conn:
        cursor = conn.execute("DELETE FROM topics WHERE topic_id = ?", (topic_id,))

    deleted = cursor.rowcount > 0
    if deleted:
        logger.info("topics.deleted", topic_id=topic_id)
    return deleted


# =============================================================================
# Concepts
# =============================================================================


def insert_concept(
    topic_id: str, name: str, description: str = "", content: str = ""
) -> ConceptRecord:
    """Insert a new concept.

    Raises:
        DuplicateError: If the topic already has a concept with this name
    """
    concept_id = new_id("concept")
    now = to_iso(utc_now())

    try:
        with get_db() as conn:
            conn.execute(
                """
                INSERT INTO concepts (
                    concept_id, topic_id, name, description, content,
                    created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (concept_id, topic_id, name, description, content, now, now),
            )
    except sqlite3.IntegrityError as e:
        raise DuplicateError(f"Concept '{name}' already exists") from e

    logger.debug("concepts.inserted", concept_id=concept_id, topic_id=topic_id)
    return get_concept(concept_id)  # type: ignore[return-value]


def get_concept(concept_id: str) -> ConceptRecord | None:
    with get_db() as conn:
        row = conn.execute(
            "SELECT * FROM concepts WHERE concept_id = ?", (concept_id,)
        ).fetchone()

    if row is None:
        return None

    return _row_to_concept(row)


def get_concepts_for_topic(topic_id: str) -> list[ConceptRecord]:
    with get_db() as conn:
        rows = conn.execute(
            "SELECT * FROM concepts WHERE topic_id = ? ORDER BY created_at, rowid",
            (topic_id,),
        ).fetchall()

    return [_row_to_concept(row) for row in rows]


def update_concept(concept_id: str, **fields) -> ConceptRecord | None:
    _update("concepts", "concept_id", concept_id, CONCEPT_FIELDS, fields)
    return get_concept(concept_id)


def delete_concept(concept_id: str) -> bool:
    with get_db() as conn:
        cursor = conn.execute(
            "DELETE FROM concepts WHERE concept_id = ?", (concept_id,)
        )
    return cursor.rowcount > 0


def get_subject_id_for_item(item_type: str, item_id: str) -> str | None:
    """Find the owning subject of a topic or concept."""
    with get_db() as conn:
        if item_type == "topic":
            row = conn.execute(
                "SELECT subject_id FROM topics WHERE topic_id = ?", (item_id,)
            ).fetchone()
        else:
            row = conn.execute(
                """
                SELECT t.subject_id FROM concepts c
                JOIN topics t ON t.topic_id = c.topic_id
                WHERE c.concept_id = ?
                """,
                (item_id,),
            ).fetchone()

    return row["subject_id"] if row else None


# =============================================================================
# Review state and log
# =============================================================================


def update_review_state(
    item_type: str,
    item_id: str,
    stability: float,
    difficulty: float,
    retrievability: float,
    last_review: datetime,
    next_review: datetime,
    review_interval: int,
) -> None:
    """Store the spaced-repetition state of a topic or concept.

    Args:
        item_type: "topic" or "concept"
        item_id: Topic or concept identifier
        stability: Memory stability after the review
        difficulty: Item difficulty after the review
        retrievability: Recall probability at review time
        last_review: When the review happened
        next_review: When the item is next due
        review_interval: Days until next review
    """
    table, key = _ITEM_TABLES[item_type]

    with get_db() as conn:
        conn.execute(
            f"""
            UPDATE {table}
            SET stability = ?, difficulty = ?, retrievability = ?,
                last_review = ?, next_review = ?, review_interval = ?,
                review_count = review_count + 1, updated_at = ?
            WHERE {key} = ?
            """,
            (
                stability,
                difficulty,
                retrievability,
                to_iso(last_review),
                to_iso(next_review),
                review_interval,
                to_iso(utc_now()),
                item_id,
            ),
        )

    logger.debug(
        "reviews.state_updated",
        item_type=item_type,
        item_id=item_id,
        interval=review_interval,
    )


def set_next_review(item_type: str, item_id: str, next_review: datetime) -> None:
    """Schedule a first review without touching the memory state."""
    table, key = _ITEM_TABLES[item_type]
    with get_db() as conn:
        conn.execute(
            f"UPDATE {table} SET next_review = ? WHERE {key} = ?",
            (to_iso(next_review), item_id),
        )


def list_due_items(user_id: str, now: datetime) -> list[DueItem]:
    """List topics and concepts due for review, oldest due date first.

    Timestamps are compared as UTC ISO strings, which sort chronologically.
    """
    cutoff = to_iso(now)

    with get_db() as conn:
        topic_rows = conn.execute(
            """
            SELECT 'topic' AS item_type, t.topic_id AS item_id, t.name,
                   s.subject_id, s.name AS subject_name, t.topic_id,
                   t.mastery_level, t.next_review, t.review_count
            FROM topics t JOIN subjects s ON s.subject_id = t.subject_id
            WHERE s.user_id = ? AND t.next_review IS NOT NULL
              AND t.next_review <= ?
            """,
            (user_id, cutoff),
        ).fetchall()
        concept_rows = conn.execute(
            """
            SELECT 'concept' AS item_type, c.concept_id AS item_id, c.name,
                   s.subject_id, s.name AS subject_name, t.topic_id,
                   c.mastery_level, c.next_review, c.review_count
            FROM concepts c
            JOIN topics t ON t.topic_id = c.topic_id
            JOIN subjects s ON s.subject_id = t.subject_id
            WHERE s.user_id = ? AND c.next_review IS NOT NULL
              AND c.next_review <= ?
            """,
            (user_id, cutoff),
        ).fetchall()

    items = [
        DueItem(
            item_type=row["item_type"],
            item_id=row["item_id"],
            name=row["name"],
            subject_id=row["subject_id"],
            subject_name=row["subject_name"],
            topic_id=row["topic_id"],
            mastery_level=row["mastery_level"],
            next_review=row["next_review"],
            review_count=row["review_count"],
        )
        for row in [*topic_rows, *concept_rows]
    ]
    items.sort(key=lambda item: item.next_review)
    return items


def add_review_log(
    item_type: str,
    item_id: str,
    reviewed_at: datetime,
    rating: int,
    interval_days: int,
    next_review: datetime,
    added_to_calendar: bool = False,
) -> int:
    """Append a review to the log.

    Returns:
        The new log_id
    """
    with get_db() as conn:
        cursor = conn.execute(
            """
            INSERT INTO review_logs (
                item_type, item_id, reviewed_at, rating,
                interval_days, next_review, added_to_calendar
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                item_type,
                item_id,
                to_iso(reviewed_at),
                rating,
                interval_days,
                to_iso(next_review),
                int(added_to_calendar),
            ),
        )
        log_id = cursor.lastrowid

    return int(log_id)


def list_review_logs(item_type: str, item_id: str) -> list[ReviewLogRecord]:
    """Get the review history of an item, oldest first."""
    with get_db() as conn:
        rows = conn.execute(
            """
            SELECT * FROM review_logs
            WHERE item_type = ? AND item_id = ?
            ORDER BY reviewed_at, log_id
            """,
            (item_type, item_id),
        ).fetchall()

    return [
        ReviewLogRecord(
            log_id=row["log_id"],
            item_type=row["item_type"],
            item_id=row["item_id"],
            reviewed_at=row["reviewed_at"],
            rating=row["rating"],
            interval_days=row["interval_days"],
            next_review=row["next_review"],
            added_to_calendar=bool(row["added_to_calendar"]),
        )
        for row in rows
    ]


def mark_review_in_calendar(log_id: int) -> None:
    with get_db() as conn:
        conn.execute(
            "UPDATE review_logs SET added_to_calendar = 1 WHERE log_id = ?",
            (log_id,),
        )


def get_subject_tree(subject_id: str) -> dict | None:
    """Get a subject with its topics and their concepts as nested dicts.

    Returns:
        {"subject": {...}, "topics": [{..., "concepts": [...]}]} or None
    """
    subject = get_subject(subject_id)
    if subject is None:
        return None

    topics = []
    for topic in get_topics_for_subject(subject_id):
        topic_dict = topic.to_dict()
        topic_dict["concepts"] = [
            c.to_dict() for c in get_concepts_for_topic(topic.topic_id)
        ]
        topics.append(topic_dict)

    return {"subject": subject.to_dict(), "topics": topics}


# =============================================================================
# Helpers
# =============================================================================


def _update(
    table: str, key_column: str, key: str, allowed: frozenset[str], fields: dict
) -> None:
    unknown = set(fields) - allowed
    if unknown:
        raise ValueError(f"Unknown {table} fields: {sorted(unknown)}")
    if not fields:
        return

    assignments = ", ".join(f"{name} = ?" for name in fields)
    values = list(fields.values()) + [to_iso(utc_now()), key]

    try:
        with get_db() as conn:
            conn.execute(
                f"UPDATE {table} SET {assignments}, updated_at = ? "
                f"WHERE {key_column} = ?",
                values,
            )
    except sqlite3.IntegrityError as e:
        raise DuplicateError(f"Name '{fields.get('name')}' already exists") from e


def _row_to_subject(row) -> SubjectRecord:
    return SubjectRecord(
        subject_id=row["subject_id"],
        user_id=row["user_id"],
        name=row["name"],
        description=row["description"],
        study_style=row["study_style"],
        xp=row["xp"],
        total_study_time=row["total_study_time"],
        exam_mode=bool(row["exam_mode"]),
        exam_date=row["exam_date"],
        last_studied=row["last_studied"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_topic(row) -> TopicRecord:
    return TopicRecord(
        topic_id=row["topic_id"],
        subject_id=row["subject_id"],
        name=row["name"],
        description=row["description"],
        mastery_level=row["mastery_level"],
        xp=row["xp"],
        total_study_time=row["total_study_time"],
        current_phase=row["current_phase"],
        phase_state=json.loads(row["phase_state"]) if row["phase_state"] else None,
        stability=row["stability"],
        difficulty=row["difficulty"],
        retrievability=row["retrievability"],
        last_review=row["last_review"],
        next_review=row["next_review"],
        review_interval=row["review_interval"],
        review_count=row["review_count"],
        last_studied=row["last_studied"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_concept(row) -> ConceptRecord:
    return ConceptRecord(
        concept_id=row["concept_id"],
        topic_id=row["topic_id"],
        name=row["name"],
        description=row["description"],
        content=row["content"],
        mastery_level=row["mastery_level"],
        current_phase=row["current_phase"],
        stability=row["stability"],
        difficulty=row["difficulty"],
        retrievability=row["retrievability"],
        last_review=row["last_review"],
        next_review=row["next_review"],
        review_interval=row["review_interval"],
        review_count=row["review_count"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )
