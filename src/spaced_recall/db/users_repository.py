"""Repository functions for users table.

Provides CRUD operations for users and their progression counters
(XP, tokens, streaks and theme loyalty).
"""

from __future__ import annotations

import sqlite3
from dataclasses import asdict, dataclass

import structlog

from spaced_recall.db.database import get_db
from spaced_recall.errors import DuplicateError
from spaced_recall.utils.dates import to_iso, utc_now
from spaced_recall.utils.validators import new_id

logger = structlog.get_logger(__name__)

# Columns that update_user_stats may write
STAT_FIELDS = frozenset(
    {
        "total_xp",
        "tokens",
        "current_streak",
        "highest_streak",
        "last_login",
        "theme_id",
        "theme_started_at",
        "theme_total_days",
        "theme_streak_days",
        "theme_last_active",
        "loyalty_points",
        "stars",
    }
)


@dataclass
class UserRecord:
    """User record from database."""

    user_id: str
    name: str
    email: str
    theme_id: str
    total_xp: int
    tokens: int
    current_streak: int
    highest_streak: int
    last_login: str | None
    theme_started_at: str | None
    theme_total_days: int
    theme_streak_days: int
    theme_last_active: str | None
    loyalty_points: int
    stars: int
    created_at: str
    updated_at: str

    def to_dict(self) -> dict:
        return asdict(self)


def insert_user(name: str, email: str = "", theme_id: str = "neutral") -> UserRecord:
    """Insert a new user.

    Args:
        name: Unique display name
        email: Optional email address
        theme_id: Progression theme

    Returns:
        The created UserRecord

    Raises:
        DuplicateError: If a user with the same name exists
    """
    user_id = new_id("user")
    now = to_iso(utc_now())

    try:
        with get_db() as conn:
            conn.execute(
                """
                INSERT INTO users (
                    user_id, name, email, theme_id,
                    theme_started_at, theme_total_days, theme_streak_days,
                    theme_last_active, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, 1, 1, ?, ?, ?)
                """,
                (user_id, name, email, theme_id, now, now, now, now),
            )
    except sqlite3.IntegrityError as e:
        raise DuplicateError(f"User '{name}' already exists") from e

    logger.debug("users.inserted", user_id=user_id)
    return get_user(user_id)  # type: ignore[return-value]


def get_user(user_id: str) -> UserRecord | None:
    """Get user by ID.

    Returns:
        UserRecord if found, None otherwise
    """
    with get_db() as conn:
        row = conn.execute(
            "SELECT * FROM users WHERE user_id = ?", (user_id,)
        ).fetchone()

    if row is None:
        return None

    return _row_to_record(row)


def get_all_users() -> list[UserRecord]:
    """Get all users, oldest first."""
    with get_db() as conn:
        rows = conn.execute("SELECT * FROM users ORDER BY created_at").fetchall()

    return [_row_to_record(row) for row in rows]


def update_user_stats(user_id: str, **fields) -> UserRecord | None:
    """Update progression counters for a user.

    Args:
        user_id: User identifier
        **fields: Column values; keys must be in STAT_FIELDS

    Returns:
        Updated UserRecord, or None if the user does not exist

    Raises:
        ValueError: If an unknown column is given
    """
    unknown = set(fields) - STAT_FIELDS
    if unknown:
        raise ValueError(f"Unknown user fields: {sorted(unknown)}")

    if fields:
        assignments = ", ".join(f"{name} = ?" for name in fields)
        values = list(fields.values()) + [to_iso(utc_now()), user_id]
        with get_db() as conn:
            conn.execute(
                f"UPDATE users SET {assignments}, updated_at = ? WHERE user_id = ?",
                values,
            )
        logger.debug("users.stats_updated", user_id=user_id, fields=sorted(fields))

    return get_user(user_id)


def delete_user(user_id: str) -> bool:
    """Delete a user and everything they own.

    Returns:
        True if a row was deleted
    """
    with get_db() as conn:
        cursor = conn.execute("DELETE FROM users WHERE user_id = ?", (user_id,))

    deleted = cursor.rowcount > 0
    if deleted:
        logger.info("users.deleted", user_id=user_id)
    return deleted


def _row_to_record(row) -> UserRecord:
    """Convert database row to UserRecord."""
    return UserRecord(
        user_id=row["user_id"],
        name=row["name"],
        email=row["email"],
        theme_id=row["theme_id"],
        total_xp=row["total_xp"],
        tokens=row["tokens"],
        current_streak=row["current_streak"],
        highest_streak=row["highest_streak"],
        last_login=row["last_login"],
        theme_started_at=row["theme_started_at"],
        theme_total_days=row["theme_total_days"],
        theme_streak_days=row["theme_streak_days"],
        theme_last_active=row["theme_last_active"],
        loyalty_points=row["loyalty_points"],
        stars=row["stars"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )
