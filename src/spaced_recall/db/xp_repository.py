"""Repository functions for the xp_events ledger.

Every XP award (study session, review, habit, todo, project, content
creation, streak milestone) is recorded as one event. User totals are
derived from the ledger.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime

import structlog

from spaced_recall.db.database import get_db
from spaced_recall.utils.dates import to_iso, utc_now

logger = structlog.get_logger(__name__)


@dataclass
class XPEventRecord:
    """XP event record from database."""

    event_id: int
    user_id: str
    source: str
    source_id: str | None
    xp: int
    description: str
    created_at: str

    def to_dict(self) -> dict:
        return asdict(self)


def record_xp_event(
    user_id: str,
    source: str,
    xp: int,
    source_id: str | None = None,
    description: str = "",
    created_at: datetime | None = None,
) -> int:
    """Record an XP award.

    Args:
        user_id: User receiving the XP
        source: Award category (e.g. "study", "review", "habit", "streak")
        xp: Amount awarded
        source_id: Entity that produced the award
        description: Human-readable reason
        created_at: Award time, defaults to now

    Returns:
        The new event_id
    """
    with get_db() as conn:
        cursor = conn.execute(
            """
            INSERT INTO xp_events (
                user_id, source, source_id, xp, description, created_at
            ) VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                user_id,
                source,
                source_id,
                xp,
                description,
                to_iso(created_at or utc_now()),
            ),
        )
        event_id = cursor.lastrowid

    logger.debug("xp.recorded", user_id=user_id, source=source, xp=xp)
    return int(event_id)


def list_xp_events(user_id: str, limit: int | None = None) -> list[XPEventRecord]:
    """List XP events of a user, newest first."""
    query = (
        "SELECT * FROM xp_events WHERE user_id = ? "
        "ORDER BY created_at DESC, event_id DESC"
    )
    params: list = [user_id]
    if limit is not None:
        query += " LIMIT ?"
        params.append(limit)

    with get_db() as conn:
        rows = conn.execute(query, params).fetchall()

    return [
        XPEventRecord(
            event_id=row["event_id"],
            user_id=row["user_id"],
            source=row["source"],
            source_id=row["source_id"],
            xp=row["xp"],
            description=row["description"],
            created_at=row["created_at"],
        )
        for row in rows
    ]


def sum_xp_by_source(user_id: str) -> dict[str, int]:
    """Total XP per source for a user."""
    with get_db() as conn:
        rows = conn.execute(
            """
            SELECT source, COALESCE(SUM(xp), 0) AS total
            FROM xp_events WHERE user_id = ?
            GROUP BY source
            """,
            (user_id,),
        ).fetchall()

    return {row["source"]: row["total"] for row in rows}
