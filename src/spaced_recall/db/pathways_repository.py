"""Repository functions for pathways and user_pathways tables.

A pathway is a shared learning route: branches hold stages, stages hold
modules. The nested structure is stored as one JSON column. Users join
pathways through user_pathways.
"""

from __future__ import annotations

import json
import sqlite3
from dataclasses import asdict, dataclass, field

import structlog

from spaced_recall.db.database import get_db
from spaced_recall.errors import DuplicateError
from spaced_recall.utils.dates import to_iso, utc_now
from spaced_recall.utils.validators import new_id

logger = structlog.get_logger(__name__)


@dataclass
class PathwayRecord:
    """Pathway record from database."""

    pathway_id: str
    name: str
    description: str
    branches: list[dict] = field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class UserPathwayRecord:
    """A user's membership in a pathway."""

    user_id: str
    pathway_id: str
    joined_at: str
    completed_at: str | None
    progress: int
    xp: int

    def to_dict(self) -> dict:
        return asdict(self)


# =============================================================================
# Pathways
# =============================================================================


def insert_pathway(
    name: str, description: str = "", branches: list[dict] | None = None
) -> PathwayRecord:
    """Insert a new pathway.

    Raises:
        DuplicateError: If a pathway with the same name exists
    """
    pathway_id = new_id("pathway")
    now = to_iso(utc_now())

    try:
        with get_db() as conn:
            conn.execute(
                """
                INSERT INTO pathways (
                    pathway_id, name, description, branches, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                (pathway_id, name, description, json.dumps(branches or []), now, now),
            )
    except sqlite3.IntegrityError as e:
        raise DuplicateError(f"Pathway '{name}' already exists") from e

    logger.debug("pathways.inserted", pathway_id=pathway_id)
    return get_pathway(pathway_id)  # type: ignore[return-value]


def get_pathway(pathway_id: str) -> PathwayRecord | None:
    with get_db() as conn:
        row = conn.execute(
            "SELECT * FROM pathways WHERE pathway_id = ?", (pathway_id,)
        ).fetchone()

    if row is None:
        return None

    return _row_to_pathway(row)


def list_pathways() -> list[PathwayRecord]:
    """All pathways, alphabetically."""
    with get_db() as conn:
        rows = conn.execute("SELECT * FROM pathways ORDER BY name").fetchall()

    return [_row_to_pathway(row) for row in rows]


def update_pathway(
    pathway_id: str,
    name: str | None = None,
    description: str | None = None,
    branches: list[dict] | None = None,
) -> PathwayRecord | None:
    """Update the given fields of a pathway.

    Returns:
        The updated record, None if the pathway does not exist

    Raises:
        DuplicateError: If renaming collides with another pathway
    """
    fields: dict[str, str] = {}
    if name is not None:
        fields["name"] = name
    if description is not None:
        fields["description"] = description
    if branches is not None:
        fields["branches"] = json.dumps(branches)

    if fields:
        assignments = ", ".join(f"{column} = ?" for column in fields)
        try:
            with get_db() as conn:
                conn.execute(
                    f"UPDATE pathways SET {assignments}, updated_at = ? WHERE pathway_id = ?",
                    [*fields.values(), to_iso(utc_now()), pathway_id],
                )
        except sqlite3.IntegrityError as e:
            raise DuplicateError(f"Pathway '{name}' already exists") from e

    return get_pathway(pathway_id)


def delete_pathway(pathway_id: str) -> bool:
    """Delete a pathway and every membership in it."""
    with get_db() as conn:
        cursor = conn.execute("DELETE FROM pathways WHERE pathway_id = ?", (pathway_id,))

    deleted = cursor.rowcount > 0
    if deleted:
        logger.info("pathways.deleted", pathway_id=pathway_id)
    return deleted


# =============================================================================
# Memberships
# =============================================================================


def join_pathway(user_id: str, pathway_id: str, joined_at: str) -> UserPathwayRecord:
    """Add a membership; joining again keeps the first join time."""
    with get_db() as conn:
        conn.execute(
            """
            INSERT INTO user_pathways (user_id, pathway_id, joined_at)
            VALUES (?, ?, ?)
            ON CONFLICT(user_id, pathway_id) DO NOTHING
            """,
            (user_id, pathway_id, joined_at),
        )

    logger.info("pathways.joined", user_id=user_id, pathway_id=pathway_id)
    return get_user_pathway(user_id, pathway_id)  # type: ignore[return-value]


def unjoin_pathway(user_id: str, pathway_id: str) -> bool:
    with get_db() as conn:
        cursor = conn.execute(
            "DELETE FROM user_pathways WHERE user_id = ? AND pathway_id = ?",
            (user_id, pathway_id),
        )

    left = cursor.rowcount > 0
    if left:
        logger.info("pathways.left", user_id=user_id, pathway_id=pathway_id)
    return left


def get_user_pathway(user_id: str, pathway_id: str) -> UserPathwayRecord | None:
    with get_db() as conn:
        row = conn.execute(
            "SELECT * FROM user_pathways WHERE user_id = ? AND pathway_id = ?",
            (user_id, pathway_id),
        ).fetchone()

    if row is None:
        return None

    return _row_to_membership(row)


def list_user_pathways(user_id: str) -> list[UserPathwayRecord]:
    """Memberships of a user, oldest join first."""
    with get_db() as conn:
        rows = conn.execute(
            "SELECT * FROM user_pathways WHERE user_id = ? ORDER BY joined_at, pathway_id",
            (user_id,),
        ).fetchall()

    return [_row_to_membership(row) for row in rows]


# =============================================================================
# Helpers
# =============================================================================


def _row_to_pathway(row) -> PathwayRecord:
    return PathwayRecord(
        pathway_id=row["pathway_id"],
        name=row["name"],
        description=row["description"],
        branches=json.loads(row["branches"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_membership(row) -> UserPathwayRecord:
    return UserPathwayRecord(
        user_id=row["user_id"],
        pathway_id=row["pathway_id"],
        joined_at=row["joined_at"],
        completed_at=row["completed_at"],
        progress=row["progress"],
        xp=row["xp"],
    )
