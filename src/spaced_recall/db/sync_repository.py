"""Repository functions for sync_records and integrations tables.

A sync record links a local subject/topic/concept to its counterpart in
Notion or an Obsidian vault. One record exists per (source, system) pair.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass

import structlog

from spaced_recall.db.database import get_db
from spaced_recall.utils.dates import to_iso, utc_now

logger = structlog.get_logger(__name__)


@dataclass
class SyncRecord:
    """Sync record from database."""

    record_id: str
    user_id: str
    source_id: str
    external_id: str
    external_system: str
    external_path: str | None
    content_type: str
    last_synced_at: str
    last_modified_local: str
    last_modified_external: str
    sync_status: str
    hash: str

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class IntegrationRecord:
    """Stored connection to an external service."""

    user_id: str
    provider: str
    access_token: str
    workspace_id: str
    workspace_name: str
    vault_path: str
    created_at: str
    updated_at: str

    def to_dict(self, include_token: bool = False) -> dict:
        data = asdict(self)
        if not include_token:
            data.pop("access_token")
        return data


def sync_record_id(source_id: str, external_system: str) -> str:
    return f"sync_{source_id}_{external_system}"


# =============================================================================
# Sync records
# =============================================================================


def get_sync_records(
    user_id: str, external_system: str | None = None
) -> list[SyncRecord]:
    """Get sync records of a user.

    Args:
        user_id: Owner
        external_system: "notion" or "obsidian" to filter
    """
    query = "SELECT * FROM sync_records WHERE user_id = ?"
    params: list = [user_id]
    if external_system is not None:
        query += " AND external_system = ?"
        params.append(external_system)

    with get_db() as conn:
        rows = conn.execute(query, params).fetchall()

    return [_row_to_sync_record(row) for row in rows]


def get_sync_record(source_id: str, external_system: str) -> SyncRecord | None:
    with get_db() as conn:
        row = conn.execute(
            "SELECT * FROM sync_records WHERE record_id = ?",
            (sync_record_id(source_id, external_system),),
        ).fetchone()

    if row is None:
        return None

    return _row_to_sync_record(row)


def upsert_sync_record(
    user_id: str,
    source_id: str,
    external_id: str,
    external_system: str,
    content_type: str,
    last_modified_local: str,
    last_modified_external: str,
    sync_status: str,
    hash: str,
    external_path: str | None = None,
) -> SyncRecord:
    """Create or replace the sync record for a source item.

    last_synced_at is always set to now.
    """
    record_id = sync_record_id(source_id, external_system)

    with get_db() as conn:
        conn.execute(
            """
            INSERT INTO sync_records (
                record_id, user_id, source_id, external_id, external_system,
                external_path, content_type, last_synced_at,
                last_modified_local, last_modified_external, sync_status, hash
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(record_id) DO UPDATE SET
                external_id = excluded.external_id,
                external_path = excluded.external_path,
                last_synced_at = excluded.last_synced_at,
                last_modified_local = excluded.last_modified_local,
                last_modified_external = excluded.last_modified_external,
                sync_status = excluded.sync_status,
                hash = excluded.hash
            """,
            (
                record_id,
                user_id,
                source_id,
                external_id,
                external_system,
                external_path,
                content_type,
                to_iso(utc_now()),
                last_modified_local,
                last_modified_external,
                sync_status,
                hash,
            ),
        )

    logger.debug(
        "sync_records.upserted",
        record_id=record_id,
        status=sync_status,
    )
    return get_sync_record(source_id, external_system)  # type: ignore[return-value]


def delete_sync_records(user_id: str, external_system: str) -> int:
    """Forget every sync record of a user for one system."""
    with get_db() as conn:
        cursor = conn.execute(
            "DELETE FROM sync_records WHERE user_id = ? AND external_system = ?",
            (user_id, external_system),
        )
    return cursor.rowcount


# =============================================================================
# Integrations
# =============================================================================


def save_integration(
    user_id: str,
    provider: str,
    access_token: str = "",
    workspace_id: str = "",
    workspace_name: str = "",
    vault_path: str = "",
) -> IntegrationRecord:
    """Store (or replace) a user's connection to a provider."""
    now = to_iso(utc_now())

    with get_db() as conn:
        conn.execute(
            """
            INSERT INTO integrations (
                user_id, provider, access_token, workspace_id,
                workspace_name, vault_path, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(user_id, provider) DO UPDATE SET
                access_token = excluded.access_token,
                workspace_id = excluded.workspace_id,
                workspace_name = excluded.workspace_name,
                vault_path = excluded.vault_path,
                updated_at = excluded.updated_at
            """,
            (
                user_id,
                provider,
                access_token,
                workspace_id,
                workspace_name,
                vault_path,
                now,
                now,
            ),
        )

    logger.info("integrations.saved", user_id=user_id, provider=provider)
    return get_integration(user_id, provider)  # type: ignore[return-value]


def get_integration(user_id: str, provider: str) -> IntegrationRecord | None:
    with get_db() as conn:
        row = conn.execute(
            "SELECT * FROM integrations WHERE user_id = ? AND provider = ?",
            (user_id, provider),
        ).fetchone()

    if row is None:
        return None

    return IntegrationRecord(
        user_id=row["user_id"],
        provider=row["provider"],
        access_token=row["access_token"],
        workspace_id=row["workspace_id"],
        workspace_name=row["workspace_name"],
        vault_path=row["vault_path"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def delete_integration(user_id: str, provider: str) -> bool:
    with get_db() as conn:
        cursor = conn.execute(
            "DELETE FROM integrations WHERE user_id = ? AND provider = ?",
            (user_id, provider),
        )

    deleted = cursor.rowcount > 0
    if deleted:
        logger.info("integrations.deleted", user_id=user_id, provider=provider)
    return deleted


def _row_to_sync_record(row) -> SyncRecord:
    return SyncRecord(
        record_id=row["record_id"],
        user_id=row["user_id"],
        source_id=row["source_id"],
        external_id=row["external_id"],
        external_system=row["external_system"],
        external_path=row["external_path"],
        content_type=row["content_type"],
        last_synced_at=row["last_synced_at"],
        last_modified_local=row["last_modified_local"],
        last_modified_external=row["last_modified_external"],
        sync_status=row["sync_status"],
        hash=row["hash"],
    )
