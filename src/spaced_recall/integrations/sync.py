"""Sync primitives shared by the Notion and Obsidian integrations."""

from __future__ import annotations

import hashlib
import json
from dataclasses import asdict, dataclass, field
from typing import Any, Literal

from spaced_recall.db import subjects_repository, sync_repository
from spaced_recall.errors import NotFoundError
from spaced_recall.utils.dates import parse_iso

SyncStatus = Literal["synced", "conflict", "local_ahead", "external_ahead"]
ConflictResolution = Literal["local", "external", "manual", "newest"]

# Edits closer together than this are a conflict
CONFLICT_WINDOW_SECONDS = 60


class SyncError(Exception):
    """Error while syncing with an external system."""

    pass


@dataclass
class SyncOptions:
    direction: Literal["push", "pull", "both"] = "push"
    conflict_resolution: ConflictResolution = "newest"
    include_progress: bool = True
    include_spaced_repetition_info: bool = True
    sync_subjects: bool = True
    sync_topics: bool = True
    sync_concepts: bool = True


@dataclass
class SyncResult:
    success: bool = True
    synced_items: int = 0
    conflicts: int = 0
    errors: list[str] = field(default_factory=list)
    updated_records: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


def create_content_hash(content: Any) -> str:
    """MD5 of the canonical JSON form of `content`."""
    canonical = json.dumps(content, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.md5(canonical.encode("utf-8")).hexdigest()


def determine_sync_status(
    local_modified: str,
    external_modified: str,
    local_hash: str,
    record_hash: str,
) -> SyncStatus:
    """Compare a local item against its last synced state.

    Unchanged content is synced. Otherwise edits within a minute of each
    other conflict, and the side edited later is ahead.
    """
    if local_hash == record_hash:
        return "synced"

    local = parse_iso(local_modified)
    external = parse_iso(external_modified)
    gap = abs((local - external).total_seconds())  # type: ignore[operator]
    if gap < CONFLICT_WINDOW_SECONDS:
        return "conflict"

    return "local_ahead" if local > external else "external_ahead"  # type: ignore[operator]


def resolve_conflict(
    local: Any,
    external: Any,
    resolution: ConflictResolution,
    local_modified: str,
    external_modified: str,
) -> Any:
    """Pick the version to keep. Manual resolution keeps the local version."""
    if resolution == "external":
        return external
    if resolution == "newest":
        if parse_iso(local_modified) > parse_iso(external_modified):  # type: ignore[operator]
            return local
        return external
    return local


@dataclass
class ChangeCheck:
    """Hash of the current subject tree against the stored sync hash."""

    subject: dict
    changed: bool
    hash: str


def track_changes(subject_id: str, user_id: str, external_system: str) -> ChangeCheck:
    """Whether a subject changed since its last sync to `external_system`.

    Raises:
        NotFoundError: If the subject does not exist or belongs to another user
    """
    subject = subjects_repository.get_subject(subject_id)
    if subject is None or subject.user_id != user_id:
        raise NotFoundError("Subject", subject_id)

    content = subjects_repository.get_subject_tree(subject_id)
    current_hash = create_content_hash(content)
    record = sync_repository.get_sync_record(subject_id, external_system)

    return ChangeCheck(
        subject=content,
        changed=record is None or record.hash != current_hash,
        hash=current_hash,
    )
