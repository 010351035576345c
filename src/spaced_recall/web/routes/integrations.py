"""Integration endpoints: Notion, Obsidian and Google Calendar."""

import base64
import binascii
from pathlib import Path

from fastapi import APIRouter, HTTPException, Response, status

from spaced_recall.db import sync_repository
from spaced_recall.integrations import calendar, notion, obsidian
from spaced_recall.integrations.sync import SyncOptions, track_changes
from spaced_recall.web.errors import DOMAIN_ERRORS, to_http
from spaced_recall.web.schemas import (
    CalendarEventRequest,
    CalendarLinkRequest,
    NotionConnect,
    NotionSyncRequest,
    ObsidianExportRequest,
    ObsidianImportRequest,
)

router = APIRouter(prefix="/api/integrations", tags=["integrations"])


def _notion_options(body: NotionSyncRequest, direction: str) -> notion.NotionSyncOptions:
    return notion.NotionSyncOptions(
        direction=direction,
        conflict_resolution=body.conflict_resolution,
        include_progress=body.include_progress,
        include_spaced_repetition_info=body.include_spaced_repetition_info,
        target_database=body.target_database,
        target_page=body.target_page,
    )


# =============================================================================
# NOTION
# =============================================================================


@router.post("/notion/connect", status_code=status.HTTP_201_CREATED)
async def notion_connect(body: NotionConnect) -> dict:
    try:
        integration = notion.connect(
            body.user_id, body.access_token, body.workspace_id, body.workspace_name
        )
    except DOMAIN_ERRORS as e:
        raise to_http(e) from e
    return integration.to_dict()


@router.get("/notion/status")
async def notion_status(user_id: str) -> dict:
    return notion.check_connection(user_id)


@router.delete("/notion", status_code=status.HTTP_204_NO_CONTENT)
async def notion_disconnect(user_id: str) -> None:
    if not notion.disconnect(user_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Notion is not connected",
        )


@router.post("/notion/subjects/{subject_id}/push")
async def notion_push(subject_id: str, body: NotionSyncRequest) -> dict:
    """Push a subject to Notion."""
    try:
        record = notion.push_subject(body.user_id, subject_id, _notion_options(body, "push"))
    except DOMAIN_ERRORS as e:
        raise to_http(e) from e
    return record.to_dict()


@router.post("/notion/subjects/{subject_id}/pull")
async def notion_pull(subject_id: str, body: NotionSyncRequest) -> dict:
    """Pull Notion edits of a previously pushed subject."""
    try:
        result = notion.pull_subject(body.user_id, subject_id, _notion_options(body, "pull"))
    except DOMAIN_ERRORS as e:
        raise to_http(e) from e
    return result.to_dict()


@router.get("/sync-records")
async def list_sync_records(user_id: str, external_system: str | None = None) -> list[dict]:
    return [r.to_dict() for r in sync_repository.get_sync_records(user_id, external_system)]


@router.get("/{external_system}/subjects/{subject_id}/changes")
async def check_changes(external_system: str, subject_id: str, user_id: str) -> dict:
    """Whether a subject changed locally since its last sync."""
    try:
        check = track_changes(subject_id, user_id, external_system)
    except DOMAIN_ERRORS as e:
        raise to_http(e) from e
    return {"subject_id": subject_id, "changed": check.changed, "hash": check.hash}


# =============================================================================
# OBSIDIAN
# =============================================================================


@router.post("/obsidian/subjects/{subject_id}/export")
async def obsidian_export(subject_id: str, body: ObsidianExportRequest) -> Response:
    """Export a subject as a zipped Obsidian folder."""
    options = SyncOptions(
        include_progress=body.include_progress,
        include_spaced_repetition_info=body.include_spaced_repetition_info,
    )
    try:
        export = obsidian.export_subject(body.user_id, subject_id, options, body.vault_path)
    except DOMAIN_ERRORS as e:
        raise to_http(e) from e

    return Response(
        content=export.data,
        media_type="application/zip",
        headers={
            "Content-Disposition": f'attachment; filename="{export.filename}"',
            "X-Note-Count": str(export.note_count),
        },
    )


@router.post("/obsidian/import", status_code=status.HTTP_201_CREATED)
async def obsidian_import(body: ObsidianImportRequest) -> dict:
    """Import a vault directory or a base64-encoded zip."""
    if (body.path is None) == (body.zip_base64 is None):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Give either path or zip_base64",
        )

    if body.zip_base64 is not None:
        try:
            source: Path | bytes = base64.b64decode(body.zip_base64, validate=True)
        except binascii.Error as e:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="zip_base64 is not valid base64",
            ) from e
    else:
        source = Path(body.path)
        if not source.exists():
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Path '{body.path}' not found",
            )

    try:
        result = obsidian.import_vault(
            body.user_id, source, body.structure_type, body.subject_name
        )
    except DOMAIN_ERRORS as e:
        raise to_http(e) from e
    return result.to_dict()


# =============================================================================
# GOOGLE CALENDAR
# =============================================================================


@router.post("/calendar/link")
async def calendar_link(body: CalendarLinkRequest) -> dict:
    """Prefilled "add event" link; needs no credentials."""
    url = calendar.generate_calendar_link(
        body.title, body.start, body.description, body.duration_minutes, body.location
    )
    return {"url": url}


@router.post("/calendar/events", status_code=status.HTTP_201_CREATED)
async def calendar_event(body: CalendarEventRequest) -> dict:
    try:
        event = calendar.add_review_event(
            body.access_token,
            body.title,
            body.start,
            description=body.description,
            duration_minutes=body.duration_minutes,
            calendar_id=body.calendar_id,
            review_log_id=body.review_log_id,
        )
    except DOMAIN_ERRORS as e:
        raise to_http(e) from e
    return event.to_dict()
