"""Notion sync.

A subject is pushed as one Notion page:

    heading_1  subject name
    paragraph  subject description
    heading_2  topic name
    paragraph  topic description (and mastery)
    heading_3  concept name
    paragraph  concept content (and mastery, review dates)

Pulling reads the same layout back and merges it into the store according
to the conflict resolution option.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable

import structlog
from notion_client import Client
from notion_client.errors import HTTPResponseError, RequestTimeoutError
from notion_client.helpers import collect_paginated_api

from spaced_recall.config.app_config import load_app_config
from spaced_recall.core import study
from spaced_recall.db import subjects_repository, sync_repository
from spaced_recall.db.sync_repository import SyncRecord
from spaced_recall.errors import DuplicateError, NotFoundError
from spaced_recall.integrations.sync import (
    SyncOptions,
    SyncResult,
    create_content_hash,
    determine_sync_status,
    resolve_conflict,
)
from spaced_recall.utils.dates import parse_iso, to_iso, utc_now

logger = structlog.get_logger(__name__)

PROVIDER = "notion"
# Notion accepts at most this many children per request
MAX_BLOCKS_PER_REQUEST = 100
TEXT_BLOCK_TYPES = ("paragraph", "heading_1", "heading_2", "heading_3")

NotionErrors = (HTTPResponseError, RequestTimeoutError)


class NotionSyncError(Exception):
    """Error talking to Notion or applying Notion content."""

    pass


@dataclass
class NotionSyncOptions(SyncOptions):
    target_database: str | None = None
    target_page: str | None = None


# =============================================================================
# Connection
# =============================================================================


def connect(
    user_id: str, access_token: str, workspace_id: str = "", workspace_name: str = ""
):
    """Store a Notion integration token for a user."""
    if not access_token:
        raise NotionSyncError("Access token is required")
    return sync_repository.save_integration(
        user_id,
        PROVIDER,
        access_token=access_token,
        workspace_id=workspace_id,
        workspace_name=workspace_name,
    )


def check_connection(user_id: str) -> dict[str, Any]:
    integration = sync_repository.get_integration(user_id, PROVIDER)
    if integration is None:
        return {"connected": False}
    return {
        "connected": True,
        "workspace_name": integration.workspace_name or "Notion Workspace",
        "workspace_id": integration.workspace_id,
    }


def disconnect(user_id: str) -> bool:
    """Remove the stored token and forget Notion sync records."""
    removed = sync_repository.delete_integration(user_id, PROVIDER)
    sync_repository.delete_sync_records(user_id, PROVIDER)
    return removed


def get_client(user_id: str, client_factory: Callable[..., Any] = Client) -> Any:
    """Notion client authenticated with the user's token.

    Falls back to the token in the configured environment variable.

    Raises:
        NotionSyncError: If no token is available
    """
    integration = sync_repository.get_integration(user_id, PROVIDER)
    token = integration.access_token if integration else None
    if not token:
        token = load_app_config().integrations.get_notion_token()
    if not token:
        raise NotionSyncError("Notion is not connected")
    return client_factory(auth=token)


# =============================================================================
# Blocks
# =============================================================================


def _text_block(block_type: str, content: str) -> dict[str, Any]:
    return {
        "object": "block",
        "type": block_type,
        block_type: {"rich_text": [{"type": "text", "text": {"content": content}}]},
    }


def prepare_blocks(tree: dict, options: SyncOptions | None = None) -> list[dict[str, Any]]:
    """Notion blocks for a subject tree."""
    options = options or SyncOptions()
    subject = tree["subject"]
    blocks = [
        _text_block("heading_1", subject["name"]),
        _text_block("paragraph", subject["description"] or ""),
    ]
    if not options.sync_topics:
        return blocks

    for topic in tree["topics"]:
        blocks.append(_text_block("heading_2", topic["name"]))
        blocks.append(_text_block("paragraph", topic["description"] or ""))
        if options.include_progress:
            blocks.append(_text_block("paragraph", f"Mastery: {topic['mastery_level']}%"))

        if not options.sync_concepts:
            continue
        for concept in topic["concepts"]:
            blocks.append(_text_block("heading_3", concept["name"]))
            blocks.append(_text_block("paragraph", concept["content"] or ""))
            if options.include_progress:
                blocks.append(_text_block("paragraph", f"Mastery: {concept['mastery_level']}%"))
            if options.include_spaced_repetition_info and concept["last_review"]:
                blocks.append(_text_block("paragraph", f"Last Reviewed: {concept['last_review']}"))
                if concept["next_review"]:
                    blocks.append(
                        _text_block("paragraph", f"Next Review: {concept['next_review']}")
                    )

    return blocks


def _plain_text(block: dict) -> str:
    rich_text = block.get(block["type"], {}).get("rich_text") or []
    return "".join(t.get("plain_text") or t.get("text", {}).get("content", "") for t in rich_text)


def _is_metadata(text: str) -> bool:
    return text.startswith(("Mastery: ", "Last Reviewed: ", "Next Review: "))


def extract_subject(blocks: list[dict], page: dict | None = None) -> dict[str, Any]:
    """Read a subject structure back from page blocks.

    heading_1 is the subject, heading_2 a topic, heading_3 a concept of the
    current topic; paragraphs fill the description or content of whatever
    came last. Progress lines written by push are skipped.
    """
    name = ""
    description = ""
    topics: list[dict[str, Any]] = []
    topic: dict[str, Any] | None = None
    concept: dict[str, Any] | None = None

    for block in blocks:
        block_type = block.get("type")
        if block_type not in TEXT_BLOCK_TYPES:
            continue
        text = _plain_text(block)

        if block_type == "heading_1":
            name = name or text
        elif block_type == "heading_2":
            topic = {"name": text or "Untitled Topic", "description": "", "concepts": []}
            topics.append(topic)
            concept = None
        elif block_type == "heading_3" and topic is not None:
            concept = {"name": text or "Untitled Concept", "content": ""}
            topic["concepts"].append(concept)
        elif block_type == "paragraph" and text and not _is_metadata(text):
            if concept is not None:
                concept["content"] = f"{concept['content']}\n\n{text}".strip()
            elif topic is not None:
                topic["description"] = f"{topic['description']}\n\n{text}".strip()
            elif not description:
                description = text

    if not name and page is not None:
        title = page.get("properties", {}).get("title", {}).get("title") or []
        name = title[0].get("plain_text", "") if title else ""

    return {
        "name": name or "Imported from Notion",
        "description": description,
        "topics": topics,
    }


# =============================================================================
# Push
# =============================================================================


def _chunks(blocks: list[dict]) -> list[list[dict]]:
    return [
        blocks[i : i + MAX_BLOCKS_PER_REQUEST]
        for i in range(0, len(blocks), MAX_BLOCKS_PER_REQUEST)
    ]


def _append_blocks(client: Any, page_id: str, blocks: list[dict]) -> None:
    for chunk in _chunks(blocks):
        client.blocks.children.append(block_id=page_id, children=chunk)


def _last_edited(client: Any, page_id: str) -> str | None:
    """Edit time Notion reports for a page after our writes."""
    try:
        return client.pages.retrieve(page_id=page_id).get("last_edited_time")
    except NotionErrors as e:
        logger.warning("notion.page_time_unavailable", page_id=page_id, error=str(e))
        return None


def _title(text: str) -> list[dict]:
    return [{"text": {"content": text}}]


def _create_page(
    client: Any, subject: dict, average_mastery: int, blocks: list[dict], options: NotionSyncOptions
) -> str:
    if options.target_database:
        properties: dict[str, Any] = {
            "Name": {"title": _title(subject["name"])},
            "Description": {"rich_text": _title(subject["description"] or "")},
        }
        if options.include_progress:
            properties["Progress"] = {"number": average_mastery}
        parent: dict[str, Any] = {"database_id": options.target_database}
    else:
        properties = {"title": _title(subject["name"])}
        parent = (
            {"page_id": options.target_page} if options.target_page else {"workspace": True}
        )

    chunks = _chunks(blocks) or [[]]
    page = client.pages.create(parent=parent, properties=properties, children=chunks[0])
    for chunk in chunks[1:]:
        client.blocks.children.append(block_id=page["id"], children=chunk)
    return page["id"]


def push_subject(
    user_id: str,
    subject_id: str,
    options: NotionSyncOptions | None = None,
    client: Any = None,
    now: datetime | None = None,
) -> SyncRecord:
    """Push a subject to Notion.

    Appends to the page recorded by an earlier push, or creates a new page
    when there is none or it can no longer be reached.

    Raises:
        NotFoundError: If the subject does not exist or belongs to another user
        NotionSyncError: If Notion is not connected or rejects the request
    """
    options = options or NotionSyncOptions()
    now = now or utc_now()
    subject = subjects_repository.get_subject(subject_id)
    if subject is None or subject.user_id != user_id:
        raise NotFoundError("Subject", subject_id)

    client = client or get_client(user_id)
    tree = study.subject_tree(subject_id)
    blocks = prepare_blocks(tree, options)
    progress = study.subject_progress(subject_id)
    existing = sync_repository.get_sync_record(subject_id, PROVIDER)

    page_id = None
    last_modified_external = to_iso(now)
    if existing is not None and existing.external_id:
        try:
            page = client.pages.retrieve(page_id=existing.external_id)
            last_modified_external = page.get("last_edited_time") or last_modified_external
            _append_blocks(client, existing.external_id, blocks)
            page_id = existing.external_id
        except NotionErrors as e:
            logger.warning("notion.page_unreachable", page_id=existing.external_id, error=str(e))

    if page_id is None:
        try:
            page_id = _create_page(client, tree["subject"], progress.average_mastery, blocks, options)
        except NotionErrors as e:
            raise NotionSyncError(f"Notion rejected the page: {e}") from e

    current_hash = create_content_hash(tree)
    status = (
        determine_sync_status(
            subject.updated_at, last_modified_external, current_hash, existing.hash
        )
        if existing is not None
        else "local_ahead"
    )

    record = sync_repository.upsert_sync_record(
        user_id=user_id,
        source_id=subject_id,
        external_id=page_id,
        external_system=PROVIDER,
        content_type="subject",
        last_modified_local=subject.updated_at,
        last_modified_external=_last_edited(client, page_id) or to_iso(now),
        sync_status=status,
        hash=current_hash,
    )
    logger.info("notion.pushed", subject_id=subject_id, page_id=page_id, blocks=len(blocks))
    return record


# =============================================================================
# Pull
# =============================================================================


def _apply_external(subject_id: str, external: dict[str, Any]) -> None:
    """Write pulled content into the store, adding missing topics and concepts."""
    try:
        subjects_repository.update_subject(
            subject_id, name=external["name"], description=external["description"]
        )
    except DuplicateError:
        subjects_repository.update_subject(subject_id, description=external["description"])

    topics = {t.name: t for t in subjects_repository.get_topics_for_subject(subject_id)}
    for outline in external["topics"]:
        topic = topics.get(outline["name"])
        if topic is None:
            topic = study.create_topic(subject_id, outline["name"], outline["description"])
            topics[topic.name] = topic
        elif outline["description"]:
            subjects_repository.update_topic(topic.topic_id, description=outline["description"])

        concepts = {c.name: c for c in subjects_repository.get_concepts_for_topic(topic.topic_id)}
        for item in outline["concepts"]:
            concept = concepts.get(item["name"])
            if concept is None:
                study.create_concept(topic.topic_id, item["name"], content=item["content"])
            elif item["content"]:
                subjects_repository.update_concept(concept.concept_id, content=item["content"])


def pull_status(record: SyncRecord, local_hash: str, last_modified_external: str) -> str:
    """Sync status of a pushed subject as seen from a pull.

    The local side changed when its hash differs from the recorded one; the
    Notion side changed when the page was edited after the recorded time.
    """
    local_changed = local_hash != record.hash
    external_changed = parse_iso(last_modified_external) > parse_iso(  # type: ignore[operator]
        record.last_modified_external
    )
    if local_changed and external_changed:
        return "conflict"
    if external_changed:
        return "external_ahead"
    if local_changed:
        return "local_ahead"
    return "synced"


def pull_subject(
    user_id: str,
    subject_id: str,
    options: NotionSyncOptions | None = None,
    client: Any = None,
    now: datetime | None = None,
) -> SyncResult:
    """Pull a previously pushed subject back from Notion.

    Raises:
        NotFoundError: If the subject does not exist or belongs to another user
        NotionSyncError: If the subject was never pushed or Notion fails
    """
    options = options or NotionSyncOptions(direction="pull")
    now = now or utc_now()
    subject = subjects_repository.get_subject(subject_id)
    if subject is None or subject.user_id != user_id:
        raise NotFoundError("Subject", subject_id)

    record = sync_repository.get_sync_record(subject_id, PROVIDER)
    if record is None:
        raise NotionSyncError(f"Subject '{subject_id}' has not been pushed to Notion")

    client = client or get_client(user_id)
    try:
        page = client.pages.retrieve(page_id=record.external_id)
        blocks = collect_paginated_api(client.blocks.children.list, block_id=record.external_id)
    except NotionErrors as e:
        raise NotionSyncError(f"Could not read Notion page: {e}") from e

    external = extract_subject(blocks, page)
    last_modified_external = page.get("last_edited_time") or to_iso(now)

    local_tree = study.subject_tree(subject_id)
    status = pull_status(record, create_content_hash(local_tree), last_modified_external)

    result = SyncResult()
    if status in ("conflict", "external_ahead"):
        if status == "conflict":
            result.conflicts += 1
        chosen = resolve_conflict(
            local_tree,
            external,
            options.conflict_resolution,
            subject.updated_at,
            last_modified_external,
        )
        if chosen is external:
            _apply_external(subject_id, external)
            result.synced_items += 1

    final_tree = study.subject_tree(subject_id)
    updated = sync_repository.upsert_sync_record(
        user_id=user_id,
        source_id=subject_id,
        external_id=record.external_id,
        external_system=PROVIDER,
        content_type="subject",
        last_modified_local=to_iso(now),
        last_modified_external=last_modified_external,
        sync_status="synced",
        hash=create_content_hash(final_tree),
    )
    result.updated_records.append(updated.to_dict())

    logger.info("notion.pulled", subject_id=subject_id, status=status)
    return result
