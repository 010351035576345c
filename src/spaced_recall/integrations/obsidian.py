"""Obsidian vault export and import.

Export writes a subject as a folder of Markdown notes with YAML frontmatter:

    <Subject>/index.md
    <Subject>/<Topic>/index.md
    <Subject>/<Topic>/<Concept>.md

and returns it zipped. Import reads a zip or a directory laid out either by
folders (top folder = subject, subfolders = topics, notes = concepts) or by
frontmatter tags (each tag = topic).
"""

from __future__ import annotations

import io
import zipfile
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path, PurePosixPath
from typing import Any, Literal

import structlog
import yaml

from spaced_recall.core import study
from spaced_recall.db import subjects_repository, sync_repository
from spaced_recall.db.subjects_repository import SubjectRecord
from spaced_recall.errors import DuplicateError, NotFoundError
from spaced_recall.integrations.sync import (
    SyncOptions,
    create_content_hash,
    determine_sync_status,
)
from spaced_recall.utils.dates import to_iso, utc_now
from spaced_recall.utils.validators import safe_filename

logger = structlog.get_logger(__name__)

StructureType = Literal["folders", "tags"]

EXPORT_TAG = "spaced-recall"
# Tags written by export that do not name a topic
MARKER_TAGS = frozenset({EXPORT_TAG, "subject", "topic", "concept"})
INDEX_NOTE = "index.md"
SR_DEFAULT_EASE = 2.5


class ObsidianImportError(Exception):
    """Error reading an Obsidian vault or export."""

    pass


# =============================================================================
# Markdown notes
# =============================================================================


def render_note(body: str, frontmatter: dict[str, Any]) -> str:
    """Markdown note with a YAML frontmatter block."""
    header = yaml.safe_dump(frontmatter, sort_keys=False, allow_unicode=True)
    return f"---\n{header}---\n\n{body}"


def parse_note(text: str) -> tuple[dict[str, Any], str]:
    """Split a note into (frontmatter, body).

    Notes without frontmatter, or with frontmatter that is not a mapping,
    get an empty dict.
    """
    if not text.startswith("---"):
        return {}, text

    parts = text.split("\n---", 1)
    if len(parts) != 2:
        return {}, text

    try:
        frontmatter = yaml.safe_load(parts[0][3:]) or {}
    except yaml.YAMLError:
        logger.warning("obsidian_frontmatter_invalid")
        return {}, text

    if not isinstance(frontmatter, dict):
        frontmatter = {}
    return frontmatter, parts[1].lstrip("-").lstrip("\n")


@dataclass
class ObsidianNote:
    name: str
    path: str
    content: str
    frontmatter: dict[str, Any] = field(default_factory=dict)

    @property
    def title(self) -> str:
        return self.name[:-3] if self.name.endswith(".md") else self.name

    @property
    def tags(self) -> list[str]:
        tags = self.frontmatter.get("tags") or []
        if isinstance(tags, str):
            tags = [tags]
        return [str(t).lstrip("#") for t in tags]


@dataclass
class ObsidianFolder:
    name: str
    files: list[ObsidianNote] = field(default_factory=list)
    subfolders: list["ObsidianFolder"] = field(default_factory=list)

    def all_files(self) -> list[ObsidianNote]:
        notes = list(self.files)
        for sub in self.subfolders:
            notes.extend(sub.all_files())
        return notes


# =============================================================================
# Export
# =============================================================================


@dataclass
class ObsidianExport:
    filename: str
    data: bytes
    sync_record: dict
    note_count: int


def _strip_title(body: str, title: str) -> str:
    """Drop the leading "# title" heading that export adds."""
    heading = f"# {title}"
    if body.startswith(heading):
        return body[len(heading):].strip()
    return body.strip()


def build_vault_files(
    tree: dict, options: SyncOptions | None = None, now: datetime | None = None
) -> dict[str, str]:
    """Render a subject tree into {relative path: note text}."""
    options = options or SyncOptions()
    stamp = to_iso(now or utc_now())
    subject = tree["subject"]
    root = safe_filename(subject["name"])

    index_meta: dict[str, Any] = {
        "subject": subject["name"],
        "created": subject["created_at"],
        "updated": stamp,
        "tags": ["subject", EXPORT_TAG],
        "sync_id": subject["subject_id"],
    }
    if options.include_progress:
        topics = tree["topics"]
        average = round(sum(t["mastery_level"] for t in topics) / len(topics)) if topics else 0
        index_meta["progress"] = {"average_mastery": average, "xp": subject["xp"]}

    files = {
        f"{root}/{INDEX_NOTE}": render_note(
            f"# {subject['name']}\n\n{subject['description']}\n", index_meta
        )
    }
    if not options.sync_topics:
        return files

    for topic in tree["topics"]:
        topic_dir = f"{root}/{safe_filename(topic['name'])}"
        topic_meta: dict[str, Any] = {
            "subject": subject["name"],
            "topic": topic["name"],
            "created": topic["created_at"],
            "updated": stamp,
            "tags": ["topic", EXPORT_TAG],
            "sync_id": topic["topic_id"],
        }
        if options.include_progress:
            topic_meta["progress"] = {"mastery": topic["mastery_level"]}
        files[f"{topic_dir}/{INDEX_NOTE}"] = render_note(
            f"# {topic['name']}\n\n{topic['description']}\n", topic_meta
        )

        if not options.sync_concepts:
            continue
        for concept in topic["concepts"]:
            concept_meta: dict[str, Any] = {
                "subject": subject["name"],
                "topic": topic["name"],
                "concept": concept["name"],
                "created": concept["created_at"],
                "updated": stamp,
                "tags": ["concept", EXPORT_TAG],
                "sync_id": concept["concept_id"],
            }
            if options.include_progress:
                concept_meta["mastery"] = concept["mastery_level"]
            if options.include_spaced_repetition_info and concept["last_review"]:
                concept_meta["sr-due"] = concept["next_review"] or stamp
                concept_meta["sr-interval"] = concept["review_interval"] or 1
                concept_meta["sr-ease"] = SR_DEFAULT_EASE
            files[f"{topic_dir}/{safe_filename(concept['name'])}.md"] = render_note(
                f"# {concept['name']}\n\n{concept['content']}\n", concept_meta
            )

    return files


def export_subject(
    user_id: str,
    subject_id: str,
    options: SyncOptions | None = None,
    vault_path: str = "",
    now: datetime | None = None,
) -> ObsidianExport:
    """Export a subject as a zipped Obsidian folder and record the sync.

    Raises:
        NotFoundError: If the subject does not exist or belongs to another user
    """
    now = now or utc_now()
    subject = subjects_repository.get_subject(subject_id)
    if subject is None or subject.user_id != user_id:
        raise NotFoundError("Subject", subject_id)

    tree = study.subject_tree(subject_id)
    files = build_vault_files(tree, options, now)

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for path, text in files.items():
            archive.writestr(path, text)

    record = _record_sync(user_id, subject, tree, vault_path or None, now)

    logger.info("obsidian.exported", subject_id=subject_id, notes=len(files))
    return ObsidianExport(
        filename=f"{safe_filename(subject.name)}.zip",
        data=buffer.getvalue(),
        sync_record=record.to_dict(),
        note_count=len(files),
    )


def _record_sync(
    user_id: str,
    subject: SubjectRecord,
    tree: dict,
    external_path: str | None,
    now: datetime,
    status: str | None = None,
):
    """Upsert the subject's Obsidian sync record.

    Without an explicit status, a first export is local_ahead and later ones
    compare against the stored hash.
    """
    current_hash = create_content_hash(tree)
    if status is None:
        existing = sync_repository.get_sync_record(subject.subject_id, "obsidian")
        if existing is None:
            status = "local_ahead"
        else:
            status = determine_sync_status(
                subject.updated_at, existing.last_modified_external, current_hash, existing.hash
            )

    return sync_repository.upsert_sync_record(
        user_id=user_id,
        source_id=subject.subject_id,
        external_id=f"obsidian_{subject.subject_id}",
        external_system="obsidian",
        content_type="subject",
        last_modified_local=subject.updated_at,
        last_modified_external=to_iso(now),
        sync_status=status,
        hash=current_hash,
        external_path=external_path,
    )


# =============================================================================
# Reading a vault
# =============================================================================


def _insert_note(root: ObsidianFolder, parts: tuple[str, ...], note: ObsidianNote) -> None:
    folder = root
    for part in parts[:-1]:
        child = next((f for f in folder.subfolders if f.name == part), None)
        if child is None:
            child = ObsidianFolder(name=part)
            folder.subfolders.append(child)
        folder = child
    folder.files.append(note)


def _unwrap(root: ObsidianFolder) -> ObsidianFolder:
    """A vault holding a single top folder and no loose notes is that folder."""
    if not root.files and len(root.subfolders) == 1:
        return root.subfolders[0]
    return root


def read_zip(data: bytes, name: str = "vault") -> ObsidianFolder:
    """Read the Markdown notes of a zip archive.

    Raises:
        ObsidianImportError: If the data is not a zip or holds no notes
    """
    root = ObsidianFolder(name=name)
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            for info in archive.infolist():
                path = PurePosixPath(info.filename)
                if info.is_dir() or path.suffix != ".md" or ".." in path.parts:
                    continue
                if any(part.startswith((".", "__MACOSX")) for part in path.parts):
                    continue
                text = archive.read(info).decode("utf-8", errors="replace")
                frontmatter, body = parse_note(text)
                _insert_note(
                    root,
                    path.parts,
                    ObsidianNote(path.name, str(path), body, frontmatter),
                )
    except zipfile.BadZipFile as e:
        raise ObsidianImportError(f"Not a valid zip archive: {e}") from e

    if not root.all_files():
        raise ObsidianImportError("No Markdown notes found")
    return _unwrap(root)


def read_directory(path: Path, recursive: bool = True) -> ObsidianFolder:
    """Read the Markdown notes under a vault directory.

    Raises:
        ObsidianImportError: If the directory does not exist or holds no notes
    """
    if not path.is_dir():
        raise ObsidianImportError(f"Not a directory: {path}")

    def scan(directory: Path) -> ObsidianFolder:
        folder = ObsidianFolder(name=directory.name)
        for item in sorted(directory.iterdir()):
            if item.name.startswith("."):
                continue
            if item.is_dir() and recursive:
                folder.subfolders.append(scan(item))
            elif item.is_file() and item.suffix == ".md":
                text = item.read_text(encoding="utf-8", errors="replace")
                frontmatter, body = parse_note(text)
                folder.files.append(ObsidianNote(item.name, str(item), body, frontmatter))
        return folder

    root = scan(path)
    if not root.all_files():
        raise ObsidianImportError("No Markdown notes found")
    return root


# =============================================================================
# Structure extraction
# =============================================================================


def _concept(note: ObsidianNote) -> dict[str, str]:
    return {"name": note.title, "content": _strip_title(note.content, note.title)}


def extract_structure_from_folders(folder: ObsidianFolder) -> dict[str, Any]:
    """Top folder is the subject, subfolders are topics, notes are concepts.

    An index.md note supplies the description of its folder.
    """
    index = next((n for n in folder.files if n.name == INDEX_NOTE), None)
    topics = []
    for sub in folder.subfolders:
        topic_index = next((n for n in sub.files if n.name == INDEX_NOTE), None)
        concepts = [_concept(n) for n in sub.all_files() if n.name != INDEX_NOTE]
        topics.append(
            {
                "name": sub.name,
                "description": (
                    _strip_title(topic_index.content, sub.name)
                    if topic_index
                    else f"Topic imported from Obsidian folder: {sub.name}"
                ),
                "concepts": concepts,
            }
        )

    return {
        "name": folder.name,
        "description": (
            _strip_title(index.content, folder.name)
            if index
            else f"Imported from Obsidian vault: {folder.name}"
        ),
        "topics": topics,
    }


def extract_structure_from_tags(
    notes: list[ObsidianNote], name: str = "Obsidian Import"
) -> dict[str, Any]:
    """Each frontmatter tag becomes a topic holding the notes tagged with it."""
    groups: dict[str, list[ObsidianNote]] = {}
    for note in notes:
        if note.name == INDEX_NOTE:
            continue
        for tag in note.tags:
            if tag in MARKER_TAGS:
                continue
            groups.setdefault(tag, []).append(note)

    return {
        "name": name,
        "description": "Subject imported from Obsidian vault based on tags",
        "topics": [
            {
                "name": tag,
                "description": f"Topic generated from tag: {tag}",
                "concepts": [_concept(n) for n in tag_notes],
            }
            for tag, tag_notes in groups.items()
        ],
    }


# =============================================================================
# Import
# =============================================================================


@dataclass
class ObsidianImportResult:
    subject: dict
    merged: bool
    topics_created: int = 0
    concepts_created: int = 0

    def to_dict(self) -> dict:
        return {
            "subject": self.subject,
            "merged": self.merged,
            "topics_created": self.topics_created,
            "concepts_created": self.concepts_created,
        }


def import_vault(
    user_id: str,
    source: Path | bytes,
    structure_type: StructureType = "folders",
    subject_name: str | None = None,
    now: datetime | None = None,
) -> ObsidianImportResult:
    """Import notes into the store.

    A subject with the same name as the imported one is merged into: missing
    topics and concepts are added, existing ones are left as they are.

    Args:
        user_id: Owner of the imported subject
        source: Zip bytes, a .zip path or a vault directory
        structure_type: "folders" or "tags"
        subject_name: Override for the subject name
        now: Sync time

    Raises:
        ObsidianImportError: On unreadable input or an unknown structure type
        NotFoundError: If the user does not exist
    """
    now = now or utc_now()
    if structure_type not in ("folders", "tags"):
        raise ObsidianImportError(f"Unknown structure type '{structure_type}'")

    if isinstance(source, bytes):
        folder = read_zip(source)
    elif source.suffix == ".zip":
        folder = read_zip(source.read_bytes(), name=source.stem)
    else:
        folder = read_directory(source)

    if structure_type == "folders":
        structure = extract_structure_from_folders(folder)
    else:
        structure = extract_structure_from_tags(folder.all_files())
    if subject_name:
        structure["name"] = subject_name

    subject = subjects_repository.get_subject_by_name(user_id, structure["name"])
    merged = subject is not None
    if subject is None:
        subject = study.create_subject(user_id, structure["name"], structure["description"])

    topics_created = 0
    concepts_created = 0
    existing_topics = {
        t.name: t for t in subjects_repository.get_topics_for_subject(subject.subject_id)
    }
    for outline in structure["topics"]:
        topic = existing_topics.get(outline["name"])
        if topic is None:
            topic = study.create_topic(subject.subject_id, outline["name"], outline["description"])
            existing_topics[topic.name] = topic
            topics_created += 1

        known = {c.name for c in subjects_repository.get_concepts_for_topic(topic.topic_id)}
        for concept in outline["concepts"]:
            if concept["name"] in known:
                continue
            try:
                study.create_concept(topic.topic_id, concept["name"], content=concept["content"])
            except DuplicateError:
                continue
            known.add(concept["name"])
            concepts_created += 1

    tree = study.subject_tree(subject.subject_id)
    _record_sync(user_id, subject, tree, None, now, status="synced")

    logger.info(
        "obsidian.imported",
        subject_id=subject.subject_id,
        merged=merged,
        topics=topics_created,
        concepts=concepts_created,
    )
    return ObsidianImportResult(
        subject=tree["subject"],
        merged=merged,
        topics_created=topics_created,
        concepts_created=concepts_created,
    )
