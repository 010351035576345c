"""Data validation helpers.

ID conventions:
- Entity IDs are "<prefix>-<8 hex>" (e.g. "sub-1a2b3c4d", "con-deadbeef")
- Prefixes: usr, sub, top, con, ses, hab, tod, prj, mil, wki, quz

Functions:
- new_id(prefix) -> str: Generate a new entity ID
- resolve_id(prefix, candidates) -> str: Resolve a partial ID to a unique one
- validate_email(email) -> bool
- safe_filename(name) -> str: File name for exported notes
"""

from __future__ import annotations

import re
import uuid

ID_PREFIXES = {
    "user": "usr",
    "subject": "sub",
    "topic": "top",
    "concept": "con",
    "session": "ses",
    "habit": "hab",
    "todo": "tod",
    "project": "prj",
    "milestone": "mil",
    "work_item": "wki",
    "quiz": "quz",
    "pathway": "pth",
    "branch": "brn",
    "stage": "stg",
    "module": "mod",
}

EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")

_UNSAFE_FILENAME = re.compile(r'[<>:"/\\|?*\x00-\x1f]')


class AmbiguousIdError(Exception):
    """Raised when an ID prefix matches multiple entities."""

    def __init__(self, prefix: str, candidates: list[str]):
        self.prefix = prefix
        self.candidates = candidates
        super().__init__(
            f"Prefix '{prefix}' is ambiguous. Candidates:\n"
            + "\n".join(f"  - {c}" for c in candidates)
        )


class IdNotFoundError(Exception):
    """Raised when no entity matches the given prefix."""

    def __init__(self, prefix: str):
        self.prefix = prefix
        super().__init__(f"No entity found with prefix '{prefix}'")


def new_id(kind: str) -> str:
    """Generate a new entity ID.

    Args:
        kind: Entity kind (e.g. "subject") or a bare prefix (e.g. "sub")

    Returns:
        ID of the form "<prefix>-<8 hex>"
    """
    prefix = ID_PREFIXES.get(kind, kind)
    return f"{prefix}-{uuid.uuid4().hex[:8]}"


def resolve_id(prefix: str, candidates: list[str]) -> str:
    """Resolve a partial entity ID to a unique full ID.

    Args:
        prefix: Partial or full ID (e.g., "sub-1a" or "sub-1a2b3c4d")
        candidates: List of all available IDs

    Returns:
        The unique matching ID

    Raises:
        IdNotFoundError: If no candidates match the prefix
        AmbiguousIdError: If multiple candidates match the prefix
    """
    # Exact match first
    if prefix in candidates:
        return prefix

    matches = [c for c in candidates if c.startswith(prefix)]

    if len(matches) == 0:
        raise IdNotFoundError(prefix)
    elif len(matches) == 1:
        return matches[0]
    else:
        raise AmbiguousIdError(prefix, matches)


def validate_email(email: str) -> bool:
    """Validate email format."""
    return bool(EMAIL_PATTERN.match(email))


def safe_filename(name: str) -> str:
    """Strip characters that are not allowed in file names.

    Keeps spaces and case so note titles stay readable in an Obsidian vault.
    """
    cleaned = _UNSAFE_FILENAME.sub("", name).strip().strip(".")
    return cleaned or "untitled"
