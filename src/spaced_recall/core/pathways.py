"""Learning pathways and user memberships.

A pathway groups study work into branches; a branch is an ordered list of
stages and a stage holds modules. A module is an exam, class, course,
activity or custom step, optionally pointing at a stored entity such as a
subject through `ref_id`.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

import structlog

from spaced_recall.db import pathways_repository, users_repository
from spaced_recall.db.pathways_repository import PathwayRecord, UserPathwayRecord
from spaced_recall.errors import NotFoundError, ValidationError
from spaced_recall.utils.dates import to_iso, utc_now
from spaced_recall.utils.validators import new_id

logger = structlog.get_logger(__name__)

MODULE_TYPES = ("exam", "class", "courses", "activity", "custom")


# =============================================================================
# Structure
# =============================================================================


def _name(item: Any, kind: str) -> str:
    if not isinstance(item, dict):
        raise ValidationError(f"Each {kind} must be an object")
    name = str(item.get("name") or "").strip()
    if not name:
        raise ValidationError(f"Every {kind} needs a name")
    return name


def normalize_branches(branches: list[dict]) -> list[dict]:
    """Validate a branch/stage/module tree and give every node an ID.

    Existing IDs are kept, so an updated pathway keeps stable references.

    Raises:
        ValidationError: On a nameless node or an unknown module type
    """
    normalized = []
    for branch in branches:
        branch_name = _name(branch, "branch")
        stages = []
        for stage in branch.get("stages") or []:
            stage_name = _name(stage, "stage")
            modules = []
            for module in stage.get("modules") or []:
                module_name = _name(module, "module")
                module_type = module.get("type", "custom")
                if module_type not in MODULE_TYPES:
                    raise ValidationError(
                        f"Invalid module type '{module_type}'. "
                        f"Expected one of: {', '.join(MODULE_TYPES)}"
                    )
                modules.append(
                    {
                        "id": module.get("id") or new_id("module"),
                        "type": module_type,
                        "name": module_name,
                        "ref_id": module.get("ref_id"),
                    }
                )
            stages.append(
                {"id": stage.get("id") or new_id("stage"), "name": stage_name, "modules": modules}
            )
        normalized.append(
            {"id": branch.get("id") or new_id("branch"), "name": branch_name, "stages": stages}
        )
    return normalized


def count_modules(pathway: PathwayRecord) -> int:
    return sum(
        len(stage["modules"]) for branch in pathway.branches for stage in branch["stages"]
    )


# =============================================================================
# Pathways
# =============================================================================


def create_pathway(
    name: str, description: str = "", branches: list[dict] | None = None
) -> PathwayRecord:
    """Create a pathway.

    Raises:
        ValidationError: On an empty name or a malformed branch tree
        DuplicateError: If a pathway with the same name exists
    """
    if not name or not name.strip():
        raise ValidationError("Pathway name is required")

    pathway = pathways_repository.insert_pathway(
        name.strip(), description, normalize_branches(branches or [])
    )
    logger.info("pathway_created", pathway_id=pathway.pathway_id, modules=count_modules(pathway))
    return pathway


def get_pathway(pathway_id: str) -> PathwayRecord:
    pathway = pathways_repository.get_pathway(pathway_id)
    if pathway is None:
        raise NotFoundError("Pathway", pathway_id)
    return pathway


def list_pathways() -> list[PathwayRecord]:
    return pathways_repository.list_pathways()


def update_pathway(
    pathway_id: str,
    name: str | None = None,
    description: str | None = None,
    branches: list[dict] | None = None,
) -> PathwayRecord:
    """Change the name, description or branch tree of a pathway.

    Raises:
        NotFoundError: If the pathway does not exist
        ValidationError: On an empty name, no changes or a malformed tree
        DuplicateError: If the new name is taken
    """
    get_pathway(pathway_id)
    if name is None and description is None and branches is None:
        raise ValidationError("Nothing to update")
    if name is not None and not name.strip():
        raise ValidationError("Pathway name is required")

    return pathways_repository.update_pathway(  # type: ignore[return-value]
        pathway_id,
        name=name.strip() if name is not None else None,
        description=description,
        branches=normalize_branches(branches) if branches is not None else None,
    )


def delete_pathway(pathway_id: str) -> None:
    if not pathways_repository.delete_pathway(pathway_id):
        raise NotFoundError("Pathway", pathway_id)


# =============================================================================
# Memberships
# =============================================================================


def join_pathway(
    user_id: str, pathway_id: str, now: datetime | None = None
) -> UserPathwayRecord:
    """Join a pathway; joining twice keeps the first join time.

    Raises:
        NotFoundError: If the user or the pathway does not exist
    """
    if users_repository.get_user(user_id) is None:
        raise NotFoundError("User", user_id)
    get_pathway(pathway_id)

    return pathways_repository.join_pathway(user_id, pathway_id, to_iso(now or utc_now()))


def leave_pathway(user_id: str, pathway_id: str) -> None:
    """Raises NotFoundError if the user has not joined the pathway."""
    if not pathways_repository.unjoin_pathway(user_id, pathway_id):
        raise NotFoundError("Pathway membership", f"{user_id}/{pathway_id}")


def list_joined_pathways(user_id: str) -> list[dict]:
    """Pathways a user has joined, each with its membership details.

    Raises:
        NotFoundError: If the user does not exist
    """
    if users_repository.get_user(user_id) is None:
        raise NotFoundError("User", user_id)

    joined = []
    for membership in pathways_repository.list_user_pathways(user_id):
        pathway = pathways_repository.get_pathway(membership.pathway_id)
        if pathway is not None:
            joined.append({"pathway": pathway.to_dict(), "membership": membership.to_dict()})
    return joined
