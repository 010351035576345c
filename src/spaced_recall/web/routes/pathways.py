"""Pathway endpoints: shared learning routes and user memberships."""

from fastapi import APIRouter, status

from spaced_recall.core import pathways
from spaced_recall.web.errors import DOMAIN_ERRORS, to_http
from spaced_recall.web.schemas import PathwayCreate, PathwayJoin, PathwayUpdate

router = APIRouter(prefix="/api/pathways", tags=["pathways"])


@router.get("")
async def list_pathways() -> dict:
    records = pathways.list_pathways()
    return {"pathways": [p.to_dict() for p in records], "count": len(records)}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_pathway(body: PathwayCreate) -> dict:
    try:
        pathway = pathways.create_pathway(
            body.name, body.description, [b.model_dump() for b in body.branches]
        )
    except DOMAIN_ERRORS as e:
        raise to_http(e) from e
    return pathway.to_dict()


@router.get("/joined")
async def list_joined(user_id: str) -> list[dict]:
    """Pathways a user has joined, with join time and progress."""
    try:
        return pathways.list_joined_pathways(user_id)
    except DOMAIN_ERRORS as e:
        raise to_http(e) from e


@router.get("/{pathway_id}")
async def get_pathway(pathway_id: str) -> dict:
    try:
        return pathways.get_pathway(pathway_id).to_dict()
    except DOMAIN_ERRORS as e:
        raise to_http(e) from e


@router.put("/{pathway_id}")
async def update_pathway(pathway_id: str, body: PathwayUpdate) -> dict:
    """Rename, redescribe or restructure a pathway."""
    branches = [b.model_dump() for b in body.branches] if body.branches is not None else None
    try:
        pathway = pathways.update_pathway(
            pathway_id, name=body.name, description=body.description, branches=branches
        )
    except DOMAIN_ERRORS as e:
        raise to_http(e) from e
    return pathway.to_dict()


@router.delete("/{pathway_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_pathway(pathway_id: str) -> None:
    try:
        pathways.delete_pathway(pathway_id)
    except DOMAIN_ERRORS as e:
        raise to_http(e) from e


@router.post("/{pathway_id}/join")
async def join_pathway(pathway_id: str, body: PathwayJoin) -> dict:
    try:
        return pathways.join_pathway(body.user_id, pathway_id).to_dict()
    except DOMAIN_ERRORS as e:
        raise to_http(e) from e


@router.delete("/{pathway_id}/join", status_code=status.HTTP_204_NO_CONTENT)
async def leave_pathway(pathway_id: str, user_id: str) -> None:
    try:
        pathways.leave_pathway(user_id, pathway_id)
    except DOMAIN_ERRORS as e:
        raise to_http(e) from e
