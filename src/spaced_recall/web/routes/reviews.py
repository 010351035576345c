"""Review endpoints: what is due, and recording a review."""

from fastapi import APIRouter

from spaced_recall.core import study
from spaced_recall.db import subjects_repository
from spaced_recall.web.errors import DOMAIN_ERRORS, to_http
from spaced_recall.web.schemas import ReviewRequest

router = APIRouter(prefix="/api/reviews", tags=["reviews"])


@router.get("/due")
async def list_due(user_id: str) -> dict:
    """Topics and concepts due for review, oldest first."""
    try:
        due = study.list_due_reviews(user_id)
    except DOMAIN_ERRORS as e:
        raise to_http(e) from e
    return {
        "items": [d.to_dict() for d in due],
        "count": len(due),
        "overdue": sum(1 for d in due if d.overdue),
    }


@router.post("/{item_id}")
async def review(item_id: str, body: ReviewRequest) -> dict:
    """Record a review and return the new schedule."""
    try:
        outcome = study.review_item(
            body.user_id,
            body.item_type,
            item_id,
            rating=body.rating,
            passed=body.passed,
            duration=body.duration,
        )
    except DOMAIN_ERRORS as e:
        raise to_http(e) from e
    return outcome.to_dict()


@router.get("/{item_type}/{item_id}/history")
async def review_history(item_type: str, item_id: str) -> list[dict]:
    return [log.to_dict() for log in subjects_repository.list_review_logs(item_type, item_id)]
