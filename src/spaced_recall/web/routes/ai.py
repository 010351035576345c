"""AI endpoints: generated subject structures, quizzes and study advice."""

from fastapi import APIRouter, status

from spaced_recall.core import generators, study
from spaced_recall.llm.client import LLMClient
from spaced_recall.web.errors import DOMAIN_ERRORS, to_http
from spaced_recall.web.schemas import (
    ApplyStructureRequest,
    GenerateQuizRequest,
    GenerateStructureRequest,
    RecommendationRequest,
)

router = APIRouter(prefix="/api/ai", tags=["ai"])


def _client(provider: str | None) -> LLMClient | None:
    return LLMClient(provider=provider) if provider else None


@router.post("/structure")
async def generate_structure(body: GenerateStructureRequest) -> dict:
    """Propose topics and core concepts for a subject; nothing is stored."""
    try:
        structure = generators.generate_subject_structure(
            body.subject, body.additional_info, client=_client(body.provider)
        )
    except DOMAIN_ERRORS as e:
        raise to_http(e) from e
    return structure.to_dict()


@router.post("/structure/apply", status_code=status.HTTP_201_CREATED)
async def apply_structure(body: ApplyStructureRequest) -> dict:
    """Create a subject, its topics and concepts from an accepted structure."""
    try:
        structure = generators.SubjectStructure.from_dict(body.structure)
        return generators.apply_subject_structure(body.user_id, structure, body.study_style)
    except DOMAIN_ERRORS as e:
        raise to_http(e) from e


@router.post("/quiz")
async def generate_quiz(body: GenerateQuizRequest) -> dict:
    """Multiple-choice questions over a stored subject."""
    try:
        tree = study.subject_tree(body.subject_id)
        questions = generators.generate_quiz(
            tree["subject"]["name"],
            tree["topics"],
            question_count=body.question_count,
            quiz_type=body.quiz_type,
            client=_client(body.provider),
        )
    except DOMAIN_ERRORS as e:
        raise to_http(e) from e
    return {
        "subject_id": body.subject_id,
        "questions": [q.to_dict() for q in questions],
        "count": len(questions),
    }


@router.post("/recommendations")
async def generate_recommendations(body: RecommendationRequest) -> dict:
    """Study advice after a quiz, from the score and the missed questions."""
    try:
        recommendations = generators.generate_recommendations(
            body.subject,
            body.topic,
            body.quiz_score,
            incorrect_answers=body.incorrect_answers,
            concept=body.concept,
            difficulty=body.difficulty,
            client=_client(body.provider),
        )
    except DOMAIN_ERRORS as e:
        raise to_http(e) from e
    return recommendations.to_dict()
