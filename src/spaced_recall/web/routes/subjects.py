"""Subject endpoints: the subject/topic/concept tree, study logging and progress."""

from fastapi import APIRouter, HTTPException, status

from spaced_recall.core import study
from spaced_recall.db import sessions_repository, subjects_repository
from spaced_recall.web.errors import DOMAIN_ERRORS, to_http
from spaced_recall.web.schemas import (
    ConceptCreate,
    ConceptResponse,
    QuizResultCreate,
    StudyLogRequest,
    SubjectCreate,
    SubjectListResponse,
    SubjectResponse,
    SubjectUpdate,
    TopicCreate,
    TopicResponse,
)

router = APIRouter(prefix="/api/subjects", tags=["subjects"])


def _not_found(entity: str, entity_id: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"{entity} '{entity_id}' not found",
    )


# =============================================================================
# SUBJECTS
# =============================================================================


@router.get("", response_model=SubjectListResponse)
async def list_subjects(user_id: str) -> SubjectListResponse:
    """List a user's subjects."""
    records = subjects_repository.get_subjects_for_user(user_id)
    return SubjectListResponse(
        subjects=[SubjectResponse.model_validate(s) for s in records],
        count=len(records),
    )


@router.post("", response_model=SubjectResponse, status_code=status.HTTP_201_CREATED)
async def create_subject(body: SubjectCreate) -> SubjectResponse:
    try:
        subject = study.create_subject(
            body.user_id,
            body.name,
            body.description,
            study_style=body.study_style,
            exam_mode=body.exam_mode,
            exam_date=body.exam_date,
        )
    except DOMAIN_ERRORS as e:
        raise to_http(e) from e
    return SubjectResponse.model_validate(subject)


@router.get("/{subject_id}")
async def get_subject(subject_id: str) -> dict:
    """Subject with its topics and concepts."""
    try:
        return study.subject_tree(subject_id)
    except DOMAIN_ERRORS as e:
        raise to_http(e) from e


@router.put("/{subject_id}", response_model=SubjectResponse)
async def update_subject(subject_id: str, body: SubjectUpdate) -> SubjectResponse:
    """Update the fields sent in the body."""
    fields = body.model_dump(exclude_unset=True)
    if not fields:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No fields to update",
        )
    try:
        subject = study.update_subject(subject_id, **fields)
    except DOMAIN_ERRORS as e:
        raise to_http(e) from e
    return SubjectResponse.model_validate(subject)


@router.delete("/{subject_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_subject(subject_id: str) -> None:
    if not subjects_repository.delete_subject(subject_id):
        raise _not_found("Subject", subject_id)


@router.get("/{subject_id}/progress")
async def get_progress(subject_id: str) -> dict:
    try:
        return study.subject_progress(subject_id).to_dict()
    except DOMAIN_ERRORS as e:
        raise to_http(e) from e


@router.get("/{subject_id}/exam-plan")
async def get_exam_plan(subject_id: str) -> dict:
    """Exam-preparation plan; `plan` is null outside the preparation window."""
    try:
        plan = study.get_exam_plan(subject_id)
    except DOMAIN_ERRORS as e:
        raise to_http(e) from e
    return {"subject_id": subject_id, "plan": plan.to_dict() if plan else None}


# =============================================================================
# TOPICS AND CONCEPTS
# =============================================================================


@router.get("/{subject_id}/topics", response_model=list[TopicResponse])
async def list_topics(subject_id: str) -> list[TopicResponse]:
    if subjects_repository.get_subject(subject_id) is None:
        raise _not_found("Subject", subject_id)
    return [
        TopicResponse.model_validate(t)
        for t in subjects_repository.get_topics_for_subject(subject_id)
    ]


@router.post(
    "/{subject_id}/topics",
    response_model=TopicResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_topic(subject_id: str, body: TopicCreate) -> TopicResponse:
    try:
        topic = study.create_topic(subject_id, body.name, body.description)
    except DOMAIN_ERRORS as e:
        raise to_http(e) from e
    return TopicResponse.model_validate(topic)


@router.delete("/{subject_id}/topics/{topic_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_topic(subject_id: str, topic_id: str) -> None:
    topic = subjects_repository.get_topic(topic_id)
    if topic is None or topic.subject_id != subject_id:
        raise _not_found("Topic", topic_id)
    subjects_repository.delete_topic(topic_id)


@router.get("/{subject_id}/topics/{topic_id}/concepts", response_model=list[ConceptResponse])
async def list_concepts(subject_id: str, topic_id: str) -> list[ConceptResponse]:
    topic = subjects_repository.get_topic(topic_id)
    if topic is None or topic.subject_id != subject_id:
        raise _not_found("Topic", topic_id)
    return [
        ConceptResponse.model_validate(c)
        for c in subjects_repository.get_concepts_for_topic(topic_id)
    ]


@router.post(
    "/{subject_id}/topics/{topic_id}/concepts",
    response_model=ConceptResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_concept(subject_id: str, topic_id: str, body: ConceptCreate) -> ConceptResponse:
    topic = subjects_repository.get_topic(topic_id)
    if topic is None or topic.subject_id != subject_id:
        raise _not_found("Topic", topic_id)
    try:
        concept = study.create_concept(topic_id, body.name, body.description, body.content)
    except DOMAIN_ERRORS as e:
        raise to_http(e) from e
    return ConceptResponse.model_validate(concept)


@router.delete(
    "/{subject_id}/topics/{topic_id}/concepts/{concept_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def delete_concept(subject_id: str, topic_id: str, concept_id: str) -> None:
    concept = subjects_repository.get_concept(concept_id)
    if concept is None or concept.topic_id != topic_id:
        raise _not_found("Concept", concept_id)
    subjects_repository.delete_concept(concept_id)


# =============================================================================
# STUDY SESSIONS AND QUIZZES
# =============================================================================


@router.post("/{subject_id}/study", status_code=status.HTTP_201_CREATED)
async def log_study(subject_id: str, body: StudyLogRequest) -> dict:
    """Log a study session and return the XP breakdown."""
    try:
        result = study.log_study_session(
            body.user_id,
            subject_id,
            body.duration,
            topic_id=body.topic_id,
            difficulty=body.difficulty,
            activity_type=body.activity_type,
            confidence=body.confidence,
            rating=body.rating,
            completed_activities=body.completed_activities,
            notes=body.notes,
        )
    except DOMAIN_ERRORS as e:
        raise to_http(e) from e
    return result.to_dict()


@router.get("/{subject_id}/sessions")
async def list_sessions(subject_id: str, user_id: str) -> list[dict]:
    return [
        s.to_dict()
        for s in sessions_repository.list_study_sessions(user_id, subject_id=subject_id)
    ]


@router.post("/{subject_id}/quiz-results", status_code=status.HTTP_201_CREATED)
async def record_quiz_result(subject_id: str, body: QuizResultCreate) -> dict:
    try:
        result = study.record_quiz_result(
            body.user_id, subject_id, body.score, body.total, body.weak_areas
        )
    except DOMAIN_ERRORS as e:
        raise to_http(e) from e
    return result.to_dict()


@router.get("/{subject_id}/quiz-results")
async def list_quiz_results(subject_id: str, user_id: str) -> list[dict]:
    return [
        q.to_dict()
        for q in sessions_repository.list_quiz_results(user_id, subject_id=subject_id)
    ]
