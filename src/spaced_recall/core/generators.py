"""LLM-generated subject structures and practice quizzes.

Responsibilities:
- Ask the LLM for a topic/concept breakdown of a subject
- Ask the LLM for multiple-choice questions weighted towards weak topics
- Ask the LLM for study recommendations after a quiz
- Validate the returned JSON shape
- Turn an accepted structure into subjects, topics and concepts
"""

from __future__ import annotations

import json
import re
from dataclasses import asdict, dataclass, field
from typing import Any, Literal

import structlog

from spaced_recall.core import study
from spaced_recall.errors import DuplicateError
from spaced_recall.llm.client import LLMClient, LLMError
from spaced_recall.prompts.registry import get_prompt

logger = structlog.get_logger(__name__)

QuizType = Literal["weak", "comprehensive"]

STRUCTURE_MAX_TOKENS = 3000
QUIZ_MAX_TOKENS = 2500
RECOMMENDATIONS_MAX_TOKENS = 1500

RECOMMENDED_DIFFICULTIES = ("easy", "medium", "hard", "expert")


# =============================================================================
# TYPES
# =============================================================================


@dataclass
class TopicOutline:
    name: str
    description: str = ""
    core_concepts: list[str] = field(default_factory=list)
    branch: str | None = None
    recommended_resources: list[str] = field(default_factory=list)
    estimated_study_hours: float = 0


@dataclass
class SubjectStructure:
    """A proposed breakdown of a subject into topics and core concepts."""

    name: str
    description: str
    topics: list[TopicOutline]
    total_estimated_hours: float = 0
    recommended_order: list[str] = field(default_factory=list)
    prerequisites: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SubjectStructure":
        """Build from either snake_case or the camelCase keys the LLM is asked for.

        Raises:
            GenerationError: If name, description or topics are missing
        """
        if not isinstance(data, dict):
            raise GenerationError("Subject structure must be a JSON object")

        name = data.get("name")
        description = data.get("description")
        topics = data.get("topics")
        if not name or not description or not isinstance(topics, list):
            raise GenerationError("Subject structure needs name, description and topics")

        outlines = []
        for topic in topics:
            if not isinstance(topic, dict) or not topic.get("name"):
                raise GenerationError("Every topic needs a name")
            outlines.append(
                TopicOutline(
                    name=str(topic["name"]),
                    description=str(topic.get("description") or ""),
                    core_concepts=[
                        str(c) for c in _pick(topic, "core_concepts", "coreConcepts") or []
                    ],
                    branch=topic.get("branch"),
                    recommended_resources=[
                        str(r)
                        for r in _pick(topic, "recommended_resources", "recommendedResources")
                        or []
                    ],
                    estimated_study_hours=float(
                        _pick(topic, "estimated_study_hours", "estimatedStudyHours") or 0
                    ),
                )
            )

        return cls(
            name=str(name),
            description=str(description),
            topics=outlines,
            total_estimated_hours=float(
                _pick(data, "total_estimated_hours", "totalEstimatedHours")
                or sum(t.estimated_study_hours for t in outlines)
            ),
            recommended_order=list(_pick(data, "recommended_order", "recommendedOrder") or []),
            prerequisites=list(data.get("prerequisites") or []),
        )


@dataclass
class QuizQuestion:
    question: str
    options: list[str]
    correct_answer: str
    explanation: str
    topic: str | None = None
    concept: str | None = None
    difficulty: str = "medium"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class FocusArea:
    topic: str
    reason: str = ""
    study_tips: str = ""


@dataclass
class QuizRecommendations:
    """Study advice generated from a quiz result."""

    analysis: str
    focus_areas: list[FocusArea]
    next_steps: str = ""
    recommended_difficulty: str = "medium"
    estimated_study_time: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(
        cls, data: dict[str, Any], default_difficulty: str = "medium"
    ) -> "QuizRecommendations":
        """Build from snake_case or camelCase keys.

        An unknown recommended difficulty falls back to `default_difficulty`.

        Raises:
            GenerationError: If the analysis or the focus area list is missing
        """
        if not isinstance(data, dict):
            raise GenerationError("Recommendations must be a JSON object")

        analysis = data.get("analysis")
        areas = _pick(data, "focus_areas", "focusAreas")
        if not analysis or not isinstance(areas, list):
            raise GenerationError("Recommendations need an analysis and focus areas")

        focus_areas = []
        for area in areas:
            if not isinstance(area, dict) or not area.get("topic"):
                raise GenerationError("Every focus area needs a topic")
            focus_areas.append(
                FocusArea(
                    topic=str(area["topic"]),
                    reason=str(area.get("reason") or ""),
                    study_tips=str(_pick(area, "study_tips", "studyTips") or ""),
                )
            )

        difficulty = str(
            _pick(data, "recommended_difficulty", "recommendedDifficulty") or ""
        ).lower()
        if difficulty not in RECOMMENDED_DIFFICULTIES:
            difficulty = default_difficulty

        return cls(
            analysis=str(analysis),
            focus_areas=focus_areas,
            next_steps=str(_pick(data, "next_steps", "nextSteps") or ""),
            recommended_difficulty=difficulty,
            estimated_study_time=_minutes(
                _pick(data, "estimated_study_time", "estimatedStudyTime")
            ),
        )


class GenerationError(Exception):
    """Error generating or validating LLM content."""

    pass


def _pick(data: dict, *keys: str) -> Any:
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return None


# =============================================================================
# GENERATION
# =============================================================================


def _call_llm(client: LLMClient | None, system_prompt: str, user_message: str, max_tokens: int):
    if client is None:
        client = LLMClient()

    try:
        return client.simple_json(system_prompt, user_message, max_tokens=max_tokens)
    except LLMError as e:
        logger.error("generation_llm_failed", error=str(e))
        raise GenerationError(f"LLM request failed: {e}") from e


def generate_subject_structure(
    subject: str,
    additional_info: str | None = None,
    client: LLMClient | None = None,
) -> SubjectStructure:
    """Ask the LLM for a topic and concept breakdown of a subject.

    Args:
        subject: Subject name
        additional_info: Extra context for the curriculum
        client: Optional pre-configured LLM client (for testing)

    Raises:
        GenerationError: On an empty subject, LLM failure or malformed answer
    """
    if not subject or not subject.strip():
        raise GenerationError("Subject name is required")

    raw = _call_llm(
        client,
        get_prompt("ai/subject_structure"),
        get_prompt(
            "ai/subject_structure_request",
            subject=subject.strip(),
            additional_info=f"Additional context: {additional_info}" if additional_info else "",
        ),
        STRUCTURE_MAX_TOKENS,
    )
    structure = SubjectStructure.from_dict(raw)

    logger.info("subject_structure_generated", subject=subject, topics=len(structure.topics))
    return structure


def _format_topics(topics: list[dict]) -> str:
    lines = []
    for topic in topics:
        concepts = ", ".join(c["name"] for c in topic.get("concepts") or [])
        lines.append(
            f"Topic: {topic['name']}\n"
            f"Current Mastery: {topic.get('mastery_level', 0)}%\n"
            f"Concepts: {concepts}"
        )
    return "\n\n".join(lines)


def generate_quiz(
    subject: str,
    topics: list[dict],
    question_count: int = 10,
    quiz_type: QuizType = "comprehensive",
    client: LLMClient | None = None,
) -> list[QuizQuestion]:
    """Generate multiple-choice questions for a subject.

    Args:
        subject: Subject name
        topics: Topic dicts with name, mastery_level and concepts
        question_count: Number of questions to ask for
        quiz_type: "weak" focuses on low-mastery topics
        client: Optional pre-configured LLM client (for testing)

    Raises:
        GenerationError: If the answer has no question list or a question
            lacks question, options, correct answer or explanation
    """
    if question_count < 1:
        raise GenerationError("Question count must be at least 1")

    weak = quiz_type == "weak"
    raw = _call_llm(
        client,
        get_prompt("ai/quiz", subject=subject),
        get_prompt(
            "ai/quiz_request",
            question_count=question_count,
            quiz_kind="focused practice" if weak else "comprehensive",
            subject=subject,
            topics=_format_topics(topics),
            focus=(
                "Focus on topics with lower mastery levels."
                if weak
                else "Cover all topics evenly."
            ),
        ),
        QUIZ_MAX_TOKENS,
    )

    questions = raw.get("questions") if isinstance(raw, dict) else None
    if not isinstance(questions, list):
        raise GenerationError("Quiz response has no question list")

    parsed = []
    for item in questions:
        if not isinstance(item, dict):
            raise GenerationError("Invalid question format in quiz response")
        correct = _pick(item, "correct_answer", "correctAnswer")
        if not item.get("question") or not item.get("options") or not correct or not item.get("explanation"):
            raise GenerationError("Invalid question format in quiz response")
        parsed.append(
            QuizQuestion(
                question=str(item["question"]),
                options=[str(o) for o in item["options"]],
                correct_answer=str(correct),
                explanation=str(item["explanation"]),
                topic=item.get("topic"),
                concept=item.get("concept"),
                difficulty=str(item.get("difficulty") or "medium"),
            )
        )

    logger.info("quiz_generated", subject=subject, questions=len(parsed), quiz_type=quiz_type)
    return parsed


def _format_incorrect(incorrect_answers: list[dict]) -> str:
    if not incorrect_answers:
        return "(none)"
    return json.dumps(incorrect_answers, indent=2, ensure_ascii=False)


def _minutes(value: Any) -> int | None:
    """Study time from an int or a string such as "45 minutes"."""
    if isinstance(value, (int, float)):
        return int(value)
    match = re.search(r"\d+", str(value or ""))
    return int(match.group()) if match else None


def generate_recommendations(
    subject: str,
    topic: str,
    quiz_score: float,
    incorrect_answers: list[dict] | None = None,
    concept: str | None = None,
    difficulty: str = "medium",
    client: LLMClient | None = None,
) -> QuizRecommendations:
    """Study advice after a quiz, based on the score and the missed questions.

    Args:
        subject: Subject name
        topic: Topic the quiz covered
        quiz_score: Score percentage 0..100
        incorrect_answers: Missed questions, e.g. question/selected/correct
        concept: Concept the quiz covered, if any
        difficulty: Difficulty the quiz was taken at
        client: Optional pre-configured LLM client (for testing)

    Raises:
        GenerationError: On a score out of range, LLM failure, or an answer
            without an analysis and a list of focus areas
    """
    if not 0 <= quiz_score <= 100:
        raise GenerationError("Quiz score must be between 0 and 100")

    raw = _call_llm(
        client,
        get_prompt("ai/recommendations", subject=subject, topic=topic),
        get_prompt(
            "ai/recommendations_request",
            subject=subject,
            topic=topic,
            concept=concept or topic,
            score=round(quiz_score),
            difficulty=difficulty,
            incorrect_answers=_format_incorrect(incorrect_answers or []),
        ),
        RECOMMENDATIONS_MAX_TOKENS,
    )

    recommendations = QuizRecommendations.from_dict(raw, default_difficulty=difficulty)
    logger.info(
        "recommendations_generated",
        subject=subject,
        topic=topic,
        focus_areas=len(recommendations.focus_areas),
    )
    return recommendations


# =============================================================================
# APPLY
# =============================================================================


def apply_subject_structure(
    user_id: str,
    structure: SubjectStructure,
    study_style: str = "mixed",
) -> dict[str, Any]:
    """Create the subject, topics and concepts of an accepted structure.

    Topics or concepts whose names repeat within the structure are skipped.

    Returns:
        The created subject tree as from get_subject_tree

    Raises:
        DuplicateError: If the user already has a subject with this name
    """
    subject = study.create_subject(
        user_id, structure.name, structure.description, study_style=study_style
    )

    for outline in structure.topics:
        try:
            topic = study.create_topic(subject.subject_id, outline.name, outline.description)
        except DuplicateError:
            logger.warning("structure_duplicate_topic", topic=outline.name)
            continue
        for concept_name in outline.core_concepts:
            try:
                study.create_concept(topic.topic_id, concept_name)
            except DuplicateError:
                logger.warning("structure_duplicate_concept", concept=concept_name)

    logger.info("subject_structure_applied", subject_id=subject.subject_id)
    return study.subject_tree(subject.subject_id)
