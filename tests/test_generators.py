"""Tests for LLM-generated subject structures, quizzes and recommendations."""

from unittest.mock import MagicMock

import pytest

from spaced_recall.core.generators import (
    GenerationError,
    SubjectStructure,
    apply_subject_structure,
    generate_quiz,
    generate_recommendations,
    generate_subject_structure,
)
from spaced_recall.db import xp_repository
from spaced_recall.errors import DuplicateError
from spaced_recall.llm.client import LLMClient, LLMResponseError

STRUCTURE = {
    "name": "Linear Algebra",
    "description": "Vectors, matrices and linear maps",
    "topics": [
        {
            "name": "Vectors",
            "description": "Vector spaces",
            "coreConcepts": ["Basis", "Span"],
            "estimatedStudyHours": 4,
        },
        {
            "name": "Matrices",
            "description": "Matrix algebra",
            "coreConcepts": ["Determinant"],
            "estimatedStudyHours": 6,
        },
    ],
    "recommendedOrder": ["Vectors", "Matrices"],
}

QUESTION = {
    "question": "What is the determinant of the identity matrix?",
    "options": ["0", "1", "-1", "n"],
    "correctAnswer": "1",
    "explanation": "The product of the diagonal entries is 1.",
    "topic": "Matrices",
    "difficulty": "easy",
}


@pytest.fixture
def mock_client():
    client = MagicMock(spec=LLMClient)
    return client


class TestSubjectStructure:
    """Tests for SubjectStructure.from_dict."""

    def test_camel_case_keys(self):
        structure = SubjectStructure.from_dict(STRUCTURE)

        assert [t.name for t in structure.topics] == ["Vectors", "Matrices"]
        assert structure.topics[0].core_concepts == ["Basis", "Span"]
        assert structure.total_estimated_hours == 10
        assert structure.recommended_order == ["Vectors", "Matrices"]

    def test_round_trip_with_snake_case(self):
        structure = SubjectStructure.from_dict(STRUCTURE)
        assert SubjectStructure.from_dict(structure.to_dict()) == structure

    @pytest.mark.parametrize(
        "data",
        [
            [],
            {"name": "X", "description": "Y"},
            {"name": "X", "description": "Y", "topics": [{"description": "no name"}]},
        ],
    )
    def test_invalid_structures(self, data):
        with pytest.raises(GenerationError):
            SubjectStructure.from_dict(data)


class TestGenerateSubjectStructure:
    def test_prompt_includes_subject(self, mock_client):
        mock_client.simple_json.return_value = STRUCTURE

        structure = generate_subject_structure(
            "Linear Algebra", additional_info="for engineers", client=mock_client
        )

        assert structure.name == "Linear Algebra"
        _, user_message = mock_client.simple_json.call_args.args
        assert '"Linear Algebra"' in user_message
        assert "Additional context: for engineers" in user_message

    def test_empty_subject(self, mock_client):
        with pytest.raises(GenerationError):
            generate_subject_structure("  ", client=mock_client)
        mock_client.simple_json.assert_not_called()

    def test_llm_failure_is_wrapped(self, mock_client):
        mock_client.simple_json.side_effect = LLMResponseError("bad json")
        with pytest.raises(GenerationError):
            generate_subject_structure("Physics", client=mock_client)


class TestGenerateQuiz:
    def test_parses_questions(self, mock_client):
        mock_client.simple_json.return_value = {"questions": [QUESTION]}
        topics = [{"name": "Matrices", "mastery_level": 20, "concepts": [{"name": "Determinant"}]}]

        questions = generate_quiz("Linear Algebra", topics, question_count=1, client=mock_client)

        assert questions[0].correct_answer == "1"
        assert questions[0].difficulty == "easy"
        _, user_message = mock_client.simple_json.call_args.args
        assert "Current Mastery: 20%" in user_message
        assert "Cover all topics evenly." in user_message

    def test_weak_quiz_focus(self, mock_client):
        mock_client.simple_json.return_value = {"questions": []}
        generate_quiz("Linear Algebra", [], quiz_type="weak", client=mock_client)
        _, user_message = mock_client.simple_json.call_args.args
        assert "lower mastery" in user_message

    def test_missing_question_list(self, mock_client):
        mock_client.simple_json.return_value = {"items": []}
        with pytest.raises(GenerationError):
            generate_quiz("Linear Algebra", [], client=mock_client)

    def test_incomplete_question(self, mock_client):
        broken = {k: v for k, v in QUESTION.items() if k != "explanation"}
        mock_client.simple_json.return_value = {"questions": [broken]}
        with pytest.raises(GenerationError):
            generate_quiz("Linear Algebra", [], client=mock_client)

    def test_question_count_must_be_positive(self, mock_client):
        with pytest.raises(GenerationError):
            generate_quiz("Linear Algebra", [], question_count=0, client=mock_client)


RECOMMENDATIONS = {
    "analysis": "Solid on definitions, weak on computation.",
    "focusAreas": [
        {
            "topic": "Determinants",
            "reason": "Two cofactor expansions went wrong",
            "studyTips": "Work 2x2 and 3x3 cases by hand",
        }
    ],
    "nextSteps": "Redo the missed questions tomorrow.",
    "recommendedDifficulty": "Easy",
    "estimatedStudyTime": "45 minutes",
}

MISSED = [{"question": "det(2I) for n=3?", "selected": "2", "correct": "8"}]


class TestGenerateRecommendations:
    def test_parses_recommendations(self, mock_client):
        mock_client.simple_json.return_value = RECOMMENDATIONS

        result = generate_recommendations(
            "Linear Algebra", "Matrices", 60, MISSED, client=mock_client
        )

        assert result.focus_areas[0].study_tips == "Work 2x2 and 3x3 cases by hand"
        assert result.recommended_difficulty == "easy"
        assert result.estimated_study_time == 45
        system_prompt, user_message = mock_client.simple_json.call_args.args
        assert "Linear Algebra" in system_prompt
        assert "Quiz score: 60%" in user_message
        assert "det(2I) for n=3?" in user_message

    def test_unknown_difficulty_keeps_quiz_difficulty(self, mock_client):
        mock_client.simple_json.return_value = {
            **RECOMMENDATIONS,
            "recommendedDifficulty": "nightmare",
            "estimatedStudyTime": None,
        }

        result = generate_recommendations(
            "Linear Algebra", "Matrices", 90, difficulty="hard", client=mock_client
        )

        assert result.recommended_difficulty == "hard"
        assert result.estimated_study_time is None
        _, user_message = mock_client.simple_json.call_args.args
        assert "(none)" in user_message

    @pytest.mark.parametrize(
        "payload",
        [
            {"focusAreas": []},
            {"analysis": "ok", "focusAreas": "study more"},
            {"analysis": "ok", "focusAreas": [{"reason": "no topic"}]},
        ],
    )
    def test_bad_shape(self, mock_client, payload):
        mock_client.simple_json.return_value = payload
        with pytest.raises(GenerationError):
            generate_recommendations("Linear Algebra", "Matrices", 50, client=mock_client)

    def test_score_out_of_range(self, mock_client):
        with pytest.raises(GenerationError):
            generate_recommendations("Linear Algebra", "Matrices", 120, client=mock_client)
        mock_client.simple_json.assert_not_called()

    def test_llm_failure(self, mock_client):
        mock_client.simple_json.side_effect = LLMResponseError("not json")
        with pytest.raises(GenerationError):
            generate_recommendations("Linear Algebra", "Matrices", 50, client=mock_client)


class TestApplyStructure:
    def test_creates_hierarchy(self, user):
        tree = apply_subject_structure(user.user_id, SubjectStructure.from_dict(STRUCTURE))

        assert tree["subject"]["name"] == "Linear Algebra"
        assert [t["name"] for t in tree["topics"]] == ["Vectors", "Matrices"]
        assert [c["name"] for c in tree["topics"][0]["concepts"]] == ["Basis", "Span"]
        # 2 topics * 25 + 3 concepts * 15
        assert xp_repository.sum_xp_by_source(user.user_id) == {"content": 95}

    def test_repeated_names_are_skipped(self, user):
        data = dict(STRUCTURE)
        data["topics"] = STRUCTURE["topics"] + [{"name": "Vectors", "coreConcepts": ["Norm"]}]

        tree = apply_subject_structure(user.user_id, SubjectStructure.from_dict(data))

        assert len(tree["topics"]) == 2

    def test_existing_subject(self, user):
        structure = SubjectStructure.from_dict(STRUCTURE)
        apply_subject_structure(user.user_id, structure)
        with pytest.raises(DuplicateError):
            apply_subject_structure(user.user_id, structure)
