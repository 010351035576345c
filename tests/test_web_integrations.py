"""Tests for the integration and AI endpoints."""

import base64
import io
import zipfile
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from spaced_recall.llm.client import LLMClient
from spaced_recall.web.api import create_app


@pytest.fixture
def client():
    return TestClient(create_app())


@pytest.fixture
def ids(client):
    user_id = client.post("/api/users", json={"name": "Ana"}).json()["user_id"]
    subject_id = client.post(
        "/api/subjects", json={"user_id": user_id, "name": "Calculus", "description": "Limits"}
    ).json()["subject_id"]
    client.post(f"/api/subjects/{subject_id}/topics", json={"name": "Limits"})
    return {"user_id": user_id, "subject_id": subject_id}


@pytest.fixture
def notion_client():
    mock = MagicMock()
    mock.pages.create.return_value = {"id": "page-1"}
    mock.pages.retrieve.return_value = {
        "id": "page-1",
        "last_edited_time": "2026-03-02T10:00:05+00:00",
    }
    mock.blocks.children.list.return_value = {
        "results": [],
        "has_more": False,
        "next_cursor": None,
    }
    return mock


def _vault_zip() -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr("Limits/Epsilon-delta.md", "# Epsilon-delta\n\nFor every epsilon")
        archive.writestr("Series/Geometric.md", "# Geometric\n\nSum of r^n")
    return buffer.getvalue()


class TestNotion:
    """Tests for /api/integrations/notion."""

    def test_status_not_connected(self, client, ids):
        response = client.get("/api/integrations/notion/status", params={"user_id": ids["user_id"]})
        assert response.json() == {"connected": False}

    def test_connect_hides_token(self, client, ids):
        response = client.post(
            "/api/integrations/notion/connect",
            json={"user_id": ids["user_id"], "access_token": "secret", "workspace_name": "Home"},
        )
        assert response.status_code == 201
        assert "access_token" not in response.json()

        status = client.get(
            "/api/integrations/notion/status", params={"user_id": ids["user_id"]}
        ).json()
        assert status["workspace_name"] == "Home"

    def test_disconnect_when_not_connected(self, client, ids):
        response = client.delete("/api/integrations/notion", params={"user_id": ids["user_id"]})
        assert response.status_code == 404

    def test_push_without_connection(self, client, ids):
        response = client.post(
            f"/api/integrations/notion/subjects/{ids['subject_id']}/push",
            json={"user_id": ids["user_id"]},
        )
        assert response.status_code == 502

    def test_push_then_changes(self, client, ids, notion_client):
        with patch("spaced_recall.integrations.notion.get_client", return_value=notion_client):
            response = client.post(
                f"/api/integrations/notion/subjects/{ids['subject_id']}/push",
                json={"user_id": ids["user_id"]},
            )
        assert response.status_code == 200
        assert response.json()["external_id"] == "page-1"

        records = client.get(
            "/api/integrations/sync-records",
            params={"user_id": ids["user_id"], "external_system": "notion"},
        ).json()
        assert len(records) == 1

        changes = client.get(
            f"/api/integrations/notion/subjects/{ids['subject_id']}/changes",
            params={"user_id": ids["user_id"]},
        ).json()
        assert changes["changed"] is False

    def test_pull_before_push(self, client, ids, notion_client):
        with patch("spaced_recall.integrations.notion.get_client", return_value=notion_client):
            response = client.post(
                f"/api/integrations/notion/subjects/{ids['subject_id']}/pull",
                json={"user_id": ids["user_id"]},
            )
        assert response.status_code == 502


class TestObsidian:
    """Tests for /api/integrations/obsidian."""

    def test_export_returns_zip(self, client, ids):
        response = client.post(
            f"/api/integrations/obsidian/subjects/{ids['subject_id']}/export",
            json={"user_id": ids["user_id"]},
        )
        assert response.status_code == 200
        assert response.headers["content-type"] == "application/zip"
        assert int(response.headers["x-note-count"]) >= 1
        with zipfile.ZipFile(io.BytesIO(response.content)) as archive:
            assert any(name.endswith(".md") for name in archive.namelist())

    def test_import_base64_zip(self, client, ids):
        response = client.post(
            "/api/integrations/obsidian/import",
            json={
                "user_id": ids["user_id"],
                "zip_base64": base64.b64encode(_vault_zip()).decode(),
                "subject_name": "Analysis",
            },
        )
        assert response.status_code == 201

        subjects = client.get("/api/subjects", params={"user_id": ids["user_id"]}).json()
        assert "Analysis" in [s["name"] for s in subjects["subjects"]]

    def test_import_needs_exactly_one_source(self, client, ids):
        response = client.post("/api/integrations/obsidian/import", json={"user_id": ids["user_id"]})
        assert response.status_code == 400

    def test_import_bad_base64(self, client, ids):
        response = client.post(
            "/api/integrations/obsidian/import",
            json={"user_id": ids["user_id"], "zip_base64": "not base64!"},
        )
        assert response.status_code == 400

    def test_import_missing_path(self, client, ids, tmp_path):
        response = client.post(
            "/api/integrations/obsidian/import",
            json={"user_id": ids["user_id"], "path": str(tmp_path / "nowhere")},
        )
        assert response.status_code == 404


class TestCalendar:
    def test_link(self, client):
        response = client.post(
            "/api/integrations/calendar/link",
            json={"title": "Review Limits", "start": "2026-03-02T10:00:00Z"},
        )
        assert response.status_code == 200
        assert "20260302T100000Z" in response.json()["url"]

    def test_event_without_token(self, client):
        response = client.post(
            "/api/integrations/calendar/events",
            json={"title": "Review Limits", "start": "2026-03-02T10:00:00Z"},
        )
        assert response.status_code == 502


class TestAI:
    """Tests for /api/ai with a mocked LLM client."""

    STRUCTURE = {
        "name": "Linear Algebra",
        "description": "Vectors and matrices",
        "topics": [{"name": "Vectors", "description": "", "coreConcepts": ["Basis"]}],
    }

    def test_generate_structure(self, client):
        llm = MagicMock(spec=LLMClient)
        llm.simple_json.return_value = self.STRUCTURE
        with patch("spaced_recall.core.generators.LLMClient", return_value=llm):
            response = client.post("/api/ai/structure", json={"subject": "Linear Algebra"})

        assert response.status_code == 200
        assert response.json()["topics"][0]["core_concepts"] == ["Basis"]

    def test_apply_structure(self, client, ids):
        response = client.post(
            "/api/ai/structure/apply",
            json={"user_id": ids["user_id"], "structure": self.STRUCTURE},
        )
        assert response.status_code == 201
        tree = response.json()
        assert tree["topics"][0]["concepts"][0]["name"] == "Basis"

    def test_apply_malformed_structure(self, client, ids):
        response = client.post(
            "/api/ai/structure/apply",
            json={"user_id": ids["user_id"], "structure": {"name": "X"}},
        )
        assert response.status_code == 502

    def test_generate_quiz(self, client, ids):
        llm = MagicMock(spec=LLMClient)
        llm.simple_json.return_value = {
            "questions": [
                {
                    "question": "What is a limit?",
                    "options": ["a", "b", "c", "d"],
                    "correctAnswer": "a",
                    "explanation": "Because.",
                }
            ]
        }
        with patch("spaced_recall.core.generators.LLMClient", return_value=llm):
            response = client.post(
                "/api/ai/quiz", json={"subject_id": ids["subject_id"], "question_count": 1}
            )

        assert response.status_code == 200
        assert response.json()["count"] == 1

    def test_generate_recommendations(self, client):
        llm = MagicMock(spec=LLMClient)
        llm.simple_json.return_value = {
            "analysis": "Needs work on one-sided limits.",
            "focusAreas": [{"topic": "One-sided limits", "reason": "Missed twice"}],
            "recommendedDifficulty": "easy",
            "estimatedStudyTime": 30,
        }
        with patch("spaced_recall.core.generators.LLMClient", return_value=llm):
            response = client.post(
                "/api/ai/recommendations",
                json={"subject": "Calculus", "topic": "Limits", "quiz_score": 40},
            )

        assert response.status_code == 200
        body = response.json()
        assert body["focus_areas"][0]["topic"] == "One-sided limits"
        assert body["recommended_difficulty"] == "easy"

    def test_recommendations_bad_shape(self, client):
        llm = MagicMock(spec=LLMClient)
        llm.simple_json.return_value = {"analysis": "Fine"}
        with patch("spaced_recall.core.generators.LLMClient", return_value=llm):
            response = client.post(
                "/api/ai/recommendations",
                json={"subject": "Calculus", "topic": "Limits", "quiz_score": 40},
            )

        assert response.status_code == 502

    def test_recommendations_score_validated(self, client):
        response = client.post(
            "/api/ai/recommendations",
            json={"subject": "Calculus", "topic": "Limits", "quiz_score": 140},
        )
        assert response.status_code == 422
