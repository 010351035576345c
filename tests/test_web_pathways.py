"""Tests for the pathways endpoints."""

import pytest
from fastapi.testclient import TestClient

from spaced_recall.web.api import create_app

PATHWAY = {
    "name": "Data Science",
    "description": "From stats to models",
    "branches": [
        {
            "name": "Foundations",
            "stages": [{"name": "Week 1", "modules": [{"type": "courses", "name": "Intro"}]}],
        }
    ],
}


@pytest.fixture
def client():
    return TestClient(create_app())


@pytest.fixture
def user_id(client):
    return client.post("/api/users", json={"name": "Ana"}).json()["user_id"]


@pytest.fixture
def pathway_id(client):
    return client.post("/api/pathways", json=PATHWAY).json()["pathway_id"]


class TestPathways:
    """Tests for /api/pathways."""

    def test_create_and_get(self, client, pathway_id):
        response = client.get(f"/api/pathways/{pathway_id}")

        assert response.status_code == 200
        module = response.json()["branches"][0]["stages"][0]["modules"][0]
        assert module["type"] == "courses"
        assert module["id"].startswith("mod-")

    def test_list(self, client, pathway_id):
        response = client.get("/api/pathways")
        assert response.json()["count"] == 1

    def test_duplicate(self, client, pathway_id):
        response = client.post("/api/pathways", json=PATHWAY)
        assert response.status_code == 409

    def test_unknown_module_type(self, client):
        bad = {
            "name": "Odd",
            "branches": [{"name": "B", "stages": [{"name": "S", "modules": [{"type": "quest", "name": "M"}]}]}],
        }
        assert client.post("/api/pathways", json=bad).status_code == 422

    def test_update(self, client, pathway_id):
        response = client.put(f"/api/pathways/{pathway_id}", json={"description": "Updated"})

        assert response.status_code == 200
        assert response.json()["description"] == "Updated"
        assert response.json()["branches"][0]["name"] == "Foundations"

    def test_update_nothing(self, client, pathway_id):
        assert client.put(f"/api/pathways/{pathway_id}", json={}).status_code == 400

    def test_missing(self, client):
        assert client.get("/api/pathways/pth-missing").status_code == 404
        assert client.delete("/api/pathways/pth-missing").status_code == 404

    def test_delete(self, client, pathway_id):
        assert client.delete(f"/api/pathways/{pathway_id}").status_code == 204
        assert client.get(f"/api/pathways/{pathway_id}").status_code == 404


class TestMemberships:
    def test_join_and_list(self, client, user_id, pathway_id):
        response = client.post(f"/api/pathways/{pathway_id}/join", json={"user_id": user_id})
        assert response.status_code == 200
        assert response.json()["progress"] == 0

        joined = client.get("/api/pathways/joined", params={"user_id": user_id}).json()
        assert [j["pathway"]["pathway_id"] for j in joined] == [pathway_id]

    def test_join_unknown_user(self, client, pathway_id):
        response = client.post(f"/api/pathways/{pathway_id}/join", json={"user_id": "usr-missing"})
        assert response.status_code == 404

    def test_leave(self, client, user_id, pathway_id):
        client.post(f"/api/pathways/{pathway_id}/join", json={"user_id": user_id})

        response = client.delete(f"/api/pathways/{pathway_id}/join", params={"user_id": user_id})
        assert response.status_code == 204
        again = client.delete(f"/api/pathways/{pathway_id}/join", params={"user_id": user_id})
        assert again.status_code == 404
