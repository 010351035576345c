"""Tests for learning pathways and memberships."""

from datetime import datetime, timedelta, timezone

import pytest

from spaced_recall.core import pathways
from spaced_recall.db import pathways_repository, users_repository
from spaced_recall.errors import DuplicateError, NotFoundError, ValidationError

NOW = datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc)

BRANCHES = [
    {
        "name": "Foundations",
        "stages": [
            {
                "name": "Week 1",
                "modules": [
                    {"type": "courses", "name": "Intro lectures"},
                    {"type": "exam", "name": "Midterm", "ref_id": "sub-1234abcd"},
                ],
            },
            {"name": "Week 2", "modules": [{"name": "Free reading"}]},
        ],
    }
]


@pytest.fixture
def pathway():
    return pathways.create_pathway("Data Science", "From stats to models", BRANCHES)


class TestPathways:
    """Tests for pathway creation and editing."""

    def test_create_assigns_ids(self, pathway):
        [branch] = pathway.branches
        assert branch["id"].startswith("brn-")
        assert branch["stages"][0]["id"].startswith("stg-")
        module = branch["stages"][0]["modules"][1]
        assert module["id"].startswith("mod-")
        assert module["ref_id"] == "sub-1234abcd"
        assert pathways.count_modules(pathway) == 3

    def test_module_type_defaults_to_custom(self, pathway):
        assert pathway.branches[0]["stages"][1]["modules"][0]["type"] == "custom"

    def test_unknown_module_type(self):
        branches = [{"name": "B", "stages": [{"name": "S", "modules": [{"type": "quest", "name": "M"}]}]}]
        with pytest.raises(ValidationError):
            pathways.create_pathway("Odd", branches=branches)

    def test_nameless_stage(self):
        with pytest.raises(ValidationError):
            pathways.create_pathway("Odd", branches=[{"name": "B", "stages": [{"modules": []}]}])

    def test_empty_name(self):
        with pytest.raises(ValidationError):
            pathways.create_pathway("   ")

    def test_duplicate_name(self, pathway):
        with pytest.raises(DuplicateError):
            pathways.create_pathway("Data Science")

    def test_list_is_alphabetical(self, pathway):
        pathways.create_pathway("Astronomy")
        assert [p.name for p in pathways.list_pathways()] == ["Astronomy", "Data Science"]

    def test_update_keeps_existing_ids(self, pathway):
        branches = pathway.branches
        branches[0]["stages"].append({"name": "Week 3", "modules": []})

        updated = pathways.update_pathway(pathway.pathway_id, branches=branches)

        assert updated.branches[0]["id"] == pathway.branches[0]["id"]
        assert updated.branches[0]["stages"][2]["id"].startswith("stg-")
        assert updated.name == "Data Science"

    def test_update_nothing(self, pathway):
        with pytest.raises(ValidationError):
            pathways.update_pathway(pathway.pathway_id)

    def test_update_missing(self):
        with pytest.raises(NotFoundError):
            pathways.update_pathway("pth-missing", name="X")

    def test_rename_to_taken_name(self, pathway):
        other = pathways.create_pathway("Astronomy")
        with pytest.raises(DuplicateError):
            pathways.update_pathway(other.pathway_id, name="Data Science")

    def test_delete(self, pathway):
        pathways.delete_pathway(pathway.pathway_id)
        with pytest.raises(NotFoundError):
            pathways.get_pathway(pathway.pathway_id)
        with pytest.raises(NotFoundError):
            pathways.delete_pathway(pathway.pathway_id)


class TestMemberships:
    """Tests for joining and leaving pathways."""

    def test_join(self, user, pathway):
        membership = pathways.join_pathway(user.user_id, pathway.pathway_id, now=NOW)

        assert membership.joined_at == "2026-03-02T10:00:00+00:00"
        assert membership.progress == 0
        assert membership.completed_at is None

    def test_join_twice_keeps_first_time(self, user, pathway):
        pathways.join_pathway(user.user_id, pathway.pathway_id, now=NOW)
        again = pathways.join_pathway(
            user.user_id, pathway.pathway_id, now=NOW + timedelta(days=2)
        )

        assert again.joined_at == "2026-03-02T10:00:00+00:00"
        assert len(pathways_repository.list_user_pathways(user.user_id)) == 1

    def test_join_missing(self, user, pathway):
        with pytest.raises(NotFoundError):
            pathways.join_pathway("usr-missing", pathway.pathway_id)
        with pytest.raises(NotFoundError):
            pathways.join_pathway(user.user_id, "pth-missing")

    def test_list_joined(self, user, pathway):
        pathways.join_pathway(user.user_id, pathway.pathway_id, now=NOW)

        [entry] = pathways.list_joined_pathways(user.user_id)

        assert entry["pathway"]["name"] == "Data Science"
        assert entry["membership"]["user_id"] == user.user_id

    def test_leave(self, user, pathway):
        pathways.join_pathway(user.user_id, pathway.pathway_id, now=NOW)
        pathways.leave_pathway(user.user_id, pathway.pathway_id)

        assert pathways.list_joined_pathways(user.user_id) == []
        with pytest.raises(NotFoundError):
            pathways.leave_pathway(user.user_id, pathway.pathway_id)

    def test_deleting_pathway_drops_memberships(self, user, pathway):
        pathways.join_pathway(user.user_id, pathway.pathway_id, now=NOW)
        pathways.delete_pathway(pathway.pathway_id)

        assert pathways_repository.get_user_pathway(user.user_id, pathway.pathway_id) is None

    def test_deleting_user_drops_memberships(self, user, pathway):
        pathways.join_pathway(user.user_id, pathway.pathway_id, now=NOW)
        users_repository.delete_user(user.user_id)

        assert pathways_repository.get_user_pathway(user.user_id, pathway.pathway_id) is None
        assert pathways.get_pathway(pathway.pathway_id).name == "Data Science"
