"""Tests for the recall CLI."""

import io
import re
import zipfile
from unittest.mock import MagicMock, patch

import pytest
from typer.testing import CliRunner

from spaced_recall.cli.commands import app

runner = CliRunner()


def _id(output: str, prefix: str) -> str:
    match = re.search(rf"{prefix}-[0-9a-f]{{8}}", output)
    assert match, output
    return match.group(0)


@pytest.fixture
def ana():
    """A user with a subject, a topic and a concept, created through the CLI."""
    result = runner.invoke(app, ["add-user", "Ana", "--email", "ana@example.com"])
    assert result.exit_code == 0, result.output
    runner.invoke(app, ["add-subject", "Ana", "Calculus", "-d", "Limits and derivatives"])
    runner.invoke(app, ["add-topic", "Ana", "Calculus", "Limits"])
    runner.invoke(app, ["add-concept", "Ana", "Calculus", "Limits", "Epsilon-delta", "-c", "For every epsilon"])
    return _id(result.output, "usr")


class TestUsers:
    """Tests for add-user, users, xp and checkin."""

    def test_no_users(self):
        result = runner.invoke(app, ["users"])
        assert result.exit_code == 0
        assert "No users yet" in result.output

    def test_add_user(self):
        result = runner.invoke(app, ["add-user", "Pedro", "--theme", "fantasy"])
        assert result.exit_code == 0
        assert "User created" in result.output
        assert "fantasy" in result.output

    def test_add_user_bad_email(self):
        result = runner.invoke(app, ["add-user", "Pedro", "-e", "nope"])
        assert result.exit_code == 1
        assert "Invalid email" in result.output

    def test_duplicate_user(self, ana):
        result = runner.invoke(app, ["add-user", "Ana"])
        assert result.exit_code == 1

    def test_user_by_id_prefix(self, ana):
        result = runner.invoke(app, ["xp", ana[:6]])
        assert result.exit_code == 0
        assert "Ana" in result.output
        assert "content" in result.output

    def test_unknown_user_lists_candidates(self, ana):
        result = runner.invoke(app, ["xp", "Bea"])
        assert result.exit_code == 1
        assert "No user matches 'Bea'" in result.output
        assert ana in result.output

    def test_checkin(self, ana):
        result = runner.invoke(app, ["checkin", "Ana"])
        assert result.exit_code == 0
        assert "Streak: 1 day(s)" in result.output


class TestSubjects:
    """Tests for subject, topic and concept commands."""

    def test_list_subjects(self, ana):
        result = runner.invoke(app, ["subjects", "Ana"])
        assert result.exit_code == 0
        assert "Calculus" in result.output

    def test_ambiguous_subject_prefix(self, ana):
        runner.invoke(app, ["add-subject", "Ana", "Physics"])
        result = runner.invoke(app, ["add-topic", "Ana", "sub-", "Kinematics"])
        assert result.exit_code == 1
        assert "ambiguous" in result.output

    def test_bad_study_style(self, ana):
        result = runner.invoke(app, ["add-subject", "Ana", "Art", "--style", "osmosis"])
        assert result.exit_code == 1
        assert "Unknown study style" in result.output

    def test_exam_plan_outside_window(self, ana):
        result = runner.invoke(app, ["exam-plan", "Ana", "Calculus"])
        assert result.exit_code == 0
        assert "No exam" in result.output

    def test_generate_subject_apply(self, ana):
        llm = MagicMock()
        llm.config.model = "test-model"
        llm.simple_json.return_value = {
            "name": "Linear Algebra",
            "description": "Vectors and matrices",
            "topics": [
                {"name": "Vectors", "coreConcepts": ["Basis", "Span"], "estimatedStudyHours": 4}
            ],
        }
        with patch("spaced_recall.cli.commands.LLMClient", return_value=llm):
            result = runner.invoke(app, ["generate-subject", "Ana", "Linear Algebra", "--apply"])

        assert result.exit_code == 0, result.output
        assert "Basis" in result.output
        assert "Subject created" in result.output
        assert "Linear Algebra" in runner.invoke(app, ["subjects", "Ana"]).output


class TestStudy:
    """Tests for log-study, due and review."""

    def test_log_study(self, ana):
        result = runner.invoke(app, ["log-study", "Ana", "Calculus", "-m", "30", "-t", "Limits"])
        assert result.exit_code == 0, result.output
        assert "+127 XP" in result.output
        assert "phase initial" in result.output

    def test_log_study_needs_minutes(self, ana):
        result = runner.invoke(app, ["log-study", "Ana", "Calculus"])
        assert result.exit_code != 0

    def test_review_concept_by_name(self, ana):
        result = runner.invoke(app, ["review", "Ana", "Epsilon-delta", "--pass"])
        assert result.exit_code == 0, result.output
        assert "in 1 day(s)" in result.output

    def test_review_requires_rating_or_pass(self, ana):
        result = runner.invoke(app, ["review", "Ana", "Epsilon-delta"])
        assert result.exit_code == 1

    def test_nothing_due(self, ana):
        result = runner.invoke(app, ["due", "Ana"])
        assert result.exit_code == 0
        assert "Nothing due" in result.output


class TestObsidian:
    """Tests for export-obsidian and import-obsidian."""

    def test_export_to_zip(self, ana, tmp_path):
        target = tmp_path / "out" / "calculus.zip"
        target.parent.mkdir()
        result = runner.invoke(app, ["export-obsidian", "Ana", "Calculus", "-o", str(target)])

        assert result.exit_code == 0, result.output
        assert "Exported 3 notes" in result.output
        with zipfile.ZipFile(target) as archive:
            assert "Calculus/Limits/Epsilon-delta.md" in archive.namelist()

    def test_export_to_default_dir(self, ana, tmp_path):
        result = runner.invoke(app, ["export-obsidian", "Ana", "Calculus"])
        assert result.exit_code == 0, result.output
        assert (tmp_path / "data" / "exports" / "Calculus.zip").exists()

    def test_import_directory(self, ana, tmp_path):
        vault = tmp_path / "vault"
        (vault / "Series").mkdir(parents=True)
        (vault / "Limits").mkdir()
        (vault / "Series" / "Geometric.md").write_text("# Geometric\n\nSum of r^n")
        (vault / "Limits" / "Squeeze.md").write_text("# Squeeze\n\nBound both sides")

        result = runner.invoke(app, ["import-obsidian", "Ana", str(vault), "-n", "Calculus"])

        assert result.exit_code == 0, result.output
        assert "Merged into 'Calculus'" in result.output
        assert "+1" in result.output

    def test_import_zip(self, ana, tmp_path):
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w") as archive:
            archive.writestr("Algebra/Groups/Identity.md", "# Identity\n\ne * a = a")
            archive.writestr("Algebra/Rings/Ideal.md", "# Ideal\n\nAbsorbs products")
        source = tmp_path / "algebra.zip"
        source.write_bytes(buffer.getvalue())

        result = runner.invoke(app, ["import-obsidian", "Ana", str(source)])

        assert result.exit_code == 0, result.output
        assert "Created 'Algebra'" in result.output

    def test_import_missing_source(self, ana, tmp_path):
        result = runner.invoke(app, ["import-obsidian", "Ana", str(tmp_path / "nowhere")])
        assert result.exit_code == 1
        assert "Not found" in result.output
