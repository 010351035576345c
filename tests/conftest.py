"""Shared fixtures.

Every test runs in its own temporary directory with a fresh SQLite
database, default configuration and empty caches.
"""

import pytest

from spaced_recall.config.app_config import clear_config_cache
from spaced_recall.config.themes import clear_themes_cache
from spaced_recall.core import study, users
from spaced_recall.core.timers import reset_timer_manager
from spaced_recall.db.database import init_db
from spaced_recall.prompts.registry import clear_cache as clear_prompt_cache


@pytest.fixture(autouse=True)
def isolated_db(tmp_path, monkeypatch):
    """Fresh database and caches in a temporary working directory."""
    monkeypatch.chdir(tmp_path)
    for var in ("NOTION_TOKEN", "GOOGLE_CALENDAR_TOKEN", "OPENAI_API_KEY"):
        monkeypatch.delenv(var, raising=False)

    clear_config_cache()
    clear_themes_cache()
    clear_prompt_cache()
    reset_timer_manager()

    db_path = tmp_path / "db" / "test.db"
    init_db(db_path)
    yield db_path

    clear_config_cache()
    reset_timer_manager()


@pytest.fixture
def user():
    return users.create_user("Ana", "ana@example.com")


@pytest.fixture
def subject(user):
    return study.create_subject(user.user_id, "Calculus", "Limits and derivatives")


@pytest.fixture
def topic(subject):
    return study.create_topic(subject.subject_id, "Limits", "Approaching a value")


@pytest.fixture
def concept(topic):
    return study.create_concept(topic.topic_id, "Epsilon-delta", content="For every epsilon...")
