"""SQLite database connection and schema management.

Provides connection management and schema initialization for the study tracker.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

import structlog

logger = structlog.get_logger(__name__)

# Default database location
DEFAULT_DB_PATH = Path("db/spaced_recall.db")

# Current database path (module-level, set by init_db)
_db_path: Path | None = None


def init_db(db_path: Path | None = None) -> None:
    """Initialize database with schema.

    Creates the database file and all required tables if they don't exist.

    Args:
        db_path: Path to database file. Defaults to db/spaced_recall.db
    """
    global _db_path
    _db_path = db_path or DEFAULT_DB_PATH

    _db_path.parent.mkdir(parents=True, exist_ok=True)

    with get_db() as conn:
        _create_schema(conn)

    logger.info("database.initialized", path=str(_db_path))


def get_db_path() -> Path:
    """Return the path of the active database."""
    return _db_path or DEFAULT_DB_PATH


@contextmanager
def get_db() -> Generator[sqlite3.Connection, None, None]:
    """Get database connection as context manager.

    Yields:
        SQLite connection with row factory set to sqlite3.Row

    Example:
        with get_db() as conn:
            rows = conn.execute("SELECT * FROM subjects").fetchall()
    """
    db_path = get_db_path()
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")

    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def _create_schema(conn: sqlite3.Connection) -> None:
    """Create database schema.

    Uses IF NOT EXISTS for idempotency.
    """
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS users (
            user_id TEXT PRIMARY KEY,
            name TEXT NOT NULL UNIQUE,
            email TEXT NOT NULL DEFAULT '',
            theme_id TEXT NOT NULL DEFAULT 'neutral',
            total_xp INTEGER NOT NULL DEFAULT 0,
            tokens INTEGER NOT NULL DEFAULT 0,
            current_streak INTEGER NOT NULL DEFAULT 0,
            highest_streak INTEGER NOT NULL DEFAULT 0,
            last_login TEXT,
            theme_started_at TEXT,
            theme_total_days INTEGER NOT NULL DEFAULT 0,
            theme_streak_days INTEGER NOT NULL DEFAULT 0,
            theme_last_active TEXT,
            loyalty_points INTEGER NOT NULL DEFAULT 0,
            stars INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );

        -- Subject -> Topic -> Concept hierarchy
        CREATE TABLE IF NOT EXISTS subjects (
            subject_id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL REFERENCES users(user_id) ON DELETE CASCADE,
            name TEXT NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            study_style TEXT NOT NULL DEFAULT 'mixed',
            xp INTEGER NOT NULL DEFAULT 0,
            total_study_time INTEGER NOT NULL DEFAULT 0,
            exam_mode INTEGER NOT NULL DEFAULT 0,
            exam_date TEXT,
            last_studied TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            UNIQUE(user_id, name)
        );

        CREATE TABLE IF NOT EXISTS topics (
            topic_id TEXT PRIMARY KEY,
            subject_id TEXT NOT NULL REFERENCES subjects(subject_id) ON DELETE CASCADE,
            name TEXT NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            mastery_level INTEGER NOT NULL DEFAULT 0,
            xp INTEGER NOT NULL DEFAULT 0,
            total_study_time INTEGER NOT NULL DEFAULT 0,
            current_phase TEXT NOT NULL DEFAULT 'initial'
                CHECK(current_phase IN ('initial', 'consolidation', 'mastery')),
            phase_state TEXT,
            stability REAL,
            difficulty REAL,
            retrievability REAL,
            last_review TEXT,
            next_review TEXT,
            review_interval INTEGER,
            review_count INTEGER NOT NULL DEFAULT 0,
            last_studied TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            UNIQUE(subject_id, name)
        );

        CREATE TABLE IF NOT EXISTS concepts (
            concept_id TEXT PRIMARY KEY,
            topic_id TEXT NOT NULL REFERENCES topics(topic_id) ON DELETE CASCADE,
            name TEXT NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            content TEXT NOT NULL DEFAULT '',
            mastery_level INTEGER NOT NULL DEFAULT 0,
            current_phase TEXT NOT NULL DEFAULT 'initial'
                CHECK(current_phase IN ('initial', 'consolidation', 'mastery')),
            stability REAL,
            difficulty REAL,
            retrievability REAL,
            last_review TEXT,
            next_review TEXT,
            review_interval INTEGER,
            review_count INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            UNIQUE(topic_id, name)
        );

        CREATE TABLE IF NOT EXISTS review_logs (
            log_id INTEGER PRIMARY KEY AUTOINCREMENT,
            item_type TEXT NOT NULL CHECK(item_type IN ('topic', 'concept')),
            item_id TEXT NOT NULL,
            reviewed_at TEXT NOT NULL,
            rating INTEGER NOT NULL,
            interval_days INTEGER NOT NULL,
            next_review TEXT NOT NULL,
            added_to_calendar INTEGER NOT NULL DEFAULT 0
        );

        CREATE TABLE IF NOT EXISTS study_sessions (
            session_id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL REFERENCES users(user_id) ON DELETE CASCADE,
            subject_id TEXT NOT NULL REFERENCES subjects(subject_id) ON DELETE CASCADE,
            topic_id TEXT REFERENCES topics(topic_id) ON DELETE SET NULL,
            activity_type TEXT NOT NULL DEFAULT 'study',
            difficulty TEXT NOT NULL DEFAULT 'medium',
            duration_minutes INTEGER NOT NULL,
            rating INTEGER,
            confidence INTEGER,
            phase TEXT,
            mastery_gained INTEGER NOT NULL DEFAULT 0,
            xp_earned INTEGER NOT NULL DEFAULT 0,
            next_review TEXT,
            notes TEXT NOT NULL DEFAULT '',
            studied_at TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS quiz_results (
            quiz_id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL REFERENCES users(user_id) ON DELETE CASCADE,
            subject_id TEXT NOT NULL REFERENCES subjects(subject_id) ON DELETE CASCADE,
            score INTEGER NOT NULL,
            total INTEGER NOT NULL,
            weak_areas TEXT NOT NULL DEFAULT '[]',
            xp_earned INTEGER NOT NULL DEFAULT 0,
            taken_at TEXT NOT NULL
        );

        -- Activities: habits, todos, projects
        CREATE TABLE IF NOT EXISTS habits (
            habit_id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL REFERENCES users(user_id) ON DELETE CASCADE,
            name TEXT NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            frequency TEXT NOT NULL DEFAULT 'daily'
                CHECK(frequency IN ('daily', 'weekly', 'monthly', 'custom')),
            custom_frequency INTEGER,
            time_of_day TEXT NOT NULL DEFAULT 'anytime',
            time_required INTEGER NOT NULL DEFAULT 15,
            difficulty TEXT NOT NULL DEFAULT 'medium',
            xp INTEGER NOT NULL DEFAULT 0,
            completed_count INTEGER NOT NULL DEFAULT 0,
            current_streak INTEGER NOT NULL DEFAULT 0,
            best_streak INTEGER NOT NULL DEFAULT 0,
            last_completed TEXT,
            tags TEXT NOT NULL DEFAULT '[]',
            book TEXT,
            created_at TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS habit_completions (
            completion_id INTEGER PRIMARY KEY AUTOINCREMENT,
            habit_id TEXT NOT NULL REFERENCES habits(habit_id) ON DELETE CASCADE,
            completed_at TEXT NOT NULL,
            xp_gained INTEGER NOT NULL DEFAULT 0,
            notes TEXT NOT NULL DEFAULT '',
            start_page INTEGER,
            end_page INTEGER,
            duration_minutes INTEGER,
            summary TEXT
        );

        CREATE TABLE IF NOT EXISTS projects (
            project_id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL REFERENCES users(user_id) ON DELETE CASCADE,
            name TEXT NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            status TEXT NOT NULL DEFAULT 'planning'
                CHECK(status IN ('planning', 'in-progress', 'on-hold', 'completed', 'cancelled')),
            priority TEXT NOT NULL DEFAULT 'medium',
            start_date TEXT,
            due_date TEXT,
            completed_at TEXT,
            progress INTEGER NOT NULL DEFAULT 0,
            xp INTEGER NOT NULL DEFAULT 0,
            completed_count INTEGER NOT NULL DEFAULT 0,
            tags TEXT NOT NULL DEFAULT '[]',
            created_at TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS todos (
            todo_id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL REFERENCES users(user_id) ON DELETE CASCADE,
            name TEXT NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            status TEXT NOT NULL DEFAULT 'pending'
                CHECK(status IN ('pending', 'in-progress', 'completed', 'cancelled')),
            priority TEXT NOT NULL DEFAULT 'medium',
            difficulty TEXT NOT NULL DEFAULT 'medium',
            due_date TEXT,
            project_id TEXT REFERENCES projects(project_id) ON DELETE SET NULL,
            estimated_time INTEGER,
            actual_time INTEGER,
            subtasks TEXT NOT NULL DEFAULT '[]',
            xp INTEGER NOT NULL DEFAULT 0,
            completed_at TEXT,
            tags TEXT NOT NULL DEFAULT '[]',
            created_at TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS milestones (
            milestone_id TEXT PRIMARY KEY,
            project_id TEXT NOT NULL REFERENCES projects(project_id) ON DELETE CASCADE,
            name TEXT NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            due_date TEXT,
            completed INTEGER NOT NULL DEFAULT 0,
            completed_at TEXT
        );

        CREATE TABLE IF NOT EXISTS work_items (
            item_id TEXT PRIMARY KEY,
            project_id TEXT NOT NULL REFERENCES projects(project_id) ON DELETE CASCADE,
            type TEXT NOT NULL CHECK(type IN ('task', 'implementation', 'improvement', 'tool')),
            title TEXT NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            status TEXT NOT NULL DEFAULT 'not-started'
                CHECK(status IN ('not-started', 'in-progress', 'completed')),
            priority TEXT,
            impact TEXT,
            category TEXT,
            technical_details TEXT NOT NULL DEFAULT '',
            potential_xp INTEGER NOT NULL DEFAULT 0,
            xp_awarded INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            completed_at TEXT
        );

        -- XP ledger: every award is an event
        CREATE TABLE IF NOT EXISTS xp_events (
            event_id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id TEXT NOT NULL REFERENCES users(user_id) ON DELETE CASCADE,
            source TEXT NOT NULL,
            source_id TEXT,
            xp INTEGER NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            created_at TEXT NOT NULL
        );

        -- External sync (Notion / Obsidian)
        CREATE TABLE IF NOT EXISTS sync_records (
            record_id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL REFERENCES users(user_id) ON DELETE CASCADE,
            source_id TEXT NOT NULL,
            external_id TEXT NOT NULL,
            external_system TEXT NOT NULL CHECK(external_system IN ('notion', 'obsidian')),
            external_path TEXT,
            content_type TEXT NOT NULL CHECK(content_type IN ('subject', 'topic', 'concept')),
            last_synced_at TEXT NOT NULL,
            last_modified_local TEXT NOT NULL,
            last_modified_external TEXT NOT NULL,
            sync_status TEXT NOT NULL
                CHECK(sync_status IN ('synced', 'conflict', 'local_ahead', 'external_ahead')),
            hash TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS integrations (
            user_id TEXT NOT NULL REFERENCES users(user_id) ON DELETE CASCADE,
            provider TEXT NOT NULL CHECK(provider IN ('notion', 'obsidian', 'google_calendar')),
            access_token TEXT NOT NULL DEFAULT '',
            workspace_id TEXT NOT NULL DEFAULT '',
            workspace_name TEXT NOT NULL DEFAULT '',
            vault_path TEXT NOT NULL DEFAULT '',
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            PRIMARY KEY (user_id, provider)
        );

        -- Learning pathways: branches -> stages -> modules, stored as JSON
        CREATE TABLE IF NOT EXISTS pathways (
            pathway_id TEXT PRIMARY KEY,
            name TEXT NOT NULL UNIQUE,
            description TEXT NOT NULL DEFAULT '',
            branches TEXT NOT NULL DEFAULT '[]',
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS user_pathways (
            user_id TEXT NOT NULL REFERENCES users(user_id) ON DELETE CASCADE,
            pathway_id TEXT NOT NULL REFERENCES pathways(pathway_id) ON DELETE CASCADE,
            joined_at TEXT NOT NULL,
            completed_at TEXT,
            progress INTEGER NOT NULL DEFAULT 0,
            xp INTEGER NOT NULL DEFAULT 0,
            PRIMARY KEY (user_id, pathway_id)
        );

        CREATE INDEX IF NOT EXISTS idx_subjects_user ON subjects(user_id);
        CREATE INDEX IF NOT EXISTS idx_topics_subject ON topics(subject_id);
        CREATE INDEX IF NOT EXISTS idx_topics_next_review ON topics(next_review);
        CREATE INDEX IF NOT EXISTS idx_concepts_topic ON concepts(topic_id);
        CREATE INDEX IF NOT EXISTS idx_concepts_next_review ON concepts(next_review);
        CREATE INDEX IF NOT EXISTS idx_review_logs_item ON review_logs(item_type, item_id);
        CREATE INDEX IF NOT EXISTS idx_sessions_user ON study_sessions(user_id);
        CREATE INDEX IF NOT EXISTS idx_xp_events_user ON xp_events(user_id, created_at);
        CREATE INDEX IF NOT EXISTS idx_sync_records_user ON sync_records(user_id, external_system);
        """
    )
