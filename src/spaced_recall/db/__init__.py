"""Database module for SQLite persistence.

Provides:
- Database connection management
- Schema initialization
- Repository functions per aggregate: users, subjects (topics, concepts,
  review logs), sessions (study sessions, quiz results), activities
  (habits, todos, projects, milestones, work items), xp ledger, sync
  records and integrations
"""

from spaced_recall.db.database import get_db, init_db

__all__ = ["get_db", "init_db"]
