"""Core business logic.

Modules:
- scheduling: Spaced repetition, study phases and exam-mode intervals
- xp: XP rules, levels, theme loyalty, rewards and the XP ledger
- streaks: Daily check-ins and streak milestones
- study: Subjects, study sessions, reviews and quiz results
- activities: Habit, todo and project rules
- activity_service: Activity operations backed by the database
- timers: In-memory quick timers
- users: Accounts, themes and reward redemption
- generators: LLM-generated subject structures and quizzes
"""

__all__ = [
    "scheduling",
    "xp",
    "streaks",
    "study",
    "activities",
    "activity_service",
    "timers",
    "users",
    "generators",
]
