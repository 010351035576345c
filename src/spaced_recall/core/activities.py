"""Habit, todo and project rules.

Pure functions: each takes a record and returns (updated_record, xp_gained)
without touching the database. activity_service persists the results.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, replace
from datetime import datetime

from spaced_recall.core.xp import calculate_completion_xp, calculate_session_xp, level_for_item_xp
from spaced_recall.db.activities_repository import (
    HabitRecord,
    ProjectRecord,
    TodoRecord,
    WorkItemRecord,
)
from spaced_recall.errors import ValidationError
from spaced_recall.utils.dates import days_between, parse_iso, to_iso

HABIT_FREQUENCY_DAYS = {"daily": 1, "weekly": 7, "monthly": 31}

TODO_PRIORITY_MULTIPLIERS = {"low": 0.8, "medium": 1.0, "high": 1.2, "urgent": 1.5}
PROJECT_PRIORITY_MULTIPLIERS = {"low": 0.8, "medium": 1.0, "high": 1.2}
READING_DIFFICULTY_MULTIPLIERS = {"easy": 0.8, "medium": 1.0, "hard": 1.5}

SUMMARY_BONUS_XP = 20
SUMMARY_MIN_LENGTH = 50
BOOK_COMPLETION_XP = 100

DEFAULT_TODO_MINUTES = 30
DEFAULT_PROJECT_MINUTES = 60


# =============================================================================
# Habits
# =============================================================================


def streak_continues(frequency: str, custom_frequency: int | None, days: int) -> bool:
    """Whether a completion `days` after the previous one keeps the streak."""
    if frequency == "custom":
        return days <= (custom_frequency or 1)
    return days <= HABIT_FREQUENCY_DAYS.get(frequency, 1)


def complete_habit(habit: HabitRecord, now: datetime) -> tuple[HabitRecord, int]:
    """Mark a habit done.

    XP is session XP for the habit's time and difficulty, boosted 5% per
    streak day up to double.
    """
    last = parse_iso(habit.last_completed)
    if last is None:
        streak = 1
    elif streak_continues(
        habit.frequency, habit.custom_frequency, days_between(last, now)
    ):
        streak = habit.current_streak + 1
    else:
        streak = 1

    base = calculate_session_xp(
        "habit",
        habit.difficulty,
        habit.time_required or 15,
        level_for_item_xp(habit.xp),
    )
    streak_multiplier = min(2.0, 1 + streak * 0.05)
    xp = round(base.xp * streak_multiplier)

    updated = replace(
        habit,
        current_streak=streak,
        best_streak=max(habit.best_streak, streak),
        last_completed=to_iso(now),
        completed_count=habit.completed_count + 1,
        xp=habit.xp + xp,
    )
    return updated, xp


def record_reading_session(
    habit: HabitRecord,
    start_page: int,
    end_page: int,
    now: datetime,
    summary: str | None = None,
) -> tuple[HabitRecord, int]:
    """Log pages read on a book-reading habit.

    Reading no pages changes nothing. Otherwise the habit is completed and
    pages, a reflective summary and finishing the book add XP.

    Raises:
        ValidationError: If the habit has no book
    """
    if habit.book is None:
        raise ValidationError(f"Habit '{habit.habit_id}' is not a reading habit")

    pages = max(0, end_page - start_page)
    if pages <= 0:
        return habit, 0

    completed, base_xp = complete_habit(habit, now)

    multiplier = READING_DIFFICULTY_MULTIPLIERS.get(habit.difficulty, 1.0)
    pages_xp = round(pages * multiplier)
    summary_bonus = (
        SUMMARY_BONUS_XP if summary and len(summary) > SUMMARY_MIN_LENGTH else 0
    )

    total_pages = habit.book.get("total_pages") or 0
    finished = bool(total_pages) and end_page >= total_pages
    completion_bonus = BOOK_COMPLETION_XP if finished else 0

    book = dict(habit.book)
    book["current_page"] = end_page
    book["is_completed"] = finished
    if finished:
        book["completion_date"] = to_iso(now)

    extra = pages_xp + summary_bonus + completion_bonus
    updated = replace(completed, book=book, xp=completed.xp + extra)
    return updated, base_xp + extra


def new_book(title: str, author: str = "", total_pages: int = 0, now: datetime | None = None) -> dict:
    return {
        "title": title,
        "author": author,
        "total_pages": total_pages,
        "current_page": 0,
        "start_date": to_iso(now),
        "is_completed": False,
        "completion_date": None,
    }


# =============================================================================
# Todos
# =============================================================================


def complete_todo(
    todo: TodoRecord, now: datetime, actual_time: int | None = None
) -> tuple[TodoRecord, int]:
    """Complete a todo.

    Raises:
        ValidationError: If the todo is already completed
    """
    if todo.status == "completed":
        raise ValidationError(f"Todo '{todo.todo_id}' is already completed")

    minutes = actual_time or todo.estimated_time or DEFAULT_TODO_MINUTES
    base = calculate_session_xp(
        "todo", todo.difficulty, minutes, level_for_item_xp(todo.xp)
    )
    xp = round(base.xp * TODO_PRIORITY_MULTIPLIERS.get(todo.priority, 1.0))

    updated = replace(
        todo,
        status="completed",
        completed_at=to_iso(now),
        actual_time=actual_time,
        xp=todo.xp + xp,
    )
    return updated, xp


# =============================================================================
# Projects
# =============================================================================


def update_project_progress(
    project: ProjectRecord, new_progress: int, now: datetime
) -> tuple[ProjectRecord, int]:
    """Move a project forward; only an increase earns XP.

    Reaching 100 completes the project.
    """
    new_progress = max(0, min(100, new_progress))
    increase = new_progress - project.progress
    if increase <= 0:
        return project, 0

    base = calculate_session_xp(
        "project", "medium", DEFAULT_PROJECT_MINUTES, level_for_item_xp(project.xp)
    )
    multiplier = PROJECT_PRIORITY_MULTIPLIERS.get(project.priority, 1.0)
    xp = round(base.xp * multiplier * increase / 100)

    complete = new_progress >= 100
    updated = replace(
        project,
        progress=new_progress,
        status="completed" if complete else project.status,
        completed_at=to_iso(now) if complete else project.completed_at,
        completed_count=project.completed_count + (1 if complete else 0),
        xp=project.xp + xp,
    )
    return updated, xp


def complete_milestone(
    project: ProjectRecord, milestone_id: str, now: datetime
) -> tuple[ProjectRecord, int]:
    """Complete a milestone; progress becomes the share of completed milestones.

    Unknown or already completed milestones change nothing.
    """
    target = next((m for m in project.milestones if m.milestone_id == milestone_id), None)
    if target is None or target.completed:
        return project, 0

    xp = calculate_session_xp(
        "milestone", "medium", DEFAULT_PROJECT_MINUTES, level_for_item_xp(project.xp)
    ).xp

    milestones = [
        replace(m, completed=True, completed_at=to_iso(now))
        if m.milestone_id == milestone_id
        else m
        for m in project.milestones
    ]
    done = sum(1 for m in milestones if m.completed)
    progress = round(done / len(milestones) * 100)

    updated = replace(project, milestones=milestones, progress=progress, xp=project.xp + xp)
    return updated, xp


def complete_work_item(item: WorkItemRecord, now: datetime) -> tuple[WorkItemRecord, int]:
    """Complete a work item, awarding its potential XP only once.

    Items stored without a potential XP fall back to the base XP of their type.
    """
    if item.status == "completed" and item.xp_awarded:
        return item, 0

    xp = 0 if item.xp_awarded else (item.potential_xp or calculate_completion_xp(item.type))
    updated = replace(
        item,
        status="completed",
        completed_at=item.completed_at or to_iso(now),
        xp_awarded=item.xp_awarded or xp,
    )
    return updated, xp


# =============================================================================
# Statistics
# =============================================================================


@dataclass
class ActivityStats:
    total_activities: int = 0
    completed_activities: int = 0
    pending_activities: int = 0
    total_xp_gained: int = 0
    current_streak: int = 0
    best_streak: int = 0
    completion_rate: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


def calculate_activity_stats(
    habits: list[HabitRecord],
    todos: list[TodoRecord],
    projects: list[ProjectRecord],
) -> ActivityStats:
    """Totals across all activity kinds.

    A habit counts as completed once it has been done at least once.
    """
    stats = ActivityStats(total_activities=len(habits) + len(todos) + len(projects))

    for habit in habits:
        stats.total_xp_gained += habit.xp
        stats.current_streak = max(stats.current_streak, habit.current_streak)
        stats.best_streak = max(stats.best_streak, habit.best_streak)
        if habit.completed_count > 0:
            stats.completed_activities += 1
        else:
            stats.pending_activities += 1

    for item in [*todos, *projects]:
        stats.total_xp_gained += item.xp
        if item.status == "completed":
            stats.completed_activities += 1
        else:
            stats.pending_activities += 1

    if stats.total_activities:
        stats.completion_rate = stats.completed_activities / stats.total_activities * 100

    return stats
