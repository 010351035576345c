"""Activity operations backed by the database.

Loads habits, todos and projects, applies the rules in core.activities,
stores the result and credits XP to the owner through the XP ledger.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

import structlog

from spaced_recall.core import activities as rules
from spaced_recall.core.xp import WORK_ITEM_XP_RULES, award_xp, calculate_potential_xp
from spaced_recall.db import activities_repository, users_repository
from spaced_recall.db.activities_repository import (
    HabitRecord,
    ProjectRecord,
    TodoRecord,
    WorkItemRecord,
)
from spaced_recall.errors import NotFoundError, ValidationError
from spaced_recall.utils.dates import to_iso, utc_now

logger = structlog.get_logger(__name__)

HABIT_FREQUENCIES = ("daily", "weekly", "monthly", "custom")
HABIT_DIFFICULTIES = ("easy", "medium", "hard")
TIMES_OF_DAY = ("morning", "afternoon", "evening", "anytime")
TODO_PRIORITIES = ("low", "medium", "high", "urgent")
PROJECT_PRIORITIES = ("low", "medium", "high")
IMPACTS = ("minor", "moderate", "major")


@dataclass
class ActivityOutcome:
    """An updated activity and the XP its change earned."""

    item: HabitRecord | TodoRecord | ProjectRecord | WorkItemRecord
    xp_gained: int

    def to_dict(self) -> dict:
        return {"item": self.item.to_dict(), "xp_gained": self.xp_gained}


def _require_user(user_id: str) -> None:
    if users_repository.get_user(user_id) is None:
        raise NotFoundError("User", user_id)


def _check_choice(field: str, value: str, choices: tuple[str, ...]) -> None:
    if value not in choices:
        raise ValidationError(f"Invalid {field} '{value}'. Expected one of: {', '.join(choices)}")


# =============================================================================
# Habits
# =============================================================================


def create_habit(
    user_id: str,
    name: str,
    description: str = "",
    frequency: str = "daily",
    custom_frequency: int | None = None,
    time_of_day: str = "anytime",
    time_required: int = 15,
    difficulty: str = "medium",
    tags: list[str] | None = None,
    book: dict | None = None,
) -> HabitRecord:
    """Create a habit, or a reading habit when `book` is given.

    Raises:
        NotFoundError: If the user does not exist
        ValidationError: On unknown frequency/difficulty/time of day, or a
            custom frequency without a positive day count
    """
    _require_user(user_id)
    _check_choice("frequency", frequency, HABIT_FREQUENCIES)
    _check_choice("difficulty", difficulty, HABIT_DIFFICULTIES)
    _check_choice("time_of_day", time_of_day, TIMES_OF_DAY)
    if frequency == "custom" and (custom_frequency is None or custom_frequency < 1):
        raise ValidationError("Custom frequency needs custom_frequency >= 1 day")

    return activities_repository.insert_habit(
        user_id,
        name,
        description=description,
        frequency=frequency,
        custom_frequency=custom_frequency,
        time_of_day=time_of_day,
        time_required=time_required,
        difficulty=difficulty,
        tags=tags,
        book=book,
    )


def create_reading_habit(
    user_id: str,
    name: str,
    title: str,
    author: str = "",
    total_pages: int = 0,
    **habit_fields,
) -> HabitRecord:
    book = rules.new_book(title, author, total_pages, now=utc_now())
    return create_habit(user_id, name, book=book, **habit_fields)


def _get_habit(habit_id: str) -> HabitRecord:
    habit = activities_repository.get_habit(habit_id)
    if habit is None:
        raise NotFoundError("Habit", habit_id)
    return habit


def complete_habit(
    habit_id: str, notes: str = "", now: datetime | None = None
) -> ActivityOutcome:
    """Complete a habit and credit its XP."""
    now = now or utc_now()
    habit = _get_habit(habit_id)

    updated, xp = rules.complete_habit(habit, now)
    activities_repository.save_habit(updated)
    activities_repository.add_habit_completion(habit_id, to_iso(now), xp, notes=notes)
    award_xp(habit.user_id, "habit", xp, source_id=habit_id, description=habit.name, now=now)

    logger.info("habits.completed", habit_id=habit_id, streak=updated.current_streak, xp=xp)
    return ActivityOutcome(updated, xp)


def log_reading_session(
    habit_id: str,
    start_page: int,
    end_page: int,
    duration: int,
    summary: str | None = None,
    now: datetime | None = None,
) -> ActivityOutcome:
    """Record pages read on a reading habit."""
    now = now or utc_now()
    habit = _get_habit(habit_id)

    updated, xp = rules.record_reading_session(habit, start_page, end_page, now, summary)
    if xp == 0:
        return ActivityOutcome(habit, 0)

    activities_repository.save_habit(updated)
    activities_repository.add_habit_completion(
        habit_id,
        to_iso(now),
        xp,
        start_page=start_page,
        end_page=end_page,
        duration_minutes=duration,
        summary=summary,
    )
    award_xp(
        habit.user_id,
        "reading",
        xp,
        source_id=habit_id,
        description=f"Read pages {start_page}-{end_page}",
        now=now,
    )

    logger.info("habits.reading_logged", habit_id=habit_id, pages=end_page - start_page, xp=xp)
    return ActivityOutcome(updated, xp)


# =============================================================================
# Todos
# =============================================================================


def create_todo(
    user_id: str,
    name: str,
    description: str = "",
    priority: str = "medium",
    difficulty: str = "medium",
    due_date: str | None = None,
    project_id: str | None = None,
    estimated_time: int | None = None,
    subtasks: list[str] | None = None,
    tags: list[str] | None = None,
) -> TodoRecord:
    _require_user(user_id)
    _check_choice("priority", priority, TODO_PRIORITIES)
    _check_choice("difficulty", difficulty, HABIT_DIFFICULTIES)
    if project_id and activities_repository.get_project(project_id) is None:
        raise NotFoundError("Project", project_id)

    return activities_repository.insert_todo(
        user_id,
        name,
        description=description,
        priority=priority,
        difficulty=difficulty,
        due_date=due_date,
        project_id=project_id,
        estimated_time=estimated_time,
        subtasks=[
            {"id": str(i + 1), "name": s, "completed": False, "completed_at": None}
            for i, s in enumerate(subtasks or [])
        ],
        tags=tags,
    )


def complete_todo(
    todo_id: str, actual_time: int | None = None, now: datetime | None = None
) -> ActivityOutcome:
    """Complete a todo and credit its XP.

    Raises:
        NotFoundError: If the todo does not exist
        ValidationError: If it is already completed
    """
    now = now or utc_now()
    todo = activities_repository.get_todo(todo_id)
    if todo is None:
        raise NotFoundError("Todo", todo_id)

    updated, xp = rules.complete_todo(todo, now, actual_time)
    activities_repository.save_todo(updated)
    award_xp(todo.user_id, "todo", xp, source_id=todo_id, description=todo.name, now=now)

    logger.info("todos.completed", todo_id=todo_id, xp=xp)
    return ActivityOutcome(updated, xp)


# =============================================================================
# Projects
# =============================================================================


def create_project(
    user_id: str,
    name: str,
    description: str = "",
    priority: str = "medium",
    start_date: str | None = None,
    due_date: str | None = None,
    tags: list[str] | None = None,
    milestones: list[dict] | None = None,
) -> ProjectRecord:
    _require_user(user_id)
    _check_choice("priority", priority, PROJECT_PRIORITIES)

    return activities_repository.insert_project(
        user_id,
        name,
        description=description,
        priority=priority,
        start_date=start_date,
        due_date=due_date,
        tags=tags,
        milestones=milestones,
    )


def _get_project(project_id: str) -> ProjectRecord:
    project = activities_repository.get_project(project_id)
    if project is None:
        raise NotFoundError("Project", project_id)
    return project


def update_project_progress(
    project_id: str, progress: int, now: datetime | None = None
) -> ActivityOutcome:
    now = now or utc_now()
    project = _get_project(project_id)

    updated, xp = rules.update_project_progress(project, progress, now)
    if updated is not project:
        activities_repository.save_project(updated)
        award_xp(
            project.user_id,
            "project",
            xp,
            source_id=project_id,
            description=f"{project.name}: {updated.progress}%",
            now=now,
        )

    return ActivityOutcome(updated, xp)


def complete_milestone(
    project_id: str, milestone_id: str, now: datetime | None = None
) -> ActivityOutcome:
    """Complete a project milestone.

    Raises:
        NotFoundError: If the project or milestone does not exist
    """
    now = now or utc_now()
    project = _get_project(project_id)
    milestone = next(
        (m for m in project.milestones if m.milestone_id == milestone_id), None
    )
    if milestone is None:
        raise NotFoundError("Milestone", milestone_id)

    updated, xp = rules.complete_milestone(project, milestone_id, now)
    if xp:
        activities_repository.save_project(updated)
        award_xp(
            project.user_id,
            "milestone",
            xp,
            source_id=milestone_id,
            description=milestone.name,
            now=now,
        )
        logger.info("projects.milestone_completed", project_id=project_id, xp=xp)

    return ActivityOutcome(updated, xp)


def add_milestone(
    project_id: str, name: str, description: str = "", due_date: str | None = None
) -> ProjectRecord:
    _get_project(project_id)
    activities_repository.insert_milestone(project_id, name, description, due_date)
    return _get_project(project_id)


def add_work_item(
    project_id: str,
    type: str,
    title: str,
    description: str = "",
    priority: str | None = None,
    impact: str | None = None,
    category: str | None = None,
    technical_details: str = "",
) -> WorkItemRecord:
    """Add a work item with its potential XP precomputed.

    Raises:
        NotFoundError: If the project does not exist
        ValidationError: On unknown type, priority or impact
    """
    _get_project(project_id)
    _check_choice("type", type, tuple(WORK_ITEM_XP_RULES))
    if priority is not None:
        _check_choice("priority", priority, PROJECT_PRIORITIES)
    if impact is not None:
        _check_choice("impact", impact, IMPACTS)

    return activities_repository.insert_work_item(
        project_id,
        type,
        title,
        potential_xp=calculate_potential_xp(type, priority, impact, technical_details),
        description=description,
        priority=priority,
        impact=impact,
        category=category,
        technical_details=technical_details,
    )


def complete_work_item(
    project_id: str, item_id: str, now: datetime | None = None
) -> ActivityOutcome:
    now = now or utc_now()
    project = _get_project(project_id)
    item = activities_repository.get_work_item(item_id)
    if item is None or item.project_id != project_id:
        raise NotFoundError("Work item", item_id)

    updated, xp = rules.complete_work_item(item, now)
    activities_repository.save_work_item(updated)
    award_xp(project.user_id, "work_item", xp, source_id=item_id, description=item.title, now=now)

    return ActivityOutcome(updated, xp)


# =============================================================================
# Statistics
# =============================================================================


def get_activity_stats(user_id: str) -> rules.ActivityStats:
    _require_user(user_id)
    return rules.calculate_activity_stats(
        activities_repository.get_habits_for_user(user_id),
        activities_repository.get_todos_for_user(user_id),
        activities_repository.get_projects_for_user(user_id),
    )
