"""Repository functions for activity tables.

Provides CRUD operations for habits (and their completion history), todos,
projects, project milestones and project work items.

Records are loaded, changed with dataclasses.replace() by the activity
logic, then written back with the matching save_* function.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field

import structlog

from spaced_recall.db.database import get_db
from spaced_recall.utils.dates import to_iso, utc_now
from spaced_recall.utils.validators import new_id

logger = structlog.get_logger(__name__)


# =============================================================================
# Records
# =============================================================================


@dataclass
class HabitRecord:
    """Habit record from database.

    `book` is set for book-reading habits:
    {title, author, total_pages, current_page, start_date, is_completed,
    completion_date}.
    """

    habit_id: str
    user_id: str
    name: str
    description: str
    frequency: str
    custom_frequency: int | None
    time_of_day: str
    time_required: int
    difficulty: str
    xp: int
    completed_count: int
    current_streak: int
    best_streak: int
    last_completed: str | None
    tags: list[str]
    book: dict | None
    created_at: str

    @property
    def is_book_habit(self) -> bool:
        return self.book is not None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class HabitCompletionRecord:
    completion_id: int
    habit_id: str
    completed_at: str
    xp_gained: int
    notes: str
    start_page: int | None
    end_page: int | None
    duration_minutes: int | None
    summary: str | None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class TodoRecord:
    """Todo record from database."""

    todo_id: str
    user_id: str
    name: str
    description: str
    status: str
    priority: str
    difficulty: str
    due_date: str | None
    project_id: str | None
    estimated_time: int | None
    actual_time: int | None
    subtasks: list[dict]
    xp: int
    completed_at: str | None
    tags: list[str]
    created_at: str

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class MilestoneRecord:
    milestone_id: str
    project_id: str
    name: str
    description: str
    due_date: str | None
    completed: bool
    completed_at: str | None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ProjectRecord:
    """Project record from database, with its milestones."""

    project_id: str
    user_id: str
    name: str
    description: str
    status: str
    priority: str
    start_date: str | None
    due_date: str | None
    completed_at: str | None
    progress: int
    xp: int
    completed_count: int
    tags: list[str]
    created_at: str
    milestones: list[MilestoneRecord] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class WorkItemRecord:
    """Project work item (task, implementation, improvement or tool)."""

    item_id: str
    project_id: str
    type: str
    title: str
    description: str
    status: str
    priority: str | None
    impact: str | None
    category: str | None
    technical_details: str
    potential_xp: int
    xp_awarded: int
    created_at: str
    updated_at: str
    completed_at: str | None

    def to_dict(self) -> dict:
        return asdict(self)


# =============================================================================
# Habits
# =============================================================================


def insert_habit(
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
    """Insert a new habit.

    Args:
        user_id: Owner
        name: Habit name
        description: Optional description
        frequency: daily, weekly, monthly or custom
        custom_frequency: Days between completions for custom frequency
        time_of_day: morning, afternoon, evening or anytime
        time_required: Minutes per completion
        difficulty: easy, medium or hard
        tags: Free-form tags
        book: Book details for a reading habit
    """
    habit_id = new_id("habit")

    with get_db() as conn:
        conn.execute(
            """
            INSERT INTO habits (
                habit_id, user_id, name, description, frequency,
                custom_frequency, time_of_day, time_required, difficulty,
                tags, book, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                habit_id,
                user_id,
                name,
                description,
                frequency,
                custom_frequency,
                time_of_day,
                time_required,
                difficulty,
                json.dumps(tags or []),
                json.dumps(book) if book is not None else None,
                to_iso(utc_now()),
            ),
        )

    logger.debug("habits.inserted", habit_id=habit_id, user_id=user_id)
    return get_habit(habit_id)  # type: ignore[return-value]


def get_habit(habit_id: str) -> HabitRecord | None:
    with get_db() as conn:
        row = conn.execute(
            "SELECT * FROM habits WHERE habit_id = ?", (habit_id,)
        ).fetchone()

    if row is None:
        return None

    return _row_to_habit(row)


def get_habits_for_user(user_id: str) -> list[HabitRecord]:
    with get_db() as conn:
        rows = conn.execute(
            "SELECT * FROM habits WHERE user_id = ? ORDER BY created_at, rowid",
            (user_id,),
        ).fetchall()

    return [_row_to_habit(row) for row in rows]


def save_habit(habit: HabitRecord) -> None:
    """Write back the mutable fields of a habit."""
    with get_db() as conn:
        conn.execute(
            """
            UPDATE habits
            SET name = ?, description = ?, frequency = ?, custom_frequency = ?,
                time_of_day = ?, time_required = ?, difficulty = ?, xp = ?,
                completed_count = ?, current_streak = ?, best_streak = ?,
                last_completed = ?, tags = ?, book = ?
            WHERE habit_id = ?
            """,
            (
                habit.name,
                habit.description,
                habit.frequency,
                habit.custom_frequency,
                habit.time_of_day,
                habit.time_required,
                habit.difficulty,
                habit.xp,
                habit.completed_count,
                habit.current_streak,
                habit.best_streak,
                habit.last_completed,
                json.dumps(habit.tags),
                json.dumps(habit.book) if habit.book is not None else None,
                habit.habit_id,
            ),
        )


def delete_habit(habit_id: str) -> bool:
    with get_db() as conn:
        cursor = conn.execute("DELETE FROM habits WHERE habit_id = ?", (habit_id,))
    return cursor.rowcount > 0


def add_habit_completion(
    habit_id: str,
    completed_at: str,
    xp_gained: int,
    notes: str = "",
    start_page: int | None = None,
    end_page: int | None = None,
    duration_minutes: int | None = None,
    summary: str | None = None,
) -> int:
    with get_db() as conn:
        cursor = conn.execute(
            """
            INSERT INTO habit_completions (
                habit_id, completed_at, xp_gained, notes,
                start_page, end_page, duration_minutes, summary
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                habit_id,
                completed_at,
                xp_gained,
                notes,
                start_page,
                end_page,
                duration_minutes,
                summary,
            ),
        )
        completion_id = cursor.lastrowid

    return int(completion_id)


def list_habit_completions(habit_id: str) -> list[HabitCompletionRecord]:
    """Completion history of a habit, newest first."""
    with get_db() as conn:
        rows = conn.execute(
            """
            SELECT * FROM habit_completions WHERE habit_id = ?
            ORDER BY completed_at DESC, completion_id DESC
            """,
            (habit_id,),
        ).fetchall()

    return [
        HabitCompletionRecord(
            completion_id=row["completion_id"],
            habit_id=row["habit_id"],
            completed_at=row["completed_at"],
            xp_gained=row["xp_gained"],
            notes=row["notes"],
            start_page=row["start_page"],
            end_page=row["end_page"],
            duration_minutes=row["duration_minutes"],
            summary=row["summary"],
        )
        for row in rows
    ]


# =============================================================================
# Todos
# =============================================================================


def insert_todo(
    user_id: str,
    name: str,
    description: str = "",
    priority: str = "medium",
    difficulty: str = "medium",
    due_date: str | None = None,
    project_id: str | None = None,
    estimated_time: int | None = None,
    subtasks: list[dict] | None = None,
    tags: list[str] | None = None,
) -> TodoRecord:
    todo_id = new_id("todo")

    with get_db() as conn:
        conn.execute(
            """
            INSERT INTO todos (
                todo_id, user_id, name, description, priority, difficulty,
                due_date, project_id, estimated_time, subtasks, tags, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                todo_id,
                user_id,
                name,
                description,
                priority,
                difficulty,
                due_date,
                project_id,
                estimated_time,
                json.dumps(subtasks or []),
                json.dumps(tags or []),
                to_iso(utc_now()),
            ),
        )

    logger.debug("todos.inserted", todo_id=todo_id, user_id=user_id)
    return get_todo(todo_id)  # type: ignore[return-value]


def get_todo(todo_id: str) -> TodoRecord | None:
    with get_db() as conn:
        row = conn.execute("SELECT * FROM todos WHERE todo_id = ?", (todo_id,)).fetchone()

    if row is None:
        return None

    return _row_to_todo(row)


def get_todos_for_user(user_id: str, status: str | None = None) -> list[TodoRecord]:
    query = "SELECT * FROM todos WHERE user_id = ?"
    params: list = [user_id]
    if status is not None:
        query += " AND status = ?"
        params.append(status)
    query += " ORDER BY created_at, rowid"

    with get_db() as conn:
        rows = conn.execute(query, params).fetchall()

    return [_row_to_todo(row) for row in rows]


def save_todo(todo: TodoRecord) -> None:
    with get_db() as conn:
        conn.execute(
            """
            UPDATE todos
            SET name = ?, description = ?, status = ?, priority = ?,
                difficulty = ?, due_date = ?, project_id = ?,
                estimated_time = ?, actual_time = ?, subtasks = ?, xp = ?,
                completed_at = ?, tags = ?
            WHERE todo_id = ?
            """,
            (
                todo.name,
                todo.description,
                todo.status,
                todo.priority,
                todo.difficulty,
                todo.due_date,
                todo.project_id,
                todo.estimated_time,
                todo.actual_time,
                json.dumps(todo.subtasks),
                todo.xp,
                todo.completed_at,
                json.dumps(todo.tags),
                todo.todo_id,
            ),
        )


def delete_todo(todo_id: str) -> bool:
    with get_db() as conn:
        cursor = conn.execute("DELETE FROM todos WHERE todo_id = ?", (todo_id,))
    return cursor.rowcount > 0


# =============================================================================
# Projects and milestones
# =============================================================================


def insert_project(
    user_id: str,
    name: str,
    description: str = "",
    priority: str = "medium",
    start_date: str | None = None,
    due_date: str | None = None,
    tags: list[str] | None = None,
    milestones: list[dict] | None = None,
) -> ProjectRecord:
    """Insert a new project with optional milestones.

    Args:
        milestones: [{"name": ..., "description": ..., "due_date": ...}]
    """
    project_id = new_id("project")
    now = to_iso(utc_now())

    with get_db() as conn:
        conn.execute(
            """
            INSERT INTO projects (
                project_id, user_id, name, description, priority,
                start_date, due_date, tags, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                project_id,
                user_id,
                name,
                description,
                priority,
                start_date or now,
                due_date,
                json.dumps(tags or []),
                now,
            ),
        )

    for milestone in milestones or []:
        insert_milestone(
            project_id,
            milestone["name"],
            milestone.get("description", ""),
            milestone.get("due_date"),
        )

    logger.debug("projects.inserted", project_id=project_id, user_id=user_id)
    return get_project(project_id)  # type: ignore[return-value]


def get_project(project_id: str) -> ProjectRecord | None:
    with get_db() as conn:
        row = conn.execute(
            "SELECT * FROM projects WHERE project_id = ?", (project_id,)
        ).fetchone()

    if row is None:
        return None

    return _row_to_project(row, get_milestones(project_id))


def get_projects_for_user(user_id: str) -> list[ProjectRecord]:
    with get_db() as conn:
        rows = conn.execute(
            "SELECT * FROM projects WHERE user_id = ? ORDER BY created_at, rowid",
            (user_id,),
        ).fetchall()

    return [_row_to_project(row, get_milestones(row["project_id"])) for row in rows]


def save_project(project: ProjectRecord) -> None:
    """Write back a project and the completion state of its milestones."""
    with get_db() as conn:
        conn.execute(
            """
            UPDATE projects
            SET name = ?, description = ?, status = ?, priority = ?,
                start_date = ?, due_date = ?, completed_at = ?, progress = ?,
                xp = ?, completed_count = ?, tags = ?
            WHERE project_id = ?
            """,
            (
                project.name,
                project.description,
                project.status,
                project.priority,
                project.start_date,
                project.due_date,
                project.completed_at,
                project.progress,
                project.xp,
                project.completed_count,
                json.dumps(project.tags),
                project.project_id,
            ),
        )
        for milestone in project.milestones:
            conn.execute(
                """
                UPDATE milestones SET completed = ?, completed_at = ?
                WHERE milestone_id = ?
                """,
                (int(milestone.completed), milestone.completed_at, milestone.milestone_id),
            )


def delete_project(project_id: str) -> bool:
    with get_db() as conn:
        cursor = conn.execute(
            "DELETE FROM projects WHERE project_id = ?", (project_id,)
        )
    return cursor.rowcount > 0


def insert_milestone(
    project_id: str,
    name: str,
    description: str = "",
    due_date: str | None = None,
) -> MilestoneRecord:
    milestone_id = new_id("milestone")

    with get_db() as conn:
        conn.execute(
            """
            INSERT INTO milestones (milestone_id, project_id, name, description, due_date)
            VALUES (?, ?, ?, ?, ?)
            """,
            (milestone_id, project_id, name, description, due_date),
        )

    return MilestoneRecord(
        milestone_id=milestone_id,
        project_id=project_id,
        name=name,
        description=description,
        due_date=due_date,
        completed=False,
        completed_at=None,
    )


def get_milestones(project_id: str) -> list[MilestoneRecord]:
    with get_db() as conn:
        rows = conn.execute(
            "SELECT * FROM milestones WHERE project_id = ? ORDER BY rowid",
            (project_id,),
        ).fetchall()

    return [
        MilestoneRecord(
            milestone_id=row["milestone_id"],
            project_id=row["project_id"],
            name=row["name"],
            description=row["description"],
            due_date=row["due_date"],
            completed=bool(row["completed"]),
            completed_at=row["completed_at"],
        )
        for row in rows
    ]


# =============================================================================
# Work items
# =============================================================================


def insert_work_item(
    project_id: str,
    type: str,
    title: str,
    potential_xp: int,
    description: str = "",
    priority: str | None = None,
    impact: str | None = None,
    category: str | None = None,
    technical_details: str = "",
) -> WorkItemRecord:
    item_id = new_id("work_item")
    now = to_iso(utc_now())

    with get_db() as conn:
        conn.execute(
            """
            INSERT INTO work_items (
                item_id, project_id, type, title, description, priority,
                impact, category, technical_details, potential_xp,
                created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                item_id,
                project_id,
                type,
                title,
                description,
                priority,
                impact,
                category,
                technical_details,
                potential_xp,
                now,
                now,
            ),
        )

    logger.debug("work_items.inserted", item_id=item_id, project_id=project_id)
    return get_work_item(item_id)  # type: ignore[return-value]


def get_work_item(item_id: str) -> WorkItemRecord | None:
    with get_db() as conn:
        row = conn.execute(
            "SELECT * FROM work_items WHERE item_id = ?", (item_id,)
        ).fetchone()

    if row is None:
        return None

    return _row_to_work_item(row)


def get_work_items(project_id: str) -> list[WorkItemRecord]:
    with get_db() as conn:
        rows = conn.execute(
            "SELECT * FROM work_items WHERE project_id = ? ORDER BY created_at, rowid",
            (project_id,),
        ).fetchall()

    return [_row_to_work_item(row) for row in rows]


def save_work_item(item: WorkItemRecord) -> None:
    with get_db() as conn:
        conn.execute(
            """
            UPDATE work_items
            SET title = ?, description = ?, status = ?, priority = ?,
                impact = ?, category = ?, technical_details = ?,
                potential_xp = ?, xp_awarded = ?, updated_at = ?, completed_at = ?
            WHERE item_id = ?
            """,
            (
                item.title,
                item.description,
                item.status,
                item.priority,
                item.impact,
                item.category,
                item.technical_details,
                item.potential_xp,
                item.xp_awarded,
                to_iso(utc_now()),
                item.completed_at,
                item.item_id,
            ),
        )


# =============================================================================
# Row conversion
# =============================================================================


def _row_to_habit(row) -> HabitRecord:
    return HabitRecord(
        habit_id=row["habit_id"],
        user_id=row["user_id"],
        name=row["name"],
        description=row["description"],
        frequency=row["frequency"],
        custom_frequency=row["custom_frequency"],
        time_of_day=row["time_of_day"],
        time_required=row["time_required"],
        difficulty=row["difficulty"],
        xp=row["xp"],
        completed_count=row["completed_count"],
        current_streak=row["current_streak"],
        best_streak=row["best_streak"],
        last_completed=row["last_completed"],
        tags=json.loads(row["tags"]),
        book=json.loads(row["book"]) if row["book"] else None,
        created_at=row["created_at"],
    )


def _row_to_todo(row) -> TodoRecord:
    return TodoRecord(
        todo_id=row["todo_id"],
        user_id=row["user_id"],
        name=row["name"],
        description=row["description"],
        status=row["status"],
        priority=row["priority"],
        difficulty=row["difficulty"],
        due_date=row["due_date"],
        project_id=row["project_id"],
        estimated_time=row["estimated_time"],
        actual_time=row["actual_time"],
        subtasks=json.loads(row["subtasks"]),
        xp=row["xp"],
        completed_at=row["completed_at"],
        tags=json.loads(row["tags"]),
        created_at=row["created_at"],
    )


def _row_to_project(row, milestones: list[MilestoneRecord]) -> ProjectRecord:
    return ProjectRecord(
        project_id=row["project_id"],
        user_id=row["user_id"],
        name=row["name"],
        description=row["description"],
        status=row["status"],
        priority=row["priority"],
        start_date=row["start_date"],
        due_date=row["due_date"],
        completed_at=row["completed_at"],
        progress=row["progress"],
        xp=row["xp"],
        completed_count=row["completed_count"],
        tags=json.loads(row["tags"]),
        created_at=row["created_at"],
        milestones=milestones,
    )


def _row_to_work_item(row) -> WorkItemRecord:
    return WorkItemRecord(
        item_id=row["item_id"],
        project_id=row["project_id"],
        type=row["type"],
        title=row["title"],
        description=row["description"],
        status=row["status"],
        priority=row["priority"],
        impact=row["impact"],
        category=row["category"],
        technical_details=row["technical_details"],
        potential_xp=row["potential_xp"],
        xp_awarded=row["xp_awarded"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        completed_at=row["completed_at"],
    )
