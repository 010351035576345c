"""Activity endpoints: habits, todos, projects and quick timers."""

from fastapi import APIRouter, HTTPException, Query, status

from spaced_recall.core import activity_service
from spaced_recall.core.timers import get_timer_manager
from spaced_recall.db import activities_repository
from spaced_recall.web.errors import DOMAIN_ERRORS, to_http
from spaced_recall.web.schemas import (
    HabitComplete,
    HabitCreate,
    MilestoneCreate,
    ProgressUpdate,
    ProjectCreate,
    ReadingHabitCreate,
    ReadingSessionRequest,
    TimerStart,
    TodoComplete,
    TodoCreate,
    WorkItemCreate,
)

router = APIRouter(prefix="/api/activities", tags=["activities"])


def _not_found(entity: str, entity_id: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"{entity} '{entity_id}' not found",
    )


# =============================================================================
# HABITS
# =============================================================================


@router.get("/habits")
async def list_habits(user_id: str) -> list[dict]:
    return [h.to_dict() for h in activities_repository.get_habits_for_user(user_id)]


@router.post("/habits", status_code=status.HTTP_201_CREATED)
async def create_habit(body: HabitCreate) -> dict:
    try:
        habit = activity_service.create_habit(**body.model_dump())
    except DOMAIN_ERRORS as e:
        raise to_http(e) from e
    return habit.to_dict()


@router.post("/habits/reading", status_code=status.HTTP_201_CREATED)
async def create_reading_habit(body: ReadingHabitCreate) -> dict:
    """Create a habit tied to reading a book."""
    fields = body.model_dump(exclude={"book"})
    try:
        habit = activity_service.create_reading_habit(
            title=body.book.title,
            author=body.book.author,
            total_pages=body.book.total_pages,
            **fields,
        )
    except DOMAIN_ERRORS as e:
        raise to_http(e) from e
    return habit.to_dict()


@router.post("/habits/{habit_id}/complete")
async def complete_habit(habit_id: str, body: HabitComplete | None = None) -> dict:
    try:
        outcome = activity_service.complete_habit(habit_id, notes=body.notes if body else "")
    except DOMAIN_ERRORS as e:
        raise to_http(e) from e
    return outcome.to_dict()


@router.post("/habits/{habit_id}/reading")
async def log_reading(habit_id: str, body: ReadingSessionRequest) -> dict:
    try:
        outcome = activity_service.log_reading_session(
            habit_id, body.start_page, body.end_page, body.duration, body.summary
        )
    except DOMAIN_ERRORS as e:
        raise to_http(e) from e
    return outcome.to_dict()


@router.get("/habits/{habit_id}/completions")
async def list_completions(habit_id: str) -> list[dict]:
    if activities_repository.get_habit(habit_id) is None:
        raise _not_found("Habit", habit_id)
    return [c.to_dict() for c in activities_repository.list_habit_completions(habit_id)]


@router.delete("/habits/{habit_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_habit(habit_id: str) -> None:
    if not activities_repository.delete_habit(habit_id):
        raise _not_found("Habit", habit_id)


# =============================================================================
# TODOS
# =============================================================================


@router.get("/todos")
async def list_todos(
    user_id: str, todo_status: str | None = Query(default=None, alias="status")
) -> list[dict]:
    return [t.to_dict() for t in activities_repository.get_todos_for_user(user_id, todo_status)]


@router.post("/todos", status_code=status.HTTP_201_CREATED)
async def create_todo(body: TodoCreate) -> dict:
    try:
        todo = activity_service.create_todo(**body.model_dump())
    except DOMAIN_ERRORS as e:
        raise to_http(e) from e
    return todo.to_dict()


@router.post("/todos/{todo_id}/complete")
async def complete_todo(todo_id: str, body: TodoComplete | None = None) -> dict:
    try:
        outcome = activity_service.complete_todo(
            todo_id, actual_time=body.actual_time if body else None
        )
    except DOMAIN_ERRORS as e:
        raise to_http(e) from e
    return outcome.to_dict()


@router.delete("/todos/{todo_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_todo(todo_id: str) -> None:
    if not activities_repository.delete_todo(todo_id):
        raise _not_found("Todo", todo_id)


# =============================================================================
# PROJECTS
# =============================================================================


@router.get("/projects")
async def list_projects(user_id: str) -> list[dict]:
    return [p.to_dict() for p in activities_repository.get_projects_for_user(user_id)]


@router.post("/projects", status_code=status.HTTP_201_CREATED)
async def create_project(body: ProjectCreate) -> dict:
    try:
        project = activity_service.create_project(**body.model_dump())
    except DOMAIN_ERRORS as e:
        raise to_http(e) from e
    return project.to_dict()


@router.get("/projects/{project_id}")
async def get_project(project_id: str) -> dict:
    project = activities_repository.get_project(project_id)
    if project is None:
        raise _not_found("Project", project_id)
    data = project.to_dict()
    data["work_items"] = [w.to_dict() for w in activities_repository.get_work_items(project_id)]
    return data


@router.put("/projects/{project_id}/progress")
async def update_progress(project_id: str, body: ProgressUpdate) -> dict:
    try:
        outcome = activity_service.update_project_progress(project_id, body.progress)
    except DOMAIN_ERRORS as e:
        raise to_http(e) from e
    return outcome.to_dict()


@router.post("/projects/{project_id}/milestones", status_code=status.HTTP_201_CREATED)
async def add_milestone(project_id: str, body: MilestoneCreate) -> dict:
    try:
        project = activity_service.add_milestone(
            project_id, body.name, body.description, body.due_date
        )
    except DOMAIN_ERRORS as e:
        raise to_http(e) from e
    return project.to_dict()


@router.post("/projects/{project_id}/milestones/{milestone_id}/complete")
async def complete_milestone(project_id: str, milestone_id: str) -> dict:
    try:
        outcome = activity_service.complete_milestone(project_id, milestone_id)
    except DOMAIN_ERRORS as e:
        raise to_http(e) from e
    return outcome.to_dict()


@router.post("/projects/{project_id}/work-items", status_code=status.HTTP_201_CREATED)
async def add_work_item(project_id: str, body: WorkItemCreate) -> dict:
    try:
        item = activity_service.add_work_item(project_id, **body.model_dump())
    except DOMAIN_ERRORS as e:
        raise to_http(e) from e
    return item.to_dict()


@router.post("/projects/{project_id}/work-items/{item_id}/complete")
async def complete_work_item(project_id: str, item_id: str) -> dict:
    try:
        outcome = activity_service.complete_work_item(project_id, item_id)
    except DOMAIN_ERRORS as e:
        raise to_http(e) from e
    return outcome.to_dict()


@router.delete("/projects/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_project(project_id: str) -> None:
    if not activities_repository.delete_project(project_id):
        raise _not_found("Project", project_id)


@router.get("/stats")
async def get_stats(user_id: str) -> dict:
    """Totals across habits, todos and projects."""
    try:
        return activity_service.get_activity_stats(user_id).to_dict()
    except DOMAIN_ERRORS as e:
        raise to_http(e) from e


# =============================================================================
# TIMERS
# =============================================================================


@router.post("/timers", status_code=status.HTTP_201_CREATED)
async def start_timer(body: TimerStart) -> dict:
    """Start a quick timer."""
    manager = get_timer_manager()
    try:
        timer = await manager.start_timer(**body.model_dump())
    except DOMAIN_ERRORS as e:
        raise to_http(e) from e
    return timer.to_dict()


@router.get("/timers")
async def list_timers(user_id: str | None = None) -> list[dict]:
    manager = get_timer_manager()
    return [t.to_dict() for t in await manager.list_timers(user_id)]


@router.get("/timers/{timer_id}")
async def get_timer(timer_id: str) -> dict:
    timer = await get_timer_manager().get_timer(timer_id)
    if timer is None:
        raise _not_found("Timer", timer_id)
    return timer.to_dict()


@router.post("/timers/{timer_id}/pause")
async def pause_timer(timer_id: str) -> dict:
    timer = await get_timer_manager().pause_timer(timer_id)
    if timer is None:
        raise _not_found("Timer", timer_id)
    return timer.to_dict()


@router.post("/timers/{timer_id}/resume")
async def resume_timer(timer_id: str) -> dict:
    timer = await get_timer_manager().resume_timer(timer_id)
    if timer is None:
        raise _not_found("Timer", timer_id)
    return timer.to_dict()


@router.post("/timers/{timer_id}/stop")
async def stop_timer(timer_id: str) -> dict:
    """Stop a timer and credit XP for the focused minutes."""
    try:
        result = await get_timer_manager().stop_timer(timer_id)
    except DOMAIN_ERRORS as e:
        raise to_http(e) from e
    if result is None:
        raise _not_found("Timer", timer_id)
    return result.to_dict()
