"""Pydantic schemas for the Web API.

Request bodies for every router, and response models for the core
entities (users and the subject hierarchy). Other endpoints return the
records' own dict form.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

Difficulty = Literal["easy", "medium", "hard", "expert"]
StudyStyle = Literal["visual", "auditory", "reading", "kinesthetic", "mixed"]
ConflictResolution = Literal["local", "external", "manual", "newest"]


# =============================================================================
# HEALTH
# =============================================================================


class HealthResponse(BaseModel):
    status: str
    version: str
    timestamp: str


# =============================================================================
# USER SCHEMAS
# =============================================================================


class UserCreate(BaseModel):
    """Request body for creating a user."""

    name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(default="", max_length=200)
    theme_id: str = Field(default="neutral")


class UserResponse(BaseModel):
    """Response for a user."""

    user_id: str
    name: str
    email: str
    theme_id: str
    total_xp: int
    tokens: int
    current_streak: int
    highest_streak: int
    last_login: str | None
    loyalty_points: int
    stars: int
    created_at: str
    updated_at: str

    model_config = {"from_attributes": True}


class UserListResponse(BaseModel):
    users: list[UserResponse]
    count: int


class ThemeChange(BaseModel):
    theme_id: str = Field(..., min_length=1)


class RewardRedeem(BaseModel):
    reward_id: str = Field(..., min_length=1)


# =============================================================================
# SUBJECT SCHEMAS
# =============================================================================


class SubjectCreate(BaseModel):
    """Request body for creating a subject."""

    user_id: str
    name: str = Field(..., min_length=1, max_length=200)
    description: str = Field(default="", max_length=5000)
    study_style: StudyStyle = "mixed"
    exam_mode: bool = False
    exam_date: str | None = None


class SubjectUpdate(BaseModel):
    """Partial update; only the fields sent are changed."""

    name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    study_style: StudyStyle | None = None
    exam_mode: bool | None = None
    exam_date: str | None = None


class SubjectResponse(BaseModel):
    subject_id: str
    user_id: str
    name: str
    description: str
    study_style: str
    xp: int
    total_study_time: int
    exam_mode: bool
    exam_date: str | None
    last_studied: str | None
    created_at: str
    updated_at: str

    model_config = {"from_attributes": True}


class SubjectListResponse(BaseModel):
    subjects: list[SubjectResponse]
    count: int


class TopicCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: str = ""


class TopicResponse(BaseModel):
    topic_id: str
    subject_id: str
    name: str
    description: str
    mastery_level: int
    xp: int
    total_study_time: int
    current_phase: str
    phase_state: dict[str, Any] | None
    next_review: str | None
    review_count: int
    last_studied: str | None
    created_at: str

    model_config = {"from_attributes": True}


class ConceptCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: str = ""
    content: str = ""


class ConceptResponse(BaseModel):
    concept_id: str
    topic_id: str
    name: str
    description: str
    content: str
    mastery_level: int
    current_phase: str
    next_review: str | None
    review_count: int
    created_at: str

    model_config = {"from_attributes": True}


class StudyLogRequest(BaseModel):
    """Request body for logging a study session."""

    user_id: str
    topic_id: str | None = None
    duration: int = Field(..., gt=0, le=24 * 60)
    difficulty: Difficulty = "medium"
    activity_type: Literal["study", "review", "practice"] = "study"
    confidence: int | None = Field(default=None, ge=0, le=100)
    rating: int | None = Field(default=None, ge=1, le=5)
    completed_activities: list[str] = Field(default_factory=list)
    notes: str = ""


class QuizResultCreate(BaseModel):
    user_id: str
    score: int = Field(..., ge=0)
    total: int = Field(..., ge=1)
    weak_areas: list[str] = Field(default_factory=list)


# =============================================================================
# REVIEW SCHEMAS
# =============================================================================


class ReviewRequest(BaseModel):
    """A review: send either a 1..5 rating or a pass/fail result."""

    user_id: str
    item_type: Literal["topic", "concept"]
    rating: int | None = Field(default=None, ge=1, le=5)
    passed: bool | None = None
    duration: int = Field(default=10, gt=0)


# =============================================================================
# ACTIVITY SCHEMAS
# =============================================================================


class HabitCreate(BaseModel):
    user_id: str
    name: str = Field(..., min_length=1, max_length=200)
    description: str = ""
    frequency: Literal["daily", "weekly", "monthly", "custom"] = "daily"
    custom_frequency: int | None = Field(default=None, ge=1)
    time_of_day: Literal["morning", "afternoon", "evening", "anytime"] = "anytime"
    time_required: int = Field(default=15, gt=0)
    difficulty: Literal["easy", "medium", "hard"] = "medium"
    tags: list[str] = Field(default_factory=list)


class BookCreate(BaseModel):
    title: str = Field(..., min_length=1)
    author: str = ""
    total_pages: int = Field(default=0, ge=0)


class ReadingHabitCreate(HabitCreate):
    book: BookCreate


class HabitComplete(BaseModel):
    notes: str = ""


class ReadingSessionRequest(BaseModel):
    start_page: int = Field(..., ge=0)
    end_page: int = Field(..., ge=0)
    duration: int = Field(default=0, ge=0)
    summary: str | None = None


class TodoCreate(BaseModel):
    user_id: str
    name: str = Field(..., min_length=1, max_length=200)
    description: str = ""
    priority: Literal["low", "medium", "high", "urgent"] = "medium"
    difficulty: Literal["easy", "medium", "hard"] = "medium"
    due_date: str | None = None
    project_id: str | None = None
    estimated_time: int | None = Field(default=None, gt=0)
    subtasks: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)


class TodoComplete(BaseModel):
    actual_time: int | None = Field(default=None, gt=0)


class MilestoneCreate(BaseModel):
    name: str = Field(..., min_length=1)
    description: str = ""
    due_date: str | None = None


class ProjectCreate(BaseModel):
    user_id: str
    name: str = Field(..., min_length=1, max_length=200)
    description: str = ""
    priority: Literal["low", "medium", "high"] = "medium"
    start_date: str | None = None
    due_date: str | None = None
    tags: list[str] = Field(default_factory=list)
    milestones: list[MilestoneCreate] = Field(default_factory=list)


class ProgressUpdate(BaseModel):
    progress: int = Field(..., ge=0, le=100)


class WorkItemCreate(BaseModel):
    type: Literal["task", "implementation", "improvement", "tool"]
    title: str = Field(..., min_length=1)
    description: str = ""
    priority: Literal["low", "medium", "high"] | None = None
    impact: Literal["minor", "moderate", "major"] | None = None
    category: str | None = None
    technical_details: str = ""


class TimerStart(BaseModel):
    user_id: str
    activity_type: str = "study"
    difficulty: Difficulty = "medium"
    timer_type: Literal["pomodoro", "continuous"] = "continuous"


# =============================================================================
# INTEGRATION SCHEMAS
# =============================================================================


class NotionConnect(BaseModel):
    user_id: str
    access_token: str = Field(..., min_length=1)
    workspace_id: str = ""
    workspace_name: str = ""


class NotionSyncRequest(BaseModel):
    user_id: str
    conflict_resolution: ConflictResolution = "newest"
    include_progress: bool = True
    include_spaced_repetition_info: bool = True
    target_database: str | None = None
    target_page: str | None = None


class ObsidianExportRequest(BaseModel):
    user_id: str
    include_progress: bool = True
    include_spaced_repetition_info: bool = True
    vault_path: str = ""


class ObsidianImportRequest(BaseModel):
    """Import from a vault directory on the server or an uploaded zip (base64)."""

    user_id: str
    path: str | None = None
    zip_base64: str | None = None
    structure_type: Literal["folders", "tags"] = "folders"
    subject_name: str | None = None


class CalendarLinkRequest(BaseModel):
    title: str = Field(..., min_length=1)
    start: datetime
    description: str = ""
    duration_minutes: int = Field(default=30, gt=0)
    location: str = ""


class CalendarEventRequest(BaseModel):
    title: str = Field(..., min_length=1)
    start: datetime
    description: str = ""
    duration_minutes: int = Field(default=30, gt=0)
    access_token: str | None = None
    calendar_id: str | None = None
    review_log_id: int | None = None


# =============================================================================
# PATHWAY SCHEMAS
# =============================================================================


class PathwayModule(BaseModel):
    id: str | None = None
    type: Literal["exam", "class", "courses", "activity", "custom"] = "custom"
    name: str = Field(..., min_length=1)
    ref_id: str | None = None


class PathwayStage(BaseModel):
    id: str | None = None
    name: str = Field(..., min_length=1)
    modules: list[PathwayModule] = Field(default_factory=list)


class PathwayBranch(BaseModel):
    id: str | None = None
    name: str = Field(..., min_length=1)
    stages: list[PathwayStage] = Field(default_factory=list)


class PathwayCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: str = ""
    branches: list[PathwayBranch] = Field(default_factory=list)


class PathwayUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = None
    branches: list[PathwayBranch] | None = None


class PathwayJoin(BaseModel):
    user_id: str


# =============================================================================
# AI SCHEMAS
# =============================================================================


class GenerateStructureRequest(BaseModel):
    subject: str = Field(..., min_length=1)
    additional_info: str | None = None
    provider: str | None = None


class GenerateQuizRequest(BaseModel):
    subject_id: str
    question_count: int = Field(default=10, ge=1, le=50)
    quiz_type: Literal["weak", "comprehensive"] = "comprehensive"
    provider: str | None = None


class ApplyStructureRequest(BaseModel):
    user_id: str
    structure: dict[str, Any]
    study_style: StudyStyle = "mixed"


class RecommendationRequest(BaseModel):
    subject: str = Field(..., min_length=1)
    topic: str = Field(..., min_length=1)
    concept: str | None = None
    quiz_score: float = Field(..., ge=0, le=100)
    incorrect_answers: list[dict[str, Any]] = Field(default_factory=list)
    difficulty: Difficulty = "medium"
    provider: str | None = None
