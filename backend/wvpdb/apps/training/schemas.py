# backend/wvpdb/apps/training/schemas.py

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from wvpdb.apps.accounts.schemas import EmployeeRead

from .models import ModuleCategory, ModuleStatus, QuestionType, TrainingRecordType


# ---------------------------------------------------------------------------
# CATALOG
# ---------------------------------------------------------------------------


class TrainingModuleRead(BaseModel):
    id: str
    code: str
    title: str
    description: Optional[str] = None
    order: int
    category: Optional[ModuleCategory] = None
    video_url: Optional[str] = None
    video_duration_minutes: Optional[int] = None
    is_required: bool
    passing_score: int
    max_attempts: int

    class Config:
        from_attributes = True


class ModuleCatalogEntry(BaseModel):
    module: TrainingModuleRead
    status: ModuleStatus
    locked: bool
    video_progress: float = 0
    quiz_passed: bool = False
    best_score: int = 0


class QuestionOptionRead(BaseModel):
    """Option as shown to the employee; the correctness flag is never sent."""

    id: str
    text: str


class TrainingQuestionRead(BaseModel):
    id: str
    question_text: str
    question_type: QuestionType
    options: List[QuestionOptionRead] = Field(default_factory=list)
    order: int
    points: int


class TrainingModuleDetail(TrainingModuleRead):
    questions: List[TrainingQuestionRead] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# PROGRESS
# ---------------------------------------------------------------------------


class QuizAttemptRead(BaseModel):
    attempt_number: int
    score: int
    passed: bool
    completed_at: datetime

    class Config:
        from_attributes = True


class TrainingProgressRead(BaseModel):
    id: str
    module_id: str
    status: ModuleStatus
    video_progress: float
    video_completed: bool
    video_completed_at: Optional[datetime] = None
    last_watched_position: float
    quiz_passed: bool
    quiz_passed_at: Optional[datetime] = None
    best_score: int
    completed_at: Optional[datetime] = None
    due_date: Optional[datetime] = None
    quiz_attempts: List[QuizAttemptRead] = Field(default_factory=list)

    class Config:
        from_attributes = True


class VideoProgressUpdate(BaseModel):
    module_id: str
    video_progress: Optional[float] = Field(None, allow_inf_nan=False, description="Percent watched, 0-100.")
    last_watched_position: Optional[float] = Field(
        None, allow_inf_nan=False, description="Playback position in seconds."
    )


class QuizAnswer(BaseModel):
    question_id: str
    selected_option_ids: List[str] = Field(default_factory=list)


class QuizSubmission(BaseModel):
    module_id: str
    answers: Optional[List[QuizAnswer]] = None


class QuestionResultRead(BaseModel):
    question_id: str
    is_correct: bool
    explanation: Optional[str] = None


class QuizResultRead(BaseModel):
    attempt_number: int
    score: int
    passed: bool
    passing_score: int
    correct_count: int
    total_questions: int
    best_score: int
    module_completed: bool
    results: List[QuestionResultRead] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# ASSIGNMENT / COMPLETION
# ---------------------------------------------------------------------------


class TrainingAssignRequest(BaseModel):
    employee_ids: List[str] = Field(default_factory=list)
    due_date: Optional[datetime] = None


class TrainingAssignResult(BaseModel):
    assigned: int
    employees: int
    modules: int
    due_date: Optional[datetime] = None


class TrainingCompleteRequest(BaseModel):
    acknowledgment: bool = False


class TrainingRecordRead(BaseModel):
    id: str
    employee_id: str
    training_date: datetime
    training_type: TrainingRecordType
    module_code: str
    module_name: str
    content_summary: str
    trainer_name: str
    trainer_qualifications: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration_minutes: Optional[int] = None
    quiz_score: Optional[int] = None
    quiz_passed: Optional[bool] = None
    employee_acknowledged: bool
    acknowledged_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TrainingCompleteResult(BaseModel):
    record: TrainingRecordRead
    employee: EmployeeRead
    training_type: TrainingRecordType
    completed_at: datetime
    next_due_date: datetime


# ---------------------------------------------------------------------------
# TRAINING RECORDS (ADMIN)
# ---------------------------------------------------------------------------


class TrainingRecordCreate(BaseModel):
    """Hand-entered record, e.g. an in-person session or a plan-update briefing."""

    employee_id: str
    training_date: datetime
    training_type: TrainingRecordType
    module_code: Optional[str] = Field(None, max_length=64)
    module_name: str = Field(..., min_length=1, max_length=255)
    content_summary: str = Field(..., min_length=1)
    trainer_name: str = Field(..., min_length=1, max_length=255)
    trainer_qualifications: str = Field(..., min_length=1, max_length=255)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration_minutes: Optional[int] = Field(None, ge=0)
    quiz_score: Optional[int] = Field(None, ge=0, le=100)
    quiz_passed: Optional[bool] = None
    employee_acknowledged: bool = False


class TrainingRecordUpdate(BaseModel):
    training_date: Optional[datetime] = None
    training_type: Optional[TrainingRecordType] = None
    module_code: Optional[str] = Field(None, max_length=64)
    module_name: Optional[str] = Field(None, min_length=1, max_length=255)
    content_summary: Optional[str] = Field(None, min_length=1)
    trainer_name: Optional[str] = Field(None, min_length=1, max_length=255)
    trainer_qualifications: Optional[str] = Field(None, min_length=1, max_length=255)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration_minutes: Optional[int] = Field(None, ge=0)
    quiz_score: Optional[int] = Field(None, ge=0, le=100)
    quiz_passed: Optional[bool] = None
    employee_acknowledged: Optional[bool] = None


# ---------------------------------------------------------------------------
# REPORTS
# ---------------------------------------------------------------------------


class ReportModuleStatus(BaseModel):
    module_id: str
    title: str
    order: int
    status: ModuleStatus
    video_progress: float = 0
    quiz_passed: bool = False
    best_score: int = 0
    completed_at: Optional[datetime] = None


class ReportEmployeeRow(BaseModel):
    employee: EmployeeRead
    modules: List[ReportModuleStatus] = Field(default_factory=list)
    completed_modules: int
    total_modules: int
    overall_progress: int
    training_complete: bool
    overdue: bool


class TrainingReportSummary(BaseModel):
    total_employees: int
    fully_trained: int
    in_progress: int
    not_started: int
    overdue: int
    completion_rate: int


class TrainingReportRead(BaseModel):
    summary: TrainingReportSummary
    modules: List[TrainingModuleRead] = Field(default_factory=list)
    employees: List[ReportEmployeeRow] = Field(default_factory=list)
