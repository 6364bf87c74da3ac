# backend/wvpdb/apps/training/models.py

from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from wvpdb.database import Base
from wvpdb.utils.identifiers import generate_uuid7


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# ENUMS
# ---------------------------------------------------------------------------


class ModuleStatus(str, enum.Enum):
    """
    Per-employee module state. Only moves forward; see the
    `training_progress` workflow in apps/workflow/registry.py.
    """

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]


_STATUS_RANK = {
    ModuleStatus.NOT_STARTED: 0,
    ModuleStatus.IN_PROGRESS: 1,
    ModuleStatus.COMPLETED: 2,
}


class QuestionType(str, enum.Enum):
    MULTIPLE_CHOICE = "multiple_choice"
    TRUE_FALSE = "true_false"
    SELECT_ALL = "select_all"


class ModuleCategory(str, enum.Enum):
    WVPP_OVERVIEW = "wvpp_overview"
    REPORTING_PROCEDURES = "reporting_procedures"
    HAZARD_RECOGNITION = "hazard_recognition"
    AVOIDANCE_STRATEGIES = "avoidance_strategies"
    INCIDENT_LOG = "incident_log"
    EMERGENCY_RESPONSE = "emergency_response"
    DE_ESCALATION = "de_escalation"
    ACTIVE_SHOOTER = "active_shooter"


class TrainingRecordType(str, enum.Enum):
    INITIAL = "initial"
    ANNUAL = "annual"
    NEW_HAZARD = "new_hazard"
    PLAN_UPDATE = "plan_update"


VIDEO_COMPLETION_THRESHOLD = 90


# ---------------------------------------------------------------------------
# CURRICULUM CATALOG (PLATFORM-WIDE)
# ---------------------------------------------------------------------------


class TrainingModule(Base):
    """
    One unit of the curriculum: a video followed by a quiz.

    - order            = position in the curriculum (dense, unique, >= 1)
    - passing_score    = minimum quiz score (0-100) to pass
    - max_attempts     = quiz attempt ceiling; 0 means unlimited

    Modules are owned by the platform, not by an organization, and are
    deactivated rather than deleted.
    """

    __tablename__ = "training_modules"
    __table_args__ = (
        UniqueConstraint("order", name="uq_training_modules_order"),
        Index("idx_training_modules_order_active", "order", "is_active"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)

    code = Column(
        String(64),
        nullable=False,
        unique=True,
        doc="Stable slug such as 'wvpp-overview'.",
    )
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    order = Column(Integer, nullable=False)
    category = Column(
        Enum(ModuleCategory, name="training_module_category_enum", native_enum=False),
        nullable=True,
    )

    video_url = Column(String(512), nullable=True)
    video_duration_minutes = Column(Integer, nullable=True, default=0)

    is_required = Column(Boolean, nullable=False, default=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)

    passing_score = Column(Integer, nullable=False, default=70)
    max_attempts = Column(Integer, nullable=False, default=0)

    # Analytics
    total_completions = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )

    questions = relationship(
        "TrainingQuestion",
        back_populates="module",
        lazy="selectin",
        order_by="TrainingQuestion.order",
    )

    def __repr__(self) -> str:
        return f"<TrainingModule {self.code} order={self.order} active={self.is_active}>"


class TrainingQuestion(Base):
    """
    Quiz question belonging to exactly one module.

    `options` is an ordered list of {"id", "text", "is_correct"} dicts. The
    correctness flags never leave the server except through grading.
    """

    __tablename__ = "training_questions"
    __table_args__ = (
        Index("idx_training_questions_module_order", "module_id", "order"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    module_id = Column(
        String(36),
        ForeignKey("training_modules.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    question_text = Column(Text, nullable=False)
    question_type = Column(
        Enum(QuestionType, name="training_question_type_enum", native_enum=False),
        nullable=False,
    )
    options = Column(JSON, nullable=False, default=list)
    explanation = Column(Text, nullable=True)

    order = Column(Integer, nullable=False, default=0)
    points = Column(Integer, nullable=False, default=1)
    is_active = Column(Boolean, nullable=False, default=True)

    module = relationship("TrainingModule", back_populates="questions", lazy="joined")

    @property
    def correct_option_ids(self) -> list[str]:
        return [str(opt["id"]) for opt in (self.options or []) if opt.get("is_correct")]

    def __repr__(self) -> str:
        return f"<TrainingQuestion {self.id} module={self.module_id} type={self.question_type}>"


# ---------------------------------------------------------------------------
# PER-EMPLOYEE PROGRESS
# ---------------------------------------------------------------------------


class TrainingProgress(Base):
    """
    Progress of one employee through one module.

    Forward-only fields:
    - video_progress never decreases
    - video_completed / quiz_passed never revert once True
    - status only moves not_started -> in_progress -> completed

    Rows are never deleted; they are the audit trail for the training record.
    """

    __tablename__ = "training_progress"
    __table_args__ = (
        UniqueConstraint("employee_id", "module_id", name="uq_training_progress_employee_module"),
        Index("idx_training_progress_org_status", "organization_id", "status"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)

    organization_id = Column(
        String(36),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    employee_id = Column(
        String(36),
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    module_id = Column(
        String(36),
        ForeignKey("training_modules.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Video
    video_progress = Column(Float, nullable=False, default=0)
    video_completed = Column(Boolean, nullable=False, default=False)
    video_completed_at = Column(DateTime(timezone=True), nullable=True)
    last_watched_position = Column(Float, nullable=False, default=0)

    # Quiz
    quiz_passed = Column(Boolean, nullable=False, default=False)
    quiz_passed_at = Column(DateTime(timezone=True), nullable=True)
    best_score = Column(Integer, nullable=False, default=0)

    status = Column(
        Enum(ModuleStatus, name="training_progress_status_enum", native_enum=False),
        nullable=False,
        default=ModuleStatus.NOT_STARTED,
        index=True,
    )
    completed_at = Column(DateTime(timezone=True), nullable=True)

    assigned_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    due_date = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )

    module = relationship("TrainingModule", lazy="joined")
    quiz_attempts = relationship(
        "TrainingQuizAttempt",
        back_populates="progress",
        lazy="selectin",
        order_by="TrainingQuizAttempt.attempt_number",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return (
            f"<TrainingProgress employee={self.employee_id} module={self.module_id} "
            f"status={self.status}>"
        )


class TrainingQuizAttempt(Base):
    """
    One graded quiz submission. Append-only; attempt_number is 1-based and
    dense per progress row.
    """

    __tablename__ = "training_quiz_attempts"
    __table_args__ = (
        UniqueConstraint("progress_id", "attempt_number", name="uq_training_quiz_attempts_number"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    progress_id = Column(
        String(36),
        ForeignKey("training_progress.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    attempt_number = Column(Integer, nullable=False)
    score = Column(Integer, nullable=False)
    passed = Column(Boolean, nullable=False)
    answers = Column(
        JSON,
        nullable=False,
        default=list,
        doc="[{question_id, selected_option_ids, is_correct}] in submission order.",
    )
    completed_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    progress = relationship("TrainingProgress", back_populates="quiz_attempts")

    def __repr__(self) -> str:
        return f"<TrainingQuizAttempt #{self.attempt_number} score={self.score} passed={self.passed}>"


# ---------------------------------------------------------------------------
# TRAINING RECORDS (ISSUED ON CURRICULUM COMPLETION)
# ---------------------------------------------------------------------------


class TrainingRecord(Base):
    """
    Finalized compliance record issued when an employee completes every
    required module. Retained for the statutory retention period.
    """

    __tablename__ = "training_records"
    __table_args__ = (
        Index("idx_training_records_org_date", "organization_id", "training_date"),
        Index("idx_training_records_employee_type", "employee_id", "training_type"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)

    organization_id = Column(
        String(36),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    employee_id = Column(
        String(36),
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    training_date = Column(DateTime(timezone=True), nullable=False)
    training_type = Column(
        Enum(TrainingRecordType, name="training_record_type_enum", native_enum=False),
        nullable=False,
    )

    module_code = Column(String(64), nullable=False)
    module_name = Column(String(255), nullable=False)
    content_summary = Column(Text, nullable=False)
    trainer_name = Column(String(255), nullable=False)
    trainer_qualifications = Column(String(255), nullable=False)

    started_at = Column(DateTime(timezone=True), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    duration_minutes = Column(Integer, nullable=True)

    quiz_score = Column(Integer, nullable=True)
    quiz_passed = Column(Boolean, nullable=True)

    employee_acknowledged = Column(Boolean, nullable=False, default=False)
    acknowledged_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    def __repr__(self) -> str:
        return f"<TrainingRecord employee={self.employee_id} type={self.training_type}>"
