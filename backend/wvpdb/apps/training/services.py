from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import logging
import math
from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from wvpdb.apps.accounts import models as account_models
from wvpdb.apps.audit import services as audit_services
from wvpdb.apps.reminders.scheduling import as_utc, is_retraining_open, next_annual_due_date
from wvpdb.apps.workflow import apply_transition
from wvpdb.utils.rounding import round_half_up

from . import grading, models, schemas
from .errors import (
    EmployeeNotFound,
    ModuleNotFound,
    NoProgressRecord,
    NotFound,
    RecordNotFound,
    ValidationError,
)
from .sequencing import active_modules

logger = logging.getLogger(__name__)

CURRICULUM_CODE = "sb553-full-training"
CURRICULUM_NAME = "SB 553 Workplace Violence Prevention Training"
TRAINER_NAME = "Automated training platform"
TRAINER_QUALIFICATIONS = "Self-paced video curriculum with graded assessments"
MANUAL_MODULE_CODE = "in-person"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class QuizSubmissionResult:
    attempt_number: int
    score: int
    passed: bool
    passing_score: int
    correct_count: int
    total_questions: int
    best_score: int
    module_completed: bool
    results: List[grading.QuestionResult]
    progress: models.TrainingProgress


@dataclass(frozen=True)
class CompletionResult:
    record: models.TrainingRecord
    training_type: models.TrainingRecordType
    completed_at: datetime
    next_due_date: datetime


# ---------------------------------------------------------------------------
# LOOKUPS
# ---------------------------------------------------------------------------


def get_module(db: Session, module_id: str) -> models.TrainingModule:
    module = db.query(models.TrainingModule).filter(models.TrainingModule.id == module_id).first()
    if module is None:
        raise ModuleNotFound("Module not found")
    return module


def get_active_employee(db: Session, employee_id: str) -> account_models.Employee:
    employee = (
        db.query(account_models.Employee)
        .filter(
            account_models.Employee.id == employee_id,
            account_models.Employee.is_active.is_(True),
        )
        .first()
    )
    if employee is None:
        raise EmployeeNotFound("Employee record not found")
    return employee


def _lock_progress(db: Session, *, employee_id: str, module_id: str) -> Optional[models.TrainingProgress]:
    # One row per (employee, module); FOR UPDATE serializes concurrent beacons
    # and quiz submissions on the same record.
    return (
        db.query(models.TrainingProgress)
        .filter(
            models.TrainingProgress.employee_id == employee_id,
            models.TrainingProgress.module_id == module_id,
        )
        .with_for_update()
        .first()
    )


def list_progress(db: Session, *, employee_id: str) -> Sequence[models.TrainingProgress]:
    return (
        db.query(models.TrainingProgress)
        .filter(models.TrainingProgress.employee_id == employee_id)
        .all()
    )


def active_questions(db: Session, module_id: str) -> Sequence[models.TrainingQuestion]:
    return (
        db.query(models.TrainingQuestion)
        .filter(
            models.TrainingQuestion.module_id == module_id,
            models.TrainingQuestion.is_active.is_(True),
        )
        .order_by(models.TrainingQuestion.order.asc())
        .all()
    )


# ---------------------------------------------------------------------------
# GUARDED SETTERS
# ---------------------------------------------------------------------------


def _raise_video_progress(progress: models.TrainingProgress, pct: Optional[float], now: datetime) -> None:
    if pct is not None:
        pct = max(0.0, min(100.0, float(pct)))
        if pct > (progress.video_progress or 0):
            progress.video_progress = pct

    if not progress.video_completed and (progress.video_progress or 0) >= models.VIDEO_COMPLETION_THRESHOLD:
        progress.video_completed = True
        progress.video_completed_at = now


def _mark_quiz_passed(progress: models.TrainingProgress, passed: bool, now: datetime) -> None:
    if passed and not progress.quiz_passed:
        progress.quiz_passed = True
        progress.quiz_passed_at = now


def _has_any_signal(progress: models.TrainingProgress) -> bool:
    return bool(
        (progress.video_progress or 0) > 0
        or (progress.last_watched_position or 0) > 0
        or progress.video_completed
        or progress.quiz_attempts
        or progress.quiz_passed
    )


def _derived_status(progress: models.TrainingProgress) -> models.ModuleStatus:
    if progress.video_completed and progress.quiz_passed:
        return models.ModuleStatus.COMPLETED
    if _has_any_signal(progress):
        return models.ModuleStatus.IN_PROGRESS
    return models.ModuleStatus.NOT_STARTED


def _advance_status(
    db: Session,
    progress: models.TrainingProgress,
    target: models.ModuleStatus,
    *,
    actor_id: Optional[str],
    now: datetime,
) -> bool:
    """
    Move `progress.status` forward to `target`. Returns True when the row
    has just become COMPLETED.
    """
    current = models.ModuleStatus(progress.status)
    if target.rank <= current.rank:
        return False

    apply_transition(
        db,
        actor_id=actor_id,
        entity_type="training_progress",
        entity_id=str(progress.id),
        from_state=current.value,
        to_state=target.value,
        before_obj={"organization_id": progress.organization_id},
        after_obj={
            "organization_id": progress.organization_id,
            "module_id": progress.module_id,
            "video_completed": bool(progress.video_completed),
            "quiz_passed": bool(progress.quiz_passed),
        },
    )
    progress.status = target

    if target == models.ModuleStatus.COMPLETED:
        if progress.completed_at is None:
            progress.completed_at = now
        module = progress.module
        if module is not None:
            module.total_completions = (module.total_completions or 0) + 1
            db.add(module)
        return True
    return False


def _start_training_path(employee: account_models.Employee, now: datetime) -> None:
    if employee.training_path_started_at is None:
        employee.training_path_started_at = now


def _recompute(
    db: Session,
    employee: account_models.Employee,
    progress: models.TrainingProgress,
    *,
    actor_id: Optional[str],
    now: datetime,
    floor: models.ModuleStatus = models.ModuleStatus.NOT_STARTED,
) -> bool:
    target = _derived_status(progress)
    if floor.rank > target.rank:
        target = floor
    became_completed = _advance_status(db, progress, target, actor_id=actor_id, now=now)
    if progress.status != models.ModuleStatus.NOT_STARTED:
        _start_training_path(employee, now)
    db.add(progress)
    db.add(employee)
    if became_completed:
        db.flush()
        maybe_issue_training_record(db, employee=employee, now=now, actor_id=actor_id)
    return became_completed


# ---------------------------------------------------------------------------
# VIDEO PROGRESS
# ---------------------------------------------------------------------------


def _create_progress(
    db: Session,
    *,
    employee: account_models.Employee,
    module: models.TrainingModule,
    status: models.ModuleStatus,
    now: datetime,
    due_date: Optional[datetime] = None,
) -> models.TrainingProgress:
    progress = models.TrainingProgress(
        organization_id=employee.organization_id,
        employee_id=employee.id,
        module_id=module.id,
        status=status,
        assigned_at=now,
        due_date=due_date,
    )
    try:
        with db.begin_nested():
            db.add(progress)
            db.flush()
    except IntegrityError:
        # Another request created the row first; use theirs.
        existing = _lock_progress(db, employee_id=employee.id, module_id=module.id)
        if existing is None:
            raise
        return existing
    return progress


def _ensure_finite(field: str, value: Optional[float]) -> None:
    # NaN slips through min/max clamping, so it is rejected outright.
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise ValidationError(
            f"{field} must be a finite number",
            detail=[{"field": field, "reason": "must be a finite number"}],
        )


def report_video_progress(
    db: Session,
    *,
    employee: account_models.Employee,
    module_id: str,
    video_progress: Optional[float] = None,
    last_watched_position: Optional[float] = None,
    actor_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> models.TrainingProgress:
    """
    Record a video-watch beacon. Creates the progress row (IN_PROGRESS) on
    first contact; progress only moves forward and the first crossing of
    90% marks the video watched for good.
    """
    now = now or _utcnow()
    module = get_module(db, module_id)

    _ensure_finite("video_progress", video_progress)
    _ensure_finite("last_watched_position", last_watched_position)

    progress = _lock_progress(db, employee_id=employee.id, module_id=module.id)
    if progress is None:
        progress = _create_progress(
            db,
            employee=employee,
            module=module,
            status=models.ModuleStatus.IN_PROGRESS,
            now=now,
        )

    _raise_video_progress(progress, video_progress, now)
    if last_watched_position is not None:
        progress.last_watched_position = max(0.0, float(last_watched_position))

    _recompute(
        db,
        employee,
        progress,
        actor_id=actor_id,
        now=now,
        floor=models.ModuleStatus.IN_PROGRESS,
    )
    db.flush()
    return progress


# ---------------------------------------------------------------------------
# QUIZ SUBMISSION
# ---------------------------------------------------------------------------


def submit_quiz(
    db: Session,
    *,
    employee: account_models.Employee,
    module_id: str,
    answers: Optional[Sequence[grading.SubmittedAnswer]],
    actor_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> QuizSubmissionResult:
    """
    Grade a quiz attempt and fold it into the progress row.

    All rejections (missing answers, unknown module, no progress row,
    attempt ceiling) happen before anything is written.
    """
    now = now or _utcnow()
    if answers is None or not isinstance(answers, (list, tuple)):
        raise ValidationError(
            "answers array is required",
            detail=[{"field": "answers", "reason": "must be a list"}],
        )

    module = get_module(db, module_id)
    progress = _lock_progress(db, employee_id=employee.id, module_id=module.id)
    if progress is None:
        raise NoProgressRecord("No progress record found. Start watching the video first.")

    prior_attempts = len(progress.quiz_attempts)
    grading.ensure_attempt_available(module, prior_attempts)

    questions = active_questions(db, module.id)
    result = grading.grade(module, questions, answers)
    attempt_number = prior_attempts + 1

    progress.quiz_attempts.append(
        models.TrainingQuizAttempt(
            attempt_number=attempt_number,
            score=result.score,
            passed=result.passed,
            answers=[r.as_attempt_answer() for r in result.results],
            completed_at=now,
        )
    )
    if result.score > (progress.best_score or 0):
        progress.best_score = result.score
    _mark_quiz_passed(progress, result.passed, now)

    module_completed = _recompute(db, employee, progress, actor_id=actor_id, now=now)

    audit_services.log_event(
        db,
        organization_id=employee.organization_id,
        actor_id=actor_id,
        entity_type="training_progress",
        entity_id=str(progress.id),
        action="quiz_submitted",
        after={
            "employee_id": employee.id,
            "module_id": module.id,
            "attempt_number": attempt_number,
            "score": result.score,
            "passed": result.passed,
        },
        metadata={"module": "training"},
    )
    db.flush()

    return QuizSubmissionResult(
        attempt_number=attempt_number,
        score=result.score,
        passed=result.passed,
        passing_score=module.passing_score,
        correct_count=result.correct_count,
        total_questions=len(questions),
        best_score=progress.best_score,
        module_completed=module_completed or progress.status == models.ModuleStatus.COMPLETED,
        results=result.results,
        progress=progress,
    )


# ---------------------------------------------------------------------------
# ASSIGNMENT
# ---------------------------------------------------------------------------


def assign_training(
    db: Session,
    *,
    organization_id: str,
    employee_ids: Sequence[str],
    due_date: Optional[datetime] = None,
    actor_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> dict:
    """
    Create NOT_STARTED progress rows for every (employee, active module)
    pair that has none yet. Existing rows are left untouched.
    """
    now = now or _utcnow()
    if not employee_ids:
        raise ValidationError(
            "employee_ids array is required",
            detail=[{"field": "employee_ids", "reason": "must be a non-empty list"}],
        )

    employees = (
        db.query(account_models.Employee)
        .filter(
            account_models.Employee.id.in_(list(employee_ids)),
            account_models.Employee.organization_id == organization_id,
            account_models.Employee.is_active.is_(True),
        )
        .all()
    )
    if not employees:
        raise EmployeeNotFound("No valid employees found")

    modules = active_modules(db)
    if not modules:
        raise NotFound("No active training modules found")

    existing_pairs = {
        (row.employee_id, row.module_id)
        for row in db.query(models.TrainingProgress.employee_id, models.TrainingProgress.module_id)
        .filter(models.TrainingProgress.employee_id.in_([e.id for e in employees]))
        .all()
    }

    assigned = 0
    for employee in employees:
        for module in modules:
            if (employee.id, module.id) in existing_pairs:
                continue
            db.add(
                models.TrainingProgress(
                    organization_id=organization_id,
                    employee_id=employee.id,
                    module_id=module.id,
                    status=models.ModuleStatus.NOT_STARTED,
                    assigned_at=now,
                    due_date=due_date,
                )
            )
            assigned += 1
    db.flush()

    audit_services.log_event(
        db,
        organization_id=organization_id,
        actor_id=actor_id,
        entity_type="organization",
        entity_id=organization_id,
        action="training_assigned",
        after={
            "employee_count": len(employees),
            "module_count": len(modules),
            "assigned_count": assigned,
            "due_date": due_date.isoformat() if due_date else None,
        },
        metadata={"module": "training"},
    )
    return {
        "assigned": assigned,
        "employees": len(employees),
        "modules": len(modules),
        "due_date": due_date,
    }


# ---------------------------------------------------------------------------
# CURRICULUM COMPLETION / TRAINING RECORD ISSUANCE
# ---------------------------------------------------------------------------

CYCLE_RECORD_TYPES = (models.TrainingRecordType.INITIAL, models.TrainingRecordType.ANNUAL)


def incomplete_required_modules(
    modules: Iterable[models.TrainingModule],
    progress_by_module_id: Dict[str, models.TrainingProgress],
) -> List[models.TrainingModule]:
    incomplete = []
    for module in modules:
        if not module.is_required:
            continue
        progress = progress_by_module_id.get(str(module.id))
        if progress is None or progress.status != models.ModuleStatus.COMPLETED:
            incomplete.append(module)
    return incomplete


def _latest_cycle_record(db: Session, employee: account_models.Employee) -> Optional[models.TrainingRecord]:
    return (
        db.query(models.TrainingRecord)
        .filter(
            models.TrainingRecord.employee_id == employee.id,
            models.TrainingRecord.training_type.in_(CYCLE_RECORD_TYPES),
        )
        .order_by(models.TrainingRecord.training_date.desc())
        .first()
    )


def _current_cycle_record(
    db: Session,
    employee: account_models.Employee,
    now: datetime,
) -> Optional[models.TrainingRecord]:
    """
    The INITIAL/ANNUAL record covering the current cycle, or None once the
    annual retraining window has opened (or before the first record).
    """
    record = _latest_cycle_record(db, employee)
    if record is None:
        return None
    if is_retraining_open(employee.next_training_due_date, now):
        return None
    return record


def _write_through(
    employee: account_models.Employee,
    training_type: models.TrainingRecordType,
    completed_at: Optional[datetime],
) -> Optional[datetime]:
    """
    Fold a completed INITIAL or ANNUAL record into the employee's cached
    training dates and return the new due date. A completion older than the
    cached one leaves the annual dates alone.
    """
    if completed_at is None or training_type not in CYCLE_RECORD_TYPES:
        return None

    if training_type == models.TrainingRecordType.INITIAL:
        initial = as_utc(employee.initial_training_completed_at)
        if initial is None or as_utc(completed_at) < initial:
            employee.initial_training_completed_at = completed_at

    last = as_utc(employee.last_annual_training_completed_at)
    if last is not None and as_utc(completed_at) < last:
        return None
    next_due = next_annual_due_date(completed_at)
    employee.last_annual_training_completed_at = completed_at
    employee.next_training_due_date = next_due
    return next_due


def issue_training_record(
    db: Session,
    *,
    employee: account_models.Employee,
    modules: Sequence[models.TrainingModule],
    progress_rows: Sequence[models.TrainingProgress],
    now: datetime,
    actor_id: Optional[str] = None,
) -> models.TrainingRecord:
    """
    Persist the finalized compliance record and write through the
    employee's cached training dates.
    """
    is_initial = employee.initial_training_completed_at is None
    training_type = models.TrainingRecordType.INITIAL if is_initial else models.TrainingRecordType.ANNUAL
    scores = [p.best_score or 0 for p in progress_rows]

    # A path start at or before the previous record belongs to the last cycle.
    previous = _latest_cycle_record(db, employee)
    started_at = as_utc(employee.training_path_started_at)
    if started_at is None or (previous is not None and started_at <= as_utc(previous.training_date)):
        started_at = now
    employee.training_path_started_at = started_at

    record = models.TrainingRecord(
        organization_id=employee.organization_id,
        employee_id=employee.id,
        training_date=now,
        training_type=training_type,
        module_code=CURRICULUM_CODE,
        module_name=CURRICULUM_NAME,
        content_summary="; ".join(m.title for m in modules),
        trainer_name=TRAINER_NAME,
        trainer_qualifications=TRAINER_QUALIFICATIONS,
        started_at=started_at,
        completed_at=now,
        duration_minutes=sum(m.video_duration_minutes or 0 for m in modules),
        quiz_score=round_half_up(sum(scores) / len(scores)) if scores else None,
        quiz_passed=True,
    )
    db.add(record)

    employee.training_path_completed_at = now
    next_due = _write_through(employee, training_type, now) or as_utc(employee.next_training_due_date)
    db.add(employee)
    db.flush()

    audit_services.log_event(
        db,
        organization_id=employee.organization_id,
        actor_id=actor_id,
        entity_type="training_record",
        entity_id=str(record.id),
        action="training_completed",
        after={
            "employee_id": employee.id,
            "employee_name": employee.full_name,
            "training_type": training_type.value,
            "modules_completed": len(modules),
            "average_score": record.quiz_score,
            "next_due_date": next_due.isoformat() if next_due else None,
        },
        metadata={"module": "training"},
        critical=True,
    )
    logger.info(
        "Issued training record",
        extra={"employee_id": employee.id, "training_type": training_type.value},
    )
    return record


def maybe_issue_training_record(
    db: Session,
    *,
    employee: account_models.Employee,
    now: datetime,
    actor_id: Optional[str] = None,
) -> Optional[models.TrainingRecord]:
    """Issue the record once per curriculum cycle when every required module is done."""
    modules = active_modules(db)
    if not modules:
        return None
    progress_rows = list_progress(db, employee_id=employee.id)
    by_module = {str(p.module_id): p for p in progress_rows}
    if incomplete_required_modules(modules, by_module):
        return None
    if _current_cycle_record(db, employee, now) is not None:
        return None
    return issue_training_record(
        db,
        employee=employee,
        modules=modules,
        progress_rows=progress_rows,
        now=now,
        actor_id=actor_id,
    )


def complete_training(
    db: Session,
    *,
    employee: account_models.Employee,
    acknowledgment: bool,
    actor_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> CompletionResult:
    """
    Employee sign-off on the whole curriculum. Reuses the current cycle's
    record when there is one; otherwise (first completion, or the annual
    retraining window is open) issues a new one. Stores the acknowledgment.
    """
    now = now or _utcnow()
    modules = active_modules(db)
    progress_rows = list_progress(db, employee_id=employee.id)
    by_module = {str(p.module_id): p for p in progress_rows}

    incomplete = incomplete_required_modules(modules, by_module)
    if incomplete or not modules:
        raise ValidationError(
            "Not all required modules are completed",
            detail=[
                {"field": "module_id", "reason": f"{m.title} (order {m.order}) is not completed", "module_id": m.id}
                for m in incomplete
            ],
        )

    record = _current_cycle_record(db, employee, now)
    if record is None:
        record = issue_training_record(
            db,
            employee=employee,
            modules=modules,
            progress_rows=progress_rows,
            now=now,
            actor_id=actor_id,
        )

    if acknowledgment and not record.employee_acknowledged:
        record.employee_acknowledged = True
        record.acknowledged_at = now
        db.add(record)
        db.flush()

    return CompletionResult(
        record=record,
        training_type=models.TrainingRecordType(record.training_type),
        completed_at=as_utc(record.completed_at) or now,
        next_due_date=as_utc(employee.next_training_due_date) or next_annual_due_date(now),
    )


# ---------------------------------------------------------------------------
# TRAINING RECORDS (ADMIN)
# ---------------------------------------------------------------------------


REQUIRED_RECORD_FIELDS = frozenset(
    {
        "training_date",
        "training_type",
        "module_code",
        "module_name",
        "content_summary",
        "trainer_name",
        "trainer_qualifications",
        "started_at",
        "employee_acknowledged",
    }
)


def _org_employee(db: Session, *, organization_id: str, employee_id: str) -> account_models.Employee:
    employee = (
        db.query(account_models.Employee)
        .filter(
            account_models.Employee.id == employee_id,
            account_models.Employee.organization_id == organization_id,
        )
        .first()
    )
    if employee is None:
        raise EmployeeNotFound("Employee not found")
    return employee


def list_training_records(
    db: Session,
    *,
    organization_id: str,
    employee_id: Optional[str] = None,
    training_type: Optional[models.TrainingRecordType] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> Sequence[models.TrainingRecord]:
    """Newest training date first, scoped to one organization."""
    filters = [models.TrainingRecord.organization_id == organization_id]
    if employee_id:
        filters.append(models.TrainingRecord.employee_id == employee_id)
    if training_type:
        filters.append(models.TrainingRecord.training_type == training_type)
    if start:
        filters.append(models.TrainingRecord.training_date >= start)
    if end:
        filters.append(models.TrainingRecord.training_date <= end)
    return (
        db.query(models.TrainingRecord)
        .filter(*filters)
        .order_by(models.TrainingRecord.training_date.desc())
        .all()
    )


def get_training_record(db: Session, *, organization_id: str, record_id: str) -> models.TrainingRecord:
    record = (
        db.query(models.TrainingRecord)
        .filter(
            models.TrainingRecord.id == record_id,
            models.TrainingRecord.organization_id == organization_id,
        )
        .first()
    )
    if record is None:
        raise RecordNotFound("Training record not found")
    return record


def create_training_record(
    db: Session,
    *,
    organization_id: str,
    data: schemas.TrainingRecordCreate,
    actor_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> models.TrainingRecord:
    """
    Enter a record by hand (in-person sessions, new-hazard or plan-update
    briefings). A completed INITIAL or ANNUAL record moves the employee's
    cached training dates.
    """
    now = now or _utcnow()
    employee = _org_employee(db, organization_id=organization_id, employee_id=data.employee_id)

    fields = data.model_dump(exclude={"module_code", "started_at"})
    record = models.TrainingRecord(
        organization_id=organization_id,
        module_code=data.module_code or MANUAL_MODULE_CODE,
        started_at=data.started_at or data.training_date,
        **fields,
    )
    if record.employee_acknowledged:
        record.acknowledged_at = now
    db.add(record)

    next_due = _write_through(employee, data.training_type, data.completed_at)
    db.add(employee)
    db.flush()

    audit_services.log_event(
        db,
        organization_id=organization_id,
        actor_id=actor_id,
        entity_type="training_record",
        entity_id=str(record.id),
        action="training_completed",
        after={
            "employee_id": employee.id,
            "employee_name": employee.full_name,
            "training_type": data.training_type.value,
            "module_name": record.module_name,
            "next_due_date": next_due.isoformat() if next_due else None,
        },
        metadata={"module": "training", "source": "manual"},
        critical=True,
    )
    return record


def update_training_record(
    db: Session,
    *,
    organization_id: str,
    record_id: str,
    data: schemas.TrainingRecordUpdate,
    actor_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> models.TrainingRecord:
    now = now or _utcnow()
    record = get_training_record(db, organization_id=organization_id, record_id=record_id)
    changes = data.model_dump(exclude_unset=True)
    cleared = sorted(name for name, value in changes.items() if value is None and name in REQUIRED_RECORD_FIELDS)
    if cleared:
        raise ValidationError(
            "Required record fields cannot be cleared",
            detail=[{"field": name, "reason": "must not be null"} for name in cleared],
        )
    if not changes:
        return record

    before = {field: _audit_value(getattr(record, field)) for field in changes}
    for field, value in changes.items():
        setattr(record, field, value)
    if changes.get("employee_acknowledged") and record.acknowledged_at is None:
        record.acknowledged_at = now
    elif changes.get("employee_acknowledged") is False:
        record.acknowledged_at = None

    if "completed_at" in changes or "training_type" in changes:
        employee = _org_employee(db, organization_id=organization_id, employee_id=record.employee_id)
        _write_through(employee, models.TrainingRecordType(record.training_type), record.completed_at)
        db.add(employee)
    db.add(record)
    db.flush()

    audit_services.log_event(
        db,
        organization_id=organization_id,
        actor_id=actor_id,
        entity_type="training_record",
        entity_id=str(record.id),
        action="training_record_updated",
        before=before,
        after={field: _audit_value(getattr(record, field)) for field in changes},
        metadata={"module": "training", "updated_fields": sorted(changes)},
    )
    return record


def _audit_value(value):
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, models.TrainingRecordType):
        return value.value
    return value


# ---------------------------------------------------------------------------
# REPORTS
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EmployeeTrainingRow:
    employee: account_models.Employee
    modules: List[dict]
    completed_modules: int
    total_modules: int
    overall_progress: int
    training_complete: bool
    overdue: bool


@dataclass(frozen=True)
class TrainingReport:
    modules: List[models.TrainingModule]
    employees: List[EmployeeTrainingRow]
    summary: dict


def training_report(
    db: Session,
    *,
    organization_id: str,
    now: Optional[datetime] = None,
) -> TrainingReport:
    """Per-employee by per-module completion matrix for the active workforce."""
    now = now or _utcnow()
    modules = active_modules(db)
    employees = (
        db.query(account_models.Employee)
        .filter(
            account_models.Employee.organization_id == organization_id,
            account_models.Employee.is_active.is_(True),
        )
        .order_by(account_models.Employee.last_name.asc(), account_models.Employee.first_name.asc())
        .all()
    )
    progress_rows = (
        db.query(models.TrainingProgress)
        .filter(models.TrainingProgress.organization_id == organization_id)
        .all()
    )
    by_pair = {(p.employee_id, p.module_id): p for p in progress_rows}

    rows: List[EmployeeTrainingRow] = []
    for employee in employees:
        statuses = []
        completed = 0
        for module in modules:
            progress = by_pair.get((employee.id, module.id))
            status = progress.status if progress is not None else models.ModuleStatus.NOT_STARTED
            if status == models.ModuleStatus.COMPLETED:
                completed += 1
            statuses.append(
                {
                    "module_id": module.id,
                    "title": module.title,
                    "order": module.order,
                    "status": status,
                    "video_progress": progress.video_progress if progress else 0,
                    "quiz_passed": bool(progress.quiz_passed) if progress else False,
                    "best_score": progress.best_score if progress else 0,
                    "completed_at": progress.completed_at if progress else None,
                }
            )
        total = len(modules)
        due = as_utc(employee.next_training_due_date)
        rows.append(
            EmployeeTrainingRow(
                employee=employee,
                modules=statuses,
                completed_modules=completed,
                total_modules=total,
                overall_progress=round_half_up(completed / total * 100) if total else 0,
                training_complete=total > 0 and completed == total,
                overdue=due is not None and due < as_utc(now),
            )
        )

    total_employees = len(rows)
    fully_trained = sum(1 for r in rows if r.training_complete)
    summary = {
        "total_employees": total_employees,
        "fully_trained": fully_trained,
        "in_progress": sum(1 for r in rows if r.completed_modules > 0 and not r.training_complete),
        "not_started": sum(1 for r in rows if r.completed_modules == 0),
        "overdue": sum(1 for r in rows if r.overdue),
        "completion_rate": round_half_up(fully_trained / total_employees * 100) if total_employees else 0,
    }
    return TrainingReport(modules=modules, employees=rows, summary=summary)
