from __future__ import annotations

from datetime import datetime
from typing import List, NoReturn, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from ...database import get_db
from ...security import get_current_employee
from ..accounts import models as accounts_models
from ..accounts.schemas import EmployeeRead
from ..workflow import TransitionError
from . import grading, schemas as training_schemas, sequencing, services
from .errors import TrainingError, to_http_exception
from .models import TrainingRecordType

router = APIRouter(prefix="/training", tags=["training"])


# ---------------------------------------------------------------------------
# HELPERS
# ---------------------------------------------------------------------------


def _fail(db: Session, exc: Exception) -> NoReturn:
    db.rollback()
    if isinstance(exc, TrainingError):
        raise to_http_exception(exc) from exc
    if isinstance(exc, TransitionError):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"code": exc.code, "detail": exc.detail},
        ) from exc
    raise exc


def _public_question(question) -> training_schemas.TrainingQuestionRead:
    return training_schemas.TrainingQuestionRead(
        id=question.id,
        question_text=question.question_text,
        question_type=question.question_type,
        options=[
            training_schemas.QuestionOptionRead(id=str(opt["id"]), text=opt.get("text", ""))
            for opt in (question.options or [])
        ],
        order=question.order,
        points=question.points,
    )


# ---------------------------------------------------------------------------
# CATALOG
# ---------------------------------------------------------------------------


@router.get(
    "/modules",
    response_model=List[training_schemas.ModuleCatalogEntry],
    summary="Curriculum with per-employee lock state",
)
def list_modules(
    db: Session = Depends(get_db),
    current_employee: accounts_models.Employee = Depends(get_current_employee),
):
    entries = []
    for state in sequencing.get_module_catalog_with_lock_state(db, employee=current_employee):
        progress = state.progress
        entries.append(
            training_schemas.ModuleCatalogEntry(
                module=training_schemas.TrainingModuleRead.model_validate(state.module),
                status=state.status,
                locked=state.locked,
                video_progress=progress.video_progress if progress else 0,
                quiz_passed=bool(progress.quiz_passed) if progress else False,
                best_score=progress.best_score if progress else 0,
            )
        )
    return entries


@router.get(
    "/modules/{module_id}",
    response_model=training_schemas.TrainingModuleDetail,
    summary="Module with its active questions (answers withheld)",
)
def get_module(
    module_id: str,
    db: Session = Depends(get_db),
    current_employee: accounts_models.Employee = Depends(get_current_employee),
):
    try:
        module = sequencing.ensure_module_unlocked(db, employee=current_employee, module_id=module_id)
    except TrainingError as exc:
        _fail(db, exc)

    base = training_schemas.TrainingModuleRead.model_validate(module)
    return training_schemas.TrainingModuleDetail(
        **base.model_dump(),
        questions=[_public_question(q) for q in services.active_questions(db, module.id)],
    )


# ---------------------------------------------------------------------------
# PROGRESS
# ---------------------------------------------------------------------------


@router.get(
    "/progress",
    response_model=List[training_schemas.TrainingProgressRead],
    summary="Current employee's progress rows",
)
def list_progress(
    db: Session = Depends(get_db),
    current_employee: accounts_models.Employee = Depends(get_current_employee),
):
    return services.list_progress(db, employee_id=current_employee.id)


@router.post(
    "/progress/video",
    response_model=training_schemas.TrainingProgressRead,
    summary="Report video watch progress",
)
def report_video_progress(
    payload: training_schemas.VideoProgressUpdate,
    db: Session = Depends(get_db),
    current_employee: accounts_models.Employee = Depends(get_current_employee),
):
    try:
        sequencing.ensure_module_unlocked(db, employee=current_employee, module_id=payload.module_id)
        progress = services.report_video_progress(
            db,
            employee=current_employee,
            module_id=payload.module_id,
            video_progress=payload.video_progress,
            last_watched_position=payload.last_watched_position,
            actor_id=current_employee.id,
        )
        db.commit()
    except (TrainingError, TransitionError) as exc:
        _fail(db, exc)
    return progress


@router.post(
    "/progress/quiz",
    response_model=training_schemas.QuizResultRead,
    summary="Submit a quiz attempt",
)
def submit_quiz(
    payload: training_schemas.QuizSubmission,
    db: Session = Depends(get_db),
    current_employee: accounts_models.Employee = Depends(get_current_employee),
):
    answers = None
    if payload.answers is not None:
        answers = [
            grading.SubmittedAnswer(question_id=a.question_id, selected_option_ids=list(a.selected_option_ids))
            for a in payload.answers
        ]
    try:
        sequencing.ensure_module_unlocked(db, employee=current_employee, module_id=payload.module_id)
        result = services.submit_quiz(
            db,
            employee=current_employee,
            module_id=payload.module_id,
            answers=answers,
            actor_id=current_employee.id,
        )
        db.commit()
    except (TrainingError, TransitionError) as exc:
        _fail(db, exc)

    return training_schemas.QuizResultRead(
        attempt_number=result.attempt_number,
        score=result.score,
        passed=result.passed,
        passing_score=result.passing_score,
        correct_count=result.correct_count,
        total_questions=result.total_questions,
        best_score=result.best_score,
        module_completed=result.module_completed,
        results=[
            training_schemas.QuestionResultRead(
                question_id=r.question_id,
                is_correct=r.is_correct,
                explanation=r.explanation,
            )
            for r in result.results
        ],
    )


# ---------------------------------------------------------------------------
# ASSIGNMENT / COMPLETION
# ---------------------------------------------------------------------------


@router.post(
    "/assign",
    response_model=training_schemas.TrainingAssignResult,
    status_code=status.HTTP_201_CREATED,
    summary="Assign the active curriculum to employees of the caller's organization",
)
def assign_training(
    payload: training_schemas.TrainingAssignRequest,
    db: Session = Depends(get_db),
    current_employee: accounts_models.Employee = Depends(get_current_employee),
):
    try:
        result = services.assign_training(
            db,
            organization_id=current_employee.organization_id,
            employee_ids=payload.employee_ids,
            due_date=payload.due_date,
            actor_id=current_employee.id,
        )
        db.commit()
    except TrainingError as exc:
        _fail(db, exc)
    return result


@router.post(
    "/complete",
    response_model=training_schemas.TrainingCompleteResult,
    summary="Sign off the curriculum and acknowledge the training record",
)
def complete_training(
    payload: training_schemas.TrainingCompleteRequest,
    db: Session = Depends(get_db),
    current_employee: accounts_models.Employee = Depends(get_current_employee),
):
    try:
        result = services.complete_training(
            db,
            employee=current_employee,
            acknowledgment=payload.acknowledgment,
            actor_id=current_employee.id,
        )
        db.commit()
    except TrainingError as exc:
        _fail(db, exc)

    return training_schemas.TrainingCompleteResult(
        record=training_schemas.TrainingRecordRead.model_validate(result.record),
        employee=EmployeeRead.model_validate(current_employee),
        training_type=result.training_type,
        completed_at=result.completed_at,
        next_due_date=result.next_due_date,
    )


# ---------------------------------------------------------------------------
# TRAINING RECORDS (ADMIN)
# ---------------------------------------------------------------------------


@router.get(
    "/records",
    response_model=List[training_schemas.TrainingRecordRead],
    summary="Training records of the caller's organization, newest first",
)
def list_training_records(
    employee_id: Optional[str] = Query(None),
    training_type: Optional[TrainingRecordType] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    db: Session = Depends(get_db),
    current_employee: accounts_models.Employee = Depends(get_current_employee),
):
    return services.list_training_records(
        db,
        organization_id=current_employee.organization_id,
        employee_id=employee_id,
        training_type=training_type,
        start=start_date,
        end=end_date,
    )


@router.post(
    "/records",
    response_model=training_schemas.TrainingRecordRead,
    status_code=status.HTTP_201_CREATED,
    summary="Enter a training record by hand",
)
def create_training_record(
    payload: training_schemas.TrainingRecordCreate,
    db: Session = Depends(get_db),
    current_employee: accounts_models.Employee = Depends(get_current_employee),
):
    try:
        record = services.create_training_record(
            db,
            organization_id=current_employee.organization_id,
            data=payload,
            actor_id=current_employee.id,
        )
        db.commit()
    except TrainingError as exc:
        _fail(db, exc)
    return record


@router.get(
    "/records/{record_id}",
    response_model=training_schemas.TrainingRecordRead,
)
def get_training_record(
    record_id: str,
    db: Session = Depends(get_db),
    current_employee: accounts_models.Employee = Depends(get_current_employee),
):
    try:
        return services.get_training_record(
            db, organization_id=current_employee.organization_id, record_id=record_id
        )
    except TrainingError as exc:
        _fail(db, exc)


@router.put(
    "/records/{record_id}",
    response_model=training_schemas.TrainingRecordRead,
    summary="Correct a training record",
)
def update_training_record(
    record_id: str,
    payload: training_schemas.TrainingRecordUpdate,
    db: Session = Depends(get_db),
    current_employee: accounts_models.Employee = Depends(get_current_employee),
):
    try:
        record = services.update_training_record(
            db,
            organization_id=current_employee.organization_id,
            record_id=record_id,
            data=payload,
            actor_id=current_employee.id,
        )
        db.commit()
    except TrainingError as exc:
        _fail(db, exc)
    return record


# ---------------------------------------------------------------------------
# REPORTS
# ---------------------------------------------------------------------------


@router.get(
    "/reports",
    response_model=training_schemas.TrainingReportRead,
    summary="Employee by module completion matrix with summary counts",
)
def training_report(
    db: Session = Depends(get_db),
    current_employee: accounts_models.Employee = Depends(get_current_employee),
):
    report = services.training_report(db, organization_id=current_employee.organization_id)
    return training_schemas.TrainingReportRead(
        summary=training_schemas.TrainingReportSummary(**report.summary),
        modules=[training_schemas.TrainingModuleRead.model_validate(m) for m in report.modules],
        employees=[
            training_schemas.ReportEmployeeRow(
                employee=EmployeeRead.model_validate(row.employee),
                modules=[training_schemas.ReportModuleStatus(**entry) for entry in row.modules],
                completed_modules=row.completed_modules,
                total_modules=row.total_modules,
                overall_progress=row.overall_progress,
                training_complete=row.training_complete,
                overdue=row.overdue,
            )
            for row in report.employees
        ],
    )
