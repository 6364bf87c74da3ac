from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from ...database import get_db, get_read_db
from ...security import get_current_employee
from ..accounts import models as accounts_models
from ..accounts.schemas import OrganizationRead
from ..training.errors import TrainingError, to_http_exception
from ..workflow import TransitionError
from . import schemas as compliance_schemas, services

router = APIRouter(tags=["compliance"])


@router.get(
    "/compliance/score",
    response_model=compliance_schemas.ComplianceScoreRead,
    summary="Compliance score, alerts and deadlines for the caller's organization",
)
def get_compliance_score(
    db: Session = Depends(get_read_db),
    current_employee: accounts_models.Employee = Depends(get_current_employee),
):
    org_id = current_employee.organization_id
    try:
        score, snapshot = services.compute_compliance_score(db, organization_id=org_id)
    except TrainingError as exc:
        raise to_http_exception(exc) from exc

    stats = compliance_schemas.ComplianceStats(
        active_plan=snapshot.has_active_plan,
        active_plan_version=snapshot.active_plan_version,
        total_plans=snapshot.total_plans,
        total_employees=snapshot.total_employees,
        active_employees=snapshot.active_employees,
        trained_employees=snapshot.trained_employees,
        total_incidents=snapshot.total_incidents,
        open_incidents=snapshot.open_incidents,
        pending_flagged_qa=snapshot.pending_flagged_qa,
        new_anonymous_reports=snapshot.new_anonymous_reports,
        **services.training_progress_counts(db, org_id),
    )
    return compliance_schemas.ComplianceScoreRead(
        organization=OrganizationRead.model_validate(services.get_organization(db, org_id)),
        overall=score.overall,
        pillars=compliance_schemas.PillarScoresRead(**score.pillars.as_dict()),
        alerts=[compliance_schemas.AlertRead(level=a.level, message=a.message) for a in score.alerts],
        deadlines=[
            compliance_schemas.DeadlineRead(
                type=d.type,
                label=d.label,
                date=d.date,
                days_until=d.days_until,
                overdue=d.overdue,
            )
            for d in score.deadlines
        ],
        stats=stats,
        recent_activity=[
            compliance_schemas.ActivityRead.model_validate(event)
            for event in services.recent_activity(db, organization_id=org_id)
        ],
    )


@router.post(
    "/plans/{plan_id}/publish",
    response_model=compliance_schemas.WvppPlanRead,
    summary="Publish a WVPP plan and restart the annual review clock",
)
def publish_plan(
    plan_id: str,
    db: Session = Depends(get_db),
    current_employee: accounts_models.Employee = Depends(get_current_employee),
):
    try:
        plan = services.publish_plan(
            db,
            organization_id=current_employee.organization_id,
            plan_id=plan_id,
            actor_id=current_employee.id,
        )
        db.commit()
    except TrainingError as exc:
        db.rollback()
        raise to_http_exception(exc) from exc
    except TransitionError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"code": exc.code, "detail": exc.detail},
        ) from exc
    return plan
