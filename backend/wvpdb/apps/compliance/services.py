from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Optional, Sequence

from sqlalchemy import func
from sqlalchemy.orm import Session

from wvpdb.apps.accounts import models as account_models
from wvpdb.apps.audit import models as audit_models
from wvpdb.apps.audit import services as audit_services
from wvpdb.apps.reminders.scheduling import next_annual_due_date
from wvpdb.apps.training import models as training_models
from wvpdb.apps.training.errors import OrganizationNotFound, PlanNotFound
from wvpdb.apps.workflow import apply_transition

from . import models, scoring

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def get_organization(db: Session, organization_id: str) -> account_models.Organization:
    organization = (
        db.query(account_models.Organization)
        .filter(account_models.Organization.id == organization_id)
        .first()
    )
    if organization is None:
        raise OrganizationNotFound("Organization not found")
    return organization


def _count(query) -> int:
    return int(query.scalar() or 0)


def _active_plan(db: Session, organization_id: str) -> Optional[models.WvppPlan]:
    return (
        db.query(models.WvppPlan)
        .filter(
            models.WvppPlan.organization_id == organization_id,
            models.WvppPlan.status == models.PlanStatus.ACTIVE,
        )
        .order_by(models.WvppPlan.published_at.desc())
        .first()
    )


def build_snapshot(
    db: Session,
    organization: account_models.Organization,
    *,
    now: Optional[datetime] = None,
) -> scoring.ComplianceSnapshot:
    """Read every count the scorer needs for one organization."""
    now = now or _utcnow()
    org_id = organization.id
    Employee = account_models.Employee
    Incident = models.Incident

    active_plan = _active_plan(db, org_id)
    return scoring.ComplianceSnapshot(
        now=now,
        has_active_plan=active_plan is not None,
        active_plan_version=active_plan.version if active_plan is not None else None,
        total_plans=_count(
            db.query(func.count(models.WvppPlan.id)).filter(models.WvppPlan.organization_id == org_id)
        ),
        total_employees=_count(db.query(func.count(Employee.id)).filter(Employee.organization_id == org_id)),
        active_employees=_count(
            db.query(func.count(Employee.id)).filter(
                Employee.organization_id == org_id,
                Employee.is_active.is_(True),
            )
        ),
        trained_employees=_count(
            db.query(func.count(Employee.id)).filter(
                Employee.organization_id == org_id,
                Employee.is_active.is_(True),
                Employee.last_annual_training_completed_at.isnot(None),
            )
        ),
        total_incidents=_count(db.query(func.count(Incident.id)).filter(Incident.organization_id == org_id)),
        open_incidents=_count(
            db.query(func.count(Incident.id)).filter(
                Incident.organization_id == org_id,
                Incident.investigation_status.in_(models.OPEN_INVESTIGATION_STATUSES),
            )
        ),
        pending_flagged_qa=_count(
            db.query(func.count(models.FlaggedQAResponse.id)).filter(
                models.FlaggedQAResponse.organization_id == org_id,
                models.FlaggedQAResponse.reviewed_at.is_(None),
            )
        ),
        new_anonymous_reports=_count(
            db.query(func.count(models.AnonymousReport.id)).filter(
                models.AnonymousReport.organization_id == org_id,
                models.AnonymousReport.status == models.AnonymousReportStatus.NEW,
            )
        ),
        next_plan_review_due_date=organization.next_plan_review_due_date,
        last_plan_review_date=organization.last_plan_review_date,
        next_training_due_date=organization.next_training_due_date,
    )


def training_progress_counts(db: Session, organization_id: str) -> dict:
    rows = (
        db.query(training_models.TrainingProgress.status, func.count(training_models.TrainingProgress.id))
        .filter(training_models.TrainingProgress.organization_id == organization_id)
        .group_by(training_models.TrainingProgress.status)
        .all()
    )
    counts = {training_models.ModuleStatus(status).value: int(total) for status, total in rows}
    return {
        "total_modules": _count(
            db.query(func.count(training_models.TrainingModule.id)).filter(
                training_models.TrainingModule.is_active.is_(True)
            )
        ),
        "completed_module_progress": counts.get(training_models.ModuleStatus.COMPLETED.value, 0),
        "in_progress_module_progress": counts.get(training_models.ModuleStatus.IN_PROGRESS.value, 0),
    }


def compute_compliance_score(
    db: Session,
    *,
    organization_id: str,
    now: Optional[datetime] = None,
) -> tuple[scoring.ComplianceScore, scoring.ComplianceSnapshot]:
    organization = get_organization(db, organization_id)
    snapshot = build_snapshot(db, organization, now=now)
    return scoring.score_snapshot(snapshot), snapshot


def recent_activity(db: Session, *, organization_id: str, limit: int = 10) -> Sequence[audit_models.AuditEvent]:
    return audit_services.list_audit_events(db, organization_id=organization_id, limit=limit)


# ---------------------------------------------------------------------------
# PLAN PUBLICATION
# ---------------------------------------------------------------------------


def _transition_plan(
    db: Session,
    plan: models.WvppPlan,
    to_state: models.PlanStatus,
    *,
    actor_id: Optional[str],
    now: datetime,
) -> None:
    from_state = models.PlanStatus(plan.status)
    published_at = now if to_state == models.PlanStatus.ACTIVE else plan.published_at
    apply_transition(
        db,
        actor_id=actor_id,
        entity_type="wvpp_plan",
        entity_id=str(plan.id),
        from_state=from_state.value,
        to_state=to_state.value,
        before_obj={"organization_id": plan.organization_id, "version": plan.version},
        after_obj={
            "organization_id": plan.organization_id,
            "published_at": published_at.isoformat() if published_at else None,
        },
    )
    plan.status = to_state
    if to_state == models.PlanStatus.ARCHIVED:
        plan.archived_at = now
    else:
        plan.published_at = now
        plan.archived_at = None
        plan.version = (plan.version or 0) + 1
    db.add(plan)


def publish_plan(
    db: Session,
    *,
    organization_id: str,
    plan_id: str,
    actor_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> models.WvppPlan:
    """
    Make `plan_id` the organization's only active plan and restart the
    annual review clock. Publishing the already-active plan counts as a
    review: it is archived and re-activated with a new version.
    """
    now = now or _utcnow()
    organization = get_organization(db, organization_id)
    plan = (
        db.query(models.WvppPlan)
        .filter(models.WvppPlan.id == plan_id, models.WvppPlan.organization_id == organization_id)
        .with_for_update()
        .first()
    )
    if plan is None:
        raise PlanNotFound("Plan not found")

    active_plans = (
        db.query(models.WvppPlan)
        .filter(
            models.WvppPlan.organization_id == organization_id,
            models.WvppPlan.status == models.PlanStatus.ACTIVE,
        )
        .with_for_update()
        .all()
    )
    for active in active_plans:
        _transition_plan(db, active, models.PlanStatus.ARCHIVED, actor_id=actor_id, now=now)

    _transition_plan(db, plan, models.PlanStatus.ACTIVE, actor_id=actor_id, now=now)

    if organization.wvpp_created_at is None:
        organization.wvpp_created_at = now
    organization.last_plan_review_date = now
    organization.next_plan_review_due_date = next_annual_due_date(now)
    db.add(organization)
    db.flush()

    audit_services.log_event(
        db,
        organization_id=organization_id,
        actor_id=actor_id,
        entity_type="wvpp_plan",
        entity_id=str(plan.id),
        action="plan_published",
        after={"version": plan.version},
        metadata={"module": "compliance"},
    )
    logger.info("Published WVPP plan", extra={"organization_id": organization_id, "version": plan.version})
    return plan
