"""Scheduled reminder tick.

The tick is split in two: pure candidate evaluation per organization
(`evaluate_organization`) and the fan-out that streams organizations in
keyset pages and hands each candidate to a Notifier.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
import os
from typing import Callable, Iterator, List, Optional, Sequence

from sqlalchemy.orm import Session

from wvpdb.apps.accounts import models as account_models
from wvpdb.apps.compliance import models as compliance_models
from wvpdb.apps.notifications.notifier import EmailNotifier, Notifier
from wvpdb.apps.training.errors import NotifierFailure

from . import scheduling

logger = logging.getLogger(__name__)

try:
    REMINDER_PAGE_SIZE: int = int(os.getenv("REMINDER_PAGE_SIZE", "100"))
except ValueError:
    REMINDER_PAGE_SIZE = 100

UNKNOWN_LOCATION = "Unknown location"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_date(value: datetime) -> str:
    """'October 19, 2026'."""
    return f"{value:%B} {value.day}, {value.year}"


@dataclass(frozen=True)
class ReminderCandidate:
    reminder_type: str
    recipient: str
    template_data: dict
    metric: str
    metric_value: int


@dataclass
class ReminderReport:
    timestamp: datetime
    sent: int = 0
    errors: int = 0
    skipped: int = 0
    details: List[dict] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "ok": True,
            "timestamp": self.timestamp.isoformat(),
            "sent": self.sent,
            "errors": self.errors,
            "skipped": self.skipped,
            "details": list(self.details),
        }


# ---------------------------------------------------------------------------
# CANDIDATE EVALUATION (PURE)
# ---------------------------------------------------------------------------


def training_candidates(
    organization: account_models.Organization,
    employee: account_models.Employee,
    now: datetime,
) -> List[ReminderCandidate]:
    if not employee.is_active or employee.next_training_due_date is None:
        return []

    due_date = scheduling.as_utc(employee.next_training_due_date)
    days_until_due = scheduling.days_between(due_date, now)
    data = {
        "employee_name": employee.full_name,
        "organization_name": organization.name,
        "due_date": format_date(due_date),
    }

    if days_until_due > 0:
        if not scheduling.is_reminder_day(days_until_due, scheduling.TRAINING_DUE_REMINDER_DAYS):
            return []
        return [
            ReminderCandidate(
                reminder_type="training_due",
                recipient=employee.email,
                template_data={**data, "days_until_due": days_until_due},
                metric="days_until_due",
                metric_value=days_until_due,
            )
        ]

    days_overdue = -days_until_due
    if not scheduling.is_overdue_reminder_day(days_overdue):
        return []

    # The lapse day itself reads as "1 day overdue".
    data = {**data, "days_overdue": days_overdue or 1}
    candidates = [
        ReminderCandidate(
            reminder_type="training_overdue",
            recipient=employee.email,
            template_data=data,
            metric="days_overdue",
            metric_value=days_overdue,
        )
    ]
    if organization.email:
        candidates.append(
            ReminderCandidate(
                reminder_type="training_overdue_admin",
                recipient=organization.email,
                template_data=data,
                metric="days_overdue",
                metric_value=days_overdue,
            )
        )
    return candidates


def annual_review_candidates(
    organization: account_models.Organization,
    now: datetime,
) -> List[ReminderCandidate]:
    if not organization.email or organization.next_plan_review_due_date is None:
        return []

    review_due = scheduling.as_utc(organization.next_plan_review_due_date)
    days = scheduling.days_between(review_due, now)
    if days <= 0 or not scheduling.is_reminder_day(days, scheduling.ANNUAL_REVIEW_REMINDER_DAYS):
        return []
    return [
        ReminderCandidate(
            reminder_type="annual_review",
            recipient=organization.email,
            template_data={
                "organization_name": organization.name,
                "review_due_date": format_date(review_due),
                "days_until_due": days,
            },
            metric="days_until_due",
            metric_value=days,
        )
    ]


def incident_candidates(
    organization: account_models.Organization,
    incident: compliance_models.Incident,
    now: datetime,
) -> List[ReminderCandidate]:
    if not organization.email:
        return []

    incident_date = scheduling.as_utc(incident.incident_date)
    days_since = scheduling.days_between(now, incident_date)
    if not scheduling.is_incident_followup_day(days_since, incident.is_open):
        return []
    return [
        ReminderCandidate(
            reminder_type="incident_followup",
            recipient=organization.email,
            template_data={
                "organization_name": organization.name,
                "incident_date": format_date(incident_date),
                "days_since_incident": days_since,
                "location_description": incident.location_description or UNKNOWN_LOCATION,
            },
            metric="days_since_incident",
            metric_value=days_since,
        )
    ]


def evaluate_organization(
    organization: account_models.Organization,
    employees: Sequence[account_models.Employee],
    incidents: Sequence[compliance_models.Incident],
    now: datetime,
) -> List[ReminderCandidate]:
    candidates: List[ReminderCandidate] = []
    for employee in employees:
        candidates.extend(training_candidates(organization, employee, now))
    candidates.extend(annual_review_candidates(organization, now))
    for incident in incidents:
        candidates.extend(incident_candidates(organization, incident, now))
    return candidates


# ---------------------------------------------------------------------------
# ENTITY STREAMS
# ---------------------------------------------------------------------------


def iter_organizations(db: Session, *, page_size: Optional[int] = None) -> Iterator[account_models.Organization]:
    """Keyset pagination by id; each page is a fresh query."""
    page_size = page_size or REMINDER_PAGE_SIZE
    last_id: Optional[str] = None
    while True:
        query = db.query(account_models.Organization)
        if last_id is not None:
            query = query.filter(account_models.Organization.id > last_id)
        page = query.order_by(account_models.Organization.id.asc()).limit(page_size).all()
        if not page:
            return
        yield from page
        if len(page) < page_size:
            return
        last_id = page[-1].id


def _employees_with_due_date(db: Session, organization_id: str) -> List[account_models.Employee]:
    return (
        db.query(account_models.Employee)
        .filter(
            account_models.Employee.organization_id == organization_id,
            account_models.Employee.is_active.is_(True),
            account_models.Employee.next_training_due_date.isnot(None),
        )
        .order_by(account_models.Employee.id.asc())
        .all()
    )


def _open_incidents(db: Session, organization_id: str) -> List[compliance_models.Incident]:
    return (
        db.query(compliance_models.Incident)
        .filter(
            compliance_models.Incident.organization_id == organization_id,
            compliance_models.Incident.investigation_status.in_(compliance_models.OPEN_INVESTIGATION_STATUSES),
        )
        .order_by(compliance_models.Incident.incident_date.asc())
        .all()
    )


# ---------------------------------------------------------------------------
# DISPATCH
# ---------------------------------------------------------------------------


def dispatch(
    candidates: Sequence[ReminderCandidate],
    notifier: Notifier,
    report: ReminderReport,
    *,
    organization_id: Optional[str] = None,
) -> None:
    """Send each candidate once; a failure is counted and the loop moves on."""
    for candidate in candidates:
        detail = {
            "type": candidate.reminder_type,
            "to": candidate.recipient,
            candidate.metric: candidate.metric_value,
        }
        try:
            delivered = notifier.send(candidate.reminder_type, candidate.recipient, candidate.template_data)
        except Exception as exc:
            failure = exc if isinstance(exc, NotifierFailure) else NotifierFailure(str(exc))
            report.errors += 1
            detail["error"] = failure.message
            logger.warning(
                "Reminder delivery failed",
                extra={
                    "organization_id": organization_id,
                    "reminder_type": candidate.reminder_type,
                    "error": failure.message,
                },
            )
        else:
            if delivered is False:
                report.skipped += 1
                detail["skipped"] = True
            else:
                report.sent += 1
        report.details.append(detail)


NotifierFactory = Callable[[Session, account_models.Organization, datetime], Notifier]


def _email_notifier(db: Session, organization: account_models.Organization, now: datetime) -> Notifier:
    return EmailNotifier(
        db,
        organization_id=organization.id,
        correlation_id=f"reminders:{now.date().isoformat()}",
    )


def run_reminder_tick(
    db: Session,
    *,
    now: Optional[datetime] = None,
    notifier_factory: Optional[NotifierFactory] = None,
    page_size: Optional[int] = None,
) -> ReminderReport:
    """
    Evaluate every organization once and send what is due today.

    No retries and no dedup ledger: running twice on the same day sends
    twice, and a skipped day is never caught up.
    """
    now = scheduling.as_utc(now) if now is not None else _utcnow()
    notifier_factory = notifier_factory or _email_notifier
    report = ReminderReport(timestamp=now)

    organizations = 0
    for organization in iter_organizations(db, page_size=page_size):
        organizations += 1
        candidates = evaluate_organization(
            organization,
            _employees_with_due_date(db, organization.id),
            _open_incidents(db, organization.id),
            now,
        )
        if not candidates:
            continue
        dispatch(
            candidates,
            notifier_factory(db, organization, now),
            report,
            organization_id=organization.id,
        )

    logger.info(
        "Reminder tick finished",
        extra={
            "organizations": organizations,
            "sent": report.sent,
            "errors": report.errors,
            "skipped": report.skipped,
        },
    )
    return report
