"""Compliance score aggregation.

`score_snapshot` is pure: it reads a `ComplianceSnapshot` and never
touches the database. Four pillars, each clamped to 0-100, averaged
without weights and rounded half-up.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from wvpdb.apps.reminders.scheduling import as_utc, days_until, shift_months
from wvpdb.utils.rounding import clamp_percent, round_half_up

REVIEW_GRACE_MONTHS = 18
DEADLINE_INFO_WINDOW_DAYS = 30

ALERT_CRITICAL = "critical"
ALERT_WARNING = "warning"
ALERT_INFO = "info"


@dataclass(frozen=True)
class ComplianceSnapshot:
    now: datetime
    has_active_plan: bool
    active_plan_version: Optional[int] = None
    total_plans: int = 0
    total_employees: int = 0
    active_employees: int = 0
    trained_employees: int = 0
    total_incidents: int = 0
    open_incidents: int = 0
    pending_flagged_qa: int = 0
    new_anonymous_reports: int = 0
    next_plan_review_due_date: Optional[datetime] = None
    last_plan_review_date: Optional[datetime] = None
    next_training_due_date: Optional[datetime] = None


@dataclass(frozen=True)
class PillarScores:
    plan: int
    training: int
    review: int
    incident: int

    def as_dict(self) -> dict:
        return {
            "plan": self.plan,
            "training": self.training,
            "review": self.review,
            "incident": self.incident,
        }


@dataclass(frozen=True)
class Alert:
    level: str
    message: str


@dataclass(frozen=True)
class Deadline:
    type: str
    label: str
    date: datetime
    days_until: int
    overdue: bool


@dataclass(frozen=True)
class ComplianceScore:
    overall: int
    pillars: PillarScores
    alerts: List[Alert] = field(default_factory=list)
    deadlines: List[Deadline] = field(default_factory=list)


def _plural(count: int, singular: str, plural: Optional[str] = None) -> str:
    if count == 1:
        return f"{count} {singular}"
    return f"{count} {plural or singular + 's'}"


# ---------------------------------------------------------------------------
# PILLARS
# ---------------------------------------------------------------------------


def plan_pillar(snapshot: ComplianceSnapshot) -> int:
    return 100 if snapshot.has_active_plan else 0


def training_pillar(snapshot: ComplianceSnapshot) -> int:
    if snapshot.active_employees > 0:
        return clamp_percent(100 * snapshot.trained_employees / snapshot.active_employees)
    # An empty roster is not penalized once a plan exists.
    return 100 if snapshot.has_active_plan else 0


def review_pillar(snapshot: ComplianceSnapshot) -> int:
    now = as_utc(snapshot.now)
    due = as_utc(snapshot.next_plan_review_due_date)
    if due is None:
        return 50 if snapshot.has_active_plan else 0
    if due > now:
        return 100
    last_review = as_utc(snapshot.last_plan_review_date)
    if last_review is not None and last_review > shift_months(now, -REVIEW_GRACE_MONTHS):
        return 50
    return 0


def incident_pillar(snapshot: ComplianceSnapshot) -> int:
    if snapshot.total_incidents <= 0:
        return 100
    closed = snapshot.total_incidents - snapshot.open_incidents
    return clamp_percent(100 * closed / snapshot.total_incidents)


# ---------------------------------------------------------------------------
# DEADLINES / ALERTS
# ---------------------------------------------------------------------------


def build_deadlines(snapshot: ComplianceSnapshot) -> List[Deadline]:
    now = as_utc(snapshot.now)
    deadlines: List[Deadline] = []
    for kind, label, value in (
        ("annual_review", "Annual Plan Review", snapshot.next_plan_review_due_date),
        ("training_due", "Training Due", snapshot.next_training_due_date),
    ):
        if value is None:
            continue
        target = as_utc(value)
        remaining = days_until(target, now)
        deadlines.append(
            Deadline(type=kind, label=label, date=target, days_until=remaining, overdue=remaining < 0)
        )
    deadlines.sort(key=lambda d: d.date)
    return deadlines


def build_alerts(
    snapshot: ComplianceSnapshot,
    pillars: PillarScores,
    deadlines: List[Deadline],
) -> List[Alert]:
    alerts: List[Alert] = []

    if not snapshot.has_active_plan:
        alerts.append(
            Alert(ALERT_CRITICAL, "No active WVPP. Create and publish a plan to comply with SB 553.")
        )
    if pillars.review == 0 and snapshot.has_active_plan:
        alerts.append(Alert(ALERT_CRITICAL, "Annual plan review is overdue."))
    if snapshot.open_incidents > 0:
        alerts.append(
            Alert(ALERT_WARNING, f"{_plural(snapshot.open_incidents, 'incident')} pending investigation.")
        )

    untrained = snapshot.active_employees - snapshot.trained_employees
    if snapshot.active_employees > 0 and untrained > 0:
        verb = "has" if untrained == 1 else "have"
        alerts.append(
            Alert(ALERT_WARNING, f"{_plural(untrained, 'employee')} {verb} not completed training.")
        )
    if snapshot.pending_flagged_qa > 0:
        alerts.append(
            Alert(
                ALERT_CRITICAL,
                f"{_plural(snapshot.pending_flagged_qa, 'flagged Q&A response')} pending review.",
            )
        )
    if snapshot.new_anonymous_reports > 0:
        verb = "requires" if snapshot.new_anonymous_reports == 1 else "require"
        alerts.append(
            Alert(
                ALERT_CRITICAL,
                f"{_plural(snapshot.new_anonymous_reports, 'new anonymous report')} {verb} attention.",
            )
        )

    for deadline in deadlines:
        if deadline.overdue:
            alerts.append(Alert(ALERT_CRITICAL, f"{deadline.label} is overdue."))
        elif deadline.days_until <= DEADLINE_INFO_WINDOW_DAYS:
            alerts.append(
                Alert(ALERT_INFO, f"{deadline.label} due in {_plural(deadline.days_until, 'day')}.")
            )
    return alerts


def score_snapshot(snapshot: ComplianceSnapshot) -> ComplianceScore:
    pillars = PillarScores(
        plan=clamp_percent(plan_pillar(snapshot)),
        training=clamp_percent(training_pillar(snapshot)),
        review=clamp_percent(review_pillar(snapshot)),
        incident=clamp_percent(incident_pillar(snapshot)),
    )
    overall = clamp_percent(
        round_half_up((pillars.plan + pillars.training + pillars.review + pillars.incident) / 4)
    )
    deadlines = build_deadlines(snapshot)
    return ComplianceScore(
        overall=overall,
        pillars=pillars,
        alerts=build_alerts(snapshot, pillars, deadlines),
        deadlines=deadlines,
    )
