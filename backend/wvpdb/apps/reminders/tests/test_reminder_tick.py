from __future__ import annotations

from datetime import datetime, timedelta, timezone

from wvpdb.apps.accounts import models as account_models
from wvpdb.apps.compliance import models as compliance_models
from wvpdb.apps.notifications import models as notification_models
from wvpdb.apps.notifications import providers as notification_providers
from wvpdb.apps.notifications.notifier import Notifier
from wvpdb.apps.reminders import services as reminder_services

NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


class RecordingNotifier(Notifier):
    def __init__(self, fail_for=()):
        self.sent = []
        self.fail_for = set(fail_for)

    def send(self, reminder_type, recipient, template_data):
        if recipient in self.fail_for:
            raise RuntimeError(f"mailbox unavailable: {recipient}")
        self.sent.append((reminder_type, recipient, template_data))
        return True


def _employee(db, org, email, due_in_days=None, **fields) -> account_models.Employee:
    emp = account_models.Employee(
        organization_id=org.id,
        first_name=fields.pop("first_name", "Pat"),
        last_name=fields.pop("last_name", "Kim"),
        email=email,
        next_training_due_date=NOW + timedelta(days=due_in_days) if due_in_days is not None else None,
        **fields,
    )
    db.add(emp)
    db.commit()
    return emp


def _factory(notifier):
    return lambda db, organization, now: notifier


def test_training_due_only_on_threshold_days(organization):
    employees = [
        account_models.Employee(email=f"e{d}@x.example", first_name="E", last_name=str(d),
                                is_active=True, next_training_due_date=NOW + timedelta(days=d))
        for d in (30, 29, 7, 1)
    ]

    candidates = reminder_services.evaluate_organization(organization, employees, [], NOW)

    assert [(c.reminder_type, c.metric_value) for c in candidates] == [
        ("training_due", 30),
        ("training_due", 7),
        ("training_due", 1),
    ]
    assert candidates[0].template_data["due_date"] == "April 14, 2026"


def test_overdue_goes_to_employee_and_org_admin(organization):
    lapsed_today = account_models.Employee(
        email="today@x.example", first_name="A", last_name="B", is_active=True, next_training_due_date=NOW
    )
    week_late = account_models.Employee(
        email="week@x.example", first_name="C", last_name="D", is_active=True,
        next_training_due_date=NOW - timedelta(days=7),
    )
    two_weeks_late = account_models.Employee(
        email="late@x.example", first_name="E", last_name="F", is_active=True,
        next_training_due_date=NOW - timedelta(days=14),
    )

    candidates = reminder_services.evaluate_organization(
        organization, [lapsed_today, week_late, two_weeks_late], [], NOW
    )

    assert [(c.reminder_type, c.recipient) for c in candidates] == [
        ("training_overdue", "today@x.example"),
        ("training_overdue_admin", organization.email),
        ("training_overdue", "week@x.example"),
        ("training_overdue_admin", organization.email),
    ]
    # Lapse day is shown as one day overdue.
    assert candidates[0].template_data["days_overdue"] == 1
    assert candidates[0].metric_value == 0
    assert candidates[2].template_data["days_overdue"] == 7


def test_overdue_without_org_email_skips_admin(organization):
    organization.email = None
    emp = account_models.Employee(
        email="today@x.example", first_name="A", last_name="B", is_active=True, next_training_due_date=NOW
    )

    candidates = reminder_services.evaluate_organization(organization, [emp], [], NOW)

    assert [c.reminder_type for c in candidates] == ["training_overdue"]


def test_annual_review_and_incident_followups(organization):
    organization.next_plan_review_due_date = NOW + timedelta(days=7)
    incidents = [
        compliance_models.Incident(
            incident_date=NOW - timedelta(days=14),
            investigation_status=compliance_models.InvestigationStatus.PENDING,
            location_description="Loading dock",
        ),
        compliance_models.Incident(
            incident_date=NOW - timedelta(days=10),
            investigation_status=compliance_models.InvestigationStatus.IN_PROGRESS,
        ),
        compliance_models.Incident(
            incident_date=NOW - timedelta(days=21),
            investigation_status=compliance_models.InvestigationStatus.COMPLETED,
        ),
    ]

    candidates = reminder_services.evaluate_organization(organization, [], incidents, NOW)

    assert [(c.reminder_type, c.metric, c.metric_value) for c in candidates] == [
        ("annual_review", "days_until_due", 7),
        ("incident_followup", "days_since_incident", 14),
    ]
    assert candidates[1].template_data["location_description"] == "Loading dock"


def test_tick_isolates_recipient_failures(db_session, organization):
    _employee(db_session, organization, "ok@x.example", due_in_days=30)
    _employee(db_session, organization, "broken@x.example", due_in_days=7)
    _employee(db_session, organization, "also-ok@x.example", due_in_days=1)
    _employee(db_session, organization, "quiet@x.example", due_in_days=12)
    _employee(db_session, organization, "gone@x.example", due_in_days=30, is_active=False)
    notifier = RecordingNotifier(fail_for={"broken@x.example"})

    report = reminder_services.run_reminder_tick(db_session, now=NOW, notifier_factory=_factory(notifier))

    assert report.sent == 2
    assert report.errors == 1
    assert sorted(r for _, r, _ in notifier.sent) == ["also-ok@x.example", "ok@x.example"]
    failed = [d for d in report.details if "error" in d]
    assert failed == [
        {
            "type": "training_due",
            "to": "broken@x.example",
            "days_until_due": 7,
            "error": "mailbox unavailable: broken@x.example",
        }
    ]
    body = report.as_dict()
    assert body["ok"] is True
    assert body["timestamp"] == NOW.isoformat()


def test_tick_pages_through_every_organization(db_session):
    orgs = []
    for idx in range(5):
        org = account_models.Organization(name=f"Org {idx}", email=f"admin{idx}@x.example")
        db_session.add(org)
        db_session.flush()
        orgs.append(org)
        _employee(db_session, org, f"staff{idx}@x.example", due_in_days=30)
    notifier = RecordingNotifier()

    report = reminder_services.run_reminder_tick(
        db_session, now=NOW, notifier_factory=_factory(notifier), page_size=2
    )

    assert report.sent == 5
    assert {r for _, r, _ in notifier.sent} == {f"staff{idx}@x.example" for idx in range(5)}


def test_tick_with_email_notifier_skips_without_provider(db_session, organization, monkeypatch):
    _employee(db_session, organization, "ok@x.example", due_in_days=30)
    monkeypatch.setattr(
        notification_providers,
        "get_email_provider",
        lambda: (notification_providers.NoopProvider(), False),
    )

    report = reminder_services.run_reminder_tick(db_session, now=NOW)
    db_session.commit()

    assert (report.sent, report.errors, report.skipped) == (0, 0, 1)
    log = db_session.query(notification_models.EmailLog).one()
    assert log.status == notification_models.EmailStatus.SKIPPED_NO_PROVIDER
    assert log.template_key == "training_due"
    assert log.correlation_id == "reminders:2026-03-15"


def test_tick_with_failing_provider_counts_error(db_session, organization, monkeypatch):
    _employee(db_session, organization, "ok@x.example", due_in_days=7)

    class BrokenProvider(notification_providers.EmailProvider):
        def send(self, **kwargs):
            raise ConnectionError("smtp down")

    monkeypatch.setattr(notification_providers, "get_email_provider", lambda: (BrokenProvider(), True))

    report = reminder_services.run_reminder_tick(db_session, now=NOW)
    db_session.commit()

    assert (report.sent, report.errors) == (0, 1)
    assert report.details[0]["error"] == "smtp down"
    log = db_session.query(notification_models.EmailLog).one()
    assert log.status == notification_models.EmailStatus.FAILED
