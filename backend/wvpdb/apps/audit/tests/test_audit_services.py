from datetime import datetime, timedelta, timezone

import pytest

from wvpdb.apps.audit import services as audit_services


def _boom(*args, **kwargs):
    raise RuntimeError("audit store unavailable")


def test_log_event_persists_before_and_after(db_session, organization):
    event = audit_services.log_event(
        db_session,
        organization_id=organization.id,
        actor_id="emp-1",
        entity_type="TrainingProgress",
        entity_id="progress-1",
        action="status_changed",
        before={"status": "IN_PROGRESS"},
        after={"status": "COMPLETED"},
    )
    db_session.commit()

    assert event is not None
    assert event.before == {"status": "IN_PROGRESS"}
    assert event.after == {"status": "COMPLETED"}
    assert event.occurred_at is not None


def test_non_critical_failure_is_swallowed(db_session, organization, monkeypatch):
    monkeypatch.setattr(audit_services, "create_audit_event", _boom)

    result = audit_services.log_event(
        db_session,
        organization_id=organization.id,
        actor_id=None,
        entity_type="TrainingProgress",
        entity_id="progress-1",
        action="video_progress",
    )

    assert result is None


def test_critical_failure_propagates(db_session, organization, monkeypatch):
    monkeypatch.setattr(audit_services, "create_audit_event", _boom)

    with pytest.raises(RuntimeError):
        audit_services.log_event(
            db_session,
            organization_id=organization.id,
            actor_id=None,
            entity_type="TrainingRecord",
            entity_id="record-1",
            action="training_completed",
            critical=True,
        )


def test_list_audit_events_is_newest_first_and_org_scoped(db_session, organization):
    base = datetime(2026, 3, 1, tzinfo=timezone.utc)
    for offset in range(3):
        audit_services.create_audit_event(
            db_session,
            organization_id=organization.id,
            data=audit_services.schemas.AuditEventCreate(
                entity_type="WvppPlan",
                entity_id="plan-1",
                action=f"step_{offset}",
                occurred_at=base + timedelta(days=offset),
            ),
        )
    db_session.commit()

    events = audit_services.list_audit_events(db_session, organization_id=organization.id, limit=2)
    assert [e.action for e in events] == ["step_2", "step_1"]

    assert audit_services.list_audit_events(db_session, organization_id="other-org") == []

    windowed = audit_services.list_audit_events(
        db_session,
        organization_id=organization.id,
        start=base + timedelta(hours=12),
        end=base + timedelta(days=1, hours=12),
    )
    assert [e.action for e in windowed] == ["step_1"]
