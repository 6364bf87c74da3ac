from __future__ import annotations

import pytest

from wvpdb.apps.audit import models as audit_models
from wvpdb.apps.workflow import TransitionError, apply_transition, is_transition_allowed


def test_progress_completion_requires_both_signals(db_session, organization):
    with pytest.raises(TransitionError) as excinfo:
        apply_transition(
            db_session,
            actor_id=None,
            entity_type="training_progress",
            entity_id="progress-1",
            from_state="in_progress",
            to_state="completed",
            before_obj={"organization_id": organization.id},
            after_obj={"organization_id": organization.id, "video_completed": True, "quiz_passed": False},
        )

    assert excinfo.value.code == "missing_requirements"
    assert [item["field"] for item in excinfo.value.detail] == ["quiz_passed"]
    assert db_session.query(audit_models.AuditEvent).count() == 0


def test_progress_never_moves_backward():
    assert is_transition_allowed("training_progress", "not_started", "in_progress")
    assert is_transition_allowed("training_progress", "not_started", "completed")
    assert not is_transition_allowed("training_progress", "completed", "in_progress")
    assert not is_transition_allowed("training_progress", "in_progress", "not_started")


def test_rejected_backward_transition_raises(db_session, organization):
    with pytest.raises(TransitionError) as excinfo:
        apply_transition(
            db_session,
            actor_id=None,
            entity_type="training_progress",
            entity_id="progress-1",
            from_state="completed",
            to_state="in_progress",
            before_obj={"organization_id": organization.id},
            after_obj={"organization_id": organization.id},
        )

    assert excinfo.value.code == "invalid_transition"


def test_applied_transition_is_audited(db_session, organization):
    apply_transition(
        db_session,
        actor_id="emp-1",
        entity_type="wvpp_plan",
        entity_id="plan-1",
        from_state="draft",
        to_state="active",
        before_obj={"organization_id": organization.id},
        after_obj={"organization_id": organization.id, "published_at": "2026-03-15T12:00:00+00:00"},
    )

    event = db_session.query(audit_models.AuditEvent).one()
    assert event.action == "transition"
    assert event.before == {"status": "draft"}
    assert event.after["status"] == "active"
    assert event.organization_id == organization.id


def test_unregistered_entity_type_is_rejected(db_session, organization):
    with pytest.raises(TransitionError):
        apply_transition(
            db_session,
            actor_id=None,
            entity_type="unknown",
            entity_id="x",
            from_state="a",
            to_state="b",
            before_obj={"organization_id": organization.id},
            after_obj={"organization_id": organization.id},
        )


def test_self_transition_is_a_noop(db_session, organization):
    applied = apply_transition(
        db_session,
        actor_id=None,
        entity_type="training_progress",
        entity_id="progress-1",
        from_state="completed",
        to_state="completed",
        before_obj={"organization_id": organization.id},
        after_obj={"organization_id": organization.id},
    )

    assert applied is False
    assert db_session.query(audit_models.AuditEvent).count() == 0
