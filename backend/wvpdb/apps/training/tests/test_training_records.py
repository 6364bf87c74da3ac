from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from wvpdb.apps.accounts import models as account_models
from wvpdb.apps.audit import models as audit_models
from wvpdb.apps.training import grading, schemas, services
from wvpdb.apps.training import models as training_models
from wvpdb.apps.training.errors import EmployeeNotFound, RecordNotFound, ValidationError

NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)
MC = training_models.QuestionType.MULTIPLE_CHOICE
OPTIONS = [{"id": "a", "text": "A", "is_correct": True}, {"id": "b", "text": "B", "is_correct": False}]
INITIAL = training_models.TrainingRecordType.INITIAL
ANNUAL = training_models.TrainingRecordType.ANNUAL
NEW_HAZARD = training_models.TrainingRecordType.NEW_HAZARD


def _in_person(employee, training_type=INITIAL, when=NOW, **fields) -> schemas.TrainingRecordCreate:
    return schemas.TrainingRecordCreate(
        employee_id=employee.id,
        training_date=when,
        training_type=training_type,
        module_name=fields.pop("module_name", "Classroom WVPP session"),
        content_summary="Plan walkthrough, reporting and evacuation",
        trainer_name="Morgan Ellis",
        trainer_qualifications="Certified safety trainer",
        **fields,
    )


def _add_employee(db_session, organization, first, last, **fields) -> account_models.Employee:
    emp = account_models.Employee(
        organization_id=organization.id,
        first_name=first,
        last_name=last,
        email=f"{first.lower()}@harbor.example",
        **fields,
    )
    db_session.add(emp)
    db_session.commit()
    return emp


def test_manual_initial_record_writes_through_employee_dates(db_session, organization, employee):
    record = services.create_training_record(
        db_session,
        organization_id=organization.id,
        data=_in_person(employee, completed_at=NOW, duration_minutes=90, employee_acknowledged=True),
        now=NOW + timedelta(hours=1),
    )
    db_session.commit()

    assert record.module_code == services.MANUAL_MODULE_CODE
    assert record.started_at == NOW
    assert record.acknowledged_at == NOW + timedelta(hours=1)
    assert employee.initial_training_completed_at == NOW
    assert employee.last_annual_training_completed_at == NOW
    assert employee.next_training_due_date == NOW + timedelta(days=365)

    event = (
        db_session.query(audit_models.AuditEvent)
        .filter(audit_models.AuditEvent.action == "training_completed")
        .one()
    )
    assert event.entity_id == record.id


def test_manual_record_without_completion_leaves_dates_alone(db_session, organization, employee):
    services.create_training_record(db_session, organization_id=organization.id, data=_in_person(employee))
    services.create_training_record(
        db_session,
        organization_id=organization.id,
        data=_in_person(employee, training_type=NEW_HAZARD, completed_at=NOW),
    )
    db_session.commit()

    assert employee.initial_training_completed_at is None
    assert employee.next_training_due_date is None


def test_older_annual_record_does_not_pull_due_date_back(db_session, organization, employee):
    last_year = NOW - timedelta(days=200)
    services.create_training_record(
        db_session, organization_id=organization.id, data=_in_person(employee, completed_at=NOW)
    )
    services.create_training_record(
        db_session,
        organization_id=organization.id,
        data=_in_person(employee, training_type=ANNUAL, when=last_year, completed_at=last_year),
    )

    assert employee.next_training_due_date == NOW + timedelta(days=365)


def test_manual_record_rejects_employee_of_another_organization(db_session, organization):
    other_org = account_models.Organization(name="Elsewhere Inc")
    db_session.add(other_org)
    db_session.flush()
    outsider = _add_employee(db_session, other_org, "Sam", "Lee")

    with pytest.raises(EmployeeNotFound):
        services.create_training_record(db_session, organization_id=organization.id, data=_in_person(outsider))


def test_list_records_filters_and_orders_newest_first(db_session, organization, employee):
    colleague = _add_employee(db_session, organization, "Alex", "Kim")
    for emp, kind, days in ((employee, INITIAL, 0), (employee, NEW_HAZARD, 40), (colleague, INITIAL, 10)):
        services.create_training_record(
            db_session,
            organization_id=organization.id,
            data=_in_person(emp, training_type=kind, when=NOW + timedelta(days=days)),
        )
    db_session.commit()

    everything = services.list_training_records(db_session, organization_id=organization.id)
    assert [r.training_date for r in everything] == [
        NOW + timedelta(days=40),
        NOW + timedelta(days=10),
        NOW,
    ]

    mine = services.list_training_records(db_session, organization_id=organization.id, employee_id=employee.id)
    assert {r.training_type for r in mine} == {INITIAL, NEW_HAZARD}

    initial_only = services.list_training_records(db_session, organization_id=organization.id, training_type=INITIAL)
    assert {r.employee_id for r in initial_only} == {employee.id, colleague.id}

    window = services.list_training_records(
        db_session,
        organization_id=organization.id,
        start=NOW + timedelta(days=5),
        end=NOW + timedelta(days=20),
    )
    assert [r.employee_id for r in window] == [colleague.id]

    assert services.list_training_records(db_session, organization_id="other-org") == []


def test_get_record_is_scoped_to_organization(db_session, organization, employee):
    record = services.create_training_record(db_session, organization_id=organization.id, data=_in_person(employee))
    db_session.commit()

    assert services.get_training_record(db_session, organization_id=organization.id, record_id=record.id) is record
    with pytest.raises(RecordNotFound):
        services.get_training_record(db_session, organization_id="other-org", record_id=record.id)


def test_update_sets_completion_and_writes_through(db_session, organization, employee):
    record = services.create_training_record(db_session, organization_id=organization.id, data=_in_person(employee))
    db_session.commit()

    updated = services.update_training_record(
        db_session,
        organization_id=organization.id,
        record_id=record.id,
        data=schemas.TrainingRecordUpdate(completed_at=NOW, employee_acknowledged=True, quiz_score=88),
        now=NOW + timedelta(days=1),
    )
    db_session.commit()

    assert updated.quiz_score == 88
    assert updated.acknowledged_at == NOW + timedelta(days=1)
    assert employee.initial_training_completed_at == NOW
    assert employee.next_training_due_date == NOW + timedelta(days=365)

    event = (
        db_session.query(audit_models.AuditEvent)
        .filter(audit_models.AuditEvent.action == "training_record_updated")
        .one()
    )
    assert event.metadata_json["updated_fields"] == ["completed_at", "employee_acknowledged", "quiz_score"]
    assert event.before["quiz_score"] is None


def test_update_refuses_to_clear_required_fields(db_session, organization, employee):
    record = services.create_training_record(db_session, organization_id=organization.id, data=_in_person(employee))

    with pytest.raises(ValidationError) as excinfo:
        services.update_training_record(
            db_session,
            organization_id=organization.id,
            record_id=record.id,
            data=schemas.TrainingRecordUpdate(trainer_name=None),
        )

    assert excinfo.value.detail == [{"field": "trainer_name", "reason": "must not be null"}]


def _complete_module(db_session, employee, module, now=NOW) -> None:
    services.report_video_progress(db_session, employee=employee, module_id=module.id, video_progress=100, now=now)
    answers = [
        grading.SubmittedAnswer(question_id=q.id, selected_option_ids=["a"])
        for q in services.active_questions(db_session, module.id)
    ]
    services.submit_quiz(db_session, employee=employee, module_id=module.id, answers=answers, now=now)


def test_training_report_matrix_and_summary(db_session, organization, employee, make_module):
    first = make_module(1, questions=[(MC, OPTIONS, 1)])
    second = make_module(2, questions=[(MC, OPTIONS, 1)])
    make_module(3, is_active=False)

    finisher = _add_employee(db_session, organization, "Alex", "Adams")
    _complete_module(db_session, finisher, first, now=NOW - timedelta(days=400))
    _complete_module(db_session, finisher, second, now=NOW - timedelta(days=400))
    _complete_module(db_session, employee, first)
    _add_employee(db_session, organization, "Jo", "Zimmer")
    _add_employee(db_session, organization, "Former", "Staff", is_active=False)
    db_session.commit()

    report = services.training_report(db_session, organization_id=organization.id, now=NOW)

    assert [m.order for m in report.modules] == [1, 2]
    assert [row.employee.last_name for row in report.employees] == ["Adams", "Reyes", "Zimmer"]
    adams, reyes, zimmer = report.employees
    assert (adams.completed_modules, adams.overall_progress, adams.training_complete) == (2, 100, True)
    assert adams.overdue is True
    assert (reyes.completed_modules, reyes.overall_progress, reyes.training_complete) == (1, 50, False)
    assert [m["status"] for m in reyes.modules] == [
        training_models.ModuleStatus.COMPLETED,
        training_models.ModuleStatus.NOT_STARTED,
    ]
    assert zimmer.modules[0]["video_progress"] == 0
    assert report.summary == {
        "total_employees": 3,
        "fully_trained": 1,
        "in_progress": 1,
        "not_started": 1,
        "overdue": 1,
        "completion_rate": 33,
    }
