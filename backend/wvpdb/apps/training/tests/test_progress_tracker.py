from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pydantic
import pytest
from fastapi import HTTPException

from wvpdb.apps.audit import models as audit_models
from wvpdb.apps.training import grading, services
from wvpdb.apps.training import models as training_models
from wvpdb.apps.training import router as training_router
from wvpdb.apps.training.schemas import VideoProgressUpdate
from wvpdb.apps.workflow import TransitionError
from wvpdb.apps.training.errors import (
    AttemptLimitExceeded,
    ModuleNotFound,
    NoProgressRecord,
    ValidationError,
)

NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)
MC = training_models.QuestionType.MULTIPLE_CHOICE


def _options(correct: str = "a") -> list:
    return [{"id": opt, "text": opt.upper(), "is_correct": opt == correct} for opt in ("a", "b", "c")]


def _two_question_module(make_module, **kwargs):
    return make_module(1, questions=[(MC, _options("a"), 1), (MC, _options("b"), 1)], **kwargs)


def _answers(db_session, module, picks) -> list:
    questions = services.active_questions(db_session, module.id)
    return [
        grading.SubmittedAnswer(question_id=q.id, selected_option_ids=[pick])
        for q, pick in zip(questions, picks)
    ]


def test_first_video_report_creates_in_progress_row(db_session, employee, make_module):
    module = _two_question_module(make_module)

    progress = services.report_video_progress(
        db_session, employee=employee, module_id=module.id, video_progress=25, last_watched_position=30, now=NOW
    )
    db_session.commit()

    assert progress.status == training_models.ModuleStatus.IN_PROGRESS
    assert progress.video_progress == 25
    assert progress.last_watched_position == 30
    assert employee.training_path_started_at == NOW


def test_video_progress_never_decreases_and_completion_is_sticky(db_session, employee, make_module):
    module = _two_question_module(make_module)
    seen = []

    for pct in (40, 20, 91, 50, 100):
        progress = services.report_video_progress(
            db_session, employee=employee, module_id=module.id, video_progress=pct, now=NOW + timedelta(minutes=pct)
        )
        seen.append((progress.video_progress, progress.video_completed))

    assert [p for p, _ in seen] == [40, 40, 91, 91, 100]
    assert [c for _, c in seen] == [False, False, True, True, True]
    # Stamped on the first crossing only.
    assert progress.video_completed_at == NOW + timedelta(minutes=91)


def test_video_progress_is_clamped(db_session, employee, make_module):
    module = _two_question_module(make_module)

    progress = services.report_video_progress(db_session, employee=employee, module_id=module.id, video_progress=250)

    assert progress.video_progress == 100
    assert progress.video_completed is True


def test_training_path_start_is_stamped_once(db_session, employee, make_module):
    module = _two_question_module(make_module)

    services.report_video_progress(db_session, employee=employee, module_id=module.id, video_progress=5, now=NOW)
    services.report_video_progress(
        db_session, employee=employee, module_id=module.id, video_progress=10, now=NOW + timedelta(days=1)
    )

    assert employee.training_path_started_at == NOW


def test_unknown_module_is_rejected(db_session, employee):
    with pytest.raises(ModuleNotFound):
        services.report_video_progress(db_session, employee=employee, module_id="missing", video_progress=10)


def test_quiz_without_progress_record_is_rejected(db_session, employee, make_module):
    module = _two_question_module(make_module)

    with pytest.raises(NoProgressRecord):
        services.submit_quiz(db_session, employee=employee, module_id=module.id, answers=[])

    assert db_session.query(training_models.TrainingProgress).count() == 0


def test_quiz_requires_answers_list(db_session, employee, make_module):
    module = _two_question_module(make_module)
    services.report_video_progress(db_session, employee=employee, module_id=module.id, video_progress=10)

    with pytest.raises(ValidationError):
        services.submit_quiz(db_session, employee=employee, module_id=module.id, answers=None)


def test_best_score_tracks_maximum_and_quiz_pass_is_sticky(db_session, employee, make_module):
    module = _two_question_module(make_module, passing_score=80)
    services.report_video_progress(db_session, employee=employee, module_id=module.id, video_progress=10, now=NOW)

    first = services.submit_quiz(
        db_session, employee=employee, module_id=module.id, answers=_answers(db_session, module, ["a", "c"]), now=NOW
    )
    second = services.submit_quiz(
        db_session,
        employee=employee,
        module_id=module.id,
        answers=_answers(db_session, module, ["a", "b"]),
        now=NOW + timedelta(minutes=5),
    )
    third = services.submit_quiz(
        db_session,
        employee=employee,
        module_id=module.id,
        answers=_answers(db_session, module, ["c", "c"]),
        now=NOW + timedelta(minutes=10),
    )
    db_session.commit()

    progress = third.progress
    assert [first.score, second.score, third.score] == [50, 100, 0]
    assert [a.attempt_number for a in progress.quiz_attempts] == [1, 2, 3]
    assert progress.best_score == max(a.score for a in progress.quiz_attempts) == 100
    assert third.passed is False
    assert progress.quiz_passed is True
    assert progress.quiz_passed_at == NOW + timedelta(minutes=5)
    assert progress.status == training_models.ModuleStatus.IN_PROGRESS


def test_attempt_limit_rejects_before_writing(db_session, employee, make_module):
    module = _two_question_module(make_module, max_attempts=2)
    services.report_video_progress(db_session, employee=employee, module_id=module.id, video_progress=10)
    answers = _answers(db_session, module, ["c", "c"])

    services.submit_quiz(db_session, employee=employee, module_id=module.id, answers=answers)
    services.submit_quiz(db_session, employee=employee, module_id=module.id, answers=answers)
    with pytest.raises(AttemptLimitExceeded):
        services.submit_quiz(db_session, employee=employee, module_id=module.id, answers=answers)

    progress = db_session.query(training_models.TrainingProgress).one()
    assert len(progress.quiz_attempts) == 2


def test_unlimited_attempts_never_rejected(db_session, employee, make_module):
    module = _two_question_module(make_module, max_attempts=0)
    services.report_video_progress(db_session, employee=employee, module_id=module.id, video_progress=10)
    answers = _answers(db_session, module, ["c", "c"])

    for _ in range(6):
        services.submit_quiz(db_session, employee=employee, module_id=module.id, answers=answers)

    progress = db_session.query(training_models.TrainingProgress).one()
    assert len(progress.quiz_attempts) == 6


def test_end_to_end_completion_issues_training_record(db_session, employee, make_module):
    module = _two_question_module(make_module, passing_score=80, video_duration_minutes=12)
    services.report_video_progress(db_session, employee=employee, module_id=module.id, video_progress=30, now=NOW)

    result = services.submit_quiz(
        db_session, employee=employee, module_id=module.id, answers=_answers(db_session, module, ["a", "b"]), now=NOW
    )
    assert (result.score, result.passed, result.best_score) == (100, True, 100)
    assert result.module_completed is False
    assert result.progress.status == training_models.ModuleStatus.IN_PROGRESS

    done_at = NOW + timedelta(minutes=20)
    progress = services.report_video_progress(
        db_session, employee=employee, module_id=module.id, video_progress=92, now=done_at
    )
    db_session.commit()

    assert progress.status == training_models.ModuleStatus.COMPLETED
    assert progress.completed_at == done_at
    assert module.total_completions == 1

    record = db_session.query(training_models.TrainingRecord).one()
    assert record.training_type == training_models.TrainingRecordType.INITIAL
    assert record.duration_minutes == 12
    assert record.quiz_score == 100
    assert employee.initial_training_completed_at == done_at
    assert employee.last_annual_training_completed_at == done_at
    assert employee.next_training_due_date == done_at + timedelta(days=365)

    transitions = (
        db_session.query(audit_models.AuditEvent)
        .filter(audit_models.AuditEvent.action == "transition")
        .all()
    )
    assert [(e.before["status"], e.after["status"]) for e in transitions] == [("in_progress", "completed")]


def test_completed_module_stays_completed(db_session, employee, make_module):
    module = _two_question_module(make_module)
    services.report_video_progress(db_session, employee=employee, module_id=module.id, video_progress=95, now=NOW)
    services.submit_quiz(
        db_session, employee=employee, module_id=module.id, answers=_answers(db_session, module, ["a", "b"]), now=NOW
    )

    later = services.report_video_progress(
        db_session, employee=employee, module_id=module.id, video_progress=10, now=NOW + timedelta(days=1)
    )
    failing = services.submit_quiz(
        db_session,
        employee=employee,
        module_id=module.id,
        answers=_answers(db_session, module, ["c", "c"]),
        now=NOW + timedelta(days=1),
    )

    assert later.status == training_models.ModuleStatus.COMPLETED
    assert later.completed_at == NOW
    assert failing.module_completed is True
    assert module.total_completions == 1
    assert db_session.query(training_models.TrainingRecord).count() == 1


@pytest.mark.parametrize("field", ["video_progress", "last_watched_position"])
@pytest.mark.parametrize("value", [float("nan"), float("inf"), float("-inf")])
def test_non_finite_video_numbers_are_rejected(db_session, employee, make_module, field, value):
    module = _two_question_module(make_module)
    services.report_video_progress(db_session, employee=employee, module_id=module.id, video_progress=20, now=NOW)
    db_session.commit()

    with pytest.raises(ValidationError) as excinfo:
        services.report_video_progress(db_session, employee=employee, module_id=module.id, **{field: value})
    db_session.rollback()

    assert excinfo.value.detail[0]["field"] == field
    progress = db_session.query(training_models.TrainingProgress).one()
    assert progress.video_progress == 20
    assert progress.video_completed is False


@pytest.mark.parametrize("field", ["video_progress", "last_watched_position"])
def test_video_payload_rejects_nan(field):
    with pytest.raises(pydantic.ValidationError):
        VideoProgressUpdate(module_id="m", **{field: float("nan")})


def test_concurrent_row_creation_reuses_existing_row(db_session, organization, employee, make_module, monkeypatch):
    module = _two_question_module(make_module)
    existing = training_models.TrainingProgress(
        organization_id=organization.id,
        employee_id=employee.id,
        module_id=module.id,
        status=training_models.ModuleStatus.IN_PROGRESS,
        video_progress=10,
    )
    db_session.add(existing)
    db_session.commit()

    real_lock = services._lock_progress
    calls = []

    def lock_misses_first_time(db, *, employee_id, module_id):
        calls.append(module_id)
        if len(calls) == 1:
            return None
        return real_lock(db, employee_id=employee_id, module_id=module_id)

    monkeypatch.setattr(services, "_lock_progress", lock_misses_first_time)

    progress = services.report_video_progress(
        db_session, employee=employee, module_id=module.id, video_progress=40, now=NOW
    )
    db_session.commit()

    assert len(calls) == 2
    assert progress.id == existing.id
    assert progress.video_progress == 40
    assert db_session.query(training_models.TrainingProgress).count() == 1


def test_rejected_transition_leaves_progress_row_unchanged(db_session, employee, make_module, monkeypatch):
    module = _two_question_module(make_module)
    progress = services.report_video_progress(
        db_session, employee=employee, module_id=module.id, video_progress=50, now=NOW
    )
    progress.quiz_passed = True
    db_session.commit()

    def reject(*args, **kwargs):
        raise TransitionError(code="invalid_transition", detail=[{"field": "status", "reason": "rejected"}])

    monkeypatch.setattr(services, "apply_transition", reject)

    with pytest.raises(HTTPException) as excinfo:
        training_router.report_video_progress(
            VideoProgressUpdate(module_id=module.id, video_progress=95),
            db=db_session,
            current_employee=employee,
        )

    assert excinfo.value.status_code == 409
    stored = db_session.query(training_models.TrainingProgress).one()
    assert stored.video_progress == 50
    assert stored.video_completed is False
    assert stored.status == training_models.ModuleStatus.IN_PROGRESS
    assert db_session.query(training_models.TrainingRecord).count() == 0
