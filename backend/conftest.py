from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

ROOT = Path(__file__).resolve().parent
sys.path.append(str(ROOT))

os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["DATABASE_WRITE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ.pop("NOTIFICATIONS_EMAIL_PROVIDER", None)

from wvpdb.database import Base  # noqa: E402
from wvpdb.apps.accounts import models as account_models  # noqa: E402
from wvpdb.apps.audit import models as audit_models  # noqa: E402
from wvpdb.apps.compliance import models as compliance_models  # noqa: E402
from wvpdb.apps.notifications import models as notification_models  # noqa: E402
from wvpdb.apps.training import models as training_models  # noqa: E402


@pytest.fixture()
def db_session():
    engine = create_engine("sqlite+pysqlite:///:memory:")

    # pysqlite defers BEGIN until the first DML, which breaks SAVEPOINT; emit it ourselves.
    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(connection):
        connection.exec_driver_sql("BEGIN")

    Base.metadata.create_all(
        bind=engine,
        tables=[
            account_models.Organization.__table__,
            account_models.Employee.__table__,
            compliance_models.WvppPlan.__table__,
            compliance_models.Incident.__table__,
            compliance_models.FlaggedQAResponse.__table__,
            compliance_models.AnonymousReport.__table__,
            training_models.TrainingModule.__table__,
            training_models.TrainingQuestion.__table__,
            training_models.TrainingProgress.__table__,
            training_models.TrainingQuizAttempt.__table__,
            training_models.TrainingRecord.__table__,
            audit_models.AuditEvent.__table__,
            notification_models.EmailLog.__table__,
        ],
    )
    TestingSession = sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
    )
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def organization(db_session) -> account_models.Organization:
    org = account_models.Organization(name="Harbor Logistics", email="compliance@harbor.example")
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture()
def employee(db_session, organization) -> account_models.Employee:
    emp = account_models.Employee(
        organization_id=organization.id,
        first_name="Dana",
        last_name="Reyes",
        email="dana@harbor.example",
        is_active=True,
    )
    db_session.add(emp)
    db_session.commit()
    return emp


@pytest.fixture()
def make_module(db_session):
    """Factory: a module with `questions` given as (type, options, points) tuples."""

    def _make(order: int, *, questions=None, passing_score: int = 70, max_attempts: int = 0, **fields):
        module = training_models.TrainingModule(
            code=fields.pop("code", f"module-{order}"),
            title=fields.pop("title", f"Module {order}"),
            order=order,
            passing_score=passing_score,
            max_attempts=max_attempts,
            video_duration_minutes=fields.pop("video_duration_minutes", 10),
            is_required=fields.pop("is_required", True),
            is_active=fields.pop("is_active", True),
            **fields,
        )
        db_session.add(module)
        db_session.flush()
        for idx, (question_type, options, points) in enumerate(questions or []):
            db_session.add(
                training_models.TrainingQuestion(
                    module_id=module.id,
                    question_text=f"Question {idx + 1}",
                    question_type=question_type,
                    options=options,
                    order=idx,
                    points=points,
                    explanation=f"Explanation {idx + 1}",
                )
            )
        db_session.commit()
        return module

    return _make
