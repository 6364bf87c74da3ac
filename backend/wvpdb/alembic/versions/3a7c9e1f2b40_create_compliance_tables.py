"""create compliance engine tables

Revision ID: 3a7c9e1f2b40
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "3a7c9e1f2b40"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id() -> sa.Column:
    return sa.Column("id", sa.String(length=36), primary_key=True)


def _org_fk() -> sa.Column:
    return sa.Column(
        "organization_id",
        sa.String(length=36),
        sa.ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
    )


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "organizations",
        _id(),
        sa.Column("external_org_id", sa.String(length=128), nullable=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("wvpp_created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_plan_review_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("next_plan_review_due_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_training_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("next_training_due_date", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index(
        "ix_organizations_external_org_id", "organizations", ["external_org_id"], unique=True
    )

    op.create_table(
        "employees",
        _id(),
        _org_fk(),
        sa.Column("external_user_id", sa.String(length=128), nullable=True),
        sa.Column("first_name", sa.String(length=128), nullable=False),
        sa.Column("last_name", sa.String(length=128), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("job_title", sa.String(length=255), nullable=True),
        sa.Column("department", sa.String(length=128), nullable=True),
        sa.Column("hire_date", sa.Date(), nullable=True),
        sa.Column("termination_date", sa.Date(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("initial_training_completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_annual_training_completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("next_training_due_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("training_path_started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("training_path_completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("organization_id", "email", name="uq_employees_org_email"),
    )
    op.create_index("ix_employees_organization_id", "employees", ["organization_id"])
    op.create_index("ix_employees_external_user_id", "employees", ["external_user_id"])
    op.create_index("ix_employees_is_active", "employees", ["is_active"])
    op.create_index("idx_employees_org_active", "employees", ["organization_id", "is_active"])
    op.create_index(
        "idx_employees_org_next_due", "employees", ["organization_id", "next_training_due_date"]
    )

    op.create_table(
        "wvpp_plans",
        _id(),
        _org_fk(),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("status", sa.String(length=8), nullable=False, server_default="draft"),
        sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("archived_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_wvpp_plans_organization_id", "wvpp_plans", ["organization_id"])
    op.create_index("ix_wvpp_plans_status", "wvpp_plans", ["status"])
    op.create_index("idx_wvpp_plans_org_status", "wvpp_plans", ["organization_id", "status"])

    op.create_table(
        "incidents",
        _id(),
        _org_fk(),
        sa.Column(
            "plan_id",
            sa.String(length=36),
            sa.ForeignKey("wvpp_plans.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("incident_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("location_description", sa.String(length=255), nullable=True),
        sa.Column("detailed_description", sa.Text(), nullable=True),
        sa.Column(
            "investigation_status", sa.String(length=11), nullable=False, server_default="pending"
        ),
        sa.Column("investigation_notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_incidents_organization_id", "incidents", ["organization_id"])
    op.create_index("ix_incidents_investigation_status", "incidents", ["investigation_status"])
    op.create_index("idx_incidents_org_date", "incidents", ["organization_id", "incident_date"])
    op.create_index(
        "idx_incidents_org_investigation", "incidents", ["organization_id", "investigation_status"]
    )

    op.create_table(
        "qa_flagged_responses",
        _id(),
        _org_fk(),
        sa.Column("flagged_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "ix_qa_flagged_responses_organization_id", "qa_flagged_responses", ["organization_id"]
    )

    op.create_table(
        "anonymous_reports",
        _id(),
        _org_fk(),
        sa.Column("status", sa.String(length=13), nullable=False, server_default="new"),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_anonymous_reports_organization_id", "anonymous_reports", ["organization_id"])
    op.create_index(
        "idx_anonymous_reports_org_status", "anonymous_reports", ["organization_id", "status"]
    )

    # --- Curriculum -------------------------------------------------------

    op.create_table(
        "training_modules",
        _id(),
        sa.Column("code", sa.String(length=64), nullable=False, unique=True),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("order", sa.Integer(), nullable=False),
        sa.Column("category", sa.String(length=20), nullable=True),
        sa.Column("video_url", sa.String(length=512), nullable=True),
        sa.Column("video_duration_minutes", sa.Integer(), nullable=True, server_default="0"),
        sa.Column("is_required", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("passing_score", sa.Integer(), nullable=False, server_default="70"),
        sa.Column("max_attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_completions", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.UniqueConstraint("order", name="uq_training_modules_order"),
    )
    op.create_index("ix_training_modules_is_active", "training_modules", ["is_active"])
    op.create_index(
        "idx_training_modules_order_active", "training_modules", ["order", "is_active"]
    )

    op.create_table(
        "training_questions",
        _id(),
        sa.Column(
            "module_id",
            sa.String(length=36),
            sa.ForeignKey("training_modules.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("question_text", sa.Text(), nullable=False),
        sa.Column("question_type", sa.String(length=15), nullable=False),
        sa.Column("options", sa.JSON(), nullable=False),
        sa.Column("explanation", sa.Text(), nullable=True),
        sa.Column("order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("points", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_index("ix_training_questions_module_id", "training_questions", ["module_id"])
    op.create_index(
        "idx_training_questions_module_order", "training_questions", ["module_id", "order"]
    )

    # --- Per-employee progress ----------------------------------------------

    op.create_table(
        "training_progress",
        _id(),
        _org_fk(),
        sa.Column(
            "employee_id",
            sa.String(length=36),
            sa.ForeignKey("employees.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "module_id",
            sa.String(length=36),
            sa.ForeignKey("training_modules.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("video_progress", sa.Float(), nullable=False, server_default="0"),
        sa.Column("video_completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("video_completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_watched_position", sa.Float(), nullable=False, server_default="0"),
        sa.Column("quiz_passed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("quiz_passed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("best_score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(length=11), nullable=False, server_default="not_started"),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("due_date", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint(
            "employee_id", "module_id", name="uq_training_progress_employee_module"
        ),
    )
    op.create_index("ix_training_progress_organization_id", "training_progress", ["organization_id"])
    op.create_index("ix_training_progress_employee_id", "training_progress", ["employee_id"])
    op.create_index("ix_training_progress_module_id", "training_progress", ["module_id"])
    op.create_index("ix_training_progress_status", "training_progress", ["status"])
    op.create_index(
        "idx_training_progress_org_status", "training_progress", ["organization_id", "status"]
    )

    op.create_table(
        "training_quiz_attempts",
        _id(),
        sa.Column(
            "progress_id",
            sa.String(length=36),
            sa.ForeignKey("training_progress.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("attempt_number", sa.Integer(), nullable=False),
        sa.Column("score", sa.Integer(), nullable=False),
        sa.Column("passed", sa.Boolean(), nullable=False),
        sa.Column("answers", sa.JSON(), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint(
            "progress_id", "attempt_number", name="uq_training_quiz_attempts_number"
        ),
    )
    op.create_index(
        "ix_training_quiz_attempts_progress_id", "training_quiz_attempts", ["progress_id"]
    )

    op.create_table(
        "training_records",
        _id(),
        _org_fk(),
        sa.Column(
            "employee_id",
            sa.String(length=36),
            sa.ForeignKey("employees.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("training_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("training_type", sa.String(length=11), nullable=False),
        sa.Column("module_code", sa.String(length=64), nullable=False),
        sa.Column("module_name", sa.String(length=255), nullable=False),
        sa.Column("content_summary", sa.Text(), nullable=False),
        sa.Column("trainer_name", sa.String(length=255), nullable=False),
        sa.Column("trainer_qualifications", sa.String(length=255), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("duration_minutes", sa.Integer(), nullable=True),
        sa.Column("quiz_score", sa.Integer(), nullable=True),
        sa.Column("quiz_passed", sa.Boolean(), nullable=True),
        sa.Column(
            "employee_acknowledged", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("acknowledged_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_training_records_organization_id", "training_records", ["organization_id"])
    op.create_index("ix_training_records_employee_id", "training_records", ["employee_id"])
    op.create_index(
        "idx_training_records_org_date", "training_records", ["organization_id", "training_date"]
    )
    op.create_index(
        "idx_training_records_employee_type", "training_records", ["employee_id", "training_type"]
    )

    # --- Audit / email ledger -----------------------------------------------

    op.create_table(
        "audit_events",
        _id(),
        _org_fk(),
        sa.Column("entity_type", sa.String(length=64), nullable=False),
        sa.Column("entity_id", sa.String(length=64), nullable=False),
        sa.Column("action", sa.String(length=64), nullable=False),
        sa.Column("actor_id", sa.String(length=128), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("before", sa.JSON(), nullable=True),
        sa.Column("after", sa.JSON(), nullable=True),
        sa.Column("correlation_id", sa.String(length=64), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
    )
    op.create_index("ix_audit_events_organization_id", "audit_events", ["organization_id"])
    op.create_index(
        "ix_audit_events_org_entity", "audit_events", ["organization_id", "entity_type", "entity_id"]
    )
    op.create_index("ix_audit_events_org_action", "audit_events", ["organization_id", "action"])
    op.create_index(
        "ix_audit_events_org_time_desc",
        "audit_events",
        ["organization_id", sa.text("occurred_at DESC")],
    )

    op.create_table(
        "email_logs",
        _id(),
        _org_fk(),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("recipient", sa.String(length=255), nullable=False),
        sa.Column("subject", sa.String(length=255), nullable=False),
        sa.Column("template_key", sa.String(length=128), nullable=False),
        sa.Column("status", sa.String(length=19), nullable=False),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("context_json", sa.JSON(), nullable=True),
        sa.Column("correlation_id", sa.String(length=64), nullable=True),
    )
    op.create_index("ix_email_logs_organization_id", "email_logs", ["organization_id"])
    op.create_index("ix_email_logs_org_created", "email_logs", ["organization_id", "created_at"])
    op.create_index("ix_email_logs_org_status", "email_logs", ["organization_id", "status"])
    op.create_index(
        "ix_email_logs_org_template", "email_logs", ["organization_id", "template_key"]
    )


def downgrade() -> None:
    for table in (
        "email_logs",
        "audit_events",
        "training_records",
        "training_quiz_attempts",
        "training_progress",
        "training_questions",
        "training_modules",
        "anonymous_reports",
        "qa_flagged_responses",
        "incidents",
        "wvpp_plans",
        "employees",
        "organizations",
    ):
        op.drop_table(table)
