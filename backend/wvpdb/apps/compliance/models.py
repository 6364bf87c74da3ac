# backend/wvpdb/apps/compliance/models.py

from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)

from wvpdb.database import Base
from wvpdb.utils.identifiers import generate_uuid7


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# ENUMS
# ---------------------------------------------------------------------------


class PlanStatus(str, enum.Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    ARCHIVED = "archived"


class InvestigationStatus(str, enum.Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


OPEN_INVESTIGATION_STATUSES = (InvestigationStatus.PENDING, InvestigationStatus.IN_PROGRESS)


class AnonymousReportStatus(str, enum.Enum):
    NEW = "new"
    UNDER_REVIEW = "under_review"
    INVESTIGATING = "investigating"
    RESOLVED = "resolved"
    CLOSED = "closed"


# ---------------------------------------------------------------------------
# WVPP PLANS
# ---------------------------------------------------------------------------


class WvppPlan(Base):
    """
    A version of the organization's Workplace Violence Prevention Plan.

    At most one plan per organization is ACTIVE; publishing archives the
    previous one. Plan content and PDF rendering live outside this service.
    """

    __tablename__ = "wvpp_plans"
    __table_args__ = (
        Index("idx_wvpp_plans_org_status", "organization_id", "status"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    organization_id = Column(
        String(36),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    title = Column(String(255), nullable=False)
    status = Column(
        Enum(PlanStatus, name="wvpp_plan_status_enum", native_enum=False),
        nullable=False,
        default=PlanStatus.DRAFT,
        index=True,
    )
    version = Column(Integer, nullable=False, default=0)

    published_at = Column(DateTime(timezone=True), nullable=True)
    archived_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )

    def __repr__(self) -> str:
        return f"<WvppPlan {self.id} v{self.version} status={self.status}>"


# ---------------------------------------------------------------------------
# INCIDENT LOG
# ---------------------------------------------------------------------------


class Incident(Base):
    """
    Violent incident log entry. Only the fields the compliance engine reads
    (date, location label, investigation state) are modelled here.
    """

    __tablename__ = "incidents"
    __table_args__ = (
        Index("idx_incidents_org_date", "organization_id", "incident_date"),
        Index("idx_incidents_org_investigation", "organization_id", "investigation_status"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    organization_id = Column(
        String(36),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    plan_id = Column(
        String(36),
        ForeignKey("wvpp_plans.id", ondelete="SET NULL"),
        nullable=True,
    )

    incident_date = Column(DateTime(timezone=True), nullable=False)
    location_description = Column(String(255), nullable=True)
    detailed_description = Column(Text, nullable=True)

    investigation_status = Column(
        Enum(InvestigationStatus, name="incident_investigation_status_enum", native_enum=False),
        nullable=False,
        default=InvestigationStatus.PENDING,
        index=True,
    )
    investigation_notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    @property
    def is_open(self) -> bool:
        return self.investigation_status in OPEN_INVESTIGATION_STATUSES

    def __repr__(self) -> str:
        return f"<Incident {self.id} status={self.investigation_status}>"


# ---------------------------------------------------------------------------
# READ-MODEL COUNTERS (Q&A review queue, anonymous reports)
# ---------------------------------------------------------------------------


class FlaggedQAResponse(Base):
    """
    AI Q&A answer flagged for human review. The Q&A service writes these;
    the dashboard only counts the unreviewed ones.
    """

    __tablename__ = "qa_flagged_responses"

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    organization_id = Column(
        String(36),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    flagged_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)


class AnonymousReport(Base):
    __tablename__ = "anonymous_reports"
    __table_args__ = (
        Index("idx_anonymous_reports_org_status", "organization_id", "status"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    organization_id = Column(
        String(36),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    status = Column(
        Enum(AnonymousReportStatus, name="anonymous_report_status_enum", native_enum=False),
        nullable=False,
        default=AnonymousReportStatus.NEW,
    )
    submitted_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
