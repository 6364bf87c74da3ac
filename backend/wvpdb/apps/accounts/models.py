# backend/wvpdb/apps/accounts/models.py

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from wvpdb.database import Base
from wvpdb.utils.identifiers import generate_uuid7


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# ORGANIZATION
# ---------------------------------------------------------------------------


class Organization(Base):
    """
    An employer that maintains a Workplace Violence Prevention Plan (WVPP).

    Identity lives with the external identity provider; `external_org_id`
    links the two. Review dates drive the annual-review reminder pillar.
    """

    __tablename__ = "organizations"

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    external_org_id = Column(String(128), nullable=True, unique=True, index=True)

    name = Column(String(255), nullable=False)
    email = Column(
        String(255),
        nullable=True,
        doc="Compliance contact; receives admin, review and incident reminders.",
    )

    # Compliance tracking
    wvpp_created_at = Column(DateTime(timezone=True), nullable=True)
    last_plan_review_date = Column(DateTime(timezone=True), nullable=True)
    next_plan_review_due_date = Column(DateTime(timezone=True), nullable=True)
    last_training_date = Column(DateTime(timezone=True), nullable=True)
    next_training_due_date = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )

    employees = relationship("Employee", back_populates="organization", lazy="selectin")

    def __repr__(self) -> str:
        return f"<Organization {self.id} {self.name!r}>"


# ---------------------------------------------------------------------------
# EMPLOYEE
# ---------------------------------------------------------------------------


class Employee(Base):
    """
    A person who must complete the WVPP training curriculum.

    The training dates below are write-through caches maintained by the
    training app when every required module is completed; the progress
    rows and training records stay authoritative.
    """

    __tablename__ = "employees"
    __table_args__ = (
        UniqueConstraint("organization_id", "email", name="uq_employees_org_email"),
        Index("idx_employees_org_active", "organization_id", "is_active"),
        Index("idx_employees_org_next_due", "organization_id", "next_training_due_date"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)

    organization_id = Column(
        String(36),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    external_user_id = Column(String(128), nullable=True, index=True)

    first_name = Column(String(128), nullable=False)
    last_name = Column(String(128), nullable=False)
    email = Column(String(255), nullable=False)
    job_title = Column(String(255), nullable=True)
    department = Column(String(128), nullable=True)

    hire_date = Column(Date, nullable=True)
    termination_date = Column(Date, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)

    # Training tracking (cached)
    initial_training_completed_at = Column(DateTime(timezone=True), nullable=True)
    last_annual_training_completed_at = Column(DateTime(timezone=True), nullable=True)
    next_training_due_date = Column(DateTime(timezone=True), nullable=True)

    # Curriculum path
    training_path_started_at = Column(DateTime(timezone=True), nullable=True)
    training_path_completed_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )

    organization = relationship("Organization", back_populates="employees", lazy="joined")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __repr__(self) -> str:
        return f"<Employee {self.id} org={self.organization_id} active={self.is_active}>"
