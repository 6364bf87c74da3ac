from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from wvpdb.apps.accounts.schemas import OrganizationRead

from .models import PlanStatus


class PillarScoresRead(BaseModel):
    plan: int
    training: int
    review: int
    incident: int


class AlertRead(BaseModel):
    level: str
    message: str


class DeadlineRead(BaseModel):
    type: str
    label: str
    date: datetime
    days_until: int
    overdue: bool


class ComplianceStats(BaseModel):
    active_plan: bool
    active_plan_version: Optional[int] = None
    total_plans: int
    total_employees: int
    active_employees: int
    trained_employees: int
    total_incidents: int
    open_incidents: int
    pending_flagged_qa: int
    new_anonymous_reports: int
    total_modules: int = 0
    completed_module_progress: int = 0
    in_progress_module_progress: int = 0


class ActivityRead(BaseModel):
    id: str
    action: str
    entity_type: str
    entity_id: str
    occurred_at: datetime

    class Config:
        from_attributes = True


class ComplianceScoreRead(BaseModel):
    organization: OrganizationRead
    overall: int
    pillars: PillarScoresRead
    alerts: List[AlertRead] = Field(default_factory=list)
    deadlines: List[DeadlineRead] = Field(default_factory=list)
    stats: ComplianceStats
    recent_activity: List[ActivityRead] = Field(default_factory=list)


class WvppPlanRead(BaseModel):
    id: str
    organization_id: str
    title: str
    status: PlanStatus
    version: int
    published_at: Optional[datetime] = None
    archived_at: Optional[datetime] = None

    class Config:
        from_attributes = True
