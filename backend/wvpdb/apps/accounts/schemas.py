from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel


class EmployeeRead(BaseModel):
    id: str
    organization_id: str
    first_name: str
    last_name: str
    email: str
    job_title: Optional[str] = None
    department: Optional[str] = None
    hire_date: Optional[date] = None
    is_active: bool

    initial_training_completed_at: Optional[datetime] = None
    last_annual_training_completed_at: Optional[datetime] = None
    next_training_due_date: Optional[datetime] = None
    training_path_started_at: Optional[datetime] = None
    training_path_completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class OrganizationRead(BaseModel):
    id: str
    name: str
    email: Optional[str] = None
    last_plan_review_date: Optional[datetime] = None
    next_plan_review_due_date: Optional[datetime] = None
    next_training_due_date: Optional[datetime] = None

    class Config:
        from_attributes = True
