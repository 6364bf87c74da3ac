from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...database import get_db
from ...security import verify_cron_secret
from . import services

router = APIRouter(prefix="/cron", tags=["cron"])


@router.get(
    "/reminders",
    summary="Run the daily reminder tick (scheduler only)",
    dependencies=[Depends(verify_cron_secret)],
)
def run_reminders(db: Session = Depends(get_db)):
    report = services.run_reminder_tick(db)
    db.commit()
    return report.as_dict()
