"""Daily reminder runner (`wvpp-reminders`).

Run once per calendar day from cron; reminder eligibility matches exact
day counts, so a second run on the same day sends duplicates.
"""

from __future__ import annotations

from datetime import datetime, timezone
import logging

from wvpdb.database import WriteSessionLocal
from wvpdb.apps.reminders import services as reminder_services

logger = logging.getLogger(__name__)


def run() -> dict:
    db = WriteSessionLocal()
    try:
        report = reminder_services.run_reminder_tick(db, now=datetime.now(timezone.utc))
        db.commit()
        return report.as_dict()
    except Exception:
        db.rollback()
        logger.exception("Reminder runner failed")
        raise
    finally:
        db.close()


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    result = run()
    print("Reminder runner completed:", {k: v for k, v in result.items() if k != "details"})


if __name__ == "__main__":
    main()
