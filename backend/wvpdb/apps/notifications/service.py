from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Optional

from sqlalchemy.orm import Session

from wvpdb.database import WriteSessionLocal

from . import models, providers

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _deliver(log: models.EmailLog, context: dict) -> Optional[Exception]:
    """Run the provider and stamp the outcome on `log`; returns the failure, if any."""
    provider, configured = providers.get_email_provider()
    if not configured:
        log.status = models.EmailStatus.SKIPPED_NO_PROVIDER
        log.error = "No provider configured"
        return None
    try:
        provider.send(
            template_key=log.template_key,
            recipient=log.recipient,
            subject=log.subject,
            context=context,
            correlation_id=log.correlation_id,
        )
    except Exception as exc:
        log.status = models.EmailStatus.FAILED
        log.error = str(exc)
        return exc
    log.status = models.EmailStatus.SENT
    log.sent_at = _utcnow()
    return None


def send_email(
    template_key: str,
    recipient: str,
    subject: str,
    context: dict,
    correlation_id: Optional[str],
    critical: bool = False,
    *,
    organization_id: Optional[str] = None,
    db: Optional[Session] = None,
) -> models.EmailLog:
    """
    Deliver one email and keep an `email_logs` row for it.

    With a caller session the row is only flushed; without one a private
    session is opened and committed. A provider failure is recorded as
    FAILED and re-raised when `critical` is set.
    """
    if not organization_id:
        raise ValueError("organization_id is required to create an email log entry")

    owns_session = db is None
    if db is None:
        db = WriteSessionLocal()
    context = context or {}
    log = models.EmailLog(
        organization_id=organization_id,
        recipient=recipient,
        subject=subject,
        template_key=template_key,
        status=models.EmailStatus.QUEUED,
        context_json=context,
        correlation_id=correlation_id,
    )
    try:
        db.add(log)
        db.flush()
        failure = _deliver(log, context)
        db.flush()
        if owns_session:
            db.commit()
        if failure is not None:
            logger.warning(
                "Email delivery failed",
                extra={"template_key": template_key, "organization_id": organization_id, "critical": critical},
            )
            if critical:
                raise failure
        return log
    finally:
        if owns_session:
            db.close()
