from __future__ import annotations

from typing import Optional

from sqlalchemy.orm import Session

from wvpdb.apps.training.errors import NotifierFailure

from . import models, service, templates


class Notifier:
    """Reminder delivery boundary: `send` raises on failure."""

    def send(self, reminder_type: str, recipient: str, template_data: dict) -> bool:
        raise NotImplementedError


class EmailNotifier(Notifier):
    """
    Renders a reminder template and hands it to `send_email` as a critical
    send; provider errors surface as NotifierFailure. Returns False when
    no provider is configured and the message was skipped.
    """

    def __init__(self, db: Session, *, organization_id: str, correlation_id: Optional[str] = None) -> None:
        self.db = db
        self.organization_id = organization_id
        self.correlation_id = correlation_id

    def send(self, reminder_type: str, recipient: str, template_data: dict) -> bool:
        subject, body = templates.render(reminder_type, template_data)
        try:
            log = service.send_email(
                reminder_type,
                recipient,
                subject,
                {**template_data, "body": body},
                correlation_id=self.correlation_id,
                critical=True,
                organization_id=self.organization_id,
                db=self.db,
            )
        except Exception as exc:
            raise NotifierFailure(str(exc)) from exc
        return log.status != models.EmailStatus.SKIPPED_NO_PROVIDER
