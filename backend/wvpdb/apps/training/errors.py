from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import HTTPException, status


class TrainingError(Exception):
    """
    Base for domain errors raised by the compliance engine.

    Routers translate these with `to_http_exception`; services never raise
    HTTPException directly.
    """

    code = "training_error"
    http_status = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, *, detail: Optional[List[Dict[str, Any]]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail or []


class NotFound(TrainingError):
    code = "not_found"
    http_status = status.HTTP_404_NOT_FOUND


class ModuleNotFound(NotFound):
    code = "module_not_found"


class EmployeeNotFound(NotFound):
    code = "employee_not_found"


class OrganizationNotFound(NotFound):
    code = "organization_not_found"


class PlanNotFound(NotFound):
    code = "plan_not_found"


class RecordNotFound(NotFound):
    code = "record_not_found"


class ValidationError(TrainingError):
    code = "validation_error"
    http_status = status.HTTP_400_BAD_REQUEST


class AttemptLimitExceeded(TrainingError):
    code = "attempt_limit_exceeded"
    http_status = status.HTTP_409_CONFLICT


class PrerequisiteNotMet(TrainingError):
    code = "prerequisite_not_met"
    http_status = status.HTTP_400_BAD_REQUEST


class NoProgressRecord(PrerequisiteNotMet):
    code = "no_progress_record"


class ModuleLocked(TrainingError):
    code = "module_locked"
    http_status = status.HTTP_403_FORBIDDEN


class NotifierFailure(TrainingError):
    """Delivery failure for one reminder recipient; counted, never fatal to a tick."""

    code = "notifier_failure"
    http_status = status.HTTP_502_BAD_GATEWAY


def to_http_exception(exc: TrainingError) -> HTTPException:
    body: Dict[str, Any] = {"code": exc.code, "message": exc.message}
    if exc.detail:
        body["detail"] = exc.detail
    return HTTPException(status_code=exc.http_status, detail=body)
