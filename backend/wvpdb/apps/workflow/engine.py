from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from wvpdb.apps.audit import services as audit_services

from .registry import Guard, transitions_for


@dataclass
class TransitionError(Exception):
    code: str
    detail: List[Dict[str, str]]


def _invalid(field: str, reason: str) -> TransitionError:
    return TransitionError(code="invalid_transition", detail=[{"field": field, "reason": reason}])


def _organization_id(*objs: Any) -> Optional[str]:
    for obj in objs:
        value = obj.get("organization_id") if isinstance(obj, dict) else getattr(obj, "organization_id", None)
        if value:
            return value
    return None


def _state_payload(state: str, obj: Any) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"status": state}
    if isinstance(obj, dict):
        payload.update((k, v) for k, v in obj.items() if k != "organization_id")
    return payload


def is_transition_allowed(entity_type: str, from_state: str, to_state: str) -> bool:
    table = transitions_for(entity_type) or {}
    return to_state in table.get(from_state, {})


def _guards_for(entity_type: str, from_state: str, to_state: str) -> List[Guard]:
    table = transitions_for(entity_type)
    if table is None:
        raise _invalid("entity_type", f"No workflow registered for {entity_type}")
    guards = table.get(from_state, {}).get(to_state)
    if guards is None:
        raise _invalid("status", f"Cannot transition from {from_state} to {to_state}")
    return guards


def apply_transition(
    db: Session,
    *,
    actor_id: Optional[str],
    entity_type: str,
    entity_id: str,
    from_state: str,
    to_state: str,
    before_obj: Any,
    after_obj: Any,
    correlation_id: Optional[str] = None,
    critical: bool = True,
) -> bool:
    """
    Check a state change against the registry and audit it. Returns False
    for a self transition (nothing to do), True once the change is audited.

    The caller assigns the new state only after this returns; a
    TransitionError leaves the entity untouched.
    """
    if from_state == to_state and transitions_for(entity_type) is not None:
        return False

    guards = _guards_for(entity_type, from_state, to_state)
    failures = [
        failure
        for guard in guards
        for failure in guard(
            db,
            before_obj=before_obj,
            after_obj=after_obj,
            from_state=from_state,
            to_state=to_state,
        )
    ]
    if failures:
        raise TransitionError(code="missing_requirements", detail=failures)

    organization_id = _organization_id(after_obj, before_obj)
    if not organization_id:
        raise _invalid("organization_id", "Unable to resolve organization for transition")

    audit_services.log_event(
        db,
        organization_id=organization_id,
        actor_id=actor_id,
        entity_type=entity_type,
        entity_id=entity_id,
        action="transition",
        before=_state_payload(from_state, before_obj),
        after=_state_payload(to_state, after_obj),
        correlation_id=correlation_id,
        metadata={"workflow": entity_type},
        critical=critical,
    )
    return True
