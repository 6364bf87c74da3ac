"""Curriculum lock-state projection.

Read-only: nothing here is persisted. The first module (lowest order) is
always unlocked; every later module unlocks only when the module right
before it is COMPLETED for that employee, whatever activity its own
progress row shows.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence

from sqlalchemy.orm import Session

from wvpdb.apps.accounts import models as account_models

from . import models
from .errors import ModuleLocked, ModuleNotFound


@dataclass(frozen=True)
class ModuleLockState:
    module: models.TrainingModule
    status: models.ModuleStatus
    locked: bool
    progress: Optional[models.TrainingProgress] = None


def project_lock_state(
    modules: Sequence[models.TrainingModule],
    progress_by_module_id: Mapping[str, models.TrainingProgress],
) -> List[ModuleLockState]:
    ordered = sorted(modules, key=lambda m: m.order)
    states: List[ModuleLockState] = []
    previous_status: Optional[models.ModuleStatus] = None

    for index, module in enumerate(ordered):
        progress = progress_by_module_id.get(str(module.id))
        status = progress.status if progress is not None else models.ModuleStatus.NOT_STARTED
        locked = index > 0 and previous_status != models.ModuleStatus.COMPLETED
        states.append(ModuleLockState(module=module, status=status, locked=locked, progress=progress))
        previous_status = status

    return states


def active_modules(db: Session) -> List[models.TrainingModule]:
    return (
        db.query(models.TrainingModule)
        .filter(models.TrainingModule.is_active.is_(True))
        .order_by(models.TrainingModule.order.asc())
        .all()
    )


def _progress_map(db: Session, employee_id: str) -> Dict[str, models.TrainingProgress]:
    rows = (
        db.query(models.TrainingProgress)
        .filter(models.TrainingProgress.employee_id == employee_id)
        .all()
    )
    return {str(p.module_id): p for p in rows}


def get_module_catalog_with_lock_state(
    db: Session,
    *,
    employee: account_models.Employee,
) -> List[ModuleLockState]:
    return project_lock_state(active_modules(db), _progress_map(db, employee.id))


def ensure_module_unlocked(
    db: Session,
    *,
    employee: account_models.Employee,
    module_id: str,
) -> models.TrainingModule:
    """
    Authorization-layer check run by the router before any progress mutation.
    Inactive modules are not part of the catalog and report as not found.
    """
    for state in get_module_catalog_with_lock_state(db, employee=employee):
        if str(state.module.id) != str(module_id):
            continue
        if state.locked:
            raise ModuleLocked(
                "Complete the previous module to unlock this one",
                detail=[{"field": "module_id", "reason": f"module order {state.module.order} is locked"}],
            )
        return state.module
    raise ModuleNotFound("Module not found")
