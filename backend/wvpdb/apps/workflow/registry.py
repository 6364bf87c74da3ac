"""State tables: entity type -> from state -> to state -> guards."""

from __future__ import annotations

from typing import Callable, Dict, List, Optional

from .guards import GuardResult, guard_plan_publish, guard_progress_completion

Guard = Callable[..., GuardResult]
TransitionTable = Dict[str, Dict[str, List[Guard]]]

# Module progress only moves forward.
TRAINING_PROGRESS: TransitionTable = {
    "not_started": {"in_progress": [], "completed": [guard_progress_completion]},
    "in_progress": {"completed": [guard_progress_completion]},
    "completed": {},
}

WVPP_PLAN: TransitionTable = {
    "draft": {"active": [guard_plan_publish], "archived": []},
    "active": {"archived": []},
    "archived": {"active": [guard_plan_publish]},
}

WORKFLOWS: Dict[str, TransitionTable] = {
    "training_progress": TRAINING_PROGRESS,
    "wvpp_plan": WVPP_PLAN,
}


def transitions_for(entity_type: str) -> Optional[TransitionTable]:
    return WORKFLOWS.get(entity_type)
