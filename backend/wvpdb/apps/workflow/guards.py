from __future__ import annotations

from typing import Any, Dict, List

from sqlalchemy.orm import Session

GuardResult = List[Dict[str, str]]


def _get_value(obj: Any, key: str) -> Any:
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(key)
    return getattr(obj, key, None)


def guard_progress_completion(
    db: Session,
    *,
    before_obj: Any,
    after_obj: Any,
    from_state: str,
    to_state: str,
) -> GuardResult:
    missing = []
    if not _get_value(after_obj, "video_completed"):
        missing.append({"field": "video_completed", "reason": "video must be watched to at least 90%"})
    if not _get_value(after_obj, "quiz_passed"):
        missing.append({"field": "quiz_passed", "reason": "quiz must be passed"})
    return missing


def guard_plan_publish(
    db: Session,
    *,
    before_obj: Any,
    after_obj: Any,
    from_state: str,
    to_state: str,
) -> GuardResult:
    if not _get_value(after_obj, "published_at"):
        return [{"field": "published_at", "reason": "publication timestamp required"}]
    return []
