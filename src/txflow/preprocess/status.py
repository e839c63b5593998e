from __future__ import annotations

from typing import Callable

from txflow.models import Outcome

SUCCESS_STATUSES = frozenset({"success", "completed", "complete"})
PENDING_STATUSES = frozenset({"pending", "processing", "in_progress"})


def is_success(status: str | None) -> bool:
    return (status or "").strip().lower() in SUCCESS_STATUSES


def is_pending(status: str | None) -> bool:
    return (status or "").strip().lower() in PENDING_STATUSES


def classify_outcome(
    status: str | None,
    success: Callable[[str | None], bool] = is_success,
    pending: Callable[[str | None], bool] = is_pending,
) -> Outcome:
    if success(status):
        return Outcome.SUCCESS
    if pending(status):
        return Outcome.PENDING
    return Outcome.FAILED
