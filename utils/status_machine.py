# User value: This file keeps job status honest so nobody sees a job jump to a state it never reached.
import logging
from datetime import datetime
from typing import Optional

from schemas.job_contract import (
    JOB_STATUS_QUEUED,
    JOB_STATUS_PROCESSING,
    JOB_STATUS_COMPLETED,
    JOB_STATUS_FAILED,
    JOB_STATUS_EXPIRED,
    TERMINAL_STATUSES,
)
from services.errors import StateConflict

logger = logging.getLogger("api.status_machine")

_ALLOWED = {
    None: {JOB_STATUS_QUEUED},
    JOB_STATUS_QUEUED: {JOB_STATUS_PROCESSING, JOB_STATUS_FAILED},
    JOB_STATUS_PROCESSING: {JOB_STATUS_COMPLETED, JOB_STATUS_FAILED},
    # Terminal states only leave through an explicit retry.
    JOB_STATUS_COMPLETED: {JOB_STATUS_QUEUED},
    JOB_STATUS_FAILED: {JOB_STATUS_QUEUED},
}


# User value: treats " Completed " and "completed" as the same status so stored casing never blocks a transition.
def _norm(status: Optional[str]) -> Optional[str]:
    if status is None:
        return None
    s = str(status).strip().lower()
    return s or None


# User value: only lifecycle edges are allowed; "expired" is never a target because it is read-time only.
def is_allowed_transition(current: Optional[str], target: Optional[str]) -> bool:
    target_n = _norm(target)
    if not target_n or target_n == JOB_STATUS_EXPIRED:
        return False
    current_n = _norm(current)
    return target_n in _ALLOWED.get(current_n, set())


def is_terminal(status: Optional[str]) -> bool:
    return _norm(status) in TERMINAL_STATUSES


# User value: moves a job to its next state and refuses anything the lifecycle does not allow.
def apply_transition(job, target: str, *, context: str) -> tuple[Optional[str], str]:
    current = _norm(job.status)
    target_n = _norm(target)
    if not is_allowed_transition(current, target_n):
        logger.warning(
            "status_transition_blocked context=%s job_id=%s current=%s target=%s",
            context,
            job.job_id,
            current,
            target_n,
        )
        raise StateConflict(
            f"Invalid status transition to {target_n or 'NONE'} from {current or 'NONE'}",
            detail={"current": current, "target": target_n},
        )
    job.status = target_n
    return current, target_n


# User value: shows expired jobs as expired without ever rewriting what was stored.
def effective_status(job, now: datetime) -> str:
    if job.is_expired(now):
        return JOB_STATUS_EXPIRED
    return job.status
