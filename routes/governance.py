# User value: This file lets operators see the continuity rules in force and every submission they refused.
from fastapi import APIRouter, Depends

from routes.jobs import get_job_manager
from schemas.responses import ViolationListResponse
from services.job_manager import JobManager

router = APIRouter(prefix="/governance", tags=["governance"])


@router.get("/continuity")
def continuity_status(manager: JobManager = Depends(get_job_manager)):
    return manager.guard.get_status()


@router.get("/violations", response_model=ViolationListResponse)
# User value: exposes the audit trail so blocked chaining attempts can be reviewed later.
def continuity_violations(manager: JobManager = Depends(get_job_manager)):
    violations = manager.guard.get_violations()
    return {"total": len(violations), "violations": violations}
