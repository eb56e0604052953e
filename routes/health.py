from fastapi import APIRouter, Request

from config import ARTIFACT_BACKEND, JOB_STORE_BACKEND, SERVICE_NAME
from utils.metrics import snapshot

router = APIRouter(prefix="/health", tags=["health"])


@router.get("")
def health(request: Request):
    manager = getattr(request.app.state, "job_manager", None)
    return {
        "status": "OK",
        "service": SERVICE_NAME,
        "job_store": JOB_STORE_BACKEND,
        "artifact_store": ARTIFACT_BACKEND,
        "manager_ready": manager is not None,
        "metrics": snapshot(),
    }
