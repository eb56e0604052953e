# User value: This file exposes submit, status, result, proof and retry so callers drive a governed job over plain HTTP.
# routes/jobs.py
import json
import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Request
from starlette.datastructures import UploadFile

from schemas.job import InputFile
from schemas.requests import RetryRequest
from schemas.responses import JobRetryResponse, JobStatusResponse, JobSubmittedResponse
from services.continuity_guard import REFERENCE_FLAG
from services.errors import JobValidationError
from services.job_manager import JobManager
from utils.metrics import incr
from utils.request_id import get_request_id

router = APIRouter(prefix="/api/jobs", tags=["jobs"])
logger = logging.getLogger("api.jobs")

TRUTHY = {"1", "true", "yes", "on"}


# User value: hands every route the one manager that owns job state for this process.
def get_job_manager(request: Request) -> JobManager:
    return request.app.state.job_manager


def _parse_metadata(raw: Any) -> Any:
    if not isinstance(raw, str):
        return raw
    if not raw.strip():
        return None
    try:
        return json.loads(raw)
    except ValueError as exc:
        raise JobValidationError([{"field": "metadata", "message": "Metadata must be a JSON object"}]) from exc


# User value: turns a multipart form into scalar fields plus named documents, keeping field names as sent.
async def read_submission(request: Request) -> tuple[dict, list[InputFile]]:
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        try:
            body = await request.json()
        except ValueError as exc:
            raise JobValidationError([{"field": "body", "message": "Request body must be valid JSON"}]) from exc
        if not isinstance(body, dict):
            raise JobValidationError([{"field": "body", "message": "Request body must be a JSON object"}])
        return body, []

    form = await request.form()
    fields: dict = {}
    files: list[InputFile] = []
    for key, value in form.multi_items():
        if isinstance(value, UploadFile):
            content = await value.read()
            files.append(
                InputFile(
                    fieldname=key,
                    filename=value.filename or key,
                    content_type=value.content_type or "application/octet-stream",
                    size_bytes=len(content),
                    content=content,
                )
            )
        elif key == "metadata":
            fields[key] = _parse_metadata(value)
        elif key == REFERENCE_FLAG:
            fields[key] = str(value).strip().lower() in TRUTHY
        else:
            fields[key] = value
    return fields, files


@router.post("/submit", status_code=202, response_model=JobSubmittedResponse)
# User value: accepts a document job only after governance approves it, so nothing blocked is ever stored.
async def submit_job(request: Request, manager: JobManager = Depends(get_job_manager)):
    fields, files = await read_submission(request)
    out = await manager.submit(fields, files)
    incr("api_jobs_submit_total", transform_type=str(fields.get("transform_type") or ""))
    logger.info(
        "job_submitted job_id=%s request_id=%s file_count=%s",
        out["job_id"],
        get_request_id() or "",
        len(files),
    )
    return out


@router.get("/{job_id}/status", response_model=JobStatusResponse)
# User value: shows live progress and remaining lifetime without exposing any outputs.
def job_status(job_id: str, manager: JobManager = Depends(get_job_manager)):
    return manager.get_status(job_id)


@router.get("/{job_id}/result")
# User value: returns extracted data only for completed, unexpired jobs.
def job_result(job_id: str, manager: JobManager = Depends(get_job_manager)):
    return manager.get_result(job_id)


@router.get("/{job_id}/proof")
# User value: returns the hash-anchored record of the latest attempt with its usage metrics for offline verification.
def job_proof(job_id: str, manager: JobManager = Depends(get_job_manager)):
    return manager.get_proof(job_id)


@router.post("/{job_id}/retry", status_code=202, response_model=JobRetryResponse)
# User value: re-runs the same job with the same inputs; anything that would change identity is refused.
async def retry_job(
    job_id: str,
    payload: Optional[RetryRequest] = None,
    manager: JobManager = Depends(get_job_manager),
):
    retry_request = payload.model_dump(exclude_none=True) if payload is not None else {}
    out = await manager.retry(job_id, retry_request)
    incr("api_jobs_retry_total")
    return out
