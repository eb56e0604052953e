# User value: This file publishes the closed job vocabulary so clients validate against the same names the server uses.
from fastapi import APIRouter

from config import JOB_TTL_SEC, MAX_CONCURRENT_EXTRACTIONS, MAX_RETRIES
from schemas.job_contract import (
    CONTRACT_VERSION,
    FILE_CONSTRAINTS,
    JOB_STATUSES,
    JOB_TYPES,
    RESULT_FIELDS,
    STATUS_FIELDS,
    TERMINAL_STATUSES,
    TRANSFORM_TYPES,
)

router = APIRouter()


@router.get("/contract/job-status")
# User value: keeps job/status fields consistent across every client view.
def job_status_contract():
    return {
        "contract_version": CONTRACT_VERSION,
        "job_types": list(JOB_TYPES),
        "transform_types": list(TRANSFORM_TYPES),
        "job_statuses": list(JOB_STATUSES),
        "terminal_statuses": list(TERMINAL_STATUSES),
        "status_fields": list(STATUS_FIELDS),
        "result_fields": list(RESULT_FIELDS),
        "file_constraints": {
            name: {
                "required": list(c["required"]),
                "optional": list(c["optional"]),
                "max_files": c["max_files"],
                "max_total_size_bytes": c["max_total_size_bytes"],
            }
            for name, c in FILE_CONSTRAINTS.items()
        },
        "capabilities": {
            "max_retries": MAX_RETRIES,
            "job_ttl_sec": JOB_TTL_SEC,
            "max_concurrent_extractions": MAX_CONCURRENT_EXTRACTIONS,
        },
    }
