# User value: This file rejects malformed submissions up front so users learn what is missing before any job exists.
from typing import Any, List, Mapping, Sequence

from schemas.job_contract import FILE_CONSTRAINTS, JOB_TYPES, MB, TRANSFORM_TYPES


# User value: returns consistent error payloads so users see exactly which field to fix.
def _error(field: str, message: str) -> dict:
    return {"field": field, "message": message}


# User value: checks the job and transform names against the closed set the executor can run.
def validate_job_shape(request: Mapping[str, Any]) -> List[dict]:
    errors: List[dict] = []

    job_type = request.get("job_type")
    if not job_type:
        errors.append(_error("job_type", "Job type is required"))
    elif job_type not in JOB_TYPES:
        errors.append(_error("job_type", f"Invalid job type. Allowed: {', '.join(JOB_TYPES)}"))

    transform_type = request.get("transform_type")
    if not transform_type:
        errors.append(_error("transform_type", "Transform type is required"))
    elif transform_type not in TRANSFORM_TYPES:
        errors.append(
            _error("transform_type", f"Invalid transform type. Allowed: {', '.join(TRANSFORM_TYPES)}")
        )

    metadata = request.get("metadata")
    if metadata is not None and not isinstance(metadata, Mapping):
        errors.append(_error("metadata", "Metadata must be an object"))

    return errors


# User value: makes sure every job is attributable to a tenant before it is stored.
def validate_tenant(request: Mapping[str, Any]) -> List[dict]:
    tenant_id = request.get("tenant_id")
    if not isinstance(tenant_id, str) or not tenant_id.strip():
        return [_error("tenant_id", "Tenant id is required")]
    return []


# User value: enforces per-transform file count, size, and required documents.
def validate_files(transform_type: str, files: Sequence[Any]) -> List[dict]:
    constraints = FILE_CONSTRAINTS.get(transform_type)
    if constraints is None:
        return []

    errors: List[dict] = []
    if len(files) > constraints["max_files"]:
        errors.append(_error("files", f"Too many files. Maximum: {constraints['max_files']}"))

    total_size = sum(int(getattr(f, "size_bytes", 0) or 0) for f in files)
    if total_size > constraints["max_total_size_bytes"]:
        errors.append(
            _error(
                "files",
                f"Total file size exceeds limit: {constraints['max_total_size_bytes'] // MB}MB",
            )
        )

    fieldnames = {getattr(f, "fieldname", None) for f in files}
    for required in constraints["required"]:
        if required not in fieldnames:
            errors.append(_error("files", f"Required file missing: {required}"))

    return errors
