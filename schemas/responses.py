# User value: This file pins the response shapes so clients can rely on the same fields from every endpoint.
from typing import List, Optional

from pydantic import BaseModel, Field


class JobSubmittedResponse(BaseModel):
    # User value: confirms a job is accepted and tells users when its outputs disappear.
    job_id: str
    status: str
    expires_at: str
    idempotency_key: str


class JobErrorResponse(BaseModel):
    code: str
    message: str


class JobStatusResponse(BaseModel):
    # User value: shares live status so users know where the extraction stands and how long it stays readable.
    job_id: str
    tenant_id: str
    transform_type: str
    status: str
    progress: int = Field(ge=0, le=100)
    is_expired: bool
    time_remaining_sec: int = Field(ge=0)
    retry_count: int = Field(ge=0)
    max_retries: int = Field(ge=0)
    created_at: str
    expires_at: str
    error: Optional[JobErrorResponse] = None


class JobRetryResponse(BaseModel):
    # User value: shows the retry kept the same job identity and how many attempts remain.
    job_id: str
    status: str
    retry_count: int
    max_retries: int
    expires_at: str
    idempotency_key: str


class ViolationListResponse(BaseModel):
    total: int
    violations: List[dict] = Field(default_factory=list)
