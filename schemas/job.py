# User value: This file defines the one job record every governance step reads and writes.
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from schemas.job_contract import JOB_STATUS_QUEUED, JOB_TYPE_FORMAT_TRANSFORM


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InputFile(BaseModel):
    """An uploaded document, keyed by the form field it arrived under."""

    model_config = ConfigDict(ser_json_bytes="base64", val_json_bytes="base64")

    fieldname: str
    filename: str
    content_type: str = "application/octet-stream"
    size_bytes: int = 0
    content: bytes = b""


class OutputArtifact(BaseModel):
    name: str
    content_type: str
    size_bytes: int
    sha256: str
    location: str = ""
    content: str = ""


class JobError(BaseModel):
    code: str
    message: str


class JobRecord(BaseModel):
    """Tracks one governed extraction job across all of its attempts."""

    job_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    tenant_id: str
    job_type: str = JOB_TYPE_FORMAT_TRANSFORM
    transform_type: str
    idempotency_key: str

    status: str = JOB_STATUS_QUEUED
    progress: int = 0
    retry_count: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    expires_at: datetime

    files: List[InputFile] = Field(default_factory=list)
    prompt: Optional[str] = None
    instructions: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    outputs: List[OutputArtifact] = Field(default_factory=list)
    extracted_data: Optional[Dict[str, Any]] = None
    parse_mode: Optional[str] = None
    token_usage: Optional[Dict[str, Any]] = None
    metrics: Optional[Dict[str, Any]] = None
    proof: Optional[Dict[str, Any]] = None
    error: Optional[JobError] = None
    continuity_warnings: List[Dict[str, Any]] = Field(default_factory=list)
    language_warnings: List[str] = Field(default_factory=list)
    duration_ms: Optional[int] = None

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at

    def submission_fields(self) -> dict:
        """The caller-controlled fields, in the shape the continuity guard inspects."""
        fields: Dict[str, Any] = {
            "tenant_id": self.tenant_id,
            "job_type": self.job_type,
            "transform_type": self.transform_type,
            "idempotency_key": self.idempotency_key,
        }
        if self.prompt is not None:
            fields["prompt"] = self.prompt
        if self.instructions is not None:
            fields["instructions"] = self.instructions
        if self.metadata:
            fields["metadata"] = dict(self.metadata)
        return fields

    def clear_attempt(self) -> None:
        """Drop everything the previous attempt produced. Nothing carries over."""
        self.outputs = []
        self.extracted_data = None
        self.parse_mode = None
        self.token_usage = None
        self.metrics = None
        self.proof = None
        self.error = None
        self.continuity_warnings = []
        self.language_warnings = []
        self.duration_ms = None
        self.started_at = None
        self.completed_at = None
        self.progress = 0
