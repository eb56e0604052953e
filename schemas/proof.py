# User value: This file fixes the shape of the execution record so downstream reviewers can verify any attempt offline.
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class ProofTiming(_Frozen):
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = None


class ProofIntegrity(_Frozen):
    input_hash: str
    input_hashes: Dict[str, str] = Field(default_factory=dict)
    # Hash of the primary artifact bytes; None when the attempt produced no outputs.
    output_hash: Optional[str] = None
    output_hashes: Dict[str, str] = Field(default_factory=dict)
    algorithm: str = "sha256"


class GovernanceCheck(_Frozen):
    invariant: str
    passed: bool
    note: Optional[str] = None


class ContinuityCheck(_Frozen):
    clean: bool
    chain_references: List[str] = Field(default_factory=list)
    output_warning_count: int = 0


class ProofExpiration(_Frozen):
    expires_at: datetime
    ttl_seconds: int
    is_expired: bool
    can_promote: bool


class ProofError(_Frozen):
    code: str
    message: str


class ProofPack(_Frozen):
    """Immutable record of one execution attempt."""

    proof_pack_id: str
    job_id: str
    tenant_id: str
    job_type: str
    transform_type: str
    idempotency_key: str
    layer: str
    source: str
    authoritative: bool = False
    attempt: int
    status: str
    generated_at: datetime
    timing: ProofTiming
    integrity: ProofIntegrity
    governance: List[GovernanceCheck] = Field(default_factory=list)
    continuity_check: ContinuityCheck
    expiration: ProofExpiration
    error: Optional[ProofError] = None

    def passed(self, invariant: str) -> Optional[bool]:
        for check in self.governance:
            if check.invariant == invariant:
                return check.passed
        return None
