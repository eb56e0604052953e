# User value: This file turns every job attempt into a hash-anchored record a reviewer can check without trusting the service.
import logging
from datetime import datetime
from typing import Optional

from config import JOB_TTL_SEC, SERVICE_LAYER, SERVICE_NAME
from schemas.job import JobRecord
from schemas.job_contract import JOB_STATUS_COMPLETED, JOB_STATUS_FAILED
from schemas.proof import (
    ContinuityCheck,
    GovernanceCheck,
    ProofError,
    ProofExpiration,
    ProofIntegrity,
    ProofPack,
    ProofTiming,
)
from services.continuity_guard import ContinuityGuard
from services.extraction_executor import PRIMARY_OUTPUT_NAME
from utils.hashing import combined_hash, content_hash

logger = logging.getLogger("api.proof")

INVARIANTS = (
    "proof_production",
    "no_continuity_submission",
    "identity_preserved",
    "attempt_isolation",
    "output_continuity_clean",
    "output_language_clean",
)


def proof_pack_id(job: JobRecord) -> str:
    return f"proof-{job.job_id}-a{job.retry_count}"


def _integrity(job: JobRecord) -> ProofIntegrity:
    input_hashes = {f"{f.fieldname}/{f.filename}": content_hash(f.content) for f in job.files}
    output_hashes = {}
    output_hash = None
    for output in job.outputs:
        digest = content_hash(output.content.encode("utf-8"))
        output_hashes[output.name] = digest
        if output.name == PRIMARY_OUTPUT_NAME:
            output_hash = digest
    return ProofIntegrity(
        input_hash=combined_hash(f.content for f in job.files),
        input_hashes=input_hashes,
        output_hash=output_hash,
        output_hashes=output_hashes,
    )


def _identity_preserved(job: JobRecord) -> bool:
    if not job.job_id or not job.idempotency_key:
        return False
    return all(job.job_id in output.location for output in job.outputs if output.location)


def _attempt_isolated(job: JobRecord) -> bool:
    if job.status == JOB_STATUS_FAILED and job.outputs:
        return False
    if job.status == JOB_STATUS_COMPLETED and job.error is not None:
        return False
    return True


# User value: builds the proof for success and failure alike so no attempt goes unrecorded.
def generate_proof(
    job: JobRecord,
    *,
    now: datetime,
    ttl_sec: int = JOB_TTL_SEC,
    guard: Optional[ContinuityGuard] = None,
) -> ProofPack:
    guard = guard or ContinuityGuard()
    chain_references = guard.find_chain_references(job.submission_fields())
    integrity = _integrity(job)
    is_expired = job.is_expired(now)

    checks = [
        GovernanceCheck(invariant="proof_production", passed=True),
        GovernanceCheck(
            invariant="no_continuity_submission",
            passed=not chain_references,
            note=", ".join(chain_references) or None,
        ),
        GovernanceCheck(invariant="identity_preserved", passed=_identity_preserved(job)),
        GovernanceCheck(invariant="attempt_isolation", passed=_attempt_isolated(job)),
        GovernanceCheck(
            invariant="output_continuity_clean",
            passed=not job.continuity_warnings,
            note=f"{len(job.continuity_warnings)} warning(s)" if job.continuity_warnings else None,
        ),
        GovernanceCheck(
            invariant="output_language_clean",
            passed=not job.language_warnings,
            note=", ".join(job.language_warnings) or None,
        ),
    ]

    proof = ProofPack(
        proof_pack_id=proof_pack_id(job),
        job_id=job.job_id,
        tenant_id=job.tenant_id,
        job_type=job.job_type,
        transform_type=job.transform_type,
        idempotency_key=job.idempotency_key,
        layer=SERVICE_LAYER,
        source=SERVICE_NAME,
        authoritative=False,
        attempt=job.retry_count,
        status=job.status,
        generated_at=now,
        timing=ProofTiming(
            created_at=job.created_at,
            started_at=job.started_at,
            completed_at=job.completed_at,
            duration_ms=job.duration_ms,
        ),
        integrity=integrity,
        governance=checks,
        continuity_check=ContinuityCheck(
            clean=not chain_references and not job.continuity_warnings,
            chain_references=chain_references,
            output_warning_count=len(job.continuity_warnings),
        ),
        expiration=ProofExpiration(
            expires_at=job.expires_at,
            ttl_seconds=ttl_sec,
            is_expired=is_expired,
            can_promote=job.status == JOB_STATUS_COMPLETED and not is_expired,
        ),
        error=ProofError(code=job.error.code, message=job.error.message) if job.error else None,
    )
    logger.info(
        "proof_generated proof_pack_id=%s job_id=%s status=%s output_hash=%s",
        proof.proof_pack_id,
        job.job_id,
        job.status,
        integrity.output_hash or "",
    )
    return proof
