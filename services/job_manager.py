# User value: This file owns every job from submission to expiry so each extraction stays atomic, bounded, and provable.
import asyncio
import hashlib
import logging
import time
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from config import (
    DISPLAY_CURRENCY,
    JOB_TTL_SEC,
    MAX_CONCURRENT_EXTRACTIONS,
    MAX_RETRIES,
    USD_TO_DISPLAY_RATE,
)
from schemas.job import InputFile, JobError, JobRecord, utcnow
from schemas.job_contract import (
    IN_FLIGHT_STATUSES,
    JOB_STATUS_COMPLETED,
    JOB_STATUS_FAILED,
    JOB_STATUS_PROCESSING,
    JOB_STATUS_QUEUED,
    JOB_TYPE_FORMAT_TRANSFORM,
    PROGRESS_DONE,
)
from services import usage_accountant
from services.artifact_store import ArtifactStore
from services.continuity_guard import ContinuityGuard
from services.errors import (
    ExpiredError,
    GovernanceApiError,
    GovernanceViolation,
    JobNotCompleted,
    JobNotFound,
    JobValidationError,
    ProofNotAvailable,
    RetryLimitExceeded,
    StateConflict,
    UnsupportedTransform,
)
from services.extraction_executor import ExtractionExecutor
from services.job_store import InMemoryJobStore, JobStore
from services.job_validator import validate_files, validate_job_shape, validate_tenant
from services.proof_generator import generate_proof
from utils.hashing import content_hash
from utils.metrics import incr, observe_ms
from utils.stage_logging import log_stage
from utils.status_machine import apply_transition, effective_status

logger = logging.getLogger("api.job_manager")


# User value: gives identical submissions the same key so callers can spot duplicates without server state.
def derive_idempotency_key(tenant_id: str, transform_type: str, files: Sequence[InputFile]) -> str:
    parts = [tenant_id, transform_type] + [content_hash(f.content) for f in files]
    return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()[:32]


def _normalize_key(value: Any) -> Optional[str]:
    if value is None:
        return None
    key = str(value).strip()
    return key or None


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


class JobManager:
    """Single owner of job state. Every status change goes through the status machine."""

    def __init__(
        self,
        executor: ExtractionExecutor,
        *,
        store: Optional[JobStore] = None,
        guard: Optional[ContinuityGuard] = None,
        artifact_store: Optional[ArtifactStore] = None,
        clock: Callable[[], datetime] = utcnow,
        ttl_sec: int = JOB_TTL_SEC,
        max_retries: int = MAX_RETRIES,
        max_concurrent: int = MAX_CONCURRENT_EXTRACTIONS,
        exchange_rate: float = USD_TO_DISPLAY_RATE,
        display_currency: str = DISPLAY_CURRENCY,
    ):
        self._executor = executor
        self._store = store if store is not None else InMemoryJobStore()
        self.guard = guard if guard is not None else ContinuityGuard()
        self._artifacts = artifact_store
        self._clock = clock
        self.ttl_sec = ttl_sec
        self.max_retries = max_retries
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._exchange_rate = exchange_rate
        self._display_currency = display_currency
        self._tasks: Dict[str, asyncio.Task] = {}

    async def _put(self, job: JobRecord) -> None:
        # Store backends may block on the network.
        await asyncio.to_thread(self._store.put, job)

    # =========================================================
    # SUBMIT
    # =========================================================
    async def submit(self, request: Mapping[str, Any], files: Sequence[InputFile] = ()) -> dict:
        fields = dict(request)
        fields.setdefault("job_type", JOB_TYPE_FORMAT_TRANSFORM)
        files = list(files)

        errors = validate_job_shape(fields)
        if errors:
            incr("jobs_rejected_total", reason="validation")
            raise JobValidationError(errors)

        tenant_id = str(fields.get("tenant_id") or "").strip()
        transform_type = fields["transform_type"]
        if not self._executor.supports(transform_type):
            incr("jobs_rejected_total", reason="unsupported")
            raise UnsupportedTransform(
                f"No extraction is configured for transform type: {transform_type}",
                detail={"transform_type": transform_type},
            )
        idempotency_key = _normalize_key(fields.get("idempotency_key")) or derive_idempotency_key(
            tenant_id, transform_type, files
        )
        fields["idempotency_key"] = idempotency_key

        decision = self.guard.evaluate_submission(fields)
        if not decision.allowed:
            incr("jobs_rejected_total", reason="governance")
            log_stage(
                job_id="",
                stage="SUBMIT",
                event="BLOCKED",
                tenant=tenant_id,
                transform_type=transform_type,
                reason=decision.reason,
                idempotency_key=idempotency_key,
            )
            raise GovernanceViolation(decision.reason, violation=decision.violation)

        errors = validate_tenant(fields) + validate_files(transform_type, files)
        if errors:
            incr("jobs_rejected_total", reason="validation")
            raise JobValidationError(errors)

        now = self._clock()
        job = JobRecord(
            tenant_id=tenant_id,
            job_type=fields["job_type"],
            transform_type=transform_type,
            idempotency_key=idempotency_key,
            status=JOB_STATUS_QUEUED,
            created_at=now,
            expires_at=now + timedelta(seconds=self.ttl_sec),
            files=files,
            prompt=_optional_text(fields.get("prompt")),
            instructions=_optional_text(fields.get("instructions")),
            metadata=dict(fields.get("metadata") or {}),
        )
        await self._put(job)
        incr("jobs_submitted_total", transform_type=transform_type)
        log_stage(
            job_id=job.job_id,
            stage="SUBMIT",
            event="ACCEPTED",
            tenant=tenant_id,
            transform_type=transform_type,
            attempt=job.retry_count,
            file_count=len(files),
            idempotency_key=idempotency_key,
        )

        self._spawn(job.job_id)
        return {
            "job_id": job.job_id,
            "status": job.status,
            "expires_at": job.expires_at.isoformat(),
            "idempotency_key": job.idempotency_key,
        }

    # =========================================================
    # EXECUTE
    # =========================================================
    def _spawn(self, job_id: str) -> None:
        task = asyncio.create_task(self._execute(job_id), name=f"extract-{job_id}")
        self._tasks[job_id] = task

        def _forget(done: asyncio.Task) -> None:
            if self._tasks.get(job_id) is done:
                self._tasks.pop(job_id, None)

        task.add_done_callback(_forget)

    async def _execute(self, job_id: str) -> None:
        async with self._semaphore:
            job = await asyncio.to_thread(self._store.get, job_id)
            if job is None:
                logger.warning("job_vanished_before_execute job_id=%s", job_id)
                return

            apply_transition(job, JOB_STATUS_PROCESSING, context="execute")
            job.started_at = self._clock()
            await self._put(job)
            log_stage(
                job_id=job_id,
                stage="EXTRACT",
                event="STARTED",
                tenant=job.tenant_id,
                transform_type=job.transform_type,
                attempt=job.retry_count,
            )

            async def on_progress(pct: int) -> None:
                job.progress = pct
                await self._put(job)

            started = time.perf_counter()
            error: Optional[JobError] = None
            try:
                result = await self._executor.execute(job, on_progress=on_progress)
            except asyncio.CancelledError:
                await self._finish_failed(job, JobError(code="CANCELLED", message="Job cancelled during shutdown"), started)
                raise
            except GovernanceApiError as exc:
                error = JobError(code=exc.error_code, message=exc.message)
            except Exception as exc:
                logger.exception("extraction_unexpected_error job_id=%s", job_id)
                error = JobError(code="INTERNAL_ERROR", message=f"{exc.__class__.__name__}: {exc}")

            if error is not None:
                await self._finish_failed(job, error, started)
                return

            job.outputs = result.outputs
            job.extracted_data = result.extracted_data
            job.parse_mode = result.parse_mode
            job.token_usage = result.token_usage
            job.language_warnings = result.language_warnings

            scan = self.guard.evaluate_result(result.model_dump())
            job.continuity_warnings = scan["warnings"]
            for warning in job.continuity_warnings:
                logger.warning(
                    "output_continuity_warning job_id=%s type=%s output=%s",
                    job_id,
                    warning.get("type"),
                    warning.get("output"),
                )

            job.metrics = usage_accountant.calculate(
                {"token_usage": result.token_usage, "execution_time_ms": result.execution_time_ms},
                exchange_rate=self._exchange_rate,
                display_currency=self._display_currency,
            )
            job.progress = PROGRESS_DONE
            job.completed_at = self._clock()
            job.duration_ms = int((time.perf_counter() - started) * 1000)
            apply_transition(job, JOB_STATUS_COMPLETED, context="execute")
            self._attach_proof(job)
            await self._put(job)

            incr("jobs_finished_total", status=JOB_STATUS_COMPLETED, transform_type=job.transform_type)
            observe_ms("job_duration_ms", job.duration_ms, transform_type=job.transform_type)
            log_stage(
                job_id=job_id,
                stage="EXTRACT",
                event="COMPLETED",
                tenant=job.tenant_id,
                transform_type=job.transform_type,
                attempt=job.retry_count,
                duration_ms=job.duration_ms,
                parse_mode=job.parse_mode,
                continuity_warning_count=len(job.continuity_warnings),
                language_warning_count=len(job.language_warnings),
            )
            logger.info("job_usage job_id=%s\n%s", job_id, usage_accountant.format_for_display(job.metrics))

    async def _finish_failed(self, job: JobRecord, error: JobError, started: float) -> None:
        job.error = error
        job.completed_at = self._clock()
        job.duration_ms = int((time.perf_counter() - started) * 1000)
        apply_transition(job, JOB_STATUS_FAILED, context="execute")
        self._attach_proof(job)
        await self._put(job)
        incr("jobs_finished_total", status=JOB_STATUS_FAILED, transform_type=job.transform_type)
        log_stage(
            job_id=job.job_id,
            stage="EXTRACT",
            event="FAILED",
            tenant=job.tenant_id,
            transform_type=job.transform_type,
            attempt=job.retry_count,
            error=f"{error.code}: {error.message}",
        )

    def _attach_proof(self, job: JobRecord) -> None:
        try:
            proof = generate_proof(job, now=self._clock(), ttl_sec=self.ttl_sec, guard=self.guard)
            job.proof = proof.model_dump(mode="json")
        except Exception:
            # A missing proof never changes the job outcome.
            incr("proof_generation_failures_total")
            logger.exception("proof_generation_failed job_id=%s", job.job_id)

    # =========================================================
    # RETRY
    # =========================================================
    async def retry(self, job_id: str, retry_request: Optional[Mapping[str, Any]] = None) -> dict:
        job = await asyncio.to_thread(self._require, job_id)
        now = self._clock()

        if job.is_expired(now):
            raise ExpiredError("Job has expired and cannot be retried", detail={"job_id": job_id})
        if self.is_in_flight(job_id) or job.status in IN_FLIGHT_STATUSES:
            raise StateConflict(
                "Job is still running; retry is only allowed after it finishes",
                detail={"job_id": job_id, "status": job.status},
            )
        if job.retry_count >= self.max_retries:
            incr("job_retries_rejected_total", reason="limit")
            raise RetryLimitExceeded(
                f"Retry limit reached ({self.max_retries})",
                detail={"job_id": job_id, "retry_count": job.retry_count, "max_retries": self.max_retries},
            )

        request = dict(retry_request or {})
        request.setdefault("job_id", job_id)
        decision = self.guard.evaluate_retry(job, request)
        if not decision.allowed:
            incr("job_retries_rejected_total", reason="governance")
            log_stage(
                job_id=job_id,
                stage="RETRY",
                event="BLOCKED",
                tenant=job.tenant_id,
                transform_type=job.transform_type,
                attempt=job.retry_count,
                reason=decision.reason,
            )
            raise GovernanceViolation(decision.reason, violation=decision.violation)

        job.clear_attempt()
        job.retry_count += 1
        job.expires_at = max(job.expires_at, now + timedelta(seconds=self.ttl_sec))
        apply_transition(job, JOB_STATUS_QUEUED, context="retry")
        await self._put(job)

        incr("job_retries_total", transform_type=job.transform_type)
        log_stage(
            job_id=job_id,
            stage="RETRY",
            event="ACCEPTED",
            tenant=job.tenant_id,
            transform_type=job.transform_type,
            attempt=job.retry_count,
        )
        self._spawn(job_id)
        return {
            "job_id": job.job_id,
            "status": job.status,
            "retry_count": job.retry_count,
            "max_retries": self.max_retries,
            "expires_at": job.expires_at.isoformat(),
            "idempotency_key": job.idempotency_key,
        }

    # =========================================================
    # READS
    # =========================================================
    def _require(self, job_id: str) -> JobRecord:
        job = self._store.get(job_id)
        if job is None:
            raise JobNotFound(f"Job not found: {job_id}", detail={"job_id": job_id})
        return job

    def get_job(self, job_id: str) -> JobRecord:
        return self._require(job_id)

    def is_in_flight(self, job_id: str) -> bool:
        task = self._tasks.get(job_id)
        return task is not None and not task.done()

    def get_status(self, job_id: str) -> dict:
        job = self._require(job_id)
        now = self._clock()
        expired = job.is_expired(now)
        return {
            "job_id": job.job_id,
            "tenant_id": job.tenant_id,
            "transform_type": job.transform_type,
            "status": effective_status(job, now),
            "progress": job.progress,
            "is_expired": expired,
            "time_remaining_sec": max(0, int((job.expires_at - now).total_seconds())),
            "retry_count": job.retry_count,
            "max_retries": self.max_retries,
            "created_at": job.created_at.isoformat(),
            "expires_at": job.expires_at.isoformat(),
            "error": job.error.model_dump() if job.error else None,
        }

    def get_result(self, job_id: str) -> dict:
        job = self._require(job_id)
        if job.is_expired(self._clock()):
            raise ExpiredError("Job has expired; results are no longer available", detail={"job_id": job_id})
        if job.status != JOB_STATUS_COMPLETED:
            raise JobNotCompleted(f"Job is not completed (status: {job.status})", status=job.status)
        return {
            "job_id": job.job_id,
            "status": job.status,
            "duration_ms": job.duration_ms,
            "outputs": [o.model_dump(exclude={"content"}) for o in job.outputs],
            "extracted_data": job.extracted_data,
            "parse_mode": job.parse_mode,
            "token_metrics": job.metrics,
            "continuity_warnings": job.continuity_warnings,
            "language_warnings": job.language_warnings,
            "expires_at": job.expires_at.isoformat(),
        }

    def get_proof(self, job_id: str) -> dict:
        job = self._require(job_id)
        if job.is_expired(self._clock()):
            raise ExpiredError("Job has expired; proof is no longer available", detail={"job_id": job_id})
        if job.proof is None:
            raise ProofNotAvailable(
                "Proof not available yet for this attempt", detail={"job_id": job_id, "status": job.status}
            )
        # Failed attempts carry no usage metrics.
        return {"proof": job.proof, "token_metrics": job.metrics}

    # =========================================================
    # HOUSEKEEPING
    # =========================================================
    async def wait_for(self, job_id: str) -> None:
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    def purge_expired(self) -> List[str]:
        now = self._clock()
        purged: List[str] = []
        for job_id in self._store.list_ids():
            job = self._store.get(job_id)
            if job is None or not job.is_expired(now) or self.is_in_flight(job_id):
                continue
            if self._artifacts is not None:
                try:
                    self._artifacts.delete_job(job_id)
                except Exception:
                    logger.exception("artifact_purge_failed job_id=%s", job_id)
                    continue
            self._store.delete(job_id)
            purged.append(job_id)
        if purged:
            incr("jobs_purged_total", value=float(len(purged)))
            logger.info("expired_jobs_purged count=%s", len(purged))
        return purged

    async def sweep_forever(self, interval_sec: float) -> None:
        while True:
            await asyncio.sleep(interval_sec)
            await asyncio.to_thread(self.purge_expired)

    async def shutdown(self) -> None:
        tasks = [t for t in self._tasks.values() if not t.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info("job_manager_shutdown cancelled=%s", len(tasks))
