# User value: This file keeps the job table consistent so readers never see a half-written job.
import logging
import threading
from datetime import datetime, timezone
from typing import Dict, List, Optional, Protocol

from config import JOB_STORE_BACKEND, REDIS_KEY_PREFIX
from schemas.job import JobRecord

logger = logging.getLogger("api.job_store")


class JobStore(Protocol):
    def get(self, job_id: str) -> Optional[JobRecord]:
        ...

    def put(self, job: JobRecord) -> None:
        ...

    def delete(self, job_id: str) -> None:
        ...

    def list_ids(self) -> List[str]:
        ...


class InMemoryJobStore:
    """Process-local table. Records are copied on the way in and out."""

    def __init__(self):
        self._lock = threading.Lock()
        self._jobs: Dict[str, JobRecord] = {}

    def get(self, job_id: str) -> Optional[JobRecord]:
        with self._lock:
            job = self._jobs.get(job_id)
            return job.model_copy(deep=True) if job is not None else None

    def put(self, job: JobRecord) -> None:
        with self._lock:
            self._jobs[job.job_id] = job.model_copy(deep=True)

    def delete(self, job_id: str) -> None:
        with self._lock:
            self._jobs.pop(job_id, None)

    def list_ids(self) -> List[str]:
        with self._lock:
            return list(self._jobs.keys())

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)


class RedisJobStore:
    """One JSON blob per job; the key expires shortly after the job does."""

    def __init__(self, client, *, prefix: str = REDIS_KEY_PREFIX, grace_sec: int = 3600):
        self._client = client
        self._prefix = prefix
        self._grace_sec = grace_sec

    def _key(self, job_id: str) -> str:
        return f"{self._prefix}:{job_id}"

    def get(self, job_id: str) -> Optional[JobRecord]:
        raw = self._client.get(self._key(job_id))
        if not raw:
            return None
        return JobRecord.model_validate_json(raw)

    def put(self, job: JobRecord) -> None:
        key = self._key(job.job_id)
        remaining = int((job.expires_at - datetime.now(timezone.utc)).total_seconds())
        pipe = self._client.pipeline()
        pipe.set(key, job.model_dump_json())
        pipe.expire(key, max(remaining, 0) + self._grace_sec)
        pipe.execute()

    def delete(self, job_id: str) -> None:
        self._client.delete(self._key(job_id))

    def list_ids(self) -> List[str]:
        marker = f"{self._prefix}:"
        return [str(key)[len(marker):] for key in self._client.scan_iter(match=f"{marker}*")]


def build_job_store(backend: str = JOB_STORE_BACKEND) -> JobStore:
    if backend == "redis":
        from services.redis_client import get_redis_client

        logger.info("job_store_backend backend=redis prefix=%s", REDIS_KEY_PREFIX)
        return RedisJobStore(get_redis_client())
    logger.info("job_store_backend backend=memory")
    return InMemoryJobStore()
