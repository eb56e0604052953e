# User value: This file keeps job outputs in one per-job location so they can be served and then reclaimed after expiry.
import logging
import os
import shutil
from typing import Protocol

from config import ARTIFACT_BACKEND, GCS_BUCKET_NAME, OUTPUT_DIR
from services import gcs

logger = logging.getLogger("api.artifacts")


class ArtifactStore(Protocol):
    def write(self, job_id: str, name: str, content: str, content_type: str) -> str:
        ...

    def delete_job(self, job_id: str) -> None:
        ...


class LocalArtifactStore:
    """Writes artifacts under <base_dir>/<job_id>/<name>."""

    def __init__(self, base_dir: str = OUTPUT_DIR):
        self._base_dir = base_dir

    def job_dir(self, job_id: str) -> str:
        path = os.path.join(self._base_dir, job_id)
        os.makedirs(path, exist_ok=True)
        return path

    def write(self, job_id: str, name: str, content: str, content_type: str) -> str:
        path = os.path.join(self.job_dir(job_id), os.path.basename(name))
        with open(path, "w", encoding="utf-8") as fh:
            fh.write(content)
        return path

    def delete_job(self, job_id: str) -> None:
        shutil.rmtree(os.path.join(self._base_dir, job_id), ignore_errors=True)


class GcsArtifactStore:
    def __init__(self, bucket_name: str = GCS_BUCKET_NAME, prefix: str = "jobs"):
        self._bucket_name = bucket_name
        self._prefix = prefix.strip("/")

    def write(self, job_id: str, name: str, content: str, content_type: str) -> str:
        out = gcs.upload_text(
            bucket_name=self._bucket_name,
            content=content,
            destination_path=f"{self._prefix}/{job_id}/output/{name}",
            content_type=content_type,
        )
        return out["gcs_uri"]

    def delete_job(self, job_id: str) -> None:
        removed = gcs.delete_prefix(bucket_name=self._bucket_name, prefix=f"{self._prefix}/{job_id}/")
        logger.info("artifacts_deleted backend=gcs job_id=%s removed=%s", job_id, removed)


def build_artifact_store(backend: str = ARTIFACT_BACKEND) -> ArtifactStore:
    if backend == "gcs":
        return GcsArtifactStore()
    return LocalArtifactStore()
