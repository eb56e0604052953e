# User value: This file describes what a retry may carry so a retry can never smuggle in a different job.
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict


class RetryRequest(BaseModel):
    # Unknown keys are kept so the continuity guard sees exactly what the caller sent.
    model_config = ConfigDict(extra="allow")

    job_id: Optional[str] = None
    idempotency_key: Optional[str] = None
    # User value: these are accepted only so a retry that tries to add inputs is refused with a clear reason.
    additional_inputs: Optional[Any] = None
    new_files: Optional[Any] = None
    files: Optional[Any] = None
