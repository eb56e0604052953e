import json
import logging
from datetime import datetime, timezone
from typing import Any

from utils.request_id import get_request_id

logger = logging.getLogger("api.stage")


def _norm(value: Any) -> Any:
    if isinstance(value, (bool, int, float, str)) or value is None:
        return value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return "|".join(str(v) for v in value)
    return str(value)


def log_stage(
    *,
    job_id: str,
    stage: str,
    event: str,
    tenant: str | None = None,
    transform_type: str | None = None,
    attempt: int | None = None,
    error: str | None = None,
    **extra: Any,
) -> None:
    payload = {
        "ts": datetime.now(timezone.utc).isoformat(),
        "job_id": job_id,
        "stage": stage,
        "event": event.upper(),
    }

    if tenant:
        payload["tenant"] = tenant
    if transform_type:
        payload["transform_type"] = transform_type
    if attempt is not None:
        payload["attempt"] = attempt
    if error:
        payload["error"] = error

    request_id = get_request_id()
    if request_id:
        payload["request_id"] = request_id

    for key, value in extra.items():
        norm = _norm(value)
        if norm is not None:
            payload[key] = norm

    msg = json.dumps(payload, ensure_ascii=False)
    if error or payload["event"] in {"FAILED", "BLOCKED"}:
        logger.error("stage_event %s", msg)
    else:
        logger.info("stage_event %s", msg)
