import logging
import os
from typing import List

logger = logging.getLogger("api.startup")

JOB_STORE_BACKENDS = ("memory", "redis")
ARTIFACT_BACKENDS = ("local", "gcs")

POSITIVE_INT_KEYS = (
    ("JOB_TTL_SEC", "86400"),
    ("MAX_RETRIES", "3"),
    ("MAX_CONCURRENT_EXTRACTIONS", "4"),
    ("MAX_OUTPUT_TOKENS", "4096"),
)


def _is_blank(value: str | None) -> bool:
    return value is None or not str(value).strip()


def _validate_positive_int(key: str, default: str, errors: List[str]) -> None:
    raw = os.getenv(key, default)
    try:
        value = int(str(raw).strip())
    except ValueError:
        errors.append(f"{key} must be an integer")
        return
    if value <= 0:
        errors.append(f"{key} must be > 0")


def _validate_non_negative_number(key: str, default: str, errors: List[str]) -> None:
    raw = os.getenv(key, default)
    try:
        value = float(str(raw).strip())
    except ValueError:
        errors.append(f"{key} must be a number")
        return
    if value < 0:
        errors.append(f"{key} must be >= 0")


def _validate_choice(key: str, default: str, allowed: tuple, errors: List[str]) -> str:
    value = str(os.getenv(key, default) or "").strip().lower()
    if value not in allowed:
        errors.append(f"{key} must be one of {', '.join(allowed)}")
    return value


def _validate_redis_url(value: str | None, key: str, errors: List[str]) -> None:
    if _is_blank(value):
        errors.append(f"{key} is required")
        return
    if not (value.startswith("redis://") or value.startswith("rediss://")):
        errors.append(f"{key} must start with redis:// or rediss://")


def _validate_cors_allow_origins(value: str | None, errors: List[str]) -> None:
    if _is_blank(value):
        return

    origins = [x.strip() for x in str(value).split(",") if x.strip()]
    for origin in origins:
        if origin == "*":
            errors.append("CORS_ALLOW_ORIGINS must not contain '*' in strict allowlist mode")
            continue
        if not (origin.startswith("http://") or origin.startswith("https://")):
            errors.append(f"CORS origin must start with http:// or https://: {origin}")


def validate_startup_env() -> None:
    errors: List[str] = []
    warnings: List[str] = []

    for key, default in POSITIVE_INT_KEYS:
        _validate_positive_int(key, default, errors)
    _validate_non_negative_number("JOB_SWEEP_INTERVAL_SEC", "0", errors)
    _validate_non_negative_number("MODEL_CALL_TIMEOUT_SEC", "120", errors)
    _validate_non_negative_number("USD_TO_DISPLAY_RATE", "4.65", errors)

    store_backend = _validate_choice("JOB_STORE_BACKEND", "memory", JOB_STORE_BACKENDS, errors)
    artifact_backend = _validate_choice("ARTIFACT_BACKEND", "local", ARTIFACT_BACKENDS, errors)

    if store_backend == "redis":
        _validate_redis_url(os.getenv("REDIS_URL"), "REDIS_URL", errors)
    if artifact_backend == "gcs":
        if _is_blank(os.getenv("GCS_BUCKET_NAME")):
            errors.append("GCS_BUCKET_NAME is required when ARTIFACT_BACKEND=gcs")
        if _is_blank(os.getenv("GOOGLE_APPLICATION_CREDENTIALS_JSON")):
            warnings.append(
                "GOOGLE_APPLICATION_CREDENTIALS_JSON is not set; relying on ambient ADC credentials"
            )

    _validate_cors_allow_origins(os.getenv("CORS_ALLOW_ORIGINS"), errors)

    if _is_blank(os.getenv("ANTHROPIC_API_KEY")):
        warnings.append("ANTHROPIC_API_KEY is not set; every extraction will fail with MODEL_CALL_FAILED")

    if errors:
        for err in errors:
            logger.error("startup_env_invalid %s", err)
        raise RuntimeError("Startup env validation failed: " + "; ".join(errors))

    for warning in warnings:
        logger.warning("startup_env_warning %s", warning)

    logger.info(
        "startup_env_validated job_store=%s artifact_store=%s",
        store_backend,
        artifact_backend,
    )
