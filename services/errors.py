# User value: This file gives every governance refusal a stable code so callers can tell a blocked job from an expired one.
from typing import Any


class GovernanceApiError(Exception):
    error_code = "GOVERNANCE_API_ERROR"
    http_status = 500

    def __init__(self, message: str, *, detail: Any = None):
        super().__init__(message)
        self.message = message
        self.detail = detail

    def to_dict(self) -> dict:
        body = {"error_code": self.error_code, "error_message": self.message}
        if self.detail is not None:
            body["detail"] = self.detail
        return body


class JobValidationError(GovernanceApiError):
    """Malformed or out-of-enum submission. Raised before any job exists."""

    error_code = "VALIDATION_ERROR"
    http_status = 400

    def __init__(self, errors: list[dict]):
        first = errors[0]["message"] if errors else "Invalid job request"
        super().__init__(first, detail=errors)
        self.errors = errors


class GovernanceViolation(GovernanceApiError):
    """Continuity guard rejection. Always audited by the guard."""

    error_code = "GOVERNANCE_VIOLATION"
    http_status = 403

    def __init__(self, reason: str, *, violation: dict | None = None):
        super().__init__(reason, detail=violation)
        self.reason = reason
        self.violation = violation

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["blocked"] = True
        body["reason"] = self.reason
        return body


class UnsupportedTransform(GovernanceApiError):
    error_code = "UNSUPPORTED_TRANSFORM"
    http_status = 400


class ExecutionError(GovernanceApiError):
    error_code = "EXECUTION_ERROR"
    http_status = 502

    def __init__(self, message: str, *, code: str | None = None):
        super().__init__(message)
        if code:
            self.error_code = code


class ExpiredError(GovernanceApiError):
    error_code = "JOB_EXPIRED"
    http_status = 410


class RetryLimitExceeded(GovernanceApiError):
    error_code = "RETRY_LIMIT_EXCEEDED"
    http_status = 409


class JobNotFound(GovernanceApiError):
    error_code = "JOB_NOT_FOUND"
    http_status = 404


class JobNotCompleted(GovernanceApiError):
    error_code = "JOB_NOT_COMPLETED"
    http_status = 409

    def __init__(self, message: str, *, status: str):
        super().__init__(message, detail={"status": status})
        self.status = status


class ProofNotAvailable(GovernanceApiError):
    error_code = "PROOF_NOT_AVAILABLE"
    http_status = 409


class StateConflict(GovernanceApiError):
    error_code = "STATE_CONFLICT"
    http_status = 409
