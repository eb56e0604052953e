# User value: This file pins the closed job vocabulary so submissions, reads, and proofs all agree on the same names.
CONTRACT_VERSION = "2026-10-01-governed-extraction"

JOB_TYPE_FORMAT_TRANSFORM = "format_transform"
JOB_TYPES = (JOB_TYPE_FORMAT_TRANSFORM,)

TRANSFORM_MORTGAGE = "mortgage_eligibility_summary"
TRANSFORM_SOLAR = "solar_proposal_draft"
TRANSFORM_TYPES = (TRANSFORM_MORTGAGE, TRANSFORM_SOLAR)

JOB_STATUS_QUEUED = "queued"
JOB_STATUS_PROCESSING = "processing"
JOB_STATUS_COMPLETED = "completed"
JOB_STATUS_FAILED = "failed"
# Derived at read time only; never stored.
JOB_STATUS_EXPIRED = "expired"

JOB_STATUSES = (
    JOB_STATUS_QUEUED,
    JOB_STATUS_PROCESSING,
    JOB_STATUS_COMPLETED,
    JOB_STATUS_FAILED,
    JOB_STATUS_EXPIRED,
)

TERMINAL_STATUSES = (
    JOB_STATUS_COMPLETED,
    JOB_STATUS_FAILED,
)

IN_FLIGHT_STATUSES = (
    JOB_STATUS_QUEUED,
    JOB_STATUS_PROCESSING,
)

MB = 1024 * 1024

FILE_CONSTRAINTS = {
    TRANSFORM_MORTGAGE: {
        "required": ("payslip",),
        "optional": ("ic_front", "bank_statement"),
        "max_files": 3,
        "max_total_size_bytes": 20 * MB,
    },
    TRANSFORM_SOLAR: {
        "required": ("electricity_bill", "roof_photo"),
        "optional": ("location_info",),
        "max_files": 3,
        "max_total_size_bytes": 15 * MB,
    },
}

# Progress checkpoints reported while a job attempt runs.
PROGRESS_STARTED = 10
PROGRESS_FILES_READ = 30
PROGRESS_MODEL_RESPONDED = 70
PROGRESS_OUTPUT_VALIDATED = 80
PROGRESS_OUTPUTS_WRITTEN = 90
PROGRESS_DONE = 100

# Fields a retry request may not carry; each implies new input material.
RETRY_NEW_INPUT_FIELDS = ("additional_inputs", "new_files", "files")

STATUS_FIELDS = (
    "job_id",
    "status",
    "progress",
    "is_expired",
    "time_remaining_sec",
    "retry_count",
    "max_retries",
    "expires_at",
)

RESULT_FIELDS = (
    "job_id",
    "status",
    "duration_ms",
    "outputs",
    "extracted_data",
    "parse_mode",
    "token_metrics",
    "continuity_warnings",
    "language_warnings",
    "expires_at",
)
