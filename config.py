# User value: This file keeps every runtime knob in one place so job governance behaves the same in every deploy.
import os
from dotenv import load_dotenv

load_dotenv()

SERVICE_NAME = os.environ.get("SERVICE_NAME", "doc-extract-governance-api")
SERVICE_LAYER = os.environ.get("SERVICE_LAYER", "0")

# Job lifecycle
JOB_TTL_SEC = int(os.environ.get("JOB_TTL_SEC", "86400"))
MAX_RETRIES = int(os.environ.get("MAX_RETRIES", "3"))
MAX_CONCURRENT_EXTRACTIONS = int(os.environ.get("MAX_CONCURRENT_EXTRACTIONS", "4"))
JOB_SWEEP_INTERVAL_SEC = int(os.environ.get("JOB_SWEEP_INTERVAL_SEC", "0"))

# Model capability
ANTHROPIC_API_KEY = os.environ.get("ANTHROPIC_API_KEY", "")
DEFAULT_MODEL = os.environ.get("DEFAULT_MODEL", "claude-3-haiku-20240307")
MAX_OUTPUT_TOKENS = int(os.environ.get("MAX_OUTPUT_TOKENS", "4096"))
MODEL_CALL_TIMEOUT_SEC = float(os.environ.get("MODEL_CALL_TIMEOUT_SEC", "120"))

# Storage
JOB_STORE_BACKEND = os.environ.get("JOB_STORE_BACKEND", "memory").strip().lower()
REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379/0")
REDIS_KEY_PREFIX = os.environ.get("REDIS_KEY_PREFIX", "governed_job")
ARTIFACT_BACKEND = os.environ.get("ARTIFACT_BACKEND", "local").strip().lower()
OUTPUT_DIR = os.environ.get("OUTPUT_DIR", "./outputs")
GCS_BUCKET_NAME = os.environ.get("GCS_BUCKET_NAME", "")

# Usage display
USD_TO_DISPLAY_RATE = float(os.environ.get("USD_TO_DISPLAY_RATE", "4.65"))
DISPLAY_CURRENCY = os.environ.get("DISPLAY_CURRENCY", "MYR")
