# User value: This file wires the governed extraction service together with consistent errors, request ids, and logs.
# app.py
import asyncio
import os
import logging
import time
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from utils.json_logging import configure_json_logging
from utils.metrics import incr, observe_ms

# Load env before importing modules that read os.environ at import time.
load_dotenv(os.path.join(os.path.dirname(__file__), ".env"))


# User value: prepares structured logs before anything else can emit a line.
def configure_logging() -> None:
    level_name = os.getenv("LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    configure_json_logging(service=os.getenv("SERVICE_NAME", "doc-extract-governance-api"), level=level)


configure_logging()
logger = logging.getLogger("api.error")
from startup_env import validate_startup_env
from utils.request_id import REQUEST_ID_HEADER, get_request_id, normalize_request_id, set_request_id

validate_startup_env()

from config import ARTIFACT_BACKEND, JOB_STORE_BACKEND, JOB_SWEEP_INTERVAL_SEC
from routes.contract import router as contract_router
from routes.governance import router as governance_router
from routes.health import router as health_router
from routes.jobs import router as jobs_router
from services.artifact_store import build_artifact_store
from services.continuity_guard import ContinuityGuard
from services.errors import GovernanceApiError
from services.extraction_executor import ExtractionExecutor
from services.job_manager import JobManager
from services.job_store import build_job_store
from services.model_client import AnthropicModelClient


# User value: assembles one manager per process so every request sees the same job table and audit trail.
def build_job_manager() -> JobManager:
    artifact_store = build_artifact_store(ARTIFACT_BACKEND)
    executor = ExtractionExecutor(AnthropicModelClient(), artifact_store)
    return JobManager(
        executor,
        store=build_job_store(JOB_STORE_BACKEND),
        guard=ContinuityGuard(),
        artifact_store=artifact_store,
    )


@asynccontextmanager
# User value: starts and stops background work cleanly so no job is left half-written on shutdown.
async def lifespan(app: FastAPI):
    built_here = getattr(app.state, "job_manager", None) is None
    if built_here:
        app.state.job_manager = build_job_manager()
    manager: JobManager = app.state.job_manager

    sweeper = None
    if JOB_SWEEP_INTERVAL_SEC > 0:
        sweeper = asyncio.create_task(manager.sweep_forever(JOB_SWEEP_INTERVAL_SEC))
        logger.info("job_sweeper_started interval_sec=%s", JOB_SWEEP_INTERVAL_SEC)

    try:
        yield
    finally:
        if sweeper is not None:
            sweeper.cancel()
            await asyncio.gather(sweeper, return_exceptions=True)
        await manager.shutdown()
        if built_here:
            app.state.job_manager = None


app = FastAPI(title="Doc Extract Governance API", lifespan=lifespan)


# User value: normalizes data so users see consistent configuration behavior.
def _parse_csv_env(name: str) -> list[str]:
    raw = os.getenv(name, "")
    values = [x.strip() for x in raw.split(",") if x.strip()]
    seen = set()
    ordered = []
    for item in values:
        if item not in seen:
            seen.add(item)
            ordered.append(item)
    return ordered


@app.middleware("http")
# User value: tags every request and log line with one id so a job can be traced end to end.
async def request_id_middleware(request: Request, call_next):
    request_id = normalize_request_id(request.headers.get(REQUEST_ID_HEADER))
    set_request_id(request_id)
    started = time.perf_counter()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = int(getattr(response, "status_code", 500))
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
    finally:
        duration_ms = (time.perf_counter() - started) * 1000.0
        method = request.method.upper()
        route = request.scope.get("route")
        path = getattr(route, "path", None) or request.url.path
        status_class = f"{status_code // 100}xx"
        incr("api_http_requests_total", method=method, path=path, status_class=status_class, status_code=status_code)
        observe_ms("api_http_request_latency_ms", duration_ms, method=method, path=path, status_class=status_class)
        set_request_id(None)


# User value: pulls a readable message out of any error detail shape.
def _extract_error_message(detail) -> str:
    if isinstance(detail, dict):
        return str(detail.get("error_message") or detail.get("message") or detail.get("detail") or detail)
    if isinstance(detail, list):
        return "; ".join(str(x) for x in detail)
    return str(detail)


# User value: gives every failure a stable code clients can branch on.
def _to_error_code(status_code: int, detail) -> str:
    if isinstance(detail, dict) and detail.get("error_code"):
        return str(detail.get("error_code")).strip().upper()
    if status_code == 403:
        return "FORBIDDEN"
    if status_code == 404:
        return "RESOURCE_NOT_FOUND"
    if status_code == 405:
        return "METHOD_NOT_ALLOWED"
    if status_code == 409:
        return "STATE_CONFLICT"
    if status_code == 410:
        return "RESOURCE_EXPIRED"
    if status_code == 400:
        return "INVALID_REQUEST"
    return f"HTTP_{status_code}"


# User value: keeps one error body shape across validation, governance, and server failures.
def _error_body(*, request: Request, status_code: int, detail, error_message: str | None = None) -> dict:
    request_id = get_request_id() or normalize_request_id(request.headers.get(REQUEST_ID_HEADER))
    body = {
        "error_code": _to_error_code(status_code, detail),
        "error_message": error_message or _extract_error_message(detail),
        "detail": detail,
        "path": request.url.path,
        "request_id": request_id,
    }
    return body


@app.exception_handler(GovernanceApiError)
# User value: turns governance refusals into explicit, auditable responses instead of generic failures.
async def governance_exception_handler(request: Request, exc: GovernanceApiError):
    payload = exc.to_dict()
    body = _error_body(
        request=request,
        status_code=exc.http_status,
        detail=exc.detail,
        error_message=exc.message,
    )
    body.update(payload)
    body["detail"] = exc.detail
    logger.warning(
        "request_refused status=%s path=%s request_id=%s error_code=%s error_message=%s",
        exc.http_status,
        request.url.path,
        body["request_id"],
        body["error_code"],
        body["error_message"],
    )
    return JSONResponse(status_code=exc.http_status, content=jsonable_encoder(body))


@app.exception_handler(RequestValidationError)
# User value: reports malformed requests with the exact failing fields.
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    detail = exc.errors()
    body = _error_body(
        request=request,
        status_code=422,
        detail=detail,
        error_message="Request validation failed",
    )
    body["error_code"] = "VALIDATION_ERROR"
    logger.warning(
        "request_failed_validation status=422 path=%s request_id=%s error_code=%s",
        request.url.path,
        body["request_id"],
        body["error_code"],
    )
    return JSONResponse(status_code=422, content=jsonable_encoder(body))


@app.exception_handler(StarletteHTTPException)
# User value: keeps framework errors in the same body shape as everything else.
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    body = _error_body(request=request, status_code=exc.status_code, detail=exc.detail)
    logger.warning(
        "request_failed status=%s path=%s request_id=%s error_code=%s error_message=%s",
        exc.status_code,
        request.url.path,
        body["request_id"],
        body["error_code"],
        body["error_message"],
    )
    return JSONResponse(status_code=exc.status_code, content=body)


@app.exception_handler(Exception)
# User value: hides internals behind a stable 500 while logging the full trace for operators.
async def unhandled_exception_handler(request: Request, exc: Exception):
    request_id = get_request_id() or normalize_request_id(request.headers.get(REQUEST_ID_HEADER))
    logger.exception(
        "request_failed_unhandled path=%s request_id=%s error=%s: %s",
        request.url.path,
        request_id,
        exc.__class__.__name__,
        exc,
    )
    body = _error_body(
        request=request,
        status_code=500,
        detail="Unhandled server exception",
        error_message="Internal server error",
    )
    body["error_code"] = "INTERNAL_SERVER_ERROR"
    return JSONResponse(status_code=500, content=body)


CORS_ALLOW_ORIGINS = _parse_csv_env("CORS_ALLOW_ORIGINS")
CORS_ALLOW_ORIGIN_REGEX = (os.getenv("CORS_ALLOW_ORIGIN_REGEX") or "").strip() or None
logger.info(
    "cors_configured allow_origins=%s allow_origin_regex=%s",
    CORS_ALLOW_ORIGINS,
    CORS_ALLOW_ORIGIN_REGEX or "",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOW_ORIGINS,
    allow_origin_regex=CORS_ALLOW_ORIGIN_REGEX,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=[REQUEST_ID_HEADER],
)

app.include_router(health_router)
app.include_router(contract_router)
app.include_router(governance_router)
app.include_router(jobs_router)
