# User value: This file runs the single bounded extraction step and hands back hashed artifacts, never decisions.
import asyncio
import inspect
import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from config import MAX_OUTPUT_TOKENS, MODEL_CALL_TIMEOUT_SEC
from schemas.job import JobRecord, OutputArtifact
from schemas.job_contract import (
    PROGRESS_FILES_READ,
    PROGRESS_MODEL_RESPONDED,
    PROGRESS_OUTPUT_VALIDATED,
    PROGRESS_OUTPUTS_WRITTEN,
    PROGRESS_STARTED,
    TRANSFORM_MORTGAGE,
    TRANSFORM_SOLAR,
)
from services.artifact_store import ArtifactStore
from services.errors import ExecutionError, UnsupportedTransform
from services.file_extractor import extract_file_text, render_input_context
from services.model_client import ModelClient
from services.model_output import as_extracted_data, parse_model_output
from utils.hashing import text_hash
from utils.metrics import incr, observe_ms
from utils.stage_logging import log_stage

logger = logging.getLogger("api.executor")

PRIMARY_OUTPUT_NAME = "extracted_data.json"

FORBIDDEN_PHRASES = {
    "mortgage": (
        "Eligible for loan",
        "Not eligible",
        "Approved",
        "Rejected",
        "Recommended",
        "Should apply",
        "Likely to qualify",
        "High risk",
        "Medium risk",
        "Low risk",
        "Score:",
        "Rating:",
        "Meets criteria",
        "Does not meet criteria",
        "Suggested loan amount",
        "Recommended next step",
    ),
    "solar": (
        "Recommended system size",
        "Estimated savings",
        "ROI:",
        "Payback period",
        "Best option",
        "Should install",
        "Suitable for",
        "Not suitable",
        "Quotation",
        "Price:",
        "Recommended panels",
        "Suggested configuration",
        "Expected generation",
    ),
}

PROMPTS = {
    TRANSFORM_MORTGAGE: """You are a document extraction system. Your task is to extract and structure information from the provided documents.

CRITICAL RULES:
1. You MUST NOT make any eligibility decisions
2. You MUST NOT provide recommendations
3. You MUST NOT use approval/rejection language
4. You ONLY extract and format existing information
5. Mark any unclear fields as "requires_review"

Extract the following information and return as JSON:

{
  "personal": {
    "name": "extracted name or null",
    "ic_number": "extracted IC or null",
    "date_of_birth": "extracted DOB or null"
  },
  "employment": {
    "employer": "extracted employer or null",
    "position": "extracted position or null",
    "gross_salary": "number or null",
    "net_salary": "number or null",
    "pay_period": "monthly/weekly or null"
  },
  "financial": {
    "account_type": "savings/current or null",
    "average_balance": "number or null",
    "statement_period": "extracted period or null"
  },
  "extraction_metadata": {
    "fields_extracted": "count",
    "fields_total": "count",
    "fields_requiring_review": ["list of uncertain fields"],
    "confidence_scores": {"field_name": 0.0}
  }
}

You are extracting information, NOT making decisions.""",
    TRANSFORM_SOLAR: """You are a document extraction system. Your task is to extract and structure information from the provided documents.

CRITICAL RULES:
1. You MUST NOT provide pricing or quotations
2. You MUST NOT recommend system sizes
3. You MUST NOT calculate ROI or savings
4. You MUST NOT make installation recommendations
5. You ONLY extract and format existing information

Extract the following information and return as JSON:

{
  "property": {
    "address": "extracted address or null",
    "property_type": "residential/commercial or null"
  },
  "consumption": {
    "account_number": "extracted account or null",
    "billing_period": "extracted period or null",
    "total_kwh": "number or null",
    "total_amount": "number or null",
    "tariff_category": "extracted tariff or null"
  },
  "visual": {
    "photo_observations": "factual observations only, no recommendations"
  },
  "extraction_metadata": {
    "fields_extracted": "count",
    "fields_total": "count",
    "fields_requiring_review": ["list of uncertain fields"],
    "confidence_scores": {"field_name": 0.0}
  }
}

You are extracting information, NOT making recommendations.""",
}

DISCLAIMERS = {
    TRANSFORM_MORTGAGE: (
        "DISCLAIMER\n"
        "This document contains extracted information only.\n"
        "It does NOT constitute eligibility assessment.\n"
        "All decisions must be made by qualified human officers.\n"
        "\n"
        "This output is non-authoritative until promoted by a reviewing system.\n"
        "No decisions have been made."
    ),
    TRANSFORM_SOLAR: (
        "DISCLAIMER\n"
        "This document contains extracted information only.\n"
        "It does NOT constitute a quotation or recommendation.\n"
        "All proposals must be reviewed and finalized by the sales team.\n"
        "\n"
        "This output is non-authoritative until promoted by a reviewing system.\n"
        "No recommendations have been made."
    ),
}

SUMMARY_DOCUMENTS = {
    TRANSFORM_MORTGAGE: ("eligibility_summary.txt", "ELIGIBILITY SUMMARY (Non-Decision Document)"),
    TRANSFORM_SOLAR: ("proposal_draft.txt", "SOLAR PROPOSAL DRAFT (Non-Binding Document)"),
}

_RULE = "=" * 68
_SUBRULE = "-" * 20

ProgressSink = Callable[[int], Optional[Awaitable[None]]]


def _progress_reporter(on_progress: Optional[ProgressSink]) -> Callable[[int], Awaitable[None]]:
    async def report(pct: int) -> None:
        if on_progress is None:
            return
        outcome = on_progress(pct)
        if inspect.isawaitable(outcome):
            await outcome

    return report


class ExtractionResult(BaseModel):
    outputs: List[OutputArtifact] = Field(default_factory=list)
    extracted_data: Dict[str, Any] = Field(default_factory=dict)
    parse_mode: str = "structured"
    token_usage: Dict[str, Any] = Field(default_factory=dict)
    execution_time_ms: int = 0
    language_warnings: List[str] = Field(default_factory=list)


# User value: finds decision-style wording in model output so reviewers know where to look.
def find_forbidden_phrases(content: str, transform_type: str) -> List[str]:
    domain = transform_type.split("_")[0]
    lowered = (content or "").lower()
    return [phrase for phrase in FORBIDDEN_PHRASES.get(domain, ()) if phrase.lower() in lowered]


def format_extracted_data(data: Dict[str, Any], indent: int = 0) -> str:
    spaces = "  " * indent
    lines = []
    for key, value in data.items():
        if value is None:
            lines.append(f"{spaces}{key}: [Not extracted]")
        elif isinstance(value, dict):
            lines.append(f"{spaces}{key}:")
            nested = format_extracted_data(value, indent + 1)
            if nested:
                lines.append(nested)
        elif isinstance(value, list):
            lines.append(f"{spaces}{key}: {', '.join(str(v) for v in value) or '[None]'}")
        else:
            lines.append(f"{spaces}{key}: {value}")
    return "\n".join(lines)


def render_summary_document(job: JobRecord, extracted_data: Dict[str, Any], generated_at: datetime) -> str:
    _, title = SUMMARY_DOCUMENTS[job.transform_type]
    return "\n".join(
        [
            _RULE,
            title,
            _RULE,
            "",
            "DOCUMENT INFORMATION",
            _SUBRULE,
            f"Generated: {generated_at.isoformat()}",
            f"Job ID: {job.job_id}",
            f"Expires: {job.expires_at.isoformat()}",
            "",
            DISCLAIMERS[job.transform_type],
            "",
            _RULE,
            "",
            "EXTRACTED INFORMATION",
            _SUBRULE,
            "",
            format_extracted_data(extracted_data),
            "",
            _RULE,
            "",
            "PROOF REFERENCE",
            _SUBRULE,
            f"Job ID: {job.job_id}",
            f"Tenant ID: {job.tenant_id}",
            f"Idempotency Key: {job.idempotency_key}",
            f"Attempt: {job.retry_count}",
            "",
            _RULE,
            "",
        ]
    )


class ExtractionExecutor:
    def __init__(
        self,
        model_client: ModelClient,
        artifact_store: ArtifactStore,
        *,
        max_output_tokens: int = MAX_OUTPUT_TOKENS,
        timeout_sec: float = MODEL_CALL_TIMEOUT_SEC,
        extractor=extract_file_text,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self._model = model_client
        self._artifacts = artifact_store
        self._max_output_tokens = max_output_tokens
        self._timeout_sec = timeout_sec
        self._extractor = extractor
        self._clock = clock

    def supports(self, transform_type: str) -> bool:
        return transform_type in PROMPTS

    async def execute(self, job: JobRecord, on_progress: Optional[ProgressSink] = None) -> ExtractionResult:
        started = time.perf_counter()
        report = _progress_reporter(on_progress)
        await report(PROGRESS_STARTED)

        system_prompt = PROMPTS.get(job.transform_type)
        if system_prompt is None:
            raise UnsupportedTransform(f"Unknown transform type: {job.transform_type}")

        input_content = render_input_context(job.files, extractor=self._extractor)
        await report(PROGRESS_FILES_READ)

        log_stage(
            job_id=job.job_id,
            stage="MODEL_INVOKE",
            event="STARTED",
            tenant=job.tenant_id,
            transform_type=job.transform_type,
            attempt=job.retry_count,
            model=self._model.model,
        )
        model_started = time.perf_counter()
        try:
            response = await asyncio.wait_for(
                self._model.invoke(
                    system_prompt,
                    f"Please extract information from these documents:\n\n{input_content}",
                    self._max_output_tokens,
                ),
                timeout=self._timeout_sec,
            )
        except asyncio.TimeoutError as exc:
            incr("executor_model_calls_total", outcome="timeout")
            raise ExecutionError(
                f"Model call exceeded {self._timeout_sec}s timeout", code="MODEL_TIMEOUT"
            ) from exc
        except Exception as exc:
            incr("executor_model_calls_total", outcome="error")
            raise ExecutionError(
                f"Model call failed: {exc.__class__.__name__}: {exc}", code="MODEL_CALL_FAILED"
            ) from exc
        observe_ms("executor_model_latency_ms", (time.perf_counter() - model_started) * 1000.0)
        incr("executor_model_calls_total", outcome="ok")
        await report(PROGRESS_MODEL_RESPONDED)

        parsed = parse_model_output(response.text)
        extracted_data = as_extracted_data(parsed)

        language_warnings = find_forbidden_phrases(response.text, job.transform_type)
        for phrase in language_warnings:
            logger.warning(
                "output_forbidden_phrase job_id=%s transform_type=%s phrase=%r",
                job.job_id,
                job.transform_type,
                phrase,
            )
        await report(PROGRESS_OUTPUT_VALIDATED)

        outputs = await self._write_outputs(job, extracted_data)
        await report(PROGRESS_OUTPUTS_WRITTEN)

        token_usage = {
            "tokens_in": response.input_tokens,
            "tokens_out": response.output_tokens,
            "total_tokens": response.input_tokens + response.output_tokens,
            "model_used": response.model or self._model.model,
        }
        execution_time_ms = int((time.perf_counter() - started) * 1000)

        log_stage(
            job_id=job.job_id,
            stage="MODEL_INVOKE",
            event="COMPLETED",
            tenant=job.tenant_id,
            transform_type=job.transform_type,
            attempt=job.retry_count,
            parse_mode=parsed.mode,
            total_tokens=token_usage["total_tokens"],
            execution_time_ms=execution_time_ms,
            language_warning_count=len(language_warnings),
        )

        return ExtractionResult(
            outputs=outputs,
            extracted_data=extracted_data,
            parse_mode=parsed.mode,
            token_usage=token_usage,
            execution_time_ms=execution_time_ms,
            language_warnings=language_warnings,
        )

    async def _write_outputs(self, job: JobRecord, extracted_data: Dict[str, Any]) -> List[OutputArtifact]:
        json_content = json.dumps(extracted_data, indent=2, ensure_ascii=False)
        summary_name, _ = SUMMARY_DOCUMENTS[job.transform_type]
        summary_content = render_summary_document(job, extracted_data, self._clock())

        outputs = []
        for name, content_type, content in (
            (PRIMARY_OUTPUT_NAME, "application/json", json_content),
            (summary_name, "text/plain", summary_content),
        ):
            # Artifact backends do blocking file or GCS I/O.
            location = await asyncio.to_thread(self._artifacts.write, job.job_id, name, content, content_type)
            outputs.append(
                OutputArtifact(
                    name=name,
                    content_type=content_type,
                    size_bytes=len(content.encode("utf-8")),
                    sha256=text_hash(content),
                    location=location,
                    content=content,
                )
            )
        return outputs
