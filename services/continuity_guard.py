# User value: This file blocks job chaining and memory-style requests so every extraction stays independent of every other.
import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, List, Mapping, Optional

from schemas.job_contract import RETRY_NEW_INPUT_FIELDS

logger = logging.getLogger("api.continuity_guard")

FORBIDDEN_FIELD_NAMES = (
    "previous_job_id",
    "depends_on",
    "parent_job",
    "triggered_by",
    "follows_from",
    "continuation_of",
    "chain_id",
    "workflow_id",
    "sequence_id",
    "step_number",
    "next_step",
    "previous_output",
    "last_result",
)

CONTINUITY_PATTERNS = (
    re.compile(r"based on (?:your |the )?previous", re.IGNORECASE),
    re.compile(r"as we discussed", re.IGNORECASE),
    re.compile(r"continuing from", re.IGNORECASE),
    re.compile(r"following up on", re.IGNORECASE),
    re.compile(r"as mentioned before", re.IGNORECASE),
    re.compile(r"remember (?:that|when)", re.IGNORECASE),
    re.compile(r"last time", re.IGNORECASE),
    re.compile(r"in our previous", re.IGNORECASE),
    re.compile(r"building on", re.IGNORECASE),
    re.compile(r"step \d+ of \d+", re.IGNORECASE),
    re.compile(r"next step", re.IGNORECASE),
    re.compile(r"workflow continues", re.IGNORECASE),
)

REFERENCE_FLAG = "references_previous"
METADATA_CONTAINER = "metadata"
FREE_TEXT_FIELDS = ("prompt", "instructions")


@dataclass(frozen=True)
class RuleViolation:
    type: str
    rule: str
    field: Optional[str] = None
    pattern: Optional[str] = None
    value: Any = None

    def as_dict(self) -> dict:
        out = {"type": self.type, "rule": self.rule}
        if self.field is not None:
            out["field"] = self.field
        if self.pattern is not None:
            out["pattern"] = self.pattern
        if self.value is not None:
            out["value"] = self.value
        return out


@dataclass(frozen=True)
class FlagRule:
    """Truthy explicit flag saying the job builds on an earlier one."""

    flag: str = REFERENCE_FLAG
    description: str = "Jobs cannot reference previous job outputs"

    def check(self, fields: Mapping[str, Any]) -> List[RuleViolation]:
        value = fields.get(self.flag)
        if not value:
            return []
        return [RuleViolation(type="EXPLICIT_REFERENCE", field=self.flag, value=value, rule=self.description)]


@dataclass(frozen=True)
class FieldRule:
    """Presence of a chaining field name, at top level or inside the metadata container."""

    names: tuple = FORBIDDEN_FIELD_NAMES
    container: Optional[str] = METADATA_CONTAINER

    def check(self, fields: Mapping[str, Any]) -> List[RuleViolation]:
        found: List[RuleViolation] = []
        for name in self.names:
            if name in fields:
                found.append(
                    RuleViolation(
                        type="FORBIDDEN_FIELD",
                        field=name,
                        value=fields[name],
                        rule=f"Field '{name}' implies job chaining",
                    )
                )
        nested = fields.get(self.container) if self.container else None
        if isinstance(nested, Mapping):
            for name in self.names:
                if name in nested:
                    found.append(
                        RuleViolation(
                            type="FORBIDDEN_METADATA_FIELD",
                            field=f"{self.container}.{name}",
                            value=nested[name],
                            rule=f"Metadata field '{name}' implies job chaining",
                        )
                    )
        return found


@dataclass(frozen=True)
class PhraseRule:
    """Continuity or memory language in the caller's free-text fields."""

    patterns: tuple = CONTINUITY_PATTERNS
    text_fields: tuple = FREE_TEXT_FIELDS
    description: str = "Content contains language implying continuity/memory"

    def check(self, fields: Mapping[str, Any]) -> List[RuleViolation]:
        text = " ".join(str(fields.get(name) or "") for name in self.text_fields).strip()
        if not text:
            return []
        return [
            RuleViolation(type="CONTINUITY_LANGUAGE", pattern=pattern.pattern, rule=self.description)
            for pattern in self.patterns
            if pattern.search(text)
        ]


@dataclass
class GuardDecision:
    allowed: bool
    reason: Optional[str] = None
    violation: Optional[dict] = None


def default_rules() -> List[object]:
    # Evaluated in order; the first rule that fires ends the check.
    return [FlagRule(), FieldRule(), PhraseRule()]


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _find_field_names(data: Any, names: Iterable[str], path: str = "") -> List[str]:
    hits: List[str] = []
    if isinstance(data, Mapping):
        for key, value in data.items():
            where = f"{path}.{key}" if path else str(key)
            if key in names:
                hits.append(where)
            hits.extend(_find_field_names(value, names, where))
    elif isinstance(data, list):
        for idx, item in enumerate(data):
            hits.extend(_find_field_names(item, names, f"{path}[{idx}]"))
    return hits


class ContinuityGuard:
    """Pattern-based filter in front of the model call. Deterministic and auditable."""

    def __init__(
        self,
        rules: Optional[List[object]] = None,
        *,
        forbidden_fields: tuple = FORBIDDEN_FIELD_NAMES,
        patterns: tuple = CONTINUITY_PATTERNS,
        clock: Callable[[], str] = _now_iso,
    ):
        self.rules = list(rules) if rules is not None else default_rules()
        self.forbidden_fields = forbidden_fields
        self.patterns = patterns
        self._clock = clock
        self._violations: List[dict] = []

    # User value: refuses any submission that tries to build on an earlier job.
    def evaluate_submission(self, fields: Mapping[str, Any]) -> GuardDecision:
        violations: List[RuleViolation] = []
        for rule in self.rules:
            violations = rule.check(fields)
            if violations:
                break

        if not violations:
            return GuardDecision(allowed=True)

        record = {
            "timestamp": self._clock(),
            "kind": "submission",
            "tenant_id": fields.get("tenant_id"),
            "idempotency_key": fields.get("idempotency_key"),
            "violations": [v.as_dict() for v in violations],
        }
        self._record(record)
        return GuardDecision(
            allowed=False,
            reason=f"Continuity violation: {violations[0].rule}",
            violation=record,
        )

    # User value: lets a failed job be retried only as itself, never as a new or enlarged job.
    def evaluate_retry(self, original_job: Any, retry_request: Mapping[str, Any]) -> GuardDecision:
        original_id = _attr(original_job, "job_id")
        original_key = _attr(original_job, "idempotency_key")

        reason = None
        field = None
        if retry_request.get("job_id") != original_id:
            reason = "Retry must use same job_id (no new job creation from retry)"
            field = "job_id"
        elif retry_request.get("idempotency_key") and retry_request.get("idempotency_key") != original_key:
            reason = "Retry must preserve idempotency_key (no identity mutation)"
            field = "idempotency_key"
        else:
            added = [name for name in RETRY_NEW_INPUT_FIELDS if retry_request.get(name)]
            if added:
                reason = "Retry cannot add new inputs (no input evolution)"
                field = added[0]

        if reason is None:
            return GuardDecision(allowed=True)

        record = {
            "timestamp": self._clock(),
            "kind": "retry",
            "tenant_id": _attr(original_job, "tenant_id"),
            "idempotency_key": original_key,
            "violations": [{"type": "RETRY_IDENTITY", "rule": reason, "field": field}],
        }
        self._record(record)
        return GuardDecision(allowed=False, reason=reason, violation=record)

    # User value: flags follow-up language in model output without throwing away a valid extraction.
    def evaluate_result(self, result: Mapping[str, Any]) -> dict:
        warnings: List[dict] = []
        for output in result.get("outputs") or []:
            name = output.get("name")
            content = output.get("content")
            if isinstance(content, str) and content:
                for pattern in self.patterns:
                    if pattern.search(content):
                        warnings.append(
                            {
                                "type": "OUTPUT_CONTINUITY_LANGUAGE",
                                "output": name,
                                "pattern": pattern.pattern,
                                "warning": "Output contains language that may imply follow-up actions",
                            }
                        )
            data = output.get("data")
            if isinstance(data, Mapping):
                warnings.extend(self._field_warnings(data, name))

        extracted = result.get("extracted_data")
        if isinstance(extracted, Mapping):
            warnings.extend(self._field_warnings(extracted, "extracted_data"))

        return {"clean": not warnings, "warnings": warnings}

    def find_chain_references(self, fields: Mapping[str, Any]) -> List[str]:
        hits = _find_field_names(fields, self.forbidden_fields)
        if fields.get(REFERENCE_FLAG):
            hits.insert(0, REFERENCE_FLAG)
        return hits

    def get_violations(self) -> List[dict]:
        return list(self._violations)

    def clear_violations(self) -> None:
        self._violations = []

    def get_status(self) -> dict:
        return {
            "enabled": True,
            "invariant": "no_continuity",
            "name": "No Continuity",
            "description": "Each job is atomic and independent. Continuity is owned by downstream systems.",
            "total_violations": len(self._violations),
            "rule_count": len(self.rules),
            "forbidden_field_count": len(self.forbidden_fields),
            "content_pattern_count": len(self.patterns),
        }

    def _field_warnings(self, data: Mapping[str, Any], output_name: Optional[str]) -> List[dict]:
        return [
            {
                "type": "OUTPUT_FORBIDDEN_FIELD",
                "output": output_name,
                "field": path,
                "warning": f"Output contains field '{path.rsplit('.', 1)[-1]}' that implies continuity",
            }
            for path in _find_field_names(data, self.forbidden_fields)
        ]

    def _record(self, record: dict) -> None:
        self._violations.append(record)
        logger.error(
            "continuity_violation kind=%s tenant=%s idempotency_key=%s violations=%s",
            record["kind"],
            record.get("tenant_id") or "unknown",
            record.get("idempotency_key") or "",
            json.dumps(record["violations"], default=str),
        )


def _attr(obj: Any, name: str) -> Any:
    if isinstance(obj, Mapping):
        return obj.get(name)
    return getattr(obj, name, None)
