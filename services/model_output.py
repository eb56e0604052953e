import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Union

logger = logging.getLogger("api.model_output")

RAW_EXTRACTION_KEY = "raw_extraction"

# Outermost braces; the model is asked for a single JSON object.
_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


@dataclass(frozen=True)
class Structured:
    data: Dict[str, Any]
    mode: str = "structured"


@dataclass(frozen=True)
class Raw:
    text: str
    mode: str = "raw"


ParsedOutput = Union[Structured, Raw]


def parse_model_output(text: str) -> ParsedOutput:
    """Locate one JSON object in free-form model text. Never raises."""
    match = _JSON_OBJECT_RE.search(text or "")
    if not match:
        return Raw(text=text or "")
    try:
        data = json.loads(match.group(0))
    except ValueError:
        logger.warning("model_output_not_json falling_back=raw length=%s", len(text or ""))
        return Raw(text=text)
    if not isinstance(data, dict):
        return Raw(text=text)
    return Structured(data=data)


def as_extracted_data(parsed: ParsedOutput) -> Dict[str, Any]:
    if isinstance(parsed, Structured):
        return parsed.data
    return {RAW_EXTRACTION_KEY: parsed.text}
