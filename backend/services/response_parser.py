"""
Parser for the analysis model's reply.

The reply must be JSON matching the response schema. Missing text, invalid
JSON, missing required fields and out-of-domain enum values are all
rejected with a distinct error rather than passed through.
"""

import json
import re

from pydantic import ValidationError

from config.logging_config import get_logger
from models.analysis_models import AnalysisResult
from services.analysis_prompts import REQUIRED_FIELDS
from services.errors import EmptyResponseError, MalformedResponseError

logger = get_logger(__name__)

CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$")


def strip_code_fence(text: str) -> str:
    """Remove a surrounding ```json ... ``` fence if the model added one."""
    return CODE_FENCE.sub("", text.strip())


def parse_analysis_response(text: str | None) -> AnalysisResult:
    """
    Parse the model reply into an AnalysisResult.

    Args:
        text: Raw reply text.

    Returns:
        The validated AnalysisResult.

    Raises:
        EmptyResponseError: If no text was returned.
        MalformedResponseError: If the text is not a valid result.
    """
    if not text or not text.strip():
        raise EmptyResponseError()

    try:
        payload = json.loads(strip_code_fence(text))
    except json.JSONDecodeError as e:
        raise MalformedResponseError(f"Response is not valid JSON: {e.msg}") from e

    if not isinstance(payload, dict):
        raise MalformedResponseError(
            f"Response must be a JSON object, got {type(payload).__name__}"
        )

    missing = [name for name in REQUIRED_FIELDS if payload.get(name) is None]
    if missing:
        raise MalformedResponseError(f"Response is missing required fields: {', '.join(missing)}")

    try:
        result = AnalysisResult.model_validate(payload)
    except ValidationError as e:
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
        raise MalformedResponseError(f"Response has invalid fields: {', '.join(fields)}") from e

    logger.debug(
        "Analysis response parsed",
        diagnosis=result.diagnosis.value,
        urgency=result.urgency.value,
        findings_count=len(result.findings),
    )
    return result
