"""
Prompt and output contract for the scan analysis model.

Defines the fixed radiology instruction, the JSON schema the model must
answer with, and the builder that turns an encoded image plus optional
patient context into a single multimodal chat request.
"""

from dataclasses import dataclass, field
from typing import Any

from models.analysis_models import Diagnosis, PatientDetails, Urgency


# ============================================================================
# Instruction
# ============================================================================

ANALYSIS_PROMPT = """You are a radiology and oncology assistant reviewing a single chest X-ray or CT image.
Examine the image for signs of lung cancer and any other pulmonary pathology.
{patient_context}

## Output
- Respond with JSON only, matching the provided schema.
- If the image is NOT a recognizable medical lung scan, set diagnosis to "Uncertain" and confidence to 0. Do not invent findings.

## Heatmap
If there is a potential anomaly, estimate its centre as x and y percentages (0-100) of the image width and height, and its approximate radius r as a percentage (0-50), in affectedAreaCoordinates.

## Metrics
- severityScore (1-10): lesion size, irregularity and spread.
- urgency: Routine (normal), Semi-Urgent (minor findings), Urgent (suspicious nodules), Critical (large masses or metastasis).
- reliabilityScore (1-10): image quality and clarity. Score low for blur or heavy artifacts.
- stage: only when malignant, e.g. "Stage II".
- summary: at most 2 sentences."""


# ============================================================================
# Output schema
# ============================================================================

REQUIRED_FIELDS: tuple[str, ...] = (
    "diagnosis",
    "confidence",
    "severityScore",
    "urgency",
    "reliabilityScore",
    "summary",
    "findings",
    "recommendations",
)

RESPONSE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "diagnosis": {
            "type": "string",
            "enum": [d.value for d in Diagnosis],
        },
        "confidence": {
            "type": "number",
            "description": "AI confidence percentage (0-100)",
        },
        "severityScore": {
            "type": "number",
            "description": "Severity scale 1-10",
        },
        "urgency": {
            "type": "string",
            "enum": [u.value for u in Urgency],
        },
        "reliabilityScore": {
            "type": "number",
            "description": "Image quality / reliability score 1-10",
        },
        "stage": {
            "type": ["string", "null"],
            "description": "Estimated stage if malignant (e.g. Stage I, Stage II)",
        },
        "summary": {
            "type": "string",
            "description": "Brief summary of the analysis (max 2 sentences)",
        },
        "findings": {
            "type": "array",
            "items": {"type": "string"},
            "description": "Specific radiological findings",
        },
        "recommendations": {
            "type": "array",
            "items": {"type": "string"},
            "description": "Recommended next steps for the doctor",
        },
        "affectedAreaCoordinates": {
            "type": ["object", "null"],
            "properties": {
                "x": {"type": "number", "description": "X percentage (0-100)"},
                "y": {"type": "number", "description": "Y percentage (0-100)"},
                "r": {"type": "number", "description": "Radius percentage (0-50)"},
            },
            "required": ["x", "y", "r"],
        },
    },
    "required": list(REQUIRED_FIELDS),
}

SCHEMA_NAME = "lung_scan_analysis"


# ============================================================================
# Request
# ============================================================================

@dataclass
class AnalysisRequest:
    """A fully built request for the analysis model."""

    mime_type: str
    encoded_image: str
    instruction: str
    schema: dict[str, Any] = field(default_factory=lambda: RESPONSE_SCHEMA)

    @property
    def image_url(self) -> str:
        """Inline image as a data URL."""
        return f"data:{self.mime_type};base64,{self.encoded_image}"

    @property
    def required_fields(self) -> list[str]:
        return list(self.schema.get("required", []))

    def to_messages(self) -> list[dict[str, Any]]:
        """Single user turn: image part first, then the instruction."""
        return [
            {
                "role": "user",
                "content": [
                    {"type": "image_url", "image_url": {"url": self.image_url}},
                    {"type": "text", "text": self.instruction},
                ],
            }
        ]

    def to_response_format(self) -> dict[str, Any]:
        """JSON-schema response format for the chat completions API."""
        return {
            "type": "json_schema",
            "json_schema": {
                "name": SCHEMA_NAME,
                "schema": self.schema,
            },
        }


def build_patient_context(patient: PatientDetails | None) -> str:
    """Free-text patient prefix for the prompt, or empty when there is none."""
    if patient is None:
        return ""
    return patient.context_line()


def build_analysis_request(
    encoded_image: str,
    mime_type: str,
    patient: PatientDetails | None = None,
) -> AnalysisRequest:
    """
    Build the multimodal analysis request.

    Args:
        encoded_image: Padded base64 image payload.
        mime_type: Image MIME type.
        patient: Optional patient details used as prompt context.

    Returns:
        AnalysisRequest ready to send.
    """
    instruction = ANALYSIS_PROMPT.format(patient_context=build_patient_context(patient))
    return AnalysisRequest(
        mime_type=mime_type,
        encoded_image=encoded_image,
        instruction=instruction,
    )
