"""
Domain models for scan analysis.

The AnalysisResult shape is dictated by the remote model's output schema,
so its wire names are camelCase (severityScore, affectedAreaCoordinates).
Python code uses the snake_case attribute names.
"""

import random
from datetime import datetime, timezone
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class Diagnosis(str, Enum):
    """Diagnostic classes the remote model may return."""
    NORMAL = "Normal"
    BENIGN = "Benign"
    MALIGNANT = "Malignant"
    UNCERTAIN = "Uncertain"


class Urgency(str, Enum):
    """Follow-up urgency levels."""
    ROUTINE = "Routine"  # normal
    SEMI_URGENT = "Semi-Urgent"  # minor findings
    URGENT = "Urgent"  # suspicious nodules
    CRITICAL = "Critical"  # large masses / metastasis


class Gender(str, Enum):
    MALE = "Male"
    FEMALE = "Female"
    OTHER = "Other"


class AppView(str, Enum):
    """Top-level views of the front end."""
    LANDING = "LANDING"
    LOGIN = "LOGIN"
    DASHBOARD = "DASHBOARD"


class CamelModel(BaseModel):
    """Base for models exchanged with the front end in camelCase."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


def generate_patient_id() -> str:
    """Client-style patient identifier, e.g. PT-4821."""
    return f"PT-{random.randint(0, 9999)}"


class User(CamelModel):
    """
    An authenticated dashboard user.

    Attributes:
        id: User identifier.
        name: Display name.
        role: Either doctor or admin.
        email: Contact email.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="User identifier")
    name: str = Field(..., description="Display name")
    role: Literal["doctor", "admin"] = Field(default="doctor", description="User role")
    email: str = Field(..., description="Email address")


class PatientDetails(CamelModel):
    """
    Patient intake form.

    Name and age are required before a scan can be analysed; the remaining
    fields are free text passed to the model as context.
    """
    id: str = Field(default_factory=generate_patient_id, description="Patient identifier")
    name: str = Field(..., max_length=200, description="Patient name")
    age: str = Field(..., max_length=20, description="Patient age (free text)")
    gender: Gender = Field(default=Gender.MALE, description="Patient gender")
    symptoms: str = Field(default="", max_length=2000, description="Presenting symptoms")
    history: str = Field(default="", max_length=2000, description="Relevant medical history")

    @field_validator("name", "age")
    @classmethod
    def validate_required_text(cls, v: str) -> str:
        """Name and age cannot be blank."""
        cleaned = v.strip()
        if not cleaned:
            raise ValueError("Field cannot be empty")
        return cleaned

    def context_line(self) -> str:
        """Render the details as the context prefix used in the model prompt."""
        return (
            f"Patient Context: Age {self.age}, Gender {self.gender.value}, "
            f"Symptoms: {self.symptoms}, History: {self.history}."
        )


class AffectedArea(CamelModel):
    """Centre (x, y) and radius (r) of a focal region, as image percentages."""
    x: float
    y: float
    r: float


class AnalysisResult(CamelModel):
    """
    Structured diagnostic read produced by the remote model.

    Values are displayed as returned; only presence, types and enum
    membership are checked locally.
    """
    diagnosis: Diagnosis
    confidence: float
    severity_score: float
    urgency: Urgency
    reliability_score: float
    stage: str | None = None
    summary: str
    findings: list[str]
    recommendations: list[str]
    affected_area_coordinates: AffectedArea | None = None


class PatientRecord(PatientDetails):
    """
    A completed analysis in the session registry.

    Snapshot of the patient details at the time of analysis, plus when the
    record was added and the parsed result.
    """
    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the record was appended"
    )
    result: AnalysisResult
