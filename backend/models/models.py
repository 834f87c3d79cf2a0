"""
Pydantic models for API request/response validation.

All models are explicit, documented, and enforce strict validation.
Invalid inputs fail closed with descriptive error messages.
"""

from datetime import datetime, timezone
from enum import Enum

from pydantic import Field, field_validator

from models.analysis_models import (
    AnalysisResult,
    AppView,
    CamelModel,
    Gender,
    PatientDetails,
    PatientRecord,
    User,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LoginRequest(CamelModel):
    """
    Credentials submitted from the login form.

    Attributes:
        username: Provider ID or name.
        password: Secure key.
    """
    username: str = Field(default="", max_length=200, description="Provider ID / name")
    password: str = Field(default="", max_length=200, description="Secure key")


class NavigateRequest(CamelModel):
    """Request to switch the current view."""
    view: AppView = Field(..., description="Target view")


class SessionStateResponse(CamelModel):
    """
    Snapshot of a session's application state.

    Attributes:
        session_id: Opaque session identifier (send back as X-Session-ID).
        view: Current view.
        user: Logged-in user, if any.
        patient: In-progress patient intake, if any.
        registry_size: Number of completed analyses in this session.
    """
    session_id: str = Field(..., description="Session identifier")
    view: AppView = Field(..., description="Current view")
    user: User | None = Field(default=None, description="Logged-in user")
    patient: PatientDetails | None = Field(default=None, description="In-progress patient")
    registry_size: int = Field(default=0, ge=0, description="Completed analyses")


class PatientIntakeRequest(CamelModel):
    """Patient intake form as submitted; the id is generated server-side."""
    name: str = Field(..., max_length=200)
    age: str = Field(..., max_length=20)
    gender: Gender = Field(default=Gender.MALE)
    symptoms: str = Field(default="", max_length=2000)
    history: str = Field(default="", max_length=2000)

    @field_validator("name", "age")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        """Name and age are required to proceed to the scan step."""
        if not v.strip():
            raise ValueError("Patient name and age are required")
        return v.strip()


class AnalysisResponse(CamelModel):
    """
    Result of a successful analysis.

    Attributes:
        result: Parsed diagnostic read.
        record: Registry entry created for this analysis.
        processing_time_ms: Time spent on the remote call and parsing.
    """
    result: AnalysisResult = Field(..., description="Diagnostic read")
    record: PatientRecord = Field(..., description="Registry entry")
    processing_time_ms: int = Field(..., ge=0, description="Processing time in milliseconds")


class RegistryResponse(CamelModel):
    """Session registry, newest first."""
    records: list[PatientRecord] = Field(default_factory=list)
    total: int = Field(..., ge=0, description="Records in the session registry")


class HealthStatus(str, Enum):
    """System health status levels."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class HealthResponse(CamelModel):
    """
    Health check response for monitoring.

    Attributes:
        status: Overall system health status.
        version: Application version.
        environment: Deployment environment.
        checks: Individual component health checks.
    """
    status: HealthStatus = Field(..., description="Overall health status")
    version: str = Field(..., description="Application version")
    environment: str = Field(..., description="Deployment environment")
    timestamp: datetime = Field(default_factory=_utcnow, description="Check timestamp")
    checks: dict[str, bool] = Field(default_factory=dict, description="Component health checks")


class ErrorResponse(CamelModel):
    """
    Standardized error response.

    Attributes:
        error: Error type/code.
        message: Human-readable error message.
        details: Additional error details.
        request_id: Request ID for tracing.
    """
    error: str = Field(..., description="Error type")
    message: str = Field(..., description="Error message")
    details: dict | None = Field(default=None, description="Additional details")
    request_id: str | None = Field(default=None, description="Request ID for tracing")
    timestamp: datetime = Field(default_factory=_utcnow, description="Error timestamp")
