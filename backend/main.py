"""
MedSecure Diagnostics API - AI-assisted pulmonary scan analysis

Backend for the diagnostic dashboard. A logged-in user uploads a chest
X-ray or CT image, the image is sent to a hosted vision model for a
simulated diagnostic read, and the structured result is returned and kept
in a per-session registry.

This API provides:
- Sessions with explicit view state (landing, login, dashboard)
- Pluggable login (demo mode accepts any non-empty credentials)
- Patient intake and scan analysis
- An in-memory registry of past analyses, newest first
"""

import time
from contextlib import asynccontextmanager
from uuid import uuid4

from fastapi import Depends, FastAPI, File, Form, Header, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config.config import Settings, get_settings
from config.logging_config import configure_logging, get_logger, log_request_context
from models.analysis_models import Gender, PatientDetails
from models.models import (
    AnalysisResponse,
    ErrorResponse,
    HealthResponse,
    HealthStatus,
    LoginRequest,
    NavigateRequest,
    PatientIntakeRequest,
    RegistryResponse,
    SessionStateResponse,
)
from services.analysis_service import AnalysisService
from services.auth_service import (
    INVALID_CREDENTIALS_MESSAGE,
    CredentialVerifier,
    get_credential_verifier,
)
from services.errors import AnalysisError
from services.session_state import (
    AppState,
    SessionNotFoundError,
    SessionStore,
    login,
    logout,
    navigate,
    reset_patient,
    search_registry,
    start_patient,
)

# Configure logging before anything else
configure_logging()
logger = get_logger(__name__)

SESSION_HEADER = "X-Session-ID"

# HTTP status per analysis error code
ERROR_STATUS = {
    "OFFLINE": 503,
    "CONFIGURATION_ERROR": 503,
    "UNSUPPORTED_MEDIA": 415,
    "IMAGE_READ_ERROR": 400,
}
SERVICE_ERROR_STATUS = 502


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events with proper logging.
    """
    settings: Settings = app.state.settings

    logger.info(
        "Application starting",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
        config=settings.get_safe_config_dict(),
    )
    if not settings.api_key:
        logger.warning("Analysis API key not configured, analyses will fail until API_KEY is set")

    yield

    logger.info("Application shutting down", sessions=len(app.state.sessions))


def create_app(
    settings: Settings | None = None,
    analysis_service: AnalysisService | None = None,
    verifier: CredentialVerifier | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Optional settings override for testing.
        analysis_service: Optional analysis service override for testing.
        verifier: Optional credential verifier override.

    Returns:
        Configured FastAPI application.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.app_name,
        description=__doc__,
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    app.state.settings = settings
    app.state.sessions = SessionStore()
    app.state.analysis_service = analysis_service or AnalysisService(settings)
    app.state.verifier = verifier or get_credential_verifier(settings)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[SESSION_HEADER, "X-Request-ID"],
    )

    # Request logging middleware
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all requests with timing and context."""
        request_id = str(uuid4())
        start_time = time.perf_counter()
        request.state.request_id = request_id

        log_request_context(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            session_id=request.headers.get(SESSION_HEADER),
        )

        response = await call_next(request)

        processing_time = int((time.perf_counter() - start_time) * 1000)
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Processing-Time-Ms"] = str(processing_time)

        logger.info(
            "Request completed",
            status_code=response.status_code,
            processing_time_ms=processing_time,
        )

        return response

    # Exception handlers
    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        """Handle HTTP exceptions with structured response."""
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(
                error=f"HTTP_{exc.status_code}",
                message=exc.detail,
                request_id=getattr(request.state, "request_id", None),
            ).model_dump(mode="json", by_alias=True),
        )

    @app.exception_handler(AnalysisError)
    async def analysis_exception_handler(request: Request, exc: AnalysisError):
        """Return the user-facing message for analysis failures."""
        return JSONResponse(
            status_code=ERROR_STATUS.get(exc.code, SERVICE_ERROR_STATUS),
            content=ErrorResponse(
                error=exc.code,
                message=exc.user_message,
                request_id=getattr(request.state, "request_id", None),
            ).model_dump(mode="json", by_alias=True),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions."""
        logger.exception("Unhandled exception", error=str(exc))
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                error="INTERNAL_ERROR",
                message="An unexpected error occurred",
                request_id=getattr(request.state, "request_id", None),
            ).model_dump(mode="json", by_alias=True),
        )

    register_routes(app)

    return app


# ============================================================================
# Dependencies
# ============================================================================

def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_session_store(request: Request) -> SessionStore:
    return request.app.state.sessions


def get_session_id(
    x_session_id: str | None = Header(default=None, alias=SESSION_HEADER),
    sessions: SessionStore = Depends(get_session_store),
) -> str:
    """Resolve the session from the X-Session-ID header."""
    if not x_session_id:
        raise HTTPException(status_code=401, detail="Missing session. Create one at /api/v1/sessions")
    try:
        sessions.get(x_session_id)
    except SessionNotFoundError:
        raise HTTPException(status_code=404, detail="Session not found or expired")
    return x_session_id


def require_dashboard(state: AppState) -> None:
    """Dashboard operations need a logged-in user."""
    if not state.is_authenticated:
        raise HTTPException(status_code=401, detail="Login required")


def to_session_response(session_id: str, state: AppState) -> SessionStateResponse:
    return SessionStateResponse(
        session_id=session_id,
        view=state.view,
        user=state.user,
        patient=state.patient,
        registry_size=len(state.registry),
    )


# ============================================================================
# Routes
# ============================================================================

def register_routes(app: FastAPI) -> None:
    """Register all API routes."""

    @app.get("/", tags=["Root"])
    async def root(settings: Settings = Depends(get_app_settings)):
        """Root endpoint with API information."""
        return {
            "name": settings.app_name,
            "version": settings.app_version,
            "status": "operational",
            "docs": "/docs" if settings.debug else "disabled",
        }

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check(request: Request) -> HealthResponse:
        """
        Health check endpoint for monitoring.

        Returns system health status and component checks.
        """
        settings: Settings = request.app.state.settings
        service: AnalysisService = request.app.state.analysis_service
        checks = {
            "api": True,
            "analysis_configured": service.is_configured,
            "online": await service.connectivity.is_online(),
        }

        if all(checks.values()):
            status = HealthStatus.HEALTHY
        elif checks["api"]:
            status = HealthStatus.DEGRADED
        else:
            status = HealthStatus.UNHEALTHY

        return HealthResponse(
            status=status,
            version=settings.app_version,
            environment=settings.environment,
            checks=checks,
        )

    # ------------------------------------------------------------------
    # Sessions and navigation
    # ------------------------------------------------------------------

    @app.post("/api/v1/sessions", response_model=SessionStateResponse, status_code=201, tags=["Session"])
    async def create_session(sessions: SessionStore = Depends(get_session_store)) -> SessionStateResponse:
        """Start a new session on the landing view."""
        session_id, state = sessions.create()
        return to_session_response(session_id, state)

    @app.get("/api/v1/sessions/current", response_model=SessionStateResponse, tags=["Session"])
    async def get_session(
        session_id: str = Depends(get_session_id),
        sessions: SessionStore = Depends(get_session_store),
    ) -> SessionStateResponse:
        """Current view, user and registry size."""
        return to_session_response(session_id, sessions.get(session_id))

    @app.post("/api/v1/sessions/current/navigate", response_model=SessionStateResponse, tags=["Session"])
    async def navigate_session(
        request: NavigateRequest,
        session_id: str = Depends(get_session_id),
        sessions: SessionStore = Depends(get_session_store),
    ) -> SessionStateResponse:
        """
        Switch view.

        Navigating to the dashboard without a logged-in user lands on the
        login view instead.
        """
        state = sessions.save(session_id, navigate(sessions.get(session_id), request.view))
        return to_session_response(session_id, state)

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    @app.post("/api/v1/auth/login", response_model=SessionStateResponse, tags=["Auth"])
    async def login_user(
        credentials: LoginRequest,
        request: Request,
        session_id: str = Depends(get_session_id),
        sessions: SessionStore = Depends(get_session_store),
    ) -> SessionStateResponse:
        """Verify credentials and open the dashboard."""
        verifier: CredentialVerifier = request.app.state.verifier
        user = verifier.verify(credentials.username, credentials.password)
        if user is None:
            logger.info("Login rejected", username_length=len(credentials.username))
            raise HTTPException(status_code=401, detail=INVALID_CREDENTIALS_MESSAGE)

        state = sessions.save(session_id, login(sessions.get(session_id), user))
        logger.info("User logged in", user_id=user.id, role=user.role)
        return to_session_response(session_id, state)

    @app.post("/api/v1/auth/logout", response_model=SessionStateResponse, tags=["Auth"])
    async def logout_user(
        session_id: str = Depends(get_session_id),
        sessions: SessionStore = Depends(get_session_store),
    ) -> SessionStateResponse:
        """Log out, clearing the session registry, and return to the landing view."""
        state = sessions.save(session_id, logout(sessions.get(session_id)))
        return to_session_response(session_id, state)

    # ------------------------------------------------------------------
    # Dashboard
    # ------------------------------------------------------------------

    @app.post("/api/v1/patients", response_model=SessionStateResponse, tags=["Dashboard"])
    async def submit_patient(
        intake: PatientIntakeRequest,
        session_id: str = Depends(get_session_id),
        sessions: SessionStore = Depends(get_session_store),
    ) -> SessionStateResponse:
        """Submit the patient intake form; a patient id is generated."""
        state = sessions.get(session_id)
        require_dashboard(state)

        patient = PatientDetails(**intake.model_dump())
        state = sessions.save(session_id, start_patient(state, patient))
        return to_session_response(session_id, state)

    @app.delete("/api/v1/patients/current", response_model=SessionStateResponse, tags=["Dashboard"])
    async def reset_current_patient(
        session_id: str = Depends(get_session_id),
        sessions: SessionStore = Depends(get_session_store),
    ) -> SessionStateResponse:
        """Start over with a new patient. The registry is kept."""
        state = sessions.get(session_id)
        require_dashboard(state)
        state = sessions.save(session_id, reset_patient(state))
        return to_session_response(session_id, state)

    @app.post(
        "/api/v1/analysis",
        response_model=AnalysisResponse,
        response_model_exclude_none=True,
        tags=["Dashboard"],
    )
    async def analyze(
        request: Request,
        file: UploadFile = File(..., description="Chest X-ray or CT image"),
        name: str | None = Form(default=None),
        age: str | None = Form(default=None),
        gender: Gender | None = Form(default=None),
        symptoms: str | None = Form(default=None),
        history: str | None = Form(default=None),
        session_id: str = Depends(get_session_id),
        sessions: SessionStore = Depends(get_session_store),
    ) -> AnalysisResponse:
        """
        Analyse an uploaded scan for the current patient.

        Patient fields in the form override the stored intake; without a
        stored intake, name and age are required. The result is recorded
        against the session as it stands when the analysis finishes.
        """
        state = sessions.get(session_id)
        require_dashboard(state)

        patient = _resolve_patient(
            state.patient,
            name=name,
            age=age,
            gender=gender,
            symptoms=symptoms,
            history=history,
        )

        service: AnalysisService = request.app.state.analysis_service
        outcome = await service.run_analysis(file.file, file.content_type, patient)
        if not outcome.ok:
            raise outcome.error

        record = sessions.append_analysis(session_id, state.user, patient, outcome.result)
        if record is None:
            raise HTTPException(status_code=409, detail="Session ended before the analysis finished")

        return AnalysisResponse(
            result=outcome.result,
            record=record,
            processing_time_ms=outcome.processing_time_ms,
        )

    @app.get("/api/v1/registry", response_model=RegistryResponse, response_model_exclude_none=True, tags=["Dashboard"])
    async def get_registry(
        query: str | None = None,
        session_id: str = Depends(get_session_id),
        sessions: SessionStore = Depends(get_session_store),
    ) -> RegistryResponse:
        """
        Patients analysed in this session, newest first.

        Args:
            query: Optional filter on patient id, name or diagnosis.
        """
        state = sessions.get(session_id)
        require_dashboard(state)
        return RegistryResponse(
            records=search_registry(state, query),
            total=len(state.registry),
        )


def _resolve_patient(stored: PatientDetails | None, **form: str | Gender | None) -> PatientDetails:
    """
    Patient for an analysis: form fields over the stored intake.

    Fields left out of the form keep their stored values. A different name
    is a different patient and gets a new id.
    """
    overrides = {field: value for field, value in form.items() if value}
    if not overrides:
        if stored is None:
            raise HTTPException(status_code=422, detail="Patient name and age are required")
        return stored

    fields = stored.model_dump(exclude={"id"}) if stored else {}
    if stored is not None and overrides.get("name", stored.name) == stored.name:
        fields["id"] = stored.id
    fields.update(overrides)
    try:
        return PatientDetails(**fields)
    except ValueError:
        raise HTTPException(status_code=422, detail="Patient name and age are required") from None


# Create the application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
