"""
Per-session application state.

AppState is immutable. Every change goes through one of the transition
functions below, which return a new state:

    LANDING -> LOGIN -> DASHBOARD

DASHBOARD is only reachable with a logged-in user. The registry of completed
analyses lives in the state, newest first, and disappears with the session.
"""

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from uuid import uuid4

from config.logging_config import get_logger
from models.analysis_models import (
    AnalysisResult,
    AppView,
    PatientDetails,
    PatientRecord,
    User,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class AppState:
    """Snapshot of one session."""

    view: AppView = AppView.LANDING
    user: User | None = None
    patient: PatientDetails | None = None
    registry: tuple[PatientRecord, ...] = ()
    last_result: AnalysisResult | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None


# ============================================================================
# Transitions
# ============================================================================

def navigate(state: AppState, view: AppView) -> AppState:
    """Switch view; the dashboard redirects to login without a user."""
    if view == AppView.DASHBOARD and not state.is_authenticated:
        return replace(state, view=AppView.LOGIN)
    return replace(state, view=view)


def login(state: AppState, user: User) -> AppState:
    """Set the active user and open the dashboard."""
    return replace(state, user=user, view=AppView.DASHBOARD)


def logout(state: AppState) -> AppState:
    """Drop the user and everything recorded during the login."""
    return AppState()


def start_patient(state: AppState, patient: PatientDetails) -> AppState:
    """Set the in-progress patient intake."""
    return replace(state, patient=patient, last_result=None)


def reset_patient(state: AppState) -> AppState:
    """Clear the intake and the last result; the registry is kept."""
    return replace(state, patient=None, last_result=None)


def record_analysis(
    state: AppState,
    patient: PatientDetails,
    result: AnalysisResult,
    timestamp: datetime | None = None,
) -> tuple[AppState, PatientRecord]:
    """
    Append a completed analysis to the registry.

    The record holds a snapshot of the patient details, so later edits to
    the intake never change historic records.

    Returns:
        The new state and the record that was prepended.
    """
    record = PatientRecord(
        **patient.model_dump(),
        timestamp=timestamp or datetime.now(timezone.utc),
        result=result,
    )
    new_state = replace(
        state,
        patient=patient,
        registry=(record,) + state.registry,
        last_result=result,
    )
    return new_state, record


def search_registry(state: AppState, query: str | None = None) -> list[PatientRecord]:
    """Registry records matching query on id, name or diagnosis (case-insensitive)."""
    records = list(state.registry)
    if not query or not query.strip():
        return records
    needle = query.strip().lower()
    return [
        r for r in records
        if needle in r.id.lower()
        or needle in r.name.lower()
        or needle in r.result.diagnosis.value.lower()
    ]


# ============================================================================
# Session store
# ============================================================================

class SessionNotFoundError(KeyError):
    """No session exists for the given id."""


class SessionStore:
    """
    In-memory map of session id to AppState.

    Lives for the process lifetime; nothing is persisted.
    """

    def __init__(self):
        self._sessions: dict[str, AppState] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def create(self) -> tuple[str, AppState]:
        session_id = uuid4().hex
        state = AppState()
        self._sessions[session_id] = state
        logger.info("Session created", session_id=session_id)
        return session_id, state

    def get(self, session_id: str) -> AppState:
        try:
            return self._sessions[session_id]
        except KeyError:
            raise SessionNotFoundError(session_id) from None

    def save(self, session_id: str, state: AppState) -> AppState:
        if session_id not in self._sessions:
            raise SessionNotFoundError(session_id)
        self._sessions[session_id] = state
        return state

    def append_analysis(
        self,
        session_id: str,
        user: User,
        patient: PatientDetails,
        result: AnalysisResult,
    ) -> PatientRecord | None:
        """
        Record a finished analysis against the session as it is now.

        The state is read again at append time, so analyses that finish
        while others are in flight each add their own record. If the user
        who started the analysis is no longer logged in, the result is
        dropped and None is returned.
        """
        state = self.get(session_id)
        if state.user != user:
            logger.warning(
                "Analysis result discarded, session user changed",
                session_id=session_id,
                patient_id=patient.id,
            )
            return None

        state, record = record_analysis(state, patient, result)
        self.save(session_id, state)
        return record

    def discard(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)
