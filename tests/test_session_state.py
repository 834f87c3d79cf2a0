from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from conftest import BENIGN_RESPONSE, MALIGNANT_RESPONSE
from models.analysis_models import AnalysisResult, AppView, PatientDetails, User
from services.session_state import (
    AppState,
    SessionNotFoundError,
    SessionStore,
    login,
    logout,
    navigate,
    record_analysis,
    reset_patient,
    search_registry,
    start_patient,
)

DOCTOR = User(id="1", name="Jenkins", role="doctor", email="jenkins@hospital.org")


def test_dashboard_requires_user():
    state = navigate(AppState(), AppView.DASHBOARD)
    assert state.view == AppView.LOGIN


def test_landing_login_dashboard_flow():
    state = navigate(AppState(), AppView.LOGIN)
    assert state.view == AppView.LOGIN
    state = login(state, DOCTOR)
    assert state.view == AppView.DASHBOARD
    assert navigate(state, AppView.LANDING).view == AppView.LANDING
    assert navigate(navigate(state, AppView.LANDING), AppView.DASHBOARD).view == AppView.DASHBOARD


def test_transitions_do_not_mutate_input():
    original = AppState()
    login(original, DOCTOR)
    assert original.user is None
    assert original.view == AppView.LANDING


def test_logout_clears_everything():
    state = login(AppState(), DOCTOR)
    patient = PatientDetails(name="Ada", age="58")
    state, _ = record_analysis(state, patient, AnalysisResult.model_validate(BENIGN_RESPONSE))
    state = logout(state)
    assert state == AppState()


def test_record_is_snapshot_of_patient():
    patient = PatientDetails(name="Ada", age="58", symptoms="cough")
    stamp = datetime(2026, 1, 2, 10, 30, tzinfo=timezone.utc)
    state, record = record_analysis(
        AppState(), patient, AnalysisResult.model_validate(BENIGN_RESPONSE), timestamp=stamp
    )

    patient.symptoms = "cough, weight loss"
    assert record.symptoms == "cough"
    assert record.timestamp == stamp
    with pytest.raises(ValidationError):
        record.symptoms = "edited"


def test_registry_newest_first_and_search():
    state = AppState()
    ada = PatientDetails(id="PT-1", name="Ada Jenkins", age="58")
    bob = PatientDetails(id="PT-2", name="Bob Stone", age="61")
    state, _ = record_analysis(state, ada, AnalysisResult.model_validate(BENIGN_RESPONSE))
    state, _ = record_analysis(state, bob, AnalysisResult.model_validate(MALIGNANT_RESPONSE))

    assert [r.id for r in state.registry] == ["PT-2", "PT-1"]
    assert [r.id for r in search_registry(state, "ada")] == ["PT-1"]
    assert [r.id for r in search_registry(state, "malig")] == ["PT-2"]
    assert [r.id for r in search_registry(state, "pt-")] == ["PT-2", "PT-1"]
    assert len(search_registry(state, "  ")) == 2


def test_reset_patient_keeps_registry():
    patient = PatientDetails(name="Ada", age="58")
    state = start_patient(login(AppState(), DOCTOR), patient)
    state, _ = record_analysis(state, patient, AnalysisResult.model_validate(BENIGN_RESPONSE))

    state = reset_patient(state)
    assert state.patient is None
    assert state.last_result is None
    assert len(state.registry) == 1


def test_patient_requires_name_and_age():
    with pytest.raises(ValidationError):
        PatientDetails(name="  ", age="40")
    with pytest.raises(ValidationError):
        PatientDetails(name="Ada", age="")


def test_patient_id_format():
    patient = PatientDetails(name="Ada", age="58")
    prefix, number = patient.id.split("-")
    assert prefix == "PT"
    assert 0 <= int(number) <= 9999


def test_session_store_roundtrip():
    store = SessionStore()
    session_id, state = store.create()
    assert store.get(session_id) is state

    store.save(session_id, login(state, DOCTOR))
    assert store.get(session_id).user == DOCTOR

    store.discard(session_id)
    with pytest.raises(SessionNotFoundError):
        store.get(session_id)
    with pytest.raises(SessionNotFoundError):
        store.save(session_id, state)


def test_append_analysis_uses_current_state():
    store = SessionStore()
    session_id, state = store.create()
    started = store.save(session_id, login(state, DOCTOR))
    benign = AnalysisResult.model_validate(BENIGN_RESPONSE)
    malignant = AnalysisResult.model_validate(MALIGNANT_RESPONSE)

    # Both analyses started from the same snapshot; each keeps its record
    first = store.append_analysis(session_id, started.user, PatientDetails(name="Ada", age="58"), benign)
    second = store.append_analysis(session_id, started.user, PatientDetails(name="Bob", age="61"), malignant)

    assert store.get(session_id).registry == (second, first)


def test_append_analysis_after_logout_is_dropped():
    store = SessionStore()
    session_id, state = store.create()
    started = store.save(session_id, login(state, DOCTOR))
    store.save(session_id, logout(started))

    record = store.append_analysis(
        session_id,
        started.user,
        PatientDetails(name="Ada", age="58"),
        AnalysisResult.model_validate(BENIGN_RESPONSE),
    )

    assert record is None
    current = store.get(session_id)
    assert current.user is None
    assert current.view == AppView.LANDING
    assert current.registry == ()
