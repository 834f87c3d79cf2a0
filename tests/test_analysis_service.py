"""
Tests for the analysis service and its orchestration.

Covers:
- Request shape sent to the remote model.
- Offline pre-flight, missing key, transport, empty and malformed replies.
- Recording a successful result in the session registry.
"""

import json
from datetime import datetime, timezone

import httpx
import openai
import pytest

from config.config import Settings
from conftest import BENIGN_RESPONSE, FakeClient
from models.analysis_models import Diagnosis, PatientDetails
from services.analysis_service import AnalysisService
from services.auth_service import build_user
from services.errors import (
    SERVICE_FAILURE_MESSAGE,
    AnalysisServiceError,
    ConfigurationError,
    EmptyResponseError,
    MalformedResponseError,
)
from services.session_state import SessionStore, login


@pytest.fixture
def patient() -> PatientDetails:
    return PatientDetails(name="Ada Jenkins", age="58", symptoms="cough", history="smoker")


@pytest.mark.asyncio
async def test_analyze_scan_sends_multimodal_request(settings, benign_client, online, red_square_png, patient):
    service = AnalysisService(settings, client=benign_client, connectivity=online)

    result = await service.analyze_scan(red_square_png, "image/png", patient)

    assert result.diagnosis == Diagnosis.BENIGN
    call = benign_client.completions.calls[0]
    assert call["model"] == settings.analysis_model
    assert call["response_format"]["json_schema"]["schema"]["required"][0] == "diagnosis"
    image_part = call["messages"][0]["content"][0]
    assert image_part["image_url"]["url"].startswith("data:image/png;base64,")


@pytest.mark.asyncio
async def test_empty_reply_fails_with_no_response(settings, online, red_square_png):
    service = AnalysisService(settings, client=FakeClient(content=""), connectivity=online)

    with pytest.raises(EmptyResponseError) as exc:
        await service.analyze_scan(red_square_png, "image/png")
    assert "No response from AI" in str(exc.value)


@pytest.mark.asyncio
async def test_missing_field_reply_is_malformed(settings, online, red_square_png):
    payload = dict(BENIGN_RESPONSE)
    del payload["findings"]
    service = AnalysisService(settings, client=FakeClient(content=json.dumps(payload)), connectivity=online)

    with pytest.raises(MalformedResponseError):
        await service.analyze_scan(red_square_png, "image/png")


@pytest.mark.asyncio
async def test_transport_error_becomes_service_error(settings, online, red_square_png):
    error = openai.APIConnectionError(request=httpx.Request("POST", "https://example.test/v1/chat/completions"))
    service = AnalysisService(settings, client=FakeClient(error=error), connectivity=online)

    with pytest.raises(AnalysisServiceError) as exc:
        await service.analyze_scan(red_square_png, "image/png")
    assert exc.value.user_message == SERVICE_FAILURE_MESSAGE
    assert isinstance(exc.value.__cause__, openai.APIConnectionError)


@pytest.mark.asyncio
async def test_missing_api_key_fails_before_request(online, red_square_png):
    service = AnalysisService(Settings(_env_file=None, api_key=""), connectivity=online)

    with pytest.raises(ConfigurationError) as exc:
        await service.analyze_scan(red_square_png, "image/png")
    assert exc.value.user_message == "API Key is missing. Please check your environment configuration."


@pytest.mark.asyncio
async def test_run_analysis_returns_parsed_result(settings, benign_client, online, red_square_png, patient):
    service = AnalysisService(settings, client=benign_client, connectivity=online)

    outcome = await service.run_analysis(red_square_png, "image/png", patient)

    assert outcome.ok
    assert outcome.error is None
    assert outcome.result.diagnosis == Diagnosis.BENIGN
    assert len(benign_client.completions.calls) == 1


@pytest.mark.asyncio
async def test_successful_analysis_appends_one_timestamped_record(settings, benign_client, online, red_square_png, patient):
    service = AnalysisService(settings, client=benign_client, connectivity=online)
    sessions = SessionStore()
    session_id, state = sessions.create()
    state = sessions.save(session_id, login(state, build_user("jenkins")))

    before = datetime.now(timezone.utc)
    outcome = await service.run_analysis(red_square_png, "image/png", patient)
    record = sessions.append_analysis(session_id, state.user, patient, outcome.result)
    after = datetime.now(timezone.utc)

    registry = sessions.get(session_id).registry
    assert registry == (record,)
    assert record.result == outcome.result
    assert record.id == patient.id
    assert before <= record.timestamp <= after
    assert sessions.get(session_id).last_result == outcome.result


@pytest.mark.asyncio
async def test_offline_blocks_the_call(settings, benign_client, offline, red_square_png, patient):
    service = AnalysisService(settings, client=benign_client, connectivity=offline)

    outcome = await service.run_analysis(red_square_png, "image/png", patient)

    assert not outcome.ok
    assert outcome.result is None
    assert outcome.message == "Offline Mode: Cannot perform AI Analysis. Please check internet connection."
    assert benign_client.completions.calls == []


@pytest.mark.asyncio
async def test_failed_analysis_yields_no_result(settings, online, red_square_png, patient):
    failing = AnalysisService(settings, client=FakeClient(content="not json"), connectivity=online)

    outcome = await failing.run_analysis(red_square_png, "image/png", patient)

    assert outcome.message == SERVICE_FAILURE_MESSAGE
    assert isinstance(outcome.error, MalformedResponseError)
    assert outcome.result is None


@pytest.mark.asyncio
async def test_non_image_upload_is_rejected(settings, benign_client, online, patient):
    service = AnalysisService(settings, client=benign_client, connectivity=online)

    outcome = await service.run_analysis(b"%PDF-1.7", "application/pdf", patient)

    assert outcome.message == "Please upload an image file (JPEG, PNG)."
    assert benign_client.completions.calls == []
