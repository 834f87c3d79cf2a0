"""
Scan analysis service.

This service handles:
- The connectivity pre-flight and credential check
- Encoding the upload and building the multimodal request
- The single call to the remote vision model
- Parsing the reply into an AnalysisResult

A run is one attempt: no retry, no cancellation, no local timeout beyond
what the HTTP transport imposes. The service never touches session state;
successful results are recorded by the caller.
"""

import time
from dataclasses import dataclass
from typing import BinaryIO

from openai import AsyncOpenAI, OpenAIError

from config.config import Settings, get_settings
from config.logging_config import get_logger
from models.analysis_models import AnalysisResult, PatientDetails
from services.analysis_prompts import build_analysis_request
from services.connectivity import ConnectivityProbe, get_connectivity_probe
from services.errors import (
    AnalysisError,
    AnalysisServiceError,
    ConfigurationError,
    OfflineError,
)
from services.image_encoder import encode_image, ensure_image_type
from services.response_parser import parse_analysis_response

logger = get_logger(__name__)


@dataclass
class AnalysisOutcome:
    """
    Result of one analysis run.

    On success, result holds the parsed reply. On failure, error holds the
    cause.
    """

    result: AnalysisResult | None = None
    error: AnalysisError | None = None
    processing_time_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def message(self) -> str | None:
        """User-facing error message, if the run failed."""
        return self.error.user_message if self.error else None


class AnalysisService:
    """
    Sends scans to the remote vision model and parses the replies.

    The remote model is reached through the OpenAI SDK against an
    OpenAI-compatible endpoint (Gemini by default).
    """

    def __init__(
        self,
        settings: Settings | None = None,
        client: AsyncOpenAI | None = None,
        connectivity: ConnectivityProbe | None = None,
    ):
        """
        Initialize the analysis service.

        Args:
            settings: Application settings. Uses default if not provided.
            client: Pre-built API client (tests inject a fake here).
            connectivity: Network availability probe. Built from settings if not provided.
        """
        self.settings = settings or get_settings()
        self._client = client
        self.connectivity = connectivity or get_connectivity_probe(self.settings)

    @property
    def is_configured(self) -> bool:
        return self._client is not None or bool(self.settings.api_key)

    @property
    def client(self) -> AsyncOpenAI:
        """
        Get or create the API client.

        Lazily initialized so the app starts without a key; the missing key
        is reported when an analysis is attempted.
        """
        if self._client is None:
            if not self.settings.api_key:
                raise ConfigurationError("Analysis API key not configured")
            self._client = AsyncOpenAI(
                api_key=self.settings.api_key,
                base_url=self.settings.analysis_base_url,
            )
        return self._client

    async def analyze_scan(
        self,
        image: bytes | BinaryIO,
        mime_type: str,
        patient: PatientDetails | None = None,
    ) -> AnalysisResult:
        """
        Analyse one scan image.

        Args:
            image: Raw bytes or binary file object.
            mime_type: Image MIME type.
            patient: Optional patient context for the prompt.

        Returns:
            The parsed AnalysisResult.

        Raises:
            ConfigurationError: If no API key is configured.
            ImageReadError: If the image cannot be read.
            AnalysisServiceError: If the call fails or the reply is unusable.
        """
        client = self.client
        encoded = encode_image(image, mime_type)

        try:
            request = build_analysis_request(encoded, mime_type, patient)
            response = await client.chat.completions.create(
                model=self.settings.analysis_model,
                messages=request.to_messages(),
                response_format=request.to_response_format(),
                max_tokens=self.settings.llm_max_tokens,
                temperature=self.settings.llm_temperature,
            )
            text = response.choices[0].message.content if response.choices else None
            return parse_analysis_response(text)

        except AnalysisServiceError as e:
            logger.error("Analysis response rejected", error_code=e.code, error=e.detail)
            raise
        except OpenAIError as e:
            logger.error("Analysis API error", error=str(e))
            raise AnalysisServiceError(str(e)) from e
        except Exception as e:
            logger.exception("Unexpected error during analysis", error=str(e))
            raise AnalysisServiceError(str(e)) from e

    async def run_analysis(
        self,
        image: bytes | BinaryIO,
        mime_type: str | None,
        patient: PatientDetails,
    ) -> AnalysisOutcome:
        """
        Run an analysis for the dashboard.

        Order: media type check, connectivity pre-flight, then the remote
        analysis. Failures are returned in the outcome, never raised. The
        caller records a successful result against the session as it is
        once the call returns (see SessionStore.append_analysis).

        Args:
            image: Uploaded image.
            mime_type: Declared MIME type of the upload.
            patient: Patient details for this scan.

        Returns:
            AnalysisOutcome with the parsed result or the error.
        """
        start_time = time.perf_counter()

        try:
            mime_type = ensure_image_type(mime_type)
            if not await self.connectivity.is_online():
                raise OfflineError()

            logger.info(
                "Running scan analysis",
                patient_id=patient.id,
                mime_type=mime_type,
                model=self.settings.analysis_model,
            )
            result = await self.analyze_scan(image, mime_type, patient)

        except AnalysisError as e:
            processing_time = int((time.perf_counter() - start_time) * 1000)
            logger.warning(
                "Scan analysis failed",
                patient_id=patient.id,
                error_code=e.code,
                processing_time_ms=processing_time,
            )
            return AnalysisOutcome(error=e, processing_time_ms=processing_time)

        processing_time = int((time.perf_counter() - start_time) * 1000)

        logger.info(
            "Scan analysis completed",
            patient_id=patient.id,
            diagnosis=result.diagnosis.value,
            urgency=result.urgency.value,
            processing_time_ms=processing_time,
        )

        return AnalysisOutcome(result=result, processing_time_ms=processing_time)
