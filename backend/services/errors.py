"""
Errors raised along the analysis flow.

Each error carries a stable code (used for the HTTP status and logs) and the
message shown to the user. Remote-side failures share one generic message;
the underlying detail is only logged.
"""

SERVICE_FAILURE_MESSAGE = "Failed to analyze image. Please ensure you are online and try again."


class AnalysisError(Exception):
    """Base class for all analysis flow failures."""

    code = "ANALYSIS_ERROR"
    user_message = "Analysis failed"

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.user_message
        super().__init__(self.detail)


class ConfigurationError(AnalysisError):
    """The analysis credential is missing."""

    code = "CONFIGURATION_ERROR"
    user_message = "API Key is missing. Please check your environment configuration."


class OfflineError(AnalysisError):
    """Connectivity pre-flight reported the network as unavailable."""

    code = "OFFLINE"
    user_message = "Offline Mode: Cannot perform AI Analysis. Please check internet connection."


class UnsupportedImageError(AnalysisError):
    """The upload is not an image."""

    code = "UNSUPPORTED_MEDIA"
    user_message = "Please upload an image file (JPEG, PNG)."


class ImageReadError(AnalysisError):
    """The uploaded file could not be read."""

    code = "IMAGE_READ_ERROR"
    user_message = "Error reading file"


class AnalysisServiceError(AnalysisError):
    """The remote call failed or returned something unusable."""

    code = "ANALYSIS_SERVICE_ERROR"
    user_message = SERVICE_FAILURE_MESSAGE


class EmptyResponseError(AnalysisServiceError):
    """The remote model returned no text."""

    code = "EMPTY_RESPONSE"

    def __init__(self, detail: str | None = None):
        super().__init__(detail or "No response from AI")


class MalformedResponseError(AnalysisServiceError):
    """The remote model returned text that is not a valid analysis result."""

    code = "MALFORMED_RESPONSE"
