"""Shared error codes, user-facing messages and capture exceptions."""

from __future__ import annotations

NOT_AUTHORIZED = "NOT_AUTHORIZED"
AUDIO_SESSION_UNAVAILABLE = "AUDIO_SESSION_UNAVAILABLE"
RECOGNITION_REQUEST_FAILED = "RECOGNITION_REQUEST_FAILED"
SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
NETWORK_ERROR = "NETWORK_ERROR"
NO_SPEECH_DETECTED = "NO_SPEECH_DETECTED"
AUTH_FAILED = "AUTH_FAILED"
ASR_PROTOCOL_ERROR = "ASR_PROTOCOL_ERROR"
FINAL_RESULT_TIMEOUT = "FINAL_RESULT_TIMEOUT"

ERROR_MESSAGES = {
    NOT_AUTHORIZED: "Speech recognition is not authorized.",
    AUDIO_SESSION_UNAVAILABLE: "No audio input device available.",
    RECOGNITION_REQUEST_FAILED: "Unable to create a speech recognition request.",
    SERVICE_UNAVAILABLE: (
        "Unable to access speech recognition service. "
        "Please check your internet connection and try again."
    ),
    NO_SPEECH_DETECTED: "No speech detected. Please speak clearly into the microphone.",
    AUTH_FAILED: "API key is invalid.",
    ASR_PROTOCOL_ERROR: "ASR response format is invalid.",
    FINAL_RESULT_TIMEOUT: "Timed out waiting for the final transcript.",
}


class CaptureError(Exception):
    """Raised when a capture session cannot be started."""

    code = ASR_PROTOCOL_ERROR

    def __init__(self, message: str = "") -> None:
        super().__init__(message or ERROR_MESSAGES.get(self.code, self.code))

    @property
    def message(self) -> str:
        return str(self)


class NotAuthorizedError(CaptureError):
    code = NOT_AUTHORIZED


class AudioSessionUnavailableError(CaptureError):
    code = AUDIO_SESSION_UNAVAILABLE


class RecognitionRequestCreationError(CaptureError):
    code = RECOGNITION_REQUEST_FAILED
