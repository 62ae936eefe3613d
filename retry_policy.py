"""Failure classification and bounded retries for transcription errors."""

from __future__ import annotations

from dataclasses import dataclass

from errors import (
    ASR_PROTOCOL_ERROR,
    ERROR_MESSAGES,
    NETWORK_ERROR,
    NO_SPEECH_DETECTED,
    SERVICE_UNAVAILABLE,
)
from models import FailureCause, RetryCounters, TranscriptEvent

_SERVICE_CODES = {SERVICE_UNAVAILABLE, NETWORK_ERROR}
_SERVICE_HINTS = (
    "service unavailable",
    "connection",
    "network",
    "timed out",
    "timeout",
    "throttl",
)


def classify_failure(event: TranscriptEvent) -> FailureCause:
    """Map a transcription failure onto the causes the retry policy knows."""
    if event.code in _SERVICE_CODES:
        return FailureCause.SERVICE_UNAVAILABLE
    if event.code == NO_SPEECH_DETECTED:
        return FailureCause.NO_SPEECH_DETECTED
    low = event.message.lower()
    if "no speech detected" in low:
        return FailureCause.NO_SPEECH_DETECTED
    if not event.code and any(hint in low for hint in _SERVICE_HINTS):
        return FailureCause.SERVICE_UNAVAILABLE
    return FailureCause.OTHER


@dataclass
class RetryDecision:
    retry: bool
    delay_s: float = 0.0
    code: str = ""
    message: str = ""


class RetryPolicy:
    def __init__(
        self,
        max_service_retries: int = 3,
        service_backoff_s: float = 1.0,
        max_no_speech_retries: int = 3,
        no_speech_backoff_s: float = 0.5,
    ) -> None:
        self.max_service_retries = max_service_retries
        self.service_backoff_s = service_backoff_s
        self.max_no_speech_retries = max_no_speech_retries
        self.no_speech_backoff_s = no_speech_backoff_s

    def decide(
        self,
        cause: FailureCause,
        counters: RetryCounters,
        description: str = "",
    ) -> RetryDecision:
        """Decide whether to restart, bumping the matching counter if so."""
        if cause == FailureCause.SERVICE_UNAVAILABLE:
            if counters.service_error_count < self.max_service_retries:
                counters.service_error_count += 1
                return RetryDecision(retry=True, delay_s=self.service_backoff_s, code=SERVICE_UNAVAILABLE)
            return RetryDecision(
                retry=False,
                code=SERVICE_UNAVAILABLE,
                message=ERROR_MESSAGES[SERVICE_UNAVAILABLE],
            )

        if cause == FailureCause.NO_SPEECH_DETECTED:
            if counters.no_speech_error_count < self.max_no_speech_retries:
                counters.no_speech_error_count += 1
                return RetryDecision(retry=True, delay_s=self.no_speech_backoff_s, code=NO_SPEECH_DETECTED)
            return RetryDecision(
                retry=False,
                code=NO_SPEECH_DETECTED,
                message=ERROR_MESSAGES[NO_SPEECH_DETECTED],
            )

        return RetryDecision(
            retry=False,
            code=ASR_PROTOCOL_ERROR,
            message=f"Recognition error: {description or 'unknown error'}",
        )
