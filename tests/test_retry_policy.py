from __future__ import annotations

from errors import (
    AUTH_FAILED,
    ERROR_MESSAGES,
    NETWORK_ERROR,
    NO_SPEECH_DETECTED,
    SERVICE_UNAVAILABLE,
)
from models import FailureCause, RetryCounters, TranscriptEvent, TranscriptKind
from retry_policy import RetryPolicy, classify_failure


def _failure(code: str = "", message: str = "") -> TranscriptEvent:
    return TranscriptEvent(kind=TranscriptKind.FAILURE.value, code=code, message=message)


def test_classify_by_code() -> None:
    assert classify_failure(_failure(SERVICE_UNAVAILABLE)) == FailureCause.SERVICE_UNAVAILABLE
    assert classify_failure(_failure(NETWORK_ERROR)) == FailureCause.SERVICE_UNAVAILABLE
    assert classify_failure(_failure(NO_SPEECH_DETECTED)) == FailureCause.NO_SPEECH_DETECTED
    assert classify_failure(_failure(AUTH_FAILED, "connection refused")) == FailureCause.OTHER


def test_classify_by_message() -> None:
    assert classify_failure(_failure(message="No speech detected")) == FailureCause.NO_SPEECH_DETECTED
    assert classify_failure(_failure(message="Connection reset by peer")) == FailureCause.SERVICE_UNAVAILABLE
    assert classify_failure(_failure(message="bad audio format")) == FailureCause.OTHER


def test_service_retries_until_exhausted() -> None:
    policy = RetryPolicy(max_service_retries=3, service_backoff_s=1.0)
    counters = RetryCounters()

    for expected in (1, 2, 3):
        decision = policy.decide(FailureCause.SERVICE_UNAVAILABLE, counters)
        assert decision.retry is True
        assert decision.delay_s == 1.0
        assert counters.service_error_count == expected

    decision = policy.decide(FailureCause.SERVICE_UNAVAILABLE, counters)
    assert decision.retry is False
    assert decision.message == ERROR_MESSAGES[SERVICE_UNAVAILABLE]
    assert counters.service_error_count == 3
    assert counters.no_speech_error_count == 0


def test_no_speech_uses_own_counter_and_shorter_backoff() -> None:
    policy = RetryPolicy(max_no_speech_retries=2, no_speech_backoff_s=0.5)
    counters = RetryCounters(service_error_count=3)

    assert policy.decide(FailureCause.NO_SPEECH_DETECTED, counters).delay_s == 0.5
    assert policy.decide(FailureCause.NO_SPEECH_DETECTED, counters).retry is True
    decision = policy.decide(FailureCause.NO_SPEECH_DETECTED, counters)

    assert decision.retry is False
    assert "speak clearly" in decision.message
    assert counters.no_speech_error_count == 2
    assert counters.service_error_count == 3


def test_other_never_retries() -> None:
    counters = RetryCounters()
    decision = RetryPolicy().decide(FailureCause.OTHER, counters, "model exploded")

    assert decision.retry is False
    assert decision.message == "Recognition error: model exploded"
    assert counters == RetryCounters()
