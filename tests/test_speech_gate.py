from __future__ import annotations

import random

from models import SpeechSignal
from speech_gate import SpeechGate

LOUD = 0.001
QUIET = 0.0001


def _gate() -> SpeechGate:
    return SpeechGate(silence_threshold=0.0002, required_consecutive_frames=3, minimum_speech_duration_s=0.3)


def test_becomes_active_on_third_consecutive_frame() -> None:
    gate = _gate()
    signals = [gate.observe(LOUD, t * 0.1) for t in range(5)]

    assert signals == [
        SpeechSignal.STILL_INACTIVE,
        SpeechSignal.STILL_INACTIVE,
        SpeechSignal.BECAME_ACTIVE,
        SpeechSignal.STILL_ACTIVE,
        SpeechSignal.STILL_ACTIVE,
    ]
    assert gate.speech_active is True
    assert gate.state.speech_started_at == 0.2
    assert gate.last_above_threshold_at == 0.4


def test_drops_on_first_quiet_frame() -> None:
    gate = _gate()
    for t in (0.0, 0.1, 0.2):
        gate.observe(LOUD, t)
    assert gate.speech_active is True

    assert gate.observe(QUIET, 0.3) == SpeechSignal.BECAME_INACTIVE
    assert gate.speech_active is False
    assert gate.state.consecutive_above_threshold == 0
    assert gate.observe(QUIET, 0.4) == SpeechSignal.STILL_INACTIVE


def test_level_equal_to_threshold_counts_as_silence() -> None:
    gate = _gate()
    for t in range(5):
        assert gate.observe(0.0002, t * 0.1) == SpeechSignal.STILL_INACTIVE
    assert gate.state.consecutive_above_threshold == 0
    assert gate.last_above_threshold_at is None


def test_interrupted_run_restarts_confirmation() -> None:
    gate = _gate()
    gate.observe(LOUD, 0.0)
    gate.observe(LOUD, 0.1)
    gate.observe(QUIET, 0.2)
    gate.observe(LOUD, 0.3)
    assert gate.observe(LOUD, 0.4) == SpeechSignal.STILL_INACTIVE
    assert gate.observe(LOUD, 0.5) == SpeechSignal.BECAME_ACTIVE


def test_unconfirmed_loud_frames_still_move_the_silence_clock() -> None:
    gate = _gate()
    gate.observe(LOUD, 1.5)
    assert gate.speech_active is False
    assert gate.last_above_threshold_at == 1.5


def test_short_burst_is_not_valid_speech() -> None:
    gate = _gate()
    for t in (0.0, 0.1, 0.2):
        gate.observe(LOUD, t)
    gate.observe(QUIET, 0.25)

    assert gate.state.valid_speech_seen is False
    assert gate.has_valid_speech(10.0) is False


def test_long_utterance_is_durable_valid_speech() -> None:
    gate = _gate()
    for t in (0.0, 0.125, 0.25, 0.375, 0.5):
        gate.observe(LOUD, t)
    gate.observe(QUIET, 0.625)

    assert gate.state.valid_speech_seen is True
    # A later short burst does not clear it.
    for t in (1.0, 1.125, 1.25):
        gate.observe(LOUD, t)
    gate.observe(QUIET, 1.375)
    assert gate.has_valid_speech(2.0) is True


def test_ongoing_utterance_counts_once_minimum_duration_passed() -> None:
    gate = _gate()
    for t in (0.0, 0.125, 0.25):
        gate.observe(LOUD, t)
    assert gate.has_valid_speech(0.5) is False
    assert gate.has_valid_speech(0.625) is True
    assert gate.state.valid_speech_seen is False


def test_active_only_after_required_run_for_random_sequences() -> None:
    rng = random.Random(7)
    for _ in range(50):
        gate = _gate()
        run = 0
        for step in range(60):
            loud = rng.random() < 0.6
            gate.observe(LOUD if loud else QUIET, step * 0.05)
            run = run + 1 if loud else 0
            if gate.speech_active:
                assert run >= 3
            if not loud:
                assert gate.speech_active is False
