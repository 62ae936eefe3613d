"""Energy-based speech gate with upward hysteresis."""

from __future__ import annotations

import logging

from models import SpeechGateState, SpeechSignal

LOG = logging.getLogger("voice_capture.gate")


class SpeechGate:
    """Turns per-frame loudness into speech on/off decisions.

    Speech is confirmed only after ``required_consecutive_frames`` frames
    strictly above ``silence_threshold`` and drops on the first frame at or
    below it. An utterance counts as valid speech when it stayed active for at
    least ``minimum_speech_duration_s``; shorter bursts are reported as
    inactive without marking the session as having heard speech.

    ``last_above_threshold_at`` moves on every loud frame, confirmed or not,
    so a slow-starting utterance keeps the silence clock from running out.
    """

    def __init__(
        self,
        silence_threshold: float = 0.0002,
        required_consecutive_frames: int = 3,
        minimum_speech_duration_s: float = 0.3,
    ) -> None:
        self.silence_threshold = silence_threshold
        self.required_consecutive_frames = required_consecutive_frames
        self.minimum_speech_duration_s = minimum_speech_duration_s
        self._state = SpeechGateState()

    @property
    def state(self) -> SpeechGateState:
        return self._state

    @property
    def speech_active(self) -> bool:
        return self._state.speech_active

    @property
    def last_above_threshold_at(self) -> float | None:
        return self._state.last_above_threshold_at

    def has_valid_speech(self, now: float) -> bool:
        """True once an utterance has lasted the minimum duration."""
        state = self._state
        if state.valid_speech_seen:
            return True
        if state.speech_active and state.speech_started_at is not None:
            return now - state.speech_started_at >= self.minimum_speech_duration_s
        return False

    def observe(self, loudness: float, now: float) -> SpeechSignal:
        state = self._state
        if loudness > self.silence_threshold:
            state.consecutive_above_threshold += 1
            state.last_above_threshold_at = now
            if state.speech_active:
                return SpeechSignal.STILL_ACTIVE
            if state.consecutive_above_threshold >= self.required_consecutive_frames:
                state.speech_active = True
                state.speech_started_at = now
                LOG.debug(
                    "speech detected: level=%.6f sustained for %d frames",
                    loudness,
                    state.consecutive_above_threshold,
                )
                return SpeechSignal.BECAME_ACTIVE
            return SpeechSignal.STILL_INACTIVE

        state.consecutive_above_threshold = 0
        if not state.speech_active:
            return SpeechSignal.STILL_INACTIVE

        state.speech_active = False
        started = state.speech_started_at if state.speech_started_at is not None else now
        duration = now - started
        if duration >= self.minimum_speech_duration_s:
            state.valid_speech_seen = True
            LOG.debug("speech ended: level=%.6f duration=%.2fs", loudness, duration)
        else:
            LOG.debug("speech too short, ignoring: level=%.6f duration=%.2fs", loudness, duration)
        return SpeechSignal.BECAME_INACTIVE
