"""Core data models for the capture engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

import numpy as np


class SessionState(str, Enum):
    IDLE = "IDLE"
    RECORDING = "RECORDING"
    AWAITING_FINAL_RESULT = "AWAITING_FINAL_RESULT"
    FAILED = "FAILED"


class SpeechSignal(str, Enum):
    BECAME_ACTIVE = "became_active"
    STILL_ACTIVE = "still_active"
    BECAME_INACTIVE = "became_inactive"
    STILL_INACTIVE = "still_inactive"


class TranscriptKind(str, Enum):
    PARTIAL = "partial"
    FINAL = "final"
    FAILURE = "failure"


class FailureCause(str, Enum):
    SERVICE_UNAVAILABLE = "service_unavailable"
    NO_SPEECH_DETECTED = "no_speech_detected"
    OTHER = "other"


class AuthStatus(str, Enum):
    AUTHORIZED = "authorized"
    DENIED = "denied"
    RESTRICTED = "restricted"
    NOT_DETERMINED = "not_determined"


@dataclass(frozen=True, eq=False)
class AudioFrame:
    """Mono float32 samples normalized to [-1, 1]."""

    samples: np.ndarray
    sample_rate: int = 16000
    timestamp_ms: int = 0

    @property
    def frame_length(self) -> int:
        return int(len(self.samples))


@dataclass
class SpeechGateState:
    consecutive_above_threshold: int = 0
    speech_active: bool = False
    speech_started_at: Optional[float] = None
    last_above_threshold_at: Optional[float] = None
    valid_speech_seen: bool = False


@dataclass
class RetryCounters:
    service_error_count: int = 0
    no_speech_error_count: int = 0


@dataclass
class TranscriptEvent:
    kind: str
    text: str = ""
    code: str = ""
    message: str = ""


@dataclass
class CaptureStatus:
    """Caller-facing view of the engine. Written by the controller only."""

    is_recording: bool = False
    audio_level: float = 0.0
    is_speech_detected: bool = False
    recognized_text: str = ""
    error_message: Optional[str] = None
    debug_info: str = ""


# Events consumed by SessionController.dispatch. Stream-scoped events carry the
# id of the pipeline they were issued for and are dropped once it is replaced.


@dataclass(frozen=True)
class FrameCaptured:
    stream_id: int
    frame: AudioFrame = field(compare=False)


@dataclass(frozen=True)
class SilenceTick:
    stream_id: int


@dataclass(frozen=True)
class TranscriptReceived:
    stream_id: int
    event: TranscriptEvent = field(compare=False)


@dataclass(frozen=True)
class FinalResultTimeout:
    stream_id: int


@dataclass(frozen=True)
class RetryDue:
    session_id: int


@dataclass(frozen=True)
class NoSpeechTimeout:
    stream_id: int
