"""Protocol interfaces used by SessionController."""

from __future__ import annotations

from typing import Callable, Protocol

from config import CaptureSettings
from models import AudioFrame, AuthStatus, TranscriptEvent

FrameCallback = Callable[[AudioFrame], None]
TranscriptCallback = Callable[[TranscriptEvent], None]


class AudioSource(Protocol):
    def open_input_stream(self, on_frame: FrameCallback) -> None:
        """Acquire the input device. Raises AudioSessionUnavailableError."""
        ...

    def close_input_stream(self) -> None: ...


class TranscriptionStream(Protocol):
    def submit(self, frame: AudioFrame) -> None: ...

    def end_of_input(self) -> None: ...

    def cancel(self) -> None: ...


class TranscriptionService(Protocol):
    def open_stream(self, on_event: TranscriptCallback) -> TranscriptionStream:
        """Raises RecognitionRequestCreationError when no stream can be made."""
        ...


class PermissionProvider(Protocol):
    def request_speech_authorization(self) -> AuthStatus: ...

    def request_microphone_permission(self) -> bool: ...


class Cancellable(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay_s: float, callback: Callable[[], None]) -> Cancellable: ...

    def call_every(self, interval_s: float, callback: Callable[[], None]) -> Cancellable: ...


class ConfigStore(Protocol):
    def get_api_key(self) -> str: ...

    def set_api_key(self, key: str) -> None: ...

    def get_hotkey(self) -> str: ...

    def set_hotkey(self, hotkey: str) -> None: ...

    def get_capture_settings(self) -> CaptureSettings: ...

    def set_capture_settings(self, settings: CaptureSettings) -> None: ...
