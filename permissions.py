"""Desktop permission checks for speech capture."""

from __future__ import annotations

import logging

from models import AuthStatus
from recognizer import DashscopeTranscriptionService

try:
    import sounddevice as sd
except Exception:  # pragma: no cover
    sd = None  # type: ignore

try:
    import dashscope
except Exception:  # pragma: no cover
    dashscope = None  # type: ignore

LOG = logging.getLogger("voice_capture.permissions")


class DesktopPermissionProvider:
    """Speech is authorized once the backend is usable; the microphone once
    an input device can be queried."""

    def __init__(self, transcription: DashscopeTranscriptionService, device: int | str | None = None) -> None:
        self._transcription = transcription
        self._device = device

    def request_speech_authorization(self) -> AuthStatus:
        if dashscope is None:
            return AuthStatus.RESTRICTED
        if not self._transcription.resolve_api_key():
            return AuthStatus.NOT_DETERMINED
        return AuthStatus.AUTHORIZED

    def request_microphone_permission(self) -> bool:
        if sd is None:
            return False
        try:
            sd.query_devices(self._device, kind="input")
        except Exception as exc:
            LOG.warning("microphone unavailable: %s", exc)
            return False
        return True
