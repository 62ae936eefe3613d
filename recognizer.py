"""Transcription service backed by DashScope qwen3-asr-flash.

qwen3-asr-flash accepts complete audio (file path, URL, or base64) and
streams back recognition results via ``stream=True``. Each stream buffers the
submitted frames as PCM16; once input ends the audio is wrapped in a WAV
payload and sent to the model, and the streamed chunks are reported as
partial transcripts followed by one final transcript.
"""

from __future__ import annotations

import base64
import io
import logging
import os
import threading
import wave
from queue import Empty, Queue
from typing import Callable, Optional

import numpy as np

from errors import (
    ASR_PROTOCOL_ERROR,
    AUTH_FAILED,
    ERROR_MESSAGES,
    NO_SPEECH_DETECTED,
    SERVICE_UNAVAILABLE,
    RecognitionRequestCreationError,
)
from interfaces import TranscriptCallback
from models import AudioFrame, TranscriptEvent, TranscriptKind

try:
    import dashscope
except Exception:  # pragma: no cover
    dashscope = None  # type: ignore

LOG = logging.getLogger("voice_capture.recognizer")

_SERVICE_STATUS = {429, 500, 502, 503, 504}
_AUTH_STATUS = {401, 403}


def _pcm_to_wav_base64(
    pcm: bytes,
    sample_rate: int = 16000,
    channels: int = 1,
    sample_width: int = 2,
) -> str:
    """Convert raw PCM bytes to a base64-encoded WAV string."""
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(sample_width)
        wf.setframerate(sample_rate)
        wf.writeframes(pcm)
    return base64.b64encode(buf.getvalue()).decode("ascii")


def _to_pcm16(frame: AudioFrame) -> bytes:
    samples = np.clip(np.asarray(frame.samples, dtype=np.float32), -1.0, 1.0)
    return (samples * 32767.0).astype(np.int16).tobytes()


def _failure(code: str, message: str) -> TranscriptEvent:
    return TranscriptEvent(kind=TranscriptKind.FAILURE.value, code=code, message=message)


def error_event_from_exception(exc: Exception) -> TranscriptEvent:
    """Map an SDK/network exception to a standard failure event."""
    message = str(exc) or exc.__class__.__name__
    low = message.lower()
    if "401" in low or "403" in low or "auth" in low or "api key" in low:
        code = AUTH_FAILED
    elif isinstance(exc, (ConnectionError, TimeoutError)) or any(
        hint in low for hint in ("timeout", "timed out", "network", "connection", "503", "unavailable")
    ):
        code = SERVICE_UNAVAILABLE
    else:
        code = ASR_PROTOCOL_ERROR
    return _failure(code, message)


def error_event_from_status(status_code: int, message: str) -> TranscriptEvent:
    if status_code in _AUTH_STATUS:
        code = AUTH_FAILED
    elif status_code in _SERVICE_STATUS:
        code = SERVICE_UNAVAILABLE
    else:
        code = ASR_PROTOCOL_ERROR
    return _failure(code, f"{status_code}: {message}" if message else str(status_code))


class DashscopeTranscriptionStream:
    def __init__(
        self,
        api_key: str,
        model: str,
        request_timeout_s: float,
        on_event: TranscriptCallback,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._request_timeout_s = request_timeout_s
        self._on_event = on_event
        self._frames: Queue[AudioFrame | None] = Queue()
        self._cancelled = threading.Event()
        self._input_ended = False
        self._thread = threading.Thread(target=self._worker, daemon=True)

    def start(self) -> "DashscopeTranscriptionStream":
        self._thread.start()
        return self

    def submit(self, frame: AudioFrame) -> None:
        if self._input_ended or self._cancelled.is_set():
            return
        self._frames.put_nowait(frame)

    def end_of_input(self) -> None:
        if self._input_ended:
            return
        self._input_ended = True
        self._frames.put_nowait(None)

    def cancel(self) -> None:
        # Not joined: the worker may be delivering an event to a caller that
        # holds its own lock while cancelling.
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _emit(self, event: TranscriptEvent) -> None:
        if not self._cancelled.is_set():
            self._on_event(event)

    def _worker(self) -> None:
        """Consume frames until end of input, then recognise."""
        pcm = bytearray()
        sample_rate = 16000

        while not self._cancelled.is_set():
            try:
                frame = self._frames.get(timeout=0.2)
            except Empty:
                continue
            if frame is None:
                break
            pcm.extend(_to_pcm16(frame))
            sample_rate = frame.sample_rate

        if self._cancelled.is_set():
            return

        if not pcm:
            self._emit(_failure(NO_SPEECH_DETECTED, ERROR_MESSAGES[NO_SPEECH_DETECTED]))
            return

        LOG.debug("recognising %d bytes of audio at %d Hz", len(pcm), sample_rate)
        self._recognize_stream(_pcm_to_wav_base64(bytes(pcm), sample_rate))

    def _recognize_stream(self, wav_base64: str) -> None:
        """Send audio to dashscope and stream partial/final results."""
        try:
            response = dashscope.MultiModalConversation.call(
                api_key=self._api_key,
                model=self._model,
                messages=[
                    {"role": "system", "content": [{"text": ""}]},
                    {"role": "user", "content": [{"audio": f"data:audio/wav;base64,{wav_base64}"}]},
                ],
                result_format="message",
                asr_options={"enable_itn": False},
                stream=True,
                timeout=self._request_timeout_s,
            )
        except Exception as exc:
            LOG.warning("recognition request failed: %s", exc)
            self._emit(error_event_from_exception(exc))
            return

        latest_text = ""
        try:
            for chunk in response:
                if self._cancelled.is_set():
                    return
                status_code = self._status_code(chunk)
                if status_code is not None and status_code != 200:
                    self._emit(error_event_from_status(status_code, self._chunk_message(chunk)))
                    return
                text = self._extract_text(chunk)
                if text:
                    latest_text = text
                    self._emit(TranscriptEvent(kind=TranscriptKind.PARTIAL.value, text=text))
        except Exception as exc:
            LOG.warning("recognition stream failed: %s", exc)
            self._emit(error_event_from_exception(exc))
            return

        if not latest_text.strip():
            self._emit(_failure(NO_SPEECH_DETECTED, ERROR_MESSAGES[NO_SPEECH_DETECTED]))
            return
        self._emit(TranscriptEvent(kind=TranscriptKind.FINAL.value, text=latest_text))

    @staticmethod
    def _status_code(chunk: object) -> Optional[int]:
        if isinstance(chunk, dict):
            value = chunk.get("status_code")
            if isinstance(value, int):
                return value
        return None

    @staticmethod
    def _chunk_message(chunk: object) -> str:
        if isinstance(chunk, dict):
            return str(chunk.get("message") or chunk.get("code") or "")
        return ""

    @staticmethod
    def _extract_text(chunk: object) -> str:
        """Pull text from a dashscope streaming chunk dict."""
        if isinstance(chunk, dict):
            output = chunk.get("output") or {}
            choices = output.get("choices") or []
            if not choices:
                return ""
            message = choices[0].get("message") or {}
            content = message.get("content") or []
            if not content:
                return ""
            value = content[0]
            if isinstance(value, dict):
                return str(value.get("text", ""))
        return ""


class DashscopeTranscriptionService:
    def __init__(
        self,
        api_key: str | Callable[[], str] = "",
        model: str = "qwen3-asr-flash",
        request_timeout_s: float = 10.0,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._request_timeout_s = request_timeout_s

    def resolve_api_key(self) -> str:
        key = self._api_key() if callable(self._api_key) else self._api_key
        return key or os.getenv("DASHSCOPE_API_KEY", "")

    def open_stream(self, on_event: TranscriptCallback) -> DashscopeTranscriptionStream:
        if dashscope is None:
            raise RecognitionRequestCreationError("dashscope is not installed")
        api_key = self.resolve_api_key()
        if not api_key:
            raise RecognitionRequestCreationError("No API key configured")
        return DashscopeTranscriptionStream(
            api_key=api_key,
            model=self._model,
            request_timeout_s=self._request_timeout_s,
            on_event=on_event,
        ).start()
