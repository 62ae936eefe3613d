"""State-machine based capture session orchestration."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import replace
from typing import Any, Callable, Optional

from config import CaptureSettings
from errors import (
    ASR_PROTOCOL_ERROR,
    ERROR_MESSAGES,
    FINAL_RESULT_TIMEOUT,
    NO_SPEECH_DETECTED,
    AudioSessionUnavailableError,
    CaptureError,
    NotAuthorizedError,
    RecognitionRequestCreationError,
)
from interfaces import (
    AudioSource,
    Cancellable,
    PermissionProvider,
    Scheduler,
    TranscriptionService,
    TranscriptionStream,
)
from level_meter import measure
from models import (
    AuthStatus,
    CaptureStatus,
    FinalResultTimeout,
    FrameCaptured,
    NoSpeechTimeout,
    RetryCounters,
    RetryDue,
    SessionState,
    SilenceTick,
    TranscriptEvent,
    TranscriptKind,
    TranscriptReceived,
)
from retry_policy import RetryPolicy, classify_failure
from scheduler import ThreadScheduler
from silence_supervisor import SilenceSupervisor
from speech_gate import SpeechGate

LOG = logging.getLogger("voice_capture.session")

StateCallback = Callable[[SessionState, SessionState], None]
TextCallback = Callable[[str], None]
ErrorCallback = Callable[[str, str], None]
LevelCallback = Callable[[float, bool], None]
DebugCallback = Callable[[str], None]

_ACTIVE_STATES = (SessionState.RECORDING, SessionState.AWAITING_FINAL_RESULT)

_AUTH_MESSAGES = {
    AuthStatus.DENIED: "Speech recognition access denied",
    AuthStatus.RESTRICTED: "Speech recognition not available",
    AuthStatus.NOT_DETERMINED: "Speech recognition not yet authorized",
}


class SessionController:
    """Owns one capture session at a time.

    Audio frames, silence ticks, transcript events and retry timers arrive on
    different threads; each is wrapped in an event and handed to ``dispatch``,
    which applies it under a single lock. Every acquisition of the audio and
    transcription pipeline gets a new stream id, and events issued for an
    older one are dropped.
    """

    def __init__(
        self,
        audio_source: AudioSource,
        transcription: TranscriptionService,
        permissions: PermissionProvider,
        settings: Optional[CaptureSettings] = None,
        scheduler: Optional[Scheduler] = None,
        clock: Callable[[], float] = time.monotonic,
        on_state_change: Optional[StateCallback] = None,
        on_partial: Optional[TextCallback] = None,
        on_final: Optional[TextCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        on_level: Optional[LevelCallback] = None,
        on_debug: Optional[DebugCallback] = None,
    ) -> None:
        self._audio_source = audio_source
        self._transcription = transcription
        self._permissions = permissions
        self._settings = settings or CaptureSettings()
        self._scheduler = scheduler or ThreadScheduler()
        self._clock = clock
        self._on_state_change = on_state_change
        self._on_partial = on_partial
        self._on_final = on_final
        self._on_error = on_error
        self._on_level = on_level
        self._on_debug = on_debug

        self._retry_policy = RetryPolicy(
            max_service_retries=self._settings.max_service_retries,
            service_backoff_s=self._settings.service_retry_backoff_s,
            max_no_speech_retries=self._settings.max_no_speech_retries,
            no_speech_backoff_s=self._settings.no_speech_retry_backoff_s,
        )

        self._lock = threading.RLock()
        self._state = SessionState.IDLE
        self._status = CaptureStatus()
        self._counters = RetryCounters()
        self._session_id = 0
        self._stream_id = 0
        self._gate = self._new_gate()
        self._supervisor: Optional[SilenceSupervisor] = None
        self._stream: Optional[TranscriptionStream] = None
        self._audio_open = False
        self._retry_handle: Optional[Cancellable] = None
        self._finalize_handle: Optional[Cancellable] = None
        self._no_speech_handle: Optional[Cancellable] = None
        self._closed = False

        self._handlers: dict[type, Callable[[Any], None]] = {
            FrameCaptured: self._handle_frame,
            SilenceTick: self._handle_silence_tick,
            TranscriptReceived: self._handle_transcript,
            FinalResultTimeout: self._handle_final_timeout,
            RetryDue: self._handle_retry_due,
            NoSpeechTimeout: self._handle_no_speech_timeout,
        }

    # ------------------------------------------------------------------
    # Caller surface
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def session_id(self) -> int:
        return self._session_id

    @property
    def retry_counters(self) -> RetryCounters:
        with self._lock:
            return replace(self._counters)

    @property
    def status(self) -> CaptureStatus:
        with self._lock:
            return replace(self._status)

    @property
    def speech_gate(self) -> SpeechGate:
        return self._gate

    def start_session(self) -> None:
        """Begin recording. No-op while a session is already active."""
        with self._lock:
            if self._closed:
                raise RuntimeError("controller is closed")
            if self._state in _ACTIVE_STATES:
                return
            if self._state == SessionState.FAILED:
                self.acknowledge_error()

            try:
                self._check_authorization()
            except NotAuthorizedError as exc:
                self._report_start_failure(exc)
                raise

            self._session_id += 1
            self._counters = RetryCounters()
            self._status = CaptureStatus(debug_info=self._status.debug_info)
            try:
                self._acquire_pipeline()
            except CaptureError as exc:
                self._report_start_failure(exc)
                raise
            self._transition(SessionState.RECORDING)
            LOG.info("session %d started", self._session_id)

    def finish_session(self) -> None:
        """End the utterance now and wait for the final transcript."""
        with self._lock:
            if self._state != SessionState.RECORDING or self._stream is None:
                return
            self._end_utterance("end of utterance requested")

    def stop_session(self) -> None:
        """Tear everything down and return to Idle. Safe to call repeatedly."""
        with self._lock:
            self._cancel_retry()
            self._release_pipeline()
            self._reset_indicators()
            if self._state == SessionState.FAILED:
                self._status.error_message = None
            if self._state != SessionState.IDLE:
                LOG.info("session %d stopped", self._session_id)
                self._transition(SessionState.IDLE)

    def acknowledge_error(self) -> None:
        with self._lock:
            if self._state != SessionState.FAILED:
                return
            self._status.error_message = None
            self._transition(SessionState.IDLE)

    def close(self) -> None:
        with self._lock:
            self.stop_session()
            self._closed = True

    def __enter__(self) -> "SessionController":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __del__(self) -> None:
        if getattr(self, "_closed", True):
            return
        try:
            self.close()
        except Exception:  # pragma: no cover - interpreter shutdown
            LOG.debug("teardown during finalization failed", exc_info=True)

    # ------------------------------------------------------------------
    # Event dispatch
    # ------------------------------------------------------------------

    def dispatch(self, event: object) -> None:
        handler = self._handlers.get(type(event))
        if handler is None:
            raise TypeError(f"unsupported event: {event!r}")
        with self._lock:
            handler(event)

    def _handle_frame(self, event: FrameCaptured) -> None:
        if not self._is_current(event.stream_id) or self._state != SessionState.RECORDING:
            return
        now = self._clock()
        level = measure(event.frame)
        self._gate.observe(level, now)
        self._status.audio_level = level
        self._status.is_speech_detected = self._gate.speech_active
        if self._on_level:
            self._on_level(level, self._gate.speech_active)
        if self._stream is not None:
            self._stream.submit(event.frame)

    def _handle_silence_tick(self, event: SilenceTick) -> None:
        if not self._is_current(event.stream_id) or self._state != SessionState.RECORDING:
            return
        if self._supervisor is None:
            return
        now = self._clock()
        elapsed = self._supervisor.silence_elapsed(self._gate, now)
        if elapsed is None:
            return
        if elapsed >= self._supervisor.silence_timeout_s:
            self._end_utterance(f"silence timeout reached ({elapsed:.1f}s of silence)")
        else:
            remaining = self._supervisor.silence_timeout_s - elapsed
            self._debug(f"time since last speech: {elapsed:.1f}s (timeout in {remaining:.1f}s)")

    def _handle_transcript(self, event: TranscriptReceived) -> None:
        if not self._is_current(event.stream_id) or self._state not in _ACTIVE_STATES:
            LOG.debug("dropping late transcript event from stream %d", event.stream_id)
            return
        transcript = event.event
        kind = transcript.kind
        if kind == TranscriptKind.PARTIAL.value:
            self._status.recognized_text = transcript.text
            if self._on_partial:
                self._on_partial(transcript.text)
            return
        if kind == TranscriptKind.FINAL.value:
            self._complete(transcript.text)
            return
        if kind == TranscriptKind.FAILURE.value:
            self._handle_failure(transcript)

    def _handle_final_timeout(self, event: FinalResultTimeout) -> None:
        if not self._is_current(event.stream_id):
            return
        if self._state != SessionState.AWAITING_FINAL_RESULT:
            return
        self._fail(FINAL_RESULT_TIMEOUT, ERROR_MESSAGES[FINAL_RESULT_TIMEOUT])

    def _handle_no_speech_timeout(self, event: NoSpeechTimeout) -> None:
        if not self._is_current(event.stream_id) or self._state != SessionState.RECORDING:
            return
        self._no_speech_handle = None
        if self._gate.has_valid_speech(self._clock()):
            return
        self._handle_failure(
            TranscriptEvent(
                kind=TranscriptKind.FAILURE.value,
                code=NO_SPEECH_DETECTED,
                message=ERROR_MESSAGES[NO_SPEECH_DETECTED],
            )
        )

    def _handle_retry_due(self, event: RetryDue) -> None:
        if event.session_id != self._session_id or self._state != SessionState.RECORDING:
            return
        self._retry_handle = None
        if self._stream is not None or self._audio_open:
            return
        try:
            self._acquire_pipeline()
        except CaptureError as exc:
            self._fail(exc.code, f"Failed to start recording: {exc}")
            return
        self._debug(
            f"restarted recording (service retries {self._counters.service_error_count}, "
            f"no-speech retries {self._counters.no_speech_error_count})"
        )

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _end_utterance(self, reason: str) -> None:
        self._debug(f"{reason}, stopping recording")
        stream = self._stream
        if self._supervisor is not None:
            self._supervisor.cancel()
            self._supervisor = None
        self._cancel_no_speech_timeout()
        self._close_audio()
        self._reset_indicators()
        self._transition(SessionState.AWAITING_FINAL_RESULT)
        stream_id = self._stream_id
        self._finalize_handle = self._scheduler.call_later(
            self._settings.finalize_timeout_s,
            lambda: self.dispatch(FinalResultTimeout(stream_id)),
        )
        if stream is not None:
            stream.end_of_input()

    def _complete(self, text: str) -> None:
        self._release_pipeline()
        self._reset_indicators()
        self._status.recognized_text = text
        self._transition(SessionState.IDLE)
        LOG.info("session %d finished with %d characters", self._session_id, len(text))
        if self._on_final:
            self._on_final(text)

    def _handle_failure(self, transcript: TranscriptEvent) -> None:
        cause = classify_failure(transcript)
        description = transcript.message or transcript.code
        self._debug(f"handling error: {description} ({cause.value})")
        decision = self._retry_policy.decide(cause, self._counters, description)
        if not decision.retry:
            code = transcript.code or decision.code
            self._fail(code, decision.message)
            return

        self._release_pipeline()
        self._reset_indicators()
        if self._state != SessionState.RECORDING:
            self._transition(SessionState.RECORDING)
        session_id = self._session_id
        self._debug(
            f"retrying speech recognition in {decision.delay_s:.1f}s "
            f"(service {self._counters.service_error_count}/{self._retry_policy.max_service_retries}, "
            f"no speech {self._counters.no_speech_error_count}/{self._retry_policy.max_no_speech_retries})"
        )
        self._retry_handle = self._scheduler.call_later(
            decision.delay_s,
            lambda: self.dispatch(RetryDue(session_id)),
        )

    def _fail(self, code: str, message: str) -> None:
        self._cancel_retry()
        self._release_pipeline()
        self._reset_indicators()
        self._status.error_message = message
        self._transition(SessionState.FAILED)
        LOG.warning("session %d failed: %s: %s", self._session_id, code, message)
        self._emit_error(code, message)

    def _report_start_failure(self, exc: CaptureError) -> None:
        self._status.error_message = exc.message
        LOG.warning("unable to start session: %s: %s", exc.code, exc.message)
        self._emit_error(exc.code, exc.message)

    def _transition(self, to_state: SessionState) -> None:
        from_state = self._state
        if from_state == to_state:
            return
        self._state = to_state
        self._status.is_recording = to_state == SessionState.RECORDING
        if self._on_state_change:
            self._on_state_change(from_state, to_state)

    # ------------------------------------------------------------------
    # Pipeline resources
    # ------------------------------------------------------------------

    def _check_authorization(self) -> None:
        status = self._permissions.request_speech_authorization()
        if status != AuthStatus.AUTHORIZED:
            raise NotAuthorizedError(_AUTH_MESSAGES.get(status, "Unknown authorization status"))
        if not self._permissions.request_microphone_permission():
            raise NotAuthorizedError("Microphone access denied")

    def _acquire_pipeline(self) -> None:
        """Open transcription first so captured audio always has a consumer."""
        self._stream_id += 1
        stream_id = self._stream_id
        self._gate = self._new_gate()

        try:
            self._stream = self._transcription.open_stream(
                lambda ev: self.dispatch(TranscriptReceived(stream_id, ev))
            )
        except CaptureError:
            self._release_pipeline()
            raise
        except Exception as exc:
            self._release_pipeline()
            raise RecognitionRequestCreationError(str(exc)) from exc

        try:
            self._audio_source.open_input_stream(
                lambda frame: self.dispatch(FrameCaptured(stream_id, frame))
            )
        except CaptureError:
            self._release_pipeline()
            raise
        except Exception as exc:
            self._release_pipeline()
            raise AudioSessionUnavailableError(str(exc)) from exc
        self._audio_open = True

        self._supervisor = SilenceSupervisor(
            self._scheduler,
            on_tick=lambda: self.dispatch(SilenceTick(stream_id)),
            tick_interval_s=self._settings.tick_interval_s,
            silence_timeout_s=self._settings.silence_timeout_s,
        )
        self._supervisor.start()
        if self._settings.no_speech_timeout_s > 0:
            self._no_speech_handle = self._scheduler.call_later(
                self._settings.no_speech_timeout_s,
                lambda: self.dispatch(NoSpeechTimeout(stream_id)),
            )

    def _release_pipeline(self) -> None:
        """Release audio input and transcription stream. Idempotent."""
        # Retire the current stream id so its late callbacks are ignored.
        self._stream_id += 1
        if self._supervisor is not None:
            self._supervisor.cancel()
            self._supervisor = None
        if self._finalize_handle is not None:
            self._finalize_handle.cancel()
            self._finalize_handle = None
        self._cancel_no_speech_timeout()
        self._close_audio()
        stream, self._stream = self._stream, None
        if stream is not None:
            try:
                stream.cancel()
            except Exception:
                LOG.warning("transcription stream cancel failed", exc_info=True)

    def _close_audio(self) -> None:
        if not self._audio_open:
            return
        self._audio_open = False
        try:
            self._audio_source.close_input_stream()
        except Exception:
            LOG.warning("audio input close failed", exc_info=True)

    def _cancel_retry(self) -> None:
        handle, self._retry_handle = self._retry_handle, None
        if handle is not None:
            handle.cancel()

    def _cancel_no_speech_timeout(self) -> None:
        handle, self._no_speech_handle = self._no_speech_handle, None
        if handle is not None:
            handle.cancel()

    def _new_gate(self) -> SpeechGate:
        return SpeechGate(
            silence_threshold=self._settings.silence_threshold,
            required_consecutive_frames=self._settings.required_consecutive_frames,
            minimum_speech_duration_s=self._settings.minimum_speech_duration_s,
        )

    def _is_current(self, stream_id: int) -> bool:
        return stream_id == self._stream_id

    def _reset_indicators(self) -> None:
        self._status.audio_level = 0.0
        self._status.is_speech_detected = False
        if self._on_level:
            self._on_level(0.0, False)

    def _emit_error(self, code: str, message: str) -> None:
        if self._on_error:
            self._on_error(code or ASR_PROTOCOL_ERROR, message)

    def _debug(self, message: str) -> None:
        LOG.debug(message)
        self._status.debug_info = message
        if self._on_debug:
            self._on_debug(message)
