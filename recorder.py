"""Microphone audio source backed by sounddevice."""

from __future__ import annotations

import logging
import threading
import time
from queue import Empty, Full, Queue
from typing import Any, Optional

import numpy as np

from errors import AudioSessionUnavailableError
from interfaces import FrameCallback
from models import AudioFrame

try:
    import sounddevice as sd
except Exception:  # pragma: no cover
    sd = None  # type: ignore

LOG = logging.getLogger("voice_capture.recorder")


class SoundDeviceRecorder:
    """Float32 mono input stream.

    The PortAudio callback only enqueues frames; a pump thread hands them to
    ``on_frame`` so a slow consumer never stalls the audio driver.
    """

    def __init__(
        self,
        sample_rate: int = 16000,
        chunk_ms: int = 50,
        device: Optional[int | str] = None,
        queue_maxsize: int = 50,
    ) -> None:
        self.sample_rate = sample_rate
        self.chunk_ms = chunk_ms
        self.device = device
        self._queue_maxsize = queue_maxsize
        self._stream: Any = None
        self._running = False
        self._lock = threading.Lock()
        self.dropped_chunks = 0
        self._frames: Optional[Queue[AudioFrame | None]] = None
        self._on_frame: Optional[FrameCallback] = None
        self._pump: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._running

    def open_input_stream(self, on_frame: FrameCallback) -> None:
        with self._lock:
            if self._running:
                return
            if sd is None:
                raise AudioSessionUnavailableError("sounddevice is not installed")
            try:
                sd.query_devices(self.device, kind="input")
            except Exception as exc:
                raise AudioSessionUnavailableError(f"No audio input device available: {exc}") from exc

            blocksize = int(self.sample_rate * (self.chunk_ms / 1000.0))
            frames: Queue[AudioFrame | None] = Queue(maxsize=self._queue_maxsize)
            try:
                stream = sd.InputStream(
                    samplerate=self.sample_rate,
                    channels=1,
                    dtype="float32",
                    blocksize=blocksize,
                    device=self.device,
                    callback=self._on_audio,
                )
            except Exception as exc:
                raise AudioSessionUnavailableError(f"Unable to open audio input: {exc}") from exc

            self._frames = frames
            self._on_frame = on_frame
            self._running = True
            try:
                stream.start()
            except Exception as exc:
                self._running = False
                self._frames = None
                self._on_frame = None
                stream.close()
                raise AudioSessionUnavailableError(f"Unable to open audio input: {exc}") from exc
            self._stream = stream
            self.dropped_chunks = 0
            self._pump = threading.Thread(target=self._deliver, args=(frames, on_frame), daemon=True)
            self._pump.start()
            LOG.info("audio input opened: %d Hz, %d samples per frame", self.sample_rate, blocksize)

    def close_input_stream(self) -> None:
        with self._lock:
            if not self._running:
                return
            self._running = False
            self._on_frame = None
            stream, self._stream = self._stream, None
            frames, self._frames = self._frames, None
            if stream is not None:
                stream.stop()
                stream.close()
            if frames is not None:
                self._emit_sentinel(frames)
            # The pump exits on the sentinel; it is not joined because it may
            # be blocked inside on_frame waiting for the caller's lock.
            self._pump = None
            LOG.info("audio input closed (%d frames dropped)", self.dropped_chunks)

    def _on_audio(self, indata: Any, frames: int, time_info: Any, status: Any) -> None:
        if status:
            LOG.debug("input status: %s", status)
        queue = self._frames
        if not self._running or queue is None:
            return
        samples = np.array(indata[:, 0], dtype=np.float32, copy=True)
        frame = AudioFrame(
            samples=samples,
            sample_rate=self.sample_rate,
            timestamp_ms=int(time.time() * 1000),
        )
        try:
            queue.put_nowait(frame)
        except Full:
            self.dropped_chunks += 1
            LOG.warning("dropped audio frame: queue full")

    def _deliver(self, frames: Queue[AudioFrame | None], on_frame: FrameCallback) -> None:
        while True:
            try:
                frame = frames.get(timeout=0.5)
            except Empty:
                if self._frames is not frames:
                    return
                continue
            if frame is None:
                return
            if self._on_frame is not on_frame:
                return
            on_frame(frame)

    @staticmethod
    def _emit_sentinel(frames: Queue[AudioFrame | None]) -> None:
        try:
            frames.put_nowait(None)
        except Full:
            pass
