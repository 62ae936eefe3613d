"""Tests for SoundDeviceRecorder."""

from __future__ import annotations

import threading
import time
from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from errors import AudioSessionUnavailableError
from models import AudioFrame
from recorder import SoundDeviceRecorder


# ---------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------

class _Collector:
    def __init__(self) -> None:
        self.frames: list[AudioFrame] = []
        self.arrived = threading.Event()

    def __call__(self, frame: AudioFrame) -> None:
        self.frames.append(frame)
        self.arrived.set()


def _fake_input(n_samples: int = 800, value: float = 0.25) -> np.ndarray:
    return np.full((n_samples, 1), value, dtype=np.float32)


def _wait_for(predicate, timeout: float = 2.0) -> bool:  # noqa: ANN001
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


# ---------------------------------------------------------------
# Basic open / close
# ---------------------------------------------------------------

@patch("recorder.sd")
def test_open_creates_float_stream_and_close_releases(mock_sd: MagicMock) -> None:
    mock_stream = MagicMock()
    mock_sd.InputStream.return_value = mock_stream

    recorder = SoundDeviceRecorder(sample_rate=16000, chunk_ms=50)
    recorder.open_input_stream(_Collector())

    kwargs = mock_sd.InputStream.call_args.kwargs
    assert kwargs["dtype"] == "float32"
    assert kwargs["channels"] == 1
    assert kwargs["blocksize"] == 800
    mock_stream.start.assert_called_once()
    assert recorder.running is True

    recorder.close_input_stream()
    mock_stream.stop.assert_called_once()
    mock_stream.close.assert_called_once()
    assert recorder.running is False


@patch("recorder.sd")
def test_open_is_idempotent(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()

    recorder = SoundDeviceRecorder()
    recorder.open_input_stream(_Collector())
    recorder.open_input_stream(_Collector())

    assert mock_sd.InputStream.call_count == 1
    recorder.close_input_stream()


@patch("recorder.sd")
def test_close_is_idempotent(mock_sd: MagicMock) -> None:
    mock_stream = MagicMock()
    mock_sd.InputStream.return_value = mock_stream

    recorder = SoundDeviceRecorder()
    recorder.close_input_stream()  # never opened
    recorder.open_input_stream(_Collector())
    recorder.close_input_stream()
    recorder.close_input_stream()

    mock_stream.stop.assert_called_once()
    mock_stream.close.assert_called_once()


# ---------------------------------------------------------------
# Frame delivery
# ---------------------------------------------------------------

@patch("recorder.sd")
def test_callback_delivers_float_frames(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()
    collector = _Collector()

    recorder = SoundDeviceRecorder(sample_rate=16000)
    recorder.open_input_stream(collector)
    recorder._on_audio(_fake_input(800, 0.25), frames=800, time_info=None, status=None)

    assert collector.arrived.wait(2.0)
    frame = collector.frames[0]
    assert frame.sample_rate == 16000
    assert frame.frame_length == 800
    assert frame.samples.dtype == np.float32
    assert float(frame.samples[0]) == pytest.approx(0.25)

    recorder.close_input_stream()


@patch("recorder.sd")
def test_frames_keep_arrival_order(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()
    collector = _Collector()

    recorder = SoundDeviceRecorder()
    recorder.open_input_stream(collector)
    for value in (0.1, 0.2, 0.3, 0.4):
        recorder._on_audio(_fake_input(10, value), frames=10, time_info=None, status=None)

    assert _wait_for(lambda: len(collector.frames) == 4)
    assert [round(float(f.samples[0]), 2) for f in collector.frames] == [0.1, 0.2, 0.3, 0.4]
    recorder.close_input_stream()


@patch("recorder.sd")
def test_queue_full_increments_dropped_chunks(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()
    release = threading.Event()

    def slow_consumer(frame: AudioFrame) -> None:
        release.wait(2.0)

    recorder = SoundDeviceRecorder(queue_maxsize=1)
    recorder.open_input_stream(slow_consumer)

    recorder._on_audio(_fake_input(), frames=800, time_info=None, status=None)
    # Wait until the pump is blocked inside the consumer with the queue empty.
    assert _wait_for(lambda: recorder._frames is not None and recorder._frames.empty())
    recorder._on_audio(_fake_input(), frames=800, time_info=None, status=None)
    recorder._on_audio(_fake_input(), frames=800, time_info=None, status=None)

    assert recorder.dropped_chunks == 1
    release.set()
    recorder.close_input_stream()


@patch("recorder.sd")
def test_callback_after_close_is_noop(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()
    collector = _Collector()

    recorder = SoundDeviceRecorder()
    recorder.open_input_stream(collector)
    recorder.close_input_stream()
    recorder._on_audio(_fake_input(), frames=800, time_info=None, status=None)

    time.sleep(0.1)
    assert collector.frames == []


# ---------------------------------------------------------------
# Device failures
# ---------------------------------------------------------------

def test_open_raises_without_sounddevice(monkeypatch) -> None:  # noqa: ANN001
    import recorder as rec_mod
    monkeypatch.setattr(rec_mod, "sd", None)

    with pytest.raises(AudioSessionUnavailableError, match="sounddevice is not installed"):
        SoundDeviceRecorder().open_input_stream(_Collector())


@patch("recorder.sd")
def test_open_raises_without_input_device(mock_sd: MagicMock) -> None:
    mock_sd.query_devices.side_effect = ValueError("No input device matching")

    recorder = SoundDeviceRecorder()
    with pytest.raises(AudioSessionUnavailableError, match="No audio input device"):
        recorder.open_input_stream(_Collector())
    assert recorder.running is False
    mock_sd.InputStream.assert_not_called()


@patch("recorder.sd")
def test_open_raises_when_stream_cannot_start(mock_sd: MagicMock) -> None:
    mock_stream = MagicMock()
    mock_stream.start.side_effect = RuntimeError("device busy")
    mock_sd.InputStream.return_value = mock_stream

    recorder = SoundDeviceRecorder()
    with pytest.raises(AudioSessionUnavailableError, match="device busy"):
        recorder.open_input_stream(_Collector())
    assert recorder.running is False
