"""Loudness of a single audio frame."""

from __future__ import annotations

import numpy as np

from models import AudioFrame


def measure(frame: AudioFrame) -> float:
    """Mean absolute amplitude of the frame; 0.0 for an empty frame."""
    samples = np.asarray(frame.samples, dtype=np.float32)
    if samples.size == 0:
        return 0.0
    return float(np.abs(samples).sum() / samples.size)
