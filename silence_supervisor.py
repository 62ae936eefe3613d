"""Periodic end-of-utterance detection."""

from __future__ import annotations

from typing import Callable, Optional

from interfaces import Cancellable, Scheduler
from speech_gate import SpeechGate


class SilenceSupervisor:
    """Ticks while a pipeline is recording and reports when silence ran out.

    One instance belongs to one pipeline acquisition. Once cancelled it never
    ticks again; a restarted session builds a new supervisor.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        on_tick: Callable[[], None],
        tick_interval_s: float = 0.1,
        silence_timeout_s: float = 2.0,
    ) -> None:
        self._scheduler = scheduler
        self._on_tick = on_tick
        self.tick_interval_s = tick_interval_s
        self.silence_timeout_s = silence_timeout_s
        self._handle: Optional[Cancellable] = None
        self._cancelled = False

    @property
    def active(self) -> bool:
        return self._handle is not None

    def start(self) -> None:
        if self._cancelled or self._handle is not None:
            return
        self._handle = self._scheduler.call_every(self.tick_interval_s, self._on_tick)

    def cancel(self) -> None:
        self._cancelled = True
        handle, self._handle = self._handle, None
        if handle is not None:
            handle.cancel()

    def silence_elapsed(self, gate: SpeechGate, now: float) -> Optional[float]:
        """Seconds since the last loud frame, or None while still dormant."""
        last = gate.last_above_threshold_at
        if last is None or not gate.has_valid_speech(now):
            return None
        return now - last

    def should_end_utterance(self, gate: SpeechGate, now: float) -> bool:
        elapsed = self.silence_elapsed(gate, now)
        return elapsed is not None and elapsed >= self.silence_timeout_s
