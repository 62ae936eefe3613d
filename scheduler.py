"""Thread-backed timers for the silence ticker, retry backoff and finalize timeout."""

from __future__ import annotations

import logging
import threading
from typing import Callable

LOG = logging.getLogger("voice_capture.scheduler")


class _Timer:
    def __init__(self, delay_s: float, callback: Callable[[], None], interval_s: float | None = None) -> None:
        self._delay_s = delay_s
        self._interval_s = interval_s
        self._callback = callback
        self._cancelled = threading.Event()
        self._thread = threading.Thread(target=self._run, daemon=True)

    def start(self) -> "_Timer":
        self._thread.start()
        return self

    def cancel(self) -> None:
        # Never joins: the callback may be waiting on the lock held by the caller.
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def _run(self) -> None:
        wait_s = self._delay_s
        while not self._cancelled.wait(wait_s):
            try:
                self._callback()
            except Exception:
                LOG.exception("scheduled callback failed")
            if self._interval_s is None:
                return
            wait_s = self._interval_s


class ThreadScheduler:
    def call_later(self, delay_s: float, callback: Callable[[], None]) -> _Timer:
        return _Timer(delay_s, callback).start()

    def call_every(self, interval_s: float, callback: Callable[[], None]) -> _Timer:
        return _Timer(interval_s, callback, interval_s=interval_s).start()
