"""Simple JSON-based config store and capture tuning."""

from __future__ import annotations

import json
import math
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Mapping


@dataclass
class CaptureSettings:
    """Calibrated constants of the speech gate, silence supervisor and retries."""

    # Mean absolute amplitude, normalized units. Tuned against a quiet room.
    silence_threshold: float = 0.0002
    required_consecutive_frames: int = 3
    minimum_speech_duration_s: float = 0.3
    silence_timeout_s: float = 2.0
    tick_interval_s: float = 0.1
    max_service_retries: int = 3
    service_retry_backoff_s: float = 1.0
    max_no_speech_retries: int = 3
    no_speech_retry_backoff_s: float = 0.5
    finalize_timeout_s: float = 10.0
    # Give up on an attempt that has not heard valid speech; 0 disables.
    no_speech_timeout_s: float = 8.0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CaptureSettings":
        """Build settings, keeping the default for any missing or bad value."""
        defaults = cls()
        values: dict[str, Any] = {}
        for f in fields(cls):
            default = getattr(defaults, f.name)
            values[f.name] = _coerce(data.get(f.name), default)
        settings = cls(**values)
        if settings.required_consecutive_frames < 1:
            settings.required_consecutive_frames = defaults.required_consecutive_frames
        if settings.tick_interval_s <= 0:
            settings.tick_interval_s = defaults.tick_interval_s
        return settings

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _coerce(value: Any, default: Any) -> Any:
    if value is None or isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(number):
        return default
    if isinstance(default, int):
        if not number.is_integer():
            return default
        coerced: Any = int(number)
    else:
        coerced = number
    if coerced < 0:
        return default
    return coerced


class JsonConfigStore:
    def __init__(self, path: Path | None = None) -> None:
        self._path = path or Path.home() / ".config" / "voice_capture" / "config.json"
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def get_api_key(self) -> str:
        data = self._read_all()
        return str(data.get("api_key", ""))

    def set_api_key(self, key: str) -> None:
        data = self._read_all()
        data["api_key"] = key
        self._write_all(data)

    def get_hotkey(self) -> str:
        data = self._read_all()
        return str(data.get("hotkey", "Key.alt_l"))

    def set_hotkey(self, hotkey: str) -> None:
        data = self._read_all()
        data["hotkey"] = hotkey
        self._write_all(data)

    def get_capture_settings(self) -> CaptureSettings:
        data = self._read_all()
        block = data.get("capture")
        if not isinstance(block, dict):
            return CaptureSettings()
        return CaptureSettings.from_dict(block)

    def set_capture_settings(self, settings: CaptureSettings) -> None:
        data = self._read_all()
        data["capture"] = settings.to_dict()
        self._write_all(data)

    def _read_all(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict) -> None:
        self._path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
