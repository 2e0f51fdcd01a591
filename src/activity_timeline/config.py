"""Configuration models and helpers for the activity monitor."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Optional


class WindowKeying(str, Enum):
    """How window lifecycle events are grouped into open intervals."""

    PER_WINDOW = "per-window"
    PER_APPLICATION = "per-application"


@dataclass(slots=True)
class MonitorSettings:
    """Runtime configuration for the engine and its event sources."""

    poll_interval: timedelta = timedelta(seconds=2)
    max_records: Optional[int] = None
    window_keying: WindowKeying = WindowKeying.PER_WINDOW
    track_activation_duration: bool = False
    track_existing: bool = True
    enable_processes: bool = True
    enable_activation: bool = True
    enable_windows: bool = True
    enable_screen: bool = True

    @classmethod
    def from_options(
        cls,
        poll_seconds: float,
        max_records: Optional[int] = None,
        window_keying: str | WindowKeying = WindowKeying.PER_WINDOW,
        track_activation_duration: bool = False,
        track_existing: bool = True,
        sources: Optional[set[str]] = None,
    ) -> "MonitorSettings":
        poll = max(poll_seconds, 0.1)
        retention = max_records if max_records and max_records > 0 else None
        enabled = sources if sources is not None else {"processes", "activation", "windows", "screen"}
        return cls(
            poll_interval=timedelta(seconds=poll),
            max_records=retention,
            window_keying=WindowKeying(window_keying),
            track_activation_duration=track_activation_duration,
            track_existing=track_existing,
            enable_processes="processes" in enabled,
            enable_activation="activation" in enabled,
            enable_windows="windows" in enabled,
            enable_screen="screen" in enabled,
        )
