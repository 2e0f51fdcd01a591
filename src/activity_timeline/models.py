"""Domain models for lifecycle events and correlated activity."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class SubjectKind(str, Enum):
    APPLICATION = "application"
    WINDOW = "window"
    SCREEN = "screen"


class EventKind(str, Enum):
    START = "start"
    END = "end"
    INSTANT = "instant"


@dataclass(frozen=True, slots=True)
class EventEnvelope:
    """One normalized lifecycle notification produced by an event source."""

    subject_kind: SubjectKind
    subject_key: str
    kind: EventKind
    display_name: str = ""
    detail: Optional[str] = None
    timestamp: Optional[float] = None
    action: Optional[str] = None


@dataclass(slots=True)
class OpenInterval:
    """A subject whose start has been seen but whose end has not."""

    subject_kind: SubjectKind
    start_time: float
    display_name: str
    detail: Optional[str] = None
    action: Optional[str] = None


@dataclass(frozen=True, slots=True)
class ActivityRecord:
    """A correlated, duration-annotated entry of the activity timeline."""

    sequence_id: int
    timestamp: float
    duration_seconds: float
    subject_kind: SubjectKind
    subject_key: str
    display_name: str
    detail: Optional[str]
    origin: EventKind
    action: Optional[str] = None
    duration_known: bool = True
    ended_at: Optional[float] = None

    @property
    def is_closed_interval(self) -> bool:
        return self.origin is EventKind.END
