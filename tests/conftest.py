from __future__ import annotations

from typing import Callable, Optional

import pytest

from activity_timeline.activity_log import ActivityLog
from activity_timeline.correlator import Correlator
from activity_timeline.models import EventEnvelope, EventKind, SubjectKind


class FakeClock:
    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


EnvelopeFactory = Callable[..., EventEnvelope]


def _make(
    kind: EventKind,
    key: str,
    t: Optional[float],
    subject_kind: SubjectKind = SubjectKind.APPLICATION,
    name: str = "",
    detail: Optional[str] = None,
) -> EventEnvelope:
    return EventEnvelope(
        subject_kind=subject_kind,
        subject_key=key,
        kind=kind,
        display_name=name or key,
        detail=detail,
        timestamp=t,
    )


@pytest.fixture
def start() -> EnvelopeFactory:
    return lambda key, t, **kw: _make(EventKind.START, key, t, **kw)


@pytest.fixture
def end() -> EnvelopeFactory:
    return lambda key, t, **kw: _make(EventKind.END, key, t, **kw)


@pytest.fixture
def instant() -> EnvelopeFactory:
    return lambda key, t, **kw: _make(EventKind.INSTANT, key, t, **kw)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def activity_log() -> ActivityLog:
    log = ActivityLog()
    yield log
    log.close()


@pytest.fixture
def correlator(activity_log: ActivityLog, clock: FakeClock) -> Correlator:
    return Correlator(sink=activity_log.append, clock=clock)
