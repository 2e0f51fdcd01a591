"""State machine that pairs start and end events into activity records."""

from __future__ import annotations

import itertools
import logging
import math
import threading
import time
from typing import Callable, Optional

from .models import (
    ActivityRecord,
    EventEnvelope,
    EventKind,
    OpenInterval,
)
from .normalization import UNKNOWN_NAME, coerce_subject_key

logger = logging.getLogger(__name__)

RecordSink = Callable[[ActivityRecord], None]


class Correlator:
    """Tracks open intervals and emits activity records.

    The open-interval map, the sequence counter and the hand-off to the sink
    change together under one lock, so concurrent ``handle`` calls never see a
    half-closed interval and sink order matches ``sequence_id`` order. The
    sink must not block; ``ActivityLog.append`` only queues notifications.
    """

    def __init__(
        self,
        sink: Optional[RecordSink] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._sink = sink
        self._clock = clock
        self._lock = threading.Lock()
        self._open: dict[str, OpenInterval] = {}
        self._sequence = itertools.count(1)

    def handle(self, envelope: EventEnvelope) -> Optional[ActivityRecord]:
        key = coerce_subject_key(envelope.subject_key)
        timestamp = envelope.timestamp
        if timestamp is None or not math.isfinite(timestamp):
            if timestamp is not None:
                logger.debug("Non-finite timestamp for %s; using current time.", key)
            timestamp = self._clock()
        display_name = envelope.display_name or UNKNOWN_NAME

        with self._lock:
            if envelope.kind is EventKind.START:
                if key in self._open:
                    logger.debug("Restart of open interval %s; keeping latest start.", key)
                self._open[key] = OpenInterval(
                    subject_kind=envelope.subject_kind,
                    start_time=timestamp,
                    display_name=display_name,
                    detail=envelope.detail,
                    action=envelope.action,
                )
                return None

            if envelope.kind is EventKind.END:
                record = self._close_locked(key, envelope, timestamp, display_name)
            else:
                record = ActivityRecord(
                    sequence_id=next(self._sequence),
                    timestamp=timestamp,
                    duration_seconds=0.0,
                    subject_kind=envelope.subject_kind,
                    subject_key=key,
                    display_name=display_name,
                    detail=envelope.detail,
                    origin=EventKind.INSTANT,
                    action=envelope.action,
                )

            if self._sink is not None:
                self._sink(record)
        return record

    def _close_locked(
        self,
        key: str,
        envelope: EventEnvelope,
        timestamp: float,
        display_name: str,
    ) -> ActivityRecord:
        interval = self._open.pop(key, None)
        if interval is None:
            logger.debug("End without start for %s; duration unknown.", key)
            return ActivityRecord(
                sequence_id=next(self._sequence),
                timestamp=timestamp,
                duration_seconds=0.0,
                subject_kind=envelope.subject_kind,
                subject_key=key,
                display_name=display_name,
                detail=envelope.detail,
                origin=EventKind.END,
                action=envelope.action,
                duration_known=False,
                ended_at=timestamp,
            )

        elapsed = timestamp - interval.start_time
        if not 0 <= elapsed < math.inf:
            logger.debug("End for %s precedes its start or overflows; clamping to zero.", key)
            elapsed = 0.0
        name = interval.display_name
        if not name or name == UNKNOWN_NAME:
            name = display_name
        return ActivityRecord(
            sequence_id=next(self._sequence),
            timestamp=interval.start_time,
            duration_seconds=float(elapsed),
            subject_kind=interval.subject_kind,
            subject_key=key,
            display_name=name,
            detail=interval.detail or envelope.detail,
            origin=EventKind.END,
            action=envelope.action,
            ended_at=timestamp,
        )

    def open_intervals(self) -> dict[str, OpenInterval]:
        with self._lock:
            return {
                key: OpenInterval(
                    subject_kind=interval.subject_kind,
                    start_time=interval.start_time,
                    display_name=interval.display_name,
                    detail=interval.detail,
                    action=interval.action,
                )
                for key, interval in self._open.items()
            }

    def is_open(self, subject_key: str) -> bool:
        with self._lock:
            return subject_key in self._open
