"""Running totals derived from the activity log and open intervals."""

from __future__ import annotations

import time
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable, Optional

from .activity_log import ActivityLog
from .correlator import Correlator
from .models import SubjectKind


@dataclass(frozen=True, slots=True)
class RunningSubject:
    subject_key: str
    display_name: str
    started_at: float
    elapsed_seconds: float
    is_running: bool = True


@dataclass(frozen=True, slots=True)
class SubjectTotal:
    subject_key: str
    subject_kind: SubjectKind
    display_name: str
    total_seconds: float
    closed_count: int
    unknown_count: int


class DurationAggregator:
    """Read-only view over the log and the correlator's open intervals.

    Nothing is cached: each call reads a fresh snapshot, and elapsed time for
    running subjects is measured against ``now`` at call time.
    """

    def __init__(
        self,
        activity_log: ActivityLog,
        correlator: Correlator,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._log = activity_log
        self._correlator = correlator
        self._clock = clock

    def running(self, now: Optional[float] = None) -> list[RunningSubject]:
        current = self._clock() if now is None else now
        entries = [
            RunningSubject(
                subject_key=key,
                display_name=interval.display_name,
                started_at=interval.start_time,
                elapsed_seconds=max(0.0, current - interval.start_time),
            )
            for key, interval in self._correlator.open_intervals().items()
            if interval.subject_kind is SubjectKind.APPLICATION
        ]
        entries.sort(key=lambda item: item.started_at)
        return entries

    def totals(self) -> list[SubjectTotal]:
        seconds: defaultdict[str, float] = defaultdict(float)
        closed: defaultdict[str, int] = defaultdict(int)
        unknown: defaultdict[str, int] = defaultdict(int)
        labels: dict[str, tuple[SubjectKind, str]] = {}
        # Snapshot is newest first; keep the most recent label per subject.
        for record in self._log.snapshot():
            if not record.is_closed_interval:
                continue
            key = record.subject_key
            seconds[key] += record.duration_seconds
            closed[key] += 1
            if not record.duration_known:
                unknown[key] += 1
            labels.setdefault(key, (record.subject_kind, record.display_name))

        totals = [
            SubjectTotal(
                subject_key=key,
                subject_kind=labels[key][0],
                display_name=labels[key][1],
                total_seconds=total,
                closed_count=closed[key],
                unknown_count=unknown[key],
            )
            for key, total in seconds.items()
        ]
        totals.sort(key=lambda item: item.total_seconds, reverse=True)
        return totals

    def summary(self, now: Optional[float] = None) -> list[dict[str, Any]]:
        """Per-subject view combining previous runs and the current run.

        The two numbers are reported side by side and never added together.
        """
        rows: dict[str, dict[str, Any]] = {}
        for total in self.totals():
            rows[total.subject_key] = {
                "subject_key": total.subject_key,
                "subject_kind": total.subject_kind.value,
                "display_name": total.display_name,
                "total_seconds": total.total_seconds,
                "closed_count": total.closed_count,
                "is_running": False,
                "started_at": None,
                "elapsed_seconds": None,
            }
        for running in self.running(now):
            row = rows.setdefault(
                running.subject_key,
                {
                    "subject_key": running.subject_key,
                    "subject_kind": SubjectKind.APPLICATION.value,
                    "display_name": running.display_name,
                    "total_seconds": 0.0,
                    "closed_count": 0,
                },
            )
            row["is_running"] = True
            row["started_at"] = running.started_at
            row["elapsed_seconds"] = running.elapsed_seconds
        return list(rows.values())
