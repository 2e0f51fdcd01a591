"""Simple reporting utilities for CLI output."""

from __future__ import annotations

import math
from datetime import datetime
from decimal import Decimal
from typing import Optional

from .aggregator import DurationAggregator
from .models import ActivityRecord, EventKind, SubjectKind

TIMESTAMP_FMT = "%Y-%m-%d %H:%M:%S"
INVALID_TIMESTAMP = "----------- --:--:--"
INVALID_DURATION = "--:--:--"


class TimelinePrinter:
    """Render activity records and running totals in the console."""

    def __init__(self, top: int = 10) -> None:
        self.top = top

    def print_record(self, record: ActivityRecord) -> None:
        print(format_record(record))

    def print_summary(self, aggregator: DurationAggregator, now: Optional[float] = None) -> None:
        running = aggregator.running(now)
        totals = aggregator.totals()
        if not running and not totals:
            print("No activity recorded.")
            return

        if running:
            print("Currently running:")
            for entry in running[: self.top]:
                print(
                    f"  {entry.display_name[:30]:<30} since {format_timestamp(entry.started_at)}"
                    f"  {format_duration(entry.elapsed_seconds)}"
                )

        if totals:
            if running:
                print()
            print("Accumulated durations:")
            for total in totals[: self.top]:
                label = total.display_name
                if total.subject_kind is SubjectKind.WINDOW:
                    label = total.subject_key
                suffix = f" ({total.unknown_count} unknown)" if total.unknown_count else ""
                print(f"  {label[:45]:<45} {format_duration(total.total_seconds)}{suffix}")


def format_record(record: ActivityRecord) -> str:
    action = record.action or record.origin.value
    line = f"#{record.sequence_id:<5} {format_timestamp(record.timestamp)}  {record.display_name} - {action}"
    if record.detail:
        line += f" [{record.detail}]"
    if record.origin is EventKind.END:
        if record.duration_known:
            line += f"  {format_duration(record.duration_seconds)}"
        else:
            line += "  duration unknown"
    return line


def format_timestamp(timestamp: float) -> str:
    try:
        return datetime.fromtimestamp(timestamp).strftime(TIMESTAMP_FMT)
    except (OverflowError, ValueError, OSError):
        return INVALID_TIMESTAMP


def format_duration(seconds: Optional[float]) -> str:
    """Render seconds as HH:MM:SS, adding .mmm when there is a fractional part.

    Milliseconds are truncated, never rounded. Negative or undefined input
    renders as zero; infinite input renders a placeholder.
    """
    if seconds is None or math.isnan(seconds) or seconds <= 0:
        return "00:00:00"
    if math.isinf(seconds):
        return INVALID_DURATION
    exact = Decimal(repr(float(seconds)))
    whole = int(exact)
    millis = int((exact - whole) * 1000)
    hours, remainder = divmod(whole, 3600)
    minutes, secs = divmod(remainder, 60)
    text = f"{hours:02d}:{minutes:02d}:{secs:02d}"
    if exact != whole:
        text += f".{millis:03d}"
    return text
