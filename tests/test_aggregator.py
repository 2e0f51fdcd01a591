from __future__ import annotations

from activity_timeline.aggregator import DurationAggregator
from activity_timeline.models import SubjectKind


def test_running_reports_open_applications_only(correlator, activity_log, clock, start):
    aggregator = DurationAggregator(activity_log, correlator, clock=clock)
    correlator.handle(start("editor", 900.0))
    correlator.handle(start("editor-main.py", 950.0, subject_kind=SubjectKind.WINDOW))

    clock.now = 1_000.0
    running = aggregator.running()
    assert [entry.subject_key for entry in running] == ["editor"]
    assert running[0].elapsed_seconds == 100.0
    assert running[0].is_running

    clock.now = 1_030.0
    assert aggregator.running()[0].elapsed_seconds == 130.0
    assert aggregator.running(now=800.0)[0].elapsed_seconds == 0.0


def test_totals_sum_closed_records_per_subject(correlator, activity_log, clock, start, end, instant):
    aggregator = DurationAggregator(activity_log, correlator, clock=clock)
    correlator.handle(start("editor", 0.0))
    correlator.handle(end("editor", 30.0))
    correlator.handle(start("editor", 100.0))
    correlator.handle(end("editor", 110.0))
    correlator.handle(end("browser", 5.0))
    correlator.handle(instant("screen", 50.0, subject_kind=SubjectKind.SCREEN))

    totals = {entry.subject_key: entry for entry in aggregator.totals()}
    assert set(totals) == {"editor", "browser"}
    assert totals["editor"].total_seconds == 40.0
    assert totals["editor"].closed_count == 2
    assert totals["browser"].total_seconds == 0.0
    assert totals["browser"].unknown_count == 1
    assert [entry.subject_key for entry in aggregator.totals()][0] == "editor"


def test_running_and_previous_runs_stay_separate(correlator, activity_log, clock, start, end):
    aggregator = DurationAggregator(activity_log, correlator, clock=clock)
    correlator.handle(start("editor", 0.0))
    correlator.handle(end("editor", 20.0))
    correlator.handle(start("editor", 900.0))

    clock.now = 960.0
    rows = {row["subject_key"]: row for row in aggregator.summary()}
    editor = rows["editor"]
    assert editor["total_seconds"] == 20.0
    assert editor["closed_count"] == 1
    assert editor["is_running"] is True
    assert editor["elapsed_seconds"] == 60.0
