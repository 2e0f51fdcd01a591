from __future__ import annotations

import random
import threading

import pytest

from activity_timeline.correlator import Correlator
from activity_timeline.models import EventEnvelope, EventKind, SubjectKind
from activity_timeline.normalization import UNKNOWN_SUBJECT_KEY
from activity_timeline.reporting import format_duration


def test_start_then_end_measures_duration(correlator, activity_log, start, end):
    assert correlator.handle(start("A", 0.0)) is None
    record = correlator.handle(end("A", 65.5))

    assert record is not None
    assert record.duration_seconds == 65.5
    assert record.timestamp == 0.0
    assert record.ended_at == 65.5
    assert record.duration_known
    assert format_duration(record.duration_seconds) == "00:01:05.500"
    assert activity_log.snapshot() == (record,)
    assert not correlator.is_open("A")


@pytest.mark.parametrize("seed", range(5))
def test_paired_durations_match_timestamps(correlator, start, end, seed):
    rng = random.Random(seed)
    for index in range(50):
        key = f"app-{index}"
        began = rng.uniform(0, 1_000)
        finished = began + rng.uniform(0, 500)
        correlator.handle(start(key, began))
        record = correlator.handle(end(key, finished))
        assert record.duration_seconds == finished - began


def test_end_before_start_is_clamped_to_zero(correlator, start, end):
    correlator.handle(start("A", 100.0))
    record = correlator.handle(end("A", 40.0))

    assert record.duration_seconds == 0.0
    assert record.duration_known


def test_end_without_start_yields_unknown_zero_record(correlator, activity_log, end):
    record = correlator.handle(end("ghost", 12.0))

    assert record.duration_seconds == 0.0
    assert not record.duration_known
    assert record.origin is EventKind.END
    assert record.timestamp == 12.0
    assert len(activity_log) == 1


def test_repeated_start_keeps_latest_start(correlator, activity_log, start, end):
    correlator.handle(start("A", 0.0))
    correlator.handle(start("A", 10.0))
    record = correlator.handle(end("A", 25.0))

    assert record.duration_seconds == 15.0
    assert len(activity_log) == 1


def test_instant_is_emitted_without_opening_interval(correlator, instant):
    record = correlator.handle(instant("screen", 10.0, subject_kind=SubjectKind.SCREEN))

    assert record.duration_seconds == 0.0
    assert record.origin is EventKind.INSTANT
    assert record.timestamp == 10.0
    assert correlator.open_intervals() == {}


def test_interleaved_windows_do_not_interfere(correlator, start, end):
    window = {"subject_kind": SubjectKind.WINDOW}
    correlator.handle(start("W1", 0.0, **window))
    correlator.handle(start("W2", 1.0, **window))
    first = correlator.handle(end("W1", 5.0, **window))
    second = correlator.handle(end("W2", 2.0, **window))

    assert (first.subject_key, first.duration_seconds) == ("W1", 5.0)
    assert (second.subject_key, second.duration_seconds) == ("W2", 1.0)


def test_end_uses_interval_labels_with_fallback(correlator, start, end):
    correlator.handle(start("bundle.id", 0.0, name="Editor", detail="main.py"))
    record = correlator.handle(end("bundle.id", 3.0, name="Other", detail=None))
    assert record.display_name == "Editor"
    assert record.detail == "main.py"

    correlator.handle(
        EventEnvelope(SubjectKind.APPLICATION, "nameless", EventKind.START, timestamp=0.0)
    )
    record = correlator.handle(end("nameless", 1.0, name="Late Name"))
    assert record.display_name == "Late Name"


def test_malformed_envelopes_are_coerced(correlator, clock):
    clock.now = 500.0
    record = correlator.handle(
        EventEnvelope(SubjectKind.SCREEN, "   ", EventKind.INSTANT, timestamp=None)
    )

    assert record.subject_key == UNKNOWN_SUBJECT_KEY
    assert record.timestamp == 500.0
    assert record.display_name == "Unknown"


def test_sequence_ids_strictly_increase(correlator, activity_log, start, end, instant):
    for index in range(20):
        correlator.handle(start(f"k{index % 3}", float(index)))
        correlator.handle(end(f"k{(index + 1) % 3}", float(index) + 0.5))
        correlator.handle(instant("screen", float(index)))

    ids = [record.sequence_id for record in reversed(activity_log.snapshot())]
    assert ids == sorted(set(ids))
    assert len(ids) == 40


def test_concurrent_ends_for_same_key_match_once(activity_log, start, end):
    correlator = Correlator(sink=activity_log.append)
    correlator.handle(start("A", 0.0))
    barrier = threading.Barrier(8)
    results = []
    lock = threading.Lock()

    def _close() -> None:
        barrier.wait()
        record = correlator.handle(end("A", 10.0))
        with lock:
            results.append(record)

    threads = [threading.Thread(target=_close) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    known = [record for record in results if record.duration_known]
    assert len(known) == 1
    assert known[0].duration_seconds == 10.0
    assert len(results) == 8


@pytest.mark.parametrize("bad", [float("nan"), float("inf"), float("-inf")])
def test_non_finite_timestamps_fall_back_to_clock(correlator, clock, start, end, bad):
    clock.now = 100.0
    correlator.handle(start("A", bad))
    assert correlator.open_intervals()["A"].start_time == 100.0
    record = correlator.handle(end("A", 130.0))
    assert record.duration_seconds == 30.0

    correlator.handle(start("B", 90.0))
    clock.now = 120.0
    record = correlator.handle(end("B", bad))
    assert record.duration_seconds == 30.0
    assert record.ended_at == 120.0

    record = correlator.handle(end("C", bad))
    assert record.timestamp == 120.0
    assert record.duration_seconds >= 0
