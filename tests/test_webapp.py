from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from activity_timeline.engine import ActivityEngine
from activity_timeline.webapp import create_app


@pytest.fixture
def engine():
    return ActivityEngine()


@pytest.fixture
def client(engine):
    app = create_app(engine=engine)
    with TestClient(app) as test_client:
        yield test_client


def _post(client, **payload):
    response = client.post("/api/envelopes", json=payload)
    assert response.status_code == 202, response.text
    return response


def test_status_reports_running_engine(client):
    body = client.get("/api/status").json()
    assert body["running"] is True
    assert "manual" in body["sources"]
    assert "boot_time_display" in body


def test_ingested_envelopes_appear_in_records(client, engine):
    _post(client, subject_kind="application", subject_key="Code", kind="start", timestamp=0.0)
    _post(client, subject_kind="application", subject_key="Code", kind="end", timestamp=65.5)
    _post(client, subject_kind="screen", subject_key="screen", kind="instant", timestamp=70.0)
    engine.wait_until_idle()

    body = client.get("/api/records").json()
    assert body["count"] == 2
    newest, oldest = body["records"]
    assert newest["subject_kind"] == "screen"
    assert oldest["duration"] == "00:01:05.500"
    assert newest["sequence_id"] > oldest["sequence_id"]

    filtered = client.get("/api/records", params={"kind": "application", "limit": 5}).json()
    assert [record["subject_key"] for record in filtered["records"]] == ["Code"]


def test_running_and_totals(client, engine):
    _post(client, subject_kind="application", subject_key="Code", kind="start", timestamp=0.0)
    _post(client, subject_kind="application", subject_key="Code", kind="end", timestamp=30.0)
    _post(client, subject_kind="application", subject_key="Code", kind="start")
    _post(client, subject_kind="application", subject_key="Term", kind="end", timestamp=5.0)
    engine.wait_until_idle()

    running = client.get("/api/running").json()["running"]
    assert [entry["subject_key"] for entry in running] == ["Code"]

    totals = {entry["subject_key"]: entry for entry in client.get("/api/totals").json()["totals"]}
    assert totals["Code"]["total"] == "00:00:30"
    assert totals["Term"]["unknown_count"] == 1

    subjects = {row["subject_key"]: row for row in client.get("/api/summary").json()["subjects"]}
    assert subjects["Code"]["is_running"] is True
    assert subjects["Code"]["total_seconds"] == 30.0


def test_unknown_duration_has_no_formatted_duration(client, engine):
    _post(client, subject_kind="window", subject_key="Code-a.py", kind="end", timestamp=1.0)
    engine.wait_until_idle()
    record = client.get("/api/records").json()["records"][0]
    assert record["duration_known"] is False
    assert record["duration"] is None


def test_rejects_invalid_input(client):
    assert client.get("/api/records", params={"limit": 0}).status_code == 400
    assert client.get("/api/records", params={"kind": "printer"}).status_code == 400
    response = client.post(
        "/api/envelopes",
        json={"subject_kind": "application", "kind": "start", "unexpected": 1},
    )
    assert response.status_code == 422


def test_ingest_after_shutdown_is_refused(engine):
    engine.start()
    engine.stop()
    client = TestClient(create_app(engine=engine, manage_engine=False))
    response = client.post(
        "/api/envelopes",
        json={"subject_kind": "screen", "subject_key": "screen", "kind": "instant"},
    )
    assert response.status_code == 503


def test_far_future_timestamp_does_not_break_reads(client, engine):
    _post(client, subject_kind="screen", subject_key="screen", kind="instant", timestamp=1e20)
    _post(client, subject_kind="application", subject_key="Code", kind="start", timestamp=-1.7e308)
    _post(client, subject_kind="application", subject_key="Code", kind="end", timestamp=1.7e308)
    engine.wait_until_idle()

    response = client.get("/api/records")
    assert response.status_code == 200
    records = response.json()["records"]
    assert len(records) == 2
    assert all(record["timestamp_display"].startswith("-") for record in records)
    assert records[0]["subject_key"] == "Code"
    assert records[0]["duration_seconds"] == 0.0
    assert client.get("/api/totals").status_code == 200


@pytest.mark.parametrize("value", ["NaN", "Infinity", "-Infinity"])
def test_non_finite_timestamps_are_rejected(client, value):
    response = client.post(
        "/api/envelopes",
        content=f'{{"subject_kind": "screen", "kind": "instant", "timestamp": {value}}}',
        headers={"content-type": "application/json"},
    )
    assert response.status_code == 422
