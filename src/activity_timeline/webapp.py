"""FastAPI application exposing the activity timeline over a local HTTP API."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field

from .adapters import ManualAdapter
from .config import MonitorSettings
from .engine import ActivityEngine
from .models import ActivityRecord, EventEnvelope, EventKind, SubjectKind
from .reporting import format_duration, format_timestamp

logger = logging.getLogger(__name__)


class EnvelopePayload(BaseModel):
    subject_kind: SubjectKind
    subject_key: str = ""
    kind: EventKind
    display_name: str = ""
    detail: Optional[str] = None
    timestamp: Optional[float] = Field(default=None, allow_inf_nan=False)
    action: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


def create_app(
    *,
    engine: Optional[ActivityEngine] = None,
    settings: Optional[MonitorSettings] = None,
    manage_engine: bool = True,
) -> FastAPI:
    """Instantiate the FastAPI application around an engine.

    With ``manage_engine`` the engine is started and stopped with the app.
    """
    resolved_engine = engine or ActivityEngine.with_default_sources(settings)
    manual = resolved_engine.add_adapter(ManualAdapter())

    app = FastAPI(title="Activity Timeline", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.engine = resolved_engine

    if manage_engine:

        @app.on_event("startup")
        async def _startup() -> None:
            resolved_engine.start()

        @app.on_event("shutdown")
        async def _shutdown() -> None:
            resolved_engine.stop()

    @app.get("/api/status")
    def status(request: Request) -> Dict[str, Any]:
        engine_status = request.app.state.engine.status()
        boot_time = engine_status["boot_time"]
        engine_status["boot_time_display"] = (
            format_timestamp(boot_time) if boot_time is not None else None
        )
        return engine_status

    @app.get("/api/records")
    def records(
        request: Request,
        limit: Optional[int] = Query(
            default=None,
            description="Maximum number of records, most recent first.",
        ),
        kind: Optional[str] = Query(
            default=None,
            description="Only records for this subject kind (application, window, screen).",
        ),
    ) -> Dict[str, Any]:
        if limit is not None and limit < 1:
            raise HTTPException(status_code=400, detail="limit must be positive")
        subject_kind = _parse_subject_kind(kind)
        snapshot = request.app.state.engine.activity_log.snapshot()
        selected = [
            record
            for record in snapshot
            if subject_kind is None or record.subject_kind is subject_kind
        ]
        if limit is not None:
            selected = selected[:limit]
        return {
            "count": len(selected),
            "records": [_record_to_payload(record) for record in selected],
        }

    @app.get("/api/running")
    def running(request: Request) -> Dict[str, Any]:
        entries = request.app.state.engine.aggregator.running()
        return {
            "running": [
                {
                    "subject_key": entry.subject_key,
                    "display_name": entry.display_name,
                    "is_running": entry.is_running,
                    "started_at": entry.started_at,
                    "started_at_display": format_timestamp(entry.started_at),
                    "elapsed_seconds": entry.elapsed_seconds,
                    "elapsed": format_duration(entry.elapsed_seconds),
                }
                for entry in entries
            ]
        }

    @app.get("/api/totals")
    def totals(request: Request) -> Dict[str, Any]:
        entries = request.app.state.engine.aggregator.totals()
        return {
            "totals": [
                {
                    "subject_key": entry.subject_key,
                    "subject_kind": entry.subject_kind.value,
                    "display_name": entry.display_name,
                    "total_seconds": entry.total_seconds,
                    "total": format_duration(entry.total_seconds),
                    "closed_count": entry.closed_count,
                    "unknown_count": entry.unknown_count,
                }
                for entry in entries
            ]
        }

    @app.get("/api/summary")
    def summary(request: Request) -> Dict[str, Any]:
        return {"subjects": request.app.state.engine.aggregator.summary()}

    @app.post("/api/envelopes", status_code=202)
    def ingest(payload: EnvelopePayload) -> Dict[str, Any]:
        envelope = EventEnvelope(**payload.model_dump())
        if not manual.emit(envelope):
            raise HTTPException(status_code=503, detail="Engine is not accepting events.")
        return {"accepted": True}

    return app


def _parse_subject_kind(value: Optional[str]) -> Optional[SubjectKind]:
    if not value:
        return None
    try:
        return SubjectKind(value.strip().lower())
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid subject kind") from exc


def _record_to_payload(record: ActivityRecord) -> Dict[str, Any]:
    return {
        "sequence_id": record.sequence_id,
        "timestamp": record.timestamp,
        "timestamp_display": format_timestamp(record.timestamp),
        "ended_at": record.ended_at,
        "duration_seconds": record.duration_seconds,
        "duration": format_duration(record.duration_seconds) if record.duration_known else None,
        "duration_known": record.duration_known,
        "subject_kind": record.subject_kind.value,
        "subject_key": record.subject_key,
        "display_name": record.display_name,
        "detail": record.detail,
        "action": record.action,
        "origin": record.origin.value,
    }
