"""Helpers to launch the local HTTP API."""

from __future__ import annotations

import logging
from typing import Optional

import uvicorn

from .config import MonitorSettings
from .webapp import create_app


def run_server(
    *,
    host: str = "127.0.0.1",
    port: int = 8766,
    settings: Optional[MonitorSettings] = None,
    log_level: str = "info",
) -> None:
    """Start the FastAPI app with the activity engine running in the background."""
    app = create_app(settings=settings or MonitorSettings())
    logging.getLogger("uvicorn.error").setLevel(log_level.upper())
    uvicorn.run(app, host=host, port=port, log_level=log_level)
