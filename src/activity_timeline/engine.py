"""Composition root wiring event sources, intake, correlator and log."""

from __future__ import annotations

import logging
import queue
import threading
import time
from typing import Any, Callable, Iterable, Optional

import psutil

from .activity_log import ActivityLog
from .adapters import (
    ActivationAdapter,
    EventSourceAdapter,
    ProcessLifecycleAdapter,
    ScreenLockAdapter,
    WindowLifecycleAdapter,
)
from .aggregator import DurationAggregator
from .config import MonitorSettings
from .correlator import Correlator
from .intake import IntakeChannel
from .models import EventEnvelope

logger = logging.getLogger(__name__)


def read_boot_time() -> Optional[float]:
    try:
        return psutil.boot_time()
    except (psutil.Error, OSError):
        logger.exception("Failed to read boot time.")
        return None


class ActivityEngine:
    """Runs the correlator on a single consumer thread fed by the intake."""

    def __init__(
        self,
        settings: Optional[MonitorSettings] = None,
        adapters: Iterable[EventSourceAdapter] = (),
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings = settings or MonitorSettings()
        self.intake = IntakeChannel()
        self.activity_log = ActivityLog(max_records=self.settings.max_records)
        self.correlator = Correlator(sink=self.activity_log.append, clock=clock)
        self.aggregator = DurationAggregator(self.activity_log, self.correlator, clock=clock)
        self.boot_time = read_boot_time()
        self._adapters: list[EventSourceAdapter] = []
        self._lock = threading.Lock()
        self._consumer: Optional[threading.Thread] = None
        self._started_at: Optional[float] = None
        self._clock = clock
        for adapter in adapters:
            self.add_adapter(adapter)

    @classmethod
    def with_default_sources(cls, settings: Optional[MonitorSettings] = None) -> "ActivityEngine":
        resolved = settings or MonitorSettings()
        adapters: list[EventSourceAdapter] = []
        if resolved.enable_processes:
            adapters.append(
                ProcessLifecycleAdapter(
                    track_existing=resolved.track_existing,
                    poll_interval=resolved.poll_interval,
                )
            )
        if resolved.enable_activation:
            adapters.append(
                ActivationAdapter(
                    track_duration=resolved.track_activation_duration,
                    poll_interval=resolved.poll_interval,
                )
            )
        if resolved.enable_windows:
            adapters.append(
                WindowLifecycleAdapter(
                    keying=resolved.window_keying,
                    poll_interval=resolved.poll_interval,
                )
            )
        if resolved.enable_screen:
            adapters.append(ScreenLockAdapter(poll_interval=resolved.poll_interval))
        return cls(settings=resolved, adapters=adapters)

    @property
    def adapters(self) -> tuple[EventSourceAdapter, ...]:
        return tuple(self._adapters)

    def add_adapter(self, adapter: EventSourceAdapter) -> EventSourceAdapter:
        adapter.bind(self.submit)
        self._adapters.append(adapter)
        if self.is_running():
            adapter.start()
        return adapter

    def submit(self, envelope: EventEnvelope) -> bool:
        return self.intake.put(envelope)

    def start(self) -> None:
        with self._lock:
            if self._consumer and self._consumer.is_alive():
                return
            if self.intake.closed:
                raise RuntimeError("engine cannot be restarted after stop()")
            consumer = threading.Thread(
                target=self._consume, name="activity-correlator", daemon=True
            )
            self._consumer = consumer
            self._started_at = self._clock()
            consumer.start()
            logger.info("Activity engine started.")
        for adapter in self._adapters:
            try:
                adapter.start()
            except Exception:
                logger.exception("Failed to start %s event source.", adapter.name)

    def stop(self, timeout: float = 10.0) -> None:
        for adapter in reversed(self._adapters):
            try:
                adapter.stop()
            except Exception:
                logger.exception("Failed to stop %s event source.", adapter.name)
        with self._lock:
            consumer = self._consumer
            self._consumer = None
        self.intake.close()
        if consumer:
            consumer.join(timeout=timeout)
        self.activity_log.close()
        logger.info("Activity engine stopped.")

    def wait_until_idle(self) -> None:
        """Block until every submitted envelope has been handled."""
        self.intake.join()

    def is_running(self) -> bool:
        with self._lock:
            return bool(self._consumer and self._consumer.is_alive())

    def status(self) -> dict[str, Any]:
        return {
            "running": self.is_running(),
            "started_at": self._started_at,
            "boot_time": self.boot_time,
            "record_count": len(self.activity_log),
            "open_intervals": len(self.correlator.open_intervals()),
            "pending_envelopes": self.intake.qsize(),
            "sources": [adapter.name for adapter in self._adapters],
            "poll_seconds": self.settings.poll_interval.total_seconds(),
            "max_records": self.settings.max_records,
            "window_keying": self.settings.window_keying.value,
        }

    def __enter__(self) -> "ActivityEngine":
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()

    def _consume(self) -> None:
        while True:
            try:
                envelope = self.intake.get(timeout=1.0)
            except queue.Empty:
                continue
            if envelope is None:
                return
            try:
                self.correlator.handle(envelope)
            except Exception:
                logger.exception("Failed to correlate %r; continuing.", envelope)
            finally:
                self.intake.task_done()
