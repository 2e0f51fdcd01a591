"""Event sources that translate platform observations into envelopes."""

from __future__ import annotations

import logging
import threading
import time
from collections import defaultdict
from datetime import timedelta
from typing import Callable, Optional

from .config import WindowKeying
from .models import EventEnvelope, EventKind, SubjectKind
from .normalization import (
    SCREEN_SUBJECT_KEY,
    activation_subject_key,
    normalize_app_name,
    normalize_window_title,
    window_subject_key,
)
from .probes import (
    ForegroundProbe,
    ProcessProbe,
    PsutilProcessProbe,
    ScreenLockProbe,
    WindowListProbe,
    default_foreground_probe,
    default_screen_lock_probe,
    default_window_list_probe,
)

logger = logging.getLogger(__name__)

EnvelopeSink = Callable[[EventEnvelope], bool]


class EventSourceAdapter:
    """Base class for a producer feeding the engine's intake.

    Subclasses either push envelopes from their own callbacks or implement
    ``poll`` and let ``start`` run it on a background thread until ``stop``.
    """

    name = "adapter"

    def __init__(
        self,
        poll_interval: timedelta = timedelta(seconds=2),
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.poll_interval = poll_interval
        self._clock = clock
        self._sink: Optional[EnvelopeSink] = None
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._stop_event: Optional[threading.Event] = None

    def bind(self, sink: EnvelopeSink) -> None:
        self._sink = sink

    def emit(self, envelope: EventEnvelope) -> bool:
        if self._sink is None:
            logger.warning("%s has no sink; dropping %s.", self.name, envelope.subject_key)
            return False
        return self._sink(envelope)

    def start(self) -> None:
        with self._lock:
            if self._thread and self._thread.is_alive():
                return
            self.on_start()
            if not self.polls:
                return
            stop_event = threading.Event()
            thread = threading.Thread(
                target=self._run_loop,
                args=(stop_event,),
                name=f"{self.name}-source",
                daemon=True,
            )
            self._thread = thread
            self._stop_event = stop_event
            thread.start()
            logger.info("%s event source started.", self.name)

    def stop(self, timeout: float = 10.0) -> None:
        thread: Optional[threading.Thread] = None
        with self._lock:
            if self._stop_event is not None:
                self._stop_event.set()
            thread = self._thread
            self._thread = None
            self._stop_event = None
        if thread:
            thread.join(timeout=timeout)
            logger.info("%s event source stopped.", self.name)
        self.on_stop()

    def is_running(self) -> bool:
        with self._lock:
            return bool(self._thread and self._thread.is_alive())

    def __enter__(self) -> "EventSourceAdapter":
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()

    @property
    def polls(self) -> bool:
        return type(self).poll is not EventSourceAdapter.poll

    def on_start(self) -> None:
        """Hook run once before polling begins."""

    def on_stop(self) -> None:
        """Hook run once after polling ends."""

    def poll(self) -> None:
        raise NotImplementedError

    def _run_loop(self, stop_event: threading.Event) -> None:
        interval = self.poll_interval.total_seconds()
        while not stop_event.is_set():
            try:
                self.poll()
            except Exception:
                logger.exception("%s poll failed; retrying next interval.", self.name)
            stop_event.wait(interval)


class ManualAdapter(EventSourceAdapter):
    """Push-only source for envelopes submitted by API callers."""

    name = "manual"


class ProcessLifecycleAdapter(EventSourceAdapter):
    """Application launch/terminate from the process table.

    An application is keyed by its normalized executable name. It starts when
    the first process with that name appears and ends when the last one exits.
    """

    name = "processes"

    def __init__(
        self,
        probe: Optional[ProcessProbe] = None,
        track_existing: bool = True,
        **kwargs: object,
    ) -> None:
        super().__init__(**kwargs)  # type: ignore[arg-type]
        self._probe = probe or PsutilProcessProbe()
        self.track_existing = track_existing
        self._known: Optional[dict[str, dict[int, float]]] = None

    def on_start(self) -> None:
        self._known = self._snapshot()
        if not self.track_existing:
            return
        for app, pids in self._known.items():
            self._emit(EventKind.START, app, min(pids.values()), "running")
        logger.info("Tracking %d running applications.", len(self._known))

    def on_stop(self) -> None:
        self._known = None

    def poll(self) -> None:
        current = self._snapshot()
        previous = self._known if self._known is not None else {}
        for app in current.keys() - previous.keys():
            self._emit(EventKind.START, app, min(current[app].values()), "launched")
        now = self._clock()
        for app in previous.keys() - current.keys():
            self._emit(EventKind.END, app, now, "terminated")
        self._known = current

    def _snapshot(self) -> dict[str, dict[int, float]]:
        apps: defaultdict[str, dict[int, float]] = defaultdict(dict)
        for proc in self._probe.list_processes():
            apps[normalize_app_name(proc.name)][proc.pid] = proc.create_time
        return dict(apps)

    def _emit(self, kind: EventKind, app: str, timestamp: float, action: str) -> None:
        self.emit(
            EventEnvelope(
                subject_kind=SubjectKind.APPLICATION,
                subject_key=app,
                kind=kind,
                display_name=app,
                timestamp=timestamp or self._clock(),
                action=action,
            )
        )


class ActivationAdapter(EventSourceAdapter):
    """Foreground application changes.

    By default activations are informational instants. With
    ``track_duration`` each activation opens an interval keyed
    ``active:<app>`` that the matching deactivation closes.
    """

    name = "activation"

    def __init__(
        self,
        probe: Optional[ForegroundProbe] = None,
        track_duration: bool = False,
        **kwargs: object,
    ) -> None:
        super().__init__(**kwargs)  # type: ignore[arg-type]
        self._probe: ForegroundProbe = probe or default_foreground_probe()
        self.track_duration = track_duration
        self._active: Optional[str] = None
        self._active_title: Optional[str] = None

    def on_stop(self) -> None:
        if self._active is not None:
            self._transition(None, None)

    def poll(self) -> None:
        process_name, window_title = self._probe.get_active_window()
        app = normalize_app_name(process_name) if process_name else None
        if app == self._active:
            return
        self._transition(app, window_title)

    def _transition(self, app: Optional[str], window_title: Optional[str]) -> None:
        now = self._clock()
        if self._active is not None:
            self._emit(EventKind.END, self._active, self._active_title, now, "deactivated")
        if app is not None:
            self._emit(EventKind.START, app, window_title, now, "activated")
        self._active = app
        self._active_title = window_title

    def _emit(
        self,
        kind: EventKind,
        app: str,
        window_title: Optional[str],
        timestamp: float,
        action: str,
    ) -> None:
        if self.track_duration:
            key = activation_subject_key(app)
        else:
            kind = EventKind.INSTANT
            key = app
        self.emit(
            EventEnvelope(
                subject_kind=SubjectKind.APPLICATION,
                subject_key=key,
                kind=kind,
                display_name=app,
                detail=window_title,
                timestamp=timestamp,
                action=action,
            )
        )


class WindowLifecycleAdapter(EventSourceAdapter):
    """Window open/close detected by diffing the visible window list."""

    name = "windows"

    def __init__(
        self,
        probe: Optional[WindowListProbe] = None,
        keying: WindowKeying = WindowKeying.PER_WINDOW,
        **kwargs: object,
    ) -> None:
        super().__init__(**kwargs)  # type: ignore[arg-type]
        self._probe: WindowListProbe = probe or default_window_list_probe()
        self.keying = keying
        self._known: Optional[set[tuple[str, str]]] = None

    def on_start(self) -> None:
        # Windows open before monitoring began have no reliable open time.
        self._known = self._snapshot()

    def on_stop(self) -> None:
        self._known = None

    def poll(self) -> None:
        current = self._snapshot()
        previous = self._known if self._known is not None else set()
        now = self._clock()
        for app, title in sorted(current - previous):
            self._emit(EventKind.START, app, title, now, "window opened")
        for app, title in sorted(previous - current):
            self._emit(EventKind.END, app, title, now, "window closed")
        self._known = current

    def _snapshot(self) -> set[tuple[str, str]]:
        return {
            (normalize_app_name(window.app_name), normalize_window_title(window.window_title))
            for window in self._probe.list_windows()
        }

    def _emit(self, kind: EventKind, app: str, title: str, timestamp: float, action: str) -> None:
        self.emit(
            EventEnvelope(
                subject_kind=SubjectKind.WINDOW,
                subject_key=window_subject_key(app, title, self.keying),
                kind=kind,
                display_name=app,
                detail=title,
                timestamp=timestamp,
                action=action,
            )
        )


class ScreenLockAdapter(EventSourceAdapter):
    """Screen lock and unlock as instant events."""

    name = "screen"

    def __init__(self, probe: Optional[ScreenLockProbe] = None, **kwargs: object) -> None:
        super().__init__(**kwargs)  # type: ignore[arg-type]
        self._probe: ScreenLockProbe = probe or default_screen_lock_probe()
        self._locked: Optional[bool] = None

    def on_start(self) -> None:
        self._locked = self._probe.is_locked()

    def poll(self) -> None:
        locked = self._probe.is_locked()
        if locked is None:
            return
        self.notify(locked)

    def notify(self, locked: bool, timestamp: Optional[float] = None) -> bool:
        """Record a lock state change; repeated states are ignored."""
        if locked == self._locked:
            return False
        self._locked = locked
        return self.emit(
            EventEnvelope(
                subject_kind=SubjectKind.SCREEN,
                subject_key=SCREEN_SUBJECT_KEY,
                kind=EventKind.INSTANT,
                display_name="Screen",
                timestamp=timestamp if timestamp is not None else self._clock(),
                action="locked" if locked else "unlocked",
            )
        )
