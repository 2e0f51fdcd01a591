"""Most-recent-first activity log with change notification."""

from __future__ import annotations

import logging
import queue
import threading
from collections import deque
from typing import Callable, Optional

from .models import ActivityRecord

logger = logging.getLogger(__name__)

Observer = Callable[[ActivityRecord], None]

_STOP = object()


class ActivityLog:
    """Append-ordered record sequence exposed through snapshots and observers.

    Observers are invoked on a dedicated notifier thread, never on the thread
    that appended, so a slow or failing observer cannot stall correlation.
    """

    def __init__(self, max_records: Optional[int] = None) -> None:
        self._records: deque[ActivityRecord] = deque(maxlen=max_records)
        self._lock = threading.Lock()
        self._observers: list[Observer] = []
        self._notifications: queue.Queue[object] = queue.Queue()
        self._notifier: Optional[threading.Thread] = None
        self._closed = False

    @property
    def max_records(self) -> Optional[int]:
        return self._records.maxlen

    def append(self, record: ActivityRecord) -> None:
        with self._lock:
            self._records.appendleft(record)
            if not self._observers or self._closed:
                return
            self._ensure_notifier_locked()
            self._notifications.put(record)

    def snapshot(self) -> tuple[ActivityRecord, ...]:
        with self._lock:
            return tuple(self._records)

    def latest(self) -> Optional[ActivityRecord]:
        with self._lock:
            return self._records[0] if self._records else None

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def subscribe(self, observer: Observer) -> Observer:
        with self._lock:
            self._observers.append(observer)
        return observer

    def unsubscribe(self, observer: Observer) -> bool:
        with self._lock:
            try:
                self._observers.remove(observer)
            except ValueError:
                return False
        return True

    def wait_for_notifications(self) -> None:
        """Block until every queued notification has been delivered."""
        self._notifications.join()

    def close(self, timeout: Optional[float] = 5.0) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            notifier = self._notifier
            if notifier is not None:
                self._notifications.put(_STOP)
        if notifier is not None:
            notifier.join(timeout=timeout)

    def _ensure_notifier_locked(self) -> None:
        if self._notifier is not None and self._notifier.is_alive():
            return
        self._notifier = threading.Thread(
            target=self._dispatch_loop, name="activity-log-notifier", daemon=True
        )
        self._notifier.start()

    def _dispatch_loop(self) -> None:
        while True:
            item = self._notifications.get()
            try:
                if item is _STOP:
                    return
                with self._lock:
                    observers = list(self._observers)
                for observer in observers:
                    try:
                        observer(item)  # type: ignore[arg-type]
                    except Exception:
                        logger.exception("Activity log observer %r failed.", observer)
            finally:
                self._notifications.task_done()
