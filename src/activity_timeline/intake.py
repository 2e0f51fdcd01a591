"""Multi-producer, single-consumer channel feeding the correlator."""

from __future__ import annotations

import logging
import queue
import threading
from typing import Optional

from .models import EventEnvelope

logger = logging.getLogger(__name__)

_CLOSED = object()


class IntakeChannel:
    """FIFO conduit between event sources and the correlator.

    Any number of threads may ``put``; exactly one consumer calls ``get``.
    Ordering is preserved per producer; across producers it is arrival order.
    """

    def __init__(self) -> None:
        self._queue: queue.Queue[object] = queue.Queue()
        self._lock = threading.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._closed

    def put(self, envelope: EventEnvelope) -> bool:
        with self._lock:
            if self._closed:
                logger.warning(
                    "Intake closed; dropping %s event for %s",
                    envelope.kind.value,
                    envelope.subject_key,
                )
                return False
            self._queue.put(envelope)
        return True

    def get(self, timeout: Optional[float] = None) -> Optional[EventEnvelope]:
        """Return the next envelope, or ``None`` once the channel is closed and drained.

        Raises ``queue.Empty`` when ``timeout`` elapses with nothing queued.
        """
        item = self._queue.get(timeout=timeout)
        if item is _CLOSED:
            self._queue.task_done()
            return None
        return item  # type: ignore[return-value]

    def task_done(self) -> None:
        self._queue.task_done()

    def join(self) -> None:
        self._queue.join()

    def qsize(self) -> int:
        return self._queue.qsize()

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._queue.put(_CLOSED)
