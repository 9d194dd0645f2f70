"""Fire-and-forget delivery of sync outcomes to observers."""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

Observer = Callable[[Any, Any], None]
"""Callback receiving ``(outcome, queue_state)``"""


class ObserverHub:
    """Delivers pass results and resolution outcomes to registered observers.

    Callbacks run on a single background worker in notification order, so a
    slow or failing observer never blocks the sync pass that produced the
    outcome.
    """

    def __init__(self) -> None:
        self._observers: list[Observer] = []
        self._lock = threading.Lock()
        self._executor: Optional[ThreadPoolExecutor] = None

    def add(self, observer: Observer) -> None:
        """Register an observer callback."""
        with self._lock:
            if observer not in self._observers:
                self._observers.append(observer)

    def remove(self, observer: Observer) -> None:
        """Unregister an observer callback (no-op if not registered)."""
        with self._lock:
            if observer in self._observers:
                self._observers.remove(observer)

    def _get_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=1, thread_name_prefix="quotesync-observer"
            )
        return self._executor

    def notify(self, outcome: Any, queue_state: Any) -> None:
        """Queue delivery of an outcome to every observer and return at once."""
        with self._lock:
            observers = list(self._observers)
            if not observers:
                return
            executor = self._get_executor()
            for observer in observers:
                executor.submit(self._deliver, observer, outcome, queue_state)

    @staticmethod
    def _deliver(observer: Observer, outcome: Any, queue_state: Any) -> None:
        try:
            observer(outcome, queue_state)
        except Exception:
            logger.exception("Sync observer %r failed", observer)

    def flush(self, timeout: Optional[float] = None) -> None:
        """Wait until every notification queued so far has been delivered."""
        with self._lock:
            if self._executor is None:
                return
            marker = self._executor.submit(lambda: None)
        marker.result(timeout=timeout)

    def close(self) -> None:
        """Deliver pending notifications and stop the worker."""
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=True)
