"""Periodic and on-demand scheduling of sync passes."""

import logging
import threading
from enum import Enum
from typing import Optional, Union

from ..exceptions import QuoteSyncBusyError
from ..utils import now_ms
from .engine import SyncEngine
from .observers import Observer
from .policy import ConflictPolicy
from .result import SyncPassResult

logger = logging.getLogger(__name__)


class SchedulerState(str, Enum):
    """Whether a sync pass is in flight."""

    IDLE = "idle"
    RUNNING = "running"


class SyncScheduler:
    """Drives sync passes on a timer and on demand.

    At most one pass runs at a time. A pass requested while another is in
    flight is rejected with QuoteSyncBusyError rather than queued. Stopping
    the timer never interrupts a pass that has already started.
    """

    def __init__(
        self,
        engine: SyncEngine,
        policy: Union[ConflictPolicy, str] = ConflictPolicy.AUTO_REMOTE_WINS,
    ):
        """Initialize sync scheduler.

        Args:
            engine: Engine that executes the passes
            policy: Conflict policy for timer-triggered passes
        """
        self.engine = engine
        self.policy = ConflictPolicy.from_string(policy)
        self.interval: Optional[float] = None
        self.pass_count = 0
        self.busy_count = 0
        self._state = SchedulerState.IDLE
        self._lock = threading.Lock()
        self._timer_thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

    @property
    def state(self) -> SchedulerState:
        with self._lock:
            return self._state

    @property
    def is_started(self) -> bool:
        """Whether the recurring timer is active."""
        with self._lock:
            return self._timer_thread is not None

    def add_observer(self, observer: Observer) -> None:
        """Register a callback receiving ``(outcome, queue_state)``."""
        self.engine.observers.add(observer)

    def remove_observer(self, observer: Observer) -> None:
        self.engine.observers.remove(observer)

    def trigger_now(
        self, policy: Union[ConflictPolicy, str, None] = None
    ) -> SyncPassResult:
        """Run a sync pass immediately on the calling thread.

        Args:
            policy: Conflict policy (defaults to the scheduler's policy)

        Returns:
            Result of the pass

        Raises:
            QuoteSyncBusyError: If another pass is in flight
        """
        with self._lock:
            if self._state == SchedulerState.RUNNING:
                self.busy_count += 1
                raise QuoteSyncBusyError()
            self._state = SchedulerState.RUNNING

        try:
            return self._execute(policy or self.policy)
        finally:
            with self._lock:
                self._state = SchedulerState.IDLE

    def _execute(self, policy: Union[ConflictPolicy, str]) -> SyncPassResult:
        policy = ConflictPolicy.from_string(policy)
        try:
            result = self.engine.sync_once(policy)
        except Exception as e:
            logger.exception("Sync pass failed unexpectedly")
            result = SyncPassResult(
                policy=policy, started_at=now_ms(), error=f"Unexpected error: {e}"
            )
            self.engine.observers.notify(result, self.engine.queue.state())
        self.pass_count += 1
        return result

    def start(self, interval: float, run_immediately: bool = False) -> bool:
        """Start the recurring timer.

        Args:
            interval: Seconds between passes
            run_immediately: If True, the first pass runs right away

        Returns:
            True if the timer was started, False if it was already running

        Raises:
            ValueError: If the interval is not positive
        """
        if interval <= 0:
            raise ValueError(f"Interval must be positive, got {interval}")

        with self._lock:
            if self._timer_thread is not None:
                logger.debug("Scheduler already started")
                return False
            self.interval = interval
            self._stop_event = threading.Event()
            thread = threading.Thread(
                target=self._run_timer,
                args=(self._stop_event, interval, run_immediately),
                name="quotesync-scheduler",
                daemon=True,
            )
            self._timer_thread = thread

        thread.start()
        logger.debug(f"Scheduler started with interval {interval}s")
        return True

    def stop(self, wait: bool = False, timeout: Optional[float] = None) -> bool:
        """Stop the recurring timer.

        A pass already in flight runs to completion.

        Args:
            wait: If True, block until the timer thread has exited
            timeout: Maximum seconds to wait

        Returns:
            True if the timer was running, False otherwise
        """
        with self._lock:
            thread, self._timer_thread = self._timer_thread, None
            if thread is None:
                return False
            self._stop_event.set()

        if wait and thread is not threading.current_thread():
            thread.join(timeout)
        logger.debug("Scheduler stopped")
        return True

    def _run_timer(
        self, stop_event: threading.Event, interval: float, run_immediately: bool
    ) -> None:
        if run_immediately:
            self._tick()
        while not stop_event.wait(interval):
            self._tick()

    def _tick(self) -> None:
        try:
            self.trigger_now(self.policy)
        except QuoteSyncBusyError:
            logger.debug("Sync pass still running, skipping scheduled pass")
