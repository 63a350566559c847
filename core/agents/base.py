"""
Shared lifecycle for the two long-running agents.

An agent acquires its resources (setup), then runs service_tick() until its
stop event is set. Acquisition is retried inside setup; per-frame errors are
handled inside service_tick and never end the loop.
"""
import time
from enum import Enum
from threading import Event
from typing import Callable, Optional

from core.bus import EventBus
from core.events import AgentStats, ShutdownRequested
from utils.failures import AcquisitionError, FailureManager
from utils.logger import Logger


class TickOutcome(Enum):
    """What a single service_tick() did with its unit of work."""
    SENT = "sent"
    DROPPED = "dropped"
    EMPTY = "empty"
    ENCODE_ERROR = "encode_error"
    CAMERA_REACQUIRED = "camera_reacquired"
    PROCESSED = "processed"
    RECEIVE_ERROR = "receive_error"
    DECODE_ERROR = "decode_error"
    INFERENCE_ERROR = "inference_error"
    STALE = "stale"
    STOPPED = "stopped"


class ServiceAgent:
    """Base class for CaptureAgent and InferenceAgent."""

    name = "Agent"

    def __init__(
        self,
        bus: Optional[EventBus] = None,
        failures: Optional[FailureManager] = None,
        stop_event: Optional[Event] = None,
        sleep: Optional[Callable[[float], None]] = None,
        stats_interval: float = 0.0,
    ):
        """
        Args:
            bus: Event bus for results and shutdown requests.
            failures: Failure tracker for steady-state errors.
            stop_event: Set to end the service loop.
            sleep: Replacement for every wait the agent performs (tick pacing,
                   error backoff, acquisition retry). Defaults to an
                   interruptible wait on stop_event.
            stats_interval: Seconds between statistics log lines (0 disables).
        """
        self.bus = bus or EventBus()
        self.failures = failures or FailureManager()
        self.stop_event = stop_event or Event()
        self._sleep = sleep or self.stop_event.wait
        self.stats_interval = stats_interval
        self.stats = AgentStats()
        self.logger = Logger(self.name)
        self._last_stats = time.monotonic()

        self.bus.subscribe(ShutdownRequested, self._on_shutdown_requested)

    # ── Lifecycle ───────────────────────────────────────────────────

    def setup(self) -> None:
        """Acquire every resource the loop needs."""
        raise NotImplementedError

    def service_tick(self) -> TickOutcome:
        """Process one unit of work."""
        raise NotImplementedError

    def close(self) -> None:
        """Release every held resource."""
        raise NotImplementedError

    def run(self) -> None:
        """
        Acquire resources, then serve until stop() is called.

        Raises:
            AcquisitionError: A bounded retry policy gave up while not stopping.
        """
        self.logger.info(f"{self.name} starting")
        try:
            self.setup()
            while not self.stop_event.is_set():
                self.service_tick()
                self._maybe_log_stats()
        except AcquisitionError as e:
            if not self.stop_event.is_set():
                raise
            self.logger.info(f"Acquisition interrupted: {e.message}")
        finally:
            self.close()
            self.logger.info(f"{self.name} stopped ({self.stats.summary()})")
            for error in self.failures.get_recent_history(1):
                self.logger.info(f"Last failure: {type(error).__name__}: {error.message}")

    def stop(self) -> None:
        """Ask the service loop to finish after the current tick."""
        if not self.stop_event.is_set():
            self.logger.info(f"Stopping {self.name}...")
            self.stop_event.set()

    def _on_shutdown_requested(self, event: ShutdownRequested) -> None:
        self.logger.info(f"Shutdown requested ({event.reason})")
        self.stop()

    # ── Statistics ──────────────────────────────────────────────────

    def _maybe_log_stats(self) -> None:
        if self.stats_interval <= 0:
            return
        now = time.monotonic()
        if now - self._last_stats >= self.stats_interval:
            self._last_stats = now
            self.log_stats()

    def log_stats(self) -> None:
        """Log the counters plus any error type currently over its threshold."""
        self.logger.info(f"Stats: {self.stats.summary()}")
        noisy = [t for t in list(self.failures.failures) if self.failures.is_threshold_exceeded(t)]
        if noisy:
            self.logger.warning(f"Frequent failures: {', '.join(sorted(noisy))}")
