"""
Structured error handling and failure tracking for the FrameLink node.

Acquisition errors (camera, channel, model) are retried by core.retry;
steady-state errors are recorded here and the current frame is discarded.
"""
import threading
import time
from typing import Dict, List, Optional

from utils.logger import Logger


class FrameLinkError(Exception):
    """Base class for all FrameLink exceptions."""
    def __init__(self, message: str, critical: bool = False):
        super().__init__(message)
        self.message = message
        self.critical = critical
        self.timestamp = time.time()


class ConfigError(FrameLinkError):
    """Exception raised for configuration-related failures."""
    def __init__(self, message: str, critical: bool = True):
        super().__init__(message, critical=critical)


class AcquisitionError(FrameLinkError):
    """Raised when a resource could not be acquired within its retry policy."""
    pass


class CameraError(FrameLinkError):
    """Exception raised when the capture device cannot be opened or read."""
    pass


class ChannelError(FrameLinkError):
    """Exception raised for transport failures (bind, connect, send, receive)."""
    pass


class ChannelBusyError(ChannelError):
    """The transport would block: the consumer is not keeping up."""
    pass


class ModelLoadError(FrameLinkError):
    """Exception raised when the model artifact cannot be loaded."""
    pass


class FrameEncodeError(FrameLinkError):
    """Exception raised when a captured frame cannot be compressed."""
    pass


class FrameDecodeError(FrameLinkError):
    """Exception raised when received bytes cannot become an input tensor."""
    pass


class InferenceError(FrameLinkError):
    """Exception raised when the inference runtime fails on a frame."""
    pass


class FailureManager:
    """Tracks and manages recurring failures to improve system resilience."""

    def __init__(self, settings: Optional[dict] = None):
        """
        Initialize the failure manager.

        Args:
            settings: Dictionary containing failure thresholds (from failures.json)
        """
        self.logger = Logger("FailureManager")

        self.settings = settings or {}
        self.threshold = self.settings.get('threshold', 5)
        self.window_seconds = self.settings.get('window_seconds', 300)

        self.failures: Dict[str, List[float]] = {}
        self.history: List[FrameLinkError] = []
        self._max_history = 100  # Cap to prevent unbounded memory growth
        self._alerted: Dict[str, float] = {}
        self._lock = threading.Lock()

    def record_failure(self, error: Exception):
        """
        Record a failure incident (thread-safe).

        Args:
            error: The exception that occurred.
        """
        with self._lock:
            error_type = type(error).__name__
            now = time.time()

            self.failures.setdefault(error_type, []).append(now)

            # Prune old entries beyond the time window
            cutoff = now - self.window_seconds
            self.failures[error_type] = [
                t for t in self.failures[error_type] if t > cutoff
            ]

            if isinstance(error, FrameLinkError):
                self.history.append(error)
                msg = f"Failure detected: {error_type} - {error.message}"
                if error.critical:
                    self.logger.error(f"CRITICAL: {msg}")
                else:
                    self.logger.warning(msg)
            else:
                self.logger.error(f"Unexpected failure: {error_type} - {str(error)}")

            if len(self.history) > self._max_history:
                self.history = self.history[-self._max_history:]

            # Alert once per window per error type
            if len(self.failures[error_type]) >= self.threshold:
                last_alert = self._alerted.get(error_type, 0.0)
                if now - last_alert > self.window_seconds:
                    self._alerted[error_type] = now
                    self.logger.warning(
                        f"Resilience Alert: '{error_type}' exceeded threshold "
                        f"({self.threshold} in {self.window_seconds}s)"
                    )

    def is_threshold_exceeded(self, error_type: str) -> bool:
        """Check if a specific error type has exceeded the frequency threshold."""
        with self._lock:
            if error_type not in self.failures:
                return False

            now = time.time()
            self.failures[error_type] = [
                t for t in self.failures[error_type] if (now - t) < self.window_seconds
            ]
            return len(self.failures[error_type]) >= self.threshold

    def count(self, error_type: str) -> int:
        """Number of failures of a type inside the current window."""
        with self._lock:
            return len(self.failures.get(error_type, []))

    def get_recent_history(self, count: int = 10) -> List[FrameLinkError]:
        """Return the most recent failures."""
        return self.history[-count:]
