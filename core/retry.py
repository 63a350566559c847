"""
Retry-with-backoff resource acquisition shared by both agents.

Camera, channel and model acquisition all follow the same pattern:
keep calling a constructor until it hands back a usable resource,
sleeping a fixed interval between attempts.
"""
import random
import time
from dataclasses import dataclass
from threading import Event
from typing import Callable, Optional, Tuple, Type, TypeVar

from utils.failures import AcquisitionError, ConfigError
from utils.logger import Logger

R = TypeVar("R")


@dataclass(frozen=True)
class RetryPolicy:
    """
    Fixed-interval retry policy.

    Attributes:
        interval: Seconds to wait after each failed attempt.
        max_attempts: Give up after this many attempts (None retries forever).
        jitter: Upper bound of a random extra delay added to each wait.
    """
    interval: float
    max_attempts: Optional[int] = None
    jitter: float = 0.0

    def __post_init__(self):
        if self.interval <= 0:
            raise ConfigError(f"Retry interval must be positive, got {self.interval}")
        if self.jitter < 0:
            raise ConfigError(f"Retry jitter must not be negative, got {self.jitter}")
        if self.max_attempts is not None and self.max_attempts < 1:
            raise ConfigError(f"max_attempts must be at least 1, got {self.max_attempts}")

    def delay(self) -> float:
        """Seconds to wait before the next attempt."""
        if self.jitter:
            return self.interval + random.uniform(0.0, self.jitter)
        return self.interval


def acquire_with_retry(
    acquire: Callable[[], R],
    policy: RetryPolicy,
    name: str = "resource",
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    stop_event: Optional[Event] = None,
    sleep: Optional[Callable[[float], None]] = None,
) -> R:
    """
    Call ``acquire`` until it returns a resource.

    Args:
        acquire: Zero-argument constructor for the resource.
        policy: Interval / attempt limit / jitter to apply.
        name: Human-readable resource name for log lines.
        retry_on: Exception types that count as a failed attempt. Anything
                  else propagates immediately.
        stop_event: When set, waiting is interrupted and acquisition aborted.
        sleep: Replacement for the wait between attempts.

    Returns:
        Whatever ``acquire`` returned on its first successful call.

    Raises:
        AcquisitionError: ``max_attempts`` was exhausted or ``stop_event`` was set.
    """
    logger = Logger("Retry")
    attempt = 0

    while True:
        if stop_event is not None and stop_event.is_set():
            raise AcquisitionError(f"Acquisition of {name} aborted (shutting down)")

        attempt += 1
        try:
            resource = acquire()
        except retry_on as e:
            if policy.max_attempts is not None and attempt >= policy.max_attempts:
                raise AcquisitionError(
                    f"Failed to acquire {name} after {attempt} attempt(s): {e}",
                    critical=True,
                ) from e

            delay = policy.delay()
            logger.warning(
                f"Failed to acquire {name} (attempt {attempt}): {e}. "
                f"Retrying in {delay:.1f}s..."
            )
            if sleep is not None:
                sleep(delay)
            elif stop_event is not None:
                stop_event.wait(delay)
            else:
                time.sleep(delay)
            continue

        if attempt > 1:
            logger.info(f"Acquired {name} after {attempt} attempts")
        else:
            logger.debug(f"Acquired {name}")
        return resource
