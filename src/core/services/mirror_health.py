"""Circuit-breaker style health tracking for the external mirror."""

import threading
from collections.abc import Callable

from aws_lambda_powertools import Logger

from core.utils.time import monotonic

logger = Logger(UTC=True)


class MirrorHealth:
    """Marks the mirror degraded after consecutive failures.

    While degraded, retrieval skips the mirror and new uploads are not
    mirrored. The mark expires after ``cooldown_seconds``; any success
    resets the failure count.
    """

    def __init__(
        self,
        *,
        failure_threshold: int,
        cooldown_seconds: float,
        clock: Callable[[], float] = monotonic,
    ) -> None:
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")

        self._threshold = failure_threshold
        self._cooldown = cooldown_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._consecutive_failures = 0
        self._degraded_until: float | None = None

    @property
    def consecutive_failures(self) -> int:
        with self._lock:
            return self._consecutive_failures

    @property
    def is_degraded(self) -> bool:
        with self._lock:
            if self._degraded_until is None:
                return False
            if self._clock() >= self._degraded_until:
                # Cooldown over: allow one probe, re-trip on the next failure
                self._degraded_until = None
                self._consecutive_failures = self._threshold - 1
                return False
            return True

    def record_success(self) -> None:
        with self._lock:
            if self._degraded_until is not None or self._consecutive_failures:
                logger.info("Mirror recovered")
            self._consecutive_failures = 0
            self._degraded_until = None

    def record_failure(self) -> None:
        with self._lock:
            self._consecutive_failures += 1
            if (
                self._degraded_until is None
                and self._consecutive_failures >= self._threshold
            ):
                self._degraded_until = self._clock() + self._cooldown
                logger.warning(
                    "Mirror marked degraded",
                    extra={
                        "consecutive_failures": self._consecutive_failures,
                        "cooldown_seconds": self._cooldown,
                    },
                )
