"""
Kill Notifier Circuit Breaker

Stops hammering an upstream that keeps failing:

    CLOSED     requests pass; consecutive failures are counted
    OPEN       requests are refused until recovery_timeout has elapsed
    HALF_OPEN  one trial request; success closes, failure reopens

force_open() holds the circuit open for a fixed time regardless of the
failure count (used when ESI reports its error limit is nearly spent).
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .logging import get_logger

logger = get_logger(__name__)

class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreaker:
    """
    Per-host circuit breaker.

    Usage:
        breaker = CircuitBreaker(name="esi")
        if not breaker.allow():
            raise CircuitOpenError(...)
        try:
            response = await client.get(url)
        except httpx.RequestError:
            breaker.record_failure()
            raise
        breaker.record_success()
    """

    name: str = "upstream"
    failure_threshold: int = 5
    recovery_timeout: float = 30.0
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)

    state: CircuitState = CircuitState.CLOSED
    failure_count: int = 0
    opened_at: float = 0.0
    times_opened: int = 0
    rejected: int = 0
    _open_until: float = 0.0
    _trial_in_flight: bool = False

    def allow(self) -> bool:
        """Whether a request may go out now."""
        now = self.clock()
        if self.state == CircuitState.CLOSED:
            return True

        if self.state == CircuitState.OPEN:
            if now < self._reopen_at():
                self.rejected += 1
                return False
            self.state = CircuitState.HALF_OPEN
            self._trial_in_flight = True
            logger.info("Circuit %s half-open, sending trial request", self.name)
            return True

        # HALF_OPEN: a single trial at a time
        if self._trial_in_flight:
            self.rejected += 1
            return False
        self._trial_in_flight = True
        return True

    def record_success(self) -> None:
        self.failure_count = 0
        self._trial_in_flight = False
        if self.state == CircuitState.OPEN and self.clock() < self._open_until:
            # Held open by force_open
            return
        if self.state != CircuitState.CLOSED:
            logger.info("Circuit %s closed", self.name)
        self.state = CircuitState.CLOSED
        self._open_until = 0.0

    def record_failure(self) -> None:
        self.failure_count += 1
        if self.state == CircuitState.HALF_OPEN:
            self._open("trial request failed")
        elif self.state == CircuitState.CLOSED and self.failure_count >= self.failure_threshold:
            self._open(f"{self.failure_count} consecutive failures")

    def force_open(self, seconds: float, reason: str) -> None:
        """Refuse requests for `seconds`, then allow a trial as usual."""
        self._open(reason)
        self._open_until = self.clock() + seconds

    def _open(self, reason: str) -> None:
        if self.state != CircuitState.OPEN:
            self.times_opened += 1
            logger.warning("Circuit %s opened: %s", self.name, reason)
        self.state = CircuitState.OPEN
        self.opened_at = self.clock()
        self._open_until = 0.0
        self._trial_in_flight = False

    def _reopen_at(self) -> float:
        if self._open_until:
            return self._open_until
        return self.opened_at + self.recovery_timeout

    @property
    def retry_in(self) -> float:
        """Seconds until the next trial request is allowed (0 when not open)."""
        if self.state != CircuitState.OPEN:
            return 0.0
        return max(0.0, self._reopen_at() - self.clock())

    def get_status(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "failure_count": self.failure_count,
            "times_opened": self.times_opened,
            "rejected": self.rejected,
            "retry_in": round(self.retry_in, 1),
        }
