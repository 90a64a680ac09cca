"""
Notification Deduplication.

TTL-backed record of events that have already been notified, keyed by
(scope, event id). The check and the mark happen under one lock so two
concurrent submissions of the same killmail cannot both pass.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable

from ...core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TTL_SECONDS = 1800.0  # 30 minutes for kill notifications


class DeduplicationStore:
    """
    In-memory TTL set of notified events.

    Entries expire after ttl_seconds; expired entries are treated as
    absent. check_and_mark sweeps the whole set at most once per
    sweep_interval, so memory stays bounded by the kills seen within
    roughly one TTL.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        sweep_interval: float | None = None,
    ):
        """
        Initialize the store.

        Args:
            ttl_seconds: How long a marked event suppresses repeats
            clock: Monotonic clock (injected in tests)
            sweep_interval: Seconds between full expiry sweeps (defaults to the TTL)
        """
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self.sweep_interval = ttl_seconds if sweep_interval is None else sweep_interval
        self._seen: dict[tuple[str, int], float] = {}
        self._lock = asyncio.Lock()
        self._last_sweep = clock()

    def _live(self, key: tuple[str, int], now: float) -> bool:
        marked_at = self._seen.get(key)
        if marked_at is None:
            return False
        if now - marked_at >= self.ttl_seconds:
            del self._seen[key]
            return False
        return True

    async def check_and_mark(self, scope: str, event_id: int) -> bool:
        """
        Atomically test whether an event is new and record it.

        Args:
            scope: Event category (e.g. "kill")
            event_id: Event identifier within the scope

        Returns:
            True if the event had not been seen within the TTL (now marked),
            False if it is a duplicate
        """
        key = (scope, event_id)
        async with self._lock:
            now = self._clock()
            if now - self._last_sweep >= self.sweep_interval:
                self._sweep(now)
            if self._live(key, now):
                return False
            self._seen[key] = now
            return True

    async def is_duplicate(self, scope: str, event_id: int) -> bool:
        """Check without marking."""
        async with self._lock:
            return self._live((scope, event_id), self._clock())

    async def mark(self, scope: str, event_id: int) -> None:
        async with self._lock:
            self._seen[(scope, event_id)] = self._clock()

    async def purge_expired(self) -> int:
        """
        Remove expired entries.

        Returns:
            Number of entries removed
        """
        async with self._lock:
            return self._sweep(self._clock())

    def _sweep(self, now: float) -> int:
        expired = [k for k, t in self._seen.items() if now - t >= self.ttl_seconds]
        for key in expired:
            del self._seen[key]
        self._last_sweep = now
        if expired:
            logger.debug("Purged %d expired dedup entries", len(expired))
        return len(expired)

    def __len__(self) -> int:
        return len(self._seen)
