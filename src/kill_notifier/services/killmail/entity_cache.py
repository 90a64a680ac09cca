"""
Entity Name Cache.

In-process TTL cache of resolved display names, keyed by (kind, id).
Systems and ship types rarely change and are kept for 30 days;
characters for 7 days; corporations and alliances for a day.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from ...core.logging import get_logger
from .models import EntityKind

logger = get_logger(__name__)

DAY = 86400.0

DEFAULT_TTLS: dict[EntityKind, float] = {
    EntityKind.SYSTEM: 30 * DAY,
    EntityKind.SHIP_TYPE: 30 * DAY,
    EntityKind.CHARACTER: 7 * DAY,
    EntityKind.CORPORATION: DAY,
    EntityKind.ALLIANCE: DAY,
}


@dataclass(frozen=True)
class CacheEntry:
    name: str
    resolved_at: float


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    expired: int = 0
    writes: int = 0


class EntityCache:
    """
    TTL cache for resolved entity names.

    Only real names are stored; unresolved sentinels never enter the
    cache. Expired entries read as misses and are evicted on access;
    put() also sweeps every expired entry at most once per sweep_interval.
    """

    def __init__(
        self,
        ttls: dict[EntityKind, float] | None = None,
        clock: Callable[[], float] = time.monotonic,
        sweep_interval: float | None = None,
    ):
        """
        Initialize the cache.

        Args:
            ttls: Per-kind TTL in seconds, merged over the defaults
            clock: Monotonic clock (injected in tests)
            sweep_interval: Seconds between full expiry sweeps (defaults to the shortest TTL)
        """
        self._ttls = {**DEFAULT_TTLS, **(ttls or {})}
        self._clock = clock
        self.sweep_interval = (
            min(self._ttls.values()) if sweep_interval is None else sweep_interval
        )
        self._last_sweep = clock()
        self._entries: dict[tuple[EntityKind, int], CacheEntry] = {}
        self.stats = CacheStats()

    @classmethod
    def from_settings(cls, settings: Any, clock: Callable[[], float] = time.monotonic) -> EntityCache:
        return cls(
            ttls={
                EntityKind.SYSTEM: settings.system_name_ttl_seconds,
                EntityKind.SHIP_TYPE: settings.ship_type_name_ttl_seconds,
                EntityKind.CHARACTER: settings.character_name_ttl_seconds,
                EntityKind.CORPORATION: settings.corporation_name_ttl_seconds,
                EntityKind.ALLIANCE: settings.alliance_name_ttl_seconds,
            },
            clock=clock,
        )

    def ttl_for(self, kind: EntityKind) -> float:
        return self._ttls[kind]

    def get(self, kind: EntityKind, entity_id: int) -> str | None:
        """
        Look up a cached name.

        Args:
            kind: Entity kind
            entity_id: Entity id

        Returns:
            Cached name, or None on miss or expiry
        """
        key = (kind, entity_id)
        entry = self._entries.get(key)
        if entry is None:
            self.stats.misses += 1
            return None

        if self._clock() - entry.resolved_at >= self._ttls[kind]:
            del self._entries[key]
            self.stats.expired += 1
            self.stats.misses += 1
            return None

        self.stats.hits += 1
        return entry.name

    def put(self, kind: EntityKind, entity_id: int, name: str) -> None:
        """Store a resolved name. Repeated writes keep the latest value."""
        now = self._clock()
        if now - self._last_sweep >= self.sweep_interval:
            self.purge_expired()
        self._entries[(kind, entity_id)] = CacheEntry(name=name, resolved_at=now)
        self.stats.writes += 1

    def purge_expired(self) -> int:
        """
        Drop all expired entries.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        expired = [
            key
            for key, entry in self._entries.items()
            if now - entry.resolved_at >= self._ttls[key[0]]
        ]
        for key in expired:
            del self._entries[key]
        self._last_sweep = now
        self.stats.expired += len(expired)
        if expired:
            logger.debug("Purged %d expired name cache entries", len(expired))
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def get_stats(self) -> dict[str, Any]:
        total = self.stats.hits + self.stats.misses
        return {
            "size": len(self._entries),
            "hits": self.stats.hits,
            "misses": self.stats.misses,
            "expired": self.stats.expired,
            "hit_rate": round(self.stats.hits / total, 3) if total else 0.0,
        }
