"""
Killmail Enrichment.

Fills every name slot on a canonical killmail:
1. Cache lookup per (kind, id)
2. Resolver call with exponential backoff on miss
3. Unresolved sentinel once retries are exhausted
4. A second, independent retry cycle for a still-unresolved system name
5. Consistency pass copying the system name onto every participant

Enrichment never raises for lookup failures and never overwrites a
name that was already resolved, so enriching twice is a no-op.
"""

from __future__ import annotations

import asyncio
import copy
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from ...core.logging import get_logger
from ...core.retry import resolution_retrying
from .entity_cache import EntityCache
from .models import (
    PARTICIPANT_FIELDS,
    EntityKind,
    Killmail,
    ResolvedName,
    is_resolved,
)
from .name_resolver import NameResolver

logger = get_logger(__name__)


@dataclass
class EnrichmentConfig:
    """Retry and timeout knobs for name resolution."""

    max_attempts: int = 3
    base_delay: float = 0.1
    system_reverify_attempts: int = 5
    resolve_timeout: float = 10.0

    @classmethod
    def from_settings(cls, settings: Any) -> EnrichmentConfig:
        return cls(
            max_attempts=settings.resolution_max_attempts,
            base_delay=settings.resolution_base_delay,
            system_reverify_attempts=settings.system_reverify_attempts,
            resolve_timeout=settings.esi_timeout_seconds,
        )


@dataclass
class EnrichmentQuality:
    """How many name slots ended up resolved for one killmail."""

    total: int = 0
    resolved: int = 0
    from_cache: int = 0
    fetched: int = 0
    failed: int = 0

    @property
    def ratio(self) -> float:
        if self.total == 0:
            return 1.0
        return self.resolved / self.total

    @property
    def degraded(self) -> bool:
        return self.resolved < self.total

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "resolved": self.resolved,
            "from_cache": self.from_cache,
            "fetched": self.fetched,
            "failed": self.failed,
            "ratio": round(self.ratio, 3),
        }


def enrichment_quality(killmail: Killmail) -> EnrichmentQuality:
    """
    Score a killmail by its name slots.

    Counts every slot that references an id (plus the system), and how
    many of them hold resolved names.
    """
    quality = EnrichmentQuality()
    if killmail.solar_system_id is not None:
        quality.total += 1
        if is_resolved(killmail.system_name):
            quality.resolved += 1
    for participant in killmail.participants:
        for kind in PARTICIPANT_FIELDS:
            if participant.id_for(kind) is None:
                continue
            quality.total += 1
            if is_resolved(participant.name_for(kind)):
                quality.resolved += 1
    quality.failed = quality.total - quality.resolved
    return quality


@dataclass
class EnricherMetrics:
    killmails_enriched: int = 0
    cache_hits: int = 0
    resolver_calls: int = 0
    resolutions_failed: int = 0
    system_reverifications: int = 0
    degraded_killmails: int = 0


@dataclass
class _CallState:
    """Per-call memo and counters."""

    memo: dict[tuple[EntityKind, int], ResolvedName] = field(default_factory=dict)
    from_cache: int = 0
    fetched: int = 0


class Enricher:
    """
    Resolves names on killmails through a cache and a resolver.

    Collaborators are injected; nothing here is module-global.
    """

    def __init__(
        self,
        resolver: NameResolver,
        cache: EntityCache,
        config: EnrichmentConfig | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize enricher.

        Args:
            resolver: Name resolver
            cache: Shared entity name cache
            config: Retry configuration
            sleep: Backoff sleep (injected in tests)
            clock: Monotonic clock used for deadlines
        """
        self._resolver = resolver
        self._cache = cache
        self.config = config or EnrichmentConfig()
        self._sleep = sleep
        self._clock = clock
        self.metrics = EnricherMetrics()

    async def enrich(self, killmail: Killmail, deadline: float | None = None) -> Killmail:
        """
        Return an enriched copy of a killmail.

        Args:
            killmail: Canonical killmail (not modified)
            deadline: Monotonic time after which no lookup starts or keeps waiting

        Returns:
            Copy with every name slot resolved or set to its sentinel
        """
        km = copy.deepcopy(killmail)
        state = _CallState()

        # System first; it gets the extra verification cycle
        if km.solar_system_id is None:
            if km.system_name is None:
                km.system_name = ResolvedName.unresolved(EntityKind.SYSTEM)
        elif not is_resolved(km.system_name):
            km.system_name = await self._lookup(
                EntityKind.SYSTEM, km.solar_system_id, state, deadline
            )
            if not km.system_name.resolved and self.config.system_reverify_attempts > 0:
                km.system_name = await self._reverify_system(km.solar_system_id, state, deadline)

        for participant in km.participants:
            for kind in PARTICIPANT_FIELDS:
                entity_id = participant.id_for(kind)
                if entity_id is None or is_resolved(participant.name_for(kind)):
                    continue
                participant.set_name(kind, await self._lookup(kind, entity_id, state, deadline))

        for participant in km.participants:
            participant.system_name = km.system_name

        quality = enrichment_quality(km)
        quality.from_cache = state.from_cache
        quality.fetched = state.fetched
        self.metrics.killmails_enriched += 1
        if quality.degraded:
            self.metrics.degraded_killmails += 1
            logger.info(
                "Kill %d enriched with %d/%d names (%s unresolved)",
                km.killmail_id,
                quality.resolved,
                quality.total,
                ", ".join(km.unresolved_fields()),
                extra={"killmail_id": km.killmail_id, "quality": quality.to_dict()},
            )
        else:
            logger.debug(
                "Kill %d fully enriched (%d names, %d cached)",
                km.killmail_id,
                quality.total,
                quality.from_cache,
            )
        return km

    async def _lookup(
        self,
        kind: EntityKind,
        entity_id: int,
        state: _CallState,
        deadline: float | None,
    ) -> ResolvedName:
        key = (kind, entity_id)
        if key in state.memo:
            return state.memo[key]

        cached = self._cache.get(kind, entity_id)
        if cached is not None:
            self.metrics.cache_hits += 1
            state.from_cache += 1
            result = ResolvedName.ok(cached)
        else:
            result = await self._fetch(kind, entity_id, self.config.max_attempts, deadline)
            if result.resolved:
                state.fetched += 1

        state.memo[key] = result
        return result

    async def _reverify_system(
        self, system_id: int, state: _CallState, deadline: float | None
    ) -> ResolvedName:
        self.metrics.system_reverifications += 1
        logger.debug("Re-verifying system name for %d", system_id)
        result = await self._fetch(
            EntityKind.SYSTEM, system_id, self.config.system_reverify_attempts, deadline
        )
        if result.resolved:
            state.fetched += 1
        state.memo[(EntityKind.SYSTEM, system_id)] = result
        return result

    async def _fetch(
        self,
        kind: EntityKind,
        entity_id: int,
        attempts: int,
        deadline: float | None,
    ) -> ResolvedName:
        """Resolve through the resolver with retry; sentinel on failure."""
        if deadline is not None and self._clock() >= deadline:
            logger.warning(
                "Deadline passed before resolving %s %d", kind.value, entity_id
            )
            self.metrics.resolutions_failed += 1
            return ResolvedName.unresolved(kind)

        retrying = resolution_retrying(
            max_attempts=attempts,
            base_delay=self.config.base_delay,
            deadline=deadline,
            sleep=self._sleep,
            clock=self._clock,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    timeout = self._attempt_timeout(deadline)
                    if timeout <= 0:
                        raise asyncio.TimeoutError("event deadline reached")
                    self.metrics.resolver_calls += 1
                    name = await asyncio.wait_for(
                        self._resolver.resolve(kind, entity_id), timeout=timeout
                    )
        except Exception as e:
            self.metrics.resolutions_failed += 1
            logger.warning(
                "Could not resolve %s %d: %s",
                kind.value,
                entity_id,
                e,
            )
            return ResolvedName.unresolved(kind)

        self._cache.put(kind, entity_id, name)
        return ResolvedName.ok(name)

    def _attempt_timeout(self, deadline: float | None) -> float:
        """Per-call timeout, clamped so no attempt outlives the deadline."""
        if deadline is None:
            return self.config.resolve_timeout
        return min(self.config.resolve_timeout, deadline - self._clock())
