"""
Killmail Processing Pipeline.

One unit of work per raw event:

    canonicalize -> enrich -> persist (best effort) -> determine -> format -> dispatch

KillmailPipeline.process() runs a single event and never raises. Name
resolution stops at the event deadline and falls back to sentinels; the
outer guard only abandons an event that overruns the deadline plus a
grace period.
WorkerPool feeds events through a bounded queue to N concurrent workers
with a configurable backpressure policy.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ...core.errors import InvalidPayloadError
from ...core.logging import get_logger
from .canonicalizer import canonicalize
from .dedup import DeduplicationStore
from .determiner import Determiner, RoutingConfig
from .enricher import EnrichmentConfig, Enricher
from .entity_cache import EntityCache
from .models import ChannelKind, Decision, DeliveryOutcome, NotificationDocument
from .name_resolver import NameResolver
from .notifications.dispatcher import DeliveryClient, Dispatcher
from .notifications.formatter import KillmailFormatter
from .persistence import KillmailStore
from .tracking import TrackingStore

logger = get_logger(__name__)


class PipelineStatus(Enum):
    """Terminal state of one event."""

    INVALID = "invalid"
    SKIPPED = "skipped"
    DUPLICATE = "duplicate"
    DISPATCHED = "dispatched"
    FORMAT_ERROR = "format_error"
    TIMED_OUT = "timed_out"
    FAILED = "failed"


@dataclass
class PipelineResult:
    status: PipelineStatus
    killmail_id: int | None = None
    decision: Decision | None = None
    tasks: list[asyncio.Task[DeliveryOutcome]] = field(default_factory=list)
    error: str | None = None


@dataclass
class PipelineMetrics:
    received: int = 0
    invalid: int = 0
    skipped: int = 0
    duplicates: int = 0
    dispatched: int = 0
    format_errors: int = 0
    timed_out: int = 0
    failed: int = 0
    persist_errors: int = 0


class KillmailPipeline:
    """
    Orchestrates the stages for a single killmail.

    All collaborators are injected; see build_pipeline() for wiring
    from settings.
    """

    def __init__(
        self,
        enricher: Enricher,
        determiner: Determiner,
        formatter: KillmailFormatter,
        dispatcher: Dispatcher,
        store: KillmailStore | None = None,
        deadline_seconds: float = 60.0,
        grace_seconds: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.enricher = enricher
        self.determiner = determiner
        self.formatter = formatter
        self.dispatcher = dispatcher
        self.store = store
        self.deadline_seconds = deadline_seconds
        self.grace_seconds = grace_seconds
        self._clock = clock
        self.metrics = PipelineMetrics()

    async def process(self, raw: Any) -> PipelineResult:
        """
        Run one raw event through the pipeline.

        Args:
            raw: Decoded feed payload

        Returns:
            PipelineResult; delivery tasks are returned unawaited
        """
        self.metrics.received += 1
        deadline = self._clock() + self.deadline_seconds
        limit = self.deadline_seconds + self.grace_seconds
        try:
            return await asyncio.wait_for(self._process(raw, deadline), timeout=limit)
        except asyncio.TimeoutError:
            self.metrics.timed_out += 1
            logger.warning("Event exceeded %.0fs limit, abandoned", limit)
            return PipelineResult(status=PipelineStatus.TIMED_OUT, error="deadline exceeded")
        except Exception as e:
            self.metrics.failed += 1
            logger.error("Unexpected pipeline failure: %s", e, exc_info=True)
            return PipelineResult(status=PipelineStatus.FAILED, error=str(e))

    async def _process(self, raw: Any, deadline: float) -> PipelineResult:
        try:
            killmail = canonicalize(raw)
        except InvalidPayloadError as e:
            self.metrics.invalid += 1
            logger.warning("Rejected payload: %s", e.reason, extra={"keys": e.payload_keys})
            return PipelineResult(status=PipelineStatus.INVALID, error=e.reason)

        kid = killmail.killmail_id
        enriched = await self.enricher.enrich(killmail, deadline=deadline)

        if self.store is not None:
            try:
                await self.store.save(enriched)
            except Exception as e:
                self.metrics.persist_errors += 1
                logger.warning("Could not persist kill %d: %s", kid, e)

        decision = await self.determiner.determine(enriched)
        if decision.duplicate:
            self.metrics.duplicates += 1
            return PipelineResult(PipelineStatus.DUPLICATE, kid, decision)
        if not decision.should_notify:
            self.metrics.skipped += 1
            return PipelineResult(PipelineStatus.SKIPPED, kid, decision)

        rendered: dict[ChannelKind, NotificationDocument] = {}
        try:
            for target in decision.targets:
                if target.kind not in rendered:
                    rendered[target.kind] = self.formatter.format(
                        enriched, target.kind, tracked_role=decision.tracked_role
                    )
        except Exception as e:
            self.metrics.format_errors += 1
            self.dispatcher.record_format_error(kid, decision.targets, str(e))
            return PipelineResult(PipelineStatus.FORMAT_ERROR, kid, decision, error=str(e))

        tasks = self.dispatcher.dispatch_many(
            [(rendered[t.kind], t) for t in decision.targets], kid
        )
        self.metrics.dispatched += 1
        return PipelineResult(PipelineStatus.DISPATCHED, kid, decision, tasks)

    def get_status(self) -> dict[str, Any]:
        m = self.metrics
        return {
            "received": m.received,
            "invalid": m.invalid,
            "skipped": m.skipped,
            "duplicates": m.duplicates,
            "dispatched": m.dispatched,
            "format_errors": m.format_errors,
            "timed_out": m.timed_out,
            "failed": m.failed,
            "persist_errors": m.persist_errors,
            "enricher": vars(self.enricher.metrics).copy(),
            "determiner": self.determiner.get_metrics(),
            "dispatcher": self.dispatcher.get_status(),
        }


# =============================================================================
# Worker Pool
# =============================================================================


@dataclass
class PoolConfig:
    workers: int = 4
    queue_size: int = 1000
    backpressure: str = "block"  # "block" or "reject"

    @classmethod
    def from_settings(cls, settings: Any) -> PoolConfig:
        return cls(
            workers=settings.worker_count,
            queue_size=settings.queue_size,
            backpressure=settings.backpressure_policy,
        )


@dataclass
class PoolMetrics:
    submitted: int = 0
    rejected: int = 0
    processed: int = 0


class WorkerPool:
    """
    Bounded queue in front of N pipeline workers.

    With the "block" policy submit() waits for space; with "reject" it
    logs and returns False when the queue is full.
    """

    def __init__(self, pipeline: KillmailPipeline, config: PoolConfig | None = None):
        self.pipeline = pipeline
        self.config = config or PoolConfig()
        if self.config.backpressure not in ("block", "reject"):
            raise ValueError(f"Unknown backpressure policy: {self.config.backpressure}")
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=self.config.queue_size)
        self._workers: list[asyncio.Task[None]] = []
        self.metrics = PoolMetrics()

    @property
    def is_running(self) -> bool:
        return any(not w.done() for w in self._workers)

    def start(self) -> None:
        """Spawn worker tasks. Must be called from a running event loop."""
        if self.is_running:
            return
        self._workers = [
            asyncio.create_task(self._worker(i), name=f"killmail-worker-{i}")
            for i in range(self.config.workers)
        ]
        logger.info("Started %d killmail workers", self.config.workers)

    async def submit(self, raw: Any) -> bool:
        """
        Queue a raw event.

        Returns:
            True if queued, False if rejected by backpressure
        """
        if self.config.backpressure == "reject":
            try:
                self._queue.put_nowait(raw)
            except asyncio.QueueFull:
                self.metrics.rejected += 1
                logger.warning(
                    "Backpressure: queue full (%d), event rejected",
                    self._queue.maxsize,
                    extra={"event": "backpressure_reject", "rejected_total": self.metrics.rejected},
                )
                return False
        else:
            await self._queue.put(raw)
        self.metrics.submitted += 1
        return True

    async def _worker(self, index: int) -> None:
        while True:
            raw = await self._queue.get()
            try:
                await self.pipeline.process(raw)
                self.metrics.processed += 1
            finally:
                self._queue.task_done()

    async def join(self) -> None:
        """Wait until every queued event has been processed."""
        await self._queue.join()

    async def stop(self, timeout: float = 10.0) -> None:
        """
        Finish queued work (up to timeout), then cancel workers and
        wait for in-flight deliveries.
        """
        try:
            await asyncio.wait_for(self._queue.join(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("Stopping with %d events still queued", self._queue.qsize())
        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        await self.pipeline.dispatcher.drain()
        logger.info("Killmail workers stopped")

    def stats(self) -> dict[str, Any]:
        return {
            "workers": len(self._workers),
            "queue_depth": self._queue.qsize(),
            "queue_size": self.config.queue_size,
            "submitted": self.metrics.submitted,
            "rejected": self.metrics.rejected,
            "processed": self.metrics.processed,
        }


def build_pipeline(
    settings: Any,
    resolver: NameResolver,
    delivery: DeliveryClient,
    tracking: TrackingStore,
    store: KillmailStore | None = None,
) -> KillmailPipeline:
    """
    Wire a pipeline from settings and external collaborators.

    Args:
        settings: NotifierSettings
        resolver: Name resolver (e.g. EsiNameResolver)
        delivery: Delivery client (e.g. DiscordChannelClient)
        tracking: Tracking store
        store: Optional killmail persistence

    Returns:
        Ready-to-use KillmailPipeline with fresh cache and dedup stores
    """
    enricher = Enricher(
        resolver=resolver,
        cache=EntityCache.from_settings(settings),
        config=EnrichmentConfig.from_settings(settings),
    )
    determiner = Determiner(
        tracking=tracking,
        dedup=DeduplicationStore(ttl_seconds=settings.dedup_ttl_seconds),
        config=RoutingConfig.from_settings(settings),
    )
    return KillmailPipeline(
        enricher=enricher,
        determiner=determiner,
        formatter=KillmailFormatter(),
        dispatcher=Dispatcher(delivery, timeout=settings.delivery_timeout_seconds),
        store=store,
        deadline_seconds=settings.event_deadline_seconds,
        grace_seconds=settings.event_grace_seconds,
    )
