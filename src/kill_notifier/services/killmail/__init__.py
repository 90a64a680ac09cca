"""
Killmail Enrichment and Notification.

Pipeline stages:
- canonicalize: raw payload -> Killmail
- Enricher: name resolution through EntityCache and a NameResolver
- Determiner: relevance, exclusion, dedup, channel routing
- KillmailFormatter / Dispatcher: rendering and fan-out delivery

Usage:
    from kill_notifier.services.killmail import WorkerPool, build_pipeline

    pipeline = build_pipeline(settings, resolver, delivery, tracking)
    pool = WorkerPool(pipeline, PoolConfig.from_settings(settings))
    pool.start()
    await pool.submit(raw_event)
"""

from .canonicalizer import canonicalize
from .dedup import DeduplicationStore
from .determiner import Determiner, RoutingConfig
from .enricher import EnrichmentConfig, EnrichmentQuality, Enricher, enrichment_quality
from .entity_cache import EntityCache
from .models import (
    ChannelKind,
    ChannelTarget,
    Decision,
    DeliveryOutcome,
    EntityKind,
    Killmail,
    NotificationDocument,
    Participant,
    ResolvedName,
    SendResult,
)
from .name_resolver import EsiNameResolver, NameResolver
from .persistence import KillmailStore, SQLiteKillmailStore
from .pipeline import (
    KillmailPipeline,
    PipelineResult,
    PipelineStatus,
    PoolConfig,
    WorkerPool,
    build_pipeline,
)
from .tracking import InMemoryTrackingStore, TrackingStore

__all__ = [
    "ChannelKind",
    "ChannelTarget",
    "Decision",
    "DeduplicationStore",
    "DeliveryOutcome",
    "Determiner",
    "EnrichmentConfig",
    "EnrichmentQuality",
    "Enricher",
    "EntityCache",
    "EntityKind",
    "EsiNameResolver",
    "InMemoryTrackingStore",
    "Killmail",
    "KillmailPipeline",
    "KillmailStore",
    "NameResolver",
    "NotificationDocument",
    "Participant",
    "PipelineResult",
    "PipelineStatus",
    "PoolConfig",
    "ResolvedName",
    "RoutingConfig",
    "SQLiteKillmailStore",
    "SendResult",
    "TrackingStore",
    "WorkerPool",
    "build_pipeline",
    "canonicalize",
    "enrichment_quality",
]
