"""
Tests for the entity name cache.
"""

from __future__ import annotations

from kill_notifier.services.killmail.entity_cache import DAY, EntityCache
from kill_notifier.services.killmail.models import EntityKind


class TestEntityCache:
    """Tests for EntityCache."""

    def test_miss_then_hit(self, clock):
        cache = EntityCache(clock=clock)

        assert cache.get(EntityKind.SYSTEM, 30000142) is None
        cache.put(EntityKind.SYSTEM, 30000142, "Jita")
        assert cache.get(EntityKind.SYSTEM, 30000142) == "Jita"
        assert cache.stats.hits == 1
        assert cache.stats.misses == 1

    def test_kinds_are_separate_keyspaces(self, clock):
        cache = EntityCache(clock=clock)
        cache.put(EntityKind.CHARACTER, 1, "Pilot")

        assert cache.get(EntityKind.CORPORATION, 1) is None

    def test_per_kind_ttl(self, clock):
        cache = EntityCache(clock=clock)
        cache.put(EntityKind.SYSTEM, 1, "Jita")
        cache.put(EntityKind.CHARACTER, 1, "Pilot")
        cache.put(EntityKind.CORPORATION, 1, "Corp")

        clock.advance(2 * DAY)
        assert cache.get(EntityKind.CORPORATION, 1) is None
        assert cache.get(EntityKind.CHARACTER, 1) == "Pilot"

        clock.advance(6 * DAY)
        assert cache.get(EntityKind.CHARACTER, 1) is None
        assert cache.get(EntityKind.SYSTEM, 1) == "Jita"

        clock.advance(23 * DAY)
        assert cache.get(EntityKind.SYSTEM, 1) is None

    def test_expired_entry_evicted(self, clock):
        cache = EntityCache(ttls={EntityKind.SHIP_TYPE: 10}, clock=clock)
        cache.put(EntityKind.SHIP_TYPE, 670, "Capsule")
        clock.advance(10)

        assert cache.get(EntityKind.SHIP_TYPE, 670) is None
        assert len(cache) == 0
        assert cache.stats.expired == 1

    def test_put_idempotent_last_write_wins(self, clock):
        cache = EntityCache(clock=clock)
        cache.put(EntityKind.ALLIANCE, 5, "Old Name")
        cache.put(EntityKind.ALLIANCE, 5, "New Name")

        assert cache.get(EntityKind.ALLIANCE, 5) == "New Name"
        assert len(cache) == 1

    def test_purge_expired(self, clock):
        cache = EntityCache(clock=clock)
        cache.put(EntityKind.CORPORATION, 1, "Corp")
        cache.put(EntityKind.SYSTEM, 2, "Jita")
        clock.advance(2 * DAY)

        assert cache.purge_expired() == 1
        assert len(cache) == 1

    def test_put_sweeps_expired_entries(self, clock):
        cache = EntityCache(ttls={EntityKind.CHARACTER: 10}, clock=clock, sweep_interval=10)

        for character_id in range(500):
            cache.put(EntityKind.CHARACTER, character_id, f"Pilot {character_id}")
            clock.advance(60)

        assert len(cache) <= 2

    def test_sweep_interval_defaults_to_shortest_ttl(self, clock):
        cache = EntityCache(ttls={EntityKind.ALLIANCE: 120}, clock=clock)

        assert cache.sweep_interval == 120

    def test_from_settings(self, clock):
        from kill_notifier.core.config import NotifierSettings

        settings = NotifierSettings(corporation_name_ttl_seconds=60)
        cache = EntityCache.from_settings(settings, clock=clock)

        assert cache.ttl_for(EntityKind.CORPORATION) == 60
        assert cache.ttl_for(EntityKind.SYSTEM) == 30 * DAY

    def test_get_stats(self, clock):
        cache = EntityCache(clock=clock)
        cache.put(EntityKind.SYSTEM, 1, "Jita")
        cache.get(EntityKind.SYSTEM, 1)
        cache.get(EntityKind.SYSTEM, 2)

        stats = cache.get_stats()
        assert stats["size"] == 1
        assert stats["hit_rate"] == 0.5
