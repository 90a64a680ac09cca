"""
Tests for the tracking store.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from kill_notifier.services.killmail.tracking import InMemoryTrackingStore, TrackingStore

pytestmark = pytest.mark.asyncio


class TestInMemoryTrackingStore:
    """Tests for InMemoryTrackingStore."""

    async def test_predicates(self):
        store = InMemoryTrackingStore(systems=[30000142], characters=[999], excluded_corporations=[98000001])

        assert await store.is_tracked_system(30000142) is True
        assert await store.is_tracked_system(30000144) is False
        assert await store.is_tracked_character(999) is True
        assert await store.is_tracked_character(1000) is False
        assert await store.is_excluded_corporation(98000001) is True
        assert await store.is_excluded_corporation(98000002) is False

    async def test_satisfies_protocol(self):
        assert isinstance(InMemoryTrackingStore(), TrackingStore)

    async def test_mutations(self):
        store = InMemoryTrackingStore()
        store.track_system(1)
        store.track_character(2)
        store.exclude_corporation(3)
        assert await store.is_tracked_system(1)
        assert await store.is_tracked_character(2)
        assert await store.is_excluded_corporation(3)

        store.untrack_system(1)
        store.untrack_character(2)
        store.include_corporation(3)
        assert not await store.is_tracked_system(1)
        assert not await store.is_tracked_character(2)
        assert not await store.is_excluded_corporation(3)

    async def test_replace_partial(self):
        store = InMemoryTrackingStore(systems=[1], characters=[2])
        store.replace(systems=[5])

        assert store.counts() == {"systems": 1, "characters": 1, "excluded_corporations": 0}
        assert await store.is_tracked_system(5)
        assert await store.is_tracked_character(2)


class TestTrackingYaml:
    """Tests for YAML loading."""

    async def test_from_yaml(self, tmp_path: Path):
        path = tmp_path / "tracking.yaml"
        path.write_text(
            "systems:\n"
            "  - 31000500\n"
            "  - {id: 30000142, name: Jita}\n"
            "characters: [999]\n"
            "excluded_corporations: ['98000001']\n"
        )

        store = InMemoryTrackingStore.from_yaml(path)

        assert await store.is_tracked_system(31000500)
        assert await store.is_tracked_system(30000142)
        assert await store.is_tracked_character(999)
        assert await store.is_excluded_corporation(98000001)

    async def test_empty_file(self, tmp_path: Path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert InMemoryTrackingStore.from_yaml(path).counts()["systems"] == 0

    async def test_not_a_mapping(self, tmp_path: Path):
        path = tmp_path / "list.yaml"
        path.write_text("- 1\n- 2\n")
        with pytest.raises(ValueError, match="mapping"):
            InMemoryTrackingStore.from_yaml(path)

    async def test_bad_id(self, tmp_path: Path):
        path = tmp_path / "bad.yaml"
        path.write_text("systems: [jita]\n")
        with pytest.raises(ValueError, match="invalid id"):
            InMemoryTrackingStore.from_yaml(path)

    async def test_invalid_yaml(self, tmp_path: Path):
        path = tmp_path / "broken.yaml"
        path.write_text("systems: [1, 2\n")
        with pytest.raises(ValueError, match="Invalid YAML"):
            InMemoryTrackingStore.from_yaml(path)

    async def test_missing_file(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            InMemoryTrackingStore.from_yaml(tmp_path / "nope.yaml")
