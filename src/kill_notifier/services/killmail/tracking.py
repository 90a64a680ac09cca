"""
Tracking Store.

Answers whether a system or character is watched and whether a
corporation is excluded from system-channel notifications. The
notification pipeline only reads; external collaborators (map sync,
admin tooling) mutate.

Tracking lists can be loaded from YAML:

    systems: [31000500, 30000142]
    characters: [95000001]
    excluded_corporations: [98000001]
"""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import yaml

from ...core.logging import get_logger

logger = get_logger(__name__)


@runtime_checkable
class TrackingStore(Protocol):
    """Read interface used by the determiner."""

    async def is_tracked_system(self, system_id: int) -> bool: ...

    async def is_tracked_character(self, character_id: int) -> bool: ...

    async def is_excluded_corporation(self, corporation_id: int) -> bool: ...


def _id_set(data: dict[str, Any], key: str, source: str) -> set[int]:
    values = data.get(key) or []
    if not isinstance(values, list):
        raise ValueError(f"{source}: '{key}' must be a list of ids")
    ids: set[int] = set()
    for value in values:
        if isinstance(value, dict):
            # Allow {id: 123, name: "..."} entries for readability
            value = value.get("id")
        try:
            ids.add(int(value))
        except (TypeError, ValueError) as e:
            raise ValueError(f"{source}: invalid id {value!r} in '{key}'") from e
    return ids


class InMemoryTrackingStore:
    """
    Set-backed tracking store.

    All predicates are O(1) lookups. Mutations replace set members
    atomically from the event loop's point of view.
    """

    def __init__(
        self,
        systems: Iterable[int] = (),
        characters: Iterable[int] = (),
        excluded_corporations: Iterable[int] = (),
    ):
        self._systems: set[int] = set(systems)
        self._characters: set[int] = set(characters)
        self._excluded_corporations: set[int] = set(excluded_corporations)

    @classmethod
    def from_yaml(cls, path: Path | str) -> InMemoryTrackingStore:
        """
        Load tracking lists from a YAML file.

        Args:
            path: YAML file with systems, characters, excluded_corporations lists

        Returns:
            Populated store

        Raises:
            FileNotFoundError: If the file doesn't exist
            ValueError: If the file is not a valid tracking document
        """
        path = Path(path)
        try:
            with open(path) as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in tracking file {path}: {e}") from e

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ValueError(f"Tracking file {path} must be a YAML mapping")

        store = cls(
            systems=_id_set(data, "systems", str(path)),
            characters=_id_set(data, "characters", str(path)),
            excluded_corporations=_id_set(data, "excluded_corporations", str(path)),
        )
        logger.info(
            "Loaded tracking file %s: %d systems, %d characters, %d excluded corps",
            path,
            len(store._systems),
            len(store._characters),
            len(store._excluded_corporations),
        )
        return store

    # -------------------------------------------------------------------------
    # Predicates
    # -------------------------------------------------------------------------

    async def is_tracked_system(self, system_id: int) -> bool:
        return system_id in self._systems

    async def is_tracked_character(self, character_id: int) -> bool:
        return character_id in self._characters

    async def is_excluded_corporation(self, corporation_id: int) -> bool:
        return corporation_id in self._excluded_corporations

    # -------------------------------------------------------------------------
    # Mutation (external collaborators)
    # -------------------------------------------------------------------------

    def track_system(self, system_id: int) -> None:
        self._systems.add(system_id)

    def untrack_system(self, system_id: int) -> None:
        self._systems.discard(system_id)

    def track_character(self, character_id: int) -> None:
        self._characters.add(character_id)

    def untrack_character(self, character_id: int) -> None:
        self._characters.discard(character_id)

    def exclude_corporation(self, corporation_id: int) -> None:
        self._excluded_corporations.add(corporation_id)

    def include_corporation(self, corporation_id: int) -> None:
        self._excluded_corporations.discard(corporation_id)

    def replace(
        self,
        systems: Iterable[int] | None = None,
        characters: Iterable[int] | None = None,
        excluded_corporations: Iterable[int] | None = None,
    ) -> None:
        """Swap in fresh lists; None leaves a list unchanged."""
        if systems is not None:
            self._systems = set(systems)
        if characters is not None:
            self._characters = set(characters)
        if excluded_corporations is not None:
            self._excluded_corporations = set(excluded_corporations)

    def counts(self) -> dict[str, int]:
        return {
            "systems": len(self._systems),
            "characters": len(self._characters),
            "excluded_corporations": len(self._excluded_corporations),
        }
