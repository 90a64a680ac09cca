"""
Kill Notifier Test Suite - Shared Fixtures

Fake collaborators (resolver, delivery, clock) and sample payloads used
across the component and end-to-end tests.
"""

from __future__ import annotations

import os
from typing import Any
from unittest.mock import AsyncMock

import pytest

from kill_notifier.core.config import reset_settings
from kill_notifier.core.errors import (
    DeliveryError,
    NonRetryableResolutionError,
    RetryableResolutionError,
)
from kill_notifier.core.logging import reset_logging
from kill_notifier.services.killmail.models import EntityKind, NotificationDocument, SendResult

# Keep a developer's .env or shell settings out of the test run
for _key in [k for k in os.environ if k.startswith("KILL_NOTIFIER_")]:
    del os.environ[_key]


@pytest.fixture(autouse=True)
def isolate_settings_and_logging():
    """Fresh settings and caplog-friendly loggers for every test."""
    reset_settings()
    reset_logging()
    yield
    reset_settings()
    reset_logging()


# =============================================================================
# Fake Collaborators
# =============================================================================


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeResolver:
    """
    Name resolver backed by a dict.

    Unknown ids raise a retryable error, ids in `missing` raise a
    non-retryable one, and `flaky` maps an id to how many calls fail
    before it succeeds.
    """

    def __init__(
        self,
        names: dict[tuple[EntityKind, int], str] | None = None,
        missing: set[tuple[EntityKind, int]] | None = None,
        flaky: dict[tuple[EntityKind, int], int] | None = None,
    ) -> None:
        self.names = dict(names or {})
        self.missing = set(missing or ())
        self.flaky = dict(flaky or {})
        self.calls: list[tuple[EntityKind, int]] = []

    async def resolve(self, kind: EntityKind, entity_id: int) -> str:
        key = (kind, entity_id)
        self.calls.append(key)
        if key in self.missing:
            raise NonRetryableResolutionError(f"{kind.value} {entity_id} not found", status_code=404)
        if self.flaky.get(key, 0) > 0:
            self.flaky[key] -= 1
            raise RetryableResolutionError("upstream timeout", status_code=504)
        if key not in self.names:
            raise RetryableResolutionError("upstream unavailable", status_code=503)
        return self.names[key]

    def call_count(self, kind: EntityKind, entity_id: int) -> int:
        return self.calls.count((kind, entity_id))


class AlwaysFailingResolver:
    """Resolver whose every call fails with a retryable error."""

    def __init__(self) -> None:
        self.calls = 0

    async def resolve(self, kind: EntityKind, entity_id: int) -> str:
        self.calls += 1
        raise RetryableResolutionError("resolver down", status_code=503)


class FakeDelivery:
    """Records deliveries; channels in `failing` return an unsuccessful result."""

    def __init__(self, failing: set[str] | None = None, raising: set[str] | None = None) -> None:
        self.failing = set(failing or ())
        self.raising = set(raising or ())
        self.delivered: list[tuple[str, NotificationDocument]] = []

    async def deliver(self, channel_id: str, document: NotificationDocument) -> SendResult:
        if channel_id in self.raising:
            raise DeliveryError(f"connection reset delivering to {channel_id}", channel_id=channel_id)
        if channel_id in self.failing:
            return SendResult(success=False, status_code=500, error="Server error")
        self.delivered.append((channel_id, document))
        return SendResult(success=True, status_code=200)

    @property
    def channel_ids(self) -> list[str]:
        return [c for c, _ in self.delivered]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_sleep() -> AsyncMock:
    """Backoff sleep that returns immediately and records delays."""
    return AsyncMock(return_value=None)


@pytest.fixture
def known_names() -> dict[tuple[EntityKind, int], str]:
    return {
        (EntityKind.SYSTEM, 30000142): "Jita",
        (EntityKind.SYSTEM, 31000500): "J100820",
        (EntityKind.CHARACTER, 999): "Victim Pilot",
        (EntityKind.CHARACTER, 95000002): "Attacker One",
        (EntityKind.CHARACTER, 95000003): "Attacker Two",
        (EntityKind.CORPORATION, 98000001): "Victim Corp",
        (EntityKind.CORPORATION, 98000002): "Attacker Corp",
        (EntityKind.ALLIANCE, 99000002): "Attacker Alliance",
        (EntityKind.SHIP_TYPE, 17740): "Hurricane",
        (EntityKind.SHIP_TYPE, 17812): "Brutix",
        (EntityKind.SHIP_TYPE, 24690): "Talos",
    }


@pytest.fixture
def resolver(known_names) -> FakeResolver:
    return FakeResolver(known_names)


@pytest.fixture
def make_resolver(known_names):
    """Factory for resolvers with missing or flaky entries over the known names."""

    def _make(missing=None, flaky=None) -> FakeResolver:
        return FakeResolver(known_names, missing=missing, flaky=flaky)

    return _make


@pytest.fixture
def delivery() -> FakeDelivery:
    return FakeDelivery()


@pytest.fixture
def make_delivery():
    """Factory for delivery fakes with failing or raising channels."""
    return FakeDelivery


# =============================================================================
# Sample Payloads
# =============================================================================


def make_esi_killmail(
    killmail_id: int = 12345,
    system_id: int = 30000142,
    victim_character_id: int | None = 999,
    victim_corporation_id: int = 98000001,
    attacker_character_ids: tuple[int | None, ...] = (95000002, 95000003),
) -> dict[str, Any]:
    """Build an ESI-shaped killmail payload."""
    attackers = []
    for i, character_id in enumerate(attacker_character_ids):
        attacker: dict[str, Any] = {
            "corporation_id": 98000002,
            "alliance_id": 99000002,
            "ship_type_id": 17812 if i == 0 else 24690,
            "final_blow": i == 0,
            "damage_done": 5000 - i * 2000,
        }
        if character_id is not None:
            attacker["character_id"] = character_id
        attackers.append(attacker)

    victim: dict[str, Any] = {
        "corporation_id": victim_corporation_id,
        "ship_type_id": 17740,
        "damage_taken": 8000,
    }
    if victim_character_id is not None:
        victim["character_id"] = victim_character_id

    return {
        "killmail_id": killmail_id,
        "killmail_time": "2026-01-15T12:34:56Z",
        "solar_system_id": system_id,
        "victim": victim,
        "attackers": attackers,
        "zkb": {"hash": "abc123def456", "totalValue": 150_000_000.0},
    }


@pytest.fixture
def sample_esi_killmail() -> dict[str, Any]:
    """Killmail 12345 in Jita: victim 999, two player attackers."""
    return make_esi_killmail()


@pytest.fixture
def sample_redisq_package() -> dict[str, Any]:
    """Same kill as a RedisQ package."""
    body = make_esi_killmail()
    zkb = body.pop("zkb")
    body.pop("killmail_id")
    return {"package": {"killID": 12345, "killmail": body, "zkb": zkb}}


@pytest.fixture
def make_killmail():
    """Factory for ESI-shaped killmail payloads."""
    return make_esi_killmail


@pytest.fixture
def failing_resolver() -> AlwaysFailingResolver:
    return AlwaysFailingResolver()
