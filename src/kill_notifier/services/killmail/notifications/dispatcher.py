"""
Notification Dispatcher.

Fans a rendered document out to its target channels. Each channel gets
its own task; dispatch() returns without waiting for any of them.
Failures are recorded in the delivery health ledger and never retried
here, and one channel's failure never touches another's delivery.
"""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol, runtime_checkable

from ....core.errors import DeliveryError
from ....core.logging import get_logger
from ..models import (
    FAILURE_DELIVERY,
    FAILURE_FORMAT,
    ChannelTarget,
    DeliveryOutcome,
    NotificationDocument,
    SendResult,
)

logger = get_logger(__name__)

RECENT_OUTCOMES = 100


@runtime_checkable
class DeliveryClient(Protocol):
    async def deliver(self, channel_id: str, document: NotificationDocument) -> SendResult: ...


@dataclass
class ChannelHealth:
    """Success/failure accounting for one channel."""

    delivered: int = 0
    failed: int = 0
    consecutive_failures: int = 0
    last_success: datetime | None = None
    last_failure: datetime | None = None
    last_error: str | None = None

    @property
    def success_rate(self) -> float:
        total = self.delivered + self.failed
        if total == 0:
            return 1.0
        return self.delivered / total

    @property
    def is_healthy(self) -> bool:
        """Healthy unless failing repeatedly or failing since the last success."""
        if self.consecutive_failures >= 10:
            return False
        if self.last_failure is None:
            return True
        if self.last_success is None:
            return self.consecutive_failures < 3
        return self.last_success > self.last_failure


@dataclass
class DeliveryHealth:
    """Ledger of delivery outcomes across all channels."""

    channels: dict[str, ChannelHealth] = field(default_factory=dict)
    recent: deque[DeliveryOutcome] = field(
        default_factory=lambda: deque(maxlen=RECENT_OUTCOMES)
    )
    failures_by_class: dict[str, int] = field(default_factory=dict)

    def record(self, outcome: DeliveryOutcome) -> None:
        health = self.channels.setdefault(outcome.channel_id, ChannelHealth())
        if outcome.success:
            health.delivered += 1
            health.consecutive_failures = 0
            health.last_success = outcome.timestamp
        else:
            health.failed += 1
            health.consecutive_failures += 1
            health.last_failure = outcome.timestamp
            health.last_error = outcome.failure_reason
            failure_class = outcome.failure_class or FAILURE_DELIVERY
            self.failures_by_class[failure_class] = self.failures_by_class.get(failure_class, 0) + 1
        self.recent.append(outcome)

    @property
    def delivered(self) -> int:
        return sum(h.delivered for h in self.channels.values())

    @property
    def failed(self) -> int:
        return sum(h.failed for h in self.channels.values())

    @property
    def success_rate(self) -> float:
        total = self.delivered + self.failed
        if total == 0:
            return 1.0
        return self.delivered / total

    @property
    def is_healthy(self) -> bool:
        return all(h.is_healthy for h in self.channels.values())

    def to_dict(self) -> dict[str, Any]:
        return {
            "delivered": self.delivered,
            "failed": self.failed,
            "success_rate": round(self.success_rate, 3),
            "is_healthy": self.is_healthy,
            "failures_by_class": dict(self.failures_by_class),
            "channels": {
                channel_id: {
                    "delivered": h.delivered,
                    "failed": h.failed,
                    "consecutive_failures": h.consecutive_failures,
                    "last_error": h.last_error,
                    "is_healthy": h.is_healthy,
                }
                for channel_id, h in self.channels.items()
            },
        }


class Dispatcher:
    """
    Fire-and-forget multi-channel delivery.

    Keeps a strong reference to every in-flight task until it finishes.
    """

    def __init__(self, client: DeliveryClient, timeout: float = 30.0):
        """
        Initialize dispatcher.

        Args:
            client: Delivery collaborator
            timeout: Per-channel delivery timeout in seconds
        """
        self._client = client
        self.timeout = timeout
        self.health = DeliveryHealth()
        self.notified = 0
        self._pending: set[asyncio.Task[DeliveryOutcome]] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def dispatch(
        self,
        document: NotificationDocument,
        targets: list[ChannelTarget],
        killmail_id: int,
    ) -> list[asyncio.Task[DeliveryOutcome]]:
        """
        Start one delivery per target and return immediately.

        Must be called from a running event loop.

        Args:
            document: Rendered notification
            targets: Channels to deliver to
            killmail_id: Id for outcome records and logs

        Returns:
            Tasks resolving to DeliveryOutcome, in target order
        """
        tasks = []
        for target in targets:
            task = asyncio.create_task(
                self._deliver_one(target.channel_id, document, killmail_id),
                name=f"deliver-{killmail_id}-{target.channel_id}",
            )
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
            tasks.append(task)
        return tasks

    def dispatch_many(
        self,
        documents: list[tuple[NotificationDocument, ChannelTarget]],
        killmail_id: int,
    ) -> list[asyncio.Task[DeliveryOutcome]]:
        """Dispatch per-target documents (one rendering per channel kind)."""
        tasks: list[asyncio.Task[DeliveryOutcome]] = []
        for document, target in documents:
            tasks.extend(self.dispatch(document, [target], killmail_id))
        return tasks

    async def _deliver_one(
        self,
        channel_id: str,
        document: NotificationDocument,
        killmail_id: int,
    ) -> DeliveryOutcome:
        try:
            result = await asyncio.wait_for(
                self._client.deliver(channel_id, document), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            return self._failed(channel_id, killmail_id, f"Timed out after {self.timeout:.0f}s")
        except DeliveryError as e:
            return self._failed(channel_id, killmail_id, str(e))
        except Exception as e:
            return self._failed(channel_id, killmail_id, f"{type(e).__name__}: {e}")

        if not result.success:
            return self._failed(channel_id, killmail_id, result.error or "Delivery failed")

        outcome = DeliveryOutcome(channel_id=channel_id, killmail_id=killmail_id, success=True)
        self.health.record(outcome)
        self.notified += 1
        logger.debug("Kill %d delivered to channel %s", killmail_id, channel_id)
        return outcome

    def _failed(
        self,
        channel_id: str,
        killmail_id: int,
        reason: str,
        failure_class: str = FAILURE_DELIVERY,
    ) -> DeliveryOutcome:
        outcome = DeliveryOutcome(
            channel_id=channel_id,
            killmail_id=killmail_id,
            success=False,
            failure_reason=reason,
            failure_class=failure_class,
        )
        self.health.record(outcome)
        logger.error(
            "Delivery of kill %d to channel %s failed: %s",
            killmail_id,
            channel_id,
            reason,
            extra={"failure_class": failure_class},
        )
        return outcome

    def record_format_error(
        self,
        killmail_id: int,
        targets: list[ChannelTarget],
        reason: str,
    ) -> list[DeliveryOutcome]:
        """Record a format failure against every intended channel without delivering."""
        return [
            self._failed(t.channel_id, killmail_id, reason, failure_class=FAILURE_FORMAT)
            for t in targets
        ]

    async def drain(self) -> list[DeliveryOutcome]:
        """
        Wait for all in-flight deliveries.

        Returns:
            Outcomes of the tasks that were pending when called
        """
        if not self._pending:
            return []
        return list(await asyncio.gather(*list(self._pending)))

    def get_status(self) -> dict[str, Any]:
        return {
            "notified": self.notified,
            "pending": self.pending,
            "checked_at": datetime.now(timezone.utc).isoformat(timespec="seconds"),
            "health": self.health.to_dict(),
        }
