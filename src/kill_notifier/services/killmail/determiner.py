"""
Notification Determination.

Decides whether an enriched killmail produces notifications and where:

1. Global and category gates
2. Relevance: a tracked system or a tracked character must be involved
3. System channel candidacy, with the wormhole-only filter and corporation
   exclusion suppressing only a dedicated system channel
4. Character channel candidacy for victim or any attacker
5. Default channel fallback when no candidate channel remains
6. One atomic dedup check-and-mark per killmail

Tracking and dedup store errors never abort a decision: an unreadable
tracking answer counts as "not tracked", an unreadable dedup answer as
"not a duplicate".
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from ...core.constants import is_wormhole_system
from ...core.logging import get_logger
from .dedup import DeduplicationStore
from .models import ChannelKind, ChannelTarget, Decision, Killmail
from .tracking import TrackingStore

logger = get_logger(__name__)

# Decision reasons
REASON_DISABLED = "disabled"
REASON_NOT_TRACKED = "No tracked entities"
REASON_SYSTEM = "System tracked"
REASON_CHARACTER = "Character tracked"
REASON_DEFAULT = "Default channel"
REASON_DUPLICATE = "Duplicate kill"
REASON_CORP_EXCLUDED = "Corporation excluded"
REASON_WORMHOLE = "Wormhole filter"


@dataclass
class RoutingConfig:
    """Gates, channels and filters for routing decisions."""

    default_channel_id: str
    system_channel_id: str | None = None
    character_channel_id: str | None = None
    notifications_enabled: bool = True
    kill_notifications_enabled: bool = True
    system_notifications_enabled: bool = True
    character_notifications_enabled: bool = True
    wormhole_only: bool = False
    corporation_exclusion_enabled: bool = False
    dedup_scope: str = "kill"

    @classmethod
    def from_settings(cls, settings: Any) -> RoutingConfig:
        return cls(
            default_channel_id=settings.discord_channel_id,
            system_channel_id=settings.discord_system_kill_channel_id or None,
            character_channel_id=settings.discord_character_kill_channel_id or None,
            notifications_enabled=settings.notifications_enabled,
            kill_notifications_enabled=settings.kill_notifications_enabled,
            system_notifications_enabled=settings.system_kill_notifications_enabled,
            character_notifications_enabled=settings.character_kill_notifications_enabled,
            wormhole_only=settings.wormhole_only_kill_notifications,
            corporation_exclusion_enabled=settings.corporation_exclusion_enabled,
            dedup_scope=settings.dedup_scope,
        )


@dataclass
class DeterminerMetrics:
    decisions: int = 0
    notified: int = 0
    disabled: int = 0
    not_tracked: int = 0
    duplicates: int = 0
    suppressed_wormhole: int = 0
    suppressed_corporation: int = 0
    store_errors: int = 0


class Determiner:
    """
    Routes killmails to channels.

    Reads tracking state and writes only to the dedup store.
    """

    def __init__(
        self,
        tracking: TrackingStore,
        dedup: DeduplicationStore,
        config: RoutingConfig,
    ):
        self._tracking = tracking
        self._dedup = dedup
        self.config = config
        self.metrics = DeterminerMetrics()

    async def determine(self, killmail: Killmail) -> Decision:
        """
        Decide which channels receive a notification for this killmail.

        Args:
            killmail: Enriched killmail

        Returns:
            Decision with zero or more targets and a reason trace
        """
        self.metrics.decisions += 1
        kid = killmail.killmail_id
        cfg = self.config

        if not (cfg.notifications_enabled and cfg.kill_notifications_enabled):
            self.metrics.disabled += 1
            logger.debug("Kill %d skipped: notifications disabled", kid)
            return Decision.skip(kid, REASON_DISABLED)

        system_tracked = False
        if killmail.solar_system_id is not None:
            system_tracked = await self._ask(
                self._tracking.is_tracked_system, killmail.solar_system_id, "system"
            )

        victim_tracked = False
        attacker_tracked = False
        for index, character_id in enumerate(_participant_character_ids(killmail)):
            if character_id is None:
                continue
            if await self._ask(self._tracking.is_tracked_character, character_id, "character"):
                victim_tracked = index == 0
                attacker_tracked = index != 0
                break
        character_tracked = victim_tracked or attacker_tracked

        if not system_tracked and not character_tracked:
            self.metrics.not_tracked += 1
            logger.debug("Kill %d skipped: no tracked entities", kid)
            return Decision.skip(kid, REASON_NOT_TRACKED)

        system_relevant = system_tracked and cfg.system_notifications_enabled
        character_relevant = character_tracked and cfg.character_notifications_enabled
        if not system_relevant and not character_relevant:
            self.metrics.disabled += 1
            logger.debug("Kill %d skipped: matching categories disabled", kid)
            return Decision.skip(kid, REASON_DISABLED)

        targets: dict[str, ChannelTarget] = {}
        reasons: list[str] = []

        if system_relevant:
            if cfg.system_channel_id:
                suppressed = await self._system_exclusion(killmail)
                if suppressed:
                    reasons.append(suppressed)
                else:
                    _add(targets, ChannelTarget(cfg.system_channel_id, ChannelKind.SYSTEM, REASON_SYSTEM))
                    reasons.append(REASON_SYSTEM)
            else:
                _add(targets, ChannelTarget(cfg.default_channel_id, ChannelKind.DEFAULT, REASON_SYSTEM))
                reasons.append(REASON_SYSTEM)

        if character_relevant:
            if cfg.character_channel_id:
                target = ChannelTarget(cfg.character_channel_id, ChannelKind.CHARACTER, REASON_CHARACTER)
            else:
                target = ChannelTarget(cfg.default_channel_id, ChannelKind.DEFAULT, REASON_CHARACTER)
            _add(targets, target)
            reasons.append(REASON_CHARACTER)

        if not targets:
            _add(targets, ChannelTarget(cfg.default_channel_id, ChannelKind.DEFAULT, REASON_DEFAULT))
            reasons.append(REASON_DEFAULT)

        if not await self._check_and_mark(kid):
            self.metrics.duplicates += 1
            logger.info("Duplicate kill %d, notification suppressed", kid)
            return Decision(killmail_id=kid, reasons=[*reasons, REASON_DUPLICATE], duplicate=True)

        decision = Decision(
            killmail_id=kid,
            targets=list(targets.values()),
            reasons=reasons,
            tracked_role="victim" if victim_tracked else ("attacker" if attacker_tracked else None),
        )
        self.metrics.notified += 1
        logger.info(
            "Kill %d routed to %s (%s)",
            kid,
            ", ".join(decision.channel_ids),
            "; ".join(reasons),
        )
        return decision

    async def _system_exclusion(self, killmail: Killmail) -> str | None:
        """Reason the dedicated system channel is suppressed, or None."""
        if self.config.wormhole_only and not is_wormhole_system(killmail.solar_system_id):
            self.metrics.suppressed_wormhole += 1
            logger.debug(
                "Kill %d: system %s outside wormhole space, system channel suppressed",
                killmail.killmail_id,
                killmail.solar_system_id,
            )
            return REASON_WORMHOLE

        if self.config.corporation_exclusion_enabled:
            for corporation_id in killmail.corporation_ids:
                if await self._ask(
                    self._tracking.is_excluded_corporation, corporation_id, "corporation"
                ):
                    self.metrics.suppressed_corporation += 1
                    logger.debug(
                        "Kill %d: corporation %d excluded, system channel suppressed",
                        killmail.killmail_id,
                        corporation_id,
                    )
                    return REASON_CORP_EXCLUDED
        return None

    async def _ask(
        self,
        predicate: Callable[[int], Awaitable[bool]],
        entity_id: int,
        label: str,
    ) -> bool:
        try:
            return bool(await predicate(entity_id))
        except Exception as e:
            self.metrics.store_errors += 1
            logger.error("Tracking lookup failed for %s %d: %s", label, entity_id, e)
            return False

    async def _check_and_mark(self, killmail_id: int) -> bool:
        try:
            return await self._dedup.check_and_mark(self.config.dedup_scope, killmail_id)
        except Exception as e:
            self.metrics.store_errors += 1
            logger.error("Dedup check failed for kill %d: %s", killmail_id, e)
            return True

    def get_metrics(self) -> dict[str, int]:
        m = self.metrics
        return {
            "decisions": m.decisions,
            "notified": m.notified,
            "disabled": m.disabled,
            "not_tracked": m.not_tracked,
            "duplicates": m.duplicates,
            "suppressed_wormhole": m.suppressed_wormhole,
            "suppressed_corporation": m.suppressed_corporation,
            "store_errors": m.store_errors,
        }


def _participant_character_ids(killmail: Killmail) -> list[int | None]:
    """Victim first, then attackers."""
    return [p.character_id for p in killmail.participants]


def _add(targets: dict[str, ChannelTarget], target: ChannelTarget) -> None:
    # First target for a channel id wins
    targets.setdefault(target.channel_id, target)
