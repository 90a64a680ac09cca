"""
Killmail Notification Formatter.

Renders enriched killmails as platform-agnostic notification documents.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

from ....core.constants import IMAGE_SERVER_URL, ZKILLBOARD_URL
from ....core.errors import FormatError
from ..models import (
    ChannelKind,
    DocumentAuthor,
    DocumentField,
    EntityKind,
    Killmail,
    NotificationDocument,
    Participant,
)

# Color codes (decimal)
COLORS = {
    "loss": 0xE74C3C,  # Red - tracked character died
    "kill": 0x2ECC71,  # Green - tracked character got the kill
}

# ISK thresholds for system-kill colors, highest first
ISK_COLORS = (
    (5_000_000_000, 0xFF0000),
    (1_000_000_000, 0xFF6600),
    (100_000_000, 0xFFFF00),
    (10_000_000, 0x00FF00),
)
ISK_COLOR_FLOOR = 0x808080


def format_isk(value: float | None) -> str:
    """
    Format ISK value in human-readable format.

    Args:
        value: ISK amount

    Returns:
        Formatted string (e.g., "1.5B", "350.0M", "45.0K")
    """
    if value is None:
        return "0"
    if value >= 1_000_000_000:
        return f"{value / 1_000_000_000:.1f}B"
    elif value >= 1_000_000:
        return f"{value / 1_000_000:.1f}M"
    elif value >= 1_000:
        return f"{value / 1_000:.1f}K"
    else:
        return f"{value:.0f}"


def format_time_ago(kill_time: datetime, now: datetime | None = None) -> str:
    """
    Format kill time as relative time.

    Args:
        kill_time: When the kill occurred (naive values are treated as UTC)
        now: Reference time, defaults to the current UTC time

    Returns:
        Human-readable relative time (e.g., "2 min ago", "1 hour ago")
    """
    if kill_time.tzinfo is None:
        kill_time = kill_time.replace(tzinfo=timezone.utc)
    now = now or datetime.now(tz=timezone.utc)

    seconds = int((now - kill_time).total_seconds())

    # Feed clocks can run slightly ahead
    if seconds < 0:
        return "just now"

    if seconds < 60:
        return f"{seconds} sec ago"
    elif seconds < 3600:
        return f"{seconds // 60} min ago"
    elif seconds < 86400:
        hours = seconds // 3600
        return f"{hours} hour{'s' if hours != 1 else ''} ago"
    else:
        days = seconds // 86400
        return f"{days} day{'s' if days != 1 else ''} ago"


def isk_color(value: float | None) -> int:
    for threshold, color in ISK_COLORS:
        if value is not None and value >= threshold:
            return color
    return ISK_COLOR_FLOOR


def zkillboard_url(kind: str, entity_id: int) -> str:
    return f"{ZKILLBOARD_URL}/{kind}/{entity_id}/"


def ship_render_url(ship_type_id: int, size: int = 128) -> str:
    return f"{IMAGE_SERVER_URL}/types/{ship_type_id}/render?size={size}"


def corporation_logo_url(corporation_id: int, size: int = 64) -> str:
    return f"{IMAGE_SERVER_URL}/corporations/{corporation_id}/logo?size={size}"


def _pilot(participant: Participant) -> str:
    name = participant.display(EntityKind.CHARACTER)
    if participant.character_id is not None:
        return f"**[{name}]({zkillboard_url('character', participant.character_id)})**"
    return f"**{name}**"


def _affiliation(participant: Participant) -> str:
    corp = participant.display(EntityKind.CORPORATION)
    if participant.alliance_id is not None:
        return f"{corp} / {participant.display(EntityKind.ALLIANCE)}"
    return corp


@dataclass
class KillmailFormatter:
    """
    Formats killmails as notification documents.

    The tracked role (victim or attacker of a tracked character) picks
    the loss/kill color; system-channel and untracked notifications are
    colored by ISK value.
    """

    def format(
        self,
        killmail: Killmail,
        channel_kind: ChannelKind = ChannelKind.DEFAULT,
        tracked_role: str | None = None,
    ) -> NotificationDocument:
        """
        Render a killmail for one kind of channel.

        Args:
            killmail: Enriched killmail
            channel_kind: Channel the document is destined for
            tracked_role: "victim", "attacker", or None

        Returns:
            NotificationDocument

        Raises:
            FormatError: If the killmail lacks the data needed to render it
        """
        if killmail.victim is None:
            raise FormatError(f"Kill {killmail.killmail_id} has no victim")

        victim = killmail.victim
        ship = victim.display(EntityKind.SHIP_TYPE)
        system = killmail.system_display

        if channel_kind == ChannelKind.CHARACTER:
            title = f"{victim.display(EntityKind.CHARACTER)} lost a {ship} in {system}"
        else:
            title = f"Ship destroyed in {system}"

        if channel_kind != ChannelKind.SYSTEM and tracked_role == "victim":
            color = COLORS["loss"]
        elif channel_kind != ChannelKind.SYSTEM and tracked_role == "attacker":
            color = COLORS["kill"]
        else:
            color = isk_color(killmail.total_value)

        fields = [
            DocumentField("Value", f"{format_isk(killmail.total_value)} ISK"),
            DocumentField("Attackers", str(killmail.attacker_count)),
            DocumentField("System", system),
            DocumentField("Victim", _affiliation(victim), inline=False),
        ]
        final_blow = killmail.final_blow
        if final_blow is not None:
            fields.append(
                DocumentField(
                    "Final Blow",
                    f"{final_blow.display(EntityKind.CHARACTER)} "
                    f"({final_blow.display(EntityKind.SHIP_TYPE)})",
                    inline=False,
                )
            )

        author_corp = victim.corporation_id
        if tracked_role == "attacker" and final_blow is not None:
            author_corp = final_blow.corporation_id
        author = DocumentAuthor(
            name="Loss" if tracked_role == "victim" else "Kill",
            icon_url=corporation_logo_url(author_corp) if author_corp else None,
            url=zkillboard_url("kill", killmail.killmail_id),
        )

        return NotificationDocument(
            title=title,
            description=self._description(killmail),
            color=color,
            fields=fields,
            url=zkillboard_url("kill", killmail.killmail_id),
            thumbnail_url=(
                ship_render_url(victim.ship_type_id) if victim.ship_type_id is not None else None
            ),
            author=author,
            footer=f"Kill ID: {killmail.killmail_id}",
            timestamp=killmail.kill_time,
        )

    def _description(self, killmail: Killmail) -> str:
        victim = killmail.victim
        main = (
            f"{_pilot(victim)} ({victim.display(EntityKind.CORPORATION)}) lost their "
            f"**{victim.display(EntityKind.SHIP_TYPE)}** to "
        )

        final_blow = killmail.final_blow
        if final_blow is None:
            main += "unknown attackers."
        else:
            attacker = _pilot(final_blow) if not final_blow.is_npc else "an NPC"
            main += f"{attacker} flying in a **{final_blow.display(EntityKind.SHIP_TYPE)}**"
            top = killmail.top_damage
            if top is not None and top is not final_blow and not top.is_npc:
                main += (
                    f", Top Damage was done by {_pilot(top)} flying in a "
                    f"**{top.display(EntityKind.SHIP_TYPE)}**"
                )
            others = killmail.attacker_count - 1
            main += " solo." if others == 0 else f", and {others} others."

        parts = [main]
        if killmail.kill_time is not None:
            when = format_time_ago(killmail.kill_time)
            if killmail.total_value:
                parts.append(f"Value: {format_isk(killmail.total_value)} ISK • {when}")
            else:
                parts.append(when)
        return "\n\n".join(parts)
