"""
Killmail Data Models.

Canonical killmail, routing decision, notification document, and
delivery outcome types shared by every pipeline stage.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from ...core.constants import is_wormhole_system


class EntityKind(Enum):
    """Kinds of entity whose names the enricher resolves."""

    CHARACTER = "character"
    CORPORATION = "corporation"
    ALLIANCE = "alliance"
    SHIP_TYPE = "ship_type"
    SYSTEM = "system"


# Display sentinels for names that could not be resolved
SENTINELS: dict[EntityKind, str] = {
    EntityKind.CHARACTER: "Unknown Pilot",
    EntityKind.CORPORATION: "Unknown Corp",
    EntityKind.ALLIANCE: "Unknown Alliance",
    EntityKind.SHIP_TYPE: "Unknown Ship",
    EntityKind.SYSTEM: "Unknown System",
}

# Participant attribute pairs (id field, name field) per entity kind
PARTICIPANT_FIELDS: dict[EntityKind, tuple[str, str]] = {
    EntityKind.CHARACTER: ("character_id", "character_name"),
    EntityKind.CORPORATION: ("corporation_id", "corporation_name"),
    EntityKind.ALLIANCE: ("alliance_id", "alliance_name"),
    EntityKind.SHIP_TYPE: ("ship_type_id", "ship_name"),
}


@dataclass(frozen=True)
class ResolvedName:
    """
    A display name together with whether it came from a real lookup.

    Unresolved names carry the sentinel text for their kind so they can
    be rendered directly, but the flag keeps them distinguishable from
    a real name that happens to read the same.
    """

    name: str
    resolved: bool = True

    @classmethod
    def ok(cls, name: str) -> ResolvedName:
        return cls(name=name, resolved=True)

    @classmethod
    def unresolved(cls, kind: EntityKind) -> ResolvedName:
        return cls(name=SENTINELS[kind], resolved=False)

    def __str__(self) -> str:
        return self.name


def is_resolved(value: ResolvedName | None) -> bool:
    """True when a name slot holds a successfully resolved name."""
    return value is not None and value.resolved


@dataclass
class Participant:
    """Victim or attacker on a killmail."""

    character_id: int | None = None
    corporation_id: int | None = None
    alliance_id: int | None = None
    ship_type_id: int | None = None
    character_name: ResolvedName | None = None
    corporation_name: ResolvedName | None = None
    alliance_name: ResolvedName | None = None
    ship_name: ResolvedName | None = None
    system_name: ResolvedName | None = None
    final_blow: bool = False
    damage: int | None = None

    def id_for(self, kind: EntityKind) -> int | None:
        """Get the entity id this participant references for a kind."""
        return getattr(self, PARTICIPANT_FIELDS[kind][0])

    def name_for(self, kind: EntityKind) -> ResolvedName | None:
        return getattr(self, PARTICIPANT_FIELDS[kind][1])

    def set_name(self, kind: EntityKind, value: ResolvedName) -> None:
        setattr(self, PARTICIPANT_FIELDS[kind][1], value)

    def display(self, kind: EntityKind) -> str:
        """Name for display, falling back to the kind's sentinel."""
        value = self.name_for(kind)
        return value.name if value is not None else SENTINELS[kind]

    @property
    def is_npc(self) -> bool:
        """Attackers without a character id are NPCs or structures."""
        return self.character_id is None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "character_id": self.character_id,
            "corporation_id": self.corporation_id,
            "alliance_id": self.alliance_id,
            "ship_type_id": self.ship_type_id,
            "final_blow": self.final_blow,
            "damage": self.damage,
        }
        for kind, (_, name_field) in PARTICIPANT_FIELDS.items():
            value = getattr(self, name_field)
            data[name_field] = value.name if value is not None else None
        return data


@dataclass
class Killmail:
    """
    Canonical killmail.

    The killmail id is fixed once assigned. Names start out as None (or
    as values already supplied by the feed) and are filled by enrichment.
    """

    killmail_id: int
    solar_system_id: int | None = None
    system_name: ResolvedName | None = None
    kill_time: datetime | None = None
    victim: Participant = field(default_factory=Participant)
    attackers: list[Participant] = field(default_factory=list)
    total_value: float | None = None
    zkb_hash: str | None = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    def __setattr__(self, name: str, value: Any) -> None:
        if name == "killmail_id" and "killmail_id" in self.__dict__:
            raise AttributeError("killmail_id cannot be changed once set")
        super().__setattr__(name, value)

    @property
    def participants(self) -> list[Participant]:
        """Victim followed by attackers in feed order."""
        return [self.victim, *self.attackers]

    @property
    def final_blow(self) -> Participant | None:
        return next((a for a in self.attackers if a.final_blow), None)

    @property
    def top_damage(self) -> Participant | None:
        """Attacker with the highest recorded damage."""
        scored = [a for a in self.attackers if a.damage is not None]
        if not scored:
            return None
        return max(scored, key=lambda a: a.damage or 0)

    @property
    def attacker_count(self) -> int:
        return len(self.attackers)

    @property
    def character_ids(self) -> list[int]:
        """Character ids of every participant, victim first, without repeats."""
        seen: dict[int, None] = {}
        for p in self.participants:
            if p.character_id is not None:
                seen.setdefault(p.character_id, None)
        return list(seen)

    @property
    def corporation_ids(self) -> list[int]:
        seen: dict[int, None] = {}
        for p in self.participants:
            if p.corporation_id is not None:
                seen.setdefault(p.corporation_id, None)
        return list(seen)

    @property
    def is_wormhole(self) -> bool:
        return is_wormhole_system(self.solar_system_id)

    @property
    def system_display(self) -> str:
        if self.system_name is not None:
            return self.system_name.name
        return SENTINELS[EntityKind.SYSTEM]

    def unresolved_fields(self) -> list[str]:
        """
        List name slots that reference an id but hold no resolved name.

        Returns:
            Dotted paths such as "victim.character_name" or "attackers[2].ship_name"
        """
        missing: list[str] = []
        if self.solar_system_id is not None and not is_resolved(self.system_name):
            missing.append("system_name")

        labelled = [("victim", self.victim)] + [
            (f"attackers[{i}]", a) for i, a in enumerate(self.attackers)
        ]
        for label, participant in labelled:
            for kind, (id_field, name_field) in PARTICIPANT_FIELDS.items():
                if getattr(participant, id_field) is None:
                    continue
                if not is_resolved(getattr(participant, name_field)):
                    missing.append(f"{label}.{name_field}")
        return missing

    def to_dict(self) -> dict[str, Any]:
        """Serialize for persistence and structured logs."""
        return {
            "killmail_id": self.killmail_id,
            "solar_system_id": self.solar_system_id,
            "system_name": self.system_name.name if self.system_name else None,
            "kill_time": self.kill_time.isoformat() if self.kill_time else None,
            "victim": self.victim.to_dict(),
            "attackers": [a.to_dict() for a in self.attackers],
            "total_value": self.total_value,
            "zkb_hash": self.zkb_hash,
        }


# =============================================================================
# Routing
# =============================================================================


class ChannelKind(Enum):
    """Which configured channel a target came from."""

    DEFAULT = "default"
    SYSTEM = "system"
    CHARACTER = "character"


@dataclass(frozen=True)
class ChannelTarget:
    """A channel chosen for delivery and why."""

    channel_id: str
    kind: ChannelKind
    reason: str


@dataclass
class Decision:
    """
    Outcome of notification determination for one killmail.

    An empty target list means nothing is delivered; reasons always
    explain why.
    """

    killmail_id: int
    targets: list[ChannelTarget] = field(default_factory=list)
    reasons: list[str] = field(default_factory=list)
    duplicate: bool = False
    tracked_role: str | None = None  # "victim", "attacker", or None

    @classmethod
    def skip(cls, killmail_id: int, reason: str, duplicate: bool = False) -> Decision:
        return cls(killmail_id=killmail_id, reasons=[reason], duplicate=duplicate)

    @property
    def should_notify(self) -> bool:
        return bool(self.targets)

    @property
    def channel_ids(self) -> list[str]:
        return [t.channel_id for t in self.targets]


# =============================================================================
# Notification Document
# =============================================================================


@dataclass(frozen=True)
class DocumentField:
    name: str
    value: str
    inline: bool = True


@dataclass(frozen=True)
class DocumentAuthor:
    name: str
    icon_url: str | None = None
    url: str | None = None


@dataclass
class NotificationDocument:
    """
    Platform-agnostic rendered notification.

    Delivery clients translate this into their own wire format.
    """

    title: str
    description: str
    color: int
    fields: list[DocumentField] = field(default_factory=list)
    url: str | None = None
    thumbnail_url: str | None = None
    author: DocumentAuthor | None = None
    footer: str | None = None
    timestamp: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "color": self.color,
            "fields": [
                {"name": f.name, "value": f.value, "inline": f.inline} for f in self.fields
            ],
            "url": self.url,
            "thumbnail_url": self.thumbnail_url,
            "author": (
                {
                    "name": self.author.name,
                    "icon_url": self.author.icon_url,
                    "url": self.author.url,
                }
                if self.author
                else None
            ),
            "footer": self.footer,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }


# =============================================================================
# Delivery
# =============================================================================

FAILURE_DELIVERY = "delivery_error"
FAILURE_FORMAT = "format_error"


@dataclass
class SendResult:
    """Result of one delivery attempt as reported by a delivery client."""

    success: bool
    status_code: int | None = None
    error: str | None = None
    retry_after: float | None = None

    @property
    def is_rate_limited(self) -> bool:
        return self.status_code == 429


@dataclass
class DeliveryOutcome:
    """Result of delivering one document to one channel."""

    channel_id: str
    killmail_id: int
    success: bool
    failure_reason: str | None = None
    failure_class: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
