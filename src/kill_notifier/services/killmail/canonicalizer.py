"""
Killmail Canonicalization.

Turns raw feed payloads into canonical Killmail objects. Accepts:
- Flat ESI / websocket documents: {"killmail_id": ..., "solar_system_id": ..., "victim": {...}}
- RedisQ packages: {"killID": ..., "killmail": {...}, "zkb": {...}}, optionally
  wrapped as {"package": {...}}

Extraction is defensive: numeric fields may arrive as ints or numeric
strings, optional fields that fail to parse become None, and names the
feed already supplied are kept as resolved names.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

from ...core.errors import InvalidPayloadError
from ...core.logging import get_logger
from .models import Killmail, Participant, ResolvedName

logger = get_logger(__name__)

# Alias lists, tried in order
KILLMAIL_ID_KEYS = ("killmail_id", "killID", "kill_id")
SYSTEM_ID_KEYS = ("solar_system_id", "system_id")
SYSTEM_NAME_KEYS = ("solar_system_name", "system_name")
KILL_TIME_KEYS = ("killmail_time", "kill_time")


def _first(data: Mapping[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return None


def _to_int(value: Any) -> int | None:
    """Parse an int from an int or numeric string; None when not possible."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def _to_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    return bool(value)


def _to_datetime(value: Any) -> datetime | None:
    """Parse ESI ISO-8601 times (2024-01-15T12:34:56Z) or unix seconds."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        try:
            dt = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
        return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)
    return None


def _name(value: Any) -> ResolvedName | None:
    """Names supplied by the feed count as resolved when non-empty."""
    if isinstance(value, str) and value.strip():
        return ResolvedName.ok(value.strip())
    return None


def _participant(data: Mapping[str, Any]) -> Participant:
    return Participant(
        character_id=_to_int(data.get("character_id")),
        corporation_id=_to_int(data.get("corporation_id")),
        alliance_id=_to_int(data.get("alliance_id")),
        ship_type_id=_to_int(data.get("ship_type_id")),
        character_name=_name(data.get("character_name")),
        corporation_name=_name(data.get("corporation_name")),
        alliance_name=_name(data.get("alliance_name")),
        ship_name=_name(data.get("ship_name") or data.get("ship_type_name")),
        final_blow=_to_bool(data.get("final_blow", False)),
        damage=_to_int(data.get("damage_done", data.get("damage_taken"))),
    )


def _unwrap(raw: Mapping[str, Any]) -> tuple[Mapping[str, Any], Mapping[str, Any], Any]:
    """
    Locate the killmail body, the zkb block, and the id in any accepted shape.

    Returns:
        (body, zkb, raw id value)
    """
    package = raw.get("package")
    if isinstance(package, Mapping):
        raw = package

    zkb = raw.get("zkb")
    zkb = zkb if isinstance(zkb, Mapping) else {}

    nested = raw.get("killmail")
    if isinstance(nested, Mapping):
        # RedisQ: killID at package level, body nested
        raw_id = _first(raw, KILLMAIL_ID_KEYS)
        if raw_id is None:
            raw_id = _first(nested, KILLMAIL_ID_KEYS)
        return nested, zkb, raw_id

    return raw, zkb, _first(raw, KILLMAIL_ID_KEYS)


def canonicalize(raw: Any) -> Killmail:
    """
    Build a canonical Killmail from a raw feed payload.

    Args:
        raw: Decoded JSON document from the feed

    Returns:
        Killmail with ids, participants, and any names already present

    Raises:
        InvalidPayloadError: If the payload is not a mapping or has no usable id
    """
    if not isinstance(raw, Mapping):
        raise InvalidPayloadError(f"payload is {type(raw).__name__}, expected an object")

    body, zkb, raw_id = _unwrap(raw)

    killmail_id = _to_int(raw_id)
    if killmail_id is None:
        raise InvalidPayloadError(
            "missing killmail id" if raw_id is None else f"unparsable killmail id {raw_id!r}",
            payload_keys=sorted(str(k) for k in raw.keys()),
        )

    victim_data = body.get("victim")
    victim = _participant(victim_data) if isinstance(victim_data, Mapping) else Participant()

    attackers_data = body.get("attackers")
    attackers: list[Participant] = []
    if isinstance(attackers_data, list):
        attackers = [_participant(a) for a in attackers_data if isinstance(a, Mapping)]

    total_value = _to_float(zkb.get("totalValue"))
    if total_value is None:
        total_value = _to_float(body.get("total_value") or body.get("value"))

    killmail = Killmail(
        killmail_id=killmail_id,
        solar_system_id=_to_int(_first(body, SYSTEM_ID_KEYS)),
        system_name=_name(_first(body, SYSTEM_NAME_KEYS)),
        kill_time=_to_datetime(_first(body, KILL_TIME_KEYS)),
        victim=victim,
        attackers=attackers,
        total_value=total_value,
        zkb_hash=zkb.get("hash") if isinstance(zkb.get("hash"), str) else None,
        raw=dict(raw),
    )

    logger.debug(
        "Canonicalized kill %d (system=%s, attackers=%d)",
        killmail.killmail_id,
        killmail.solar_system_id,
        killmail.attacker_count,
    )
    return killmail
