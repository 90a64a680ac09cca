"""
Tests for the killmail notification formatter.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from kill_notifier.core.errors import FormatError
from kill_notifier.services.killmail.canonicalizer import canonicalize
from kill_notifier.services.killmail.models import (
    ChannelKind,
    EntityKind,
    Killmail,
    ResolvedName,
)
from kill_notifier.services.killmail.notifications.formatter import (
    COLORS,
    ISK_COLOR_FLOOR,
    KillmailFormatter,
    format_isk,
    format_time_ago,
    isk_color,
)


@pytest.fixture
def enriched(sample_esi_killmail, known_names) -> Killmail:
    """Sample kill with names filled in directly."""
    km = canonicalize(sample_esi_killmail)
    km.system_name = ResolvedName.ok("Jita")
    for participant in km.participants:
        for kind in (EntityKind.CHARACTER, EntityKind.CORPORATION, EntityKind.ALLIANCE, EntityKind.SHIP_TYPE):
            entity_id = participant.id_for(kind)
            if entity_id is not None:
                participant.set_name(kind, ResolvedName.ok(known_names[(kind, entity_id)]))
    return km


class TestFormatIsk:
    @pytest.mark.parametrize(
        "value, expected",
        [
            (None, "0"),
            (500, "500"),
            (45_000, "45.0K"),
            (150_000_000, "150.0M"),
            (1_500_000_000, "1.5B"),
        ],
    )
    def test_format(self, value, expected):
        assert format_isk(value) == expected


class TestFormatTimeAgo:
    NOW = datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)

    @pytest.mark.parametrize(
        "delta, expected",
        [
            (timedelta(seconds=30), "30 sec ago"),
            (timedelta(minutes=5), "5 min ago"),
            (timedelta(hours=1), "1 hour ago"),
            (timedelta(hours=3), "3 hours ago"),
            (timedelta(days=2), "2 days ago"),
            (timedelta(seconds=-10), "just now"),
        ],
    )
    def test_relative(self, delta, expected):
        assert format_time_ago(self.NOW - delta, now=self.NOW) == expected

    def test_naive_treated_as_utc(self):
        naive = datetime(2026, 1, 15, 11, 0, 0)
        assert format_time_ago(naive, now=self.NOW) == "1 hour ago"


class TestIskColor:
    def test_thresholds(self):
        assert isk_color(6_000_000_000) == 0xFF0000
        assert isk_color(150_000_000) == 0xFFFF00
        assert isk_color(1_000) == ISK_COLOR_FLOOR
        assert isk_color(None) == ISK_COLOR_FLOOR


class TestKillmailFormatter:
    """Tests for KillmailFormatter.format."""

    def test_default_document(self, enriched):
        doc = KillmailFormatter().format(enriched)

        assert doc.title == "Ship destroyed in Jita"
        assert doc.url == "https://zkillboard.com/kill/12345/"
        assert doc.footer == "Kill ID: 12345"
        assert doc.thumbnail_url == "https://images.evetech.net/types/17740/render?size=128"
        assert doc.timestamp == enriched.kill_time
        assert doc.color == 0xFFFF00

    def test_fields(self, enriched):
        doc = KillmailFormatter().format(enriched)
        fields = {f.name: f.value for f in doc.fields}

        assert fields["Value"] == "150.0M ISK"
        assert fields["Attackers"] == "2"
        assert fields["System"] == "Jita"
        assert fields["Victim"] == "Victim Corp"
        assert fields["Final Blow"] == "Attacker One (Brutix)"

    def test_description_names_participants(self, enriched):
        doc = KillmailFormatter().format(enriched)

        assert "Victim Pilot" in doc.description
        assert "**Hurricane**" in doc.description
        assert "Attacker One" in doc.description
        assert "and 1 others." in doc.description

    def test_character_channel_title(self, enriched):
        doc = KillmailFormatter().format(enriched, ChannelKind.CHARACTER, tracked_role="victim")

        assert doc.title == "Victim Pilot lost a Hurricane in Jita"
        assert doc.color == COLORS["loss"]
        assert doc.author.name == "Loss"

    def test_attacker_role_uses_kill_color(self, enriched):
        doc = KillmailFormatter().format(enriched, ChannelKind.CHARACTER, tracked_role="attacker")

        assert doc.color == COLORS["kill"]
        assert doc.author.name == "Kill"
        assert "98000002" in doc.author.icon_url

    def test_system_channel_ignores_role_color(self, enriched):
        doc = KillmailFormatter().format(enriched, ChannelKind.SYSTEM, tracked_role="victim")

        assert doc.color == isk_color(enriched.total_value)

    def test_unresolved_names_render_sentinels(self, sample_esi_killmail):
        km = canonicalize(sample_esi_killmail)
        km.system_name = ResolvedName.unresolved(EntityKind.SYSTEM)

        doc = KillmailFormatter().format(km, ChannelKind.CHARACTER)

        assert doc.title == "Unknown Pilot lost a Unknown Ship in Unknown System"
        assert "Unknown Corp" in doc.description

    def test_solo_npc_kill(self, make_killmail):
        km = canonicalize(make_killmail(attacker_character_ids=(None,)))

        doc = KillmailFormatter().format(km)

        assert "an NPC" in doc.description
        assert "solo." in doc.description

    def test_no_attackers(self):
        doc = KillmailFormatter().format(Killmail(killmail_id=5))

        assert "unknown attackers." in doc.description
        assert all(f.name != "Final Blow" for f in doc.fields)
        assert doc.thumbnail_url is None

    def test_missing_victim_raises(self):
        km = Killmail(killmail_id=5)
        km.victim = None

        with pytest.raises(FormatError):
            KillmailFormatter().format(km)

    def test_document_serializes(self, enriched):
        data = KillmailFormatter().format(enriched).to_dict()

        assert data["title"] == "Ship destroyed in Jita"
        assert data["fields"][0] == {"name": "Value", "value": "150.0M ISK", "inline": True}
        assert data["timestamp"].startswith("2026-01-15T12:34:56")
