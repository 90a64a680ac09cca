"""
Tests for centralized configuration module.
"""

from __future__ import annotations

import os
from pathlib import Path
from unittest import mock

import pytest
from pydantic import ValidationError

from kill_notifier.core.config import (
    NotifierSettings,
    get_settings,
    is_debug_enabled,
    reset_settings,
)


class TestNotifierSettings:
    """Test NotifierSettings class."""

    def test_default_values(self):
        """Defaults match the documented behavior."""
        with mock.patch.dict(os.environ, {}, clear=True):
            settings = NotifierSettings()

            assert settings.log_level == "WARNING"
            assert settings.debug is False
            assert settings.log_json is False
            assert settings.notifications_enabled is True
            assert settings.kill_notifications_enabled is True
            assert settings.discord_system_kill_channel_id is None
            assert settings.discord_character_kill_channel_id is None
            assert settings.wormhole_only_kill_notifications is False
            assert settings.dedup_ttl_seconds == 1800.0
            assert settings.resolution_max_attempts == 3
            assert settings.resolution_base_delay == 0.1
            assert settings.system_reverify_attempts == 5
            assert settings.backpressure_policy == "block"
            assert settings.killmail_db_path is None

    def test_entity_ttl_defaults(self):
        """Systems and ship types outlive characters, which outlive corps."""
        with mock.patch.dict(os.environ, {}, clear=True):
            settings = NotifierSettings()

            assert settings.system_name_ttl_seconds == 30 * 86400
            assert settings.ship_type_name_ttl_seconds == 30 * 86400
            assert settings.character_name_ttl_seconds == 7 * 86400
            assert settings.corporation_name_ttl_seconds == 86400

    def test_log_level_case_insensitive(self):
        """Log level is normalized to upper case."""
        with mock.patch.dict(os.environ, {"KILL_NOTIFIER_LOG_LEVEL": "debug"}, clear=True):
            settings = NotifierSettings()
            assert settings.log_level == "DEBUG"
            assert settings.effective_log_level == "DEBUG"

    def test_debug_legacy_flag(self):
        """Legacy debug flag enables DEBUG when level is left at default."""
        with mock.patch.dict(os.environ, {"KILL_NOTIFIER_DEBUG": "1"}, clear=True):
            settings = NotifierSettings()
            assert settings.effective_log_level == "DEBUG"

    def test_debug_does_not_override_explicit_level(self):
        """Explicit log level wins over the debug flag."""
        env = {"KILL_NOTIFIER_LOG_LEVEL": "ERROR", "KILL_NOTIFIER_DEBUG": "1"}
        with mock.patch.dict(os.environ, env, clear=True):
            settings = NotifierSettings()
            assert settings.effective_log_level == "ERROR"

    def test_channels_from_env(self):
        """Channel ids load from prefixed variables."""
        env = {
            "KILL_NOTIFIER_DISCORD_CHANNEL_ID": "100",
            "KILL_NOTIFIER_DISCORD_SYSTEM_KILL_CHANNEL_ID": "200",
            "KILL_NOTIFIER_DISCORD_CHARACTER_KILL_CHANNEL_ID": "300",
        }
        with mock.patch.dict(os.environ, env, clear=True):
            settings = NotifierSettings()
            assert settings.discord_channel_id == "100"
            assert settings.discord_system_kill_channel_id == "200"
            assert settings.discord_character_kill_channel_id == "300"

    def test_backpressure_policy_normalized(self):
        """Policy accepts any case."""
        with mock.patch.dict(os.environ, {"KILL_NOTIFIER_BACKPRESSURE_POLICY": "REJECT"}, clear=True):
            assert NotifierSettings().backpressure_policy == "reject"

    def test_invalid_backpressure_policy(self):
        """Unknown policies are rejected at load time."""
        with mock.patch.dict(os.environ, {"KILL_NOTIFIER_BACKPRESSURE_POLICY": "drop"}, clear=True):
            with pytest.raises(ValidationError):
                NotifierSettings()

    def test_paths_parsed(self, tmp_path: Path):
        """Path settings become Path objects."""
        env = {"KILL_NOTIFIER_KILLMAIL_DB_PATH": str(tmp_path / "k.db")}
        with mock.patch.dict(os.environ, env, clear=True):
            settings = NotifierSettings()
            assert settings.killmail_db_path == tmp_path / "k.db"


class TestSingleton:
    """Test settings caching."""

    def test_get_settings_cached(self):
        """get_settings returns the same instance until reset."""
        with mock.patch.dict(os.environ, {}, clear=True):
            assert get_settings() is get_settings()

    def test_reset_reloads(self):
        """reset_settings picks up environment changes."""
        with mock.patch.dict(os.environ, {}, clear=True):
            assert get_settings().wormhole_only_kill_notifications is False

        with mock.patch.dict(
            os.environ, {"KILL_NOTIFIER_WORMHOLE_ONLY_KILL_NOTIFICATIONS": "true"}, clear=True
        ):
            reset_settings()
            assert get_settings().wormhole_only_kill_notifications is True

    def test_is_debug_enabled(self):
        with mock.patch.dict(os.environ, {"KILL_NOTIFIER_LOG_LEVEL": "DEBUG"}, clear=True):
            reset_settings()
            assert is_debug_enabled() is True
