"""
Kill Notifier Centralized Configuration

Provides validated, type-safe access to all environment variables using Pydantic Settings.

Usage:
    from kill_notifier.core.config import get_settings

    settings = get_settings()
    if settings.wormhole_only_kill_notifications:
        ...

Environment Variables:
    KILL_NOTIFIER_LOG_LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    KILL_NOTIFIER_DEBUG: Legacy debug flag (enables DEBUG level if set)
    KILL_NOTIFIER_LOG_JSON: Output logs as JSON
    KILL_NOTIFIER_NOTIFICATIONS_ENABLED: Master notification switch
    KILL_NOTIFIER_DISCORD_CHANNEL_ID: Default delivery channel
    KILL_NOTIFIER_DISCORD_BOT_TOKEN: Bot token for channel delivery
    KILL_NOTIFIER_WORMHOLE_ONLY_KILL_NOTIFICATIONS: Restrict system channel to J-space
    KILL_NOTIFIER_KILLMAIL_DB_PATH: Enables best-effort killmail persistence
    KILL_NOTIFIER_TRACKING_FILE: YAML file with tracked systems/characters
"""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import DISCORD_API_BASE_URL, ESI_BASE_URL


def _find_project_env_file() -> Path | None:
    """
    Find .env file by searching upward for pyproject.toml.

    Returns:
        Path to .env if found, None otherwise
    """
    current = Path(__file__).resolve().parent

    for _ in range(10):
        if (current / "pyproject.toml").exists():
            env_file = current / ".env"
            return env_file if env_file.exists() else None
        parent = current.parent
        if parent == current:
            break
        current = parent

    return None


_ENV_FILE = _find_project_env_file()

DAY = 86400


class NotifierSettings(BaseSettings):
    """
    Kill notifier settings with validation.

    Environment variables are loaded with the KILL_NOTIFIER_ prefix.
    """

    model_config = SettingsConfigDict(
        env_prefix="KILL_NOTIFIER_",
        env_file=_ENV_FILE,
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # =========================================================================
    # Logging Configuration
    # =========================================================================

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="WARNING",
        description="Log level for notifier components",
    )

    debug: bool = Field(
        default=False,
        description="Legacy debug flag (enables DEBUG level if set)",
    )

    log_json: bool = Field(
        default=False,
        description="Output logs in JSON format for machine parsing",
    )

    # =========================================================================
    # Notification Gates
    # =========================================================================

    notifications_enabled: bool = Field(default=True, description="Master switch")
    kill_notifications_enabled: bool = Field(default=True, description="Kill category switch")
    system_kill_notifications_enabled: bool = Field(default=True)
    character_kill_notifications_enabled: bool = Field(default=True)

    # =========================================================================
    # Channels
    # =========================================================================

    discord_channel_id: str = Field(
        default="",
        description="Default channel, used when no dedicated channel applies",
    )

    discord_system_kill_channel_id: Optional[str] = Field(
        default=None,
        description="Dedicated channel for kills in tracked systems",
    )

    discord_character_kill_channel_id: Optional[str] = Field(
        default=None,
        description="Dedicated channel for kills involving tracked characters",
    )

    # =========================================================================
    # Filters
    # =========================================================================

    wormhole_only_kill_notifications: bool = Field(
        default=False,
        description="Only route system kills in wormhole space to the system channel",
    )

    corporation_exclusion_enabled: bool = Field(
        default=False,
        description="Suppress system channel when an excluded corporation is involved",
    )

    # =========================================================================
    # Deduplication
    # =========================================================================

    dedup_scope: str = Field(default="kill")

    dedup_ttl_seconds: float = Field(
        default=1800.0,
        gt=0,
        description="How long a notified killmail id suppresses repeats",
    )

    # =========================================================================
    # Enrichment
    # =========================================================================

    resolution_max_attempts: int = Field(default=3, ge=1)
    resolution_base_delay: float = Field(default=0.1, ge=0)
    system_reverify_attempts: int = Field(default=5, ge=0)

    system_name_ttl_seconds: float = Field(default=30 * DAY, gt=0)
    ship_type_name_ttl_seconds: float = Field(default=30 * DAY, gt=0)
    character_name_ttl_seconds: float = Field(default=7 * DAY, gt=0)
    corporation_name_ttl_seconds: float = Field(default=DAY, gt=0)
    alliance_name_ttl_seconds: float = Field(default=DAY, gt=0)

    # =========================================================================
    # External Calls
    # =========================================================================

    esi_base_url: str = Field(default=ESI_BASE_URL)
    esi_timeout_seconds: float = Field(default=10.0, gt=0)
    esi_connect_timeout_seconds: float = Field(default=2.5, gt=0)
    esi_breaker_failure_threshold: int = Field(
        default=5,
        ge=1,
        description="Consecutive transient ESI failures before the circuit opens",
    )
    esi_breaker_recovery_seconds: float = Field(default=30.0, gt=0)
    esi_error_limit_threshold: int = Field(
        default=20,
        ge=0,
        description="Open the ESI circuit when fewer errors remain in the window",
    )

    discord_bot_token: Optional[str] = Field(default=None)
    discord_api_base_url: str = Field(default=DISCORD_API_BASE_URL)
    delivery_timeout_seconds: float = Field(default=30.0, gt=0)

    # =========================================================================
    # Worker Pool
    # =========================================================================

    worker_count: int = Field(default=4, ge=1)
    queue_size: int = Field(default=1000, ge=1)
    backpressure_policy: Literal["block", "reject"] = Field(default="block")
    event_deadline_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Name resolution stops here and unresolved names fall back to sentinels",
    )
    event_grace_seconds: float = Field(
        default=5.0,
        ge=0,
        description="Extra time past the deadline before an event is abandoned",
    )

    # =========================================================================
    # Data Paths
    # =========================================================================

    killmail_db_path: Optional[Path] = Field(
        default=None,
        description="SQLite file for processed killmails (disabled when unset)",
    )

    tracking_file: Optional[Path] = Field(
        default=None,
        description="YAML file listing tracked systems and characters",
    )

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("log_level", mode="before")
    @classmethod
    def uppercase_log_level(cls, v: str) -> str:
        """Normalize log level to uppercase."""
        if isinstance(v, str):
            return v.upper()
        return v

    @field_validator("backpressure_policy", mode="before")
    @classmethod
    def lowercase_policy(cls, v: str) -> str:
        if isinstance(v, str):
            return v.lower()
        return v

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def effective_log_level(self) -> str:
        """
        Get effective log level, respecting legacy KILL_NOTIFIER_DEBUG.

        The debug flag only applies while log_level is left at its default.
        """
        if self.debug and self.log_level == "WARNING":
            return "DEBUG"
        return self.log_level

    @property
    def log_level_int(self) -> int:
        """Get effective log level as logging constant."""
        return getattr(logging, self.effective_log_level)


# =============================================================================
# Singleton Accessor
# =============================================================================


@lru_cache(maxsize=1)
def get_settings() -> NotifierSettings:
    """
    Get the singleton settings instance.

    Settings are loaded and validated on first access.

    Returns:
        NotifierSettings instance with validated configuration
    """
    return NotifierSettings()


def reset_settings() -> None:
    """
    Reset the settings cache (for testing).

    The next get_settings() call reloads from environment variables.
    """
    get_settings.cache_clear()


def is_debug_enabled() -> bool:
    """Check if debug logging is enabled."""
    return get_settings().effective_log_level == "DEBUG"
