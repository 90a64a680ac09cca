"""
Discord Channel HTTP Client.

Posts notification documents to Discord channels through the bot API.
Server errors, timeouts and connection errors are retried with
exponential backoff (tenacity); rate limits and permission errors are
returned to the caller untouched.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ....core.constants import DISCORD_API_BASE_URL
from ....core.logging import get_logger
from ..models import NotificationDocument, SendResult

logger = get_logger(__name__)

# Discord embed limits
TITLE_LIMIT = 256
DESCRIPTION_LIMIT = 4096
FIELD_NAME_LIMIT = 256
FIELD_VALUE_LIMIT = 1024
FIELD_COUNT_LIMIT = 25


class _TransientSendError(Exception):
    """Attempt failed in a way worth retrying."""

    def __init__(self, result: SendResult) -> None:
        self.result = result
        super().__init__(result.error)


def to_embed(document: NotificationDocument) -> dict[str, Any]:
    """Translate a notification document into a Discord embed, truncated to API limits."""
    embed: dict[str, Any] = {
        "title": document.title[:TITLE_LIMIT],
        "description": document.description[:DESCRIPTION_LIMIT],
        "color": document.color,
    }
    if document.url:
        embed["url"] = document.url
    if document.fields:
        embed["fields"] = [
            {
                "name": f.name[:FIELD_NAME_LIMIT],
                "value": f.value[:FIELD_VALUE_LIMIT],
                "inline": f.inline,
            }
            for f in document.fields[:FIELD_COUNT_LIMIT]
        ]
    if document.thumbnail_url:
        embed["thumbnail"] = {"url": document.thumbnail_url}
    if document.author:
        embed["author"] = {
            key: value
            for key, value in (
                ("name", document.author.name),
                ("icon_url", document.author.icon_url),
                ("url", document.author.url),
            )
            if value
        }
    if document.footer:
        embed["footer"] = {"text": document.footer}
    if document.timestamp:
        embed["timestamp"] = document.timestamp.isoformat()
    return embed


@dataclass
class DiscordChannelClient:
    """
    Bot API client for posting channel messages.

    Usage:
        client = DiscordChannelClient.from_settings(settings)
        result = await client.deliver("123456789", document)
        await client.close()
    """

    bot_token: str
    base_url: str = DISCORD_API_BASE_URL
    timeout: float = 30.0
    max_retries: int = 3
    base_delay: float = 1.0
    sleep: Callable[[float], Awaitable[Any]] = field(default=asyncio.sleep, repr=False)

    sent: int = 0
    failed: int = 0
    consecutive_failures: int = 0
    last_success: datetime | None = None
    last_failure: datetime | None = None

    _client: httpx.AsyncClient | None = field(default=None, repr=False)

    @classmethod
    def from_settings(cls, settings: Any) -> DiscordChannelClient:
        if not settings.discord_bot_token:
            raise ValueError("KILL_NOTIFIER_DISCORD_BOT_TOKEN is not set")
        return cls(
            bot_token=settings.discord_bot_token,
            base_url=settings.discord_api_base_url,
            timeout=settings.delivery_timeout_seconds,
        )

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                headers={"Authorization": f"Bot {self.bot_token}"},
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def deliver(self, channel_id: str, document: NotificationDocument) -> SendResult:
        """Post a document to a channel as a single embed."""
        return await self.send(channel_id, {"embeds": [to_embed(document)]})

    async def send(self, channel_id: str, payload: dict[str, Any]) -> SendResult:
        """
        Send a raw message payload to a channel.

        5xx responses, timeouts and connection errors are retried up to
        max_retries attempts (base_delay, then doubling). A 429 returns
        immediately with retry_after set; other 4xx return immediately.

        Args:
            channel_id: Discord channel id
            payload: Discord message payload

        Returns:
            SendResult describing the final attempt
        """
        url = f"{self.base_url}/channels/{channel_id}/messages"
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=self.base_delay, exp_base=2, min=0),
            retry=retry_if_exception_type(_TransientSendError),
            before_sleep=self._log_retry,
            reraise=True,
            sleep=self.sleep,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    result = await self._post(url, channel_id, payload)
        except _TransientSendError as e:
            result = SendResult(
                success=False,
                status_code=e.result.status_code,
                error=f"{e.result.error} after {self.max_retries} attempts",
            )

        now = datetime.now(timezone.utc)
        if result.success:
            self.sent += 1
            self.consecutive_failures = 0
            self.last_success = now
        else:
            self.failed += 1
            self.consecutive_failures += 1
            self.last_failure = now
        return result

    async def _post(self, url: str, channel_id: str, payload: dict[str, Any]) -> SendResult:
        try:
            response = await self._http().post(url, json=payload)
        except httpx.TimeoutException as e:
            raise _TransientSendError(SendResult(success=False, error="Timeout")) from e
        except httpx.RequestError as e:
            raise _TransientSendError(SendResult(success=False, error=f"Request error: {e}")) from e

        status = response.status_code
        if status in (200, 201, 204):
            return SendResult(success=True, status_code=status)

        if status == 429:
            retry_after = float(response.headers.get("Retry-After", "5"))
            logger.warning(
                "Discord rate limited on channel %s, retry after %.1fs", channel_id, retry_after
            )
            return SendResult(
                success=False, status_code=429, retry_after=retry_after, error="Rate limited"
            )

        if status >= 500:
            raise _TransientSendError(
                SendResult(success=False, status_code=status, error=f"Server error HTTP {status}")
            )

        if status in (401, 403, 404):
            error = f"Channel {channel_id} rejected the bot (HTTP {status})"
            logger.warning(error)
        else:
            error = f"HTTP {status}: {response.text[:200]}"
        return SendResult(success=False, status_code=status, error=error)

    @staticmethod
    def _log_retry(retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        logger.warning("Discord send failed (%s), retrying in %.1fs", exc, delay)

    @property
    def success_rate(self) -> float:
        total = self.sent + self.failed
        if total == 0:
            return 1.0
        return self.sent / total

    def get_metrics(self) -> dict[str, Any]:
        """Get client metrics for status reporting."""
        return {
            "total_sent": self.sent,
            "total_failed": self.failed,
            "success_rate": round(self.success_rate, 3),
            "consecutive_failures": self.consecutive_failures,
            "last_success": self.last_success.isoformat() if self.last_success else None,
            "last_failure": self.last_failure.isoformat() if self.last_failure else None,
        }
