"""
Kill Notifier Exceptions

Errors raised at component seams. Each carries enough context for a
log line; none of them escape a single event's unit of work.
"""

from __future__ import annotations

from typing import Optional


class NotifierError(Exception):
    """Base class for all kill notifier errors."""


class InvalidPayloadError(NotifierError):
    """Raw killmail payload cannot be turned into a canonical killmail."""

    def __init__(self, reason: str, payload_keys: Optional[list[str]] = None) -> None:
        self.reason = reason
        self.payload_keys = payload_keys or []
        super().__init__(reason)


class ResolutionError(NotifierError):
    """
    Name lookup failed.

    Carries the HTTP status (when there was one) so retry policy can
    classify it.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        retry_after: Optional[float] = None,
        original_error: Optional[Exception] = None,
    ) -> None:
        self.message = message
        self.status_code = status_code
        self.retry_after = retry_after
        self.original_error = original_error
        super().__init__(message)


class RetryableResolutionError(ResolutionError):
    """Transient lookup failure (timeout, 5xx, rate limit, network)."""


class NonRetryableResolutionError(ResolutionError):
    """Permanent lookup failure (404, other 4xx)."""


class CircuitOpenError(ResolutionError):
    """Lookup refused locally because the upstream is considered down."""


class DeliveryError(NotifierError):
    """Transport failure while delivering to a channel."""

    def __init__(self, message: str, channel_id: Optional[str] = None) -> None:
        self.channel_id = channel_id
        super().__init__(message)


class FormatError(NotifierError):
    """Killmail could not be rendered into a notification document."""


class StoreError(NotifierError):
    """Tracking, deduplication or killmail store failure."""
