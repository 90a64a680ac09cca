"""
ESI Name Resolution.

Resolves entity ids to display names against the public ESI endpoints.
One HTTP attempt per call; retry policy lives in the enricher so it can
be bounded by the per-event deadline.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Mapping
from typing import Any, Optional, Protocol, runtime_checkable

import httpx

from ...core.circuit_breaker import CircuitBreaker
from ...core.constants import ESI_BASE_URL, ESI_DATASOURCE, USER_AGENT
from ...core.errors import (
    CircuitOpenError,
    NonRetryableResolutionError,
    RetryableResolutionError,
)
from ...core.logging import get_logger
from ...core.retry import classify_status, parse_retry_after
from .models import EntityKind

logger = get_logger(__name__)


@runtime_checkable
class NameResolver(Protocol):
    """Anything that can turn an (kind, id) pair into a display name."""

    async def resolve(self, kind: EntityKind, entity_id: int) -> str:
        """
        Resolve a name.

        Raises:
            ResolutionError: On any failure; retryable subclasses mark
                transient failures
        """
        ...


ENDPOINTS: dict[EntityKind, str] = {
    EntityKind.CHARACTER: "/characters/{id}/",
    EntityKind.CORPORATION: "/corporations/{id}/",
    EntityKind.ALLIANCE: "/alliances/{id}/",
    EntityKind.SHIP_TYPE: "/universe/types/{id}/",
    EntityKind.SYSTEM: "/universe/systems/{id}/",
}


class EsiNameResolver:
    """
    Name resolver backed by ESI public endpoints.

    Must be used as an async context manager, or given an existing
    httpx.AsyncClient. Calls pass through a circuit breaker: repeated
    transient failures, or an error limit close to exhaustion, make the
    resolver refuse lookups with CircuitOpenError until ESI has had time
    to recover.

    Usage:
        async with EsiNameResolver() as resolver:
            name = await resolver.resolve(EntityKind.SYSTEM, 30000142)
    """

    def __init__(
        self,
        base_url: str = ESI_BASE_URL,
        timeout: float = 10.0,
        connect_timeout: float = 2.5,
        client: Optional[httpx.AsyncClient] = None,
        breaker: Optional[CircuitBreaker] = None,
        error_limit_threshold: int = 20,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize resolver.

        Args:
            base_url: ESI base URL
            timeout: Read timeout per request in seconds
            connect_timeout: Connect timeout in seconds
            client: Optional pre-built client (not closed by this object)
            breaker: Circuit breaker for the ESI host
            error_limit_threshold: Open the circuit when fewer errors remain
            clock: Monotonic clock (injected in tests)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.connect_timeout = connect_timeout
        self._client = client
        self._owns_client = client is None
        self._clock = clock
        self.breaker = breaker or CircuitBreaker(name="esi", clock=clock)
        self.error_limit_threshold = error_limit_threshold

        self._error_limit_remain: int = 100
        self._error_limit_reset: float = 0.0
        self.requests = 0
        self.failures = 0

    @classmethod
    def from_settings(cls, settings: Any) -> EsiNameResolver:
        return cls(
            base_url=settings.esi_base_url,
            timeout=settings.esi_timeout_seconds,
            connect_timeout=settings.esi_connect_timeout_seconds,
            breaker=CircuitBreaker(
                name="esi",
                failure_threshold=settings.esi_breaker_failure_threshold,
                recovery_timeout=settings.esi_breaker_recovery_seconds,
            ),
            error_limit_threshold=settings.esi_error_limit_threshold,
        )

    async def __aenter__(self) -> EsiNameResolver:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout, connect=self.connect_timeout),
                headers={"Accept": "application/json", "User-Agent": USER_AGENT},
            )
            self._owns_client = True
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _update_rate_limits(self, headers: Mapping[str, str]) -> None:
        """Track ESI error-limit headers; open the circuit when nearly spent."""
        reset_seconds = None
        reset = headers.get("x-esi-error-limit-reset")
        if reset is not None:
            try:
                reset_seconds = int(reset)
                self._error_limit_reset = self._clock() + reset_seconds
            except (ValueError, TypeError):
                pass
        remain = headers.get("x-esi-error-limit-remain")
        if remain is None:
            return
        try:
            self._error_limit_remain = int(remain)
        except (ValueError, TypeError):
            return

        if self._error_limit_remain < self.error_limit_threshold:
            self.breaker.force_open(
                reset_seconds if reset_seconds is not None else self.breaker.recovery_timeout,
                f"ESI error limit at {self._error_limit_remain}",
            )

    async def resolve(self, kind: EntityKind, entity_id: int) -> str:
        """
        Fetch the display name for an entity.

        Args:
            kind: Entity kind (selects the ESI endpoint)
            entity_id: Entity id

        Returns:
            Entity name

        Raises:
            CircuitOpenError: ESI is considered down; no request was sent
            RetryableResolutionError: Timeouts, network errors, 429 and 5xx
            NonRetryableResolutionError: 404, other 4xx, or a body without a name
        """
        if self._client is None:
            raise RuntimeError("Resolver not open. Use 'async with EsiNameResolver()'.")

        if not self.breaker.allow():
            raise CircuitOpenError(
                f"ESI circuit open, skipping {kind.value} {entity_id} "
                f"(retry in {self.breaker.retry_in:.0f}s)"
            )

        self.requests += 1
        try:
            name = await self._fetch_name(kind, entity_id)
        except RetryableResolutionError:
            self.failures += 1
            self.breaker.record_failure()
            raise
        except NonRetryableResolutionError:
            # ESI answered; the host is healthy even if this id is not
            self.failures += 1
            self.breaker.record_success()
            raise
        except asyncio.CancelledError:
            # Caller's timeout fired mid-request
            self.breaker.record_failure()
            raise

        self.breaker.record_success()
        return name

    async def _fetch_name(self, kind: EntityKind, entity_id: int) -> str:
        url = f"{self.base_url}{ENDPOINTS[kind].format(id=entity_id)}"
        try:
            response = await self._client.get(url, params={"datasource": ESI_DATASOURCE})
        except httpx.TimeoutException as e:
            raise RetryableResolutionError(
                f"Timeout resolving {kind.value} {entity_id}", original_error=e
            ) from e
        except httpx.RequestError as e:
            raise RetryableResolutionError(
                f"Request error resolving {kind.value} {entity_id}: {e}", original_error=e
            ) from e

        self._update_rate_limits(response.headers)

        if response.status_code == 420:
            self.breaker.force_open(self.breaker.recovery_timeout, "ESI error limited (HTTP 420)")

        if response.status_code != 200:
            try:
                message = response.json().get("error", "")
            except ValueError:
                message = response.text[:200]
            raise classify_status(
                response.status_code,
                message=f"{kind.value} {entity_id}: {message or response.status_code}",
                retry_after=parse_retry_after(response.headers),
            )

        try:
            name = response.json().get("name")
        except ValueError as e:
            raise NonRetryableResolutionError(
                f"Malformed ESI body for {kind.value} {entity_id}", original_error=e
            ) from e

        if not isinstance(name, str) or not name:
            raise NonRetryableResolutionError(f"ESI returned no name for {kind.value} {entity_id}")

        return name

    def get_status(self) -> dict[str, Any]:
        return {
            "requests": self.requests,
            "failures": self.failures,
            "error_limit_remain": self._error_limit_remain,
            "error_limit_reset_in": round(max(0.0, self._error_limit_reset - self._clock()), 1),
            "circuit": self.breaker.get_status(),
        }
