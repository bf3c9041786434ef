"""Charge notification sinks: the platform billing endpoint and local stand-ins."""

import asyncio
import itertools
import logging
import random
import time
from typing import Protocol

import httpx

logger = logging.getLogger(__name__)

# Backoff configuration
BACKOFF_BASE_SECONDS = 0.5
BACKOFF_JITTER_MAX = 0.2

RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})


class ChargeNotificationError(RuntimeError):
    """Raised when the platform did not accept a charge notification."""

    def __init__(self, message: str, event_id: str, count: int, idempotency_key: str) -> None:
        super().__init__(message)
        self.event_id = event_id
        self.count = count
        self.idempotency_key = idempotency_key


class ChargeNotifier(Protocol):
    """Protocol for notifying the billing system about charged units."""

    async def notify(self, event_id: str, count: int) -> None:
        """Report ``count`` charged units of ``event_id``."""
        ...


def calculate_backoff(attempt: int, base_seconds: float = BACKOFF_BASE_SECONDS) -> float:
    """Calculate backoff time with exponential factor and jitter.

    Args:
        attempt: Current attempt number (1-based)
        base_seconds: Backoff for the first retry

    Returns:
        Backoff time in seconds
    """
    if base_seconds <= 0:
        return 0.0
    exponential = base_seconds * (2 ** (attempt - 1))
    jitter = random.uniform(0, BACKOFF_JITTER_MAX)
    return exponential + jitter


_call_sequence = itertools.count(1)


def make_charge_idempotency_key(run_id: str, event_id: str) -> str:
    """Build an idempotency key unique to one charge call.

    Format: "{run_id}-{event_id}-{time_ns}-{sequence}". Retries of the same
    call must reuse the key so the platform charges at most once.
    """
    return f"{run_id}-{event_id}-{time.time_ns()}-{next(_call_sequence)}"


class ApiChargeNotifier:
    """POSTs ``{"eventName", "count"}`` to ``{base}v2/actor-runs/{run_id}/charge``."""

    def __init__(
        self,
        base_url: str,
        run_id: str,
        token: str | None = None,
        max_retries: int = 5,
        timeout_seconds: float = 30.0,
        backoff_base_seconds: float = BACKOFF_BASE_SECONDS,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize notifier.

        Args:
            base_url: Platform API base URL, ending with "/"
            run_id: Id of the current run
            token: API token, sent as a query parameter
            max_retries: Retries after the first attempt
            timeout_seconds: Transport timeout per attempt
            backoff_base_seconds: Base backoff; 0 disables sleeping (tests)
            client: Optional preconfigured client (tests inject a MockTransport)
        """
        self.base_url = base_url
        self.run_id = run_id
        self.token = token
        self.max_retries = max_retries
        self.timeout = timeout_seconds
        self.backoff_base_seconds = backoff_base_seconds
        self._client = client

    @property
    def url(self) -> str:
        return f"{self.base_url}v2/actor-runs/{self.run_id}/charge"

    async def notify(self, event_id: str, count: int) -> None:
        """Send the charge, retrying transport errors and retryable statuses.

        Raises:
            ChargeNotificationError: If every attempt failed or the platform
                rejected the request
        """
        idempotency_key = make_charge_idempotency_key(self.run_id, event_id)
        if self._client is not None:
            await self._send_with_retries(self._client, event_id, count, idempotency_key)
            return
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            await self._send_with_retries(client, event_id, count, idempotency_key)

    async def _send_with_retries(
        self,
        client: httpx.AsyncClient,
        event_id: str,
        count: int,
        idempotency_key: str,
    ) -> None:
        params = {"token": self.token} if self.token else None
        headers = {"idempotency-key": idempotency_key}
        payload = {"eventName": event_id, "count": count}
        max_attempts = self.max_retries + 1
        last_error = ""

        for attempt in range(1, max_attempts + 1):
            try:
                response = await client.post(
                    self.url, json=payload, params=params, headers=headers, timeout=self.timeout
                )
            except httpx.TransportError as e:
                last_error = f"{type(e).__name__}: {e}"
            else:
                if response.is_success:
                    logger.debug(f"Charged {count} x {event_id} (key {idempotency_key}, attempt {attempt})")
                    return
                last_error = f"HTTP {response.status_code}: {response.text[:200]}"
                if response.status_code not in RETRYABLE_STATUS_CODES:
                    raise ChargeNotificationError(
                        f"Charge request rejected: {last_error}",
                        event_id=event_id,
                        count=count,
                        idempotency_key=idempotency_key,
                    )

            if attempt < max_attempts:
                backoff = calculate_backoff(attempt, self.backoff_base_seconds)
                logger.warning(
                    f"Charge request failed (attempt {attempt}/{max_attempts}), "
                    f"retrying in {backoff:.2f}s: {last_error}"
                )
                await asyncio.sleep(backoff)

        raise ChargeNotificationError(
            f"Charge request failed after {max_attempts} attempts: {last_error}",
            event_id=event_id,
            count=count,
            idempotency_key=idempotency_key,
        )


class LoggingChargeNotifier:
    """Logs charges instead of sending them (runs outside the platform)."""

    async def notify(self, event_id: str, count: int) -> None:
        logger.info(f"Local run, skipping charge request for {count} x {event_id}")


class RecordingChargeNotifier:
    """Records notifications for inspection; can be told to fail."""

    def __init__(self, fail_with: Exception | None = None) -> None:
        self.calls: list[tuple[str, int]] = []
        self.fail_with = fail_with

    async def notify(self, event_id: str, count: int) -> None:
        self.calls.append((event_id, count))
        if self.fail_with is not None:
            raise self.fail_with

    def total_for(self, event_id: str) -> int:
        return sum(count for name, count in self.calls if name == event_id)
