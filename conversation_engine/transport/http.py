"""
Retry policy for the HTTP transport.

Transient statuses (rate limits, 5xx) and network errors are retried with
exponential backoff plus jitter; `Retry-After` wins when the backend sends
it. Nothing above the transport retries.
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass, field

import httpx
import structlog
from prometheus_client import Counter

from conversation_engine.config import Settings

logger = structlog.get_logger()

_transport_http_retries_total = Counter(
    "conversation_engine_http_retries_total",
    "Conversation transport HTTP retries by service and reason",
    ["service", "reason", "status_code"],
)

RETRY_STATUSES = frozenset({429, 500, 502, 503, 504})


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_backoff: float = 0.5
    max_backoff: float = 8.0
    retry_statuses: frozenset[int] = field(default=RETRY_STATUSES)

    @classmethod
    def from_settings(cls, settings: Settings) -> RetryPolicy:
        return cls(
            max_attempts=settings.http_max_attempts,
            base_backoff=settings.http_base_backoff_seconds,
            max_backoff=settings.http_max_backoff_seconds,
        )

    def backoff(self, attempt: int) -> float:
        """Exponential delay for `attempt` (1-based), plus up to 50% jitter."""
        delay = min(self.max_backoff, self.base_backoff * (2 ** (attempt - 1)))
        return delay + random.uniform(0, delay / 2)

    def should_retry(self, response: httpx.Response, attempt: int) -> bool:
        return response.status_code in self.retry_statuses and attempt < self.max_attempts

    def delay_for(self, response: httpx.Response, attempt: int) -> float:
        retry_after = response.headers.get("Retry-After")
        if not retry_after:
            return self.backoff(attempt)
        try:
            return float(retry_after)
        except ValueError:
            return self.base_backoff


def _count_retry(service: str, reason: str, status_code: int) -> None:
    _transport_http_retries_total.labels(service=service, reason=reason, status_code=str(status_code)).inc()


async def request_with_retry(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    policy: RetryPolicy | None = None,
    service: str | None = None,
    **kwargs,
) -> httpx.Response:
    """
    Send a request, retrying per `policy`.

    Returns the last response, even when it still carries a retryable status.
    Network errors on the final attempt are re-raised.
    """
    policy = policy or RetryPolicy()
    service = service or "raw"

    attempt = 0
    while True:
        attempt += 1
        try:
            response = await client.request(method, url, **kwargs)
        except (httpx.TimeoutException, httpx.NetworkError) as e:
            if attempt >= policy.max_attempts:
                raise
            delay = policy.backoff(attempt)
            _count_retry(service, "network", 0)
            logger.warning(
                "Retrying conversation request after network error",
                url=url,
                attempt=attempt,
                delay=delay,
                error=str(e),
            )
            await asyncio.sleep(delay)
            continue

        if not policy.should_retry(response, attempt):
            return response

        delay = policy.delay_for(response, attempt)
        _count_retry(service, "status", response.status_code)
        logger.warning(
            "Retrying conversation request after status",
            url=url,
            status_code=response.status_code,
            attempt=attempt,
            delay=delay,
        )
        await asyncio.sleep(delay)
