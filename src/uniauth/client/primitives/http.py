"""HTTP transport with per-attempt timeouts and retry with backoff.

Transient failures (retryable status codes, network errors, timeouts) are
retried with exponential backoff and jitter, honoring ``Retry-After`` when the
server sends it. All delays and timeouts in this module are in milliseconds.
"""

from __future__ import annotations

import asyncio
import logging
import random
import re
import time
from dataclasses import dataclass
from datetime import timezone
from email.utils import parsedate_to_datetime
from typing import Any, Awaitable, Callable

import httpx

from uniauth.client.models.errors import RequestTimeoutError

logger = logging.getLogger(__name__)

DEFAULT_RETRY_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})

MAX_BACKOFF_DELAY = 30000
DEFAULT_RETRY_AFTER_DELAY = 1000

_DELTA_SECONDS = re.compile(r"\s*(\d+)\s*")


@dataclass(frozen=True)
class RetryPolicy:
    """Retry and timeout settings for a request."""

    max_retries: int = 3
    base_delay: float = 500
    timeout: float = 30000
    retry_status_codes: frozenset[int] = DEFAULT_RETRY_STATUS_CODES

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")
        object.__setattr__(self, "retry_status_codes", frozenset(self.retry_status_codes))


def calculate_backoff_delay(
    attempt: int,
    base_delay: float,
    rand: Callable[[], float] = random.random,
) -> float:
    """Exponential backoff delay with symmetric ±25% jitter, capped at 30s.

    Args:
        attempt: Zero-based attempt number that just failed
        base_delay: Base delay in milliseconds
        rand: Source of uniform floats in [0, 1)

    Returns:
        Delay in milliseconds
    """
    exponential_delay = base_delay * (2**attempt)
    jitter = exponential_delay * 0.25 * (rand() * 2 - 1)
    return min(exponential_delay + jitter, MAX_BACKOFF_DELAY)


def parse_retry_after(value: str, now: float | None = None) -> float:
    """Parse a Retry-After header value into a delay in milliseconds.

    Accepts delta-seconds or an HTTP-date. Unparseable values fall back to
    one second.
    """
    match = _DELTA_SECONDS.fullmatch(value)
    if match:
        return int(match.group(1)) * 1000

    try:
        target = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return DEFAULT_RETRY_AFTER_DELAY
    if target is None:
        return DEFAULT_RETRY_AFTER_DELAY
    if target.tzinfo is None:
        # "-0000" zone: UTC with unknown origin
        target = target.replace(tzinfo=timezone.utc)

    current = time.time() if now is None else now
    return max((target.timestamp() - current) * 1000, 0)


class HTTPTransport:
    """Issues HTTP requests with bounded timeouts and automatic retries.

    Each attempt gets the full timeout budget. Total attempts are
    ``max_retries + 1``. The final failure is never swallowed: the last
    response is returned, or the last error raised.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        default_policy: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rand: Callable[[], float] = random.random,
    ):
        """Initialize the transport.

        Args:
            http_client: Client to send requests with; one is created if omitted
            default_policy: Policy used when a request does not pass one
            sleep: Async sleep taking seconds, replaceable in tests
            rand: Jitter source, replaceable in tests
        """
        self._http_client = http_client or httpx.AsyncClient()
        self.default_policy = default_policy or RetryPolicy()
        self._sleep = sleep
        self._rand = rand

    async def request(
        self,
        method: str,
        url: str,
        *,
        retry: RetryPolicy | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send a request, retrying transient failures.

        Args:
            method: HTTP method
            url: Absolute request URL
            retry: Retry policy overriding the transport default
            **kwargs: Passed through to ``httpx.AsyncClient.request``

        Returns:
            The first non-retryable response, or the last response once
            retries are exhausted

        Raises:
            RequestTimeoutError: If the final attempt timed out
            httpx.HTTPError: If the final attempt failed at the network level
        """
        policy = retry or self.default_policy
        last_error: Exception | None = None

        for attempt in range(policy.max_retries + 1):
            has_retries_left = attempt < policy.max_retries
            try:
                # Per-attempt budget overrides the client-level httpx timeout
                response = await asyncio.wait_for(
                    self._http_client.request(
                        method, url, timeout=policy.timeout / 1000, **kwargs
                    ),
                    timeout=policy.timeout / 1000,
                )
            except (asyncio.TimeoutError, httpx.TimeoutException) as e:
                logger.warning(
                    f"{method} {url} timed out after {policy.timeout:.0f}ms "
                    f"(attempt {attempt + 1}/{policy.max_retries + 1})"
                )
                if not has_retries_left:
                    raise RequestTimeoutError(policy.timeout) from e
                last_error = e
            except httpx.HTTPError as e:
                logger.warning(
                    f"{method} {url} failed: {e} "
                    f"(attempt {attempt + 1}/{policy.max_retries + 1})"
                )
                if not has_retries_left:
                    raise
                last_error = e
            else:
                if response.status_code not in policy.retry_status_codes:
                    return response
                if not has_retries_left:
                    logger.warning(
                        f"{method} {url} returned {response.status_code}, "
                        "retries exhausted"
                    )
                    return response

                retry_after = response.headers.get("Retry-After")
                if retry_after is not None:
                    delay = parse_retry_after(retry_after)
                else:
                    delay = calculate_backoff_delay(
                        attempt, policy.base_delay, self._rand
                    )
                logger.debug(
                    f"{method} {url} returned {response.status_code}, "
                    f"retrying in {delay:.0f}ms"
                )
                await response.aclose()
                await self._sleep(delay / 1000)
                continue

            delay = calculate_backoff_delay(attempt, policy.base_delay, self._rand)
            logger.debug(f"Retrying {method} {url} in {delay:.0f}ms")
            await self._sleep(delay / 1000)

        # Unreachable: the final attempt always returns or raises
        raise last_error or RuntimeError("Request failed after all retries")

    async def close(self) -> None:
        """Close the HTTP client and clean up resources."""
        await self._http_client.aclose()
