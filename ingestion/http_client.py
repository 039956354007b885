"""
Resilient fetch client for provider APIs.

This module wraps outbound GET calls with, in order:
- A per-source timeout (provider latencies differ by an order of magnitude)
- Exponential backoff retry on network errors, timeouts, 429 and 5xx
- A per-source circuit breaker that fails fast while the provider is down

Non-transient 4xx responses are raised immediately as HttpPermanentError.
"""

import asyncio
import httpx
from typing import Any, Awaitable, Callable, Dict, Optional
from ingestion.circuit_breaker import CircuitBreaker
from core.exceptions import (
    CircuitOpenError,
    FetchTimeoutError,
    HttpPermanentError,
    HttpTransientError,
    NetworkError,
    PayloadParseError,
    RetryableError,
)
import logging

logger = logging.getLogger(__name__)


def _parse_retry_after(value: Optional[str]) -> Optional[float]:
    if value is None:
        return None
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        # HTTP-date form is not used by the providers we talk to
        return None
    return seconds if seconds >= 0 else None


class ResilientFetchClient:
    """
    Fetch JSON from one source's endpoints with retry and circuit breaking.

    One instance per source pipeline. The underlying httpx.AsyncClient is
    owned by the caller.

    Attributes:
        source_name: Source this client serves (for logs and error context)
        timeout: Per-call timeout in seconds
        max_retries: Retries after the first attempt (default: 3)
        base_delay: Initial retry delay in seconds; doubles per retry (default: 2.0)
        max_retry_after: Upper bound on a server-requested Retry-After wait (default: 120.0)
    """

    def __init__(
        self,
        source_name: str,
        client: httpx.AsyncClient,
        breaker: CircuitBreaker,
        timeout: float = 30.0,
        max_retries: int = 3,
        base_delay: float = 2.0,
        max_retry_after: float = 120.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    ):
        self.source_name = source_name
        self.client = client
        self.breaker = breaker
        self.timeout = timeout
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_retry_after = max_retry_after
        self._sleep = sleep

    async def fetch(self, url: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        GET ``url`` and return the decoded JSON body.

        Raises:
            CircuitOpenError: Breaker is open; no network attempt was made
            NetworkError / FetchTimeoutError / HttpTransientError: Transient
                failure that survived every retry
            HttpPermanentError: 4xx other than 429
            PayloadParseError: 2xx response whose body is not valid JSON
        """
        context = {"source_name": self.source_name, "url": url, "params": params}

        for attempt in range(self.max_retries + 1):
            if not self.breaker.allow_request():
                raise CircuitOpenError(
                    f"Circuit breaker is open for {self.source_name}",
                    context={
                        **context,
                        "retry_in_seconds": round(self.breaker.seconds_until_probe(), 1),
                    },
                )

            try:
                response = await self._attempt(url, params, context)
            except RetryableError as e:
                self.breaker.record_failure()

                if attempt >= self.max_retries:
                    e.context["retry_count"] = attempt
                    raise

                delay = self.base_delay * (2 ** attempt)
                retry_after = getattr(e, "retry_after", None)
                if retry_after is not None:
                    delay = min(retry_after, self.max_retry_after)

                logger.warning(
                    f"{e.error_class} fetching {url} for {self.source_name}. "
                    f"Retrying in {delay} seconds (retry {attempt + 1}/{self.max_retries})",
                    extra={
                        "source": self.source_name,
                        "error_class": e.error_class,
                        "status_code": getattr(e, "status_code", None),
                        "retry": attempt + 1,
                        "delay_seconds": delay,
                    },
                )
                await self._sleep(delay)
                continue

            # The provider answered; a permanent 4xx is not a sign of an outage
            self.breaker.record_success()

            if response.status_code >= 400:
                raise HttpPermanentError(
                    f"HTTP {response.status_code} from {url}",
                    context={**context, "response_body": response.text[:500]},
                    status_code=response.status_code,
                )

            try:
                return response.json()
            except ValueError as e:
                raise PayloadParseError(
                    "Failed to parse JSON response",
                    context={**context, "response_body": response.text[:500]},
                    original_exception=e,
                )

        # Unreachable: the last attempt either returns or raises
        raise NetworkError("Max retries exceeded", context=context)

    async def _attempt(self, url: str, params: Optional[Dict[str, Any]], context: Dict[str, Any]) -> httpx.Response:
        """Single network attempt; maps transient outcomes onto RetryableError."""
        try:
            response = await self.client.get(url, params=params, timeout=self.timeout)
        except httpx.TimeoutException as e:
            raise FetchTimeoutError(
                f"Request timed out after {self.timeout} seconds",
                context={**context, "timeout": self.timeout},
                original_exception=e,
            )
        except httpx.TransportError as e:
            raise NetworkError(
                f"Network error: {type(e).__name__}",
                context=dict(context),
                original_exception=e,
            )

        status = response.status_code
        if status == 429 or status >= 500:
            raise HttpTransientError(
                f"HTTP {status} from {url}",
                context={**context, "response_body": response.text[:500]},
                status_code=status,
                retry_after=_parse_retry_after(response.headers.get("Retry-After")) if status == 429 else None,
            )

        return response
