"""HTTP fetching with exponential backoff and jitter.

`RetryingFetcher` retries on transport failures and on a configurable set of
status codes. Every other response, successful or not, is handed back to the
caller to interpret.
"""
import asyncio
import dataclasses
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, FrozenSet, Mapping, Optional

import httpx

from ..core.exceptions import FetchExhausted

logger = logging.getLogger(__name__)

DEFAULT_RETRYABLE_STATUSES = frozenset({408, 429, 500, 502, 503, 504})
DEFAULT_TIMEOUT = 30.0


@dataclass(frozen=True)
class RetryPolicy:
    """Controls how many times and how far apart requests are retried.

    Attributes:
        max_retries (int): Retries after the first try. The request is sent
            at most `max_retries + 1` times.
        initial_delay (float): Delay in seconds before the first retry.
        max_delay (float): Upper bound for the computed delay in seconds.
        backoff_multiplier (float): Growth factor between retries.
        jitter (bool): Add a random extra of up to half the delay.
        retryable_statuses (FrozenSet[int]): Status codes that trigger a retry.
    """

    max_retries: int = 3
    initial_delay: float = 1.0
    max_delay: float = 30.0
    backoff_multiplier: float = 2.0
    jitter: bool = True
    retryable_statuses: FrozenSet[int] = DEFAULT_RETRYABLE_STATUSES

    def __post_init__(self) -> None:
        object.__setattr__(self, "retryable_statuses", frozenset(int(s) for s in self.retryable_statuses))
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.initial_delay < 0 or self.max_delay < 0:
            raise ValueError("Retry delays must be non-negative")
        if self.initial_delay > self.max_delay:
            raise ValueError(f"initial_delay ({self.initial_delay}) must not exceed max_delay ({self.max_delay})")
        if self.backoff_multiplier <= 0:
            raise ValueError(f"backoff_multiplier must be positive, got {self.backoff_multiplier}")

    def merge(self, overrides: Optional[Mapping[str, Any]]) -> "RetryPolicy":
        """Returns a copy with the given fields replaced.

        Args:
            overrides (Optional[Mapping[str, Any]]): A partial mapping of
                field names to new values. None or empty returns `self`.

        Raises:
            ValueError: If a key is not a RetryPolicy field, or the merged
                values are inconsistent.
        """
        if not overrides:
            return self
        known = {f.name for f in dataclasses.fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise ValueError(f"Unknown retry option(s): {', '.join(sorted(unknown))}")
        return dataclasses.replace(self, **dict(overrides))

    def compute_delay(self, attempt: int) -> float:
        """Returns the sleep before retrying after try number `attempt` (0-based)."""
        delay = min(self.initial_delay * self.backoff_multiplier ** attempt, self.max_delay)
        if self.jitter:
            delay += random.uniform(0, 0.5 * delay)
        return delay


class RetryingFetcher:
    """Sends HTTP requests through an `httpx.AsyncClient`, retrying as needed.

    The fetcher creates its own client on first use unless one is passed in.
    A self-created client follows redirects and is closed by `aclose()`; an
    injected client belongs to whoever created it.
    """

    def __init__(
        self,
        policy: Optional[RetryPolicy] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_TIMEOUT,
        headers: Optional[Mapping[str, str]] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.policy = policy or RetryPolicy()
        self.timeout = timeout
        self.headers: Dict[str, str] = dict(headers or {})
        self._client = client
        self._owns_client = client is None
        self._sleep = sleep

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, headers=self.headers, follow_redirects=True)
        return self._client

    async def aclose(self) -> None:
        """Closes the HTTP client if this fetcher created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def fetch(
        self,
        url: str,
        fetch_options: Optional[Mapping[str, Any]] = None,
        policy: Optional[RetryPolicy] = None,
    ) -> httpx.Response:
        """Requests `url`, retrying transient failures.

        Args:
            url (str): The URL to request.
            fetch_options (Optional[Mapping[str, Any]]): `method` (default
                "GET") plus any keyword accepted by
                `httpx.AsyncClient.request`, such as `headers` or `params`.
            policy (Optional[RetryPolicy]): Overrides the fetcher's policy
                for this call.

        Returns:
            httpx.Response: The first response whose status is not
            retryable. It may still be an error status.

        Raises:
            FetchExhausted: If every try failed at the transport level or
                returned a retryable status.
        """
        policy = policy or self.policy
        options = dict(fetch_options or {})
        method = str(options.pop("method", "GET")).upper()
        client = self._get_client()

        attempts = policy.max_retries + 1
        last_error: Optional[httpx.TransportError] = None
        last_status: Optional[int] = None

        for attempt in range(attempts):
            try:
                response = await client.request(method, url, **options)
            except httpx.TransportError as e:
                last_error, last_status = e, None
                reason = f"{type(e).__name__}: {e}"
            else:
                if response.status_code not in policy.retryable_statuses:
                    return response
                last_error, last_status = None, response.status_code
                reason = f"HTTP {response.status_code}"

            if attempt < policy.max_retries:
                delay = policy.compute_delay(attempt)
                logger.warning(f"{method} {url} failed ({reason}). Retrying in {delay:.2f}s ({attempt + 1}/{policy.max_retries})")
                await self._sleep(delay)

        raise FetchExhausted(url, attempts, last_status=last_status, last_error=last_error) from last_error


def policy_from_mapping(values: Mapping[str, Any], base: Optional[RetryPolicy] = None) -> RetryPolicy:
    """Builds a policy from a loose mapping such as a config section.

    Keys that are not RetryPolicy fields are ignored, so the mapping may
    carry unrelated settings.
    """
    base = base or RetryPolicy()
    known = {f.name for f in dataclasses.fields(base)}
    return base.merge({k: v for k, v in values.items() if k in known})
