"""Provides the cache-and-retry fetch facade used by every API client.

This module contains the `CacheManager` class, which combines a
namespace-scoped `CacheStore`, a `RetryingFetcher`, and cache key derivation
behind a small interface. API responses are cached on disk with a write
timestamp and are considered fresh or stale according to the TTL each
caller supplies when reading.
"""
import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, TYPE_CHECKING

import httpx

from ..core.exceptions import CacheError, ConfigError, ParseError, classify_http_error
from .cache_keys import ParamValue, derive_cache_key
from .cache_store import CacheEntry, CacheStore
from .retry import RetryingFetcher, RetryPolicy, policy_from_mapping

if TYPE_CHECKING:
    from ..core.config import Config

logger = logging.getLogger(__name__)

DEFAULT_TTL = 3600

ResponseParser = Callable[[httpx.Response], Any]


def parse_json(response: httpx.Response) -> Any:
    """The default response parser."""
    return response.json()


@dataclass
class FetchRequest:
    """Everything `CacheManager.fetch` needs for a single call.

    Attributes:
        url (str): The URL to request.
        ttl (float): Maximum acceptable age of a cached value, in seconds.
        cache_key (Optional[str]): Explicit key. Derived from the URL if None.
        parse_response (ResponseParser): Turns a successful response into the
            value to return and cache. May return an awaitable.
        fetch_options (Dict[str, Any]): Method, headers, params or body,
            passed through to the HTTP client.
        retry_options (Dict[str, Any]): Partial RetryPolicy overrides.
        bypass_cache (bool): Skip the cache read. The fresh value is still
            written back.
    """

    url: str
    ttl: float
    cache_key: Optional[str] = None
    parse_response: ResponseParser = parse_json
    fetch_options: Dict[str, Any] = field(default_factory=dict)
    retry_options: Dict[str, Any] = field(default_factory=dict)
    bypass_cache: bool = False


class CacheManager:
    """A namespaced, TTL-aware cache in front of a retrying HTTP fetcher.

    Cache problems never reach the caller: the store reports them as
    `CacheError` and this class logs them at debug level and carries on as
    if the cache were empty. HTTP, retry and parse failures do reach the
    caller.

    Concurrent cache misses for the same key are coalesced: only the first
    caller goes upstream and the others await its result. Joining callers
    get the value produced by the first caller's `parse_response` and
    `fetch_options`, so an explicit `cache_key` must only be shared by calls
    that request and parse the same way.

    Attributes:
        namespace (str): The cache namespace, e.g. "pypi-json".
        default_ttl (float): TTL used when a call does not pass one.
        default_retry (RetryPolicy): Policy that per-call overrides merge into.
        store (CacheStore): The backing store.
        fetcher (RetryingFetcher): The HTTP layer.
    """

    def __init__(
        self,
        namespace: str,
        default_ttl: float = DEFAULT_TTL,
        default_retry: Optional[RetryPolicy] = None,
        store: Optional[CacheStore] = None,
        fetcher: Optional[RetryingFetcher] = None,
        cache_root: Optional[Path] = None,
    ) -> None:
        """Initializes the CacheManager.

        Args:
            namespace (str): The cache namespace. Managers sharing a namespace
                share entries, across processes too.
            default_ttl (float): Default freshness window in seconds.
                Defaults to one hour.
            default_retry (Optional[RetryPolicy]): Default retry policy.
            store (Optional[CacheStore]): A pre-built store. If None, one is
                created under `cache_root`.
            fetcher (Optional[RetryingFetcher]): A pre-built fetcher. If None,
                one with default settings is created.
            cache_root (Optional[Path]): Parent directory for the namespace
                directory when no store is given. Defaults to the system temp
                directory.
        """
        self.namespace = namespace
        self.default_ttl = default_ttl
        self.default_retry = default_retry or RetryPolicy()
        self.store = store or CacheStore(namespace, root=cache_root)
        self.fetcher = fetcher or RetryingFetcher(policy=self.default_retry)
        self._inflight: Dict[str, "asyncio.Future[Any]"] = {}

    @classmethod
    def from_config(
        cls,
        namespace: str,
        config: "Config",
        default_ttl: float = DEFAULT_TTL,
        retry_defaults: Optional[Mapping[str, Any]] = None,
    ) -> "CacheManager":
        """Builds a manager from the application configuration.

        The retry policy is layered: built-in defaults, then
        `retry_defaults`, then the `retry` config section. A `cache.ttl`
        setting replaces `default_ttl`.

        Args:
            namespace (str): The cache namespace.
            config (Config): The application configuration.
            default_ttl (float): The caller's preferred TTL.
            retry_defaults (Optional[Mapping[str, Any]]): The caller's
                preferred retry settings.

        Returns:
            CacheManager: A manager with its own store and fetcher.

        Raises:
            ConfigError: If a `retry`, `cache.ttl` or `timeout` setting
                cannot be used.
        """
        policy = _retry_policy_from_config(config, RetryPolicy().merge(retry_defaults))
        ttl = _number_from_config(config, "cache.ttl")
        timeout = _number_from_config(config, "timeout")
        headers = {"User-Agent": config.get("user_agent")} if config.get("user_agent") else None
        fetcher = RetryingFetcher(policy=policy, timeout=30.0 if timeout is None else timeout, headers=headers)
        return cls(
            namespace,
            default_ttl=default_ttl if ttl is None else ttl,
            default_retry=policy,
            fetcher=fetcher,
            cache_root=config.get("cache.dir"),
        )

    @property
    def cache_dir(self) -> Path:
        """The directory holding this namespace's cache files."""
        return self.store.cache_dir

    async def aclose(self) -> None:
        """Releases the HTTP client."""
        await self.fetcher.aclose()

    async def __aenter__(self) -> "CacheManager":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    def get_cache_key(self, url: str, params: Optional[Mapping[str, ParamValue]] = None) -> str:
        """Derives the cache key for a URL and optional parameters.

        Args:
            url (str): The base URL or identifier.
            params (Optional[Mapping[str, ParamValue]]): Extra parameters.

        Returns:
            str: A 16-character hex key.
        """
        return derive_cache_key(url, params)

    async def get_cached(self, key: str, ttl: float) -> Optional[CacheEntry]:
        """Returns the cached entry for `key` if it is younger than `ttl`.

        Args:
            key (str): The cache key.
            ttl (float): The maximum acceptable age in seconds.

        Returns:
            Optional[CacheEntry]: The entry, or None on a miss, on expiry, or
            when the entry cannot be read.
        """
        try:
            return await self.store.read(key, ttl)
        except CacheError as e:
            logger.debug(f"Ignoring unreadable cache entry in '{self.namespace}': {e}")
            return None

    async def set_cached(self, key: str, data: Any) -> None:
        """Stores `data` under `key`. Failures are logged and ignored.

        Args:
            key (str): The cache key.
            data (Any): A JSON-serializable value.
        """
        try:
            await self.store.write(key, data)
            logger.debug(f"Cached {key} in '{self.namespace}'")
        except CacheError as e:
            logger.debug(f"Cache write skipped in '{self.namespace}': {e}")

    async def clear_cache(self) -> int:
        """Removes every cached entry in this namespace.

        Returns:
            int: The number of entries removed.
        """
        try:
            removed = await self.store.clear()
        except CacheError as e:
            logger.warning(f"Could not clear cache '{self.namespace}': {e}")
            return 0
        logger.info(f"Cleared {removed} cache file(s) from {self.cache_dir}")
        return removed

    async def fetch_with_cache(
        self,
        url: str,
        ttl: Optional[float] = None,
        cache_key: Optional[str] = None,
        parse_response: Optional[ResponseParser] = None,
        fetch_options: Optional[Mapping[str, Any]] = None,
        retry_options: Optional[Mapping[str, Any]] = None,
        bypass_cache: bool = False,
    ) -> Any:
        """Returns a fresh cached value for `url`, or fetches and caches it.

        Args:
            url (str): The URL to request.
            ttl (Optional[float]): Freshness window in seconds. Defaults to
                `default_ttl`.
            cache_key (Optional[str]): Explicit cache key. Defaults to a key
                derived from the URL.
            parse_response (Optional[ResponseParser]): Converts the response
                into the value to cache. Defaults to JSON decoding.
            fetch_options (Optional[Mapping[str, Any]]): Passed through to
                the HTTP client (`method`, `headers`, `params`, body).
            retry_options (Optional[Mapping[str, Any]]): Partial retry
                policy merged over `default_retry`.
            bypass_cache (bool): Skip the cache read and always fetch.

        Returns:
            Any: The parsed value.

        Raises:
            FetchExhausted: If the retry budget was spent.
            HTTPError: If the final response was not successful.
            ParseError: If the parser rejected the response.
        """
        request = FetchRequest(
            url=url,
            ttl=self.default_ttl if ttl is None else ttl,
            cache_key=cache_key,
            parse_response=parse_response or parse_json,
            fetch_options=dict(fetch_options or {}),
            retry_options=dict(retry_options or {}),
            bypass_cache=bypass_cache,
        )
        return await self.fetch(request)

    async def fetch(self, request: FetchRequest) -> Any:
        """Runs a prepared `FetchRequest`. See `fetch_with_cache`."""
        key = request.cache_key or self.get_cache_key(request.url)

        if request.bypass_cache:
            logger.debug(f"Bypassing cache for {request.url}")
            return await self._fetch_and_store(key, request)

        cached = await self.get_cached(key, request.ttl)
        if cached is not None:
            logger.debug(f"Cache hit for {request.url} ({key}, age {cached.age_seconds():.0f}s)")
            return cached.data

        pending = self._inflight.get(key)
        if pending is not None:
            logger.debug(f"Joining in-flight request for {request.url} ({key})")
            return await pending

        logger.debug(f"Cache miss for {request.url} ({key})")
        task = asyncio.ensure_future(self._fetch_and_store(key, request))
        self._inflight[key] = task
        try:
            return await task
        finally:
            if self._inflight.get(key) is task:
                del self._inflight[key]

    async def _fetch_and_store(self, key: str, request: FetchRequest) -> Any:
        policy = self.default_retry.merge(request.retry_options)
        logger.info(f"Fetching {request.url}")
        response = await self.fetcher.fetch(request.url, request.fetch_options, policy)

        if not response.is_success:
            raise classify_http_error(response.status_code, request.url, response.reason_phrase)

        try:
            data = request.parse_response(response)
            if inspect.isawaitable(data):
                data = await data
        except Exception as e:
            raise ParseError(request.url, e) from e

        await self.set_cached(key, data)
        return data


def _retry_policy_from_config(config: "Config", base: RetryPolicy) -> RetryPolicy:
    overrides = config.retry_overrides()
    try:
        return policy_from_mapping(overrides, base=base)
    except (TypeError, ValueError) as e:
        error = ConfigError("retry", str(e))
    # Name the first setting that is unusable on its own, if there is one.
    for key, value in overrides.items():
        try:
            policy_from_mapping({key: value}, base=base)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"retry.{key}", str(e)) from e
    raise error


def _number_from_config(config: "Config", key: str) -> Optional[float]:
    value = config.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(key, f"expected a number, got {value!r}")
    return value
