"""
Base class that all API clients inherit from.
"""

from typing import Any, Dict, Mapping, Optional, TYPE_CHECKING
from urllib.parse import urlencode

from ..utils.cache_manager import CacheManager

if TYPE_CHECKING:
    from .config import Config


class BaseClient:
    """Shared plumbing for the API clients.

    Subclasses set `name` (used as the cache namespace), `default_ttl` and
    optionally `retry_defaults`, then build their URLs and call `fetch`.
    Clients are async context managers so the underlying HTTP connection
    pool is released when a command finishes.

    Attributes:
        name (str): The cache namespace for this API.
        description (str): A one-line description shown in the CLI.
        default_ttl (int): Default freshness window in seconds.
        retry_defaults (Dict[str, Any]): RetryPolicy fields this API prefers.
    """

    name: str = "unnamed"
    description: str = "No description provided"
    default_ttl: int = 3600
    retry_defaults: Dict[str, Any] = {}

    def __init__(self, config: "Config", cache: Optional[CacheManager] = None) -> None:
        """Initializes the client.

        Args:
            config (Config): The application's configuration object.
            cache (Optional[CacheManager]): A pre-built cache manager. If
                None, one is created from `config` for this client's
                namespace.
        """
        self.config = config
        self.cache = cache or CacheManager.from_config(
            self.name, config, default_ttl=self.default_ttl, retry_defaults=self.retry_defaults
        )

    async def __aenter__(self) -> "BaseClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.cache.aclose()

    async def fetch(self, url: str, ttl: Optional[float] = None, bypass_cache: bool = False, **kwargs: Any) -> Any:
        """Fetches `url` through the cache. Extra keywords go to `fetch_with_cache`."""
        return await self.cache.fetch_with_cache(url, ttl=ttl, bypass_cache=bypass_cache, **kwargs)

    async def clear_cache(self) -> int:
        return await self.cache.clear_cache()


def query_string(params: Mapping[str, Any]) -> str:
    """Encodes params for a URL, dropping None values."""
    return urlencode({k: v for k, v in params.items() if v is not None})
